'''
Build a new MBR (and EBR chain) and commit it to a block store.

Example:

    bldr = MbrBuilder(store.getBlockCount())
    bldr.set_bootcode(code).set_disk_signature(0x12345678)
    bldr.add_partition( MbrPartSpec( Start(AtLba(2048)), End(AtLba(206848)), BOOTABLE ) )
    bldr.add_partition( MbrPartSpec( PartType(SYSTEMID.LINUX_SWAP) ) )

    writer = bldr.compile()
    writer.commit(store)

Boot area layout (the first 446 bytes of the sector):

    classic:   0 +-- bootcode (446, or 440 with a disk signature) --+ 446

    modern:    0 +-- bootcode (226) ...
                         218 original physical drive
                         219 seconds, 220 minutes, 221 hours
                         224 +-- bootcode part 2 (222) --+ 446
                                          440 disk signature (4) + copy protect (2)

Fields claiming the same bytes do not fit together (LayoutOverflow).
'''
import logging
import datetime

import partlab.mbr as mbr
import partlab.resolve as resolve
import partlab.extended as extended

from partlab.errors import *

logger = logging.getLogger(__name__)

BOOTCODE_OFF = 0
BOOTCODE_MAX_CLASSIC = 446
BOOTCODE_MAX_MODERN = 226

DRIVE_OFF = 218
TIMESTAMP_OFF = 219
TIMESTAMP_SIZE = 3

BOOTCODE2_OFF = 224
BOOTCODE2_MAX = 222

DISK_SIG_OFF = mbr.DISK_SIG_OFF
# the u32 signature and the u16 copy protect word
DISK_SIG_SIZE = 6

COPY_PROTECTED = 0x5A5A


def getTimeParts(ts):
    '''
    (seconds, minutes, hours) from a datetime/time object or from epoch
    seconds (UTC).
    '''
    if isinstance(ts, (int, float)):
        ts = datetime.datetime.fromtimestamp(ts, datetime.timezone.utc)
    return (ts.second, ts.minute, ts.hour)


class MbrBuilder(object):
    '''
    Collects the boot area fields and partition specs for a new MBR.

    Setters return the builder, so they chain.  A setter that would not
    fit raises and leaves the builder as it was.  Nothing touches a
    block store until MbrWriter.commit().
    '''
    def __init__(self, blocks, blocksize=mbr.SECTOR_SIZE, align=1):
        '''
        param blocks: size of the target device in blocks
        param blocksize: block size of the target device (at least 512)
        param align: logical partition data alignment in blocks
        '''
        if blocksize < mbr.SECTOR_SIZE:
            raise ValueError('MBR needs blocks of at least %d bytes, got %d' % (mbr.SECTOR_SIZE, blocksize))
        if blocks < 1:
            raise ValueError('invalid device size: %d blocks' % (blocks,))
        if align < 1:
            raise ValueError('invalid alignment: %d' % (align,))

        self.blocks = blocks
        self.blocksize = blocksize
        self.align = align

        self._bootcode = None
        self._bootcode2 = None
        self._timestamp = None
        self._drive = None
        self._disksig = None
        self._specs = []

    def is_modern(self):
        '''
        a timestamp, original drive or second bootcode part switches to
        the modern layout.
        '''
        return self._timestamp is not None or self._drive is not None or self._bootcode2 is not None

    def getBootcodeMax(self):
        if self.is_modern():
            return BOOTCODE_MAX_MODERN
        return BOOTCODE_MAX_CLASSIC

    def getRegions(self):
        '''
        (name, offset, size) for every boot area field that is set.
        '''
        regions = []
        if self._bootcode:
            regions.append(('bootcode', BOOTCODE_OFF, len(self._bootcode)))
        if self._drive is not None:
            regions.append(('original physical drive', DRIVE_OFF, 1))
        if self._timestamp is not None:
            regions.append(('timestamp', TIMESTAMP_OFF, TIMESTAMP_SIZE))
        if self._bootcode2:
            regions.append(('bootcode part 2', BOOTCODE2_OFF, len(self._bootcode2)))
        if self._disksig is not None:
            regions.append(('disk signature', DISK_SIG_OFF, DISK_SIG_SIZE))
        return regions

    def _checkLayout(self, setting=None):
        if self._bootcode is not None and len(self._bootcode) > self.getBootcodeMax():
            if setting == '_bootcode':
                raise BootcodeTooLong(len(self._bootcode), self.getBootcodeMax())
            raise LayoutOverflow('bootcode', 'the modern MBR fields')

        if self._bootcode2 is not None and len(self._bootcode2) > BOOTCODE2_MAX:
            raise BootcodeTooLong(len(self._bootcode2), BOOTCODE2_MAX)

        regions = sorted(self.getRegions(), key=lambda r: r[1])
        for (name, off, size), (nextname, nextoff, nextsize) in zip(regions, regions[1:]):
            if off + size > nextoff:
                raise LayoutOverflow(name, nextname)

    def _setField(self, name, valu):
        oldv = getattr(self, name)
        setattr(self, name, valu)
        try:
            self._checkLayout(setting=name)
        except ConfigError:
            setattr(self, name, oldv)
            raise

        logger.debug('builder: set: %s', name.strip('_'))
        return self

    def set_bootcode(self, code):
        '''
        MBR contains a block of "bootcode" that is 446 bytes long in classic
        MBR or 226 bytes long in modern MBR (for the first half of it).

        shorter code is zero padded to the region when written.
        '''
        return self._setField('_bootcode', bytes(code))

    def set_timestamp(self, ts):
        '''
        In place of some of the bootcode, modern MBR can contain a disk
        timestamp (seconds, minutes, hours).
        '''
        return self._setField('_timestamp', getTimeParts(ts))

    def set_original_physical_drive(self, drv):
        '''
        Considered a piece of the timestamp; `drv` is intended to be a BIOS
        drive number (0x80 to 0xFF).
        '''
        if not 0 <= drv <= 0xff:
            raise ValueError('invalid drive number: %d' % (drv,))
        return self._setField('_drive', drv)

    def set_bootcode_part2(self, code):
        '''
        In modern MBR bootcode is split into 2 pieces; this sets the second
        one, at offset 224 (222 bytes, 216 with a disk signature).
        '''
        return self._setField('_bootcode2', bytes(code))

    def set_disk_signature(self, sig, extra=0):
        '''
        `extra` is normally 0x0000, but may be 0x5A5A to mark the disk as
        copy protected.

        the signature and extra word occupy the last 6 bytes of the
        second bootcode part.
        '''
        if not 0 <= sig <= 0xffffffff:
            raise ValueError('invalid disk signature: %r' % (sig,))
        if not 0 <= extra <= 0xffff:
            raise ValueError('invalid copy protect word: %r' % (extra,))
        return self._setField('_disksig', (sig, extra))

    def add_partition(self, spec):
        self._specs.append(spec)
        return self

    def set_partitions(self, specs):
        self._specs = list(specs)
        return self

    def getBootArea(self):
        '''
        the bootcode bytes of the sector: everything ahead of the disk
        signature if one is set, otherwise the whole 446 byte area.
        '''
        size = mbr.BOOTCODE_MAX
        if self._disksig is not None:
            size = DISK_SIG_OFF

        area = bytearray(size)
        if self._bootcode:
            area[BOOTCODE_OFF:BOOTCODE_OFF + len(self._bootcode)] = self._bootcode
        if self._drive is not None:
            area[DRIVE_OFF] = self._drive
        if self._timestamp is not None:
            area[TIMESTAMP_OFF:TIMESTAMP_OFF + TIMESTAMP_SIZE] = bytes(self._timestamp)
        if self._bootcode2:
            area[BOOTCODE2_OFF:BOOTCODE2_OFF + len(self._bootcode2)] = self._bootcode2
        return bytes(area)

    def compile(self):
        '''
        Confirm that the MBR built up here is buildable, and convert it
        into an MbrWriter which may be used to commit it.

        boot area errors are raised before partition errors.  no I/O.
        '''
        self._checkLayout()

        parts = resolve.resolveSpecs(self._specs, self.blocks)
        layout = extended.planLayout(parts, self.blocks, align=self.align)

        logger.debug('builder: compiled: primaries: %d logicals: %d', len(layout.primaries), len(layout.logicals))
        return MbrWriter(self.getBootArea(), self._disksig, tuple(self._specs), layout, self.blocksize)


class MbrWriter(object):
    '''
    An MBR (plus EBR chain) that may be directly committed to a device.
    '''
    def __init__(self, bootarea, disksig, specs, layout, blocksize):
        self.bootarea = bootarea
        self.disksig = disksig
        self.specs = specs
        self.layout = layout
        self.blocksize = blocksize

    def _getPrimaryEntries(self):
        entries = [mbr.EMPTY_ENTRY] * mbr.PART_ENTRY_COUNT
        for i in self.layout.primaries:
            part = self.layout.parts[i]
            spec = self.specs[i]
            entries[part.number] = mbr.makeEntry(part.start, part.size, spec.ptype, bootable=spec.bootable)

        cont = self.layout.container
        if cont is not None:
            entries[cont.number] = mbr.makeEntry(cont.start, cont.size, mbr.SYSTEMID.EXTENDED)

        return entries

    def getMbrSector(self):
        sig = None
        protect = None
        if self.disksig is not None:
            sig, protect = self.disksig
        return mbr.encodeSector(bootcode=self.bootarea, disk_sig=sig, copy_protect=protect,
                entries=self._getPrimaryEntries())

    def getEbrSector(self, index):
        logical = self.layout.logicals[index]
        spec = self.specs[logical.ordinal]

        entries = [mbr.makeEntry(logical.data - logical.ebr, logical.data_size, spec.ptype, bootable=spec.bootable)]

        link = self.layout.getLink(index)
        if link is not None:
            entries.append(mbr.makeEntry(link[0], link[1], mbr.SYSTEMID.EXTENDED))

        return mbr.encodeSector(entries=entries)

    def sectors(self):
        '''
        every sector this writer commits, as (where, lba, bytes).
        '''
        ret = [('mbr', 0, self.getMbrSector())]
        for i, logical in enumerate(self.layout.logicals):
            ret.append(('ebr %d' % (i,), logical.ebr, self.getEbrSector(i)))
        return ret

    def commit(self, store):
        '''
        Commit the MBR we've built up here to a block store.

        No attempt to preserve the existing contents of the store is made;
        every byte of each written block not set by the builder is zero.
        A failing write is raised as SectorIOError and sectors written
        before it stay written.
        '''
        blocksize = store.getBlockSize()
        if blocksize != self.blocksize:
            raise ValueError('store block size %d does not match the compiled %d' % (blocksize, self.blocksize))

        for where, lba, sector in self.sectors():
            logger.debug('writer: commit: %s lba: %x', where, lba)
            try:
                store.writeAtOff(lba * blocksize, sector.ljust(blocksize, b'\x00'))
            except Exception as e:
                raise SectorIOError(where, lba, e) from e
