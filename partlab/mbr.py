'''
Structures useful for parsing and building an MS-DOS style MBR (or EBR)
sector, and read-only views over decoded sectors.
'''
import logging
import collections

import vstruct2.types as v_types


logger = logging.getLogger(__name__)


# assumption: sectors are 512-bytes in lenght
# anything other than this is... non-standard, and weird.
SECTOR_SIZE = 512

PART_ENTRY_COUNT = 4
PART_ENTRY_SIZE = 16
PART_TABLE_OFF = 446

BOOT_SIGNATURE = b'\x55\xaa'

# classic layout: bootcode runs all the way up to the partition table.
# with a disk signature present it stops at 440.
BOOTCODE_MAX = PART_TABLE_OFF
DISK_SIG_OFF = 440

# partition types
SYSTEMID = v_types.venum()
SYSTEMID.EMPTY           = 0
SYSTEMID.FAT_12       = 1
SYSTEMID.XENIX_ROOT      = 2
SYSTEMID.XENIX_USR       = 3
SYSTEMID.FAT_16_INF32MB  = 4
SYSTEMID.EXTENDED        = 5
SYSTEMID.FAT_16          = 6
SYSTEMID.NTFS_HPFS       = 7
SYSTEMID.AIX             = 8
SYSTEMID.AIX_BOOT        = 9
SYSTEMID.OS2_BOOT_MGR    = 10
SYSTEMID.PRI_FAT32_INT13 = 11
SYSTEMID.EXT_FAT32_INT13 = 12
SYSTEMID.EXT_FAT16_INT13 = 14
SYSTEMID.WIN95_EXT       = 15
SYSTEMID.LINUX_SWAP      = 130
SYSTEMID.LINUX_NATIVE    = 131
SYSTEMID.LINUX_EXTENDED  = 133
SYSTEMID.LINUX_LVM       = 142
SYSTEMID.GPT_PROTECTIVE  = 238
SYSTEMID.EFI_SYSTEM      = 239

# entries of these types point at an EBR chain rather than data
EXTENDED_TYPES = (SYSTEMID.EXTENDED, SYSTEMID.WIN95_EXT, SYSTEMID.LINUX_EXTENDED)

# partition boot flag
BOOTINDICATOR = v_types.venum()
BOOTINDICATOR.NOBOOT = 0
BOOTINDICATOR.SYSTEM_PARTITION = 128


class PART_ENTRY(v_types.VStruct):
    '''
    partition entry in the MBR (or an EBR).
    '''
    def __init__(self):
        super(PART_ENTRY, self).__init__()
        self.BootIndicator = v_types.uint8(enum=BOOTINDICATOR)
        # packed CHS, see Chs
        self.StartingHead = v_types.uint8()
        self.StartingSectCylinder = v_types.uint16()

        self.SystemID = v_types.uint8(enum=SYSTEMID)

        self.EndingHead = v_types.uint8()
        self.EndingSectCylinder = v_types.uint16()

        # offset to partition in sectors from start of disk
        # (from the EBR, or the extended partition, inside a chain)
        self.RelativeSector = v_types.uint32()
        # size of partition in sectors
        self.TotalSectors = v_types.uint32()


class MASTER_BOOT_RECORD(v_types.VStruct):
    '''
    ... the MBR.

    classic MBRs put bootcode in the first 446 bytes; the disk signature
    and copy protect fields below overlay the tail of that when a classic
    sector is parsed.
    '''
    def __init__(self):
        super(MASTER_BOOT_RECORD, self).__init__()
        self.BootCode = v_types.vbytes(size=DISK_SIG_OFF)
        self.DiskSignature = v_types.uint32()
        # 0x5A5A marks the disk copy protected
        self.CopyProtect = v_types.uint16()
        self.Partitions = v_types.VArray(fields=[PART_ENTRY() for _ in range(PART_ENTRY_COUNT)])
        self.EndOfSectorMarker = v_types.uint16()


class MODERN_BOOTCODE(v_types.VStruct):
    '''
    the bootcode area of a "modern standard" MBR, split around a disk
    timestamp.
    '''
    def __init__(self):
        super(MODERN_BOOTCODE, self).__init__()
        self.BootCode1 = v_types.vbytes(size=218)
        # BIOS drive number (0x80 - 0xFF)
        self.OriginalDrive = v_types.uint8()
        self.Seconds = v_types.uint8()
        self.Minutes = v_types.uint8()
        self.Hours = v_types.uint8()
        self.Reserved = v_types.vbytes(size=2)
        self.BootCode2 = v_types.vbytes(size=216)


class Chs(collections.namedtuple('Chs', ('cylinder', 'head', 'sector'))):
    '''
    legacy cylinder/head/sector address. look at the LBA instead.

        +---+---+---+---+---+---+---+---+
        |            head 7-0           |  byte 0
        +-------+-----------------------+
        | c 9-8 |        sec 5-0        |  byte 1
        +-------+-----------------------+
        |            cyl 7-0            |  byte 2
        +---+---+---+---+---+---+---+---+
    '''
    __slots__ = ()

    @classmethod
    def unpack(cls, byts):
        if len(byts) != 3:
            raise ValueError('CHS address must be 3 bytes, got %d' % (len(byts),))
        head = byts[0]
        sector = byts[1] & 0x3f
        cylinder = byts[2] | ((byts[1] >> 6) << 8)
        return cls(cylinder, head, sector)

    def pack(self):
        if not 0 <= self.cylinder < (1 << 10):
            raise ValueError('invalid cylinder %d, must be a 10-bit value' % (self.cylinder,))
        if not 0 <= self.head < (1 << 8):
            raise ValueError('invalid head %d, must be an 8-bit value' % (self.head,))
        if not 0 <= self.sector < (1 << 6):
            raise ValueError('invalid sector %d, must be a 6-bit value' % (self.sector,))
        return bytes([
            self.head,
            ((self.cylinder >> 8) << 6) | self.sector,
            self.cylinder & 0xff,
        ])

    def is_sentinel(self):
        return self == CHS_UNREPRESENTABLE


# written in place of real geometry; the LBA fields are authoritative.
# (1023, 255, 63) is what UEFI uses, others use (1023, 254, 63).
CHS_UNREPRESENTABLE = Chs(1023, 255, 63)
CHS_ZERO = Chs(0, 0, 0)


class PartitionStatus(collections.namedtuple('PartitionStatus', ('name', 'raw'))):
    '''
    the boot indicator of an entry: active, inactive, or some invalid
    byte (0x01 - 0x7f are invalid).
    '''
    __slots__ = ()

    def __repr__(self):
        if self.name == 'invalid':
            return 'Invalid(0x%.2x)' % (self.raw,)
        return self.name.capitalize()


ACTIVE = PartitionStatus('active', BOOTINDICATOR.SYSTEM_PARTITION)
INACTIVE = PartitionStatus('inactive', BOOTINDICATOR.NOBOOT)


def Invalid(raw):
    return PartitionStatus('invalid', raw)


def getPartStatus(raw):
    if raw == ACTIVE.raw:
        return ACTIVE
    if raw == INACTIVE.raw:
        return INACTIVE
    return Invalid(raw)


class EntryFields(collections.namedtuple('EntryFields',
        ('status', 'chs_first', 'part_type', 'chs_last', 'lba_first', 'lba_size'))):
    '''
    everything one 16 byte partition entry holds, as plain values.
    '''
    __slots__ = ()


EMPTY_ENTRY = EntryFields(0, CHS_ZERO, SYSTEMID.EMPTY, CHS_ZERO, 0, 0)


def makeEntry(lba_first, lba_size, part_type, bootable=False):
    '''
    Build the fields for a used partition entry.  CHS is always written
    as the "unrepresentable" sentinel.
    '''
    status = BOOTINDICATOR.NOBOOT
    if bootable:
        status = BOOTINDICATOR.SYSTEM_PARTITION
    return EntryFields(status, CHS_UNREPRESENTABLE, part_type, CHS_UNREPRESENTABLE, lba_first, lba_size)


class PartitionEntry(object):
    '''
    Read-only view of one decoded partition entry.
    '''
    def __init__(self, ent):
        self._ent = ent

    def status(self):
        return getPartStatus(self._ent.BootIndicator)

    def part_type(self):
        return self._ent.SystemID

    def lba_first(self):
        '''
        Logical Block Address of the first block in the partition.
        '''
        return self._ent.RelativeSector

    def lba_size(self):
        '''
        Size of the partition in logical blocks.
        '''
        return self._ent.TotalSectors

    def chs_first(self):
        return _getChs(self._ent.StartingHead, self._ent.StartingSectCylinder)

    def chs_last(self):
        return _getChs(self._ent.EndingHead, self._ent.EndingSectCylinder)

    def is_empty(self):
        return self.part_type() == SYSTEMID.EMPTY

    def is_extended(self):
        return self.part_type() in EXTENDED_TYPES

    def fields(self):
        return EntryFields(self._ent.BootIndicator, self.chs_first(), self.part_type(),
                self.chs_last(), self.lba_first(), self.lba_size())

    def __repr__(self):
        return 'PartitionEntry(status=%r, type=0x%.2x, lba_first=%d, lba_size=%d)' % (
                self.status(), self.part_type(), self.lba_first(), self.lba_size())


def _getChs(head, sectcyl):
    return Chs.unpack(bytes([head, sectcyl & 0xff, sectcyl >> 8]))


def _setChs(chs):
    byts = chs.pack()
    return byts[0], byts[1] | (byts[2] << 8)


class MbrHeader(object):
    '''
    Read-only view of a decoded 512 byte MBR/EBR sector.

    Example:

        hdr = decodeSector(byts)
        if hdr.bootsig_is_valid():
            for ent in hdr.primary_partitions():
                dostuff(ent.lba_first(), ent.lba_size())

    '''
    def __init__(self, mbr):
        self._mbr = mbr

    def bootsig(self):
        return self._mbr.EndOfSectorMarker.to_bytes(2, 'little')

    def bootsig_is_valid(self):
        return self.bootsig() == BOOT_SIGNATURE

    def disk_sig(self):
        return self._mbr.DiskSignature

    def copy_protect(self):
        return self._mbr.CopyProtect

    def bootcode(self):
        '''
        the 440 bytes ahead of the disk signature.
        '''
        return self._mbr.BootCode

    def primary_partitions(self):
        return [PartitionEntry(self._mbr.Partitions[i]) for i in range(PART_ENTRY_COUNT)]

    def _getModern(self):
        modern = MODERN_BOOTCODE()
        modern.vsParse(self._mbr.BootCode)
        return modern

    def original_physical_drive(self):
        '''
        only meaningful for a modern MBR.
        '''
        return self._getModern().OriginalDrive

    def timestamp(self):
        '''
        (hours, minutes, seconds) from a modern MBR.
        '''
        modern = self._getModern()
        return (modern.Hours, modern.Minutes, modern.Seconds)


def decodeSector(byts):
    '''
    Parse exactly one sector worth of bytes into an MbrHeader.
    '''
    if len(byts) != SECTOR_SIZE:
        raise ValueError('MBR sector must be %d bytes, got %d' % (SECTOR_SIZE, len(byts)))
    mbr = MASTER_BOOT_RECORD()
    mbr.vsParse(bytes(byts))
    return MbrHeader(mbr)


def encodeSector(bootcode=b'', disk_sig=None, copy_protect=None, entries=()):
    '''
    Build a 512 byte MBR/EBR sector.

    param bootcode: up to 446 bytes (440 if disk_sig or copy_protect is given), zero padded.
    param entries: up to four EntryFields, the remaining slots are left empty.

    every byte not described by the arguments is zero, and the boot
    signature is always 55 AA.

    rtype: bytes
    '''
    maxcode = BOOTCODE_MAX
    if disk_sig is not None or copy_protect is not None:
        maxcode = DISK_SIG_OFF

    if len(bootcode) > maxcode:
        raise ValueError('bootcode is %d bytes, at most %d fit' % (len(bootcode), maxcode))

    if len(entries) > PART_ENTRY_COUNT:
        raise ValueError('at most %d partition entries fit, got %d' % (PART_ENTRY_COUNT, len(entries)))

    mbr = MASTER_BOOT_RECORD()
    # lay the bootcode down across BootCode/DiskSignature/CopyProtect
    mbr.vsParse(bytes(bootcode).ljust(SECTOR_SIZE, b'\x00'))

    if disk_sig is not None:
        mbr.DiskSignature = disk_sig
    if copy_protect is not None:
        mbr.CopyProtect = copy_protect

    for i, fields in enumerate(entries):
        ent = mbr.Partitions[i]
        ent.BootIndicator = fields.status
        ent.StartingHead, ent.StartingSectCylinder = _setChs(fields.chs_first)
        ent.SystemID = fields.part_type
        ent.EndingHead, ent.EndingSectCylinder = _setChs(fields.chs_last)
        ent.RelativeSector = fields.lba_first
        ent.TotalSectors = fields.lba_size

    mbr.EndOfSectorMarker = 0xAA55

    byts = mbr.vsEmit()
    logger.debug('mbr: encode: disk sig: %r entries: %d', disk_sig, len(entries))
    return byts
