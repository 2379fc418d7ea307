import datetime
import unittest

import partlab.mbr as mbr
import partlab.builder as builder

from partlab.specs import *
from partlab.errors import *
from partlab.reader import MbrReader
from partlab.tests.common import PartTest, FailingStore, getMemStore
from partlab.tests.test_extended import getOverflowSpecs

BLOCKS = 4096

class BuilderTest(PartTest):

    def test_builder_bootcode_classic(self):
        bldr = builder.MbrBuilder(BLOCKS)
        self.eq(bldr.set_bootcode(b'\xcc' * 446), bldr)
        self.false(bldr.is_modern())

        with self.assertRaises(BootcodeTooLong) as cm:
            bldr.set_bootcode(b'\xcc' * 447)
        self.eq(cm.exception.maxsize, 446)

        # a failed setter changes nothing
        self.eq(bldr.getBootArea(), b'\xcc' * 446)

    def test_builder_bootcode_modern(self):
        bldr = builder.MbrBuilder(BLOCKS).set_bootcode_part2(b'\x90')
        self.true(bldr.is_modern())
        self.eq(bldr.getBootcodeMax(), 226)

        self.assertRaises(BootcodeTooLong, bldr.set_bootcode, b'\x90' * 227)
        # 226 bytes run into bootcode part 2 at 224
        self.assertRaises(LayoutOverflow, bldr.set_bootcode, b'\x90' * 226)
        bldr.set_bootcode(b'\x90' * 224)

        bldr = builder.MbrBuilder(BLOCKS).set_timestamp(datetime.time(1, 2, 3))
        bldr.set_bootcode(b'\x90' * 219)
        with self.assertRaises(LayoutOverflow) as cm:
            bldr.set_bootcode(b'\x90' * 220)
        self.eq((cm.exception.first, cm.exception.second), ('bootcode', 'timestamp'))

    def test_builder_modern_shrinks_bootcode(self):
        bldr = builder.MbrBuilder(BLOCKS).set_bootcode(b'\xcc' * 300)
        self.assertRaises(LayoutOverflow, bldr.set_timestamp, 0)
        self.assertRaises(LayoutOverflow, bldr.set_original_physical_drive, 0x80)
        self.assertRaises(LayoutOverflow, bldr.set_bootcode_part2, b'')
        self.false(bldr.is_modern())

    def test_builder_part2(self):
        bldr = builder.MbrBuilder(BLOCKS).set_bootcode_part2(b'\xaa' * 222)
        self.assertRaises(LayoutOverflow, bldr.set_disk_signature, 0x12345678)

        bldr.set_bootcode_part2(b'\xaa' * 216)
        bldr.set_disk_signature(0x12345678)
        self.assertRaises(LayoutOverflow, bldr.set_bootcode_part2, b'\xaa' * 217)
        self.assertRaises(BootcodeTooLong, bldr.set_bootcode_part2, b'\xaa' * 223)

    def test_builder_disk_signature_classic(self):
        bldr = builder.MbrBuilder(BLOCKS).set_bootcode(b'\xcc' * 446)
        self.assertRaises(LayoutOverflow, bldr.set_disk_signature, 1)

        bldr.set_bootcode(b'\xcc' * 440)
        bldr.set_disk_signature(1, builder.COPY_PROTECTED)
        self.assertRaises(LayoutOverflow, bldr.set_bootcode, b'\xcc' * 441)

    def test_builder_bad_values(self):
        self.assertRaises(ValueError, builder.MbrBuilder, BLOCKS, blocksize=256)
        self.assertRaises(ValueError, builder.MbrBuilder, 0)
        self.assertRaises(ValueError, builder.MbrBuilder, BLOCKS, align=0)

        bldr = builder.MbrBuilder(BLOCKS)
        self.assertRaises(ValueError, bldr.set_original_physical_drive, 0x100)
        self.assertRaises(ValueError, bldr.set_disk_signature, 1 << 32)
        self.assertRaises(ValueError, bldr.set_disk_signature, 1, 0x10000)

    def test_builder_timestamp(self):
        self.eq(builder.getTimeParts(datetime.time(12, 45, 30)), (30, 45, 12))
        self.eq(builder.getTimeParts(datetime.datetime(2016, 1, 2, 3, 4, 5)), (5, 4, 3))
        self.eq(builder.getTimeParts(3661), (1, 1, 1))

    def test_builder_commit_fields(self):
        store = getMemStore(BLOCKS, fill=b'\xff')

        bldr = builder.MbrBuilder(BLOCKS)
        bldr.set_bootcode(b'\xeb\x63\x90').set_original_physical_drive(0x80)
        bldr.set_timestamp(datetime.time(12, 45, 30)).set_bootcode_part2(b'\xfa\xfb')
        bldr.set_disk_signature(0xdeadbeef, builder.COPY_PROTECTED)
        bldr.add_partition( MbrPartSpec( Start(AtLba(2048)), BOOTABLE, PartType(mbr.SYSTEMID.PRI_FAT32_INT13) ) )

        writer = bldr.compile()
        writer.commit(store)

        byts = store.readAtOff(0, mbr.SECTOR_SIZE)
        self.eq(byts[:3], b'\xeb\x63\x90')
        self.eq(byts[3:218], bytes(215))
        self.eq(byts[218:222], b'\x80\x1e\x2d\x0c')
        self.eq(byts[222:224], b'\x00\x00')
        self.eq(byts[224:226], b'\xfa\xfb')
        self.eq(byts[226:440], bytes(214))
        self.eq(byts[440:446], b'\xef\xbe\xad\xde\x5a\x5a')
        self.eq(byts[446:462], b'\x80\xff\xff\xff\x0b\xff\xff\xff\x00\x08\x00\x00\x00\x08\x00\x00')
        self.eq(byts[462:510], bytes(48))
        self.eq(byts[510:512], b'\x55\xaa')

        # nothing past the MBR was touched
        self.eq(store.readAtOff(512, 512), b'\xff' * 512)

        hdr = MbrReader.from_blockdev(store).header()
        self.eq(hdr.disk_sig(), 0xdeadbeef)
        self.eq(hdr.copy_protect(), 0x5a5a)
        self.eq(hdr.original_physical_drive(), 0x80)
        self.eq(hdr.timestamp(), (12, 45, 30))

    def test_builder_empty(self):
        store = getMemStore(16, fill=b'\xff')
        builder.MbrBuilder(16).compile().commit(store)
        self.eq(store.readAtOff(0, 512), mbr.encodeSector())

    def test_builder_compile_errors(self):
        bldr = builder.MbrBuilder(BLOCKS)
        bldr.add_partition( MbrPartSpec( Start(AtStartOf(Next(1))) ) )
        bldr.add_partition( MbrPartSpec( Start(AtStartOf(Previous(1))) ) )
        self.assertRaises(CyclicReference, bldr.compile)

        bldr.set_partitions([ MbrPartSpec( Start(AtLba(1)), End(AtLba(BLOCKS + 1)) ) ])
        self.assertRaises(OutOfBounds, bldr.compile)

        # layout problems win over partition problems
        bldr._bootcode = b'\xcc' * 300
        bldr._timestamp = (0, 0, 0)
        self.assertRaises(LayoutOverflow, bldr.compile)

    def test_builder_overflow_commit(self):
        store = getMemStore(BLOCKS)

        bldr = builder.MbrBuilder(BLOCKS).set_partitions(getOverflowSpecs())
        writer = bldr.compile()

        sectors = writer.sectors()
        self.eq([ (where, lba) for where, lba, _ in sectors ], [('mbr', 0), ('ebr 0', 1536), ('ebr 1', 2048)])

        writer.commit(store)
        for _, lba, byts in sectors:
            self.eq(store.readAtOff(lba * 512, 512), byts)
            self.eq(byts[510:512], b'\x55\xaa')

        hdr = mbr.decodeSector(store.readAtOff(0, 512))
        ents = hdr.primary_partitions()
        self.eq([ (e.lba_first(), e.lba_size()) for e in ents ], [(64, 448), (512, 512), (1024, 512), (1536, 2560)])
        self.eq(ents[3].part_type(), mbr.SYSTEMID.EXTENDED)
        self.eq(ents[0].part_type(), DEFAULT_PART_TYPE)

        ebr = mbr.decodeSector(store.readAtOff(1536 * 512, 512))
        data, link, empty1, empty2 = ebr.primary_partitions()
        self.eq((data.lba_first(), data.lba_size()), (1, 511))
        self.eq((link.lba_first(), link.lba_size()), (512, 2048))
        self.true(link.is_extended())
        self.true(empty1.is_empty())
        self.true(empty2.is_empty())
        self.eq(ebr.bootcode(), bytes(440))

        ebr = mbr.decodeSector(store.readAtOff(2048 * 512, 512))
        data, link = ebr.primary_partitions()[:2]
        self.eq((data.lba_first(), data.lba_size()), (1, 2047))
        self.true(link.is_empty())

        parts = MbrReader.from_blockdev(store).partitions()
        self.eq(parts, [
            MbrPart(0, 64, 512),
            MbrPart(1, 512, 1024),
            MbrPart(2, 1024, 1536),
            MbrPart(4, 1537, 2048),
            MbrPart(5, 2049, 4096),
        ])

    def test_builder_bootable_logical(self):
        specs = getOverflowSpecs()
        specs[4] = MbrPartSpec( BOOTABLE )
        writer = builder.MbrBuilder(BLOCKS).set_partitions(specs).compile()

        ebr = mbr.decodeSector(writer.getEbrSector(1))
        self.eq(ebr.primary_partitions()[0].status(), mbr.ACTIVE)

        hdr = mbr.decodeSector(writer.getMbrSector())
        self.eq([ e.status() for e in hdr.primary_partitions() ], [mbr.INACTIVE] * 4)

    def test_builder_commit_failure(self):
        mem = getMemStore(BLOCKS)
        store = FailingStore(mem, failat=1)

        writer = builder.MbrBuilder(BLOCKS).set_partitions(getOverflowSpecs()).compile()
        with self.assertRaises(SectorIOError) as cm:
            writer.commit(store)

        self.eq(cm.exception.where, 'ebr 0')
        self.eq(cm.exception.lba, 1536)
        self.true(isinstance(cm.exception.error, OSError))
        self.true(cm.exception.__cause__ is cm.exception.error)

        # no rollback, no further writes
        self.eq(len(store.writes), 2)
        self.true(mbr.decodeSector(mem.readAtOff(0, 512)).bootsig_is_valid())
        self.eq(mem.readAtOff(2048 * 512, 512), bytes(512))

    def test_builder_blocksize(self):
        writer = builder.MbrBuilder(512, blocksize=4096).set_partitions( [MbrPartSpec( Start(AtLba(1)) )] ).compile()

        self.assertRaises(ValueError, writer.commit, getMemStore(512))

        store = getMemStore(512, blocksize=4096, fill=b'\xff')
        writer.commit(store)
        self.eq(store.readAtOff(512, 4096 - 512), bytes(4096 - 512))
        self.eq(store.readAtOff(4096, 16), b'\xff' * 16)

        hdr = mbr.decodeSector(store.readAtOff(0, 512))
        ent = hdr.primary_partitions()[0]
        self.eq((ent.lba_first(), ent.lba_size()), (1, 511))

if __name__ == '__main__':
    unittest.main()
