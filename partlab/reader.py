'''
Read an existing MBR partition table from a block store.
'''
import logging

import partlab.mbr as mbr

from partlab.errors import SectorIOError, CorruptPartitionTable
from partlab.specs import MbrPart
from partlab.blocklab import BlockLab
from partlab.resolve import PRIMARY_SLOTS, MAX_PARTITIONS

logger = logging.getLogger(__name__)


class MbrReader(BlockLab):
    '''
    Decoded views of the partition table on a block store.

    Binding does no I/O.  The MBR sector is read on the first header()
    call and the decoded header is cached until rebind(); the same goes
    for partitions().

    Example:

        rdr = MbrReader.from_blockdev(store)
        if rdr.header().bootsig_is_valid():
            for part in rdr.partitions():
                dostuff(part)

    '''
    def __init__(self, store):
        BlockLab.__init__(self, store)
        self.add('mbr:header', self._getSector, 'mbr', 0)
        self.add('mbr:parts', self._getPartitions)

    @classmethod
    def from_blockdev(cls, store):
        return cls(store)

    def header(self):
        '''
        rtype: mbr.MbrHeader
        '''
        return self.get('mbr:header')

    def partitions(self):
        '''
        Every partition in the table: primaries by slot, then logical
        partitions (numbered from 4) in EBR chain order.  For logical
        partitions the range covers the data only, not the EBR.

        rtype: List[MbrPart]
        '''
        return self.get('mbr:parts')

    def _getSector(self, where, lba):
        try:
            sect = self.getStruct(lba, mbr.MASTER_BOOT_RECORD)
        except Exception as e:
            raise SectorIOError(where, lba, e) from e
        return mbr.MbrHeader(sect)

    def _getPartitions(self):
        hdr = self.header()
        if not hdr.bootsig_is_valid():
            raise CorruptPartitionTable('invalid MBR boot signature: %r' % (hdr.bootsig(),))

        parts = []
        ext = None
        for slot, ent in enumerate(hdr.primary_partitions()):
            if ent.is_empty():
                continue

            if ent.is_extended():
                if ext is not None:
                    raise CorruptPartitionTable('more than one extended partition')
                ext = ent
                continue

            parts.append(MbrPart(slot, ent.lba_first(), ent.lba_first() + ent.lba_size()))

        if ext is not None:
            parts.extend(self._iterLogicals(ext.lba_first(), ext.lba_size()))

        return parts

    def _iterLogicals(self, extstart, extsize):
        '''
        Walk the EBR chain of the extended partition at `extstart`.
        '''
        number = PRIMARY_SLOTS
        seen = set()
        ebrlba = extstart
        while True:
            if ebrlba in seen:
                raise CorruptPartitionTable('EBR chain loops back to lba %d' % (ebrlba,))

            if len(seen) >= MAX_PARTITIONS:
                raise CorruptPartitionTable('EBR chain longer than %d' % (MAX_PARTITIONS,))

            if not extstart <= ebrlba < extstart + extsize:
                raise CorruptPartitionTable('EBR at lba %d is outside the extended partition' % (ebrlba,))

            seen.add(ebrlba)
            ebr = self._getSector('ebr %d' % (number - PRIMARY_SLOTS,), ebrlba)
            if not ebr.bootsig_is_valid():
                raise CorruptPartitionTable('invalid EBR boot signature at lba %d' % (ebrlba,))

            data, link = ebr.primary_partitions()[:2]
            if not data.is_empty():
                start = ebrlba + data.lba_first()
                logger.debug('reader: logical: %d ebr: %x start: %x', number, ebrlba, start)
                yield MbrPart(number, start, start + data.lba_size())
                number += 1

            if link.is_empty():
                break

            # links are relative to the start of the extended partition
            ebrlba = extstart + link.lba_first()
