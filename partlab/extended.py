'''
Fit logical partitions (numbers 4 and up) into an extended partition
described by a chain of EBRs.

Each logical partition's resolved range is its sub-region of the extended
partition:

    sub-region start                         sub-region end
    |                                                     |
    +-----+-----------+-----------------------------------+
    | EBR | (padding) | logical partition data            |
    +-----+-----------+-----------------------------------+
          ^
          data starts at the first `align` boundary after the EBR

The extended partition (the "container") runs from the first sub-region's
start to the last one's end, and its primary entry points at the first
EBR.  Each EBR's first entry describes its data relative to the EBR; its
second entry links to the next EBR relative to the container start.
'''
import logging
import collections

from partlab.errors import ExtendedChainOverflow
from partlab.specs import MbrPart
from partlab.resolve import PRIMARY_SLOTS, LBA_MAX

logger = logging.getLogger(__name__)


class LogicalPart(collections.namedtuple('LogicalPart', ('ordinal', 'part', 'ebr', 'data'))):
    '''
    a logical partition placed in the EBR chain.

    ordinal is the index of its spec, part the resolved sub-region, ebr the
    lba of its EBR sector and data the lba its data starts at.
    '''
    __slots__ = ()

    @property
    def data_size(self):
        return self.part.end - self.data


class Layout(object):
    '''
    The planned partition table: primary partitions by spec ordinal, the
    extended container (or None) and the EBR chain in chain order.
    '''
    def __init__(self, parts, primaries, container, logicals):
        self.parts = tuple(parts)
        self.primaries = tuple(primaries)
        self.container = container
        self.logicals = tuple(logicals)

    def is_extended(self):
        return self.container is not None

    def getLink(self, index):
        '''
        the (lba_first, lba_size) of the "next EBR" entry in the EBR at
        `index` of the chain, or None for the last one.
        '''
        if index + 1 >= len(self.logicals):
            return None
        nxt = self.logicals[index + 1]
        return (nxt.ebr - self.container.start, nxt.part.end - nxt.ebr)


def alignUp(lba, align):
    return ((lba + align - 1) // align) * align


def planLayout(parts, blocks, align=1):
    '''
    Place the extended container and EBR chain for the resolved parts.

    param parts: List[MbrPart] from resolveSpecs, in input order
    param blocks: device size in blocks
    param align: logical partition data starts on a multiple of this

    rtype: Layout
    '''
    if align < 1:
        raise ValueError('invalid alignment: %d' % (align,))

    primaries = [i for i, part in enumerate(parts) if part.is_primary()]
    logicals = [i for i, part in enumerate(parts) if part.is_logical()]

    if not logicals:
        return Layout(parts, primaries, None, ())

    # resolveSpecs numbers logicals in input order
    logicals.sort(key=lambda i: parts[i].number)

    used = set(parts[i].number for i in primaries)
    free = [slot for slot in range(PRIMARY_SLOTS) if slot not in used]
    if not free:
        raise ExtendedChainOverflow('no free primary slot for the extended partition')

    chain = []
    prev = None
    for i in logicals:
        part = parts[i]
        if prev is not None and part.start < prev.end:
            raise ExtendedChainOverflow('spec %d: logical partitions must ascend in chain order' % (i,))

        data = alignUp(part.start + 1, align)
        if data >= part.end:
            raise ExtendedChainOverflow('spec %d: no room for data after the EBR at %d' % (i, part.start))

        logger.debug('extended: logical: %d ebr: %x data: %x end: %x', part.number, part.start, data, part.end)
        chain.append(LogicalPart(i, part, part.start, data))
        prev = part

    container = MbrPart(free[0], chain[0].part.start, chain[-1].part.end)
    if container.end > blocks or container.size > LBA_MAX:
        raise ExtendedChainOverflow('extended partition [%d, %d) does not fit the device' % (container.start, container.end))

    for i in primaries:
        if parts[i].overlaps(container):
            raise ExtendedChainOverflow('spec %d lies inside the extended partition [%d, %d)' % (i, container.start, container.end))

    logger.debug('extended: container: slot: %d start: %x end: %x', container.number, container.start, container.end)
    return Layout(parts, primaries, container, chain)
