'''
Turn an ordered list of MbrPartSpec into concrete, numbered, non
overlapping MbrPart values.

Every spec has two boundaries (start and end).  Each boundary is either an
absolute LBA or a reference to exactly one other boundary:

    - Start/End(AtLba(n))               -> n
    - Start/End(AtStartOf(ref))         -> start of the referenced spec
    - Start/End(AtEndOf(ref))           -> end of the referenced spec
    - no Start                          -> end of the previous spec
    - no End, not the last spec         -> start of the next spec
    - no End, last spec                 -> end of the device

Since every boundary depends on at most one other, the boundaries form a
graph where each node has a single outgoing edge.  It is walked with an
explicit stack and three colors; a cycle is reported, not chased.
'''
import logging
import collections

from partlab.errors import *
from partlab.specs import MbrPart, AtLba, AtStartOf, AtEndOf

logger = logging.getLogger(__name__)

# how many partitions a single table may describe (linux DISK_MAX_PARTS)
MAX_PARTITIONS = 256

PRIMARY_SLOTS = 4

# LBA fields in an entry are 32 bits wide
LBA_MAX = 0xFFFFFFFF

START = 0
END = 1

BOUND_NAMES = ('start', 'end')

WHITE = 0
GRAY = 1
BLACK = 2

# a boundary is either a constant lba or the value of another boundary
Rule = collections.namedtuple('Rule', ('node', 'lba'))


def resolveSpecs(specs, blocks):
    '''
    Resolve partition specs against a device of `blocks` blocks.

    errors are checked in a fixed order and the first one found is raised:

        TooManyPartitions, MultipleBootable, UnresolvedReference,
        CyclicReference, ZeroLengthPartition/OutOfBounds (per spec, in
        input order), OverlappingPartitions, NumberConflict

    param specs: sequence of MbrPartSpec, order matters
    param blocks: device size in blocks

    rtype: List[MbrPart] in input order
    '''
    specs = list(specs)
    if len(specs) > MAX_PARTITIONS:
        raise TooManyPartitions(len(specs), MAX_PARTITIONS)

    boots = [i for i, spec in enumerate(specs) if spec.bootable]
    if len(boots) > 1:
        raise MultipleBootable(boots)

    rules = getBoundRules(specs, blocks)
    order = sortBounds(rules)

    bounds = {}
    for node in order:
        rule = rules[node]
        if rule.node is None:
            bounds[node] = rule.lba
        else:
            bounds[node] = bounds[rule.node]

    for i in range(len(specs)):
        checkBounds(i, bounds[(i, START)], bounds[(i, END)], blocks)

    ranges = [(bounds[(i, START)], bounds[(i, END)]) for i in range(len(specs))]
    checkOverlaps(ranges)

    numbers = assignNumbers(specs)

    parts = [MbrPart(numbers[i], start, end) for i, (start, end) in enumerate(ranges)]
    for i, part in enumerate(parts):
        logger.debug('resolve: spec: %d part: %d start: %x end: %x', i, part.number, part.start, part.end)

    return parts


def _getLocRule(ordinal, loc, count):
    if type(loc) is AtLba:
        return Rule(None, loc.lba)

    target = loc.ref.resolve(ordinal)
    if not 0 <= target < count:
        raise UnresolvedReference(ordinal, '%r points outside the spec list (%d specs)' % (loc.ref, count))

    if type(loc) is AtStartOf:
        return Rule((target, START), None)

    return Rule((target, END), None)


def getBoundRules(specs, blocks):
    '''
    Build the dependency rule for every boundary.

    rtype: Dict[(int, int), Rule] keyed by (ordinal, START|END)
    '''
    count = len(specs)
    rules = {}
    for i, spec in enumerate(specs):

        if spec.start is not None:
            rules[(i, START)] = _getLocRule(i, spec.start, count)
        elif i == 0:
            raise UnresolvedReference(i, 'the first spec needs an explicit start')
        elif specs[i - 1].end is None:
            raise UnresolvedReference(i, 'no start and the previous spec has no end')
        else:
            rules[(i, START)] = Rule((i - 1, END), None)

        if spec.end is not None:
            rules[(i, END)] = _getLocRule(i, spec.end, count)
        elif i == count - 1:
            rules[(i, END)] = Rule(None, blocks)
        else:
            # the next spec having no start is caught on its own turn
            rules[(i, END)] = Rule((i + 1, START), None)

    return rules


def sortBounds(rules):
    '''
    Order the boundaries so each comes after the one it depends on.

    Raises CyclicReference naming the spec ordinals on the cycle.
    '''
    color = {}
    order = []
    for node in sorted(rules):

        if color.get(node, WHITE) != WHITE:
            continue

        path = []
        cur = node
        while cur is not None and color.get(cur, WHITE) == WHITE:
            color[cur] = GRAY
            path.append(cur)
            cur = rules[cur].node

        if cur is not None and color[cur] == GRAY:
            cycle = path[path.index(cur):]
            ordinals = []
            for ordinal, bound in cycle:
                logger.debug('resolve: cycle: spec: %d %s', ordinal, BOUND_NAMES[bound])
                if ordinal not in ordinals:
                    ordinals.append(ordinal)
            raise CyclicReference(ordinals)

        for done in reversed(path):
            color[done] = BLACK
            order.append(done)

    return order


def checkBounds(ordinal, start, end, blocks):
    if start >= end:
        raise ZeroLengthPartition(ordinal, start, end)

    # lba 0 is the MBR itself
    if start < 1 or end > blocks:
        raise OutOfBounds(ordinal, start, end, blocks)

    if start > LBA_MAX or end - start > LBA_MAX:
        raise OutOfBounds(ordinal, start, end, blocks)


def checkOverlaps(ranges):
    '''
    Raise OverlappingPartitions for the first pair (by start) of
    intersecting [start, end) ranges.
    '''
    byaddr = sorted(range(len(ranges)), key=lambda i: (ranges[i][0], i))

    last = None
    for i in byaddr:
        if last is not None and ranges[i][0] < ranges[last][1]:
            raise OverlappingPartitions(min(last, i), max(last, i))

        if last is None or ranges[i][1] > ranges[last][1]:
            last = i


def assignNumbers(specs):
    '''
    Give every spec a partition number.

    explicit Number(Exact(n)) claims come first.  unnumbered specs take the
    lowest free primary slot in input order, keeping one slot back for the
    extended container if the request needs one.  everything left over is
    a logical partition, numbered from 4 in input order.

    rtype: List[int]
    '''
    numbers = [None] * len(specs)
    claimed = {}
    for i, spec in enumerate(specs):
        num = spec.number
        if num is None:
            continue

        if num < 0:
            raise NumberConflict(i, num, 'is negative')

        if num in claimed:
            raise NumberConflict(i, num, 'is already claimed by spec %d' % (claimed[num],))

        claimed[num] = i
        numbers[i] = num

    free = [slot for slot in range(PRIMARY_SLOTS) if slot not in claimed]
    unnumbered = [i for i in range(len(specs)) if numbers[i] is None]

    if any(num >= PRIMARY_SLOTS for num in claimed) or len(unnumbered) > len(free):
        # leave a slot free for the extended container
        free = free[:-1]

    for i in unnumbered[:len(free)]:
        numbers[i] = free.pop(0)

    logicals = [i for i in range(len(specs)) if numbers[i] is None or numbers[i] >= PRIMARY_SLOTS]
    for pos, i in enumerate(logicals):
        want = PRIMARY_SLOTS + pos
        if numbers[i] is not None and numbers[i] != want:
            raise NumberConflict(i, numbers[i], 'must be %d, its place in the EBR chain' % (want,))
        numbers[i] = want

    return numbers
