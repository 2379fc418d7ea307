'''
Declarative partition requests and the concrete partitions they resolve to.

Example:

    specs = [
        MbrPartSpec( Start(AtLba(2048)), End(AtLba(206848)), BOOTABLE ),
        MbrPartSpec( PartType(SYSTEMID.LINUX_SWAP) ),
    ]

The second spec starts where the first ends (default adjacency) and, being
the last, runs to the end of the device.
'''
import collections

from partlab.mbr import SYSTEMID

# refs to other specs, by position in the spec list

class Previous(collections.namedtuple('Previous', ('count',))):
    '''
    the spec `count` places before the referencing one.
    '''
    __slots__ = ()

    def resolve(self, ordinal):
        return ordinal - self.count


class Next(collections.namedtuple('Next', ('count',))):
    '''
    the spec `count` places after the referencing one.
    '''
    __slots__ = ()

    def resolve(self, ordinal):
        return ordinal + self.count


class Exact(collections.namedtuple('Exact', ('value',))):
    '''
    an absolute value: a spec ordinal inside AtStartOf/AtEndOf, or a
    partition number inside Number.
    '''
    __slots__ = ()

    def resolve(self, ordinal):
        return self.value


PART_REFS = (Previous, Next, Exact)

# boundary locations

class AtStartOf(collections.namedtuple('AtStartOf', ('ref',))):
    __slots__ = ()


class AtEndOf(collections.namedtuple('AtEndOf', ('ref',))):
    __slots__ = ()


class AtLba(collections.namedtuple('AtLba', ('lba',))):
    __slots__ = ()


LOC_SPECS = (AtStartOf, AtEndOf, AtLba)

# constraints

class Number(collections.namedtuple('Number', ('num',))):
    __slots__ = ()


class Start(collections.namedtuple('Start', ('loc',))):
    __slots__ = ()


class End(collections.namedtuple('End', ('loc',))):
    __slots__ = ()


class IsBootable(collections.namedtuple('IsBootable', ())):
    __slots__ = ()


class PartType(collections.namedtuple('PartType', ('ptype',))):
    __slots__ = ()


BOOTABLE = IsBootable()

PART_SPECS = (Number, Start, End, IsBootable, PartType)

DEFAULT_PART_TYPE = SYSTEMID.LINUX_NATIVE


class MbrPartSpec(object):
    '''
    An unordered collection of constraints describing one wanted partition.

    At most one constraint of each kind is allowed.
    '''
    def __init__(self, *constraints):
        byclass = {}
        for cons in constraints:
            if cons is IsBootable:
                cons = BOOTABLE

            if type(cons) not in PART_SPECS:
                raise ValueError('not a partition constraint: %r' % (cons,))

            if type(cons) in byclass:
                raise ValueError('more than one %s constraint' % (type(cons).__name__,))

            if type(cons) in (Start, End):
                if type(cons.loc) not in LOC_SPECS:
                    raise ValueError('not a location: %r' % (cons.loc,))
                if type(cons.loc) in (AtStartOf, AtEndOf) and type(cons.loc.ref) not in PART_REFS:
                    raise ValueError('not a partition reference: %r' % (cons.loc.ref,))

            if type(cons) is Number and type(cons.num) is not Exact:
                raise ValueError('not a number spec: %r' % (cons.num,))

            byclass[type(cons)] = cons

        self._mps_cons = byclass

    @property
    def start(self):
        '''
        the LocSpec for the first block, or None.
        '''
        cons = self._mps_cons.get(Start)
        if cons is None:
            return None
        return cons.loc

    @property
    def end(self):
        '''
        the LocSpec for the block after the last one, or None.
        '''
        cons = self._mps_cons.get(End)
        if cons is None:
            return None
        return cons.loc

    @property
    def number(self):
        cons = self._mps_cons.get(Number)
        if cons is None:
            return None
        return cons.num.value

    @property
    def bootable(self):
        return IsBootable in self._mps_cons

    @property
    def ptype(self):
        cons = self._mps_cons.get(PartType)
        if cons is None:
            return DEFAULT_PART_TYPE
        return cons.ptype

    def constraints(self):
        '''
        the constraints, in a fixed kind order.
        '''
        return tuple(sorted(self._mps_cons.values(), key=lambda c: PART_SPECS.index(type(c))))

    def _getKey(self):
        # namedtuples compare as plain tuples (Previous(1) == Next(1)),
        # their reprs carry the type names
        return tuple(repr(c) for c in self.constraints())

    def __eq__(self, other):
        if not isinstance(other, MbrPartSpec):
            return NotImplemented
        return self._getKey() == other._getKey()

    def __ne__(self, other):
        ret = self.__eq__(other)
        if ret is NotImplemented:
            return ret
        return not ret

    def __hash__(self):
        return hash(self._getKey())

    def __repr__(self):
        return 'MbrPartSpec(%s)' % (', '.join(self._getKey()),)


class MbrPart(collections.namedtuple('MbrPart', ('number', 'start', 'end'))):
    '''
    A concrete partition: [start, end) in blocks.

    numbers 0 - 3 are primary partitions, 4 and up are logical
    partitions inside the extended partition.
    '''
    __slots__ = ()

    @property
    def size(self):
        return self.end - self.start

    def is_primary(self):
        return self.number < 4

    def is_logical(self):
        return not self.is_primary()

    def overlaps(self, other):
        return self.start < other.end and other.start < self.end
