'''
Exceptions raised while configuring, resolving, writing and reading
partition tables.
'''


class PartLabError(Exception):
    pass


class ConfigError(PartLabError):
    '''
    the boot area fields set on a builder do not fit in the sector.
    '''
    pass


class BootcodeTooLong(ConfigError):

    def __init__(self, size, maxsize):
        ConfigError.__init__(self, 'bootcode is %d bytes, at most %d fit' % (size, maxsize))
        self.size = size
        self.maxsize = maxsize


class LayoutOverflow(ConfigError):
    '''
    two boot area fields claim some of the same bytes.
    '''
    def __init__(self, first, second):
        ConfigError.__init__(self, '%s overlaps %s' % (first, second))
        self.first = first
        self.second = second


class ResolveError(PartLabError):
    '''
    a list of partition specs could not be turned into concrete partitions.
    '''
    pass


class CyclicReference(ResolveError):

    def __init__(self, ordinals):
        ResolveError.__init__(self, 'cyclic reference between specs: %s' % (', '.join(str(o) for o in ordinals),))
        self.ordinals = tuple(ordinals)


class UnresolvedReference(ResolveError):

    def __init__(self, ordinal, reason):
        ResolveError.__init__(self, 'spec %d: %s' % (ordinal, reason))
        self.ordinal = ordinal


class OverlappingPartitions(ResolveError):

    def __init__(self, a, b):
        ResolveError.__init__(self, 'specs %d and %d overlap' % (a, b))
        self.a = a
        self.b = b


class ZeroLengthPartition(ResolveError):

    def __init__(self, ordinal, start, end):
        ResolveError.__init__(self, 'spec %d: start %d is not before end %d' % (ordinal, start, end))
        self.ordinal = ordinal
        self.start = start
        self.end = end


class OutOfBounds(ResolveError):

    def __init__(self, ordinal, start, end, blocks):
        ResolveError.__init__(self, 'spec %d: [%d, %d) does not fit a %d block device' % (ordinal, start, end, blocks))
        self.ordinal = ordinal
        self.start = start
        self.end = end
        self.blocks = blocks


class MultipleBootable(ResolveError):

    def __init__(self, ordinals):
        ResolveError.__init__(self, 'more than one bootable spec: %s' % (', '.join(str(o) for o in ordinals),))
        self.ordinals = tuple(ordinals)


class ExtendedChainOverflow(ResolveError):
    pass


class TooManyPartitions(ResolveError):

    def __init__(self, count, maxcount):
        ResolveError.__init__(self, '%d partitions requested, at most %d supported' % (count, maxcount))
        self.count = count
        self.maxcount = maxcount


class NumberConflict(ResolveError):
    '''
    an explicit partition number is claimed twice, or a logical
    partition number does not match its place in the EBR chain.
    '''
    def __init__(self, ordinal, number, reason):
        ResolveError.__init__(self, 'spec %d: number %d %s' % (ordinal, number, reason))
        self.ordinal = ordinal
        self.number = number


class SectorIOError(PartLabError):
    '''
    the block store failed while a table sector was being accessed.

    the store's own exception is kept unchanged in `error` (and as the
    __cause__ of this one).
    '''
    def __init__(self, where, lba, error):
        PartLabError.__init__(self, '%s (lba %d): %s' % (where, lba, error))
        self.where = where
        self.lba = lba
        self.error = error


class CorruptPartitionTable(PartLabError):
    '''
    an existing partition table could not be walked.
    '''
    pass
