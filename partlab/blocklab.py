import collections


class BlockLab(collections.defaultdict):
    '''
    Base class for parsers that work from a block store.

    Named results are produced on demand by registered callbacks and
    cached until the lab is rebound to a store (rebind() forgets every
    cached result, so nothing parsed from the old store leaks through).

    Example:

        class FooLab(BlockLab):

            def __init__(self, store):
                BlockLab.__init__(self, store)
                self.add('foo:hdr', self._getFooHeader )

            def _getFooHeader(self):
                return self.getStruct(0, FOO_HEADER)

        foo = FooLab(store)
        hdr = foo.get('foo:hdr')

    '''
    def __init__(self, store):
        collections.defaultdict.__init__(self)
        self.store = store
        self._lab_ctors = {}

    def add(self, name, ctor, *args, **kwargs):
        '''
        Add on-demand parser callback.
        '''
        self._lab_ctors[name] = (ctor, args, kwargs)

    def get(self, name, defval=None):
        '''
        Retrieve the (cached) results of an on-demand parser callback.
        '''
        retn = self[name]
        if retn is None:
            retn = defval
        return retn

    def rebind(self, store):
        '''
        Point the lab at a (possibly) different store and drop every
        cached result.
        '''
        self.store = store
        self.clear()

    def __missing__(self, key):
        ctor = self._lab_ctors.get(key)
        if ctor is None:
            raise KeyError(key)

        meth, args, kwargs = ctor
        valu = meth(*args, **kwargs)
        self[key] = valu
        return valu

    def getStruct(self, lba, cls, *args, **kwargs):
        '''
        Construct a VStruct and load it from the start of block `lba`.
        '''
        obj = cls(*args, **kwargs)
        blocksize = self.store.getBlockSize()
        obj.vsParse(self.store.readAtOff(lba * blocksize, len(obj)))
        return obj
