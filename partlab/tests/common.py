import io
import unittest

import partlab.mbr as mbr

from partlab.blockdev import BlockStore, FileBlockStore

def getMemStore(blocks, blocksize=mbr.SECTOR_SIZE, fill=b'\x00'):
    '''
    A FileBlockStore over an in-memory "device" of `blocks` blocks.
    '''
    return FileBlockStore(io.BytesIO(fill * (blocks * blocksize)), blocksize=blocksize)

class FailingStore(BlockStore):
    '''
    Wraps a store and raises OSError on the write (or read) numbered `failat`.
    '''
    def __init__(self, store, failat=0):
        self.store = store
        self.failat = failat
        self.writes = []
        self.reads = []

    def getBlockSize(self):
        return self.store.getBlockSize()

    def readAtOff(self, off, size):
        self.reads.append((off, size))
        if len(self.reads) - 1 == self.failat:
            raise OSError(5, 'read failed')
        return self.store.readAtOff(off, size)

    def writeAtOff(self, off, byts):
        self.writes.append((off, len(byts)))
        if len(self.writes) - 1 == self.failat:
            raise OSError(5, 'write failed')
        return self.store.writeAtOff(off, byts)

class PartTest(unittest.TestCase):

    def eq(self, x, y):
        self.assertEqual(x,y)

    def ne(self, x, y):
        self.assertNotEqual(x,y)

    def nn(self, x):
        self.assertIsNotNone(x)

    def true(self, x):
        self.assertTrue(x)

    def false(self, x):
        self.assertFalse(x)
