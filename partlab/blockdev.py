'''
The block store capability partition tables are read from and written to.
'''
import os
import logging

from partlab.mbr import SECTOR_SIZE

logger = logging.getLogger(__name__)


class BlockStore(object):
    '''
    Anything that can report its block size and read/write bytes at an
    offset.

    Errors raised by a store are its own business; partlab passes them
    through (see errors.SectorIOError).
    '''
    def getBlockSize(self):
        raise NotImplementedError()

    def readAtOff(self, off, size):
        raise NotImplementedError()

    def writeAtOff(self, off, byts):
        raise NotImplementedError()


class FileBlockStore(BlockStore):
    '''
    A BlockStore over a seekable file object (an image file, a raw
    device opened 'r+b', or an io.BytesIO).

    Example:

        with open('disk.img', 'r+b') as fd:
            store = FileBlockStore(fd)
            writer.commit(store)

    '''
    def __init__(self, fd, blocksize=SECTOR_SIZE):
        if blocksize <= 0:
            raise ValueError('invalid block size: %d' % (blocksize,))
        self.fd = fd
        self.blocksize = blocksize

    def getBlockSize(self):
        return self.blocksize

    def getBlockCount(self):
        '''
        number of whole blocks in the file.
        '''
        self.fd.seek(0, os.SEEK_END)
        return self.fd.tell() // self.blocksize

    def readAtOff(self, off, size, shortok=False):
        self.fd.seek(off)
        byts = self.fd.read(size)
        if len(byts) != size and not shortok:
            raise IOError('readAtOff(%d,%d) short: %d' % (off, size, len(byts)))
        return byts

    def writeAtOff(self, off, byts):
        logger.debug('blockdev: write: off: %x len: %x', off, len(byts))
        self.fd.seek(off)
        size = self.fd.write(byts)
        if size is not None and size != len(byts):
            raise IOError('writeAtOff(%d,%d) short: %d' % (off, len(byts), size))
        return size
