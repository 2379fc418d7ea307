'''
MS-DOS (MBR) partition table parsing, layout resolution and writing.
'''
__version__ = (0,1,0)
