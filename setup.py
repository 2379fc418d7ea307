#!/usr/bin/env python
from setuptools import setup,find_packages

# For Testing:
#
# python -m unittest discover -s partlab/tests -t .
#
# For Realz:
#
# python setup.py bdist_wheel
# python -m pip install dist/partlab-*.whl

import partlab

setup(
    name='partlab',
    version='.'.join( str(v) for v in partlab.__version__ ),
    description='MS-DOS (MBR) Partition Table Parser/Builder',
    license='Apache License 2.0',

    packages=find_packages(exclude=['*.tests','*.tests.*']),

    install_requires=[
        'vstruct2>=2.0.2',
    ],

    extras_require={
        'test': ['pytest'],
    },

    classifiers=[
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3',
    ],

)
