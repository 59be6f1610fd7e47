#!/usr/bin/env python3

import fnmatch
import os

from setuptools import setup


def glob(fname):
    return fnmatch.filter(os.listdir(os.path.abspath(os.path.dirname(__file__))), fname)


__name__ = "diff-search"

setup(
    data_files=[
        (os.path.join('share', 'doc', __name__), glob('*.rst')),
        (os.path.join('share', 'doc', __name__), glob('DESIGN.md')),
    ],
)
