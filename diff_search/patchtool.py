# Wrappers for the external tools used when applying filtered diffs
#
# Copyright 2016, 2018—2022 Andrej Shadura <andrew@shadura.me>
#
# This software may be used and distributed according to the terms of
# the GNU General Public License, incorporated herein by reference.
#
# SPDX-License-Identifier: GPL-2.0-or-later
from __future__ import annotations

from gettext import gettext as _
import gzip
import os
import shutil
import subprocess
from pathlib import Path

from . import util


class PatchTool:
    """patch(1) run from the directory holding the old/ and new/ trees"""

    def __init__(self, root: os.PathLike | str, prog: str = 'patch',
                 strip: int = 0, quiet: bool = True):
        self.root = Path(root)
        self.prog = prog
        self.strip = strip
        self.quiet = quiet

    def __repr__(self):
        return "%s(%r, %r)" % (self.__class__.__name__, self.prog, str(self.root))

    def command(self, patchfile: os.PathLike | str, *extra: str) -> list[str]:
        return [self.prog, '-p%d' % self.strip, '--forward', *extra,
                '-i', os.fspath(patchfile)]

    def _run(self, patchfile, *extra, errprefix=None):
        util.system(self.command(patchfile, *extra), cwd=self.root,
                    onerr=util.Abort, errprefix=errprefix,
                    stdout=subprocess.DEVNULL if self.quiet else None)

    def validate(self, patchfile: os.PathLike | str) -> None:
        """Check the patch applies cleanly without touching the tree"""
        self._run(patchfile, '--dry-run', errprefix=_("patch check failed"))

    def apply(self, patchfile: os.PathLike | str) -> None:
        self._run(patchfile, errprefix=_("patch failed"))


class GzipCompressor:
    """Write a gzip-compressed copy of a file next to it"""

    def __init__(self, suffix: str = '.zgz', level: int = 9):
        self.suffix = suffix
        self.level = level

    def __repr__(self):
        return "%s(%r, %d)" % (self.__class__.__name__, self.suffix, self.level)

    def target(self, path: os.PathLike | str) -> Path:
        path = Path(path)
        return path.with_name(path.name + self.suffix)

    def compress(self, path: os.PathLike | str) -> Path:
        """Compress path, replacing any earlier artifact; return the artifact path"""
        path = Path(path)
        out = self.target(path)
        out.unlink(missing_ok=True)
        try:
            with open(path, 'rb') as src, open(out, 'wb') as raw:
                # keep the source name in the gzip header, as gzip(1) does
                with gzip.GzipFile(filename=path.name, mode='wb',
                                   compresslevel=self.level, fileobj=raw) as dst:
                    shutil.copyfileobj(src, dst)
        except OSError:
            out.unlink(missing_ok=True)
            raise
        return out
