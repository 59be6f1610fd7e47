# Post-apply packaging: staging copies, archives, file lists, review patches
#
# This software may be used and distributed according to the terms of
# the GNU General Public License, incorporated herein by reference.
#
# SPDX-License-Identifier: GPL-2.0-or-later
from __future__ import annotations

from gettext import gettext as _
import difflib
import os
import tarfile
from pathlib import Path
from typing import Optional, Sequence

from .util import copyfile

# files worth shipping: patched sources and their compressed bundles
STAGED_EXTENSIONS = ('.js', '.jsp', '.xml', '.gz', '.zgz')

NONEWLINE = b'\\ No newline at end of file\n'


def copyfiles(ui, oldroot: Path, names: Sequence[str], destdir,
              extensions=STAGED_EXTENSIONS) -> int:
    """Copy files from oldroot to destdir, keeping their relative paths.

    Return the number of files which could not be copied.
    """
    failed = 0
    for name in names:
        if not name.endswith(tuple(extensions)):
            continue
        src = oldroot / name
        if not src.is_file():
            continue
        dest = Path(destdir) / name
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            copyfile(src, dest)
        except OSError as err:
            ui.warn(_("copy failed %s -> %s: %s") % (src, dest, err.strerror or err))
            failed += 1
            continue
        ui.info(_("copied %s -> %s") % (src, dest))
    ui.success(_("copied patched files to %s") % destdir)
    return failed


def makearchive(ui, root: Path, names: Sequence[str], dest) -> int:
    """Write a .tar.gz of the named files, stored under old/"""
    missing = 0
    with tarfile.open(dest, 'w:gz') as tar:
        for name in names:
            arcname = 'old/' + name
            path = root / arcname
            if not path.is_file():
                ui.warn(_("not archiving missing file: %s") % path)
                missing += 1
                continue
            ui.debug(_("archiving %s") % arcname)
            tar.add(path, arcname=arcname)
    ui.success(_("tarball created: %s") % dest)
    return missing


def writelog(ui, names: Sequence[str], dest) -> int:
    with open(dest, 'w', encoding='UTF-8', errors='surrogateescape') as f:
        for name in names:
            f.write(name + '\n')
    ui.success(_("patched-file list written to %s") % dest)
    return 0


def snapshot(ui, oldroot: Path, names: Sequence[str], destdir) -> None:
    """Copy the named files which exist under oldroot into destdir"""
    for name in names:
        src = oldroot / name
        if not src.is_file():
            continue
        dest = Path(destdir) / name
        dest.parent.mkdir(parents=True, exist_ok=True)
        ui.debug(_("backup %s as %s") % (src, dest))
        copyfile(src, dest)


def splitlines(data: bytes) -> list[bytes]:
    r"""Split data after each LF, keeping line endings.

    Unlike bytes.splitlines(), lone carriage returns do not end a line.

    >>> splitlines(b'a\nb\r\nc')
    [b'a\n', b'b\r\n', b'c']
    >>> splitlines(b'x\ry\n')
    [b'x\ry\n']
    >>> splitlines(b'')
    []
    """
    lines = [line + b'\n' for line in data.split(b'\n')]
    lines[-1] = lines[-1][:-1]
    if not lines[-1]:
        lines.pop()
    return lines


def filediff(name: str, before: Optional[bytes], after: Optional[bytes]) -> bytes:
    r"""Return a unified diff between two versions of a file.

    None stands for a file which does not exist.

    >>> print(filediff('dir/f.txt', b'1\n2\n3\n', b'1\nTWO\n3').decode(), end='')
    --- a/dir/f.txt
    +++ b/dir/f.txt
    @@ -1,3 +1,3 @@
     1
    -2
    -3
    +TWO
    +3
    \ No newline at end of file
    >>> print(filediff('new.txt', None, b'hello\n').decode(), end='')
    --- /dev/null
    +++ b/new.txt
    @@ -0,0 +1 @@
    +hello
    """
    name = os.fsencode(name)
    fromfile = b'/dev/null' if before is None else b'a/' + name
    tofile = b'/dev/null' if after is None else b'b/' + name
    out = []
    for line in difflib.diff_bytes(difflib.unified_diff,
                                   splitlines(before or b''),
                                   splitlines(after or b''),
                                   fromfile, tofile):
        if line.endswith(b'\n'):
            out.append(line)
        else:
            out.append(line + b'\n' + NONEWLINE)
    return b''.join(out)


def commitpatch(oldroot: Path, names: Sequence[str], snapshotdir) -> bytes:
    """Diff the snapshot of each named file against its current state"""
    chunks = []
    seen = set()
    for name in names:
        if name in seen:
            continue
        seen.add(name)
        orig = Path(snapshotdir) / name
        current = oldroot / name
        before = orig.read_bytes() if orig.is_file() else None
        after = current.read_bytes() if current.is_file() else None
        if before == after:
            continue
        chunks.append(filediff(name, before, after))
    return b''.join(chunks)


def writecommitpatch(ui, oldroot: Path, names: Sequence[str], snapshotdir, dest) -> int:
    text = commitpatch(oldroot, names, snapshotdir)
    Path(dest).write_bytes(text)
    if not text:
        ui.warn(_("no applied changes found, commit patch %s is empty") % dest)
        return 1
    ui.success(_("commit patch created: %s") % dest)
    return 0
