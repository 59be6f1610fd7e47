# Utility functions
#
#  Copyright 2006, 2015 Matt Mackall <mpm@selenic.com>
#  Copyright 2007 Eric St-Jean <esj@wwd.ca>
#  Copyright 2009, 2011 Mads Kiilerich <mads@kiilerich.com>
#  Copyright 2015 Pierre-Yves David <pierre-yves.david@fb.com>
#  Copyright 2016, 2022 Andrej Shadura <andrew@shadura.me>
#
# This software may be used and distributed according to the terms of the
# GNU General Public License version 2 or any later version
#
# Some of these utilities were originally taken from Mercurial.
#
# SPDX-License-Identifier: GPL-2.0-or-later
from __future__ import annotations

from gettext import gettext as _
import os
import subprocess
import shutil
import sys
from codecs import register_error
from pathlib import Path
from typing import overload, Sequence, Optional, Union


closefds = os.name == 'posix'


def explainexit(code):
    """return a 2-tuple (desc, code) describing a subprocess status
    (codes from kill are negative - not os.system/wait encoding)"""
    if (code < 0) and (os.name == 'posix'):
        return _("killed by signal %d") % -code, -code
    else:
        return _("exited with status %d") % code, code


class Abort(Exception):
    pass


def system(cmd, cwd=None, onerr=None, errprefix=None, stdout=None):
    """Run cmd, return its exit status.

    If onerr is given, a non-zero status raises onerr with a message
    naming the program and how it exited. Standard input is closed so
    that interactive tools cannot wait for an answer.
    """
    try:
        sys.stdout.flush()
    except Exception:
        pass

    if isinstance(cmd, list):
        shell = False
        prog = os.path.basename(cmd[0])
    else:
        shell = True
        prog = os.path.basename(cmd.split(None, 1)[0])

    try:
        rc = subprocess.call(cmd, shell=shell, close_fds=closefds,
                             cwd=cwd, stdin=subprocess.DEVNULL,
                             stdout=stdout)
    except OSError as err:
        if onerr:
            errmsg = '%s: %s' % (prog, err.strerror or err)
            if errprefix:
                errmsg = '%s: %s' % (errprefix, errmsg)
            raise onerr(errmsg)
        raise
    if rc and onerr:
        errmsg = '%s %s' % (prog,
                            explainexit(rc)[0])
        if errprefix:
            errmsg = '%s: %s' % (errprefix, errmsg)
        raise onerr(errmsg)
    return rc


@overload
def systemcall(
        cmd: Sequence[str] | Sequence[bytes],
        encoding: str,
        dir: Optional[os.PathLike | str] = None,
        onerr=None,
        errprefix=None
) -> str:
    ...


@overload
def systemcall(
        cmd: Sequence[str] | Sequence[bytes],
        dir: Optional[os.PathLike | str] = None,
        onerr=None,
        errprefix=None
) -> bytes:
    ...


def systemcall(cmd, encoding=None, dir=None, onerr=None, errprefix=None):
    try:
        sys.stdout.flush()
    except Exception:
        pass

    p = subprocess.Popen(cmd, cwd=dir, stdout=subprocess.PIPE,
                         stderr=subprocess.DEVNULL, close_fds=closefds)
    out = b''
    for line in iter(p.stdout.readline, b''):
        out = out + line
    p.wait()
    rc = p.returncode

    if rc and onerr:
        errmsg = '%s %s' % (os.path.basename(cmd[0]),
                            explainexit(rc)[0])
        if errprefix:
            errmsg = '%s: %s' % (errprefix, errmsg)
        raise onerr(errmsg)

    if encoding == "fs":
        return os.fsdecode(out)
    elif encoding:
        return out.decode(encoding)
    else:
        return out


def copyfile(src: Union[str, Path], dest: Union[str, Path], copystat=True):
    """Copy a file, preserving mode and optionally other stat info like atime/mtime"""
    if os.path.lexists(dest):
        os.unlink(dest)
    if os.path.islink(src):
        os.symlink(os.readlink(src), dest)
    else:
        shutil.copyfile(src, dest)
        if copystat:
            # copystat also copies mode
            shutil.copystat(src, dest)
        else:
            shutil.copymode(src, dest)


def dos2unix(data: bytes) -> bytes:
    r"""Convert CRLF line endings to LF.

    >>> dos2unix(b'one\r\ntwo\r\nthree')
    b'one\ntwo\nthree'

    Lone carriage returns are left alone:
    >>> dos2unix(b'a\rb\r\n')
    b'a\rb\n'
    """
    return data.replace(b'\r\n', b'\n')


def normalize_eol(path: Union[str, Path]) -> bool:
    """Rewrite the file at path with LF line endings.

    Return True if the file had to be changed.
    """
    path = Path(path)
    data = path.read_bytes()
    converted = dos2unix(data)
    if converted == data:
        return False
    path.write_bytes(converted)
    return True


def hexreplace(err: UnicodeError) -> tuple[str, int]:
    if not isinstance(err, UnicodeDecodeError):
        raise NotImplementedError("only decoding is supported")
    return "".join(
        "<%X>" % x for x in err.object[err.start:err.end]
    ), err.end


register_error("hexreplace", hexreplace)


def printable(line: bytes) -> str:
    r"""Decode a raw diff line for display.

    >>> printable(b'+caf\xc3\xa9')
    '+café'
    >>> printable(b'+\xcd\xce test')
    '+<CD><CE> test'
    """
    return line.decode("UTF-8", errors="hexreplace")
