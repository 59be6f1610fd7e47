# Unified diff scanner, hunk search and filtered patch assembly
#
# Copyright 2008—2011, 2014 Mark Edgington <edgimar@gmail.com>
# Copyright 2016, 2018—2022 Andrej Shadura <andrew@shadura.me>
#
# This software may be used and distributed according to the terms of
# the GNU General Public License, incorporated herein by reference.
#
# This code is based on the patch parser of Mercurial.
#
# SPDX-License-Identifier: GPL-2.0-or-later

# stuff related specifically to patch parsing / filtering
from gettext import gettext as _

import io
import os
import re

from typing import IO, Iterator, NamedTuple, Sequence

from .util import printable

fromfile_re = re.compile(b'---\\s')
tofile_re = re.compile(b'\\+{3}\\s')
tofile_prefix_re = re.compile(b'\\+{3}\\s+')
range_re = re.compile(b'@@.*@@')
binary_re = re.compile(b'Binary\\s')


class PatchError(Exception):
    pass


def chomp(line: bytes) -> bytes:
    r"""Remove a single trailing newline.

    >>> chomp(b'+text\r\n')
    b'+text\r'
    >>> chomp(b'no newline')
    b'no newline'
    """
    if line.endswith(b'\n'):
        return line[:-1]
    return line


class LineReader:
    # simple class to allow pushing lines back into the input stream
    def __init__(self, fp: IO[bytes]):
        self.fp = fp
        self.buf: list[bytes] = []

    def push(self, line: bytes) -> None:
        if line:
            self.buf.append(line)

    def readline(self) -> bytes:
        if self.buf:
            line = self.buf[0]
            del self.buf[0]
            return line
        return self.fp.readline()

    def __iter__(self) -> Iterator[bytes]:
        return iter(self.readline, b'')


def scanpatch(fp: IO[bytes]):
    r"""Read a diff and yield the following events:

    - ('file',   (fromfile_line, tofile_line))
    - ('dashes', line)   a '--- ' line not followed by a '+++ ' line
    - ('range',  line)   a '@@ ... @@' hunk header
    - ('at',     line)   any other line starting with '@@'
    - ('binary', line)   a 'Binary ...' marker
    - ('line',   line)   anything else

    Lines are yielded without their trailing newline.

    >>> rawpatch = b'''Only in old/: x
    ... --- old/./f.txt
    ... +++ new/./f.txt
    ... @@ -1,2 +1,2 @@
    ... -1
    ... +one
    ...  2
    ... Binary files old/./b.bin and new/./b.bin differ
    ... --- stray'''
    >>> for event in scanpatch(io.BytesIO(rawpatch)):
    ...     print(event)
    ('line', b'Only in old/: x')
    ('file', (b'--- old/./f.txt', b'+++ new/./f.txt'))
    ('range', b'@@ -1,2 +1,2 @@')
    ('line', b'-1')
    ('line', b'+one')
    ('line', b' 2')
    ('binary', b'Binary files old/./b.bin and new/./b.bin differ')
    ('dashes', b'--- stray')
    """
    lr = LineReader(fp)

    for rawline in lr:
        line = chomp(rawline)
        if fromfile_re.match(line):
            tofile = lr.readline()
            if tofile_re.match(chomp(tofile)):
                yield 'file', (line, chomp(tofile))
                continue
            lr.push(tofile)
            yield 'dashes', line
        elif range_re.match(line):
            yield 'range', line
        elif line.startswith(b'@@'):
            yield 'at', line
        elif binary_re.match(line):
            yield 'binary', line
        else:
            yield 'line', line


class Hunk:
    """A hunk header together with its body lines, as found in the input"""

    def __init__(self, header: bytes, lines: Sequence[bytes]):
        self.header = header
        self.lines = tuple(lines)

    def matches(self, matcher) -> list[bytes]:
        """Return the body lines accepted by matcher, in order"""
        return [line for line in self.lines if matcher(line)]

    def write(self, fp: IO[bytes]) -> None:
        fp.write(self.header + b'\n')
        for line in self.lines:
            fp.write(line + b'\n')

    def __bytes__(self) -> bytes:
        with io.BytesIO() as b:
            self.write(b)
            return b.getvalue()

    def __repr__(self) -> str:
        return '<hunk %r>' % self.header


class FileEntry:
    """A '---'/'+++' header pair and the hunks following it"""

    def __init__(self, fromline: bytes, toline: bytes, hunks: Sequence[Hunk] = ()):
        self.fromline = fromline
        self.toline = toline
        self.hunks = tuple(hunks)

    def filename(self) -> str:
        r"""Return the path of the file relative to the compared trees.

        >>> FileEntry(b'--- old/./opt/a.js', b'+++ new/./opt/a.js\t2025-06-24 10:00:00.0 +0000').filename()
        'opt/a.js'
        >>> FileEntry(b'--- a/b.c', b'+++ b/b.c').filename()
        'b/b.c'
        >>> FileEntry(b'--- old/./w.jsp\r', b'+++ new/./w.jsp\r').filename()
        'w.jsp'
        """
        name = tofile_prefix_re.sub(b'', self.toline, count=1)
        name = name.removeprefix(b'new/')
        name = name.split(b'\t', 1)[0]
        # CRLF diffs leave a carriage return behind
        name = name.removesuffix(b'\r')
        name = name.removeprefix(b'./')
        return os.fsdecode(name)

    def select(self, hunks: Sequence[Hunk]) -> 'FileEntry':
        """Return a copy of this entry carrying only the given hunks"""
        return FileEntry(self.fromline, self.toline, hunks)

    def write(self, fp: IO[bytes]) -> None:
        fp.write(self.fromline + b'\n')
        fp.write(self.toline + b'\n')
        for hunk in self.hunks:
            hunk.write(fp)

    def __bytes__(self) -> bytes:
        with io.BytesIO() as b:
            self.write(b)
            return b.getvalue()

    def __repr__(self) -> str:
        return '<file %r>' % self.filename()


class DiffDocument(tuple):
    """File entries of a parsed diff, in input order"""

    @property
    def hunks(self) -> Sequence[Hunk]:
        return [h for entry in self for h in entry.hunks]

    def write(self, fp: IO[bytes]) -> None:
        for entry in self:
            entry.write(fp)

    def __bytes__(self) -> bytes:
        with io.BytesIO() as b:
            self.write(b)
            return b.getvalue()


def parsepatch(fp: IO[bytes]) -> DiffDocument:
    r"""Parse a diff, returning its file entries.

    Anything outside the recognised grammar is skipped, so parsing never
    fails on unexpected input.

    >>> rawpatch = b'''diff -urN old/./dir/f.txt new/./dir/f.txt
    ... --- old/./dir/f.txt
    ... +++ new/./dir/f.txt
    ... @@ -1,3 +1,3 @@
    ...  1
    ... -2
    ... +two
    ...  3
    ... Binary files old/./dir/g.bin and new/./dir/g.bin differ
    ... @@ -10,1 +10,1 @@
    ... -10
    ... +ten
    ... --- old/./only-header.txt
    ... +++ new/./only-header.txt
    ... '''
    >>> patch = parsepatch(io.BytesIO(rawpatch))
    >>> patch
    (<file 'dir/f.txt'>, <file 'only-header.txt'>)
    >>> patch[0].hunks
    (<hunk b'@@ -1,3 +1,3 @@'>, <hunk b'@@ -10,1 +10,1 @@'>)
    >>> patch[0].hunks[0].lines
    (b' 1', b'-2', b'+two', b' 3')
    >>> patch[1].hunks
    ()
    """

    class Parser:
        """diff scanning state machine

        States are 'seek' (looking for a file header pair), 'file' (inside
        a file entry, between hunks) and 'hunk' (collecting hunk body lines).
        """

        def __init__(self):
            self.entries = []
            self.fromline = None
            self.toline = None
            self.hunks = []
            self.hunkheader = None
            self.hunklines = []

        def ignore(self, data):
            """Skip the line, staying in the current state."""
            return None

        def endhunk(self, data=None):
            if self.hunkheader is not None:
                self.hunks.append(Hunk(self.hunkheader, self.hunklines))
                self.hunkheader = None
                self.hunklines = []
            return 'file'

        def endfile(self, data=None):
            self.endhunk()
            if self.toline is not None:
                self.entries.append(FileEntry(self.fromline, self.toline, self.hunks))
                self.fromline = self.toline = None
                self.hunks = []
            return 'seek'

        def newfile(self, header):
            self.endfile()
            self.fromline, self.toline = header
            return 'file'

        def newhunk(self, line):
            self.endhunk()
            self.hunkheader = line
            return 'hunk'

        def addline(self, line):
            self.hunklines.append(line)
            return 'hunk'

        def finished(self):
            self.endfile()
            return self.entries

        transitions = {
            'seek': {'file': newfile,
                     'dashes': ignore,
                     'range': ignore,
                     'at': ignore,
                     'binary': ignore,
                     'line': ignore},
            'file': {'file': newfile,
                     'dashes': endfile,
                     'range': newhunk,
                     'at': ignore,
                     'binary': ignore,
                     'line': ignore},
            'hunk': {'file': newfile,
                     'dashes': endfile,
                     'range': newhunk,
                     'at': endhunk,
                     'binary': endhunk,
                     'line': addline},
        }

    p = Parser()

    # run the state-machine
    state = 'seek'
    for event, data in scanpatch(fp):
        try:
            transition = p.transitions[state][event]
        except KeyError:
            raise PatchError('unhandled transition: %s -> %s' %
                             (state, event))
        state = transition(p, data) or state
    return DiffDocument(p.finished())


class SearchTerms:
    r"""Literal substring search over raw diff lines

    Terms are OR-combined and matched against the whole line, diff marker
    included.

    >>> match = SearchTerms(['FOO', 'bar'], ignorecase=True)
    >>> match(b'+x = foo()')
    True
    >>> match(b' nothing here')
    False
    >>> SearchTerms(['FOO'])(b'+x = foo()')
    False
    >>> SearchTerms(['-x'])(b'-x = 1')
    True
    """

    def __init__(self, terms: Sequence[str], ignorecase: bool = False):
        if not terms:
            raise ValueError(_("at least one search term is required"))
        self.terms = list(terms)
        self.ignorecase = ignorecase
        needles = [os.fsencode(t) if isinstance(t, str) else t for t in terms]
        if ignorecase:
            needles = [n.lower() for n in needles]
        self._needles = needles

    def __call__(self, line: bytes) -> bool:
        if self.ignorecase:
            line = line.lower()
        return any(n in line for n in self._needles)

    def __repr__(self) -> str:
        return '<%s %r%s>' % (self.__class__.__name__, self.terms,
                              self.ignorecase and ' ignorecase' or '')


class FilterResult(NamedTuple):
    """Outcome of filtering a diff down to the hunks containing matches"""

    text: bytes
    entries: tuple
    files: tuple
    totalfiles: int
    matchingfiles: int
    totalhunks: int
    matchinghunks: int
    totalmatches: int

    @property
    def success(self) -> bool:
        return self.matchingfiles > 0


def filterpatch(patch: DiffDocument, matcher, ui=None) -> FilterResult:
    r"""Keep only the hunks having at least one line accepted by matcher

    File entries left without hunks are dropped; the rest keep their
    header lines verbatim.

    >>> rawpatch = b'''--- old/./dir/file.js
    ... +++ new/./dir/file.js
    ... @@ -1,3 +1,3 @@
    ...  function show(s) {
    ... -    out(s);
    ... +    out(htmlEncode(s));
    ... @@ -20,2 +20,2 @@
    ... -    var a = 1;
    ... +    var a = 2;
    ... --- old/./other.js
    ... +++ new/./other.js
    ... @@ -5 +5 @@
    ... -x
    ... +y
    ... '''
    >>> patch = parsepatch(io.BytesIO(rawpatch))
    >>> result = filterpatch(patch, SearchTerms(['htmlEncode']))
    >>> result.files
    ('dir/file.js',)
    >>> (result.matchingfiles, result.totalfiles)
    (1, 2)
    >>> (result.matchinghunks, result.totalhunks, result.totalmatches)
    (1, 3, 1)
    >>> print(result.text.decode(), end='')
    --- old/./dir/file.js
    +++ new/./dir/file.js
    @@ -1,3 +1,3 @@
     function show(s) {
    -    out(s);
    +    out(htmlEncode(s));

    Nothing matching gives an empty, unsuccessful result:
    >>> result = filterpatch(patch, SearchTerms(['nowhere']))
    >>> (result.text, result.success)
    (b'', False)
    """
    totalhunks = matchinghunks = totalmatches = 0
    retained = []

    for entry in patch:
        if ui:
            ui.info(_("processing file: %s") % entry.filename())
        selected = []
        for hunk in entry.hunks:
            totalhunks += 1
            found = hunk.matches(matcher)
            if found:
                selected.append(hunk)
                totalmatches += len(found)
                if ui:
                    for line in found:
                        ui.debug(_("match found: %s") % printable(line))
        if selected:
            matchinghunks += len(selected)
            retained.append(entry.select(selected))

    document = DiffDocument(retained)
    return FilterResult(
        text=bytes(document),
        entries=document,
        files=tuple(entry.filename() for entry in retained),
        totalfiles=len(patch),
        matchingfiles=len(retained),
        totalhunks=totalhunks,
        matchinghunks=matchinghunks,
        totalmatches=totalmatches,
    )

