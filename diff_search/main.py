# diff-search entry point and configuration helpers
#
# Copyright 2016, 2018—2022 Andrej Shadura <andrew@shadura.me>
#
# This software may be used and distributed according to the terms of
# the GNU General Public License, incorporated herein by reference.
#
# SPDX-License-Identifier: GPL-2.0-or-later

from gettext import gettext as _
from typing import Optional

import argparse
import sys

from . import __version__, search_core
from .util import Abort, systemcall


class Config:
    def get(self, section, item, default=None) -> Optional[str]:
        try:
            return systemcall(
                ['git', 'config', '--get', '%s.%s' % (section, item)],
                onerr=KeyError,
                encoding="UTF-8",
            ).rstrip('\n')
        except (KeyError, OSError):
            return default

    def getint(self, section, item, default=None) -> Optional[int]:
        value = self.get(section, item)
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            raise Abort(_("%s.%s is not a number: %r") % (section, item, value))


class Ui:
    colors = {
        'info': '34',
        'warning': '33',
        'success': '32',
    }

    def __init__(self, fin=None, fout=None, ferr=None):
        self.fin = fin if fin is not None else sys.stdin.buffer
        self.fout = fout if fout is not None else sys.stdout.buffer
        self.ferr = ferr if ferr is not None else sys.stderr
        self.debuglevel = 0
        isatty = getattr(self.ferr, 'isatty', None)
        self.color = bool(isatty and isatty())

    def label(self, tag: str) -> str:
        text = '[%s]' % tag.upper()
        if self.color and tag in self.colors:
            return '\033[%sm%s\033[0m' % (self.colors[tag], text)
        return text

    def print_message(self, *msg, debuglevel: int, tag=None, **opts):
        if self.debuglevel < debuglevel:
            return

        self.fout.flush()
        if tag:
            msg = (self.label(tag),) + msg
        print(*msg, **opts, file=self.ferr)
        self.ferr.flush()

    def debug(self, *msg, **opts):
        self.print_message(*msg, debuglevel=2, tag='debug', **opts)

    def info(self, *msg, **opts):
        self.print_message(*msg, debuglevel=1, tag='info', **opts)

    def warn(self, *msg, **opts):
        self.print_message(*msg, debuglevel=0, tag='warning', **opts)

    def success(self, *msg, **opts):
        self.print_message(*msg, debuglevel=0, tag='success', **opts)

    def write_err(self, *msg, **opts):
        self.print_message(*msg, debuglevel=0, **opts)

    def status(self, *msg):
        self.fout.write((' '.join(msg) + '\n').encode('UTF-8', 'surrogateescape'))
        self.fout.flush()

    def setdebuglevel(self, level):
        self.debuglevel = level


EXAMPLES = '''examples:
  show statistics for matches in a large diff:
    %(prog)s --search htmlEncode --stats files.diff
  apply the matching hunks to old/ and re-gzip touched bundles:
    %(prog)s --search htmlEncode --apply --file files.diff
  apply, then log, stage, archive and produce a review patch:
    %(prog)s --search htmlEncode --apply --file files.diff \\
      --log-patched patched.txt --copy-patched-to /tmp/staging \\
      --tarball fixes.tar.gz --create-commit-patch fixes.patch
'''


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog='diff-search',
        description=_('search a unified diff for hunks containing patterns, '
                      'then extract or apply them'),
        epilog=EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('-s', '--search', metavar='PATTERN', action='append', default=[], help='only include hunks containing this text (repeatable)')
    parser.add_argument('-f', '--file', metavar='FILE', default=None, help='unified diff to process (default: stdin)')
    parser.add_argument('diff_file', metavar='DIFF_FILE', nargs='?', default=None, help=argparse.SUPPRESS)
    parser.add_argument('-o', '--output', metavar='FILE', default=None, help='write the filtered diff to FILE (default: stdout)')
    parser.add_argument('-i', '--ignore-case', action='store_true', default=False, help='case-insensitive match')
    parser.add_argument('-S', '--stats', action='store_true', default=False, help='print search statistics')
    parser.add_argument('-n', '--dry-run', action='store_true', default=False, help='print what would be done and exit')
    group = parser.add_argument_group('patch actions')
    group.add_argument('-a', '--apply', action='store_true', default=False, help="apply the filtered diff to 'old/' and re-gzip bundles")
    group.add_argument('--no-gzip', action='store_true', default=False, help='do not re-gzip patched .js/.jsp/.xml bundles')
    group.add_argument('-C', '--root', metavar='DIR', default='.', help="directory containing the 'old/' tree (default: current directory)")
    group.add_argument('--log-patched', metavar='FILE', default=None, help='write the list of patched files to FILE')
    group.add_argument('--copy-patched-to', metavar='DIR', default=None, help='copy patched files to DIR')
    group.add_argument('--tarball', metavar='FILE', default=None, help='create a .tar.gz archive of all patched files')
    group.add_argument('--create-commit-patch', metavar='FILE', default=None, help='write a unified diff of the changes actually applied')
    parser.add_argument('-v', '--verbose', default=0, action='count', help='be more verbose')
    parser.add_argument('--debug', action='store_const', const=2, dest='verbose', help='be debuggingly verbose')
    parser.add_argument('--version', action='version', version='%(prog)s ' + __version__)
    args = parser.parse_args(argv)

    opts = vars(args)

    ui = Ui()
    ui.setdebuglevel(opts['verbose'])

    try:
        rc = search_core.dosearch(ui, Config(), **opts)
    except Abort as inst:
        sys.stderr.write(_("abort: %s\n") % inst)
        sys.exit(1)
    sys.exit(rc)


if __name__ == '__main__':
    main()
