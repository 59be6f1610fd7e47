# Search and apply process driver
#
# Copyright 2008—2011, 2014 Mark Edgington <edgimar@gmail.com>
# Copyright 2016, 2018—2022 Andrej Shadura <andrew@shadura.me>
#
# This software may be used and distributed according to the terms of
# the GNU General Public License, incorporated herein by reference.
#
# SPDX-License-Identifier: GPL-2.0-or-later

from gettext import gettext as _

import os
import re
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import NamedTuple

from . import packaging
from .dspatch import FilterResult, SearchTerms, filterpatch, parsepatch
from .patchtool import GzipCompressor, PatchTool
from .util import Abort, normalize_eol

# files whose line endings are normalised before patching
eol_re = re.compile(r'\.(js|jsp|xml)$')
# bundles re-compressed after patching, e.g. zimbra/js/Startup1_all.js
bundle_re = re.compile(r'(?:^|/)[^/]*all\.(js|jsp|xml)$')


class ApplyResult(NamedTuple):
    # paths relative to the old/ tree
    files: tuple
    artifacts: tuple
    warnings: int

    @property
    def combined(self) -> tuple:
        return self.files + self.artifacts


def showstats(ui, matcher: SearchTerms, result: FilterResult) -> None:
    ui.write_err("=== SEARCH STATISTICS ===")
    ui.write_err(_("Search terms: %s") % ', '.join(matcher.terms))
    ui.write_err(_("Case sensitive: %s") % ('false' if matcher.ignorecase else 'true'))
    ui.write_err(_("Total files processed: %d") % result.totalfiles)
    ui.write_err(_("Files with matches: %d") % result.matchingfiles)
    ui.write_err(_("Total hunks processed: %d") % result.totalhunks)
    ui.write_err(_("Hunks with matches: %d") % result.matchinghunks)
    ui.write_err(_("Total matches found: %d") % result.totalmatches)
    if result.files:
        ui.write_err(_("Files with matches:"))
        for name in result.files:
            ui.write_err("  %s" % name)
    ui.write_err("========================")


def applypatch(ui, result: FilterResult, root, patchtool, compressor=None,
               snapshotdir=None, tmpdir=None) -> ApplyResult:
    """Apply the filtered diff to the old/ tree under root.

    The diff is written to a temporary file which is checked with a dry
    run before the tree is touched. When either patch step fails, the
    temporary file is kept for inspection and Abort is raised.

    If compressor is given, patched bundle files are re-compressed next
    to themselves; failures to do so are only warned about. If
    snapshotdir is given, the matched files are copied there just before
    patching.
    """
    root = Path(root)
    oldroot = root / 'old'

    fd, tmpname = tempfile.mkstemp(prefix='diffapply-', suffix='.patch', dir=tmpdir)
    tmppath = Path(tmpname)
    keep = False
    try:
        with os.fdopen(fd, 'wb') as fp:
            fp.write(result.text)

        # 1. mismatched line endings make patch reject hunks
        try:
            for name in result.files:
                if not eol_re.search(name):
                    continue
                path = oldroot / name
                if path.is_file():
                    ui.info(_("normalizing line endings for: %s") % path)
                    normalize_eol(path)
            normalize_eol(tmppath)

            if snapshotdir is not None:
                packaging.snapshot(ui, oldroot, result.files, snapshotdir)
        except OSError as err:
            raise Abort(_("cannot prepare %s: %s")
                        % (err.filename or oldroot, err.strerror or err))

        # 2. check, then apply
        ui.success(_("testing patch (dry-run)..."))
        try:
            patchtool.validate(tmppath)
        except Abort as inst:
            keep = True
            raise Abort(_("%s; nothing applied, patch kept in %s") % (inst, tmppath))

        ui.success(_("applying patch..."))
        try:
            patchtool.apply(tmppath)
        except Abort as inst:
            keep = True
            raise Abort(_("%s; see %s") % (inst, tmppath))

        # 3. regenerate compressed bundles
        artifacts = []
        warnings = 0
        if compressor is not None:
            for name in result.files:
                if not bundle_re.search(name):
                    continue
                path = oldroot / name
                if not path.is_file():
                    continue
                try:
                    out = compressor.compress(path)
                except OSError as err:
                    ui.warn(_("compressing %s failed: %s") % (path, err))
                    warnings += 1
                    continue
                artifacts.append(out.relative_to(oldroot).as_posix())
                ui.success(_("re-gzip: %s -> %s") % (path, out))

        return ApplyResult(tuple(result.files), tuple(artifacts), warnings)
    finally:
        if not keep:
            tmppath.unlink(missing_ok=True)


def runaction(ui, action, *args) -> int:
    """Run a packaging action, turning a failure into a warning"""
    try:
        return action(ui, *args)
    except (OSError, tarfile.TarError) as err:
        ui.warn(_("%s failed: %s") % (action.__name__, err))
        return 1


def doapply(ui, config, result: FilterResult, patchtool=None, compressor=None, **opts):
    if not result.success:
        ui.status(_('no changes to apply'))
        return 0

    root = Path(opts.get('root') or '.')
    oldroot = root / 'old'
    if not oldroot.is_dir():
        raise Abort(_("target tree not found: %s") % oldroot)

    if patchtool is None:
        patchtool = PatchTool(root, prog=config.get('diffsearch', 'patch', 'patch'),
                              quiet=ui.debuglevel < 2)
    if opts.get('no_gzip'):
        compressor = None
    elif compressor is None:
        compressor = GzipCompressor(
            suffix=config.get('diffsearch', 'bundleSuffix', '.zgz'),
            level=config.getint('diffsearch', 'compressLevel', 9),
        )

    snapshotdir = None
    if opts.get('create_commit_patch'):
        snapshotdir = tempfile.mkdtemp(prefix='diffsearch-')
    try:
        applied = applypatch(ui, result, root, patchtool, compressor, snapshotdir)
        warnings = applied.warnings

        names = applied.combined
        extensions = packaging.STAGED_EXTENSIONS
        if compressor is not None:
            extensions += (compressor.suffix,)
        if opts.get('copy_patched_to'):
            warnings += runaction(ui, packaging.copyfiles, oldroot, names,
                                  opts['copy_patched_to'], extensions)
        if opts.get('tarball'):
            warnings += runaction(ui, packaging.makearchive, root, names, opts['tarball'])
        if opts.get('log_patched'):
            warnings += runaction(ui, packaging.writelog, names, opts['log_patched'])
        if snapshotdir is not None:
            warnings += runaction(ui, packaging.writecommitpatch, oldroot, applied.files,
                                  snapshotdir, opts['create_commit_patch'])
    finally:
        if snapshotdir is not None:
            shutil.rmtree(snapshotdir, ignore_errors=True)

    if warnings:
        ui.warn(_("patch applied to %s, but %d follow-up steps reported problems")
                % (oldroot, warnings))
    else:
        ui.success(_("patch applied to %s") % oldroot)
    return 0


def writeoutput(ui, result: FilterResult, output=None) -> None:
    if not output:
        ui.fout.write(result.text)
        ui.fout.flush()
        return

    ui.info(_("writing output to: %s") % output)
    try:
        Path(output).write_bytes(result.text)
    except OSError as err:
        raise Abort(_("cannot write to file: %s: %s") % (output, err.strerror or err))
    ui.success(_("patch file created: %s") % output)
    ui.write_err(_("To apply the patch, run:"))
    ui.write_err("  patch -p0 < %s" % output)


def dosearch(ui, config, patchtool=None, compressor=None, **opts):
    """Filter a diff down to the hunks matching the search terms.

    Depending on opts, the result is written out or applied to the old/
    tree, followed by the requested packaging steps. Returns the exit
    status; fatal problems raise Abort.
    """
    terms = opts.get('search') or []
    if not terms:
        raise Abort(_("search pattern is required, use --search PATTERN"))
    matcher = SearchTerms(terms, ignorecase=opts.get('ignore_case', False))

    source = opts.get('file') or opts.get('diff_file')
    if source:
        if not os.path.isfile(source):
            raise Abort(_("diff file not found: %s") % source)
    elif ui.fin.isatty():
        raise Abort(_("no input file specified and no data piped to stdin"))

    if opts.get('dry_run'):
        ui.write_err("=== DRY RUN MODE ===")
        ui.write_err(_("Would search for: %s") % ', '.join(terms))
        ui.write_err(_("Input: %s") % (source or 'stdin'))
        if opts.get('apply'):
            ui.write_err(_("Apply to: %s") % (Path(opts.get('root') or '.') / 'old'))
        else:
            ui.write_err(_("Output: %s") % (opts.get('output') or 'stdout'))
        ui.write_err(_("Case sensitive: %s") % ('false' if matcher.ignorecase else 'true'))
        ui.write_err("===================")
        return 0

    if source:
        ui.info(_("reading from file: %s") % source)
        try:
            with open(source, 'rb') as fp:
                patch = parsepatch(fp)
        except OSError as err:
            raise Abort(_("cannot open file: %s: %s") % (source, err.strerror or err))
    else:
        ui.info(_("reading from stdin"))
        patch = parsepatch(ui.fin)

    result = filterpatch(patch, matcher, ui)

    if opts.get('stats'):
        showstats(ui, matcher, result)

    if result.success:
        ui.success(_("found matches in %d hunks across %d files")
                   % (result.matchinghunks, result.matchingfiles))
    else:
        ui.warn(_("no matches found for search terms: %s") % ', '.join(terms))

    if opts.get('apply'):
        return doapply(ui, config, result, patchtool, compressor, **opts)

    for option in ('log_patched', 'copy_patched_to', 'tarball', 'create_commit_patch'):
        if opts.get(option):
            ui.warn(_("--%s only takes effect with --apply") % option.replace('_', '-'))

    if not result.success:
        # statistics were what the caller asked for
        return 0 if opts.get('stats') else 1

    writeoutput(ui, result, opts.get('output'))
    return 0
