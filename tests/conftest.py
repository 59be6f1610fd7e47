import io
import os
import subprocess
import sys
from pathlib import Path
from textwrap import dedent

import pytest

from diff_search.main import Ui
from diff_search.util import Abort

SOURCE_ROOT = Path(__file__).resolve().parent.parent

OLD_FILES = {
    'opt/zimbra/jetty/webapps/zimbra/js/Startup1_all.js': 'function show(s) {\n    out(s);\n}\n',
    'opt/zimbra/jetty/webapps/zimbra/public/login.jsp': '<p>${param.user}</p>\n<p>footer</p>\n',
    'opt/zimbra/conf/attrs.xml': '<attrs>\n  <attr id="1"/>\n</attrs>\n',
}

NEW_FILES = {
    'opt/zimbra/jetty/webapps/zimbra/js/Startup1_all.js': 'function show(s) {\n    out(htmlEncode(s));\n}\n',
    'opt/zimbra/jetty/webapps/zimbra/public/login.jsp': '<p>${fn:escapeXml(param.user)}</p>\n<p>footer</p>\n',
    'opt/zimbra/conf/attrs.xml': '<attrs>\n  <attr id="2"/>\n</attrs>\n',
}

FILES_DIFF = dedent('''\
    --- old/./opt/zimbra/jetty/webapps/zimbra/js/Startup1_all.js\t2025-06-01 10:00:00.000000000 +0000
    +++ new/./opt/zimbra/jetty/webapps/zimbra/js/Startup1_all.js\t2025-06-10 10:00:00.000000000 +0000
    @@ -1,3 +1,3 @@
     function show(s) {
    -    out(s);
    +    out(htmlEncode(s));
     }
    --- old/./opt/zimbra/jetty/webapps/zimbra/public/login.jsp\t2025-06-01 10:00:00.000000000 +0000
    +++ new/./opt/zimbra/jetty/webapps/zimbra/public/login.jsp\t2025-06-10 10:00:00.000000000 +0000
    @@ -1,2 +1,2 @@
    -<p>${param.user}</p>
    +<p>${fn:escapeXml(param.user)}</p>
     <p>footer</p>
    --- old/./opt/zimbra/conf/attrs.xml\t2025-06-01 10:00:00.000000000 +0000
    +++ new/./opt/zimbra/conf/attrs.xml\t2025-06-10 10:00:00.000000000 +0000
    @@ -1,3 +1,3 @@
     <attrs>
    -  <attr id="1"/>
    +  <attr id="2"/>
     </attrs>
''').encode()


def write_tree(root: Path, files: dict) -> None:
    for name, text in files.items():
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(text.encode())


@pytest.fixture
def workspace(tmp_path) -> Path:
    """A directory holding old/ and new/ trees and files.diff between them"""
    write_tree(tmp_path / 'old', OLD_FILES)
    write_tree(tmp_path / 'new', NEW_FILES)
    (tmp_path / 'files.diff').write_bytes(FILES_DIFF)
    return tmp_path


@pytest.fixture
def files_diff() -> bytes:
    return FILES_DIFF


@pytest.fixture
def ui():
    ui = Ui(fin=io.BytesIO(), fout=io.BytesIO(), ferr=io.StringIO())
    ui.setdebuglevel(2)
    return ui


class FakeConfig:
    def __init__(self, **values):
        self.values = values

    def get(self, section, item, default=None):
        return self.values.get('%s.%s' % (section, item), default)

    def getint(self, section, item, default=None):
        value = self.get(section, item)
        return default if value is None else int(value)


class FakePatchTool:
    """Stands in for patch(1): records the patch text, writes NEW_FILES on apply"""

    def __init__(self, root: Path, fail_validate=False, fail_apply=False):
        self.root = root
        self.fail_validate = fail_validate
        self.fail_apply = fail_apply
        self.calls = []
        self.patchtext = None

    def validate(self, patchfile):
        self.calls.append('validate')
        self.patchtext = Path(patchfile).read_bytes()
        if self.fail_validate:
            raise Abort('patch check failed: patch exited with status 1')

    def apply(self, patchfile):
        self.calls.append('apply')
        if self.fail_apply:
            raise Abort('patch failed: patch exited with status 1')
        for name, text in NEW_FILES.items():
            if name.encode() in self.patchtext:
                (self.root / 'old' / name).write_bytes(text.encode())


class FakeCompressor:
    suffix = '.zgz'

    def __init__(self, fail=()):
        self.fail = fail
        self.compressed = []

    def compress(self, path):
        path = Path(path)
        if path.name in self.fail:
            raise OSError('disk full')
        out = path.with_name(path.name + self.suffix)
        out.write_bytes(b'compressed ' + path.read_bytes())
        self.compressed.append(path)
        return out


@pytest.fixture
def config():
    return FakeConfig()


@pytest.fixture
def run_cli():
    """Run diff-search as a separate process"""
    def run(*args, input=b'', cwd=None):
        env = dict(os.environ)
        env['PYTHONPATH'] = os.pathsep.join(
            [str(SOURCE_ROOT)] + [p for p in [env.get('PYTHONPATH')] if p])
        return subprocess.run(
            [sys.executable, "-m", "diff_search.main", *args],
            env=env,
            input=input,
            capture_output=True,
            cwd=cwd,
            timeout=60,
        )
    return run
