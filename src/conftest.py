import itertools
import os
import stat
import zipfile

import pytest
from tornado.options import options

import sizeguard.server
from sizeguard.accounting import quota
from sizeguard.accounting.archive import ArchiveInspector
from sizeguard.accounting.probe import FilesystemProbe
from sizeguard.accounting.service import SizeAccounting

SEVEN_ZIP_LISTING = """
7-Zip [64] 16.02 : Copyright (c) 1999-2016 Igor Pavlov : 2016-05-21
p7zip Version 16.02 (locale=C.UTF-8,Utf16=on,HugeFiles=on,64 bits,8 CPUs x64)

Scanning the drive for archives:
1 file, 1234 bytes (2 KiB)

Listing archive: upload.7z

--
Path = upload.7z
Type = 7z
Physical Size = 1234
Headers Size = 210
Method = LZMA2:12
Solid = +
Blocks = 1

----------
Path = docs
Size = 0
Packed Size = 0
Modified = 2024-01-01 00:00:00
Attributes = D drwxr-xr-x

Path = docs/a.txt
Size = 100
Packed Size = 1024
Modified = 2024-01-01 00:00:00
Attributes = A -rw-r--r--
CRC = 3610A686

Path = docs/b.bin
Size = 4096
Packed Size =
Modified = 2024-01-01 00:00:00
Attributes = A -rw-r--r--
CRC = 00000000
"""


@pytest.fixture
def quota_policy():
    return quota.QuotaPolicy


@pytest.fixture
def seven_zip_listing():
    return SEVEN_ZIP_LISTING


@pytest.fixture
def storage_root(tmpdir):
    root = tmpdir.mkdir('storage')
    return str(root)


@pytest.fixture
def write_file(storage_root):
    """Create a file of *size* bytes below the storage root, return its absolute path."""
    def write(relative_path, size):
        path = os.path.join(storage_root, relative_path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, 'wb') as f_out:
            f_out.write(b'x' * size)
        return path
    return write


@pytest.fixture
def make_zip(storage_root):
    """Create a ZIP archive with members of the given sizes, return its absolute path."""
    def make(name, sizes):
        path = os.path.join(storage_root, name)
        with zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            for index, size in enumerate(sizes):
                archive.writestr('member-{}.bin'.format(index), b'\0' * size)
        return path
    return make


@pytest.fixture
def fake_tool(tmpdir):
    """
    Write an executable shell script standing in for the archive listing tool.

    The script records its arguments in <script>.args and its pid in <script>.pid.
    With *background*, it first starts a `sleep` of that many seconds that keeps stdout
    open and records its pid in <script>.child.
    """
    counter = itertools.count()

    def make(output='', status=0, sleep=None, background=None):
        script = str(tmpdir.join('fake7z-{}'.format(next(counter))))
        lines = [
            '#!/bin/sh',
            'echo $$ > "{}.pid"'.format(script),
            'printf "%s\\n" "$@" > "{}.args"'.format(script),
        ]
        if background is not None:
            lines.append('sleep {} &'.format(background))
            lines.append('echo $! > "{}.child"'.format(script))
        if sleep is not None:
            lines.append('exec sleep {}'.format(sleep))
        lines.append("cat <<'LISTING'")
        lines.append(output)
        lines.append('LISTING')
        lines.append('exit {}'.format(status))
        with open(script, 'w') as f_out:
            f_out.write('\n'.join(lines) + '\n')
        os.chmod(script, os.stat(script).st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return script
    return make


@pytest.fixture
def probe():
    probe = FilesystemProbe(threads=2)
    yield probe
    probe.shutdown()


@pytest.fixture
def listing_tool(fake_tool, seven_zip_listing):
    return fake_tool(seven_zip_listing)


@pytest.fixture
def accounting(probe, listing_tool):
    accounting = SizeAccounting(probe, ArchiveInspector.default(tool=listing_tool, timeout=5))
    yield accounting
    accounting.inspector.shutdown()


@pytest.fixture
def app(accounting, storage_root):
    return sizeguard.server.make_app(
        accounting=accounting,
        storage_root=storage_root)


@pytest.fixture
def app_options():
    original_settings = dict(options.items())
    yield options
    for key, value in original_settings.items():
        setattr(options, key, value)


def make_coroutine(mock):
    async def coroutine(*args, **kwargs):
        return mock(*args, **kwargs)

    return coroutine
