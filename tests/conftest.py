import stat

import pytest

from openclawd.modules.runner import CommandRunner

POPULATE_ROOTFS = """\
#!/bin/sh
# stub de tar: $4 é o diretório passado com -C
mkdir -p "$4/bin" "$4/root"
: > "$4/bin/bash"
echo "# bashrc" > "$4/root/.bashrc"
echo "# zshrc" > "$4/root/.zshrc"
exit 0
"""

DISK_FULL = """\
#!/bin/sh
echo "tar: write error"
echo "disk full" >&2
exit 2
"""


class StubRunner(CommandRunner):
    """Runner sem subprocess: respostas fixas por comando, (127, "") por padrão."""

    name = "stub"

    def __init__(self, responses=None, in_rootfs=True):
        super().__init__()
        self.in_rootfs = in_rootfs
        self.responses = dict(responses or {})
        self.calls = []

    def command(self, command, extra_env=None):
        return ["stub-shell", "-c", command]

    def run_sync(self, command, timeout=None, extra_env=None):
        self.calls.append(command)
        resp = self.responses.get(command, (127, ""))
        if isinstance(resp, BaseException):
            raise resp
        return resp


@pytest.fixture
def stub_runner():
    return StubRunner


@pytest.fixture
def base_cfg(tmp_path):
    return {
        "base_dir": str(tmp_path / "files"),
        "host_home": str(tmp_path / "home"),
        "runner": "host",
    }


@pytest.fixture
def make_script(tmp_path):
    def _make(body, name="fake-tar"):
        path = tmp_path / "bin" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(body, encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return str(path)

    return _make


@pytest.fixture
def populate_tar(make_script):
    return make_script(POPULATE_ROOTFS, "tar-ok")


@pytest.fixture
def disk_full_tar(make_script):
    return make_script(DISK_FULL, "tar-disk-full")


@pytest.fixture
def archive(tmp_path):
    path = tmp_path / "downloads" / "ubuntu-rootfs.tar.gz"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"not really a tarball")
    return str(path)
