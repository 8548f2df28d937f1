import os

import pytest

from openclawd.modules import bypass, gateway
from openclawd.modules.bootstrap import BootstrapManager
from openclawd.modules.errors import ExtractionFailed, PreconditionError
from openclawd.modules.status import Stage


class FakePopen:
    instances = []

    def __init__(self, argv, env=None):
        self.argv = argv
        self.env = env
        self.pid = 4242
        FakePopen.instances.append(self)

    def wait(self):
        return 0


@pytest.fixture
def fake_popen(monkeypatch):
    FakePopen.instances = []
    monkeypatch.setattr(gateway.subprocess, "Popen", FakePopen)
    return FakePopen


def _manager(base_cfg, runner, tar=None, session_env=None, **extra):
    cfg = dict(base_cfg, **extra)
    if tar:
        cfg["tar_command"] = tar
    return BootstrapManager(cfg, runner=runner, session_env=session_env or {"PATH": "/usr/bin"})


def _count_blocks(path):
    with open(path, encoding="utf-8") as f:
        return f.read().count(bypass.ACTIVATION_COMMENT)


def test_setup_from_empty_base(base_cfg, stub_runner, populate_tar, archive):
    bm = _manager(base_cfg, stub_runner(), tar=populate_tar)

    report = bm.setup(archive=archive)

    assert report.complete
    assert report.rootfs_present and report.shell_binary_present
    assert report.compatibility_shim_present
    assert not report.runtime_present
    assert not os.path.exists(archive)
    for path in bm.env.profile_paths:
        assert _count_blocks(path) == 1
    assert os.path.isfile(bm.env.resolv_conf)
    assert bm.session_env[bypass.PRELOAD_VAR] == bypass.node_options(bm.env.guest_shim_path)
    assert bm.status()["stage"] == Stage.COMPLETE.value


def test_second_setup_changes_nothing(base_cfg, stub_runner, populate_tar, disk_full_tar, archive):
    _manager(base_cfg, stub_runner(), tar=populate_tar).setup(archive=archive)

    bm = _manager(base_cfg, stub_runner(), tar=disk_full_tar)
    with open(bm.env.shim_path, "rb") as f:
        shim_before = f.read()
    profiles_before = {}
    for path in bm.env.profile_paths:
        with open(path, "rb") as f:
            profiles_before[path] = f.read()

    report = bm.setup()

    assert report.complete
    with open(bm.env.shim_path, "rb") as f:
        assert f.read() == shim_before
    for path, content in profiles_before.items():
        with open(path, "rb") as f:
            assert f.read() == content


def test_setup_without_archive_on_empty_base(base_cfg, stub_runner):
    bm = _manager(base_cfg, stub_runner(), rootfs_url="")

    with pytest.raises(PreconditionError) as excinfo:
        bm.setup()

    assert "--archive" in excinfo.value.remedy
    assert not os.path.exists(bm.env.shim_path)


def test_extraction_failure_aborts_setup(base_cfg, stub_runner, disk_full_tar, archive):
    bm = _manager(base_cfg, stub_runner(), tar=disk_full_tar)

    with pytest.raises(ExtractionFailed) as excinfo:
        bm.setup(archive=archive)

    assert excinfo.value.exit_code == 2
    assert os.path.exists(archive)
    assert not os.path.exists(bm.env.shim_path)
    assert bypass.PRELOAD_VAR not in bm.session_env


def test_rootfs_without_shell_is_extracted_again(base_cfg, stub_runner, populate_tar, archive):
    bm = _manager(base_cfg, stub_runner(), tar=populate_tar)
    os.makedirs(bm.env.rootfs_dir)

    report = bm.setup(archive=archive)

    assert report.shell_binary_present
    assert not os.path.exists(archive)


def test_status_is_read_only(base_cfg, stub_runner):
    bm = _manager(base_cfg, stub_runner())

    st = bm.status()

    assert st["stage"] == Stage.UNPROVISIONED.value
    assert st["readiness"]["complete"] is False
    assert st["activated_profiles"] == []
    assert set(st["dependencies"]) == {"node", "npm", "git", "proot", "package_manager"}
    assert not os.path.exists(bm.env.base_dir)


def test_bypass_without_profiles(base_cfg, stub_runner):
    bm = _manager(base_cfg, stub_runner())

    res = bm.bypass()

    assert res["shim"] == bm.env.shim_path
    assert res["profiles"] == []
    assert bm.status()["stage"] == Stage.UNPROVISIONED.value


def test_start_without_gateway(base_cfg, stub_runner, fake_popen):
    bm = _manager(base_cfg, stub_runner())

    with pytest.raises(PreconditionError) as excinfo:
        bm.start_gateway()

    assert excinfo.value.remedy == "npm install -g openclaw"
    # shim ausente é reinstalado antes da checagem do gateway
    assert os.path.isfile(bm.env.shim_path)
    assert fake_popen.instances == []


def test_start_sets_preload(base_cfg, stub_runner, fake_popen):
    runner = stub_runner({"command -v openclaw": (0, "/usr/local/bin/openclaw\n")})
    bm = _manager(base_cfg, runner)
    bm.bypass()

    assert bm.start_gateway() == 0

    (proc,) = fake_popen.instances
    assert proc.env[bypass.PRELOAD_VAR] == bypass.node_options(bm.env.guest_shim_path)
    assert proc.argv == ["stub-shell", "-c", "openclaw gateway --verbose"]


def test_start_keeps_existing_node_options(base_cfg, stub_runner, fake_popen):
    runner = stub_runner({"command -v openclaw": (0, "/usr/local/bin/openclaw\n")})
    bm = _manager(base_cfg, runner,
                  session_env={"PATH": "/usr/bin", "NODE_OPTIONS": "--max-old-space-size=512"})
    bm.bypass()

    bm.start_gateway()

    (proc,) = fake_popen.instances
    assert proc.env["NODE_OPTIONS"] == "--max-old-space-size=512"


def test_start_in_background(base_cfg, stub_runner, fake_popen):
    runner = stub_runner({"command -v openclaw": (0, "/usr/local/bin/openclaw\n")})
    bm = _manager(base_cfg, runner)

    proc = bm.start_gateway(background=True)

    assert proc.pid == 4242


def test_install_gateway_during_setup(base_cfg, stub_runner, populate_tar, archive):
    runner = stub_runner({"npm install -g openclaw": (0, "added 1 package\n")})
    bm = _manager(base_cfg, runner, tar=populate_tar)

    bm.setup(archive=archive, install_gateway=True)

    assert "npm install -g openclaw" in runner.calls


def test_progress_events(base_cfg, stub_runner, populate_tar, archive):
    bm = _manager(base_cfg, stub_runner(), tar=populate_tar)
    events = []
    bm.add_progress_cb(lambda ev, data: events.append(ev))
    bm.add_progress_cb(lambda ev, data: 1 / 0)

    bm.setup(archive=archive)

    assert events == [
        "setup.start",
        "rootfs.extract.start",
        "rootfs.extract.done",
        "bypass.start",
        "bypass.done",
        "setup.done",
    ]


def test_wakelock_only_on_host(base_cfg, stub_runner, populate_tar, archive, tmp_path):
    rootfs_bm = _manager(base_cfg, stub_runner(), tar=populate_tar)
    rootfs_bm.setup(archive=archive)
    assert not os.path.exists(rootfs_bm.env.wakelock_script)

    host_bm = _manager(base_cfg, stub_runner(in_rootfs=False))
    host_bm.setup()
    assert os.access(host_bm.env.wakelock_script, os.X_OK)


def test_require_path_for_proot(base_cfg):
    bm = BootstrapManager(dict(base_cfg, runner="proot"), session_env={})
    assert bm.require_path == "/root/.openclawd/bionic-bypass.js"
    assert bm.require_path == bm.env.guest_shim_path


def test_host_runner_activates_user_profiles(base_cfg, stub_runner, tmp_path):
    home = tmp_path / "home"
    home.mkdir()
    (home / ".bashrc").write_text("# termux bashrc\n", encoding="utf-8")
    bm = _manager(base_cfg, stub_runner(in_rootfs=False))

    res = bm.bypass()

    assert res["profiles"] == [str(home / ".bashrc")]
    content = (home / ".bashrc").read_text(encoding="utf-8")
    assert f'export NODE_OPTIONS="--require {bm.env.shim_path}"' in content
    assert not (home / ".zshrc").exists()
    assert bm.require_path == bm.env.shim_path
    assert bm.status()["activated_profiles"] == [str(home / ".bashrc")]


def test_profile_with_invalid_utf8(base_cfg, stub_runner, populate_tar, archive):
    bm = _manager(base_cfg, stub_runner(), tar=populate_tar)
    bm.setup(archive=archive)
    bashrc = bm.env.profile_paths[0]
    with open(bashrc, "wb") as f:
        f.write(b"# caf\xe9\n")

    assert bashrc not in bm.status()["activated_profiles"]

    bm.setup()

    with open(bashrc, "rb") as f:
        data = f.read()
    assert data.startswith(b"# caf\xe9\n")
    assert data.count(bypass.ACTIVATION_COMMENT.encode()) == 1
    assert bashrc in bm.status()["activated_profiles"]


def test_directories_exist_before_first_probe(base_cfg, stub_runner, populate_tar, archive):
    seen = []

    class LayoutCheckingRunner(stub_runner):
        def run_sync(self, command, timeout=None, extra_env=None):
            seen.append(os.path.isdir(bm.env.tmp_dir) and os.path.isdir(bm.env.config_dir))
            return super().run_sync(command, timeout, extra_env)

    bm = _manager(base_cfg, LayoutCheckingRunner(), tar=populate_tar)
    bm.setup(archive=archive)

    assert seen and all(seen)


@pytest.mark.parametrize("value, expected", [
    ("--require /root/.openclawd/bionic-bypass.js", True),
    ("--max-old-space-size=512", False),
])
def test_status_node_options_checks_the_shim(base_cfg, stub_runner, value, expected):
    bm = _manager(base_cfg, stub_runner(), session_env={"NODE_OPTIONS": value})
    assert bm.status()["node_options"] is expected
