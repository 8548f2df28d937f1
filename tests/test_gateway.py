import subprocess

import pytest

from openclawd.modules import gateway
from openclawd.modules.errors import GatewayLaunchError


class FakeProc:
    def __init__(self, argv, env=None):
        self.argv = argv
        self.env = env
        self.terminated = False

    def wait(self):
        return 3

    def terminate(self):
        self.terminated = True


def test_build_env_sets_preload_when_unset():
    env = gateway.build_gateway_env({"PATH": "/bin"}, "--require /x.js")
    assert env == {"PATH": "/bin", "NODE_OPTIONS": "--require /x.js"}


def test_build_env_respects_existing_value():
    base = {"NODE_OPTIONS": "--inspect"}
    env = gateway.build_gateway_env(base, "--require /x.js")
    assert env["NODE_OPTIONS"] == "--inspect"
    assert env is not base


def test_build_env_empty_value_is_unset():
    env = gateway.build_gateway_env({"NODE_OPTIONS": ""}, "--require /x.js")
    assert env["NODE_OPTIONS"] == "--require /x.js"


@pytest.mark.parametrize("response, expected", [
    ((0, "added 1 package\n"), True),
    ((1, "npm ERR! network\n"), False),
    (OSError("npm: not found"), False),
    (subprocess.TimeoutExpired("npm", 5), False),
])
def test_install_gateway(stub_runner, response, expected):
    runner = stub_runner({"npm install -g openclaw": response})
    assert gateway.install_gateway(runner) is expected


def test_launch_foreground_returns_exit_code(stub_runner, monkeypatch):
    procs = []
    monkeypatch.setattr(gateway.subprocess, "Popen",
                        lambda argv, env=None: procs.append(FakeProc(argv, env)) or procs[-1])

    rc = gateway.launch_gateway(stub_runner(), "openclaw", ["gateway", "--port", "18789"],
                                {"NODE_OPTIONS": "--require /r.js"})

    assert rc == 3
    assert procs[0].argv[-1] == "openclaw gateway --port 18789"
    assert procs[0].env["NODE_OPTIONS"] == "--require /r.js"


def test_launch_background_returns_process(stub_runner, monkeypatch):
    monkeypatch.setattr(gateway.subprocess, "Popen", FakeProc)

    proc = gateway.launch_gateway(stub_runner(), "openclaw", [], {}, background=True)

    assert isinstance(proc, FakeProc)
    assert "NODE_OPTIONS" not in proc.env


def test_launch_quotes_arguments(stub_runner, monkeypatch):
    monkeypatch.setattr(gateway.subprocess, "Popen", FakeProc)

    proc = gateway.launch_gateway(stub_runner(), "openclaw", ["--name", "my gw"], {}, background=True)

    assert proc.argv[-1] == "openclaw --name 'my gw'"


def test_launch_failure(stub_runner, monkeypatch):
    def boom(argv, env=None):
        raise FileNotFoundError(2, "No such file or directory", argv[0])

    monkeypatch.setattr(gateway.subprocess, "Popen", boom)

    with pytest.raises(GatewayLaunchError):
        gateway.launch_gateway(stub_runner(), "openclaw", [], {})
