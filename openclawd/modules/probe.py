"""Sondas do ambiente alvo: sem efeitos colaterais, sem cache.

Cada chamada reexecuta a verificação; falhas do runner viram
ProbeResult.failure(...) e nunca exceção.
"""

from __future__ import annotations

import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict, Optional

from openclawd.modules import log
from openclawd.modules.environment import TargetEnvironment
from openclawd.modules.errors import ProbeError
from openclawd.modules.runner import CommandRunner

logger = log.get_logger("probe")

RUNTIME_PROBE = "node --version"
GATEWAY_PROBE = "command -v {name}"

HOST_PACKAGE_MANAGERS = ("pkg", "apt-get", "apt")
HOST_TOOLS = ("node", "npm", "git", "proot")


@dataclass(frozen=True)
class ProbeResult:
    ok: bool
    output: str = ""
    error: Optional[ProbeError] = None

    @classmethod
    def success(cls, output: str) -> "ProbeResult":
        return cls(True, output)

    @classmethod
    def failure(cls, reason: str) -> "ProbeResult":
        return cls(False, "", ProbeError(reason))

    @property
    def reason(self) -> str:
        return str(self.error) if self.error else ""


def runtime_version_ok(output: str) -> bool:
    """`node --version` responde algo como 'v20.11.1'."""
    return output.strip().startswith("v")


def gateway_path_ok(output: str) -> bool:
    """`command -v` imprime o caminho resolvido (ou nada)."""
    return bool(output.strip())


class EnvironmentProbe:
    def __init__(self, env: TargetEnvironment, runner: CommandRunner,
                 gateway_command: str = "openclaw", timeout: Optional[float] = None):
        self.env = env
        self.runner = runner
        self.gateway_command = gateway_command
        self.timeout = timeout

    @staticmethod
    def file_exists(path: str) -> bool:
        return os.path.exists(path)

    def command_in_sandbox(self, command: str) -> ProbeResult:
        try:
            rc, out = self.runner.run_sync(command, timeout=self.timeout)
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Sonda '%s' indisponível: %s", command, e)
            return ProbeResult.failure(f"{command}: {e}")
        if rc != 0:
            logger.debug("Sonda '%s' retornou %s", command, rc)
            return ProbeResult.failure(f"{command}: código {rc}: {out.strip()}")
        return ProbeResult.success(out)

    # ---------------------------
    # Verificações derivadas
    # ---------------------------
    def rootfs_present(self) -> bool:
        return self.file_exists(self.env.rootfs_dir)

    def shell_binary_present(self) -> bool:
        return self.file_exists(self.env.shell_binary)

    def shim_present(self) -> bool:
        return self.file_exists(self.env.shim_path)

    def runtime_present(self) -> bool:
        res = self.command_in_sandbox(RUNTIME_PROBE)
        return res.ok and runtime_version_ok(res.output)

    def gateway_path(self) -> Optional[str]:
        res = self.command_in_sandbox(GATEWAY_PROBE.format(name=self.gateway_command))
        if res.ok and gateway_path_ok(res.output):
            return res.output.strip().splitlines()[-1]
        return None

    def gateway_present(self) -> bool:
        return self.gateway_path() is not None

    # ---------------------------
    # Host (fora do rootfs)
    # ---------------------------
    @staticmethod
    def host_tool_available(name: str) -> bool:
        return shutil.which(name) is not None

    def host_package_manager(self) -> Optional[str]:
        for pm in HOST_PACKAGE_MANAGERS:
            if self.host_tool_available(pm):
                return pm
        return None

    def host_dependencies(self) -> Dict[str, bool]:
        deps = {tool: self.host_tool_available(tool) for tool in HOST_TOOLS}
        deps["package_manager"] = self.host_package_manager() is not None
        return deps
