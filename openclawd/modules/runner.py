#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
runner.py — Execução de comandos no ambiente alvo

- ProotRunner: executa dentro do rootfs via proot (app Android)
- HostRunner: executa direto no host (Termux, CLI)
- Modo simulate: apenas loga, retorna código 0 e saída vazia
- Contrato síncrono: run_sync(command) -> (returncode, saída capturada)
"""

from __future__ import annotations

import os
import shutil
import subprocess
from typing import Dict, List, Optional, Tuple

from openclawd.modules import log
from openclawd.modules.environment import GUEST_HOME, TargetEnvironment

logger = log.get_logger("runner")

GUEST_PATH = "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"


class CommandRunner:
    """Base: subclasses definem como um comando de shell vira argv."""

    name = "base"
    # comandos enxergam o rootfs como / (profiles e shim do guest)
    in_rootfs = False

    def __init__(self, simulate: bool = False):
        self.simulate = simulate

    def command(self, command: str, extra_env: Optional[Dict[str, str]] = None) -> List[str]:
        raise NotImplementedError

    def process_env(self, extra_env: Optional[Dict[str, str]] = None,
                    base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Ambiente do processo filho no host."""
        env = dict(os.environ if base is None else base)
        env.update(extra_env or {})
        return env

    def available(self) -> bool:
        return True

    def run_sync(self, command: str, timeout: Optional[float] = None,
                 extra_env: Optional[Dict[str, str]] = None) -> Tuple[int, str]:
        """
        Executa `command` e espera terminar. Retorna (rc, stdout+stderr).
        OSError / TimeoutExpired sobem para quem chamou (as sondas os absorvem).
        """
        argv = self.command(command, extra_env)
        if self.simulate:
            logger.info("[simulate] run: %s", command)
            return 0, ""
        logger.debug("%s.run_sync: %s", self.name, command)
        proc = subprocess.run(
            argv,
            env=self.process_env(extra_env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
        )
        return proc.returncode, proc.stdout or ""


class HostRunner(CommandRunner):
    name = "host"

    def __init__(self, shell: str = "bash", simulate: bool = False):
        super().__init__(simulate=simulate)
        self.shell = shell

    def command(self, command: str, extra_env: Optional[Dict[str, str]] = None) -> List[str]:
        return [self.shell, "-lc", command]

    def available(self) -> bool:
        return shutil.which(self.shell) is not None


class ProotRunner(CommandRunner):
    name = "proot"
    in_rootfs = True

    def __init__(self, env: TargetEnvironment, proot: str = "proot", simulate: bool = False):
        super().__init__(simulate=simulate)
        self.env = env
        self.proot = proot

    def _binds(self) -> List[str]:
        binds = ["/dev", "/proc", "/sys"]
        if os.path.exists(self.env.resolv_conf):
            binds.append(f"{self.env.resolv_conf}:/etc/resolv.conf")
        binds.append(f"{self.env.tmp_dir}:/tmp")
        return binds

    def command(self, command: str, extra_env: Optional[Dict[str, str]] = None) -> List[str]:
        argv = [self.proot, "--link2symlink", "-0", "-r", self.env.rootfs_dir]
        for b in self._binds():
            argv += ["-b", b]
        argv += ["-w", GUEST_HOME]
        # ambiente limpo: o host (Android) não vaza para dentro do rootfs
        argv += ["/usr/bin/env", "-i", f"HOME={GUEST_HOME}", f"PATH={GUEST_PATH}",
                 "TERM=xterm-256color", "LANG=C.UTF-8"]
        argv += [f"{k}={v}" for k, v in sorted((extra_env or {}).items())]
        argv += ["/bin/bash", "-lc", command]
        return argv

    def process_env(self, extra_env: Optional[Dict[str, str]] = None,
                    base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        env = dict(os.environ if base is None else base)
        env["PROOT_TMP_DIR"] = self.env.tmp_dir
        return env

    def available(self) -> bool:
        return shutil.which(self.proot) is not None or os.path.isfile(self.proot)


def make_runner(kind: str, env: TargetEnvironment, proot: str = "proot",
                simulate: bool = False) -> CommandRunner:
    """Fábrica usada pelo BootstrapManager (`runner:` no config.yml)."""
    if kind == "proot":
        return ProotRunner(env, proot=proot, simulate=simulate)
    if kind == "host":
        return HostRunner(simulate=simulate)
    raise ValueError(f"Runner desconhecido: {kind}")
