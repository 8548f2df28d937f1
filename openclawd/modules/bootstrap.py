#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
modules/bootstrap.py  —  Bootstrap manager

Orquestra o provisionamento do ambiente alvo:
- Status recalculado a cada consulta (sondas em arquivos + runner); nada persistido
- Extração do rootfs quando ausente (arquivo local ou download com SHA256)
- Bionic Bypass: shim + ativação nos profiles, ambos idempotentes
- Instalação opcional do gateway (npm) e lançamento com NODE_OPTIONS
- Lock exclusivo no diretório base durante as etapas que alteram o ambiente
- Hooks de progresso (callbacks) que CLI/app podem usar

Máquina de estados (derivada, nunca gravada):
    unprovisioned → rootfs_only → rootfs_patched → complete
Cada etapa é idempotente: se o processo morrer no meio, basta rodar setup() de novo.

Uso rápido:
    from openclawd.modules.bootstrap import BootstrapManager
    bm = BootstrapManager({"base_dir": "/data/data/app/files"})
    bm.setup(archive="/sdcard/ubuntu-rootfs.tar.gz")
    bm.status()
"""

from __future__ import annotations

import contextlib
import fcntl
import os
import time
from typing import Callable, Dict, List, Optional

from openclawd.modules import config as config_mod
from openclawd.modules import bypass, gateway, log, rootfs
from openclawd.modules.environment import TargetEnvironment
from openclawd.modules.errors import PreconditionError
from openclawd.modules.probe import EnvironmentProbe
from openclawd.modules.runner import CommandRunner, make_runner
from openclawd.modules.status import ReadinessReport, compute_readiness, derive_stage

logger = log.get_logger("bootstrap")


def _now_ts() -> int:
    return int(time.time())


class BootstrapManager:
    def __init__(self, cfg: Optional[Dict] = None, runner: Optional[CommandRunner] = None,
                 session_env: Optional[Dict[str, str]] = None, simulate: bool = False):
        cfg = cfg or {}

        def pick(key):
            value = cfg.get(key)
            return value if value is not None else config_mod.get(key)

        self.env = TargetEnvironment.from_config(cfg)
        self.tar_command = pick("tar_command")
        self.verify_archive = bool(pick("verify_archive"))
        self.rootfs_url = pick("rootfs_url")
        self.rootfs_sha256 = pick("rootfs_sha256")
        self.gateway_command = pick("gateway_command")
        self.gateway_args = list(pick("gateway_args") or [])
        self.gateway_package = pick("gateway_package")
        self.runner = runner or make_runner(pick("runner"), self.env,
                                            proot=pick("proot_command"), simulate=simulate)
        self.probe = EnvironmentProbe(self.env, self.runner, gateway_command=self.gateway_command)
        # ambiente da sessão atual: recebe NODE_OPTIONS após a ativação e
        # é repassado explicitamente ao processo do gateway
        self.session_env = dict(os.environ if session_env is None else session_env)
        self._progress_callbacks: List[Callable[[str, Dict], None]] = []

        logger.debug("BootstrapManager: base=%s rootfs=%s runner=%s",
                     self.env.base_dir, self.env.rootfs_dir, self.runner.name)

    # ---------------------------
    # Progress hooks
    # ---------------------------
    def add_progress_cb(self, cb: Callable[[str, Dict], None]) -> None:
        """Register a callback to receive progress updates: cb(event_name, data)."""
        if callable(cb):
            self._progress_callbacks.append(cb)

    def _emit(self, event: str, data: Optional[Dict] = None) -> None:
        payload = data or {}
        payload["_ts"] = _now_ts()
        logger.debug("emit: %s %s", event, payload)
        for cb in list(self._progress_callbacks):
            try:
                cb(event, payload)
            except Exception:
                logger.exception("progress cb failed")

    # ---------------------------
    # Lock
    # ---------------------------
    @contextlib.contextmanager
    def _exclusive(self):
        """flock exclusivo em B/.openclawd.lock: serializa setups concorrentes."""
        os.makedirs(self.env.base_dir, exist_ok=True)
        with open(self.env.lock_file, "a", encoding="utf-8") as fh:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(fh.fileno(), fcntl.LOCK_UN)

    # ---------------------------
    # Consultas
    # ---------------------------
    @property
    def require_path(self) -> str:
        """Caminho do shim como o node que vai rodar o enxerga."""
        if self.runner.in_rootfs:
            return self.env.guest_shim_path
        return self.env.shim_path

    def readiness(self) -> ReadinessReport:
        return compute_readiness(self.probe)

    @property
    def profile_paths(self) -> List[str]:
        """Profiles alvo da ativação: os do rootfs (proot) ou os do usuário do host."""
        if self.runner.in_rootfs:
            return self.env.profile_paths
        return self.env.host_profile_paths

    def activated_profiles(self) -> List[str]:
        found = []
        for path in self.profile_paths:
            try:
                if bypass.is_activated(bypass.read_profile(path)):
                    found.append(path)
            except (OSError, ValueError):
                continue
        return found

    def status(self) -> Dict:
        """Somente leitura: relatório + ferramentas do host. Não cria nada."""
        report = self.readiness()
        activated = self.activated_profiles()
        deps = self.probe.host_dependencies()
        return {
            "readiness": report.to_dict(),
            "stage": derive_stage(report, bool(activated)).value,
            "package_manager": deps["package_manager"],
            "git": deps["git"],
            "dependencies": deps,
            "activated_profiles": activated,
            "node_options": bypass.is_activated(self.session_env.get(bypass.PRELOAD_VAR, "")),
            "rootfs_path": self.env.rootfs_dir,
            "shim_path": self.env.shim_path,
        }

    # ---------------------------
    # Etapas
    # ---------------------------
    def ensure_layout(self) -> None:
        self.env.setup_directories()
        self.env.write_resolv_conf()

    def obtain_archive(self, archive: Optional[str] = None, url: Optional[str] = None,
                       sha256: Optional[str] = None) -> str:
        if archive:
            return archive
        url = url or self.rootfs_url
        if not url:
            raise PreconditionError(
                "Rootfs ausente e nenhum arquivo foi informado",
                remedy="openclawd setup --archive <rootfs.tar.gz> (ou --url <URL>)",
            )
        self._emit("rootfs.download.start", {"url": url})
        path = rootfs.fetch_rootfs(url, self.env.tmp_dir, sha256 or self.rootfs_sha256)
        self._emit("rootfs.download.done", {"path": path})
        return path

    def extract(self, archive: str, timeout: Optional[float] = None) -> str:
        self._emit("rootfs.extract.start", {"archive": archive})
        try:
            dest = rootfs.extract_rootfs(self.env, archive, tar=self.tar_command,
                                         timeout=timeout, verify=self.verify_archive)
        except Exception as e:
            self._emit("rootfs.extract.error", {"archive": archive, "err": str(e)})
            raise
        self._emit("rootfs.extract.done", {"path": dest})
        return dest

    def _install_bypass(self) -> Dict:
        self._emit("bypass.start", {})
        shim = bypass.install_shim(self.env)
        changed = bypass.activate_shim(self.env, self.profile_paths, shim_path=self.require_path)
        # a sessão atual enxerga a ativação sem abrir um shell novo
        self.session_env.setdefault(bypass.PRELOAD_VAR, bypass.node_options(self.require_path))
        self._emit("bypass.done", {"shim": shim, "profiles": sorted(changed)})
        return {"shim": shim, "profiles": sorted(changed)}

    # ---------------------------
    # Operações públicas
    # ---------------------------
    def setup(self, archive: Optional[str] = None, url: Optional[str] = None,
              sha256: Optional[str] = None, install_gateway: bool = False,
              timeout: Optional[float] = None) -> ReadinessReport:
        """
        Leva o ambiente até `complete`:
          0) diretórios do layout
          1) rootfs ausente (ou sem /bin/bash) -> obtém o tarball e extrai; falha aborta
          2) diretórios + resolv.conf
          3) shim + ativação nos profiles
          4) (opcional) npm install -g openclaw
        Retorna o relatório final, recalculado.
        """
        with self._exclusive():
            self._emit("setup.start", {"base": self.env.base_dir})
            # tmp/ e config/ precisam existir antes das sondas (binds do proot)
            self.env.setup_directories()
            report = self.readiness()
            if not (report.rootfs_present and report.shell_binary_present):
                path = self.obtain_archive(archive, url, sha256)
                self.extract(path, timeout=timeout)
            else:
                logger.info("Rootfs já presente em %s", self.env.rootfs_dir)

            self.ensure_layout()
            self._install_bypass()
            if not self.runner.in_rootfs:
                # Termux: script de wake-lock para o gateway
                bypass.install_wakelock_script(self.env)

            if install_gateway and not self.probe.gateway_present():
                self._emit("gateway.install.start", {"package": self.gateway_package})
                ok = gateway.install_gateway(self.runner, self.gateway_package)
                self._emit("gateway.install.done", {"ok": ok})
                if not ok:
                    logger.warning("Instale manualmente: npm install -g %s", self.gateway_package)

            final = self.readiness()
            self._emit("setup.done", final.to_dict())
            return final

    def bypass(self) -> Dict:
        """Somente o Bionic Bypass (shim + profiles)."""
        with self._exclusive():
            self.env.setup_directories()
            return self._install_bypass()

    def start_gateway(self, background: bool = False):
        """
        Inicia o gateway. Shim ausente é reinstalado; gateway ausente é erro
        (PreconditionError), sem nova tentativa.
        """
        if not self.probe.shim_present():
            logger.warning("Bionic Bypass não instalado. Instalando antes de iniciar...")
            self.bypass()

        if self.probe.gateway_path() is None:
            raise PreconditionError(
                "OpenClaw não está instalado.",
                remedy=f"npm install -g {self.gateway_package}",
            )

        env = gateway.build_gateway_env(self.session_env, bypass.node_options(self.require_path))
        self._emit("gateway.start", {"command": self.gateway_command})
        return gateway.launch_gateway(self.runner, self.gateway_command, self.gateway_args,
                                      env, background=background)

