#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
environment.py — Layout do ambiente alvo (base B)

    B/rootfs/<distro>/                     rootfs extraído
    B/rootfs/<distro>/bin/bash             shell do rootfs
    B/rootfs/<distro>/root/<ns>/<shim>     Bionic Bypass
    B/rootfs/<distro>/root/.bashrc         profiles alterados (runner proot)
    ~/.bashrc, ~/.zshrc                    profiles alterados (runner host)
    B/tmp/, B/home/, B/config/             diretórios auxiliares
    B/config/resolv.conf                   DNS usado dentro do proot
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional

from openclawd.modules import config, log, utils

logger = log.get_logger("environment")

# HOME do usuário root visto de dentro do proot
GUEST_HOME = "/root"


class TargetEnvironment:
    def __init__(self, base_dir: str, distro: str = "ubuntu",
                 shim_namespace: str = ".openclawd",
                 shim_name: str = "bionic-bypass.js",
                 profiles: Optional[List[str]] = None,
                 nameservers: Optional[List[str]] = None,
                 host_home: Optional[str] = None):
        self.base_dir = os.path.abspath(os.path.expanduser(base_dir))
        self.distro = distro
        self.shim_namespace = shim_namespace
        self.shim_name = shim_name
        self.profiles = list(profiles or [".bashrc", ".zshrc"])
        self.nameservers = list(nameservers or ["8.8.8.8", "8.8.4.4"])
        self.host_home = os.path.abspath(os.path.expanduser(host_home or "~"))

    @classmethod
    def from_config(cls, cfg: Optional[Dict] = None) -> "TargetEnvironment":
        """Monta o layout a partir de um dict explícito com fallback no config.yml."""
        cfg = cfg or {}

        def pick(key):
            value = cfg.get(key)
            return value if value is not None else config.get(key)

        return cls(
            base_dir=pick("base_dir"),
            distro=pick("distro"),
            shim_namespace=pick("shim_namespace"),
            shim_name=pick("shim_name"),
            profiles=pick("profiles"),
            nameservers=pick("nameservers"),
            host_home=pick("host_home"),
        )

    # ---------------------------
    # Caminhos
    # ---------------------------
    @property
    def rootfs_dir(self) -> str:
        return os.path.join(self.base_dir, "rootfs", self.distro)

    @property
    def tmp_dir(self) -> str:
        return os.path.join(self.base_dir, "tmp")

    @property
    def home_dir(self) -> str:
        return os.path.join(self.base_dir, "home")

    @property
    def config_dir(self) -> str:
        return os.path.join(self.base_dir, "config")

    @property
    def app_dir(self) -> str:
        return os.path.join(self.home_dir, self.shim_namespace)

    @property
    def guest_home_dir(self) -> str:
        """HOME do root do rootfs, no sistema de arquivos do host."""
        return os.path.join(self.rootfs_dir, GUEST_HOME.lstrip("/"))

    @property
    def shell_binary(self) -> str:
        return os.path.join(self.rootfs_dir, "bin", "bash")

    @property
    def shim_path(self) -> str:
        return os.path.join(self.guest_home_dir, self.shim_namespace, self.shim_name)

    @property
    def guest_shim_path(self) -> str:
        """Caminho absoluto do shim como o node dentro do proot o enxerga."""
        return "/".join([GUEST_HOME, self.shim_namespace, self.shim_name])

    @property
    def profile_paths(self) -> List[str]:
        return [os.path.join(self.guest_home_dir, p) for p in self.profiles]

    @property
    def host_profile_paths(self) -> List[str]:
        """Profiles do usuário do host (variante Termux, runner host)."""
        return [os.path.join(self.host_home, p) for p in self.profiles]

    @property
    def resolv_conf(self) -> str:
        return os.path.join(self.config_dir, "resolv.conf")

    @property
    def wakelock_script(self) -> str:
        return os.path.join(self.app_dir, "wakelock.sh")

    @property
    def lock_file(self) -> str:
        return os.path.join(self.base_dir, ".openclawd.lock")

    def directories(self) -> List[str]:
        return [self.rootfs_dir, self.tmp_dir, self.home_dir, self.config_dir, self.app_dir]

    # ---------------------------
    # Operações idempotentes
    # ---------------------------
    def setup_directories(self) -> List[str]:
        """Cria (mkdir -p) todos os diretórios do layout. Pode ser chamado N vezes."""
        dirs = self.directories()
        for d in dirs:
            utils.ensure_dir(d)
        logger.debug("Diretórios garantidos em %s", self.base_dir)
        return dirs

    def resolv_conf_content(self) -> str:
        return "".join(f"nameserver {ns}\n" for ns in self.nameservers)

    def write_resolv_conf(self) -> str:
        """Grava config/resolv.conf (substituição completa)."""
        utils.write_file_atomic(self.resolv_conf, self.resolv_conf_content())
        logger.debug("resolv.conf gravado em %s", self.resolv_conf)
        return self.resolv_conf

    def __repr__(self) -> str:
        return f"TargetEnvironment(base_dir={self.base_dir!r}, distro={self.distro!r})"
