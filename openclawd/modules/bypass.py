#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
bypass.py — Bionic Bypass (shim de compatibilidade para o Node.js)

A libc Bionic do Android bloqueia a chamada usada por os.networkInterfaces();
o gateway quebra ao iniciar. O shim é carregado via NODE_OPTIONS="--require ..."
e devolve uma interface loopback sintética quando a chamada real falha.

- install_shim: grava o shim (substituição completa, atômica)
- activate_shim: acrescenta o bloco de ativação aos profiles existentes, uma vez só
- is_activated: único lugar que conhece o marcador de idempotência
"""

from __future__ import annotations

import json
import os
from typing import Iterable, Optional, Set

from openclawd.modules import log, utils
from openclawd.modules.environment import TargetEnvironment
from openclawd.modules.errors import PatchError

logger = log.get_logger("bypass")

PRELOAD_VAR = "NODE_OPTIONS"
ACTIVATION_COMMENT = "# OpenClawd Bionic Bypass"
# o primeiro está na linha de comentário; o segundo cobre exports feitos à mão
ACTIVATION_MARKERS = ("OpenClawd Bionic Bypass", "bionic-bypass")

LOOPBACK_FALLBACK = {
    "lo": [
        {
            "address": "127.0.0.1",
            "netmask": "255.0.0.0",
            "family": "IPv4",
            "mac": "00:00:00:00:00:00",
            "internal": True,
            "cidr": "127.0.0.1/8",
        }
    ]
}

_SHIM_TEMPLATE = """\
// OpenClawd Bionic Bypass - Auto-generated
const os = require('os');
const originalNetworkInterfaces = os.networkInterfaces;

os.networkInterfaces = function() {
  try {
    const interfaces = originalNetworkInterfaces.call(os);
    if (interfaces && Object.keys(interfaces).length > 0) {
      return interfaces;
    }
  } catch (e) {
    // Bionic blocked the call, use fallback
  }

  // Return mock loopback interface
  return %s;
};
"""

WAKELOCK_SCRIPT = """\
#!/bin/bash
# Keep Termux awake while OpenClaw runs
termux-wake-lock
trap "termux-wake-unlock" EXIT
exec "$@"
"""


def shim_content() -> str:
    """Conteúdo fixo do shim (mesmos bytes a cada chamada)."""
    fallback = json.dumps(LOOPBACK_FALLBACK, indent=2).replace("\n", "\n  ")
    return _SHIM_TEMPLATE % fallback


def node_options(shim_path: str) -> str:
    return f"--require {shim_path}"


def is_activated(content: str) -> bool:
    return any(marker in content for marker in ACTIVATION_MARKERS)


def activation_block(shim_path: str) -> str:
    export_line = f'export {PRELOAD_VAR}="{node_options(shim_path)}"'
    return f"\n{ACTIVATION_COMMENT}\n{export_line}\n"


def install_shim(env: TargetEnvironment) -> str:
    """Grava o shim em env.shim_path. Idempotente: sempre o mesmo conteúdo, nunca append."""
    path = env.shim_path
    try:
        utils.write_file_atomic(path, shim_content(), mode=0o644)
    except OSError as e:
        raise PatchError(f"Falha ao gravar o shim em {path}: {e}") from e
    logger.info("Bionic Bypass instalado em %s", path)
    return path


def read_profile(path: str) -> str:
    """Lê um profile sem falhar em bytes que não são UTF-8 (surrogateescape)."""
    with open(path, "r", encoding="utf-8", errors="surrogateescape") as f:
        return f.read()


def activate_profile(path: str, shim_path: str) -> bool:
    """
    Acrescenta o bloco de ativação a um profile. Retorna True se o arquivo
    foi alterado; profiles inexistentes nunca são criados.
    Symlinks (gerenciadores de dotfiles) são seguidos: o alvo é alterado e o
    link continua no lugar.
    """
    if not os.path.isfile(path):
        logger.debug("Profile ausente, ignorado: %s", path)
        return False
    target = os.path.realpath(path)
    try:
        content = read_profile(target)
        if is_activated(content):
            logger.debug("Profile já ativado: %s", path)
            return False
        mode = os.stat(target).st_mode & 0o7777
        utils.write_file_atomic(target, content + activation_block(shim_path),
                                mode=mode, errors="surrogateescape")
    except (OSError, UnicodeError) as e:
        raise PatchError(f"Falha ao alterar {path}: {e}") from e
    logger.info("Atualizado %s", os.path.basename(path))
    return True


def activate_shim(env: TargetEnvironment, profiles: Optional[Iterable[str]] = None,
                  shim_path: Optional[str] = None) -> Set[str]:
    """
    Ativa o shim em cada profile candidato; retorna os arquivos alterados.
    Padrão: profiles do rootfs apontando para o caminho do shim visto no proot.
    """
    shim_path = shim_path or env.guest_shim_path
    changed = set()
    for path in (profiles if profiles is not None else env.profile_paths):
        if activate_profile(path, shim_path):
            changed.add(path)
    return changed


def install_wakelock_script(env: TargetEnvironment) -> str:
    """Script do Termux que segura o wake-lock enquanto o gateway roda."""
    path = env.wakelock_script
    try:
        utils.write_file_atomic(path, WAKELOCK_SCRIPT, mode=0o755)
    except OSError as e:
        raise PatchError(f"Falha ao gravar {path}: {e}") from e
    logger.debug("Wake-lock script criado em %s", path)
    return path
