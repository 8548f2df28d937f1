#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
rootfs.py — Provisionamento do rootfs

- Extrai o tarball do rootfs com `tar` (sem --strip-components: caminhos preservados)
- Falha de extração vira ExtractionFailed com código e saída (stdout+stderr)
- Remove o tarball após sucesso (centenas de MB); falha na remoção só gera aviso
- Download opcional do tarball (requests + SHA256)
- Validação opcional contra path traversal antes de extrair
"""

from __future__ import annotations

import os
import subprocess
import tarfile
from typing import Optional

from openclawd.modules import log, utils
from openclawd.modules.environment import TargetEnvironment
from openclawd.modules.errors import ExtractionFailed, ProvisionError

logger = log.get_logger("rootfs")


def extract_command(tar: str, archive_path: str, dest: str) -> list:
    return [tar, "xzf", archive_path, "-C", dest, "--strip-components=0"]


def validate_archive_members(archive_path: str, dest: str) -> int:
    """
    Garante que nenhum membro do tarball escape de `dest` (../, caminhos absolutos
    ou hardlinks para fora). Symlinks absolutos são normais num rootfs e passam.
    Retorna o número de membros verificados.
    """
    root = os.path.realpath(dest)
    count = 0
    try:
        with tarfile.open(archive_path, "r:*") as tar:
            for member in tar:
                names = [member.name]
                if member.islnk():
                    names.append(member.linkname)
                for name in names:
                    target = os.path.realpath(os.path.join(root, name))
                    if os.path.isabs(name) or os.path.commonpath([root, target]) != root:
                        raise ProvisionError(f"Membro fora do rootfs no arquivo {archive_path}: {name}")
                count += 1
    except (tarfile.TarError, OSError) as e:
        raise ProvisionError(f"Não foi possível ler {archive_path}: {e}") from e
    logger.debug("%d membros verificados em %s", count, archive_path)
    return count


def extract_rootfs(env: TargetEnvironment, archive_path: str, tar: str = "tar",
                   timeout: Optional[float] = None, verify: bool = False) -> str:
    """
    Extrai `archive_path` em env.rootfs_dir e remove o arquivo.
    Reexecutar sobrescreve os arquivos existentes; quem chama deve olhar
    ReadinessReport.rootfs_present antes.
    """
    if not os.path.isfile(archive_path):
        raise ProvisionError(f"Arquivo do rootfs não encontrado: {archive_path}")

    dest = env.rootfs_dir
    utils.ensure_dir(dest)

    if verify:
        validate_archive_members(archive_path, dest)

    logger.info("Extraindo %s → %s", archive_path, dest)
    cmd = extract_command(tar, archive_path, dest)
    try:
        rc, output, _ = log.run_cmd(cmd, merge_stderr=True, timeout=timeout)
    except OSError as e:
        raise ProvisionError(f"Ferramenta de extração indisponível ({tar}): {e}") from e
    except subprocess.TimeoutExpired as e:
        raise ProvisionError(f"Extração excedeu {timeout}s: {archive_path}") from e

    if rc != 0:
        raise ExtractionFailed(rc, output)

    try:
        os.remove(archive_path)
        logger.debug("Tarball removido: %s", archive_path)
    except OSError as e:
        logger.warning("Não foi possível remover %s: %s", archive_path, e)

    logger.info("Rootfs extraído em %s", dest)
    return dest


def fetch_rootfs(url: str, dest_dir: str, sha256: Optional[str] = None) -> str:
    """Baixa o tarball do rootfs para dest_dir (cache por nome de arquivo)."""
    fn = os.path.basename(url.split("?", 1)[0]) or "rootfs.tar.gz"
    return utils.download(url, os.path.join(dest_dir, fn), expected_sha256=sha256)
