#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
config.py — Módulo de configuração do openclawd

- Suporta $OPENCLAWD_CONFIG > ~/.config/openclawd/config.yml > /etc/openclawd/config.yml > defaults
- Configuração em YAML
- Permite leitura, escrita, reset e listagem completa da config
- Campos para layout do rootfs, Bionic Bypass, proot e gateway
"""

import os
import yaml

# Caminhos padrão
USER_CONFIG = os.path.expanduser("~/.config/openclawd/config.yml")
SYSTEM_CONFIG = "/etc/openclawd/config.yml"

# Valores padrão (completo)
DEFAULTS = {
    # Diretórios principais
    "base_dir": os.path.expanduser("~/.openclawd/files"),
    "log_dir": os.path.expanduser("~/.openclawd/logs"),
    "distro": "ubuntu",

    # Rootfs
    "rootfs_url": None,
    "rootfs_sha256": None,
    "tar_command": "tar",
    "verify_archive": False,

    # Bionic Bypass
    "shim_namespace": ".openclawd",
    "shim_name": "bionic-bypass.js",
    "profiles": [".bashrc", ".zshrc"],
    "host_home": os.path.expanduser("~"),

    # DNS dentro do proot
    "nameservers": ["8.8.8.8", "8.8.4.4"],

    # Execução
    "runner": "proot",  # proot | host
    "proot_command": "proot",

    # Gateway
    "gateway_command": "openclaw",
    "gateway_args": ["gateway", "--verbose"],
    "gateway_package": "openclaw",
    "dashboard_url": "http://127.0.0.1:18789",
}

_config = DEFAULTS.copy()

def _load_from(path: str) -> dict:
    """Carrega configuração de um arquivo YAML se existir."""
    try:
        if os.path.isfile(path):
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
                if not isinstance(data, dict):
                    return {}
                return data
    except (OSError, yaml.YAMLError):
        pass
    return {}

def load_config() -> dict:
    """Carrega config seguindo a hierarquia: env > user > system > defaults"""
    global _config

    # 1. Variável de ambiente
    env_path = os.getenv("OPENCLAWD_CONFIG")
    if env_path and os.path.exists(env_path):
        _config = {**DEFAULTS, **_load_from(env_path)}
        return _config

    # 2. Configuração do usuário
    if os.path.exists(USER_CONFIG):
        _config = {**DEFAULTS, **_load_from(USER_CONFIG)}
        return _config

    # 3. Configuração global
    if os.path.exists(SYSTEM_CONFIG):
        _config = {**DEFAULTS, **_load_from(SYSTEM_CONFIG)}
        return _config

    # 4. Defaults
    _config = DEFAULTS.copy()
    return _config

def _save(cfg: dict, system: bool = False) -> None:
    """Salva configuração em YAML (usuário ou sistema)."""
    path = SYSTEM_CONFIG if system else USER_CONFIG
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(cfg, f, default_flow_style=False, allow_unicode=True)

def get(key: str, default=None):
    """Obtém valor de uma chave da configuração (com fallback)."""
    if not _config:
        load_config()
    return _config.get(key, DEFAULTS.get(key, default))

def set(key: str, value, system: bool = False):
    """Define valor para uma chave e salva em config.yml."""
    cfg = load_config()
    cfg[key] = value
    _save(cfg, system=system)
    _config.update(cfg)

def all() -> dict:
    """Retorna configuração completa (merge de defaults + arquivo carregado)."""
    return load_config()

def reset(system: bool = False):
    """Restaura configuração para os valores padrão."""
    _save(DEFAULTS.copy(), system=system)
    load_config()

def parse_value(raw: str):
    """Converte o valor vindo da CLI (`config set`) usando a sintaxe YAML."""
    try:
        return yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw

# Carrega config logo no import
load_config()
