#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cli.py — CLI do openclawd (rootfs + Bionic Bypass + gateway OpenClaw)

Comandos: setup, status, bypass, start, config, help
"""

from __future__ import annotations
import argparse
import json
import sys
from typing import Any

from openclawd import __version__
from openclawd.modules import config as config_mod
from openclawd.modules import log as log_mod
from openclawd.modules.bootstrap import BootstrapManager
from openclawd.modules.errors import (
    GatewayLaunchError,
    OpenclawdError,
    PreconditionError,
    ExtractionFailed,
)

# ANSI colors simples
C = {
    "reset": "\033[0m",
    "red": "\033[31m",
    "green": "\033[32m",
    "yellow": "\033[33m",
    "blue": "\033[34m",
    "magenta": "\033[35m",
    "cyan": "\033[36m",
    "bold": "\033[1m",
}

def color(text: str, col: str) -> str:
    return f"{C.get(col, '')}{text}{C['reset']}"

logger = log_mod.get_logger("cli")

BANNER = f"""
╔═══════════════════════════════════════════╗
║     OpenClawd v{__version__:<27}║
║     AI Gateway for Android                ║
╚═══════════════════════════════════════════╝
"""

# Small helpers
def _print_json_or_plain(data: Any, as_json: bool) -> None:
    if as_json:
        print(json.dumps(data, ensure_ascii=False, indent=2))
    else:
        if isinstance(data, dict):
            for k,v in data.items():
                print(f"{color(str(k), 'cyan')}: {v}")
        elif isinstance(data, list):
            for item in data:
                print(item)
        else:
            print(data)

def _setup_logging(verbose: bool) -> None:
    log_mod.set_level("debug" if verbose else "info")

def _mark(ok: bool, yes: str = "✓ installed", no: str = "✗ missing") -> str:
    return color(yes, "green") if ok else color(no, "red")

def _manager(args) -> BootstrapManager:
    cfg = {}
    if getattr(args, "base_dir", None):
        cfg["base_dir"] = args.base_dir
    if getattr(args, "runner", None):
        cfg["runner"] = args.runner
    if getattr(args, "verify_archive", False):
        cfg["verify_archive"] = True
    return BootstrapManager(cfg)

def _print_remedy(e: PreconditionError) -> None:
    if e.remedy:
        print(f"Execute: {color(e.remedy, 'cyan')}")

# ---------------------------
# Command handlers
# ---------------------------

def cmd_setup(args):
    """
    openclawd setup [--archive ARQ | --url URL [--sha256 H]] [--install-gateway] [--verify-archive]
    """
    bm = _manager(args)
    bm.add_progress_cb(lambda ev, data: logger.debug("progresso: %s", ev))
    try:
        report = bm.setup(archive=args.archive, url=args.url, sha256=args.sha256,
                          install_gateway=args.install_gateway, timeout=args.timeout)
    except PreconditionError as e:
        print(color(f"[ERRO] {e}", "red"), file=sys.stderr)
        _print_remedy(e)
        return 1
    except ExtractionFailed as e:
        print(color(f"[ERRO] Extração do rootfs falhou (código {e.exit_code})", "red"), file=sys.stderr)
        print(e.output, file=sys.stderr)
        return 2
    except OpenclawdError as e:
        logger.exception("Setup falhou")
        print(color(f"[ERRO] Setup falhou: {e}", "red"), file=sys.stderr)
        return 2

    if getattr(args, "json", False):
        _print_json_or_plain(report.to_dict(), True)
        return 0 if report.complete else 1

    print(color("═══════════════════════════════════════════", "magenta"))
    print(color("Setup complete!" if report.complete else "Setup incompleto", "green" if report.complete else "yellow"))
    print("")
    if not report.gateway_binary_present:
        print(f"  OpenClaw não encontrado. Instale com: npm install -g {bm.gateway_package}")
    print("Next steps:")
    print("  1. Restart your terminal (or run: source ~/.bashrc)")
    print("  2. Run: openclaw onboarding")
    print("  3. Start gateway: openclawd start")
    print("")
    print(f"Dashboard will be at: {config_mod.get('dashboard_url')}")
    print(color("═══════════════════════════════════════════", "magenta"))
    return 0 if report.complete else 1

def cmd_status(args):
    """
    openclawd status [--json]
    """
    bm = _manager(args)
    st = bm.status()
    if getattr(args, "json", False):
        _print_json_or_plain(st, True)
        return 0

    r = st["readiness"]
    deps = st["dependencies"]
    print("Installation Status:\n")
    print("Dependencies:")
    print(f"  Node.js:        {_mark(deps['node'])}")
    print(f"  npm:            {_mark(deps['npm'])}")
    print(f"  git:            {_mark(deps['git'])}")
    print(f"  proot:          {_mark(deps['proot'])}")
    print(f"  pkg manager:    {_mark(deps['package_manager'], '✓ available', '✗ missing')}")
    print("")
    print("OpenClawd:")
    print(f"  Rootfs:         {_mark(r['rootfs_present'])}  ({st['rootfs_path']})")
    print(f"  /bin/bash:      {_mark(r['shell_binary_present'])}")
    print(f"  Node (rootfs):  {_mark(r['runtime_present'])}")
    print(f"  Bionic Bypass:  {_mark(r['compatibility_shim_present'], '✓ installed', '✗ not installed')}")
    print(f"  NODE_OPTIONS:   {_mark(bool(st['activated_profiles']), '✓ configured', '✗ not set')}")
    print(f"  OpenClaw:       {_mark(r['gateway_binary_present'], '✓ installed', '✗ not installed')}")
    print("")
    if r["complete"] and r["gateway_binary_present"]:
        print(color("Status: Ready to run!", "green"))
        print("Start with: openclawd start")
    elif r["complete"]:
        print(color("Status: Environment ready, OpenClaw missing", "yellow"))
        print("Install with: npm install -g openclaw")
    else:
        print(color(f"Status: Setup incomplete ({st['stage']})", "yellow"))
        print("Run: openclawd setup")
    return 0

def cmd_bypass(args):
    """
    openclawd bypass
    """
    bm = _manager(args)
    try:
        res = bm.bypass()
    except OpenclawdError as e:
        logger.exception("Bypass falhou")
        print(color(f"[ERRO] Bypass falhou: {e}", "red"), file=sys.stderr)
        return 2
    if getattr(args, "json", False):
        _print_json_or_plain(res, True)
        return 0
    print(f"Installed at: {res['shim']}")
    for p in res["profiles"]:
        print(f"Updated {p}")
    print("Restart your terminal to apply changes.")
    return 0

def cmd_start(args):
    """
    openclawd start [--background]
    """
    bm = _manager(args)
    try:
        print("Starting OpenClaw gateway...\n")
        rc = bm.start_gateway(background=args.background)
    except PreconditionError as e:
        print(color(f"[ERRO] {e}", "red"), file=sys.stderr)
        _print_remedy(e)
        return 1
    except GatewayLaunchError as e:
        print(color(f"[ERRO] {e}", "red"), file=sys.stderr)
        return 1
    except OpenclawdError as e:
        logger.exception("Start falhou")
        print(color(f"[ERRO] {e}", "red"), file=sys.stderr)
        return 2
    if args.background:
        print(f"Gateway em segundo plano (pid {rc.pid})")
        return 0
    return rc

def cmd_config(args):
    """
    openclawd config get <key>
    openclawd config set <key> <value> [--system]
    openclawd config list
    openclawd config reset [--system]
    """
    cfg = config_mod
    act = args.action
    if act == "get":
        if not args.key:
            print("Uso: openclawd config get <chave>")
            return 1
        print(cfg.get(args.key))
        return 0
    elif act == "set":
        if not args.key or args.value is None:
            print("Uso: openclawd config set <chave> <valor> [--system]")
            return 1
        cfg.set(args.key, cfg.parse_value(args.value), system=args.system)
        print(f"[OK] Configuração '{args.key}' definida para '{args.value}' ({'global' if args.system else 'usuário'})")
        return 0
    elif act == "list":
        allcfg = cfg.all()
        for k, v in allcfg.items():
            print(f"{k}: {v}")
        return 0
    elif act == "reset":
        cfg.reset(system=args.system)
        print(f"[OK] Configuração restaurada para padrões {'globais' if args.system else 'de usuário'}")
        return 0
    else:
        print("Ação desconhecida:", act)
        return 1

def cmd_help(args):
    """
    openclawd help
    """
    build_parser().print_help()
    return 0

# -----------------------------------------------------------------------------
# Build argument parser and connect commands
# -----------------------------------------------------------------------------

def build_parser():
    p = argparse.ArgumentParser(prog="openclawd", description="OpenClawd - AI Gateway for Android")
    p.add_argument("--verbose", "-v", action="store_true", help="Modo verboso")
    p.add_argument("--json", action="store_true", help="Imprime JSON quando aplicável")
    p.add_argument("--base-dir", default=None, help="Diretório base do ambiente (padrão: config)")
    p.add_argument("--runner", choices=["proot", "host"], default=None, help="Onde executar comandos")
    sub = p.add_subparsers(dest="command")

    # setup
    ss = sub.add_parser("setup", aliases=["install"], help="Full installation and configuration")
    ss.add_argument("--archive", "-a", default=None, help="Tarball do rootfs (.tar.gz)")
    ss.add_argument("--url", default=None, help="Baixar o tarball do rootfs desta URL")
    ss.add_argument("--sha256", default=None, help="SHA256 esperado do tarball")
    ss.add_argument("--install-gateway", action="store_true", help="npm install -g openclaw")
    ss.add_argument("--verify-archive", action="store_true", help="Rejeitar tarballs com caminhos fora do rootfs")
    ss.add_argument("--timeout", type=float, default=None, help="Tempo máximo da extração (s)")
    ss.set_defaults(func=cmd_setup)

    # status
    st = sub.add_parser("status", help="Check installation status")
    st.set_defaults(func=cmd_status)

    # bypass
    sb = sub.add_parser("bypass", help="Install/update Bionic Bypass only")
    sb.set_defaults(func=cmd_bypass)

    # start
    sr = sub.add_parser("start", aliases=["run"], help="Start OpenClaw gateway")
    sr.add_argument("--background", action="store_true", help="Não esperar o gateway terminar")
    sr.set_defaults(func=cmd_start)

    # config
    sc = sub.add_parser("config", help="Gerenciar configuração do openclawd")
    sc.add_argument("action", choices=["get","set","list","reset"], help="Ação sobre a configuração")
    sc.add_argument("key", nargs="?", help="Chave da configuração")
    sc.add_argument("value", nargs="?", help="Valor (para set, sintaxe YAML)")
    sc.add_argument("--system", action="store_true", help="Salvar/operar no config global (/etc)")
    sc.set_defaults(func=cmd_config)

    # help
    sh = sub.add_parser("help", help="Show this help message")
    sh.set_defaults(func=cmd_help)

    return p

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "json", False):
        print(BANNER)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(0)

    _setup_logging(getattr(args, "verbose", False))

    try:
        rc = args.func(args)
        if isinstance(rc, int):
            sys.exit(rc)
        sys.exit(0)
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        logger.exception("Erro ao executar comando")
        print(color(f"[ERRO] {e}", "red"), file=sys.stderr)
        sys.exit(1)

if __name__ == "__main__":
    main()
