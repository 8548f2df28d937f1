"""Gateway OpenClaw: montagem do ambiente, instalação e lançamento.

O gateway é um executável externo; aqui só o localizamos, instalamos via npm
(best-effort) e o iniciamos com stdio herdado.
"""

from __future__ import annotations

import shlex
import subprocess
from typing import Dict, List, Mapping, Optional, Union

from openclawd.modules import log
from openclawd.modules.bypass import PRELOAD_VAR
from openclawd.modules.errors import GatewayLaunchError
from openclawd.modules.runner import CommandRunner

logger = log.get_logger("gateway")


def build_gateway_env(base_env: Mapping[str, str], preload: str) -> Dict[str, str]:
    """Copia base_env e define NODE_OPTIONS só se ainda não estiver definido."""
    env = dict(base_env)
    if not env.get(PRELOAD_VAR):
        env[PRELOAD_VAR] = preload
    return env


def install_gateway(runner: CommandRunner, package: str = "openclaw",
                    timeout: Optional[float] = None) -> bool:
    """`npm install -g <package>` no ambiente alvo. Falha não é fatal."""
    logger.info("Instalando %s...", package)
    try:
        rc, out = runner.run_sync(f"npm install -g {shlex.quote(package)}", timeout=timeout)
    except (OSError, subprocess.SubprocessError) as e:
        logger.error("Falha ao instalar %s: %s", package, e)
        return False
    if rc != 0:
        logger.error("Falha ao instalar %s (código %s): %s", package, rc, out.strip())
        return False
    return True


def launch_gateway(runner: CommandRunner, command: str, args: List[str],
                   env: Mapping[str, str], background: bool = False
                   ) -> Union[int, subprocess.Popen]:
    """
    Inicia o gateway em primeiro plano com stdio herdado.

    background=False: espera o processo e retorna o código de saída.
    background=True: retorna o Popen sem esperar (o serviço do app monitora).
    """
    shell_cmd = " ".join(shlex.quote(c) for c in [command, *args])
    extra_env = {PRELOAD_VAR: env[PRELOAD_VAR]} if env.get(PRELOAD_VAR) else {}
    argv = runner.command(shell_cmd, extra_env)
    child_env = runner.process_env(extra_env, base=dict(env))

    logger.info("Iniciando gateway: %s", shell_cmd)
    try:
        proc = subprocess.Popen(argv, env=child_env)
    except OSError as e:
        raise GatewayLaunchError(f"Falha ao iniciar o gateway: {e}") from e

    if background:
        return proc
    try:
        return proc.wait()
    except KeyboardInterrupt:
        proc.terminate()
        return proc.wait()
