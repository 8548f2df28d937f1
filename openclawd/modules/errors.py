"""Exceções do openclawd.

Falhas de sonda (ProbeError) nunca sobem até o usuário: viram um
ProbeResult com ok=False. As demais são decididas pelo BootstrapManager / CLI.
"""

from __future__ import annotations


class OpenclawdError(Exception):
    """Raiz de todos os erros do openclawd."""


class ProbeError(OpenclawdError):
    """Uma verificação não pôde ser avaliada (runner ausente, permissão negada...)."""


class ProvisionError(OpenclawdError):
    """Falha ao provisionar o rootfs."""


class ExtractionFailed(ProvisionError):
    """A ferramenta de extração terminou com código != 0."""

    def __init__(self, exit_code: int, output: str):
        self.exit_code = exit_code
        self.output = output
        super().__init__(f"Extração do rootfs falhou (código {exit_code}): {output}")


class DownloadError(ProvisionError):
    """Download do arquivo do rootfs falhou ou o SHA256 não confere."""


class PatchError(OpenclawdError):
    """Falha de escrita ao instalar o shim ou alterar um profile."""


class PreconditionError(OpenclawdError):
    """Pré-condição obrigatória ausente; `remedy` traz a ação sugerida ao usuário."""

    def __init__(self, message: str, remedy: str | None = None):
        self.remedy = remedy
        super().__init__(message)


class GatewayLaunchError(OpenclawdError):
    """O processo do gateway não pôde ser iniciado."""
