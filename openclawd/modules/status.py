"""Agrega as sondas num ReadinessReport imutável.

`complete` depende só do esqueleto do rootfs (rootfs, bash, shim);
node e openclaw entram no relatório apenas como informação.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict

from openclawd.modules import log
from openclawd.modules.probe import EnvironmentProbe

logger = log.get_logger("status")


@dataclass(frozen=True)
class ReadinessReport:
    rootfs_present: bool
    shell_binary_present: bool
    runtime_present: bool
    gateway_binary_present: bool
    compatibility_shim_present: bool

    @property
    def complete(self) -> bool:
        return self.rootfs_present and self.shell_binary_present and self.compatibility_shim_present

    def to_dict(self) -> Dict[str, bool]:
        data = asdict(self)
        data["complete"] = self.complete
        return data


class Stage(str, Enum):
    UNPROVISIONED = "unprovisioned"
    ROOTFS_ONLY = "rootfs_only"
    ROOTFS_PATCHED = "rootfs_patched"
    COMPLETE = "complete"


def derive_stage(report: ReadinessReport, activated: bool) -> Stage:
    """Nó atual da máquina de estados, sempre recalculado a partir do relatório."""
    if not (report.rootfs_present and report.shell_binary_present):
        return Stage.UNPROVISIONED
    if not report.compatibility_shim_present:
        return Stage.ROOTFS_ONLY
    if not activated:
        return Stage.ROOTFS_PATCHED
    return Stage.COMPLETE


def _safe(name: str, check: Callable[[], bool]) -> bool:
    try:
        return bool(check())
    except Exception:
        # uma sonda quebrada rebaixa só o próprio campo
        logger.debug("Sonda %s falhou", name, exc_info=True)
        return False


def compute_readiness(probe: EnvironmentProbe) -> ReadinessReport:
    """Executa todas as sondas e monta o relatório. Nunca lança exceção."""
    return ReadinessReport(
        rootfs_present=_safe("rootfs", probe.rootfs_present),
        shell_binary_present=_safe("bash", probe.shell_binary_present),
        runtime_present=_safe("node", probe.runtime_present),
        gateway_binary_present=_safe("gateway", probe.gateway_present),
        compatibility_shim_present=_safe("shim", probe.shim_present),
    )
