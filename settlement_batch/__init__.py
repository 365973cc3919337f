"""
settlement_batch -- Periodic host settlement runs.

Runs the settlement pipeline for every host with activity in a period,
with per-host failure isolation, bounded parallelism, store retry and a
persisted run report.

Architecture:
    settlement_batch/ is a top-level package.  Nothing in settlement_kernel,
    settlement_engines or settlement_services imports from it at runtime.

Invariants:
    - Per-host isolation: one host's failure never aborts the run
    - Clock injection (no datetime.now() calls)
    - One settlement expense per host and period
"""

from settlement_batch.domain.types import (
    HostSettlementResult,
    HostSettlementState,
    RunStatus,
    SettlementRunReport,
)
from settlement_batch.orchestrator import SettlementOrchestrator
from settlement_batch.services.executor import SettlementRunExecutor

__all__ = [
    "HostSettlementResult",
    "HostSettlementState",
    "RunStatus",
    "SettlementOrchestrator",
    "SettlementRunExecutor",
    "SettlementRunReport",
]
