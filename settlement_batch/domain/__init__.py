"""
settlement_batch.domain -- Pure types for settlement runs.

ZERO I/O.  All types are frozen dataclasses.
"""

from settlement_batch.domain.types import (
    TERMINAL_STATES,
    HostSettlementResult,
    HostSettlementState,
    RunStatus,
    SettlementRunReport,
    validate_transition,
)

__all__ = [
    "TERMINAL_STATES",
    "HostSettlementResult",
    "HostSettlementState",
    "RunStatus",
    "SettlementRunReport",
    "validate_transition",
]
