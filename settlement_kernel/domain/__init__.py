"""
Pure domain layer.

Data transfer objects, the injectable clock and the settlement period, with
NO dependencies on the ORM, the database or I/O.  All objects are immutable.
"""

from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.dtos import (
    HostLedger,
    HostRecord,
    PeriodLedger,
    SettlementState,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from settlement_kernel.domain.period import SettlementPeriod

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "HostLedger",
    "HostRecord",
    "PeriodLedger",
    "SettlementPeriod",
    "SettlementState",
    "TransactionRecord",
    "TransactionStatus",
    "TransactionType",
]
