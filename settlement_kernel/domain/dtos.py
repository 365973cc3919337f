"""
Pure data transfer objects for the settlement pipeline.

Frozen dataclasses with enum fields and tuples; ZERO I/O.  The ledger reader
converts ORM rows into these records once, and every engine downstream works
on them.  Amounts are integer minor units; rates are Decimal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class TransactionType(str, Enum):
    """Ledger direction of a transaction row."""

    CREDIT = "CREDIT"
    DEBIT = "DEBIT"


class TransactionStatus(str, Enum):
    """Only CONFIRMED rows are billable."""

    CONFIRMED = "CONFIRMED"
    PENDING = "PENDING"
    REFUNDED = "REFUNDED"


class SettlementState(str, Enum):
    """Explicit per-transaction settlement state.

    UNSETTLED -> SETTLED(expense id) happens once, atomically with the
    creation of the settlement expense.  There is no way back.
    """

    UNSETTLED = "UNSETTLED"
    SETTLED = "SETTLED"


@dataclass(frozen=True)
class HostRecord:
    """Immutable snapshot of a host as seen by one run."""

    host_id: UUID
    slug: str
    currency: str
    plan: str | None = None
    default_payout_method: str | None = None
    name: str | None = None


@dataclass(frozen=True)
class TransactionRecord:
    """Immutable snapshot of one ledger row.

    ``data`` is the free-form annotation bag as stored; the reader has
    already folded the legacy ``settled`` flag into ``settlement_state``.
    """

    transaction_id: UUID
    type: TransactionType
    amount: int
    currency: str
    created_at: datetime
    transaction_group: UUID
    host_id: UUID | None = None
    collective_id: UUID | None = None
    host_currency: str | None = None
    amount_in_host_currency: int | None = None
    host_currency_fx_rate: Decimal | None = None
    platform_fee_in_host_currency: int | None = None
    host_fee_in_host_currency: int | None = None
    platform_tip_for_transaction_group: UUID | None = None
    settlement_state: SettlementState = SettlementState.UNSETTLED
    settlement_expense_id: UUID | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def is_settled(self) -> bool:
        return self.settlement_state == SettlementState.SETTLED

    @property
    def is_platform_tip(self) -> bool:
        return self.platform_tip_for_transaction_group is not None


@dataclass(frozen=True)
class HostLedger:
    """All qualifying rows for one host and period, tips included."""

    host: HostRecord
    transactions: tuple[TransactionRecord, ...] = ()
    known_groups: frozenset[UUID] = frozenset()


@dataclass(frozen=True)
class PeriodLedger:
    """All qualifying rows of a period, partitioned by owing host.

    ``unattributed_tips`` are platform tips whose referenced transaction
    group could not be found; they are reported for manual review.
    """

    by_host: dict[UUID, tuple[TransactionRecord, ...]] = field(default_factory=dict)
    unattributed_tips: tuple[TransactionRecord, ...] = ()

    @property
    def host_ids(self) -> tuple[UUID, ...]:
        return tuple(sorted(self.by_host, key=str))

    @property
    def transaction_count(self) -> int:
        return sum(len(rows) for rows in self.by_host.values()) + len(
            self.unattributed_tips
        )
