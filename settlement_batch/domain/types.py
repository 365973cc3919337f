"""
settlement_batch.domain.types -- Pure frozen dataclasses for settlement runs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Per-host state machine: PENDING -> PROCESSING -> {SETTLED, SKIPPED,
      FAILED}.  Any other move raises InvalidStateTransitionError.
    - The run report is immutable once returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from settlement_kernel.exceptions import InvalidStateTransitionError


# =============================================================================
# Status enums
# =============================================================================


class HostSettlementState(str, Enum):
    """Per-host lifecycle within one run."""

    PENDING = "pending"  # Not started (or run stopped before it)
    PROCESSING = "processing"
    SETTLED = "settled"  # Expense created
    SKIPPED = "skipped"  # Nothing to settle, or already settled elsewhere
    FAILED = "failed"  # No partial billing happened


class RunStatus(str, Enum):
    """Run-level outcome."""

    RUNNING = "running"
    COMPLETED = "completed"  # No host failed
    PARTIALLY_COMPLETED = "partially_completed"  # Some hosts failed
    FAILED = "failed"  # Every processed host failed
    STOPPED = "stopped"  # Stop requested; some hosts left pending


TERMINAL_STATES: frozenset[HostSettlementState] = frozenset({
    HostSettlementState.SETTLED,
    HostSettlementState.SKIPPED,
    HostSettlementState.FAILED,
})

_ALLOWED_TRANSITIONS: dict[HostSettlementState, frozenset[HostSettlementState]] = {
    HostSettlementState.PENDING: frozenset({HostSettlementState.PROCESSING}),
    HostSettlementState.PROCESSING: TERMINAL_STATES,
}


def validate_transition(
    host_id: UUID | str,
    from_state: HostSettlementState,
    to_state: HostSettlementState,
) -> HostSettlementState:
    """
    Raises:
        InvalidStateTransitionError: The move is not allowed.
    """
    if to_state not in _ALLOWED_TRANSITIONS.get(from_state, frozenset()):
        raise InvalidStateTransitionError(
            str(host_id), from_state.value, to_state.value,
        )
    return to_state


# =============================================================================
# Result DTOs
# =============================================================================


@dataclass(frozen=True)
class HostSettlementResult:
    """Immutable outcome of one host within a run."""

    host_id: UUID
    host_slug: str
    state: HostSettlementState
    currency: str | None = None
    expense_id: UUID | None = None
    amount: int = 0
    items: tuple[tuple[str, int], ...] = ()
    collected_total: int = 0
    settled_transaction_count: int = 0
    review_transaction_ids: tuple[UUID, ...] = ()
    export_pending: bool = False
    attachment_url: str | None = None
    reason: str | None = None  # Why a host was skipped
    error_code: str | None = None
    error_message: str | None = None
    retry_count: int = 0
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hostId": str(self.host_id),
            "hostSlug": self.host_slug,
            "state": self.state.value,
            "currency": self.currency,
            "expenseId": str(self.expense_id) if self.expense_id else None,
            "amount": self.amount,
            "items": [{"description": d, "amount": a} for d, a in self.items],
            "collectedTotal": self.collected_total,
            "settledTransactionCount": self.settled_transaction_count,
            "reviewTransactionIds": [str(t) for t in self.review_transaction_ids],
            "exportPending": self.export_pending,
            "attachmentUrl": self.attachment_url,
            "reason": self.reason,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "retryCount": self.retry_count,
            "durationMs": self.duration_ms,
        }


@dataclass(frozen=True)
class SettlementRunReport:
    """Immutable result of one settlement run.

    Returned by ``SettlementRunExecutor.run()`` and printed by the
    scheduled entry point.
    """

    run_id: UUID
    period_key: str
    period_start: datetime
    period_end: datetime
    status: RunStatus
    host_results: tuple[HostSettlementResult, ...] = ()
    unattributed_tip_ids: tuple[UUID, ...] = ()
    config_checksum: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    def _count(self, state: HostSettlementState) -> int:
        return sum(1 for r in self.host_results if r.state == state)

    @property
    def settled(self) -> int:
        return self._count(HostSettlementState.SETTLED)

    @property
    def skipped(self) -> int:
        return self._count(HostSettlementState.SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(HostSettlementState.FAILED)

    @property
    def pending(self) -> int:
        return self._count(HostSettlementState.PENDING)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0

    @property
    def failures(self) -> tuple[HostSettlementResult, ...]:
        return tuple(
            r for r in self.host_results if r.state == HostSettlementState.FAILED
        )

    @property
    def settled_expense_ids(self) -> tuple[UUID, ...]:
        return tuple(r.expense_id for r in self.host_results if r.expense_id is not None)

    @property
    def review_transaction_ids(self) -> tuple[UUID, ...]:
        """Tips needing manual review: missing rates and unattributable tips."""
        ids: list[UUID] = []
        for r in self.host_results:
            ids.extend(r.review_transaction_ids)
        ids.extend(self.unattributed_tip_ids)
        return tuple(ids)

    def result_for(self, host_id: UUID) -> HostSettlementResult:
        for r in self.host_results:
            if r.host_id == host_id:
                return r
        raise KeyError(host_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "runId": str(self.run_id),
            "period": self.period_key,
            "periodStart": self.period_start.isoformat(),
            "periodEnd": self.period_end.isoformat(),
            "status": self.status.value,
            "counts": {
                "settled": self.settled,
                "skipped": self.skipped,
                "failed": self.failed,
                "pending": self.pending,
            },
            "hosts": [r.to_dict() for r in self.host_results],
            "unattributedTipIds": [str(t) for t in self.unattributed_tip_ids],
            "configChecksum": self.config_checksum,
            "durationMs": self.duration_ms,
        }
