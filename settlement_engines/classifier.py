"""
settlement_engines.classifier -- Fee/tip classification of ledger rows.

Responsibility:
    Turn a host's raw transaction records into tagged ``ClassifiedEntry``
    values, each belonging to exactly one bucket:

    * COLLECTED_PLATFORM_FEE -- a platform fee the host collected on the
      platform's behalf (``platform_fee_in_host_currency``).
    * UNCOLLECTED_HOST_FEE -- a host fee taken on a transaction where the
      platform took no fee; part of it is owed back as shared revenue.
    * PLATFORM_TIP -- a voluntary tip paired with a contribution, in the
      tip's own currency.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Consumed by the per-host
    pipeline; downstream engines only ever see entries, never raw optional
    columns.

Invariants enforced:
    - Settled transactions produce no entry; they are reported as excluded.
    - A transaction produces at most one entry; the host fee is only
      counted when the platform fee is zero or absent.
    - Amounts are absolute integer minor units.

Failure modes:
    - DanglingTipReferenceError if a tip references a transaction group
      absent from ``known_groups``.
    - ConversionError if a recorded rate or captured share percentage is
      not a number.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from settlement_engines.tracer import traced_engine
from settlement_kernel.domain.dtos import TransactionRecord
from settlement_kernel.exceptions import ConversionError, DanglingTipReferenceError
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.classifier")

HOST_FEE_SHARE_PERCENT_KEY = "hostFeeSharePercent"
PLAN_KEY = "plan"


class EntryKind(str, Enum):
    """Bucket a classified entry belongs to."""

    COLLECTED_PLATFORM_FEE = "COLLECTED_PLATFORM_FEE"
    UNCOLLECTED_HOST_FEE = "UNCOLLECTED_HOST_FEE"
    PLATFORM_TIP = "PLATFORM_TIP"


@dataclass(frozen=True)
class ClassifiedEntry:
    """
    One billable fact extracted from one transaction.

    ``currency`` is the host currency for fee entries and the tip's own
    currency for PLATFORM_TIP entries.  ``share_percent`` and ``plan`` are
    only set on host-fee entries that captured them; ``recorded_rate`` only
    on tips that carry a host-to-platform rate.
    """

    kind: EntryKind
    transaction: TransactionRecord
    amount: int
    currency: str
    share_percent: Decimal | None = None
    plan: str | None = None
    recorded_rate: Decimal | None = None

    @property
    def transaction_id(self) -> UUID:
        return self.transaction.transaction_id


@dataclass(frozen=True)
class ClassificationResult:
    """Entries in input order plus the ids skipped because already settled."""

    entries: tuple[ClassifiedEntry, ...] = ()
    excluded_settled: tuple[UUID, ...] = ()

    def of_kind(self, kind: EntryKind) -> tuple[ClassifiedEntry, ...]:
        return tuple(e for e in self.entries if e.kind == kind)

    def total(self, kind: EntryKind) -> int:
        return sum(e.amount for e in self.entries if e.kind == kind)

    @property
    def is_empty(self) -> bool:
        return not self.entries


def _parse_decimal(raw: Any, transaction_id: UUID, what: str) -> Decimal | None:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ConversionError(str(transaction_id), f"{what} is not a number: {raw!r}")
    try:
        value = Decimal(str(raw))
    except InvalidOperation:
        raise ConversionError(
            str(transaction_id), f"{what} is not a number: {raw!r}"
        ) from None
    if not value.is_finite():
        raise ConversionError(str(transaction_id), f"{what} is not finite: {raw!r}")
    return value


def _classify_tip(
    txn: TransactionRecord,
    known_groups: frozenset[UUID],
    rate_annotation_key: str,
) -> ClassifiedEntry | None:
    if txn.platform_tip_for_transaction_group not in known_groups:
        raise DanglingTipReferenceError(
            str(txn.transaction_id), str(txn.platform_tip_for_transaction_group),
        )
    amount = abs(txn.amount)
    if amount == 0:
        return None
    return ClassifiedEntry(
        kind=EntryKind.PLATFORM_TIP,
        transaction=txn,
        amount=amount,
        currency=txn.currency,
        recorded_rate=_parse_decimal(
            txn.data.get(rate_annotation_key), txn.transaction_id, rate_annotation_key,
        ),
    )


def _classify_fee(txn: TransactionRecord, host_currency: str) -> ClassifiedEntry | None:
    currency = txn.host_currency or host_currency
    platform_fee = abs(txn.platform_fee_in_host_currency or 0)
    if platform_fee:
        return ClassifiedEntry(
            kind=EntryKind.COLLECTED_PLATFORM_FEE,
            transaction=txn,
            amount=platform_fee,
            currency=currency,
        )

    host_fee = abs(txn.host_fee_in_host_currency or 0)
    if host_fee:
        return ClassifiedEntry(
            kind=EntryKind.UNCOLLECTED_HOST_FEE,
            transaction=txn,
            amount=host_fee,
            currency=currency,
            share_percent=_parse_decimal(
                txn.data.get(HOST_FEE_SHARE_PERCENT_KEY),
                txn.transaction_id,
                HOST_FEE_SHARE_PERCENT_KEY,
            ),
            plan=txn.data.get(PLAN_KEY),
        )
    return None


@traced_engine("classifier", "1.0", fingerprint_fields=("host_currency",))
def classify(
    *,
    transactions: Iterable[TransactionRecord],
    host_currency: str,
    known_groups: Iterable[UUID] | None = None,
    rate_annotation_key: str = "hostToPlatformFxRate",
) -> ClassificationResult:
    """
    Classify a host's transactions into fee and tip entries.

    Args:
        transactions: Records for one host and period, tips included.
        host_currency: Currency of the host; fee entries without a recorded
            host currency fall back to it.
        known_groups: Transaction groups a tip may reference.  Defaults to
            the groups of the supplied transactions.
        rate_annotation_key: Annotation carrying the recorded
            host-to-platform rate on tips.
    """
    transactions = tuple(transactions)
    groups = frozenset(
        known_groups if known_groups is not None
        else (t.transaction_group for t in transactions)
    )

    entries: list[ClassifiedEntry] = []
    excluded: list[UUID] = []

    for txn in transactions:
        if txn.is_settled:
            excluded.append(txn.transaction_id)
            continue

        if txn.is_platform_tip:
            entry = _classify_tip(txn, groups, rate_annotation_key)
        else:
            entry = _classify_fee(txn, host_currency)

        if entry is not None:
            entries.append(entry)

    result = ClassificationResult(
        entries=tuple(entries), excluded_settled=tuple(excluded),
    )

    logger.info("classification_completed", extra={
        "transaction_count": len(transactions),
        "platform_fee_entries": len(result.of_kind(EntryKind.COLLECTED_PLATFORM_FEE)),
        "host_fee_entries": len(result.of_kind(EntryKind.UNCOLLECTED_HOST_FEE)),
        "tip_entries": len(result.of_kind(EntryKind.PLATFORM_TIP)),
        "excluded_settled": len(excluded),
    })
    return result
