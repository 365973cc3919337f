"""
settlement_engines.aggregator -- Per-host settlement totals.

Responsibility:
    Combine classified entries, converted tips and shared revenue into the
    ``SettlementTotals`` a host owes for the period: the ordered expense
    items, the total collected on the platform's behalf, and the set of
    transactions the settlement consumes.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Integer addition only; the result is independent of entry order.
    - Items appear in fixed order (Platform Fees, Platform Tips, Shared
      Revenue) and a zero bucket produces no item.
    - Tips set aside for review never contribute and are never settled.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from uuid import UUID

from settlement_engines.classifier import ClassifiedEntry, EntryKind
from settlement_engines.converter import ConvertedTip
from settlement_engines.revenue_share import SharedRevenue
from settlement_engines.tracer import traced_engine
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.aggregator")

ITEM_PLATFORM_FEES = "Platform Fees"
ITEM_PLATFORM_TIPS = "Platform Tips"
ITEM_SHARED_REVENUE = "Shared Revenue"


@dataclass(frozen=True)
class SettlementItem:
    description: str
    amount: int


@dataclass(frozen=True)
class SettlementTotals:
    """
    What one host owes for one period, in host currency.

    ``collected_total`` is what the host collected on the platform's behalf
    (fees plus converted tips) and drives the platform-side credit.
    ``entries`` are the contributing entries in input order, for the audit
    export; ``review_tips`` were left out for manual review.
    """

    host_id: UUID
    currency: str
    platform_fees: int = 0
    platform_tips: int = 0
    shared_revenue: int = 0
    entries: tuple[ClassifiedEntry, ...] = ()
    converted_tips: tuple[ConvertedTip, ...] = ()
    review_tips: tuple[ClassifiedEntry, ...] = ()
    contributing_transaction_ids: tuple[UUID, ...] = ()

    @property
    def collected_total(self) -> int:
        return self.platform_fees + self.platform_tips

    @property
    def total(self) -> int:
        return self.platform_fees + self.platform_tips + self.shared_revenue

    @property
    def items(self) -> tuple[SettlementItem, ...]:
        buckets = (
            (ITEM_PLATFORM_FEES, self.platform_fees),
            (ITEM_PLATFORM_TIPS, self.platform_tips),
            (ITEM_SHARED_REVENUE, self.shared_revenue),
        )
        return tuple(
            SettlementItem(description=desc, amount=amount)
            for desc, amount in buckets
            if amount != 0
        )

    @property
    def is_zero(self) -> bool:
        return not self.items

    def host_amount_for(self, transaction_id: UUID) -> int | None:
        """Host-currency amount a contributing transaction accounts for."""
        for tip in self.converted_tips:
            if tip.entry.transaction_id == transaction_id:
                return tip.host_amount
        for entry in self.entries:
            if entry.transaction_id == transaction_id:
                return entry.amount
        return None


@traced_engine("aggregator", "1.0", fingerprint_fields=("host_id", "currency"))
def aggregate(
    *,
    host_id: UUID,
    currency: str,
    entries: Iterable[ClassifiedEntry],
    converted_tips: Iterable[ConvertedTip],
    shared_revenue: SharedRevenue,
    review_tips: Iterable[ClassifiedEntry] = (),
) -> SettlementTotals:
    """Fold one host's engine outputs into settlement totals."""
    converted_tips = tuple(converted_tips)
    review_tips = tuple(review_tips)
    review_ids = {e.transaction_id for e in review_tips}

    contributing = tuple(
        e for e in entries
        if e.transaction_id not in review_ids
    )
    platform_fees = sum(
        e.amount for e in contributing
        if e.kind == EntryKind.COLLECTED_PLATFORM_FEE
    )
    platform_tips = sum(t.host_amount for t in converted_tips)

    totals = SettlementTotals(
        host_id=host_id,
        currency=currency,
        platform_fees=platform_fees,
        platform_tips=platform_tips,
        shared_revenue=shared_revenue.total,
        entries=contributing,
        converted_tips=converted_tips,
        review_tips=review_tips,
        contributing_transaction_ids=tuple(
            sorted({e.transaction_id for e in contributing}, key=str)
        ),
    )

    logger.info("settlement_aggregated", extra={
        "host_id": str(host_id),
        "currency": currency,
        "platform_fees": platform_fees,
        "platform_tips": platform_tips,
        "shared_revenue": totals.shared_revenue,
        "collected_total": totals.collected_total,
        "contributing_count": len(totals.contributing_transaction_ids),
    })
    return totals
