"""
Tests for per-host settlement aggregation.
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from settlement_engines.aggregator import (
    ITEM_PLATFORM_FEES,
    ITEM_PLATFORM_TIPS,
    ITEM_SHARED_REVENUE,
    aggregate,
)
from settlement_engines.classifier import ClassifiedEntry, EntryKind
from settlement_engines.converter import convert_tip
from settlement_engines.revenue_share import SharedRevenue, ShareGroup
from settlement_kernel.domain.dtos import TransactionRecord, TransactionType

HOST_ID = uuid4()


def _entry(kind, amount, currency="GBP", rate=None):
    txn = TransactionRecord(
        transaction_id=uuid4(),
        type=TransactionType.CREDIT,
        amount=amount,
        currency=currency,
        created_at=datetime(2026, 9, 10, tzinfo=timezone.utc),
        transaction_group=uuid4(),
        platform_tip_for_transaction_group=uuid4() if kind == EntryKind.PLATFORM_TIP else None,
    )
    return ClassifiedEntry(
        kind=kind,
        transaction=txn,
        amount=amount,
        currency=currency,
        recorded_rate=Decimal(rate) if rate else None,
    )


def _shared(total, host_fee_total=0):
    if not total and not host_fee_total:
        return SharedRevenue()
    return SharedRevenue(groups=(
        ShareGroup(
            share_percent=Decimal("15"),
            host_fee_total=host_fee_total,
            shared_amount=total,
        ),
    ))


class TestAggregate:

    def test_all_three_buckets(self):
        fee = _entry(EntryKind.COLLECTED_PLATFORM_FEE, 300)
        host_fee = _entry(EntryKind.UNCOLLECTED_HOST_FEE, 200)
        tip = _entry(EntryKind.PLATFORM_TIP, 1000, "USD", "1.23")

        totals = aggregate(
            host_id=HOST_ID,
            currency="GBP",
            entries=[fee, host_fee, tip],
            converted_tips=[convert_tip(tip, "GBP")],
            shared_revenue=_shared(30, 200),
        )

        assert [(i.description, i.amount) for i in totals.items] == [
            (ITEM_PLATFORM_FEES, 300),
            (ITEM_PLATFORM_TIPS, 813),
            (ITEM_SHARED_REVENUE, 30),
        ]
        assert totals.total == 1143
        assert totals.collected_total == 1113
        assert set(totals.contributing_transaction_ids) == {
            fee.transaction_id, host_fee.transaction_id, tip.transaction_id,
        }

    def test_zero_buckets_produce_no_items(self):
        host_fee = _entry(EntryKind.UNCOLLECTED_HOST_FEE, 200)

        totals = aggregate(
            host_id=HOST_ID,
            currency="GBP",
            entries=[host_fee],
            converted_tips=[],
            shared_revenue=_shared(30, 200),
        )

        assert [i.description for i in totals.items] == [ITEM_SHARED_REVENUE]
        assert totals.collected_total == 0
        assert not totals.is_zero

    def test_empty_is_zero(self):
        totals = aggregate(
            host_id=HOST_ID,
            currency="GBP",
            entries=[],
            converted_tips=[],
            shared_revenue=_shared(0),
        )

        assert totals.is_zero
        assert totals.items == ()
        assert totals.contributing_transaction_ids == ()

    def test_host_fee_at_zero_percent_is_still_consumed(self):
        """A 0% host fee settles the row without producing an item."""
        fee = _entry(EntryKind.COLLECTED_PLATFORM_FEE, 100)
        host_fee = _entry(EntryKind.UNCOLLECTED_HOST_FEE, 200)

        totals = aggregate(
            host_id=HOST_ID,
            currency="GBP",
            entries=[fee, host_fee],
            converted_tips=[],
            shared_revenue=_shared(0, 200),
        )

        assert host_fee.transaction_id in totals.contributing_transaction_ids
        assert [i.description for i in totals.items] == [ITEM_PLATFORM_FEES]

    def test_review_tips_excluded(self):
        fee = _entry(EntryKind.COLLECTED_PLATFORM_FEE, 300)
        missing_rate = _entry(EntryKind.PLATFORM_TIP, 500, "USD")

        totals = aggregate(
            host_id=HOST_ID,
            currency="GBP",
            entries=[fee, missing_rate],
            converted_tips=[],
            shared_revenue=_shared(0),
            review_tips=[missing_rate],
        )

        assert totals.contributing_transaction_ids == (fee.transaction_id,)
        assert totals.review_tips == (missing_rate,)
        assert totals.platform_tips == 0

    def test_host_amount_for(self):
        fee = _entry(EntryKind.COLLECTED_PLATFORM_FEE, 300)
        tip = _entry(EntryKind.PLATFORM_TIP, 1000, "USD", "1.23")

        totals = aggregate(
            host_id=HOST_ID,
            currency="GBP",
            entries=[fee, tip],
            converted_tips=[convert_tip(tip, "GBP")],
            shared_revenue=_shared(0),
        )

        assert totals.host_amount_for(fee.transaction_id) == 300
        assert totals.host_amount_for(tip.transaction_id) == 813
        assert totals.host_amount_for(uuid4()) is None
