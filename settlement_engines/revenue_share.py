"""
settlement_engines.revenue_share -- Platform share of uncollected host fees.

Responsibility:
    For host fees collected on transactions where the platform took no fee,
    compute the portion owed to the platform under the applicable pricing
    plan.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The plan table is passed in
    from the run's configuration snapshot.

Invariants enforced:
    - Share percent resolution per entry: captured percentage, then captured
      plan, then the host's plan, then the configured default plan.
    - Host fees are summed per share percentage and each group is rounded
      once (ROUND_HALF_UP), so the total does not depend on entry order.
    - A 0% plan contributes nothing.

Failure modes:
    - PlanNotFoundError when a plan id is not in the table, or when no plan
      can be resolved at all.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from settlement_engines.classifier import ClassifiedEntry, EntryKind
from settlement_engines.converter import round_half_up
from settlement_engines.tracer import traced_engine
from settlement_kernel.exceptions import PlanNotFoundError
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.revenue_share")

_HUNDRED = Decimal("100")
UNSET_PLAN = "(unset)"


def _group_key(percent: Decimal) -> Decimal:
    # 15 and 15.00 land in the same group
    if percent == percent.to_integral_value():
        return percent.quantize(Decimal("1"))
    return percent.normalize()


@dataclass(frozen=True)
class ShareGroup:
    """Host fees sharing one percentage, rounded together."""

    share_percent: Decimal
    host_fee_total: int
    shared_amount: int
    transaction_ids: tuple[UUID, ...] = ()


@dataclass(frozen=True)
class SharedRevenue:
    groups: tuple[ShareGroup, ...] = ()

    @property
    def total(self) -> int:
        return sum(g.shared_amount for g in self.groups)

    @property
    def host_fee_total(self) -> int:
        return sum(g.host_fee_total for g in self.groups)


def resolve_share_percent(
    entry: ClassifiedEntry,
    host_plan: str | None,
    plans: Mapping[str, Decimal],
    default_plan: str | None = None,
) -> Decimal:
    """
    Raises:
        PlanNotFoundError: Resolved plan id is not configured.
    """
    if entry.share_percent is not None:
        return entry.share_percent

    plan_id = entry.plan or host_plan or default_plan
    if plan_id is None:
        raise PlanNotFoundError(UNSET_PLAN, tuple(sorted(plans)))
    try:
        return plans[plan_id]
    except KeyError:
        raise PlanNotFoundError(plan_id, tuple(sorted(plans))) from None


@traced_engine("revenue_share", "1.0", fingerprint_fields=("host_plan", "default_plan"))
def compute_shared_revenue(
    *,
    entries: Iterable[ClassifiedEntry],
    host_plan: str | None,
    plans: Mapping[str, Decimal],
    default_plan: str | None = None,
) -> SharedRevenue:
    """
    Sum UNCOLLECTED_HOST_FEE entries per share percentage.

    Each group yields ``round_half_up(sum * percent / 100)``.  Groups are
    returned in ascending percentage order.
    """
    totals: dict[Decimal, int] = {}
    members: dict[Decimal, list[UUID]] = {}

    for entry in entries:
        if entry.kind != EntryKind.UNCOLLECTED_HOST_FEE:
            continue
        percent = resolve_share_percent(entry, host_plan, plans, default_plan)
        key = _group_key(percent)
        totals[key] = totals.get(key, 0) + entry.amount
        members.setdefault(key, []).append(entry.transaction_id)

    groups = tuple(
        ShareGroup(
            share_percent=percent,
            host_fee_total=totals[percent],
            shared_amount=round_half_up(Decimal(totals[percent]) * percent / _HUNDRED),
            transaction_ids=tuple(sorted(members[percent], key=str)),
        )
        for percent in sorted(totals)
    )
    result = SharedRevenue(groups=groups)

    logger.info("shared_revenue_computed", extra={
        "host_plan": host_plan,
        "group_count": len(groups),
        "host_fee_total": result.host_fee_total,
        "shared_revenue": result.total,
    })
    return result
