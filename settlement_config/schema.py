"""
SettlementConfig schema.

The immutable configuration snapshot a run is executed with.  YAML files are
parsed into these types by the loader; the snapshot is then passed
explicitly to every component, so a run is reproducible even if the plan
catalog changes afterwards.  The checksum of the source document is stamped
on every settlement expense.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from settlement_kernel.exceptions import PlanNotFoundError


class MissingRatePolicy(str, Enum):
    """What to do with a platform tip that has no recorded rate."""

    FAIL = "fail"  # Host fails, nothing is billed
    REVIEW = "review"  # Tip is left unsettled and reported for review


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanDefinition:
    """A pricing plan and the share of host fees owed to the platform."""

    plan_id: str
    host_fee_share_percent: Decimal
    name: str | None = None


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlatformDef:
    """The platform's own identity in the store."""

    host_slug: str
    name: str = "Platform"


@dataclass(frozen=True)
class FxPolicy:
    rate_annotation_key: str = "hostToPlatformFxRate"
    on_missing_rate: MissingRatePolicy = MissingRatePolicy.FAIL


@dataclass(frozen=True)
class RetryPolicy:
    """Store retry at the host boundary: one retry with backoff by default."""

    max_attempts: int = 2
    backoff_seconds: float = 1.0


@dataclass(frozen=True)
class ExportPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 0.5
    content_type: str = "text/csv"


@dataclass(frozen=True)
class RunPolicy:
    max_workers: int = 4


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SettlementConfig:
    """Complete, immutable configuration for one settlement run."""

    config_id: str
    version: int
    platform: PlatformDef
    plans: tuple[PlanDefinition, ...] = ()
    default_plan: str | None = None
    fx: FxPolicy = field(default_factory=FxPolicy)
    store_retry: RetryPolicy = field(default_factory=RetryPolicy)
    export: ExportPolicy = field(default_factory=ExportPolicy)
    run: RunPolicy = field(default_factory=RunPolicy)
    checksum: str = ""

    @property
    def plan_ids(self) -> tuple[str, ...]:
        return tuple(sorted(p.plan_id for p in self.plans))

    def get_plan(self, plan_id: str) -> PlanDefinition:
        """
        Raises:
            PlanNotFoundError: If plan_id is not configured.
        """
        for plan in self.plans:
            if plan.plan_id == plan_id:
                return plan
        raise PlanNotFoundError(plan_id, self.plan_ids)

    def share_percent_table(self) -> dict[str, Decimal]:
        return {p.plan_id: p.host_fee_share_percent for p in self.plans}
