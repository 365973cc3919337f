"""
Module: settlement_engines
Responsibility:
    Pure calculation layer of the settlement job: classification of ledger
    rows, tip conversion, revenue share and per-host aggregation.

Architecture position:
    Engines -- zero I/O.  May import settlement_kernel.domain, the exception
    hierarchy and settlement_config.schema.  MUST NOT import
    settlement_services or settlement_batch.

Invariants enforced:
    - Engines never read the clock; the period is decided by the caller.
    - Amounts are integer minor units; rates and percentages are Decimal.
    - Identical inputs always produce identical outputs.

Audit relevance:
    Every engine entry point is wrapped by ``@traced_engine`` and emits a
    SETTLEMENT_ENGINE_TRACE log record.
"""

from settlement_engines.aggregator import (
    ITEM_PLATFORM_FEES,
    ITEM_PLATFORM_TIPS,
    ITEM_SHARED_REVENUE,
    SettlementItem,
    SettlementTotals,
    aggregate,
)
from settlement_engines.classifier import (
    ClassificationResult,
    ClassifiedEntry,
    EntryKind,
    classify,
)
from settlement_engines.converter import (
    ConversionOutcome,
    ConvertedTip,
    convert_tip,
    convert_tips,
    round_half_up,
)
from settlement_engines.revenue_share import (
    SharedRevenue,
    ShareGroup,
    compute_shared_revenue,
    resolve_share_percent,
)

__all__ = [
    "ITEM_PLATFORM_FEES",
    "ITEM_PLATFORM_TIPS",
    "ITEM_SHARED_REVENUE",
    "ClassificationResult",
    "ClassifiedEntry",
    "ConversionOutcome",
    "ConvertedTip",
    "EntryKind",
    "SettlementItem",
    "SettlementTotals",
    "ShareGroup",
    "SharedRevenue",
    "aggregate",
    "classify",
    "compute_shared_revenue",
    "convert_tip",
    "convert_tips",
    "resolve_share_percent",
    "round_half_up",
]
