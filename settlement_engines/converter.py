"""
settlement_engines.converter -- Platform tip conversion into host currency.

Responsibility:
    Express each platform tip in the host's currency using the rate that was
    recorded when the tip was collected.  Live rates are never consulted.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``host_amount = round_half_up(tip_amount / recorded_rate)`` computed in
      Decimal, so reruns produce the same minor units.
    - Same-currency tips convert at rate 1.
    - A missing rate is never estimated.

Failure modes:
    - MissingExchangeRateError when a foreign-currency tip has no rate and
      the FX policy is ``fail``.  Under ``review`` the tip is set aside.
    - ConversionError for zero, negative or non-finite rates and negative
      results.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from settlement_config.schema import FxPolicy, MissingRatePolicy
from settlement_engines.classifier import ClassifiedEntry, EntryKind
from settlement_engines.tracer import traced_engine
from settlement_kernel.exceptions import ConversionError, MissingExchangeRateError
from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.converter")

_ONE = Decimal("1")


def round_half_up(value: Decimal) -> int:
    """Round to integer minor units, halves away from zero."""
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ConvertedTip:
    """A platform tip expressed in the host currency."""

    entry: ClassifiedEntry
    host_amount: int
    host_currency: str
    rate: Decimal

    @property
    def tip_amount(self) -> int:
        return self.entry.amount

    @property
    def tip_currency(self) -> str:
        return self.entry.currency


@dataclass(frozen=True)
class ConversionOutcome:
    """Converted tips plus tips set aside for manual review."""

    converted: tuple[ConvertedTip, ...] = ()
    needs_review: tuple[ClassifiedEntry, ...] = ()

    @property
    def host_total(self) -> int:
        return sum(c.host_amount for c in self.converted)


def requires_recorded_rate(entry: ClassifiedEntry, host_currency: str) -> bool:
    return entry.currency != host_currency and entry.recorded_rate is None


def convert_tip(entry: ClassifiedEntry, host_currency: str) -> ConvertedTip:
    """
    Convert one PLATFORM_TIP entry.

    Raises:
        MissingExchangeRateError: Foreign currency tip without a rate.
        ConversionError: Rate not usable or result negative.
    """
    if entry.kind != EntryKind.PLATFORM_TIP:
        raise ConversionError(
            str(entry.transaction_id), f"cannot convert {entry.kind.value} entry",
        )

    if entry.currency == host_currency:
        rate = _ONE
    elif entry.recorded_rate is None:
        raise MissingExchangeRateError(
            str(entry.transaction_id), entry.currency, host_currency,
        )
    else:
        rate = entry.recorded_rate

    if not rate.is_finite() or rate <= 0:
        raise ConversionError(str(entry.transaction_id), f"invalid rate {rate}")

    host_amount = round_half_up(Decimal(entry.amount) / rate)
    if host_amount < 0:
        raise ConversionError(
            str(entry.transaction_id), f"negative converted amount {host_amount}",
        )

    return ConvertedTip(
        entry=entry,
        host_amount=host_amount,
        host_currency=host_currency,
        rate=rate,
    )


@traced_engine("currency_converter", "1.0", fingerprint_fields=("host_currency", "policy"))
def convert_tips(
    *,
    entries: Iterable[ClassifiedEntry],
    host_currency: str,
    policy: FxPolicy | None = None,
) -> ConversionOutcome:
    """Convert every PLATFORM_TIP entry, applying the missing-rate policy."""
    policy = policy or FxPolicy()
    converted: list[ConvertedTip] = []
    review: list[ClassifiedEntry] = []

    for entry in entries:
        if entry.kind != EntryKind.PLATFORM_TIP:
            continue
        if (
            requires_recorded_rate(entry, host_currency)
            and policy.on_missing_rate == MissingRatePolicy.REVIEW
        ):
            logger.warning("tip_missing_rate_set_aside", extra={
                "transaction_id": str(entry.transaction_id),
                "tip_currency": entry.currency,
                "host_currency": host_currency,
            })
            review.append(entry)
            continue
        converted.append(convert_tip(entry, host_currency))

    outcome = ConversionOutcome(converted=tuple(converted), needs_review=tuple(review))
    logger.info("tip_conversion_completed", extra={
        "host_currency": host_currency,
        "converted_count": len(converted),
        "review_count": len(review),
        "host_total": outcome.host_total,
    })
    return outcome
