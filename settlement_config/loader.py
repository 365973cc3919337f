"""
Configuration Loader (``settlement_config.loader``).

Responsibility
--------------
Loads a YAML configuration document and parses it into the frozen
``settlement_config.schema`` dataclasses.  Runtime callers go through
``settlement_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing keys or out-of-range values -> ``InvalidConfigurationError``.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    ExportPolicy,
    FxPolicy,
    MissingRatePolicy,
    PlanDefinition,
    PlatformDef,
    RetryPolicy,
    RunPolicy,
    SettlementConfig,
)
from settlement_kernel.exceptions import InvalidConfigurationError
from settlement_kernel.utils.hashing import hash_payload


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the configuration document."""
    return hash_payload(data)


def parse_decimal(value: Any, source: str, field_name: str) -> Decimal:
    """Parse YAML numbers through ``str`` so 7.5 becomes Decimal('7.5')."""
    if isinstance(value, bool) or value is None:
        raise InvalidConfigurationError(source, f"{field_name} must be a number")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise InvalidConfigurationError(
            source, f"{field_name} is not a number: {value!r}"
        ) from None
    if not result.is_finite():
        raise InvalidConfigurationError(source, f"{field_name} must be finite")
    return result


def parse_plan(data: dict[str, Any], source: str) -> PlanDefinition:
    try:
        plan_id = data["plan_id"]
        raw_percent = data["host_fee_share_percent"]
    except KeyError as exc:
        raise InvalidConfigurationError(source, f"plan is missing {exc}") from None

    percent = parse_decimal(raw_percent, source, f"plans.{plan_id}.host_fee_share_percent")
    if not Decimal("0") <= percent <= Decimal("100"):
        raise InvalidConfigurationError(
            source, f"plan {plan_id} share percent {percent} outside 0-100",
        )
    return PlanDefinition(
        plan_id=str(plan_id),
        host_fee_share_percent=percent,
        name=data.get("name"),
    )


def parse_fx_policy(data: dict[str, Any], source: str) -> FxPolicy:
    raw_policy = data.get("on_missing_rate", MissingRatePolicy.FAIL.value)
    try:
        on_missing = MissingRatePolicy(str(raw_policy).lower())
    except ValueError:
        raise InvalidConfigurationError(
            source, f"fx.on_missing_rate must be one of "
            f"{[p.value for p in MissingRatePolicy]}, got {raw_policy!r}",
        ) from None
    return FxPolicy(
        rate_annotation_key=data.get("rate_annotation_key", "hostToPlatformFxRate"),
        on_missing_rate=on_missing,
    )


def _positive_int(data: dict[str, Any], key: str, default: int, source: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidConfigurationError(source, f"{key} must be a positive integer")
    return value


def _non_negative_float(data: dict[str, Any], key: str, default: float, source: str) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidConfigurationError(source, f"{key} must be a non-negative number")
    return float(value)


def parse_settlement_config(
    data: dict[str, Any],
    source: str = "<dict>",
) -> SettlementConfig:
    """
    Parse a full configuration document.

    Postconditions:
        - Plan ids are unique; ``default_plan`` (when set) is one of them.
        - ``checksum`` is the SHA-256 of ``data``.
    """
    try:
        config_id = data["config_id"]
        platform_data = data["platform"]
        host_slug = platform_data["host_slug"]
    except (KeyError, TypeError) as exc:
        raise InvalidConfigurationError(source, f"missing required key {exc}") from None

    plans = tuple(parse_plan(p, source) for p in data.get("plans") or ())
    seen: set[str] = set()
    for plan in plans:
        if plan.plan_id in seen:
            raise InvalidConfigurationError(source, f"duplicate plan {plan.plan_id}")
        seen.add(plan.plan_id)

    default_plan = data.get("default_plan")
    if default_plan is not None and default_plan not in seen:
        raise InvalidConfigurationError(
            source, f"default_plan {default_plan!r} is not a configured plan",
        )

    retry_data = data.get("store_retry") or {}
    export_data = data.get("export") or {}
    run_data = data.get("run") or {}

    return SettlementConfig(
        config_id=str(config_id),
        version=int(data.get("version", 1)),
        platform=PlatformDef(
            host_slug=str(host_slug),
            name=platform_data.get("name", "Platform"),
        ),
        plans=plans,
        default_plan=default_plan,
        fx=parse_fx_policy(data.get("fx") or {}, source),
        store_retry=RetryPolicy(
            max_attempts=_positive_int(retry_data, "max_attempts", 2, source),
            backoff_seconds=_non_negative_float(retry_data, "backoff_seconds", 1.0, source),
        ),
        export=ExportPolicy(
            max_attempts=_positive_int(export_data, "max_attempts", 3, source),
            backoff_seconds=_non_negative_float(export_data, "backoff_seconds", 0.5, source),
            content_type=export_data.get("content_type", "text/csv"),
        ),
        run=RunPolicy(
            max_workers=_positive_int(run_data, "max_workers", 4, source),
        ),
        checksum=compute_checksum(data),
    )


def load_settlement_config(path: Path) -> SettlementConfig:
    """Load and parse a configuration file."""
    return parse_settlement_config(load_yaml_file(path), source=str(path))
