"""
settlement_config -- single public entrypoint for settlement configuration.

Responsibility:
    ``get_active_config()`` returns the immutable ``SettlementConfig``
    snapshot a run executes with: plan share table, FX policy, store retry
    policy, export policy and worker count.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``InvalidConfigurationError`` -- missing keys or invalid values.

Audit relevance:
    Every successful call emits a ``SETTLEMENT_CONFIG_TRACE`` log entry
    with the config id, version, checksum and plan count.  The checksum is
    stamped on every settlement expense created by the run.
"""

from __future__ import annotations

from pathlib import Path

from settlement_config.loader import load_settlement_config, parse_settlement_config
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
from settlement_kernel.logging_config import get_logger

_logger = get_logger("config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | None = None) -> SettlementConfig:
    """Load the configuration snapshot for a run.

    Args:
        config_path: YAML file to load.  Defaults to the bundled
            ``sets/default.yaml``.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    config = load_settlement_config(path)

    _logger.info(
        "SETTLEMENT_CONFIG_TRACE",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "plan_count": len(config.plans),
            "source": str(path),
        },
    )
    return config


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ExportPolicy",
    "FxPolicy",
    "MissingRatePolicy",
    "PlanDefinition",
    "PlatformDef",
    "RetryPolicy",
    "RunPolicy",
    "SettlementConfig",
    "get_active_config",
    "load_settlement_config",
    "parse_settlement_config",
]
