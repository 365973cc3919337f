"""
Tests for settlement_config: YAML loading, validation, checksum and the
configuration trace log.
"""

from decimal import Decimal

import pytest
import yaml

from settlement_config import (
    DEFAULT_CONFIG_PATH,
    MissingRatePolicy,
    get_active_config,
    load_settlement_config,
    parse_settlement_config,
)
from settlement_kernel.exceptions import InvalidConfigurationError, PlanNotFoundError


def _document(**overrides):
    data = {
        "config_id": "test-config",
        "version": 3,
        "platform": {"host_slug": "opencollective"},
        "plans": [
            {"plan_id": "free", "host_fee_share_percent": 0},
            {"plan_id": "pro", "host_fee_share_percent": 7.5},
        ],
        "default_plan": "free",
    }
    data.update(overrides)
    return data


class TestBundledConfig:

    def test_loads_default_set(self):
        config = get_active_config()

        assert config.config_id == "platform-settlement"
        assert config.platform.host_slug == "opencollective"
        assert config.default_plan == "default-plan"
        assert config.get_plan("grow-plan-2021").host_fee_share_percent == Decimal("15")
        assert config.fx.on_missing_rate == MissingRatePolicy.FAIL
        assert config.store_retry.max_attempts == 2
        assert config.run.max_workers == 4
        assert len(config.checksum) == 64

    def test_emits_trace_log(self, captured_logs):
        config = get_active_config()

        traces = [r for r in captured_logs() if r["message"] == "SETTLEMENT_CONFIG_TRACE"]
        assert traces
        assert traces[-1]["checksum"] == config.checksum
        assert traces[-1]["plan_count"] == 4
        assert traces[-1]["source"] == str(DEFAULT_CONFIG_PATH)

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "settlement.yaml"
        path.write_text(yaml.safe_dump(_document()))

        config = load_settlement_config(path)

        assert config.config_id == "test-config"
        assert config.version == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            get_active_config(tmp_path / "absent.yaml")


class TestParsing:

    def test_percent_parsed_exactly(self):
        config = parse_settlement_config(_document())

        assert config.share_percent_table() == {
            "free": Decimal("0"),
            "pro": Decimal("7.5"),
        }
        assert config.plan_ids == ("free", "pro")

    def test_defaults_for_optional_sections(self):
        config = parse_settlement_config(_document())

        assert config.fx.rate_annotation_key == "hostToPlatformFxRate"
        assert config.export.max_attempts == 3
        assert config.export.content_type == "text/csv"
        assert config.store_retry.backoff_seconds == 1.0

    def test_review_policy(self):
        config = parse_settlement_config(_document(fx={"on_missing_rate": "REVIEW"}))
        assert config.fx.on_missing_rate == MissingRatePolicy.REVIEW

    def test_unknown_plan_lookup(self):
        config = parse_settlement_config(_document())

        with pytest.raises(PlanNotFoundError) as exc_info:
            config.get_plan("enterprise")

        assert exc_info.value.known_plans == ("free", "pro")

    def test_checksum_is_stable(self):
        first = parse_settlement_config(_document())
        second = parse_settlement_config(_document())
        changed = parse_settlement_config(_document(version=4))

        assert first.checksum == second.checksum
        assert first.checksum != changed.checksum


class TestValidation:

    @pytest.mark.parametrize("missing", ["config_id", "platform"])
    def test_missing_required_key(self, missing):
        data = _document()
        del data[missing]
        with pytest.raises(InvalidConfigurationError):
            parse_settlement_config(data)

    def test_duplicate_plan(self):
        plans = [
            {"plan_id": "free", "host_fee_share_percent": 0},
            {"plan_id": "free", "host_fee_share_percent": 5},
        ]
        with pytest.raises(InvalidConfigurationError, match="duplicate plan"):
            parse_settlement_config(_document(plans=plans))

    def test_default_plan_must_exist(self):
        with pytest.raises(InvalidConfigurationError, match="default_plan"):
            parse_settlement_config(_document(default_plan="gone"))

    @pytest.mark.parametrize("percent", [-1, 100.5, "lots", None, True])
    def test_bad_share_percent(self, percent):
        plans = [{"plan_id": "odd", "host_fee_share_percent": percent}]
        with pytest.raises(InvalidConfigurationError):
            parse_settlement_config(_document(plans=plans, default_plan=None))

    def test_plan_without_percent(self):
        with pytest.raises(InvalidConfigurationError, match="missing"):
            parse_settlement_config(_document(plans=[{"plan_id": "bare"}], default_plan=None))

    def test_bad_missing_rate_policy(self):
        with pytest.raises(InvalidConfigurationError, match="on_missing_rate"):
            parse_settlement_config(_document(fx={"on_missing_rate": "guess"}))

    @pytest.mark.parametrize("value", [0, -2, 1.5, "4"])
    def test_max_workers_must_be_positive_int(self, value):
        with pytest.raises(InvalidConfigurationError, match="max_workers"):
            parse_settlement_config(_document(run={"max_workers": value}))

    def test_negative_backoff(self):
        with pytest.raises(InvalidConfigurationError, match="backoff_seconds"):
            parse_settlement_config(_document(export={"backoff_seconds": -1}))

    def test_error_names_source(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text(yaml.safe_dump(_document(default_plan="gone")))

        with pytest.raises(InvalidConfigurationError) as exc_info:
            load_settlement_config(path)

        assert str(path) in str(exc_info.value)
