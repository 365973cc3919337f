"""Tests for the @traced_engine decorator and input fingerprints."""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from settlement_engines.tracer import compute_input_fingerprint, traced_engine


class _Color(str, Enum):
    RED = "red"


class TestInputFingerprint:

    def test_stable_for_equal_inputs(self):
        a = compute_input_fingerprint(("x", "y"), {"x": 1, "y": "a"})
        b = compute_input_fingerprint(("x", "y"), {"y": "a", "x": 1})
        assert a == b
        assert len(a) == 16

    def test_decimal_normalized(self):
        a = compute_input_fingerprint(("rate",), {"rate": Decimal("1.50")})
        b = compute_input_fingerprint(("rate",), {"rate": Decimal("1.5")})
        assert a == b

    def test_missing_field_is_null(self):
        a = compute_input_fingerprint(("plan",), {})
        b = compute_input_fingerprint(("plan",), {"plan": None})
        assert a == b

    def test_sets_order_independent(self):
        u1 = UUID(int=1)
        u2 = UUID(int=2)
        a = compute_input_fingerprint(("ids",), {"ids": {u1, u2}})
        b = compute_input_fingerprint(("ids",), {"ids": frozenset([u2, u1])})
        assert a == b

    def test_enum_uses_value(self):
        a = compute_input_fingerprint(("c",), {"c": _Color.RED})
        b = compute_input_fingerprint(("c",), {"c": "red"})
        assert a == b

    def test_different_inputs_differ(self):
        a = compute_input_fingerprint(("x",), {"x": 1})
        b = compute_input_fingerprint(("x",), {"x": 2})
        assert a != b


class TestTracedEngine:

    def test_returns_result_and_logs_trace(self, captured_logs):
        @traced_engine("sample", "2.1", fingerprint_fields=("value",))
        def double(*, value):
            return value * 2

        assert double(value=21) == 42

        trace = [r for r in captured_logs() if r["message"] == "SETTLEMENT_ENGINE_TRACE"][-1]
        assert trace["engine_name"] == "sample"
        assert trace["engine_version"] == "2.1"
        assert trace["input_fingerprint"] == compute_input_fingerprint(
            ("value",), {"value": 21},
        )
        assert trace["function"].endswith("double")
        assert trace["duration_ms"] >= 0

    def test_preserves_function_metadata(self):
        @traced_engine("sample", "1.0")
        def documented():
            """Docstring kept."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring kept."
