"""
Tests for settlement_batch.domain.types.

Validates the per-host state machine, report counters and the JSON shape of
the run report.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from settlement_batch.domain.types import (
    TERMINAL_STATES,
    HostSettlementResult,
    HostSettlementState,
    RunStatus,
    SettlementRunReport,
    validate_transition,
)
from settlement_kernel.exceptions import InvalidStateTransitionError

START = datetime(2026, 9, 1, tzinfo=timezone.utc)
END = datetime(2026, 10, 1, tzinfo=timezone.utc)


def _result(state, **kwargs):
    return HostSettlementResult(
        host_id=kwargs.pop("host_id", uuid4()),
        host_slug=kwargs.pop("host_slug", "some-host"),
        state=state,
        **kwargs,
    )


def _report(*results, **kwargs):
    return SettlementRunReport(
        run_id=uuid4(),
        period_key="2026-09",
        period_start=START,
        period_end=END,
        status=kwargs.pop("status", RunStatus.COMPLETED),
        host_results=tuple(results),
        **kwargs,
    )


# =============================================================================
# State machine
# =============================================================================


class TestHostStateMachine:

    def test_pending_to_processing(self):
        assert validate_transition(
            "h", HostSettlementState.PENDING, HostSettlementState.PROCESSING,
        ) == HostSettlementState.PROCESSING

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_processing_to_terminal(self, terminal):
        assert validate_transition("h", HostSettlementState.PROCESSING, terminal) == terminal

    def test_pending_cannot_skip_processing(self):
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_transition(
                "host-1", HostSettlementState.PENDING, HostSettlementState.SETTLED,
            )
        assert exc_info.value.code == "INVALID_STATE_TRANSITION"
        assert "host-1" in str(exc_info.value)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_are_final(self, terminal):
        with pytest.raises(InvalidStateTransitionError):
            validate_transition("h", terminal, HostSettlementState.PROCESSING)


# =============================================================================
# Report
# =============================================================================


class TestRunReport:

    def test_counts_by_state(self):
        report = _report(
            _result(HostSettlementState.SETTLED, expense_id=uuid4()),
            _result(HostSettlementState.SETTLED, expense_id=uuid4()),
            _result(HostSettlementState.SKIPPED),
            _result(HostSettlementState.FAILED, error_code="STORE_ERROR"),
            _result(HostSettlementState.PENDING),
        )

        assert (report.settled, report.skipped, report.failed, report.pending) == (2, 1, 1, 1)
        assert report.has_failures
        assert len(report.settled_expense_ids) == 2
        assert report.failures[0].error_code == "STORE_ERROR"

    def test_review_ids_include_unattributed_tips(self):
        review, orphan = uuid4(), uuid4()
        report = _report(
            _result(HostSettlementState.SETTLED, review_transaction_ids=(review,)),
            unattributed_tip_ids=(orphan,),
        )

        assert report.review_transaction_ids == (review, orphan)

    def test_result_for_unknown_host(self):
        with pytest.raises(KeyError):
            _report().result_for(uuid4())

    def test_to_dict(self):
        host_id, expense_id = uuid4(), uuid4()
        report = _report(
            _result(
                HostSettlementState.SETTLED,
                host_id=host_id,
                host_slug="brussels-host",
                currency="GBP",
                expense_id=expense_id,
                amount=1143,
                items=(("Platform Fees", 300), ("Platform Tips", 843)),
            ),
            config_checksum="abc",
        )

        data = report.to_dict()

        assert data["period"] == "2026-09"
        assert data["periodStart"] == "2026-09-01T00:00:00+00:00"
        assert data["status"] == "completed"
        assert data["counts"] == {"settled": 1, "skipped": 0, "failed": 0, "pending": 0}
        assert data["configChecksum"] == "abc"
        (host,) = data["hosts"]
        assert host["hostId"] == str(host_id)
        assert host["expenseId"] == str(expense_id)
        assert host["state"] == "settled"
        assert host["items"] == [
            {"description": "Platform Fees", "amount": 300},
            {"description": "Platform Tips", "amount": 843},
        ]

    def test_report_is_frozen(self):
        report = _report()
        with pytest.raises(AttributeError):
            report.status = RunStatus.FAILED
