"""
SettlementRunExecutor -- per-host isolated execution of one settlement run.

Contract:
    ``run(period)`` enumerates the hosts with activity in the period,
    settles each of them through the HostSettlementService with bounded
    parallelism, and returns (and persists) a SettlementRunReport.

Architecture: settlement_batch/services.  Imports from settlement_batch.domain,
    settlement_batch.models, settlement_services and kernel infrastructure.

Invariants enforced:
    - Failure isolation: one host's failure never aborts another host.
    - Every host moves PENDING -> PROCESSING -> terminal through the
      validated state machine; hosts not started before a stop request
      stay PENDING.
    - StoreError is retried per the store retry policy, then the host fails.
    - All timestamps come from the injected Clock.

Failure modes:
    - HostEnumerationError propagates: the run never starts.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from settlement_config.schema import SettlementConfig
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import HostRecord
from settlement_kernel.domain.period import SettlementPeriod
from settlement_kernel.exceptions import (
    ConfigurationError,
    ConversionError,
    DataIntegrityError,
    HostEnumerationError,
    SettlementConflictError,
    StoreError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_services.host_settlement_service import (
    HostOutcomeStatus,
    HostSettlementOutcome,
    HostSettlementService,
)
from settlement_services.ledger_reader import LedgerReader

from settlement_batch.domain.types import (
    HostSettlementResult,
    HostSettlementState,
    RunStatus,
    SettlementRunReport,
    validate_transition,
)
from settlement_batch.models.run import SettlementRunModel

logger = get_logger("batch.executor")

REASON_NOTHING_TO_SETTLE = "nothing to settle"
REASON_ALREADY_SETTLED = "already settled"


class _HostTask:
    """Mutable per-host tracker; only the worker owning the host touches it."""

    def __init__(self, host: HostRecord):
        self.host = host
        self.state = HostSettlementState.PENDING

    def transition(self, to_state: HostSettlementState) -> None:
        self.state = validate_transition(self.host.host_id, self.state, to_state)


class SettlementRunExecutor:
    """Runs one settlement period across all hosts.

    Contract:
        - ``run()`` returns a SettlementRunReport; it commits the run
          report in its own session.
        - ``request_stop()`` may be called from any thread; hosts already
          processing finish, the rest stay PENDING.

    Non-goals:
        - Does NOT cancel a host mid-pipeline.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: SettlementConfig,
        host_service: HostSettlementService,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        max_workers: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._config = config
        self._host_service = host_service
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._max_workers = max_workers or config.run.max_workers
        self._sleep = sleep
        self._stop = threading.Event()

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def request_stop(self) -> None:
        logger.warning("settlement_run_stop_requested")
        self._stop.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop.is_set()

    # -------------------------------------------------------------------------
    # Enumeration
    # -------------------------------------------------------------------------

    def _enumerate(
        self, period: SettlementPeriod,
    ) -> tuple[tuple[HostRecord, ...], tuple[UUID, ...]]:
        """Hosts with activity in ``period`` plus unattributable tip ids.

        Raises:
            HostEnumerationError: Hosts or the period ledger cannot be read.
        """
        session = self._session_factory()
        try:
            reader = LedgerReader(session, self._config)
            hosts = reader.list_hosts()
            try:
                ledger = reader.read_period(period)
            except StoreError as exc:
                raise HostEnumerationError(exc.reason) from exc
        finally:
            session.close()

        active_ids = {h.host_id for h in hosts}
        inactive = [h for h in ledger.host_ids if h not in active_ids]
        if inactive:
            logger.warning("activity_for_unlisted_hosts", extra={
                "host_ids": [str(h) for h in inactive],
            })

        with_activity = tuple(h for h in hosts if h.host_id in ledger.by_host)
        return with_activity, tuple(t.transaction_id for t in ledger.unattributed_tips)

    # -------------------------------------------------------------------------
    # Per host
    # -------------------------------------------------------------------------

    def _settle_with_retry(self, host: HostRecord, period: SettlementPeriod):
        policy = self._config.store_retry
        attempt = 1
        while True:
            try:
                return self._host_service.settle(host, period), attempt - 1
            except StoreError as exc:
                if attempt >= policy.max_attempts:
                    raise
                logger.warning("host_store_error_retrying", extra={
                    "host_slug": host.slug,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "error": str(exc),
                })
                self._sleep(policy.backoff_seconds * attempt)
                attempt += 1

    def _result(
        self,
        task: _HostTask,
        started_at,
        t0: float,
        outcome: HostSettlementOutcome | None = None,
        error: Exception | None = None,
        reason: str | None = None,
        retry_count: int = 0,
    ) -> HostSettlementResult:
        fields = {}
        if outcome is not None:
            fields = dict(
                currency=outcome.currency,
                expense_id=outcome.expense_id,
                amount=outcome.amount,
                items=tuple((i.description, i.amount) for i in outcome.items),
                collected_total=outcome.collected_total,
                settled_transaction_count=len(outcome.settled_transaction_ids),
                review_transaction_ids=outcome.review_transaction_ids,
                export_pending=outcome.export_pending,
                attachment_url=outcome.attachment_url,
            )
        if error is not None:
            fields["error_code"] = getattr(error, "code", "UNHANDLED_EXCEPTION")
            fields["error_message"] = str(error)
        return HostSettlementResult(
            host_id=task.host.host_id,
            host_slug=task.host.slug,
            state=task.state,
            reason=reason,
            retry_count=retry_count,
            duration_ms=int((time.monotonic() - t0) * 1000),
            started_at=started_at,
            completed_at=self._clock.now(),
            **fields,
        )

    def _process_host(
        self, task: _HostTask, period: SettlementPeriod, run_id: UUID,
    ) -> HostSettlementResult:
        host = task.host
        if self._stop.is_set():
            return HostSettlementResult(
                host_id=host.host_id, host_slug=host.slug, state=task.state,
            )

        with LogContext.bind(run_id=run_id, host_id=host.host_id, period=period.key):
            t0 = time.monotonic()
            started_at = self._clock.now()
            task.transition(HostSettlementState.PROCESSING)
            retries = self._config.store_retry.max_attempts - 1

            try:
                outcome, retries = self._settle_with_retry(host, period)
            except SettlementConflictError as exc:
                if exc.fully_settled:
                    task.transition(HostSettlementState.SKIPPED)
                    logger.info("host_already_settled", extra={"host_slug": host.slug})
                    return self._result(
                        task, started_at, t0, reason=REASON_ALREADY_SETTLED,
                    )
                task.transition(HostSettlementState.FAILED)
                logger.error("host_settlement_conflict", exc_info=exc)
                return self._result(task, started_at, t0, error=exc)
            except StoreError as exc:
                task.transition(HostSettlementState.FAILED)
                logger.error("host_store_error", exc_info=exc)
                return self._result(
                    task, started_at, t0, error=exc, retry_count=retries,
                )
            except (DataIntegrityError, ConversionError, ConfigurationError) as exc:
                task.transition(HostSettlementState.FAILED)
                logger.error("host_settlement_failed", exc_info=exc)
                return self._result(task, started_at, t0, error=exc)
            except Exception as exc:
                task.transition(HostSettlementState.FAILED)
                logger.exception("host_settlement_unhandled_exception")
                return self._result(task, started_at, t0, error=exc)

            if outcome.status == HostOutcomeStatus.NOTHING_TO_SETTLE:
                task.transition(HostSettlementState.SKIPPED)
                return self._result(
                    task, started_at, t0, outcome=outcome,
                    reason=REASON_NOTHING_TO_SETTLE, retry_count=retries,
                )

            task.transition(HostSettlementState.SETTLED)
            logger.info("host_settled", extra={
                "host_slug": host.slug,
                "expense_id": str(outcome.expense_id),
                "amount": outcome.amount,
                "currency": outcome.currency,
            })
            return self._result(
                task, started_at, t0, outcome=outcome, retry_count=retries,
            )

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    @staticmethod
    def _run_status(results: list[HostSettlementResult], stopped: bool) -> RunStatus:
        states = [r.state for r in results]
        if stopped and HostSettlementState.PENDING in states:
            return RunStatus.STOPPED
        failed = states.count(HostSettlementState.FAILED)
        if failed == 0:
            return RunStatus.COMPLETED
        if failed == len(states):
            return RunStatus.FAILED
        return RunStatus.PARTIALLY_COMPLETED

    def run(self, period: SettlementPeriod, run_id: UUID | None = None) -> SettlementRunReport:
        """
        Settle every host with activity in ``period``.

        Raises:
            HostEnumerationError: Hosts could not be listed.
        """
        run_id = run_id or uuid4()
        t0 = time.monotonic()
        started_at = self._clock.now()

        with LogContext.bind(run_id=run_id, period=period.key):
            logger.info("settlement_run_started", extra={
                "period_start": period.start.isoformat(),
                "period_end": period.end.isoformat(),
                "config_checksum": self._config.checksum,
                "max_workers": self._max_workers,
            })

            try:
                hosts, unattributed = self._enumerate(period)
            except HostEnumerationError:
                logger.exception("settlement_run_aborted")
                raise

            tasks = [_HostTask(h) for h in hosts]
            with ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="settlement",
            ) as pool:
                futures = [
                    pool.submit(self._process_host, task, period, run_id)
                    for task in tasks
                ]
                results = [f.result() for f in futures]

            report = SettlementRunReport(
                run_id=run_id,
                period_key=period.key,
                period_start=period.start,
                period_end=period.end,
                status=self._run_status(results, self._stop.is_set()),
                host_results=tuple(results),
                unattributed_tip_ids=unattributed,
                config_checksum=self._config.checksum,
                started_at=started_at,
                completed_at=self._clock.now(),
                duration_ms=int((time.monotonic() - t0) * 1000),
            )

            self._persist(report)

            logger.info("settlement_run_completed", extra={
                "status": report.status.value,
                "settled": report.settled,
                "skipped": report.skipped,
                "failed": report.failed,
                "pending": report.pending,
                "review_count": len(report.review_transaction_ids),
                "duration_ms": report.duration_ms,
            })
            return report

    def _persist(self, report: SettlementRunReport) -> None:
        """Store the run report; settlements already committed stand either way."""
        session = self._session_factory()
        try:
            model = SettlementRunModel.from_dto(report, created_by_id=self._actor_id)
            now = self._clock.now()
            model.created_at = now
            model.updated_at = now
            for record in model.hosts:
                record.created_at = now
                record.updated_at = now
            session.add(model)
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("settlement_run_report_not_persisted", extra={
                "run_id": str(report.run_id),
            })
        finally:
            session.close()
