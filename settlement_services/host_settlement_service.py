"""
HostSettlementService -- the per-host settlement pipeline.

Contract:
    ``settle(host, period)`` reads the host's ledger, runs the engines,
    writes the settlement in ONE database transaction, then attaches the
    audit export in a second one.  Each call opens its own session from the
    session factory, so hosts processed in parallel never share state.

Architecture: settlement_services.  Called by the run executor, which turns
    the exceptions raised here into per-host outcomes.

Invariants enforced:
    - Nothing is written for a host whose totals are zero.
    - The financial write commits or rolls back as a whole.
    - Export failures never roll back a committed settlement.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from settlement_config.schema import SettlementConfig
from settlement_engines.aggregator import SettlementItem, SettlementTotals, aggregate
from settlement_engines.classifier import classify
from settlement_engines.converter import convert_tips
from settlement_engines.revenue_share import compute_shared_revenue
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import HostRecord
from settlement_kernel.domain.period import SettlementPeriod
from settlement_kernel.exceptions import StoreError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.expense import SettlementExpense
from settlement_services.audit_export import AuditExporter
from settlement_services.expense_builder import ExpenseBuilder
from settlement_services.ledger_reader import LedgerReader
from settlement_services.notification import LoggingNotifier, Notifier

logger = get_logger("services.host_settlement")


class HostOutcomeStatus(str, Enum):
    SETTLED = "settled"
    NOTHING_TO_SETTLE = "nothing_to_settle"


@dataclass(frozen=True)
class HostSettlementOutcome:
    """What happened to one host, when no exception was raised."""

    host_id: UUID
    status: HostOutcomeStatus
    expense_id: UUID | None = None
    amount: int = 0
    currency: str | None = None
    items: tuple[SettlementItem, ...] = ()
    collected_total: int = 0
    settled_transaction_ids: tuple[UUID, ...] = ()
    review_transaction_ids: tuple[UUID, ...] = ()
    excluded_settled: int = 0
    export_pending: bool = False
    attachment_url: str | None = None


class HostSettlementService:
    """Runs the settlement pipeline for one host at a time."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: SettlementConfig,
        exporter: AuditExporter,
        clock: Clock | None = None,
        notifier: Notifier | None = None,
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._exporter = exporter
        self._clock = clock or SystemClock()
        self._notifier = notifier or LoggingNotifier()
        self._actor_id = actor_id or uuid4()

    def compute(
        self, session: Session, host: HostRecord, period: SettlementPeriod,
    ) -> tuple[SettlementTotals, int]:
        """Read and calculate without writing.

        Returns the totals and the number of already settled rows skipped.
        """
        ledger = LedgerReader(session, self._config).read_host(host.host_id, period)
        classification = classify(
            transactions=ledger.transactions,
            host_currency=host.currency,
            known_groups=ledger.known_groups,
            rate_annotation_key=self._config.fx.rate_annotation_key,
        )
        conversion = convert_tips(
            entries=classification.entries,
            host_currency=host.currency,
            policy=self._config.fx,
        )
        shared = compute_shared_revenue(
            entries=classification.entries,
            host_plan=host.plan,
            plans=self._config.share_percent_table(),
            default_plan=self._config.default_plan,
        )
        totals = aggregate(
            host_id=host.host_id,
            currency=host.currency,
            entries=classification.entries,
            converted_tips=conversion.converted,
            shared_revenue=shared,
            review_tips=conversion.needs_review,
        )
        return totals, len(classification.excluded_settled)

    def settle(self, host: HostRecord, period: SettlementPeriod) -> HostSettlementOutcome:
        """
        Raises:
            DataIntegrityError, ConversionError, PlanNotFoundError: Ledger
                cannot be billed; nothing was written.
            SettlementConflictError: Contributing rows settled elsewhere.
            StoreError: Database failure; nothing was written.
        """
        session = self._session_factory()
        try:
            totals, excluded = self.compute(session, host, period)
            review_ids = tuple(e.transaction_id for e in totals.review_tips)

            if totals.is_zero:
                session.rollback()
                logger.info("host_nothing_to_settle", extra={
                    "host_slug": host.slug,
                    "excluded_settled": excluded,
                    "review_count": len(review_ids),
                })
                return HostSettlementOutcome(
                    host_id=host.host_id,
                    status=HostOutcomeStatus.NOTHING_TO_SETTLE,
                    currency=host.currency,
                    review_transaction_ids=review_ids,
                    excluded_settled=excluded,
                )

            builder = ExpenseBuilder(session, self._config, self._clock, self._actor_id)
            try:
                expense = builder.build(host, totals, period)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise StoreError("commit_settlement", str(exc)) from exc
            except Exception:
                session.rollback()
                raise

            # The settlement is committed from here on; nothing below may fail the host
            try:
                self._notifier.settlement_created(host, expense)
            except Exception:
                logger.exception("host_notification_failed", extra={
                    "expense_id": str(expense.id),
                    "host_slug": host.slug,
                })

            attachment = None
            try:
                attachment = self._exporter.export_totals(
                    session, expense, host.slug, totals,
                )
                session.commit()
            except Exception as exc:
                session.rollback()
                logger.exception("audit_export_attach_failed", extra={
                    "expense_id": str(expense.id),
                    "host_slug": host.slug,
                })
                self._flag_export_pending(expense.id, reason=str(exc))

            return HostSettlementOutcome(
                host_id=host.host_id,
                status=HostOutcomeStatus.SETTLED,
                expense_id=expense.id,
                amount=expense.amount,
                currency=expense.currency,
                items=totals.items,
                collected_total=totals.collected_total,
                settled_transaction_ids=totals.contributing_transaction_ids,
                review_transaction_ids=review_ids,
                excluded_settled=excluded,
                export_pending=attachment is None,
                attachment_url=attachment.url if attachment is not None else None,
            )
        finally:
            session.close()

    def _flag_export_pending(self, expense_id: UUID, reason: str) -> None:
        session = self._session_factory()
        try:
            expense = session.get(SettlementExpense, expense_id)
            if expense is not None:
                expense.set_audit_export_pending(True, reason=reason)
                session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.exception("audit_export_flag_failed", extra={
                "expense_id": str(expense_id),
            })
        finally:
            session.close()
