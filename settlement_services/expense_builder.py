"""
Module: settlement_services.expense_builder
Responsibility: Persist one host's settlement: the payable expense with its
    itemized lines, the platform-side credit for what the host collected on
    the platform's behalf, and the settled state of every contributing
    transaction.
Architecture position: Services.  Writes through the caller's session; the
    caller (the per-host pipeline) owns commit and rollback.

Invariants enforced:
    - Check-then-create: contributing rows are re-selected FOR UPDATE and
      must all still be UNSETTLED before anything is written.
    - One item per non-zero bucket, in fixed order; expense amount equals
      the sum of the items.
    - Expense currency is the host currency.
    - Contributing rows move UNSETTLED -> SETTLED(expense id) in the same
      flush as the expense.

Failure modes:
    - SettlementConflictError if any contributing row was settled by a
      concurrent or earlier run.
    - StoreError wrapping SQLAlchemyError, or when contributing rows vanished.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from settlement_config.schema import SettlementConfig
from settlement_engines.aggregator import SettlementTotals
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.dtos import (
    HostRecord,
    SettlementState,
    TransactionStatus,
    TransactionType,
)
from settlement_kernel.domain.period import SettlementPeriod
from settlement_kernel.exceptions import SettlementConflictError, StoreError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.expense import ExpenseItem, SettlementExpense
from settlement_kernel.models.transaction import Transaction
from settlement_kernel.utils.idempotency import generate_settlement_key

logger = get_logger("services.expense_builder")

EXPENSE_STATUS_PENDING = "PENDING"


def expense_description(period: SettlementPeriod) -> str:
    return f"Platform settlement for {period.label}"


def credit_description(period: SettlementPeriod) -> str:
    return f"Platform Fees and Tips collected in {period.label}"


class ExpenseBuilder:
    """
    Creates the settlement expense for one host and period.

    Contract:
        ``build()`` flushes but never commits.
    """

    def __init__(
        self,
        session: Session,
        config: SettlementConfig,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._config = config
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()

    def _lock_contributing(
        self, host: HostRecord, transaction_ids: tuple[UUID, ...],
    ) -> list[Transaction]:
        rows = self._session.execute(
            select(Transaction)
            .where(Transaction.id.in_(transaction_ids))
            .order_by(Transaction.id)
            .with_for_update()
            # Rows read earlier in this session must be refreshed, not reused
            .execution_options(populate_existing=True)
        ).scalars().all()

        if len(rows) != len(transaction_ids):
            raise StoreError(
                "lock_contributing",
                f"{len(transaction_ids) - len(rows)} contributing transaction(s) "
                f"of host {host.slug} no longer exist",
            )

        # Another run may have committed between our read and this lock
        already_settled = [r for r in rows if r.is_settled]
        if already_settled:
            raise SettlementConflictError(
                str(host.host_id), len(already_settled), len(rows),
            )
        return list(rows)

    def build(
        self,
        host: HostRecord,
        totals: SettlementTotals,
        period: SettlementPeriod,
    ) -> SettlementExpense:
        """
        Write the settlement for ``host``.

        Preconditions:
            ``totals`` is not zero and was computed for ``host``.

        Raises:
            SettlementConflictError: A contributing row is already settled.
            StoreError: Database failure.
        """
        if totals.is_zero:
            raise ValueError(f"Nothing to settle for host {host.slug}")

        now = self._clock.now()
        settlement_key = generate_settlement_key(host.host_id, period.key)

        try:
            rows = self._lock_contributing(host, totals.contributing_transaction_ids)

            expense = SettlementExpense(
                id=uuid4(),
                host_id=host.host_id,
                currency=host.currency,
                amount=totals.total,
                description=expense_description(period),
                status=EXPENSE_STATUS_PENDING,
                payout_method=host.default_payout_method,
                period_key=period.key,
                period_start=period.start,
                period_end=period.end,
                data={
                    "isPlatformTipSettlement": True,
                    "settlementKey": settlement_key,
                    "configChecksum": self._config.checksum,
                    "auditExportPending": False,
                },
                created_by_id=self._actor_id,
                created_at=now,
                updated_at=now,
            )
            for position, item in enumerate(totals.items):
                expense.items.append(ExpenseItem(
                    position=position,
                    description=item.description,
                    amount=item.amount,
                    created_by_id=self._actor_id,
                    created_at=now,
                    updated_at=now,
                ))
            self._session.add(expense)
            self._session.flush()

            credit = None
            if totals.collected_total:
                credit = self._platform_credit(host, totals, period, expense, now)
                self._session.add(credit)

            for row in rows:
                row.mark_settled(expense.id)

            self._session.flush()
        except SQLAlchemyError as exc:
            raise StoreError("build_expense", str(exc)) from exc

        logger.info("settlement_expense_created", extra={
            "expense_id": str(expense.id),
            "host_slug": host.slug,
            "settlement_key": settlement_key,
            "amount": expense.amount,
            "currency": expense.currency,
            "items": [(i.description, i.amount) for i in totals.items],
            "collected_total": totals.collected_total,
            "credit_transaction_id": str(credit.id) if credit is not None else None,
            "settled_transactions": len(rows),
        })
        return expense

    def _platform_credit(
        self,
        host: HostRecord,
        totals: SettlementTotals,
        period: SettlementPeriod,
        expense: SettlementExpense,
        now,
    ) -> Transaction:
        """Credit for fees and tips the host collected for the platform.

        Created already settled so later runs never pick it up.
        """
        return Transaction(
            id=uuid4(),
            type=TransactionType.CREDIT.value,
            status=TransactionStatus.CONFIRMED.value,
            description=credit_description(period),
            amount=totals.collected_total,
            currency=host.currency,
            host_id=host.host_id,
            host_currency=host.currency,
            amount_in_host_currency=totals.collected_total,
            host_currency_fx_rate=Decimal("1"),
            platform_fee_in_host_currency=0,
            host_fee_in_host_currency=0,
            transaction_group=uuid4(),
            data={
                "isPlatformSettlementCredit": True,
                "settled": True,
                "settlementExpenseId": str(expense.id),
            },
            settlement_status=SettlementState.SETTLED.value,
            settlement_expense_id=expense.id,
            created_at=now,
        )
