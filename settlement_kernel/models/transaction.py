"""
Module: settlement_kernel.models.transaction
Responsibility: ORM persistence for ledger transactions, the input of every
    settlement run.
Architecture position: Kernel > Models.  May import from db/ and the pure
    domain DTOs only.

Invariants enforced:
    - Amount, currency and fee columns are written by the platform when a
      contribution is recorded and are never modified by the settlement job.
    - The only mutation the job performs is ``mark_settled()``, which moves
      the row from UNSETTLED to SETTLED(expense id) inside the same database
      transaction that creates the settlement expense.
    - Rows carrying the legacy annotation ``data.settled = true`` are read as
      SETTLED even when the explicit state column was never written.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import Base, UUIDString
from settlement_kernel.domain.dtos import (
    SettlementState,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)


class Transaction(Base):
    """One ledger row; contributions and their platform tips come in pairs
    linked by ``transaction_group`` / ``platform_tip_for_transaction_group``."""

    __tablename__ = "transactions"

    __table_args__ = (
        Index("ix_transactions_created_at", "created_at"),
        Index("ix_transactions_host_created", "host_id", "created_at"),
        Index("ix_transactions_group", "transaction_group"),
        Index("ix_transactions_tip_group", "platform_tip_for_transaction_group"),
        Index("ix_transactions_settlement", "settlement_status"),
    )

    type: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.CONFIRMED.value,
    )
    description: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    amount: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    host_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("hosts.id"), nullable=True,
    )
    collective_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("collectives.id"), nullable=True,
    )

    host_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    amount_in_host_currency: Mapped[int | None] = mapped_column(nullable=True)
    host_currency_fx_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 18), nullable=True,
    )
    platform_fee_in_host_currency: Mapped[int | None] = mapped_column(nullable=True)
    host_fee_in_host_currency: Mapped[int | None] = mapped_column(nullable=True)

    transaction_group: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, default=uuid4,
    )
    platform_tip_for_transaction_group: Mapped[UUID | None] = mapped_column(
        UUIDString(), nullable=True,
    )

    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    settlement_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementState.UNSETTLED.value,
    )
    settlement_expense_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("settlement_expenses.id"), nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction {self.type} {self.amount} {self.currency} "
            f"{self.settlement_status}>"
        )

    @property
    def is_settled(self) -> bool:
        if self.settlement_status == SettlementState.SETTLED.value:
            return True
        return bool((self.data or {}).get("settled") is True)

    def mark_settled(self, expense_id: UUID) -> None:
        """Transition UNSETTLED -> SETTLED(expense_id).

        The JSON bag is replaced rather than mutated in place so the ORM
        detects the change.
        """
        self.settlement_status = SettlementState.SETTLED.value
        self.settlement_expense_id = expense_id
        self.data = {**(self.data or {}), "settled": True}

    def to_record(self) -> TransactionRecord:
        return TransactionRecord(
            transaction_id=self.id,
            type=TransactionType(self.type),
            amount=self.amount,
            currency=self.currency,
            created_at=self.created_at,
            transaction_group=self.transaction_group,
            host_id=self.host_id,
            collective_id=self.collective_id,
            host_currency=self.host_currency,
            amount_in_host_currency=self.amount_in_host_currency,
            host_currency_fx_rate=self.host_currency_fx_rate,
            platform_fee_in_host_currency=self.platform_fee_in_host_currency,
            host_fee_in_host_currency=self.host_fee_in_host_currency,
            platform_tip_for_transaction_group=self.platform_tip_for_transaction_group,
            settlement_state=(
                SettlementState.SETTLED if self.is_settled else SettlementState.UNSETTLED
            ),
            settlement_expense_id=self.settlement_expense_id,
            data=dict(self.data or {}),
        )
