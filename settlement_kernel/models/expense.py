"""
Module: settlement_kernel.models.expense
Responsibility: ORM persistence for settlement expenses, their itemized
    lines and attached audit files.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - One SettlementExpense per host per period with a non-zero aggregate;
      enforced by the expense builder's check-then-create guard, which
      locks and re-verifies the contributing transactions.
    - Items are ordered by ``position`` and never carry a zero amount.
    - ``amount`` equals the sum of the item amounts.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase, UUIDString


class SettlementExpense(TrackedBase):
    """Payable record for a host's periodic obligation to the platform."""

    __tablename__ = "settlement_expenses"

    __table_args__ = (
        Index("ix_settlement_expenses_host_period", "host_id", "period_key"),
    )

    host_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("hosts.id"), nullable=False,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)
    description: Mapped[str] = mapped_column(String(1000), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    payout_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    period_key: Mapped[str] = mapped_column(String(40), nullable=False)
    period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    period_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    items: Mapped[list["ExpenseItem"]] = relationship(
        "ExpenseItem",
        back_populates="expense",
        order_by="ExpenseItem.position",
        cascade="all, delete-orphan",
    )
    attached_files: Mapped[list["AttachedFile"]] = relationship(
        "AttachedFile",
        back_populates="expense",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<SettlementExpense {self.period_key} {self.amount} {self.currency}>"

    @property
    def is_platform_tip_settlement(self) -> bool:
        return bool((self.data or {}).get("isPlatformTipSettlement"))

    @property
    def audit_export_pending(self) -> bool:
        return bool((self.data or {}).get("auditExportPending"))

    def set_audit_export_pending(self, pending: bool, reason: str | None = None) -> None:
        data = {**(self.data or {}), "auditExportPending": pending}
        if reason is not None:
            data["auditExportError"] = reason
        else:
            data.pop("auditExportError", None)
        self.data = data


class ExpenseItem(TrackedBase):
    """Named, amounted line of a settlement expense."""

    __tablename__ = "settlement_expense_items"

    expense_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("settlement_expenses.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[int] = mapped_column(nullable=False)

    expense: Mapped[SettlementExpense] = relationship(
        "SettlementExpense", back_populates="items",
    )

    def __repr__(self) -> str:
        return f"<ExpenseItem {self.description} {self.amount}>"


class AttachedFile(TrackedBase):
    """Reference to a retrievable audit export."""

    __tablename__ = "settlement_attached_files"

    expense_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("settlement_expenses.id", ondelete="CASCADE"),
        nullable=False,
    )
    url: Mapped[str] = mapped_column(String(2000), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(nullable=False)

    expense: Mapped[SettlementExpense] = relationship(
        "SettlementExpense", back_populates="attached_files",
    )
