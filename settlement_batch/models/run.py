"""
ORM models for settlement run persistence.

Contract:
    SettlementRunModel and HostSettlementRecord persist the run report so
    operators can see, after the fact, which hosts were settled, skipped,
    failed or left pending by each run.  Both have ``from_dto()`` and
    ``to_dto()`` methods.

Architecture: settlement_batch/models.  Imports from settlement_kernel.db.base
    only.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from settlement_batch.domain.types import HostSettlementResult, SettlementRunReport


class SettlementRunModel(TrackedBase):
    """One execution of the settlement job for one period."""

    __tablename__ = "settlement_runs"

    __table_args__ = (
        Index("ix_settlement_runs_period", "period_key"),
    )

    period_key: Mapped[str] = mapped_column(String(40), nullable=False)
    period_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    period_end: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False,
    )
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    settled_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    unattributed_tip_ids: Mapped[list | None] = mapped_column(JSON, nullable=True)
    config_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    hosts: Mapped[list["HostSettlementRecord"]] = relationship(
        "HostSettlementRecord",
        back_populates="run",
        cascade="all, delete-orphan",
        order_by="HostSettlementRecord.host_slug",
    )

    @classmethod
    def from_dto(cls, dto: SettlementRunReport, created_by_id: UUID) -> SettlementRunModel:
        model = cls(
            id=dto.run_id,
            period_key=dto.period_key,
            period_start=dto.period_start,
            period_end=dto.period_end,
            status=dto.status.value,
            settled_count=dto.settled,
            skipped_count=dto.skipped,
            failed_count=dto.failed,
            pending_count=dto.pending,
            unattributed_tip_ids=[str(t) for t in dto.unattributed_tip_ids] or None,
            config_checksum=dto.config_checksum or None,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            duration_ms=dto.duration_ms,
            created_by_id=created_by_id,
        )
        model.hosts = [
            HostSettlementRecord.from_dto(r, run_id=dto.run_id, created_by_id=created_by_id)
            for r in dto.host_results
        ]
        return model

    def to_dto(self) -> SettlementRunReport:
        from settlement_batch.domain.types import RunStatus, SettlementRunReport

        return SettlementRunReport(
            run_id=self.id,
            period_key=self.period_key,
            period_start=self.period_start,
            period_end=self.period_end,
            status=RunStatus(self.status),
            host_results=tuple(h.to_dto() for h in self.hosts),
            unattributed_tip_ids=tuple(UUID(t) for t in self.unattributed_tip_ids or ()),
            config_checksum=self.config_checksum or "",
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
        )


class HostSettlementRecord(TrackedBase):
    """Outcome of one host within a run."""

    __tablename__ = "host_settlements"

    __table_args__ = (
        Index("ix_host_settlements_run_state", "run_id", "state"),
        Index("ix_host_settlements_host", "host_id"),
    )

    run_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("settlement_runs.id", ondelete="CASCADE"),
        nullable=False,
    )
    host_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    host_slug: Mapped[str] = mapped_column(String(255), nullable=False)
    state: Mapped[str] = mapped_column(String(50), nullable=False)
    expense_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    amount: Mapped[int] = mapped_column(default=0, nullable=False)
    currency: Mapped[str | None] = mapped_column(String(3), nullable=True)
    result_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    run: Mapped[SettlementRunModel] = relationship(
        "SettlementRunModel", back_populates="hosts",
    )

    @classmethod
    def from_dto(
        cls, dto: HostSettlementResult, run_id: UUID, created_by_id: UUID,
    ) -> HostSettlementRecord:
        return cls(
            run_id=run_id,
            host_id=dto.host_id,
            host_slug=dto.host_slug,
            state=dto.state.value,
            expense_id=dto.expense_id,
            amount=dto.amount,
            currency=dto.currency,
            result_data={
                "items": [[d, a] for d, a in dto.items],
                "collectedTotal": dto.collected_total,
                "settledTransactionCount": dto.settled_transaction_count,
                "reviewTransactionIds": [str(t) for t in dto.review_transaction_ids],
                "exportPending": dto.export_pending,
                "attachmentUrl": dto.attachment_url,
            },
            reason=dto.reason,
            error_code=dto.error_code,
            error_message=dto.error_message,
            retry_count=dto.retry_count,
            duration_ms=dto.duration_ms,
            started_at=dto.started_at,
            completed_at=dto.completed_at,
            created_by_id=created_by_id,
        )

    def to_dto(self) -> HostSettlementResult:
        from settlement_batch.domain.types import HostSettlementResult, HostSettlementState

        data = self.result_data or {}
        return HostSettlementResult(
            host_id=self.host_id,
            host_slug=self.host_slug,
            state=HostSettlementState(self.state),
            currency=self.currency,
            expense_id=self.expense_id,
            amount=self.amount,
            items=tuple((d, a) for d, a in data.get("items", ())),
            collected_total=data.get("collectedTotal", 0),
            settled_transaction_count=data.get("settledTransactionCount", 0),
            review_transaction_ids=tuple(
                UUID(t) for t in data.get("reviewTransactionIds", ())
            ),
            export_pending=data.get("exportPending", False),
            attachment_url=data.get("attachmentUrl"),
            reason=self.reason,
            error_code=self.error_code,
            error_message=self.error_message,
            retry_count=self.retry_count,
            duration_ms=self.duration_ms,
            started_at=self.started_at,
            completed_at=self.completed_at,
        )
