"""
Module: settlement_kernel.models.host
Responsibility: ORM persistence for hosts (fiscal sponsors) and the
    collectives they sponsor.  Both are created outside the settlement job;
    the job only reads them.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import Base, UUIDString
from settlement_kernel.domain.dtos import HostRecord


class Host(Base):
    """
    Fiscal-sponsor entity holding funds for its collectives.

    ``plan`` identifies the pricing plan whose host-fee share percentage
    applies when a transaction did not capture one itself.
    """

    __tablename__ = "hosts"

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    plan: Mapped[str | None] = mapped_column(String(100), nullable=True)
    default_payout_method: Mapped[str | None] = mapped_column(
        String(50), nullable=True,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    collectives: Mapped[list["Collective"]] = relationship(
        "Collective", back_populates="host",
    )

    def __repr__(self) -> str:
        return f"<Host {self.slug} {self.currency} plan={self.plan}>"

    def to_record(self) -> HostRecord:
        return HostRecord(
            host_id=self.id,
            slug=self.slug,
            currency=self.currency,
            plan=self.plan,
            default_payout_method=self.default_payout_method,
            name=self.name,
        )


class Collective(Base):
    """Beneficiary entity; belongs to exactly one host per period."""

    __tablename__ = "collectives"

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    host_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("hosts.id"), nullable=True,
    )

    host: Mapped[Host | None] = relationship("Host", back_populates="collectives")

    def __repr__(self) -> str:
        return f"<Collective {self.slug}>"
