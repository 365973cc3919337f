"""
Module: settlement_services.ledger_reader
Responsibility: Read-only access to the transaction ledger for one
    settlement period.  Converts ORM rows into frozen DTOs once so that the
    engines never touch the session.
Architecture position: Services.  May import settlement_kernel models and
    DTOs.  Selector-style: the caller owns the session and its transaction.

Invariants enforced:
    - Read-only: never adds, flushes, deletes or commits.
    - Only CONFIRMED CREDIT rows with ``start <= created_at < end`` qualify.
    - Platform tips are attributed to the host owning the contribution they
      reference, whatever that contribution's date.
    - The platform's own host is never enumerated.

Failure modes:
    - StoreError wrapping any SQLAlchemyError.
    - HostEnumerationError when hosts cannot be listed at all.
    - LookupError from read_host() for an unknown host id.
"""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from settlement_config.schema import SettlementConfig
from settlement_kernel.domain.dtos import (
    HostLedger,
    HostRecord,
    PeriodLedger,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
)
from settlement_kernel.domain.period import SettlementPeriod
from settlement_kernel.exceptions import HostEnumerationError, StoreError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.host import Host
from settlement_kernel.models.transaction import Transaction

logger = get_logger("services.ledger_reader")


class LedgerReader:
    """
    Selector over hosts and transactions.

    Contract:
        - ``list_hosts()`` returns active hosts other than the platform.
        - ``read_period()`` returns every qualifying row of the period,
          partitioned by the host that owes it.
        - ``read_host()`` returns the same rows for one host.
    """

    def __init__(self, session: Session, config: SettlementConfig):
        self.session = session
        self._config = config

    # -------------------------------------------------------------------------
    # Hosts
    # -------------------------------------------------------------------------

    def list_hosts(self) -> tuple[HostRecord, ...]:
        """
        Raises:
            HostEnumerationError: The host table could not be read.
        """
        try:
            hosts = self.session.execute(
                select(Host)
                .where(Host.is_active.is_(True))
                .where(Host.slug != self._config.platform.host_slug)
                .order_by(Host.slug)
            ).scalars().all()
        except SQLAlchemyError as exc:
            raise HostEnumerationError(str(exc)) from exc

        records = tuple(h.to_record() for h in hosts)
        logger.info("hosts_enumerated", extra={"host_count": len(records)})
        return records

    def get_host(self, host_id: UUID) -> HostRecord:
        try:
            host = self.session.get(Host, host_id)
        except SQLAlchemyError as exc:
            raise StoreError("get_host", str(exc)) from exc
        if host is None:
            raise LookupError(f"Host {host_id} not found")
        return host.to_record()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    def _qualifying(self, period: SettlementPeriod):
        return (
            select(Transaction)
            .where(Transaction.type == TransactionType.CREDIT.value)
            .where(Transaction.status == TransactionStatus.CONFIRMED.value)
            .where(Transaction.created_at >= period.start)
            .where(Transaction.created_at < period.end)
        )

    def _host_rows(
        self, period: SettlementPeriod, host_id: UUID | None = None,
    ) -> list[TransactionRecord]:
        stmt = self._qualifying(period).where(
            Transaction.platform_tip_for_transaction_group.is_(None),
            Transaction.host_id.is_not(None),
        )
        if host_id is not None:
            stmt = stmt.where(Transaction.host_id == host_id)
        stmt = stmt.order_by(Transaction.created_at, Transaction.id)
        return [t.to_record() for t in self.session.execute(stmt).scalars()]

    def _tip_rows(
        self, period: SettlementPeriod, host_id: UUID | None = None,
    ) -> list[TransactionRecord]:
        stmt = self._qualifying(period).where(
            Transaction.platform_tip_for_transaction_group.is_not(None),
        )
        if host_id is not None:
            # Only tips referencing a group this host has a contribution in
            owned_groups = (
                select(Transaction.transaction_group)
                .where(Transaction.host_id == host_id)
                .where(Transaction.platform_tip_for_transaction_group.is_(None))
                .where(Transaction.type == TransactionType.CREDIT.value)
            )
            stmt = stmt.where(
                Transaction.platform_tip_for_transaction_group.in_(owned_groups),
            )
        stmt = stmt.order_by(Transaction.created_at, Transaction.id)
        return [t.to_record() for t in self.session.execute(stmt).scalars()]

    def _group_owners(self, groups: Iterable[UUID]) -> dict[UUID, UUID]:
        """Map each transaction group to the host of its contribution row."""
        groups = set(groups)
        if not groups:
            return {}
        rows = self.session.execute(
            select(Transaction.transaction_group, Transaction.host_id)
            .where(Transaction.transaction_group.in_(groups))
            .where(Transaction.platform_tip_for_transaction_group.is_(None))
            .where(Transaction.type == TransactionType.CREDIT.value)
            .where(Transaction.host_id.is_not(None))
            .order_by(Transaction.created_at, Transaction.id)
        ).all()
        owners: dict[UUID, UUID] = {}
        for group, host_id in rows:
            owners.setdefault(group, host_id)
        return owners

    def _attribute_tips(
        self, tips: list[TransactionRecord],
    ) -> tuple[dict[UUID, list[TransactionRecord]], list[TransactionRecord]]:
        owners = self._group_owners(t.platform_tip_for_transaction_group for t in tips)
        by_host: dict[UUID, list[TransactionRecord]] = {}
        unattributed: list[TransactionRecord] = []
        for tip in tips:
            owner = owners.get(tip.platform_tip_for_transaction_group)
            if owner is None:
                unattributed.append(tip)
            else:
                by_host.setdefault(owner, []).append(tip)
        return by_host, unattributed

    def read_period(self, period: SettlementPeriod) -> PeriodLedger:
        """All qualifying rows of ``period`` keyed by owing host."""
        try:
            host_rows = self._host_rows(period)
            tips_by_host, unattributed = self._attribute_tips(self._tip_rows(period))
        except SQLAlchemyError as exc:
            raise StoreError("read_period", str(exc)) from exc

        by_host: dict[UUID, list[TransactionRecord]] = {}
        for row in host_rows:
            by_host.setdefault(row.host_id, []).append(row)
        for host_id, tips in tips_by_host.items():
            by_host.setdefault(host_id, []).extend(tips)

        if unattributed:
            logger.warning("unattributed_tips_found", extra={
                "period": period.key,
                "transaction_ids": [str(t.transaction_id) for t in unattributed],
            })

        ledger = PeriodLedger(
            by_host={h: tuple(rows) for h, rows in by_host.items()},
            unattributed_tips=tuple(unattributed),
        )
        logger.info("period_ledger_read", extra={
            "period": period.key,
            "host_count": len(ledger.by_host),
            "transaction_count": ledger.transaction_count,
        })
        return ledger

    def read_host(self, host_id: UUID, period: SettlementPeriod) -> HostLedger:
        """
        Qualifying rows for one host, tips included.

        ``known_groups`` holds the groups of the host's own rows and of the
        contributions its tips reference.
        """
        host = self.get_host(host_id)
        try:
            host_rows = self._host_rows(period, host_id)
            tips_by_host, _ = self._attribute_tips(self._tip_rows(period, host_id))
        except SQLAlchemyError as exc:
            raise StoreError("read_host", str(exc)) from exc

        tips = tips_by_host.get(host_id, [])
        known_groups = frozenset(
            [r.transaction_group for r in host_rows]
            + [t.platform_tip_for_transaction_group for t in tips]
        )

        logger.debug("host_ledger_read", extra={
            "host_slug": host.slug,
            "row_count": len(host_rows),
            "tip_count": len(tips),
        })
        return HostLedger(
            host=host,
            transactions=tuple(host_rows) + tuple(tips),
            known_groups=known_groups,
        )
