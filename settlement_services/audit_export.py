"""
Module: settlement_services.audit_export
Responsibility: Produce the CSV of transactions backing a settlement
    expense, store it through the FileStorage collaborator and attach it to
    the expense.
Architecture position: Services.  Runs AFTER the financial commit; its
    failures never undo a settlement.

Invariants enforced:
    - One CSV row per contributing transaction, in settlement order.
    - Storage is retried up to ``export.max_attempts`` times.
    - A failed export leaves ``data.auditExportPending = true`` on the
      expense so ``retry_pending()`` can pick it up later.

Failure modes:
    - Storage failures are logged as ExportError and swallowed into the
      pending flag; the caller sees ``None``.
    - SQLAlchemyError while attaching propagates to the caller.
"""

from __future__ import annotations

import csv
import io
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_config.schema import ExportPolicy, FxPolicy
from settlement_engines.aggregator import SettlementTotals
from settlement_engines.classifier import EntryKind
from settlement_engines.converter import round_half_up
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import ExportError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.expense import AttachedFile, SettlementExpense
from settlement_kernel.models.host import Host
from settlement_kernel.models.transaction import Transaction
from settlement_kernel.utils.hashing import hash_bytes
from settlement_services.file_storage import FileStorage, StoredFile

logger = get_logger("services.audit_export")

CSV_COLUMNS = (
    "id",
    "createdAt",
    "type",
    "kind",
    "amount",
    "currency",
    "transactionGroup",
    "platformTipForTransactionGroup",
    "hostAmount",
)


@dataclass(frozen=True)
class AuditRow:
    transaction_id: UUID
    created_at: datetime
    type: str
    kind: str
    amount: int
    currency: str
    transaction_group: UUID
    platform_tip_for_transaction_group: UUID | None
    host_amount: int | None

    def as_csv(self) -> list[str]:
        return [
            str(self.transaction_id),
            self.created_at.isoformat(),
            self.type,
            self.kind,
            str(self.amount),
            self.currency,
            str(self.transaction_group),
            str(self.platform_tip_for_transaction_group or ""),
            "" if self.host_amount is None else str(self.host_amount),
        ]


def rows_from_totals(totals: SettlementTotals) -> tuple[AuditRow, ...]:
    """Audit rows for a settlement that was just computed."""
    return tuple(
        AuditRow(
            transaction_id=entry.transaction_id,
            created_at=entry.transaction.created_at,
            type=entry.transaction.type.value,
            kind=entry.kind.value,
            amount=entry.transaction.amount,
            currency=entry.transaction.currency,
            transaction_group=entry.transaction.transaction_group,
            platform_tip_for_transaction_group=(
                entry.transaction.platform_tip_for_transaction_group
            ),
            host_amount=totals.host_amount_for(entry.transaction_id),
        )
        for entry in totals.entries
    )


def _settled_row(
    txn: Transaction, host_currency: str, fx_policy: FxPolicy,
) -> AuditRow:
    """Rebuild the audit row of an already settled transaction."""
    if txn.platform_tip_for_transaction_group is not None:
        kind = EntryKind.PLATFORM_TIP
        host_amount = abs(txn.amount) if txn.currency == host_currency else None
        raw_rate = (txn.data or {}).get(fx_policy.rate_annotation_key)
        if host_amount is None and raw_rate is not None:
            try:
                host_amount = round_half_up(Decimal(abs(txn.amount)) / Decimal(str(raw_rate)))
            except (InvalidOperation, ArithmeticError):
                host_amount = None
    elif txn.platform_fee_in_host_currency:
        kind = EntryKind.COLLECTED_PLATFORM_FEE
        host_amount = abs(txn.platform_fee_in_host_currency)
    else:
        kind = EntryKind.UNCOLLECTED_HOST_FEE
        host_amount = abs(txn.host_fee_in_host_currency or 0)

    return AuditRow(
        transaction_id=txn.id,
        created_at=txn.created_at,
        type=txn.type,
        kind=kind.value,
        amount=txn.amount,
        currency=txn.currency,
        transaction_group=txn.transaction_group,
        platform_tip_for_transaction_group=txn.platform_tip_for_transaction_group,
        host_amount=host_amount,
    )


def render_csv(rows: Iterable[AuditRow]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_COLUMNS)
    for row in rows:
        writer.writerow(row.as_csv())
    return buffer.getvalue().encode("utf-8")


def export_file_name(host_slug: str, period_key: str, expense_id: UUID) -> str:
    return f"platform-settlement-{host_slug}-{period_key}-{expense_id.hex[:8]}.csv"


class AuditExporter:
    """
    Attaches the audit CSV to settlement expenses.

    Contract:
        - ``export()`` returns the AttachedFile, or None when storage failed
          and the expense was flagged pending.  It flushes, never commits.
        - ``retry_pending()`` re-exports every flagged expense.
    """

    def __init__(
        self,
        storage: FileStorage,
        policy: ExportPolicy | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._storage = storage
        self._policy = policy or ExportPolicy()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._sleep = sleep

    def _store_with_retry(
        self, expense: SettlementExpense, file_name: str, content: bytes,
    ) -> StoredFile:
        attempts = self._policy.max_attempts
        last_error: Exception | None = None
        for attempt in range(1, attempts + 1):
            try:
                return self._storage.store(file_name, content, self._policy.content_type)
            except Exception as exc:
                last_error = exc
                logger.warning("audit_export_attempt_failed", extra={
                    "expense_id": str(expense.id),
                    "attempt": attempt,
                    "max_attempts": attempts,
                    "error": str(exc),
                })
                if attempt < attempts:
                    self._sleep(self._policy.backoff_seconds * attempt)
        raise ExportError(str(expense.id), str(last_error), attempts=attempts)

    def export(
        self,
        session: Session,
        expense: SettlementExpense,
        host_slug: str,
        rows: Iterable[AuditRow],
    ) -> AttachedFile | None:
        rows = tuple(rows)
        content = render_csv(rows)
        file_name = export_file_name(host_slug, expense.period_key, expense.id)

        try:
            stored = self._store_with_retry(expense, file_name, content)
        except ExportError as exc:
            expense.set_audit_export_pending(True, reason=exc.reason)
            expense.updated_at = self._clock.now()
            session.flush()
            logger.error("audit_export_failed", exc_info=exc, extra={
                "expense_id": str(expense.id),
                "host_slug": host_slug,
            })
            return None

        now = self._clock.now()
        attachment = AttachedFile(
            url=stored.url,
            file_name=stored.file_name,
            content_type=stored.content_type,
            size=stored.size,
            created_by_id=self._actor_id,
            created_at=now,
            updated_at=now,
        )
        expense.attached_files.append(attachment)
        expense.set_audit_export_pending(False)
        expense.data = {**(expense.data or {}), "auditExportDigest": hash_bytes(content)}
        expense.updated_at = now
        session.flush()

        logger.info("audit_export_attached", extra={
            "expense_id": str(expense.id),
            "url": stored.url,
            "row_count": len(rows),
            "size": stored.size,
        })
        return attachment

    def export_totals(
        self,
        session: Session,
        expense: SettlementExpense,
        host_slug: str,
        totals: SettlementTotals,
    ) -> AttachedFile | None:
        return self.export(session, expense, host_slug, rows_from_totals(totals))

    def retry_pending(
        self,
        session: Session,
        fx_policy: FxPolicy | None = None,
        period_key: str | None = None,
    ) -> tuple[UUID, ...]:
        """
        Re-export expenses flagged ``auditExportPending``.

        Returns the ids of the expenses that now have an attachment.  The
        caller commits.
        """
        fx_policy = fx_policy or FxPolicy()
        stmt = select(SettlementExpense).order_by(SettlementExpense.created_at)
        if period_key is not None:
            stmt = stmt.where(SettlementExpense.period_key == period_key)
        pending = [
            e for e in session.execute(stmt).scalars()
            if e.audit_export_pending
        ]

        exported: list[UUID] = []
        for expense in pending:
            host = session.get(Host, expense.host_id)
            settled = session.execute(
                select(Transaction)
                .where(Transaction.settlement_expense_id == expense.id)
                .order_by(Transaction.created_at, Transaction.id)
            ).scalars().all()
            rows = [
                _settled_row(t, expense.currency, fx_policy)
                for t in settled
                if not (t.data or {}).get("isPlatformSettlementCredit")
            ]
            if self.export(session, expense, host.slug, rows) is not None:
                exported.append(expense.id)

        logger.info("audit_export_retry_completed", extra={
            "pending": len(pending),
            "exported": len(exported),
        })
        return tuple(exported)
