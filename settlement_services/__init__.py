"""
settlement_services -- stateful services of the settlement job.

Ledger reading, expense building, audit export, file storage and
notification, plus the per-host pipeline that strings them together.
Services receive their session (or session factory), clock and
configuration snapshot explicitly.
"""

from settlement_services.audit_export import AuditExporter, AuditRow, render_csv
from settlement_services.expense_builder import ExpenseBuilder
from settlement_services.file_storage import FileStorage, LocalFileStorage, StoredFile
from settlement_services.host_settlement_service import (
    HostOutcomeStatus,
    HostSettlementOutcome,
    HostSettlementService,
)
from settlement_services.ledger_reader import LedgerReader
from settlement_services.notification import LoggingNotifier, Notifier

__all__ = [
    "AuditExporter",
    "AuditRow",
    "ExpenseBuilder",
    "FileStorage",
    "HostOutcomeStatus",
    "HostSettlementOutcome",
    "HostSettlementService",
    "LedgerReader",
    "LocalFileStorage",
    "LoggingNotifier",
    "Notifier",
    "StoredFile",
    "render_csv",
]
