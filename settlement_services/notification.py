"""
Notification hook.

The settlement job tells hosts about new settlement expenses and tells
operators about finished runs through a ``Notifier``.  Delivery (email,
chat) lives outside this repository; ``LoggingNotifier`` records the event
as a structured log line.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from settlement_kernel.domain.dtos import HostRecord
from settlement_kernel.logging_config import get_logger
from settlement_kernel.models.expense import SettlementExpense

if TYPE_CHECKING:
    from settlement_batch.domain.types import SettlementRunReport

logger = get_logger("services.notification")


class Notifier(Protocol):
    def settlement_created(self, host: HostRecord, expense: SettlementExpense) -> None:
        ...

    def run_completed(self, report: SettlementRunReport) -> None:
        ...


class LoggingNotifier:
    """Default notifier: one log line per event."""

    def settlement_created(self, host: HostRecord, expense: SettlementExpense) -> None:
        logger.info("host_notified_of_settlement", extra={
            "host_slug": host.slug,
            "expense_id": str(expense.id),
            "amount": expense.amount,
            "currency": expense.currency,
            "description": expense.description,
        })

    def run_completed(self, report: SettlementRunReport) -> None:
        logger.info("settlement_run_notification", extra={
            "run_id": str(report.run_id),
            "period": report.period_key,
            "settled": report.settled,
            "skipped": report.skipped,
            "failed": report.failed,
            "pending": report.pending,
        })
