"""Store models for the settlement kernel."""

from settlement_kernel.models.expense import AttachedFile, ExpenseItem, SettlementExpense
from settlement_kernel.models.host import Collective, Host
from settlement_kernel.models.transaction import Transaction

__all__ = [
    "AttachedFile",
    "Collective",
    "ExpenseItem",
    "Host",
    "SettlementExpense",
    "Transaction",
]
