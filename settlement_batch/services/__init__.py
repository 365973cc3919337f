"""settlement_batch.services -- run execution."""

from settlement_batch.services.executor import SettlementRunExecutor

__all__ = ["SettlementRunExecutor"]
