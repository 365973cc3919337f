"""
settlement_batch.models -- ORM models for settlement run persistence.

Architecture: settlement_batch/models.  Imports from settlement_kernel.db.base only.
"""

from settlement_batch.models.run import HostSettlementRecord, SettlementRunModel

__all__ = [
    "HostSettlementRecord",
    "SettlementRunModel",
]
