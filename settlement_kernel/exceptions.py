"""
Typed exception hierarchy for the settlement job.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from SettlementError:

    SettlementError (base)
    |
    +-- DataIntegrityError              host Failed, run continues
    |   +-- MissingExchangeRateError
    |   +-- DanglingTipReferenceError
    |
    +-- ConversionError                 host Failed, run continues
    |
    +-- ConfigurationError
    |   +-- InvalidConfigurationError   run fatal (config cannot be loaded)
    |   +-- PlanNotFoundError           host Failed, run continues
    |
    +-- StoreError                      retried once, then host Failed
    |   +-- HostEnumerationError        run fatal
    |
    +-- SettlementConflictError         concurrent settlement detected
    |
    +-- ExportError                     non-fatal, export left pending
    |
    +-- InvalidStateTransitionError     state machine misuse

===============================================================================
ERROR CODES
===============================================================================

Code                          | When raised
------------------------------|-----------------------------------------------
MISSING_EXCHANGE_RATE         | Tip has no recorded host-to-platform rate
DANGLING_TIP_REFERENCE        | Tip references a group that cannot be resolved
CONVERSION_ERROR              | Rate or converted amount is not finite/positive
INVALID_CONFIGURATION         | Configuration file is missing keys or malformed
PLAN_NOT_FOUND                | Host or transaction references an unknown plan
STORE_ERROR                   | Database read or write failed
HOST_ENUMERATION_FAILED       | Hosts could not be listed at all
SETTLEMENT_CONFLICT           | Contributing rows were settled by another run
EXPORT_FAILED                 | Audit CSV could not be stored or attached
INVALID_STATE_TRANSITION      | Host state machine received an illegal move

Every exception stores its context as attributes so the run report and the
JSON log formatter can carry structured data instead of parsed messages.
"""

from __future__ import annotations


class SettlementError(Exception):
    """
    Base exception for all settlement errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification in logs and run reports.
    """

    code: str = "SETTLEMENT_ERROR"


# Data integrity


class DataIntegrityError(SettlementError):
    """Ledger data cannot be billed without manual correction."""

    code: str = "DATA_INTEGRITY_ERROR"


class MissingExchangeRateError(DataIntegrityError):
    """A platform tip has no recorded host-to-platform exchange rate."""

    code: str = "MISSING_EXCHANGE_RATE"

    def __init__(self, transaction_id: str, tip_currency: str, host_currency: str):
        self.transaction_id = transaction_id
        self.tip_currency = tip_currency
        self.host_currency = host_currency
        super().__init__(
            f"Transaction {transaction_id} has no recorded rate "
            f"from {host_currency} to {tip_currency}"
        )


class DanglingTipReferenceError(DataIntegrityError):
    """A platform tip references a transaction group that does not exist."""

    code: str = "DANGLING_TIP_REFERENCE"

    def __init__(self, transaction_id: str, transaction_group: str):
        self.transaction_id = transaction_id
        self.transaction_group = transaction_group
        super().__init__(
            f"Tip {transaction_id} references unknown transaction group "
            f"{transaction_group}"
        )


# Conversion


class ConversionError(SettlementError):
    """Currency conversion produced or received a non-finite/negative value."""

    code: str = "CONVERSION_ERROR"

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Cannot convert transaction {transaction_id}: {reason}")


# Configuration


class ConfigurationError(SettlementError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class InvalidConfigurationError(ConfigurationError):
    """Configuration source is malformed or missing required keys."""

    code: str = "INVALID_CONFIGURATION"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid settlement configuration {source}: {reason}")


class PlanNotFoundError(ConfigurationError):
    """A plan identifier is not present in the configured plan table."""

    code: str = "PLAN_NOT_FOUND"

    def __init__(self, plan_id: str, known_plans: tuple[str, ...] = ()):
        self.plan_id = plan_id
        self.known_plans = known_plans
        super().__init__(
            f"Unknown plan '{plan_id}'. Known plans: {', '.join(known_plans) or '-'}"
        )


# Store


class StoreError(SettlementError):
    """Database operation failed."""

    code: str = "STORE_ERROR"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Store operation '{operation}' failed: {reason}")


class HostEnumerationError(StoreError):
    """Hosts could not be listed; the whole run is aborted."""

    code: str = "HOST_ENUMERATION_FAILED"

    def __init__(self, reason: str):
        super().__init__("list_hosts", reason)


# Concurrency


class SettlementConflictError(SettlementError):
    """Contributing transactions changed state before the financial write."""

    code: str = "SETTLEMENT_CONFLICT"

    def __init__(
        self,
        host_id: str,
        already_settled: int,
        expected: int,
    ):
        self.host_id = host_id
        self.already_settled = already_settled
        self.expected = expected
        super().__init__(
            f"Host {host_id}: {already_settled} of {expected} contributing "
            f"transactions were settled concurrently"
        )

    @property
    def fully_settled(self) -> bool:
        return self.already_settled >= self.expected


# Export


class ExportError(SettlementError):
    """Audit export could not be stored or attached."""

    code: str = "EXPORT_FAILED"

    def __init__(self, expense_id: str, reason: str, attempts: int = 1):
        self.expense_id = expense_id
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Audit export for expense {expense_id} failed after "
            f"{attempts} attempt(s): {reason}"
        )


# State machine


class InvalidStateTransitionError(SettlementError):
    """Host settlement state machine received an illegal transition."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, host_id: str, from_state: str, to_state: str):
        self.host_id = host_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Host {host_id}: cannot transition from {from_state} to {to_state}"
        )
