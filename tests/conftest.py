"""
Pytest fixtures for the settlement test suite.

Provides:
- Structured log capture
- In-memory SQLite engine and session factory (no PostgreSQL required)
- Deterministic clock and configuration snapshot
- ``ledger`` seeder for hosts, contributions and platform tips
"""

import json
import logging
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import settlement_batch.models  # noqa: F401
import settlement_kernel.models  # noqa: F401
from settlement_config import get_active_config
from settlement_config.schema import ExportPolicy, RetryPolicy, RunPolicy
from settlement_kernel.db.base import Base
from settlement_kernel.domain.clock import DeterministicClock
from settlement_kernel.domain.dtos import (
    SettlementState,
    TransactionStatus,
    TransactionType,
)
from settlement_kernel.domain.period import SettlementPeriod
from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from settlement_kernel.models import Collective, Host, Transaction
from settlement_services.file_storage import LocalFileStorage

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

PLATFORM_SLUG = "opencollective"
SEPTEMBER_2026 = SettlementPeriod.for_month(2026, 9)
RUN_TIME = datetime(2026, 10, 1, 6, 0, tzinfo=timezone.utc)


def in_period(day: int = 10, hour: int = 12) -> datetime:
    return datetime(2026, 9, day, hour, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture settlement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "settlement_expense_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("settlement_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Time, period, configuration
# =============================================================================


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(RUN_TIME)


@pytest.fixture
def period() -> SettlementPeriod:
    return SEPTEMBER_2026


@pytest.fixture
def config():
    """Bundled configuration with a single worker and no backoff."""
    base = get_active_config()
    return replace(
        base,
        store_retry=RetryPolicy(max_attempts=2, backoff_seconds=0),
        export=ExportPolicy(max_attempts=2, backoff_seconds=0),
        run=RunPolicy(max_workers=1),
    )


@pytest.fixture
def storage(tmp_path) -> LocalFileStorage:
    return LocalFileStorage(tmp_path / "exports")


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def session(session_factory):
    s = session_factory()
    try:
        yield s
    finally:
        s.close()


# =============================================================================
# Ledger seeding
# =============================================================================


class LedgerSeeder:
    """Creates hosts and transactions the way the platform records them."""

    def __init__(self, session_factory):
        self._session_factory = session_factory

    def _save(self, *rows):
        session = self._session_factory()
        try:
            for row in rows:
                session.add(row)
            session.commit()
        finally:
            session.close()
        return rows[0] if len(rows) == 1 else rows

    def host(
        self,
        slug: str,
        currency: str = "GBP",
        plan: str | None = None,
        payout_method: str | None = "BANK_ACCOUNT",
        is_active: bool = True,
    ) -> Host:
        host = Host(
            id=uuid4(),
            slug=slug,
            name=slug.replace("-", " ").title(),
            currency=currency,
            plan=plan,
            default_payout_method=payout_method,
            is_active=is_active,
        )
        collective = Collective(
            id=uuid4(), slug=f"{slug}-collective", host_id=host.id,
        )
        self._save(host, collective)
        return host

    def platform(self, currency: str = "USD") -> Host:
        return self.host(PLATFORM_SLUG, currency=currency, plan=None)

    def contribution(
        self,
        host: Host,
        amount: int = 3000,
        platform_fee: int = 0,
        host_fee: int = 0,
        created_at: datetime | None = None,
        settled: bool = False,
        data: dict | None = None,
        status: TransactionStatus = TransactionStatus.CONFIRMED,
        type: TransactionType = TransactionType.CREDIT,
    ) -> Transaction:
        """Fees are recorded negative, as the platform stores them."""
        payload = dict(data or {})
        if settled:
            payload["settled"] = True
        txn = Transaction(
            id=uuid4(),
            type=type.value,
            status=status.value,
            description="Financial contribution",
            amount=amount,
            currency=host.currency,
            host_id=host.id,
            host_currency=host.currency,
            amount_in_host_currency=amount,
            host_currency_fx_rate=Decimal("1"),
            platform_fee_in_host_currency=-platform_fee if platform_fee else 0,
            host_fee_in_host_currency=-host_fee if host_fee else 0,
            transaction_group=uuid4(),
            data=payload or None,
            settlement_status=SettlementState.UNSETTLED.value,
            created_at=created_at or in_period(),
        )
        return self._save(txn)

    def tip(
        self,
        for_transaction: Transaction | None,
        amount: int = 1000,
        currency: str = "USD",
        rate: str | None = "1.23",
        platform: Host | None = None,
        created_at: datetime | None = None,
        group: UUID | None = None,
    ) -> Transaction:
        """Platform tip paired with ``for_transaction`` (or a raw ``group``)."""
        data = {"hostToPlatformFxRate": rate} if rate is not None else None
        txn = Transaction(
            id=uuid4(),
            type=TransactionType.CREDIT.value,
            status=TransactionStatus.CONFIRMED.value,
            description="Financial contribution to the platform",
            amount=amount,
            currency=currency,
            host_id=platform.id if platform is not None else None,
            host_currency=currency,
            amount_in_host_currency=amount,
            platform_fee_in_host_currency=0,
            host_fee_in_host_currency=0,
            transaction_group=uuid4(),
            platform_tip_for_transaction_group=(
                group if group is not None else for_transaction.transaction_group
            ),
            data=data,
            settlement_status=SettlementState.UNSETTLED.value,
            created_at=created_at or in_period(),
        )
        return self._save(txn)


@pytest.fixture
def ledger(session_factory) -> LedgerSeeder:
    return LedgerSeeder(session_factory)


@pytest.fixture
def gbp_host_scenario(ledger):
    """GBP host on a 15% plan with one fee, one host fee, one settled row and a USD tip.

    Expected settlement: Platform Fees 300, Platform Tips 813
    (round(1000 / 1.23)), Shared Revenue 30 (round(200 * 15%)).
    """
    platform = ledger.platform()
    host = ledger.host("brussels-host", currency="GBP", plan="grow-plan-2021")
    fee_txn = ledger.contribution(host, amount=3000, platform_fee=300, host_fee=300)
    host_fee_txn = ledger.contribution(host, amount=2000, host_fee=200, created_at=in_period(12))
    settled_txn = ledger.contribution(
        host, amount=3000, host_fee=300, settled=True, created_at=in_period(14),
    )
    tip_txn = ledger.tip(fee_txn, amount=1000, currency="USD", rate="1.23", platform=platform)
    return {
        "platform": platform,
        "host": host,
        "fee_txn": fee_txn,
        "host_fee_txn": host_fee_txn,
        "settled_txn": settled_txn,
        "tip_txn": tip_txn,
    }
