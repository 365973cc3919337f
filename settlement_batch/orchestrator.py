"""
SettlementOrchestrator -- DI container for the settlement job.

Contract:
    Wires the configuration snapshot, clock, file storage, notifier, audit
    exporter, per-host pipeline and run executor.  Single place where all
    settlement dependencies are composed.

Architecture: settlement_batch (top-level).  The canonical entry point for
    running a settlement period, used by ``scripts/run_settlement.py``.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Config snapshot: every service receives the same SettlementConfig.
    - Actor attribution: every record created by the run carries actor_id.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from uuid import UUID, uuid4

from sqlalchemy.orm import Session, sessionmaker

from settlement_config import get_active_config
from settlement_config.schema import SettlementConfig
from settlement_kernel.db.engine import get_session_factory, init_engine_from_url
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.period import SettlementPeriod
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_services.audit_export import AuditExporter
from settlement_services.file_storage import FileStorage, LocalFileStorage
from settlement_services.host_settlement_service import HostSettlementService
from settlement_services.notification import LoggingNotifier, Notifier

from settlement_batch.domain.types import SettlementRunReport
from settlement_batch.services.executor import SettlementRunExecutor

logger = get_logger("batch.orchestrator")

DEFAULT_STORAGE_DIR = Path("settlement-exports")


class SettlementOrchestrator:
    """DI container for the settlement job.

    Contract:
        - ``from_database_url()`` creates a fully wired orchestrator.
        - ``run()`` settles one period (default: previous calendar month).
        - ``retry_exports()`` re-attaches audit exports left pending.
        - ``request_stop()`` stops the current run at the next host boundary.

    Non-goals:
        - Does NOT move funds; the settlement expense is only a payable.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: SettlementConfig,
        clock: Clock | None = None,
        storage: FileStorage | None = None,
        notifier: Notifier | None = None,
        actor_id: UUID | None = None,
        max_workers: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()
        self._storage = storage or LocalFileStorage(DEFAULT_STORAGE_DIR)
        self._notifier = notifier or LoggingNotifier()
        self._actor_id = actor_id or uuid4()
        self._max_workers = max_workers
        self._sleep = sleep

        self._exporter = AuditExporter(
            storage=self._storage,
            policy=config.export,
            clock=self._clock,
            actor_id=self._actor_id,
            sleep=sleep,
        )
        self._host_service = HostSettlementService(
            session_factory=session_factory,
            config=config,
            exporter=self._exporter,
            clock=self._clock,
            notifier=self._notifier,
            actor_id=self._actor_id,
        )
        self._executor: SettlementRunExecutor | None = None

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_database_url(
        cls,
        database_url: str,
        config_path: Path | None = None,
        storage_dir: Path | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        max_workers: int | None = None,
    ) -> SettlementOrchestrator:
        """Initialize the engine and wire an orchestrator against it.

        Args:
            database_url: SQLAlchemy URL of the platform database.
            config_path: Optional configuration file; defaults to the
                bundled default set.
            storage_dir: Directory for audit exports.
            clock: Optional clock for deterministic runs.
            actor_id: Optional actor UUID for attribution.
            max_workers: Overrides ``run.max_workers`` from the config.
        """
        config = get_active_config(config_path)
        workers = max_workers or config.run.max_workers
        init_engine_from_url(database_url, pool_size=max(workers, 5))
        return cls(
            session_factory=get_session_factory(),
            config=config,
            clock=clock,
            storage=LocalFileStorage(storage_dir or DEFAULT_STORAGE_DIR),
            actor_id=actor_id,
            max_workers=max_workers,
        )

    # -------------------------------------------------------------------------
    # Executor
    # -------------------------------------------------------------------------

    def create_executor(self) -> SettlementRunExecutor:
        """Create a run executor wired with the orchestrator's dependencies."""
        return SettlementRunExecutor(
            session_factory=self._session_factory,
            config=self._config,
            host_service=self._host_service,
            clock=self._clock,
            actor_id=self._actor_id,
            max_workers=self._max_workers,
            sleep=self._sleep,
        )

    def default_period(self) -> SettlementPeriod:
        return SettlementPeriod.previous_month(self._clock.now())

    def run(self, period: SettlementPeriod | None = None) -> SettlementRunReport:
        """Settle ``period`` (default: the calendar month before now).

        Raises:
            HostEnumerationError: Hosts could not be listed.
        """
        period = period or self.default_period()
        self._executor = self.create_executor()
        with LogContext.bind(actor_id=self._actor_id):
            report = self._executor.run(period)
        self._notifier.run_completed(report)
        return report

    def request_stop(self) -> None:
        if self._executor is not None:
            self._executor.request_stop()

    def retry_exports(self, period: SettlementPeriod | None = None) -> tuple[UUID, ...]:
        """Re-export audit files for expenses flagged pending."""
        session = self._session_factory()
        try:
            exported = self._exporter.retry_pending(
                session,
                fx_policy=self._config.fx,
                period_key=period.key if period is not None else None,
            )
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
        return exported

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def config(self) -> SettlementConfig:
        return self._config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def exporter(self) -> AuditExporter:
        return self._exporter

    @property
    def host_service(self) -> HostSettlementService:
        return self._host_service

    @property
    def actor_id(self) -> UUID:
        return self._actor_id
