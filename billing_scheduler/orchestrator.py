"""
SchedulerOrchestrator -- DI container for the invoice scheduler.

Contract:
    Wires the config repository, audit recorder, schedule advancer and the
    caller-supplied generation invoker into an ``InvoiceScheduler``, and
    builds the operator-facing services over the same session factory.
    Single place where scheduler dependencies are composed.

Architecture: billing_scheduler (top-level).  This is the canonical entry
    point for configuring and running the scheduler.

Invariants enforced:
    - Clock injection: every service receives the same Clock.
    - Actor attribution: every write is attributed to the same actor id.
"""

from __future__ import annotations

from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from billing_kernel.db.engine import get_session_factory, init_engine_from_url
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import InvalidSchedulerSettingsError
from billing_kernel.logging_config import configure_logging, get_logger

from billing_scheduler.config import SchedulerSettings
from billing_scheduler.services.advancer import ScheduleAdvancer
from billing_scheduler.services.audit_recorder import SqlAuditRecorder
from billing_scheduler.services.config_repository import SqlConfigRepository
from billing_scheduler.services.invoker import GenerationInvoker
from billing_scheduler.services.log_selector import GenerationLogSelector
from billing_scheduler.services.manual_generation import ManualGenerationService
from billing_scheduler.services.scheduler import InvoiceScheduler

logger = get_logger("scheduler.orchestrator")


class SchedulerOrchestrator:
    """DI container for the invoice scheduler.

    Contract:
        - ``from_settings()`` initialises the engine and logging, then
          creates a fully wired orchestrator.
        - ``create_scheduler()`` returns an InvoiceScheduler for background use.
        - ``create_manual_generation_service()`` and ``create_log_selector()``
          serve operator tooling.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        invoker: GenerationInvoker,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        settings: SchedulerSettings | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._invoker = invoker
        self._clock = clock or SystemClock()
        self._settings = settings or SchedulerSettings()
        self._actor_id = actor_id or self._settings.actor_id or uuid4()

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_settings(
        cls,
        settings: SchedulerSettings,
        invoker: GenerationInvoker,
        clock: Clock | None = None,
    ) -> SchedulerOrchestrator:
        """Initialise the database engine and logging from ``settings``.

        Raises:
            InvalidSchedulerSettingsError: If no database URL is configured.
        """
        if not settings.database_url:
            raise InvalidSchedulerSettingsError(
                "database_url", "set BILLING_DATABASE_URL or DATABASE_URL",
            )
        configure_logging(level=settings.log_level)
        # Register the scheduler tables on the shared metadata.
        import billing_scheduler.models  # noqa: F401

        init_engine_from_url(settings.database_url)
        logger.info(
            "orchestrator_initialized",
            extra={
                "cadence_seconds": settings.cadence_seconds,
                "generation_timeout_seconds": settings.generation_timeout_seconds,
            },
        )
        return cls(
            session_factory=get_session_factory(),
            invoker=invoker,
            clock=clock,
            settings=settings,
        )

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def create_repository(self) -> SqlConfigRepository:
        return SqlConfigRepository(self._session_factory, actor_id=self._actor_id)

    def create_audit_recorder(self) -> SqlAuditRecorder:
        return SqlAuditRecorder(self._session_factory, actor_id=self._actor_id)

    def create_scheduler(self) -> InvoiceScheduler:
        """Create an InvoiceScheduler wired with the orchestrator's dependencies."""
        repository = self.create_repository()
        return InvoiceScheduler(
            repository=repository,
            invoker=self._invoker,
            audit_recorder=self.create_audit_recorder(),
            clock=self._clock,
            cadence_seconds=self._settings.cadence_seconds,
            startup_delay_seconds=self._settings.startup_delay_seconds,
            generation_timeout_seconds=self._settings.generation_timeout_seconds,
            advancer=ScheduleAdvancer(repository),
        )

    def create_manual_generation_service(self) -> ManualGenerationService:
        return ManualGenerationService(
            session_factory=self._session_factory,
            invoker=self._invoker,
            audit_recorder=self.create_audit_recorder(),
            clock=self._clock,
            actor_id=self._actor_id,
            generation_timeout_seconds=self._settings.generation_timeout_seconds,
        )

    def create_log_selector(self, session: Session) -> GenerationLogSelector:
        """Read-only selector; the caller owns ``session``."""
        return GenerationLogSelector(session)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session_factory(self) -> Callable[[], Session]:
        return self._session_factory

    @property
    def actor_id(self) -> UUID:
        return self._actor_id

    @property
    def settings(self) -> SchedulerSettings:
        return self._settings
