"""
Pytest fixtures for the billing scheduler test suite.

Provides:
- Structured logging configured once per session, plus a ``captured_logs``
  fixture returning parsed JSON records
- In-memory SQLite engine (shared across threads) with every table created
- Deterministic clock
- Factories for tenants, generation configs and generation log rows
- A recording fake for the generation invoker
"""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone
from io import StringIO
from typing import Callable
from uuid import UUID, uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from billing_kernel.db.base import Base
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_kernel.models.tenant import Tenant, TenantStatus

# Register every mapped table on Base.metadata.
import billing_kernel.models  # noqa: F401
import billing_scheduler.models  # noqa: F401
from billing_scheduler.domain.types import GenerationResult, GenerationStatus
from billing_scheduler.models.generation import (
    InvoiceGenerationConfigModel,
    InvoiceGenerationLogModel,
)


# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()


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
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, scheduler):
            scheduler.run_pass()
            logs = captured_logs()
            assert any(r["message"] == "scheduler_pass_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
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
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    # One shared connection so the scheduler thread and the test see the
    # same in-memory database.
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    # Friday 2024-03-01 14:00 UTC (09:00 in New York)
    return DeterministicClock(
        start=datetime(2024, 3, 1, 14, 0, 0, tzinfo=timezone.utc),
    )


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_tenant(session_factory) -> Callable[..., UUID]:
    """Insert a tenant and return its id."""

    def _create(name: str = "Acme Corp", status: str = TenantStatus.ACTIVE.value) -> UUID:
        with session_factory() as session:
            tenant = Tenant(
                id=uuid4(),
                name=name,
                status=status,
                created_by_id=TEST_ACTOR_ID,
            )
            session.add(tenant)
            session.commit()
            return tenant.id

    return _create


@pytest.fixture
def create_config(session_factory, create_tenant) -> Callable[..., UUID]:
    """Insert a generation config (and its tenant) and return the config id.

    Configs are given increasing ``created_at`` values so repository order
    is the insertion order.
    """
    counter = iter(range(10_000))

    def _create(
        tenant_name: str = "Acme Corp",
        next_generation_date: datetime | None = datetime(2024, 3, 1, 9, 0),
        frequency: str = "monthly",
        timezone_name: str = "UTC",
        generate_on_weekend: bool = False,
        is_active: bool = True,
        tenant_status: str = TenantStatus.ACTIVE.value,
        tenant_id: UUID | None = None,
    ) -> UUID:
        if tenant_id is None:
            tenant_id = create_tenant(name=tenant_name, status=tenant_status)
        with session_factory() as session:
            config = InvoiceGenerationConfigModel(
                id=uuid4(),
                tenant_id=tenant_id,
                frequency=frequency,
                start_date=next_generation_date,
                next_generation_date=next_generation_date,
                timezone=timezone_name,
                generate_on_weekend=generate_on_weekend,
                auto_send=True,
                billing_contact_email="billing@example.com",
                reminder_days=7,
                is_active=is_active,
                created_at=datetime(2024, 1, 1, tzinfo=timezone.utc)
                + timedelta(seconds=next(counter)),
                created_by_id=TEST_ACTOR_ID,
            )
            session.add(config)
            session.commit()
            return config.id

    return _create


@pytest.fixture
def create_log(session_factory, create_tenant) -> Callable[..., UUID]:
    """Insert a generation log row and return its id."""

    def _create(
        tenant_name: str = "Acme Corp",
        status: str = GenerationStatus.FAILED.value,
        created_at: datetime = datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc),
        error_message: str | None = None,
        tenant_id: UUID | None = None,
        config_id: UUID | None = None,
        details: dict | None = None,
    ) -> UUID:
        if tenant_id is None:
            tenant_id = create_tenant(name=tenant_name)
        with session_factory() as session:
            log = InvoiceGenerationLogModel(
                id=uuid4(),
                tenant_id=tenant_id,
                tenant_name=tenant_name,
                config_id=config_id,
                status=status,
                error_message=error_message,
                retry_count=0,
                details=details,
                created_at=created_at,
                created_by_id=TEST_ACTOR_ID,
            )
            session.add(log)
            session.commit()
            return log.id

    return _create


# =============================================================================
# Collaborator fakes
# =============================================================================


class RecordingInvoker:
    """Generation invoker fake that records calls.

    ``failures`` maps tenant names to the exception raised for them.
    ``block`` (if set) makes every call wait on the event first.
    """

    def __init__(self):
        self.calls: list[tuple[UUID, str]] = []
        self.failures: dict[str, Exception] = {}
        self.block: threading.Event | None = None
        self._lock = threading.Lock()

    def generate(self, tenant_id: UUID, tenant_name: str) -> GenerationResult:
        with self._lock:
            self.calls.append((tenant_id, tenant_name))
            number = len(self.calls)
        if self.block is not None:
            self.block.wait(timeout=5)
        if tenant_name in self.failures:
            raise self.failures[tenant_name]
        return GenerationResult(reference_id=f"genlog-{number:03d}")

    @property
    def tenant_names(self) -> list[str]:
        return [name for _, name in self.calls]


@pytest.fixture
def invoker():
    fake = RecordingInvoker()
    yield fake
    # Release any worker still waiting so no thread outlives the test.
    if fake.block is not None:
        fake.block.set()
