"""
billing_scheduler.domain.types -- Pure frozen dataclasses for invoice scheduling.

ZERO I/O.

Frozen dataclasses with enum status fields and tuples for immutable
collections.  ``GenerationConfig`` is the scheduler's read model of one
tenant's recurring invoice configuration joined with the tenant's name.

Invariants enforced:
    - ``next_generation_date`` is a naive wall-clock value interpreted in
      ``timezone``; it is never compared against UTC directly.
    - ``GenerationConfig.config_id`` is the join key between a config and
      every ``GenerationLogEntry`` written for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Enums
# =============================================================================


class Frequency(str, Enum):
    """Recurrence of automatic invoice generation."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"


class GenerationStatus(str, Enum):
    """Status of a generation log entry."""

    PROCESSING = "processing"  # Downstream accepted, invoice not yet written
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"  # Operator retry in progress


class GenerationType(str, Enum):
    """How a generation attempt was initiated."""

    AUTOMATIC = "automatic"
    MANUAL = "manual"


class TriggerSource(str, Enum):
    """Who initiated a generation attempt (``scheduled_by`` in metadata)."""

    SYSTEM_CRON = "system-cron"
    OPERATOR = "operator"


class PassTrigger(str, Enum):
    """Why a scheduling pass ran."""

    STARTUP = "startup"  # Catch-up shortly after process start
    CADENCE = "cadence"  # Hourly, aligned to the top of the hour (UTC)
    MANUAL = "manual"  # Operator / test entry point


class PassStatus(str, Enum):
    """Terminal status of a scheduling pass."""

    COMPLETED = "completed"
    SKIPPED = "skipped"  # Another pass was still running
    ABORTED = "aborted"  # Candidate load failed; nothing was touched
    INTERRUPTED = "interrupted"  # stop() arrived mid-pass; remaining configs left for the next run


class ConfigOutcome(str, Enum):
    """What happened to one due configuration during a pass."""

    DEFERRED = "deferred"  # Weekend: rescheduled, no attempt, no audit entry
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# =============================================================================
# Configuration and collaborator DTOs
# =============================================================================


@dataclass(frozen=True)
class GenerationConfig:
    """Immutable snapshot of a tenant's generation config (joined with tenant).

    ``auto_send`` and ``billing_contact_email`` are carried for the
    generation collaborator and are not interpreted by the scheduler.
    """

    config_id: UUID
    tenant_id: UUID
    tenant_name: str
    frequency: Frequency
    next_generation_date: datetime | None  # Naive, tenant-local wall clock
    timezone: str = "UTC"  # IANA name
    generate_on_weekend: bool = False
    auto_send: bool = True
    billing_contact_email: str | None = None
    is_active: bool = True


@dataclass(frozen=True)
class GenerationResult:
    """Success payload returned by a ``GenerationInvoker``.

    ``reference_id`` identifies the downstream (possibly asynchronous)
    invoice record or processing log.
    """

    reference_id: str
    status: str = GenerationStatus.PROCESSING.value
    message: str | None = None


@dataclass(frozen=True)
class GenerationLogEntry:
    """Immutable audit record of one generation attempt."""

    tenant_id: UUID
    tenant_name: str
    config_id: UUID | None
    status: GenerationStatus
    error_message: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    retry_count: int = 0
    log_id: UUID | None = None  # Assigned on persistence


# =============================================================================
# Pass results
# =============================================================================


@dataclass(frozen=True)
class ConfigProcessingResult:
    """Result of processing one due configuration.

    ``advanced`` is False only when persisting the new date failed; the
    config then keeps its previous date and is re-evaluated next pass.
    ``audited`` is False for weekend deferrals and for failed log writes.
    """

    config_id: UUID
    tenant_id: UUID
    outcome: ConfigOutcome
    previous_generation_date: datetime | None
    next_generation_date: datetime | None
    advanced: bool
    audited: bool = False
    reference_id: str | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class SchedulerPassResult:
    """Immutable result of one scheduling pass."""

    pass_id: UUID
    trigger: PassTrigger
    status: PassStatus
    started_at: datetime
    completed_at: datetime | None = None
    candidate_count: int = 0
    due_count: int = 0
    results: tuple[ConfigProcessingResult, ...] = ()
    error_message: str | None = None

    def _count(self, outcome: ConfigOutcome) -> int:
        return sum(1 for r in self.results if r.outcome == outcome)

    @property
    def succeeded(self) -> int:
        return self._count(ConfigOutcome.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(ConfigOutcome.FAILED)

    @property
    def deferred(self) -> int:
        return self._count(ConfigOutcome.DEFERRED)
