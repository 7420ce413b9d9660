"""
AuditRecorder -- durable append of generation log entries.

Contract:
    ``append(entry)`` writes one ``invoice_generation_logs`` row in its own
    transaction and returns the new log id.  A failed append never undoes
    a ``next_generation_date`` update that already committed.

    ``completed_entry()`` / ``failed_entry()`` build the entries written by
    the automatic scheduler, with the metadata needed to reconstruct what
    happened: generation type, trigger, frequency, computed next date, and
    the downstream reference id or the error detail.

Architecture: billing_scheduler/services.
"""

from __future__ import annotations

import traceback
from datetime import datetime
from typing import Any, Callable, Protocol, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from billing_kernel.db.engine import session_scope
from billing_kernel.logging_config import get_logger

from billing_scheduler.domain.types import (
    GenerationConfig,
    GenerationLogEntry,
    GenerationResult,
    GenerationStatus,
    GenerationType,
    TriggerSource,
)
from billing_scheduler.models.generation import InvoiceGenerationLogModel

logger = get_logger("scheduler.audit")


@runtime_checkable
class AuditRecorder(Protocol):
    """Append-only sink for generation log entries."""

    def append(self, entry: GenerationLogEntry) -> UUID:
        ...


class SqlAuditRecorder:
    """SQLAlchemy implementation of ``AuditRecorder``."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._actor_id = actor_id or uuid4()

    def append(self, entry: GenerationLogEntry) -> UUID:
        with session_scope(self._session_factory) as session:
            model = InvoiceGenerationLogModel.from_dto(
                entry, created_by_id=self._actor_id,
            )
            session.add(model)
            session.flush()
            log_id = model.id

        logger.info(
            "generation_log_recorded",
            extra={
                "log_id": str(log_id),
                "tenant_id": str(entry.tenant_id),
                "status": entry.status.value,
            },
        )
        return log_id


# =============================================================================
# Entry builders
# =============================================================================


def error_details(error: BaseException) -> str:
    """Formatted traceback for ``error``, for the ``error_details`` metadata key."""
    return "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    )


def _automatic_metadata(
    config: GenerationConfig,
    next_scheduled: datetime | None,
    processed_at: datetime,
) -> dict[str, Any]:
    return {
        "generation_type": GenerationType.AUTOMATIC.value,
        "scheduled_by": TriggerSource.SYSTEM_CRON.value,
        "frequency": config.frequency.value,
        "next_scheduled": next_scheduled.isoformat() if next_scheduled else None,
        "processed_at": processed_at.isoformat(),
    }


def completed_entry(
    config: GenerationConfig,
    result: GenerationResult,
    next_scheduled: datetime | None,
    processed_at: datetime,
) -> GenerationLogEntry:
    metadata = _automatic_metadata(config, next_scheduled, processed_at)
    metadata["generated_invoice_log_id"] = result.reference_id
    return GenerationLogEntry(
        tenant_id=config.tenant_id,
        tenant_name=config.tenant_name,
        config_id=config.config_id,
        status=GenerationStatus.COMPLETED,
        metadata=metadata,
        created_at=processed_at,
    )


def failed_entry(
    config: GenerationConfig,
    error: BaseException,
    next_scheduled: datetime | None,
    processed_at: datetime,
) -> GenerationLogEntry:
    metadata = _automatic_metadata(config, next_scheduled, processed_at)
    metadata["error_type"] = type(error).__name__
    metadata["error_details"] = error_details(error)
    return GenerationLogEntry(
        tenant_id=config.tenant_id,
        tenant_name=config.tenant_name,
        config_id=config.config_id,
        status=GenerationStatus.FAILED,
        error_message=str(error) or type(error).__name__,
        metadata=metadata,
        created_at=processed_at,
    )
