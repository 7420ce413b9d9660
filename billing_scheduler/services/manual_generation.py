"""
ManualGenerationService -- operator-triggered invoice generation and retry.

Contract:
    ``generate_for_tenant(tenant_id)`` invokes generation for one tenant now,
    independent of its schedule, and records a ``manual`` log entry.
    ``generate_for_all_active()`` does the same for every active config of
    an active tenant, one at a time.
    ``retry_failed(log_id)`` re-runs generation for a failed log entry and
    updates that entry in place.

Architecture: billing_scheduler/services.  Shares the invoker, timeout
    handling and audit recorder with the scheduler.

Invariants enforced:
    - Never advances ``next_generation_date``; manual runs are extra runs.
    - Only ``failed`` entries can be retried.  The entry is moved to
      ``retrying`` (and its ``retry_count`` incremented) in a committed
      transaction before the downstream call is made.

Failure modes:
    - TenantNotFoundError, GenerationLogNotFoundError,
      GenerationLogNotRetryableError for bad operator input.
    - Downstream failures are NOT raised; they are recorded and returned
      in the outcome.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from billing_kernel.db.engine import session_scope
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import (
    GenerationLogNotFoundError,
    GenerationLogNotRetryableError,
    TenantNotFoundError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.tenant import Tenant

from billing_scheduler.domain.types import (
    GenerationLogEntry,
    GenerationStatus,
    GenerationType,
    TriggerSource,
)
from billing_scheduler.models.generation import (
    InvoiceGenerationConfigModel,
    InvoiceGenerationLogModel,
)
from billing_scheduler.services.audit_recorder import AuditRecorder, error_details
from billing_scheduler.services.config_repository import SqlConfigRepository
from billing_scheduler.services.invoker import GenerationInvoker, invoke_with_timeout

logger = get_logger("scheduler.manual")


@dataclass(frozen=True)
class ManualGenerationOutcome:
    """Result of one operator-triggered generation or retry."""

    tenant_id: UUID
    tenant_name: str
    status: GenerationStatus
    log_id: UUID | None
    reference_id: str | None = None
    error_message: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == GenerationStatus.COMPLETED


class ManualGenerationService:
    """Operator entry points that bypass the schedule."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        invoker: GenerationInvoker,
        audit_recorder: AuditRecorder,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        generation_timeout_seconds: float | None = None,
    ):
        self._session_factory = session_factory
        self._invoker = invoker
        self._audit = audit_recorder
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._generation_timeout = generation_timeout_seconds

    def generate_for_tenant(self, tenant_id: UUID) -> ManualGenerationOutcome:
        """Generate an invoice for one tenant right now.

        Raises:
            TenantNotFoundError: If no tenant has ``tenant_id``.
        """
        with session_scope(self._session_factory) as session:
            tenant = session.get(Tenant, tenant_id)
            if tenant is None:
                raise TenantNotFoundError(str(tenant_id))
            tenant_name = tenant.name
            config = session.execute(
                select(InvoiceGenerationConfigModel).where(
                    InvoiceGenerationConfigModel.tenant_id == tenant_id,
                )
            ).scalar_one_or_none()
            config_id = config.id if config is not None else None
            frequency = config.frequency if config is not None else None

        return self._generate(tenant_id, tenant_name, config_id, frequency)

    def generate_for_all_active(self) -> tuple[ManualGenerationOutcome, ...]:
        """Generate for every active config of an active tenant, sequentially."""
        repository = SqlConfigRepository(self._session_factory, self._actor_id)
        configs = repository.load_active_configs()
        logger.info("manual_generation_all_started", extra={"config_count": len(configs)})

        outcomes = tuple(
            self._generate(
                config.tenant_id,
                config.tenant_name,
                config.config_id,
                config.frequency.value,
            )
            for config in configs
        )
        logger.info(
            "manual_generation_all_completed",
            extra={
                "config_count": len(configs),
                "succeeded": sum(1 for o in outcomes if o.succeeded),
                "failed": sum(1 for o in outcomes if not o.succeeded),
            },
        )
        return outcomes

    def retry_failed(self, log_id: UUID) -> ManualGenerationOutcome:
        """Re-run generation for a failed log entry.

        Raises:
            GenerationLogNotFoundError: If no entry has ``log_id``.
            GenerationLogNotRetryableError: If the entry is not ``failed``.
        """
        with session_scope(self._session_factory) as session:
            log = session.get(InvoiceGenerationLogModel, log_id)
            if log is None:
                raise GenerationLogNotFoundError(str(log_id))
            if log.status != GenerationStatus.FAILED.value:
                raise GenerationLogNotRetryableError(str(log_id), log.status)
            log.status = GenerationStatus.RETRYING.value
            log.retry_count = (log.retry_count or 0) + 1
            log.updated_by_id = self._actor_id
            tenant_id = log.tenant_id
            tenant_name = log.tenant_name
            retry_count = log.retry_count

        with LogContext.bind(tenant_id=str(tenant_id)):
            logger.info(
                "generation_retry_started",
                extra={"log_id": str(log_id), "retry_count": retry_count},
            )
            try:
                result = invoke_with_timeout(
                    self._invoker, tenant_id, tenant_name, self._generation_timeout,
                )
            except Exception as exc:
                logger.exception("generation_retry_failed", extra={"log_id": str(log_id)})
                message = str(exc) or type(exc).__name__
                self._finish_retry(
                    log_id,
                    GenerationStatus.FAILED,
                    message,
                    {"error_type": type(exc).__name__, "error_details": error_details(exc)},
                )
                return ManualGenerationOutcome(
                    tenant_id=tenant_id,
                    tenant_name=tenant_name,
                    status=GenerationStatus.FAILED,
                    log_id=log_id,
                    error_message=message,
                )

            self._finish_retry(
                log_id,
                GenerationStatus.COMPLETED,
                None,
                {"generated_invoice_log_id": result.reference_id},
            )
            logger.info(
                "generation_retry_completed",
                extra={"log_id": str(log_id), "reference_id": result.reference_id},
            )
            return ManualGenerationOutcome(
                tenant_id=tenant_id,
                tenant_name=tenant_name,
                status=GenerationStatus.COMPLETED,
                log_id=log_id,
                reference_id=result.reference_id,
            )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _generate(
        self,
        tenant_id: UUID,
        tenant_name: str,
        config_id: UUID | None,
        frequency: str | None,
    ) -> ManualGenerationOutcome:
        with LogContext.bind(tenant_id=str(tenant_id)):
            logger.info("manual_generation_started", extra={"tenant_name": tenant_name})
            metadata: dict[str, Any] = {
                "generation_type": GenerationType.MANUAL.value,
                "scheduled_by": TriggerSource.OPERATOR.value,
                "frequency": frequency,
            }
            try:
                result = invoke_with_timeout(
                    self._invoker, tenant_id, tenant_name, self._generation_timeout,
                )
            except Exception as exc:
                logger.exception(
                    "manual_generation_failed", extra={"tenant_name": tenant_name},
                )
                processed_at = self._clock.now_utc()
                metadata["error_type"] = type(exc).__name__
                metadata["error_details"] = error_details(exc)
                metadata["processed_at"] = processed_at.isoformat()
                entry = GenerationLogEntry(
                    tenant_id=tenant_id,
                    tenant_name=tenant_name,
                    config_id=config_id,
                    status=GenerationStatus.FAILED,
                    error_message=str(exc) or type(exc).__name__,
                    metadata=metadata,
                    created_at=processed_at,
                )
                return ManualGenerationOutcome(
                    tenant_id=tenant_id,
                    tenant_name=tenant_name,
                    status=GenerationStatus.FAILED,
                    log_id=self._record(entry),
                    error_message=entry.error_message,
                )

            processed_at = self._clock.now_utc()
            metadata["generated_invoice_log_id"] = result.reference_id
            metadata["processed_at"] = processed_at.isoformat()
            entry = GenerationLogEntry(
                tenant_id=tenant_id,
                tenant_name=tenant_name,
                config_id=config_id,
                status=GenerationStatus.COMPLETED,
                metadata=metadata,
                created_at=processed_at,
            )
            log_id = self._record(entry)
            logger.info(
                "manual_generation_completed",
                extra={"tenant_name": tenant_name, "reference_id": result.reference_id},
            )
            return ManualGenerationOutcome(
                tenant_id=tenant_id,
                tenant_name=tenant_name,
                status=GenerationStatus.COMPLETED,
                log_id=log_id,
                reference_id=result.reference_id,
            )

    def _record(self, entry: GenerationLogEntry) -> UUID | None:
        # The downstream call already happened; a lost audit row must not
        # lose the outcome or stop the remaining tenants.
        try:
            return self._audit.append(entry)
        except Exception:
            logger.exception(
                "generation_log_write_failed",
                extra={"status": entry.status.value, "tenant_name": entry.tenant_name},
            )
            return None

    def _finish_retry(
        self,
        log_id: UUID,
        status: GenerationStatus,
        error_message: str | None,
        extra_metadata: dict[str, Any],
    ) -> None:
        retried_at: datetime = self._clock.now_utc()
        with session_scope(self._session_factory) as session:
            log = session.get(InvoiceGenerationLogModel, log_id)
            if log is None:
                raise GenerationLogNotFoundError(str(log_id))
            log.status = status.value
            log.error_message = error_message
            log.updated_by_id = self._actor_id
            details = dict(log.details or {})
            if status == GenerationStatus.COMPLETED:
                details.pop("error_type", None)
                details.pop("error_details", None)
            details.update(extra_metadata)
            details["retried_at"] = retried_at.isoformat()
            # Reassign so the JSON column is marked dirty.
            log.details = details
