"""
ConfigRepository -- read eligible generation configs, advance their dates.

Contract:
    ``load_active_due_candidates()`` returns configs that are active, whose
    tenant is active, and whose ``next_generation_date`` is set, in a stable
    order.  The scheduler does no further activity/status filtering.
    ``update_next_generation_date()`` is one atomic, idempotent UPDATE
    scoped to a single config row, committed on its own.

Architecture: billing_scheduler/services.  Each operation opens and
    commits its own short session from the injected factory, so a failure
    on one config never rolls back work done for another.

Failure modes:
    - Rows with an unknown frequency or timezone are rejected at load time
      (logged as ``generation_config_rejected``) and left out of the result.
    - ``GenerationConfigNotFoundError`` when updating a config id that no
      longer exists.
    - SQLAlchemy errors propagate to the caller.
"""

from __future__ import annotations

from datetime import datetime
from typing import Callable, Protocol, Sequence, runtime_checkable
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from billing_kernel.db.engine import session_scope
from billing_kernel.exceptions import GenerationConfigNotFoundError, ScheduleError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.tenant import Tenant, TenantStatus

from billing_scheduler.domain.types import GenerationConfig
from billing_scheduler.models.generation import InvoiceGenerationConfigModel

logger = get_logger("scheduler.config_repository")


@runtime_checkable
class ConfigRepository(Protocol):
    """Data-access contract consumed by the scheduler."""

    def load_active_due_candidates(self) -> Sequence[GenerationConfig]:
        ...

    def update_next_generation_date(self, config_id: UUID, new_date: datetime) -> None:
        ...


class SqlConfigRepository:
    """SQLAlchemy implementation of ``ConfigRepository``."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        actor_id: UUID | None = None,
    ):
        self._session_factory = session_factory
        self._actor_id = actor_id or uuid4()

    def load_active_due_candidates(self) -> list[GenerationConfig]:
        """Active configs of active tenants that have a next generation date."""
        return self._load(require_schedule=True)

    def load_active_configs(self) -> list[GenerationConfig]:
        """Active configs of active tenants, scheduled or not."""
        return self._load(require_schedule=False)

    def get_config_for_tenant(self, tenant_id: UUID) -> GenerationConfig | None:
        with session_scope(self._session_factory) as session:
            row = session.execute(
                select(InvoiceGenerationConfigModel, Tenant.name)
                .join(Tenant, Tenant.id == InvoiceGenerationConfigModel.tenant_id)
                .where(InvoiceGenerationConfigModel.tenant_id == tenant_id)
            ).first()
            if row is None:
                return None
            model, tenant_name = row
            return model.to_dto(tenant_name)

    def update_next_generation_date(self, config_id: UUID, new_date: datetime) -> None:
        """Persist ``new_date`` on one config; safe to repeat.

        Raises:
            GenerationConfigNotFoundError: If no row has ``config_id``.
        """
        with session_scope(self._session_factory) as session:
            result = session.execute(
                update(InvoiceGenerationConfigModel)
                .where(InvoiceGenerationConfigModel.id == config_id)
                .values(
                    next_generation_date=new_date,
                    updated_by_id=self._actor_id,
                )
            )
            if result.rowcount == 0:
                raise GenerationConfigNotFoundError(str(config_id))

        logger.debug(
            "next_generation_date_updated",
            extra={"config_id": str(config_id), "next_generation_date": new_date},
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _load(self, require_schedule: bool) -> list[GenerationConfig]:
        stmt = (
            select(InvoiceGenerationConfigModel, Tenant.name)
            .join(Tenant, Tenant.id == InvoiceGenerationConfigModel.tenant_id)
            .where(
                InvoiceGenerationConfigModel.is_active == True,  # noqa: E712
                Tenant.status == TenantStatus.ACTIVE.value,
            )
            .order_by(
                InvoiceGenerationConfigModel.created_at,
                InvoiceGenerationConfigModel.id,
            )
        )
        if require_schedule:
            stmt = stmt.where(
                InvoiceGenerationConfigModel.next_generation_date.is_not(None),
            )

        configs: list[GenerationConfig] = []
        with session_scope(self._session_factory) as session:
            for model, tenant_name in session.execute(stmt).all():
                try:
                    configs.append(model.to_dto(tenant_name))
                except ScheduleError as exc:
                    logger.error(
                        "generation_config_rejected",
                        extra={
                            "config_id": str(model.id),
                            "tenant_id": str(model.tenant_id),
                            "error_code": exc.code,
                            "reason": str(exc),
                        },
                    )
        return configs
