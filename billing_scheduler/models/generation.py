"""
ORM models for invoice generation configs and the generation audit trail.

Contract:
    InvoiceGenerationConfigModel and InvoiceGenerationLogModel persist the
    per-tenant recurrence settings and one log row per generation attempt.
    Each has ``to_dto()``; the log model also has ``from_dto()``.

Architecture: billing_scheduler/models. Imports from billing_kernel.db.base
    and billing_kernel.models only.

Invariants enforced:
    - At most one config per tenant (UNIQUE tenant_id).
    - ``next_generation_date`` is stored naive: it is a tenant-local wall
      clock value, interpreted in ``timezone``.
    - Log rows reference their config by ``config_id`` (the join key).
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.models.tenant import Tenant

if TYPE_CHECKING:
    from billing_scheduler.domain.types import GenerationConfig, GenerationLogEntry


class InvoiceGenerationConfigModel(TrackedBase):
    """Recurring invoice generation settings for one tenant."""

    __tablename__ = "invoice_generation_configs"

    __table_args__ = (
        Index("ix_invoice_generation_configs_active", "is_active"),
        Index("ix_invoice_generation_configs_next", "next_generation_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    frequency: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True,
    )
    next_generation_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=False), nullable=True,
    )
    timezone: Mapped[str] = mapped_column(
        String(64), nullable=False, default="UTC",
    )
    generate_on_weekend: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    auto_send: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    billing_contact_email: Mapped[str | None] = mapped_column(
        String(255), nullable=True,
    )
    reminder_days: Mapped[int] = mapped_column(Integer, nullable=False, default=7)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    tenant: Mapped[Tenant] = relationship(Tenant, foreign_keys=[tenant_id])

    def to_dto(self, tenant_name: str) -> GenerationConfig:
        """Build the scheduler read model.

        Raises:
            InvalidFrequencyError: If the stored frequency is unsupported.
            InvalidTimezoneError: If the stored timezone is unknown.
        """
        from billing_scheduler.domain.time_math import (
            get_zone,
            parse_frequency,
            to_wall_clock,
        )
        from billing_scheduler.domain.types import GenerationConfig

        timezone_name = self.timezone or "UTC"
        get_zone(timezone_name)
        next_date = self.next_generation_date
        if next_date is not None and next_date.tzinfo is not None:
            next_date = to_wall_clock(next_date, timezone_name)

        return GenerationConfig(
            config_id=self.id,
            tenant_id=self.tenant_id,
            tenant_name=tenant_name,
            frequency=parse_frequency(self.frequency),
            next_generation_date=next_date,
            timezone=timezone_name,
            generate_on_weekend=self.generate_on_weekend,
            auto_send=self.auto_send,
            billing_contact_email=self.billing_contact_email,
            is_active=self.is_active,
        )


class InvoiceGenerationLogModel(TrackedBase):
    """One generation attempt (append-only except for operator retries)."""

    __tablename__ = "invoice_generation_logs"

    __table_args__ = (
        Index("ix_invoice_generation_logs_tenant", "tenant_id"),
        Index("ix_invoice_generation_logs_config", "config_id"),
        Index("ix_invoice_generation_logs_status", "status"),
        Index("ix_invoice_generation_logs_created_at", "created_at"),
    )

    tenant_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("tenants.id", ondelete="CASCADE"),
        nullable=False,
    )
    tenant_name: Mapped[str] = mapped_column(String(255), nullable=False)
    config_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoice_generation_configs.id", ondelete="SET NULL"),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # "metadata" is reserved on declarative classes.
    details: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    def to_dto(self) -> GenerationLogEntry:
        from billing_scheduler.domain.types import GenerationLogEntry, GenerationStatus

        return GenerationLogEntry(
            log_id=self.id,
            tenant_id=self.tenant_id,
            tenant_name=self.tenant_name,
            config_id=self.config_id,
            status=GenerationStatus(self.status),
            error_message=self.error_message,
            metadata=dict(self.details or {}),
            created_at=self.created_at,
            retry_count=self.retry_count,
        )

    @classmethod
    def from_dto(
        cls, dto: GenerationLogEntry, created_by_id: UUID,
    ) -> InvoiceGenerationLogModel:
        model = cls(
            tenant_id=dto.tenant_id,
            tenant_name=dto.tenant_name,
            config_id=dto.config_id,
            status=dto.status.value,
            error_message=dto.error_message,
            retry_count=dto.retry_count,
            details=dict(dto.metadata) or None,
            created_by_id=created_by_id,
            updated_by_id=None,
        )
        if dto.log_id is not None:
            model.id = dto.log_id
        if dto.created_at is not None:
            model.created_at = dto.created_at
        return model
