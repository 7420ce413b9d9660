"""
GenerationLogSelector -- read side of the invoice generation audit trail.

Contract:
    ``list_logs()`` returns one page of log entries, newest first, with
    optional case-insensitive tenant-name, status and created-date filters.
    ``summarize()`` returns attempt counts by status.
    ``for_config()`` returns every entry recorded for one config id.

Architecture: billing_scheduler/services.  Read-only: never adds, flushes
    or commits.  The caller owns the session.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.selectors.base import BaseSelector

from billing_scheduler.domain.types import GenerationLogEntry, GenerationStatus
from billing_scheduler.models.generation import InvoiceGenerationLogModel


@dataclass(frozen=True)
class GenerationLogPage:
    """One page of generation log entries."""

    entries: tuple[GenerationLogEntry, ...]
    page: int
    limit: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.limit) if self.total_items else 0

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1


@dataclass(frozen=True)
class GenerationLogSummary:
    """Counts across the whole audit trail."""

    total_completed: int = 0
    total_failed: int = 0
    total_retrying: int = 0
    total_processing: int = 0

    @property
    def total_attempts(self) -> int:
        return self.total_completed + self.total_failed


class GenerationLogSelector(BaseSelector[InvoiceGenerationLogModel]):
    """Queries over ``invoice_generation_logs``."""

    def list_logs(
        self,
        tenant_name: str | None = None,
        status: GenerationStatus | str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> GenerationLogPage:
        page = max(page, 1)
        limit = max(limit, 1)
        model = InvoiceGenerationLogModel

        conditions = []
        if tenant_name:
            conditions.append(model.tenant_name.ilike(f"%{tenant_name}%"))
        if status:
            conditions.append(model.status == GenerationStatus(status).value)
        if start_date is not None:
            conditions.append(
                model.created_at >= datetime.combine(start_date, time.min, timezone.utc)
            )
        if end_date is not None:
            # Inclusive of the whole end day.
            conditions.append(
                model.created_at
                < datetime.combine(end_date + timedelta(days=1), time.min, timezone.utc)
            )

        total = self.session.execute(
            select(func.count()).select_from(model).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(model)
            .where(*conditions)
            .order_by(model.created_at.desc(), model.id)
            .limit(limit)
            .offset((page - 1) * limit)
        ).scalars().all()

        return GenerationLogPage(
            entries=tuple(row.to_dto() for row in rows),
            page=page,
            limit=limit,
            total_items=total,
        )

    def summarize(self) -> GenerationLogSummary:
        model = InvoiceGenerationLogModel
        counts = dict(
            self.session.execute(
                select(model.status, func.count()).group_by(model.status)
            ).all()
        )
        return GenerationLogSummary(
            total_completed=counts.get(GenerationStatus.COMPLETED.value, 0),
            total_failed=counts.get(GenerationStatus.FAILED.value, 0),
            total_retrying=counts.get(GenerationStatus.RETRYING.value, 0),
            total_processing=counts.get(GenerationStatus.PROCESSING.value, 0),
        )

    def for_config(self, config_id: UUID) -> tuple[GenerationLogEntry, ...]:
        rows = self.session.execute(
            select(InvoiceGenerationLogModel)
            .where(InvoiceGenerationLogModel.config_id == config_id)
            .order_by(InvoiceGenerationLogModel.created_at)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)
