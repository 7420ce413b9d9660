"""
ScheduleAdvancer -- compute and persist a config's next generation date.

Contract:
    ``next_period(config)`` is pure: one recurrence step from the config's
    previous ``next_generation_date`` (never from "now"), so processing
    delays do not accumulate drift.
    ``to_next_period(config)`` persists that value.
    ``to_next_business_day(config, now)`` persists the Monday following a
    weekend "now" in the tenant's zone.

Invariants enforced:
    - The persisted date is always strictly later than the previous one:
      a period step is at least a month, and a weekend deferral lands
      after "now", which is itself at or after the due date.
    - Values are written as naive tenant-local wall clock.
"""

from __future__ import annotations

from datetime import datetime

from billing_kernel.logging_config import get_logger

from billing_scheduler.domain.time_math import (
    next_business_day,
    next_due_date,
    to_wall_clock,
)
from billing_scheduler.domain.types import GenerationConfig
from billing_scheduler.services.config_repository import ConfigRepository

logger = get_logger("scheduler.advancer")


class ScheduleAdvancer:
    """Moves ``next_generation_date`` forward through a ``ConfigRepository``."""

    def __init__(self, repository: ConfigRepository):
        self._repository = repository

    def next_period(self, config: GenerationConfig) -> datetime:
        if config.next_generation_date is None:
            raise ValueError(
                f"Config {config.config_id} has no next_generation_date"
            )
        return next_due_date(
            config.next_generation_date, config.frequency, config.timezone,
        )

    def next_business_day(self, config: GenerationConfig, now: datetime) -> datetime:
        local_now = to_wall_clock(now, config.timezone)
        return next_business_day(local_now, config.timezone)

    def to_next_period(
        self,
        config: GenerationConfig,
        next_date: datetime | None = None,
    ) -> datetime:
        """Persist one recurrence step (or a precomputed ``next_date``)."""
        new_date = next_date if next_date is not None else self.next_period(config)
        return self._persist(config, new_date)

    def to_next_business_day(self, config: GenerationConfig, now: datetime) -> datetime:
        return self._persist(config, self.next_business_day(config, now))

    def _persist(self, config: GenerationConfig, new_date: datetime) -> datetime:
        wall_clock = to_wall_clock(new_date, config.timezone)
        self._repository.update_next_generation_date(config.config_id, wall_clock)
        logger.info(
            "schedule_advanced",
            extra={
                "config_id": str(config.config_id),
                "previous_generation_date": config.next_generation_date,
                "next_generation_date": wall_clock,
                "timezone": config.timezone,
            },
        )
        return wall_clock
