"""
Due-set selection (pure).

Contract:
    ``select_due(configs, now)`` returns the configs whose
    ``next_generation_date`` is at or before ``now``, where both sides are
    compared on the tenant's own clock.  Input order is preserved.

Architecture: billing_scheduler/domain.  ZERO I/O.

Invariants enforced:
    - Two configs with the same stored wall-clock date but different
      timezones can be due / not due at the same instant: "midnight on the
      1st" is a different UTC instant per tenant.
    - A config without a ``next_generation_date`` is never due.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from billing_scheduler.domain.time_math import to_tenant_local
from billing_scheduler.domain.types import GenerationConfig


def _as_utc(now: datetime) -> datetime:
    # Naive "now" is taken as UTC, never as tenant-local.
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def is_due(config: GenerationConfig, now: datetime) -> bool:
    """True iff ``config`` is due at instant ``now`` in its own timezone."""
    if config.next_generation_date is None:
        return False
    now_local = to_tenant_local(_as_utc(now), config.timezone)
    due_local = to_tenant_local(config.next_generation_date, config.timezone)
    return now_local >= due_local


def select_due(
    configs: Iterable[GenerationConfig],
    now: datetime,
) -> tuple[GenerationConfig, ...]:
    """Filter ``configs`` down to the due subset, keeping input order."""
    return tuple(config for config in configs if is_due(config, now))
