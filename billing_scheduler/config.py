"""
Scheduler settings (``billing_scheduler.config``).

Responsibility
--------------
Loads ``SchedulerSettings`` from an optional YAML file and the process
environment.  Environment variables override file values.

Recognised keys (file key / environment variable):

    database_url                 BILLING_DATABASE_URL, then DATABASE_URL
    cadence_seconds              BILLING_SCHEDULER_CADENCE_SECONDS
    startup_delay_seconds        BILLING_SCHEDULER_STARTUP_DELAY_SECONDS
    generation_timeout_seconds   BILLING_SCHEDULER_GENERATION_TIMEOUT_SECONDS
    log_level                    BILLING_SCHEDULER_LOG_LEVEL
    actor_id                     BILLING_SCHEDULER_ACTOR_ID

A ``generation_timeout_seconds`` of ``null`` in YAML (or ``none`` in the
environment) disables the per-call timeout.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown key or unusable value  -> ``InvalidSchedulerSettingsError``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping
from uuid import UUID

import yaml

from billing_kernel.exceptions import InvalidSchedulerSettingsError

_ENV_KEYS: dict[str, tuple[str, ...]] = {
    "database_url": ("BILLING_DATABASE_URL", "DATABASE_URL"),
    "cadence_seconds": ("BILLING_SCHEDULER_CADENCE_SECONDS",),
    "startup_delay_seconds": ("BILLING_SCHEDULER_STARTUP_DELAY_SECONDS",),
    "generation_timeout_seconds": ("BILLING_SCHEDULER_GENERATION_TIMEOUT_SECONDS",),
    "log_level": ("BILLING_SCHEDULER_LOG_LEVEL",),
    "actor_id": ("BILLING_SCHEDULER_ACTOR_ID",),
}

_DISABLED = {"", "none", "null", "off"}


@dataclass(frozen=True)
class SchedulerSettings:
    """Runtime settings for the invoice scheduler process."""

    database_url: str | None = None
    cadence_seconds: int = 3600
    startup_delay_seconds: float = 5.0
    generation_timeout_seconds: float | None = 120.0
    log_level: str = "INFO"
    actor_id: UUID | None = None


def load_settings(
    path: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> SchedulerSettings:
    """
    Build ``SchedulerSettings`` from ``path`` (optional) and ``environ``.

    ``environ`` defaults to ``os.environ``.

    Raises:
        InvalidSchedulerSettingsError: On an unknown key or a bad value.
    """
    env = os.environ if environ is None else environ
    raw: dict[str, Any] = {}

    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise InvalidSchedulerSettingsError(str(path), "expected a mapping")
        known = {setting.name for setting in fields(SchedulerSettings)}
        for key, value in data.items():
            if key not in known:
                raise InvalidSchedulerSettingsError(str(key), "unknown setting")
            raw[key] = value

    for key, names in _ENV_KEYS.items():
        for name in names:
            if name in env:
                raw[key] = env[name]
                break

    return SchedulerSettings(
        database_url=_optional_str(raw.get("database_url")),
        cadence_seconds=_positive_int("cadence_seconds", raw.get("cadence_seconds", 3600)),
        startup_delay_seconds=_non_negative_float(
            "startup_delay_seconds", raw.get("startup_delay_seconds", 5.0),
        ),
        generation_timeout_seconds=_timeout(raw.get("generation_timeout_seconds", 120.0)),
        log_level=_log_level(raw.get("log_level", "INFO")),
        actor_id=_actor_id(raw.get("actor_id")),
    )


# =============================================================================
# Value parsing
# =============================================================================


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _positive_int(setting: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidSchedulerSettingsError(setting, f"not an integer: {value!r}") from None
    if number <= 0:
        raise InvalidSchedulerSettingsError(setting, f"must be positive: {number}")
    return number


def _non_negative_float(setting: str, value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidSchedulerSettingsError(setting, f"not a number: {value!r}") from None
    if number < 0:
        raise InvalidSchedulerSettingsError(setting, f"must not be negative: {number}")
    return number


def _timeout(value: Any) -> float | None:
    if value is None or (isinstance(value, str) and value.strip().lower() in _DISABLED):
        return None
    number = _non_negative_float("generation_timeout_seconds", value)
    if number == 0:
        raise InvalidSchedulerSettingsError(
            "generation_timeout_seconds", "must be positive or null",
        )
    return number


def _log_level(value: Any) -> str:
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise InvalidSchedulerSettingsError("log_level", f"unknown level: {value!r}")
    return level


def _actor_id(value: Any) -> UUID | None:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidSchedulerSettingsError("actor_id", f"not a UUID: {value!r}") from None
