"""
Pure tenant-local date arithmetic for invoice scheduling.

Contract:
    ``next_due_date``, ``is_weekend`` and ``next_business_day`` are PURE --
    no I/O, no clock reads.  Every calculation happens on the tenant's
    wall clock in its IANA timezone, so month lengths and DST transitions
    are tenant-local rather than UTC.

Architecture: billing_scheduler/domain.  ZERO I/O.

Value forms:
    - A naive ``datetime`` is a wall-clock value already in the tenant zone.
    - An aware ``datetime`` is an instant; it is converted into the tenant
      zone first.
    Results keep the form of the input: naive in, naive out; aware in,
    aware (tenant zone) out.

Invariants enforced:
    - Unknown frequencies are rejected with ``InvalidFrequencyError``,
      never defaulted.
    - ``next_business_day`` never returns a Saturday or Sunday.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from billing_kernel.exceptions import InvalidFrequencyError, InvalidTimezoneError

from billing_scheduler.domain.types import Frequency

_SATURDAY = 5
_SUNDAY = 6

_FREQUENCY_STEPS: dict[Frequency, relativedelta] = {
    Frequency.MONTHLY: relativedelta(months=1),
    Frequency.QUARTERLY: relativedelta(months=3),
    Frequency.YEARLY: relativedelta(years=1),
}


def parse_frequency(value: Frequency | str) -> Frequency:
    """Coerce a stored frequency value to ``Frequency``.

    Raises:
        InvalidFrequencyError: If the value is not a supported recurrence.
    """
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError:
        raise InvalidFrequencyError(value) from None


@lru_cache(maxsize=256)
def get_zone(timezone_name: str) -> ZoneInfo:
    """Resolve an IANA timezone name.

    Raises:
        InvalidTimezoneError: If the name is empty or unknown.
    """
    if not timezone_name:
        raise InvalidTimezoneError(timezone_name)
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidTimezoneError(timezone_name) from None


def to_tenant_local(value: datetime, timezone_name: str) -> datetime:
    """Return ``value`` as an aware datetime in the tenant's zone."""
    zone = get_zone(timezone_name)
    if value.tzinfo is None:
        return value.replace(tzinfo=zone)
    return value.astimezone(zone)


def to_wall_clock(value: datetime, timezone_name: str) -> datetime:
    """Return ``value`` as a naive tenant-local wall-clock datetime."""
    return to_tenant_local(value, timezone_name).replace(tzinfo=None)


def _same_form(local: datetime, original: datetime) -> datetime:
    if original.tzinfo is None:
        return local.replace(tzinfo=None)
    return local


def next_due_date(
    current: datetime,
    frequency: Frequency | str,
    timezone_name: str,
) -> datetime:
    """Advance ``current`` by one recurrence period on the tenant's calendar.

    The recurrence base is always the previous scheduled date, never the
    time a pass actually ran.  Month-end dates clamp to the last day of
    the target month (Jan 31 -> Feb 29 in a leap year).

    Raises:
        InvalidFrequencyError: If ``frequency`` is not supported.
        InvalidTimezoneError: If ``timezone_name`` is unknown.
    """
    step = _FREQUENCY_STEPS[parse_frequency(frequency)]
    local = to_tenant_local(current, timezone_name)
    return _same_form(local + step, current)


def is_weekend(value: datetime, timezone_name: str) -> bool:
    """True iff ``value`` falls on a Saturday or Sunday in the tenant's zone."""
    return to_tenant_local(value, timezone_name).weekday() in (_SATURDAY, _SUNDAY)


def next_business_day(value: datetime, timezone_name: str) -> datetime:
    """Roll a weekend date forward to Monday; weekdays are returned unchanged.

    Sunday moves one day, Saturday two.  The time of day is kept.
    """
    local = to_tenant_local(value, timezone_name)
    weekday = local.weekday()
    if weekday == _SUNDAY:
        local = local + timedelta(days=1)
    elif weekday == _SATURDAY:
        local = local + timedelta(days=2)
    return _same_form(local, value)
