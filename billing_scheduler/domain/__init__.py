"""
billing_scheduler.domain -- Pure types, time arithmetic and due selection.

ZERO I/O.  All types are frozen dataclasses.
"""

from billing_scheduler.domain.selection import is_due, select_due
from billing_scheduler.domain.time_math import (
    is_weekend,
    next_business_day,
    next_due_date,
    parse_frequency,
)
from billing_scheduler.domain.types import (
    ConfigOutcome,
    ConfigProcessingResult,
    Frequency,
    GenerationConfig,
    GenerationLogEntry,
    GenerationResult,
    GenerationStatus,
    GenerationType,
    PassStatus,
    PassTrigger,
    SchedulerPassResult,
    TriggerSource,
)

__all__ = [
    "ConfigOutcome",
    "ConfigProcessingResult",
    "Frequency",
    "GenerationConfig",
    "GenerationLogEntry",
    "GenerationResult",
    "GenerationStatus",
    "GenerationType",
    "PassStatus",
    "PassTrigger",
    "SchedulerPassResult",
    "TriggerSource",
    "is_due",
    "is_weekend",
    "next_business_day",
    "next_due_date",
    "parse_frequency",
    "select_due",
]
