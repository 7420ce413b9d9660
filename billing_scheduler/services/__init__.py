"""
billing_scheduler.services -- Persistence adapters and the scheduling driver.
"""

from billing_scheduler.services.advancer import ScheduleAdvancer
from billing_scheduler.services.audit_recorder import (
    AuditRecorder,
    SqlAuditRecorder,
    completed_entry,
    failed_entry,
)
from billing_scheduler.services.config_repository import (
    ConfigRepository,
    SqlConfigRepository,
)
from billing_scheduler.services.invoker import GenerationInvoker, invoke_with_timeout
from billing_scheduler.services.log_selector import (
    GenerationLogPage,
    GenerationLogSelector,
    GenerationLogSummary,
)
from billing_scheduler.services.manual_generation import (
    ManualGenerationOutcome,
    ManualGenerationService,
)
from billing_scheduler.services.scheduler import InvoiceScheduler

__all__ = [
    "AuditRecorder",
    "ConfigRepository",
    "GenerationInvoker",
    "GenerationLogPage",
    "GenerationLogSelector",
    "GenerationLogSummary",
    "InvoiceScheduler",
    "ManualGenerationOutcome",
    "ManualGenerationService",
    "ScheduleAdvancer",
    "SqlAuditRecorder",
    "SqlConfigRepository",
    "completed_entry",
    "failed_entry",
    "invoke_with_timeout",
]
