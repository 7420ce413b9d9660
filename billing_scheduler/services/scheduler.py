"""
InvoiceScheduler -- in-process hourly driver for automatic invoice generation.

Contract:
    ``run_pass()`` loads candidates, selects the due subset on each tenant's
    own clock, and processes due configs one at a time:

        weekend and generate_on_weekend is False
            -> reschedule to the next business day (no attempt, no audit)
        otherwise
            -> invoke generation (bounded by a timeout)
            -> advance next_generation_date by one period, success or failure
            -> append a completed / failed audit entry

    ``start()`` runs one catch-up pass after a short startup delay, then a
    pass at every cadence boundary (top of the hour in UTC).
    ``trigger_manual_check()`` runs the identical pass on demand.

Architecture: billing_scheduler/services.  Uses billing_scheduler.domain
    for pure evaluation and injected collaborators for all I/O.

Invariants enforced:
    - Single-flight: at most one pass runs at a time; an overlapping
      trigger is skipped, never queued.
    - Sequential: due configs are processed in repository order, never
      fanned out.
    - Forward progress: a failed attempt advances the date exactly like a
      successful one.
    - All timestamps come from the injected Clock.
    - Graceful shutdown: background passes honour the stop signal between
      configs; operator-triggered passes always run to completion.
"""

from __future__ import annotations

import math
import threading
from datetime import datetime
from uuid import UUID, uuid4

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import ScheduleError
from billing_kernel.logging_config import LogContext, get_logger

from billing_scheduler.domain.selection import select_due
from billing_scheduler.domain.time_math import is_weekend
from billing_scheduler.domain.types import (
    ConfigOutcome,
    ConfigProcessingResult,
    GenerationConfig,
    GenerationLogEntry,
    PassStatus,
    PassTrigger,
    SchedulerPassResult,
)
from billing_scheduler.services.advancer import ScheduleAdvancer
from billing_scheduler.services.audit_recorder import (
    AuditRecorder,
    completed_entry,
    failed_entry,
)
from billing_scheduler.services.config_repository import ConfigRepository
from billing_scheduler.services.invoker import GenerationInvoker, invoke_with_timeout

logger = get_logger("scheduler.driver")


class InvoiceScheduler:
    """Hourly, single-flight scheduler for recurring invoice generation.

    Contract:
        - ``run_pass()`` / ``trigger_manual_check()`` process one pass.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election); the
          single-flight guard is per process.
        - Does NOT price or render invoices; that is the invoker's job.
    """

    def __init__(
        self,
        repository: ConfigRepository,
        invoker: GenerationInvoker,
        audit_recorder: AuditRecorder,
        clock: Clock | None = None,
        cadence_seconds: int = 3600,
        startup_delay_seconds: float = 5.0,
        generation_timeout_seconds: float | None = 120.0,
        advancer: ScheduleAdvancer | None = None,
    ):
        if cadence_seconds <= 0:
            raise ValueError(f"cadence_seconds must be positive: {cadence_seconds}")
        self._repository = repository
        self._invoker = invoker
        self._audit = audit_recorder
        self._clock = clock or SystemClock()
        self._advancer = advancer or ScheduleAdvancer(repository)
        self._cadence = cadence_seconds
        self._startup_delay = startup_delay_seconds
        self._generation_timeout = generation_timeout_seconds
        self._pass_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run_pass(self, trigger: PassTrigger = PassTrigger.MANUAL) -> SchedulerPassResult:
        """Run one scheduling pass unless another is already in flight."""
        pass_id = uuid4()
        if not self._pass_lock.acquire(blocking=False):
            now = self._clock.now_utc()
            logger.warning(
                "scheduler_pass_skipped",
                extra={
                    "skipped_pass_id": str(pass_id),
                    "trigger": trigger.value,
                    "reason": "pass_in_progress",
                },
            )
            return SchedulerPassResult(
                pass_id=pass_id,
                trigger=trigger,
                status=PassStatus.SKIPPED,
                started_at=now,
                completed_at=now,
            )

        try:
            with LogContext.bind(pass_id=pass_id, trigger=trigger.value):
                return self._execute_pass(pass_id, trigger)
        finally:
            self._pass_lock.release()

    def trigger_manual_check(self) -> SchedulerPassResult:
        """Operator / test entry point; same code path as the hourly trigger."""
        logger.info("manual_check_triggered")
        return self.run_pass(PassTrigger.MANUAL)

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="invoice-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "scheduler_started",
            extra={
                "cadence_seconds": self._cadence,
                "startup_delay_seconds": self._startup_delay,
                "generation_timeout_seconds": self._generation_timeout,
            },
        )

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_pass_in_progress(self) -> bool:
        return self._pass_lock.locked()

    def seconds_until_next_run(self, now: datetime | None = None) -> float:
        """Seconds from ``now`` to the next cadence boundary (UTC-aligned)."""
        current = (now or self._clock.now_utc()).timestamp()
        return self._next_boundary(current) - current

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _next_boundary(self, timestamp: float) -> float:
        return (math.floor(timestamp / self._cadence) + 1) * self._cadence

    def _run_loop(self) -> None:
        """Startup catch-up, then cadence passes until stopped."""
        if self._stop_event.wait(timeout=self._startup_delay):
            return
        self._run_guarded(PassTrigger.STARTUP)

        target = self._next_boundary(self._clock.now_utc().timestamp())
        while not self._stop_event.is_set():
            current = self._clock.now_utc().timestamp()
            if current < target:
                # Wake-ups can be early; re-check against the fixed target.
                self._stop_event.wait(timeout=target - current)
                continue
            self._run_guarded(PassTrigger.CADENCE)
            target = self._next_boundary(max(target, self._clock.now_utc().timestamp()))

    def _run_guarded(self, trigger: PassTrigger) -> None:
        try:
            self.run_pass(trigger)
        except Exception:
            logger.exception("scheduler_pass_exception", extra={"trigger": trigger.value})

    def _execute_pass(self, pass_id: UUID, trigger: PassTrigger) -> SchedulerPassResult:
        started_at = self._clock.now_utc()
        logger.info("scheduler_pass_started", extra={"trigger": trigger.value})

        try:
            candidates = list(self._repository.load_active_due_candidates())
        except Exception as exc:
            # Nothing has been touched yet; the next trigger starts over.
            logger.exception("scheduler_pass_aborted", extra={"trigger": trigger.value})
            return SchedulerPassResult(
                pass_id=pass_id,
                trigger=trigger,
                status=PassStatus.ABORTED,
                started_at=started_at,
                completed_at=self._clock.now_utc(),
                error_message=str(exc),
            )

        due = select_due(candidates, started_at)
        if not due:
            logger.info(
                "no_invoices_due",
                extra={"candidate_count": len(candidates)},
            )

        # Only background passes yield to stop(); operator re-runs always finish.
        interruptible = trigger is not PassTrigger.MANUAL
        status = PassStatus.COMPLETED
        results: list[ConfigProcessingResult] = []
        for index, config in enumerate(due):
            if interruptible and self._stop_event.is_set():
                status = PassStatus.INTERRUPTED
                logger.info(
                    "scheduler_pass_interrupted",
                    extra={"remaining": len(due) - index},
                )
                break
            with LogContext.bind(
                tenant_id=config.tenant_id,
                tenant_name=config.tenant_name,
                config_id=config.config_id,
            ):
                results.append(self._process_config(config))

        result = SchedulerPassResult(
            pass_id=pass_id,
            trigger=trigger,
            status=status,
            started_at=started_at,
            completed_at=self._clock.now_utc(),
            candidate_count=len(candidates),
            due_count=len(due),
            results=tuple(results),
        )
        logger.info(
            "scheduler_pass_completed",
            extra={
                "trigger": trigger.value,
                "status": status.value,
                "candidate_count": result.candidate_count,
                "due_count": result.due_count,
                "succeeded": result.succeeded,
                "failed": result.failed,
                "deferred": result.deferred,
            },
        )
        return result

    def _process_config(self, config: GenerationConfig) -> ConfigProcessingResult:
        now = self._clock.now_utc()

        if not config.generate_on_weekend and is_weekend(now, config.timezone):
            return self._defer_to_business_day(config, now)

        try:
            next_date = self._advancer.next_period(config)
        except (ScheduleError, ValueError) as exc:
            # Without a next date there is no forward progress; do not attempt.
            logger.exception("generation_config_invalid")
            return ConfigProcessingResult(
                config_id=config.config_id,
                tenant_id=config.tenant_id,
                outcome=ConfigOutcome.FAILED,
                previous_generation_date=config.next_generation_date,
                next_generation_date=None,
                advanced=False,
                error_message=str(exc),
            )

        logger.info(
            "invoice_generation_started",
            extra={"tenant_name": config.tenant_name},
        )

        try:
            generation = invoke_with_timeout(
                self._invoker,
                config.tenant_id,
                config.tenant_name,
                self._generation_timeout,
            )
        except Exception as exc:
            logger.exception(
                "invoice_generation_failed",
                extra={"tenant_name": config.tenant_name},
            )
            advanced = self._advance(config, next_date)
            audited = self._record(
                failed_entry(config, exc, next_date, self._clock.now_utc()),
            )
            return ConfigProcessingResult(
                config_id=config.config_id,
                tenant_id=config.tenant_id,
                outcome=ConfigOutcome.FAILED,
                previous_generation_date=config.next_generation_date,
                next_generation_date=next_date if advanced else None,
                advanced=advanced,
                audited=audited,
                error_message=str(exc) or type(exc).__name__,
            )

        advanced = self._advance(config, next_date)
        audited = self._record(
            completed_entry(config, generation, next_date, self._clock.now_utc()),
        )
        logger.info(
            "invoice_generation_completed",
            extra={
                "tenant_name": config.tenant_name,
                "reference_id": generation.reference_id,
                "next_generation_date": next_date,
            },
        )
        return ConfigProcessingResult(
            config_id=config.config_id,
            tenant_id=config.tenant_id,
            outcome=ConfigOutcome.SUCCEEDED,
            previous_generation_date=config.next_generation_date,
            next_generation_date=next_date if advanced else None,
            advanced=advanced,
            audited=audited,
            reference_id=generation.reference_id,
        )

    def _defer_to_business_day(
        self, config: GenerationConfig, now: datetime,
    ) -> ConfigProcessingResult:
        try:
            deferred = self._advancer.to_next_business_day(config, now)
        except Exception:
            logger.exception("next_generation_date_update_failed")
            deferred = None
        else:
            logger.info(
                "weekend_generation_deferred",
                extra={
                    "tenant_name": config.tenant_name,
                    "rescheduled_to": deferred,
                    "timezone": config.timezone,
                },
            )
        return ConfigProcessingResult(
            config_id=config.config_id,
            tenant_id=config.tenant_id,
            outcome=ConfigOutcome.DEFERRED,
            previous_generation_date=config.next_generation_date,
            next_generation_date=deferred,
            advanced=deferred is not None,
        )

    def _advance(self, config: GenerationConfig, next_date: datetime) -> bool:
        # On failure the config keeps its old date and is retried next pass.
        try:
            self._advancer.to_next_period(config, next_date)
        except Exception:
            logger.exception(
                "next_generation_date_update_failed",
                extra={"next_generation_date": next_date},
            )
            return False
        return True

    def _record(self, entry: GenerationLogEntry) -> bool:
        try:
            self._audit.append(entry)
        except Exception:
            logger.exception(
                "generation_log_write_failed",
                extra={"status": entry.status.value},
            )
            return False
        return True
