"""
Tests for billing_scheduler.services.manual_generation.

Validates operator-triggered generation (single tenant and all active) and
retry of failed log entries.
"""

from datetime import datetime
from uuid import uuid4

import pytest

from billing_kernel.exceptions import (
    GenerationLogNotFoundError,
    GenerationLogNotRetryableError,
    TenantNotFoundError,
)
from billing_kernel.models.tenant import TenantStatus

from billing_scheduler.domain.types import GenerationResult, GenerationStatus
from billing_scheduler.models.generation import (
    InvoiceGenerationConfigModel,
    InvoiceGenerationLogModel,
)
from billing_scheduler.services.audit_recorder import SqlAuditRecorder
from billing_scheduler.services.manual_generation import ManualGenerationService


@pytest.fixture
def service(session_factory, invoker, clock):
    return ManualGenerationService(
        session_factory=session_factory,
        invoker=invoker,
        audit_recorder=SqlAuditRecorder(session_factory),
        clock=clock,
    )


def _log(session_factory, log_id) -> InvoiceGenerationLogModel:
    with session_factory() as session:
        return session.get(InvoiceGenerationLogModel, log_id)


def _next_date(session_factory, config_id) -> datetime:
    with session_factory() as session:
        return session.get(InvoiceGenerationConfigModel, config_id).next_generation_date


class TestGenerateForTenant:
    def test_success_records_manual_entry(
        self, service, invoker, create_tenant, create_config, session_factory,
    ):
        tenant_id = create_tenant(name="Acme Corp")
        config_id = create_config(tenant_id=tenant_id, frequency="quarterly")

        outcome = service.generate_for_tenant(tenant_id)

        assert outcome.succeeded
        assert outcome.reference_id == "genlog-001"
        assert invoker.calls == [(tenant_id, "Acme Corp")]

        log = _log(session_factory, outcome.log_id)
        assert log.status == "completed"
        assert log.config_id == config_id
        assert log.details["generation_type"] == "manual"
        assert log.details["scheduled_by"] == "operator"
        assert log.details["frequency"] == "quarterly"
        assert log.details["generated_invoice_log_id"] == "genlog-001"

    def test_does_not_advance_schedule(
        self, service, create_tenant, create_config, session_factory,
    ):
        tenant_id = create_tenant()
        config_id = create_config(tenant_id=tenant_id)

        service.generate_for_tenant(tenant_id)

        assert _next_date(session_factory, config_id) == datetime(2024, 3, 1, 9, 0)

    def test_tenant_without_config(self, service, create_tenant, session_factory):
        tenant_id = create_tenant(name="Loose Ends Ltd")

        outcome = service.generate_for_tenant(tenant_id)

        log = _log(session_factory, outcome.log_id)
        assert log.config_id is None
        assert log.details["frequency"] is None

    def test_failure_is_recorded_not_raised(
        self, service, invoker, create_tenant, session_factory,
    ):
        tenant_id = create_tenant(name="Acme Corp")
        invoker.failures["Acme Corp"] = RuntimeError("No active subscription found for tenant")

        outcome = service.generate_for_tenant(tenant_id)

        assert outcome.status is GenerationStatus.FAILED
        assert outcome.error_message == "No active subscription found for tenant"
        log = _log(session_factory, outcome.log_id)
        assert log.status == "failed"
        assert log.details["error_type"] == "RuntimeError"

    def test_unknown_tenant(self, service, invoker):
        with pytest.raises(TenantNotFoundError):
            service.generate_for_tenant(uuid4())
        assert invoker.calls == []


class TestGenerateForAllActive:
    def test_generates_for_every_eligible_config(self, service, invoker, create_config):
        create_config(tenant_name="First")
        create_config(tenant_name="Unscheduled", next_generation_date=None)
        create_config(tenant_name="Paused", is_active=False)
        create_config(tenant_name="Suspended", tenant_status=TenantStatus.SUSPENDED.value)
        create_config(tenant_name="Last")
        invoker.failures["Last"] = RuntimeError("boom")

        outcomes = service.generate_for_all_active()

        assert invoker.tenant_names == ["First", "Unscheduled", "Last"]
        assert [o.status for o in outcomes] == [
            GenerationStatus.COMPLETED,
            GenerationStatus.COMPLETED,
            GenerationStatus.FAILED,
        ]

    def test_nothing_active(self, service, invoker):
        assert service.generate_for_all_active() == ()
        assert invoker.calls == []


class TestRetryFailed:
    def test_success_completes_entry(self, service, invoker, create_log, session_factory, clock):
        log_id = create_log(
            tenant_name="Acme Corp",
            status="failed",
            error_message="timeout",
            details={"generation_type": "automatic", "error_type": "GenerationTimeoutError"},
        )

        outcome = service.retry_failed(log_id)

        assert outcome.succeeded
        assert outcome.log_id == log_id
        assert invoker.tenant_names == ["Acme Corp"]

        log = _log(session_factory, log_id)
        assert log.status == "completed"
        assert log.retry_count == 1
        assert log.error_message is None
        assert log.details["generation_type"] == "automatic"
        assert log.details["generated_invoice_log_id"] == "genlog-001"
        assert log.details["retried_at"] == clock.now_utc().isoformat()
        assert "error_type" not in log.details

    def test_failure_keeps_entry_failed(self, service, invoker, create_log, session_factory):
        log_id = create_log(tenant_name="Acme Corp", status="failed", error_message="old")
        invoker.failures["Acme Corp"] = RuntimeError("still broken")

        outcome = service.retry_failed(log_id)

        assert outcome.status is GenerationStatus.FAILED
        log = _log(session_factory, log_id)
        assert log.status == "failed"
        assert log.retry_count == 1
        assert log.error_message == "still broken"
        assert log.details["error_type"] == "RuntimeError"

    def test_retry_count_accumulates(self, service, invoker, create_log, session_factory):
        log_id = create_log(tenant_name="Acme Corp", status="failed")
        invoker.failures["Acme Corp"] = RuntimeError("still broken")

        service.retry_failed(log_id)
        service.retry_failed(log_id)

        assert _log(session_factory, log_id).retry_count == 2

    def test_entry_is_retrying_during_the_call(self, session_factory, create_log, clock):
        log_id = create_log(tenant_name="Acme Corp", status="failed")
        seen = []

        class InspectingInvoker:
            def generate(self, tenant_id, tenant_name):
                log = _log(session_factory, log_id)
                seen.append((log.status, log.retry_count))
                return GenerationResult(reference_id="genlog-x")

        ManualGenerationService(
            session_factory, InspectingInvoker(), SqlAuditRecorder(session_factory),
            clock=clock,
        ).retry_failed(log_id)

        assert seen == [("retrying", 1)]

    @pytest.mark.parametrize("status", ["completed", "processing", "retrying"])
    def test_only_failed_entries_can_be_retried(
        self, service, invoker, create_log, session_factory, status,
    ):
        log_id = create_log(status=status)

        with pytest.raises(GenerationLogNotRetryableError) as exc_info:
            service.retry_failed(log_id)

        assert exc_info.value.status == status
        assert invoker.calls == []
        assert _log(session_factory, log_id).retry_count == 0

    def test_unknown_log(self, service):
        with pytest.raises(GenerationLogNotFoundError):
            service.retry_failed(uuid4())


class FailingAuditRecorder:
    def __init__(self):
        self.attempts = 0

    def append(self, entry):
        self.attempts += 1
        raise RuntimeError("audit store unavailable")


class TestAuditWriteFailure:
    @pytest.fixture
    def failing_service(self, session_factory, invoker, clock):
        recorder = FailingAuditRecorder()
        service = ManualGenerationService(
            session_factory=session_factory,
            invoker=invoker,
            audit_recorder=recorder,
            clock=clock,
        )
        return service, recorder

    def test_outcome_kept_when_log_write_fails(
        self, failing_service, create_tenant, captured_logs,
    ):
        service, _ = failing_service
        tenant_id = create_tenant(name="Acme Corp")

        outcome = service.generate_for_tenant(tenant_id)

        assert outcome.succeeded
        assert outcome.reference_id == "genlog-001"
        assert outcome.log_id is None
        assert any(r["message"] == "generation_log_write_failed" for r in captured_logs())

    def test_failed_generation_kept_when_log_write_fails(
        self, failing_service, invoker, create_tenant,
    ):
        service, _ = failing_service
        tenant_id = create_tenant(name="Acme Corp")
        invoker.failures["Acme Corp"] = RuntimeError("No active subscription found for tenant")

        outcome = service.generate_for_tenant(tenant_id)

        assert outcome.status is GenerationStatus.FAILED
        assert outcome.error_message == "No active subscription found for tenant"
        assert outcome.log_id is None

    def test_remaining_tenants_still_generated(self, failing_service, invoker, create_config):
        service, recorder = failing_service
        create_config(tenant_name="First")
        create_config(tenant_name="Second")

        outcomes = service.generate_for_all_active()

        assert invoker.tenant_names == ["First", "Second"]
        assert recorder.attempts == 2
        assert [o.succeeded for o in outcomes] == [True, True]
