"""
Tests for billing_scheduler.services.config_repository.

Uses in-memory SQLite with real ORM models.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select

from billing_kernel.exceptions import GenerationConfigNotFoundError
from billing_kernel.models.tenant import TenantStatus

from billing_scheduler.domain.types import Frequency
from billing_scheduler.models.generation import InvoiceGenerationConfigModel
from billing_scheduler.services.config_repository import (
    ConfigRepository,
    SqlConfigRepository,
)


@pytest.fixture
def repository(session_factory):
    return SqlConfigRepository(session_factory, actor_id=uuid4())


class TestLoadActiveDueCandidates:
    def test_satisfies_protocol(self, repository):
        assert isinstance(repository, ConfigRepository)

    def test_empty(self, repository):
        assert repository.load_active_due_candidates() == []

    def test_returns_dto_with_tenant_name(self, repository, create_config):
        config_id = create_config(
            tenant_name="Globex",
            next_generation_date=datetime(2024, 3, 1, 9, 0),
            frequency="quarterly",
            timezone_name="America/New_York",
            generate_on_weekend=True,
        )

        [config] = repository.load_active_due_candidates()
        assert config.config_id == config_id
        assert config.tenant_name == "Globex"
        assert config.frequency is Frequency.QUARTERLY
        assert config.next_generation_date == datetime(2024, 3, 1, 9, 0)
        assert config.timezone == "America/New_York"
        assert config.generate_on_weekend is True
        assert config.billing_contact_email == "billing@example.com"

    def test_excludes_inactive_config(self, repository, create_config):
        create_config(is_active=False)
        assert repository.load_active_due_candidates() == []

    @pytest.mark.parametrize(
        "status",
        [TenantStatus.SUSPENDED.value, TenantStatus.INACTIVE.value, TenantStatus.TRIAL.value],
    )
    def test_excludes_non_active_tenant(self, repository, create_config, status):
        create_config(tenant_status=status)
        assert repository.load_active_due_candidates() == []

    def test_excludes_unscheduled_config(self, repository, create_config):
        create_config(next_generation_date=None)
        assert repository.load_active_due_candidates() == []

    def test_includes_future_dates(self, repository, create_config):
        """Due filtering is the selector's job, not the repository's."""
        create_config(next_generation_date=datetime(2030, 1, 1))
        assert len(repository.load_active_due_candidates()) == 1

    def test_stable_order(self, repository, create_config):
        create_config(tenant_name="First")
        create_config(tenant_name="Second")
        create_config(tenant_name="Third")

        names = [c.tenant_name for c in repository.load_active_due_candidates()]
        assert names == ["First", "Second", "Third"]

    def test_unknown_frequency_rejected_and_logged(
        self, repository, create_config, captured_logs,
    ):
        bad_id = create_config(tenant_name="Bad", frequency="weekly")
        create_config(tenant_name="Good")

        names = [c.tenant_name for c in repository.load_active_due_candidates()]
        assert names == ["Good"]

        rejected = [r for r in captured_logs() if r["message"] == "generation_config_rejected"]
        assert len(rejected) == 1
        assert rejected[0]["config_id"] == str(bad_id)
        assert rejected[0]["error_code"] == "INVALID_FREQUENCY"

    def test_unknown_timezone_rejected(self, repository, create_config):
        create_config(timezone_name="Mars/Base")
        assert repository.load_active_due_candidates() == []


class TestLoadActiveConfigs:
    def test_includes_unscheduled(self, repository, create_config):
        create_config(tenant_name="Scheduled")
        create_config(tenant_name="Unscheduled", next_generation_date=None)

        names = [c.tenant_name for c in repository.load_active_configs()]
        assert names == ["Scheduled", "Unscheduled"]


class TestGetConfigForTenant:
    def test_found(self, repository, create_tenant, create_config):
        tenant_id = create_tenant(name="Initech")
        config_id = create_config(tenant_id=tenant_id)

        config = repository.get_config_for_tenant(tenant_id)
        assert config is not None
        assert config.config_id == config_id
        assert config.tenant_name == "Initech"

    def test_missing(self, repository):
        assert repository.get_config_for_tenant(uuid4()) is None


class TestUpdateNextGenerationDate:
    def test_persists_wall_clock(self, repository, create_config, db_session):
        config_id = create_config()
        repository.update_next_generation_date(config_id, datetime(2024, 4, 1, 9, 0))

        stored = db_session.execute(
            select(InvoiceGenerationConfigModel.next_generation_date)
            .where(InvoiceGenerationConfigModel.id == config_id)
        ).scalar_one()
        assert stored == datetime(2024, 4, 1, 9, 0)

    def test_idempotent(self, repository, create_config):
        config_id = create_config()
        new_date = datetime(2024, 4, 1, 9, 0)
        repository.update_next_generation_date(config_id, new_date)
        repository.update_next_generation_date(config_id, new_date)

        [config] = repository.load_active_due_candidates()
        assert config.next_generation_date == new_date

    def test_only_touches_one_row(self, repository, create_config):
        first = create_config(tenant_name="First")
        create_config(tenant_name="Second")
        repository.update_next_generation_date(first, datetime(2024, 4, 1))

        dates = {
            c.tenant_name: c.next_generation_date
            for c in repository.load_active_due_candidates()
        }
        assert dates == {
            "First": datetime(2024, 4, 1),
            "Second": datetime(2024, 3, 1, 9, 0),
        }

    def test_records_actor(self, session_factory, create_config, db_session):
        actor = uuid4()
        config_id = create_config()
        SqlConfigRepository(session_factory, actor_id=actor).update_next_generation_date(
            config_id, datetime(2024, 4, 1),
        )

        model = db_session.get(InvoiceGenerationConfigModel, config_id)
        assert model.updated_by_id == actor

    def test_missing_config_raises(self, repository):
        with pytest.raises(GenerationConfigNotFoundError):
            repository.update_next_generation_date(uuid4(), datetime(2024, 4, 1))


class TestToDto:
    def test_aware_stored_date_converted_to_wall_clock(self):
        model = InvoiceGenerationConfigModel(
            id=uuid4(),
            tenant_id=uuid4(),
            frequency="monthly",
            next_generation_date=datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc),
            timezone="America/New_York",
            generate_on_weekend=False,
            auto_send=True,
            is_active=True,
        )
        config = model.to_dto("Acme Corp")
        assert config.next_generation_date == datetime(2024, 3, 1, 9, 0)
