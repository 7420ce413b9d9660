"""
Tests for billing_scheduler.services.advancer -- ScheduleAdvancer.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from billing_scheduler.domain.types import Frequency, GenerationConfig
from billing_scheduler.services.advancer import ScheduleAdvancer


class FakeRepository:
    def __init__(self):
        self.updates: list[tuple] = []

    def load_active_due_candidates(self):
        return []

    def update_next_generation_date(self, config_id, new_date):
        self.updates.append((config_id, new_date))


def _config(
    next_generation_date=datetime(2024, 3, 1, 9, 0),
    frequency=Frequency.MONTHLY,
    timezone_name="America/New_York",
) -> GenerationConfig:
    return GenerationConfig(
        config_id=uuid4(),
        tenant_id=uuid4(),
        tenant_name="Acme Corp",
        frequency=frequency,
        next_generation_date=next_generation_date,
        timezone=timezone_name,
    )


@pytest.fixture
def repository():
    return FakeRepository()


@pytest.fixture
def advancer(repository):
    return ScheduleAdvancer(repository)


class TestNextPeriod:
    def test_is_pure(self, advancer, repository):
        assert advancer.next_period(_config()) == datetime(2024, 4, 1, 9, 0)
        assert repository.updates == []

    def test_anchored_on_previous_date_not_now(self, advancer):
        """A config processed days late still advances from its own date."""
        config = _config(next_generation_date=datetime(2024, 1, 15, 9, 0))
        assert advancer.next_period(config) == datetime(2024, 2, 15, 9, 0)

    def test_missing_date_raises(self, advancer):
        with pytest.raises(ValueError):
            advancer.next_period(_config(next_generation_date=None))


class TestToNextPeriod:
    def test_persists_one_step(self, advancer, repository):
        config = _config(frequency=Frequency.YEARLY)
        result = advancer.to_next_period(config)

        assert result == datetime(2025, 3, 1, 9, 0)
        assert repository.updates == [(config.config_id, datetime(2025, 3, 1, 9, 0))]

    def test_persists_precomputed_date(self, advancer, repository):
        config = _config()
        advancer.to_next_period(config, datetime(2024, 4, 1, 9, 0))
        assert repository.updates == [(config.config_id, datetime(2024, 4, 1, 9, 0))]

    def test_aware_date_stored_as_wall_clock(self, advancer, repository):
        config = _config()
        advancer.to_next_period(
            config, datetime(2024, 4, 1, 13, 0, tzinfo=timezone.utc),
        )
        assert repository.updates[0][1] == datetime(2024, 4, 1, 9, 0)

    def test_logs_schedule_advanced(self, advancer, captured_logs):
        config = _config()
        advancer.to_next_period(config)

        [record] = [r for r in captured_logs() if r["message"] == "schedule_advanced"]
        assert record["config_id"] == str(config.config_id)
        assert record["next_generation_date"] == "2024-04-01T09:00:00"


class TestToNextBusinessDay:
    def test_saturday_now_defers_to_monday(self, advancer, repository):
        config = _config(next_generation_date=datetime(2024, 3, 2, 0, 0))
        # Saturday 2024-03-02 15:00 UTC is 10:00 in New York.
        now = datetime(2024, 3, 2, 15, 0, tzinfo=timezone.utc)

        result = advancer.to_next_business_day(config, now)
        assert result == datetime(2024, 3, 4, 10, 0)
        assert repository.updates == [(config.config_id, datetime(2024, 3, 4, 10, 0))]

    def test_sunday_now_defers_one_day(self, advancer):
        config = _config(next_generation_date=datetime(2024, 3, 2, 0, 0))
        now = datetime(2024, 3, 3, 15, 0, tzinfo=timezone.utc)
        assert advancer.to_next_business_day(config, now) == datetime(2024, 3, 4, 10, 0)

    def test_uses_tenant_calendar(self, advancer):
        """Sunday 03:00 UTC is Saturday evening in New York: two days ahead."""
        config = _config(next_generation_date=datetime(2024, 3, 2, 0, 0))
        now = datetime(2024, 3, 3, 3, 0, tzinfo=timezone.utc)
        assert advancer.to_next_business_day(config, now) == datetime(2024, 3, 4, 22, 0)
