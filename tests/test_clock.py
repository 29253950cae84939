"""Tests for reference-date resolution and day boundaries."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

from src.health_dashboard.config import Settings
from src.health_dashboard.core.clock import as_utc, end_of_day, get_reference_date, start_of_day


def test_demo_mode_pins_reference_date():
    settings = Settings(_env_file=None, DEMO_MODE=True, DEMO_DATE=date(2025, 12, 18))
    assert get_reference_date(settings) == datetime(2025, 12, 18, tzinfo=timezone.utc)


def test_wall_clock_when_demo_mode_off():
    settings = Settings(_env_file=None, DEMO_MODE=False)
    before = datetime.now(timezone.utc)
    now = get_reference_date(settings)
    assert now.tzinfo is not None
    assert before <= now <= datetime.now(timezone.utc)


def test_day_boundaries():
    moment = datetime(2025, 12, 18, 15, 30, tzinfo=timezone.utc)
    assert start_of_day(moment.date()) == datetime(2025, 12, 18, tzinfo=timezone.utc)
    assert end_of_day(moment) == datetime(2025, 12, 19, tzinfo=timezone.utc) - timedelta(
        microseconds=1
    )


def test_as_utc_converts_offsets_and_naive_values():
    plus_two = timezone(timedelta(hours=2))
    assert as_utc(datetime(2025, 1, 1, 2, tzinfo=plus_two)) == datetime(
        2025, 1, 1, tzinfo=timezone.utc
    )
    assert as_utc(datetime(2025, 1, 1)).tzinfo == timezone.utc


def test_open_ticket_statuses_parsing():
    settings = Settings(_env_file=None, OPEN_TICKET_STATUSES=" new, open ,pending,")
    assert settings.open_ticket_statuses == ["new", "open", "pending"]
