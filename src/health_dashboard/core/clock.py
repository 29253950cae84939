"""Reference date resolution.

All window arithmetic (interaction windows, renewal horizons, health history)
is anchored to a single "now". In demo mode that anchor is the start of the
configured DEMO_DATE in UTC so dashboards render the same numbers on every
run; otherwise it is the wall clock.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

from src.health_dashboard.config import Settings, get_settings


def get_reference_date(settings: Settings | None = None) -> datetime:
    """Return the timezone-aware UTC datetime treated as "now"."""
    settings = settings or get_settings()
    if settings.DEMO_MODE:
        return start_of_day(settings.DEMO_DATE)
    return datetime.now(timezone.utc)


def start_of_day(day: date) -> datetime:
    """Midnight UTC at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def end_of_day(moment: datetime) -> datetime:
    """Last representable instant of the UTC calendar day containing ``moment``."""
    return start_of_day(as_utc(moment).date()) + timedelta(days=1, microseconds=-1)


def as_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
