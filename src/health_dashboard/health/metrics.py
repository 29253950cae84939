"""Rolling-window engagement metrics for a single account.

Turns raw interaction insights, open tickets and the CRM last-activity date
into AccountMetrics. Pure and deterministic: given the same inputs and the
same reference date the result is identical, and nothing here touches the
store.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from datetime import datetime, timedelta

from src.health_dashboard.accounts.schemas import (
    AccountMetrics,
    InteractionInsight,
    SupportTicket,
)
from src.health_dashboard.core.clock import as_utc

DEFAULT_WINDOW_DAYS = 90

_SECONDS_PER_DAY = 24 * 60 * 60


def filter_window(
    interactions: Sequence[InteractionInsight],
    reference_date: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> list[InteractionInsight]:
    """Interactions that occurred at or after ``reference_date - window_days``.

    Interactions without a timestamp are never in the window. Input order is
    preserved.
    """
    cutoff = as_utc(reference_date) - timedelta(days=window_days)
    return [
        i
        for i in interactions
        if i.occurred_at is not None and as_utc(i.occurred_at) >= cutoff
    ]


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from ``earlier`` to ``later``, floored (negative if reversed)."""
    delta = as_utc(later) - as_utc(earlier)
    return math.floor(delta.total_seconds() / _SECONDS_PER_DAY)


def calculate_metrics(
    interactions: Sequence[InteractionInsight],
    open_tickets: Sequence[SupportTicket],
    last_activity_date: datetime | None,
    reference_date: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> AccountMetrics:
    """Compute AccountMetrics for one account.

    Args:
        interactions: Every known interaction for the account. The window
            filter is applied here, so callers may pass unfiltered history.
        open_tickets: Tickets already restricted to open states by the caller.
        last_activity_date: CRM last-activity timestamp, if any.
        reference_date: The "now" anchor for window and day arithmetic.
        window_days: Size of the trailing interaction window.

    Returns:
        AccountMetrics. ``avg_sentiment`` is None (never 0) when the window is
        empty. ``days_since_activity`` uses the later of the newest in-window
        interaction and ``last_activity_date`` and is not clamped at zero.
    """
    recent = filter_window(interactions, reference_date, window_days)

    avg_sentiment: float | None = None
    if recent:
        avg_sentiment = sum(i.sentiment_score for i in recent) / len(recent)

    churn_signals = sum(1 for i in recent if i.churn_risk)
    expansion_signals = sum(1 for i in recent if i.expansion_opportunity)

    candidates: list[datetime] = [as_utc(i.occurred_at) for i in recent if i.occurred_at]
    if last_activity_date is not None:
        candidates.append(as_utc(last_activity_date))

    days_since_activity: int | None = None
    if candidates:
        days_since_activity = days_between(reference_date, max(candidates))

    return AccountMetrics(
        avg_sentiment=avg_sentiment,
        interaction_count=len(recent),
        churn_signals=churn_signals,
        expansion_signals=expansion_signals,
        open_ticket_count=len(open_tickets),
        days_since_activity=days_since_activity,
    )
