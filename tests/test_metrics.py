"""Tests for the rolling-window metrics calculator.

Covers:
    - Empty inputs produce null sentiment, zero counts, null inactivity
    - avg_sentiment is None exactly when no interaction is in the window
    - Window boundary is inclusive; undated interactions never count
    - Churn/expansion counts and open tickets
    - days_since_activity uses the later of last interaction and CRM activity
    - Future-dated activity yields a negative day count (not clamped)
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.health_dashboard.accounts.schemas import AccountMetrics
from src.health_dashboard.health.metrics import (
    calculate_metrics,
    days_between,
    filter_window,
)


class TestCalculateMetrics:
    def test_empty_inputs(self, reference_date):
        metrics = calculate_metrics([], [], None, reference_date, 90)
        assert metrics == AccountMetrics(
            avg_sentiment=None,
            interaction_count=0,
            churn_signals=0,
            expansion_signals=0,
            open_ticket_count=0,
            days_since_activity=None,
        )

    def test_average_over_window_only(self, reference_date, make_interaction):
        interactions = [
            make_interaction("a1", sentiment=40, days_ago=10),
            make_interaction("a1", sentiment=60, days_ago=20),
            make_interaction("a1", sentiment=0, days_ago=120),
        ]
        metrics = calculate_metrics(interactions, [], None, reference_date, 90)
        assert metrics.avg_sentiment == pytest.approx(50.0)
        assert metrics.interaction_count == 2

    def test_all_out_of_window_gives_null_average(self, reference_date, make_interaction):
        interactions = [make_interaction("a1", sentiment=90, days_ago=200)]
        metrics = calculate_metrics(interactions, [], None, reference_date, 90)
        assert metrics.avg_sentiment is None
        assert metrics.interaction_count == 0

    def test_signal_and_ticket_counts(self, reference_date, make_interaction, make_ticket):
        interactions = [
            make_interaction("a1", churn_risk=True, days_ago=3),
            make_interaction("a1", churn_risk=True, expansion=True, days_ago=4),
            make_interaction("a1", expansion=True, days_ago=5),
            make_interaction("a1", churn_risk=True, days_ago=100),
        ]
        tickets = [make_ticket("a1"), make_ticket("a1"), make_ticket("a1")]
        metrics = calculate_metrics(interactions, tickets, None, reference_date, 90)
        assert metrics.churn_signals == 2
        assert metrics.expansion_signals == 2
        assert metrics.open_ticket_count == 3

    def test_days_since_last_activity_date(self, reference_date):
        last = reference_date - timedelta(days=45)
        metrics = calculate_metrics([], [], last, reference_date, 90)
        assert metrics.days_since_activity == 45

    def test_recent_interaction_wins_over_older_activity(
        self, reference_date, make_interaction
    ):
        last = reference_date - timedelta(days=60)
        interactions = [make_interaction("a1", days_ago=7)]
        metrics = calculate_metrics(interactions, [], last, reference_date, 90)
        assert metrics.days_since_activity == 7

    def test_future_activity_is_negative(self, reference_date):
        future = reference_date + timedelta(days=3)
        metrics = calculate_metrics([], [], future, reference_date, 90)
        assert metrics.days_since_activity == -3


class TestFilterWindow:
    def test_boundary_is_inclusive(self, reference_date, make_interaction):
        on_edge = make_interaction("a1", days_ago=90)
        just_outside = make_interaction("a1", days_ago=90.01)
        assert filter_window([on_edge, just_outside], reference_date, 90) == [on_edge]

    def test_undated_interactions_are_excluded(self, reference_date, make_interaction):
        undated = make_interaction("a1", days_ago=None)
        assert filter_window([undated], reference_date, 90) == []


class TestDaysBetween:
    def test_floors_partial_days(self, reference_date):
        earlier = reference_date - timedelta(days=2, hours=23)
        assert days_between(reference_date, earlier) == 2

    def test_naive_datetimes_treated_as_utc(self, reference_date):
        naive = (reference_date - timedelta(days=5)).replace(tzinfo=None)
        assert days_between(reference_date, naive) == 5
