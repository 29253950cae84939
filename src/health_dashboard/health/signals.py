"""Human-readable risk and opportunity signals.

Two views over the same AccountMetrics:

- ``get_top_signals``: at most two short strings for the priority list card.
  Checks run in a fixed order (low sentiment, churn, open tickets,
  inactivity); every check is evaluated and the first two hits survive.
- ``generate_action_items``: the longer, prioritised to-do list shown on the
  account page, which also considers champion departure, low engagement and
  expansion signals.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from src.health_dashboard.accounts.schemas import (
    AccountMetrics,
    ActionItem,
    HealthStatus,
    InteractionInsight,
)
from src.health_dashboard.core.clock import as_utc
from src.health_dashboard.health.formatting import round_half_up
from src.health_dashboard.health.metrics import DEFAULT_WINDOW_DAYS

MAX_TOP_SIGNALS = 2
LOW_SENTIMENT_THRESHOLD = 50
TICKET_SIGNAL_THRESHOLD = 2
TICKET_FOLLOW_UP_THRESHOLD = 3
INACTIVITY_DAYS = 30
URGENT_INACTIVITY_DAYS = 60
LOW_INTERACTION_COUNT = 2


def _is_low_sentiment(metrics: AccountMetrics) -> bool:
    return (
        metrics.avg_sentiment is not None
        and metrics.avg_sentiment < LOW_SENTIMENT_THRESHOLD
    )


def _is_inactive(metrics: AccountMetrics) -> bool:
    return (
        metrics.days_since_activity is not None
        and metrics.days_since_activity > INACTIVITY_DAYS
    )


def _plural(count: int, singular: str, plural: str | None = None) -> str:
    if count == 1:
        return singular
    return plural if plural is not None else f"{singular}s"


def most_recent_matching(
    interactions: Sequence[InteractionInsight],
    predicate: Callable[[InteractionInsight], bool],
) -> InteractionInsight | None:
    """Newest interaction satisfying ``predicate``.

    Ordering is by ``occurred_at``; undated interactions rank oldest. Ties
    keep input order, so the result does not depend on how the store sorted
    the rows.
    """
    best: InteractionInsight | None = None
    for interaction in interactions:
        if not predicate(interaction):
            continue
        if best is None:
            best = interaction
            continue
        if interaction.occurred_at is None:
            continue
        if best.occurred_at is None or as_utc(interaction.occurred_at) > as_utc(
            best.occurred_at
        ):
            best = interaction
    return best


# ── Priority-list signals ───────────────────────────────────────────────────


def get_top_signals(
    metrics: AccountMetrics,
    interactions: Sequence[InteractionInsight],
) -> list[str]:
    """Top risk signals for an account, most important first, capped at two."""
    signals: list[str] = []

    if _is_low_sentiment(metrics):
        signals.append(f"Sentiment: {round_half_up(metrics.avg_sentiment)} (concerning)")

    if metrics.churn_signals > 0:
        churn_interaction = most_recent_matching(interactions, lambda i: i.churn_risk)
        if churn_interaction is not None and churn_interaction.churn_reasons:
            reasons = ", ".join(churn_interaction.churn_reasons[:2])
            signals.append(f"{metrics.churn_signals} Churn Signals: {reasons}")
        else:
            signals.append(f"{metrics.churn_signals} Churn Signals detected")

    if metrics.open_ticket_count >= TICKET_SIGNAL_THRESHOLD:
        signals.append(f"{metrics.open_ticket_count} open tickets")

    if _is_inactive(metrics):
        signals.append(f"No contact in {metrics.days_since_activity} days")

    return signals[:MAX_TOP_SIGNALS]


# ── Account-page action items ───────────────────────────────────────────────


def generate_action_items(
    metrics: AccountMetrics,
    interactions: Sequence[InteractionInsight],
    status: HealthStatus | None,
    champion_left: bool = False,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> list[ActionItem]:
    """Ordered recommendations for the account's CSM.

    Args:
        metrics: Metrics computed for the account.
        interactions: In-window interactions, used to quote concrete reasons.
        status: Current health status; drives the all-clear fallback.
        champion_left: Whether a contact with the Champion role has left.
        window_days: Window the interaction count was measured over.

    Returns:
        List of ActionItem in display order. Healthy accounts with nothing
        to flag get a single low-priority "keep going" item.
    """
    actions: list[ActionItem] = []

    if _is_low_sentiment(metrics):
        actions.append(
            ActionItem(
                priority="high",
                text=(
                    "Schedule urgent check-in call - sentiment at "
                    f"{round_half_up(metrics.avg_sentiment)}"
                ),
            )
        )
        negative = most_recent_matching(
            interactions,
            lambda i: i.sentiment_score < LOW_SENTIMENT_THRESHOLD
            and bool(i.sentiment_reasons),
        )
        if negative is not None:
            actions.append(
                ActionItem(
                    priority="high",
                    text=f"Address concerns: {negative.sentiment_reasons[0]}",
                )
            )

    if metrics.churn_signals > 0:
        count = metrics.churn_signals
        actions.append(
            ActionItem(
                priority="high",
                text=(
                    f"Review {count} churn {_plural(count, 'signal')} "
                    "and create mitigation plan"
                ),
            )
        )
        churn_interaction = most_recent_matching(
            interactions, lambda i: i.churn_risk and bool(i.churn_reasons)
        )
        if churn_interaction is not None:
            actions.append(
                ActionItem(
                    priority="high",
                    text=f"Address churn risk: {churn_interaction.churn_reasons[0]}",
                )
            )

    if champion_left:
        actions.append(
            ActionItem(
                priority="high",
                text="Champion has left - identify and onboard new champion",
            )
        )

    tickets = metrics.open_ticket_count
    if tickets >= TICKET_FOLLOW_UP_THRESHOLD:
        actions.append(
            ActionItem(
                priority="medium",
                text=f"Follow up on {tickets} open support tickets",
            )
        )
    elif tickets > 0:
        actions.append(
            ActionItem(
                priority="low",
                text=f"Monitor {tickets} open {_plural(tickets, 'ticket')}",
            )
        )

    if _is_inactive(metrics):
        days = metrics.days_since_activity
        if days > URGENT_INACTIVITY_DAYS:
            actions.append(
                ActionItem(
                    priority="high",
                    text=f"No contact in {days} days - schedule immediate outreach",
                )
            )
        else:
            actions.append(
                ActionItem(
                    priority="medium",
                    text=f"Plan proactive check-in - {days} days since last contact",
                )
            )

    if metrics.interaction_count < LOW_INTERACTION_COUNT:
        count = metrics.interaction_count
        actions.append(
            ActionItem(
                priority="medium",
                text=(
                    f"Increase engagement frequency - only {count} "
                    f"{_plural(count, 'interaction')} in {window_days} days"
                ),
            )
        )

    if metrics.expansion_signals > 0:
        count = metrics.expansion_signals
        actions.append(
            ActionItem(
                priority="low",
                text=(
                    f"Explore {count} expansion "
                    f"{_plural(count, 'opportunity', 'opportunities')}"
                ),
            )
        )

    if not actions and status == HealthStatus.HEALTHY:
        actions.append(
            ActionItem(
                priority="low",
                text="Continue regular touchpoints and monitor health",
            )
        )

    return actions
