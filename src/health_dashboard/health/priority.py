"""Priority ranking of at-risk accounts.

The priority list exists to surface revenue at risk, so the score is ARR
weighted by severity: Critical counts double, At Risk counts once and every
other status (Healthy, unknown) scores zero. Accounts are ranked by that
score descending; equal scores keep their input order.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable, Mapping, Sequence
from datetime import datetime

import structlog

from src.health_dashboard.accounts.schemas import (
    Account,
    HealthSnapshot,
    HealthStatus,
    InteractionInsight,
    PriorityAccount,
    SupportTicket,
)
from src.health_dashboard.health.metrics import DEFAULT_WINDOW_DAYS, calculate_metrics
from src.health_dashboard.health.signals import get_top_signals
from src.health_dashboard.health.snapshots import latest_by_account

logger = structlog.get_logger(__name__)

PRIORITY_STATUSES: tuple[HealthStatus, ...] = (HealthStatus.CRITICAL, HealthStatus.AT_RISK)

_STATUS_MULTIPLIERS: dict[HealthStatus, int] = {
    HealthStatus.CRITICAL: 2,
    HealthStatus.AT_RISK: 1,
}


def calculate_priority_score(arr: float | None, status: HealthStatus | None) -> float:
    """ARR times severity multiplier (Critical 2, At Risk 1, otherwise 0).

    Missing ARR counts as 0.
    """
    base_arr = arr if arr is not None else 0.0
    return base_arr * _STATUS_MULTIPLIERS.get(status, 0)


def build_priority_account(
    account: Account,
    health: HealthSnapshot,
    interactions: Sequence[InteractionInsight],
    open_tickets: Sequence[SupportTicket],
    reference_date: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> PriorityAccount:
    """Score one account and attach its metrics and top signals."""
    metrics = calculate_metrics(
        interactions,
        open_tickets,
        account.last_activity_date,
        reference_date,
        window_days,
    )
    return PriorityAccount(
        account_id=account.account_id,
        name=account.name,
        arr=account.arr,
        owner_name=account.owner_name,
        current_health=health,
        metrics=metrics,
        top_signals=get_top_signals(metrics, interactions),
        priority_score=calculate_priority_score(account.arr, health.status),
    )


def build_priority_list(
    snapshots: Iterable[HealthSnapshot],
    accounts: Iterable[Account],
    interactions_by_account: Mapping[str, Sequence[InteractionInsight]],
    tickets_by_account: Mapping[str, Sequence[SupportTicket]],
    reference_date: datetime,
    renewal_account_ids: Collection[str] | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> list[PriorityAccount]:
    """Rank Critical and At Risk accounts by priority score.

    Args:
        snapshots: Health snapshots; only each account's current one is used.
        accounts: Candidate accounts, in the order ties should keep.
        interactions_by_account: Interactions keyed by account id.
        tickets_by_account: Open tickets keyed by account id.
        reference_date: The "now" anchor.
        renewal_account_ids: When given, only these accounts are kept
            (accounts with an open renewal inside the horizon).
        window_days: Interaction window for metrics.

    Returns:
        PriorityAccount list sorted by priority score, highest first. An
        account whose data cannot be scored is logged and left out.
    """
    current = latest_by_account(snapshots)

    ranked: list[PriorityAccount] = []
    for account in accounts:
        health = current.get(account.account_id)
        if health is None or health.status not in PRIORITY_STATUSES:
            continue
        if renewal_account_ids is not None and account.account_id not in renewal_account_ids:
            continue
        try:
            ranked.append(
                build_priority_account(
                    account,
                    health,
                    interactions_by_account.get(account.account_id, []),
                    tickets_by_account.get(account.account_id, []),
                    reference_date,
                    window_days,
                )
            )
        except (ValueError, TypeError, ArithmeticError) as exc:
            logger.warning(
                "priority_list.account_skipped",
                account_id=account.account_id,
                error=str(exc),
            )

    return sorted(ranked, key=lambda p: p.priority_score, reverse=True)
