"""Fleet-wide aggregation over accounts, snapshots and renewals.

Pure reductions behind the dashboard header, the portfolio page and the
renewal forecast. Callers fetch the raw records (already scoped to an owner
when one is selected) and pass each account's current snapshot in.

Null handling:
- Missing ARR counts as 0 for every sum.
- Missing health scores are skipped, never averaged in as 0; an average
  over nothing is None.
- Ratios over a zero denominator are 0.

An account whose ARR is not a finite number is treated as bad data: it is
logged and left out of the reduction, and the rest of the fleet is still
aggregated.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta

import structlog

from src.health_dashboard.accounts.schemas import (
    Account,
    HealthSnapshot,
    HealthStatus,
    Opportunity,
    PortfolioHealthPoint,
    PortfolioOverviewStats,
    PortfolioStats,
    RenewalBucket,
    RenewalForecast,
    RenewalTotal,
    RENEWAL_TYPE,
)
from src.health_dashboard.core.clock import as_utc, end_of_day

logger = structlog.get_logger(__name__)

DEFAULT_RENEWAL_HORIZON_DAYS = 90
_AT_RISK_STATUSES = (HealthStatus.CRITICAL, HealthStatus.AT_RISK)


def account_arr(account: Account | None) -> float:
    """ARR for summation: None (or no account) counts as 0.

    Raises:
        ValueError: If the stored ARR is NaN or infinite.
    """
    if account is None or account.arr is None:
        return 0.0
    if not math.isfinite(account.arr):
        raise ValueError(f"non-finite ARR {account.arr!r}")
    return account.arr


def _percent(part: float, whole: float) -> float:
    return part / whole * 100 if whole > 0 else 0.0


# ── Renewals ────────────────────────────────────────────────────────────────


def renewal_cutoff(
    reference_date: datetime, horizon_days: int = DEFAULT_RENEWAL_HORIZON_DAYS
) -> datetime:
    """Latest close date that still counts as an upcoming renewal."""
    return end_of_day(reference_date + timedelta(days=horizon_days))


def is_upcoming_renewal(
    opportunity: Opportunity,
    reference_date: datetime,
    horizon_days: int = DEFAULT_RENEWAL_HORIZON_DAYS,
) -> bool:
    """Open Renewal opportunity closing by the end of the horizon day.

    Overdue renewals that are still open count as upcoming.
    """
    return (
        opportunity.type == RENEWAL_TYPE
        and not opportunity.is_closed
        and opportunity.close_date is not None
        and as_utc(opportunity.close_date) <= renewal_cutoff(reference_date, horizon_days)
    )


def upcoming_renewals(
    opportunities: Iterable[Opportunity],
    reference_date: datetime,
    horizon_days: int = DEFAULT_RENEWAL_HORIZON_DAYS,
) -> list[Opportunity]:
    """Filter ``opportunities`` down to upcoming renewals."""
    return [
        o for o in opportunities if is_upcoming_renewal(o, reference_date, horizon_days)
    ]


# ── Dashboard Stats ─────────────────────────────────────────────────────────


def summarize_dashboard_stats(
    accounts: Iterable[Account],
    current_health: Mapping[str, HealthSnapshot],
    renewals: Iterable[Opportunity],
) -> PortfolioStats:
    """Count and ARR per health tier, plus open renewal totals.

    Args:
        accounts: Accounts used to look up ARR.
        current_health: Current snapshot keyed by account id. Every entry is
            bucketed, including accounts missing from ``accounts`` (ARR 0).
        renewals: Upcoming renewals; counted regardless of account health.

    Returns:
        PortfolioStats.
    """
    by_id = {a.account_id: a for a in accounts}
    stats = PortfolioStats()

    for account_id, snapshot in current_health.items():
        try:
            arr = account_arr(by_id.get(account_id))
        except ValueError as exc:
            logger.warning(
                "dashboard_stats.account_skipped", account_id=account_id, error=str(exc)
            )
            continue

        if snapshot.status == HealthStatus.CRITICAL:
            stats.critical_count += 1
            stats.critical_arr += arr
        elif snapshot.status == HealthStatus.AT_RISK:
            stats.at_risk_count += 1
            stats.at_risk_arr += arr
        elif snapshot.status == HealthStatus.HEALTHY:
            stats.healthy_count += 1
            stats.healthy_arr += arr

    for renewal in renewals:
        stats.renewals_count += 1
        if renewal.amount is not None and math.isfinite(renewal.amount):
            stats.renewals_arr += renewal.amount

    return stats


# ── Portfolio Overview ──────────────────────────────────────────────────────


def summarize_portfolio_overview(
    accounts: Iterable[Account],
    current_health: Mapping[str, HealthSnapshot],
) -> PortfolioOverviewStats:
    """Total ARR, average current health score and churn-risk share of ARR.

    ``churn_risk_percent`` is the Critical plus At Risk ARR as a percentage
    of total ARR, or 0 when total ARR is 0.
    """
    total_arr = 0.0
    at_risk_arr = 0.0
    account_count = 0
    scores: list[float] = []

    for account in accounts:
        try:
            arr = account_arr(account)
        except ValueError as exc:
            logger.warning(
                "portfolio_overview.account_skipped",
                account_id=account.account_id,
                error=str(exc),
            )
            continue

        account_count += 1
        total_arr += arr

        snapshot = current_health.get(account.account_id)
        if snapshot is None:
            continue
        if snapshot.score is not None:
            scores.append(snapshot.score)
        if snapshot.status in _AT_RISK_STATUSES:
            at_risk_arr += arr

    return PortfolioOverviewStats(
        total_arr=total_arr,
        account_count=account_count,
        avg_health_score=sum(scores) / len(scores) if scores else None,
        churn_risk_percent=_percent(at_risk_arr, total_arr),
    )


# ── Health History ──────────────────────────────────────────────────────────


def build_health_history(
    snapshots: Iterable[HealthSnapshot],
    reference_date: datetime,
    days: int,
) -> list[PortfolioHealthPoint]:
    """Average health score per UTC calendar day over the trailing window.

    Snapshots without a score or dated after the reference day are ignored.
    Days with no scored snapshot are omitted rather than reported as 0.
    Points are returned oldest first.
    """
    start = as_utc(reference_date) - timedelta(days=days)
    end = end_of_day(reference_date)
    totals: dict[date, list[float]] = {}

    for snapshot in snapshots:
        if snapshot.score is None:
            continue
        observed = as_utc(snapshot.observed_at)
        if observed < start or observed > end:
            continue
        totals.setdefault(observed.date(), []).append(snapshot.score)

    return [
        PortfolioHealthPoint(date=day, avg_health_score=sum(values) / len(values))
        for day, values in sorted(totals.items())
    ]


# ── Renewal Forecast ────────────────────────────────────────────────────────


def build_renewal_forecast(
    renewals: Iterable[Opportunity],
    accounts: Iterable[Account],
    current_health: Mapping[str, HealthSnapshot],
) -> RenewalForecast:
    """Bucket renewing accounts' ARR by current health tier.

    Each account with at least one upcoming renewal is counted once, using
    the account's ARR. Accounts whose current status is missing or not a
    recognised tier are left out of every bucket and of the total.
    ``percent`` is each bucket's share of the bucketed total (0 if empty).

    Args:
        renewals: Upcoming renewals (already filtered by horizon).
        accounts: Accounts in scope (already filtered by owner).
        current_health: Current snapshot keyed by account id.
    """
    renewing = {r.account_id for r in renewals}
    buckets: dict[HealthStatus, RenewalBucket] = {
        HealthStatus.HEALTHY: RenewalBucket(),
        HealthStatus.AT_RISK: RenewalBucket(),
        HealthStatus.CRITICAL: RenewalBucket(),
    }

    for account in accounts:
        if account.account_id not in renewing:
            continue
        snapshot = current_health.get(account.account_id)
        if snapshot is None or snapshot.status not in buckets:
            continue
        try:
            arr = account_arr(account)
        except ValueError as exc:
            logger.warning(
                "renewal_forecast.account_skipped",
                account_id=account.account_id,
                error=str(exc),
            )
            continue
        bucket = buckets[snapshot.status]
        bucket.arr += arr
        bucket.count += 1

    total = RenewalTotal(
        arr=sum(b.arr for b in buckets.values()),
        count=sum(b.count for b in buckets.values()),
    )
    for bucket in buckets.values():
        bucket.percent = _percent(bucket.arr, total.arr)

    return RenewalForecast(
        healthy=buckets[HealthStatus.HEALTHY],
        at_risk=buckets[HealthStatus.AT_RISK],
        critical=buckets[HealthStatus.CRITICAL],
        total=total,
    )
