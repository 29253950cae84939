"""Dashboard read service -- composite operations over the account store.

HealthDashboardService is what the HTTP layer calls. Each public method is
one composite read: it issues every independent query concurrently with
``asyncio.gather``, waits for all of them, then hands the records to the
pure scoring modules (metrics, signals, priority, portfolio).

Failure policy:
- If any read in a composite fails, the whole composite fails. The failure
  is logged, counted in ``dashboard_operation_failures_total`` and the
  caller receives the operation's empty result ([], None or zero stats).
  Nothing partial is ever returned.
- A missing account or missing current snapshot is "not found": the detail
  read returns None without counting as a failure.
- Bad data on a single account is handled inside the reducers, which skip
  that account and keep going.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from datetime import datetime, timedelta
from typing import Protocol, TypeVar

import structlog
from sqlalchemy.exc import SQLAlchemyError

from src.health_dashboard.accounts.schemas import (
    Account,
    AccountDetail,
    Contact,
    HealthSnapshot,
    HealthStatus,
    InteractionInsight,
    Opportunity,
    PortfolioHealthPoint,
    PortfolioOverviewStats,
    PortfolioStats,
    PriorityAccount,
    RenewalForecast,
    SupportTicket,
)
from src.health_dashboard.config import Settings, get_settings
from src.health_dashboard.core.clock import end_of_day, get_reference_date
from src.health_dashboard.core.monitoring import dashboard_operation_failures_total
from src.health_dashboard.health.metrics import calculate_metrics
from src.health_dashboard.health.portfolio import (
    build_health_history,
    build_renewal_forecast,
    is_upcoming_renewal,
    renewal_cutoff,
    summarize_dashboard_stats,
    summarize_portfolio_overview,
    upcoming_renewals,
)
from src.health_dashboard.health.priority import PRIORITY_STATUSES, build_priority_list
from src.health_dashboard.health.signals import generate_action_items, get_top_signals
from src.health_dashboard.health.snapshots import latest_by_account

logger = structlog.get_logger(__name__)

T = TypeVar("T")

CHAMPION_ROLE = "Champion"

# Errors that degrade a composite read to its empty result.
OPERATION_ERRORS: tuple[type[BaseException], ...] = (
    SQLAlchemyError,
    OSError,
    ValueError,
    TypeError,
    ArithmeticError,
)


# ── Repository protocol ──────────────────────────────────────────────────────
# Minimal interface for dependency injection and testing.


class AccountRepositoryProtocol(Protocol):
    """Read interface the service needs from the account store."""

    async def list_accounts(
        self,
        owner_name: str | None = None,
        account_ids: Iterable[str] | None = None,
    ) -> list[Account]: ...

    async def get_account(self, account_id: str) -> Account | None: ...

    async def list_owner_names(self) -> list[str]: ...

    async def list_health_snapshots(
        self,
        account_ids: Iterable[str] | None = None,
        statuses: Iterable[HealthStatus] | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        newest_first: bool = False,
    ) -> list[HealthSnapshot]: ...

    async def get_current_health(
        self, account_id: str, as_of: datetime | None = None
    ) -> HealthSnapshot | None: ...

    async def list_interactions(
        self,
        account_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[InteractionInsight]: ...

    async def list_open_tickets(
        self, account_id: str, statuses: Iterable[str]
    ) -> list[SupportTicket]: ...

    async def list_open_renewals(self, close_before: datetime) -> list[Opportunity]: ...

    async def list_open_opportunities(self, account_id: str) -> list[Opportunity]: ...

    async def list_contacts(self, account_id: str) -> list[Contact]: ...

    async def get_support_tier(self, account_id: str) -> str | None: ...


# ── HealthDashboardService ───────────────────────────────────────────────────


class HealthDashboardService:
    """Composite dashboard reads with fan-out/join and empty-result fallback.

    Args:
        repository: Account store reader.
        settings: Window sizes, ticket states and the reference-date override.
            Defaults to the process settings.
    """

    def __init__(
        self,
        repository: AccountRepositoryProtocol,
        settings: Settings | None = None,
    ) -> None:
        self._repo = repository
        self._settings = settings or get_settings()

    # ── Helpers ───────────────────────────────────────────────────────────

    def _reference(self, reference_date: datetime | None) -> datetime:
        return reference_date or get_reference_date(self._settings)

    async def _guard(self, operation: str, work: Awaitable[T], fallback: T) -> T:
        """Await ``work``; on failure log, count and return ``fallback``."""
        try:
            return await work
        except OPERATION_ERRORS as exc:
            logger.error(
                "dashboard.operation_failed",
                operation=operation,
                error=str(exc),
                error_type=type(exc).__name__,
                exc_info=True,
            )
            dashboard_operation_failures_total.labels(operation=operation).inc()
            return fallback

    async def _load_activity(
        self, account_id: str, since: datetime, until: datetime
    ) -> tuple[list[InteractionInsight], list[SupportTicket]]:
        """In-window interactions and open tickets for one account, concurrently."""
        interactions, tickets = await asyncio.gather(
            self._repo.list_interactions(account_id, since=since, until=until),
            self._repo.list_open_tickets(
                account_id, self._settings.open_ticket_statuses
            ),
        )
        return interactions, tickets

    async def _no_renewals(self) -> list[Opportunity]:
        return []

    # ── Priority list ─────────────────────────────────────────────────────

    async def fetch_priority_list(
        self,
        renewals_only: bool = False,
        reference_date: datetime | None = None,
    ) -> list[PriorityAccount]:
        """Critical and At Risk accounts ranked by ARR-weighted priority.

        Args:
            renewals_only: Keep only accounts with an upcoming open renewal.
            reference_date: Override for "now".

        Returns:
            Ranked PriorityAccount list, or [] if any read fails.
        """
        return await self._guard(
            "priority_list",
            self._priority_list(renewals_only, self._reference(reference_date)),
            [],
        )

    async def _priority_list(
        self, renewals_only: bool, reference: datetime
    ) -> list[PriorityAccount]:
        settings = self._settings
        as_of = end_of_day(reference)

        snapshots, renewals = await asyncio.gather(
            self._repo.list_health_snapshots(until=as_of, newest_first=True),
            (
                self._repo.list_open_renewals(
                    renewal_cutoff(reference, settings.RENEWAL_HORIZON_DAYS)
                )
                if renewals_only
                else self._no_renewals()
            ),
        )

        current = latest_by_account(snapshots, as_of=as_of)
        renewal_ids: set[str] | None = None
        if renewals_only:
            renewal_ids = {
                r.account_id
                for r in upcoming_renewals(
                    renewals, reference, settings.RENEWAL_HORIZON_DAYS
                )
            }

        candidate_ids = [
            account_id
            for account_id, snapshot in current.items()
            if snapshot.status in PRIORITY_STATUSES
            and (renewal_ids is None or account_id in renewal_ids)
        ]
        if not candidate_ids:
            return []

        since = reference - timedelta(days=settings.ACTIVITY_WINDOW_DAYS)
        accounts, *activity = await asyncio.gather(
            self._repo.list_accounts(account_ids=candidate_ids),
            *(self._load_activity(account_id, since, as_of) for account_id in candidate_ids),
        )

        interactions_by_account = {
            account_id: interactions
            for account_id, (interactions, _) in zip(candidate_ids, activity)
        }
        tickets_by_account = {
            account_id: tickets
            for account_id, (_, tickets) in zip(candidate_ids, activity)
        }

        priority = build_priority_list(
            current.values(),
            accounts,
            interactions_by_account,
            tickets_by_account,
            reference,
            renewal_account_ids=renewal_ids,
            window_days=settings.ACTIVITY_WINDOW_DAYS,
        )
        logger.info(
            "priority_list.built",
            candidates=len(candidate_ids),
            ranked=len(priority),
            renewals_only=renewals_only,
        )
        return priority

    # ── Dashboard stats ───────────────────────────────────────────────────

    async def fetch_dashboard_stats(
        self, reference_date: datetime | None = None
    ) -> PortfolioStats:
        """Counts and ARR by health tier plus upcoming renewal totals."""
        return await self._guard(
            "dashboard_stats",
            self._dashboard_stats(self._reference(reference_date)),
            PortfolioStats(),
        )

    async def _dashboard_stats(self, reference: datetime) -> PortfolioStats:
        horizon = self._settings.RENEWAL_HORIZON_DAYS
        as_of = end_of_day(reference)

        accounts, snapshots, renewals = await asyncio.gather(
            self._repo.list_accounts(),
            self._repo.list_health_snapshots(until=as_of),
            self._repo.list_open_renewals(renewal_cutoff(reference, horizon)),
        )

        return summarize_dashboard_stats(
            accounts,
            latest_by_account(snapshots, as_of=as_of),
            upcoming_renewals(renewals, reference, horizon),
        )

    # ── Account detail ────────────────────────────────────────────────────

    async def fetch_account_detail(
        self, account_id: str, reference_date: datetime | None = None
    ) -> AccountDetail | None:
        """Everything the account page shows, from eight concurrent reads.

        Returns:
            AccountDetail, or None if the account or its current health
            snapshot does not exist, or if any read fails.
        """
        return await self._guard(
            "account_detail",
            self._account_detail(account_id, self._reference(reference_date)),
            None,
        )

    async def _account_detail(
        self, account_id: str, reference: datetime
    ) -> AccountDetail | None:
        settings = self._settings
        as_of = end_of_day(reference)
        window_start = reference - timedelta(days=settings.ACTIVITY_WINDOW_DAYS)
        history_start = reference - timedelta(days=settings.HEALTH_HISTORY_DAYS)

        (
            account,
            current_health,
            health_history,
            interactions,
            contacts,
            open_tickets,
            opportunities,
            support_tier,
        ) = await asyncio.gather(
            self._repo.get_account(account_id),
            self._repo.get_current_health(account_id, as_of=as_of),
            self._repo.list_health_snapshots(
                account_ids=[account_id], since=history_start, until=as_of
            ),
            self._repo.list_interactions(account_id, since=window_start, until=as_of),
            self._repo.list_contacts(account_id),
            self._repo.list_open_tickets(account_id, settings.open_ticket_statuses),
            self._repo.list_open_opportunities(account_id),
            self._repo.get_support_tier(account_id),
        )

        if account is None:
            logger.info("account_detail.account_not_found", account_id=account_id)
            return None
        if current_health is None:
            logger.info("account_detail.health_not_found", account_id=account_id)
            return None

        renewal_opportunity = next(
            (
                o
                for o in opportunities
                if is_upcoming_renewal(o, reference, settings.RENEWAL_HORIZON_DAYS)
            ),
            None,
        )
        champion_left = any(
            c.customer_role == CHAMPION_ROLE and c.left_company for c in contacts
        )

        metrics = calculate_metrics(
            interactions,
            open_tickets,
            account.last_activity_date,
            reference,
            settings.ACTIVITY_WINDOW_DAYS,
        )

        return AccountDetail(
            account=account,
            current_health=current_health,
            health_history=health_history,
            recent_interactions=interactions,
            contacts=contacts,
            open_tickets=open_tickets,
            opportunities=opportunities,
            renewal_opportunity=renewal_opportunity,
            support_tier=support_tier,
            metrics=metrics,
            champion_left=champion_left,
            top_signals=get_top_signals(metrics, interactions),
            action_items=generate_action_items(
                metrics,
                interactions,
                current_health.status,
                champion_left=champion_left,
                window_days=settings.ACTIVITY_WINDOW_DAYS,
            ),
        )

    # ── Portfolio ─────────────────────────────────────────────────────────

    async def fetch_portfolio_overview_stats(
        self,
        owner_name: str | None = None,
        reference_date: datetime | None = None,
    ) -> PortfolioOverviewStats:
        """Total ARR, average health score and churn-risk percentage."""
        return await self._guard(
            "portfolio_overview",
            self._portfolio_overview(owner_name, self._reference(reference_date)),
            PortfolioOverviewStats(),
        )

    async def _portfolio_overview(
        self, owner_name: str | None, reference: datetime
    ) -> PortfolioOverviewStats:
        as_of = end_of_day(reference)
        accounts, snapshots = await asyncio.gather(
            self._repo.list_accounts(owner_name=owner_name),
            self._repo.list_health_snapshots(until=as_of),
        )
        return summarize_portfolio_overview(
            accounts, latest_by_account(snapshots, as_of=as_of)
        )

    async def fetch_portfolio_health_history(
        self,
        days: int | None = None,
        owner_name: str | None = None,
        reference_date: datetime | None = None,
    ) -> list[PortfolioHealthPoint]:
        """Daily average health score over the trailing ``days``, oldest first."""
        return await self._guard(
            "portfolio_health_history",
            self._portfolio_health_history(
                days if days is not None else self._settings.HEALTH_HISTORY_DAYS,
                owner_name,
                self._reference(reference_date),
            ),
            [],
        )

    async def _portfolio_health_history(
        self, days: int, owner_name: str | None, reference: datetime
    ) -> list[PortfolioHealthPoint]:
        accounts, snapshots = await asyncio.gather(
            self._repo.list_accounts(owner_name=owner_name),
            self._repo.list_health_snapshots(
                since=reference - timedelta(days=days), until=end_of_day(reference)
            ),
        )
        in_scope = {a.account_id for a in accounts}
        return build_health_history(
            (s for s in snapshots if s.account_id in in_scope), reference, days
        )

    async def fetch_renewal_forecast(
        self,
        owner_name: str | None = None,
        reference_date: datetime | None = None,
    ) -> RenewalForecast:
        """Upcoming renewal ARR bucketed by the renewing account's health."""
        return await self._guard(
            "renewal_forecast",
            self._renewal_forecast(owner_name, self._reference(reference_date)),
            RenewalForecast(),
        )

    async def _renewal_forecast(
        self, owner_name: str | None, reference: datetime
    ) -> RenewalForecast:
        horizon = self._settings.RENEWAL_HORIZON_DAYS
        as_of = end_of_day(reference)

        renewals, accounts, snapshots = await asyncio.gather(
            self._repo.list_open_renewals(renewal_cutoff(reference, horizon)),
            self._repo.list_accounts(owner_name=owner_name),
            self._repo.list_health_snapshots(until=as_of),
        )
        return build_renewal_forecast(
            upcoming_renewals(renewals, reference, horizon),
            accounts,
            latest_by_account(snapshots, as_of=as_of),
        )

    # ── Owners ────────────────────────────────────────────────────────────

    async def fetch_owner_list(self) -> list[str]:
        """Distinct CSM names for the owner filter."""
        return await self._guard("owner_list", self._owner_list(), [])

    async def _owner_list(self) -> list[str]:
        names = await self._repo.list_owner_names()
        return sorted({n for n in names if n})
