"""Shared fixtures for the dashboard test suite.

Provides:
- REFERENCE_DATE: fixed "now" used by every scoring test
- InMemoryAccountRepository: async repository double with the same filter
  and ordering semantics as AccountRepository
- Record builders exposed as fixtures (make_account, make_snapshot, ...)
- settings: Settings pinned to the reference date with default windows
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from src.health_dashboard.accounts.schemas import (
    RENEWAL_TYPE,
    Account,
    Contact,
    HealthSnapshot,
    HealthStatus,
    InteractionInsight,
    Opportunity,
    SupportTicket,
    TrendStatus,
)
from src.health_dashboard.config import Settings

REFERENCE_DATE = datetime(2025, 12, 18, tzinfo=timezone.utc)


# ── In-Memory Test Double ────────────────────────────────────────────────────


class InMemoryAccountRepository:
    """In-memory AccountRepository for testing without a database."""

    def __init__(self) -> None:
        self.accounts: list[Account] = []
        self.snapshots: list[HealthSnapshot] = []
        self.interactions: list[InteractionInsight] = []
        self.tickets: list[SupportTicket] = []
        self.opportunities: list[Opportunity] = []
        self.contacts: list[Contact] = []
        self.support_tiers: dict[str, str] = {}
        self.calls: list[str] = []

    async def list_accounts(
        self,
        owner_name: str | None = None,
        account_ids: Iterable[str] | None = None,
    ) -> list[Account]:
        self.calls.append("list_accounts")
        ids = set(account_ids) if account_ids is not None else None
        return [
            a
            for a in self.accounts
            if (not owner_name or a.owner_name == owner_name)
            and (ids is None or a.account_id in ids)
        ]

    async def get_account(self, account_id: str) -> Account | None:
        self.calls.append("get_account")
        return next((a for a in self.accounts if a.account_id == account_id), None)

    async def list_owner_names(self) -> list[str]:
        self.calls.append("list_owner_names")
        return sorted({a.owner_name for a in self.accounts if a.owner_name})

    async def list_health_snapshots(
        self,
        account_ids: Iterable[str] | None = None,
        statuses: Iterable[HealthStatus] | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        newest_first: bool = False,
    ) -> list[HealthSnapshot]:
        self.calls.append("list_health_snapshots")
        ids = set(account_ids) if account_ids is not None else None
        wanted = set(statuses) if statuses is not None else None
        result = [
            s
            for s in self.snapshots
            if (ids is None or s.account_id in ids)
            and (wanted is None or s.status in wanted)
            and (since is None or s.observed_at >= since)
            and (until is None or s.observed_at <= until)
        ]
        return sorted(result, key=lambda s: s.observed_at, reverse=newest_first)

    async def get_current_health(
        self, account_id: str, as_of: datetime | None = None
    ) -> HealthSnapshot | None:
        self.calls.append("get_current_health")
        candidates = [
            s
            for s in self.snapshots
            if s.account_id == account_id and (as_of is None or s.observed_at <= as_of)
        ]
        return max(candidates, key=lambda s: s.observed_at, default=None)

    async def list_interactions(
        self,
        account_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[InteractionInsight]:
        self.calls.append("list_interactions")
        result = [
            i
            for i in self.interactions
            if i.account_id == account_id
            and i.occurred_at is not None
            and (since is None or i.occurred_at >= since)
            and (until is None or i.occurred_at <= until)
        ]
        return sorted(result, key=lambda i: i.occurred_at, reverse=True)

    async def list_open_tickets(
        self, account_id: str, statuses: Iterable[str]
    ) -> list[SupportTicket]:
        self.calls.append("list_open_tickets")
        open_states = set(statuses)
        return [
            t
            for t in self.tickets
            if t.account_id == account_id and t.status in open_states
        ]

    async def list_open_renewals(self, close_before: datetime) -> list[Opportunity]:
        self.calls.append("list_open_renewals")
        return [
            o
            for o in self.opportunities
            if o.type == RENEWAL_TYPE
            and not o.is_closed
            and o.close_date is not None
            and o.close_date <= close_before
        ]

    async def list_open_opportunities(self, account_id: str) -> list[Opportunity]:
        self.calls.append("list_open_opportunities")
        result = [
            o for o in self.opportunities if o.account_id == account_id and not o.is_closed
        ]
        return sorted(result, key=lambda o: o.close_date or datetime.max.replace(tzinfo=timezone.utc))

    async def list_contacts(self, account_id: str) -> list[Contact]:
        self.calls.append("list_contacts")
        return [c for c in self.contacts if c.account_id == account_id]

    async def get_support_tier(self, account_id: str) -> str | None:
        self.calls.append("get_support_tier")
        return self.support_tiers.get(account_id)


# ── Record Builders ──────────────────────────────────────────────────────────

_ids = count(1)


def _days_ago(days: float) -> datetime:
    return REFERENCE_DATE - timedelta(days=days)


@pytest.fixture
def make_account():
    def _make(
        account_id: str,
        arr: float | None = 100_000.0,
        owner_name: str | None = "Dana Reyes",
        name: str | None = None,
        last_activity_days_ago: float | None = None,
    ) -> Account:
        return Account(
            account_id=account_id,
            name=name or f"Account {account_id}",
            arr=arr,
            owner_name=owner_name,
            last_activity_date=(
                _days_ago(last_activity_days_ago)
                if last_activity_days_ago is not None
                else None
            ),
        )

    return _make


@pytest.fixture
def make_snapshot():
    def _make(
        account_id: str,
        status: HealthStatus | None = HealthStatus.HEALTHY,
        score: float | None = 80.0,
        days_ago: float = 1,
        trend: TrendStatus = TrendStatus.STABLE,
    ) -> HealthSnapshot:
        return HealthSnapshot(
            account_id=account_id,
            status=status,
            score=score,
            trend=trend,
            observed_at=_days_ago(days_ago),
        )

    return _make


@pytest.fixture
def make_interaction():
    def _make(
        account_id: str,
        sentiment: float = 70.0,
        days_ago: float | None = 5,
        churn_risk: bool = False,
        churn_reasons: list[str] | None = None,
        expansion: bool = False,
        sentiment_reasons: list[str] | None = None,
    ) -> InteractionInsight:
        return InteractionInsight(
            account_id=account_id,
            interaction_type="call",
            sentiment_score=sentiment,
            sentiment_reasons=sentiment_reasons or [],
            churn_risk=churn_risk,
            churn_reasons=churn_reasons or [],
            expansion_opportunity=expansion,
            occurred_at=_days_ago(days_ago) if days_ago is not None else None,
        )

    return _make


@pytest.fixture
def make_ticket():
    def _make(account_id: str, status: str = "open") -> SupportTicket:
        return SupportTicket(
            ticket_id=next(_ids),
            account_id=account_id,
            subject="Login failures",
            status=status,
            priority="high",
            created_at=_days_ago(3),
        )

    return _make


@pytest.fixture
def make_renewal():
    def _make(
        account_id: str,
        amount: float | None = 50_000.0,
        closes_in_days: float = 30,
        is_closed: bool = False,
        opp_type: str = RENEWAL_TYPE,
    ) -> Opportunity:
        return Opportunity(
            opportunity_id=f"opp-{next(_ids)}",
            account_id=account_id,
            name=f"{account_id} renewal",
            stage="Negotiation",
            type=opp_type,
            amount=amount,
            close_date=REFERENCE_DATE + timedelta(days=closes_in_days),
            is_closed=is_closed,
        )

    return _make


@pytest.fixture
def make_contact():
    def _make(
        account_id: str,
        customer_role: str | None = None,
        left_company: bool = False,
    ) -> Contact:
        return Contact(
            contact_id=f"c-{next(_ids)}",
            account_id=account_id,
            first_name="Sam",
            last_name="Okafor",
            customer_role=customer_role,
            left_company=left_company,
        )

    return _make


# ── Shared Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def reference_date() -> datetime:
    return REFERENCE_DATE


@pytest.fixture
def repo() -> InMemoryAccountRepository:
    return InMemoryAccountRepository()


@pytest.fixture
def settings() -> Settings:
    """Settings pinned to the demo reference date, independent of the environment."""
    return Settings(
        _env_file=None,
        DEMO_MODE=True,
        DEMO_DATE=REFERENCE_DATE.date(),
        ACTIVITY_WINDOW_DAYS=90,
        RENEWAL_HORIZON_DAYS=90,
        HEALTH_HISTORY_DAYS=90,
        OPEN_TICKET_STATUSES="new,open",
        AUTH_JWT_SECRET="test-secret",
    )
