"""Account repository -- async reads over the customer-success store.

Provides AccountRepository with the session_factory callable pattern used
throughout the service. Every method is a single read query; the repository
never writes. Rows are converted to the Pydantic records in
``accounts.schemas`` before leaving this module so that scoring code never
sees SQLAlchemy objects.

Query failures are not caught here: they propagate to the composite
operation in ``health.service``, which decides how to degrade.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Iterable
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.health_dashboard.accounts.models import (
    AccountModel,
    ContactModel,
    HealthSnapshotModel,
    InteractionInsightModel,
    OpportunityModel,
    SupportOrgMappingModel,
    SupportTicketModel,
)
from src.health_dashboard.accounts.schemas import (
    Account,
    Contact,
    HealthSnapshot,
    HealthStatus,
    InteractionInsight,
    Opportunity,
    SupportTicket,
    RENEWAL_TYPE,
    TrendStatus,
)


# ── Serialization Helpers ───────────────────────────────────────────────────


def _parse_status(value: str | None) -> HealthStatus | None:
    """Map a stored health status onto the enum; unknown values become None."""
    if value is None:
        return None
    try:
        return HealthStatus(value)
    except ValueError:
        return None


def _parse_trend(value: str | None) -> TrendStatus:
    if value is None:
        return TrendStatus.UNKNOWN
    try:
        return TrendStatus(value)
    except ValueError:
        return TrendStatus.UNKNOWN


def _model_to_account(model: AccountModel) -> Account:
    """Convert AccountModel to Account schema."""
    return Account(
        account_id=model.sf_account_id,
        name=model.name,
        arr=model.arr,
        owner_name=model.csm_name,
        owner_email=model.csm_email,
        industry=model.industry,
        last_activity_date=model.last_activity_date,
    )


def _model_to_snapshot(model: HealthSnapshotModel) -> HealthSnapshot:
    """Convert HealthSnapshotModel to HealthSnapshot schema."""
    return HealthSnapshot(
        account_id=model.sf_account_id,
        status=_parse_status(model.health_status),
        score=model.health_score,
        trend=_parse_trend(model.trend),
        observed_at=model.created_at,
    )


def _model_to_interaction(model: InteractionInsightModel) -> InteractionInsight:
    """Convert InteractionInsightModel to InteractionInsight schema."""
    return InteractionInsight(
        account_id=model.sf_account_id,
        interaction_type=model.interaction_type,
        sentiment_score=model.sentiment_score,
        sentiment_reasons=list(model.sentiment_reasons or []),
        churn_risk=bool(model.churn_risk),
        churn_reasons=list(model.churn_reasons or []),
        expansion_opportunity=bool(model.expansion_opportunity),
        expansion_reasons=list(model.expansion_reasons or []),
        summary=model.insight_summary,
        occurred_at=model.created_at,
    )


def _model_to_ticket(model: SupportTicketModel) -> SupportTicket:
    """Convert SupportTicketModel to SupportTicket schema."""
    return SupportTicket(
        ticket_id=model.zendesk_ticket_id,
        account_id=model.sf_account_id or "",
        subject=model.subject,
        status=model.status,
        priority=model.priority,
        created_at=model.created_at,
    )


def _model_to_opportunity(model: OpportunityModel) -> Opportunity:
    """Convert OpportunityModel to Opportunity schema."""
    return Opportunity(
        opportunity_id=model.sf_opp_id,
        account_id=model.sf_account_id,
        name=model.name,
        stage=model.stage,
        type=model.type,
        amount=model.amount,
        close_date=model.close_date,
        is_closed=bool(model.is_closed),
    )


def _model_to_contact(model: ContactModel) -> Contact:
    """Convert ContactModel to Contact schema."""
    return Contact(
        contact_id=model.sf_contact_id,
        account_id=model.sf_account_id,
        first_name=model.first_name,
        last_name=model.last_name,
        email=model.email,
        title=model.title,
        customer_role=model.customer_role,
        left_company=bool(model.left_company),
    )


# ── Repository ──────────────────────────────────────────────────────────────


class AccountRepository:
    """Async read operations for accounts and their health inputs.

    Args:
        session_factory: Async callable that yields AsyncSession instances.
    """

    def __init__(
        self, session_factory: Callable[..., AsyncGenerator[AsyncSession, None]]
    ) -> None:
        self._session_factory = session_factory

    # ── Accounts ────────────────────────────────────────────────────────────

    async def list_accounts(
        self,
        owner_name: str | None = None,
        account_ids: Iterable[str] | None = None,
    ) -> list[Account]:
        """List accounts, optionally restricted to one CSM and/or a set of ids.

        Args:
            owner_name: Only return accounts owned by this CSM.
            account_ids: Only return accounts with these ids.

        Returns:
            List of Account records.
        """
        async for session in self._session_factory():
            stmt = select(AccountModel)
            if owner_name:
                stmt = stmt.where(AccountModel.csm_name == owner_name)
            if account_ids is not None:
                stmt = stmt.where(AccountModel.sf_account_id.in_(list(account_ids)))
            result = await session.execute(stmt)
            return [_model_to_account(m) for m in result.scalars().all()]
        return []

    async def get_account(self, account_id: str) -> Account | None:
        """Get one account by its CRM id, or None if it does not exist."""
        async for session in self._session_factory():
            stmt = select(AccountModel).where(AccountModel.sf_account_id == account_id)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_account(model)
        return None

    async def list_owner_names(self) -> list[str]:
        """Distinct non-empty CSM names, sorted ascending."""
        async for session in self._session_factory():
            stmt = (
                select(AccountModel.csm_name)
                .where(AccountModel.csm_name.is_not(None))
                .distinct()
                .order_by(AccountModel.csm_name)
            )
            result = await session.execute(stmt)
            return [name for name in result.scalars().all() if name]
        return []

    # ── Health Snapshots ────────────────────────────────────────────────────

    async def list_health_snapshots(
        self,
        account_ids: Iterable[str] | None = None,
        statuses: Iterable[HealthStatus] | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        newest_first: bool = False,
    ) -> list[HealthSnapshot]:
        """List health snapshots filtered by account, status and time range.

        Args:
            account_ids: Restrict to these accounts (None = all accounts).
            statuses: Restrict to these stored statuses.
            since: Inclusive lower bound on observation time.
            until: Inclusive upper bound on observation time.
            newest_first: Order by observation time descending instead of ascending.

        Returns:
            List of HealthSnapshot records in observation-time order.
        """
        async for session in self._session_factory():
            stmt = select(HealthSnapshotModel)
            if account_ids is not None:
                stmt = stmt.where(
                    HealthSnapshotModel.sf_account_id.in_(list(account_ids))
                )
            if statuses is not None:
                stmt = stmt.where(
                    HealthSnapshotModel.health_status.in_([s.value for s in statuses])
                )
            if since is not None:
                stmt = stmt.where(HealthSnapshotModel.created_at >= since)
            if until is not None:
                stmt = stmt.where(HealthSnapshotModel.created_at <= until)
            order = HealthSnapshotModel.created_at
            stmt = stmt.order_by(order.desc() if newest_first else order.asc())
            result = await session.execute(stmt)
            return [_model_to_snapshot(m) for m in result.scalars().all()]
        return []

    async def get_current_health(
        self, account_id: str, as_of: datetime | None = None
    ) -> HealthSnapshot | None:
        """Most recent snapshot for an account observed no later than ``as_of``."""
        async for session in self._session_factory():
            stmt = select(HealthSnapshotModel).where(
                HealthSnapshotModel.sf_account_id == account_id
            )
            if as_of is not None:
                stmt = stmt.where(HealthSnapshotModel.created_at <= as_of)
            stmt = stmt.order_by(HealthSnapshotModel.created_at.desc()).limit(1)
            result = await session.execute(stmt)
            model = result.scalar_one_or_none()
            if model is None:
                return None
            return _model_to_snapshot(model)
        return None

    # ── Interactions & Tickets ──────────────────────────────────────────────

    async def list_interactions(
        self,
        account_id: str,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[InteractionInsight]:
        """Interactions for an account, newest first."""
        async for session in self._session_factory():
            stmt = select(InteractionInsightModel).where(
                InteractionInsightModel.sf_account_id == account_id
            )
            if since is not None:
                stmt = stmt.where(InteractionInsightModel.created_at >= since)
            if until is not None:
                stmt = stmt.where(InteractionInsightModel.created_at <= until)
            stmt = stmt.order_by(InteractionInsightModel.created_at.desc())
            result = await session.execute(stmt)
            return [_model_to_interaction(m) for m in result.scalars().all()]
        return []

    async def list_open_tickets(
        self, account_id: str, statuses: Iterable[str]
    ) -> list[SupportTicket]:
        """Tickets for an account whose status is one of ``statuses``, newest first."""
        async for session in self._session_factory():
            stmt = (
                select(SupportTicketModel)
                .where(
                    SupportTicketModel.sf_account_id == account_id,
                    SupportTicketModel.status.in_(list(statuses)),
                )
                .order_by(SupportTicketModel.created_at.desc())
            )
            result = await session.execute(stmt)
            return [_model_to_ticket(m) for m in result.scalars().all()]
        return []

    # ── Opportunities ───────────────────────────────────────────────────────

    async def list_open_renewals(self, close_before: datetime) -> list[Opportunity]:
        """Open Renewal opportunities closing on or before ``close_before``."""
        async for session in self._session_factory():
            stmt = select(OpportunityModel).where(
                OpportunityModel.type == RENEWAL_TYPE,
                OpportunityModel.is_closed.is_(False),
                OpportunityModel.close_date.is_not(None),
                OpportunityModel.close_date <= close_before,
            )
            result = await session.execute(stmt)
            return [_model_to_opportunity(m) for m in result.scalars().all()]
        return []

    async def list_open_opportunities(self, account_id: str) -> list[Opportunity]:
        """Open opportunities for an account, soonest close date first."""
        async for session in self._session_factory():
            stmt = (
                select(OpportunityModel)
                .where(
                    OpportunityModel.sf_account_id == account_id,
                    OpportunityModel.is_closed.is_(False),
                )
                .order_by(OpportunityModel.close_date.asc())
            )
            result = await session.execute(stmt)
            return [_model_to_opportunity(m) for m in result.scalars().all()]
        return []

    # ── Contacts & Support Tier ─────────────────────────────────────────────

    async def list_contacts(self, account_id: str) -> list[Contact]:
        """Contacts for an account, most recently active first."""
        async for session in self._session_factory():
            stmt = (
                select(ContactModel)
                .where(ContactModel.sf_account_id == account_id)
                .order_by(ContactModel.last_activity_date.desc())
            )
            result = await session.execute(stmt)
            return [_model_to_contact(m) for m in result.scalars().all()]
        return []

    async def get_support_tier(self, account_id: str) -> str | None:
        """Support tier from the support-desk organisation mapping, if any."""
        async for session in self._session_factory():
            stmt = (
                select(SupportOrgMappingModel.tier)
                .where(SupportOrgMappingModel.sf_account_id == account_id)
                .limit(1)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
        return None
