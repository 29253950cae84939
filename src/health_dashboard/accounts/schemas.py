"""Pydantic schemas for the customer-success domain.

Defines the read-side records the scoring engine consumes and the derived
entities it produces:
- Enums: HealthStatus, TrendStatus, ActionPriority
- Source records: Account, HealthSnapshot, InteractionInsight, SupportTicket,
  Opportunity, Contact
- Derived: AccountMetrics, PriorityAccount, PortfolioStats,
  PortfolioOverviewStats, PortfolioHealthPoint, RenewalBucket,
  RenewalTotal, RenewalForecast, ActionItem, AccountDetail

Source records are built by the repository from table rows. Derived
entities are recomputed on every read and never persisted.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


# ── Enums ───────────────────────────────────────────────────────────────────


class HealthStatus(str, Enum):
    """Account risk tier assigned by the ingestion pipeline."""

    HEALTHY = "Healthy"
    AT_RISK = "At Risk"
    CRITICAL = "Critical"


class TrendStatus(str, Enum):
    """Direction of an account's health between observations."""

    IMPROVING = "Improving"
    DECLINING = "Declining"
    STABLE = "Stable"
    UNKNOWN = "Unknown"


ActionPriority = Literal["high", "medium", "low"]

RENEWAL_TYPE = "Renewal"


# ── Source Records ──────────────────────────────────────────────────────────


class Account(BaseModel):
    """CRM account as seen by the dashboard."""

    account_id: str
    name: str
    arr: float | None = None
    owner_name: str | None = None
    owner_email: str | None = None
    industry: str | None = None
    last_activity_date: dt.datetime | None = None


class HealthSnapshot(BaseModel):
    """One health classification for an account at ``observed_at``.

    ``status`` is None when the stored value is missing or not one of the
    recognised tiers; such snapshots never land in a status bucket.
    """

    account_id: str
    status: HealthStatus | None = None
    score: float | None = None
    trend: TrendStatus = TrendStatus.UNKNOWN
    observed_at: dt.datetime


class InteractionInsight(BaseModel):
    """Analysed customer touchpoint (call, email, meeting)."""

    account_id: str
    interaction_type: str
    sentiment_score: float
    sentiment_reasons: list[str] = Field(default_factory=list)
    churn_risk: bool = False
    churn_reasons: list[str] = Field(default_factory=list)
    expansion_opportunity: bool = False
    expansion_reasons: list[str] = Field(default_factory=list)
    summary: str | None = None
    occurred_at: dt.datetime | None = None


class SupportTicket(BaseModel):
    """Support-desk ticket attached to an account."""

    ticket_id: int
    account_id: str
    subject: str | None = None
    status: str | None = None
    priority: str | None = None
    created_at: dt.datetime | None = None


class Opportunity(BaseModel):
    """Sales pipeline record."""

    opportunity_id: str
    account_id: str
    name: str
    stage: str | None = None
    type: str | None = None
    amount: float | None = None
    close_date: dt.datetime | None = None
    is_closed: bool = False


class Contact(BaseModel):
    """Person at a customer account."""

    contact_id: str
    account_id: str
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    title: str | None = None
    customer_role: str | None = None
    left_company: bool = False


# ── Derived Entities ────────────────────────────────────────────────────────


class AccountMetrics(BaseModel):
    """Rolling-window engagement metrics for one account.

    ``avg_sentiment`` is None when no interaction falls inside the window.
    ``days_since_activity`` is None when there is neither an in-window
    interaction nor a recorded last-activity date; it may be negative when
    the last-activity date lies after the reference date.
    """

    avg_sentiment: float | None = None
    interaction_count: int = 0
    churn_signals: int = 0
    expansion_signals: int = 0
    open_ticket_count: int = 0
    days_since_activity: int | None = None


class PriorityAccount(BaseModel):
    """Ranked at-risk account for the priority list."""

    account_id: str
    name: str
    arr: float | None = None
    owner_name: str | None = None
    current_health: HealthSnapshot
    metrics: AccountMetrics
    top_signals: list[str] = Field(default_factory=list, max_length=2)
    priority_score: float = 0.0


class PortfolioStats(BaseModel):
    """Fleet-wide counts and ARR by health tier plus upcoming renewals."""

    critical_count: int = 0
    critical_arr: float = 0.0
    at_risk_count: int = 0
    at_risk_arr: float = 0.0
    healthy_count: int = 0
    healthy_arr: float = 0.0
    renewals_count: int = 0
    renewals_arr: float = 0.0


class PortfolioOverviewStats(BaseModel):
    """Headline figures for the portfolio page, optionally per CSM."""

    total_arr: float = 0.0
    account_count: int = 0
    avg_health_score: float | None = None
    churn_risk_percent: float = 0.0


class PortfolioHealthPoint(BaseModel):
    """Average health score across the portfolio for one calendar day."""

    date: dt.date
    avg_health_score: float


class RenewalBucket(BaseModel):
    """Renewal ARR share for one health tier."""

    arr: float = 0.0
    percent: float = 0.0
    count: int = 0


class RenewalTotal(BaseModel):
    """Sum across the healthy, at-risk and critical renewal buckets."""

    arr: float = 0.0
    count: int = 0


class RenewalForecast(BaseModel):
    """Upcoming renewals broken down by the renewing account's health tier."""

    healthy: RenewalBucket = Field(default_factory=RenewalBucket)
    at_risk: RenewalBucket = Field(default_factory=RenewalBucket)
    critical: RenewalBucket = Field(default_factory=RenewalBucket)
    total: RenewalTotal = Field(default_factory=RenewalTotal)


class ActionItem(BaseModel):
    """Recommended next step for the account's CSM."""

    priority: ActionPriority
    text: str


class AccountDetail(BaseModel):
    """Everything the account page shows, assembled from eight reads."""

    account: Account
    current_health: HealthSnapshot
    health_history: list[HealthSnapshot] = Field(default_factory=list)
    recent_interactions: list[InteractionInsight] = Field(default_factory=list)
    contacts: list[Contact] = Field(default_factory=list)
    open_tickets: list[SupportTicket] = Field(default_factory=list)
    opportunities: list[Opportunity] = Field(default_factory=list)
    renewal_opportunity: Opportunity | None = None
    support_tier: str | None = None
    metrics: AccountMetrics
    champion_left: bool = False
    top_signals: list[str] = Field(default_factory=list)
    action_items: list[ActionItem] = Field(default_factory=list)
