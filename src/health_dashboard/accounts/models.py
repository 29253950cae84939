"""Read-only table mappings for the customer-success store.

Seven SQLAlchemy models over tables populated by the external ingestion
pipeline (CRM sync, support-desk sync, interaction analysis):
- AccountModel: CRM accounts with ARR and owning CSM
- HealthSnapshotModel: Time series of health classifications per account
- InteractionInsightModel: Analysed customer touchpoints (calls, emails)
- SupportTicketModel: Support-desk tickets mapped to accounts
- OpportunityModel: Sales pipeline records (renewals, upsells)
- ContactModel: People at the account, including champion status
- SupportOrgMappingModel: Support-desk organisation to account mapping (tier)

This service never writes to any of these tables. Accounts are keyed by the
CRM account id string (``sf_account_id``), which every child table carries.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.health_dashboard.core.database import Base


class AccountModel(Base):
    """CRM account. ``sf_account_id`` is unique across the table."""

    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sf_account_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    arr: Mapped[float | None] = mapped_column(Float, nullable=True)
    industry: Mapped[str | None] = mapped_column(String(200), nullable=True)
    csm_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    csm_email: Mapped[str | None] = mapped_column(String(300), nullable=True)
    last_activity_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class HealthSnapshotModel(Base):
    """One health classification of an account at one observation time."""

    __tablename__ = "account_health_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sf_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    health_status: Mapped[str] = mapped_column(String(20), nullable=False)
    health_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    trend: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class InteractionInsightModel(Base):
    """Analysed customer touchpoint with sentiment and churn/expansion flags."""

    __tablename__ = "interaction_insights"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sf_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    interaction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    sentiment_score: Mapped[float] = mapped_column(Float, nullable=False)
    sentiment_reasons: Mapped[list | None] = mapped_column(JSON, nullable=True)
    churn_risk: Mapped[bool] = mapped_column(Boolean, default=False)
    churn_reasons: Mapped[list | None] = mapped_column(JSON, nullable=True)
    expansion_opportunity: Mapped[bool] = mapped_column(Boolean, default=False)
    expansion_reasons: Mapped[list | None] = mapped_column(JSON, nullable=True)
    insight_summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SupportTicketModel(Base):
    """Support-desk ticket. Only open-like statuses matter for scoring."""

    __tablename__ = "zendesk_tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    zendesk_ticket_id: Mapped[int] = mapped_column(Integer, nullable=False)
    sf_account_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    subject: Mapped[str | None] = mapped_column(String(500), nullable=True)
    status: Mapped[str | None] = mapped_column(String(30), nullable=True)
    priority: Mapped[str | None] = mapped_column(String(30), nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class OpportunityModel(Base):
    """Sales pipeline record. Open renewals drive the forecast views."""

    __tablename__ = "opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sf_opp_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sf_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    stage: Mapped[str | None] = mapped_column(String(100), nullable=True)
    type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    close_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    is_closed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)


class ContactModel(Base):
    """Person at a customer account."""

    __tablename__ = "contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sf_contact_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sf_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    first_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    email: Mapped[str | None] = mapped_column(String(300), nullable=True)
    title: Mapped[str | None] = mapped_column(String(300), nullable=True)
    customer_role: Mapped[str | None] = mapped_column(String(100), nullable=True)
    left_company: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    last_activity_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )


class SupportOrgMappingModel(Base):
    """Maps a support-desk organisation onto an account and its support tier."""

    __tablename__ = "zendesk_org_mapping"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sf_account_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    tier: Mapped[str | None] = mapped_column(String(50), nullable=True)
