"""REST API endpoints for the customer-success dashboard.

Read-only views over HealthDashboardService: the priority list, fleet stats,
account detail, portfolio roll-ups and the CSM owner list, plus an admin
endpoint that clears the approval cache after a role change. Every endpoint
requires an approved user.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from src.health_dashboard.accounts.schemas import (
    AccountDetail,
    PortfolioHealthPoint,
    PortfolioStats,
    PriorityAccount,
    RenewalForecast,
)
from src.health_dashboard.api.deps import (
    get_approval_cache,
    require_admin,
    require_approved_user,
)
from src.health_dashboard.core.approval import ApprovalCache, ApprovalStatus
from src.health_dashboard.health.formatting import (
    format_compact_currency,
    format_currency,
    format_days_ago,
    format_percentage,
    trend_icon,
    trend_label,
)
from src.health_dashboard.health.service import HealthDashboardService

router = APIRouter(prefix="/dashboard", tags=["dashboard"])


# ── Response Schemas ─────────────────────────────────────────────────────────


class PriorityAccountResponse(BaseModel):
    """Account card on the priority list."""

    account_id: str
    name: str
    arr: float | None = None
    arr_display: str
    owner_name: str | None = None
    health_status: str | None = None
    health_score: float | None = None
    trend: str
    trend_label: str
    trend_icon: str
    avg_sentiment: float | None = None
    open_ticket_count: int = 0
    days_since_activity: int | None = None
    last_contact_display: str
    top_signals: list[str] = Field(default_factory=list)
    priority_score: float = 0.0


class DashboardStatsResponse(PortfolioStats):
    """Filter-card totals with compact ARR labels."""

    critical_arr_display: str
    at_risk_arr_display: str
    healthy_arr_display: str
    renewals_arr_display: str


class PortfolioOverviewResponse(BaseModel):
    """Portfolio headline figures."""

    total_arr: float
    total_arr_display: str
    account_count: int
    avg_health_score: float | None = None
    churn_risk_percent: float
    churn_risk_display: str


class AccountDetailResponse(AccountDetail):
    """Account page payload with display labels."""

    arr_display: str
    trend_label: str
    trend_icon: str


class InvalidateApprovalCacheRequest(BaseModel):
    """Clear one user's cached approval, or everyone's when user_id is omitted."""

    user_id: str | None = None


class InvalidateApprovalCacheResponse(BaseModel):
    removed: int


# ── Helpers ──────────────────────────────────────────────────────────────────


def _get_dashboard_service(request: Request) -> HealthDashboardService:
    """Retrieve HealthDashboardService from app.state, 503 if not available."""
    service = getattr(request.app.state, "dashboard_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Dashboard service not initialized",
        )
    return service


def _priority_to_response(account: PriorityAccount) -> PriorityAccountResponse:
    health = account.current_health
    return PriorityAccountResponse(
        account_id=account.account_id,
        name=account.name,
        arr=account.arr,
        arr_display=format_compact_currency(account.arr),
        owner_name=account.owner_name,
        health_status=health.status.value if health.status else None,
        health_score=health.score,
        trend=health.trend.value,
        trend_label=trend_label(health.trend),
        trend_icon=trend_icon(health.trend),
        avg_sentiment=account.metrics.avg_sentiment,
        open_ticket_count=account.metrics.open_ticket_count,
        days_since_activity=account.metrics.days_since_activity,
        last_contact_display=format_days_ago(account.metrics.days_since_activity),
        top_signals=account.top_signals,
        priority_score=account.priority_score,
    )


# ── Dashboard Endpoints ──────────────────────────────────────────────────────


@router.get("/priority", response_model=list[PriorityAccountResponse])
async def get_priority_list(
    request: Request,
    renewals_only: bool = Query(default=False),
    user: ApprovalStatus = Depends(require_approved_user),
) -> list[PriorityAccountResponse]:
    """Critical and At Risk accounts ranked by ARR-weighted priority."""
    service = _get_dashboard_service(request)
    accounts = await service.fetch_priority_list(renewals_only=renewals_only)
    return [_priority_to_response(a) for a in accounts]


@router.get("/stats", response_model=DashboardStatsResponse)
async def get_dashboard_stats(
    request: Request,
    user: ApprovalStatus = Depends(require_approved_user),
) -> DashboardStatsResponse:
    """Counts and ARR per health tier plus upcoming renewals."""
    service = _get_dashboard_service(request)
    stats = await service.fetch_dashboard_stats()
    return DashboardStatsResponse(
        **stats.model_dump(),
        critical_arr_display=format_compact_currency(stats.critical_arr),
        at_risk_arr_display=format_compact_currency(stats.at_risk_arr),
        healthy_arr_display=format_compact_currency(stats.healthy_arr),
        renewals_arr_display=format_compact_currency(stats.renewals_arr),
    )


@router.get("/accounts/{account_id}", response_model=AccountDetailResponse)
async def get_account_detail(
    account_id: str,
    request: Request,
    user: ApprovalStatus = Depends(require_approved_user),
) -> AccountDetailResponse:
    """Full account view: health history, interactions, contacts, actions."""
    service = _get_dashboard_service(request)
    detail = await service.fetch_account_detail(account_id)
    if detail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Account not found: {account_id}",
        )
    return AccountDetailResponse(
        **detail.model_dump(),
        arr_display=format_currency(detail.account.arr),
        trend_label=trend_label(detail.current_health.trend),
        trend_icon=trend_icon(detail.current_health.trend),
    )


# ── Portfolio Endpoints ──────────────────────────────────────────────────────


@router.get("/portfolio/overview", response_model=PortfolioOverviewResponse)
async def get_portfolio_overview(
    request: Request,
    owner: str | None = Query(default=None),
    user: ApprovalStatus = Depends(require_approved_user),
) -> PortfolioOverviewResponse:
    """Total ARR, average health score and churn-risk share, optionally per CSM."""
    service = _get_dashboard_service(request)
    stats = await service.fetch_portfolio_overview_stats(owner_name=owner)
    return PortfolioOverviewResponse(
        total_arr=stats.total_arr,
        total_arr_display=format_compact_currency(stats.total_arr),
        account_count=stats.account_count,
        avg_health_score=stats.avg_health_score,
        churn_risk_percent=stats.churn_risk_percent,
        churn_risk_display=format_percentage(stats.churn_risk_percent),
    )


@router.get("/portfolio/health-history", response_model=list[PortfolioHealthPoint])
async def get_portfolio_health_history(
    request: Request,
    days: int | None = Query(default=None, ge=1, le=365),
    owner: str | None = Query(default=None),
    user: ApprovalStatus = Depends(require_approved_user),
) -> list[PortfolioHealthPoint]:
    """Daily average health score, oldest first."""
    service = _get_dashboard_service(request)
    return await service.fetch_portfolio_health_history(days=days, owner_name=owner)


@router.get("/portfolio/renewals", response_model=RenewalForecast)
async def get_renewal_forecast(
    request: Request,
    owner: str | None = Query(default=None),
    user: ApprovalStatus = Depends(require_approved_user),
) -> RenewalForecast:
    """Upcoming renewal ARR by the renewing account's health tier."""
    service = _get_dashboard_service(request)
    return await service.fetch_renewal_forecast(owner_name=owner)


@router.get("/owners", response_model=list[str])
async def get_owner_list(
    request: Request,
    user: ApprovalStatus = Depends(require_approved_user),
) -> list[str]:
    """CSM names for the owner filter."""
    service = _get_dashboard_service(request)
    return await service.fetch_owner_list()


# ── Admin Endpoints ──────────────────────────────────────────────────────────


@router.post(
    "/admin/approval-cache/invalidate",
    response_model=InvalidateApprovalCacheResponse,
)
async def invalidate_approval_cache(
    body: InvalidateApprovalCacheRequest,
    user: ApprovalStatus = Depends(require_admin),
    cache: ApprovalCache = Depends(get_approval_cache),
) -> InvalidateApprovalCacheResponse:
    """Drop cached role decisions after an admin changes a user's role."""
    removed = cache.invalidate(body.user_id)
    return InvalidateApprovalCacheResponse(removed=removed)
