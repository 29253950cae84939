"""FastAPI dependencies for authentication and approval.

These dependencies are used in endpoint function signatures to inject the
authenticated user and enforce the approval and admin-route policy.
"""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status

from src.health_dashboard.core.approval import (
    ApprovalCache,
    ApprovalStatus,
    approval_from_claims,
    can_access_route,
    is_admin,
)
from src.health_dashboard.core.security import verify_token

DASHBOARD_PREFIX = "/api/v1/dashboard"


def get_approval_cache(request: Request) -> ApprovalCache:
    """ApprovalCache from app.state (503 if startup did not create it)."""
    cache = getattr(request.app.state, "approval_cache", None)
    if cache is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Approval cache not initialized",
        )
    return cache


async def get_current_user(
    request: Request,
    cache: ApprovalCache = Depends(get_approval_cache),
) -> ApprovalStatus:
    """Verify the bearer token and resolve the caller's approval status.

    The role is served from the approval cache while fresh, otherwise read
    from the token's ``app_metadata`` and cached.

    Raises:
        HTTPException(401): If no valid bearer token is provided.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = verify_token(auth_header[7:])
    user_id = payload["sub"]

    cached = cache.get(user_id)
    if cached is not None:
        return cached

    approval = approval_from_claims(user_id, payload)
    cache.set(approval)
    return approval


async def require_approved_user(
    request: Request,
    user: ApprovalStatus = Depends(get_current_user),
) -> ApprovalStatus:
    """Reject pending users and non-admins on admin routes with 403."""
    if not user.is_approved:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account pending approval",
        )
    if not can_access_route(user.role, _route_path(request)):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


async def require_admin(
    user: ApprovalStatus = Depends(require_approved_user),
) -> ApprovalStatus:
    """Admin-only endpoints, independent of where the router is mounted."""
    if not is_admin(user.role):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def _route_path(request: Request) -> str:
    """Request path relative to the dashboard router prefix."""
    path = request.url.path
    if not path.startswith(DASHBOARD_PREFIX):
        return path
    return path[len(DASHBOARD_PREFIX):] or "/"
