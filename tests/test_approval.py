"""Tests for roles, approval caching and bearer-token authentication.

Covers:
    - Role parsing and route policy (admin prefixes)
    - ApprovalCache TTL expiry and explicit invalidation
    - verify_token: audience, signature and subject checks
    - get_current_user end to end: 401 without token, cached role reuse
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi import HTTPException
from httpx import ASGITransport, AsyncClient
from jose import jwt

from src.health_dashboard.core import security
from src.health_dashboard.core.approval import (
    ApprovalCache,
    ApprovalStatus,
    UserRole,
    approval_from_claims,
    can_access_route,
    is_admin,
    is_approved,
    parse_role,
)
from src.health_dashboard.health.service import HealthDashboardService


def _token(settings, sub: str | None = "user-1", role: str | None = "user", **overrides) -> str:
    now = datetime.now(timezone.utc)
    claims = {
        "aud": settings.AUTH_JWT_AUDIENCE,
        "iat": now,
        "exp": now + timedelta(minutes=5),
        "app_metadata": {"role": role} if role is not None else {},
    }
    if sub is not None:
        claims["sub"] = sub
    claims.update(overrides)
    return jwt.encode(claims, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


@pytest.fixture
def patched_settings(settings, monkeypatch):
    monkeypatch.setattr(security, "get_settings", lambda: settings)
    return settings


class _FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


# ── Roles & Routes ───────────────────────────────────────────────────────────


class TestRoles:
    def test_parse_role(self):
        assert parse_role("admin") == UserRole.ADMIN
        assert parse_role("user") == UserRole.USER
        assert parse_role(None) == UserRole.PENDING
        assert parse_role("superuser") == UserRole.PENDING

    def test_approval(self):
        assert is_approved(UserRole.ADMIN)
        assert is_approved(UserRole.USER)
        assert not is_approved(UserRole.PENDING)
        assert not is_approved(None)
        assert is_admin(UserRole.ADMIN) and not is_admin(UserRole.USER)

    def test_route_access(self):
        assert can_access_route(UserRole.USER, "/priority")
        assert not can_access_route(UserRole.USER, "/admin/users")
        assert can_access_route(UserRole.ADMIN, "/admin/users")
        assert not can_access_route(None, "/priority")

    def test_claims_without_role_are_pending(self):
        status = approval_from_claims("u", {"sub": "u"})
        assert status.role == UserRole.PENDING
        assert not status.is_approved


class TestApprovalCache:
    def test_entry_expires_after_ttl(self):
        clock = _FakeClock()
        cache = ApprovalCache(ttl_seconds=300, clock=clock)
        status = ApprovalStatus("u1", UserRole.USER, True)
        cache.set(status)

        clock.now += 299
        assert cache.get("u1") == status
        clock.now += 1
        assert cache.get("u1") is None
        assert len(cache) == 0

    def test_invalidate_one_and_all(self):
        cache = ApprovalCache()
        cache.set(ApprovalStatus("u1", UserRole.USER, True))
        cache.set(ApprovalStatus("u2", UserRole.ADMIN, True))

        assert cache.invalidate("u1") == 1
        assert cache.invalidate("u1") == 0
        assert cache.get("u2") is not None
        assert cache.invalidate() == 1
        assert len(cache) == 0


# ── Token Verification ───────────────────────────────────────────────────────


class TestVerifyToken:
    def test_valid_token(self, patched_settings):
        payload = security.verify_token(_token(patched_settings, role="admin"))
        assert payload["sub"] == "user-1"
        assert payload["app_metadata"]["role"] == "admin"

    def test_wrong_audience(self, patched_settings):
        with pytest.raises(HTTPException) as exc_info:
            security.verify_token(_token(patched_settings, aud="someone-else"))
        assert exc_info.value.status_code == 401

    def test_wrong_secret(self, patched_settings):
        forged = jwt.encode(
            {"sub": "x", "aud": patched_settings.AUTH_JWT_AUDIENCE},
            "not-the-secret",
            algorithm="HS256",
        )
        with pytest.raises(HTTPException):
            security.verify_token(forged)

    def test_missing_subject(self, patched_settings):
        with pytest.raises(HTTPException):
            security.verify_token(_token(patched_settings, sub=None))


# ── Request Authentication ───────────────────────────────────────────────────


@pytest_asyncio.fixture
async def auth_client(repo, patched_settings):
    from fastapi import FastAPI

    from src.health_dashboard.api.v1.router import router

    app = FastAPI()
    app.include_router(router)
    app.state.dashboard_service = HealthDashboardService(repo, patched_settings)
    app.state.approval_cache = ApprovalCache(ttl_seconds=300)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield app, client


@pytest.mark.asyncio
async def test_missing_token_is_401(auth_client):
    _, client = auth_client
    response = await client.get("/api/v1/dashboard/owners")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_approved_token_is_cached(auth_client, patched_settings):
    app, client = auth_client
    headers = {"Authorization": f"Bearer {_token(patched_settings)}"}

    response = await client.get("/api/v1/dashboard/owners", headers=headers)

    assert response.status_code == 200
    cached = app.state.approval_cache.get("user-1")
    assert cached is not None and cached.role == UserRole.USER


@pytest.mark.asyncio
async def test_cached_role_wins_until_invalidated(auth_client, patched_settings):
    app, client = auth_client
    cache: ApprovalCache = app.state.approval_cache
    cache.set(ApprovalStatus("user-1", UserRole.PENDING, False))
    headers = {"Authorization": f"Bearer {_token(patched_settings, role='user')}"}

    stale = await client.get("/api/v1/dashboard/owners", headers=headers)
    assert stale.status_code == 403

    cache.invalidate("user-1")
    fresh = await client.get("/api/v1/dashboard/owners", headers=headers)
    assert fresh.status_code == 200
