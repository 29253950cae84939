"""Tests for AccountRepository row conversion and query construction.

Uses a mocked session_factory (no database): the session's execute() returns
canned ORM rows, and the issued statement is inspected for its filters.
"""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from src.health_dashboard.accounts.models import (
    AccountModel,
    HealthSnapshotModel,
    InteractionInsightModel,
)
from src.health_dashboard.accounts.repository import AccountRepository
from src.health_dashboard.accounts.schemas import HealthStatus, TrendStatus

OBSERVED = datetime(2025, 12, 17, tzinfo=timezone.utc)


def _repository_returning(rows: list):
    """AccountRepository whose single session returns ``rows`` for any query."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    result.scalar_one_or_none.return_value = rows[0] if rows else None

    session = MagicMock()
    session.execute = AsyncMock(return_value=result)

    async def session_factory():
        yield session

    return AccountRepository(session_factory=session_factory), session


def _issued_sql(session) -> str:
    statement = session.execute.call_args.args[0]
    return str(statement)


@pytest.mark.asyncio
async def test_list_accounts_converts_rows_and_filters_owner():
    model = AccountModel(
        sf_account_id="001A",
        name="Globex",
        arr=250_000.0,
        csm_name="Dana Reyes",
        csm_email="dana@example.com",
        last_activity_date=OBSERVED,
    )
    repo, session = _repository_returning([model])

    accounts = await repo.list_accounts(owner_name="Dana Reyes")

    assert len(accounts) == 1
    assert accounts[0].account_id == "001A"
    assert accounts[0].owner_name == "Dana Reyes"
    assert accounts[0].arr == 250_000.0
    assert "WHERE accounts.csm_name" in _issued_sql(session)


@pytest.mark.asyncio
async def test_unknown_status_and_trend_are_normalised():
    model = HealthSnapshotModel(
        sf_account_id="001A",
        health_status="Watch",
        health_score=61.0,
        trend="Sideways",
        created_at=OBSERVED,
    )
    repo, _ = _repository_returning([model])

    snapshots = await repo.list_health_snapshots()

    assert snapshots[0].status is None
    assert snapshots[0].trend == TrendStatus.UNKNOWN


@pytest.mark.asyncio
async def test_current_health_conversion():
    model = HealthSnapshotModel(
        sf_account_id="001A",
        health_status="At Risk",
        health_score=48.0,
        trend="Declining",
        created_at=OBSERVED,
    )
    repo, session = _repository_returning([model])

    snapshot = await repo.get_current_health("001A", as_of=OBSERVED)

    assert snapshot.status == HealthStatus.AT_RISK
    assert snapshot.trend == TrendStatus.DECLINING
    assert "ORDER BY account_health_history.created_at DESC" in _issued_sql(session)


@pytest.mark.asyncio
async def test_interaction_null_reason_lists_become_empty():
    model = InteractionInsightModel(
        sf_account_id="001A",
        interaction_type="email",
        sentiment_score=35.0,
        sentiment_reasons=None,
        churn_risk=True,
        churn_reasons=["Budget freeze"],
        expansion_opportunity=None,
        expansion_reasons=None,
        created_at=OBSERVED,
    )
    repo, _ = _repository_returning([model])

    interactions = await repo.list_interactions("001A")

    assert interactions[0].sentiment_reasons == []
    assert interactions[0].churn_reasons == ["Budget freeze"]
    assert interactions[0].expansion_opportunity is False


@pytest.mark.asyncio
async def test_missing_account_is_none():
    repo, _ = _repository_returning([])
    assert await repo.get_account("nope") is None


@pytest.mark.asyncio
async def test_query_errors_propagate():
    repo, session = _repository_returning([])
    session.execute.side_effect = OperationalError("SELECT", {}, OSError("down"))
    with pytest.raises(OperationalError):
        await repo.list_owner_names()
