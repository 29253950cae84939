"""Helpers for reading the health snapshot time series."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from src.health_dashboard.accounts.schemas import HealthSnapshot
from src.health_dashboard.core.clock import as_utc


def latest_by_account(
    snapshots: Iterable[HealthSnapshot],
    as_of: datetime | None = None,
) -> dict[str, HealthSnapshot]:
    """Current snapshot per account: the newest observed no later than ``as_of``.

    Independent of input order. When two snapshots share an observation
    time the one seen first wins.
    """
    cutoff = as_utc(as_of) if as_of is not None else None
    current: dict[str, HealthSnapshot] = {}
    for snapshot in snapshots:
        observed = as_utc(snapshot.observed_at)
        if cutoff is not None and observed > cutoff:
            continue
        existing = current.get(snapshot.account_id)
        if existing is None or observed > as_utc(existing.observed_at):
            current[snapshot.account_id] = snapshot
    return current
