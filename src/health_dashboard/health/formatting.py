"""Display helpers for dashboard payloads (currency, percentages, recency, trend)."""

from __future__ import annotations

import math

from src.health_dashboard.accounts.schemas import TrendStatus

_TREND_LABELS = {
    TrendStatus.IMPROVING: "Improving",
    TrendStatus.DECLINING: "Declining",
    TrendStatus.STABLE: "Stable",
}

_TREND_ICONS = {
    TrendStatus.IMPROVING: "↑",
    TrendStatus.DECLINING: "↓",
    TrendStatus.STABLE: "→",
}


def round_half_up(value: float) -> int:
    """Nearest integer with halves rounded up (2.5 -> 3, -2.5 -> -2)."""
    return math.floor(value + 0.5)


def _plain_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def format_currency(value: float | None) -> str:
    """Whole dollars with thousands separators, e.g. 450000 -> "$450,000"."""
    if value is None:
        return "$0"
    rounded = round_half_up(value)
    sign = "-" if rounded < 0 else ""
    return f"{sign}${abs(rounded):,}"


def format_compact_currency(value: float | None) -> str:
    """Compact currency: 450000 -> "$450K", 1500000 -> "$1.5M"."""
    if value is None:
        return "$0"
    if value >= 1_000_000:
        return f"${value / 1_000_000:.1f}M"
    if value >= 1_000:
        return f"${round_half_up(value / 1_000)}K"
    return f"${_plain_number(value)}"


def format_percentage(value: float | None) -> str:
    """Rounded percentage, e.g. 87.5 -> "88%"."""
    if value is None:
        return "0%"
    return f"{round_half_up(value)}%"


def format_days_ago(days: int | None) -> str:
    """Compact recency: 0 -> "Today", 1 -> "Yesterday", 11 -> "11d ago"."""
    if days is None:
        return "N/A"
    if days == 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    return f"{days}d ago"


def trend_label(trend: TrendStatus | None) -> str:
    return _TREND_LABELS.get(trend, "N/A")


def trend_icon(trend: TrendStatus | None) -> str:
    return _TREND_ICONS.get(trend, "-")
