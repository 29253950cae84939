"""User roles, route access policy and the approval-status cache.

Roles come from the auth provider's ``app_metadata.role`` claim. A user is
approved when the role is ``admin`` or ``user``; anything else (including a
missing claim) is ``pending`` and gets no dashboard access.

ApprovalCache bounds how stale a role decision may be. It is owned by the
application (``app.state.approval_cache``) and cleared explicitly after an
admin changes someone's role.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

ADMIN_ROUTES = ["/admin"]


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    PENDING = "pending"


def parse_role(value: Any) -> UserRole:
    """Role claim to UserRole; missing or unknown values are pending."""
    try:
        return UserRole(value)
    except ValueError:
        return UserRole.PENDING


def is_approved(role: UserRole | None) -> bool:
    return role in (UserRole.ADMIN, UserRole.USER)


def is_admin(role: UserRole | None) -> bool:
    return role == UserRole.ADMIN


def can_access_route(role: UserRole | None, path: str) -> bool:
    """Whether ``role`` may open ``path``. Admin prefixes need the admin role."""
    if role is None:
        return False
    if any(path.startswith(prefix) for prefix in ADMIN_ROUTES):
        return is_admin(role)
    return True


@dataclass(frozen=True)
class ApprovalStatus:
    """Cached approval decision for one user."""

    user_id: str
    role: UserRole
    is_approved: bool


def approval_from_claims(user_id: str, claims: dict[str, Any]) -> ApprovalStatus:
    """Build an ApprovalStatus from verified token claims."""
    app_metadata = claims.get("app_metadata") or {}
    role = parse_role(app_metadata.get("role"))
    return ApprovalStatus(user_id=user_id, role=role, is_approved=is_approved(role))


class ApprovalCache:
    """Time-bounded map of user id to ApprovalStatus.

    Args:
        ttl_seconds: How long an entry is served before it is treated as missing.
        clock: Monotonic time source, injectable for tests.
    """

    def __init__(
        self,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: dict[str, tuple[ApprovalStatus, float]] = {}
        self._lock = threading.Lock()

    def get(self, user_id: str) -> ApprovalStatus | None:
        with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            status, stored_at = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[user_id]
                return None
            return status

    def set(self, status: ApprovalStatus) -> None:
        with self._lock:
            self._entries[status.user_id] = (status, self._clock())

    def invalidate(self, user_id: str | None = None) -> int:
        """Drop one user's entry, or every entry when ``user_id`` is None.

        Returns:
            Number of entries removed.
        """
        with self._lock:
            if user_id is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                removed = 1 if self._entries.pop(user_id, None) is not None else 0
        logger.info("approval_cache.invalidated", user_id=user_id, removed=removed)
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
