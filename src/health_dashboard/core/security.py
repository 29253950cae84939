"""Bearer token verification for tokens issued by the auth provider.

The dashboard never issues tokens itself; it only verifies the provider's
HS256 access tokens and reads the claims it needs (``sub`` and
``app_metadata.role``).
"""

from __future__ import annotations

import structlog
from fastapi import HTTPException, status
from jose import JWTError, jwt

from src.health_dashboard.config import get_settings

logger = structlog.get_logger(__name__)


def verify_token(token: str) -> dict:
    """Decode and validate a provider access token.

    Args:
        token: The JWT string.

    Returns:
        The decoded payload dict.

    Raises:
        HTTPException(401): If the token is invalid, expired, for another
            audience, or has no subject.
    """
    settings = get_settings()
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[settings.AUTH_JWT_ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
        )
    except JWTError as exc:
        logger.info("auth.token_rejected", error=str(exc))
        raise credentials_exception
    if not payload.get("sub"):
        raise credentials_exception
    return payload
