"""API middleware package."""

from src.health_dashboard.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
