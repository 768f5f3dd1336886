"""API routers package."""

from clipmatch.routers import matching

__all__ = ["matching"]
