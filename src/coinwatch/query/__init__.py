"""Read-side query service."""

from coinwatch.query.service import QueryService

__all__ = ["QueryService"]
