"""Dependency injection for FastAPI routes."""

from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request

from coinwatch.core.config import CoinwatchConfig
from coinwatch.ingestion.scheduler import Poller
from coinwatch.ingestion.store import SqliteStore
from coinwatch.query.service import QueryService


@dataclass
class AppState:
    """Shared application state, attached to app.state during lifespan.

    The poller lives here rather than in a module global: whoever owns the
    app owns exactly one poller, and the lifespan stops it on shutdown.
    """

    config: CoinwatchConfig
    store: SqliteStore
    query: QueryService
    poller: Poller | None = None


def get_app_state(request: Request) -> AppState:
    """Dependency: retrieve AppState from the request."""
    return request.app.state.app_state


def get_config(request: Request) -> CoinwatchConfig:
    """Dependency: retrieve config."""
    return request.app.state.app_state.config


def get_store(request: Request) -> SqliteStore:
    """Dependency: retrieve storage backend."""
    return request.app.state.app_state.store


def get_query(request: Request) -> QueryService:
    """Dependency: retrieve the query service."""
    return request.app.state.app_state.query
