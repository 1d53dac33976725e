"""Integration test fixtures: real SQLite file, mocked provider."""

from __future__ import annotations

from pathlib import Path

import pytest

from coinwatch.core.config import ProviderConfig, StorageConfig
from coinwatch.ingestion.client import CoinMarketCapClient
from coinwatch.ingestion.store import SqliteStore


@pytest.fixture
async def integration_store(tmp_path: Path) -> SqliteStore:
    """An initialized SqliteStore backed by a file."""
    store = SqliteStore(StorageConfig(sqlite_path=str(tmp_path / "integration.db")))
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
async def provider_client() -> CoinMarketCapClient:
    async with CoinMarketCapClient(ProviderConfig(api_key="test-key", limit=3)) as c:
        yield c
