"""Shared pytest fixtures for coinwatch."""

import json
from datetime import UTC, datetime
from decimal import Decimal

import pytest

from coinwatch.core.config import StorageConfig
from coinwatch.core.models import CoinSnapshot
from coinwatch.ingestion.store import SqliteStore


def listing_payload(
    id: int = 1,
    name: str = "Bitcoin",
    symbol: str = "BTC",
    slug: str = "bitcoin",
    cmc_rank: int = 1,
    price=50000.5,
    market_cap=1000000000,
    currency: str = "USD",
    **overrides,
) -> dict:
    """One listing as the provider sends it."""
    quote = {
        "price": price,
        "volume_24h": 25000000000.25,
        "volume_change_24h": 3.5,
        "percent_change_1h": 0.12,
        "percent_change_24h": -1.5,
        "percent_change_7d": 4.25,
        "percent_change_30d": 10.0,
        "percent_change_60d": 12.5,
        "percent_change_90d": 20.75,
        "market_cap": market_cap,
        "last_updated": "2024-05-01T12:00:00.000Z",
    }
    quote.update(overrides.pop("quote", {}))
    payload = {
        "id": id,
        "name": name,
        "symbol": symbol,
        "slug": slug,
        "cmc_rank": cmc_rank,
        "num_market_pairs": 11000,
        "date_added": "2013-04-28T00:00:00.000Z",
        "tags": ["mineable", "pow"],
        "max_supply": 21000000,
        "circulating_supply": 19700000,
        "total_supply": 19700000,
        "platform": None,
        "last_updated": "2024-05-01T12:00:00.000Z",
        "quote": {currency: quote},
    }
    payload.update(overrides)
    return payload


def listings_envelope(listings: list[dict], **status_overrides) -> dict:
    status = {
        "timestamp": "2024-05-01T12:00:05.000Z",
        "error_code": 0,
        "error_message": None,
        "elapsed": 12,
        "credit_count": 1,
        "notice": None,
    }
    status.update(status_overrides)
    return {"status": status, "data": listings}


def listings_body(listings: list[dict], **status_overrides) -> str:
    return json.dumps(listings_envelope(listings, **status_overrides))


@pytest.fixture
def make_listing():
    """Factory for one provider listing payload."""
    return listing_payload


@pytest.fixture
def make_body():
    """Factory for a serialized listings envelope."""
    return listings_body


@pytest.fixture
def sample_listings() -> list[dict]:
    """Three coins: A is the largest, C second, B smallest."""
    return [
        listing_payload(id=1, name="Alpha", symbol="AAA", slug="alpha", cmc_rank=1,
                        price=100, market_cap=3000),
        listing_payload(id=2, name="Beta", symbol="BBB", slug="beta", cmc_rank=3,
                        price=5, market_cap=1000),
        listing_payload(id=3, name="Gamma", symbol="CCC", slug="gamma", cmc_rank=2,
                        price=20, market_cap=2000),
    ]


@pytest.fixture
def make_snapshot():
    """Factory for CoinSnapshot with overridable defaults."""

    def _make(**overrides):
        defaults = dict(
            id="1",
            name="Bitcoin",
            symbol="BTC",
            slug="bitcoin",
            date_added=datetime(2013, 4, 28, tzinfo=UTC),
            max_supply=Decimal("21000000"),
            circulating_supply=Decimal("19700000"),
            cmc_rank=1,
            current_price=Decimal("50000.5"),
            volume_24h=Decimal("25000000000.25"),
            volume_change_24h=Decimal("3.5"),
            market_cap=Decimal("1000000000"),
            percent_change_1h=Decimal("0.12"),
            percent_change_24h=Decimal("-1.5"),
            percent_change_7d=Decimal("4.25"),
            percent_change_30d=None,
            percent_change_60d=None,
            percent_change_90d=None,
            last_updated=datetime(2024, 5, 1, 12, 0, tzinfo=UTC),
        )
        defaults.update(overrides)
        return CoinSnapshot(**defaults)

    return _make


@pytest.fixture
async def store():
    """Create an in-memory SqliteStore for testing."""
    s = SqliteStore(StorageConfig(sqlite_path=":memory:"))
    await s.initialize()
    yield s
    await s.close()
