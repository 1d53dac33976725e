"""Tests for the SQLite storage backend."""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from coinwatch.core.config import StorageConfig
from coinwatch.core.exceptions import StorageError
from coinwatch.ingestion.store import SqliteStore, StorageProtocol, create_store

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


# --- Protocol Conformance ---


class TestStorageProtocol:
    def test_sqlite_store_satisfies_protocol(self):
        instance = SqliteStore(StorageConfig(sqlite_path=":memory:"))
        assert isinstance(instance, StorageProtocol)


# --- Initialization ---


class TestSqliteStoreInit:
    async def test_initialize_creates_tables(self, store):
        async with store._db.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ) as cursor:
            tables = [row[0] for row in await cursor.fetchall()]
        for expected in ["coins", "price_history", "schema_version"]:
            assert expected in tables

    async def test_foreign_keys_enabled(self, store):
        async with store._db.execute("PRAGMA foreign_keys") as cursor:
            row = await cursor.fetchone()
        assert row[0] == 1

    async def test_schema_version_set(self, store):
        async with store._db.execute(
            "SELECT MAX(version) FROM schema_version"
        ) as cursor:
            row = await cursor.fetchone()
        assert row[0] == 1

    async def test_reopen_keeps_data(self, tmp_path, make_snapshot):
        config = StorageConfig(sqlite_path=str(tmp_path / "nested" / "c.db"))
        first = await create_store(config)
        await first.upsert_snapshot(make_snapshot())
        await first.close()

        second = await create_store(config)
        try:
            assert await second.get_snapshot("1") is not None
        finally:
            await second.close()


# --- Snapshots ---


class TestSnapshotUpsert:
    async def test_insert_and_get(self, store, make_snapshot):
        snap = make_snapshot()
        await store.upsert_snapshot(snap)
        assert await store.get_snapshot("1") == snap

    async def test_get_missing(self, store):
        assert await store.get_snapshot("999") is None
        assert await store.get_snapshot_by_slug("nope") is None

    async def test_get_by_slug(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot())
        found = await store.get_snapshot_by_slug("bitcoin")
        assert found is not None
        assert found.id == "1"

    async def test_upsert_overwrites_all_fields(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot())
        updated = make_snapshot(
            name="Bitcoin Renamed",
            cmc_rank=2,
            current_price=Decimal("61000.01"),
            max_supply=None,
            percent_change_30d=Decimal("7.5"),
            last_updated=_at(5),
        )
        await store.upsert_snapshot(updated)
        assert await store.get_snapshot("1") == updated
        stats = await store.get_statistics()
        assert stats["coins"] == 1

    async def test_upsert_is_idempotent(self, store, make_snapshot):
        snap = make_snapshot()
        await store.upsert_snapshot(snap)
        await store.upsert_snapshot(snap)
        assert await store.get_snapshot("1") == snap
        assert (await store.get_statistics())["coins"] == 1

    async def test_decimals_round_trip_exactly(self, store, make_snapshot):
        snap = make_snapshot(
            current_price=Decimal("0.000012345678901234567"),
            market_cap=Decimal("7274853024.987654321"),
        )
        await store.upsert_snapshot(snap)
        got = await store.get_snapshot("1")
        assert str(got.current_price) == "0.000012345678901234567"
        assert str(got.market_cap) == "7274853024.987654321"

    async def test_tiny_values_stored_positionally(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(current_price=Decimal("0.00000001")))
        async with store._db.execute("SELECT current_price FROM coins") as cursor:
            row = await cursor.fetchone()
        assert row[0] == "0.00000001"
        got = await store.get_snapshot("1")
        assert got.current_price == Decimal("0.00000001")

    async def test_absent_fields_stay_absent(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(max_supply=None, volume_change_24h=None))
        got = await store.get_snapshot("1")
        assert got.max_supply is None
        assert got.volume_change_24h is None

    async def test_duplicate_slug_rejected(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(id="1", slug="dup"))
        with pytest.raises(StorageError) as exc_info:
            await store.upsert_snapshot(make_snapshot(id="2", slug="dup"))
        assert exc_info.value.context["operation"] == "upsert"
        # The store is still usable after the failed write
        await store.upsert_snapshot(make_snapshot(id="2", slug="other"))
        assert (await store.get_statistics())["coins"] == 2


class TestTopByMarketCap:
    async def test_ordering_and_limit(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(id="1", slug="a", market_cap=Decimal("3000")))
        await store.upsert_snapshot(make_snapshot(id="2", slug="b", market_cap=Decimal("1000")))
        await store.upsert_snapshot(make_snapshot(id="3", slug="c", market_cap=Decimal("2000")))
        top = await store.top_by_market_cap(2)
        assert [c.slug for c in top] == ["a", "c"]

    async def test_numeric_not_lexical_order(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(id="1", slug="small", market_cap=Decimal("9")))
        await store.upsert_snapshot(make_snapshot(id="2", slug="big", market_cap=Decimal("10")))
        top = await store.top_by_market_cap(2)
        assert [c.slug for c in top] == ["big", "small"]

    async def test_ties_break_by_id(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(id="2", slug="b", market_cap=Decimal("5")))
        await store.upsert_snapshot(make_snapshot(id="1", slug="a", market_cap=Decimal("5")))
        top = await store.top_by_market_cap(10)
        assert [c.id for c in top] == ["1", "2"]

    async def test_empty(self, store):
        assert await store.top_by_market_cap(30) == []


# --- History ---


class TestHistory:
    async def test_append_requires_coin(self, store):
        with pytest.raises(StorageError) as exc_info:
            await store.append_history("404", Decimal("1"), T0)
        assert exc_info.value.context["table"] == "price_history"

    async def test_append_and_get_oldest_first(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot())
        await store.append_history("1", Decimal("3"), _at(2))
        await store.append_history("1", Decimal("1"), _at(0))
        await store.append_history("1", Decimal("2"), _at(1))
        history = await store.get_history("1")
        assert [p.price for p in history] == [Decimal("1"), Decimal("2"), Decimal("3")]
        assert history[0].timestamp == _at(0)

    async def test_same_timestamp_kept_in_insertion_order(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot())
        await store.append_history("1", Decimal("1"), T0)
        await store.append_history("1", Decimal("2"), T0)
        history = await store.get_history("1")
        assert [p.price for p in history] == [Decimal("1"), Decimal("2")]

    async def test_history_price_exact(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot())
        await store.append_history("1", Decimal("0.10000000000000000555"), T0)
        [point] = await store.get_history("1")
        assert str(point.price) == "0.10000000000000000555"

    async def test_tiny_history_price_stored_positionally(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot())
        await store.append_history("1", Decimal("0.00000001"), T0)
        async with store._db.execute("SELECT price FROM price_history") as cursor:
            row = await cursor.fetchone()
        assert row[0] == "0.00000001"

    async def test_get_history_unknown_coin(self, store):
        assert await store.get_history("404") == []


class TestRecentHistory:
    async def test_window_bounds_each_coin(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(id="1", slug="a"))
        await store.upsert_snapshot(make_snapshot(id="2", slug="b"))
        for i in range(10):
            await store.append_history("1", Decimal(i), _at(i))
        for i in range(2):
            await store.append_history("2", Decimal(100 + i), _at(i))

        result = await store.recent_history(["1", "2"], 3)
        assert [p.price for p in result["1"]] == [Decimal(7), Decimal(8), Decimal(9)]
        assert [p.price for p in result["2"]] == [Decimal(100), Decimal(101)]

    async def test_coins_without_history_absent(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(id="1", slug="a"))
        assert await store.recent_history(["1"], 5) == {}

    async def test_only_requested_coins(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot(id="1", slug="a"))
        await store.upsert_snapshot(make_snapshot(id="2", slug="b"))
        await store.append_history("1", Decimal("1"), T0)
        await store.append_history("2", Decimal("2"), T0)
        assert set(await store.recent_history(["2"], 5)) == {"2"}

    async def test_empty_id_list(self, store):
        assert await store.recent_history([], 5) == {}


# --- Statistics / Health ---


class TestStatistics:
    async def test_empty(self, store):
        stats = await store.get_statistics()
        assert stats == {"coins": 0, "history_entries": 0, "latest_observation": None}

    async def test_counts(self, store, make_snapshot):
        await store.upsert_snapshot(make_snapshot())
        await store.append_history("1", Decimal("1"), _at(0))
        await store.append_history("1", Decimal("2"), _at(3))
        stats = await store.get_statistics()
        assert stats["coins"] == 1
        assert stats["history_entries"] == 2
        assert stats["latest_observation"] == _at(3)


class TestHealthCheck:
    async def test_healthy(self, store):
        assert await store.health_check() is True

    async def test_closed_store_unhealthy(self):
        s = await create_store(StorageConfig(sqlite_path=":memory:"))
        await s.close()
        assert await s.health_check() is False
