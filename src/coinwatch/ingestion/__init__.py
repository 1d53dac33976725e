"""Listing ingestion: provider client, storage, cycle, and poller."""

from coinwatch.ingestion.client import CoinMarketCapClient
from coinwatch.ingestion.cycle import IngestionCycle, ListingsSource
from coinwatch.ingestion.scheduler import Poller
from coinwatch.ingestion.store import SqliteStore, StorageProtocol, create_store

__all__ = [
    "CoinMarketCapClient",
    "IngestionCycle",
    "ListingsSource",
    "Poller",
    "SqliteStore",
    "StorageProtocol",
    "create_store",
]
