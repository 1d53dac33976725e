"""Read-side queries: the ranked dashboard list and the single-coin detail."""

from __future__ import annotations

import logging

from coinwatch.core.exceptions import NotFoundError
from coinwatch.core.models import CoinHistory, Slug
from coinwatch.ingestion.store import StorageProtocol

logger = logging.getLogger(__name__)


class QueryService:
    """Answers the two read patterns over the snapshot and history tables.

    Read-only. Storage errors propagate as StorageError with no partial data.
    """

    def __init__(self, store: StorageProtocol, history_window: int = 60) -> None:
        if history_window < 1:
            raise ValueError("history_window must be >= 1")
        self._store = store
        self._window = history_window

    @property
    def history_window(self) -> int:
        return self._window

    async def top_ranked(self, n: int) -> list[CoinHistory]:
        """Top ``n`` coins by market cap, each with its recent price trend.

        Each coin carries at most ``history_window`` of its most recent
        entries, oldest first. The history for all coins comes from a single
        store query.

        Returns:
            Coins in descending market-cap order; empty if nothing is stored.
        """
        if n < 1:
            raise ValueError(f"n must be >= 1, got {n}")

        coins = await self._store.top_by_market_cap(n)
        if not coins:
            return []

        history = await self._store.recent_history(
            [c.id for c in coins], self._window
        )
        return [CoinHistory(coin=c, history=history.get(c.id, [])) for c in coins]

    async def asset_detail(self, slug: Slug) -> CoinHistory:
        """One coin with its complete price history, oldest first.

        Raises:
            NotFoundError: No coin has this slug.
        """
        coin = await self._store.get_snapshot_by_slug(slug)
        if coin is None:
            raise NotFoundError(
                f'No data found for "{slug}"', context={"slug": slug}
            )
        history = await self._store.get_history(coin.id)
        logger.debug("Loaded %d history entries for %s", len(history), slug)
        return CoinHistory(coin=coin, history=history)
