"""One fetch-and-merge pass over the provider's ranked listings."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from coinwatch.core.exceptions import FetchError, StorageError
from coinwatch.core.models import CoinSnapshot, CycleReport, Listing
from coinwatch.ingestion.store import StorageProtocol

logger = logging.getLogger(__name__)


@runtime_checkable
class ListingsSource(Protocol):
    """Anything that can produce one batch of decoded listings."""

    async def fetch_latest(
        self, limit: int | None = None, convert: str | None = None
    ) -> list[Listing]: ...


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


class IngestionCycle:
    """Fetch the latest listings once and merge them into the store.

    For every listing the coin snapshot is upserted first, then exactly one
    price history entry is appended. A storage failure on one coin is logged
    and recorded in the report; the remaining coins are still processed.
    A fetch failure aborts the cycle before anything is written.
    """

    def __init__(
        self,
        client: ListingsSource,
        store: StorageProtocol,
        convert: str = "USD",
        limit: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._store = store
        self._convert = convert.upper()
        self._limit = limit
        self._clock = clock

    async def run_once(self) -> CycleReport:
        """Run one cycle. Never raises for fetch or per-coin storage errors."""
        started_at = self._clock()

        try:
            listings = await self._client.fetch_latest(
                limit=self._limit, convert=self._convert
            )
        except FetchError as e:
            logger.error("Ingestion cycle aborted, fetch failed: %s", e)
            return CycleReport(
                started_at=started_at,
                finished_at=self._clock(),
                error=str(e),
            )

        observed_at = self._clock()
        succeeded = 0
        failed_ids: list[str] = []

        for listing in listings:
            try:
                await self._merge(listing, observed_at)
                succeeded += 1
            except (StorageError, ValueError) as e:
                failed_ids.append(listing.coin_id)
                logger.error(
                    "Error processing coin %s (id=%s): %s",
                    listing.name, listing.coin_id, e,
                )

        report = CycleReport(
            started_at=started_at,
            finished_at=self._clock(),
            fetched=len(listings),
            succeeded=succeeded,
            failed_ids=failed_ids,
        )
        logger.info(
            "Updated %d/%d coins in %.2fs%s",
            report.succeeded, report.fetched, report.duration_seconds,
            f" ({report.failed} failed)" if report.failed else "",
        )
        return report

    async def _merge(self, listing: Listing, observed_at: datetime) -> None:
        snapshot = CoinSnapshot.from_listing(listing, self._convert, observed_at)
        await self._store.upsert_snapshot(snapshot)
        await self._store.append_history(
            snapshot.id, snapshot.current_price, observed_at
        )
