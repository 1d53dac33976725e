"""Fixed-interval poller that drives the ingestion cycle."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from coinwatch.core.models import CycleReport

logger = logging.getLogger(__name__)


class Cycle(Protocol):
    async def run_once(self) -> CycleReport: ...


class Poller:
    """Run an ingestion cycle at startup and then every ``interval_seconds``.

    The poller owns two tasks: a timer loop and at most one in-flight cycle.
    A tick that fires while the previous cycle is still running is skipped,
    so cycles never overlap however slow the provider gets.

    ``start()`` is idempotent and returns the poller itself as the handle.
    ``stop()`` cancels the timer only; a cycle already running is left to
    finish. Await ``wait_idle()`` before closing the store it writes to.
    """

    def __init__(self, cycle: Cycle, interval_seconds: float = 70.0) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be > 0")
        self._cycle = cycle
        self._interval = interval_seconds
        self._timer: asyncio.Task | None = None
        self._in_flight: asyncio.Task | None = None
        self.cycles_started = 0
        self.cycles_skipped = 0
        self.last_report: CycleReport | None = None

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def in_flight(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    def start(self) -> Poller:
        """Start the timer loop. Must be called from a running event loop."""
        if self.is_running:
            logger.debug("Poller already running, ignoring start()")
            return self
        logger.info("Starting poller (interval=%ss)", self._interval)
        self._timer = asyncio.get_running_loop().create_task(
            self._tick_loop(), name="coinwatch-poller"
        )
        return self

    def stop(self) -> None:
        if self._timer is None:
            return
        self._timer.cancel()
        self._timer = None
        logger.info("Poller stopped")

    async def wait_idle(self) -> None:
        """Wait for the in-flight cycle, if any, to finish."""
        task = self._in_flight
        if task is not None and not task.done():
            await asyncio.wait([task])

    def trigger(self) -> bool:
        """Start a cycle now unless one is already running.

        Returns:
            True if a cycle was started, False if the tick was skipped.
        """
        if self.in_flight:
            self.cycles_skipped += 1
            logger.warning("Previous ingestion cycle still running, skipping tick")
            return False
        self.cycles_started += 1
        self._in_flight = asyncio.get_running_loop().create_task(
            self._run_cycle(), name=f"coinwatch-cycle-{self.cycles_started}"
        )
        return True

    async def _tick_loop(self) -> None:
        while True:
            self.trigger()
            await asyncio.sleep(self._interval)

    async def _run_cycle(self) -> None:
        try:
            report = await self._cycle.run_once()
        except Exception:
            # run_once reports fetch and storage failures itself; anything
            # reaching here is a bug, and the next tick still runs.
            logger.exception("Ingestion cycle crashed")
            return
        self.last_report = report
