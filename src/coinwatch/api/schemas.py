"""API-specific request/response schemas (Pydantic v2).

Amount fields serialize as positional decimal strings, so the stored text
reaches the client unchanged.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from coinwatch.core.models import Amount, CoinHistory, CycleReport


# -- Error --


class ErrorResponse(BaseModel):
    """Standard error envelope."""

    error: str
    detail: str | None = None


# -- Coins --


class HistoryPointResponse(BaseModel):
    price: Amount
    timestamp: datetime


class CoinResponse(BaseModel):
    """Current snapshot of one coin."""

    id: str
    name: str
    symbol: str
    slug: str
    date_added: datetime
    max_supply: Amount | None = None
    circulating_supply: Amount | None = None
    cmc_rank: int
    current_price: Amount
    volume_24h: Amount
    volume_change_24h: Amount | None = None
    market_cap: Amount
    percent_change_1h: Amount | None = None
    percent_change_24h: Amount | None = None
    percent_change_7d: Amount | None = None
    percent_change_30d: Amount | None = None
    percent_change_60d: Amount | None = None
    percent_change_90d: Amount | None = None
    last_updated: datetime


class RankedCoinResponse(CoinResponse):
    """Snapshot plus its recent, bounded price trend."""

    history: list[HistoryPointResponse]

    @classmethod
    def from_history(cls, item: CoinHistory) -> RankedCoinResponse:
        return cls(
            **item.coin.model_dump(),
            history=[HistoryPointResponse(**p.model_dump()) for p in item.history],
        )


class CoinListResponse(BaseModel):
    """Response for GET /api/currencies."""

    coins: list[RankedCoinResponse]


class CoinDetailResponse(BaseModel):
    """Response for GET /api/currencies/{slug}."""

    coin: CoinResponse
    history: list[HistoryPointResponse]

    @classmethod
    def from_history(cls, item: CoinHistory) -> CoinDetailResponse:
        return cls(
            coin=CoinResponse(**item.coin.model_dump()),
            history=[HistoryPointResponse(**p.model_dump()) for p in item.history],
        )


# -- Health --


class CycleSummary(BaseModel):
    started_at: datetime
    finished_at: datetime
    fetched: int
    succeeded: int
    failed: int
    error: str | None = None

    @classmethod
    def from_report(cls, report: CycleReport) -> CycleSummary:
        return cls(
            started_at=report.started_at,
            finished_at=report.finished_at,
            fetched=report.fetched,
            succeeded=report.succeeded,
            failed=report.failed,
            error=report.error,
        )


class PollerStatus(BaseModel):
    enabled: bool
    running: bool = False
    in_flight: bool = False
    interval_seconds: float | None = None
    cycles_started: int = 0
    cycles_skipped: int = 0
    last_cycle: CycleSummary | None = None


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    version: str
    coins: int
    history_entries: int
    latest_observation: datetime | None = None
    poller: PollerStatus
