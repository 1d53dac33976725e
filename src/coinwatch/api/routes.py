"""FastAPI route definitions for the coinwatch API."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

import coinwatch
from coinwatch.api.deps import AppState, get_app_state, get_config, get_query
from coinwatch.api.schemas import (
    CoinDetailResponse,
    CoinListResponse,
    CycleSummary,
    ErrorResponse,
    HealthResponse,
    PollerStatus,
    RankedCoinResponse,
)
from coinwatch.core.config import CoinwatchConfig
from coinwatch.query.service import QueryService

router = APIRouter()


# -- Health --


@router.get("/health", response_model=HealthResponse)
async def health_check(state: AppState = Depends(get_app_state)):
    """Storage statistics and poller state."""
    stats = await state.store.get_statistics()

    poller = state.poller
    if poller is None:
        poller_status = PollerStatus(enabled=False)
    else:
        poller_status = PollerStatus(
            enabled=True,
            running=poller.is_running,
            in_flight=poller.in_flight,
            interval_seconds=poller.interval_seconds,
            cycles_started=poller.cycles_started,
            cycles_skipped=poller.cycles_skipped,
            last_cycle=(
                CycleSummary.from_report(poller.last_report)
                if poller.last_report
                else None
            ),
        )

    return HealthResponse(
        status="ok",
        version=coinwatch.__version__,
        coins=stats["coins"],
        history_entries=stats["history_entries"],
        latest_observation=stats["latest_observation"],
        poller=poller_status,
    )


# -- Currencies --


@router.get(
    "/currencies",
    response_model=CoinListResponse,
    responses={500: {"model": ErrorResponse}},
)
async def list_currencies(
    limit: int | None = Query(None, ge=1, le=5000, description="Number of coins"),
    query: QueryService = Depends(get_query),
    config: CoinwatchConfig = Depends(get_config),
):
    """Top coins by market cap, each with its recent price history."""
    ranked = await query.top_ranked(limit or config.query.page_size)
    return CoinListResponse(coins=[RankedCoinResponse.from_history(c) for c in ranked])


@router.get(
    "/currencies/{slug}",
    response_model=CoinDetailResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def get_currency(
    slug: str,
    query: QueryService = Depends(get_query),
):
    """One coin's current snapshot with its complete price history."""
    slug = slug.strip()
    if not slug:
        raise HTTPException(status_code=400, detail="Coin slug parameter is required")

    detail = await query.asset_detail(slug)
    return CoinDetailResponse.from_history(detail)
