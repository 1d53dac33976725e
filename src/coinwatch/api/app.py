"""FastAPI application factory."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from coinwatch.api.deps import AppState
from coinwatch.api.routes import router
from coinwatch.core.config import CoinwatchConfig, load_config
from coinwatch.core.exceptions import (
    CoinwatchError,
    ConfigError,
    NotFoundError,
    StorageError,
)
from coinwatch.ingestion.client import CoinMarketCapClient
from coinwatch.ingestion.cycle import IngestionCycle
from coinwatch.ingestion.scheduler import Poller
from coinwatch.ingestion.store import create_store
from coinwatch.query.service import QueryService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup/shutdown lifecycle."""
    config = app.state._pending_config or load_config()
    if config.poller.enabled and not config.provider.api_key:
        raise ConfigError(
            "provider.api_key is required when the poller is enabled "
            "(set COINWATCH_PROVIDER__API_KEY or poller.enabled: false)",
            context={"field": "provider.api_key"},
        )

    store = await create_store(config.storage)
    query = QueryService(store, history_window=config.query.history_window)

    client: CoinMarketCapClient | None = None
    poller: Poller | None = None
    if config.poller.enabled:
        client = CoinMarketCapClient(config.provider)
        cycle = IngestionCycle(
            client,
            store,
            convert=config.provider.convert,
            limit=config.provider.limit,
        )
        poller = Poller(cycle, interval_seconds=config.poller.interval_seconds).start()
    else:
        logger.info("Poller disabled; serving stored data only")

    app.state.app_state = AppState(
        config=config, store=store, query=query, poller=poller
    )

    yield

    if poller is not None:
        poller.stop()
        await poller.wait_idle()
    if client is not None:
        await client.close()
    await store.close()


def create_app(config: CoinwatchConfig | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    import coinwatch

    app = FastAPI(
        title="coinwatch API",
        description="Cryptocurrency listings with recent price history",
        version=coinwatch.__version__,
        lifespan=lifespan,
    )

    # Stash config so lifespan can retrieve it
    app.state._pending_config = config

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    # Exception handlers
    @app.exception_handler(CoinwatchError)
    async def coinwatch_exception_handler(request: Request, exc: CoinwatchError):
        status_map = {
            NotFoundError: 404,
            StorageError: 500,
        }
        status = status_map.get(type(exc), 500)
        if status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status,
            content={"error": type(exc).__name__, "detail": str(exc)},
        )

    return app
