"""Rate-limited async HTTP client for the CoinMarketCap listings API."""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal

import httpx
from aiolimiter import AsyncLimiter
from pydantic import ValidationError

from coinwatch.core.config import ProviderConfig
from coinwatch.core.exceptions import DecodeError, FetchError, RateLimitError
from coinwatch.core.models import Listing, ListingsResponse

logger = logging.getLogger(__name__)

_LISTINGS_PATH = "/v1/cryptocurrency/listings/latest"


class CoinMarketCapClient:
    """Rate-limited async client for the CoinMarketCap listings endpoint.

    CoinMarketCap enforces per-minute call limits per API key (30/min on the
    basic plan). Calls are throttled locally with a token bucket so a
    misconfigured interval cannot burn through the quota.

    Every failure mode (connection error, timeout, non-2xx status, provider
    error code, malformed payload) surfaces as a single FetchError. There is
    no partial result and no retry; the poller's next tick is the retry.

    Use via `async with CoinMarketCapClient(...) as client:`.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self._config = config
        self._limiter = AsyncLimiter(
            max_rate=config.rate_limit, time_period=config.rate_period
        )
        headers = {"Accept": "application/json"}
        if config.api_key:
            headers["X-CMC_PRO_API_KEY"] = config.api_key
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=httpx.Timeout(config.request_timeout),
        )
        self._url = config.base_url.rstrip("/") + _LISTINGS_PATH

    async def __aenter__(self) -> CoinMarketCapClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the underlying HTTP client. Called automatically by __aexit__."""
        await self._client.aclose()

    @property
    def url(self) -> str:
        return self._url

    async def fetch_latest(
        self,
        limit: int | None = None,
        convert: str | None = None,
    ) -> list[Listing]:
        """Fetch the current top listings ranked by market cap.

        Args:
            limit: Number of listings to request. Default: config.limit.
            convert: Quote currency. Default: config.convert.

        Returns:
            Decoded listings, each guaranteed to carry a quote in ``convert``.
            Numeric fields are Decimals built from the exact JSON text.

        Raises:
            RateLimitError: HTTP 429.
            DecodeError: Body is not JSON or does not match the listing schema.
            FetchError: Any other transport failure, non-2xx status, or
                provider-reported error code.
        """
        limit = limit or self._config.limit
        currency = (convert or self._config.convert).upper()
        params = {"start": "1", "limit": str(limit), "convert": currency}

        response = await self._rate_limited_get(params)
        envelope = self._decode(response)

        if envelope.status.error_code:
            raise FetchError(
                f"Provider error {envelope.status.error_code}: "
                f"{envelope.status.error_message}",
                context={"url": self._url, "error_code": envelope.status.error_code},
            )

        missing = [
            listing.slug
            for listing in envelope.data
            if listing.quote_in(currency) is None
        ]
        if missing:
            raise DecodeError(
                f"{len(missing)} listing(s) missing a {currency} quote",
                context={"url": self._url, "reason": "missing_quote", "slugs": missing},
            )

        logger.debug(
            "Fetched %d listings (credits=%s)",
            len(envelope.data), envelope.status.credit_count,
        )
        return envelope.data

    # --- Transport ---

    async def _rate_limited_get(self, params: dict[str, str]) -> httpx.Response:
        """Send one GET through the token bucket and check the status.

        Returns:
            httpx.Response with a 2xx status.
        """
        try:
            await self._limiter.acquire()
            # httpx timeouts apply per phase; this bounds the whole request
            async with asyncio.timeout(self._config.request_timeout):
                response = await self._client.get(self._url, params=params)
        except (httpx.TimeoutException, TimeoutError) as e:
            raise FetchError(
                f"Timed out after {self._config.request_timeout}s: {self._url}",
                context={"url": self._url, "error": str(e)},
            ) from e
        except httpx.HTTPError as e:
            raise FetchError(
                f"Request failed: {self._url}: {e}",
                context={"url": self._url, "error": str(e)},
            ) from e

        if response.status_code == 429:
            retry_after = _retry_after(response)
            raise RateLimitError(
                f"Rate limit exceeded (429) on {self._url}",
                context={"url": self._url, "status_code": 429, "retry_after": retry_after},
            )

        if not response.is_success:
            raise FetchError(
                f"HTTP {response.status_code} from {self._url}: {_error_message(response)}",
                context={"url": self._url, "status_code": response.status_code},
            )

        return response

    # --- Decoding ---

    def _decode(self, response: httpx.Response) -> ListingsResponse:
        """Strictly decode the listings envelope.

        Floats are parsed straight into Decimal so no value ever passes
        through binary floating point.
        """
        try:
            raw = json.loads(response.text, parse_float=Decimal)
        except ValueError as e:
            raise DecodeError(
                f"Provider returned invalid JSON: {e}",
                context={"url": self._url, "reason": "invalid_json"},
            ) from e

        try:
            return ListingsResponse.model_validate(raw)
        except ValidationError as e:
            raise DecodeError(
                f"Listings payload failed validation ({e.error_count()} error(s))",
                context={"url": self._url, "reason": str(e)},
            ) from e


def _retry_after(response: httpx.Response) -> int | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the provider's status.error_message."""
    try:
        body = response.json()
        return str(body["status"]["error_message"])
    except (ValueError, KeyError, TypeError):
        return response.reason_phrase or "no detail"
