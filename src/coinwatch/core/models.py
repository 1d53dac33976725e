"""Pydantic data models - the system's type contracts."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated

from pydantic import BaseModel, ConfigDict, PlainSerializer, field_validator

# --- Type Aliases ---

CoinId = str
Slug = str
Currency = str


def plain_decimal(value: Decimal) -> str:
    """Positional decimal text; never scientific notation (1E-8)."""
    return format(value, "f")


# Serializes to positional text in JSON mode, stays a Decimal in python mode
Amount = Annotated[
    Decimal, PlainSerializer(plain_decimal, return_type=str, when_used="json")
]


def present(value: Decimal | None) -> Decimal | None:
    """Map the provider's null/zero sentinels to None."""
    if value is None or value == 0:
        return None
    return value


# --- Provider Models ---


class ListingQuote(BaseModel):
    """Market figures for one listing, denominated in one currency."""

    model_config = ConfigDict(frozen=True)

    price: Decimal
    volume_24h: Decimal
    volume_change_24h: Decimal | None = None
    percent_change_1h: Decimal | None = None
    percent_change_24h: Decimal | None = None
    percent_change_7d: Decimal | None = None
    percent_change_30d: Decimal | None = None
    percent_change_60d: Decimal | None = None
    percent_change_90d: Decimal | None = None
    market_cap: Decimal
    last_updated: datetime | None = None


class Listing(BaseModel):
    """One entry of the provider's ranked listings.

    Unknown fields (tags, platform, ...) are ignored; every field declared
    without a default is required and a payload missing one fails to decode.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    symbol: str
    slug: Slug
    cmc_rank: int
    date_added: datetime
    circulating_supply: Decimal | None = None
    max_supply: Decimal | None = None
    quote: dict[Currency, ListingQuote]

    @field_validator("slug")
    @classmethod
    def slug_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("slug must not be blank")
        return v

    @property
    def coin_id(self) -> CoinId:
        """Stable external identifier, as stored."""
        return str(self.id)

    def quote_in(self, currency: Currency) -> ListingQuote | None:
        """Return the quote for a currency, or None if the provider omitted it."""
        return self.quote.get(currency.upper())


class ListingsStatus(BaseModel):
    """The provider's status block."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime | None = None
    error_code: int = 0
    error_message: str | None = None
    elapsed: int | None = None
    credit_count: int | None = None
    notice: str | None = None


class ListingsResponse(BaseModel):
    """Envelope returned by the listings endpoint."""

    model_config = ConfigDict(frozen=True)

    status: ListingsStatus
    data: list[Listing]


# --- Stored Models ---


class CoinSnapshot(BaseModel):
    """Latest known state of one coin - one row per coin id."""

    model_config = ConfigDict(frozen=True)

    id: CoinId
    name: str
    symbol: str
    slug: Slug
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

    @field_validator("cmc_rank")
    @classmethod
    def rank_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"cmc_rank must be >= 1, got {v}")
        return v

    @classmethod
    def from_listing(
        cls, listing: Listing, currency: Currency, observed_at: datetime
    ) -> CoinSnapshot:
        """Build a snapshot from a decoded listing.

        Raises:
            ValueError: If the listing has no quote in ``currency``.
        """
        q = listing.quote_in(currency)
        if q is None:
            raise ValueError(
                f"Listing {listing.slug!r} has no quote in {currency.upper()}"
            )
        return cls(
            id=listing.coin_id,
            name=listing.name,
            symbol=listing.symbol,
            slug=listing.slug,
            date_added=listing.date_added,
            max_supply=present(listing.max_supply),
            circulating_supply=present(listing.circulating_supply),
            cmc_rank=listing.cmc_rank,
            current_price=q.price,
            volume_24h=q.volume_24h,
            volume_change_24h=present(q.volume_change_24h),
            market_cap=q.market_cap,
            percent_change_1h=present(q.percent_change_1h),
            percent_change_24h=present(q.percent_change_24h),
            percent_change_7d=present(q.percent_change_7d),
            percent_change_30d=present(q.percent_change_30d),
            percent_change_60d=present(q.percent_change_60d),
            percent_change_90d=present(q.percent_change_90d),
            last_updated=observed_at,
        )


class HistoryPoint(BaseModel):
    """One recorded price observation."""

    model_config = ConfigDict(frozen=True)

    price: Amount
    timestamp: datetime


class CoinHistory(BaseModel):
    """A coin snapshot together with (some of) its price history, oldest first."""

    model_config = ConfigDict(frozen=True)

    coin: CoinSnapshot
    history: list[HistoryPoint]


# --- Ingestion Models ---


class CycleReport(BaseModel):
    """Outcome of one ingestion cycle."""

    model_config = ConfigDict(frozen=True)

    started_at: datetime
    finished_at: datetime
    fetched: int = 0
    succeeded: int = 0
    failed_ids: list[CoinId] = []
    error: str | None = None

    @property
    def ok(self) -> bool:
        """False only when the cycle aborted before writing anything."""
        return self.error is None

    @property
    def failed(self) -> int:
        return len(self.failed_ids)

    @property
    def duration_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()
