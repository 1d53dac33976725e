"""coinwatch.core: foundation types, config, and exceptions."""

from coinwatch.core.config import (
    APIConfig,
    CoinwatchConfig,
    PollerConfig,
    ProviderConfig,
    QueryConfig,
    StorageConfig,
    load_config,
)
from coinwatch.core.exceptions import (
    CoinwatchError,
    ConfigError,
    DecodeError,
    FetchError,
    NotFoundError,
    RateLimitError,
    StorageError,
)
from coinwatch.core.models import (
    Amount,
    CoinHistory,
    CoinId,
    CoinSnapshot,
    Currency,
    CycleReport,
    HistoryPoint,
    Listing,
    ListingQuote,
    ListingsResponse,
    ListingsStatus,
    Slug,
    plain_decimal,
)

__all__ = [
    # Type aliases
    "CoinId",
    "Slug",
    "Currency",
    "Amount",
    # Provider models
    "Listing",
    "ListingQuote",
    "ListingsResponse",
    "ListingsStatus",
    # Stored models
    "CoinSnapshot",
    "HistoryPoint",
    "CoinHistory",
    # Ingestion models
    "CycleReport",
    "plain_decimal",
    # Config
    "CoinwatchConfig",
    "ProviderConfig",
    "StorageConfig",
    "PollerConfig",
    "QueryConfig",
    "APIConfig",
    "load_config",
    # Exceptions
    "CoinwatchError",
    "ConfigError",
    "FetchError",
    "RateLimitError",
    "DecodeError",
    "StorageError",
    "NotFoundError",
]
