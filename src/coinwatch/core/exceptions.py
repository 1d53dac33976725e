"""Custom exception hierarchy for coinwatch."""

from typing import Any


class CoinwatchError(Exception):
    """Base exception for all coinwatch errors.

    All exceptions carry an optional `context` dict for structured error
    metadata that can be logged or serialized without parsing the message.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.context = context or {}


class ConfigError(CoinwatchError):
    """Invalid or missing configuration.

    Raised by load_config() during startup. Should be treated as fatal.

    Context keys:
        field: str - the config field that failed validation
        value: Any - the invalid value (redacted for secrets)
    """


class FetchError(CoinwatchError):
    """Failed to fetch or decode the provider's listings.

    Policy: abort the current ingestion cycle. No store writes happen and
    the next scheduled cycle proceeds independently.

    Context keys:
        url: str - the URL that was being fetched
        status_code: int | None - HTTP status if a response was received
    """


class RateLimitError(FetchError):
    """Provider rate limit exceeded (HTTP 429).

    Policy: same as FetchError. The poller does not retry; the next tick will.

    Context keys:
        retry_after: int | None - seconds the provider asked us to wait
    """


class DecodeError(FetchError):
    """Provider payload is not valid JSON or does not match the listing schema.

    Context keys:
        reason: str - what was wrong with the payload
    """


class StorageError(CoinwatchError):
    """Database operation failed.

    Policy: during ingestion, log and skip the affected coin. On the read
    path, surface as a server error with no partial data.

    Context keys:
        operation: str - "upsert", "insert", "query", "migrate", etc.
        table: str - the table involved
    """


class NotFoundError(CoinwatchError):
    """A requested coin does not exist.

    Context keys:
        slug: str - the slug that was looked up
    """
