"""coinwatch: CoinMarketCap listings poller with snapshot and price-history queries."""

__version__ = "0.1.0"
