# Market data
"""Price feed adapters with caching and simulated fallback quotes."""

from tamic.data.providers import (
    AlphaVantageStockProvider,
    CoinGeckoCryptoProvider,
    FallbackQuoteGenerator,
    MarketDataService,
    MarketPriceSource,
    Quote,
    TTLCache,
)

__all__ = [
    "AlphaVantageStockProvider",
    "CoinGeckoCryptoProvider",
    "FallbackQuoteGenerator",
    "MarketDataService",
    "MarketPriceSource",
    "Quote",
    "TTLCache",
]
