"""Data layer for fetching and caching market, chip and fundamental data."""

from stock_score.data.cache import CachedMarketDataProvider, ProviderCache, market_day
from stock_score.data.providers import (
    ChipDataProvider,
    FundamentalDataProvider,
    MarketDataProvider,
    MarketDataProviderFactory,
    fetch_recovered,
)
from stock_score.data.twse import (
    TWSEChipDataProvider,
    TWSEClient,
    TWSEFundamentalDataProvider,
    TWSEHTTPError,
)
from stock_score.data.yahoo import (
    YahooFundamentalDataProvider,
    YahooMarketDataProvider,
    YahooNoDataError,
    YahooRetryError,
    shutdown_executor,
)

__all__ = [
    # Cache
    "CachedMarketDataProvider",
    "ProviderCache",
    "market_day",
    # Routing
    "ChipDataProvider",
    "FundamentalDataProvider",
    "MarketDataProvider",
    "MarketDataProviderFactory",
    "fetch_recovered",
    # TWSE
    "TWSEChipDataProvider",
    "TWSEClient",
    "TWSEFundamentalDataProvider",
    "TWSEHTTPError",
    # yfinance
    "YahooFundamentalDataProvider",
    "YahooMarketDataProvider",
    "YahooNoDataError",
    "YahooRetryError",
    "shutdown_executor",
]
