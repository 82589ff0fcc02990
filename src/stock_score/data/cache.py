"""Disk cache for provider responses."""

import logging
import os
from datetime import datetime
from typing import Any

import diskcache
import pytz

from stock_score.models import MarketData

logger = logging.getLogger(__name__)

# Provider data is published once per trading day on the exchange calendar
EXCHANGE_TZ = "Asia/Taipei"


def market_day(tz: str = EXCHANGE_TZ) -> str:
    """Current calendar day in the exchange's timezone, as YYYYMMDD."""
    return datetime.now(pytz.timezone(tz)).strftime("%Y%m%d")


class ProviderCache:
    """
    Cache raw and parsed provider responses keyed by source and day.

    Entries expire after CACHE_TTL seconds; the day in the key also stops a
    response from one trading day being served on the next.
    """

    def __init__(self, cache_dir: str | None = None, ttl: int | None = None):
        if cache_dir is None:
            cache_dir = os.environ.get("CACHE_DIR", ".cache/providers")
        self.cache: diskcache.Cache = diskcache.Cache(cache_dir)
        self._default_ttl = ttl if ttl is not None else int(os.environ.get("CACHE_TTL", "14400"))  # 4 hours

    def get(self, key: str) -> Any | None:
        return self.cache.get(key)

    def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        expire = ttl if ttl is not None else self._default_ttl
        self.cache.set(key, value, expire=expire)

    def close(self) -> None:
        self.cache.close()


class CachedMarketDataProvider:
    """
    Decorator adding a per-day cache to any market data provider.

    Only non-empty results are cached, so a transient empty response is
    retried on the next call.
    """

    def __init__(self, inner: Any, cache: ProviderCache, kind: str):
        self._inner = inner
        self._cache = cache
        self._kind = kind

    def _key(self, stock_code: str) -> str:
        return f"market:{self._kind}:{stock_code.strip().upper()}:{market_day()}"

    async def fetch(self, stock_code: str) -> MarketData:
        key = self._key(stock_code)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug(f"Cache hit for {self._kind} data of {stock_code}")
            return cached

        logger.debug(f"Cache miss for {self._kind} data of {stock_code}, fetching")
        data = await self._inner.fetch(stock_code)
        if not data.is_empty():
            self._cache.set(key, data)
        return data
