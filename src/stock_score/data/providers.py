"""Provider interfaces and per-market routing."""

import asyncio
import logging
import re
from collections.abc import Awaitable, Coroutine
from typing import Any, Protocol, TypeVar

from stock_score.data.cache import CachedMarketDataProvider, ProviderCache
from stock_score.data.twse import TWSEChipDataProvider, TWSEClient, TWSEFundamentalDataProvider
from stock_score.data.yahoo import YahooFundamentalDataProvider, YahooMarketDataProvider
from stock_score.errors import AnalysisCancelledError
from stock_score.models import FundamentalData, MarketData, MarketRegion

logger = logging.getLogger(__name__)

T = TypeVar("T")

# TW codes: 4-6 digits, optionally ending with a letter (e.g. "2330", "00878", "2881A")
TW_STOCK_PATTERN = re.compile(r"^\d{4,6}[A-Za-z]?$")


class MarketDataProvider(Protocol):
    """Price history; raises ProviderError (or a transport error) on failure."""

    async def fetch(self, stock_code: str) -> MarketData: ...


class ChipDataProvider(Protocol):
    """Returns MarketData with chips set; unknown fields stay None."""

    async def fetch(self, stock_code: str) -> MarketData: ...


class FundamentalDataProvider(Protocol):
    async def fetch(self, stock_code: str) -> FundamentalData | None: ...

    def enrich_with_market_price(self, data: FundamentalData, latest_close: float) -> FundamentalData:
        """Derive price-dependent ratios; providers that report ratios return data unchanged."""
        ...


async def fetch_recovered(fetch: Awaitable[T], label: str, stock_code: str) -> T | None:
    """
    Await an optional fetch, logging a failure and returning None instead.

    Only Exception subclasses are recovered; task cancellation propagates.
    """
    try:
        return await fetch
    except Exception as e:
        logger.warning(f"{label} fetch failed for {stock_code}, continuing without it: {type(e).__name__}: {e}")
        return None


async def fetch_all(
    stock_code: str,
    fetches: dict[str, Coroutine[Any, Any, Any]],
    cancel_event: asyncio.Event | None = None,
) -> dict[str, Any]:
    """
    Run fetches concurrently and return their results by name.

    The first failure cancels the remaining fetches and is re-raised. If
    cancel_event fires first, every pending fetch is cancelled and
    AnalysisCancelledError is raised.

    Raises:
        AnalysisCancelledError: If cancel_event was set while fetching
    """
    if not fetches:
        return {}

    tasks = {name: asyncio.create_task(coro) for name, coro in fetches.items()}
    pending = set(tasks.values())
    waiter = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
    try:
        while pending:
            watched = pending | {waiter} if waiter is not None else pending
            done, _ = await asyncio.wait(watched, return_when=asyncio.FIRST_COMPLETED)
            if waiter is not None and waiter in done:
                logger.info(f"Analysis of {stock_code} cancelled during fetch")
                raise AnalysisCancelledError(stock_code)
            for task in done:
                pending.discard(task)
                if (error := task.exception()) is not None:
                    raise error
    finally:
        for task in pending:
            task.cancel()
        if waiter is not None:
            waiter.cancel()
        # Retrieve outcomes so abandoned tasks do not log "never retrieved"
        await asyncio.gather(*tasks.values(), return_exceptions=True)

    return {name: task.result() for name, task in tasks.items()}


class MarketDataProviderFactory:
    """
    Route a stock code to the providers for its market.

    TW: Yahoo ".TW" prices, TWSE fundamentals and chips.
    US: Yahoo prices and fundamentals, no chip provider.
    """

    def __init__(self, cache: ProviderCache | None = None, twse_client: TWSEClient | None = None):
        self.cache = cache if cache is not None else ProviderCache()
        twse = twse_client or TWSEClient(cache=self.cache)

        self._market = {
            MarketRegion.TW: CachedMarketDataProvider(YahooMarketDataProvider(suffix=".TW"), self.cache, "tw-price"),
            MarketRegion.US: CachedMarketDataProvider(YahooMarketDataProvider(), self.cache, "us-price"),
        }
        self._fundamental = {
            MarketRegion.TW: TWSEFundamentalDataProvider(twse),
            MarketRegion.US: YahooFundamentalDataProvider(),
        }
        self._chip = {
            MarketRegion.TW: TWSEChipDataProvider(twse),
        }

    @staticmethod
    def detect_region(stock_code: str | None) -> MarketRegion:
        """Numeric codes are Taiwan listings; anything else is a US ticker. Blank defaults to TW."""
        if not stock_code or not stock_code.strip():
            return MarketRegion.TW
        return MarketRegion.TW if TW_STOCK_PATTERN.match(stock_code.strip()) else MarketRegion.US

    def market_provider(self, region: MarketRegion) -> MarketDataProvider:
        return self._market[region]

    def fundamental_provider(self, region: MarketRegion) -> FundamentalDataProvider:
        return self._fundamental[region]

    def chip_provider(self, region: MarketRegion) -> ChipDataProvider | None:
        return self._chip.get(region)
