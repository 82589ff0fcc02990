"""Process-wide provider factory and indicator engine used by the tools."""

from stock_score.data.providers import MarketDataProviderFactory
from stock_score.indicators.engine import IndicatorEngine

_factory: MarketDataProviderFactory | None = None
_engine: IndicatorEngine | None = None


def get_factory() -> MarketDataProviderFactory:
    """Create the factory (and its disk cache) on first use."""
    global _factory
    if _factory is None:
        _factory = MarketDataProviderFactory()
    return _factory


def get_engine() -> IndicatorEngine:
    global _engine
    if _engine is None:
        _engine = IndicatorEngine()
    return _engine


def close_shared() -> None:
    """Release the disk cache; the next call to get_factory() reopens it."""
    global _factory
    if _factory is not None:
        _factory.cache.close()
        _factory = None
