"""Taiwan Stock Exchange OpenAPI providers for chip and fundamental data."""

import asyncio
import logging
import os
import threading
from typing import Any

import requests

from stock_score.data.cache import ProviderCache, market_day
from stock_score.errors import ProviderError
from stock_score.models import ChipData, DirectorHolding, FundamentalData, MarketData, round_score

logger = logging.getLogger(__name__)

TWSE_BASE_URL = os.environ.get("TWSE_BASE_URL", "https://openapi.twse.com.tw/v1")
TWSE_TIMEOUT = float(os.environ.get("TWSE_TIMEOUT", "10"))
USER_AGENT = "stock-score-mcp/1.0"
_HEADERS = {"User-Agent": USER_AGENT, "Accept": "application/json"}

# TWSE marks unavailable values with dashes
_MISSING = {"", "-", "--", "N/A"}


class TWSEHTTPError(ProviderError):
    """Raised when a TWSE endpoint returns a non-success status or malformed body."""

    def __init__(self, path: str, message: str, status_code: int | None = None):
        super().__init__(f"TWSE {path}: {message}")
        self.path = path
        self.status_code = status_code


def parse_int(value: Any) -> int | None:
    """Parse a TWSE number like "1,234"; None for dashes, blanks or garbage."""
    if value is None:
        return None
    text = str(value).strip().replace(",", "")
    if text in _MISSING:
        return None
    try:
        return int(float(text))
    except ValueError:
        return None


def parse_float(value: Any) -> float | None:
    """Parse a TWSE decimal like "12.34" or "56.7%"; None when unavailable."""
    if value is None:
        return None
    text = str(value).strip().replace(",", "").replace("%", "").replace(" ", "")
    if text in _MISSING:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _text(row: dict[str, Any], key: str) -> str | None:
    value = row.get(key)
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _rows_for(rows: list[dict[str, Any]] | None, key: str, stock_code: str) -> list[dict[str, Any]]:
    if not rows:
        return []
    return [r for r in rows if str(r.get(key, "")).strip() == stock_code]


class TWSEClient:
    """
    Fetches TWSE OpenAPI endpoints that return a JSON array.

    Each endpoint covers every listed company, so responses are cached once
    per path per Taipei calendar day and shared by all stock codes.
    Concurrent fetches of one path share a single request. Requests run on
    the default executor, each worker thread with its own session unless
    one is injected.
    """

    def __init__(
        self,
        cache: ProviderCache | None = None,
        base_url: str = TWSE_BASE_URL,
        timeout: float = TWSE_TIMEOUT,
        session: requests.Session | None = None,
    ):
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session
        if session is not None:
            session.headers.update(_HEADERS)
        self._local = threading.local()
        # path -> in-flight fetch shared by concurrent callers
        self._inflight: dict[str, asyncio.Task] = {}

    @property
    def session(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.update(_HEADERS)
            self._local.session = session
        return session

    def _get(self, path: str) -> list[dict[str, Any]]:
        url = f"{self.base_url}/{path}"
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as e:
            raise TWSEHTTPError(path, f"request failed: {e}") from e

        if response.status_code != 200:
            raise TWSEHTTPError(path, f"returned {response.status_code}", response.status_code)

        if not response.text.strip():
            return []
        try:
            payload = response.json()
        except ValueError as e:
            raise TWSEHTTPError(path, "response is not JSON") from e
        if not isinstance(payload, list):
            raise TWSEHTTPError(path, "response is not an array")
        return payload

    async def _fetch(self, path: str, key: str) -> list[dict[str, Any]]:
        loop = asyncio.get_running_loop()
        rows = await loop.run_in_executor(None, self._get, path)

        if rows and self.cache is not None:
            self.cache.set(key, rows)
        logger.debug(f"Fetched TWSE {path} ({len(rows)} rows)")
        return rows

    async def fetch_array(self, path: str) -> list[dict[str, Any]]:
        """
        Fetch one endpoint, from cache when already fetched today.

        Callers arriving while the same path is in flight await that fetch
        through asyncio.shield(), so one cancelled caller does not cancel it
        for the others.

        Raises:
            TWSEHTTPError: On network failure, non-200 status or malformed body
        """
        key = f"twse:{path}:{market_day()}"
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Cache hit for TWSE {path}")
                return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(self._fetch(path, key))
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug(f"Joining in-flight TWSE {path}")
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            # Marks the error retrieved when every caller was cancelled
            logger.debug(f"TWSE fetch {key} failed: {task.exception()}")


class TWSEChipDataProvider:
    """
    Margin, foreign holding, SBL, insider and day-trading data from TWSE.

    Each source is fetched concurrently and recovered individually: a failing
    endpoint leaves its fields as None instead of failing the whole fetch.
    """

    def __init__(self, client: TWSEClient):
        self.client = client

    async def _recovered(self, label: str, stock_code: str, coro) -> dict[str, Any]:
        try:
            return await coro
        except Exception as e:
            logger.warning(f"Failed to fetch {label} for {stock_code}: {e}")
            return {}

    async def _margin(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("exchangeReport/MI_MARGN"), "股票代號", stock_code)
        if not rows:
            logger.debug(f"No margin data found for {stock_code}")
            return {}
        row = rows[0]
        return {
            "margin_buy_volume": parse_int(row.get("融資買進")),
            "margin_sell_volume": parse_int(row.get("融資賣出")),
            "margin_previous_balance": parse_int(row.get("融資前日餘額")),
            "margin_balance": parse_int(row.get("融資今日餘額")),
            "margin_limit": parse_int(row.get("融資限額")),
            "short_buy_volume": parse_int(row.get("融券買進")),
            "short_sell_volume": parse_int(row.get("融券賣出")),
            "short_previous_balance": parse_int(row.get("融券前日餘額")),
            "short_balance": parse_int(row.get("融券今日餘額")),
            "short_limit": parse_int(row.get("融券限額")),
            "offset_volume": parse_int(row.get("資券互抵")),
        }

    async def _foreign_holding(self, stock_code: str) -> dict[str, Any]:
        # Only the top-20 list carries per-stock percentages
        rows = _rows_for(await self.client.fetch_array("fund/MI_QFIIS_sort_20"), "Code", stock_code)
        if not rows:
            logger.debug(f"Stock {stock_code} not in foreign top-20 list")
            return {}
        row = rows[0]
        return {
            "foreign_holding_shares": parse_int(row.get("SharesHeld")),
            "foreign_holding_percentage": parse_float(row.get("SharesHeldPer")),
            "foreign_available_shares": parse_int(row.get("AvailableShare")),
            "foreign_upper_limit": parse_float(row.get("Upperlimit")),
        }

    async def _sbl(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("SBL/TWT96U"), "TWSECode", stock_code)
        if not rows:
            return {}
        return {"sbl_available_volume": parse_int(rows[0].get("TWSEAvailableVolume"))}

    async def _directors(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("opendata/t187ap11_L"), "公司代號", stock_code)
        if not rows:
            return {}

        holdings = tuple(
            DirectorHolding(
                title=_text(row, "職稱") or "",
                name=_text(row, "姓名") or "",
                current_shares=parse_int(row.get("目前持股")),
                pledged_shares=parse_int(row.get("設質股數")),
            )
            for row in rows
        )
        held = [h.current_shares for h in holdings if h.current_shares is not None]
        pledged = [h.pledged_shares for h in holdings if h.pledged_shares is not None]
        total_held = sum(held) if held else None
        total_pledged = sum(pledged) if pledged else None
        # Unknown share counts leave the ratio unknown
        ratio = None
        if total_held and total_pledged is not None:
            ratio = round_score(total_pledged / total_held * 100, 2)

        logger.debug(f"Fetched {len(holdings)} director holdings for {stock_code}, pledge ratio={ratio}%")
        return {
            "director_holdings": holdings,
            "total_director_shares": total_held,
            "total_director_pledged": total_pledged,
            "director_pledge_ratio": ratio,
        }

    async def _major_shareholders(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("opendata/t187ap02_L"), "公司代號", stock_code)
        names = tuple(name for row in rows if (name := _text(row, "大股東名稱")))
        return {"major_shareholders": names} if names else {}

    async def _day_trading(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("exchangeReport/TWTB4U"), "Code", stock_code)
        if not rows:
            return {}
        return {"day_trading_suspended": _text(rows[0], "Suspension") is not None}

    async def fetch(self, stock_code: str) -> MarketData:
        stock_code = stock_code.strip().upper()
        sources = {
            "margin data": self._margin(stock_code),
            "foreign holding data": self._foreign_holding(stock_code),
            "SBL data": self._sbl(stock_code),
            "director holdings": self._directors(stock_code),
            "major shareholders": self._major_shareholders(stock_code),
            "day trading data": self._day_trading(stock_code),
        }
        parts = await asyncio.gather(
            *(self._recovered(label, stock_code, coro) for label, coro in sources.items())
        )

        fields: dict[str, Any] = {}
        for part in parts:
            fields.update(part)

        return MarketData(stock_code=stock_code, chips=ChipData(**fields))


class TWSEFundamentalDataProvider:
    """
    Valuation (BWIBBU_d), monthly revenue (t187ap05_L) and EPS (t187ap14_L).

    TWSE already publishes ratios, so enrichment with the market price is a no-op.
    """

    def __init__(self, client: TWSEClient):
        self.client = client

    async def _valuation(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("exchangeReport/BWIBBU_d"), "Code", stock_code)
        if not rows:
            return {}
        row = rows[0]
        return {
            "pe_ratio": parse_float(row.get("PEratio")),
            "pb_ratio": parse_float(row.get("PBratio")),
            "dividend_yield": parse_float(row.get("DividendYield")),
            "fiscal_year_quarter": _text(row, "FiscalYearQuarter"),
        }

    async def _revenue(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("opendata/t187ap05_L"), "公司代號", stock_code)
        if not rows:
            return {}
        row = rows[0]
        return {
            "monthly_revenue": parse_float(row.get("營業收入-當月營收")),
            "revenue_yoy": parse_float(row.get("營業收入-去年同月增減(%)")),
            "revenue_mom": parse_float(row.get("營業收入-上月比較增減(%)")),
            "revenue_month": _text(row, "資料年月"),
        }

    async def _eps(self, stock_code: str) -> dict[str, Any]:
        rows = _rows_for(await self.client.fetch_array("opendata/t187ap14_L"), "公司代號", stock_code)
        if not rows:
            return {}
        row = rows[0]
        return {
            "eps": parse_float(row.get("基本每股盈餘(元)")),
            "operating_income": parse_float(row.get("營業利益")),
            "net_income": parse_float(row.get("稅後淨利")),
        }

    async def fetch(self, stock_code: str) -> FundamentalData | None:
        """
        Merge the three sources.

        Returns:
            FundamentalData, or None when no source had the stock
        """
        stock_code = stock_code.strip().upper()
        labels = ("valuation data", "revenue data", "EPS data")
        results = await asyncio.gather(
            self._valuation(stock_code),
            self._revenue(stock_code),
            self._eps(stock_code),
            return_exceptions=True,
        )

        fields: dict[str, Any] = {}
        for label, result in zip(labels, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                logger.warning(f"Failed to fetch {label} for {stock_code}: {result}")
                continue
            fields.update(result)

        if not fields:
            return None
        return FundamentalData(**fields)

    def enrich_with_market_price(self, data: FundamentalData, latest_close: float) -> FundamentalData:
        return data
