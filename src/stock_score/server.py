"""Stock Score MCP Server using FastMCP."""

import json
import logging
import os

from fastmcp import FastMCP

from stock_score import SCHEMA_VERSION, SERVER_VERSION
from stock_score.data import shutdown_executor
from stock_score.tools import analyze_stock, score_stock
from stock_score.tools.shared import close_shared

# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, log_level, logging.INFO))
logger = logging.getLogger(__name__)

# Create FastMCP server instance
mcp = FastMCP(
    name="stock-score",
)


# ============================================================================
# TOOLS
# ============================================================================


@mcp.tool
async def get_stock_score(stock_code: str) -> str:
    """
    Score a Taiwan or US stock from 0 to 100 using every available indicator.

    Taiwan codes (e.g. 2330, 00878) use technical, chip (margin trading,
    foreign holding, director pledges) and fundamental indicators. US tickers
    (e.g. AAPL) use technical and fundamental indicators.

    Args:
        stock_code: Taiwan stock code or US ticker symbol

    Returns:
        JSON with overall score and direction, per-category scores,
        every indicator's signal, a recommendation and a risk assessment
    """
    result = await score_stock(stock_code=stock_code)
    return json.dumps(result, indent=2, default=str, ensure_ascii=False)


@mcp.tool
async def analyze(
    stock_code: str,
    market: str | None = None,
    include_technical: bool = True,
    include_chip: bool = True,
    include_fundamental: bool = True,
    include_scoring: bool = True,
    include_risk: bool = True,
    only: list[str] | None = None,
    exclude: list[str] | None = None,
    technical_weight: float | None = None,
    chip_weight: float | None = None,
    fundamental_weight: float | None = None,
) -> str:
    """
    Configurable stock analysis.

    Choose indicator categories, restrict or drop individual indicators by
    name (MA, RSI, MACD, KD, BollingerBands, VolumeRatio, MarginTrading,
    ForeignHolding, DirectorPledge, PERatio, PBRatio, DividendYield, EPS,
    RevenueGrowth) and override category weights for this call.

    Args:
        stock_code: Taiwan stock code or US ticker symbol
        market: "TW" or "US"; detected from the code when omitted
        include_technical: Include technical indicators (default: true)
        include_chip: Include chip indicators, Taiwan only (default: true)
        include_fundamental: Include fundamental indicators (default: true)
        include_scoring: Include category and overall scores (default: true)
        include_risk: Include risk assessment (default: true)
        only: Keep only these indicators
        exclude: Drop these indicators, even if listed in only
        technical_weight: Technical category weight override
        chip_weight: Chip category weight override
        fundamental_weight: Fundamental category weight override

    Returns:
        JSON with indicators, optional scoring and risk, and the effective configuration
    """
    result = await analyze_stock(
        stock_code=stock_code,
        market=market,
        include_technical=include_technical,
        include_chip=include_chip,
        include_fundamental=include_fundamental,
        include_scoring=include_scoring,
        include_risk=include_risk,
        only=only,
        exclude=exclude,
        technical_weight=technical_weight,
        chip_weight=chip_weight,
        fundamental_weight=fundamental_weight,
    )
    return json.dumps(result, indent=2, default=str, ensure_ascii=False)


# ============================================================================
# ENTRY POINT
# ============================================================================


def main() -> None:
    """Run the MCP server."""
    logger.info(f"Starting Stock Score MCP Server v{SERVER_VERSION} (schema v{SCHEMA_VERSION})")
    try:
        mcp.run()
    finally:
        close_shared()
        shutdown_executor()


if __name__ == "__main__":
    main()
