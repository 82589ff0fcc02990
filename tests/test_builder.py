"""Tests for the configurable analysis builder."""

import asyncio
import logging
from dataclasses import FrozenInstanceError

import pytest

from conftest import FakeFactory, FakeProvider
from stock_score.builder import AnalysisOptions, StockAnalysisBuilder, filter_indicators
from stock_score.errors import AnalysisCancelledError, AnalysisUsageError, RequiredDataError
from stock_score.indicators.engine import IndicatorEngine
from stock_score.models import IndicatorCategory, MarketData, MarketRegion

TECH = IndicatorCategory.TECHNICAL
CHIP = IndicatorCategory.CHIP
FUND = IndicatorCategory.FUNDAMENTAL


def _build(factory, options: AnalysisOptions, cancel_event: asyncio.Event | None = None):
    builder = StockAnalysisBuilder(factory, IndicatorEngine())
    return asyncio.run(builder.build(options, cancel_event))


class TestAnalysisOptions:
    """Tests for the immutable options value."""

    def test_with_methods_return_new_value(self) -> None:
        base = AnalysisOptions().for_stock("2330")
        changed = base.with_chip(False).with_risk(False)

        assert base.include_chip is True
        assert base.include_risk is True
        assert changed.include_chip is False
        assert changed.include_risk is False

    def test_frozen(self) -> None:
        with pytest.raises(FrozenInstanceError):
            AnalysisOptions().stock_code = "2330"  # type: ignore[misc]

    def test_for_stock_keeps_market(self) -> None:
        """A market chosen before the stock code survives for_stock()."""
        options = AnalysisOptions().for_market("US").for_stock("AAPL")
        assert options.market == MarketRegion.US

    def test_for_market_parses_string(self) -> None:
        assert AnalysisOptions().for_market("TW").market == MarketRegion.TW
        with pytest.raises(ValueError):
            AnalysisOptions().for_market("JP")

    def test_weights_merge(self) -> None:
        options = AnalysisOptions().with_weights({TECH: 0.6}).with_weights({CHIP: 0.1})

        assert dict(options.weight_overrides) == {TECH: 0.6, CHIP: 0.1}

    def test_shared_base_unaffected(self) -> None:
        """Specializing a shared base leaves it untouched."""
        base = AnalysisOptions().with_weights({TECH: 0.6})
        base.with_weights({TECH: 0.9})

        assert base.weight_overrides[TECH] == 0.6


class TestFilterIndicators:
    """Tests for category, allow-list and block-list filtering."""

    def test_block_list_wins_over_allow_list(self, make_indicator) -> None:
        indicators = [make_indicator(name=n) for n in ("RSI", "MACD", "KD")]
        kept = filter_indicators(indicators, {TECH}, allow_list=["RSI", "MACD"], block_list=["MACD"])

        assert [i.name for i in kept] == ["RSI"]

    def test_disabled_category_dropped_before_allow_list(self, make_indicator) -> None:
        indicators = [make_indicator(name="RSI"), make_indicator(name="PERatio", category=FUND)]
        kept = filter_indicators(indicators, {TECH}, allow_list=["PERatio"])

        assert kept == []

    def test_no_lists_keeps_enabled(self, make_indicator) -> None:
        indicators = [make_indicator(name="RSI"), make_indicator(name="MarginTrading", category=CHIP)]
        kept = filter_indicators(indicators, {TECH, CHIP})

        assert [i.name for i in kept] == ["RSI", "MarginTrading"]


class TestBuild:
    """Tests for StockAnalysisBuilder.build."""

    def test_full_analysis(self, tw_factory: FakeFactory) -> None:
        result = _build(tw_factory, AnalysisOptions().for_stock(" 2330 "))

        assert result.stock_code == "2330"
        assert result.market == MarketRegion.TW
        assert result.company_name == "台積電"
        assert result.latest_close == 169.0
        assert len(result.indicators) == 14
        assert result.scoring is not None
        assert result.risk is not None
        assert result.scoring.risk == result.risk
        assert [c.category for c in result.scoring.category_scores] == [TECH, CHIP, FUND]
        assert result.data_range == "2024-01-01 ~ 2024-03-10"

    def test_blank_code_is_usage_error(self, tw_factory: FakeFactory) -> None:
        """A missing stock code fails before any provider is called."""
        with pytest.raises(AnalysisUsageError):
            _build(tw_factory, AnalysisOptions())

        assert tw_factory.market.calls == []

    def test_us_stock_forces_chip_off(self, tw_factory: FakeFactory, caplog) -> None:
        """US has no chip provider, so chip analysis is disabled and echoed as such."""
        with caplog.at_level(logging.INFO, logger="stock_score.builder"):
            result = _build(tw_factory, AnalysisOptions().for_stock("AAPL"))

        assert result.market == MarketRegion.US
        assert result.configuration.include_chip is False
        assert all(i.category != CHIP for i in result.indicators)
        assert tw_factory.chip.calls == []
        assert "chip indicators disabled" in caplog.text

    def test_explicit_market_overrides_detection(self, tw_factory: FakeFactory) -> None:
        result = _build(tw_factory, AnalysisOptions().for_stock("2330").for_market(MarketRegion.US))

        assert result.market == MarketRegion.US
        assert result.configuration.include_chip is False

    def test_price_failure_is_required_data_error(self, tw_factory: FakeFactory) -> None:
        tw_factory.market.error = ConnectionError("down")

        with pytest.raises(RequiredDataError) as exc_info:
            _build(tw_factory, AnalysisOptions().for_stock("2330"))

        assert exc_info.value.stock_code == "2330"
        assert isinstance(exc_info.value.__cause__, ConnectionError)

    def test_chip_only_skips_prices(self, tw_factory: FakeFactory) -> None:
        """Chip-only analysis succeeds even when prices are unavailable."""
        tw_factory.market.error = ConnectionError("down")
        options = AnalysisOptions().for_stock("2330").with_technical(False).with_fundamental(False)

        result = _build(tw_factory, options)

        assert tw_factory.market.calls == []
        assert {i.category for i in result.indicators} == {CHIP}
        assert result.latest_close is None
        assert result.data_range == "N/A"

    def test_chip_failure_recovered(self, tw_factory: FakeFactory, caplog) -> None:
        tw_factory.chip.error = RuntimeError("TWSE down")

        with caplog.at_level(logging.WARNING, logger="stock_score.data.providers"):
            result = _build(tw_factory, AnalysisOptions().for_stock("2330"))

        assert all(i.category != CHIP for i in result.indicators)
        assert result.configuration.include_chip is True
        assert "chip fetch failed" in caplog.text

    def test_fundamental_failure_falls_back_to_price_fundamentals(
        self, tw_factory: FakeFactory, sample_fundamentals
    ) -> None:
        tw_factory.fundamental.error = RuntimeError("no data")
        tw_factory.market.data = MarketData(
            stock_code="2330",
            prices=tw_factory.market.data.prices,
            fundamentals=sample_fundamentals,
        )

        result = _build(tw_factory, AnalysisOptions().for_stock("2330"))

        assert any(i.category == FUND for i in result.indicators)

    def test_allow_and_block_lists(self, tw_factory: FakeFactory) -> None:
        options = (
            AnalysisOptions()
            .for_stock("2330")
            .only_indicators("RSI", "MACD", "PERatio")
            .exclude_indicators("MACD")
        )
        result = _build(tw_factory, options)

        assert [i.name for i in result.indicators] == ["RSI", "PERatio"]
        assert result.configuration.only_indicators == ("RSI", "MACD", "PERatio")
        assert result.configuration.exclude_indicators == ("MACD",)

    def test_nothing_survives_filtering(self, tw_factory: FakeFactory) -> None:
        """No indicators means no scoring and no risk, not an error."""
        result = _build(tw_factory, AnalysisOptions().for_stock("2330").only_indicators("Unknown"))

        assert result.indicators == ()
        assert result.scoring is None
        assert result.risk is None

    def test_scoring_disabled_risk_still_assessed(self, tw_factory: FakeFactory) -> None:
        result = _build(tw_factory, AnalysisOptions().for_stock("2330").with_scoring(False))

        assert result.scoring is None
        assert result.risk is not None

    def test_weight_overrides_applied_and_echoed(self, tw_factory: FakeFactory) -> None:
        options = AnalysisOptions().for_stock("2330").with_weights({CHIP: 0.0})
        result = _build(tw_factory, options)

        chip = next(c for c in result.scoring.category_scores if c.category == CHIP)
        assert chip.weight == 0.0
        assert result.configuration.weights[CHIP] == 0.0
        assert result.configuration.weights[TECH] == 0.5

    @pytest.mark.parametrize("weight", [-1.0, float("nan"), float("inf")])
    def test_invalid_weight_override_is_usage_error(self, tw_factory: FakeFactory, weight: float) -> None:
        """Bad weights are rejected before any provider is called."""
        with pytest.raises(AnalysisUsageError, match="Invalid weight override"):
            _build(tw_factory, AnalysisOptions().for_stock("2330").with_weights({TECH: weight}))

        assert tw_factory.market.calls == []
        assert tw_factory.chip.calls == []
        assert tw_factory.fundamental.calls == []

    def test_repeated_builds_agree(self, tw_factory: FakeFactory) -> None:
        """Identical inputs give identical indicators and scores."""
        options = AnalysisOptions().for_stock("2330")
        first = _build(tw_factory, options)
        second = _build(tw_factory, options)

        assert first.indicators == second.indicators
        assert first.scoring.overall_score == second.scoring.overall_score
        assert first.risk == second.risk


class TestCancellation:
    """Tests for cancellation through an asyncio.Event."""

    def test_already_cancelled(self, tw_factory: FakeFactory) -> None:
        event = asyncio.Event()
        event.set()

        with pytest.raises(AnalysisCancelledError):
            _build(tw_factory, AnalysisOptions().for_stock("2330"), event)

        assert tw_factory.market.calls == []

    def test_cancel_during_fetch(self, market_data: MarketData) -> None:
        """Setting the event aborts in-flight fetches instead of recovering them as absent."""

        async def scenario():
            never = asyncio.Event()
            chip = FakeProvider(block=never)
            fundamental = FakeProvider(block=never)
            factory = FakeFactory(market=FakeProvider(market_data), fundamental=fundamental, chip=chip)
            cancel = asyncio.Event()

            builder = StockAnalysisBuilder(factory, IndicatorEngine())
            task = asyncio.create_task(builder.build(AnalysisOptions().for_stock("2330"), cancel))
            await asyncio.sleep(0.01)
            cancel.set()

            with pytest.raises(AnalysisCancelledError):
                await task
            return chip, fundamental

        chip, fundamental = asyncio.run(scenario())

        assert chip.cancelled
        assert fundamental.cancelled
