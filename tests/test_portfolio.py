import asyncio

import pandas as pd
import pytest

from portfolio_engine.analysis.portfolio import (
    PortfolioAnalyzer,
    aggregate,
    classify_risk,
    diversification_score,
    herfindahl_index,
    resolve_currency,
    sector_allocation,
)
from portfolio_engine.config import EngineConfig
from portfolio_engine.data.enrichment import EnrichmentStore
from portfolio_engine.data.market_data import YFinanceMarketData
from portfolio_engine.errors import AnalysisUnavailableError, MarketDataError
from portfolio_engine.models.analysis import (
    EnrichedHolding,
    RiskLevel,
    SectorAllocation,
)
from portfolio_engine.models.market import (
    BetaResult,
    BetaSource,
    HybridHolding,
    Quote,
    SecurityEnrichment,
)


class FakeProvider:
    def __init__(self, quotes: dict[str, Quote]) -> None:
        self.quotes = quotes
        self.sparkline_fails = False

    def get_quote(self, symbol: str) -> Quote:
        if symbol not in self.quotes:
            raise MarketDataError(f"No quote for {symbol}")
        return self.quotes[symbol]

    def get_monthly_closes(self, symbol, months):
        raise MarketDataError("not used")

    def get_sparkline(self, symbol: str, days: int) -> list[float]:
        if self.sparkline_fails:
            raise MarketDataError("no history")
        return [1.0] * days


class FakeQuoteClient:
    def __init__(self, info: dict) -> None:
        self.info = info

    def get_info(self) -> dict:
        return self.info

    def get_last_price(self) -> float | None:
        return None

    def get_closes(self, period: str, interval: str = "1d") -> pd.Series:
        return pd.Series(dtype=float)


class FakeFx:
    def __init__(self, rate: float) -> None:
        self.rate = rate
        self.calls = 0

    def get_rate(self) -> float:
        self.calls += 1
        return self.rate


class FakeBetaEngine:
    def __init__(self, beta: float = 0.9) -> None:
        self.beta = beta
        self.symbols: list[str] = []

    def beta_for(self, symbol: str) -> BetaResult:
        self.symbols.append(symbol)
        return BetaResult(beta=self.beta, sample_size=36, is_calculated=True)


QUOTES = {
    "AAA": Quote(
        symbol="AAA",
        name="Alpha Corp",
        price=100.0,
        currency="USD",
        change_percent=1.0,
        beta=1.5,
        sector="Technology",
    ),
    "BBB": Quote(
        symbol="BBB",
        name="Beta Bank",
        price=50.0,
        currency="ILS",
        change_percent=-2.0,
        beta=0.5,
        sector="Financial Services",
    ),
    "SPY": Quote(symbol="SPY", name="S&P 500", price=10.0, currency="USD"),
}


def make_analyzer(quotes=None, rate=4.0, **kwargs):
    provider = FakeProvider(quotes or QUOTES)
    fx = FakeFx(rate)
    kwargs.setdefault("beta_engine", FakeBetaEngine())
    analyzer = PortfolioAnalyzer(provider, fx, **kwargs)
    return analyzer, provider, fx


def positions(*pairs: tuple[str, float]) -> list[HybridHolding]:
    return [
        HybridHolding(id=f"p{i}", symbol=s, quantity=q) for i, (s, q) in enumerate(pairs)
    ]


def sectors(*percents: float) -> list[SectorAllocation]:
    return [
        SectorAllocation(sector=f"S{i}", value=p, percent=p)
        for i, p in enumerate(percents)
    ]


class TestDiversification:
    def test_empty(self):
        assert diversification_score([]) == 0

    def test_single_sector(self):
        assert diversification_score(sectors(100)) == 5

    def test_eight_equal_sectors(self):
        assert diversification_score(sectors(*[12.5] * 8)) >= 92

    def test_more_sectors_capped(self):
        assert diversification_score(sectors(*[10.0] * 10)) == 94

    def test_bounded(self):
        for n in range(1, 20):
            score = diversification_score(sectors(*[100 / n] * n))
            assert 0 <= score <= 100

    def test_herfindahl(self):
        assert herfindahl_index(sectors(50, 50)) == pytest.approx(0.5)


class TestRisk:
    @pytest.mark.parametrize(
        "beta, level",
        [
            (0.0, RiskLevel.CONSERVATIVE),
            (0.79, RiskLevel.CONSERVATIVE),
            (0.8, RiskLevel.MODERATE),
            (1.0, RiskLevel.MODERATE),
            (1.2, RiskLevel.MODERATE),
            (1.21, RiskLevel.AGGRESSIVE),
            (2.5, RiskLevel.AGGRESSIVE),
        ],
    )
    def test_thresholds(self, beta, level):
        assert classify_risk(beta) == level


def enriched(symbol: str, value: float, sector: str, beta: float = 1.0) -> EnrichedHolding:
    return EnrichedHolding(
        symbol=symbol,
        quantity=1,
        price=value,
        price_reporting=value,
        value=value,
        value_reporting=value,
        beta=beta,
        sector=sector,
    )


class TestAggregate:
    def test_sector_allocation_sorted(self):
        result = sector_allocation(
            [
                enriched("A", 100, "Bonds"),
                enriched("B", 300, "Technology"),
                enriched("C", 100, "Technology"),
            ]
        )
        assert [s.sector for s in result] == ["Technology", "Bonds"]
        assert [s.percent for s in result] == [80.0, 20.0]

    def test_weights_and_beta(self):
        analysis = aggregate(
            [enriched("A", 750, "Bonds", 0.5), enriched("B", 250, "Energy", 1.5)]
        )
        assert [h.weight for h in analysis.holdings] == [75.0, 25.0]
        assert analysis.beta == 0.75
        assert analysis.risk_level == RiskLevel.CONSERVATIVE

    def test_zero_value_holdings(self):
        analysis = aggregate([enriched("A", 0, "Bonds")])
        assert analysis.holdings[0].weight == 0
        assert analysis.beta == 0
        assert analysis.sector_allocation[0].percent == 0


class TestPortfolioAnalyzer:
    def test_empty_portfolio(self):
        analyzer, _, fx = make_analyzer()
        analysis = asyncio.run(analyzer.analyze([]))
        assert analysis.equity == 0
        assert analysis.equity_reporting == 0
        assert analysis.beta == 0
        assert analysis.diversification_score == 0
        assert analysis.risk_level == RiskLevel.MODERATE
        assert analysis.holdings == []
        assert analysis.exchange_rate == 4.0
        assert fx.calls == 1

    def test_full_analysis(self):
        analyzer, _, fx = make_analyzer()
        analysis = asyncio.run(analyzer.analyze(positions(("BBB", 20), ("AAA", 10))))

        assert fx.calls == 1
        assert analysis.exchange_rate == 4.0
        assert analysis.equity == 2000
        assert analysis.equity_reporting == 5000
        assert [h.symbol for h in analysis.holdings] == ["AAA", "BBB"]
        assert [h.weight for h in analysis.holdings] == [80.0, 20.0]
        assert analysis.beta == 1.3
        assert analysis.risk_level == RiskLevel.AGGRESSIVE
        assert analysis.daily_change_reporting == 20
        assert analysis.daily_change_percent == 0.4
        assert [(s.sector, s.percent) for s in analysis.sector_allocation] == [
            ("Technology", 80.0),
            ("Financials", 20.0),
        ]
        assert analysis.diversification_score == 29
        assert not analysis.is_partial

    def test_reporting_currency_conversion(self):
        analyzer, _, _ = make_analyzer()
        analysis = analyzer.analyze_sync(positions(("AAA", 10), ("BBB", 20)))
        aaa, bbb = analysis.holdings
        assert aaa.price_reporting == 400
        assert aaa.value_reporting == 4000
        assert bbb.price_reporting == 50
        assert bbb.value_reporting == 1000

    def test_provider_beta_preferred(self):
        beta_engine = FakeBetaEngine()
        analyzer, _, _ = make_analyzer(beta_engine=beta_engine)
        analysis = analyzer.analyze_sync(positions(("AAA", 1), ("SPY", 1)))
        by_symbol = {h.symbol: h for h in analysis.holdings}
        assert by_symbol["AAA"].beta == 1.5
        assert by_symbol["AAA"].beta_source == BetaSource.PROVIDER
        assert by_symbol["SPY"].beta == 0.9
        assert by_symbol["SPY"].beta_source == BetaSource.CALCULATED
        assert beta_engine.symbols == ["SPY"]

    def test_classifier_fills_missing_sector(self):
        analyzer, _, _ = make_analyzer()
        analysis = analyzer.analyze_sync(positions(("SPY", 5)))
        assert analysis.holdings[0].sector == "US Equity"

    def test_enrichment_override(self, tmp_path):
        store = EnrichmentStore(tmp_path / "enrichment.db")
        store.upsert(
            SecurityEnrichment(symbol="aaa", name="Alpha Override", sector="Semiconductors")
        )
        analyzer, _, _ = make_analyzer(enrichment=store)
        analysis = analyzer.analyze_sync(positions(("AAA", 1), ("BBB", 1)))
        store.close()

        by_symbol = {h.symbol: h for h in analysis.holdings}
        assert by_symbol["AAA"].name == "Alpha Override"
        assert by_symbol["AAA"].sector == "Semiconductors"
        assert by_symbol["AAA"].is_enriched
        assert not by_symbol["BBB"].is_enriched

    def test_partial_failure(self):
        analyzer, _, _ = make_analyzer()
        analysis = analyzer.analyze_sync(positions(("AAA", 10), ("BAD", 5)))
        assert [h.symbol for h in analysis.holdings] == ["AAA"]
        assert analysis.is_partial
        assert analysis.failures[0].symbol == "BAD"
        assert analysis.failures[0].holding_id == "p1"
        assert "BAD" in analysis.failures[0].reason
        assert analysis.holdings[0].weight == 100.0

    def test_all_failed(self):
        analyzer, _, _ = make_analyzer()
        with pytest.raises(AnalysisUnavailableError):
            analyzer.analyze_sync(positions(("BAD", 1), ("WORSE", 2)))

    def test_sparkline_failure_ignored(self):
        analyzer, provider, _ = make_analyzer()
        provider.sparkline_fails = True
        analysis = analyzer.analyze_sync(positions(("AAA", 1)))
        assert analysis.holdings[0].sparkline == []

    def test_sparkline_length(self):
        analyzer, _, _ = make_analyzer(config=EngineConfig(sparkline_days=5))
        analysis = analyzer.analyze_sync(positions(("AAA", 1)))
        assert len(analysis.holdings[0].sparkline) == 5

    def test_order_independent_of_input(self):
        quotes = {
            f"S{i}": Quote(symbol=f"S{i}", price=float(i + 1), currency="ILS", beta=1.0)
            for i in range(12)
        }
        holdings = positions(*[(f"S{i}", 10) for i in range(12)])
        analyzer, _, _ = make_analyzer(quotes=quotes, config=EngineConfig(max_workers=3))

        first = analyzer.analyze_sync(holdings)
        second = analyzer.analyze_sync(list(reversed(holdings)))

        expected = [f"S{i}" for i in reversed(range(12))]
        assert [h.symbol for h in first.holdings] == expected
        assert [h.symbol for h in second.holdings] == expected


class TestCurrencies:
    def test_tase_agorot_end_to_end(self):
        client = FakeQuoteClient({"currentPrice": 1000, "currency": "ILA"})
        market = YFinanceMarketData()
        market._client = lambda symbol: client
        analyzer = PortfolioAnalyzer(
            market, FakeFx(3.65), beta_engine=FakeBetaEngine()
        )

        analysis = analyzer.analyze_sync(positions(("629014", 10)))

        holding = analysis.holdings[0]
        assert holding.currency == "ILS"
        assert holding.price == 10.0
        assert analysis.equity_reporting == 100.0

    def test_tase_listing_forced_to_shekels(self):
        quotes = {"1081124.TA": Quote(symbol="1081124.TA", price=20.0, currency="USD")}
        analyzer, _, _ = make_analyzer(quotes=quotes)
        analysis = analyzer.analyze_sync(positions(("1081124.TA", 5)))
        assert analysis.holdings[0].currency == "ILS"
        assert analysis.equity_reporting == 100.0

    def test_holding_currency_used_when_quote_has_none(self):
        quotes = {"LOCAL": Quote(symbol="LOCAL", price=10.0, beta=1.0)}
        analyzer, _, _ = make_analyzer(quotes=quotes)
        holdings = [HybridHolding(symbol="LOCAL", quantity=3, currency="ILS")]
        analysis = analyzer.analyze_sync(holdings)
        assert analysis.holdings[0].currency == "ILS"
        assert analysis.equity_reporting == 30.0

    def test_default_holding_currency_converted(self):
        quotes = {"LOCAL": Quote(symbol="LOCAL", price=10.0, beta=1.0)}
        analyzer, _, _ = make_analyzer(quotes=quotes)
        analysis = analyzer.analyze_sync(positions(("LOCAL", 3)))
        assert analysis.holdings[0].currency == "USD"
        assert analysis.equity_reporting == 120.0

    def test_resolve_currency(self):
        quote = Quote(symbol="X", price=1.0, currency="EUR")
        assert resolve_currency(HybridHolding(symbol="X", quantity=1), quote) == "EUR"
        assert (
            resolve_currency(HybridHolding(symbol="629014", quantity=1), quote)
            == "ILS"
        )
