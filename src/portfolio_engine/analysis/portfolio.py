import asyncio
import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor

from portfolio_engine.analysis.beta import BetaEngine
from portfolio_engine.config import EngineConfig
from portfolio_engine.data.enrichment import EnrichmentStore, apply_enrichment
from portfolio_engine.data.market_data import FxRateSource, MarketDataProvider
from portfolio_engine.data.sectors import (
    UNKNOWN_SECTOR,
    PatternSectorClassifier,
    SectorClassifier,
    canonical_sector,
)
from portfolio_engine.data.symbols import AssetKind, detect_asset_type, normalize_symbol
from portfolio_engine.errors import AnalysisUnavailableError
from portfolio_engine.models.analysis import (
    EnrichedHolding,
    EnrichmentFailure,
    PortfolioAnalysis,
    RiskLevel,
    SectorAllocation,
)
from portfolio_engine.models.market import (
    BetaSource,
    HybridHolding,
    Quote,
    SecurityEnrichment,
)

logger = logging.getLogger(__name__)

MAX_SECTORS_SCORED = 8
SECTOR_COUNT_POINTS = 40
CONCENTRATION_POINTS = 60


def herfindahl_index(sectors: Sequence[SectorAllocation]) -> float:
    return sum((s.percent / 100) ** 2 for s in sectors)


def diversification_score(sectors: Sequence[SectorAllocation]) -> int:
    """0-100: breadth across up to eight sectors plus low concentration."""
    if not sectors:
        return 0
    count_score = min(len(sectors) / MAX_SECTORS_SCORED, 1) * SECTOR_COUNT_POINTS
    concentration_score = (1 - herfindahl_index(sectors)) * CONCENTRATION_POINTS
    return max(0, min(100, round(count_score + concentration_score)))


def classify_risk(beta: float) -> RiskLevel:
    return RiskLevel.from_beta(beta)


def resolve_currency(holding: HybridHolding, quote: Quote) -> str:
    """Trading currency of a position: TASE listings always trade in shekels,
    otherwise the quote's currency, falling back to the holding's own."""
    if detect_asset_type(holding.symbol) == AssetKind.TASE:
        return "ILS"
    return quote.currency or holding.currency


def sector_allocation(holdings: Sequence[EnrichedHolding]) -> list[SectorAllocation]:
    total = sum(h.value_reporting for h in holdings)
    by_sector: dict[str, float] = {}
    for h in holdings:
        by_sector[h.sector] = by_sector.get(h.sector, 0.0) + h.value_reporting

    allocations = [
        SectorAllocation(
            sector=sector,
            value=value,
            percent=value / total * 100 if total > 0 else 0.0,
        )
        for sector, value in by_sector.items()
    ]
    return sorted(allocations, key=lambda s: -s.value)


def aggregate(
    holdings: list[EnrichedHolding],
    exchange_rate: float | None = None,
    reporting_currency: str = "ILS",
    failures: list[EnrichmentFailure] | None = None,
) -> PortfolioAnalysis:
    """Portfolio-level metrics from already enriched holdings."""
    total_reporting = sum(h.value_reporting for h in holdings)
    total = sum(h.value for h in holdings)

    portfolio_beta = 0.0
    daily_change = 0.0
    for h in holdings:
        h.weight = h.value_reporting / total_reporting * 100 if total_reporting > 0 else 0.0
        portfolio_beta += h.beta * h.weight / 100
        daily_change += h.change_percent / 100 * h.value_reporting

    daily_change_pct = daily_change / total_reporting * 100 if total_reporting > 0 else 0.0
    sectors = sector_allocation(holdings)

    return PortfolioAnalysis(
        equity=total,
        equity_reporting=total_reporting,
        beta=round(portfolio_beta, 2),
        daily_change_percent=round(daily_change_pct, 2),
        daily_change_reporting=round(daily_change),
        diversification_score=diversification_score(sectors),
        sector_allocation=sectors,
        holdings=sorted(holdings, key=lambda h: -h.value_reporting),
        risk_level=classify_risk(portfolio_beta),
        exchange_rate=exchange_rate,
        reporting_currency=reporting_currency,
        failures=failures or [],
    )


class PortfolioAnalyzer:
    def __init__(
        self,
        provider: MarketDataProvider,
        fx: FxRateSource,
        beta_engine: BetaEngine | None = None,
        enrichment: EnrichmentStore | None = None,
        classifier: SectorClassifier | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.provider = provider
        self.fx = fx
        self.beta_engine = beta_engine or BetaEngine(provider, self.config)
        self.enrichment = enrichment
        self.classifier = classifier or PatternSectorClassifier()

    def analyze_sync(self, holdings: Sequence[HybridHolding]) -> PortfolioAnalysis:
        return asyncio.run(self.analyze(holdings))

    async def analyze(self, holdings: Sequence[HybridHolding]) -> PortfolioAnalysis:
        exchange_rate = self.fx.get_rate()
        if not holdings:
            return PortfolioAnalysis(
                exchange_rate=exchange_rate,
                reporting_currency=self.config.reporting_currency,
            )

        overrides: dict[str, SecurityEnrichment] = {}
        if self.enrichment is not None:
            overrides = self.enrichment.get_many([h.symbol for h in holdings])

        loop = asyncio.get_running_loop()
        workers = max(1, min(self.config.max_workers, len(holdings)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            results = await asyncio.gather(
                *[
                    loop.run_in_executor(
                        executor,
                        self.enrich_holding,
                        h,
                        exchange_rate,
                        overrides.get(normalize_symbol(h.symbol)),
                    )
                    for h in holdings
                ],
                return_exceptions=True,
            )

        enriched: list[EnrichedHolding] = []
        failures: list[EnrichmentFailure] = []
        for h, r in zip(holdings, results):
            if isinstance(r, Exception):
                logger.warning("Dropping %s from analysis: %s", h.symbol, r)
                failures.append(
                    EnrichmentFailure(symbol=h.symbol, holding_id=h.id, reason=str(r))
                )
            else:
                enriched.append(r)

        if not enriched:
            raise AnalysisUnavailableError(
                f"Failed to fetch data for any of {len(holdings)} holdings"
            )

        return aggregate(
            enriched,
            exchange_rate=exchange_rate,
            reporting_currency=self.config.reporting_currency,
            failures=failures,
        )

    def enrich_holding(
        self,
        holding: HybridHolding,
        exchange_rate: float,
        override: SecurityEnrichment | None = None,
    ) -> EnrichedHolding:
        quote = self.provider.get_quote(holding.symbol)
        quote, is_enriched = apply_enrichment(quote, override)

        if quote.beta is not None:
            beta, beta_source = quote.beta, BetaSource.PROVIDER
        else:
            result = self.beta_engine.beta_for(holding.symbol)
            beta, beta_source = result.beta, result.source

        sector = canonical_sector(quote.sector)
        if not sector or sector == UNKNOWN_SECTOR:
            sector = canonical_sector(self.classifier.classify(holding.symbol))

        try:
            sparkline = self.provider.get_sparkline(
                holding.symbol, self.config.sparkline_days
            )
        except Exception:
            logger.debug("Sparkline unavailable for %s", holding.symbol)
            sparkline = []

        currency = resolve_currency(holding, quote)
        rate = 1.0 if currency == self.config.reporting_currency else exchange_rate
        price_reporting = quote.price * rate
        return EnrichedHolding(
            id=holding.id,
            symbol=holding.symbol,
            name=quote.name or holding.symbol,
            quantity=holding.quantity,
            currency=currency,
            price_display_unit=holding.price_display_unit,
            price=quote.price,
            price_reporting=price_reporting,
            value=quote.price * holding.quantity,
            value_reporting=price_reporting * holding.quantity,
            beta=beta,
            beta_source=beta_source,
            sector=sector or UNKNOWN_SECTOR,
            change_percent=quote.change_percent,
            sparkline=sparkline,
            is_enriched=is_enriched,
        )
