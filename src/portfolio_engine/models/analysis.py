from enum import StrEnum

from pydantic import BaseModel

from portfolio_engine.models.market import BetaSource, PriceDisplayUnit


class RiskLevel(StrEnum):
    CONSERVATIVE = "conservative"
    MODERATE = "moderate"
    AGGRESSIVE = "aggressive"

    @staticmethod
    def from_beta(beta: float) -> "RiskLevel":
        if beta < 0.8:
            return RiskLevel.CONSERVATIVE
        if beta <= 1.2:
            return RiskLevel.MODERATE
        return RiskLevel.AGGRESSIVE


class EnrichedHolding(BaseModel):
    id: str | None = None
    symbol: str
    name: str = ""
    quantity: float
    currency: str = "USD"
    price_display_unit: PriceDisplayUnit = PriceDisplayUnit.ILS
    price: float
    price_reporting: float
    value: float
    value_reporting: float
    beta: float = 1.0
    beta_source: BetaSource = BetaSource.PROVIDER
    sector: str = "Unknown"
    change_percent: float = 0.0
    weight: float = 0.0
    sparkline: list[float] = []
    is_enriched: bool = False


class SectorAllocation(BaseModel):
    sector: str
    value: float
    percent: float


class EnrichmentFailure(BaseModel):
    symbol: str
    holding_id: str | None = None
    reason: str


class PortfolioAnalysis(BaseModel):
    equity: float = 0.0
    equity_reporting: float = 0.0
    beta: float = 0.0
    daily_change_percent: float = 0.0
    daily_change_reporting: float = 0.0
    diversification_score: int = 0
    sector_allocation: list[SectorAllocation] = []
    holdings: list[EnrichedHolding] = []
    risk_level: RiskLevel = RiskLevel.MODERATE
    exchange_rate: float | None = None
    reporting_currency: str = "ILS"
    failures: list[EnrichmentFailure] = []

    @property
    def is_partial(self) -> bool:
        return bool(self.failures)
