from portfolio_engine.models.analysis import (
    EnrichedHolding,
    EnrichmentFailure,
    PortfolioAnalysis,
    RiskLevel,
    SectorAllocation,
)
from portfolio_engine.models.holding import (
    AllocationResult,
    ConvergenceResult,
    FinalAllocation,
    Holding,
    PortfolioSummary,
    TargetValidation,
)
from portfolio_engine.models.market import (
    BetaResult,
    BetaSource,
    HybridHolding,
    PriceDisplayUnit,
    Quote,
    SecurityEnrichment,
)

__all__ = [
    "AllocationResult",
    "BetaResult",
    "BetaSource",
    "ConvergenceResult",
    "EnrichedHolding",
    "EnrichmentFailure",
    "FinalAllocation",
    "Holding",
    "HybridHolding",
    "PortfolioAnalysis",
    "PortfolioSummary",
    "PriceDisplayUnit",
    "Quote",
    "RiskLevel",
    "SecurityEnrichment",
    "SectorAllocation",
    "TargetValidation",
]
