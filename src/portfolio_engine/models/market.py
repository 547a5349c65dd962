from enum import StrEnum

from pydantic import BaseModel, Field


class PriceDisplayUnit(StrEnum):
    ILS = "ILS"
    ILS_AGOROT = "ILS_AGOROT"
    USD = "USD"


class BetaSource(StrEnum):
    CALCULATED = "calculated"
    CACHE = "cache"
    CACHE_FALLBACK = "cache_fallback"
    INSUFFICIENT_DATA = "insufficient_data"
    INSUFFICIENT_ALIGNED = "insufficient_aligned"
    NO_BENCHMARK = "no_benchmark"
    ZERO_VARIANCE = "zero_variance"
    DEFAULT_CRYPTO = "default_crypto"
    ERROR_DEFAULT = "error_default"
    PROVIDER = "provider"


class HybridHolding(BaseModel):
    """A position as stored by the holdings store."""

    id: str | None = None
    symbol: str
    quantity: float = Field(ge=0.0)
    currency: str = "USD"
    price_display_unit: PriceDisplayUnit = PriceDisplayUnit.ILS


class Quote(BaseModel):
    symbol: str
    name: str = ""
    price: float
    currency: str | None = None
    change_percent: float = 0.0
    beta: float | None = None
    sector: str | None = None


class SecurityEnrichment(BaseModel):
    """Local override for a security's display name and sector."""

    symbol: str
    name: str
    short_name: str | None = None
    sector: str
    asset_type: str = "stock"
    updated_at: str | None = None


class BetaResult(BaseModel):
    beta: float
    sample_size: int = 0
    is_calculated: bool = False
    source: BetaSource = BetaSource.CALCULATED
