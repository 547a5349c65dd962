import os
from enum import StrEnum

from pydantic import BaseModel

SECTOR_ALIASES: dict[str, str] = {
    "Financial Services": "Financials",
    "Finance": "Financials",
    "Financial": "Financials",
    "Health Care": "Healthcare",
    "Information Technology": "Technology",
    "Tech": "Technology",
    "Telecommunications": "Communication Services",
    "Communication": "Communication Services",
    "Materials": "Basic Materials",
    "Consumer Discretionary": "Consumer Cyclical",
    "Consumer Staples": "Consumer Defensive",
    "Commodities Focused": "Commodities",
    "Small Blend": "Small Cap",
    "Total Market": "US Equity",
    "Large Blend": "US Equity",
    "Other": "Unknown",
    "": "Unknown",
}

ENV_PREFIX = "PORTFOLIO_"


class TargetPolicy(StrEnum):
    REJECT = "reject"
    NORMALIZE = "normalize"


class EngineConfig(BaseModel):
    benchmark_symbol: str = "^GSPC"
    beta_history_months: int = 36
    min_beta_months: int = 18
    default_beta: float = 1.0
    tase_default_beta: float = 0.9
    crypto_beta: float = 1.5

    benchmark_ttl_seconds: float = 24 * 60 * 60
    beta_ttl_seconds: float = 7 * 24 * 60 * 60
    fx_ttl_seconds: float = 60 * 60

    base_currency: str = "USD"
    reporting_currency: str = "ILS"
    fallback_fx_rate: float = 3.65

    max_workers: int = 4
    request_pause_seconds: float = 0.1
    sparkline_days: int = 7

    target_policy: TargetPolicy = TargetPolicy.REJECT
    enrichment_db_path: str = "data/enrichment.db"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from ``PORTFOLIO_*`` environment variables."""
        overrides: dict[str, str] = {}
        for field in cls.model_fields:
            value = os.environ.get(ENV_PREFIX + field.upper())
            if value is not None and value != "":
                overrides[field] = value
        return cls.model_validate(overrides)
