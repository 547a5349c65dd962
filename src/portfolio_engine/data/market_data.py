import logging
from typing import Protocol

import pandas as pd

from portfolio_engine.config import EngineConfig
from portfolio_engine.data.cache import TTLCache
from portfolio_engine.data.symbols import normalize_symbol
from portfolio_engine.data.yfinance_client import YFinanceClient
from portfolio_engine.errors import MarketDataError
from portfolio_engine.models.market import Quote

logger = logging.getLogger(__name__)

# Tel Aviv listings are quoted in agorot (1/100 shekel)
AGOROT_CURRENCY = "ILA"
AGOROT_PER_SHEKEL = 100


class MarketDataProvider(Protocol):
    """Source of quotes and price history for a symbol."""

    def get_quote(self, symbol: str) -> Quote:
        """Current price, currency and daily change. Raises MarketDataError."""
        ...

    def get_monthly_closes(self, symbol: str, months: int) -> pd.Series:
        """Monthly closing prices indexed by date, oldest first."""
        ...

    def get_sparkline(self, symbol: str, days: int) -> list[float]:
        """Recent daily closes for display."""
        ...


class FxRateSource(Protocol):
    def get_rate(self) -> float:
        """Units of reporting currency per unit of base currency."""
        ...


class YFinanceMarketData:
    def __init__(self) -> None:
        self._clients: dict[str, YFinanceClient] = {}

    def _client(self, symbol: str) -> YFinanceClient:
        key = normalize_symbol(symbol)
        if key not in self._clients:
            self._clients[key] = YFinanceClient(key)
        return self._clients[key]

    def get_quote(self, symbol: str) -> Quote:
        client = self._client(symbol)
        info = client.get_info()
        price = (
            info.get("currentPrice")
            or info.get("regularMarketPrice")
            or client.get_last_price()
        )
        if not price:
            raise MarketDataError(f"No quote for {symbol}")

        change = info.get("regularMarketChangePercent")
        if change is None:
            prev = info.get("regularMarketPreviousClose") or info.get("previousClose")
            change = (price / prev - 1) * 100 if prev else 0.0

        currency = (info.get("currency") or "").upper() or None
        if currency == AGOROT_CURRENCY:
            price = price / AGOROT_PER_SHEKEL
            currency = "ILS"

        beta = info.get("beta")
        if beta is None:
            beta = info.get("beta3Year")

        return Quote(
            symbol=normalize_symbol(symbol),
            name=info.get("shortName") or info.get("longName") or symbol,
            price=float(price),
            currency=currency,
            change_percent=round(float(change), 2),
            beta=float(beta) if beta is not None else None,
            sector=info.get("sector") or info.get("category"),
        )

    def get_monthly_closes(self, symbol: str, months: int) -> pd.Series:
        years = max(1, -(-(months + 1) // 12))
        closes = self._client(symbol).get_closes(f"{years}y", interval="1mo")
        if closes.empty:
            raise MarketDataError(f"No monthly history for {symbol}")
        return closes.iloc[-(months + 1) :]

    def get_sparkline(self, symbol: str, days: int) -> list[float]:
        closes = self._client(symbol).get_closes(f"{days + 5}d")
        return [float(p) for p in closes.iloc[-days:]]


class YFinanceFxSource:
    """Exchange rate with a short cache and a last-known fallback."""

    def __init__(
        self,
        config: EngineConfig,
        cache: TTLCache | None = None,
    ) -> None:
        self.config = config
        self.pair = f"{config.base_currency}{config.reporting_currency}=X"
        self._cache = cache or TTLCache(config.fx_ttl_seconds)
        self._client = YFinanceClient(self.pair)

    def get_rate(self) -> float:
        if self.config.base_currency == self.config.reporting_currency:
            return 1.0

        cached = self._cache.get(self.pair)
        if cached is not None:
            return cached

        rate = self._fetch()
        if rate is not None:
            self._cache.set(self.pair, rate)
            logger.info("%s rate: %.4f", self.pair, rate)
            return rate

        stale = self._cache.get_stale(self.pair)
        fallback = stale if stale is not None else self.config.fallback_fx_rate
        logger.warning("Using fallback %s rate: %.4f", self.pair, fallback)
        return fallback

    def _fetch(self) -> float | None:
        info = self._client.get_info()
        rate = info.get("regularMarketPrice")
        if rate and rate > 0:
            return float(rate)

        closes = self._client.get_closes("5d")
        if not closes.empty:
            return float(closes.iloc[-1])
        return None
