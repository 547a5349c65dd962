import logging

import pandas as pd
import yfinance as yf

from portfolio_engine.data.symbols import normalize_symbol

logger = logging.getLogger(__name__)


class YFinanceClient:
    """Wrapper over ``yf.Ticker`` that logs upstream failures and returns
    empty results instead of raising."""

    def __init__(self, symbol: str) -> None:
        self.symbol = normalize_symbol(symbol)
        self._ticker: yf.Ticker | None = None

    @property
    def ticker(self) -> yf.Ticker:
        if self._ticker is None:
            self._ticker = yf.Ticker(self.symbol)
        return self._ticker

    def get_info(self) -> dict:
        try:
            return dict(self.ticker.info or {})
        except Exception as exc:
            logger.warning("Quote lookup failed for %s: %s", self.symbol, exc)
            return {}

    def get_last_price(self) -> float | None:
        try:
            price = getattr(self.ticker.fast_info, "last_price", None)
        except Exception as exc:
            logger.debug("fast_info unavailable for %s: %s", self.symbol, exc)
            return None
        return float(price) if price and price > 0 else None

    def get_closes(self, period: str, interval: str = "1d") -> pd.Series:
        """Positive closing prices, oldest first, on a naive DatetimeIndex."""
        try:
            df = self.ticker.history(period=period, interval=interval)
        except Exception as exc:
            logger.warning("History lookup failed for %s: %s", self.symbol, exc)
            return pd.Series(dtype=float)

        if df.empty or "Close" not in df:
            logger.warning("Empty %s history for %s", interval, self.symbol)
            return pd.Series(dtype=float)

        closes = df["Close"].dropna()
        closes = closes[closes > 0]
        if getattr(closes.index, "tz", None) is not None:
            closes.index = closes.index.tz_localize(None)
        return closes.sort_index()
