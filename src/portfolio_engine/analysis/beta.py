"""Systematic risk from monthly returns: beta = Cov(Ra, Rm) / Var(Rm)."""

import logging
import time
from collections.abc import Callable, Sequence

import numpy as np
import pandas as pd

from portfolio_engine.config import EngineConfig
from portfolio_engine.data.cache import TTLCache
from portfolio_engine.data.market_data import MarketDataProvider
from portfolio_engine.data.symbols import AssetKind, detect_asset_type, normalize_symbol
from portfolio_engine.models.market import BetaResult, BetaSource

logger = logging.getLogger(__name__)

MIN_MONTHS_REQUIRED = 18
NEUTRAL_BETA = 1.0
BETA_FLOOR = -1.0
BETA_CEILING = 4.0


def monthly_returns(prices: pd.Series) -> pd.Series:
    """Simple month-over-month returns from a dated close series.

    The last close of each calendar month is used, so daily and monthly
    inputs give the same result. The index is a monthly ``Period``.
    """
    if prices is None or prices.empty:
        return pd.Series(dtype=float)

    s = prices.dropna().astype(float)
    s.index = pd.to_datetime(s.index)
    if s.index.tz is not None:
        s.index = s.index.tz_localize(None)
    s = s.sort_index()

    monthly = s.groupby(s.index.to_period("M")).last()
    prev = monthly.shift(1)
    returns = (monthly / prev - 1)[prev > 0]
    returns.name = "return"
    return returns


def _as_series(values: pd.Series | Sequence[float]) -> pd.Series:
    if isinstance(values, pd.Series):
        return values.astype(float)
    return pd.Series(list(values), dtype=float)


def align_returns(
    security_returns: pd.Series | Sequence[float],
    benchmark_returns: pd.Series | Sequence[float],
) -> pd.DataFrame:
    aligned = pd.concat(
        [_as_series(security_returns), _as_series(benchmark_returns)],
        axis=1,
        join="inner",
    )
    aligned.columns = ["security", "benchmark"]
    return aligned.dropna()


def compute_beta(
    security_returns: pd.Series | Sequence[float],
    benchmark_returns: pd.Series | Sequence[float],
    min_sample: int = MIN_MONTHS_REQUIRED,
    default_beta: float = NEUTRAL_BETA,
    zero_variance_beta: float = NEUTRAL_BETA,
) -> BetaResult:
    """Regression beta, or a flagged default.

    ``default_beta`` stands in when the security has too little history on
    its own or once aligned with the benchmark; a flat benchmark always
    yields ``zero_variance_beta``.
    """
    own = _as_series(security_returns).dropna()
    if len(own) < min_sample:
        return BetaResult(
            beta=default_beta,
            sample_size=len(own),
            is_calculated=False,
            source=BetaSource.INSUFFICIENT_DATA,
        )

    aligned = align_returns(security_returns, benchmark_returns)
    n = len(aligned)
    if n < min_sample:
        return BetaResult(
            beta=default_beta,
            sample_size=n,
            is_calculated=False,
            source=BetaSource.INSUFFICIENT_ALIGNED,
        )

    bench_var = float(aligned["benchmark"].var())
    if not np.isfinite(bench_var) or np.isclose(bench_var, 0.0, atol=1e-12):
        return BetaResult(
            beta=zero_variance_beta,
            sample_size=n,
            is_calculated=False,
            source=BetaSource.ZERO_VARIANCE,
        )

    cov = float(aligned["security"].cov(aligned["benchmark"]))
    beta = float(np.clip(cov / bench_var, BETA_FLOOR, BETA_CEILING))
    return BetaResult(
        beta=round(beta, 2),
        sample_size=n,
        is_calculated=True,
        source=BetaSource.CALCULATED,
    )


class BetaEngine:
    """Beta per symbol against a benchmark, with cached inputs and results.

    The benchmark series is shared by every symbol and cached for a short
    window; calculated betas are cached for longer. Failures never propagate:
    the last cached beta or the neutral default is returned instead.
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        config: EngineConfig | None = None,
        benchmark_cache: TTLCache | None = None,
        beta_cache: TTLCache | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.provider = provider
        self.config = config or EngineConfig()
        self._benchmark_cache = benchmark_cache or TTLCache(
            self.config.benchmark_ttl_seconds
        )
        self._beta_cache = beta_cache or TTLCache(self.config.beta_ttl_seconds)
        self._sleep = sleep

    def fallback_beta(self, symbol: str) -> float:
        """Neutral beta used when a regression is not possible."""
        if detect_asset_type(symbol) == AssetKind.TASE:
            return self.config.tase_default_beta
        return self.config.default_beta

    def _default(
        self, source: BetaSource, beta: float | None = None, sample_size: int = 0
    ) -> BetaResult:
        return BetaResult(
            beta=self.config.default_beta if beta is None else beta,
            sample_size=sample_size,
            is_calculated=False,
            source=source,
        )

    def benchmark_returns(self) -> pd.Series:
        key = self.config.benchmark_symbol
        cached = self._benchmark_cache.get(key)
        if cached is not None:
            return cached

        logger.info("Fetching benchmark history for %s", key)
        try:
            prices = self.provider.get_monthly_closes(
                key, self.config.beta_history_months
            )
            returns = monthly_returns(prices)
        except Exception as exc:
            stale = self._benchmark_cache.get_stale(key)
            if stale is not None:
                logger.warning("Benchmark fetch failed (%s), using stale series", exc)
                return stale
            logger.warning("Benchmark fetch failed: %s", exc)
            return pd.Series(dtype=float)

        self._benchmark_cache.set(key, returns)
        logger.info("Benchmark cached: %d monthly returns", len(returns))
        return returns

    def beta_for(self, symbol: str) -> BetaResult:
        key = normalize_symbol(symbol)
        cached = self._beta_cache.get(key)
        if cached is not None:
            return cached.model_copy(update={"source": BetaSource.CACHE})

        if detect_asset_type(key) == AssetKind.CRYPTO:
            return BetaResult(
                beta=self.config.crypto_beta,
                sample_size=0,
                is_calculated=False,
                source=BetaSource.DEFAULT_CRYPTO,
            )

        try:
            benchmark = self.benchmark_returns()
            if benchmark.empty:
                logger.warning("No benchmark data, using default beta for %s", key)
                return self._default(BetaSource.NO_BENCHMARK)

            prices = self.provider.get_monthly_closes(
                key, self.config.beta_history_months
            )
            result = compute_beta(
                monthly_returns(prices),
                benchmark,
                min_sample=self.config.min_beta_months,
                default_beta=self.fallback_beta(key),
                zero_variance_beta=self.config.default_beta,
            )
        except Exception as exc:
            logger.warning("Beta calculation failed for %s: %s", key, exc)
            stale = self._beta_cache.get_stale(key)
            if stale is not None:
                return stale.model_copy(update={"source": BetaSource.CACHE_FALLBACK})
            return self._default(BetaSource.ERROR_DEFAULT, self.fallback_beta(key))

        if result.is_calculated:
            self._beta_cache.set(key, result)
            logger.debug(
                "%s: beta=%.2f (%d data points)", key, result.beta, result.sample_size
            )
        else:
            logger.info(
                "%s: %s with %d months (need %d), using default beta",
                key,
                result.source.value,
                result.sample_size,
                self.config.min_beta_months,
            )
        return result

    def betas_for(self, symbols: Sequence[str]) -> dict[str, BetaResult]:
        """Sequential batch with a pause between symbols to respect rate limits."""
        self.benchmark_returns()
        results: dict[str, BetaResult] = {}
        for i, symbol in enumerate(symbols):
            results[symbol] = self.beta_for(symbol)
            if i < len(symbols) - 1 and self.config.request_pause_seconds > 0:
                self._sleep(self.config.request_pause_seconds)
        return results

    def clear(self) -> None:
        self._beta_cache.clear()
        self._benchmark_cache.clear()
        logger.info("Beta cache cleared")

    def stats(self) -> dict:
        benchmark = self._benchmark_cache.get_stale(self.config.benchmark_symbol)
        return {
            "betas_cached": len(self._beta_cache),
            "benchmark_age": self._benchmark_cache.age(self.config.benchmark_symbol),
            "benchmark_data_points": len(benchmark) if benchmark is not None else 0,
        }
