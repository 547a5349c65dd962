import re
from typing import Protocol

from portfolio_engine.config import SECTOR_ALIASES
from portfolio_engine.data.symbols import AssetKind, detect_asset_type, normalize_symbol

UNKNOWN_SECTOR = "Unknown"

SECTOR_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(r"^(QQQ|XLK|VGT|ARKK|AAPL|MSFT|GOOGL|GOOG|META|NVDA|AMD|INTC)$"),
        "Technology",
    ),
    (re.compile(r"^(XLF|VFH|JPM|BAC|GS|MS|C|WFC)$"), "Financials"),
    (re.compile(r"^(XLV|VHT|JNJ|UNH|PFE|MRK|ABBV)$"), "Healthcare"),
    (re.compile(r"^(XLE|VDE|XOM|CVX|COP|USO|OIL)$"), "Energy"),
    (re.compile(r"^(VNQ|IYR|XLRE)$"), "Real Estate"),
    (re.compile(r"^(GLD|IAU|SLV|GDX|GDXJ|SIL|GOLD)$"), "Commodities"),
    (re.compile(r"^(BND|AGG|TLT|IEF|LQD|HYG|JNK|MUB|GOVT|SHY)$"), "Bonds"),
    (re.compile(r"^(SPY|VOO|IVV|VTI|ITOT|SCHB)$"), "US Equity"),
    (re.compile(r"^(VEA|VXUS|EFA|VWO|EEM|IEMG)$"), "International"),
    (re.compile(r"^(IWM|VB|IJR|SCHA)$"), "Small Cap"),
]


class SectorClassifier(Protocol):
    def classify(self, symbol: str) -> str:
        """Sector label for a symbol the market-data provider left unlabelled."""
        ...


class PatternSectorClassifier:
    """Classifies well-known tickers by name, everything else by market."""

    def classify(self, symbol: str) -> str:
        base = normalize_symbol(symbol).split(".")[0]
        for pattern, sector in SECTOR_PATTERNS:
            if pattern.match(base):
                return sector

        kind = detect_asset_type(symbol)
        if kind == AssetKind.TASE:
            return "Israel"
        if kind == AssetKind.CRYPTO:
            return "Crypto"
        if kind == AssetKind.US:
            return "US Equity"
        return UNKNOWN_SECTOR


def canonical_sector(sector: str | None) -> str:
    """Collapse provider-specific sector spellings onto one label."""
    label = (sector or "").strip()
    return SECTOR_ALIASES.get(label, label)
