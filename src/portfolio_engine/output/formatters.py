from portfolio_engine.models.analysis import RiskLevel
from portfolio_engine.models.market import PriceDisplayUnit

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "ILS": "₪",
    "EUR": "€",
    "GBP": "£",
}


def fmt_pct(value: float | None, decimals: int = 2) -> str:
    if value is None:
        return "N/A"
    return f"{value:+.{decimals}f}%"


def fmt_weight(value: float | None, decimals: int = 2) -> str:
    if value is None:
        return "N/A"
    return f"{value:.{decimals}f}%"


def fmt_number(value: float | None, decimals: int = 2) -> str:
    if value is None:
        return "N/A"
    return f"{value:,.{decimals}f}"


def fmt_money(value: float | None, currency: str = "USD", decimals: int = 2) -> str:
    if value is None:
        return "N/A"
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"


def fmt_price(
    price: float | None,
    currency: str = "USD",
    unit: PriceDisplayUnit = PriceDisplayUnit.ILS,
) -> str:
    if price is None:
        return "N/A"
    if unit == PriceDisplayUnit.ILS_AGOROT and currency.upper() == "ILS":
        return f"{price * 100:,.2f} ag."
    return fmt_money(price, currency)


def risk_color(level: RiskLevel) -> str:
    colors = {
        RiskLevel.CONSERVATIVE: "green",
        RiskLevel.MODERATE: "yellow",
        RiskLevel.AGGRESSIVE: "red",
    }
    return colors.get(level, "white")


def score_bar(score: float, width: int = 10) -> str:
    filled = round(max(0.0, min(score, 100.0)) / 100 * width)
    return "█" * filled + "░" * (width - filled)
