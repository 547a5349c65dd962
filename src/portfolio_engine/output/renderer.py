from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from portfolio_engine.models.analysis import PortfolioAnalysis
from portfolio_engine.models.holding import AllocationResult, ConvergenceResult
from portfolio_engine.models.market import BetaResult
from portfolio_engine.output.formatters import (
    fmt_money,
    fmt_number,
    fmt_pct,
    fmt_price,
    fmt_weight,
    risk_color,
    score_bar,
)


class PortfolioRenderer:
    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_allocation(
        self, results: list[AllocationResult], currency: str = "ILS"
    ) -> None:
        table = Table(title="Investment Allocation", show_header=True)
        table.add_column("Holding", style="cyan")
        table.add_column("Current", justify="right")
        table.add_column("Target", justify="right")
        table.add_column("Weight", justify="right")
        table.add_column("Invest", justify="right", style="green")
        table.add_column("New Value", justify="right")
        table.add_column("New Weight", justify="right")

        for r in results:
            table.add_row(
                r.holding_name or r.holding_id,
                fmt_money(r.current_value, currency),
                fmt_weight(r.target_allocation),
                fmt_weight(r.current_allocation),
                fmt_money(r.amount_to_invest, currency),
                fmt_money(r.new_value, currency),
                fmt_weight(r.new_allocation),
            )

        total = sum(r.amount_to_invest for r in results)
        table.add_row("Total", "", "", "", fmt_money(total, currency), "", "", style="bold")
        self.console.print(table)

    def render_forecast(self, result: ConvergenceResult, monthly_amount: float) -> None:
        if result.months == 0 and result.reachable:
            headline = "Portfolio is already within tolerance of its targets."
            style = "green"
        elif result.reachable:
            headline = (
                f"Targets reached after {result.months} monthly investments "
                f"of {fmt_number(monthly_amount)}."
            )
            style = "green"
        else:
            headline = (
                f"Targets not reached within {result.months} months "
                f"at {fmt_number(monthly_amount)} per month."
            )
            style = "yellow"
        self.console.print(Panel(headline, title="Forecast", style=style))

        table = Table(title="Allocation at End of Forecast", show_header=True)
        table.add_column("Holding", style="cyan")
        table.add_column("Weight", justify="right")
        table.add_column("Target", justify="right")
        table.add_column("Gap", justify="right")
        for a in result.final_allocations:
            table.add_row(
                a.name or a.holding_id,
                fmt_weight(a.current),
                fmt_weight(a.target),
                fmt_pct(a.current - a.target),
            )
        self.console.print(table)

    def render_betas(self, betas: dict[str, BetaResult]) -> None:
        table = Table(title="Beta vs Benchmark", show_header=True)
        table.add_column("Symbol", style="cyan")
        table.add_column("Beta", justify="right")
        table.add_column("Months", justify="right")
        table.add_column("Source")
        for symbol, b in betas.items():
            table.add_row(
                symbol,
                fmt_number(b.beta),
                str(b.sample_size),
                b.source.value,
                style=None if b.is_calculated else "dim",
            )
        self.console.print(table)

    def render_analysis(self, analysis: PortfolioAnalysis) -> None:
        ccy = analysis.reporting_currency
        summary = Table(title="Portfolio Analysis", show_header=True)
        summary.add_column("Metric", style="cyan")
        summary.add_column("Value", justify="right")
        summary.add_row("Equity", fmt_money(analysis.equity_reporting, ccy))
        summary.add_row(
            "Daily Change",
            f"{fmt_money(analysis.daily_change_reporting, ccy, 0)} "
            f"({fmt_pct(analysis.daily_change_percent)})",
        )
        summary.add_row("Beta", fmt_number(analysis.beta))
        summary.add_row(
            "Risk Level",
            Text(analysis.risk_level.value, style=risk_color(analysis.risk_level)),
        )
        summary.add_row(
            "Diversification",
            f"{score_bar(analysis.diversification_score)} "
            f"{analysis.diversification_score}/100",
        )
        if analysis.exchange_rate is not None:
            summary.add_row("FX Rate", fmt_number(analysis.exchange_rate, 4))
        self.console.print(summary)

        holdings = Table(title="Holdings", show_header=True)
        holdings.add_column("Symbol", style="cyan")
        holdings.add_column("Name")
        holdings.add_column("Sector")
        holdings.add_column("Price", justify="right")
        holdings.add_column("Value", justify="right")
        holdings.add_column("Weight", justify="right")
        holdings.add_column("Beta", justify="right")
        holdings.add_column("Day", justify="right")
        for h in analysis.holdings:
            holdings.add_row(
                h.symbol,
                h.name,
                h.sector,
                fmt_price(h.price, h.currency, h.price_display_unit),
                fmt_money(h.value_reporting, ccy),
                fmt_weight(h.weight),
                fmt_number(h.beta),
                fmt_pct(h.change_percent),
            )
        self.console.print(holdings)

        sectors = Table(title="Sector Allocation", show_header=True)
        sectors.add_column("Sector", style="cyan")
        sectors.add_column("Value", justify="right")
        sectors.add_column("Share", justify="right")
        for s in analysis.sector_allocation:
            sectors.add_row(s.sector, fmt_money(s.value, ccy), fmt_weight(s.percent))
        self.console.print(sectors)

        if analysis.is_partial:
            missing = ", ".join(f.symbol for f in analysis.failures)
            self.console.print(
                Panel(
                    f"Market data unavailable for: {missing}\n"
                    "Totals above exclude these holdings.",
                    title="Partial Result",
                    style="yellow",
                )
            )
