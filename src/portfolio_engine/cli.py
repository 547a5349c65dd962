import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import BaseModel, TypeAdapter, ValidationError
from rich.console import Console
from rich.markup import escape

from portfolio_engine.config import EngineConfig, TargetPolicy
from portfolio_engine.errors import PortfolioEngineError
from portfolio_engine.models.holding import Holding
from portfolio_engine.models.market import HybridHolding
from portfolio_engine.output.renderer import PortfolioRenderer

logger = logging.getLogger(__name__)
console = Console()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="portfolio-engine",
        description="Portfolio allocation and risk analysis",
    )
    p.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    p.add_argument(
        "--normalize-targets",
        action="store_true",
        help="Rescale target allocations that do not sum to 100%% instead of failing",
    )
    sub = p.add_subparsers(dest="command")

    allocate = sub.add_parser("allocate", help="Split a new investment across holdings")
    allocate.add_argument("holdings", type=Path, help="JSON file of holdings")
    allocate.add_argument("amount", type=float, help="Cash amount to invest")

    forecast = sub.add_parser(
        "forecast", help="Months of contributions until targets are reached"
    )
    forecast.add_argument("holdings", type=Path, help="JSON file of holdings")
    forecast.add_argument("monthly", type=float, help="Monthly contribution")
    forecast.add_argument(
        "--tolerance",
        type=float,
        default=1.0,
        help="Allowed distance from target, in percentage points",
    )
    forecast.add_argument(
        "--max-months",
        type=int,
        default=120,
        help="Simulation horizon",
    )

    analyze = sub.add_parser("analyze", help="Risk and diversification analysis")
    analyze.add_argument("holdings", type=Path, help="JSON file of positions")
    analyze.add_argument(
        "--enrichment-db",
        type=Path,
        default=None,
        help="SQLite file with local name/sector overrides",
    )

    beta = sub.add_parser("beta", help="Beta of symbols against the benchmark")
    beta.add_argument("symbols", nargs="+", help="Ticker symbols")

    return p


def load_records(path: Path, model: type[BaseModel]) -> list:
    if not path.exists():
        raise PortfolioEngineError(f"File not found: {path}")
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("holdings", [])
    return TypeAdapter(list[model]).validate_python(data)


def _run_allocate(args: argparse.Namespace, config: EngineConfig) -> None:
    from portfolio_engine.analysis.allocation import AllocationEngine

    holdings = load_records(args.holdings, Holding)
    results = AllocationEngine(config.target_policy).allocate(holdings, args.amount)
    PortfolioRenderer(console).render_allocation(results, config.reporting_currency)


def _run_forecast(args: argparse.Namespace, config: EngineConfig) -> None:
    from portfolio_engine.analysis.convergence import ConvergenceSimulator

    holdings = load_records(args.holdings, Holding)
    result = ConvergenceSimulator(config.target_policy).months_to_ideal(
        holdings,
        args.monthly,
        tolerance_percent=args.tolerance,
        max_months=args.max_months,
    )
    PortfolioRenderer(console).render_forecast(result, args.monthly)


def _run_analyze(args: argparse.Namespace, config: EngineConfig) -> None:
    from portfolio_engine.analysis.portfolio import PortfolioAnalyzer
    from portfolio_engine.data.enrichment import EnrichmentStore
    from portfolio_engine.data.market_data import YFinanceFxSource, YFinanceMarketData

    holdings = load_records(args.holdings, HybridHolding)
    db_path = args.enrichment_db or Path(config.enrichment_db_path)
    store = EnrichmentStore(db_path) if db_path.exists() else None

    analyzer = PortfolioAnalyzer(
        YFinanceMarketData(),
        YFinanceFxSource(config),
        enrichment=store,
        config=config,
    )
    try:
        with console.status(f"[cyan]Analyzing {len(holdings)} holdings..."):
            analysis = analyzer.analyze_sync(holdings)
    finally:
        if store is not None:
            store.close()
    PortfolioRenderer(console).render_analysis(analysis)


def _run_beta(args: argparse.Namespace, config: EngineConfig) -> None:
    from portfolio_engine.analysis.beta import BetaEngine
    from portfolio_engine.data.market_data import YFinanceMarketData

    engine = BetaEngine(YFinanceMarketData(), config)
    with console.status("[cyan]Calculating betas..."):
        betas = engine.betas_for(args.symbols)
    PortfolioRenderer(console).render_betas(betas)


COMMANDS = {
    "allocate": _run_allocate,
    "forecast": _run_forecast,
    "analyze": _run_analyze,
    "beta": _run_beta,
}


def main() -> None:
    from dotenv import load_dotenv

    load_dotenv()
    parser = build_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")

    try:
        config = EngineConfig.from_env()
        if args.normalize_targets:
            config.target_policy = TargetPolicy.NORMALIZE
        COMMANDS[args.command](args, config)
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(1)
    except (PortfolioEngineError, ValidationError, json.JSONDecodeError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Data temporarily unavailable: {escape(str(e))}[/red]")
        if args.verbose:
            import traceback

            traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
