"""
Command-Line Interface for Portfolio Backtester

Provides CLI commands for running backtests from configuration files,
validating configurations, creating starter configurations, and showing
the active environment.

Usage:
    portfolio-backtest run --config portfolio.yaml --output results.json
    portfolio-backtest validate --config portfolio.yaml
    portfolio-backtest init "Sixty Forty"
    portfolio-backtest env
"""

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click
import pandas as pd
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from portfolio_backtester import __version__
from portfolio_backtester.analytics import SUMMARY_METRICS
from portfolio_backtester.cli.config_loader import load_config
from portfolio_backtester.cli.config_schema import (
    ConfigValidationError,
    ConfigValidator,
    DataConfig,
    DataFormat,
    ExecutionConfig,
    ExecutionModelType,
    RunConfig,
)
from portfolio_backtester.cli.environment import (
    Environment,
    EnvironmentSettings,
    configure_logging,
    get_settings,
    set_environment,
)
from portfolio_backtester.data import (
    YAHOO_ADAPTER,
    CSVAdapter,
    DataLoadError,
    PriceHistory,
    align,
    resample,
    to_backtest_format,
)
from portfolio_backtester.engine import (
    BacktestError,
    BacktestResult,
    CashConstrainedFill,
    DataStreamError,
    ExecutionError,
    ExecutionModel,
    InstantFill,
    SlippageModel,
    run_backtest,
)
from portfolio_backtester.strategies import Strategy, StrategyError, create_strategy

console = Console()

# Per-step series dropped from saved results when save_equity_curve is off
EQUITY_CURVE_KEYS = (
    "timestamps",
    "equity_curve",
    "period_returns",
    "position_snapshots",
)


def echo(message: str, style: Optional[str] = None, err: bool = False) -> None:
    """Output message through rich."""
    if err:
        Console(stderr=True).print(message, style=style)
    else:
        console.print(message, style=style)


def echo_error(message: str) -> None:
    """Output error message."""
    echo(f"[red]Error:[/red] {message}", err=True)


def echo_success(message: str) -> None:
    """Output success message."""
    echo(f"[green]{message}[/green]")


def echo_warning(message: str) -> None:
    """Output warning message."""
    echo(f"[yellow]Warning:[/yellow] {message}")


@click.group()
@click.option(
    "--env",
    "-e",
    type=click.Choice([e.value for e in Environment]),
    default="development",
    help="Environment to use",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.version_option(version=__version__, prog_name="Portfolio Backtester")
@click.pass_context
def cli(ctx: click.Context, env: str, verbose: bool, quiet: bool) -> None:
    """Portfolio Backtester CLI - Run allocation strategy backtests."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet

    set_environment(Environment(env))
    if verbose:
        configure_logging("DEBUG")


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to run configuration file (YAML or JSON)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Write the full result as JSON to this file",
)
@click.option(
    "--save",
    is_flag=True,
    help="Write results JSON to the environment's output directory",
)
@click.option("--capital", type=float, help="Override initial capital from config")
@click.option(
    "--fail-fast", is_flag=True, help="Abort on the first order that cannot execute"
)
@click.option(
    "--dry-run", is_flag=True, help="Validate config without running backtest"
)
@click.pass_context
def run(
    ctx: click.Context,
    config: Path,
    output: Optional[Path],
    save: bool,
    capital: Optional[float],
    fail_fast: bool,
    dry_run: bool,
) -> None:
    """Run a backtest using a configuration file."""
    verbose = ctx.obj.get("verbose", False)
    quiet = ctx.obj.get("quiet", False)
    settings = get_settings()

    try:
        if not quiet:
            echo(f"Loading configuration from [cyan]{config}[/cyan]...")

        run_config = load_config(config)

        if capital is not None:
            if capital <= 0:
                raise click.BadParameter("must be positive", param_hint="--capital")
            run_config.backtest.initial_capital = capital
        elif run_config.backtest.initial_capital is None:
            run_config.backtest.initial_capital = settings.default_initial_capital
        if fail_fast:
            run_config.backtest.fail_fast = True

        if verbose:
            _display_config_summary(run_config)

        if dry_run:
            echo_success("Configuration is valid. Dry run complete.")
            return

        if not quiet:
            echo("Running backtest...")

        result = _execute_backtest(run_config)

        if not quiet:
            _display_results(result, verbose=verbose)

        if output is None and save:
            output = Path(settings.output_directory) / _result_file_name(run_config.name)

        if output:
            output.parent.mkdir(parents=True, exist_ok=True)
            with open(output, "w") as f:
                json.dump(_result_payload(result, settings), f, indent=2)
            if not quiet:
                echo(f"Results written to [cyan]{output}[/cyan]")

        if result.rejected_orders:
            echo_warning(f"{len(result.rejected_orders)} order(s) were skipped")

        echo_success("Backtest completed successfully!")

    except click.BadParameter:
        raise
    except ConfigValidationError as e:
        echo_error(f"Configuration validation failed: {e}")
        for error in e.errors:
            echo(f"  - {error}")
        sys.exit(1)
    except FileNotFoundError as e:
        echo_error(str(e))
        sys.exit(1)
    except ValueError as e:
        echo_error(f"Invalid configuration: {e}")
        sys.exit(1)
    except (
        BacktestError,
        DataLoadError,
        DataStreamError,
        ExecutionError,
        StrategyError,
    ) as e:
        echo_error(f"Backtest failed: {e}")
        if verbose:
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to run configuration file",
)
@click.pass_context
def validate(ctx: click.Context, config: Path) -> None:
    """Validate a run configuration file."""
    verbose = ctx.obj.get("verbose", False)

    try:
        echo(f"Validating [cyan]{config}[/cyan]...")

        run_config = load_config(config)

        echo_success(f"Configuration '{run_config.name}' is valid!")

        if verbose:
            _display_config_summary(run_config)

    except ConfigValidationError as e:
        echo_error(str(e))
        for error in e.errors:
            echo(f"  [red]x[/red] {error}")
        sys.exit(1)
    except ValueError as e:
        echo_error(f"Validation error: {e}")
        sys.exit(1)


@cli.command()
@click.argument("name")
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output file path (default: {name}.yaml)",
)
def init(name: str, output: Optional[Path]) -> None:
    """Create a starter run configuration file."""
    output_path = output or Path(f"{name.lower().replace(' ', '_')}.yaml")

    if output_path.exists():
        if not click.confirm(f"{output_path} already exists. Overwrite?"):
            echo("Aborted.")
            return

    with open(output_path, "w") as f:
        f.write(_generate_default_config(name))

    echo_success(f"Created run configuration: {output_path}")


@cli.command()
def env() -> None:
    """Show current environment configuration."""
    settings = get_settings()

    table = Table(title=f"Environment: {settings.name.value}")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Log Level", settings.log_level)
    table.add_row("Log File", settings.log_file or "Not set")
    table.add_row("Output Directory", settings.output_directory)
    table.add_row("Default Capital", f"${settings.default_initial_capital:,.2f}")
    table.add_row("Save Equity Curve", str(settings.save_equity_curve))

    console.print(table)


# =============================================================================
# Helpers
# =============================================================================

def _execute_backtest(config: RunConfig) -> BacktestResult:
    """Build strategy, execution model and price data, then run."""
    strategy = _build_strategy(config)
    execution_model = _build_execution_model(config.execution)
    timestamps, prices = _load_prices(config.data)

    return run_backtest(
        strategy,
        timestamps,
        prices,
        initial_capital=config.backtest.initial_capital,
        execution_model=execution_model,
        fail_fast=config.backtest.fail_fast,
        periods_per_year=config.backtest.periods_per_year,
        risk_free_rate=config.backtest.risk_free_rate,
    )


def _build_strategy(config: RunConfig) -> Strategy:
    """Create the configured strategy."""
    spec = config.strategy
    params: Dict[str, Any] = {
        "target_weights": spec.weights,
        "name": config.name,
    }
    if spec.type == "rebalancing":
        params["rebalance_frequency"] = spec.frequency
        params["tolerance"] = spec.tolerance

    return create_strategy(spec.type, **params)


def _build_execution_model(config: ExecutionConfig) -> ExecutionModel:
    """Create the configured execution model."""
    if config.model == ExecutionModelType.SLIPPAGE:
        model: ExecutionModel = SlippageModel(
            slippage_pct=config.slippage_pct,
            commission_per_share=config.commission_per_share,
            min_commission=config.min_commission,
        )
    else:
        model = InstantFill()

    if config.cash_constrained:
        model = CashConstrainedFill(model)
    return model


def _load_prices(config: DataConfig) -> Tuple[List[Any], Dict[str, List[float]]]:
    """Load, resample, slice and align price data from the configuration."""
    if config.is_inline:
        return list(config.timestamps), dict(config.prices)

    adapter = YAHOO_ADAPTER if config.format == DataFormat.YAHOO else CSVAdapter()
    base = Path(config.directory) if config.directory else Path.cwd()

    start = ConfigValidator._parse_date(config.start_date) if config.start_date else None
    end = ConfigValidator._parse_date(config.end_date) if config.end_date else None

    histories = []
    for symbol, file_name in config.files.items():
        path = Path(file_name)
        if not path.is_absolute():
            path = base / path

        history = adapter.load(path, symbol)
        if config.resample:
            history = resample(history, config.resample)
        if start or end:
            frame = history.frame.loc[
                pd.Timestamp(start) if start else None:
                pd.Timestamp(end) if end else None
            ]
            history = PriceHistory(symbol, frame)
        histories.append(history)

    return to_backtest_format(align(histories))


def _result_file_name(name: str) -> str:
    """File name for a saved result, e.g. 'Sixty Forty' -> 'sixty_forty.json'."""
    return f"{name.lower().replace(' ', '_')}.json"


def _result_payload(
    result: BacktestResult, settings: EnvironmentSettings
) -> Dict[str, Any]:
    """JSON payload for a result, trimmed according to environment settings."""
    payload = result.to_dict()
    if not settings.save_equity_curve:
        for key in EQUITY_CURVE_KEYS:
            payload.pop(key, None)
    return payload


def _display_results(result: BacktestResult, verbose: bool = False) -> None:
    """Display backtest results."""
    console.print(Panel(f"[bold]Backtest Results: {result.strategy_name}[/bold]"))

    table = Table()
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")

    table.add_row("Initial Value", f"${result.initial_value:,.2f}")
    table.add_row("Final Value", f"${result.final_value:,.2f}")
    table.add_row("Steps", str(result.num_steps))
    table.add_row("Fills", str(result.num_fills))
    table.add_row("Skipped Orders", str(len(result.rejected_orders)))

    for key in SUMMARY_METRICS:
        value = result.metrics.get(key, 0.0)
        if key in ("sharpe_ratio", "sortino_ratio", "calmar_ratio"):
            formatted = f"{value:.3f}"
        else:
            formatted = f"{value:.2%}"
        table.add_row(key.replace("_", " ").title(), formatted)

    console.print(table)

    if verbose and result.rejected_orders:
        rejected = Table(title="Skipped Orders")
        rejected.add_column("Timestamp")
        rejected.add_column("Order")
        rejected.add_column("Reason")
        for item in result.rejected_orders:
            rejected.add_row(
                item.timestamp.isoformat(),
                f"{item.order.side.value} {item.order.quantity:.4f} {item.order.symbol}",
                item.reason,
            )
        console.print(rejected)


def _display_config_summary(config: RunConfig) -> None:
    """Display configuration summary."""
    table = Table(title="Configuration Summary")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")

    table.add_row("Name", config.name)
    table.add_row("Strategy", config.strategy.type)
    table.add_row(
        "Weights",
        ", ".join(f"{s}={w:.0%}" for s, w in config.strategy.weights.items()),
    )
    if config.strategy.type == "rebalancing":
        table.add_row("Frequency", config.strategy.frequency)
        table.add_row("Tolerance", f"{config.strategy.tolerance:.2%}")
    table.add_row("Execution", config.execution.model.value)
    capital = config.backtest.initial_capital
    table.add_row(
        "Initial Capital",
        f"${capital:,.2f}" if capital is not None else "Environment default",
    )
    table.add_row(
        "Data",
        f"{len(config.data.prices)} inline series"
        if config.data.is_inline
        else f"{len(config.data.files)} {config.data.format.value} file(s)",
    )

    console.print(table)


def _generate_default_config(name: str) -> str:
    """Generate a starter configuration YAML with inline prices."""
    return f"""# Backtest Configuration
# Generated {datetime.now():%Y-%m-%d}
name: "{name}"
description: "60/40 monthly rebalanced portfolio"

data:
  # Replace with per-symbol CSV files, e.g.
  # files:
  #   SPY: data/SPY.csv
  #   AGG: data/AGG.csv
  # format: yahoo
  timestamps: ["2024-01-02", "2024-01-31", "2024-02-01", "2024-02-29", "2024-03-01"]
  prices:
    SPY: [472.65, 482.88, 489.20, 508.08, 512.85]
    AGG: [98.42, 98.50, 98.10, 97.56, 97.70]

strategy:
  type: rebalancing
  weights:
    SPY: 0.6
    AGG: 0.4
  frequency: monthly
  tolerance: 0.05

execution:
  model: instant

backtest:
  # Omit to use the environment's default capital
  initial_capital: 10000
  fail_fast: false
  periods_per_year: 252
  risk_free_rate: 0.0
"""


def main() -> None:
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()
