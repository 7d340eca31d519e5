"""
Portfolio Backtester Package

An event-driven backtesting framework for multi-asset allocation strategies:
a driver streams market snapshots, a strategy turns portfolio state into
orders, an execution model turns orders into fills, and the engine records
the equity curve and summary metrics.

Modules:
    core: Market snapshots, orders, fills and simulation state
    strategies: Strategy protocol, buy-and-hold and rebalancing strategies
    engine: Data drivers, execution models, backtest engine, parameter sweeps
    analytics: Performance metrics
    data: Price histories, alignment and CSV adapters
    cli: Command-line interface and configuration management
"""

__version__ = "1.0.0"
__author__ = "Portfolio Backtester Team"

from portfolio_backtester.engine import (
    BacktestEngine,
    BacktestResult,
    HistoricalDriver,
    run_backtest,
    run_sweep,
)
from portfolio_backtester.strategies import (
    BuyAndHoldStrategy,
    RebalancingStrategy,
    create_strategy,
)
from portfolio_backtester.cli import (
    load_config,
    load_config_string,
    RunConfig,
    Environment,
    get_environment,
    set_environment,
)

__all__ = [
    "__version__",
    "__author__",
    "BacktestEngine",
    "BacktestResult",
    "HistoricalDriver",
    "run_backtest",
    "run_sweep",
    "BuyAndHoldStrategy",
    "RebalancingStrategy",
    "create_strategy",
    "load_config",
    "load_config_string",
    "RunConfig",
    "Environment",
    "get_environment",
    "set_environment",
]
