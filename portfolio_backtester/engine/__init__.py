"""
Backtesting Engine Module

This module provides the simulation infrastructure: market data drivers,
order execution models, the main backtesting engine and a parallel sweep
helper.

Components:
    - Driver / HistoricalDriver: Time-ordered source of MarketSnapshots
    - ExecutionModel: InstantFill, SlippageModel, CashConstrainedFill
    - BacktestEngine: Main orchestrator, producing a BacktestResult
    - run_sweep: Independent backtests fanned out over an executor

Architecture:
    The engine follows an event-driven architecture where:
    1. The Driver provides one snapshot per step
    2. The Strategy turns the updated state into Orders
    3. The ExecutionModel turns each Order into a Fill (or no fill)
    4. The BacktestEngine applies fills and records the equity curve

Usage:
    from portfolio_backtester.engine import (
        BacktestEngine,
        HistoricalDriver,
        SlippageModel,
    )

    driver = HistoricalDriver(timestamps, prices)
    engine = BacktestEngine(
        strategy=my_strategy,
        driver=driver,
        execution_model=SlippageModel(slippage_pct=0.001),
        initial_capital=10000.0
    )

    result = engine.run()
    print(f"Final Value: ${result.final_value:,.2f}")

Financial Correctness:
    - Equity = Cash + Mark-to-Market Value of Positions
    - Positions are long-only
    - Symbols absent from a snapshot keep their last price for valuation
"""

# Driver - Market data iteration
from portfolio_backtester.engine.data_stream import (
    Driver,
    HistoricalDriver,
    DataStreamError,
    DataStreamConfigError,
    MisalignedDataError,
)

# ExecutionModel - Order execution simulation
from portfolio_backtester.engine.execution import (
    ExecutionModel,
    InstantFill,
    SlippageModel,
    CashConstrainedFill,
    ExecutionError,
    ExecutionConfigError,
    MissingPriceError,
    DEFAULT_SLIPPAGE_PCT,
    DEFAULT_COMMISSION_PER_SHARE,
)

# BacktestEngine - Main orchestrator
from portfolio_backtester.engine.backtest_engine import (
    BacktestEngine,
    BacktestResult,
    RejectedOrder,
    run_backtest,
    BacktestError,
    BacktestConfigError,
    BacktestExecutionError,
    DEFAULT_INITIAL_CAPITAL,
)

# Sweep - Independent runs in parallel
from portfolio_backtester.engine.sweep import run_sweep


__all__ = [
    # Main classes
    'BacktestEngine',
    'BacktestResult',
    'Driver',
    'HistoricalDriver',
    'ExecutionModel',
    'InstantFill',
    'SlippageModel',
    'CashConstrainedFill',

    # Supporting classes and functions
    'RejectedOrder',
    'run_backtest',
    'run_sweep',

    # Exceptions - Driver
    'DataStreamError',
    'DataStreamConfigError',
    'MisalignedDataError',

    # Exceptions - ExecutionModel
    'ExecutionError',
    'ExecutionConfigError',
    'MissingPriceError',

    # Exceptions - BacktestEngine
    'BacktestError',
    'BacktestConfigError',
    'BacktestExecutionError',

    # Constants
    'DEFAULT_SLIPPAGE_PCT',
    'DEFAULT_COMMISSION_PER_SHARE',
    'DEFAULT_INITIAL_CAPITAL',
]
