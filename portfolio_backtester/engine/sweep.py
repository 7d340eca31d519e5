"""
Parallel Backtest Sweeps

Runs several independent backtests over the same aligned price data, for
example to compare strategies or a grid of rebalance settings.

Each run gets its own HistoricalDriver, its own Strategy (built by calling the
run's factory) and its own ExecutionModel, so no state is shared between runs
and the single-threaded engine needs no locking. Parallelism comes only from
fanning runs out over a concurrent.futures executor.

Usage:
    from portfolio_backtester.engine.sweep import run_sweep

    results = run_sweep(
        {
            'buy_and_hold': lambda: BuyAndHoldStrategy({'A': 0.5, 'B': 0.5}),
            'monthly': lambda: RebalancingStrategy({'A': 0.5, 'B': 0.5}),
        },
        timestamps,
        prices,
    )
    for name, result in results.items():
        print(name, result.metrics['sharpe_ratio'])

Note:
    With use_processes=True every factory must be picklable (module-level
    functions or functools.partial, not lambdas).
"""

import logging
from concurrent.futures import Executor, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Any, Callable, Dict, Mapping, Optional, Sequence

from portfolio_backtester.engine.backtest_engine import (
    DEFAULT_INITIAL_CAPITAL,
    BacktestConfigError,
    BacktestResult,
    run_backtest,
)
from portfolio_backtester.engine.execution import ExecutionModel
from portfolio_backtester.strategies.strategy import Strategy

logger = logging.getLogger(__name__)

StrategyFactory = Callable[[], Strategy]
ExecutionFactory = Callable[[], ExecutionModel]


def _run_one(
    strategy_factory: StrategyFactory,
    timestamps: Sequence[Any],
    prices: Mapping[str, Sequence[Any]],
    initial_capital: float,
    execution_factory: Optional[ExecutionFactory],
    fail_fast: bool,
) -> BacktestResult:
    execution_model = execution_factory() if execution_factory else None
    return run_backtest(
        strategy_factory(),
        timestamps,
        prices,
        initial_capital=initial_capital,
        execution_model=execution_model,
        fail_fast=fail_fast,
    )


def run_sweep(
    strategy_factories: Mapping[str, StrategyFactory],
    timestamps: Sequence[Any],
    prices: Mapping[str, Sequence[Any]],
    initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    execution_factory: Optional[ExecutionFactory] = None,
    fail_fast: bool = False,
    max_workers: Optional[int] = None,
    use_processes: bool = False,
) -> Dict[str, BacktestResult]:
    """
    Run one independent backtest per strategy factory.

    Args:
        strategy_factories: Mapping of run name to a zero-argument callable
                           returning a fresh Strategy
        timestamps: Aligned timestamps shared by all runs
        prices: Aligned prices shared by all runs
        initial_capital: Starting cash for every run
        execution_factory: Zero-argument callable returning a fresh
                          ExecutionModel per run (InstantFill if None)
        fail_fast: Passed to every engine
        max_workers: Executor worker count (executor default if None)
        use_processes: Use a process pool instead of a thread pool

    Returns:
        Mapping of run name to BacktestResult, in the order of
        strategy_factories

    Raises:
        BacktestConfigError: If no factories are given or one is not callable
        Exception: The first error raised by any run, after all runs finish
    """
    if not strategy_factories:
        raise BacktestConfigError("strategy_factories cannot be empty")
    for name, factory in strategy_factories.items():
        if not callable(factory):
            raise BacktestConfigError(f"Factory for {name!r} is not callable")

    executor_cls = ProcessPoolExecutor if use_processes else ThreadPoolExecutor
    logger.info(
        f"Starting sweep: {len(strategy_factories)} runs on "
        f"{executor_cls.__name__}(max_workers={max_workers})"
    )

    executor: Executor
    with executor_cls(max_workers=max_workers) as executor:
        futures = {
            name: executor.submit(
                _run_one,
                factory,
                timestamps,
                prices,
                initial_capital,
                execution_factory,
                fail_fast,
            )
            for name, factory in strategy_factories.items()
        }

        results: Dict[str, BacktestResult] = {}
        errors: Dict[str, BaseException] = {}
        for name, future in futures.items():
            error = future.exception()
            if error is not None:
                logger.error(f"Sweep run {name!r} failed: {error}")
                errors[name] = error
            else:
                results[name] = future.result()

    if errors:
        raise next(iter(errors.values()))

    logger.info(f"Sweep completed: {len(results)} runs")
    return results


__all__ = [
    'run_sweep',
]
