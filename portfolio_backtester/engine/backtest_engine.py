"""
BacktestEngine Class for Portfolio Backtesting

This module provides the BacktestEngine class that orchestrates a backtest.
It coordinates the Driver, Strategy, ExecutionModel and SimulationState to
simulate a portfolio over a sequence of market snapshots, and assembles the
immutable BacktestResult.

Key Features:
    - Single-pass, deterministic event loop
    - Per-order failure policy (skip-and-continue or fail-fast)
    - Equity curve and per-step position snapshots
    - Summary metrics (total return, CAGR, volatility, Sharpe, drawdown)
    - Step and fill callbacks for monitoring

Design Philosophy:
    The engine is the only component that mutates SimulationState. The
    strategy sees a read-only StateView built on the state *after* the
    current snapshot has been applied, so orders are always based on prices
    known at or before the current step and never on later ones.

Event Loop Architecture:
    For each snapshot produced by the driver:
    1. Advance state timestamp and prices to the snapshot
    2. Ask the strategy for orders against the updated state
    3. Execute each order, in the order returned, through the ExecutionModel
    4. Apply every fill to cash, positions and the fill log
    5. Record portfolio value and a position snapshot

Order Failure Policy:
    An order whose symbol is absent from the snapshot (MissingPriceError) or
    whose fill would drive a position below zero (InsufficientPositionError)
    is, by default, logged at WARNING, recorded in ``rejected_orders`` and
    skipped; the remaining orders of the step are still attempted. With
    ``fail_fast=True`` the first such order aborts the run with
    BacktestExecutionError. An execution model returning None is an ordinary
    no-fill and is only counted in ``unfilled_orders``.

Financial Correctness:
    - Equity = cash + sum(position x latest known price)
    - Buy fills decrease cash by quantity x price (+ commission)
    - Sell fills increase cash by quantity x price (- commission)
    - Equity curve has one value per step

Usage:
    from portfolio_backtester.engine.backtest_engine import BacktestEngine
    from portfolio_backtester.engine.data_stream import HistoricalDriver
    from portfolio_backtester.strategies import BuyAndHoldStrategy

    driver = HistoricalDriver(timestamps, {'A': [100.0, 101.0, 102.0]})
    engine = BacktestEngine(
        strategy=BuyAndHoldStrategy({'A': 1.0}),
        driver=driver,
        initial_capital=10000.0
    )

    result = engine.run()
    print(f"Final Value: ${result.final_value:,.2f}")
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from portfolio_backtester.analytics.metrics import (
    DEFAULT_RISK_FREE_RATE,
    TRADING_DAYS_PER_YEAR,
    PerformanceMetrics,
)
from portfolio_backtester.core.models import Fill, MarketSnapshot, Order
from portfolio_backtester.core.state import (
    InsufficientPositionError,
    SimulationState,
    StateError,
    StateView,
)
from portfolio_backtester.engine.data_stream import Driver, HistoricalDriver
from portfolio_backtester.engine.execution import (
    ExecutionModel,
    InstantFill,
    MissingPriceError,
)
from portfolio_backtester.strategies.strategy import Strategy

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Default initial capital
DEFAULT_INITIAL_CAPITAL = 10000.0


# =============================================================================
# Exceptions
# =============================================================================

class BacktestError(Exception):
    """Base exception for backtest errors."""
    pass


class BacktestConfigError(BacktestError):
    """Exception raised for configuration errors."""
    pass


class BacktestExecutionError(BacktestError):
    """Exception raised during backtest execution."""
    pass


# =============================================================================
# RejectedOrder Class
# =============================================================================

@dataclass(frozen=True)
class RejectedOrder:
    """An order skipped by the engine, with the step and the reason."""

    timestamp: datetime
    order: Order
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp.isoformat(),
            'symbol': self.order.symbol,
            'side': self.order.side.value,
            'quantity': self.order.quantity,
            'reason': self.reason,
        }


# =============================================================================
# BacktestResult Class
# =============================================================================

@dataclass(frozen=True)
class BacktestResult:
    """
    Terminal, immutable record of one backtest run.

    Attributes:
        initial_value (float): Starting cash
        final_value (float): Portfolio value after the last step
        equity_curve (Tuple[float, ...]): Portfolio value per step
        period_returns (Tuple[float, ...]): Simple returns between steps,
            one shorter than equity_curve
        timestamps (Tuple[datetime, ...]): Timestamp per step
        fills (Tuple[Fill, ...]): Every fill, in execution order
        position_snapshots (Tuple[Mapping[str, float], ...]): Read-only
            positions per step
        metrics (Mapping[str, float]): Read-only summary metrics
        strategy_name (str): Name of the strategy that produced the run
        rejected_orders (Tuple[RejectedOrder, ...]): Orders skipped on error
    """

    initial_value: float
    final_value: float
    equity_curve: Tuple[float, ...]
    period_returns: Tuple[float, ...]
    timestamps: Tuple[datetime, ...]
    fills: Tuple[Fill, ...]
    position_snapshots: Tuple[Mapping[str, float], ...]
    metrics: Mapping[str, float]
    strategy_name: str = ""
    rejected_orders: Tuple[RejectedOrder, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'metrics', MappingProxyType(dict(self.metrics)))
        object.__setattr__(
            self,
            'position_snapshots',
            tuple(MappingProxyType(dict(p)) for p in self.position_snapshots),
        )

    def __reduce__(self):
        # mappingproxy cannot be pickled; rebuild from plain dicts
        return (
            BacktestResult,
            (
                self.initial_value,
                self.final_value,
                self.equity_curve,
                self.period_returns,
                self.timestamps,
                self.fills,
                tuple(dict(p) for p in self.position_snapshots),
                dict(self.metrics),
                self.strategy_name,
                self.rejected_orders,
            ),
        )

    @property
    def num_steps(self) -> int:
        """Number of simulated steps."""
        return len(self.equity_curve)

    @property
    def num_fills(self) -> int:
        """Number of fills."""
        return len(self.fills)

    @property
    def total_return(self) -> float:
        """Total return as a fraction of the initial value."""
        return self.metrics.get('total_return', 0.0)

    def to_dict(self) -> Dict[str, Any]:
        """Plain JSON-serializable representation."""
        return {
            'strategy_name': self.strategy_name,
            'initial_value': self.initial_value,
            'final_value': self.final_value,
            'num_steps': self.num_steps,
            'metrics': dict(self.metrics),
            'timestamps': [ts.isoformat() for ts in self.timestamps],
            'equity_curve': list(self.equity_curve),
            'period_returns': list(self.period_returns),
            'position_snapshots': [dict(p) for p in self.position_snapshots],
            'fills': [f.to_dict() for f in self.fills],
            'rejected_orders': [r.to_dict() for r in self.rejected_orders],
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        """Serialize to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    def to_frame(self) -> pd.DataFrame:
        """
        Equity curve as a DataFrame.

        Indexed by timestamp with columns 'equity', 'return' (NaN on the
        first step) and one position column per symbol ever held.

        Example:
            >>> df = result.to_frame()
            >>> df['equity'].plot()
        """
        if not self.equity_curve:
            return pd.DataFrame(columns=['equity', 'return'])

        df = pd.DataFrame(
            {
                'equity': list(self.equity_curve),
                'return': [np.nan] + list(self.period_returns),
            },
            index=pd.DatetimeIndex(list(self.timestamps), name='timestamp'),
        )

        positions = pd.DataFrame(
            [dict(p) for p in self.position_snapshots], index=df.index
        ).fillna(0.0)
        for symbol in positions.columns:
            df[f'position_{symbol}'] = positions[symbol]

        return df


# =============================================================================
# BacktestEngine Class
# =============================================================================

class BacktestEngine:
    """
    Orchestrate a single backtest run.

    An engine wraps one driver, which cannot be rewound, so run() may be
    called only once. Build a new driver, strategy and engine to replay.

    Attributes:
        strategy (Strategy): Strategy being backtested
        driver (Driver): Source of market snapshots
        execution_model (ExecutionModel): Order to fill model
        initial_capital (float): Starting cash
        fail_fast (bool): Abort on the first order error instead of skipping

    Example:
        >>> engine = BacktestEngine(
        ...     strategy=BuyAndHoldStrategy({'A': 0.6, 'B': 0.4}),
        ...     driver=HistoricalDriver(timestamps, prices),
        ...     initial_capital=10000.0
        ... )
        >>> result = engine.run()
    """

    __slots__ = (
        '_strategy',
        '_driver',
        '_execution_model',
        '_initial_capital',
        '_fail_fast',
        '_periods_per_year',
        '_risk_free_rate',
        '_state',
        '_equity_curve',
        '_timestamps',
        '_position_snapshots',
        '_rejected_orders',
        '_unfilled_orders',
        '_has_run',
        '_is_running',
        '_on_step_callback',
        '_on_fill_callback',
    )

    def __init__(
        self,
        strategy: Strategy,
        driver: Driver,
        execution_model: Optional[ExecutionModel] = None,
        initial_capital: float = DEFAULT_INITIAL_CAPITAL,
        fail_fast: bool = False,
        periods_per_year: int = TRADING_DAYS_PER_YEAR,
        risk_free_rate: float = DEFAULT_RISK_FREE_RATE
    ) -> None:
        """
        Initialize the BacktestEngine.

        Args:
            strategy: Strategy to backtest. Use a fresh instance per run.
            driver: Driver producing snapshots. Use a fresh instance per run.
            execution_model: Order execution model. Defaults to InstantFill.
            initial_capital: Starting cash in dollars. Default $10,000.
            fail_fast: Abort on the first failed order instead of skipping it.
            periods_per_year: Steps per year, used to annualize metrics.
            risk_free_rate: Annual risk-free rate for Sharpe and Sortino.

        Raises:
            BacktestConfigError: If parameters are invalid
        """
        if strategy is None:
            raise BacktestConfigError("strategy cannot be None")
        if not isinstance(strategy, Strategy):
            raise BacktestConfigError(
                f"strategy must be a Strategy instance, got {type(strategy).__name__}"
            )
        self._strategy = strategy

        if driver is None:
            raise BacktestConfigError("driver cannot be None")
        if not isinstance(driver, Driver):
            raise BacktestConfigError(
                f"driver must be a Driver instance, got {type(driver).__name__}"
            )
        self._driver = driver

        if execution_model is None:
            execution_model = InstantFill()
        elif not isinstance(execution_model, ExecutionModel):
            raise BacktestConfigError(
                f"execution_model must be an ExecutionModel instance, "
                f"got {type(execution_model).__name__}"
            )
        self._execution_model = execution_model

        if initial_capital is None or initial_capital <= 0:
            raise BacktestConfigError(
                f"initial_capital must be positive, got {initial_capital}"
            )
        if not np.isfinite(initial_capital):
            raise BacktestConfigError(
                f"initial_capital must be finite, got {initial_capital}"
            )
        self._initial_capital = float(initial_capital)

        if not isinstance(periods_per_year, int) or periods_per_year <= 0:
            raise BacktestConfigError(
                f"periods_per_year must be a positive integer, got {periods_per_year}"
            )
        self._periods_per_year = periods_per_year
        self._risk_free_rate = float(risk_free_rate)
        self._fail_fast = bool(fail_fast)

        self._state = SimulationState(self._initial_capital)

        # Per-step records
        self._equity_curve: List[float] = []
        self._timestamps: List[datetime] = []
        self._position_snapshots: List[Dict[str, float]] = []
        self._rejected_orders: List[RejectedOrder] = []
        self._unfilled_orders: List[Order] = []

        # State flags
        self._has_run = False
        self._is_running = False

        # Callbacks
        self._on_step_callback: Optional[Callable[[StateView], None]] = None
        self._on_fill_callback: Optional[Callable[[Fill], None]] = None

        logger.info(
            f"BacktestEngine initialized: strategy={strategy.name}, "
            f"capital=${self._initial_capital:,.2f}, "
            f"execution={self._execution_model!r}, fail_fast={self._fail_fast}"
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def strategy(self) -> Strategy:
        """Get the strategy being backtested."""
        return self._strategy

    @property
    def driver(self) -> Driver:
        """Get the driver."""
        return self._driver

    @property
    def execution_model(self) -> ExecutionModel:
        """Get the execution model."""
        return self._execution_model

    @property
    def initial_capital(self) -> float:
        """Get initial capital."""
        return self._initial_capital

    @property
    def fail_fast(self) -> bool:
        """Whether the first failed order aborts the run."""
        return self._fail_fast

    @property
    def state(self) -> StateView:
        """Get a read-only view of the current simulation state."""
        return self._state.view()

    @property
    def is_running(self) -> bool:
        """Check if backtest is currently running."""
        return self._is_running

    @property
    def num_steps(self) -> int:
        """Get number of steps processed so far."""
        return len(self._equity_curve)

    @property
    def rejected_orders(self) -> Tuple[RejectedOrder, ...]:
        """Get orders skipped because of a missing price or position."""
        return tuple(self._rejected_orders)

    @property
    def unfilled_orders(self) -> Tuple[Order, ...]:
        """Get orders the execution model declined to fill."""
        return tuple(self._unfilled_orders)

    # =========================================================================
    # Main Run Method
    # =========================================================================

    def run(self) -> BacktestResult:
        """
        Run the full backtest.

        Drains the driver, executing the event loop at each snapshot.

        Returns:
            BacktestResult for the run

        Raises:
            BacktestError: If run() was already called on this engine
            BacktestExecutionError: If fail_fast is set and an order fails

        Example:
            >>> result = engine.run()
            >>> print(f"Total Return: {result.total_return:.2%}")
        """
        if self._has_run:
            raise BacktestError(
                "BacktestEngine.run() can only be called once; "
                "build a new driver, strategy and engine to replay"
            )
        self._has_run = True
        self._is_running = True

        logger.info(f"Starting backtest: {self._strategy.name}")

        try:
            for snapshot in self._driver:
                self.step(snapshot)
        finally:
            self._is_running = False

        result = self.build_result()

        logger.info(
            f"Backtest completed: {self._strategy.name}, "
            f"steps={result.num_steps}, "
            f"final value=${result.final_value:,.2f}, "
            f"return={result.total_return:.2%}, "
            f"fills={result.num_fills}, rejected={len(self._rejected_orders)}"
        )
        return result

    def step(self, snapshot: MarketSnapshot) -> None:
        """
        Execute a single step of the event loop.

        Args:
            snapshot: Market snapshot for this step

        Raises:
            BacktestExecutionError: If the snapshot moves time backwards, or
                                   if fail_fast is set and an order fails
        """
        # 1. Advance state to the snapshot
        try:
            self._state.advance(snapshot)
        except StateError as e:
            raise BacktestExecutionError(str(e)) from e

        # 2. Strategy decision against the updated state
        view = self._state.view()
        orders = self._strategy.generate_orders(view)

        # 3-4. Execute orders in the order returned and apply fills
        for order in orders:
            self._process_order(order, snapshot, view)

        # 5. Record state
        self._record_step(snapshot.timestamp)

        if self._on_step_callback:
            self._on_step_callback(view)

    # =========================================================================
    # Event Loop Components
    # =========================================================================

    def _process_order(
        self,
        order: Order,
        snapshot: MarketSnapshot,
        view: StateView
    ) -> None:
        """Execute one order and apply its fill, applying the failure policy."""
        try:
            fill = self._execution_model.execute(order, snapshot, view)
            if fill is None:
                self._unfilled_orders.append(order)
                logger.debug(f"No fill for {order} at {snapshot.timestamp}")
                return
            self._state.apply_fill(fill)
        except (MissingPriceError, InsufficientPositionError) as e:
            if self._fail_fast:
                raise BacktestExecutionError(
                    f"Order {order} failed at {snapshot.timestamp}: {e}"
                ) from e
            logger.warning(f"Skipping order {order} at {snapshot.timestamp}: {e}")
            self._rejected_orders.append(
                RejectedOrder(snapshot.timestamp, order, str(e))
            )
            return

        if self._on_fill_callback:
            self._on_fill_callback(fill)

    def _record_step(self, timestamp: datetime) -> None:
        value = self._state.portfolio_value()
        self._equity_curve.append(value)
        self._timestamps.append(timestamp)
        self._position_snapshots.append(self._state.positions_snapshot())

        logger.debug(
            f"{timestamp}: value=${value:,.2f}, cash=${self._state.cash:,.2f}"
        )

    # =========================================================================
    # Results Generation
    # =========================================================================

    def build_result(self) -> BacktestResult:
        """
        Assemble a BacktestResult from the steps processed so far.

        Can be called mid-run (or after an aborted run) to salvage a
        partial result.
        """
        equity = tuple(self._equity_curve)
        returns = PerformanceMetrics.calculate_period_returns(equity)
        metrics = PerformanceMetrics.calculate_all_metrics(
            equity,
            periods_per_year=self._periods_per_year,
            risk_free_rate=self._risk_free_rate,
        )

        return BacktestResult(
            initial_value=self._initial_capital,
            final_value=equity[-1] if equity else self._initial_capital,
            equity_curve=equity,
            period_returns=tuple(float(r) for r in returns),
            timestamps=tuple(self._timestamps),
            fills=self._state.fills,
            position_snapshots=tuple(dict(p) for p in self._position_snapshots),
            metrics=metrics,
            strategy_name=self._strategy.name,
            rejected_orders=tuple(self._rejected_orders),
        )

    def get_statistics(self) -> Dict[str, Any]:
        """Strategy, execution and order-failure statistics for reporting."""
        return {
            'strategy': self._strategy.get_statistics(),
            'execution': self._execution_model.get_execution_summary(),
            'num_steps': self.num_steps,
            'num_rejected_orders': len(self._rejected_orders),
            'num_unfilled_orders': len(self._unfilled_orders),
        }

    # =========================================================================
    # Callback Methods
    # =========================================================================

    def set_on_step_callback(self, callback: Callable[[StateView], None]) -> None:
        """
        Set callback to be called after each step.

        Args:
            callback: Function taking the step's read-only StateView
        """
        if callback is not None and not callable(callback):
            raise BacktestConfigError("callback must be callable")
        self._on_step_callback = callback

    def set_on_fill_callback(self, callback: Callable[[Fill], None]) -> None:
        """
        Set callback to be called after each applied fill.

        Args:
            callback: Function taking the Fill
        """
        if callback is not None and not callable(callback):
            raise BacktestConfigError("callback must be callable")
        self._on_fill_callback = callback

    def __repr__(self) -> str:
        return (
            f"BacktestEngine(strategy={self._strategy.name!r}, "
            f"capital={self._initial_capital:,.2f}, steps={self.num_steps})"
        )


# =============================================================================
# Convenience Function
# =============================================================================

def run_backtest(
    strategy: Strategy,
    timestamps: Sequence[Any],
    prices: Mapping[str, Sequence[Any]],
    initial_capital: float = DEFAULT_INITIAL_CAPITAL,
    execution_model: Optional[ExecutionModel] = None,
    fail_fast: bool = False,
    periods_per_year: int = TRADING_DAYS_PER_YEAR,
    risk_free_rate: float = DEFAULT_RISK_FREE_RATE
) -> BacktestResult:
    """
    Run a backtest over aligned timestamps and prices.

    Builds a HistoricalDriver and a BacktestEngine and runs them.

    Raises:
        MisalignedDataError: If prices and timestamps are not aligned

    Example:
        >>> result = run_backtest(
        ...     BuyAndHoldStrategy({'A': 0.6, 'B': 0.4}),
        ...     timestamps=['2024-01-02', '2024-01-03', '2024-01-04'],
        ...     prices={'A': [100.0] * 3, 'B': [100.0] * 3},
        ... )
        >>> result.final_value
        10000.0
    """
    driver = HistoricalDriver(timestamps, prices)
    engine = BacktestEngine(
        strategy=strategy,
        driver=driver,
        execution_model=execution_model,
        initial_capital=initial_capital,
        fail_fast=fail_fast,
        periods_per_year=periods_per_year,
        risk_free_rate=risk_free_rate,
    )
    return engine.run()


__all__ = [
    'BacktestEngine',
    'BacktestResult',
    'RejectedOrder',
    'run_backtest',
    'BacktestError',
    'BacktestConfigError',
    'BacktestExecutionError',
    'DEFAULT_INITIAL_CAPITAL',
]
