"""
Core Module for Portfolio Backtesting

This module provides the value types and the mutable portfolio state that
every other part of the backtester is built on.

Components:
    - models: MarketSnapshot, Order, Fill and OrderSide value types
    - state: SimulationState (engine-owned) and StateView (strategy-facing)

Key Classes:
    - MarketSnapshot: Timestamp plus a price per tradable symbol
    - Order: Trading intent produced by a Strategy
    - Fill: Simulated execution produced by an ExecutionModel
    - SimulationState: Cash, positions, latest prices and the fill log
    - StateView: Read-only view of a SimulationState

Usage:
    from portfolio_backtester.core import (
        MarketSnapshot,
        Order,
        SimulationState,
    )

    state = SimulationState(initial_cash=10000.0)
    state.advance(MarketSnapshot(datetime(2024, 1, 2), {'SPY': 472.65}))
    print(state.portfolio_value())
"""

from portfolio_backtester.core.models import (
    OrderSide,
    MarketSnapshot,
    Order,
    Fill,
    OrderValidationError,
)

from portfolio_backtester.core.state import (
    SimulationState,
    StateView,
    StateError,
    InsufficientPositionError,
    POSITION_TOLERANCE,
)

__all__ = [
    # Value types
    'OrderSide',
    'MarketSnapshot',
    'Order',
    'Fill',

    # State
    'SimulationState',
    'StateView',

    # Exceptions
    'OrderValidationError',
    'StateError',
    'InsufficientPositionError',

    # Constants
    'POSITION_TOLERANCE',
]
