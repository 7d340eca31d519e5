"""
SimulationState for Portfolio Backtesting

This module provides the mutable portfolio aggregate owned by the
BacktestEngine and the read-only StateView handed to strategies.

Key Features:
    - Cash, per-symbol positions and latest known prices
    - Append-only fill log
    - Mark-to-market valuation and current weights
    - Read-only view for strategy decisions

Design Philosophy:
    Only the engine mutates SimulationState: once per step it advances the
    timestamp and prices from a snapshot and applies that step's fills.
    Strategies see a StateView, which exposes queries but no mutators, so a
    strategy can only express intentions by returning Orders.

Financial Correctness:
    - Portfolio value = cash + sum(position[s] x price[s])
    - Buy fill: cash -= quantity x price (+ commission), position += quantity
    - Sell fill: cash += quantity x price (- commission), position -= quantity
    - Positions are long-only (never below zero)
    - Cash may go negative; buying-power policy belongs to the ExecutionModel

Usage:
    state = SimulationState(initial_cash=10000.0)
    state.advance(snapshot)
    state.apply_fill(fill)
    print(state.portfolio_value())
"""

import logging
from datetime import datetime
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

import numpy as np

from portfolio_backtester.core.models import Fill, MarketSnapshot

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Residual position sizes below this are treated as float noise and clamped
POSITION_TOLERANCE = 1e-9


# =============================================================================
# Exceptions
# =============================================================================

class StateError(Exception):
    """Base exception for simulation state errors."""
    pass


class InsufficientPositionError(StateError):
    """Exception raised when a sell fill exceeds the held quantity."""
    pass


# =============================================================================
# SimulationState Class
# =============================================================================

class SimulationState:
    """
    Mutable portfolio state for one backtest run.

    Attributes:
        timestamp (Optional[datetime]): Time of the latest applied snapshot
        cash (float): Current cash balance
        positions (Dict[str, float]): Quantity held per symbol
        prices (Dict[str, float]): Latest known price per symbol
        fills (List[Fill]): Append-only fill log

    Example:
        >>> state = SimulationState(10000.0)
        >>> state.advance(MarketSnapshot(datetime(2024, 1, 2), {'A': 100.0}))
        >>> state.portfolio_value()
        10000.0
    """

    __slots__ = (
        '_initial_cash',
        '_timestamp',
        '_cash',
        '_positions',
        '_prices',
        '_fills',
    )

    def __init__(self, initial_cash: float) -> None:
        """
        Initialize state with a cash endowment and no positions.

        Args:
            initial_cash: Starting cash balance

        Raises:
            StateError: If initial_cash is not finite
        """
        if initial_cash is None or not np.isfinite(initial_cash):
            raise StateError(f"initial_cash must be finite, got {initial_cash}")
        self._initial_cash = float(initial_cash)
        self._timestamp: Optional[datetime] = None
        self._cash = float(initial_cash)
        self._positions: Dict[str, float] = {}
        self._prices: Dict[str, float] = {}
        self._fills: List[Fill] = []

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def initial_cash(self) -> float:
        """Get the starting cash balance."""
        return self._initial_cash

    @property
    def timestamp(self) -> Optional[datetime]:
        """Get the current simulation time."""
        return self._timestamp

    @property
    def cash(self) -> float:
        """Get the current cash balance."""
        return self._cash

    @property
    def positions(self) -> Mapping[str, float]:
        """Get a read-only view of positions."""
        return MappingProxyType(self._positions)

    @property
    def prices(self) -> Mapping[str, float]:
        """Get a read-only view of the latest known prices."""
        return MappingProxyType(self._prices)

    @property
    def fills(self) -> Tuple[Fill, ...]:
        """Get the fill log."""
        return tuple(self._fills)

    @property
    def num_fills(self) -> int:
        """Get the number of fills applied."""
        return len(self._fills)

    # =========================================================================
    # Mutation (engine only)
    # =========================================================================

    def advance(self, snapshot: MarketSnapshot) -> None:
        """
        Move the state to a new snapshot.

        Updates the timestamp and merges the snapshot's prices into the latest
        known prices. Symbols absent from the snapshot keep their last price.

        Raises:
            StateError: If the snapshot is earlier than the current timestamp
        """
        if self._timestamp is not None and snapshot.timestamp < self._timestamp:
            raise StateError(
                f"Cannot move state back in time from {self._timestamp} "
                f"to {snapshot.timestamp}"
            )
        self._timestamp = snapshot.timestamp
        self._prices.update(snapshot.prices)

    def apply_fill(self, fill: Fill) -> None:
        """
        Apply a fill to cash and positions and append it to the fill log.

        Raises:
            InsufficientPositionError: If a sell exceeds the held quantity
        """
        held = self._positions.get(fill.symbol, 0.0)
        new_quantity = held + fill.position_delta

        if new_quantity < 0:
            if new_quantity < -POSITION_TOLERANCE:
                raise InsufficientPositionError(
                    f"Cannot sell {fill.quantity:g} {fill.symbol}: "
                    f"only {held:g} held"
                )
            new_quantity = 0.0

        self._cash += fill.cash_delta
        self._positions[fill.symbol] = new_quantity
        self._fills.append(fill)

        logger.debug(
            f"Applied fill: {fill.side.value} {fill.quantity:g} {fill.symbol} "
            f"@ {fill.price:.4f}, cash=${self._cash:,.2f}"
        )

    # =========================================================================
    # Valuation
    # =========================================================================

    def position_value(self, symbol: str) -> float:
        """Mark-to-market value of one position (0 if no known price)."""
        return self._positions.get(symbol, 0.0) * self._prices.get(symbol, 0.0)

    def portfolio_value(self) -> float:
        """Cash plus the mark-to-market value of all positions."""
        return self._cash + sum(
            quantity * self._prices.get(symbol, 0.0)
            for symbol, quantity in self._positions.items()
        )

    def weights(self) -> Dict[str, float]:
        """Current weight of each held symbol in the portfolio value."""
        total = self.portfolio_value()
        if total == 0:
            return {symbol: 0.0 for symbol in self._positions}
        return {
            symbol: self.position_value(symbol) / total
            for symbol in self._positions
        }

    def positions_snapshot(self) -> Dict[str, float]:
        """Copy of the current positions."""
        return dict(self._positions)

    def view(self) -> 'StateView':
        """Read-only view for strategies."""
        return StateView(self)

    def __repr__(self) -> str:
        return (
            f"SimulationState(timestamp={self._timestamp}, "
            f"cash={self._cash:,.2f}, positions={self._positions})"
        )


# =============================================================================
# StateView Class
# =============================================================================

class StateView:
    """
    Read-only query interface over a SimulationState.

    Strategies receive a StateView and can read cash, positions and prices,
    but have no way to change them.
    """

    __slots__ = ('_state',)

    def __init__(self, state: SimulationState) -> None:
        self._state = state

    @property
    def timestamp(self) -> Optional[datetime]:
        return self._state.timestamp

    @property
    def cash(self) -> float:
        return self._state.cash

    @property
    def positions(self) -> Mapping[str, float]:
        return self._state.positions

    @property
    def prices(self) -> Mapping[str, float]:
        return self._state.prices

    @property
    def fills(self) -> Tuple[Fill, ...]:
        return self._state.fills

    def portfolio_value(self) -> float:
        return self._state.portfolio_value()

    def position_value(self, symbol: str) -> float:
        return self._state.position_value(symbol)

    def current_weight(self, symbol: str) -> float:
        """Weight of one symbol, treating a missing price as value 0."""
        total = self._state.portfolio_value()
        if total == 0:
            return 0.0
        return self._state.position_value(symbol) / total

    def __repr__(self) -> str:
        return f"StateView({self._state!r})"


__all__ = [
    'SimulationState',
    'StateView',
    'StateError',
    'InsufficientPositionError',
    'POSITION_TOLERANCE',
]
