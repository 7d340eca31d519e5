"""
Strategy Base Class for Portfolio Backtesting

This module provides the Strategy base class and the shared machinery used by
the allocation strategies: target-weight validation, rebalance frequencies,
and the delta-to-target order calculation.

Key Features:
    - Abstract decision protocol (generate_orders / should_rebalance)
    - Target weight validation (sum to 1.0 within 0.01, long-only)
    - Calendar rebalance frequencies (daily, weekly, monthly)
    - Delta-to-target order generation with a minimum trade value

Design Philosophy:
    A strategy is a decision function from a read-only StateView to a list of
    Orders. It never mutates portfolio state. Any bookkeeping a strategy
    needs between calls ("already invested", "last rebalance") lives in
    private fields of the instance, so each backtest run must use a freshly
    constructed strategy.

Financial Correctness:
    - Target value = total portfolio value x target weight
    - Delta = target value - current position value
    - |delta| <= MIN_TRADE_VALUE produces no order
    - Order quantity = |delta / price|, side from the sign of delta

Usage:
    from portfolio_backtester.strategies.strategy import Strategy

    class MyStrategy(Strategy):
        def generate_orders(self, state):
            return [Order.buy('SPY', 1)] if state.cash > 1000 else []
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Hashable, List, Mapping, Union

import numpy as np

from portfolio_backtester.core.models import Order, OrderSide
from portfolio_backtester.core.state import StateView

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Orders worth this much or less are not worth placing
MIN_TRADE_VALUE = 1.0

# Allowed deviation of the sum of target weights from 1.0
WEIGHT_SUM_TOLERANCE = 0.01

# Float noise allowance when comparing against WEIGHT_SUM_TOLERANCE
EPSILON = 1e-9

# Default drift tolerance for rebalancing
DEFAULT_REBALANCE_TOLERANCE = 0.05


# =============================================================================
# Exceptions
# =============================================================================

class StrategyError(Exception):
    """Base exception for Strategy errors."""
    pass


class ConfigurationError(StrategyError):
    """Exception raised when a strategy is constructed with invalid settings."""
    pass


class InvalidWeightsError(ConfigurationError):
    """Exception raised when target weights are invalid."""
    pass


class InvalidFrequencyError(ConfigurationError):
    """Exception raised for an unknown rebalance frequency."""
    pass


# =============================================================================
# Rebalance Frequency
# =============================================================================

class RebalanceFrequency(str, Enum):
    """Calendar period between rebalances."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Union[str, 'RebalanceFrequency']) -> 'RebalanceFrequency':
        """
        Convert a string or enum member to a RebalanceFrequency.

        Raises:
            InvalidFrequencyError: If the value is not a known frequency
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            valid = ", ".join(f.value for f in cls)
            raise InvalidFrequencyError(
                f"rebalance_frequency must be one of {valid}, got {value!r}"
            ) from None

    def period_key(self, timestamp: datetime) -> Hashable:
        """
        Key identifying the calendar period containing a timestamp.

        Two timestamps fall in the same period exactly when their keys are
        equal. Weekly and monthly keys include the calendar year so that a
        change of year alone counts as a new period, even inside an ISO week
        that straddles New Year.
        """
        if self is RebalanceFrequency.DAILY:
            return timestamp.date()
        if self is RebalanceFrequency.WEEKLY:
            return (timestamp.year, timestamp.isocalendar()[1])
        return (timestamp.year, timestamp.month)


# =============================================================================
# Validation Helpers
# =============================================================================

def validate_target_weights(weights: Mapping[str, float]) -> Dict[str, float]:
    """
    Validate a symbol -> target weight mapping.

    Args:
        weights: Target allocation

    Returns:
        A copy with float weights, in the caller's order

    Raises:
        InvalidWeightsError: If the mapping is empty, has a negative or
                            non-finite weight, or does not sum to 1.0 within
                            WEIGHT_SUM_TOLERANCE
    """
    if not weights:
        raise InvalidWeightsError("target_weights cannot be empty")

    validated: Dict[str, float] = {}
    for symbol, weight in weights.items():
        if not symbol or not isinstance(symbol, str):
            raise InvalidWeightsError(f"Invalid symbol {symbol!r}")
        try:
            weight = float(weight)
        except (TypeError, ValueError):
            raise InvalidWeightsError(
                f"Weight for {symbol!r} must be numeric, got {weight!r}"
            ) from None
        if not np.isfinite(weight):
            raise InvalidWeightsError(f"Weight for {symbol!r} must be finite")
        if weight < 0:
            raise InvalidWeightsError(
                f"Weight for {symbol!r} must be non-negative (long-only), got {weight}"
            )
        validated[symbol] = weight

    total = sum(validated.values())
    if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE + EPSILON:
        raise InvalidWeightsError(
            f"Target weights must sum to 1.0 (within {WEIGHT_SUM_TOLERANCE}), "
            f"got {total}"
        )

    return validated


# =============================================================================
# Strategy Base Class
# =============================================================================

class Strategy(ABC):
    """
    Abstract base class for portfolio strategies.

    Subclasses implement generate_orders(); periodic strategies also override
    should_rebalance().

    Attributes:
        name (str): Strategy name for identification
    """

    def __init__(self, name: str) -> None:
        if not name or not isinstance(name, str):
            raise ConfigurationError("name must be a non-empty string")
        self._name = name.strip()
        self._num_decisions = 0
        self._num_orders = 0

    @property
    def name(self) -> str:
        """Get strategy name."""
        return self._name

    @abstractmethod
    def generate_orders(self, state: StateView) -> List[Order]:
        """
        Decide which orders to place given the current state.

        Args:
            state: Read-only view of the portfolio at the current step

        Returns:
            Orders to execute this step, in execution order (may be empty)
        """
        ...

    def should_rebalance(self, state: StateView) -> bool:
        """
        Whether a periodic strategy wants to trade at this step.

        Non-periodic strategies leave the decision to generate_orders().
        """
        return False

    def _orders_to_target(
        self,
        state: StateView,
        target_weights: Mapping[str, float]
    ) -> List[Order]:
        """
        Orders that move each position to its target share of the portfolio.

        Symbols with no known price are skipped. Trades worth MIN_TRADE_VALUE
        or less are dropped.
        """
        orders: List[Order] = []
        total_value = state.portfolio_value()
        prices = state.prices

        for symbol, target_weight in target_weights.items():
            if symbol not in prices:
                logger.debug(f"{self._name}: no price for {symbol}, skipping")
                continue

            price = prices[symbol]
            if price <= 0:
                logger.warning(f"{self._name}: non-positive price for {symbol}, skipping")
                continue

            target_value = total_value * target_weight
            current_value = state.positions.get(symbol, 0.0) * price
            delta_value = target_value - current_value

            if abs(delta_value) > MIN_TRADE_VALUE:
                quantity = delta_value / price
                side = OrderSide.BUY if quantity > 0 else OrderSide.SELL
                orders.append(Order(symbol, abs(quantity), side))

        self._num_decisions += 1
        self._num_orders += len(orders)
        return orders

    def get_statistics(self) -> Dict[str, Any]:
        """Get decision statistics for reporting."""
        return {
            'name': self._name,
            'type': type(self).__name__,
            'num_decisions': self._num_decisions,
            'num_orders': self._num_orders,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


__all__ = [
    'Strategy',
    'RebalanceFrequency',
    'validate_target_weights',
    'StrategyError',
    'ConfigurationError',
    'InvalidWeightsError',
    'InvalidFrequencyError',
    'MIN_TRADE_VALUE',
    'WEIGHT_SUM_TOLERANCE',
    'DEFAULT_REBALANCE_TOLERANCE',
]
