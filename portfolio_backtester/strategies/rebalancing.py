"""
Rebalancing Strategy

Periodically trades the portfolio back to target weights when any holding
has drifted too far from its target.

Trigger rules, evaluated in order:
    1. Portfolio worth less than $1: never rebalance.
    2. Already rebalanced in the current calendar period (day, ISO week or
       month, with the calendar year included for weekly/monthly): do not rebalance.
    3. Otherwise rebalance if any target symbol's weight differs from its
       target by more than the tolerance. A symbol with no known price
       counts as weight 0.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from portfolio_backtester.core.models import Order
from portfolio_backtester.core.state import StateView
from portfolio_backtester.strategies.strategy import (
    DEFAULT_REBALANCE_TOLERANCE,
    MIN_TRADE_VALUE,
    ConfigurationError,
    RebalanceFrequency,
    Strategy,
    validate_target_weights,
)

logger = logging.getLogger(__name__)


class RebalancingStrategy(Strategy):
    """
    Rebalance to target weights at most once per calendar period.

    Attributes:
        target_weights (Dict[str, float]): Target allocation (sums to ~1.0)
        rebalance_frequency (RebalanceFrequency): daily, weekly or monthly
        tolerance (float): Drift that triggers a rebalance, as a fraction
        last_rebalance (Optional[datetime]): Time of the last rebalance

    Example:
        >>> strategy = RebalancingStrategy(
        ...     target_weights={'AAPL': 0.5, 'GOOGL': 0.5},
        ...     rebalance_frequency='monthly',
        ...     tolerance=0.05
        ... )
    """

    def __init__(
        self,
        target_weights: Mapping[str, float],
        rebalance_frequency: Union[str, RebalanceFrequency] = RebalanceFrequency.MONTHLY,
        tolerance: float = DEFAULT_REBALANCE_TOLERANCE,
        name: Optional[str] = None
    ) -> None:
        """
        Raises:
            InvalidWeightsError: If weights do not sum to 1.0 within 0.01
            InvalidFrequencyError: If the frequency is unknown
            ConfigurationError: If tolerance is outside [0, 1)
        """
        super().__init__(name or "Rebalancing")
        self._target_weights = validate_target_weights(target_weights)
        self._frequency = RebalanceFrequency.parse(rebalance_frequency)

        try:
            tolerance = float(tolerance)
        except (TypeError, ValueError):
            raise ConfigurationError(
                f"tolerance must be numeric, got {tolerance!r}"
            ) from None
        if not 0.0 <= tolerance < 1.0:
            raise ConfigurationError(
                f"tolerance must be in [0, 1), got {tolerance}"
            )
        self._tolerance = tolerance

        self._last_rebalance: Optional[datetime] = None
        self._num_rebalances = 0

        logger.debug(f"Created {self!r}")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def target_weights(self) -> Dict[str, float]:
        """Get target weights (copy)."""
        return dict(self._target_weights)

    @property
    def rebalance_frequency(self) -> RebalanceFrequency:
        """Get the rebalance frequency."""
        return self._frequency

    @property
    def tolerance(self) -> float:
        """Get the drift tolerance."""
        return self._tolerance

    @property
    def last_rebalance(self) -> Optional[datetime]:
        """Get the timestamp of the last rebalance, if any."""
        return self._last_rebalance

    # =========================================================================
    # Decision Protocol
    # =========================================================================

    def should_rebalance(self, state: StateView) -> bool:
        total_value = state.portfolio_value()
        if total_value < MIN_TRADE_VALUE:
            return False

        if self._last_rebalance is not None and state.timestamp is not None:
            current_period = self._frequency.period_key(state.timestamp)
            last_period = self._frequency.period_key(self._last_rebalance)
            if current_period == last_period:
                return False

        for symbol, target in self._target_weights.items():
            current_value = (
                state.positions.get(symbol, 0.0) * state.prices.get(symbol, 0.0)
            )
            current_weight = current_value / total_value
            if abs(current_weight - target) > self._tolerance:
                return True

        return False

    def generate_orders(self, state: StateView) -> List[Order]:
        if not self.should_rebalance(state):
            return []

        orders = self._orders_to_target(state, self._target_weights)
        self._last_rebalance = state.timestamp
        self._num_rebalances += 1

        logger.info(
            f"{self.name}: rebalanced at {state.timestamp}, {len(orders)} orders"
        )
        return orders

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats.update({
            'rebalance_frequency': self._frequency.value,
            'tolerance': self._tolerance,
            'num_rebalances': self._num_rebalances,
            'last_rebalance': self._last_rebalance,
        })
        return stats

    def __repr__(self) -> str:
        return (
            f"RebalancingStrategy(target_weights={self._target_weights}, "
            f"rebalance_frequency={self._frequency.value!r}, "
            f"tolerance={self._tolerance})"
        )
