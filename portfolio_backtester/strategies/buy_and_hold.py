"""
Buy and Hold Strategy

Invests the portfolio in fixed target weights on the first decision and then
holds, never trading again for the lifetime of the instance.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from portfolio_backtester.core.models import Order
from portfolio_backtester.core.state import StateView
from portfolio_backtester.strategies.strategy import (
    Strategy,
    validate_target_weights,
)

logger = logging.getLogger(__name__)


class BuyAndHoldStrategy(Strategy):
    """
    Invest once in target weights and hold.

    The first call to generate_orders() trades every priced symbol toward
    its target weight; every later call returns no orders. Symbols without a
    price at that first call are skipped and never bought.

    Attributes:
        target_weights (Dict[str, float]): Target allocation (sums to ~1.0)
        invested (bool): Whether the one-shot investment has happened

    Example:
        >>> strategy = BuyAndHoldStrategy({'AAPL': 0.6, 'GOOGL': 0.4})
        >>> orders = strategy.generate_orders(state)
    """

    def __init__(
        self,
        target_weights: Mapping[str, float],
        name: Optional[str] = None
    ) -> None:
        """
        Args:
            target_weights: Mapping of symbol to target weight

        Raises:
            InvalidWeightsError: If weights do not sum to 1.0 within 0.01
        """
        super().__init__(name or "BuyAndHold")
        self._target_weights = validate_target_weights(target_weights)
        self._invested = False

        logger.debug(f"Created {self!r}")

    @property
    def target_weights(self) -> Dict[str, float]:
        """Get target weights (copy)."""
        return dict(self._target_weights)

    @property
    def invested(self) -> bool:
        """Check whether the initial investment has been made."""
        return self._invested

    def generate_orders(self, state: StateView) -> List[Order]:
        if self._invested:
            return []

        orders = self._orders_to_target(state, self._target_weights)
        self._invested = True

        logger.info(
            f"{self.name}: initial investment at {state.timestamp}, "
            f"{len(orders)} orders"
        )
        return orders

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats['invested'] = self._invested
        return stats

    def __repr__(self) -> str:
        return (
            f"BuyAndHoldStrategy(target_weights={self._target_weights}, "
            f"invested={self._invested})"
        )
