"""
Execution Models for Portfolio Backtesting

This module provides the ExecutionModel abstraction that turns an Order plus
the current MarketSnapshot into a Fill, or into no fill at all.

Key Features:
    - InstantFill: full quantity at the snapshot price, no fees
    - SlippageModel: full quantity with percentage slippage and per-share
      commission
    - CashConstrainedFill: wraps another model and declines buys the
      portfolio cannot pay for
    - Execution log and summary statistics

Design Philosophy:
    The ExecutionModel separates execution concerns from trading logic.
    Returning None is a normal outcome ("no fill") so that liquidity or
    buying-power rules can be modeled without changing the engine. A symbol
    missing from the snapshot is a data problem and raises
    MissingPriceError; the engine decides whether that aborts the run.

Financial Correctness:
    - Buy orders pay price x (1 + slippage_pct)
    - Sell orders receive price x (1 - slippage_pct)
    - Commission = max(commission_per_share x quantity, min_commission)
    - Fills are timestamped at the snapshot they executed against

Usage:
    from portfolio_backtester.engine.execution import InstantFill, SlippageModel

    execution = SlippageModel(slippage_pct=0.001, commission_per_share=0.005)
    fill = execution.execute(order, snapshot)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import numpy as np

from portfolio_backtester.core.models import Fill, MarketSnapshot, Order, OrderSide
from portfolio_backtester.core.state import StateView

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Default slippage percentage
DEFAULT_SLIPPAGE_PCT = 0.0

# Default commission per share/unit
DEFAULT_COMMISSION_PER_SHARE = 0.0

# Maximum reasonable slippage percentage
MAX_SLIPPAGE_PCT = 0.50


# =============================================================================
# Exceptions
# =============================================================================

class ExecutionError(Exception):
    """Base exception for execution errors."""
    pass


class ExecutionConfigError(ExecutionError):
    """Exception raised for configuration errors."""
    pass


class MissingPriceError(ExecutionError):
    """Exception raised when an order's symbol is absent from the snapshot."""

    def __init__(self, symbol: str, timestamp: Any = None) -> None:
        self.symbol = symbol
        self.timestamp = timestamp
        super().__init__(f"No price for {symbol!r} at {timestamp}")


# =============================================================================
# ExecutionModel Base Class
# =============================================================================

class ExecutionModel(ABC):
    """
    Abstract order execution model.

    Subclasses implement ``_execute``; ``execute`` wraps it with the execution
    log. Returning None from ``_execute`` means the order was not filled.
    """

    def __init__(self) -> None:
        self._execution_log: List[Dict[str, Any]] = []

    @property
    def execution_log(self) -> List[Dict[str, Any]]:
        """Get execution log (copy)."""
        return self._execution_log.copy()

    def execute(
        self,
        order: Order,
        snapshot: MarketSnapshot,
        state: Optional[StateView] = None
    ) -> Optional[Fill]:
        """
        Execute an order against a snapshot.

        Args:
            order: Order to execute
            snapshot: Snapshot of the current step
            state: Read-only portfolio state, for models that need it

        Returns:
            A Fill, or None if the order is not filled

        Raises:
            MissingPriceError: If the symbol is not quoted in the snapshot
        """
        fill = self._execute(order, snapshot, state)

        self._execution_log.append({
            'timestamp': snapshot.timestamp,
            'symbol': order.symbol,
            'side': order.side.value,
            'requested_quantity': order.quantity,
            'filled': fill is not None,
            'filled_quantity': fill.quantity if fill else 0.0,
            'price': fill.price if fill else None,
            'notional': fill.notional if fill else 0.0,
            'commission': fill.commission if fill else 0.0,
        })

        return fill

    @abstractmethod
    def _execute(
        self,
        order: Order,
        snapshot: MarketSnapshot,
        state: Optional[StateView]
    ) -> Optional[Fill]:
        ...

    @staticmethod
    def _quote(order: Order, snapshot: MarketSnapshot) -> float:
        """Snapshot price for the order's symbol."""
        if not snapshot.has_price(order.symbol):
            raise MissingPriceError(order.symbol, snapshot.timestamp)
        return snapshot.prices[order.symbol]

    def get_execution_summary(self) -> Dict[str, Any]:
        """
        Get summary statistics of all executions.

        Returns:
            Dictionary with execution statistics
        """
        filled = [e for e in self._execution_log if e['filled']]
        return {
            'num_orders': len(self._execution_log),
            'num_fills': len(filled),
            'num_unfilled': len(self._execution_log) - len(filled),
            'num_buys': len([e for e in filled if e['side'] == OrderSide.BUY.value]),
            'num_sells': len([e for e in filled if e['side'] == OrderSide.SELL.value]),
            'total_notional': sum(e['notional'] for e in filled),
            'total_commissions': sum(e['commission'] for e in filled),
        }

    def clear_log(self) -> None:
        """Clear the execution log."""
        self._execution_log.clear()

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


# =============================================================================
# InstantFill
# =============================================================================

class InstantFill(ExecutionModel):
    """
    Reference execution model.

    Fills the entire quantity at the snapshot price with zero slippage and
    zero fees. Raises MissingPriceError when the symbol is absent from the
    snapshot. Does not check buying power.

    Example:
        >>> fill = InstantFill().execute(Order.buy('A', 10), snapshot)
        >>> fill.price == snapshot.prices['A']
        True
    """

    def _execute(
        self,
        order: Order,
        snapshot: MarketSnapshot,
        state: Optional[StateView]
    ) -> Optional[Fill]:
        price = self._quote(order, snapshot)
        return Fill(
            symbol=order.symbol,
            quantity=order.quantity,
            side=order.side,
            price=price,
            timestamp=snapshot.timestamp,
        )


# =============================================================================
# SlippageModel
# =============================================================================

class SlippageModel(ExecutionModel):
    """
    Full fills with percentage slippage and per-share commission.

    Attributes:
        slippage_pct (float): Fractional price penalty per fill
        commission_per_share (float): Fee per unit traded
        min_commission (float): Minimum fee per fill

    Example:
        >>> execution = SlippageModel(slippage_pct=0.001,
        ...                           commission_per_share=0.005,
        ...                           min_commission=1.0)
    """

    def __init__(
        self,
        slippage_pct: float = DEFAULT_SLIPPAGE_PCT,
        commission_per_share: float = DEFAULT_COMMISSION_PER_SHARE,
        min_commission: float = 0.0
    ) -> None:
        """
        Initialize the SlippageModel.

        Raises:
            ExecutionConfigError: If parameters are invalid
        """
        super().__init__()

        if not np.isfinite(slippage_pct) or slippage_pct < 0 or slippage_pct > MAX_SLIPPAGE_PCT:
            raise ExecutionConfigError(
                f"slippage_pct must be between 0 and {MAX_SLIPPAGE_PCT}, "
                f"got {slippage_pct}"
            )
        if not np.isfinite(commission_per_share) or commission_per_share < 0:
            raise ExecutionConfigError(
                f"commission_per_share must be non-negative, "
                f"got {commission_per_share}"
            )
        if not np.isfinite(min_commission) or min_commission < 0:
            raise ExecutionConfigError(
                f"min_commission must be non-negative, got {min_commission}"
            )

        self._slippage_pct = float(slippage_pct)
        self._commission_per_share = float(commission_per_share)
        self._min_commission = float(min_commission)

        logger.debug(
            f"SlippageModel initialized: slippage={slippage_pct:.2%}, "
            f"commission=${commission_per_share:.4f}/share, "
            f"min=${min_commission:.2f}"
        )

    @property
    def slippage_pct(self) -> float:
        """Get slippage percentage."""
        return self._slippage_pct

    @property
    def commission_per_share(self) -> float:
        """Get commission per share."""
        return self._commission_per_share

    @property
    def min_commission(self) -> float:
        """Get minimum commission per fill."""
        return self._min_commission

    def _execute(
        self,
        order: Order,
        snapshot: MarketSnapshot,
        state: Optional[StateView]
    ) -> Optional[Fill]:
        price = self._quote(order, snapshot)

        # Pay more when buying, receive less when selling
        if order.side is OrderSide.BUY:
            fill_price = price * (1.0 + self._slippage_pct)
        else:
            fill_price = price * (1.0 - self._slippage_pct)

        return Fill(
            symbol=order.symbol,
            quantity=order.quantity,
            side=order.side,
            price=fill_price,
            timestamp=snapshot.timestamp,
            commission=self._calculate_commission(order.quantity),
        )

    def _calculate_commission(self, quantity: float) -> float:
        """Commission for a given quantity, floored at min_commission."""
        commission = self._commission_per_share * quantity
        if commission == 0.0:
            return 0.0
        return max(commission, self._min_commission)

    def __repr__(self) -> str:
        return (
            f"SlippageModel(slippage_pct={self._slippage_pct}, "
            f"commission_per_share={self._commission_per_share}, "
            f"min_commission={self._min_commission})"
        )


# =============================================================================
# CashConstrainedFill
# =============================================================================

class CashConstrainedFill(ExecutionModel):
    """
    Decline buys that need more cash than the portfolio holds.

    Wraps another model: the inner model prices the order, and a buy whose
    total cost exceeds current cash comes back as no fill. Sells are passed
    through unchanged. Without a state view every order is passed through.
    Only this model's execution log records the outcome; the inner
    model's log stays empty.
    """

    def __init__(self, inner: Optional[ExecutionModel] = None) -> None:
        super().__init__()
        if inner is not None and not isinstance(inner, ExecutionModel):
            raise ExecutionConfigError(
                f"inner must be an ExecutionModel, got {type(inner).__name__}"
            )
        self._inner = inner or InstantFill()

    @property
    def inner(self) -> ExecutionModel:
        """Get the wrapped execution model."""
        return self._inner

    def _execute(
        self,
        order: Order,
        snapshot: MarketSnapshot,
        state: Optional[StateView]
    ) -> Optional[Fill]:
        fill = self._inner._execute(order, snapshot, state)
        if fill is None or state is None or fill.side is OrderSide.SELL:
            return fill

        required = -fill.cash_delta
        if required > state.cash:
            logger.debug(
                f"Declined {order}: requires ${required:,.2f}, "
                f"cash ${state.cash:,.2f}"
            )
            return None
        return fill

    def __repr__(self) -> str:
        return f"CashConstrainedFill({self._inner!r})"


__all__ = [
    'ExecutionModel',
    'InstantFill',
    'SlippageModel',
    'CashConstrainedFill',
    'ExecutionError',
    'ExecutionConfigError',
    'MissingPriceError',
    'DEFAULT_SLIPPAGE_PCT',
    'DEFAULT_COMMISSION_PER_SHARE',
]
