"""
Value Types for Portfolio Backtesting

This module defines the immutable value objects that flow through the
simulation loop: market snapshots produced by a Driver, orders produced by a
Strategy, and fills produced by an ExecutionModel.

Key Types:
    - OrderSide: Buy or sell
    - MarketSnapshot: Timestamp plus a price per tradable symbol
    - Order: Trading intent (symbol, positive quantity, side)
    - Fill: Realized (simulated) execution of an Order

Design Philosophy:
    All value types are frozen dataclasses. A snapshot only ever exposes the
    prices known at its own timestamp, an Order lives for exactly one
    simulation step, and a Fill is appended to the fill log and never
    mutated afterwards.

Financial Correctness:
    - Notional = quantity x price
    - Buy cash delta = -(notional + commission)
    - Sell cash delta = notional - commission

Usage:
    from portfolio_backtester.core.models import MarketSnapshot, Order

    snapshot = MarketSnapshot(datetime(2024, 1, 2), {'AAPL': 185.6})
    order = Order.buy('AAPL', 10)
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Tuple

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class OrderValidationError(ValueError):
    """Exception raised when an Order is constructed with invalid values."""
    pass


# =============================================================================
# OrderSide Enum
# =============================================================================

class OrderSide(str, Enum):
    """Side of an order or fill."""

    BUY = "buy"
    SELL = "sell"

    @property
    def sign(self) -> int:
        """+1 for buys, -1 for sells (direction of the position change)."""
        return 1 if self is OrderSide.BUY else -1


# =============================================================================
# MarketSnapshot
# =============================================================================

@dataclass(frozen=True)
class MarketSnapshot:
    """
    A single time-stepped observation of prices across tradable symbols.

    Attributes:
        timestamp (datetime): Instant the prices were observed
        prices (Mapping[str, float]): Read-only price per symbol

    Example:
        >>> snap = MarketSnapshot(datetime(2024, 1, 2), {'A': 100.0})
        >>> snap.price('A')
        100.0
    """

    timestamp: datetime
    prices: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze a private copy so callers cannot mutate the snapshot later
        frozen = MappingProxyType({str(k): float(v) for k, v in self.prices.items()})
        object.__setattr__(self, 'prices', frozen)

    @property
    def symbols(self) -> Tuple[str, ...]:
        """Symbols quoted in this snapshot."""
        return tuple(self.prices.keys())

    def has_price(self, symbol: str) -> bool:
        """Check whether the symbol is tradable at this snapshot."""
        return symbol in self.prices

    def price(self, symbol: str) -> float:
        """
        Get the price of a symbol.

        Raises:
            KeyError: If the symbol is absent from this snapshot
        """
        return self.prices[symbol]

    def __repr__(self) -> str:
        return f"MarketSnapshot({self.timestamp}, {dict(self.prices)})"


# =============================================================================
# Order
# =============================================================================

@dataclass(frozen=True)
class Order:
    """
    Trading intent produced by a Strategy.

    Attributes:
        symbol (str): Instrument to trade
        quantity (float): Strictly positive number of units
        side (OrderSide): Buy or sell
    """

    symbol: str
    quantity: float
    side: OrderSide

    def __post_init__(self) -> None:
        if not self.symbol or not isinstance(self.symbol, str):
            raise OrderValidationError("symbol must be a non-empty string")
        try:
            quantity = float(self.quantity)
        except (TypeError, ValueError):
            raise OrderValidationError(
                f"quantity must be numeric, got {self.quantity!r}"
            ) from None
        if not math.isfinite(quantity) or quantity <= 0:
            raise OrderValidationError(
                f"quantity must be positive and finite, got {self.quantity}"
            )
        object.__setattr__(self, 'quantity', quantity)
        object.__setattr__(self, 'side', OrderSide(self.side))

    @classmethod
    def buy(cls, symbol: str, quantity: float) -> 'Order':
        """Create a buy order."""
        return cls(symbol, quantity, OrderSide.BUY)

    @classmethod
    def sell(cls, symbol: str, quantity: float) -> 'Order':
        """Create a sell order."""
        return cls(symbol, quantity, OrderSide.SELL)

    def __str__(self) -> str:
        return f"{self.side.value.upper()} {self.quantity:g} {self.symbol}"


# =============================================================================
# Fill
# =============================================================================

@dataclass(frozen=True)
class Fill:
    """
    Simulated execution of an Order against a MarketSnapshot.

    Attributes:
        symbol (str): Instrument traded
        quantity (float): Units filled
        side (OrderSide): Buy or sell
        price (float): Per-unit fill price
        timestamp (datetime): Snapshot time of the fill
        commission (float): Fees charged on top of the notional
    """

    symbol: str
    quantity: float
    side: OrderSide
    price: float
    timestamp: datetime
    commission: float = 0.0

    @property
    def notional(self) -> float:
        """Traded value excluding fees."""
        return self.quantity * self.price

    @property
    def cash_delta(self) -> float:
        """Signed change in cash caused by this fill."""
        if self.side is OrderSide.BUY:
            return -(self.notional + self.commission)
        return self.notional - self.commission

    @property
    def position_delta(self) -> float:
        """Signed change in position quantity caused by this fill."""
        return self.side.sign * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a plain dictionary of serializable values."""
        return {
            'symbol': self.symbol,
            'quantity': self.quantity,
            'side': self.side.value,
            'price': self.price,
            'timestamp': self.timestamp.isoformat(),
            'commission': self.commission,
        }


__all__ = [
    'OrderSide',
    'MarketSnapshot',
    'Order',
    'Fill',
    'OrderValidationError',
]
