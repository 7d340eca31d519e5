"""
Strategies Module

This module provides the strategy decision protocol and the reference
allocation strategies.

Components:
    - Strategy: Abstract base (generate_orders / should_rebalance)
    - BuyAndHoldStrategy: Invest once in target weights and hold
    - RebalancingStrategy: Periodic drift-triggered rebalancing
    - RebalanceFrequency: daily / weekly / monthly calendar periods
    - create_strategy: Build a strategy from a type name and parameters

Usage:
    from portfolio_backtester.strategies import create_strategy

    strategy = create_strategy(
        'rebalancing',
        target_weights={'SPY': 0.6, 'AGG': 0.4},
        rebalance_frequency='monthly',
    )
"""

from typing import Any, Callable, Dict

from portfolio_backtester.strategies.strategy import (
    Strategy,
    RebalanceFrequency,
    validate_target_weights,
    StrategyError,
    ConfigurationError,
    InvalidWeightsError,
    InvalidFrequencyError,
    MIN_TRADE_VALUE,
    WEIGHT_SUM_TOLERANCE,
    DEFAULT_REBALANCE_TOLERANCE,
)
from portfolio_backtester.strategies.buy_and_hold import BuyAndHoldStrategy
from portfolio_backtester.strategies.rebalancing import RebalancingStrategy


STRATEGY_TYPES: Dict[str, Callable[..., Strategy]] = {
    'buy_and_hold': BuyAndHoldStrategy,
    'rebalancing': RebalancingStrategy,
}


def create_strategy(kind: str, **params: Any) -> Strategy:
    """
    Create a fresh strategy instance by type name.

    Args:
        kind: 'buy_and_hold' or 'rebalancing'
        **params: Constructor arguments for the strategy

    Raises:
        ConfigurationError: If the type is unknown or parameters are invalid
    """
    try:
        factory = STRATEGY_TYPES[kind]
    except KeyError:
        valid = ", ".join(sorted(STRATEGY_TYPES))
        raise ConfigurationError(
            f"Unknown strategy type {kind!r}. Valid types: {valid}"
        ) from None

    try:
        return factory(**params)
    except TypeError as e:
        raise ConfigurationError(f"Invalid parameters for {kind!r}: {e}") from e


__all__ = [
    'Strategy',
    'BuyAndHoldStrategy',
    'RebalancingStrategy',
    'RebalanceFrequency',
    'validate_target_weights',
    'create_strategy',
    'STRATEGY_TYPES',
    'StrategyError',
    'ConfigurationError',
    'InvalidWeightsError',
    'InvalidFrequencyError',
    'MIN_TRADE_VALUE',
    'WEIGHT_SUM_TOLERANCE',
    'DEFAULT_REBALANCE_TOLERANCE',
]
