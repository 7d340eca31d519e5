#!/usr/bin/env python3
"""
Example 2: Creating a Custom Strategy and Comparing Variants

This example shows how to create your own allocation strategy by
inheriting from the Strategy base class, then compares several
parameterizations side by side with run_sweep.

What this example demonstrates:
    - Inheriting from Strategy
    - Reading portfolio state through the StateView
    - Reusing the target-weight order helper
    - Running independent backtests in parallel

Difficulty: Advanced
Time to run: < 10 seconds
"""

from typing import Dict, List

import numpy as np
import pandas as pd

from portfolio_backtester.core import Order, OrderSide, StateView
from portfolio_backtester.engine import SlippageModel, run_sweep
from portfolio_backtester.strategies import (
    BuyAndHoldStrategy,
    RebalancingStrategy,
    Strategy,
)


class TrendFilterStrategy(Strategy):
    """
    Hold the risky asset only while it trades above its moving average.

    Entry Criteria:
        - Price of the risky asset above its N-step average: risk-on weights

    Exit Criteria:
        - Price at or below the average: move everything to the safe asset
    """

    def __init__(self, risky: str, safe: str, lookback: int = 50, name: str = None):
        super().__init__(name or f"TrendFilter({lookback})")
        self.risky = risky
        self.safe = safe
        self.lookback = lookback
        self._history: List[float] = []
        self._risk_on = None

    def generate_orders(self, state: StateView) -> List[Order]:
        price = state.prices.get(self.risky)
        if price is None:
            return []

        self._history.append(price)
        window = self._history[-self.lookback:]
        risk_on = len(window) < self.lookback or price > np.mean(window)

        # Only trade when the regime flips
        if risk_on == self._risk_on:
            return []
        self._risk_on = risk_on

        weights: Dict[str, float] = (
            {self.risky: 1.0, self.safe: 0.0} if risk_on
            else {self.risky: 0.0, self.safe: 1.0}
        )
        orders = self._orders_to_target(state, weights)
        # Sells first so the buys are funded
        return sorted(orders, key=lambda o: o.side is not OrderSide.SELL)


def create_mock_prices(num_days: int = 504) -> pd.DataFrame:
    """Synthetic closes with a drawdown in the middle."""
    rng = np.random.default_rng(7)
    drift = np.where(
        (np.arange(num_days) > 200) & (np.arange(num_days) < 300), -0.002, 0.0006
    )
    spy = 400.0 * np.exp(np.cumsum(drift + rng.normal(0, 0.011, num_days)))
    agg = 100.0 * np.exp(np.cumsum(rng.normal(0.0001, 0.002, num_days)))
    dates = pd.bdate_range('2023-01-02', periods=num_days)
    return pd.DataFrame({'SPY': spy, 'AGG': agg}, index=dates)


def main():
    print("=" * 70)
    print("Portfolio Backtester - Example 2: Custom Strategy")
    print("=" * 70)
    print()

    prices = create_mock_prices()
    timestamps = list(prices.index)
    price_map = {symbol: prices[symbol].tolist() for symbol in prices.columns}
    weights = {'SPY': 0.6, 'AGG': 0.4}

    factories = {
        'buy_and_hold': lambda: BuyAndHoldStrategy(weights),
        'monthly': lambda: RebalancingStrategy(weights, 'monthly', tolerance=0.0),
        'weekly': lambda: RebalancingStrategy(weights, 'weekly', tolerance=0.05),
        'trend_20': lambda: TrendFilterStrategy('SPY', 'AGG', lookback=20),
        'trend_50': lambda: TrendFilterStrategy('SPY', 'AGG', lookback=50),
    }

    print(f"Running {len(factories)} backtests over {len(timestamps)} days...")
    results = run_sweep(
        factories,
        timestamps,
        price_map,
        initial_capital=100000.0,
        execution_factory=lambda: SlippageModel(slippage_pct=0.0005),
    )
    print()

    rows = []
    for key, result in results.items():
        rows.append({
            'variant': key,
            'final_value': result.final_value,
            'total_return': result.metrics['total_return'],
            'sharpe': result.metrics['sharpe_ratio'],
            'max_drawdown': result.metrics['max_drawdown'],
            'fills': result.num_fills,
        })
    table = pd.DataFrame(rows).set_index('variant')

    with pd.option_context('display.float_format', '{:,.3f}'.format):
        print(table)
    print()

    best = table['sharpe'].idxmax()
    print(f"Best Sharpe ratio: {best} ({table.loc[best, 'sharpe']:.2f})")
    print("=" * 70)


if __name__ == '__main__':
    main()
