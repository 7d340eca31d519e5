#!/usr/bin/env python3
"""
Example 1: Simple Backtest with a 60/40 Portfolio

This is a beginner-friendly example showing the basic workflow for running
a backtest with the Portfolio Backtester.

What this example demonstrates:
    - Creating synthetic price data for testing
    - Setting up buy-and-hold and rebalancing strategies
    - Running a backtest with slippage and commissions
    - Displaying results

Difficulty: Beginner
Time to run: < 5 seconds
"""

from datetime import datetime

import numpy as np
import pandas as pd

from portfolio_backtester.engine import (
    BacktestEngine,
    HistoricalDriver,
    SlippageModel,
)
from portfolio_backtester.strategies import BuyAndHoldStrategy, RebalancingStrategy


def create_mock_prices(start_date, end_date):
    """
    Create synthetic daily closes for a stock fund and a bond fund.

    In a real application, this would come from CSV files or a data provider.
    """
    dates = pd.bdate_range(start=start_date, end=end_date)

    # Geometric Brownian motion with different drift and volatility
    rng = np.random.default_rng(42)
    spy_returns = rng.normal(0.0004, 0.012, len(dates))
    agg_returns = rng.normal(0.0001, 0.003, len(dates))

    return pd.DataFrame(
        {
            'SPY': 470.0 * np.exp(np.cumsum(spy_returns)),
            'AGG': 98.0 * np.exp(np.cumsum(agg_returns)),
        },
        index=dates,
    )


def run_strategy(strategy, prices, initial_capital):
    """Run one strategy over the price frame with realistic costs."""
    engine = BacktestEngine(
        strategy=strategy,
        driver=HistoricalDriver.from_frame(prices),
        execution_model=SlippageModel(
            slippage_pct=0.0005,          # 5 bps against the trader
            commission_per_share=0.005,   # $0.005 per share
            min_commission=1.0,           # $1 minimum per fill
        ),
        initial_capital=initial_capital,
    )
    return engine.run()


def print_result(result):
    """Print a short report for one run."""
    metrics = result.metrics
    print(f"  {result.strategy_name}")
    print(f"    Final Value:       ${result.final_value:,.2f}")
    print(f"    Total Return:      {metrics['total_return']*100:.2f}%")
    print(f"    CAGR:              {metrics['annualized_return']*100:.2f}%")
    print(f"    Volatility:        {metrics['volatility']*100:.2f}%")
    print(f"    Sharpe Ratio:      {metrics['sharpe_ratio']:.2f}")
    print(f"    Max Drawdown:      {metrics['max_drawdown']*100:.2f}%")
    print(f"    Fills:             {result.num_fills}")
    print()


def main():
    """
    Run a simple backtest example.
    """
    print("=" * 70)
    print("Portfolio Backtester - Example 1: Simple Backtest")
    print("=" * 70)
    print()

    # Step 1: Define backtest parameters
    print("Step 1: Defining backtest parameters...")
    start_date = datetime(2024, 1, 2)
    end_date = datetime(2024, 12, 31)
    initial_capital = 100000.0
    weights = {'SPY': 0.6, 'AGG': 0.4}
    print(f"  Start Date: {start_date.date()}")
    print(f"  End Date: {end_date.date()}")
    print(f"  Initial Capital: ${initial_capital:,.2f}")
    print(f"  Target Weights: {weights}")
    print()

    # Step 2: Create price data
    print("Step 2: Creating synthetic price data...")
    prices = create_mock_prices(start_date, end_date)
    print(f"  {len(prices)} trading days for {list(prices.columns)}")
    print()

    # Step 3: Run both strategies
    print("Step 3: Running backtests...")
    hold = run_strategy(
        BuyAndHoldStrategy(weights, name='60/40 Buy and Hold'),
        prices,
        initial_capital,
    )
    monthly = run_strategy(
        RebalancingStrategy(
            weights,
            rebalance_frequency='monthly',
            tolerance=0.02,
            name='60/40 Monthly Rebalance',
        ),
        prices,
        initial_capital,
    )
    print("  Backtests complete!")
    print()

    # Step 4: Display results
    print("=" * 70)
    print("BACKTEST RESULTS")
    print("=" * 70)
    print()
    print_result(hold)
    print_result(monthly)

    # Final allocation drift of the buy-and-hold portfolio
    final_positions = hold.position_snapshots[-1]
    final_prices = prices.iloc[-1]
    held_value = {s: q * final_prices[s] for s, q in final_positions.items()}
    total = sum(held_value.values())
    print("Buy-and-hold allocation at the end:")
    for symbol, value in held_value.items():
        print(f"  {symbol}: {value / total * 100:.1f}% (target {weights[symbol]*100:.0f}%)")
    print()

    print("=" * 70)
    print("Next steps:")
    print("  - Try other rebalance frequencies and tolerances")
    print("  - See example_02_custom_strategy.py to write your own strategy")
    print("=" * 70)


if __name__ == '__main__':
    main()
