"""
Analytics Module for Portfolio Backtesting

This module provides the performance analytics computed from a backtest's
equity curve. It is used by the BacktestEngine to fill in
BacktestResult.metrics and can be applied directly to any value series.

Components:
    - PerformanceMetrics: Returns, volatility, Sharpe, Sortino, Calmar,
      drawdown and distribution statistics

Usage:
    from portfolio_backtester.analytics import PerformanceMetrics

    result = engine.run()
    returns = PerformanceMetrics.calculate_period_returns(result.equity_curve)
    sharpe = PerformanceMetrics.calculate_sharpe_ratio(returns)
    max_dd = PerformanceMetrics.calculate_max_drawdown(result.equity_curve)

Metric Categories:

    Returns-Based Metrics:
        - Total Return: (Final - Initial) / Initial
        - Annualized Return (CAGR): Compound Annual Growth Rate
        - Sharpe Ratio: Risk-adjusted return vs. volatility
        - Sortino Ratio: Risk-adjusted return vs. downside volatility
        - Calmar Ratio: Return vs. maximum drawdown

    Risk Metrics:
        - Volatility: Annualized standard deviation of period returns
        - Maximum Drawdown: Largest peak-to-trough decline

    Distribution Metrics:
        - Skewness and excess kurtosis
        - Percentiles
"""

from portfolio_backtester.analytics.metrics import (
    PerformanceMetrics,
    MetricsError,
    InsufficientDataError,
    InvalidDataError,
    TRADING_DAYS_PER_YEAR,
    DEFAULT_RISK_FREE_RATE,
    SUMMARY_METRICS,
)

__all__ = [
    'PerformanceMetrics',
    'MetricsError',
    'InsufficientDataError',
    'InvalidDataError',
    'TRADING_DAYS_PER_YEAR',
    'DEFAULT_RISK_FREE_RATE',
    'SUMMARY_METRICS',
]
