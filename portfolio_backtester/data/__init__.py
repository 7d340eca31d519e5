"""
Data Module for Portfolio Backtesting

This module prepares market data for the simulation: it loads OHLCV
histories from CSV, resamples and aligns them, and converts them into the
aligned (timestamps, prices) input of the HistoricalDriver.

Components:
    - PriceHistory: OHLCV series for one symbol
    - returns / resample / align / to_backtest_format: preparation steps
    - CSVAdapter / YAHOO_ADAPTER: CSV loading and saving

Usage:
    from portfolio_backtester.data import YAHOO_ADAPTER, align, to_backtest_format

    histories = [YAHOO_ADAPTER.load(f'data/{s}.csv', s) for s in ('SPY', 'AGG')]
    timestamps, prices = to_backtest_format(align(histories))
"""

from portfolio_backtester.data.price_history import (
    PriceHistory,
    returns,
    resample,
    align,
    to_backtest_format,
    DataLoadError,
    InsufficientDataError,
    OHLCV_COLUMNS,
)

from portfolio_backtester.data.csv_adapter import (
    CSVAdapter,
    YAHOO_ADAPTER,
)

__all__ = [
    'PriceHistory',
    'returns',
    'resample',
    'align',
    'to_backtest_format',
    'CSVAdapter',
    'YAHOO_ADAPTER',
    'DataLoadError',
    'InsufficientDataError',
    'OHLCV_COLUMNS',
]
