"""
Price History for Portfolio Backtesting

This module provides PriceHistory, an OHLCV time series for one symbol, and
the preparation steps that turn raw histories into the aligned input the
HistoricalDriver expects.

Key Features:
    - OHLCV storage in a pandas DataFrame indexed by timestamp
    - Simple and log returns
    - Resampling to weekly or monthly bars
    - Inner-join alignment of several histories on common timestamps
    - Conversion to (timestamps, {symbol: closes}) backtest input

Design Philosophy:
    Alignment happens here, before the simulation. The driver only
    validates that its input is aligned and never repairs it, so every
    multi-symbol backtest should go through align() (or an equivalent join)
    first.

Usage:
    from portfolio_backtester.data.price_history import (
        PriceHistory, align, to_backtest_format
    )

    histories = align([spy_history, agg_history])
    timestamps, prices = to_backtest_format(histories)
    result = run_backtest(strategy, timestamps, prices)
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

OHLCV_COLUMNS = ['open', 'high', 'low', 'close', 'volume']

RETURN_KINDS = ('simple', 'log')

RESAMPLE_FREQUENCIES = ('daily', 'weekly', 'monthly')


# =============================================================================
# Exceptions
# =============================================================================

class DataLoadError(Exception):
    """Exception raised when price data is malformed or cannot be loaded."""
    pass


class InsufficientDataError(DataLoadError):
    """Exception raised when there is insufficient data for calculations."""
    pass


# =============================================================================
# PriceHistory Class
# =============================================================================

class PriceHistory:
    """
    OHLCV history of one symbol, sorted by timestamp.

    Attributes:
        symbol (str): Ticker symbol
        frame (pd.DataFrame): Columns open, high, low, close, volume,
            indexed by a DatetimeIndex named 'timestamp'

    Example:
        >>> ph = PriceHistory.from_close('SPY', ['2024-01-02', '2024-01-03'],
        ...                              [472.65, 468.79])
        >>> len(ph)
        2
    """

    __slots__ = ('_symbol', '_frame')

    def __init__(self, symbol: str, frame: pd.DataFrame) -> None:
        """
        Initialize from an OHLCV DataFrame.

        Args:
            symbol: Ticker symbol
            frame: DataFrame with open, high, low, close and volume columns,
                   indexed by timestamp. Rows are sorted ascending.

        Raises:
            DataLoadError: If columns are missing, values are non-numeric, or
                          timestamps are duplicated
        """
        if not symbol or not isinstance(symbol, str):
            raise DataLoadError(f"symbol must be a non-empty string, got {symbol!r}")
        if not isinstance(frame, pd.DataFrame):
            raise DataLoadError(
                f"frame must be a DataFrame, got {type(frame).__name__}"
            )

        missing = set(OHLCV_COLUMNS) - set(frame.columns)
        if missing:
            raise DataLoadError(f"{symbol}: missing columns {sorted(missing)}")

        try:
            data = frame[OHLCV_COLUMNS].astype(float)
            data.index = pd.DatetimeIndex(pd.to_datetime(frame.index), name='timestamp')
        except (TypeError, ValueError) as e:
            raise DataLoadError(f"{symbol}: invalid price data: {e}") from e

        if data.index.has_duplicates:
            duplicated = data.index[data.index.duplicated()][0]
            raise DataLoadError(f"{symbol}: duplicate timestamp {duplicated}")

        self._symbol = symbol
        self._frame = data.sort_index()

    @classmethod
    def from_arrays(
        cls,
        symbol: str,
        timestamps: Sequence[Any],
        open: Sequence[float],
        high: Sequence[float],
        low: Sequence[float],
        close: Sequence[float],
        volume: Sequence[float],
    ) -> 'PriceHistory':
        """
        Build a history from parallel sequences.

        Raises:
            DataLoadError: If any sequence length differs from timestamps
        """
        n = len(timestamps)
        columns = {
            'open': open, 'high': high, 'low': low,
            'close': close, 'volume': volume,
        }
        for name, values in columns.items():
            if len(values) != n:
                raise DataLoadError(
                    f"{symbol}: {name} has {len(values)} values, "
                    f"expected {n} to match timestamps"
                )
        frame = pd.DataFrame(
            {name: list(values) for name, values in columns.items()},
            index=pd.to_datetime(list(timestamps)),
        )
        return cls(symbol, frame)

    @classmethod
    def from_close(
        cls,
        symbol: str,
        timestamps: Sequence[Any],
        close: Sequence[float]
    ) -> 'PriceHistory':
        """Close-only history: open, high and low equal close, volume is 0."""
        return cls.from_arrays(
            symbol, timestamps, close, close, close, close, [0.0] * len(close)
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def symbol(self) -> str:
        """Get the ticker symbol."""
        return self._symbol

    @property
    def frame(self) -> pd.DataFrame:
        """Get the OHLCV DataFrame (copy)."""
        return self._frame.copy()

    @property
    def timestamps(self) -> List[datetime]:
        """Get timestamps as datetimes."""
        return [ts.to_pydatetime() for ts in self._frame.index]

    @property
    def close(self) -> np.ndarray:
        """Get close prices."""
        return self._frame['close'].to_numpy(dtype=float)

    @property
    def start(self) -> Optional[datetime]:
        """Get the first timestamp, if any."""
        return self._frame.index[0].to_pydatetime() if len(self._frame) else None

    @property
    def end(self) -> Optional[datetime]:
        """Get the last timestamp, if any."""
        return self._frame.index[-1].to_pydatetime() if len(self._frame) else None

    def __len__(self) -> int:
        return len(self._frame)

    def __repr__(self) -> str:
        return (
            f"PriceHistory(symbol={self._symbol!r}, rows={len(self._frame)}, "
            f"start={self.start}, end={self.end})"
        )


# =============================================================================
# Transformations
# =============================================================================

def returns(history: PriceHistory, kind: str = "simple") -> np.ndarray:
    """
    Compute returns from close prices.

    Args:
        history: Price history
        kind: 'simple' for (P_t - P_{t-1}) / P_{t-1}, 'log' for log(P_t / P_{t-1})

    Returns:
        Array of length len(history) - 1

    Raises:
        InsufficientDataError: If fewer than 2 prices
        ValueError: If kind is unknown
    """
    if kind not in RETURN_KINDS:
        raise ValueError(f"kind must be one of {RETURN_KINDS}, got {kind!r}")

    close = history.close
    if len(close) < 2:
        raise InsufficientDataError(
            f"{history.symbol}: need at least 2 prices to compute returns, "
            f"got {len(close)}"
        )

    if kind == "simple":
        return close[1:] / close[:-1] - 1.0
    return np.log(close[1:] / close[:-1])


def resample(history: PriceHistory, frequency: str) -> PriceHistory:
    """
    Aggregate a history into weekly or monthly bars.

    Each bar takes the first open, highest high, lowest low, last close and
    total volume of its period, stamped with the last timestamp of the
    period. Weeks are keyed by (calendar year, ISO week), so a week that
    straddles New Year splits into two bars; 'daily' returns the history
    unchanged.

    Raises:
        ValueError: If frequency is unknown
    """
    if frequency not in RESAMPLE_FREQUENCIES:
        raise ValueError(
            f"frequency must be one of {RESAMPLE_FREQUENCIES}, got {frequency!r}"
        )
    if frequency == "daily" or len(history) == 0:
        return history

    frame = history.frame
    index = frame.index
    if frequency == "weekly":
        keys = [index.year, index.isocalendar()['week'].to_numpy()]
    else:
        keys = [index.year, index.month]

    frame['timestamp'] = index
    grouped = frame.groupby(keys, sort=True)
    bars = grouped.agg(
        timestamp=('timestamp', 'last'),
        open=('open', 'first'),
        high=('high', 'max'),
        low=('low', 'min'),
        close=('close', 'last'),
        volume=('volume', 'sum'),
    ).set_index('timestamp')

    logger.debug(
        f"Resampled {history.symbol} {frequency}: {len(history)} -> {len(bars)} rows"
    )
    return PriceHistory(history.symbol, bars)


def align(histories: Sequence[PriceHistory]) -> List[PriceHistory]:
    """
    Restrict histories to their common timestamps (inner join).

    Returns:
        New histories sharing one ascending timestamp index, in input order

    Raises:
        DataLoadError: If the histories share no timestamp
    """
    if not histories:
        return []

    common = histories[0].frame.index
    for history in histories[1:]:
        common = common.intersection(history.frame.index)

    if len(common) == 0:
        raise DataLoadError(
            "No common timestamps found across price histories: "
            f"{[h.symbol for h in histories]}"
        )

    common = common.sort_values()
    aligned = [PriceHistory(h.symbol, h.frame.loc[common]) for h in histories]

    dropped = {h.symbol: len(h) - len(common) for h in histories if len(h) != len(common)}
    if dropped:
        logger.info(f"Aligned {len(histories)} histories to {len(common)} rows, dropped {dropped}")
    return aligned


def to_backtest_format(
    histories: Sequence[PriceHistory]
) -> Tuple[List[datetime], Dict[str, List[float]]]:
    """
    Convert aligned histories to HistoricalDriver input.

    Returns:
        (timestamps, {symbol: close prices})

    Raises:
        DataLoadError: If no histories are given, or they are not aligned
    """
    if not histories:
        raise DataLoadError("No price histories provided")

    timestamps = histories[0].timestamps
    prices: Dict[str, List[float]] = {}
    for history in histories:
        if history.timestamps != timestamps:
            raise DataLoadError(
                f"{history.symbol} is not aligned with {histories[0].symbol}; "
                f"call align() first"
            )
        if history.symbol in prices:
            raise DataLoadError(f"Duplicate symbol {history.symbol!r}")
        prices[history.symbol] = history.close.tolist()

    return timestamps, prices


__all__ = [
    'PriceHistory',
    'returns',
    'resample',
    'align',
    'to_backtest_format',
    'DataLoadError',
    'InsufficientDataError',
    'OHLCV_COLUMNS',
]
