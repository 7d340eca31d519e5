"""
Market Data Drivers for Portfolio Backtesting

This module provides the Driver abstraction that feeds the BacktestEngine a
lazy, finite, strictly time-ordered sequence of MarketSnapshots, and the
HistoricalDriver that replays pre-aligned historical prices.

Key Features:
    - Iterator protocol over simulation steps
    - Strict validation of aligned input (equal lengths, increasing time)
    - Missing (NaN) quotes omitted from the step's snapshot
    - Non-restartable: a fresh driver must be built to replay

Design Philosophy:
    The driver is the hard boundary between the MarketData collaborator
    (which fetches, resamples and inner-joins raw series) and the simulation.
    It never silently repairs misaligned input and never exposes a price
    before its timestamp, which keeps the engine free of look-ahead bias.

Usage:
    from portfolio_backtester.engine.data_stream import HistoricalDriver

    driver = HistoricalDriver(
        timestamps=[datetime(2024, 1, 2), datetime(2024, 1, 3)],
        prices={'AAPL': [185.6, 184.3], 'MSFT': [370.9, 370.6]},
    )

    for snapshot in driver:
        print(snapshot.timestamp, snapshot.prices['AAPL'])
"""

import logging
import math
from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import pandas as pd

from portfolio_backtester.core.models import MarketSnapshot

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class DataStreamError(Exception):
    """Base exception for driver errors."""
    pass


class DataStreamConfigError(DataStreamError):
    """Exception raised for invalid driver configuration."""
    pass


class MisalignedDataError(DataStreamConfigError):
    """
    Exception raised when driver input is not aligned.

    Raised at construction when a price series length differs from the
    timestamp sequence length, or when timestamps are not strictly increasing.
    """
    pass


# =============================================================================
# Driver Base Class
# =============================================================================

class Driver(ABC):
    """
    Abstract producer of MarketSnapshots.

    Concrete drivers implement ``__next__`` returning the next snapshot or
    raising StopIteration once exhausted. ``__iter__`` returns the driver
    itself and never rewinds it.
    """

    def __iter__(self) -> Iterator[MarketSnapshot]:
        return self

    @abstractmethod
    def __next__(self) -> MarketSnapshot:
        ...

    @property
    def is_exhausted(self) -> bool:
        """Whether the driver has produced its last snapshot."""
        return False


# =============================================================================
# Helpers
# =============================================================================

def _to_datetime(value: Any) -> datetime:
    """Normalize a datetime-like value (datetime, date, str, Timestamp)."""
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    try:
        return pd.Timestamp(value).to_pydatetime()
    except (TypeError, ValueError) as e:
        raise DataStreamConfigError(
            f"Cannot interpret {value!r} as a timestamp"
        ) from e


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return math.isnan(float(value))
    except (TypeError, ValueError):
        raise DataStreamConfigError(f"Price must be numeric, got {value!r}") from None


# =============================================================================
# HistoricalDriver Class
# =============================================================================

class HistoricalDriver(Driver):
    """
    Replay pre-aligned historical prices one step at a time.

    At step i the driver exposes only the prices recorded for timestamp i.
    A NaN or None price leaves that symbol out of the step's snapshot: the
    engine keeps its last known price for valuation but it cannot be traded
    at that step.

    Attributes:
        symbols (Tuple[str, ...]): Symbols in the price mapping
        num_steps (int): Total number of snapshots
        current_index (int): Number of snapshots already produced

    Example:
        >>> driver = HistoricalDriver(
        ...     timestamps=['2024-01-02', '2024-01-03'],
        ...     prices={'A': [100.0, 101.0]}
        ... )
        >>> next(driver).prices['A']
        100.0
    """

    __slots__ = (
        '_timestamps',
        '_symbols',
        '_columns',
        '_current_index',
    )

    def __init__(
        self,
        timestamps: Sequence[Any],
        prices: Mapping[str, Sequence[Any]],
    ) -> None:
        """
        Initialize the HistoricalDriver.

        Args:
            timestamps: Ordered timestamps (datetime, date, ISO string or
                       pandas Timestamp), strictly increasing.
            prices: Mapping of symbol to price sequence, each the same length
                   as timestamps.

        Raises:
            MisalignedDataError: If lengths differ or timestamps are not
                                strictly increasing
            DataStreamConfigError: If inputs cannot be interpreted
        """
        if timestamps is None:
            raise DataStreamConfigError("timestamps cannot be None")
        if prices is None:
            raise DataStreamConfigError("prices cannot be None")

        self._timestamps: List[datetime] = [_to_datetime(t) for t in timestamps]
        n = len(self._timestamps)

        for i in range(1, n):
            if not self._timestamps[i - 1] < self._timestamps[i]:
                raise MisalignedDataError(
                    f"Timestamps must be strictly increasing: "
                    f"{self._timestamps[i - 1]} at index {i - 1} is not before "
                    f"{self._timestamps[i]} at index {i}"
                )

        self._symbols: Tuple[str, ...] = tuple(str(s) for s in prices.keys())
        self._columns: Dict[str, List[Optional[float]]] = {}
        for symbol, series in prices.items():
            series = list(series)
            if len(series) != n:
                raise MisalignedDataError(
                    f"Price series for {symbol!r} has {len(series)} values, "
                    f"expected {n} to match timestamps"
                )
            self._columns[str(symbol)] = [
                None if _is_missing(p) else float(p) for p in series
            ]

        self._current_index = 0

        logger.info(
            f"HistoricalDriver initialized: {len(self._symbols)} symbols, "
            f"{n} steps from "
            f"{self._timestamps[0] if n else 'N/A'} to "
            f"{self._timestamps[-1] if n else 'N/A'}"
        )

    @classmethod
    def from_frame(cls, frame: pd.DataFrame) -> 'HistoricalDriver':
        """
        Build a driver from a DataFrame indexed by timestamp, one column per
        symbol.

        Example:
            >>> df = pd.DataFrame({'A': [1.0, 2.0]},
            ...                   index=pd.to_datetime(['2024-01-02', '2024-01-03']))
            >>> driver = HistoricalDriver.from_frame(df)
        """
        if not isinstance(frame, pd.DataFrame):
            raise DataStreamConfigError(
                f"frame must be a DataFrame, got {type(frame).__name__}"
            )
        prices = {
            str(col): frame[col].to_numpy(dtype=float) for col in frame.columns
        }
        return cls(list(frame.index), prices)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def symbols(self) -> Tuple[str, ...]:
        """Get the symbols this driver quotes."""
        return self._symbols

    @property
    def timestamps(self) -> List[datetime]:
        """Get all timestamps (copy)."""
        return self._timestamps.copy()

    @property
    def num_steps(self) -> int:
        """Get the total number of steps."""
        return len(self._timestamps)

    @property
    def current_index(self) -> int:
        """Get the number of snapshots already produced."""
        return self._current_index

    @property
    def is_exhausted(self) -> bool:
        """Check if the driver has been fully consumed."""
        return self._current_index >= len(self._timestamps)

    @property
    def progress(self) -> float:
        """Get progress as a ratio (0.0 to 1.0)."""
        if not self._timestamps:
            return 1.0
        return self._current_index / len(self._timestamps)

    # =========================================================================
    # Iterator Protocol
    # =========================================================================

    def __next__(self) -> MarketSnapshot:
        """
        Produce the next snapshot.

        Raises:
            StopIteration: When the driver is exhausted
        """
        if self._current_index >= len(self._timestamps):
            raise StopIteration

        i = self._current_index
        self._current_index += 1

        quotes = {}
        for symbol in self._symbols:
            value = self._columns[symbol][i]
            if value is not None:
                quotes[symbol] = value

        snapshot = MarketSnapshot(self._timestamps[i], quotes)
        logger.debug(
            f"Step {i}: {snapshot.timestamp} ({len(quotes)}/{len(self._symbols)} quotes)"
        )
        return snapshot

    def __len__(self) -> int:
        """Return the total number of steps."""
        return len(self._timestamps)

    def __repr__(self) -> str:
        return (
            f"HistoricalDriver(symbols={list(self._symbols)}, "
            f"steps={len(self._timestamps)}, index={self._current_index})"
        )


__all__ = [
    'Driver',
    'HistoricalDriver',
    'DataStreamError',
    'DataStreamConfigError',
    'MisalignedDataError',
]
