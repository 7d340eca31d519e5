"""
CSV Adapter for Price Histories

Loads and saves PriceHistory objects as CSV files with pandas. Column names
are configurable and matched case-insensitively; only the date and close
columns are required. Missing open/high/low columns fall back to close and a
missing volume column to zero.

Usage:
    from portfolio_backtester.data.csv_adapter import CSVAdapter, YAHOO_ADAPTER

    spy = YAHOO_ADAPTER.load('data/SPY.csv', 'SPY')
    CSVAdapter().save(spy, 'out/SPY.csv')
"""

import logging
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from portfolio_backtester.data.price_history import (
    OHLCV_COLUMNS,
    DataLoadError,
    PriceHistory,
)

logger = logging.getLogger(__name__)


class CSVAdapter:
    """
    Read and write OHLCV CSV files.

    Attributes:
        date_column: Name of the timestamp column
        columns: Mapping of open/high/low/close/volume to CSV column names
        date_format: strftime/strptime format, or None to let pandas infer
    """

    def __init__(
        self,
        date_column: str = "date",
        open_column: str = "open",
        high_column: str = "high",
        low_column: str = "low",
        close_column: str = "close",
        volume_column: str = "volume",
        date_format: Optional[str] = "%Y-%m-%d",
    ) -> None:
        self.date_column = date_column
        self.columns: Dict[str, str] = {
            'open': open_column,
            'high': high_column,
            'low': low_column,
            'close': close_column,
            'volume': volume_column,
        }
        self.date_format = date_format

    def load(self, path: Union[str, Path], symbol: str) -> PriceHistory:
        """
        Load a price history from a CSV file.

        Rows are sorted by timestamp; rows without a close price are dropped.

        Raises:
            FileNotFoundError: If the file does not exist
            DataLoadError: If required columns are missing or unparsable
        """
        path = Path(path)
        if not path.is_file():
            raise FileNotFoundError(f"CSV file not found: {path}")

        raw = pd.read_csv(path)
        lookup = {str(c).strip().lower(): c for c in raw.columns}

        def column(name: str) -> Optional[str]:
            return lookup.get(name.strip().lower())

        date_col = column(self.date_column)
        close_col = column(self.columns['close'])
        if date_col is None or close_col is None:
            raise DataLoadError(
                f"{path}: expected columns {self.date_column!r} and "
                f"{self.columns['close']!r}, found {list(raw.columns)}"
            )

        try:
            index = pd.to_datetime(raw[date_col], format=self.date_format)
        except (TypeError, ValueError) as e:
            raise DataLoadError(f"{path}: cannot parse dates: {e}") from e

        frame = pd.DataFrame(index=pd.DatetimeIndex(index, name='timestamp'))
        close = pd.to_numeric(raw[close_col], errors='coerce').to_numpy()
        for field in OHLCV_COLUMNS:
            source = column(self.columns[field])
            if source is not None:
                frame[field] = pd.to_numeric(raw[source], errors='coerce').to_numpy()
            elif field == 'volume':
                frame[field] = 0.0
            else:
                frame[field] = close

        before = len(frame)
        frame = frame.dropna(subset=['close'])
        if len(frame) < before:
            logger.warning(f"{path}: dropped {before - len(frame)} rows without a close")

        history = PriceHistory(symbol, frame)
        logger.info(f"Loaded {symbol} from {path}: {len(history)} rows")
        return history

    def save(self, history: PriceHistory, path: Union[str, Path]) -> None:
        """Write a price history using this adapter's column names."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        frame = history.frame.rename(columns=self.columns)
        frame.index.name = self.date_column
        frame.to_csv(path, date_format=self.date_format)

        logger.info(f"Saved {history.symbol} to {path}: {len(history)} rows")

    def __repr__(self) -> str:
        return (
            f"CSVAdapter(date_column={self.date_column!r}, "
            f"columns={self.columns}, date_format={self.date_format!r})"
        )


# Yahoo Finance download format: Date,Open,High,Low,Close,Adj Close,Volume
YAHOO_ADAPTER = CSVAdapter(
    date_column="Date",
    open_column="Open",
    high_column="High",
    low_column="Low",
    close_column="Close",
    volume_column="Volume",
    date_format="%Y-%m-%d",
)


__all__ = [
    'CSVAdapter',
    'YAHOO_ADAPTER',
]
