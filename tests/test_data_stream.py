"""
Tests for HistoricalDriver.

Tests cover:
    - Snapshot production and timestamp normalization
    - Missing prices (NaN / None)
    - Misaligned input detection
    - Non-restartable iteration
"""

from datetime import date, datetime

import numpy as np
import pandas as pd
import pytest

from portfolio_backtester.core.models import MarketSnapshot
from portfolio_backtester.engine.data_stream import (
    DataStreamConfigError,
    DataStreamError,
    Driver,
    HistoricalDriver,
    MisalignedDataError,
)


@pytest.fixture
def driver():
    return HistoricalDriver(
        timestamps=['2024-01-02', '2024-01-03', '2024-01-04'],
        prices={'A': [100.0, 101.0, 102.0], 'B': [50.0, 51.0, 52.0]},
    )


class TestHistoricalDriver:
    """Tests for HistoricalDriver."""

    def test_is_driver(self, driver):
        assert isinstance(driver, Driver)

    def test_produces_snapshots_in_order(self, driver):
        snapshots = list(driver)
        assert len(snapshots) == 3
        assert all(isinstance(s, MarketSnapshot) for s in snapshots)
        assert [s.timestamp for s in snapshots] == [
            datetime(2024, 1, 2), datetime(2024, 1, 3), datetime(2024, 1, 4)
        ]
        assert snapshots[1].prices == {'A': 101.0, 'B': 51.0}

    def test_timestamp_normalization(self):
        d = HistoricalDriver(
            [date(2024, 1, 2), pd.Timestamp('2024-01-03'), datetime(2024, 1, 4)],
            {'A': [1.0, 2.0, 3.0]},
        )
        assert d.timestamps == [
            datetime(2024, 1, 2), datetime(2024, 1, 3), datetime(2024, 1, 4)
        ]
        assert all(type(ts) is datetime for ts in d.timestamps)

    def test_missing_prices_omitted(self):
        d = HistoricalDriver(
            ['2024-01-02', '2024-01-03', '2024-01-04'],
            {'A': [100.0, float('nan'), 102.0], 'B': [None, 51.0, 52.0]},
        )
        first, second, third = list(d)
        assert first.symbols == ('A',)
        assert second.symbols == ('B',)
        assert set(third.symbols) == {'A', 'B'}

    def test_length_mismatch_raises(self):
        with pytest.raises(MisalignedDataError):
            HistoricalDriver(['2024-01-02', '2024-01-03'], {'A': [1.0]})

    def test_non_increasing_timestamps_raise(self):
        with pytest.raises(MisalignedDataError):
            HistoricalDriver(['2024-01-03', '2024-01-02'], {'A': [1.0, 2.0]})
        with pytest.raises(MisalignedDataError):
            HistoricalDriver(['2024-01-02', '2024-01-02'], {'A': [1.0, 2.0]})

    def test_misaligned_is_data_stream_error(self):
        with pytest.raises(DataStreamError):
            HistoricalDriver(['2024-01-02'], {'A': [1.0, 2.0]})

    def test_non_numeric_price_raises(self):
        with pytest.raises(DataStreamConfigError):
            HistoricalDriver(['2024-01-02'], {'A': ['abc']})

    def test_invalid_timestamp_raises(self):
        with pytest.raises(DataStreamConfigError):
            HistoricalDriver(['not a date'], {'A': [1.0]})

    def test_non_restartable(self, driver):
        assert len(list(driver)) == 3
        assert list(driver) == []
        assert driver.is_exhausted

    def test_progress_and_index(self, driver):
        assert driver.progress == 0.0
        assert driver.current_index == 0
        next(driver)
        assert driver.current_index == 1
        assert driver.progress == pytest.approx(1 / 3)
        assert not driver.is_exhausted

    def test_properties(self, driver):
        assert driver.symbols == ('A', 'B')
        assert driver.num_steps == 3
        assert len(driver) == 3

    def test_empty_driver(self):
        d = HistoricalDriver([], {})
        assert list(d) == []
        assert d.progress == 1.0

    def test_from_frame(self):
        df = pd.DataFrame(
            {'A': [1.0, np.nan], 'B': [3.0, 4.0]},
            index=pd.to_datetime(['2024-01-02', '2024-01-03']),
        )
        d = HistoricalDriver.from_frame(df)
        assert d.symbols == ('A', 'B')
        first, second = list(d)
        assert first.prices == {'A': 1.0, 'B': 3.0}
        assert second.prices == {'B': 4.0}

    def test_from_frame_rejects_non_frame(self):
        with pytest.raises(DataStreamConfigError):
            HistoricalDriver.from_frame({'A': [1.0]})
