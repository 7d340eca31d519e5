"""
Tests for SimulationState and StateView.
"""

from datetime import datetime

import pytest

from portfolio_backtester.core.models import Fill, MarketSnapshot, OrderSide
from portfolio_backtester.core.state import (
    InsufficientPositionError,
    SimulationState,
    StateError,
    StateView,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture
def state():
    """State at 2024-01-02 with A=100, B=50 and $10,000 cash."""
    s = SimulationState(10000.0)
    s.advance(MarketSnapshot(datetime(2024, 1, 2), {'A': 100.0, 'B': 50.0}))
    return s


def make_fill(symbol, quantity, side, price, commission=0.0):
    return Fill(symbol, quantity, side, price, datetime(2024, 1, 2), commission)


# =============================================================================
# SimulationState Tests
# =============================================================================

class TestSimulationState:
    """Tests for SimulationState."""

    def test_initial_state(self):
        s = SimulationState(10000.0)
        assert s.cash == 10000.0
        assert s.initial_cash == 10000.0
        assert s.timestamp is None
        assert dict(s.positions) == {}
        assert s.portfolio_value() == 10000.0

    def test_non_finite_cash_raises(self):
        with pytest.raises(StateError):
            SimulationState(float('nan'))

    def test_advance_updates_timestamp_and_prices(self, state):
        assert state.timestamp == datetime(2024, 1, 2)
        assert state.prices['A'] == 100.0

    def test_advance_keeps_last_price_for_absent_symbol(self, state):
        state.advance(MarketSnapshot(datetime(2024, 1, 3), {'A': 101.0}))
        assert state.prices['A'] == 101.0
        assert state.prices['B'] == 50.0

    def test_advance_backwards_raises(self, state):
        with pytest.raises(StateError):
            state.advance(MarketSnapshot(datetime(2024, 1, 1), {'A': 100.0}))

    def test_buy_fill(self, state):
        state.apply_fill(make_fill('A', 60, OrderSide.BUY, 100.0))
        assert state.cash == 4000.0
        assert state.positions['A'] == 60
        assert state.num_fills == 1
        assert state.portfolio_value() == 10000.0

    def test_sell_fill_with_commission(self, state):
        state.apply_fill(make_fill('A', 10, OrderSide.BUY, 100.0))
        state.apply_fill(make_fill('A', 4, OrderSide.SELL, 100.0, commission=1.0))
        assert state.positions['A'] == 6
        assert state.cash == pytest.approx(10000.0 - 1000.0 + 399.0)

    def test_mark_to_market(self, state):
        state.apply_fill(make_fill('A', 60, OrderSide.BUY, 100.0))
        state.advance(MarketSnapshot(datetime(2024, 1, 3), {'A': 110.0}))
        assert state.position_value('A') == pytest.approx(6600.0)
        assert state.portfolio_value() == pytest.approx(10600.0)

    def test_oversell_raises_and_leaves_state_unchanged(self, state):
        state.apply_fill(make_fill('A', 5, OrderSide.BUY, 100.0))
        with pytest.raises(InsufficientPositionError):
            state.apply_fill(make_fill('A', 6, OrderSide.SELL, 100.0))
        assert state.positions['A'] == 5
        assert state.cash == 9500.0
        assert state.num_fills == 1

    def test_sell_without_position_raises(self, state):
        with pytest.raises(InsufficientPositionError):
            state.apply_fill(make_fill('B', 1, OrderSide.SELL, 50.0))

    def test_residual_within_tolerance_clamps_to_zero(self, state):
        state.apply_fill(make_fill('A', 10, OrderSide.BUY, 100.0))
        state.apply_fill(make_fill('A', 10 + 5e-10, OrderSide.SELL, 100.0))
        assert state.positions['A'] == 0.0

    def test_weights(self, state):
        state.apply_fill(make_fill('A', 60, OrderSide.BUY, 100.0))
        state.apply_fill(make_fill('B', 80, OrderSide.BUY, 50.0))
        weights = state.weights()
        assert weights['A'] == pytest.approx(0.6)
        assert weights['B'] == pytest.approx(0.4)

    def test_positions_snapshot_is_a_copy(self, state):
        state.apply_fill(make_fill('A', 1, OrderSide.BUY, 100.0))
        snap = state.positions_snapshot()
        snap['A'] = 99
        assert state.positions['A'] == 1

    def test_fill_log_order(self, state):
        first = make_fill('A', 1, OrderSide.BUY, 100.0)
        second = make_fill('B', 2, OrderSide.BUY, 50.0)
        state.apply_fill(first)
        state.apply_fill(second)
        assert state.fills == (first, second)


# =============================================================================
# StateView Tests
# =============================================================================

class TestStateView:
    """Tests for the read-only StateView."""

    def test_view_reflects_state(self, state):
        state.apply_fill(make_fill('A', 60, OrderSide.BUY, 100.0))
        view = state.view()
        assert isinstance(view, StateView)
        assert view.cash == 4000.0
        assert view.positions['A'] == 60
        assert view.prices['B'] == 50.0
        assert view.timestamp == datetime(2024, 1, 2)
        assert view.portfolio_value() == 10000.0
        assert view.current_weight('A') == pytest.approx(0.6)
        assert view.current_weight('B') == 0.0

    def test_view_has_no_mutators(self, state):
        view = state.view()
        assert not hasattr(view, 'apply_fill')
        assert not hasattr(view, 'advance')
        with pytest.raises(TypeError):
            view.positions['A'] = 1.0
        with pytest.raises(AttributeError):
            view.cash = 0.0

    def test_current_weight_with_zero_value(self):
        view = SimulationState(0.0).view()
        assert view.current_weight('A') == 0.0
