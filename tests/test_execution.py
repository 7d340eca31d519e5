"""
Tests for execution models.

Tests cover:
    - InstantFill full fills at the snapshot price
    - SlippageModel price adjustment and commissions
    - CashConstrainedFill declining unaffordable buys
    - Missing price handling and the execution log
"""

from datetime import datetime

import pytest

from portfolio_backtester.core.models import MarketSnapshot, Order, OrderSide
from portfolio_backtester.core.state import SimulationState
from portfolio_backtester.engine.execution import (
    CashConstrainedFill,
    ExecutionConfigError,
    ExecutionError,
    ExecutionModel,
    InstantFill,
    MissingPriceError,
    SlippageModel,
)


TS = datetime(2024, 1, 2)


@pytest.fixture
def snapshot():
    return MarketSnapshot(TS, {'A': 100.0, 'B': 50.0})


@pytest.fixture
def poor_state(snapshot):
    """State view with $500 cash."""
    state = SimulationState(500.0)
    state.advance(snapshot)
    return state.view()


class TestInstantFill:
    """Tests for InstantFill."""

    def test_fills_full_quantity_at_snapshot_price(self, snapshot):
        fill = InstantFill().execute(Order.buy('A', 10), snapshot)
        assert fill.symbol == 'A'
        assert fill.quantity == 10
        assert fill.side is OrderSide.BUY
        assert fill.price == 100.0
        assert fill.commission == 0.0
        assert fill.timestamp == TS

    def test_sell(self, snapshot):
        fill = InstantFill().execute(Order.sell('B', 4), snapshot)
        assert fill.side is OrderSide.SELL
        assert fill.cash_delta == 200.0

    def test_missing_price_raises(self, snapshot):
        with pytest.raises(MissingPriceError) as exc_info:
            InstantFill().execute(Order.buy('C', 1), snapshot)
        assert exc_info.value.symbol == 'C'
        assert exc_info.value.timestamp == TS
        assert isinstance(exc_info.value, ExecutionError)

    def test_execution_log_and_summary(self, snapshot):
        model = InstantFill()
        model.execute(Order.buy('A', 10), snapshot)
        model.execute(Order.sell('B', 2), snapshot)

        log = model.execution_log
        assert len(log) == 2
        assert log[0]['filled'] is True
        assert log[0]['notional'] == 1000.0

        summary = model.get_execution_summary()
        assert summary['num_orders'] == 2
        assert summary['num_fills'] == 2
        assert summary['num_buys'] == 1
        assert summary['num_sells'] == 1
        assert summary['total_notional'] == 1100.0
        assert summary['total_commissions'] == 0.0

        model.clear_log()
        assert model.execution_log == []


class TestSlippageModel:
    """Tests for SlippageModel."""

    def test_buy_pays_more(self, snapshot):
        fill = SlippageModel(slippage_pct=0.01).execute(Order.buy('A', 1), snapshot)
        assert fill.price == pytest.approx(101.0)

    def test_sell_receives_less(self, snapshot):
        fill = SlippageModel(slippage_pct=0.01).execute(Order.sell('A', 1), snapshot)
        assert fill.price == pytest.approx(99.0)

    def test_commission_per_share(self, snapshot):
        model = SlippageModel(commission_per_share=0.01)
        fill = model.execute(Order.buy('A', 200), snapshot)
        assert fill.commission == pytest.approx(2.0)
        assert fill.cash_delta == pytest.approx(-20002.0)

    def test_min_commission_floor(self, snapshot):
        model = SlippageModel(commission_per_share=0.005, min_commission=1.0)
        fill = model.execute(Order.buy('A', 10), snapshot)
        assert fill.commission == 1.0

    def test_zero_fees_by_default(self, snapshot):
        fill = SlippageModel().execute(Order.buy('A', 10), snapshot)
        assert fill.price == 100.0
        assert fill.commission == 0.0

    @pytest.mark.parametrize("kwargs", [
        {'slippage_pct': -0.01},
        {'slippage_pct': 0.6},
        {'commission_per_share': -1.0},
        {'min_commission': -1.0},
        {'slippage_pct': float('nan')},
    ])
    def test_invalid_parameters_raise(self, kwargs):
        with pytest.raises(ExecutionConfigError):
            SlippageModel(**kwargs)

    def test_missing_price_raises(self, snapshot):
        with pytest.raises(MissingPriceError):
            SlippageModel(slippage_pct=0.01).execute(Order.sell('C', 1), snapshot)


class TestCashConstrainedFill:
    """Tests for CashConstrainedFill."""

    def test_declines_unaffordable_buy(self, snapshot, poor_state):
        model = CashConstrainedFill()
        assert model.execute(Order.buy('A', 10), snapshot, poor_state) is None
        assert model.get_execution_summary()['num_unfilled'] == 1

    def test_fills_affordable_buy(self, snapshot, poor_state):
        fill = CashConstrainedFill().execute(Order.buy('A', 5), snapshot, poor_state)
        assert fill is not None
        assert fill.notional == 500.0

    def test_passes_sells_through(self, snapshot, poor_state):
        fill = CashConstrainedFill().execute(Order.sell('A', 100), snapshot, poor_state)
        assert fill is not None

    def test_without_state_passes_through(self, snapshot):
        fill = CashConstrainedFill().execute(Order.buy('A', 1000), snapshot)
        assert fill is not None

    def test_includes_inner_costs(self, snapshot, poor_state):
        model = CashConstrainedFill(SlippageModel(slippage_pct=0.01))
        assert model.execute(Order.buy('A', 5), snapshot, poor_state) is None
        assert isinstance(model.inner, SlippageModel)

    def test_declined_buy_not_logged_as_filled(self, snapshot, poor_state):
        inner = InstantFill()
        model = CashConstrainedFill(inner)

        assert model.execute(Order.buy('A', 10), snapshot, poor_state) is None
        model.execute(Order.buy('A', 5), snapshot, poor_state)

        assert inner.execution_log == []
        assert [e['filled'] for e in model.execution_log] == [False, True]

    def test_missing_price_propagates(self, snapshot, poor_state):
        model = CashConstrainedFill()
        with pytest.raises(MissingPriceError):
            model.execute(Order.buy('Z', 1), snapshot, poor_state)

    def test_invalid_inner_raises(self):
        with pytest.raises(ExecutionConfigError):
            CashConstrainedFill(inner="instant")

    def test_is_execution_model(self):
        assert isinstance(CashConstrainedFill(), ExecutionModel)
