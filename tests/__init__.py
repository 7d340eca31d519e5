"""
Test Suite for Portfolio Backtester

This package contains unit and integration tests for the backtesting system,
organized by module.

Test modules:
    - test_models: MarketSnapshot, Order and Fill value types
    - test_state: SimulationState and StateView
    - test_data_stream: HistoricalDriver
    - test_execution: InstantFill, SlippageModel, CashConstrainedFill
    - test_strategies: Weight validation, buy-and-hold and rebalancing
    - test_engine: BacktestEngine event loop and BacktestResult
    - test_sweep: Parallel strategy sweeps
    - test_metrics: PerformanceMetrics
    - test_data: PriceHistory transformations and CSV adapters
    - test_cli: Configuration, environment and CLI commands

Run all tests:
    pytest tests/ -v

Run specific test file:
    pytest tests/test_engine.py -v

Run with coverage:
    pytest tests/ --cov=portfolio_backtester --cov-report=term-missing
"""
