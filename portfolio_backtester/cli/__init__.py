"""
CLI Package for Portfolio Backtester

Provides command-line interface tools for running backtests,
validating configurations, and managing environments.

Usage:
    # Run a backtest
    portfolio-backtest run --config portfolio.yaml

    # Validate a configuration
    portfolio-backtest validate --config portfolio.yaml

    # Create a starter configuration
    portfolio-backtest init "Sixty Forty"
"""

from portfolio_backtester.cli.config_schema import (
    # Enums
    DataFormat,
    ExecutionModelType,
    # Config Classes
    DataConfig,
    StrategySpecConfig,
    ExecutionConfig,
    BacktestConfig,
    RunConfig,
    # Validation
    ConfigValidator,
    ConfigValidationError,
    validate_config,
)

from portfolio_backtester.cli.config_loader import (
    ConfigLoader,
    load_config,
    load_config_string,
)

from portfolio_backtester.cli.environment import (
    Environment,
    EnvironmentSettings,
    EnvironmentManager,
    get_environment,
    get_settings,
    set_environment,
    configure_logging,
)

__all__ = [
    # Schema Enums
    "DataFormat",
    "ExecutionModelType",
    # Config Classes
    "DataConfig",
    "StrategySpecConfig",
    "ExecutionConfig",
    "BacktestConfig",
    "RunConfig",
    # Validation
    "ConfigValidator",
    "ConfigValidationError",
    "validate_config",
    # Loader
    "ConfigLoader",
    "load_config",
    "load_config_string",
    # Environment
    "Environment",
    "EnvironmentSettings",
    "EnvironmentManager",
    "get_environment",
    "get_settings",
    "set_environment",
    "configure_logging",
]
