"""
Configuration Schema for Backtest Runs

Defines the schema for YAML/JSON backtest configuration files,
including validation logic.
"""

from dataclasses import dataclass, field
from datetime import datetime, date
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import logging
import math

from portfolio_backtester.strategies import (
    STRATEGY_TYPES,
    InvalidFrequencyError,
    RebalanceFrequency,
)
from portfolio_backtester.strategies.strategy import WEIGHT_SUM_TOLERANCE

logger = logging.getLogger(__name__)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = errors or []
        super().__init__(message)


class DataFormat(str, Enum):
    """Supported price file formats."""

    CSV = "csv"
    YAHOO = "yahoo"


class ExecutionModelType(str, Enum):
    """Supported execution models."""

    INSTANT = "instant"
    SLIPPAGE = "slippage"


@dataclass
class DataConfig:
    """
    Price data configuration.

    Either per-symbol CSV files (``files``, resolved against ``directory``)
    or inline ``timestamps`` and ``prices``.
    """

    files: Dict[str, str] = field(default_factory=dict)
    directory: Optional[str] = None
    format: DataFormat = DataFormat.CSV
    resample: Optional[str] = None
    start_date: Optional[Union[str, date, datetime]] = None
    end_date: Optional[Union[str, date, datetime]] = None

    # Inline data
    timestamps: List[Any] = field(default_factory=list)
    prices: Dict[str, List[float]] = field(default_factory=dict)

    @property
    def is_inline(self) -> bool:
        return bool(self.prices)


@dataclass
class StrategySpecConfig:
    """Strategy type and parameters."""

    type: str = "buy_and_hold"
    weights: Dict[str, float] = field(default_factory=dict)
    frequency: str = "monthly"  # Rebalancing only
    tolerance: float = 0.05  # Rebalancing only


@dataclass
class ExecutionConfig:
    """Order execution configuration."""

    model: ExecutionModelType = ExecutionModelType.INSTANT
    slippage_pct: float = 0.0
    commission_per_share: float = 0.0
    min_commission: float = 0.0
    cash_constrained: bool = False


@dataclass
class BacktestConfig:
    """Backtest execution configuration."""

    initial_capital: Optional[float] = None  # None: environment default
    fail_fast: bool = False
    periods_per_year: int = 252
    risk_free_rate: float = 0.0


@dataclass
class RunConfig:
    """Complete backtest run configuration."""

    name: str
    description: Optional[str] = None
    data: DataConfig = field(default_factory=DataConfig)
    strategy: StrategySpecConfig = field(default_factory=StrategySpecConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    backtest: BacktestConfig = field(default_factory=BacktestConfig)


class ConfigValidator:
    """Validates backtest run configuration."""

    @classmethod
    def validate(cls, config: RunConfig) -> List[str]:
        """
        Validate a run configuration.

        Returns:
            List of validation error messages (empty if valid)
        """
        errors = []

        if not config.name:
            errors.append("Run name is required")

        errors.extend(cls._validate_data(config.data))
        errors.extend(cls._validate_strategy(config.strategy))
        errors.extend(cls._validate_execution(config.execution))
        errors.extend(cls._validate_backtest(config.backtest))

        # Every weighted symbol needs prices
        available = set(config.data.prices) | set(config.data.files)
        missing = sorted(set(config.strategy.weights) - available)
        if available and missing:
            errors.append(f"No price data for weighted symbols: {missing}")

        return errors

    @classmethod
    def _validate_data(cls, data: DataConfig) -> List[str]:
        """Validate data configuration."""
        errors = []

        if data.files and data.prices:
            errors.append(
                "Cannot specify both 'files' and inline 'prices' - use one or the other"
            )
        if not data.files and not data.prices:
            errors.append("Data requires either 'files' or inline 'prices'")

        if data.prices:
            if not data.timestamps:
                errors.append("Inline prices require 'timestamps'")
            for symbol, series in data.prices.items():
                if len(series) != len(data.timestamps):
                    errors.append(
                        f"Inline prices for {symbol} have {len(series)} values, "
                        f"expected {len(data.timestamps)}"
                    )

        if data.resample is not None and data.resample not in ("daily", "weekly", "monthly"):
            errors.append(
                f"resample must be daily, weekly or monthly, got '{data.resample}'"
            )

        start = cls._parse_date(data.start_date) if data.start_date else None
        end = cls._parse_date(data.end_date) if data.end_date else None
        if data.start_date and start is None:
            errors.append(f"Invalid start_date format: {data.start_date}")
        if data.end_date and end is None:
            errors.append(f"Invalid end_date format: {data.end_date}")
        if start and end and start >= end:
            errors.append("start_date must be before end_date")

        return errors

    @classmethod
    def _validate_strategy(cls, strategy: StrategySpecConfig) -> List[str]:
        """Validate strategy configuration."""
        errors = []

        if strategy.type not in STRATEGY_TYPES:
            errors.append(
                f"Unknown strategy type '{strategy.type}', "
                f"expected one of {sorted(STRATEGY_TYPES)}"
            )

        if not strategy.weights:
            errors.append("Strategy weights are required")
        else:
            total = 0.0
            for symbol, weight in strategy.weights.items():
                if not isinstance(weight, (int, float)) or not math.isfinite(weight):
                    errors.append(f"Weight for {symbol} must be a finite number")
                    continue
                if weight < 0:
                    errors.append(f"Weight for {symbol} cannot be negative")
                total += weight
            if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE + 1e-9:
                errors.append(f"Weights must sum to 1.0, got {total:.4f}")

        if strategy.type == "rebalancing":
            try:
                RebalanceFrequency.parse(strategy.frequency)
            except InvalidFrequencyError as e:
                errors.append(str(e))
            if not (0 <= strategy.tolerance < 1):
                errors.append(
                    f"Tolerance must be between 0 and 1, got {strategy.tolerance}"
                )

        return errors

    @classmethod
    def _validate_execution(cls, execution: ExecutionConfig) -> List[str]:
        """Validate execution configuration."""
        errors = []

        if execution.slippage_pct < 0 or execution.slippage_pct > 0.5:
            errors.append("Slippage percentage must be between 0 and 0.5")

        if execution.commission_per_share < 0:
            errors.append("Commission cannot be negative")

        if execution.min_commission < 0:
            errors.append("Minimum commission cannot be negative")

        if execution.model == ExecutionModelType.INSTANT and (
            execution.slippage_pct > 0 or execution.commission_per_share > 0
        ):
            errors.append(
                "Slippage and commission require execution model 'slippage'"
            )

        return errors

    @classmethod
    def _validate_backtest(cls, backtest: BacktestConfig) -> List[str]:
        """Validate backtest configuration."""
        errors = []

        if backtest.initial_capital is not None and backtest.initial_capital <= 0:
            errors.append("Initial capital must be positive")

        if not isinstance(backtest.periods_per_year, int) or backtest.periods_per_year <= 0:
            errors.append("periods_per_year must be a positive integer")

        if abs(backtest.risk_free_rate) > 1:
            errors.append(
                f"Risk-free rate {backtest.risk_free_rate} looks like a percentage; "
                f"use a decimal (e.g., 0.04)"
            )

        return errors

    @staticmethod
    def _parse_date(date_value: Union[str, date, datetime]) -> Optional[date]:
        """Parse various date formats."""
        if isinstance(date_value, datetime):
            return date_value.date()
        if isinstance(date_value, date):
            return date_value
        if isinstance(date_value, str):
            for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%m/%d/%Y", "%d-%m-%Y"):
                try:
                    return datetime.strptime(date_value, fmt).date()
                except ValueError:
                    continue
        return None


def validate_config(config: RunConfig) -> None:
    """
    Validate configuration and raise exception if invalid.

    Args:
        config: Run configuration to validate

    Raises:
        ConfigValidationError: If validation fails
    """
    errors = ConfigValidator.validate(config)
    if errors:
        raise ConfigValidationError(
            f"Configuration validation failed with {len(errors)} error(s)",
            errors=errors,
        )
