"""
Configuration Loader for Backtest Runs

Loads run configurations from YAML and JSON files,
validates them, and converts them to RunConfig objects.
"""

import json
from pathlib import Path
from typing import Any, Dict, Union
import logging

import yaml

from portfolio_backtester.cli.config_schema import (
    BacktestConfig,
    ConfigValidationError,
    ConfigValidator,
    DataConfig,
    DataFormat,
    ExecutionConfig,
    ExecutionModelType,
    RunConfig,
    StrategySpecConfig,
)

logger = logging.getLogger(__name__)


class ConfigLoader:
    """Loads and parses run configuration files."""

    @classmethod
    def load(cls, path: Union[str, Path]) -> RunConfig:
        """
        Load configuration from file.

        Relative data file paths and directories are resolved against the
        configuration file's directory.

        Args:
            path: Path to YAML or JSON configuration file

        Returns:
            Parsed and validated RunConfig

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigValidationError: If configuration is invalid
            ValueError: If file format is unsupported
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        raw_data = cls._load_file(path)

        config = cls._parse_config(raw_data)
        if config.data.files and config.data.directory is None:
            config.data.directory = str(path.parent)
        elif config.data.directory and not Path(config.data.directory).is_absolute():
            config.data.directory = str(path.parent / config.data.directory)

        errors = ConfigValidator.validate(config)
        if errors:
            raise ConfigValidationError(
                f"Configuration validation failed: {path}", errors=errors
            )

        logger.info(f"Loaded configuration '{config.name}' from {path}")
        return config

    @classmethod
    def load_from_string(cls, content: str, format: str = "yaml") -> RunConfig:
        """
        Load configuration from string content.

        Args:
            content: YAML or JSON string
            format: "yaml" or "json"

        Returns:
            Parsed and validated RunConfig
        """
        if format.lower() == "yaml":
            raw_data = yaml.safe_load(content)
        elif format.lower() == "json":
            raw_data = json.loads(content)
        else:
            raise ValueError(f"Unsupported format: {format}")

        config = cls._parse_config(raw_data)

        errors = ConfigValidator.validate(config)
        if errors:
            raise ConfigValidationError(
                "Configuration validation failed", errors=errors
            )

        return config

    @classmethod
    def _load_file(cls, path: Path) -> Dict[str, Any]:
        """Load raw data from file."""
        suffix = path.suffix.lower()

        with open(path, "r") as f:
            if suffix in (".yaml", ".yml"):
                return yaml.safe_load(f)
            elif suffix == ".json":
                return json.load(f)
            else:
                raise ValueError(f"Unsupported file format: {suffix}")

    @classmethod
    def _parse_config(cls, data: Any) -> RunConfig:
        """Parse raw dictionary into RunConfig."""
        if not isinstance(data, dict):
            raise ConfigValidationError(
                "Configuration must be a mapping",
                errors=[f"Expected a mapping at top level, got {type(data).__name__}"],
            )

        try:
            return RunConfig(
                name=data.get("name", "Unnamed Backtest"),
                description=data.get("description"),
                data=cls._parse_data(data.get("data") or {}),
                strategy=cls._parse_strategy(data.get("strategy") or {}),
                execution=cls._parse_execution(data.get("execution") or {}),
                backtest=cls._parse_backtest(data.get("backtest") or {}),
            )
        except (TypeError, ValueError) as e:
            raise ConfigValidationError(
                "Configuration could not be parsed", errors=[str(e)]
            ) from e

    @classmethod
    def _parse_data(cls, data: Dict[str, Any]) -> DataConfig:
        """Parse data configuration."""
        data_format = data.get("format", "csv")

        if isinstance(data_format, str):
            data_format = DataFormat(data_format.lower())

        return DataConfig(
            files={str(k): str(v) for k, v in (data.get("files") or {}).items()},
            directory=data.get("directory"),
            format=data_format,
            resample=data.get("resample"),
            start_date=data.get("start_date"),
            end_date=data.get("end_date"),
            timestamps=list(data.get("timestamps") or []),
            prices={
                str(k): [float(p) if p is not None else float("nan") for p in v]
                for k, v in (data.get("prices") or {}).items()
            },
        )

    @classmethod
    def _parse_strategy(cls, data: Dict[str, Any]) -> StrategySpecConfig:
        """Parse strategy configuration."""
        return StrategySpecConfig(
            type=str(data.get("type", "buy_and_hold")).lower(),
            weights={str(k): v for k, v in (data.get("weights") or {}).items()},
            frequency=str(data.get("frequency", "monthly")).lower(),
            tolerance=float(data.get("tolerance", 0.05)),
        )

    @classmethod
    def _parse_execution(cls, data: Dict[str, Any]) -> ExecutionConfig:
        """Parse execution configuration."""
        model = data.get("model", "instant")

        if isinstance(model, str):
            model = ExecutionModelType(model.lower())

        return ExecutionConfig(
            model=model,
            slippage_pct=float(data.get("slippage_pct", 0.0)),
            commission_per_share=float(data.get("commission_per_share", 0.0)),
            min_commission=float(data.get("min_commission", 0.0)),
            cash_constrained=bool(data.get("cash_constrained", False)),
        )

    @classmethod
    def _parse_backtest(cls, data: Dict[str, Any]) -> BacktestConfig:
        """Parse backtest configuration."""
        capital = data.get("initial_capital")
        return BacktestConfig(
            initial_capital=float(capital) if capital is not None else None,
            fail_fast=bool(data.get("fail_fast", False)),
            periods_per_year=data.get("periods_per_year", 252),
            risk_free_rate=float(data.get("risk_free_rate", 0.0)),
        )


def load_config(path: Union[str, Path]) -> RunConfig:
    """
    Convenience function to load a configuration file.

    Args:
        path: Path to YAML or JSON config file

    Returns:
        Validated RunConfig
    """
    return ConfigLoader.load(path)


def load_config_string(content: str, format: str = "yaml") -> RunConfig:
    """
    Convenience function to load configuration from string.

    Args:
        content: YAML or JSON string
        format: "yaml" or "json"

    Returns:
        Validated RunConfig
    """
    return ConfigLoader.load_from_string(content, format)
