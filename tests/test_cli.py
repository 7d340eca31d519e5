"""
Tests for CLI Module

Tests configuration schema, loading, validation, environment management,
and CLI commands.
"""

import json
from datetime import date
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from portfolio_backtester.cli.cli import cli
from portfolio_backtester.cli.config_loader import (
    ConfigLoader,
    load_config,
    load_config_string,
)
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
    validate_config,
)
from portfolio_backtester.cli.environment import (
    Environment,
    EnvironmentManager,
    get_environment,
    get_settings,
    set_environment,
)


# =============================================================================
# Test Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def reset_environment(monkeypatch, tmp_path):
    """Isolate environment state and config file lookup per test."""
    monkeypatch.delenv(EnvironmentManager.ENV_VAR, raising=False)
    monkeypatch.setattr(EnvironmentManager, "CONFIG_PATHS", [tmp_path / "env"])
    EnvironmentManager.reset()
    yield
    EnvironmentManager.reset()


def inline_config(**overrides):
    config = {
        "name": "Sixty Forty",
        "data": {
            "timestamps": ["2024-01-02", "2024-01-03", "2024-01-04"],
            "prices": {
                "A": [100.0, 100.0, 100.0],
                "B": [100.0, 100.0, 100.0],
            },
        },
        "strategy": {"type": "buy_and_hold", "weights": {"A": 0.6, "B": 0.4}},
    }
    config.update(overrides)
    return config


def write_config(path: Path, data) -> Path:
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


def valid_run_config(**overrides) -> RunConfig:
    params = dict(
        name="Test",
        data=DataConfig(timestamps=["2024-01-02"], prices={"A": [1.0]}),
        strategy=StrategySpecConfig(weights={"A": 1.0}),
    )
    params.update(overrides)
    return RunConfig(**params)


# =============================================================================
# Schema and Validation Tests
# =============================================================================

class TestConfigSchema:
    def test_enums(self):
        assert DataFormat.YAHOO.value == "yahoo"
        assert ExecutionModelType.SLIPPAGE.value == "slippage"

    def test_defaults(self):
        config = RunConfig(name="Defaults")
        assert config.strategy.type == "buy_and_hold"
        assert config.strategy.frequency == "monthly"
        assert config.execution.model == ExecutionModelType.INSTANT
        assert config.backtest.initial_capital is None
        assert config.backtest.periods_per_year == 252
        assert config.data.is_inline is False

    def test_inline_data(self):
        data = DataConfig(timestamps=["2024-01-02"], prices={"A": [1.0]})
        assert data.is_inline


class TestConfigValidator:
    def test_valid_config(self):
        assert ConfigValidator.validate(valid_run_config()) == []

    def test_missing_name(self):
        errors = ConfigValidator.validate(valid_run_config(name=""))
        assert any("name" in e.lower() for e in errors)

    def test_missing_data(self):
        errors = ConfigValidator.validate(valid_run_config(data=DataConfig()))
        assert any("files" in e for e in errors)

    def test_files_and_prices_conflict(self):
        data = DataConfig(
            files={"A": "A.csv"}, timestamps=["2024-01-02"], prices={"A": [1.0]}
        )
        errors = ConfigValidator.validate(valid_run_config(data=data))
        assert any("both" in e for e in errors)

    def test_inline_length_mismatch(self):
        data = DataConfig(timestamps=["2024-01-02", "2024-01-03"], prices={"A": [1.0]})
        errors = ConfigValidator.validate(valid_run_config(data=data))
        assert any("expected 2" in e for e in errors)

    def test_bad_resample_and_dates(self):
        data = DataConfig(
            files={"A": "A.csv"}, resample="hourly",
            start_date="2024-06-01", end_date="2024-01-01",
        )
        errors = ConfigValidator.validate(valid_run_config(data=data))
        assert any("resample" in e for e in errors)
        assert any("start_date must be before" in e for e in errors)

    def test_invalid_date_format(self):
        data = DataConfig(files={"A": "A.csv"}, start_date="June 1st")
        errors = ConfigValidator.validate(valid_run_config(data=data))
        assert any("Invalid start_date" in e for e in errors)

    def test_unknown_strategy_type(self):
        strategy = StrategySpecConfig(type="momentum", weights={"A": 1.0})
        errors = ConfigValidator.validate(valid_run_config(strategy=strategy))
        assert any("Unknown strategy type" in e for e in errors)

    def test_weights_must_sum_to_one(self):
        strategy = StrategySpecConfig(weights={"A": 0.5})
        errors = ConfigValidator.validate(valid_run_config(strategy=strategy))
        assert any("sum to 1.0" in e for e in errors)

    def test_negative_weight(self):
        data = DataConfig(timestamps=["2024-01-02"], prices={"A": [1.0], "B": [1.0]})
        strategy = StrategySpecConfig(weights={"A": 1.5, "B": -0.5})
        errors = ConfigValidator.validate(valid_run_config(data=data, strategy=strategy))
        assert any("negative" in e for e in errors)

    def test_rebalancing_frequency_and_tolerance(self):
        strategy = StrategySpecConfig(
            type="rebalancing", weights={"A": 1.0}, frequency="hourly", tolerance=1.5
        )
        errors = ConfigValidator.validate(valid_run_config(strategy=strategy))
        assert any("hourly" in e for e in errors)
        assert any("Tolerance" in e for e in errors)

    def test_weighted_symbol_without_prices(self):
        strategy = StrategySpecConfig(weights={"A": 0.5, "Z": 0.5})
        errors = ConfigValidator.validate(valid_run_config(strategy=strategy))
        assert any("No price data" in e for e in errors)

    def test_instant_model_rejects_fees(self):
        execution = ExecutionConfig(model=ExecutionModelType.INSTANT, slippage_pct=0.01)
        errors = ConfigValidator.validate(valid_run_config(execution=execution))
        assert any("slippage" in e for e in errors)

    def test_negative_commission(self):
        execution = ExecutionConfig(
            model=ExecutionModelType.SLIPPAGE, commission_per_share=-1.0
        )
        errors = ConfigValidator.validate(valid_run_config(execution=execution))
        assert any("Commission cannot be negative" in e for e in errors)

    def test_backtest_settings(self):
        backtest = BacktestConfig(initial_capital=0, periods_per_year=0, risk_free_rate=4.0)
        errors = ConfigValidator.validate(valid_run_config(backtest=backtest))
        assert any("Initial capital" in e for e in errors)
        assert any("periods_per_year" in e for e in errors)
        assert any("percentage" in e for e in errors)

    def test_validate_config_raises(self):
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config(valid_run_config(name=""))
        assert exc_info.value.errors


# =============================================================================
# Loader Tests
# =============================================================================

class TestConfigLoader:
    def test_load_yaml(self, tmp_path):
        path = write_config(tmp_path / "run.yaml", inline_config())
        config = load_config(path)
        assert config.name == "Sixty Forty"
        assert config.strategy.weights == {"A": 0.6, "B": 0.4}
        assert config.data.prices["A"] == [100.0, 100.0, 100.0]

    def test_load_json(self, tmp_path):
        path = tmp_path / "run.json"
        path.write_text(json.dumps(inline_config()))
        assert ConfigLoader.load(path).name == "Sixty Forty"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "missing.yaml")

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "run.toml"
        path.write_text("name = 'x'")
        with pytest.raises(ValueError):
            load_config(path)

    def test_invalid_config_raises_with_errors(self, tmp_path):
        data = inline_config(strategy={"type": "buy_and_hold", "weights": {"A": 0.2}})
        path = write_config(tmp_path / "bad.yaml", data)
        with pytest.raises(ConfigValidationError) as exc_info:
            load_config(path)
        assert any("sum to 1.0" in e for e in exc_info.value.errors)

    def test_non_mapping_raises(self):
        with pytest.raises(ConfigValidationError):
            load_config_string("- just\n- a list\n")

    def test_unknown_enum_value_raises(self):
        content = yaml.dump(inline_config(execution={"model": "vwap"}))
        with pytest.raises(ConfigValidationError):
            load_config_string(content)

    def test_load_from_json_string(self):
        config = load_config_string(json.dumps(inline_config()), format="json")
        assert config.strategy.type == "buy_and_hold"

    def test_unsupported_string_format(self):
        with pytest.raises(ValueError):
            load_config_string("name: x", format="toml")

    def test_null_prices_become_nan(self):
        data = inline_config()
        data["data"]["prices"]["B"] = [100.0, None, 100.0]
        config = load_config_string(yaml.dump(data))
        assert config.data.prices["B"][1] != config.data.prices["B"][1]

    def test_yaml_dates_accepted(self):
        content = """
name: Dates
data:
  files: {A: A.csv}
  start_date: 2024-01-01
  end_date: 2024-06-30
strategy:
  weights: {A: 1.0}
"""
        config = load_config_string(content)
        assert config.data.start_date == date(2024, 1, 1)

    def test_files_resolve_relative_to_config(self, tmp_path):
        data = {
            "name": "Files",
            "data": {"files": {"A": "A.csv"}},
            "strategy": {"weights": {"A": 1.0}},
        }
        path = write_config(tmp_path / "run.yaml", data)
        assert load_config(path).data.directory == str(tmp_path)

    def test_relative_directory(self, tmp_path):
        data = {
            "name": "Files",
            "data": {"files": {"A": "A.csv"}, "directory": "prices"},
            "strategy": {"weights": {"A": 1.0}},
        }
        path = write_config(tmp_path / "run.yaml", data)
        assert load_config(path).data.directory == str(tmp_path / "prices")

    def test_execution_and_backtest_sections(self):
        content = yaml.dump(inline_config(
            execution={
                "model": "slippage", "slippage_pct": 0.001,
                "commission_per_share": 0.01, "cash_constrained": True,
            },
            backtest={"initial_capital": 50000, "fail_fast": True},
        ))
        config = load_config_string(content)
        assert config.execution.model == ExecutionModelType.SLIPPAGE
        assert config.execution.cash_constrained is True
        assert config.backtest.initial_capital == 50000.0
        assert config.backtest.fail_fast is True

    def test_omitted_capital_left_to_environment(self):
        config = load_config_string(yaml.dump(inline_config(backtest={"fail_fast": True})))
        assert config.backtest.initial_capital is None
        assert ConfigValidator.validate(config) == []


# =============================================================================
# Environment Tests
# =============================================================================

class TestEnvironment:
    def test_default_environment(self):
        assert get_environment() == Environment.DEVELOPMENT

    def test_environment_from_variable(self, monkeypatch):
        monkeypatch.setenv(EnvironmentManager.ENV_VAR, "production")
        assert get_environment() == Environment.PRODUCTION
        assert EnvironmentManager.is_production()

    def test_unknown_environment_falls_back(self, monkeypatch):
        monkeypatch.setenv(EnvironmentManager.ENV_VAR, "qa")
        assert get_environment() == Environment.DEVELOPMENT

    def test_set_environment(self):
        set_environment(Environment.TEST)
        assert EnvironmentManager.is_test()
        assert not EnvironmentManager.is_development()

    def test_default_settings(self):
        set_environment(Environment.PRODUCTION)
        settings = get_settings()
        assert settings.name == Environment.PRODUCTION
        assert settings.log_level == "WARNING"
        assert settings.default_initial_capital == 100000.0
        assert settings.save_equity_curve is True

    def test_settings_from_file(self, tmp_path):
        env_dir = tmp_path / "env"
        env_dir.mkdir()
        (env_dir / "test.yaml").write_text(
            "log_level: ERROR\ndefault_initial_capital: 25000\n"
        )
        set_environment(Environment.TEST)
        settings = get_settings()
        assert settings.log_level == "ERROR"
        assert settings.default_initial_capital == 25000.0
        assert settings.save_equity_curve is False

    def test_nested_settings_file(self, tmp_path):
        env_dir = tmp_path / "env"
        env_dir.mkdir()
        (env_dir / "config.yaml").write_text(
            "staging:\n  output_directory: /tmp/staging-out\n"
        )
        set_environment(Environment.STAGING)
        assert get_settings().output_directory == "/tmp/staging-out"

    def test_settings_cached_until_environment_changes(self):
        set_environment(Environment.TEST)
        first = get_settings()
        assert get_settings() is first
        set_environment(Environment.STAGING)
        assert get_settings() is not first


# =============================================================================
# CLI Command Tests
# =============================================================================

class TestCLICommands:
    @pytest.fixture
    def cli_runner(self):
        return CliRunner()

    @pytest.fixture
    def sample_config(self, tmp_path):
        return write_config(tmp_path / "sixty_forty.yaml", inline_config())

    def test_cli_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        for command in ("run", "validate", "init", "env"):
            assert command in result.output

    def test_version(self, cli_runner):
        result = cli_runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "1.0.0" in result.output

    def test_run(self, cli_runner, sample_config, tmp_path):
        output = tmp_path / "results" / "result.json"
        result = cli_runner.invoke(
            cli, ["run", "--config", str(sample_config), "--output", str(output)]
        )
        assert result.exit_code == 0, result.output
        assert "completed" in result.output

        data = json.loads(output.read_text())
        assert data["strategy_name"] == "Sixty Forty"
        assert data["final_value"] == pytest.approx(10000.0)
        assert data["num_steps"] == 3
        assert len(data["fills"]) == 2

    def test_run_capital_override(self, cli_runner, sample_config, tmp_path):
        output = tmp_path / "result.json"
        result = cli_runner.invoke(
            cli,
            ["-q", "run", "-c", str(sample_config), "-o", str(output),
             "--capital", "20000"],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(output.read_text())["initial_value"] == 20000.0

    def test_run_invalid_capital(self, cli_runner, sample_config):
        result = cli_runner.invoke(
            cli, ["run", "-c", str(sample_config), "--capital", "-5"]
        )
        assert result.exit_code == 2

    def test_run_dry_run(self, cli_runner, sample_config, tmp_path):
        output = tmp_path / "result.json"
        result = cli_runner.invoke(
            cli, ["run", "-c", str(sample_config), "-o", str(output), "--dry-run"]
        )
        assert result.exit_code == 0
        assert "Dry run complete" in result.output
        assert not output.exists()

    def test_run_skips_missing_prices(self, cli_runner, tmp_path):
        data = inline_config(strategy={
            "type": "rebalancing", "frequency": "daily", "tolerance": 0.0,
            "weights": {"A": 0.5, "B": 0.5},
        })
        data["data"]["prices"] = {
            "A": [100.0, 150.0, 150.0],
            "B": [100.0, None, 100.0],
        }
        path = write_config(tmp_path / "gaps.yaml", data)
        output = tmp_path / "result.json"

        result = cli_runner.invoke(cli, ["run", "-c", str(path), "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert len(json.loads(output.read_text())["rejected_orders"]) == 1

    def test_run_fail_fast(self, cli_runner, tmp_path):
        data = inline_config(strategy={
            "type": "rebalancing", "frequency": "daily", "tolerance": 0.0,
            "weights": {"A": 0.5, "B": 0.5},
        })
        data["data"]["prices"] = {
            "A": [100.0, 150.0, 150.0],
            "B": [100.0, None, 100.0],
        }
        path = write_config(tmp_path / "gaps.yaml", data)

        result = cli_runner.invoke(cli, ["run", "-c", str(path), "--fail-fast"])

        assert result.exit_code == 1

    def test_run_invalid_config(self, cli_runner, tmp_path):
        data = inline_config(strategy={"weights": {"A": 0.3}})
        path = write_config(tmp_path / "bad.yaml", data)
        result = cli_runner.invoke(cli, ["run", "-c", str(path)])
        assert result.exit_code == 1

    def test_run_missing_config(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["run", "-c", str(tmp_path / "nope.yaml")])
        assert result.exit_code == 2

    def test_run_with_csv_files(self, cli_runner, tmp_path):
        (tmp_path / "A.csv").write_text(
            "date,close\n2024-01-02,100\n2024-01-03,110\n2024-01-04,120\n"
        )
        (tmp_path / "B.csv").write_text(
            "date,close\n2024-01-03,50\n2024-01-04,55\n2024-01-05,60\n"
        )
        data = {
            "name": "CSV Run",
            "data": {"files": {"A": "A.csv", "B": "B.csv"}},
            "strategy": {"weights": {"A": 0.5, "B": 0.5}},
            "execution": {"model": "slippage", "commission_per_share": 0.01},
        }
        path = write_config(tmp_path / "csv.yaml", data)
        output = tmp_path / "result.json"

        result = cli_runner.invoke(cli, ["run", "-c", str(path), "-o", str(output)])

        assert result.exit_code == 0, result.output
        out = json.loads(output.read_text())
        # Only the common dates 01-03 and 01-04 remain after alignment
        assert out["timestamps"] == ["2024-01-03T00:00:00", "2024-01-04T00:00:00"]
        assert all(f["commission"] > 0 for f in out["fills"])

    def test_run_with_date_range(self, cli_runner, tmp_path):
        (tmp_path / "A.csv").write_text(
            "date,close\n2024-01-02,100\n2024-01-03,110\n2024-01-04,120\n"
        )
        data = {
            "name": "Sliced",
            "data": {
                "files": {"A": "A.csv"},
                "start_date": "2024-01-03",
                "end_date": "2024-01-04",
            },
            "strategy": {"weights": {"A": 1.0}},
        }
        path = write_config(tmp_path / "sliced.yaml", data)
        output = tmp_path / "result.json"

        result = cli_runner.invoke(cli, ["run", "-c", str(path), "-o", str(output)])

        assert result.exit_code == 0, result.output
        assert json.loads(output.read_text())["num_steps"] == 2

    def test_run_missing_csv(self, cli_runner, tmp_path):
        data = {
            "name": "Missing",
            "data": {"files": {"A": "A.csv"}},
            "strategy": {"weights": {"A": 1.0}},
        }
        path = write_config(tmp_path / "missing.yaml", data)
        result = cli_runner.invoke(cli, ["run", "-c", str(path)])
        assert result.exit_code == 1

    def test_validate(self, cli_runner, sample_config):
        result = cli_runner.invoke(cli, ["validate", "-c", str(sample_config)])
        assert result.exit_code == 0
        assert "is valid" in result.output

    def test_validate_invalid(self, cli_runner, tmp_path):
        data = inline_config(strategy={"type": "momentum", "weights": {"A": 1.0}})
        path = write_config(tmp_path / "bad.yaml", data)
        result = cli_runner.invoke(cli, ["validate", "-c", str(path)])
        assert result.exit_code == 1

    def test_init_creates_valid_config(self, cli_runner, tmp_path):
        output = tmp_path / "starter.yaml"
        result = cli_runner.invoke(cli, ["init", "Starter", "-o", str(output)])
        assert result.exit_code == 0
        assert output.exists()

        config = load_config(output)
        assert config.name == "Starter"
        assert config.strategy.type == "rebalancing"

        result = cli_runner.invoke(cli, ["run", "-c", str(output)])
        assert result.exit_code == 0, result.output

    def test_init_default_file_name(self, cli_runner):
        with cli_runner.isolated_filesystem():
            result = cli_runner.invoke(cli, ["init", "My Portfolio"])
            assert result.exit_code == 0
            assert Path("my_portfolio.yaml").exists()

    def test_init_refuses_overwrite(self, cli_runner, tmp_path):
        output = tmp_path / "existing.yaml"
        output.write_text("keep me")
        result = cli_runner.invoke(cli, ["init", "X", "-o", str(output)], input="n\n")
        assert result.exit_code == 0
        assert output.read_text() == "keep me"

    def test_env(self, cli_runner):
        result = cli_runner.invoke(cli, ["--env", "test", "env"])
        assert result.exit_code == 0
        assert "Environment: test" in result.output
        assert "Save Equity Curve" in result.output

    def test_run_uses_environment_capital(self, cli_runner, sample_config, tmp_path):
        output = tmp_path / "result.json"
        result = cli_runner.invoke(
            cli,
            ["--env", "production", "run", "-c", str(sample_config), "-o", str(output)],
        )
        assert result.exit_code == 0, result.output
        assert json.loads(output.read_text())["initial_value"] == 100000.0

    def test_config_capital_beats_environment(self, cli_runner, tmp_path):
        data = inline_config(backtest={"initial_capital": 5000})
        path = write_config(tmp_path / "capital.yaml", data)
        output = tmp_path / "result.json"
        result = cli_runner.invoke(
            cli, ["--env", "production", "run", "-c", str(path), "-o", str(output)]
        )
        assert result.exit_code == 0, result.output
        assert json.loads(output.read_text())["initial_value"] == 5000.0

    def test_run_save_writes_to_output_directory(self, cli_runner, sample_config, tmp_path):
        out_dir = tmp_path / "out"
        env_dir = tmp_path / "env"
        env_dir.mkdir()
        (env_dir / "development.yaml").write_text(f"output_directory: {out_dir}\n")

        result = cli_runner.invoke(cli, ["run", "-c", str(sample_config), "--save"])

        assert result.exit_code == 0, result.output
        saved = out_dir / "sixty_forty.json"
        assert saved.exists()
        assert json.loads(saved.read_text())["strategy_name"] == "Sixty Forty"

    def test_run_without_save_writes_nothing(self, cli_runner, sample_config, tmp_path):
        out_dir = tmp_path / "out"
        env_dir = tmp_path / "env"
        env_dir.mkdir()
        (env_dir / "development.yaml").write_text(f"output_directory: {out_dir}\n")

        result = cli_runner.invoke(cli, ["run", "-c", str(sample_config)])

        assert result.exit_code == 0, result.output
        assert not out_dir.exists()

    def test_test_environment_drops_equity_curve(self, cli_runner, sample_config, tmp_path):
        output = tmp_path / "result.json"
        result = cli_runner.invoke(
            cli, ["--env", "test", "run", "-c", str(sample_config), "-o", str(output)]
        )
        assert result.exit_code == 0, result.output

        data = json.loads(output.read_text())
        for key in ("timestamps", "equity_curve", "period_returns", "position_snapshots"):
            assert key not in data
        assert "metrics" in data
        assert len(data["fills"]) == 2
