"""Tests for configuration loading and validation."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

import pytest

from marketsim.config_loader import (
    AppConfig,
    ConfigLoader,
    interpolate_env_vars,
    load_config,
    load_config_with_overrides,
    process_config_dict,
)
from marketsim.constants import LogLevel


class TestEnvVarInterpolation:
    """Tests for environment variable interpolation."""

    def test_no_interpolation_needed(self) -> None:
        """Test that plain strings pass through unchanged."""
        assert interpolate_env_vars("hello") == "hello"
        assert interpolate_env_vars(123) == 123
        assert interpolate_env_vars(None) is None

    def test_simple_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TEST_VAR", "test_value")
        assert interpolate_env_vars("${TEST_VAR}") == "test_value"

    def test_env_var_with_default(self) -> None:
        """Test ${VAR:default} interpolation with missing var."""
        os.environ.pop("MISSING_VAR", None)
        assert interpolate_env_vars("${MISSING_VAR:default_value}") == "default_value"

    def test_env_var_with_default_when_set(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SET_VAR", "actual_value")
        assert interpolate_env_vars("${SET_VAR:default_value}") == "actual_value"

    def test_missing_var_no_default(self) -> None:
        os.environ.pop("TOTALLY_MISSING", None)
        assert interpolate_env_vars("${TOTALLY_MISSING}") == ""


class TestProcessConfigDict:
    """Tests for recursive config dict processing."""

    def test_nested_dict(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("NESTED_VAR", "nested_value")
        data = {"level1": {"level2": {"value": "${NESTED_VAR}"}}}
        result = process_config_dict(data)
        assert result["level1"]["level2"]["value"] == "nested_value"

    def test_list_of_dicts(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Symbol seeds are a list of mappings and get interpolated too."""
        monkeypatch.setenv("SEED_PRICE", "42")
        data = {"symbols": [{"symbol": "abc", "price": "${SEED_PRICE}"}, "static"]}
        result = process_config_dict(data)
        assert result["symbols"][0]["price"] == "42"
        assert result["symbols"][1] == "static"


class TestConfigLoader:
    """Tests for ConfigLoader class."""

    def test_load_valid_config(self, tmp_path: Path) -> None:
        config_content = """
environment:
  log_level: DEBUG

symbols:
  - symbol: xyz
    name: Example
    price: 12.5

market_defaults:
  liquidity: 8000
  fee_bps: 10

rate_limit:
  max_orders: 3
"""
        config_file = tmp_path / "config.yaml"
        config_file.write_text(config_content)

        config = ConfigLoader(config_file).load()

        assert config.environment.log_level == LogLevel.DEBUG
        assert config.symbol_codes == ["XYZ"]
        assert config.symbols[0].price == Decimal("12.5")
        assert config.market_defaults.liquidity == Decimal("8000")
        assert config.market_defaults.fee_bps == Decimal("10")
        assert config.rate_limit.max_orders == 3

    def test_file_not_found(self) -> None:
        loader = ConfigLoader(Path("/nonexistent/path/config.yaml"))
        with pytest.raises(FileNotFoundError):
            loader.load()

    def test_empty_config_uses_defaults(self, tmp_path: Path) -> None:
        """Test that empty config file uses defaults."""
        config_file = tmp_path / "empty.yaml"
        config_file.write_text("")

        config = load_config(config_file)

        assert config.symbol_codes == ["BTC", "ETH", "SOL", "DOGE"]
        assert config.symbols[3].price == Decimal("0.15")
        assert config.market_defaults.volatility == Decimal("0.002")
        assert config.market_defaults.liquidity == Decimal("12000")
        assert config.market_defaults.spread == Decimal("0.002")
        assert config.market_defaults.fee_bps == Decimal("12")
        assert config.candles.bucket_seconds == 5
        assert config.candles.history_limit == 200
        assert config.clock.tick_interval_seconds == 1.0
        assert config.clock.leaderboard_interval_seconds == 10.0
        assert config.rate_limit.window_seconds == 2.0
        assert config.rate_limit.max_orders == 5
        assert config.leaderboard.top_n == 20
        assert config.accounts.starting_cash == Decimal("10000")
        assert config.accounts.default_room == "PUBLIC"

    def test_admin_pin_from_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ADMIN_PIN", "9876")
        config_file = tmp_path / "config.yaml"
        config_file.write_text("admin:\n  pin: ${ADMIN_PIN:1234}")

        assert load_config(config_file).admin.pin == "9876"

    def test_admin_pin_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("ADMIN_PIN", raising=False)
        config_file = tmp_path / "config.yaml"
        config_file.write_text("admin:\n  pin: ${ADMIN_PIN:1234}")

        assert load_config(config_file).admin.pin == "1234"

    def test_reload_config(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("candles:\n  bucket_seconds: 5")

        loader = ConfigLoader(config_file)
        assert loader.load().candles.bucket_seconds == 5

        config_file.write_text("candles:\n  bucket_seconds: 10")
        assert loader.reload().candles.bucket_seconds == 10

    def test_shipped_config_loads(self) -> None:
        """The repository's config/config.yaml must validate."""
        shipped = Path(__file__).resolve().parents[1] / "config" / "config.yaml"
        config = load_config(shipped)
        assert config.symbol_codes == ["BTC", "ETH", "SOL", "DOGE"]
        assert config.storage.enabled is True


class TestConfigWithOverrides:
    """Tests for CLI override functionality."""

    def test_log_level_override(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("environment:\n  log_level: INFO")

        config = load_config_with_overrides(config_file, log_level="debug")
        assert config.environment.log_level == LogLevel.DEBUG

    def test_multiple_overrides(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        config = load_config_with_overrides(
            config_file,
            database_path=str(tmp_path / "x.db"),
            tick_interval=0.5,
        )

        assert config.storage.database_path == str(tmp_path / "x.db")
        assert config.clock.tick_interval_seconds == 0.5

    def test_invalid_tick_interval_override(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        with pytest.raises(ValueError, match="Tick interval must be positive"):
            load_config_with_overrides(config_file, tick_interval=0)


class TestConfigValidation:
    """Tests for configuration validation."""

    def test_non_positive_seed_price(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("symbols:\n  - symbol: BAD\n    name: Bad\n    price: 0")

        with pytest.raises(ValueError, match="Seed price must be positive"):
            load_config(config_file)

    def test_duplicate_symbols(self) -> None:
        with pytest.raises(ValueError, match="Duplicate symbols"):
            AppConfig.model_validate(
                {
                    "symbols": [
                        {"symbol": "btc", "name": "a", "price": 1},
                        {"symbol": "BTC", "name": "b", "price": 2},
                    ]
                }
            )

    def test_empty_symbols(self) -> None:
        with pytest.raises(ValueError, match="At least one symbol"):
            AppConfig.model_validate({"symbols": []})

    def test_invalid_rate_limit(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("rate_limit:\n  max_orders: 0")

        with pytest.raises(ValueError, match="max_orders must be at least 1"):
            load_config(config_file)

    def test_fake_breakout_reversal_must_exceed_bias(self) -> None:
        with pytest.raises(ValueError):
            AppConfig.model_validate(
                {"events": {"fake_breakout_bias": "0.01", "fake_breakout_reversal": "0.005"}}
            )

    def test_decay_out_of_range(self) -> None:
        with pytest.raises(ValueError, match="Decay must be within"):
            AppConfig.model_validate({"price_process": {"trend_decay": "1.5"}})
