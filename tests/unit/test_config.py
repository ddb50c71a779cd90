"""Tests for configuration loading and validation."""

from pathlib import Path

import pytest
import yaml

from basketmigrator.config import AppConfig, EnvSettings, InvariantSettings, load_config

REPO_ROOT = Path(__file__).resolve().parents[2]


class TestAppConfig:
    def test_valid_config(self, test_config):
        """A valid config should load without errors."""
        assert test_config.migration.upgrade_delay_seconds == 604800
        assert test_config.rebalance.executor_account == "rebalancer"
        assert test_config.validation.tolerance_pct == 0.1

    def test_defaults(self):
        config = AppConfig()
        assert config.fees.swap_fee == 6 * 10**14
        assert config.fees.redemption_fee == 3 * 10**14
        assert config.rebalance.max_slippage_bps == 100

    def test_max_weight_must_be_gte_min(self):
        with pytest.raises(ValueError, match="max_weight_pct must be >= min_weight_pct"):
            InvariantSettings(min_weight_pct=40, max_weight_pct=30)

    def test_loan_pct_range(self):
        with pytest.raises(ValueError):
            AppConfig(rebalance={"default_loan_pct": 0})

    def test_invariant_config_units(self):
        config = InvariantSettings(a=135, min_weight_pct=5, max_weight_pct=65).to_invariant_config()
        assert config.a == 13500
        assert config.limits.min == 5 * 10**16
        assert config.limits.max == 65 * 10**16


class TestLoadConfig:
    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(yaml.safe_dump({"migration": {"upgrade_delay_seconds": 60}}))

        config = load_config(path)

        assert config.migration.upgrade_delay_seconds == 60
        assert config.fees.swap_fee == 6 * 10**14

    def test_empty_file_uses_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert load_config(path) == AppConfig()

    def test_repository_settings_load(self):
        config = load_config(REPO_ROOT / "config" / "settings.yaml")
        assert config.invariant.a == 135
        assert config.migration.upgrade_delay_seconds == 7 * 24 * 60 * 60


class TestEnvSettings:
    def test_env_prefix(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BASKETMIGRATOR_REDIS_HOST", "redis.internal")
        monkeypatch.setenv("BASKETMIGRATOR_PERSIST", "true")

        settings = EnvSettings()

        assert settings.redis_host == "redis.internal"
        assert settings.persist is True
        assert settings.redis_port == 6379
