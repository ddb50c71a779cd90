"""Configuration loading and validation using Pydantic."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from basketmigrator.models import InvariantConfig, WeightLimits
from basketmigrator.units import percent_to_full_scale

ONE_DAY = 24 * 60 * 60
ONE_WEEK = 7 * ONE_DAY


class BasketConfig(BaseModel):
    common_decimals: int = Field(default=18, ge=0, le=18)
    max_assets: int = Field(default=10, ge=1, le=50)


class InvariantSettings(BaseModel):
    """Invariant parameters written by the upgrade initializer.

    Limits are percentages (5.0 = 5%) and converted to 1e18 units.
    """

    a: int = Field(default=135, gt=0)
    min_weight_pct: float = Field(default=5.0, ge=0, le=100)
    max_weight_pct: float = Field(default=65.0, ge=0, le=100)

    @field_validator("max_weight_pct")
    @classmethod
    def max_gte_min(cls, v, info):
        if "min_weight_pct" in info.data and v < info.data["min_weight_pct"]:
            raise ValueError("max_weight_pct must be >= min_weight_pct")
        return v

    def to_invariant_config(self) -> InvariantConfig:
        # The on-chain amplification coefficient carries a precision of 100
        return InvariantConfig(
            a=self.a * 100,
            limits=WeightLimits(
                min=percent_to_full_scale(self.min_weight_pct),
                max=percent_to_full_scale(self.max_weight_pct),
            ),
        )


class FeeConfig(BaseModel):
    """Fees as fractions of 1e18 (6e14 = 0.06%)."""

    swap_fee: int = Field(default=6 * 10**14, ge=0, le=10**17)
    redemption_fee: int = Field(default=3 * 10**14, ge=0, le=10**17)


class MigrationConfig(BaseModel):
    upgrade_delay_seconds: int = Field(default=ONE_WEEK, ge=0)
    max_assets_after_upgrade: int = Field(default=10, ge=1)


class RebalanceConfig(BaseModel):
    default_loan_pct: int = Field(default=100, ge=1, le=100)
    max_slippage_bps: int = Field(default=100, ge=0, le=10_000)
    executor_account: str = "rebalancer"


class ValidationConfig(BaseModel):
    tolerance_pct: float = Field(default=0.1, ge=0, le=100)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    app_log: str = "logs/basketmigrator.log"
    rebalance_log: str = "logs/rebalances.log"
    migration_log: str = "logs/migrations.log"
    max_bytes: int = 10485760
    backup_count: int = 5


class AppConfig(BaseModel):
    basket: BasketConfig = Field(default_factory=BasketConfig)
    invariant: InvariantSettings = Field(default_factory=InvariantSettings)
    fees: FeeConfig = Field(default_factory=FeeConfig)
    migration: MigrationConfig = Field(default_factory=MigrationConfig)
    rebalance: RebalanceConfig = Field(default_factory=RebalanceConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class EnvSettings(BaseSettings):
    """Loaded from the environment or a .env file automatically."""

    config_path: Path = Path("config/settings.yaml")
    scenario_path: Path = Path("config/scenario.yaml")
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_namespace: str = "basketmigrator"
    persist: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "BASKETMIGRATOR_",
    }


def load_config(config_path: Path = Path("config/settings.yaml")) -> AppConfig:
    """Load and validate application configuration from YAML."""
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return AppConfig(**raw)
