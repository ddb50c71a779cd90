"""Shared test fixtures."""

import pytest

from basketmigrator.basket.ledger import Ledger
from basketmigrator.basket.simulated import SimulatedBasket
from basketmigrator.clock import FakeClock
from basketmigrator.config import AppConfig
from basketmigrator.migration.implementation import UpgradePayload
from basketmigrator.models import Asset, TokenState
from basketmigrator.units import simple_to_exact_amount

GOVERNOR = "governor"
EXECUTOR = "rebalancer"


@pytest.fixture
def test_config(tmp_path) -> AppConfig:
    """Provide a test configuration with safe defaults."""
    return AppConfig(
        migration={
            "upgrade_delay_seconds": 604800,
            "max_assets_after_upgrade": 10,
        },
        rebalance={
            "default_loan_pct": 100,
            "max_slippage_bps": 100,
            "executor_account": EXECUTOR,
        },
        logging={
            "level": "DEBUG",
            "app_log": str(tmp_path / "basketmigrator.log"),
            "rebalance_log": str(tmp_path / "rebalances.log"),
            "migration_log": str(tmp_path / "migrations.log"),
        },
    )


@pytest.fixture
def make_asset():
    """Build an asset with a vault balance given in whole tokens."""

    def _make(asset_id: str, decimals: int = 18, balance: float = 0, **kwargs) -> Asset:
        return Asset(
            asset_id=asset_id,
            symbol=asset_id,
            decimals=decimals,
            integrator="vault",
            vault_balance=simple_to_exact_amount(balance, decimals),
            **kwargs,
        )

    return _make


@pytest.fixture
def ledger() -> Ledger:
    return Ledger()


@pytest.fixture
def token() -> TokenState:
    return TokenState(
        symbol="mUSD",
        name="mStable USD",
        total_supply=100 * 10**18,
        balances={"saver": 90 * 10**18, EXECUTOR: 10 * 10**18},
        swap_fee=6 * 10**14,
        redemption_fee=3 * 10**14,
        nexus="nexus",
    )


@pytest.fixture
def basket(ledger, token, make_asset) -> SimulatedBasket:
    """Four assets holding 25 tokens each; B and D use 6 decimals."""
    assets = [
        make_asset("A", 18, 25),
        make_asset("B", 6, 25),
        make_asset("C", 18, 25),
        make_asset("D", 6, 25),
    ]
    return SimulatedBasket.create(ledger, token, assets, admin=GOVERNOR)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(start=1_615_000_000)


@pytest.fixture
def upgrade_payload(test_config) -> bytes:
    return UpgradePayload(
        forge_validator="forge-validator-v3",
        config=test_config.invariant.to_invariant_config(),
        max_assets=10,
    ).encode()
