"""Rehearsal scenarios - a YAML description of a basket and its counterparties.

Amounts in a scenario file are simple units (1.5 = one and a half tokens)
and are converted to native integers using each asset's decimals.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from basketmigrator.basket.ledger import Ledger
from basketmigrator.basket.simulated import SimulatedBasket
from basketmigrator.clock import FakeClock
from basketmigrator.config import AppConfig
from basketmigrator.liquidity import AllowanceFundingSource, FixedRateVenue, SimulatedLender
from basketmigrator.models import Asset, TokenState
from basketmigrator.rebalancing.flash_loan import FlashLoanRebalancer, RebalanceRoute
from basketmigrator.units import percent_to_full_scale, simple_to_exact_amount


class ScenarioAsset(BaseModel):
    asset_id: str
    symbol: str
    decimals: int = Field(ge=0, le=18)
    integrator: str = "vault"
    vault_balance: float = 0
    max_weight_pct: Optional[float] = None


class ScenarioToken(BaseModel):
    symbol: str = "mUSD"
    name: str = "mStable USD"
    nexus: str = "nexus"
    holders: dict[str, float] = Field(default_factory=dict)


class ScenarioVenue(BaseModel):
    name: str
    fee_bps: int = Field(default=4, ge=0, le=10_000)
    reserves: dict[str, float] = Field(default_factory=dict)


class ScenarioRebalance(BaseModel):
    loan_asset: str
    destinations: list[str] = Field(min_length=2, max_length=2)
    venues: list[str] = Field(min_length=2, max_length=2)


class Scenario(BaseModel):
    governor: str = "governor"
    forge_validator: str = "forge-validator-v3"
    token: ScenarioToken = Field(default_factory=ScenarioToken)
    assets: list[ScenarioAsset]
    new_asset: Optional[ScenarioAsset] = None
    phase_out: Optional[str] = None
    executor_holdings: dict[str, float] = Field(default_factory=dict)
    lender_reserves: dict[str, float] = Field(default_factory=dict)
    lender_fee: float = 0
    venues: list[ScenarioVenue] = Field(default_factory=list)
    funder: str = "treasury"
    funder_holdings: dict[str, float] = Field(default_factory=dict)
    funder_allowance: dict[str, float] = Field(default_factory=dict)
    rebalance: Optional[ScenarioRebalance] = None

    @field_validator("assets")
    @classmethod
    def at_least_two_assets(cls, v):
        if len(v) < 2:
            raise ValueError("scenario needs at least two basket assets")
        return v

    def decimals(self) -> dict[str, int]:
        assets = list(self.assets) + ([self.new_asset] if self.new_asset else [])
        return {a.asset_id: a.decimals for a in assets}


def load_scenario(path: Path = Path("config/scenario.yaml")) -> Scenario:
    """Load and validate a rehearsal scenario from YAML."""
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    return Scenario(**raw)


def to_asset(entry: ScenarioAsset) -> Asset:
    return Asset(
        asset_id=entry.asset_id,
        symbol=entry.symbol,
        decimals=entry.decimals,
        integrator=entry.integrator,
        vault_balance=simple_to_exact_amount(entry.vault_balance, entry.decimals),
    )


@dataclass
class Simulation:
    """Everything a rehearsal needs, wired against one ledger."""

    scenario: Scenario
    config: AppConfig
    ledger: Ledger
    clock: FakeClock
    basket: SimulatedBasket
    lender: SimulatedLender
    venues: dict[str, FixedRateVenue] = field(default_factory=dict)
    funding: Optional[AllowanceFundingSource] = None

    def native(self, asset_id: str, amount: float) -> int:
        return simple_to_exact_amount(amount, self.scenario.decimals()[asset_id])

    def rebalancer(self) -> FlashLoanRebalancer:
        entry = self.scenario.rebalance
        if entry is None or self.funding is None:
            raise ValueError("scenario has no flash-loan rebalance configured")
        routes = [
            RebalanceRoute(asset_id=asset_id, venue=self.venues[venue])
            for asset_id, venue in zip(entry.destinations, entry.venues)
        ]
        return FlashLoanRebalancer(
            self.basket,
            self.lender,
            self.funding,
            routes,
            account=self.config.rebalance.executor_account,
            max_slippage_bps=self.config.rebalance.max_slippage_bps,
        )


def build_simulation(scenario: Scenario, config: AppConfig, clock: Optional[FakeClock] = None) -> Simulation:
    """Seed a ledger and construct the basket, lender, venues and funding source."""
    ledger = Ledger()
    decimals = scenario.decimals()
    executor = config.rebalance.executor_account

    holders = {
        account: simple_to_exact_amount(amount)
        for account, amount in scenario.token.holders.items()
    }
    token = TokenState(
        symbol=scenario.token.symbol,
        name=scenario.token.name,
        total_supply=sum(holders.values()),
        balances=holders,
        swap_fee=config.fees.swap_fee,
        redemption_fee=config.fees.redemption_fee,
        nexus=scenario.token.nexus,
        max_assets=config.basket.max_assets,
    )
    max_weights = {
        a.asset_id: percent_to_full_scale(a.max_weight_pct)
        for a in scenario.assets
        if a.max_weight_pct is not None
    }
    basket = SimulatedBasket.create(
        ledger,
        token,
        [to_asset(a) for a in scenario.assets],
        max_weights=max_weights,
        admin=scenario.governor,
    )

    for asset_id, amount in scenario.executor_holdings.items():
        ledger.credit(executor, asset_id, simple_to_exact_amount(amount, decimals[asset_id]))

    lender = SimulatedLender(ledger, flat_fee=simple_to_exact_amount(scenario.lender_fee, 0))
    for asset_id, amount in scenario.lender_reserves.items():
        ledger.credit(lender.name, asset_id, simple_to_exact_amount(amount, decimals[asset_id]))

    venues = {}
    for entry in scenario.venues:
        venue = FixedRateVenue(ledger, entry.name, decimals, fee_bps=entry.fee_bps)
        for asset_id, amount in entry.reserves.items():
            ledger.credit(entry.name, asset_id, simple_to_exact_amount(amount, decimals[asset_id]))
        venues[entry.name] = venue

    funding = None
    if scenario.funder_allowance:
        for asset_id, amount in scenario.funder_holdings.items():
            ledger.credit(scenario.funder, asset_id, simple_to_exact_amount(amount, decimals[asset_id]))
        for asset_id, amount in scenario.funder_allowance.items():
            ledger.approve(
                scenario.funder, executor, asset_id, simple_to_exact_amount(amount, decimals[asset_id])
            )
        funding = AllowanceFundingSource(ledger, scenario.funder, executor)

    return Simulation(
        scenario=scenario,
        config=config,
        ledger=ledger,
        clock=clock or FakeClock(),
        basket=basket,
        lender=lender,
        venues=venues,
        funding=funding,
    )
