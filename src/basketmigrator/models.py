"""Domain models for basket rebalancing and implementation migration."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from basketmigrator.units import BPS, FULL_SCALE, apply_ratio, ratio_for


class AssetStatus(str, Enum):
    NORMAL = "Normal"
    BROKEN_BELOW_PEG = "BrokenBelowPeg"
    BROKEN_ABOVE_PEG = "BrokenAbovePeg"
    BLACKLISTED = "Blacklisted"
    LIQUIDATING = "Liquidating"
    FAILED = "Failed"


ISOLATED_STATUSES = frozenset(
    {AssetStatus.BROKEN_BELOW_PEG, AssetStatus.BROKEN_ABOVE_PEG, AssetStatus.LIQUIDATING}
)


class Asset(BaseModel):
    """A collateral asset (bAsset) held by the basket."""

    asset_id: str
    symbol: str
    decimals: int = Field(ge=0, le=18)
    integrator: str
    vault_balance: int = Field(default=0, ge=0)
    status: AssetStatus = AssetStatus.NORMAL
    ratio: int = 0
    has_tx_fee: bool = False

    @model_validator(mode="after")
    def fix_ratio(self):
        # Ratio is derived once from decimals when the asset is created
        if self.ratio == 0:
            self.ratio = ratio_for(self.decimals)
        return self

    @property
    def scaled_balance(self) -> int:
        """Vault balance in common (18 decimal) precision."""
        return apply_ratio(self.vault_balance, self.ratio)


class AssetState(BaseModel):
    """Read-only view returned by BasketEngine.get_asset_state."""

    asset_id: str
    balance: int
    decimals: int
    status: AssetStatus


class WeightLimits(BaseModel):
    """Min/max basket weight where 1e18 = 100%."""

    min: int = Field(ge=0, le=FULL_SCALE)
    max: int = Field(ge=0, le=FULL_SCALE)

    @field_validator("max")
    @classmethod
    def max_gte_min(cls, v, info):
        if "min" in info.data and v < info.data["min"]:
            raise ValueError("max weight must be >= min weight")
        return v


class InvariantConfig(BaseModel):
    a: int = Field(gt=0)
    limits: WeightLimits


class Basket(BaseModel):
    """Ordered set of unique assets plus basket-wide flags."""

    assets: list[Asset] = Field(default_factory=list)
    max_weights: dict[str, int] = Field(default_factory=dict)
    config: Optional[InvariantConfig] = None
    undergoing_recol: bool = False
    failed: bool = False
    paused: bool = False

    @field_validator("assets")
    @classmethod
    def unique_assets(cls, v):
        ids = [a.asset_id for a in v]
        if len(ids) != len(set(ids)):
            raise ValueError("basket assets must be unique")
        return v

    def index_of(self, asset_id: str) -> int:
        for i, asset in enumerate(self.assets):
            if asset.asset_id == asset_id:
                return i
        raise KeyError(f"Asset '{asset_id}' not in basket: {self.asset_ids}")

    def get(self, asset_id: str) -> Asset:
        return self.assets[self.index_of(asset_id)]

    @property
    def asset_ids(self) -> list[str]:
        return [a.asset_id for a in self.assets]

    @property
    def scaled_total(self) -> int:
        return sum(a.scaled_balance for a in self.assets)


class TokenState(BaseModel):
    """Storage of the stable-value token backed by the basket."""

    symbol: str
    name: str
    decimals: int = 18
    total_supply: int = 0
    balances: dict[str, int] = Field(default_factory=dict)
    swap_fee: int = Field(ge=0, le=FULL_SCALE)
    redemption_fee: int = Field(ge=0, le=FULL_SCALE)
    cache_size: int = 0
    surplus: int = 0
    nexus: str
    forge_validator: Optional[str] = None
    max_assets: int = 10


class MigrationRequest(BaseModel):
    """A proposed implementation upgrade awaiting its timelock."""

    proxy_id: str
    implementation_id: str
    payload: bytes
    proposed_at: int
    delay: int = Field(ge=0)
    executed: bool = False
    executed_at: Optional[int] = None

    @property
    def executable_at(self) -> int:
        return self.proposed_at + self.delay


class WeightTargets(BaseModel):
    """Equal-weight target and the signed distance of every asset from it."""

    target: int
    balances: list[int]
    diffs: list[int]

    @property
    def total(self) -> int:
        return sum(self.balances)


class SwapPlan(BaseModel):
    """A bounded swap between two basket assets.

    `amount` is in common precision; `native_amount` is what is submitted.
    """

    input_asset: str
    output_asset: str
    diff_in: int
    diff_out: int
    amount: int = Field(ge=0)
    native_amount: int = Field(ge=0)

    @property
    def is_noop(self) -> bool:
        return self.amount == 0


class FlashLoanPlan(BaseModel):
    loan_asset: str
    loan_amount: int = Field(ge=0)
    destinations: list[str] = Field(min_length=2, max_length=2)
    splits_bps: list[int] = Field(min_length=2, max_length=2)
    split_amounts: list[int] = Field(min_length=2, max_length=2)
    lender_fee: int = 0
    expected_shortfall: int = 0

    @field_validator("splits_bps")
    @classmethod
    def splits_sum_to_bps(cls, v):
        if sum(v) != BPS or any(b < 0 for b in v):
            raise ValueError(f"splits must be non-negative and sum to {BPS}, got {v}")
        return v


class SwapLeg(BaseModel):
    """Result of one swap inside a rebalance."""

    venue: str
    asset_in: str
    asset_out: str
    amount_in: int
    amount_out: int


class RebalanceResult(BaseModel):
    """Outcome of a flash-loan rebalance, for operator review."""

    loan_asset: str
    loan_amount: int
    lender_fee: int
    amounts_swapped: list[int]
    basket_swaps: list[SwapLeg]
    venue_swaps: list[SwapLeg]
    recovered: int
    shortfall: int
    balances_before: dict[str, int]
    balances_after: dict[str, int]
    scaled_total_before: int
    scaled_total_after: int


class DirectSwapResult(BaseModel):
    plan: SwapPlan
    amount_out: int = 0
    executed: bool = False


class MigrationPhase(str, Enum):
    DEPLOYED = "Deployed"
    PROPOSAL_PENDING = "ProposalPending"
    ACCEPTED = "Accepted"
    IN_RECOL = "InRecol"
    UNPAUSED = "Unpaused"
    ISOLATION_CLEARED = "IsolationCleared"
    ACTIVE = "Active"


class FieldCheck(BaseModel):
    field: str
    expected: Any = None
    actual: Any = None
    ok: bool
    tolerance_pct: Optional[float] = None


class ValidationReport(BaseModel):
    checks: list[FieldCheck] = Field(default_factory=list)

    @property
    def failures(self) -> list[FieldCheck]:
        return [c for c in self.checks if not c.ok]

    @property
    def ok(self) -> bool:
        return not self.failures


class MigrationResult(BaseModel):
    """Outcome of one migration state machine transition."""

    transition: str
    phase_before: MigrationPhase
    phase_after: MigrationPhase
    implementation_id: Optional[str] = None
    timestamp: int
    undergoing_recol: bool
    paused: bool
    validation: Optional[ValidationReport] = None


class BasketStorage(BaseModel):
    """Full storage behind the token proxy, as seen by an implementation."""

    token: TokenState
    basket: Basket
    implementation_id: str
    initialized: list[str] = Field(default_factory=list)
