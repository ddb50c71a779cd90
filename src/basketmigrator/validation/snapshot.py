"""Live storage snapshots and the expectations they are checked against."""

from typing import Optional

import structlog
from pydantic import BaseModel, Field
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from basketmigrator.basket.base import BasketEngine
from basketmigrator.errors import EngineUnavailable
from basketmigrator.models import AssetStatus, Basket, InvariantConfig, TokenState

logger = structlog.get_logger(__name__)


class StorageSnapshot(BaseModel):
    """Point-in-time copy of everything the validator reads."""

    implementation_id: str
    token: TokenState
    basket: Basket


class ExpectedAsset(BaseModel):
    asset_id: str
    decimals: int
    integrator: Optional[str] = None
    status: AssetStatus = AssetStatus.NORMAL
    ratio: Optional[int] = None
    has_tx_fee: bool = False
    vault_balance: Optional[int] = None
    max_weight: Optional[int] = None


class ExpectedStorage(BaseModel):
    """Expected values for a validation pass. None means "do not check"."""

    implementation_id: Optional[str] = None

    # Exact-match token fields
    symbol: Optional[str] = None
    name: Optional[str] = None
    decimals: Optional[int] = None
    swap_fee: Optional[int] = None
    redemption_fee: Optional[int] = None
    cache_size: Optional[int] = None
    nexus: Optional[str] = None
    forge_validator: Optional[str] = None
    max_assets: Optional[int] = None
    holder_balances: dict[str, int] = Field(default_factory=dict)

    # Exact-match basket fields
    assets: Optional[list[ExpectedAsset]] = None
    undergoing_recol: Optional[bool] = None
    failed: Optional[bool] = None
    paused: Optional[bool] = None
    config: Optional[InvariantConfig] = None

    # Tolerance fields, subject to fee and interest accrual
    total_supply: Optional[int] = None
    surplus: Optional[int] = None
    tolerance_pct: Optional[float] = None

    @classmethod
    def from_snapshot(cls, snapshot: StorageSnapshot, holders: list[str] | None = None) -> "ExpectedStorage":
        """Expect every field to stay as it is in `snapshot`."""
        token = snapshot.token
        basket = snapshot.basket
        return cls(
            implementation_id=snapshot.implementation_id,
            symbol=token.symbol,
            name=token.name,
            decimals=token.decimals,
            swap_fee=token.swap_fee,
            redemption_fee=token.redemption_fee,
            cache_size=token.cache_size,
            nexus=token.nexus,
            forge_validator=token.forge_validator,
            max_assets=token.max_assets,
            holder_balances={h: token.balances.get(h, 0) for h in holders or []},
            assets=[
                ExpectedAsset(
                    asset_id=a.asset_id,
                    decimals=a.decimals,
                    integrator=a.integrator,
                    status=a.status,
                    ratio=a.ratio,
                    has_tx_fee=a.has_tx_fee,
                    vault_balance=a.vault_balance,
                    max_weight=basket.max_weights.get(a.asset_id),
                )
                for a in basket.assets
            ],
            undergoing_recol=basket.undergoing_recol,
            failed=basket.failed,
            paused=basket.paused,
            config=basket.config,
            total_supply=token.total_supply,
            surplus=token.surplus,
        )


@retry(
    retry=retry_if_exception_type(EngineUnavailable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, max=1),
    reraise=True,
)
def capture_snapshot(basket: BasketEngine) -> StorageSnapshot:
    """Read token and basket storage from the engine.

    Transient read failures are retried; nothing here mutates state.
    """
    snapshot = StorageSnapshot(
        implementation_id=basket.implementation_id,
        token=basket.get_token_state(),
        basket=basket.get_basket(),
    )
    logger.debug(
        "snapshot.captured",
        implementation_id=snapshot.implementation_id,
        asset_count=len(snapshot.basket.assets),
        total_supply=snapshot.token.total_supply,
    )
    return snapshot
