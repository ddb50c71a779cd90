"""In-memory basket engine backed by the simulation ledger."""

from contextlib import AbstractContextManager

import structlog

from basketmigrator.basket.base import BasketEngine
from basketmigrator.basket.ledger import Ledger
from basketmigrator.errors import (
    BasketPaused,
    InRecol,
    InsufficientLiquidity,
    PreconditionViolation,
    SlippageExceeded,
    Unauthorized,
    Unhealthy,
    WeightLimitExceeded,
)
from basketmigrator.migration.implementation import get_implementation
from basketmigrator.models import (
    ISOLATED_STATUSES,
    Asset,
    AssetState,
    AssetStatus,
    Basket,
    BasketStorage,
    TokenState,
)
from basketmigrator.units import FULL_SCALE, apply_ratio, apply_ratio_to_native

logger = structlog.get_logger(__name__)


class SimulatedBasket(BasketEngine):
    """Basket engine that keeps its storage in memory.

    Custody of every asset is the ledger account `address`; vault balances
    are kept in step with it. All mutating calls run inside `ledger.atomic()`
    so a failed check never leaves a partial change behind.
    """

    def __init__(
        self,
        ledger: Ledger,
        storage: BasketStorage,
        *,
        address: str = "basket",
        admin: str = "governor",
    ):
        self._ledger = ledger
        self._storage = storage
        self.address = address
        self.admin = admin
        ledger.register(self)

    @classmethod
    def create(
        cls,
        ledger: Ledger,
        token: TokenState,
        assets: list[Asset],
        *,
        implementation_id: str = "basket-v2",
        max_weights: dict[str, int] | None = None,
        address: str = "basket",
        admin: str = "governor",
    ) -> "SimulatedBasket":
        """Build a basket and seed the ledger with its vault holdings."""
        storage = BasketStorage(
            token=token,
            basket=Basket(assets=assets, max_weights=dict(max_weights or {})),
            implementation_id=implementation_id,
        )
        for asset in assets:
            ledger.credit(address, asset.asset_id, asset.vault_balance)
        return cls(ledger, storage, address=address, admin=admin)

    # ------------------------------------------------------------------
    # Journaling
    # ------------------------------------------------------------------

    def snapshot(self) -> BasketStorage:
        return self._storage.model_copy(deep=True)

    def restore(self, state: BasketStorage) -> None:
        self._storage = state

    def atomic(self) -> AbstractContextManager:
        return self._ledger.atomic()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def _basket(self) -> Basket:
        return self._storage.basket

    @property
    def _token(self) -> TokenState:
        return self._storage.token

    def get_asset_state(self, asset_id: str) -> AssetState:
        asset = self._asset(asset_id)
        return AssetState(
            asset_id=asset.asset_id,
            balance=asset.vault_balance,
            decimals=asset.decimals,
            status=asset.status,
        )

    def get_basket(self) -> Basket:
        return self._basket.model_copy(deep=True)

    def get_token_state(self) -> TokenState:
        return self._token.model_copy(deep=True)

    @property
    def implementation_id(self) -> str:
        return self._storage.implementation_id

    @property
    def paused(self) -> bool:
        return self._basket.paused

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _require_admin(self, actor: str) -> None:
        if actor != self.admin:
            raise Unauthorized(f"{actor} is not the basket admin")

    def _require_not_paused(self) -> None:
        if self._basket.paused:
            raise BasketPaused("Pausable: paused")

    def _require_healthy(self) -> None:
        if self._basket.undergoing_recol or self._basket.failed:
            raise Unhealthy("Unhealthy")
        self._require_not_paused()

    def _require_not_in_recol(self) -> None:
        if self._basket.undergoing_recol:
            raise InRecol("In recol")
        self._require_not_paused()

    def _require_no_structural_lock(self) -> None:
        if self._basket.undergoing_recol:
            raise InRecol("Structural changes are locked during recol")

    def _index_of(self, asset_id: str) -> int:
        try:
            return self._basket.index_of(asset_id)
        except KeyError as e:
            raise PreconditionViolation(e.args[0]) from e

    def _asset(self, asset_id: str) -> Asset:
        return self._basket.assets[self._index_of(asset_id)]

    def _active_asset(self, asset_id: str) -> Asset:
        asset = self._asset(asset_id)
        if asset.status != AssetStatus.NORMAL:
            raise PreconditionViolation(f"{asset_id} is not usable (status {asset.status.value})")
        return asset

    def _check_max_weight(self, asset: Asset) -> None:
        total = self._basket.scaled_total
        if total == 0:
            return
        weight = asset.scaled_balance * FULL_SCALE // total
        max_weight = self._basket.max_weights.get(asset.asset_id, FULL_SCALE)
        if weight > max_weight:
            raise WeightLimitExceeded(asset.asset_id, weight, max_weight)

    def _mint_token(self, recipient: str, quantity: int) -> None:
        balances = self._token.balances
        balances[recipient] = balances.get(recipient, 0) + quantity
        self._token.total_supply += quantity

    def _burn_token(self, account: str, quantity: int) -> None:
        available = self._token.balances.get(account, 0)
        if quantity > available:
            raise PreconditionViolation(
                f"{account} holds {available} {self._token.symbol}, needs {quantity}"
            )
        self._token.balances[account] = available - quantity
        self._token.total_supply -= quantity

    def _withdraw(self, asset: Asset, recipient: str, amount: int) -> None:
        if amount > asset.vault_balance:
            raise InsufficientLiquidity(
                f"Vault holds {asset.vault_balance} {asset.asset_id}, {amount} requested"
            )
        asset.vault_balance -= amount
        self._ledger.transfer(asset.asset_id, self.address, recipient, amount)

    def _deposit(self, asset: Asset, account: str, amount: int) -> None:
        self._ledger.transfer(asset.asset_id, account, self.address, amount)
        asset.vault_balance += amount

    # ------------------------------------------------------------------
    # Mint / swap / redeem
    # ------------------------------------------------------------------

    def swap(
        self,
        input_asset: str,
        output_asset: str,
        amount: int,
        min_out: int,
        recipient: str,
        *,
        account: str,
    ) -> int:
        with self._ledger.atomic():
            self._require_healthy()
            if input_asset == output_asset:
                raise PreconditionViolation("Invalid pair")
            if amount <= 0:
                raise PreconditionViolation("Invalid swap quantity")
            asset_in = self._active_asset(input_asset)
            asset_out = self._active_asset(output_asset)

            scaled_in = apply_ratio(amount, asset_in.ratio)
            fee = scaled_in * self._token.swap_fee // FULL_SCALE
            amount_out = apply_ratio_to_native(scaled_in - fee, asset_out.ratio)
            if amount_out < min_out:
                raise SlippageExceeded("Output qty < minimum qty", amount_out, min_out)

            self._deposit(asset_in, account, amount)
            self._withdraw(asset_out, recipient, amount_out)
            self._token.surplus += fee
            self._check_max_weight(asset_in)

        logger.debug(
            "basket.swapped",
            input=input_asset,
            output=output_asset,
            amount_in=amount,
            amount_out=amount_out,
            fee=fee,
        )
        return amount_out

    def mint(self, asset_id: str, amount: int, min_out: int, recipient: str, *, account: str) -> int:
        return self.mint_multi([asset_id], [amount], min_out, recipient, account=account)

    def mint_multi(
        self, asset_ids: list[str], amounts: list[int], min_out: int, recipient: str, *, account: str
    ) -> int:
        if len(asset_ids) != len(amounts):
            raise PreconditionViolation("Input array mismatch")
        with self._ledger.atomic():
            self._require_healthy()
            quantity = 0
            deposited = []
            for asset_id, amount in zip(asset_ids, amounts):
                if amount <= 0:
                    raise PreconditionViolation("Qty must be > 0")
                asset = self._active_asset(asset_id)
                self._deposit(asset, account, amount)
                quantity += apply_ratio(amount, asset.ratio)
                deposited.append(asset)
            if quantity < min_out:
                raise SlippageExceeded("Mint quantity < min qty", quantity, min_out)
            for asset in deposited:
                self._check_max_weight(asset)
            self._mint_token(recipient, quantity)
        return quantity

    def redeem(self, asset_id: str, quantity: int, min_out: int, recipient: str, *, account: str) -> int:
        with self._ledger.atomic():
            self._require_not_in_recol()
            if quantity <= 0:
                raise PreconditionViolation("Qty must be > 0")
            asset = self._active_asset(asset_id)
            fee = quantity * self._token.redemption_fee // FULL_SCALE
            amount_out = apply_ratio_to_native(quantity - fee, asset.ratio)
            if amount_out < min_out:
                raise SlippageExceeded("bAsset qty < min qty", amount_out, min_out)
            self._burn_token(account, quantity)
            self._withdraw(asset, recipient, amount_out)
            self._token.surplus += fee
        return amount_out

    def redeem_exact(
        self, asset_ids: list[str], amounts: list[int], max_quantity: int, recipient: str, *, account: str
    ) -> int:
        if len(asset_ids) != len(amounts):
            raise PreconditionViolation("Input array mismatch")
        # Exact redemptions stay open during recol
        with self._ledger.atomic():
            self._require_not_paused()
            scaled = 0
            for asset_id, amount in zip(asset_ids, amounts):
                asset = self._active_asset(asset_id)
                scaled += apply_ratio(amount, asset.ratio)
                self._withdraw(asset, recipient, amount)
            fee = scaled * self._token.redemption_fee // FULL_SCALE
            quantity = scaled + fee
            if quantity > max_quantity:
                raise SlippageExceeded("Redeem mAsset qty > max quantity", quantity, max_quantity)
            self._burn_token(account, quantity)
            self._token.surplus += fee
        return quantity

    def redeem_proportional(
        self, quantity: int, min_outs: list[int], recipient: str, *, account: str
    ) -> list[int]:
        with self._ledger.atomic():
            self._require_not_in_recol()
            assets = self._basket.assets
            if len(min_outs) != len(assets):
                raise PreconditionViolation("Invalid array input")
            total = self._basket.scaled_total
            if quantity <= 0 or total == 0:
                raise PreconditionViolation("Qty must be > 0")
            fee = quantity * self._token.redemption_fee // FULL_SCALE
            net = quantity - fee
            outputs = []
            for asset, min_out in zip(assets, min_outs):
                share = net * asset.scaled_balance // total
                amount_out = apply_ratio_to_native(share, asset.ratio)
                if amount_out < min_out:
                    raise SlippageExceeded("bAsset qty < min qty", amount_out, min_out)
                outputs.append(amount_out)
            self._burn_token(account, quantity)
            for asset, amount_out in zip(assets, outputs):
                self._withdraw(asset, recipient, amount_out)
            self._token.surplus += fee
        return outputs

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    def pause(self, actor: str) -> None:
        self._require_admin(actor)
        self._basket.paused = True
        logger.info("basket.paused", actor=actor)

    def unpause(self, actor: str) -> None:
        self._require_admin(actor)
        self._basket.paused = False
        logger.info("basket.unpaused", actor=actor)

    def add_asset(self, actor: str, asset: Asset, max_weight: int | None = None) -> int:
        self._require_admin(actor)
        self._require_no_structural_lock()
        if asset.asset_id in self._basket.asset_ids:
            raise PreconditionViolation(f"{asset.asset_id} already exists in basket")
        if len(self._basket.assets) >= self._token.max_assets:
            raise PreconditionViolation(f"Max assets reached ({self._token.max_assets})")
        if asset.vault_balance != 0:
            raise PreconditionViolation("New asset must start with an empty vault")
        if max_weight is not None and not 0 <= max_weight <= FULL_SCALE:
            raise PreconditionViolation(f"Max weight out of range: {max_weight}")

        with self._ledger.atomic():
            self._basket.assets.append(asset.model_copy(deep=True))
            if max_weight is not None:
                self._basket.max_weights[asset.asset_id] = max_weight
        index = len(self._basket.assets) - 1
        logger.info(
            "basket.asset_added",
            asset_id=asset.asset_id,
            decimals=asset.decimals,
            ratio=asset.ratio,
            index=index,
        )
        return index

    def remove_asset(self, actor: str, asset_id: str) -> None:
        self._require_admin(actor)
        self._require_no_structural_lock()
        index = self._index_of(asset_id)
        asset = self._basket.assets[index]
        if asset.vault_balance != 0:
            raise PreconditionViolation(
                f"{asset_id} vault must be empty before removal, holds {asset.vault_balance}"
            )
        with self._ledger.atomic():
            del self._basket.assets[index]
            self._basket.max_weights.pop(asset_id, None)
        logger.info("basket.asset_removed", asset_id=asset_id)

    def set_weight_limits(self, actor: str, asset_ids: list[str], max_weights: list[int]) -> None:
        self._require_admin(actor)
        if len(asset_ids) != len(max_weights):
            raise PreconditionViolation("Input array mismatch")
        # All entries are checked before any is written
        for asset_id, max_weight in zip(asset_ids, max_weights):
            self._index_of(asset_id)
            if not 0 <= max_weight <= FULL_SCALE:
                raise PreconditionViolation(f"Max weight out of range: {max_weight}")
        with self._ledger.atomic():
            for asset_id, max_weight in zip(asset_ids, max_weights):
                self._basket.max_weights[asset_id] = max_weight
        logger.info("basket.weight_limits_set", asset_ids=asset_ids, max_weights=max_weights)

    def negate_isolation(self, actor: str, asset_id: str) -> None:
        self._require_admin(actor)
        asset = self._asset(asset_id)
        with self._ledger.atomic():
            if asset.status in ISOLATED_STATUSES:
                asset.status = AssetStatus.NORMAL
            self._basket.undergoing_recol = any(
                a.status in ISOLATED_STATUSES for a in self._basket.assets
            )
        logger.info(
            "basket.isolation_negated",
            asset_id=asset_id,
            undergoing_recol=self._basket.undergoing_recol,
        )

    def set_asset_status(self, actor: str, asset_id: str, status: AssetStatus) -> None:
        self._require_admin(actor)
        asset = self._asset(asset_id)
        with self._ledger.atomic():
            asset.status = status
            if status in ISOLATED_STATUSES:
                self._basket.undergoing_recol = True

    def accrue_interest(self, asset_id: str, amount: int) -> None:
        """Simulate lending yield arriving at the custody account."""
        self._ledger.credit(self.address, asset_id, amount)

    def collect_interest(self, actor: str) -> int:
        """Sweep custody balances above the vault into the vault and mint to `actor`."""
        with self._ledger.atomic():
            self._require_not_paused()
            interest = 0
            for asset in self._basket.assets:
                held = self._ledger.balance_of(self.address, asset.asset_id)
                gained = held - asset.vault_balance
                if gained > 0:
                    asset.vault_balance = held
                    interest += apply_ratio(gained, asset.ratio)
            if interest:
                self._mint_token(actor, interest)
        logger.info("basket.interest_collected", actor=actor, interest=interest)
        return interest

    # ------------------------------------------------------------------
    # Proxy
    # ------------------------------------------------------------------

    def upgrade_to_and_call(self, implementation_id: str, payload: bytes) -> None:
        implementation = get_implementation(implementation_id)
        with self._ledger.atomic():
            previous = self._storage.implementation_id
            self._storage.implementation_id = implementation_id
            implementation.initialize(self._storage, payload)
        logger.info(
            "basket.upgraded",
            previous=previous,
            implementation_id=implementation_id,
        )
