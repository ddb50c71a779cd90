"""Abstract base class for basket engines."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager

from basketmigrator.models import Asset, AssetState, Basket, TokenState


class BasketEngine(ABC):
    """Interface to the engine that owns basket balances and flags.

    Only the engine mutates vault balances. Every mutating entrypoint takes
    the calling account as `account`.
    """

    @abstractmethod
    def get_asset_state(self, asset_id: str) -> AssetState:
        """Balance (native units), decimals and status of one asset."""
        ...

    @abstractmethod
    def get_basket(self) -> Basket:
        """Detached copy of the full basket."""
        ...

    @abstractmethod
    def get_token_state(self) -> TokenState:
        """Detached copy of the stable-value token storage."""
        ...

    @abstractmethod
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
        """Swap `amount` of input for output. Returns the output amount."""
        ...

    @abstractmethod
    def mint(self, asset_id: str, amount: int, min_out: int, recipient: str, *, account: str) -> int:
        ...

    @abstractmethod
    def mint_multi(
        self, asset_ids: list[str], amounts: list[int], min_out: int, recipient: str, *, account: str
    ) -> int:
        ...

    @abstractmethod
    def redeem(self, asset_id: str, quantity: int, min_out: int, recipient: str, *, account: str) -> int:
        """Burn `quantity` of the token for a single asset."""
        ...

    @abstractmethod
    def redeem_exact(
        self, asset_ids: list[str], amounts: list[int], max_quantity: int, recipient: str, *, account: str
    ) -> int:
        """Redeem exact asset amounts. Returns the token quantity burned."""
        ...

    @abstractmethod
    def redeem_proportional(
        self, quantity: int, min_outs: list[int], recipient: str, *, account: str
    ) -> list[int]:
        """Redeem `quantity` of the token across all assets by basket ratio."""
        ...

    @abstractmethod
    def pause(self, actor: str) -> None:
        ...

    @abstractmethod
    def unpause(self, actor: str) -> None:
        ...

    @abstractmethod
    def add_asset(self, actor: str, asset: Asset, max_weight: int | None = None) -> int:
        """Add an asset to the basket. Returns its index."""
        ...

    @abstractmethod
    def remove_asset(self, actor: str, asset_id: str) -> None:
        ...

    @abstractmethod
    def set_weight_limits(self, actor: str, asset_ids: list[str], max_weights: list[int]) -> None:
        ...

    @abstractmethod
    def negate_isolation(self, actor: str, asset_id: str) -> None:
        """Return an isolated asset to normal status."""
        ...

    @abstractmethod
    def collect_interest(self, actor: str) -> int:
        ...

    @property
    @abstractmethod
    def implementation_id(self) -> str:
        ...

    @abstractmethod
    def upgrade_to_and_call(self, implementation_id: str, payload: bytes) -> None:
        """Swap the implementation pointer and run its initializer."""
        ...

    @abstractmethod
    def atomic(self) -> AbstractContextManager:
        """Transaction boundary of the underlying execution environment."""
        ...
