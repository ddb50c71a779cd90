"""Backing implementations that a token proxy can be upgraded to.

An implementation is identified by a string id and carries a one-time
initializer that runs against the proxy storage during `accept`.
"""

from abc import ABC, abstractmethod

import structlog
from pydantic import BaseModel, Field

from basketmigrator.errors import AlreadyMigrated, PreconditionViolation
from basketmigrator.models import BasketStorage, InvariantConfig

logger = structlog.get_logger(__name__)


class Implementation(ABC):
    implementation_id: str

    @abstractmethod
    def initialize(self, storage: BasketStorage, payload: bytes) -> None:
        """Apply the encoded initialization payload to proxy storage."""
        ...

    def expected_changes(self, payload: bytes) -> dict:
        """Storage fields the initializer sets, keyed as in `ExpectedStorage`."""
        return {}


class LegacyImplementation(Implementation):
    """The implementation a basket is deployed with. Has no initializer."""

    def __init__(self, implementation_id: str = "basket-v2"):
        self.implementation_id = implementation_id

    def initialize(self, storage: BasketStorage, payload: bytes) -> None:
        if payload:
            raise PreconditionViolation(f"{self.implementation_id} takes no initialization payload")


class UpgradePayload(BaseModel):
    """Initialization data for the recollateralising implementation."""

    forge_validator: str
    config: InvariantConfig
    max_assets: int = Field(default=10, ge=1)

    def encode(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def decode(cls, payload: bytes) -> "UpgradePayload":
        return cls.model_validate_json(payload)


class RecolImplementation(Implementation):
    """Implementation whose initializer puts the basket into recollateralisation.

    After initialization every asset must have its isolation negated before
    mint and swap are accepted again.
    """

    def __init__(self, implementation_id: str = "basket-v3"):
        self.implementation_id = implementation_id

    def initialize(self, storage: BasketStorage, payload: bytes) -> None:
        if self.implementation_id in storage.initialized:
            raise AlreadyMigrated("already upgraded")

        data = UpgradePayload.decode(payload)
        if len(storage.basket.assets) > data.max_assets:
            raise PreconditionViolation(
                f"Basket holds {len(storage.basket.assets)} assets, max is {data.max_assets}"
            )

        storage.token.forge_validator = data.forge_validator
        storage.token.max_assets = data.max_assets
        storage.basket.config = data.config
        storage.basket.undergoing_recol = True
        storage.basket.failed = False
        storage.initialized.append(self.implementation_id)

        logger.info(
            "implementation.initialized",
            implementation_id=self.implementation_id,
            forge_validator=data.forge_validator,
            a=data.config.a,
            asset_count=len(storage.basket.assets),
        )

    def expected_changes(self, payload: bytes) -> dict:
        data = UpgradePayload.decode(payload)
        return {
            "forge_validator": data.forge_validator,
            "max_assets": data.max_assets,
            "config": data.config,
            "undergoing_recol": True,
            "failed": False,
        }


_REGISTRY: dict[str, Implementation] = {}


def register_implementation(implementation: Implementation) -> None:
    """Register an implementation under its id."""
    _REGISTRY[implementation.implementation_id] = implementation


def get_implementation(implementation_id: str) -> Implementation:
    """Look up an implementation by id.

    Raises:
        KeyError: If the id is not registered
    """
    if implementation_id not in _REGISTRY:
        raise KeyError(
            f"Unknown implementation '{implementation_id}'. Available: {list(_REGISTRY.keys())}"
        )
    return _REGISTRY[implementation_id]


register_implementation(LegacyImplementation())
register_implementation(RecolImplementation())
