"""Error kinds raised by the rebalancing and migration core.

Every error is terminal for the atomic operation that raised it. Nothing in
the core retries a mutating call; the operator inspects the error and its
attached values and decides what to do next.
"""


class BasketMigratorError(Exception):
    """Base class for all basket migrator errors."""


class PreconditionViolation(BasketMigratorError):
    """Raised when an operation is called with inputs or state it cannot act on."""


class WeightLimitExceeded(PreconditionViolation):
    """Raised when a mint or swap would push an asset above its max weight."""

    def __init__(self, asset_id: str, weight: int, max_weight: int):
        self.asset_id = asset_id
        self.weight = weight
        self.max_weight = max_weight
        super().__init__(
            f"{asset_id} weight {weight} would exceed max weight {max_weight}"
        )


class InsufficientBalance(PreconditionViolation):
    """Raised when an account does not hold enough of an asset."""

    def __init__(self, account: str, asset_id: str, required: int, available: int):
        self.account = account
        self.asset_id = asset_id
        self.required = required
        self.available = available
        super().__init__(
            f"{account} holds {available} {asset_id}, needs {required}"
        )


class NoPendingProposal(PreconditionViolation):
    """Raised when accept is called without a recorded proposal."""


class SlippageExceeded(BasketMigratorError):
    """Raised when a swap or redemption falls outside the caller's bound."""

    def __init__(self, message: str, amount: int, limit: int):
        self.amount = amount
        self.limit = limit
        super().__init__(f"{message} (amount={amount}, limit={limit})")


class InsufficientLiquidity(BasketMigratorError):
    """Raised when a lender or venue cannot supply the requested amount."""


class InsufficientFunding(BasketMigratorError):
    """Raised when the funding account cannot cover a flash loan shortfall."""

    def __init__(self, asset_id: str, shortfall: int, reason: str):
        self.asset_id = asset_id
        self.shortfall = shortfall
        self.reason = reason
        super().__init__(
            f"Cannot fund {shortfall} {asset_id} shortfall: {reason}"
        )


class AlreadyMigrated(BasketMigratorError):
    """Raised when a migration request or initializer runs a second time."""


class TimelockNotElapsed(BasketMigratorError):
    """Raised when accept is called before the upgrade delay has passed."""

    def __init__(self, now: int, executable_at: int):
        self.now = now
        self.executable_at = executable_at
        super().__init__(
            f"Timelock not elapsed: now={now}, executable_at={executable_at}"
        )


class Unhealthy(BasketMigratorError):
    """Raised for mint and swap while the basket is undergoing recollateralisation."""


class InRecol(BasketMigratorError):
    """Raised for redeem and proportional redeem during recollateralisation."""


class BasketPaused(BasketMigratorError):
    """Raised for mutating calls while the basket is paused."""


class Unauthorized(BasketMigratorError):
    """Raised when a non-admin actor calls an admin-only operation."""


class EngineUnavailable(BasketMigratorError):
    """Raised by adapters when a read from the basket engine fails transiently."""


class StorageMismatch(BasketMigratorError):
    """Raised when live storage diverges from the expected snapshot.

    Never mutates state; it only halts further phase progression.
    """

    def __init__(self, report):
        self.report = report
        failures = ", ".join(f.field for f in report.failures[:5])
        super().__init__(f"Storage mismatch on {len(report.failures)} field(s): {failures}")


class MigrationHalted(StorageMismatch):
    """Raised when a transition is attempted after a failed validation."""
