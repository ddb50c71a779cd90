"""Weight targets - equal-weight targets and distances across basket assets."""

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from basketmigrator.basket.base import BasketEngine
from basketmigrator.errors import EngineUnavailable, PreconditionViolation
from basketmigrator.models import WeightTargets
from basketmigrator.units import BPS

logger = structlog.get_logger(__name__)


def compute_equal_weight_target(balances: list[int], count: int | None = None) -> WeightTargets:
    """Compute the equal-weight target for a set of scaled balances.

    Args:
        balances: Vault balances, all in common precision
        count: Number of assets to spread the total across. Defaults to
            len(balances); pass fewer when an asset is being phased out so
            the remaining assets absorb its share.

    Returns:
        WeightTargets with target = sum // count and diffs = target - balance
    """
    n = len(balances) if count is None else count
    if n <= 0:
        raise PreconditionViolation("Cannot compute a target for an empty basket")
    if any(b < 0 for b in balances):
        raise PreconditionViolation("Scaled balances must be non-negative")

    target = sum(balances) // n
    diffs = [target - b for b in balances]

    logger.debug("weights.target_computed", target=target, count=n, total=sum(balances))
    return WeightTargets(target=target, balances=list(balances), diffs=diffs)


def weights_bps(balances: list[int]) -> list[int]:
    """Share of each balance in the total, in basis points (2668 = 26.68%)."""
    total = sum(balances)
    if total == 0:
        return [0 for _ in balances]
    return [b * BPS // total for b in balances]


def overweight_splits(excess_a: int, excess_b: int) -> list[int]:
    """Basis-point split of a loan between two overweight assets.

    Each side is proportional to how far the asset sits above target. The
    remainder goes to the second split so the pair always sums to 10000.
    """
    if excess_a < 0 or excess_b < 0:
        raise PreconditionViolation("Overweight amounts must be non-negative")
    total = excess_a + excess_b
    if total == 0:
        raise PreconditionViolation("Neither destination asset is overweight")
    first = excess_a * BPS // total
    return [first, BPS - first]


@retry(
    retry=retry_if_exception_type(EngineUnavailable),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, max=1),
    reraise=True,
)
def read_scaled_balances(basket: BasketEngine) -> dict[str, int]:
    """Read every vault balance from the engine, scaled to common precision."""
    snapshot = basket.get_basket()
    return {asset.asset_id: asset.scaled_balance for asset in snapshot.assets}
