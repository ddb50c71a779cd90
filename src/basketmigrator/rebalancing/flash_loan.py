"""Flash-loan rebalancing - borrow an underweight asset and swap out two overweight ones.

Sequence, all inside the lender's atomic context:

1. borrow the loan asset
2. swap both splits of it into the basket for the two destination assets
3. offload each destination asset through its own venue back into the loan asset
4. pull any shortfall from the funding source
5. repay principal + fee
"""

from dataclasses import dataclass

import structlog

from basketmigrator.basket.base import BasketEngine
from basketmigrator.errors import BasketMigratorError, PreconditionViolation
from basketmigrator.logging_config import get_rebalance_logger
from basketmigrator.models import FlashLoanPlan, RebalanceResult, SwapLeg
from basketmigrator.rebalancing.base import FundingSource, Lender, LiquidityVenue
from basketmigrator.units import BPS, COMMON_DECIMALS, FULL_SCALE, convert_decimals

logger = structlog.get_logger(__name__)


@dataclass
class RebalanceRoute:
    """A destination asset and the venue used to offload it."""

    asset_id: str
    venue: LiquidityVenue


def validate_splits(splits_bps: list[int]) -> None:
    if len(splits_bps) != 2:
        raise PreconditionViolation(f"Expected two destination splits, got {len(splits_bps)}")
    if any(b < 0 for b in splits_bps) or sum(splits_bps) != BPS:
        raise PreconditionViolation(f"Splits must be non-negative and sum to {BPS}, got {splits_bps}")


def compute_loan_amount(target_balance: int, vault_balance: int, decimals: int, pct: int = 100) -> int:
    """Loan needed to lift the loan asset to target, scaled down to `pct` percent.

    Args:
        target_balance: Target in common precision
        vault_balance: Current vault balance in native units
        decimals: Native precision of the loan asset
        pct: 1-100, for liquidity-constrained partial loans

    Raises:
        PreconditionViolation: If the asset is not underweight or pct is out of range
    """
    if not 1 <= pct <= 100:
        raise PreconditionViolation(f"Loan percentage must be within 1..100, got {pct}")
    shortfall_to_target = target_balance // 10 ** (COMMON_DECIMALS - decimals) - vault_balance
    if shortfall_to_target <= 0:
        raise PreconditionViolation(
            f"Loan asset is not underweight: target {target_balance}, vault {vault_balance}"
        )
    return shortfall_to_target * pct // 100


def split_loan(loan_amount: int, splits_bps: list[int]) -> list[int]:
    """Split amounts for each destination. Their sum is within one unit of the loan."""
    validate_splits(splits_bps)
    if loan_amount < 0:
        raise PreconditionViolation("Loan amount must be non-negative")
    return [loan_amount * bps // BPS for bps in splits_bps]


def compute_shortfall(loan_amount: int, lender_fee: int, recovered: int) -> int:
    """Amount the funding source must cover. Zero when the offload recovered enough."""
    return max(0, loan_amount + lender_fee - recovered)


class FlashLoanRebalancer:
    """Rebalances a basket using flash loans routed through two liquidity venues."""

    def __init__(
        self,
        basket: BasketEngine,
        lender: Lender,
        funding: FundingSource,
        routes: list[RebalanceRoute],
        *,
        account: str = "rebalancer",
        max_slippage_bps: int = 100,
    ):
        if len(routes) != 2:
            raise PreconditionViolation(f"Expected two routes, got {len(routes)}")
        if routes[0].asset_id == routes[1].asset_id:
            raise PreconditionViolation("Destination assets must differ")
        if not 0 <= max_slippage_bps <= BPS:
            raise PreconditionViolation(f"max_slippage_bps out of range: {max_slippage_bps}")
        self._basket = basket
        self._lender = lender
        self._funding = funding
        self._routes = list(routes)
        self._account = account
        self._max_slippage_bps = max_slippage_bps
        self._rebalance_log = get_rebalance_logger()

    @property
    def destinations(self) -> list[str]:
        return [r.asset_id for r in self._routes]

    def plan(
        self,
        loan_asset: str,
        target_balance: int,
        splits_bps: list[int],
        pct: int = 100,
    ) -> FlashLoanPlan:
        """Size the loan and its splits without touching any external system."""
        validate_splits(splits_bps)
        if loan_asset in self.destinations:
            raise PreconditionViolation(f"{loan_asset} cannot be both loan asset and destination")

        state = self._basket.get_asset_state(loan_asset)
        loan_amount = compute_loan_amount(target_balance, state.balance, state.decimals, pct)
        if loan_amount == 0:
            raise PreconditionViolation("Loan amount rounds down to zero")

        split_amounts = split_loan(loan_amount, splits_bps)
        fee = self._lender.fee_for(loan_asset, loan_amount)

        # Worst case: both venues fill exactly at the slippage bound
        swap_fee = self._basket.get_token_state().swap_fee
        worst_recovered = sum(
            (amount - amount * swap_fee // FULL_SCALE) * (BPS - self._max_slippage_bps) // BPS
            for amount in split_amounts
        )

        return FlashLoanPlan(
            loan_asset=loan_asset,
            loan_amount=loan_amount,
            destinations=self.destinations,
            splits_bps=list(splits_bps),
            split_amounts=split_amounts,
            lender_fee=fee,
            expected_shortfall=compute_shortfall(loan_amount, fee, worst_recovered),
        )

    def _min_out(self, route: RebalanceRoute, amount_in: int, loan_asset: str) -> int:
        venue = route.venue
        at_par = convert_decimals(amount_in, venue.decimals_of(route.asset_id), venue.decimals_of(loan_asset))
        return at_par * (BPS - self._max_slippage_bps) // BPS

    def rebalance(
        self,
        loan_asset: str,
        target_balance: int,
        splits_bps: list[int],
        pct: int = 100,
    ) -> RebalanceResult:
        """Execute one flash-loan rebalance.

        Raises:
            PreconditionViolation: Loan asset not underweight or splits invalid.
                Raised before any external call.
            SlippageExceeded: A venue returned less than its minimum.
            InsufficientFunding: The funding source cannot cover the shortfall.
        """
        plan = self.plan(loan_asset, target_balance, splits_bps, pct)
        before = self._basket.get_basket()

        logger.info(
            "flash_loan.starting",
            loan_asset=loan_asset,
            loan_amount=plan.loan_amount,
            splits_bps=plan.splits_bps,
            split_amounts=plan.split_amounts,
            expected_shortfall=plan.expected_shortfall,
        )

        def continuation(amount: int, fee: int):
            basket_swaps: list[SwapLeg] = []
            for route, split in zip(self._routes, plan.split_amounts):
                if split == 0:
                    continue
                amount_out = self._basket.swap(
                    loan_asset, route.asset_id, split, 0, self._account, account=self._account
                )
                basket_swaps.append(
                    SwapLeg(
                        venue="basket",
                        asset_in=loan_asset,
                        asset_out=route.asset_id,
                        amount_in=split,
                        amount_out=amount_out,
                    )
                )

            venue_swaps: list[SwapLeg] = []
            recovered = 0
            routes_by_asset = {r.asset_id: r for r in self._routes}
            for leg in basket_swaps:
                route = routes_by_asset[leg.asset_out]
                min_out = self._min_out(route, leg.amount_out, loan_asset)
                amount_back = route.venue.exchange(
                    route.asset_id, loan_asset, leg.amount_out, min_out, account=self._account
                )
                recovered += amount_back
                venue_swaps.append(
                    SwapLeg(
                        venue=route.venue.name,
                        asset_in=route.asset_id,
                        asset_out=loan_asset,
                        amount_in=leg.amount_out,
                        amount_out=amount_back,
                    )
                )

            shortfall = compute_shortfall(amount, fee, recovered)
            if shortfall > 0:
                self._funding.pull(loan_asset, shortfall, self._account)
            return basket_swaps, venue_swaps, recovered, shortfall

        try:
            basket_swaps, venue_swaps, recovered, shortfall = self._lender.flash_loan(
                loan_asset, plan.loan_amount, self._account, continuation
            )
        except BasketMigratorError as e:
            logger.error(
                "flash_loan.aborted",
                loan_asset=loan_asset,
                loan_amount=plan.loan_amount,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise

        after = self._basket.get_basket()
        result = RebalanceResult(
            loan_asset=loan_asset,
            loan_amount=plan.loan_amount,
            lender_fee=plan.lender_fee,
            amounts_swapped=list(plan.split_amounts),
            basket_swaps=basket_swaps,
            venue_swaps=venue_swaps,
            recovered=recovered,
            shortfall=shortfall,
            balances_before={a.asset_id: a.vault_balance for a in before.assets},
            balances_after={a.asset_id: a.vault_balance for a in after.assets},
            scaled_total_before=before.scaled_total,
            scaled_total_after=after.scaled_total,
        )

        self._rebalance_log.info(
            "flash_loan.executed",
            loan_asset=loan_asset,
            loan_amount=result.loan_amount,
            lender_fee=result.lender_fee,
            amounts_swapped=result.amounts_swapped,
            recovered=result.recovered,
            shortfall=result.shortfall,
            scaled_total_change=result.scaled_total_after - result.scaled_total_before,
        )
        return result
