"""Direct swap planning - bounded swaps that move two assets toward target."""

import structlog

from basketmigrator.basket.base import BasketEngine
from basketmigrator.errors import PreconditionViolation
from basketmigrator.models import DirectSwapResult, SwapPlan
from basketmigrator.units import scale_to_native

logger = structlog.get_logger(__name__)


def plan_direct_swap(
    scaled_balances: dict[str, int],
    target: int,
    input_asset: str,
    output_asset: str,
    input_decimals: int,
    phase_out: bool = False,
) -> SwapPlan:
    """Size a swap of `input_asset` into the basket for `output_asset`.

    Args:
        scaled_balances: Vault balances in common precision
        target: Equal-weight target in common precision
        input_asset: Underweight asset paid into the basket
        output_asset: Overweight asset taken out of the basket
        input_decimals: Native precision of the input asset
        phase_out: Treat the output's target as zero, e.g. when it is
            being removed from the basket

    Returns:
        SwapPlan. A negative min(diff_in, diff_out) yields a no-op plan.
    """
    if input_asset == output_asset:
        raise PreconditionViolation("Input and output assets must differ")
    for asset_id in (input_asset, output_asset):
        if asset_id not in scaled_balances:
            raise PreconditionViolation(f"No balance tracked for {asset_id}")

    diff_in = target - scaled_balances[input_asset]
    effective_target = 0 if phase_out else target
    diff_out = scaled_balances[output_asset] - effective_target
    amount = min(diff_in, diff_out)

    if amount < 0:
        logger.debug(
            "planner.noop",
            input=input_asset,
            output=output_asset,
            diff_in=diff_in,
            diff_out=diff_out,
        )
        return SwapPlan(
            input_asset=input_asset,
            output_asset=output_asset,
            diff_in=diff_in,
            diff_out=diff_out,
            amount=0,
            native_amount=0,
        )

    return SwapPlan(
        input_asset=input_asset,
        output_asset=output_asset,
        diff_in=diff_in,
        diff_out=diff_out,
        amount=amount,
        native_amount=scale_to_native(amount, input_decimals),
    )


class DirectSwapPlanner:
    """Plans and submits direct swaps against the basket engine.

    Keeps its own copy of scaled balances between swaps. After each swap it
    adds the planned amount to the input and subtracts it from the output,
    ignoring the realised swap fee, so the bookkeeping drifts from the live
    vault by the fees paid. Use `drift()` to compare against the engine.
    """

    def __init__(self, basket: BasketEngine, scaled_balances: dict[str, int], target: int):
        self._basket = basket
        self._balances = dict(scaled_balances)
        self._target = target

    @property
    def balances(self) -> dict[str, int]:
        return dict(self._balances)

    @property
    def target(self) -> int:
        return self._target

    def plan(self, input_asset: str, output_asset: str, phase_out: bool = False) -> SwapPlan:
        decimals = self._basket.get_asset_state(input_asset).decimals
        return plan_direct_swap(
            self._balances,
            self._target,
            input_asset,
            output_asset,
            decimals,
            phase_out=phase_out,
        )

    def execute(
        self,
        input_asset: str,
        output_asset: str,
        account: str,
        *,
        phase_out: bool = False,
        min_out: int = 0,
        recipient: str | None = None,
    ) -> DirectSwapResult:
        """Plan a swap and submit it. No-op plans are returned without a call."""
        plan = self.plan(input_asset, output_asset, phase_out=phase_out)
        if plan.is_noop or plan.native_amount == 0:
            return DirectSwapResult(plan=plan)

        amount_out = self._basket.swap(
            input_asset,
            output_asset,
            plan.native_amount,
            min_out,
            recipient or account,
            account=account,
        )

        self._balances[input_asset] += plan.amount
        self._balances[output_asset] -= plan.amount

        logger.info(
            "planner.swap_executed",
            input=input_asset,
            output=output_asset,
            amount=plan.amount,
            native_amount=plan.native_amount,
            amount_out=amount_out,
        )
        return DirectSwapResult(plan=plan, amount_out=amount_out, executed=True)

    def drift(self, live_balances: dict[str, int]) -> dict[str, int]:
        """Tracked minus live scaled balance per asset."""
        return {
            asset_id: tracked - live_balances.get(asset_id, 0)
            for asset_id, tracked in self._balances.items()
        }
