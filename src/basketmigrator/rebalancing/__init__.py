"""Rebalancing module for equal-weight targets, direct swaps and flash-loan rebalances."""

from basketmigrator.rebalancing.base import FundingSource, Lender, LiquidityVenue
from basketmigrator.rebalancing.flash_loan import FlashLoanRebalancer, RebalanceRoute
from basketmigrator.rebalancing.planner import DirectSwapPlanner, plan_direct_swap
from basketmigrator.rebalancing.weights import compute_equal_weight_target, overweight_splits

__all__ = [
    "FundingSource",
    "Lender",
    "LiquidityVenue",
    "FlashLoanRebalancer",
    "RebalanceRoute",
    "DirectSwapPlanner",
    "plan_direct_swap",
    "compute_equal_weight_target",
    "overweight_splits",
]
