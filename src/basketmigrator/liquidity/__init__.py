"""Simulated lenders, venues and funding sources for rehearsals."""

from basketmigrator.liquidity.funding import AllowanceFundingSource
from basketmigrator.liquidity.lender import SimulatedLender
from basketmigrator.liquidity.venue import FixedRateVenue

__all__ = [
    "AllowanceFundingSource",
    "FixedRateVenue",
    "SimulatedLender",
]
