"""Funding source that draws on a pre-approved ledger allowance."""

import structlog

from basketmigrator.basket.ledger import Ledger
from basketmigrator.errors import InsufficientFunding
from basketmigrator.rebalancing.base import FundingSource

logger = structlog.get_logger(__name__)


class AllowanceFundingSource(FundingSource):
    """Pulls shortfalls from `funder` using the allowance it granted to `spender`."""

    def __init__(self, ledger: Ledger, funder: str, spender: str):
        self._ledger = ledger
        self.funder = funder
        self.spender = spender

    def pull(self, asset_id: str, amount: int, recipient: str) -> None:
        allowance = self._ledger.allowance(self.funder, self.spender, asset_id)
        if amount > allowance:
            raise InsufficientFunding(asset_id, amount, f"allowance {allowance} < {amount}")
        balance = self._ledger.balance_of(self.funder, asset_id)
        if amount > balance:
            raise InsufficientFunding(asset_id, amount, f"balance {balance} < {amount}")

        self._ledger.transfer_from(asset_id, self.funder, self.spender, recipient, amount)
        logger.info(
            "funding.shortfall_pulled",
            asset_id=asset_id,
            amount=amount,
            funder=self.funder,
        )
