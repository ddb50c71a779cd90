"""Simulated flash lender backed by the ledger."""

import structlog

from basketmigrator.basket.ledger import Ledger
from basketmigrator.errors import InsufficientBalance, InsufficientFunding, InsufficientLiquidity
from basketmigrator.rebalancing.base import Lender, LoanContinuation, T

logger = structlog.get_logger(__name__)


class SimulatedLender(Lender):
    """Lends from its own ledger account and charges a flat fee per loan."""

    def __init__(self, ledger: Ledger, *, name: str = "flash-lender", flat_fee: int = 2):
        self._ledger = ledger
        self.name = name
        self.flat_fee = flat_fee

    def available(self, asset_id: str) -> int:
        return self._ledger.balance_of(self.name, asset_id)

    def fee_for(self, asset_id: str, amount: int) -> int:
        return self.flat_fee

    def flash_loan(
        self, asset_id: str, amount: int, account: str, continuation: LoanContinuation[T]
    ) -> T:
        if amount <= 0:
            raise InsufficientLiquidity("Flash loan amount must be positive")
        if amount > self.available(asset_id):
            raise InsufficientLiquidity(
                f"{self.name} holds {self.available(asset_id)} {asset_id}, {amount} requested"
            )
        fee = self.fee_for(asset_id, amount)

        with self._ledger.atomic():
            self._ledger.transfer(asset_id, self.name, account, amount)
            result = continuation(amount, fee)
            try:
                self._ledger.transfer(asset_id, account, self.name, amount + fee)
            except InsufficientBalance as e:
                raise InsufficientFunding(asset_id, amount + fee - e.available, "loan not repaid") from e

        logger.info("lender.flash_loan_repaid", asset_id=asset_id, amount=amount, fee=fee)
        return result
