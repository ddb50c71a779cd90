"""Abstract capabilities consumed by the flash-loan rebalance engine."""

from abc import ABC, abstractmethod
from typing import Callable, TypeVar

T = TypeVar("T")

# Called with (loan_amount, fee) once the borrowed funds are held by the borrower
LoanContinuation = Callable[[int, int], T]


class Lender(ABC):
    """Source of uncollateralised loans that must be repaid in the same context."""

    name: str = "lender"

    @abstractmethod
    def fee_for(self, asset_id: str, amount: int) -> int:
        """Fee charged on top of the principal for a loan of `amount`."""
        ...

    @abstractmethod
    def flash_loan(
        self, asset_id: str, amount: int, account: str, continuation: LoanContinuation[T]
    ) -> T:
        """Lend `amount` to `account`, run `continuation`, then collect principal + fee.

        The whole call is one atomic unit. If the continuation raises or
        repayment cannot be collected, every effect is undone.
        """
        ...


class LiquidityVenue(ABC):
    """External pool that exchanges one asset for another at prevailing rates."""

    name: str

    @abstractmethod
    def exchange(
        self, asset_in: str, asset_out: str, amount_in: int, min_out: int, *, account: str
    ) -> int:
        """Exchange `amount_in` and return the output. Raises SlippageExceeded below `min_out`."""
        ...

    @abstractmethod
    def decimals_of(self, asset_id: str) -> int:
        ...


class FundingSource(ABC):
    """Pre-approved account that covers flash loan shortfalls."""

    @abstractmethod
    def pull(self, asset_id: str, amount: int, recipient: str) -> None:
        """Move `amount` to `recipient`. Raises InsufficientFunding when it cannot."""
        ...
