"""In-memory token ledger with all-or-nothing transaction scopes.

The ledger stands in for the execution environment: it holds token
balances and allowances for every account and provides `atomic()`, which
snapshots the ledger and every registered participant and restores them all
if the block raises.
"""

import copy
from contextlib import contextmanager
from typing import Any, Iterator, Protocol

import structlog

from basketmigrator.errors import InsufficientBalance

logger = structlog.get_logger(__name__)


class Journaled(Protocol):
    """State holder that can be captured and rolled back by the ledger."""

    def snapshot(self) -> Any:
        ...

    def restore(self, state: Any) -> None:
        ...


class Ledger:
    def __init__(self):
        self._balances: dict[tuple[str, str], int] = {}
        self._allowances: dict[tuple[str, str, str], int] = {}
        self._participants: list[Journaled] = []
        self._depth = 0

    def register(self, participant: Journaled) -> None:
        """Include a participant's state in every atomic snapshot."""
        self._participants.append(participant)

    def balance_of(self, account: str, asset_id: str) -> int:
        return self._balances.get((account, asset_id), 0)

    def allowance(self, owner: str, spender: str, asset_id: str) -> int:
        return self._allowances.get((owner, spender, asset_id), 0)

    def credit(self, account: str, asset_id: str, amount: int) -> None:
        """Create tokens out of thin air. Used to seed rehearsals."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        key = (account, asset_id)
        self._balances[key] = self._balances.get(key, 0) + amount

    def debit(self, account: str, asset_id: str, amount: int) -> None:
        available = self.balance_of(account, asset_id)
        if amount > available:
            raise InsufficientBalance(account, asset_id, amount, available)
        self._balances[(account, asset_id)] = available - amount

    def transfer(self, asset_id: str, src: str, dst: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self.debit(src, asset_id, amount)
        self.credit(dst, asset_id, amount)

    def approve(self, owner: str, spender: str, asset_id: str, amount: int) -> None:
        self._allowances[(owner, spender, asset_id)] = amount

    def transfer_from(self, asset_id: str, owner: str, spender: str, dst: str, amount: int) -> None:
        allowed = self.allowance(owner, spender, asset_id)
        if amount > allowed:
            raise InsufficientBalance(f"allowance {owner}->{spender}", asset_id, amount, allowed)
        self.transfer(asset_id, owner, dst, amount)
        self._allowances[(owner, spender, asset_id)] = allowed - amount

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        """Run a block so that either all of its effects land or none do."""
        saved_balances = dict(self._balances)
        saved_allowances = dict(self._allowances)
        saved_participants = [copy.deepcopy(p.snapshot()) for p in self._participants]
        self._depth += 1
        try:
            yield self
        except Exception as e:
            self._balances = saved_balances
            self._allowances = saved_allowances
            for participant, state in zip(self._participants, saved_participants):
                participant.restore(state)
            logger.warning(
                "ledger.transaction_reverted",
                error_type=type(e).__name__,
                error=str(e),
                depth=self._depth,
            )
            raise
        finally:
            self._depth -= 1
