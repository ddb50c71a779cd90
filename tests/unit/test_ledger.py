"""Tests for the simulation ledger and its atomic scopes."""

import pytest

from basketmigrator.basket.ledger import Ledger
from basketmigrator.errors import InsufficientBalance


class Counter:
    def __init__(self):
        self.value = 0

    def snapshot(self):
        return self.value

    def restore(self, state):
        self.value = state


class TestLedger:
    def test_transfer(self):
        ledger = Ledger()
        ledger.credit("alice", "USDC", 100)
        ledger.transfer("USDC", "alice", "bob", 40)
        assert ledger.balance_of("alice", "USDC") == 60
        assert ledger.balance_of("bob", "USDC") == 40

    def test_overdraft(self):
        ledger = Ledger()
        ledger.credit("alice", "USDC", 10)
        with pytest.raises(InsufficientBalance) as exc_info:
            ledger.transfer("USDC", "alice", "bob", 11)
        assert exc_info.value.required == 11
        assert exc_info.value.available == 10

    def test_transfer_from_spends_allowance(self):
        ledger = Ledger()
        ledger.credit("treasury", "USDT", 100)
        ledger.approve("treasury", "rebalancer", "USDT", 30)

        ledger.transfer_from("USDT", "treasury", "rebalancer", "rebalancer", 20)

        assert ledger.allowance("treasury", "rebalancer", "USDT") == 10
        with pytest.raises(InsufficientBalance):
            ledger.transfer_from("USDT", "treasury", "rebalancer", "rebalancer", 20)

    def test_negative_credit_rejected(self):
        with pytest.raises(ValueError):
            Ledger().credit("alice", "USDC", -1)


class TestAtomic:
    def test_commit(self):
        ledger = Ledger()
        with ledger.atomic():
            ledger.credit("alice", "USDC", 5)
        assert ledger.balance_of("alice", "USDC") == 5
        assert not ledger.in_transaction

    def test_revert_restores_balances_and_participants(self):
        ledger = Ledger()
        counter = Counter()
        ledger.register(counter)
        ledger.credit("alice", "USDC", 5)

        with pytest.raises(RuntimeError):
            with ledger.atomic():
                ledger.transfer("USDC", "alice", "bob", 5)
                ledger.approve("alice", "bob", "USDC", 99)
                counter.value = 7
                raise RuntimeError("boom")

        assert ledger.balance_of("alice", "USDC") == 5
        assert ledger.balance_of("bob", "USDC") == 0
        assert ledger.allowance("alice", "bob", "USDC") == 0
        assert counter.value == 0

    def test_nested_inner_revert_keeps_outer_effects(self):
        ledger = Ledger()
        with ledger.atomic():
            ledger.credit("alice", "USDC", 1)
            with pytest.raises(InsufficientBalance):
                with ledger.atomic():
                    ledger.credit("alice", "USDC", 1)
                    ledger.debit("alice", "USDC", 10)
            assert ledger.in_transaction
        assert ledger.balance_of("alice", "USDC") == 1
