"""Tests for equal-weight targets and destination splits."""

from unittest.mock import MagicMock

import pytest

from basketmigrator.errors import EngineUnavailable, PreconditionViolation
from basketmigrator.models import Basket
from basketmigrator.rebalancing.weights import (
    compute_equal_weight_target,
    overweight_splits,
    read_scaled_balances,
    weights_bps,
)


class TestEqualWeightTarget:
    def test_fifth_asset_lowers_target(self):
        """Four assets at 25 plus an empty fifth -> target 20."""
        targets = compute_equal_weight_target([25, 25, 25, 25, 0])
        assert targets.target == 20
        assert targets.diffs == [-5, -5, -5, -5, 20]
        assert targets.total == 100

    def test_count_override_for_phase_out(self):
        """Spreading over fewer assets absorbs the phased-out share."""
        targets = compute_equal_weight_target([25, 25, 25, 25, 0], count=4)
        assert targets.target == 25
        assert targets.diffs[-1] == 25

    def test_target_rounds_down(self):
        targets = compute_equal_weight_target([10, 0, 0])
        assert targets.target == 3

    def test_empty_basket_rejected(self):
        with pytest.raises(PreconditionViolation, match="empty basket"):
            compute_equal_weight_target([])

    def test_negative_balance_rejected(self):
        with pytest.raises(PreconditionViolation):
            compute_equal_weight_target([10, -1])


class TestWeightsBps:
    def test_shares(self):
        assert weights_bps([1, 1, 2]) == [2500, 2500, 5000]

    def test_empty_total(self):
        assert weights_bps([0, 0]) == [0, 0]


class TestOverweightSplits:
    def test_proportional_to_excess(self):
        splits = overweight_splits(200, 100)
        assert splits == [6666, 3334]
        assert sum(splits) == 10000

    def test_single_overweight(self):
        assert overweight_splits(0, 50) == [0, 10000]

    def test_nothing_overweight(self):
        with pytest.raises(PreconditionViolation, match="overweight"):
            overweight_splits(0, 0)

    def test_negative_excess(self):
        with pytest.raises(PreconditionViolation):
            overweight_splits(-1, 10)


class TestReadScaledBalances:
    def test_scales_to_common_precision(self, basket):
        balances = read_scaled_balances(basket)
        assert balances == {
            "A": 25 * 10**18,
            "B": 25 * 10**18,
            "C": 25 * 10**18,
            "D": 25 * 10**18,
        }

    def test_retries_transient_failures(self, basket):
        engine = MagicMock()
        engine.get_basket.side_effect = [EngineUnavailable("timeout"), basket.get_basket()]

        balances = read_scaled_balances(engine)

        assert engine.get_basket.call_count == 2
        assert balances["B"] == 25 * 10**18

    def test_gives_up_after_three_attempts(self):
        engine = MagicMock()
        engine.get_basket.side_effect = EngineUnavailable("down")

        with pytest.raises(EngineUnavailable):
            read_scaled_balances(engine)
        assert engine.get_basket.call_count == 3

    def test_other_errors_not_retried(self):
        engine = MagicMock()
        engine.get_basket.side_effect = ValueError("bad state")

        with pytest.raises(ValueError):
            read_scaled_balances(engine)
        assert engine.get_basket.call_count == 1

    def test_empty_basket(self):
        engine = MagicMock()
        engine.get_basket.return_value = Basket()
        assert read_scaled_balances(engine) == {}
