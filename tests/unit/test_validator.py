"""Tests for storage snapshots and the storage validator."""

from unittest.mock import MagicMock

import pytest

from basketmigrator.errors import EngineUnavailable, StorageMismatch
from basketmigrator.models import AssetStatus
from basketmigrator.validation.snapshot import ExpectedAsset, ExpectedStorage, capture_snapshot
from basketmigrator.validation.validator import StorageValidator, close_percent


class TestClosePercent:
    @pytest.mark.parametrize(
        "actual,expected,pct,result",
        [
            (1001, 1000, 0.1, True),
            (999, 1000, 0.1, True),
            (1002, 1000, 0.1, False),
            (0, 0, 0.1, True),
            (1, 0, 0.1, False),
            (10**24 + 10**20, 10**24, 0.1, True),
        ],
    )
    def test_relative_closeness(self, actual, expected, pct, result):
        assert close_percent(actual, expected, pct) is result


class TestStorageValidator:
    @pytest.fixture
    def expected(self, basket) -> ExpectedStorage:
        return ExpectedStorage.from_snapshot(capture_snapshot(basket), holders=["saver"])

    def test_unchanged_storage_passes(self, basket, expected):
        report = StorageValidator().validate(capture_snapshot(basket), expected)
        assert report.ok
        assert {c.field for c in report.checks} >= {
            "symbol",
            "swap_fee",
            "nexus",
            "assets[1].ratio",
            "balances[saver]",
            "total_supply",
        }

    def test_supply_accrual_within_tolerance(self, basket, ledger, expected):
        ledger.credit("alice", "A", 10**16)
        basket.mint("A", 10**16, 0, "alice", account="alice")
        supply_only = expected.model_copy(update={"assets": None})

        report = StorageValidator(tolerance_pct=0.1).validate(capture_snapshot(basket), supply_only)
        assert report.ok

    def test_supply_beyond_tolerance(self, basket, ledger, expected):
        ledger.credit("alice", "A", 10**18)
        basket.mint("A", 10**18, 0, "alice", account="alice")

        supply_only = expected.model_copy(update={"assets": None})

        report = StorageValidator(tolerance_pct=0.1).validate(capture_snapshot(basket), supply_only)
        assert [f.field for f in report.failures] == ["total_supply"]
        supply = next(f for f in report.failures if f.field == "total_supply")
        assert supply.tolerance_pct == 0.1

    def test_exact_field_mismatch(self, basket, expected):
        report = StorageValidator().validate(
            capture_snapshot(basket), expected.model_copy(update={"symbol": "mBTC"})
        )
        assert [f.field for f in report.failures] == ["symbol"]
        assert report.failures[0].actual == "mUSD"

    def test_asset_status_change(self, basket, expected):
        basket.set_asset_status("governor", "C", AssetStatus.BROKEN_ABOVE_PEG)
        report = StorageValidator().validate(capture_snapshot(basket), expected)
        assert {f.field for f in report.failures} == {"assets[2].status", "undergoing_recol"}

    def test_ratio_defaults_from_decimals(self, basket):
        expected = ExpectedStorage(
            assets=[
                ExpectedAsset(asset_id="A", decimals=18),
                ExpectedAsset(asset_id="B", decimals=6),
                ExpectedAsset(asset_id="C", decimals=18),
                ExpectedAsset(asset_id="D", decimals=6),
            ]
        )
        report = StorageValidator().validate(capture_snapshot(basket), expected)
        assert report.ok

    def test_asset_count_mismatch(self, basket, make_asset, expected):
        basket.add_asset("governor", make_asset("E"))
        report = StorageValidator().validate(capture_snapshot(basket), expected)
        assert [f.field for f in report.failures] == ["asset_count"]

    def test_unset_fields_not_checked(self, basket):
        report = StorageValidator().validate(capture_snapshot(basket), ExpectedStorage())
        assert report.checks == []
        assert report.ok

    def test_assert_valid_raises(self, basket, expected):
        with pytest.raises(StorageMismatch, match="nexus") as exc_info:
            StorageValidator().assert_valid(
                capture_snapshot(basket), expected.model_copy(update={"nexus": "other"})
            )
        assert not exc_info.value.report.ok


class TestCaptureSnapshot:
    def test_retries_transient_reads(self, basket):
        engine = MagicMock()
        engine.implementation_id = "basket-v2"
        engine.get_token_state.side_effect = [EngineUnavailable("timeout"), basket.get_token_state()]
        engine.get_basket.return_value = basket.get_basket()

        snapshot = capture_snapshot(engine)

        assert snapshot.token.symbol == "mUSD"
        assert engine.get_token_state.call_count == 2
