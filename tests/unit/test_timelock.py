"""Tests for the delayed upgrade admin."""

from unittest.mock import MagicMock

import pytest

from basketmigrator.config import ONE_WEEK
from basketmigrator.errors import (
    AlreadyMigrated,
    NoPendingProposal,
    PreconditionViolation,
    TimelockNotElapsed,
    Unauthorized,
)
from basketmigrator.migration.implementation import UpgradePayload
from basketmigrator.migration.timelock import DelayedUpgradeAdmin


@pytest.fixture
def admin(basket, clock):
    return DelayedUpgradeAdmin(basket, clock, governor="governor", delay=ONE_WEEK)


class TestPropose:
    def test_records_request(self, admin, clock, upgrade_payload):
        request = admin.propose("governor", "basket-v3", upgrade_payload)

        assert request.implementation_id == "basket-v3"
        assert request.proposed_at == clock.now()
        assert request.executable_at == clock.now() + ONE_WEEK
        assert not request.executed

    def test_governor_only(self, admin, upgrade_payload):
        with pytest.raises(Unauthorized):
            admin.propose("mallory", "basket-v3", upgrade_payload)
        assert admin.request is None

    def test_one_pending_proposal(self, admin, upgrade_payload):
        admin.propose("governor", "basket-v3", upgrade_payload)
        with pytest.raises(PreconditionViolation, match="already proposed"):
            admin.propose("governor", "basket-v3", upgrade_payload)

    def test_unknown_implementation(self, admin):
        with pytest.raises(PreconditionViolation, match="Unknown implementation"):
            admin.propose("governor", "basket-v9", b"")

    def test_current_implementation(self, admin):
        with pytest.raises(PreconditionViolation, match="already uses"):
            admin.propose("governor", "basket-v2", b"")


class TestAccept:
    def test_nothing_proposed(self, admin):
        with pytest.raises(NoPendingProposal):
            admin.accept("governor")

    def test_before_delay(self, admin, clock, upgrade_payload, basket):
        request = admin.propose("governor", "basket-v3", upgrade_payload)
        clock.advance(ONE_WEEK - 1)

        with pytest.raises(TimelockNotElapsed) as exc_info:
            admin.accept("governor")

        assert exc_info.value.executable_at == request.executable_at
        assert exc_info.value.now == request.executable_at - 1
        assert basket.implementation_id == "basket-v2"

    def test_exactly_at_delay(self, admin, clock, upgrade_payload, basket):
        admin.propose("governor", "basket-v3", upgrade_payload)
        clock.advance(ONE_WEEK)

        request = admin.accept("governor")

        assert request.executed
        assert request.executed_at == clock.now()
        assert basket.implementation_id == "basket-v3"
        assert basket.get_basket().undergoing_recol

    def test_executes_at_most_once(self, admin, clock, upgrade_payload):
        admin.propose("governor", "basket-v3", upgrade_payload)
        clock.advance(ONE_WEEK)
        admin.accept("governor")

        with pytest.raises(AlreadyMigrated):
            admin.accept("governor")

    def test_failed_initializer_leaves_request_pending(self, admin, clock, basket, test_config):
        payload = UpgradePayload(
            forge_validator="forge-validator-v3",
            config=test_config.invariant.to_invariant_config(),
            max_assets=2,
        ).encode()
        admin.propose("governor", "basket-v3", payload)
        before = basket.snapshot()
        clock.advance(ONE_WEEK)

        with pytest.raises(PreconditionViolation, match="max is 2"):
            admin.accept("governor")

        assert not admin.request.executed
        assert basket.snapshot() == before

    def test_governor_only(self, admin, clock, upgrade_payload):
        admin.propose("governor", "basket-v3", upgrade_payload)
        clock.advance(ONE_WEEK)
        with pytest.raises(Unauthorized):
            admin.accept("mallory")


class TestPersistence:
    def test_requests_saved_on_propose_and_accept(self, basket, clock, upgrade_payload):
        store = MagicMock()
        store.load_latest_request.return_value = None
        admin = DelayedUpgradeAdmin(basket, clock, governor="governor", delay=ONE_WEEK, store=store)

        admin.propose("governor", "basket-v3", upgrade_payload)
        clock.advance(ONE_WEEK)
        admin.accept("governor")

        assert store.save_request.call_count == 2
        saved = store.save_request.call_args[0][0]
        assert saved.executed

    def test_restores_latest_request(self, basket, clock, upgrade_payload):
        first = DelayedUpgradeAdmin(basket, clock, governor="governor", delay=ONE_WEEK)
        pending = first.propose("governor", "basket-v3", upgrade_payload)

        store = MagicMock()
        store.load_latest_request.return_value = pending
        admin = DelayedUpgradeAdmin(basket, clock, governor="governor", delay=ONE_WEEK, store=store)

        store.load_latest_request.assert_called_once_with("token-proxy")
        with pytest.raises(TimelockNotElapsed):
            admin.accept("governor")
