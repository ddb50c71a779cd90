"""Tests for upgrade implementations and their registry."""

import pytest

from basketmigrator.errors import AlreadyMigrated, PreconditionViolation
from basketmigrator.migration import implementation
from basketmigrator.migration.implementation import (
    LegacyImplementation,
    RecolImplementation,
    UpgradePayload,
    get_implementation,
    register_implementation,
)


class TestRegistry:
    def test_builtins_registered(self):
        assert isinstance(get_implementation("basket-v2"), LegacyImplementation)
        assert isinstance(get_implementation("basket-v3"), RecolImplementation)

    def test_unknown(self):
        with pytest.raises(KeyError, match="Available"):
            get_implementation("nope")

    def test_register_custom(self, monkeypatch):
        monkeypatch.setattr(implementation, "_REGISTRY", dict(implementation._REGISTRY))
        register_implementation(RecolImplementation("basket-v3-rehearsal"))
        assert get_implementation("basket-v3-rehearsal").implementation_id == "basket-v3-rehearsal"

    def test_recol_expected_changes(self, upgrade_payload):
        changes = RecolImplementation().expected_changes(upgrade_payload)
        assert changes["forge_validator"] == "forge-validator-v3"
        assert changes["undergoing_recol"] is True
        assert LegacyImplementation().expected_changes(b"") == {}


class TestRecolImplementation:
    def test_payload_decodes(self, upgrade_payload):
        data = UpgradePayload.decode(upgrade_payload)
        assert data.forge_validator == "forge-validator-v3"
        assert data.config.a == 13500

    def test_initialize(self, basket, upgrade_payload):
        storage = basket.snapshot()
        RecolImplementation().initialize(storage, upgrade_payload)

        assert storage.basket.undergoing_recol
        assert not storage.basket.failed
        assert storage.token.max_assets == 10
        assert storage.initialized == ["basket-v3"]

    def test_initialize_twice(self, basket, upgrade_payload):
        storage = basket.snapshot()
        implementation = RecolImplementation()
        implementation.initialize(storage, upgrade_payload)

        with pytest.raises(AlreadyMigrated, match="already upgraded"):
            implementation.initialize(storage, upgrade_payload)

    def test_malformed_payload(self, basket):
        with pytest.raises(ValueError):
            RecolImplementation().initialize(basket.snapshot(), b"not json")

    def test_legacy_takes_no_payload(self, basket):
        LegacyImplementation().initialize(basket.snapshot(), b"")
        with pytest.raises(PreconditionViolation):
            LegacyImplementation().initialize(basket.snapshot(), b"x")
