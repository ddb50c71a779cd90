"""Timelocked implementation upgrades and the phased migration state machine."""

from basketmigrator.migration.implementation import (
    Implementation,
    UpgradePayload,
    get_implementation,
    register_implementation,
)
from basketmigrator.migration.state_machine import MigrationStateMachine
from basketmigrator.migration.timelock import DelayedUpgradeAdmin

__all__ = [
    "Implementation",
    "UpgradePayload",
    "get_implementation",
    "register_implementation",
    "MigrationStateMachine",
    "DelayedUpgradeAdmin",
]
