"""Storage snapshots and their validation against expected values."""

from basketmigrator.validation.snapshot import ExpectedAsset, ExpectedStorage, StorageSnapshot, capture_snapshot
from basketmigrator.validation.validator import StorageValidator, close_percent

__all__ = [
    "ExpectedAsset",
    "ExpectedStorage",
    "StorageSnapshot",
    "capture_snapshot",
    "StorageValidator",
    "close_percent",
]
