"""Storage and invariant validation between migration phases."""

from decimal import Decimal
from typing import Any

import structlog

from basketmigrator.errors import StorageMismatch
from basketmigrator.models import FieldCheck, ValidationReport
from basketmigrator.units import ratio_for
from basketmigrator.validation.snapshot import ExpectedStorage, StorageSnapshot

logger = structlog.get_logger(__name__)

_EXACT_TOKEN_FIELDS = (
    "symbol",
    "name",
    "decimals",
    "swap_fee",
    "redemption_fee",
    "cache_size",
    "nexus",
    "forge_validator",
    "max_assets",
)
_EXACT_BASKET_FLAGS = ("undergoing_recol", "failed", "paused")
_TOLERANCE_FIELDS = ("total_supply", "surplus")


def close_percent(actual: int, expected: int, tolerance_pct: float) -> bool:
    """True when actual is within tolerance_pct percent of expected."""
    if expected == 0:
        return actual == 0
    diff = Decimal(abs(actual - expected)) * 100 / Decimal(abs(expected))
    return diff <= Decimal(str(tolerance_pct))


class StorageValidator:
    """Read-only comparison of live storage against an expected snapshot.

    Identity, fee, pointer and per-asset fields must match exactly. Total
    supply and surplus accrue continuously, so they are compared within a
    relative percentage.
    """

    def __init__(self, tolerance_pct: float = 0.1):
        self.tolerance_pct = tolerance_pct

    def validate(self, snapshot: StorageSnapshot, expected: ExpectedStorage) -> ValidationReport:
        checks: list[FieldCheck] = []

        def exact(name: str, want: Any, got: Any) -> None:
            if want is None:
                return
            checks.append(FieldCheck(field=name, expected=want, actual=got, ok=want == got))

        token = snapshot.token
        basket = snapshot.basket

        exact("implementation_id", expected.implementation_id, snapshot.implementation_id)
        for field in _EXACT_TOKEN_FIELDS:
            exact(field, getattr(expected, field), getattr(token, field))
        for holder, balance in expected.holder_balances.items():
            exact(f"balances[{holder}]", balance, token.balances.get(holder, 0))

        for flag in _EXACT_BASKET_FLAGS:
            exact(flag, getattr(expected, flag), getattr(basket, flag))
        if expected.config is not None:
            exact("config", expected.config.model_dump(), basket.config.model_dump() if basket.config else None)

        if expected.assets is not None:
            exact("asset_count", len(expected.assets), len(basket.assets))
            for i, want in enumerate(expected.assets):
                if i >= len(basket.assets):
                    break
                got = basket.assets[i]
                prefix = f"assets[{i}]"
                exact(f"{prefix}.asset_id", want.asset_id, got.asset_id)
                exact(f"{prefix}.decimals", want.decimals, got.decimals)
                exact(f"{prefix}.integrator", want.integrator, got.integrator)
                exact(f"{prefix}.status", want.status, got.status)
                exact(f"{prefix}.has_tx_fee", want.has_tx_fee, got.has_tx_fee)
                # Ratio is fixed by decimals at add time
                exact(f"{prefix}.ratio", want.ratio or ratio_for(want.decimals), got.ratio)
                exact(f"{prefix}.vault_balance", want.vault_balance, got.vault_balance)
                exact(f"{prefix}.max_weight", want.max_weight, basket.max_weights.get(got.asset_id))

        tolerance = expected.tolerance_pct if expected.tolerance_pct is not None else self.tolerance_pct
        for field in _TOLERANCE_FIELDS:
            want = getattr(expected, field)
            if want is None:
                continue
            got = getattr(token, field)
            checks.append(
                FieldCheck(
                    field=field,
                    expected=want,
                    actual=got,
                    ok=close_percent(got, want, tolerance),
                    tolerance_pct=tolerance,
                )
            )

        report = ValidationReport(checks=checks)
        if report.ok:
            logger.info("validator.passed", checks=len(checks))
        else:
            logger.error(
                "validator.failed",
                checks=len(checks),
                failures=[
                    {"field": f.field, "expected": str(f.expected), "actual": str(f.actual)}
                    for f in report.failures
                ],
            )
        return report

    def assert_valid(self, snapshot: StorageSnapshot, expected: ExpectedStorage) -> ValidationReport:
        """Validate and raise StorageMismatch on any failure."""
        report = self.validate(snapshot, expected)
        if not report.ok:
            raise StorageMismatch(report)
        return report
