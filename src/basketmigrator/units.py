"""Fixed-point helpers for converting between native and common precision.

All amounts are integers. Common precision is 18 decimals; an asset's ratio
scales its native units to common units with 8 extra decimals of precision.
"""

from decimal import Decimal

COMMON_DECIMALS = 18
RATIO_SCALE = 10**8
FULL_SCALE = 10**18
BPS = 10_000


def ratio_for(decimals: int) -> int:
    """Ratio that converts a native amount with `decimals` to common precision."""
    if decimals < 0 or decimals > COMMON_DECIMALS:
        raise ValueError(f"decimals must be within 0..{COMMON_DECIMALS}, got {decimals}")
    return 10 ** (8 + COMMON_DECIMALS - decimals)


def apply_ratio(native_amount: int, ratio: int) -> int:
    """Native asset amount -> common precision."""
    return native_amount * ratio // RATIO_SCALE


def apply_ratio_to_native(common_amount: int, ratio: int) -> int:
    """Common precision -> native asset amount (rounds down)."""
    return common_amount * RATIO_SCALE // ratio


def scale_to_common(native_amount: int, decimals: int) -> int:
    return native_amount * 10 ** (COMMON_DECIMALS - decimals)


def scale_to_native(common_amount: int, decimals: int) -> int:
    return common_amount // 10 ** (COMMON_DECIMALS - decimals)


def convert_decimals(amount: int, from_decimals: int, to_decimals: int) -> int:
    """Rescale an amount between two native precisions (rounds down)."""
    if to_decimals >= from_decimals:
        return amount * 10 ** (to_decimals - from_decimals)
    return amount // 10 ** (from_decimals - to_decimals)


def simple_to_exact_amount(amount: float | int | str, decimals: int = COMMON_DECIMALS) -> int:
    """Convert a human amount such as 25 or "0.06" to integer base units."""
    return int(Decimal(str(amount)) * (Decimal(10) ** decimals))


def percent_to_full_scale(pct: float | int | str) -> int:
    """Convert a percentage (e.g. 25.01) to 1e18 = 100% units."""
    return simple_to_exact_amount(pct, 16)
