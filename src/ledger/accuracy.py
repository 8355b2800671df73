"""Accuracy scoring and fixed-point price helpers."""

from decimal import Decimal, InvalidOperation

BASIS_POINTS = 10_000
DEFAULT_ACCURACY_THRESHOLD = 500
PRICE_DECIMALS = 18


def calculate_accuracy(predicted: int, actual: int) -> int:
    """Score a prediction in basis points (10000 = exact).

    The percentage difference is always taken relative to ``actual`` and
    truncated, so overshooting and undershooting by the same amount score
    differently. Callers reject non-positive prices before calling.
    """
    if predicted == actual:
        return BASIS_POINTS
    diff = abs(predicted - actual)
    pct_diff = diff * BASIS_POINTS // actual
    return max(0, BASIS_POINTS - pct_diff)


def is_accurate(accuracy_score: int, threshold: int) -> bool:
    """A score counts as accurate when it is within ``threshold`` bp of perfect."""
    return accuracy_score >= BASIS_POINTS - threshold


def bp_to_percent(value: int | float) -> float:
    return value / 100


def to_fixed(value: int | str | Decimal, decimals: int = PRICE_DECIMALS) -> int:
    """Scale a human price ("54000.25") to an integer with ``decimals`` places.

    Digits beyond the precision are truncated.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a price: {value!r}")
    try:
        scaled = Decimal(str(value)) * (Decimal(10) ** decimals)
    except InvalidOperation:
        raise ValueError(f"Not a price: {value!r}")
    if not scaled.is_finite():
        raise ValueError(f"Not a price: {value!r}")
    return int(scaled)


def from_fixed(value: int, decimals: int = PRICE_DECIMALS) -> Decimal:
    """Inverse of to_fixed, normalized so 54000 * 10**18 renders as 54000."""
    result = Decimal(value) / (Decimal(10) ** decimals)
    return result.quantize(Decimal(1)) if result == result.to_integral() else result.normalize()
