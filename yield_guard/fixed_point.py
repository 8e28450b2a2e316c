"""
============================================================================
Yield Guard v1.0.0
Fixed-Point Math - Integer Square Root and Scaled Ratios
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Input Constraints: Non-negative Python integers
Side Effects: None (pure computation)

SCALED-INTEGER MANDATE:
    All IL math runs on integers carrying an explicit scale factor.
    Float contamination is FORBIDDEN in the IL path.

    PRICE_SCALE = 10_000   (price ratio r is stored as r * PRICE_SCALE)
    BPS_SCALE   = 10_000   (1.0 == 10_000 basis points)
    IL_PRECISION = 10**12  (internal scale of the IL quotient)

OVERFLOW GUARDS:
    Python integers are arbitrary precision. The guards below keep every
    value inside the range a fixed-width port would use (u128 magnitudes,
    i64 basis points) so results stay portable.

ERROR CODES:
    - ILG-001: Negative input
    - ILG-002: Zero denominator
    - ILG-003: Overflow

============================================================================
"""

from dataclasses import dataclass
from decimal import Decimal
import logging

from yield_guard.il_errors import (
    InvalidInputError,
    DivisionByZeroError,
    FixedPointOverflowError,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Scale factor for price ratios
PRICE_SCALE = 10_000

# 1.0 expressed in basis points
BPS_SCALE = 10_000

# Internal scale for the IL quotient; keeps floor error far below 1 bps
IL_PRECISION = 10 ** 12

# Fixed-width bounds
U128_MAX = 2 ** 128 - 1
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


# =============================================================================
# Integer Square Root
# =============================================================================

def integer_sqrt(n: int) -> int:
    """
    Floor square root via Newton iteration.

    ========================================================================
    ITERATION:
    ========================================================================
    x0 = n, y = (n + 1) // 2
    while y < x: x = y; y = (x + n // x) // 2
    ========================================================================

    The sequence decreases monotonically and stops once y >= x, which takes
    O(log n) steps. The result satisfies r*r <= n < (r+1)*(r+1).

    Args:
        n: Non-negative integer

    Returns:
        floor(sqrt(n))

    Raises:
        InvalidInputError: If n is negative or not an integer
    """
    if isinstance(n, bool) or not isinstance(n, int):
        raise InvalidInputError(
            f"integer_sqrt requires an int, got: {type(n).__name__}"
        )
    if n < 0:
        raise InvalidInputError(f"integer_sqrt requires n >= 0, got: {n}")

    if n == 0:
        return 0
    if n < 4:
        return 1

    x = n
    y = (n + 1) // 2
    while y < x:
        x = y
        y = (x + n // x) // 2

    return x


def geometric_mean(a: int, b: int) -> int:
    """Floor of sqrt(a * b)."""
    return integer_sqrt(a * b)


# =============================================================================
# Rounding and Guards
# =============================================================================

def div_round_half_even(numerator: int, denominator: int) -> int:
    """
    Integer division with banker's rounding (ROUND_HALF_EVEN).

    Raises:
        DivisionByZeroError: If denominator is zero
    """
    if denominator == 0:
        raise DivisionByZeroError(
            f"Division by zero | numerator={numerator}"
        )
    if denominator < 0:
        numerator, denominator = -numerator, -denominator

    quotient, remainder = divmod(numerator, denominator)
    twice = 2 * remainder
    if twice > denominator or (twice == denominator and quotient % 2 == 1):
        quotient += 1
    return quotient


def guard_unsigned(value: int, label: str = "value") -> int:
    """
    Ensure value fits an unsigned 128-bit magnitude.

    Raises:
        InvalidInputError: If value is negative
        FixedPointOverflowError: If value exceeds U128_MAX
    """
    if value < 0:
        raise InvalidInputError(f"{label} must be non-negative, got: {value}")
    if value > U128_MAX:
        logger.error(
            f"[ILG-003] Unsigned overflow | {label}={value} | limit=U128_MAX"
        )
        raise FixedPointOverflowError(
            f"{label} exceeds unsigned 128-bit range",
            details={"label": label},
        )
    return value


def guard_signed_bps(value: int, label: str = "bps") -> int:
    """
    Ensure a basis-point value fits a signed 64-bit integer.

    Raises:
        FixedPointOverflowError: If value is outside [I64_MIN, I64_MAX]
    """
    if value < I64_MIN or value > I64_MAX:
        logger.error(
            f"[ILG-003] Signed bps overflow | {label}={value}"
        )
        raise FixedPointOverflowError(
            f"{label} exceeds signed 64-bit range",
            details={"label": label},
        )
    return value


# =============================================================================
# FixedPoint Value Type
# =============================================================================

@dataclass(frozen=True)
class FixedPoint:
    """
    Non-negative scaled integer: represents raw / scale.

    Reliability Level: SOVEREIGN TIER
    Input Constraints: raw >= 0, scale > 0
    Side Effects: None

    Example:
        ratio = FixedPoint.from_ratio(121, 100)   # raw=12100, scale=10000
        root = ratio.sqrt()                       # raw=11000 (1.1)
    """

    raw: int
    scale: int = PRICE_SCALE

    def __post_init__(self) -> None:
        if self.scale <= 0:
            raise InvalidInputError(f"scale must be positive, got: {self.scale}")
        guard_unsigned(self.raw, "raw")

    @classmethod
    def from_ratio(
        cls,
        numerator: int,
        denominator: int,
        scale: int = PRICE_SCALE
    ) -> "FixedPoint":
        """
        Build numerator / denominator at the given scale (floor).

        Raises:
            DivisionByZeroError: If denominator is zero
            InvalidInputError: If either operand is negative
        """
        if denominator == 0:
            logger.error(
                f"[ILG-002] Zero denominator | numerator={numerator}"
            )
            raise DivisionByZeroError(
                "Ratio denominator is zero",
                details={"numerator": numerator},
            )
        if numerator < 0 or denominator < 0:
            raise InvalidInputError(
                f"Ratio operands must be non-negative | "
                f"numerator={numerator} | denominator={denominator}"
            )
        return cls(raw=(numerator * scale) // denominator, scale=scale)

    @classmethod
    def one(cls, scale: int = PRICE_SCALE) -> "FixedPoint":
        return cls(raw=scale, scale=scale)

    def sqrt(self) -> "FixedPoint":
        """sqrt(raw / scale) at the same scale (floor)."""
        return FixedPoint(raw=integer_sqrt(self.raw * self.scale), scale=self.scale)

    def to_decimal(self) -> Decimal:
        return Decimal(self.raw) / Decimal(self.scale)


__all__ = [
    "PRICE_SCALE",
    "BPS_SCALE",
    "IL_PRECISION",
    "U128_MAX",
    "I64_MIN",
    "I64_MAX",
    "integer_sqrt",
    "geometric_mean",
    "div_round_half_even",
    "guard_unsigned",
    "guard_signed_bps",
    "FixedPoint",
]
