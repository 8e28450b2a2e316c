"""
============================================================================
Yield Guard v1.0.0
Error Codes and Exception Hierarchy
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Side Effects: None

Only structurally malformed input raises. Verification findings (field
mismatches, expired proofs, hash mismatches) are reported as data and use
the ILG-05x codes for logging only.

ERROR CODES:
    - ILG-001: Invalid input (malformed or ill-typed field)
    - ILG-002: Division by zero (zero denominator)
    - ILG-003: Fixed-point overflow
    - ILG-030: Invalid pipeline transition
    - ILG-040: Configuration invalid
    - ILG-050..ILG-057: Verification mismatches (logged, never raised)

============================================================================
"""

from typing import Optional, Dict, Any


# =============================================================================
# Error Codes
# =============================================================================

class ILGuardErrorCode:
    """Yield Guard error codes for audit logging."""
    INVALID_INPUT = "ILG-001"
    DIVISION_BY_ZERO = "ILG-002"
    OVERFLOW = "ILG-003"
    INVALID_TRANSITION = "ILG-030"
    CONFIG_INVALID = "ILG-040"

    # Verification findings
    ACTION_MISMATCH = "ILG-050"
    AMOUNT_MISMATCH = "ILG-051"
    POOL_MISMATCH = "ILG-052"
    IL_IMPACT_MISMATCH = "ILG-053"
    GAS_MISMATCH = "ILG-054"
    PROOF_EXPIRED = "ILG-055"
    HASH_MISMATCH = "ILG-056"
    ATTESTATION_MISSING = "ILG-057"


# =============================================================================
# Exceptions
# =============================================================================

class ILGuardError(Exception):
    """
    Base exception for Yield Guard.

    Reliability Level: SOVEREIGN TIER
    """

    default_code = ILGuardErrorCode.INVALID_INPUT

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        self.error_code = error_code or self.default_code
        self.message = message
        self.details = details
        super().__init__(f"[{self.error_code}] {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidInputError(ILGuardError):
    """Raised when an input is structurally malformed or out of domain."""
    default_code = ILGuardErrorCode.INVALID_INPUT


class DivisionByZeroError(InvalidInputError):
    """Raised when a ratio or share would divide by zero."""
    default_code = ILGuardErrorCode.DIVISION_BY_ZERO


class FixedPointOverflowError(ILGuardError):
    """Raised when a scaled value leaves the representable range."""
    default_code = ILGuardErrorCode.OVERFLOW


class InvalidTransitionError(ILGuardError):
    """Raised when a pipeline step is attempted from the wrong stage."""
    default_code = ILGuardErrorCode.INVALID_TRANSITION


class ILGuardConfigurationError(ILGuardError):
    """Raised when configuration values are out of range."""
    default_code = ILGuardErrorCode.CONFIG_INVALID


__all__ = [
    "ILGuardErrorCode",
    "ILGuardError",
    "InvalidInputError",
    "DivisionByZeroError",
    "FixedPointOverflowError",
    "InvalidTransitionError",
    "ILGuardConfigurationError",
]
