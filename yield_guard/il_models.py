"""
============================================================================
Yield Guard v1.0.0
Core Data Models
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Decimal Integrity: Monetary decision fields use decimal.Decimal
Traceability: Decision ids and tx hashes flow into every audit record

This module defines the immutable records handed between components:
- AssetRatio, PoolState: pool/price snapshots from the price provider
- ILRecord: one IL evaluation
- Decision, Proof, ExecutionRecord: the decide/bind/execute chain
- Mismatch, VerificationResult: the verification audit record
- ILPolicy, PositionEvaluation, ProtectionTrigger: policy evaluation
- ToleranceBands, UrgencyTiers, AlertRule: tunable thresholds

Every record is a frozen dataclass validated at construction. "Updates"
are new instances.

============================================================================
"""

from decimal import Decimal, InvalidOperation
from typing import Optional, Dict, Any, Tuple, Type
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import json
import uuid
import logging

from yield_guard.il_errors import (
    InvalidInputError,
    DivisionByZeroError,
    ILGuardErrorCode,
)

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Enums
# =============================================================================

class DecisionAction(Enum):
    """Protective action an agent may decide on."""
    DELEGATE = "delegate"
    WITHDRAW = "withdraw"
    REBALANCE = "rebalance"


class Urgency(Enum):
    """How far IL has run past the policy limit."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Recommendation(Enum):
    """Position recommendation from the IL trajectory."""
    HOLD = "hold"
    ALERT = "alert"
    EXIT = "exit"


class TriggerAction(Enum):
    """Action attached to a protection trigger."""
    ALERT = "alert"
    AUTO_EXIT = "auto_exit"
    MANUAL_REVIEW = "manual_review"


class VerdictAction(Enum):
    """Settlement verdict for an executed transaction."""
    COMMIT = "COMMIT"
    ROLLBACK = "ROLLBACK"


class MismatchKind(Enum):
    """Closed set of verification findings."""
    ACTION = "ACTION"
    AMOUNT = "AMOUNT"
    TARGET_POOL = "TARGET_POOL"
    IL_IMPACT = "IL_IMPACT"
    GAS = "GAS"
    PROOF_EXPIRED = "PROOF_EXPIRED"
    DECISION_HASH = "DECISION_HASH"
    ATTESTATION_MISSING = "ATTESTATION_MISSING"


MISMATCH_ERROR_CODES: Dict[MismatchKind, str] = {
    MismatchKind.ACTION: ILGuardErrorCode.ACTION_MISMATCH,
    MismatchKind.AMOUNT: ILGuardErrorCode.AMOUNT_MISMATCH,
    MismatchKind.TARGET_POOL: ILGuardErrorCode.POOL_MISMATCH,
    MismatchKind.IL_IMPACT: ILGuardErrorCode.IL_IMPACT_MISMATCH,
    MismatchKind.GAS: ILGuardErrorCode.GAS_MISMATCH,
    MismatchKind.PROOF_EXPIRED: ILGuardErrorCode.PROOF_EXPIRED,
    MismatchKind.DECISION_HASH: ILGuardErrorCode.HASH_MISMATCH,
    MismatchKind.ATTESTATION_MISSING: ILGuardErrorCode.ATTESTATION_MISSING,
}


# =============================================================================
# Custom JSON Encoder
# =============================================================================

class ILGuardJSONEncoder(json.JSONEncoder):
    """
    JSON encoder for Yield Guard records.

    Handles:
    - Decimal -> str (preserves precision)
    - datetime -> ISO format string
    - UUID -> str
    - Enum -> value
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, uuid.UUID):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        return super().default(obj)


# =============================================================================
# Field Coercion Helpers
# =============================================================================

def _set(instance: Any, name: str, value: Any) -> None:
    object.__setattr__(instance, name, value)


def coerce_enum(enum_cls: Type[Enum], value: Any, field_name: str) -> Enum:
    """Coerce a value (member or raw value) into a closed enum."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        wanted = value.strip().lower()
        for member in enum_cls:
            if str(member.value).lower() == wanted or member.name.lower() == wanted:
                return member
    allowed = [m.value for m in enum_cls]
    raise InvalidInputError(
        f"{field_name} must be one of {allowed}, got: {value!r}",
        details={"field": field_name},
    )


def coerce_decimal(value: Any, field_name: str, allow_negative: bool = False) -> Decimal:
    """Coerce to Decimal via string to avoid float precision loss."""
    if isinstance(value, bool) or value is None:
        raise InvalidInputError(f"{field_name} must be numeric, got: {value!r}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidInputError(
            f"{field_name} must be numeric, got: {value!r}",
            details={"field": field_name},
        )
    if not result.is_finite():
        raise InvalidInputError(f"{field_name} must be finite, got: {value!r}")
    if not allow_negative and result < 0:
        raise InvalidInputError(f"{field_name} must be non-negative, got: {value}")
    return result


def coerce_int(value: Any, field_name: str, minimum: Optional[int] = 0) -> int:
    """Require an integer (bool rejected) with an optional lower bound."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(
            f"{field_name} must be an integer, got: {type(value).__name__}",
            details={"field": field_name},
        )
    if minimum is not None and value < minimum:
        raise InvalidInputError(f"{field_name} must be >= {minimum}, got: {value}")
    return value


def coerce_datetime(value: Any, field_name: str) -> datetime:
    """Require a datetime; naive values are taken as UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise InvalidInputError(f"{field_name} is not an ISO datetime: {value!r}")
    if not isinstance(value, datetime):
        raise InvalidInputError(
            f"{field_name} must be a datetime, got: {type(value).__name__}"
        )
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def require_text(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidInputError(f"{field_name} must be a non-empty string")
    return value


# =============================================================================
# Pool and Price Snapshots
# =============================================================================

@dataclass(frozen=True)
class AssetRatio:
    """
    Amounts of asset A and asset B defining a price (A per B).

    Input Constraints: both amounts strictly positive integers
    """

    asset_a_amount: int
    asset_b_amount: int

    def __post_init__(self) -> None:
        coerce_int(self.asset_a_amount, "asset_a_amount", minimum=0)
        coerce_int(self.asset_b_amount, "asset_b_amount", minimum=0)
        if self.asset_b_amount == 0:
            raise DivisionByZeroError(
                "asset_b_amount is the price denominator and must not be zero"
            )
        if self.asset_a_amount == 0:
            raise InvalidInputError("asset_a_amount must be strictly positive")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_a_amount": str(self.asset_a_amount),
            "asset_b_amount": str(self.asset_b_amount),
        }


@dataclass(frozen=True)
class PoolState:
    """
    Constant-product pool snapshot.

    reserve_a * reserve_b is the invariant at rest between trades.
    total_lp_tokens must be positive whenever reserves are non-zero.
    """

    reserve_a: int
    reserve_b: int
    total_lp_tokens: int
    last_update_time: datetime

    def __post_init__(self) -> None:
        coerce_int(self.reserve_a, "reserve_a")
        coerce_int(self.reserve_b, "reserve_b")
        coerce_int(self.total_lp_tokens, "total_lp_tokens")
        _set(self, "last_update_time", coerce_datetime(self.last_update_time, "last_update_time"))
        if (self.reserve_a > 0 or self.reserve_b > 0) and self.total_lp_tokens == 0:
            raise InvalidInputError(
                "total_lp_tokens must be positive while the pool holds liquidity"
            )

    @property
    def invariant(self) -> int:
        return self.reserve_a * self.reserve_b

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reserve_a": str(self.reserve_a),
            "reserve_b": str(self.reserve_b),
            "total_lp_tokens": str(self.total_lp_tokens),
            "last_update_time": self.last_update_time.isoformat(),
        }


@dataclass(frozen=True)
class ILRecord:
    """
    One impermanent-loss evaluation.

    il_percentage_bps is signed; negative denotes loss. hodl_value and
    lp_value are in the unit of the original deposit.
    """

    initial_ratio: AssetRatio
    current_ratio: AssetRatio
    il_percentage_bps: int
    hodl_value: int
    lp_value: int

    def __post_init__(self) -> None:
        coerce_int(self.il_percentage_bps, "il_percentage_bps", minimum=None)
        coerce_int(self.hodl_value, "hodl_value")
        coerce_int(self.lp_value, "lp_value")

    @property
    def is_loss(self) -> bool:
        return self.il_percentage_bps < 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "initial_ratio": self.initial_ratio.to_dict(),
            "current_ratio": self.current_ratio.to_dict(),
            "il_percentage_bps": self.il_percentage_bps,
            "hodl_value": str(self.hodl_value),
            "lp_value": str(self.lp_value),
        }


# =============================================================================
# Decision / Proof / Execution
# =============================================================================

@dataclass(frozen=True)
class Decision:
    """
    Protective action decided by an agent.

    ============================================================================
    DECISION FIELDS:
    ============================================================================
    - decision_id: Unique identifier
    - agent_id: Deciding agent (also the attested agent address)
    - action: DELEGATE | WITHDRAW | REBALANCE
    - amount: Amount to move (Decimal)
    - target_pool: Pool identifier
    - il_impact_bps: Expected IL impact in basis points (Decimal)
    - expected_gas: Expected gas/fee units
    - timestamp: When the decision was made
    ============================================================================
    """

    decision_id: str
    agent_id: str
    action: DecisionAction
    amount: Decimal
    target_pool: str
    il_impact_bps: Decimal
    expected_gas: int
    timestamp: datetime

    def __post_init__(self) -> None:
        require_text(self.decision_id, "decision_id")
        require_text(self.agent_id, "agent_id")
        require_text(self.target_pool, "target_pool")
        _set(self, "action", coerce_enum(DecisionAction, self.action, "action"))
        _set(self, "amount", coerce_decimal(self.amount, "amount"))
        _set(self, "il_impact_bps", coerce_decimal(self.il_impact_bps, "il_impact_bps", allow_negative=True))
        coerce_int(self.expected_gas, "expected_gas")
        _set(self, "timestamp", coerce_datetime(self.timestamp, "timestamp"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision_id": self.decision_id,
            "agent_id": self.agent_id,
            "action": self.action.value,
            "amount": str(self.amount),
            "target_pool": self.target_pool,
            "il_impact_bps": str(self.il_impact_bps),
            "expected_gas": self.expected_gas,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ProofPublicInputs:
    """Public inputs carried by an attestation."""

    il_limit_bps: int
    agent_address: str
    policy_hash: str

    def __post_init__(self) -> None:
        coerce_int(self.il_limit_bps, "il_limit_bps")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "il_limit_bps": self.il_limit_bps,
            "agent_address": self.agent_address,
            "policy_hash": self.policy_hash,
        }


@dataclass(frozen=True)
class Proof:
    """
    Attestation bound to one decision, valid until expires_at.

    attestation_blob is opaque: verification checks only its presence.
    """

    proof_id: str
    decision_hash: str
    public_inputs: ProofPublicInputs
    attestation_blob: str
    expires_at: datetime
    issued_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_text(self.proof_id, "proof_id")
        if not isinstance(self.decision_hash, str):
            raise InvalidInputError("decision_hash must be a string")
        if not isinstance(self.attestation_blob, str):
            raise InvalidInputError("attestation_blob must be a string")
        _set(self, "expires_at", coerce_datetime(self.expires_at, "expires_at"))
        if self.issued_at is not None:
            _set(self, "issued_at", coerce_datetime(self.issued_at, "issued_at"))

    def is_expired(self, now: datetime) -> bool:
        """Expired strictly after expires_at."""
        return coerce_datetime(now, "now") > self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof_id": self.proof_id,
            "decision_hash": self.decision_hash,
            "public_inputs": self.public_inputs.to_dict(),
            "attestation_blob": self.attestation_blob,
            "expires_at": self.expires_at.isoformat(),
            "issued_at": self.issued_at.isoformat() if self.issued_at else None,
        }


@dataclass(frozen=True)
class ExecutionRecord:
    """Settled transaction as reported by the execution layer."""

    tx_hash: str
    action: DecisionAction
    amount: Decimal
    target_pool: str
    il_impact_bps: Decimal
    gas_used: int
    timestamp: datetime
    block_number: int

    def __post_init__(self) -> None:
        require_text(self.tx_hash, "tx_hash")
        if not isinstance(self.target_pool, str):
            raise InvalidInputError("target_pool must be a string")
        _set(self, "action", coerce_enum(DecisionAction, self.action, "action"))
        _set(self, "amount", coerce_decimal(self.amount, "amount"))
        _set(self, "il_impact_bps", coerce_decimal(self.il_impact_bps, "il_impact_bps", allow_negative=True))
        coerce_int(self.gas_used, "gas_used")
        coerce_int(self.block_number, "block_number")
        _set(self, "timestamp", coerce_datetime(self.timestamp, "timestamp"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tx_hash": self.tx_hash,
            "action": self.action.value,
            "amount": str(self.amount),
            "target_pool": self.target_pool,
            "il_impact_bps": str(self.il_impact_bps),
            "gas_used": self.gas_used,
            "timestamp": self.timestamp.isoformat(),
            "block_number": self.block_number,
        }


# =============================================================================
# Verification Records
# =============================================================================

@dataclass(frozen=True)
class Mismatch:
    """
    One verification finding.

    tolerance is the relative tolerance applied (fraction of the decided
    value), or None for exact checks.
    """

    kind: MismatchKind
    expected: Any
    actual: Any
    tolerance: Optional[Decimal] = None

    @property
    def error_code(self) -> str:
        return MISMATCH_ERROR_CODES[self.kind]

    def describe(self) -> str:
        """Human-readable rendering of the finding."""
        expected, actual = _plain(self.expected), _plain(self.actual)
        if self.kind is MismatchKind.ACTION:
            return f"Action mismatch: decided [{expected}] but executed [{actual}]"
        if self.kind is MismatchKind.AMOUNT:
            return f"Amount mismatch: decided [{expected}] but executed [{actual}]"
        if self.kind is MismatchKind.TARGET_POOL:
            return f"Pool mismatch: decided [{expected}] but executed [{actual}]"
        if self.kind is MismatchKind.IL_IMPACT:
            return f"IL impact exceeded: decided [{expected} bps] but got [{actual} bps]"
        if self.kind is MismatchKind.GAS:
            return f"Gas exceeded: expected [{expected}] but used [{actual}]"
        if self.kind is MismatchKind.PROOF_EXPIRED:
            return f"Proof has expired: valid until [{expected}] but checked at [{actual}]"
        if self.kind is MismatchKind.DECISION_HASH:
            return "Proof decision hash does not match"
        return "Proof attestation is missing"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "error_code": self.error_code,
            "expected": _plain(self.expected),
            "actual": _plain(self.actual),
            "tolerance": str(self.tolerance) if self.tolerance is not None else None,
            "message": self.describe(),
        }


def _plain(value: Any) -> Any:
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass(frozen=True)
class VerificationResult:
    """
    Audit record of one verification, produced once per (decision_id, tx_hash).

    passed is True exactly when mismatches is empty; action follows passed.
    """

    decision_id: str
    tx_hash: str
    passed: bool
    mismatches: Tuple[Mismatch, ...]
    action: VerdictAction
    verified_at: datetime

    def __post_init__(self) -> None:
        _set(self, "mismatches", tuple(self.mismatches))
        if self.passed != (len(self.mismatches) == 0):
            raise InvalidInputError("passed must equal (mismatches is empty)")
        expected_action = VerdictAction.COMMIT if self.passed else VerdictAction.ROLLBACK
        if self.action is not expected_action:
            raise InvalidInputError(
                f"action must be {expected_action.value} when passed={self.passed}"
            )

    @property
    def key(self) -> Tuple[str, str]:
        return (self.decision_id, self.tx_hash)

    @property
    def mismatch_kinds(self) -> Tuple[MismatchKind, ...]:
        return tuple(m.kind for m in self.mismatches)

    def describe(self) -> str:
        if self.passed:
            return f"{self.action.value}: all checks passed"
        lines = [f"{self.action.value}: {len(self.mismatches)} mismatch(es)"]
        lines.extend(f"  - {m.describe()}" for m in self.mismatches)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "decision_id": self.decision_id,
            "tx_hash": self.tx_hash,
            "passed": self.passed,
            "mismatches": [m.to_dict() for m in self.mismatches],
            "action": self.action.value,
            "verified_at": self.verified_at.isoformat(),
        }


# =============================================================================
# Policy Evaluation Records
# =============================================================================

@dataclass(frozen=True)
class ILPolicy:
    """
    Per-vault IL protection policy.

    max_il_bps: loss limit in basis points (sign ignored)
    notification_threshold_bps: alert level below the limit (0 disables)
    """

    max_il_bps: int
    notification_threshold_bps: int = 0
    auto_exit_enabled: bool = True
    emergency_withdraw: bool = True
    policy_hash: str = ""

    def __post_init__(self) -> None:
        coerce_int(self.max_il_bps, "max_il_bps", minimum=None)
        coerce_int(self.notification_threshold_bps, "notification_threshold_bps")


@dataclass(frozen=True)
class PositionEvaluation:
    """Outcome of evaluating one IL reading against a policy."""

    violates: bool
    urgency: Urgency
    recommendation: Recommendation
    excess_bps: int
    estimated_loss: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "violates": self.violates,
            "urgency": self.urgency.value,
            "recommendation": self.recommendation.value,
            "excess_bps": self.excess_bps,
            "estimated_loss": str(self.estimated_loss),
        }


@dataclass(frozen=True)
class ProtectionTrigger:
    """Request for protective action on a vault."""

    vault_id: str
    current_il_bps: int
    max_allowed_bps: int
    recommended_action: TriggerAction
    urgency: Urgency
    estimated_loss: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vault_id": self.vault_id,
            "current_il_bps": self.current_il_bps,
            "max_allowed_bps": self.max_allowed_bps,
            "recommended_action": self.recommended_action.value,
            "urgency": self.urgency.value,
            "estimated_loss": str(self.estimated_loss),
        }


# =============================================================================
# Threshold Value Objects
# =============================================================================

@dataclass(frozen=True)
class ToleranceBands:
    """Relative tolerances used by verification (fractions, e.g. 0.001)."""

    amount: Decimal = field(default_factory=lambda: Decimal("0.001"))
    il_impact: Decimal = field(default_factory=lambda: Decimal("0.05"))
    gas: Decimal = field(default_factory=lambda: Decimal("0.50"))

    def __post_init__(self) -> None:
        for name in ("amount", "il_impact", "gas"):
            _set(self, name, coerce_decimal(getattr(self, name), f"tolerance.{name}"))


@dataclass(frozen=True)
class UrgencyTiers:
    """Excess-bps boundaries; each bound is inclusive on the lower tier."""

    low_max_bps: int = 100
    medium_max_bps: int = 500

    def __post_init__(self) -> None:
        coerce_int(self.low_max_bps, "low_max_bps", minimum=None)
        coerce_int(self.medium_max_bps, "medium_max_bps", minimum=None)
        if self.low_max_bps > self.medium_max_bps:
            raise InvalidInputError(
                f"low_max_bps ({self.low_max_bps}) must not exceed "
                f"medium_max_bps ({self.medium_max_bps})"
            )


@dataclass(frozen=True)
class AlertRule:
    """Approach-the-limit alert: |IL| above threshold_ratio*limit and moving fast."""

    threshold_ratio: Decimal = field(default_factory=lambda: Decimal("0.80"))
    trend_bps: int = 50

    def __post_init__(self) -> None:
        _set(self, "threshold_ratio", coerce_decimal(self.threshold_ratio, "threshold_ratio"))
        coerce_int(self.trend_bps, "trend_bps")


DEFAULT_TOLERANCES = ToleranceBands()
DEFAULT_URGENCY_TIERS = UrgencyTiers()
DEFAULT_ALERT_RULE = AlertRule()


__all__ = [
    # Enums
    "DecisionAction",
    "Urgency",
    "Recommendation",
    "TriggerAction",
    "VerdictAction",
    "MismatchKind",
    "MISMATCH_ERROR_CODES",
    # Encoder and helpers
    "ILGuardJSONEncoder",
    "coerce_enum",
    "coerce_decimal",
    "coerce_int",
    "coerce_datetime",
    # Records
    "AssetRatio",
    "PoolState",
    "ILRecord",
    "Decision",
    "ProofPublicInputs",
    "Proof",
    "ExecutionRecord",
    "Mismatch",
    "VerificationResult",
    "ILPolicy",
    "PositionEvaluation",
    "ProtectionTrigger",
    # Thresholds
    "ToleranceBands",
    "UrgencyTiers",
    "AlertRule",
    "DEFAULT_TOLERANCES",
    "DEFAULT_URGENCY_TIERS",
    "DEFAULT_ALERT_RULE",
]
