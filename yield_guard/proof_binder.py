"""
============================================================================
Yield Guard v1.0.0
Proof Binder - Decision Hashing and Attestation Binding
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Input Constraints: Validated Decision, non-empty policy hash, explicit now
Side Effects: Logs bindings, updates proof metrics

A Proof ties one Decision to an attestation with a bounded lifetime:

    decision_hash = sha256(canonical_json(action, amount, target_pool,
                                          il_impact_bps, agent_id))
    proof_id      = "proof_<decision_id>"
    expires_at    = now + ttl

The attestation blob is base64 of a canonical JSON statement. Verification
never looks inside it; a real zero-knowledge proof can take its place
without touching the verification contract.

============================================================================
"""

from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Union
import base64
import hashlib
import hmac
import json
import logging

from yield_guard.il_config import (
    DEFAULT_IL_LIMIT_BPS,
    DEFAULT_PROOF_TTL_SECONDS,
)
from yield_guard.il_errors import InvalidInputError
from yield_guard.il_models import (
    Decision,
    Proof,
    ProofPublicInputs,
    ILGuardJSONEncoder,
    coerce_datetime,
)
from yield_guard.il_metrics import record_proof_bound

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

ATTESTATION_CIRCUIT = "verify_decision_execution"
PROOF_ID_PREFIX = "proof_"

TTL = Union[int, timedelta]


# =============================================================================
# Decision Hasher
# =============================================================================

class DecisionHasher:
    """
    SHA-256 content hash of the decision fields that matter for execution.

    ============================================================================
    HASHABLE FIELDS:
    ============================================================================
    - action
    - amount
    - target_pool
    - il_impact_bps
    - agent_id

    decision_id, expected_gas and timestamp are NOT hashed: two decisions
    asking for the same action on the same pool hash identically.
    ============================================================================

    Decimals are hashed in normalized fixed notation, so 1000 and 1000.00
    produce the same hash.
    """

    HASHABLE_FIELDS: List[str] = [
        "action",
        "amount",
        "target_pool",
        "il_impact_bps",
        "agent_id",
    ]

    @staticmethod
    def canonical_payload(decision: Decision) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for field_name in DecisionHasher.HASHABLE_FIELDS:
            value = getattr(decision, field_name)
            if isinstance(value, Decimal):
                payload[field_name] = _canonical_decimal(value)
            elif isinstance(value, Enum):
                payload[field_name] = value.value
            else:
                payload[field_name] = value
        return payload

    @staticmethod
    def compute(decision: Decision) -> str:
        """
        Hex-encoded SHA-256 (64 characters) of the canonical payload.

        Canonical JSON: sorted keys, no whitespace, UTF-8.
        """
        json_str = json.dumps(
            DecisionHasher.canonical_payload(decision),
            sort_keys=True,
            separators=(",", ":"),
            cls=ILGuardJSONEncoder
        )
        return hashlib.sha256(json_str.encode("utf-8")).hexdigest()

    @staticmethod
    def matches(decision: Decision, decision_hash: str) -> bool:
        """
        Constant-time comparison against a recomputed hash.

        Compared as UTF-8 bytes: compare_digest rejects non-ASCII str.
        surrogatepass keeps lone surrogates comparable instead of raising.
        """
        computed = DecisionHasher.compute(decision)
        return hmac.compare_digest(
            computed.encode("utf-8"),
            (decision_hash or "").encode("utf-8", "surrogatepass"),
        )


def _canonical_decimal(value: Decimal) -> str:
    if value == 0:
        return "0"
    return format(value.normalize(), "f")


def hash_decision(decision: Decision) -> str:
    return DecisionHasher.compute(decision)


# =============================================================================
# Attestation Blob
# =============================================================================

def build_attestation_blob(
    decision: Decision,
    decision_hash: str,
    il_limit_bps: int,
    policy_hash: str
) -> str:
    """Base64 of the canonical attestation statement."""
    statement = {
        "circuit": ATTESTATION_CIRCUIT,
        "decision_hash": decision_hash,
        "il_verified": abs(decision.il_impact_bps) <= il_limit_bps,
        "agent_verified": bool(decision.agent_id),
        "policy_verified": bool(policy_hash),
    }
    json_str = json.dumps(statement, sort_keys=True, separators=(",", ":"))
    return base64.b64encode(json_str.encode("utf-8")).decode("ascii")


def decode_attestation_blob(blob: str) -> Dict[str, Any]:
    """
    Decode a blob produced by build_attestation_blob.

    Raises:
        InvalidInputError: If the blob is not base64 JSON
    """
    try:
        return json.loads(base64.b64decode(blob.encode("ascii"), validate=True))
    except (ValueError, UnicodeError) as e:
        raise InvalidInputError(f"Attestation blob is not decodable: {e}")


# =============================================================================
# Proof Binder
# =============================================================================

class ProofBinder:
    """
    Binds decisions to proofs.

    Reliability Level: L6 Critical (Sovereign Tier)
    Input Constraints: il_limit_bps >= 0, ttl_seconds > 0
    Side Effects: Logs, metrics

    USAGE:
        binder = ProofBinder(il_limit_bps=500, ttl_seconds=3600)
        proof = binder.bind(decision, policy_hash="0xabc", now=now)
    """

    def __init__(
        self,
        il_limit_bps: int = DEFAULT_IL_LIMIT_BPS,
        ttl_seconds: int = DEFAULT_PROOF_TTL_SECONDS
    ) -> None:
        if il_limit_bps < 0:
            raise InvalidInputError(f"il_limit_bps must be non-negative, got: {il_limit_bps}")
        self.il_limit_bps = il_limit_bps
        self.ttl = _ttl_delta(ttl_seconds)

        logger.debug(
            f"[PROOF-BINDER] Initialized | il_limit_bps={il_limit_bps} | "
            f"ttl_seconds={int(self.ttl.total_seconds())}"
        )

    def bind(
        self,
        decision: Decision,
        policy_hash: str,
        now: datetime,
        ttl: Optional[TTL] = None,
        correlation_id: Optional[str] = None
    ) -> Proof:
        """
        Produce the Proof for one decision.

        Args:
            decision: Validated decision
            policy_hash: Hash of the vault policy the decision was made under
            now: Binding time (issued_at)
            ttl: Lifetime override (seconds or timedelta)
            correlation_id: Audit trail identifier (defaults to decision_id)

        Returns:
            Proof with decision_hash = hash(decision), expires_at = now + ttl

        Raises:
            InvalidInputError: If policy_hash is empty or ttl is not positive
        """
        correlation_id = correlation_id or decision.decision_id
        if not isinstance(policy_hash, str) or not policy_hash.strip():
            logger.error(
                f"[ILG-001] Cannot bind proof without a policy hash | "
                f"decision_id={decision.decision_id} | correlation_id={correlation_id}"
            )
            raise InvalidInputError("policy_hash must be a non-empty string")

        lifetime = self.ttl if ttl is None else _ttl_delta(ttl)
        issued_at = coerce_datetime(now, "now")
        decision_hash = DecisionHasher.compute(decision)

        proof = Proof(
            proof_id=f"{PROOF_ID_PREFIX}{decision.decision_id}",
            decision_hash=decision_hash,
            public_inputs=ProofPublicInputs(
                il_limit_bps=self.il_limit_bps,
                agent_address=decision.agent_id,
                policy_hash=policy_hash,
            ),
            attestation_blob=build_attestation_blob(
                decision, decision_hash, self.il_limit_bps, policy_hash
            ),
            expires_at=issued_at + lifetime,
            issued_at=issued_at,
        )

        logger.info(
            f"[PROOF-BIND] Proof bound to decision | proof_id={proof.proof_id} | "
            f"decision_hash={decision_hash[:16]}... | "
            f"expires_at={proof.expires_at.isoformat()} | correlation_id={correlation_id}"
        )
        record_proof_bound(proof.proof_id)
        return proof

    def bind_batch(
        self,
        decisions: Iterable[Decision],
        policy_hash: str,
        now: datetime
    ) -> List[Proof]:
        """Bind several decisions at the same instant, preserving order."""
        proofs = [self.bind(decision, policy_hash, now) for decision in decisions]
        logger.info(f"[PROOF-BIND] Batch bound | count={len(proofs)}")
        return proofs


def _ttl_delta(ttl: TTL) -> timedelta:
    if isinstance(ttl, timedelta):
        delta = ttl
    elif isinstance(ttl, int) and not isinstance(ttl, bool):
        delta = timedelta(seconds=ttl)
    else:
        raise InvalidInputError(f"ttl must be seconds or timedelta, got: {type(ttl).__name__}")
    if delta <= timedelta(0):
        raise InvalidInputError(f"ttl must be positive, got: {delta}")
    return delta


# =============================================================================
# Module-Level Operations
# =============================================================================

def bind_proof(
    decision: Decision,
    policy_hash: str,
    ttl: TTL,
    now: datetime,
    il_limit_bps: int = DEFAULT_IL_LIMIT_BPS
) -> Proof:
    """Bind one decision with an explicit TTL."""
    return ProofBinder(il_limit_bps=il_limit_bps, ttl_seconds=DEFAULT_PROOF_TTL_SECONDS).bind(
        decision, policy_hash, now, ttl=ttl
    )


def check_proof_locally(proof: Proof, now: datetime) -> bool:
    """
    Cheap pre-flight check before execution.

    True when the attestation is present, the public inputs are filled in
    and the proof has not expired at now.
    """
    if not proof.attestation_blob:
        logger.warning(f"[PROOF-CHECK] Attestation missing | proof_id={proof.proof_id}")
        return False

    inputs = proof.public_inputs
    if not inputs.agent_address or not inputs.policy_hash:
        logger.warning(f"[PROOF-CHECK] Public inputs incomplete | proof_id={proof.proof_id}")
        return False

    if proof.is_expired(now):
        logger.warning(
            f"[PROOF-CHECK] Proof expired | proof_id={proof.proof_id} | "
            f"expires_at={proof.expires_at.isoformat()}"
        )
        return False

    return True


def create_proof_binder_from_config() -> ProofBinder:
    """Create a ProofBinder with IL limit and TTL from the environment config."""
    from yield_guard.il_config import get_il_guard_config

    config = get_il_guard_config()
    return ProofBinder(
        il_limit_bps=config.il_limit_bps,
        ttl_seconds=config.proof_ttl_seconds,
    )


__all__ = [
    "ATTESTATION_CIRCUIT",
    "PROOF_ID_PREFIX",
    "DecisionHasher",
    "hash_decision",
    "build_attestation_blob",
    "decode_attestation_blob",
    "ProofBinder",
    "bind_proof",
    "check_proof_locally",
    "create_proof_binder_from_config",
]
