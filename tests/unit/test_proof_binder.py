"""
Unit Tests for the Proof Binder

Reliability Level: SOVEREIGN TIER

Tests decision hashing and proof binding:
- Hash determinism and the fields it covers
- Proof identity, public inputs and expiry (now + TTL)
- Attestation blob content
- Local pre-flight check
"""

import pytest
import os
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from yield_guard.proof_binder import (
    ATTESTATION_CIRCUIT,
    DecisionHasher,
    ProofBinder,
    hash_decision,
    bind_proof,
    check_proof_locally,
    decode_attestation_blob,
)
from yield_guard.il_models import Decision, DecisionAction
from yield_guard.il_errors import InvalidInputError


# =============================================================================
# Helpers
# =============================================================================

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
POLICY_HASH = "0x" + "ab" * 32


def make_decision(**overrides) -> Decision:
    fields = dict(
        decision_id="dec-001",
        agent_id="agent-7",
        action=DecisionAction.WITHDRAW,
        amount=Decimal("1000"),
        target_pool="pool-eth-usdc",
        il_impact_bps=Decimal("120"),
        expected_gas=200_000,
        timestamp=NOW,
    )
    fields.update(overrides)
    return Decision(**fields)


# =============================================================================
# Decision Hasher
# =============================================================================

class TestDecisionHasher:
    """Test the decision content hash."""

    def test_hex_sha256(self) -> None:
        digest = DecisionHasher.compute(make_decision())
        assert len(digest) == 64
        int(digest, 16)

    def test_deterministic(self) -> None:
        assert DecisionHasher.compute(make_decision()) == DecisionHasher.compute(make_decision())

    def test_unhashed_fields_ignored(self) -> None:
        other = make_decision(
            decision_id="dec-002",
            expected_gas=1,
            timestamp=NOW + timedelta(days=1),
        )
        assert hash_decision(other) == hash_decision(make_decision())

    @pytest.mark.parametrize("field_name,value", [
        ("action", DecisionAction.REBALANCE),
        ("amount", Decimal("1000.01")),
        ("target_pool", "pool-btc-usdc"),
        ("il_impact_bps", Decimal("121")),
        ("agent_id", "agent-8"),
    ])
    def test_hashed_fields_change_hash(self, field_name: str, value) -> None:
        changed = make_decision(**{field_name: value})
        assert hash_decision(changed) != hash_decision(make_decision())

    def test_decimal_representation_normalized(self) -> None:
        assert hash_decision(make_decision(amount=Decimal("1000.00"))) == hash_decision(make_decision())

    def test_matches(self) -> None:
        decision = make_decision()
        assert DecisionHasher.matches(decision, hash_decision(decision)) is True
        assert DecisionHasher.matches(decision, "0" * 64) is False
        assert DecisionHasher.matches(decision, "") is False


# =============================================================================
# Proof Binder
# =============================================================================

class TestProofBinder:
    """Test proof binding."""

    def test_bind(self) -> None:
        decision = make_decision()
        proof = ProofBinder(il_limit_bps=500, ttl_seconds=3600).bind(decision, POLICY_HASH, NOW)

        assert proof.proof_id == "proof_dec-001"
        assert proof.decision_hash == hash_decision(decision)
        assert proof.public_inputs.il_limit_bps == 500
        assert proof.public_inputs.agent_address == "agent-7"
        assert proof.public_inputs.policy_hash == POLICY_HASH
        assert proof.issued_at == NOW
        assert proof.expires_at == NOW + timedelta(seconds=3600)

    def test_ttl_override(self) -> None:
        proof = ProofBinder().bind(make_decision(), POLICY_HASH, NOW, ttl=timedelta(minutes=5))
        assert proof.expires_at == NOW + timedelta(minutes=5)

    def test_bind_proof_function(self) -> None:
        proof = bind_proof(make_decision(), POLICY_HASH, 600, NOW)
        assert proof.expires_at == NOW + timedelta(seconds=600)

    def test_empty_policy_hash(self) -> None:
        with pytest.raises(InvalidInputError):
            ProofBinder().bind(make_decision(), "", NOW)

    def test_non_positive_ttl(self) -> None:
        with pytest.raises(InvalidInputError):
            ProofBinder().bind(make_decision(), POLICY_HASH, NOW, ttl=0)
        with pytest.raises(InvalidInputError):
            ProofBinder(ttl_seconds=-1)

    def test_negative_il_limit(self) -> None:
        with pytest.raises(InvalidInputError):
            ProofBinder(il_limit_bps=-1)

    def test_bind_batch(self) -> None:
        decisions = [make_decision(decision_id=f"dec-{i}") for i in range(3)]
        proofs = ProofBinder().bind_batch(decisions, POLICY_HASH, NOW)
        assert [p.proof_id for p in proofs] == ["proof_dec-0", "proof_dec-1", "proof_dec-2"]


class TestAttestationBlob:
    """Test the attestation statement."""

    def test_content(self) -> None:
        decision = make_decision()
        proof = ProofBinder(il_limit_bps=500).bind(decision, POLICY_HASH, NOW)
        statement = decode_attestation_blob(proof.attestation_blob)

        assert statement == {
            "circuit": ATTESTATION_CIRCUIT,
            "decision_hash": proof.decision_hash,
            "il_verified": True,
            "agent_verified": True,
            "policy_verified": True,
        }

    def test_il_over_limit_not_verified(self) -> None:
        proof = ProofBinder(il_limit_bps=500).bind(
            make_decision(il_impact_bps=Decimal("-800")), POLICY_HASH, NOW
        )
        assert decode_attestation_blob(proof.attestation_blob)["il_verified"] is False

    def test_undecodable(self) -> None:
        with pytest.raises(InvalidInputError):
            decode_attestation_blob("not base64!")


class TestCheckProofLocally:
    """Test the local pre-flight check."""

    def test_fresh_proof(self) -> None:
        proof = ProofBinder().bind(make_decision(), POLICY_HASH, NOW)
        assert check_proof_locally(proof, NOW) is True

    def test_expiry_boundary(self) -> None:
        proof = ProofBinder(ttl_seconds=60).bind(make_decision(), POLICY_HASH, NOW)
        assert check_proof_locally(proof, NOW + timedelta(seconds=60)) is True
        assert check_proof_locally(proof, NOW + timedelta(seconds=61)) is False

    def test_missing_attestation(self) -> None:
        proof = ProofBinder().bind(make_decision(), POLICY_HASH, NOW)
        assert check_proof_locally(replace(proof, attestation_blob=""), NOW) is False

    def test_incomplete_public_inputs(self) -> None:
        proof = ProofBinder().bind(make_decision(), POLICY_HASH, NOW)
        inputs = replace(proof.public_inputs, policy_hash="")
        assert check_proof_locally(replace(proof, public_inputs=inputs), NOW) is False
