"""
Unit Tests for the Verification Engine

Reliability Level: SOVEREIGN TIER

Tests COMMIT / ROLLBACK verdicts:
- Matching execution commits
- Each check independently produces its mismatch
- Tolerance boundaries (0.1% amount, 5% IL impact, 50% gas)
- Expiry alone forces ROLLBACK
- All checks run even after an early failure

Error Codes:
- ILG-050..ILG-057: Verification mismatches (reported as data)
"""

import pytest
import os
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from yield_guard.verification_engine import (
    VerificationEngine,
    verify,
    within_tolerance,
)
from yield_guard.proof_binder import ProofBinder
from yield_guard.il_models import (
    Decision,
    DecisionAction,
    ExecutionRecord,
    MismatchKind,
    VerdictAction,
    ToleranceBands,
)


# =============================================================================
# Helpers
# =============================================================================

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
POLICY_HASH = "0x" + "cd" * 32


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


def make_execution(decision: Decision, **overrides) -> ExecutionRecord:
    """Execution that reproduces the decision exactly unless overridden."""
    fields = dict(
        tx_hash="0xtx001",
        action=decision.action,
        amount=decision.amount,
        target_pool=decision.target_pool,
        il_impact_bps=decision.il_impact_bps,
        gas_used=decision.expected_gas,
        timestamp=NOW + timedelta(minutes=2),
        block_number=19_000_000,
    )
    fields.update(overrides)
    return ExecutionRecord(**fields)


def bind(decision: Decision):
    return ProofBinder(il_limit_bps=500, ttl_seconds=3600).bind(decision, POLICY_HASH, NOW)


VERIFY_AT = NOW + timedelta(minutes=5)


# =============================================================================
# Verdicts
# =============================================================================

class TestCommit:
    """Test the passing path."""

    def test_matching_execution_commits(self) -> None:
        decision = make_decision()
        result = VerificationEngine().verify(decision, make_execution(decision), bind(decision), VERIFY_AT)

        assert result.passed is True
        assert result.action is VerdictAction.COMMIT
        assert result.mismatches == ()
        assert result.decision_id == "dec-001"
        assert result.tx_hash == "0xtx001"
        assert result.verified_at == VERIFY_AT

    def test_module_level_verify(self) -> None:
        decision = make_decision()
        result = verify(decision, make_execution(decision), bind(decision), VERIFY_AT)
        assert result.action is VerdictAction.COMMIT


class TestRollback:
    """Test individual mismatches."""

    def test_amount_deviation(self) -> None:
        decision = make_decision()
        execution = make_execution(decision, amount=Decimal("1200"))
        result = VerificationEngine().verify(decision, execution, bind(decision), VERIFY_AT)

        assert result.passed is False
        assert result.action is VerdictAction.ROLLBACK
        assert result.mismatch_kinds == (MismatchKind.AMOUNT,)
        mismatch = result.mismatches[0]
        assert mismatch.expected == Decimal("1000")
        assert mismatch.actual == Decimal("1200")
        assert mismatch.tolerance == Decimal("0.001")
        assert mismatch.error_code == "ILG-051"
        assert "Amount mismatch: decided [1000] but executed [1200]" in result.describe()

    def test_amount_failure_does_not_stop_later_checks(self) -> None:
        decision = make_decision()
        execution = make_execution(decision, amount=Decimal("1200"), target_pool="pool-other")
        proof = bind(decision)
        result = VerificationEngine().verify(
            decision, execution, proof, proof.expires_at + timedelta(seconds=1)
        )
        assert result.mismatch_kinds == (
            MismatchKind.AMOUNT,
            MismatchKind.TARGET_POOL,
            MismatchKind.PROOF_EXPIRED,
        )

    def test_action_mismatch(self) -> None:
        decision = make_decision()
        execution = make_execution(decision, action=DecisionAction.DELEGATE)
        result = VerificationEngine().verify(decision, execution, bind(decision), VERIFY_AT)
        assert result.mismatch_kinds == (MismatchKind.ACTION,)
        assert result.mismatches[0].tolerance is None
        assert result.mismatches[0].describe() == (
            "Action mismatch: decided [withdraw] but executed [delegate]"
        )

    def test_expiry_alone_forces_rollback(self) -> None:
        decision = make_decision()
        proof = bind(decision)
        result = VerificationEngine().verify(
            decision, make_execution(decision), proof, proof.expires_at + timedelta(microseconds=1)
        )
        assert result.action is VerdictAction.ROLLBACK
        assert result.mismatch_kinds == (MismatchKind.PROOF_EXPIRED,)

    def test_expiry_boundary_inclusive(self) -> None:
        decision = make_decision()
        proof = bind(decision)
        result = VerificationEngine().verify(decision, make_execution(decision), proof, proof.expires_at)
        assert result.action is VerdictAction.COMMIT

    def test_tampered_hash(self) -> None:
        decision = make_decision()
        proof = replace(bind(decision), decision_hash="0" * 64)
        result = VerificationEngine().verify(decision, make_execution(decision), proof, VERIFY_AT)
        assert result.mismatch_kinds == (MismatchKind.DECISION_HASH,)

    @pytest.mark.parametrize("tampered", ["é" * 64, "ｆ" * 64, "\u0000", "0xπ", "\ud800" * 64])
    def test_non_ascii_hash_reported_as_mismatch(self, tampered: str) -> None:
        decision = make_decision()
        proof = replace(bind(decision), decision_hash=tampered)
        result = VerificationEngine().verify(decision, make_execution(decision), proof, VERIFY_AT)
        assert result.action is VerdictAction.ROLLBACK
        assert result.mismatch_kinds == (MismatchKind.DECISION_HASH,)
        assert result.mismatches[0].actual == tampered

    def test_proof_for_other_decision(self) -> None:
        decision = make_decision()
        other_proof = bind(make_decision(amount=Decimal("5000")))
        result = VerificationEngine().verify(decision, make_execution(decision), other_proof, VERIFY_AT)
        assert result.mismatch_kinds == (MismatchKind.DECISION_HASH,)

    def test_missing_attestation(self) -> None:
        decision = make_decision()
        proof = replace(bind(decision), attestation_blob="")
        result = VerificationEngine().verify(decision, make_execution(decision), proof, VERIFY_AT)
        assert result.mismatch_kinds == (MismatchKind.ATTESTATION_MISSING,)

    def test_every_check_fails(self) -> None:
        decision = make_decision()
        execution = make_execution(
            decision,
            action=DecisionAction.REBALANCE,
            amount=Decimal("5000"),
            target_pool="pool-other",
            il_impact_bps=Decimal("999"),
            gas_used=10_000_000,
        )
        proof = replace(bind(decision), decision_hash="f" * 64, attestation_blob="")
        result = VerificationEngine().verify(
            decision, execution, proof, proof.expires_at + timedelta(hours=1)
        )
        assert result.mismatch_kinds == tuple(MismatchKind)
        assert len(result.to_dict()["mismatches"]) == 8


# =============================================================================
# Tolerances
# =============================================================================

class TestToleranceBoundaries:
    """Test relative tolerance edges."""

    @pytest.mark.parametrize("executed,passes", [
        (Decimal("1001"), True),
        (Decimal("999"), True),
        (Decimal("1001.01"), False),
        (Decimal("998.99"), False),
    ])
    def test_amount(self, executed: Decimal, passes: bool) -> None:
        decision = make_decision()
        result = VerificationEngine().verify(
            decision, make_execution(decision, amount=executed), bind(decision), VERIFY_AT
        )
        assert result.passed is passes

    @pytest.mark.parametrize("executed,passes", [
        (Decimal("126"), True),
        (Decimal("114"), True),
        (Decimal("126.01"), False),
    ])
    def test_il_impact(self, executed: Decimal, passes: bool) -> None:
        decision = make_decision()
        result = VerificationEngine().verify(
            decision, make_execution(decision, il_impact_bps=executed), bind(decision), VERIFY_AT
        )
        assert result.passed is passes

    @pytest.mark.parametrize("gas_used,passes", [
        (300_000, True),
        (100_000, True),
        (300_001, False),
        (99_999, False),
    ])
    def test_gas(self, gas_used: int, passes: bool) -> None:
        decision = make_decision()
        result = VerificationEngine().verify(
            decision, make_execution(decision, gas_used=gas_used), bind(decision), VERIFY_AT
        )
        assert result.passed is passes

    def test_zero_decided_amount_requires_zero(self) -> None:
        decision = make_decision(amount=Decimal("0"))
        proof = bind(decision)
        assert VerificationEngine().verify(
            decision, make_execution(decision), proof, VERIFY_AT
        ).passed is True
        assert VerificationEngine().verify(
            decision, make_execution(decision, amount=Decimal("0.0001")), proof, VERIFY_AT
        ).passed is False

    def test_custom_tolerances(self) -> None:
        decision = make_decision()
        engine = VerificationEngine(ToleranceBands(amount=Decimal("0.25")))
        result = engine.verify(
            decision, make_execution(decision, amount=Decimal("1200")), bind(decision), VERIFY_AT
        )
        assert result.passed is True

    def test_within_tolerance(self) -> None:
        assert within_tolerance(Decimal("100"), Decimal("105"), Decimal("0.05")) is True
        assert within_tolerance(Decimal("-100"), Decimal("-105"), Decimal("0.05")) is True
        assert within_tolerance(Decimal("100"), Decimal("105.1"), Decimal("0.05")) is False
        assert within_tolerance(200, 300, Decimal("0.5")) is True
