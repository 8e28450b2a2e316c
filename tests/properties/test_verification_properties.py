"""
============================================================================
Property-Based Tests for Execution Verification
============================================================================

Reliability Level: SOVEREIGN TIER

Tests the verification engine using Hypothesis.
Minimum 100 iterations per property.

Properties tested:
- An amount exactly at the tolerance edge passes; one cent beyond fails
- Every injected discrepancy is reported, in check order, and nothing else
- COMMIT if and only if no discrepancy was injected
- Any wrong decision_hash text is reported, never raised

============================================================================
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import assume, given, settings, Phase
from hypothesis import strategies as st

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from yield_guard.verification_engine import VerificationEngine, within_tolerance
from yield_guard.proof_binder import ProofBinder
from yield_guard.il_models import (
    Decision,
    DecisionAction,
    ExecutionRecord,
    MismatchKind,
    VerdictAction,
)


# =============================================================================
# HYPOTHESIS STRATEGIES
# =============================================================================

NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)
AMOUNT_TOLERANCE = Decimal("0.001")

amount_strategy = st.integers(min_value=1, max_value=10 ** 9).map(
    lambda cents: Decimal(cents) / Decimal(100)
)

kinds_strategy = st.sets(st.sampled_from(list(MismatchKind)))


def make_decision(amount: Decimal = Decimal("1000")) -> Decision:
    return Decision(
        decision_id="dec-prop",
        agent_id="agent-7",
        action=DecisionAction.WITHDRAW,
        amount=amount,
        target_pool="pool-eth-usdc",
        il_impact_bps=Decimal("120"),
        expected_gas=200_000,
        timestamp=NOW,
    )


def make_execution(decision: Decision) -> ExecutionRecord:
    return ExecutionRecord(
        tx_hash="0xtx-prop",
        action=decision.action,
        amount=decision.amount,
        target_pool=decision.target_pool,
        il_impact_bps=decision.il_impact_bps,
        gas_used=decision.expected_gas,
        timestamp=NOW + timedelta(minutes=1),
        block_number=1,
    )


# =============================================================================
# Tolerance Boundary
# =============================================================================

class TestAmountToleranceBoundary:
    """The amount band is inclusive at exactly decided * tolerance."""

    @settings(max_examples=100, phases=[Phase.generate, Phase.target])
    @given(decided=amount_strategy, above=st.booleans())
    def test_edge_passes(self, decided: Decimal, above: bool) -> None:
        edge = decided * AMOUNT_TOLERANCE
        actual = decided + edge if above else decided - edge
        assert within_tolerance(decided, actual, AMOUNT_TOLERANCE) is True

    @settings(max_examples=100, phases=[Phase.generate, Phase.target])
    @given(decided=amount_strategy)
    def test_beyond_edge_fails(self, decided: Decimal) -> None:
        actual = decided + decided * AMOUNT_TOLERANCE + Decimal("0.01")
        assert within_tolerance(decided, actual, AMOUNT_TOLERANCE) is False

    @settings(max_examples=100, phases=[Phase.generate, Phase.target])
    @given(decided=amount_strategy)
    def test_engine_agrees_at_edge(self, decided: Decimal) -> None:
        decision = make_decision(decided)
        proof = ProofBinder().bind(decision, "0xpolicy", NOW)
        execution = replace(make_execution(decision), amount=decided * (1 + AMOUNT_TOLERANCE))

        result = VerificationEngine().verify(decision, execution, proof, NOW)

        assert result.action is VerdictAction.COMMIT


# =============================================================================
# Exhaustive Reporting
# =============================================================================

class TestExhaustiveReporting:
    """Every discrepancy is reported, none are invented."""

    @settings(max_examples=100, phases=[Phase.generate, Phase.target], deadline=None)
    @given(kinds=kinds_strategy)
    def test_injected_kinds_reported_in_order(self, kinds) -> None:
        decision = make_decision()
        proof = ProofBinder(ttl_seconds=3600).bind(decision, "0xpolicy", NOW)
        execution = make_execution(decision)
        verify_at = NOW + timedelta(minutes=5)

        if MismatchKind.ACTION in kinds:
            execution = replace(execution, action=DecisionAction.DELEGATE)
        if MismatchKind.AMOUNT in kinds:
            execution = replace(execution, amount=decision.amount * 2)
        if MismatchKind.TARGET_POOL in kinds:
            execution = replace(execution, target_pool="pool-other")
        if MismatchKind.IL_IMPACT in kinds:
            execution = replace(execution, il_impact_bps=decision.il_impact_bps * 2)
        if MismatchKind.GAS in kinds:
            execution = replace(execution, gas_used=decision.expected_gas * 3)
        if MismatchKind.PROOF_EXPIRED in kinds:
            verify_at = proof.expires_at + timedelta(seconds=1)
        if MismatchKind.DECISION_HASH in kinds:
            proof = replace(proof, decision_hash="00" * 32)
        if MismatchKind.ATTESTATION_MISSING in kinds:
            proof = replace(proof, attestation_blob="")

        result = VerificationEngine().verify(decision, execution, proof, verify_at)

        assert result.mismatch_kinds == tuple(k for k in MismatchKind if k in kinds)
        assert result.passed is (not kinds)
        expected_action = VerdictAction.COMMIT if not kinds else VerdictAction.ROLLBACK
        assert result.action is expected_action


# =============================================================================
# Hash Mismatches Are Data
# =============================================================================

class TestHashMismatchNeverRaises:
    """Any wrong decision_hash string yields a DECISION_HASH finding."""

    @settings(max_examples=100, phases=[Phase.generate, Phase.target], deadline=None)
    @given(tampered=st.text())
    def test_arbitrary_hash_text_rolls_back(self, tampered: str) -> None:
        decision = make_decision()
        proof = ProofBinder().bind(decision, "0xpolicy", NOW)
        assume(tampered != proof.decision_hash)

        result = VerificationEngine().verify(
            decision, make_execution(decision), replace(proof, decision_hash=tampered), NOW
        )

        assert result.action is VerdictAction.ROLLBACK
        assert MismatchKind.DECISION_HASH in result.mismatch_kinds
