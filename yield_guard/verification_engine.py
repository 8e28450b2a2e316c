"""
============================================================================
Yield Guard v1.0.0
Verification Engine - COMMIT / ROLLBACK Verdicts
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Decimal Integrity: Tolerance comparisons use decimal.Decimal
Traceability: Every check logs with decision_id and tx_hash

Compares a Decision, its bound Proof and the ExecutionRecord reported by
the execution layer. The checks are EXHAUSTIVE: each one runs whatever the
earlier ones found, and every failure becomes a Mismatch in the result.

CHECKS (in order):
    1. action        exact
    2. amount        |d - e| <= |d| * tolerance.amount     (0.1%)
    3. target_pool   exact
    4. il_impact     |d - e| <= |d| * tolerance.il_impact  (5%)
    5. gas           |d - e| <= |d| * tolerance.gas        (50%)
    6. expiry        now <= proof.expires_at
    7. decision hash proof.decision_hash == hash(decision)
    8. attestation   proof.attestation_blob is present

    passed = no mismatches; action = COMMIT if passed else ROLLBACK

Findings never raise. Only structurally malformed records (rejected at
construction) are errors.

ERROR CODES (logged only):
    - ILG-050: Action mismatch
    - ILG-051: Amount mismatch
    - ILG-052: Pool mismatch
    - ILG-053: IL impact mismatch
    - ILG-054: Gas mismatch
    - ILG-055: Proof expired
    - ILG-056: Decision hash mismatch
    - ILG-057: Attestation missing

============================================================================
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Union
import logging

from yield_guard.il_models import (
    Decision,
    ExecutionRecord,
    Proof,
    Mismatch,
    MismatchKind,
    VerificationResult,
    VerdictAction,
    ToleranceBands,
    DEFAULT_TOLERANCES,
    coerce_datetime,
)
from yield_guard.proof_binder import DecisionHasher
from yield_guard.il_metrics import record_verification

# Configure module logger
logger = logging.getLogger(__name__)


def within_tolerance(
    decided: Union[int, Decimal],
    actual: Union[int, Decimal],
    tolerance: Decimal
) -> bool:
    """
    True when |decided - actual| <= |decided| * tolerance.

    A decided value of zero therefore only accepts an exact zero.
    """
    decided = Decimal(decided)
    actual = Decimal(actual)
    return abs(decided - actual) <= abs(decided) * tolerance


class VerificationEngine:
    """
    Exhaustive decision/execution verifier.

    Reliability Level: L6 Critical (Sovereign Tier)
    Input Constraints: Validated Decision, ExecutionRecord, Proof; explicit now
    Side Effects: Logs every check, updates verification metrics

    The engine holds only its tolerance bands, so a single instance may be
    shared across threads.
    """

    def __init__(self, tolerances: ToleranceBands = DEFAULT_TOLERANCES) -> None:
        self.tolerances = tolerances
        logger.debug(
            f"[VERIFY] Initialized | amount_tolerance={tolerances.amount} | "
            f"il_tolerance={tolerances.il_impact} | gas_tolerance={tolerances.gas}"
        )

    def verify(
        self,
        decision: Decision,
        execution: ExecutionRecord,
        proof: Proof,
        now: datetime,
        correlation_id: Optional[str] = None
    ) -> VerificationResult:
        """
        Run all checks and return the verdict.

        Args:
            decision: The bound decision
            execution: Settled transaction reported by the execution layer
            proof: Proof bound to the decision
            now: Verification time used for the expiry check
            correlation_id: Audit trail identifier (defaults to decision_id)

        Returns:
            VerificationResult with every mismatch found, in check order
        """
        now = coerce_datetime(now, "now")
        correlation_id = correlation_id or decision.decision_id
        context = (
            f"decision_id={decision.decision_id} | tx_hash={execution.tx_hash} | "
            f"correlation_id={correlation_id}"
        )
        tol = self.tolerances
        mismatches: List[Mismatch] = []

        def report(mismatch: Mismatch) -> None:
            mismatches.append(mismatch)
            logger.error(f"[{mismatch.error_code}] {mismatch.describe()} | {context}")

        # 1. Action
        if execution.action is not decision.action:
            report(Mismatch(MismatchKind.ACTION, decision.action, execution.action))
        else:
            logger.debug(f"[VERIFY-ACTION] Passed | action={decision.action.value} | {context}")

        # 2. Amount
        if not within_tolerance(decision.amount, execution.amount, tol.amount):
            report(Mismatch(MismatchKind.AMOUNT, decision.amount, execution.amount, tol.amount))
        else:
            logger.debug(f"[VERIFY-AMOUNT] Passed | amount={execution.amount} | {context}")

        # 3. Target pool
        if execution.target_pool != decision.target_pool:
            report(Mismatch(MismatchKind.TARGET_POOL, decision.target_pool, execution.target_pool))
        else:
            logger.debug(f"[VERIFY-POOL] Passed | target_pool={decision.target_pool} | {context}")

        # 4. IL impact
        if not within_tolerance(decision.il_impact_bps, execution.il_impact_bps, tol.il_impact):
            report(Mismatch(
                MismatchKind.IL_IMPACT, decision.il_impact_bps, execution.il_impact_bps, tol.il_impact
            ))
        else:
            logger.debug(f"[VERIFY-IL] Passed | il_impact_bps={execution.il_impact_bps} | {context}")

        # 5. Gas
        if not within_tolerance(decision.expected_gas, execution.gas_used, tol.gas):
            report(Mismatch(MismatchKind.GAS, decision.expected_gas, execution.gas_used, tol.gas))
        else:
            logger.debug(f"[VERIFY-GAS] Passed | gas_used={execution.gas_used} | {context}")

        # 6. Expiry
        if proof.is_expired(now):
            report(Mismatch(MismatchKind.PROOF_EXPIRED, proof.expires_at, now))
        else:
            logger.debug(f"[VERIFY-EXPIRY] Passed | expires_at={proof.expires_at.isoformat()} | {context}")

        # 7. Decision hash
        computed_hash = DecisionHasher.compute(decision)
        if not DecisionHasher.matches(decision, proof.decision_hash):
            report(Mismatch(MismatchKind.DECISION_HASH, computed_hash, proof.decision_hash))
        else:
            logger.debug(f"[VERIFY-HASH] Passed | decision_hash={computed_hash[:16]}... | {context}")

        # 8. Attestation presence
        if not proof.attestation_blob:
            report(Mismatch(MismatchKind.ATTESTATION_MISSING, "present", "missing"))

        passed = not mismatches
        action = VerdictAction.COMMIT if passed else VerdictAction.ROLLBACK
        result = VerificationResult(
            decision_id=decision.decision_id,
            tx_hash=execution.tx_hash,
            passed=passed,
            mismatches=tuple(mismatches),
            action=action,
            verified_at=now,
        )

        if passed:
            logger.info(f"[VERIFY] COMMIT | all checks passed | {context}")
        else:
            logger.warning(
                f"[VERIFY] ROLLBACK | mismatches={len(mismatches)} | "
                f"kinds={[m.kind.value for m in mismatches]} | {context}"
            )

        record_verification(action.value, [m.kind.value for m in mismatches])
        return result


def verify(
    decision: Decision,
    execution: ExecutionRecord,
    proof: Proof,
    now: datetime,
    tolerances: ToleranceBands = DEFAULT_TOLERANCES
) -> VerificationResult:
    return VerificationEngine(tolerances).verify(decision, execution, proof, now)


def create_verification_engine_from_config() -> VerificationEngine:
    """Create a VerificationEngine with tolerances from the environment config."""
    from yield_guard.il_config import get_il_guard_config

    config = get_il_guard_config()
    return VerificationEngine(tolerances=config.tolerance_bands)


__all__ = [
    "within_tolerance",
    "VerificationEngine",
    "verify",
    "create_verification_engine_from_config",
]
