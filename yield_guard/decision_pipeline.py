"""
============================================================================
Yield Guard v1.0.0
Decision Pipeline and Verification Ledger
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Traceability: Every transition logs decision_id as correlation_id

DECISION LIFECYCLE:
    Each protective decision moves through one-shot stages:

    DECIDED  → BOUND     (ProofBinder.bind)
    BOUND    → EXECUTED  (execution layer reports an ExecutionRecord)
    EXECUTED → VERIFIED  (VerificationEngine.verify → COMMIT | ROLLBACK)

    Terminal State: VERIFIED (no further transitions)

    A pipeline is immutable. Each step returns a new pipeline.

IDEMPOTENT VERIFICATION:
    VerificationLedger keys completed verdicts by (decision_id, tx_hash).
    A repeated verification returns the recorded verdict with
    newly_verified=False so COMMIT/ROLLBACK side effects fire once.

ERROR CODES:
    - ILG-030: Invalid pipeline transition

============================================================================
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple
import logging
import threading

from yield_guard.il_errors import ILGuardErrorCode, InvalidTransitionError, InvalidInputError
from yield_guard.il_models import (
    Decision,
    ExecutionRecord,
    Proof,
    VerificationResult,
    VerdictAction,
)
from yield_guard.proof_binder import ProofBinder
from yield_guard.verification_engine import VerificationEngine

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Stages
# =============================================================================

class PipelineStage(Enum):
    """Lifecycle stage of one decision."""
    DECIDED = "DECIDED"
    BOUND = "BOUND"
    EXECUTED = "EXECUTED"
    VERIFIED = "VERIFIED"


VALID_TRANSITIONS: Dict[str, List[str]] = {
    "DECIDED": ["BOUND"],
    "BOUND": ["EXECUTED"],
    "EXECUTED": ["VERIFIED"],
    "VERIFIED": [],  # Terminal
}

TERMINAL_STAGES: List[str] = ["VERIFIED"]


def validate_transition(
    current_stage: str,
    target_stage: str,
    correlation_id: Optional[str] = None
) -> Tuple[bool, Optional[str]]:
    """
    Check a stage transition against VALID_TRANSITIONS.

    Returns:
        (True, None) if allowed, (False, "ILG-030") otherwise
    """
    valid_targets = VALID_TRANSITIONS.get(current_stage)
    if valid_targets is None or target_stage not in valid_targets:
        valid_str = "/".join(valid_targets) if valid_targets else "NONE (terminal stage)"
        logger.error(
            f"[{ILGuardErrorCode.INVALID_TRANSITION}] Invalid pipeline transition: "
            f"{current_stage} -> {target_stage}. "
            f"Valid transitions from {current_stage}: {valid_str}. "
            f"correlation_id={correlation_id}"
        )
        return (False, ILGuardErrorCode.INVALID_TRANSITION)

    logger.debug(
        f"[PIPELINE] Transition validated: {current_stage} -> {target_stage} | "
        f"correlation_id={correlation_id}"
    )
    return (True, None)


# =============================================================================
# Verification Ledger
# =============================================================================

class VerificationLedger:
    """
    Thread-safe record of completed verifications.

    The lock guards only the bookkeeping. A caller reserves its
    (decision_id, tx_hash) key, verifies outside the lock, then publishes
    the verdict; other pairs verify in parallel meanwhile. Callers racing
    on a reserved key wait for its verdict instead of verifying again.

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: Holds verdicts in memory for the lifetime of the ledger
    """

    def __init__(self) -> None:
        self._results: Dict[Tuple[str, str], VerificationResult] = {}
        self._in_flight: Dict[Tuple[str, str], threading.Event] = {}
        self._lock = threading.Lock()

    def verify_once(
        self,
        engine: VerificationEngine,
        decision: Decision,
        execution: ExecutionRecord,
        proof: Proof,
        now: datetime
    ) -> Tuple[VerificationResult, bool]:
        """
        Verify (decision_id, tx_hash) at most once.

        Returns:
            (result, newly_verified). newly_verified is False when the pair
            was already verified; result is then the recorded verdict.
        """
        key = (decision.decision_id, execution.tx_hash)
        while True:
            with self._lock:
                existing = self._results.get(key)
                if existing is not None:
                    logger.info(
                        f"[LEDGER] Already verified, returning recorded verdict | "
                        f"decision_id={key[0]} | tx_hash={key[1]} | action={existing.action.value}"
                    )
                    return (existing, False)
                pending = self._in_flight.get(key)
                if pending is None:
                    reserved = threading.Event()
                    self._in_flight[key] = reserved
                    break
            # Owner failing releases the key; the loop then retries.
            pending.wait()

        try:
            result = engine.verify(decision, execution, proof, now)
            with self._lock:
                self._results[key] = result
        finally:
            with self._lock:
                self._in_flight.pop(key, None)
            reserved.set()
        return (result, True)

    def has_verified(self, decision_id: str, tx_hash: str) -> bool:
        with self._lock:
            return (decision_id, tx_hash) in self._results

    def get(self, decision_id: str, tx_hash: str) -> Optional[VerificationResult]:
        with self._lock:
            return self._results.get((decision_id, tx_hash))

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)


# =============================================================================
# Decision Pipeline
# =============================================================================

@dataclass(frozen=True)
class DecisionPipeline:
    """
    Stage-tagged view of one decision's lifecycle.

    Fields fill in as stages advance: proof at BOUND, execution at EXECUTED,
    result at VERIFIED.

    USAGE:
        pipeline = DecisionPipeline.start(decision)
        pipeline = pipeline.bind(binder, policy_hash, now)
        pipeline = pipeline.record_execution(execution)
        pipeline = pipeline.verify(engine, now, ledger)
        if pipeline.newly_verified and pipeline.verdict is VerdictAction.COMMIT:
            ...
    """

    stage: PipelineStage
    decision: Decision
    proof: Optional[Proof] = None
    execution: Optional[ExecutionRecord] = None
    result: Optional[VerificationResult] = None
    newly_verified: bool = False

    @classmethod
    def start(cls, decision: Decision) -> "DecisionPipeline":
        if not isinstance(decision, Decision):
            raise InvalidInputError("DecisionPipeline.start requires a Decision")
        logger.debug(f"[PIPELINE] Decision entered | correlation_id={decision.decision_id}")
        return cls(stage=PipelineStage.DECIDED, decision=decision)

    @property
    def verdict(self) -> Optional[VerdictAction]:
        return self.result.action if self.result is not None else None

    def _advance(self, target: PipelineStage) -> None:
        is_valid, error_code = validate_transition(
            self.stage.value, target.value, self.decision.decision_id
        )
        if not is_valid:
            raise InvalidTransitionError(
                f"Cannot move decision {self.decision.decision_id} "
                f"from {self.stage.value} to {target.value}",
                error_code=error_code,
                details={"from": self.stage.value, "to": target.value},
            )

    def bind(self, binder: ProofBinder, policy_hash: str, now: datetime) -> "DecisionPipeline":
        self._advance(PipelineStage.BOUND)
        proof = binder.bind(self.decision, policy_hash, now)
        return replace(self, stage=PipelineStage.BOUND, proof=proof)

    def record_execution(self, execution: ExecutionRecord) -> "DecisionPipeline":
        self._advance(PipelineStage.EXECUTED)
        if not isinstance(execution, ExecutionRecord):
            raise InvalidInputError("record_execution requires an ExecutionRecord")
        logger.info(
            f"[PIPELINE] Execution recorded | tx_hash={execution.tx_hash} | "
            f"block_number={execution.block_number} | correlation_id={self.decision.decision_id}"
        )
        return replace(self, stage=PipelineStage.EXECUTED, execution=execution)

    def verify(
        self,
        engine: VerificationEngine,
        now: datetime,
        ledger: Optional[VerificationLedger] = None
    ) -> "DecisionPipeline":
        """
        Verify the recorded execution.

        With a ledger, a (decision_id, tx_hash) pair seen before yields the
        recorded verdict and newly_verified=False.
        """
        self._advance(PipelineStage.VERIFIED)
        if ledger is not None:
            result, newly_verified = ledger.verify_once(
                engine, self.decision, self.execution, self.proof, now
            )
        else:
            result = engine.verify(self.decision, self.execution, self.proof, now)
            newly_verified = True
        return replace(
            self,
            stage=PipelineStage.VERIFIED,
            result=result,
            newly_verified=newly_verified,
        )


__all__ = [
    "PipelineStage",
    "VALID_TRANSITIONS",
    "TERMINAL_STAGES",
    "validate_transition",
    "VerificationLedger",
    "DecisionPipeline",
]
