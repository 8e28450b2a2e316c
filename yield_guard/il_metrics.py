"""
============================================================================
Yield Guard v1.0.0
Prometheus Metrics
============================================================================

Reliability Level: SOVEREIGN TIER (Mission-Critical)
Side Effects: Updates Prometheus metrics registry

METRICS EXPOSED
---------------
- ilguard_positions_evaluated_total: Evaluations by recommendation
- ilguard_policy_violations_total: Policy violations by urgency
- ilguard_proofs_bound_total: Proofs bound to decisions
- ilguard_verifications_total: Verdicts by action (COMMIT/ROLLBACK)
- ilguard_verification_mismatches_total: Findings by mismatch kind

Metric helpers never raise; failures are logged as OBS-00x.

============================================================================
"""

import logging
from typing import Iterable

from prometheus_client import Counter

# Configure module logger
logger = logging.getLogger(__name__)


# ============================================================================
# PROMETHEUS METRICS DEFINITIONS
# ============================================================================

POSITIONS_EVALUATED = Counter(
    "ilguard_positions_evaluated_total",
    "Total number of LP positions evaluated for impermanent loss",
    ["recommendation"]
)

POLICY_VIOLATIONS = Counter(
    "ilguard_policy_violations_total",
    "Total number of IL policy violations detected",
    ["urgency"]
)

PROOFS_BOUND = Counter(
    "ilguard_proofs_bound_total",
    "Total number of proofs bound to decisions"
)

VERIFICATIONS = Counter(
    "ilguard_verifications_total",
    "Total number of execution verifications by verdict",
    ["action"]
)

VERIFICATION_MISMATCHES = Counter(
    "ilguard_verification_mismatches_total",
    "Total number of verification mismatches by kind",
    ["kind"]
)


# ============================================================================
# METRIC UPDATE FUNCTIONS
# ============================================================================

def record_position_evaluated(recommendation: str, violates: bool, urgency: str) -> None:
    """
    Record one position evaluation.

    Args:
        recommendation: hold | alert | exit
        violates: Whether the policy limit was breached
        urgency: low | medium | high
    """
    try:
        POSITIONS_EVALUATED.labels(recommendation=recommendation).inc()
        if violates:
            POLICY_VIOLATIONS.labels(urgency=urgency).inc()
        logger.debug(
            "Metric: position_evaluated | recommendation=%s | violates=%s | urgency=%s",
            recommendation, violates, urgency
        )
    except Exception as e:
        logger.error(
            "[OBS-001] Failed to record position_evaluated metric | error=%s",
            str(e)
        )


def record_proof_bound(proof_id: str) -> None:
    """Record one bound proof."""
    try:
        PROOFS_BOUND.inc()
        logger.debug("Metric: proof_bound | proof_id=%s", proof_id)
    except Exception as e:
        logger.error(
            "[OBS-002] Failed to record proof_bound metric | error=%s",
            str(e)
        )


def record_verification(action: str, mismatch_kinds: Iterable[str]) -> None:
    """
    Record one verdict and each of its findings.

    Args:
        action: COMMIT | ROLLBACK
        mismatch_kinds: Iterable of mismatch kind values
    """
    try:
        VERIFICATIONS.labels(action=action).inc()
        for kind in mismatch_kinds:
            VERIFICATION_MISMATCHES.labels(kind=kind).inc()
        logger.debug("Metric: verification | action=%s", action)
    except Exception as e:
        logger.error(
            "[OBS-003] Failed to record verification metric | error=%s",
            str(e)
        )


__all__ = [
    "POSITIONS_EVALUATED",
    "POLICY_VIOLATIONS",
    "PROOFS_BOUND",
    "VERIFICATIONS",
    "VERIFICATION_MISMATCHES",
    "record_position_evaluated",
    "record_proof_bound",
    "record_verification",
]
