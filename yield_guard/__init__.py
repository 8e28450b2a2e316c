"""
============================================================================
Yield Guard - Impermanent Loss Protection Core
============================================================================

Fixed-point impermanent-loss engine, policy evaluation, proof binding and
exhaustive decision/execution verification (COMMIT / ROLLBACK).

Reliability Level: L6 Critical
============================================================================
"""

from yield_guard.il_errors import (
    ILGuardErrorCode,
    ILGuardError,
    InvalidInputError,
    DivisionByZeroError,
    FixedPointOverflowError,
    InvalidTransitionError,
    ILGuardConfigurationError,
)

from yield_guard.fixed_point import (
    PRICE_SCALE,
    BPS_SCALE,
    IL_PRECISION,
    FixedPoint,
    integer_sqrt,
    geometric_mean,
)

from yield_guard.il_models import (
    DecisionAction,
    Urgency,
    Recommendation,
    TriggerAction,
    VerdictAction,
    MismatchKind,
    AssetRatio,
    PoolState,
    ILRecord,
    Decision,
    ProofPublicInputs,
    Proof,
    ExecutionRecord,
    Mismatch,
    VerificationResult,
    ILPolicy,
    PositionEvaluation,
    ProtectionTrigger,
    ToleranceBands,
    UrgencyTiers,
    AlertRule,
)

from yield_guard.il_config import (
    ILGuardConfig,
    get_il_guard_config,
    reset_il_guard_config,
)

from yield_guard.il_engine import (
    ILEngine,
    price_ratio,
    impermanent_loss_bps,
    compute_il,
    hodl_vs_lp,
    create_il_record,
    violates_policy,
    urgency,
    recommend_action,
    estimated_loss,
    protection_apr,
    evaluate_position,
    build_protection_trigger,
    create_il_engine_from_config,
)

from yield_guard.proof_binder import (
    DecisionHasher,
    ProofBinder,
    bind_proof,
    check_proof_locally,
    create_proof_binder_from_config,
)

from yield_guard.verification_engine import (
    VerificationEngine,
    verify,
    create_verification_engine_from_config,
)

from yield_guard.decision_pipeline import (
    PipelineStage,
    DecisionPipeline,
    VerificationLedger,
)

from yield_guard.il_schema import (
    asset_ratio_from_dict,
    pool_state_from_dict,
    decision_from_dict,
    execution_from_dict,
    proof_from_dict,
)

__version__ = "1.0.0"
