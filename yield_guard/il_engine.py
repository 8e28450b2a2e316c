"""
============================================================================
Yield Guard v1.0.0
Impermanent Loss Engine
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Input Constraints: AssetRatio / PoolState snapshots with integer amounts
Side Effects: Logs policy violations, updates evaluation metrics

IL CALCULATION (constant-product AMM):
    price      = asset_a / asset_b
    r          = current_price / initial_price          (scaled integer)
    IL         = 2 * sqrt(r) / (1 + r) - 1              (basis points, <= 0)

    All steps run in scaled-integer arithmetic at IL_PRECISION. The final
    quotient uses ROUND_HALF_EVEN. IL(r, r) == 0 exactly.

POSITION EVALUATION:
    violates    = |IL| > |max_il|                        (strict)
    excess      = |IL| - |max_il|
    urgency     = LOW (excess <= 100) | MEDIUM (<= 500) | HIGH
    recommend   = EXIT   if violates
                  ALERT  if |IL| > 0.8 * |max_il| and |h[-1] - h[-3]| > 50
                  HOLD   otherwise

ERROR CODES:
    - ILG-001: Invalid input
    - ILG-002: Division by zero
    - ILG-003: Overflow

============================================================================
"""

from decimal import Decimal, ROUND_HALF_EVEN
from typing import Optional, Sequence, Tuple, Union
import logging

from yield_guard.fixed_point import (
    PRICE_SCALE,
    BPS_SCALE,
    IL_PRECISION,
    FixedPoint,
    div_round_half_even,
    guard_signed_bps,
    guard_unsigned,
)
from yield_guard.il_config import DEFAULT_MAX_IL_BPS
from yield_guard.il_errors import InvalidInputError, DivisionByZeroError
from yield_guard.il_models import (
    AssetRatio,
    PoolState,
    ILRecord,
    ILPolicy,
    PositionEvaluation,
    ProtectionTrigger,
    Urgency,
    Recommendation,
    TriggerAction,
    UrgencyTiers,
    AlertRule,
    DEFAULT_URGENCY_TIERS,
    DEFAULT_ALERT_RULE,
    coerce_decimal,
    coerce_int,
)
from yield_guard.il_metrics import record_position_evaluated

# Configure module logger
logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Precision for APR percentages
PRECISION_APR = Decimal("0.0001")

DAYS_PER_YEAR = Decimal("365")
HUNDRED = Decimal("100")

Numeric = Union[int, Decimal]


# =============================================================================
# Price Ratio and IL
# =============================================================================

def price_ratio(
    initial: AssetRatio,
    current: AssetRatio,
    scale: int = PRICE_SCALE
) -> int:
    """
    Scaled ratio of current price to initial price.

    Computed as (cA * iB * scale) // (cB * iA), the same quotient as
    dividing the two scaled prices but without truncating them first.

    Args:
        initial: Asset ratio when the position was opened
        current: Current asset ratio
        scale: Fixed-point scale of the result

    Returns:
        r * scale (floor)

    Raises:
        DivisionByZeroError: If a denominator is zero
    """
    ratio = FixedPoint.from_ratio(
        current.asset_a_amount * initial.asset_b_amount,
        current.asset_b_amount * initial.asset_a_amount,
        scale=scale,
    )
    return guard_unsigned(ratio.raw, "price_ratio")


def impermanent_loss_bps(
    initial: AssetRatio,
    current: AssetRatio,
    scale: int = IL_PRECISION
) -> int:
    """
    Impermanent loss in signed basis points (negative = loss).

    ========================================================================
    PROCEDURE:
    ========================================================================
    1. r      = price_ratio(initial, current, S)       (r * S)
    2. root   = integer_sqrt(r * S)                    (sqrt(r) * S)
    3. lp_bps = round_half_even(2 * root * BPS / (S + r))
    4. IL     = lp_bps - BPS
    ========================================================================

    S defaults to IL_PRECISION rather than PRICE_SCALE: at 10_000 the floor
    of the square root moves the quotient by up to 1 bps, which breaks
    monotonicity near r = 1.

    Args:
        initial: Asset ratio when the position was opened
        current: Current asset ratio
        scale: Fixed-point scale of the intermediate ratio

    Returns:
        IL in basis points, in [-10000, 0]

    Raises:
        DivisionByZeroError: If a ratio denominator is zero
        FixedPointOverflowError: If the scaled numerator leaves u128 range
    """
    ratio = FixedPoint(raw=price_ratio(initial, current, scale), scale=scale)
    root = ratio.sqrt()

    numerator = guard_unsigned(2 * root.raw * BPS_SCALE, "il_numerator")
    denominator = scale + ratio.raw
    lp_multiplier_bps = div_round_half_even(numerator, denominator)

    return guard_signed_bps(lp_multiplier_bps - BPS_SCALE, "il_percentage_bps")


def compute_il(initial_ratio: AssetRatio, current_ratio: AssetRatio) -> int:
    """IL in basis points for a pair of ratio snapshots."""
    return impermanent_loss_bps(initial_ratio, current_ratio)


# =============================================================================
# HODL vs LP
# =============================================================================

def hodl_vs_lp(
    initial_deposit: int,
    initial_ratio: AssetRatio,
    current_ratio: AssetRatio,
    current_lp_tokens: int,
    pool_state: PoolState
) -> Tuple[int, int]:
    """
    Compare holding the deposit against staying in the pool.

    HODL: half the deposit sits in each asset and moves with that asset's
    own change (current / initial amount).
    LP: the caller's share (current_lp_tokens / total_lp_tokens) of both
    current reserves.

    Args:
        initial_deposit: Original deposit in the base unit
        initial_ratio: Asset ratio at deposit time
        current_ratio: Current asset ratio
        current_lp_tokens: Pool tokens held
        pool_state: Current pool snapshot

    Returns:
        (hodl_value, lp_value) in the unit of initial_deposit

    Raises:
        InvalidInputError: If deposit or token count is negative
        DivisionByZeroError: If the pool has no LP tokens outstanding
    """
    coerce_int(initial_deposit, "initial_deposit")
    coerce_int(current_lp_tokens, "current_lp_tokens")
    guard_unsigned(initial_deposit, "initial_deposit")

    half = initial_deposit // 2
    hodl_a = half * current_ratio.asset_a_amount // initial_ratio.asset_a_amount
    hodl_b = half * current_ratio.asset_b_amount // initial_ratio.asset_b_amount
    hodl_value = hodl_a + hodl_b

    if pool_state.total_lp_tokens == 0:
        logger.error("[ILG-002] Pool has no LP tokens outstanding")
        raise DivisionByZeroError("total_lp_tokens is zero")

    lp_a = pool_state.reserve_a * current_lp_tokens // pool_state.total_lp_tokens
    lp_b = pool_state.reserve_b * current_lp_tokens // pool_state.total_lp_tokens
    lp_value = lp_a + lp_b

    return (
        guard_unsigned(hodl_value, "hodl_value"),
        guard_unsigned(lp_value, "lp_value"),
    )


def create_il_record(
    initial_ratio: AssetRatio,
    current_ratio: AssetRatio,
    initial_deposit: int,
    current_lp_tokens: int,
    pool_state: PoolState
) -> ILRecord:
    """Assemble a complete ILRecord for one evaluation."""
    il_bps = impermanent_loss_bps(initial_ratio, current_ratio)
    hodl_value, lp_value = hodl_vs_lp(
        initial_deposit,
        initial_ratio,
        current_ratio,
        current_lp_tokens,
        pool_state,
    )
    return ILRecord(
        initial_ratio=initial_ratio,
        current_ratio=current_ratio,
        il_percentage_bps=il_bps,
        hodl_value=hodl_value,
        lp_value=lp_value,
    )


# =============================================================================
# Policy Checks
# =============================================================================

def violates_policy(il_record: ILRecord, max_il_bps: int) -> bool:
    """Strict: equal magnitudes do not violate."""
    return abs(il_record.il_percentage_bps) > abs(max_il_bps)


def excess_bps(current_il_bps: int, max_il_bps: int) -> int:
    """How far |IL| sits above |limit| (negative when under)."""
    return abs(current_il_bps) - abs(max_il_bps)


def urgency(excess: int, tiers: UrgencyTiers = DEFAULT_URGENCY_TIERS) -> Urgency:
    """
    Tiered urgency; each boundary is inclusive on the lower tier.

    With default tiers: 100 -> LOW, 101 -> MEDIUM, 500 -> MEDIUM, 501 -> HIGH.
    """
    if excess <= tiers.low_max_bps:
        return Urgency.LOW
    if excess <= tiers.medium_max_bps:
        return Urgency.MEDIUM
    return Urgency.HIGH


def recommend_action(
    current_il_bps: int,
    max_il_bps: int,
    il_history: Sequence[int] = (),
    rule: AlertRule = DEFAULT_ALERT_RULE
) -> Recommendation:
    """
    HOLD / ALERT / EXIT from the current reading and recent history.

    Rules are evaluated in order:
    1. |IL| > |limit| -> EXIT
    2. |IL| > threshold_ratio * |limit| and the move between the most recent
       and third-most-recent samples exceeds trend_bps -> ALERT
       (skipped with fewer than three samples)
    3. HOLD
    """
    current = abs(current_il_bps)
    limit = abs(max_il_bps)

    if current > limit:
        return Recommendation.EXIT

    if Decimal(current) > rule.threshold_ratio * Decimal(limit) and len(il_history) >= 3:
        trend = il_history[-1] - il_history[-3]
        if abs(trend) > rule.trend_bps:
            return Recommendation.ALERT

    return Recommendation.HOLD


def estimated_loss(il_record: ILRecord) -> int:
    """max(0, hodl_value - lp_value)."""
    return max(0, il_record.hodl_value - il_record.lp_value)


def protection_apr(
    fees_paid: Numeric,
    losses_prevented: Numeric,
    period_days: Numeric,
    principal: Numeric
) -> Decimal:
    """
    Simple annualised net benefit of protection, in percent.

    ((losses_prevented - fees_paid) / principal / period_days) * 365 * 100

    Reporting metric only; never used to decide on protection.

    Raises:
        InvalidInputError: If principal or period_days is not positive
    """
    fees = coerce_decimal(fees_paid, "fees_paid")
    prevented = coerce_decimal(losses_prevented, "losses_prevented")
    days = coerce_decimal(period_days, "period_days")
    base = coerce_decimal(principal, "principal")

    if base == 0:
        raise DivisionByZeroError("principal is zero")
    if days <= 0:
        raise InvalidInputError(f"period_days must be positive, got: {period_days}")

    daily_rate = (prevented - fees) / base / days
    annual_pct = daily_rate * DAYS_PER_YEAR * HUNDRED
    return annual_pct.quantize(PRECISION_APR, rounding=ROUND_HALF_EVEN)


# =============================================================================
# Position Evaluation
# =============================================================================

def evaluate_position(
    il_record: ILRecord,
    policy: ILPolicy,
    il_history: Sequence[int] = (),
    tiers: UrgencyTiers = DEFAULT_URGENCY_TIERS,
    rule: AlertRule = DEFAULT_ALERT_RULE,
    correlation_id: Optional[str] = None
) -> PositionEvaluation:
    """
    Evaluate one IL reading against a policy.

    Args:
        il_record: Current IL evaluation
        policy: Vault policy
        il_history: Previous IL readings in bps, oldest first
        tiers: Urgency tier bounds
        rule: Approach-the-limit alert rule
        correlation_id: Audit trail identifier

    Returns:
        PositionEvaluation with violation flag, urgency and recommendation
    """
    current = il_record.il_percentage_bps
    violates = violates_policy(il_record, policy.max_il_bps)
    excess = excess_bps(current, policy.max_il_bps)
    level = urgency(excess, tiers)
    recommendation = recommend_action(current, policy.max_il_bps, il_history, rule)
    loss = estimated_loss(il_record)

    if violates:
        logger.warning(
            f"[IL-VIOLATION] IL exceeds policy limit | "
            f"il_bps={current} | max_il_bps={policy.max_il_bps} | "
            f"excess_bps={excess} | urgency={level.value} | "
            f"estimated_loss={loss} | correlation_id={correlation_id}"
        )
    else:
        logger.debug(
            f"[IL-EVALUATE] Position within policy | "
            f"il_bps={current} | max_il_bps={policy.max_il_bps} | "
            f"recommendation={recommendation.value} | correlation_id={correlation_id}"
        )

    record_position_evaluated(recommendation.value, violates, level.value)

    return PositionEvaluation(
        violates=violates,
        urgency=level,
        recommendation=recommendation,
        excess_bps=excess,
        estimated_loss=loss,
    )


def build_protection_trigger(
    vault_id: str,
    il_record: ILRecord,
    policy: ILPolicy,
    il_history: Sequence[int] = (),
    tiers: UrgencyTiers = DEFAULT_URGENCY_TIERS,
    rule: AlertRule = DEFAULT_ALERT_RULE
) -> Optional[ProtectionTrigger]:
    """
    Turn an evaluation into a protection trigger, or None when no action is due.

    EXIT   -> AUTO_EXIT (auto exit enabled) or MANUAL_REVIEW
    ALERT  -> ALERT
    HOLD   -> ALERT when |IL| passes the notification threshold, else None

    Vaults without emergency withdraw never trigger.
    """
    if not policy.emergency_withdraw:
        logger.debug(
            f"[IL-TRIGGER] Skipping vault with emergency withdraw disabled | vault_id={vault_id}"
        )
        return None

    evaluation = evaluate_position(
        il_record, policy, il_history, tiers, rule, correlation_id=vault_id
    )
    current = il_record.il_percentage_bps

    if evaluation.recommendation is Recommendation.EXIT:
        action = TriggerAction.AUTO_EXIT if policy.auto_exit_enabled else TriggerAction.MANUAL_REVIEW
    elif evaluation.recommendation is Recommendation.ALERT:
        action = TriggerAction.ALERT
    elif policy.notification_threshold_bps > 0 and abs(current) > policy.notification_threshold_bps:
        action = TriggerAction.ALERT
    else:
        return None

    trigger = ProtectionTrigger(
        vault_id=vault_id,
        current_il_bps=current,
        max_allowed_bps=policy.max_il_bps,
        recommended_action=action,
        urgency=evaluation.urgency,
        estimated_loss=evaluation.estimated_loss,
    )

    logger.info(
        f"[IL-TRIGGER] Protection trigger raised | vault_id={vault_id} | "
        f"action={action.value} | urgency={evaluation.urgency.value} | il_bps={current}"
    )
    return trigger


# =============================================================================
# ILEngine Class
# =============================================================================

class ILEngine:
    """
    IL engine bound to urgency tiers, an alert rule and a fallback limit.

    Reliability Level: L6 Critical (Sovereign Tier)
    Side Effects: Logs violations, updates metrics

    USAGE:
        engine = create_il_engine_from_config()
        record = engine.create_il_record(initial, current, deposit, tokens, pool)
        evaluation = engine.evaluate_position(record, policy, history)

    Vaults without a policy of their own are evaluated against
    ILPolicy(max_il_bps=default_max_il_bps).
    """

    def __init__(
        self,
        tiers: UrgencyTiers = DEFAULT_URGENCY_TIERS,
        rule: AlertRule = DEFAULT_ALERT_RULE,
        default_max_il_bps: int = DEFAULT_MAX_IL_BPS
    ) -> None:
        self.tiers = tiers
        self.rule = rule
        self.default_max_il_bps = default_max_il_bps
        logger.debug(
            f"[IL-ENGINE] Initialized | tiers={tiers.low_max_bps}/{tiers.medium_max_bps} | "
            f"alert_ratio={rule.threshold_ratio} | alert_trend_bps={rule.trend_bps} | "
            f"default_max_il_bps={default_max_il_bps}"
        )

    def default_policy(self) -> ILPolicy:
        return ILPolicy(max_il_bps=self.default_max_il_bps)

    def compute_il(self, initial_ratio: AssetRatio, current_ratio: AssetRatio) -> int:
        return compute_il(initial_ratio, current_ratio)

    def create_il_record(
        self,
        initial_ratio: AssetRatio,
        current_ratio: AssetRatio,
        initial_deposit: int,
        current_lp_tokens: int,
        pool_state: PoolState
    ) -> ILRecord:
        return create_il_record(
            initial_ratio, current_ratio, initial_deposit, current_lp_tokens, pool_state
        )

    def urgency(self, excess: int) -> Urgency:
        return urgency(excess, self.tiers)

    def recommend_action(
        self,
        current_il_bps: int,
        max_il_bps: int,
        il_history: Sequence[int] = ()
    ) -> Recommendation:
        return recommend_action(current_il_bps, max_il_bps, il_history, self.rule)

    def evaluate_position(
        self,
        il_record: ILRecord,
        policy: Optional[ILPolicy] = None,
        il_history: Sequence[int] = (),
        correlation_id: Optional[str] = None
    ) -> PositionEvaluation:
        return evaluate_position(
            il_record, policy or self.default_policy(), il_history,
            self.tiers, self.rule, correlation_id
        )

    def build_protection_trigger(
        self,
        vault_id: str,
        il_record: ILRecord,
        policy: Optional[ILPolicy] = None,
        il_history: Sequence[int] = ()
    ) -> Optional[ProtectionTrigger]:
        return build_protection_trigger(
            vault_id, il_record, policy or self.default_policy(), il_history,
            self.tiers, self.rule
        )


def create_il_engine_from_config() -> ILEngine:
    """Create an ILEngine with tiers, alert rule and fallback limit from the environment config."""
    from yield_guard.il_config import get_il_guard_config

    config = get_il_guard_config()
    return ILEngine(
        tiers=config.urgency_tiers,
        rule=config.alert_rule,
        default_max_il_bps=config.default_max_il_bps,
    )


__all__ = [
    "price_ratio",
    "impermanent_loss_bps",
    "compute_il",
    "hodl_vs_lp",
    "create_il_record",
    "violates_policy",
    "excess_bps",
    "urgency",
    "recommend_action",
    "estimated_loss",
    "protection_apr",
    "evaluate_position",
    "build_protection_trigger",
    "ILEngine",
    "create_il_engine_from_config",
    "PRECISION_APR",
]
