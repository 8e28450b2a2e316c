"""
Unit Tests for Yield Guard Data Models

Reliability Level: SOVEREIGN TIER

Tests construction-time validation of the frozen records and the derived
views (mismatch messages, dict and JSON rendering).
"""

import pytest
import os
import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import sys
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from yield_guard.il_models import (
    Decision,
    DecisionAction,
    PoolState,
    Mismatch,
    MismatchKind,
    VerificationResult,
    VerdictAction,
    UrgencyTiers,
    ToleranceBands,
    ILGuardJSONEncoder,
    MISMATCH_ERROR_CODES,
    coerce_enum,
)
from yield_guard.il_errors import ILGuardError, InvalidInputError


NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_decision(**overrides) -> Decision:
    fields = dict(
        decision_id="dec-001",
        agent_id="agent-7",
        action="rebalance",
        amount="42.5",
        target_pool="pool-eth-usdc",
        il_impact_bps="15",
        expected_gas=90_000,
        timestamp=NOW,
    )
    fields.update(overrides)
    return Decision(**fields)


class TestDecision:
    """Test Decision validation."""

    def test_coerces_fields(self) -> None:
        decision = make_decision()
        assert decision.action is DecisionAction.REBALANCE
        assert decision.amount == Decimal("42.5")
        assert decision.il_impact_bps == Decimal("15")

    def test_naive_timestamp_taken_as_utc(self) -> None:
        decision = make_decision(timestamp=datetime(2026, 1, 15, 12, 0))
        assert decision.timestamp == NOW

    def test_unknown_action(self) -> None:
        with pytest.raises(InvalidInputError):
            make_decision(action="swap")

    def test_empty_pool(self) -> None:
        with pytest.raises(InvalidInputError):
            make_decision(target_pool="  ")

    def test_nan_amount(self) -> None:
        with pytest.raises(InvalidInputError):
            make_decision(amount="NaN")

    def test_negative_gas(self) -> None:
        with pytest.raises(InvalidInputError):
            make_decision(expected_gas=-1)

    def test_immutable(self) -> None:
        with pytest.raises(AttributeError):
            make_decision().amount = Decimal("1")


class TestCoerceEnum:
    """Test closed-variant coercion."""

    def test_by_name_or_value(self) -> None:
        assert coerce_enum(DecisionAction, "DELEGATE", "action") is DecisionAction.DELEGATE
        assert coerce_enum(DecisionAction, "delegate", "action") is DecisionAction.DELEGATE

    def test_rejects_other_types(self) -> None:
        with pytest.raises(InvalidInputError):
            coerce_enum(DecisionAction, 1, "action")


class TestPoolState:
    """Test pool snapshot validation."""

    def test_liquidity_without_tokens(self) -> None:
        with pytest.raises(InvalidInputError):
            PoolState(reserve_a=10, reserve_b=10, total_lp_tokens=0, last_update_time=NOW)


class TestThresholds:
    """Test threshold value objects."""

    def test_tiers_order(self) -> None:
        with pytest.raises(InvalidInputError):
            UrgencyTiers(low_max_bps=600, medium_max_bps=500)

    def test_tolerances_from_strings(self) -> None:
        bands = ToleranceBands(amount="0.002")
        assert bands.amount == Decimal("0.002")
        assert bands.gas == Decimal("0.50")


class TestVerificationRecords:
    """Test mismatch and result records."""

    def test_every_kind_has_error_code(self) -> None:
        assert set(MISMATCH_ERROR_CODES) == set(MismatchKind)
        assert Mismatch(MismatchKind.GAS, 1, 2).error_code == "ILG-054"

    def test_mismatch_to_dict(self) -> None:
        data = Mismatch(
            MismatchKind.AMOUNT, Decimal("1000"), Decimal("1200"), Decimal("0.001")
        ).to_dict()
        assert data == {
            "kind": "AMOUNT",
            "error_code": "ILG-051",
            "expected": "1000",
            "actual": "1200",
            "tolerance": "0.001",
            "message": "Amount mismatch: decided [1000] but executed [1200]",
        }

    def test_expired_message_uses_iso_times(self) -> None:
        mismatch = Mismatch(MismatchKind.PROOF_EXPIRED, NOW, NOW + timedelta(seconds=1))
        assert mismatch.describe() == (
            "Proof has expired: valid until [2026-01-15T12:00:00+00:00] "
            "but checked at [2026-01-15T12:00:01+00:00]"
        )

    def test_result_consistency(self) -> None:
        with pytest.raises(InvalidInputError):
            VerificationResult("d", "t", True, (Mismatch(MismatchKind.GAS, 1, 2),), VerdictAction.COMMIT, NOW)
        with pytest.raises(InvalidInputError):
            VerificationResult("d", "t", True, (), VerdictAction.ROLLBACK, NOW)

    def test_result_key(self) -> None:
        result = VerificationResult("d", "t", True, [], VerdictAction.COMMIT, NOW)
        assert result.key == ("d", "t")
        assert result.mismatches == ()
        assert result.describe() == "COMMIT: all checks passed"


class TestJSONEncoder:
    """Test the JSON encoder."""

    def test_encodes_domain_types(self) -> None:
        payload = {"amount": Decimal("1.10"), "at": NOW, "action": DecisionAction.WITHDRAW}
        assert json.loads(json.dumps(payload, cls=ILGuardJSONEncoder)) == {
            "amount": "1.10",
            "at": "2026-01-15T12:00:00+00:00",
            "action": "withdraw",
        }


class TestErrors:
    """Test the exception hierarchy."""

    def test_message_carries_code(self) -> None:
        error = InvalidInputError("bad field", details={"field": "x"})
        assert str(error) == "[ILG-001] bad field"
        assert isinstance(error, ILGuardError)
        assert error.to_dict() == {
            "error_code": "ILG-001",
            "message": "bad field",
            "details": {"field": "x"},
        }
