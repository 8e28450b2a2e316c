"""
============================================================================
Yield Guard v1.0.0
Interchange Schema - Plain Records to Domain Models
============================================================================

Reliability Level: L6 Critical (Sovereign Tier)
Decimal Integrity: Decimal fields travel as strings

Collaborators (price provider, execution layer, audit store) exchange plain
structured records. This module validates those records with pydantic and
turns them into the frozen domain models.

Validation failures are reported as InvalidInputError (ILG-001) with the
list of schema violations in details["violations"].

============================================================================
"""

from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Type, TypeVar
import logging

from pydantic import BaseModel, Field, field_validator, ConfigDict, ValidationError, ValidationInfo

from yield_guard.il_errors import ILGuardErrorCode, InvalidInputError
from yield_guard.il_models import (
    AssetRatio,
    PoolState,
    Decision,
    ExecutionRecord,
    Proof,
    ProofPublicInputs,
    DecisionAction,
)

# Configure module logger
logger = logging.getLogger(__name__)

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _decimal_string(v: Any, field_name: str) -> str:
    if isinstance(v, bool) or v is None:
        raise ValueError(f"{field_name} must be a Decimal string, got {type(v)}")
    if isinstance(v, Decimal):
        return str(v)
    if isinstance(v, (int, float)):
        return str(Decimal(str(v)))
    if isinstance(v, str):
        try:
            if not Decimal(v).is_finite():
                raise ValueError(f"{field_name} must be finite")
        except InvalidOperation:
            raise ValueError(f"{field_name} must be a Decimal string, got {v!r}")
        return v
    raise ValueError(f"{field_name} must be a Decimal string, got {type(v)}")


def _action_value(v: Any) -> Any:
    if isinstance(v, str):
        return v.strip().lower()
    return v


# =============================================================================
# Base Model
# =============================================================================

class ILGuardBaseModel(BaseModel):
    """Base model for interchange records."""

    model_config = ConfigDict(
        use_enum_values=True,
        validate_assignment=True,
    )


# =============================================================================
# Pool Snapshots
# =============================================================================

class AssetRatioSchema(ILGuardBaseModel):
    asset_a_amount: int = Field(ge=0, description="Amount of asset A")
    asset_b_amount: int = Field(ge=0, description="Amount of asset B")

    def to_model(self) -> AssetRatio:
        return AssetRatio(
            asset_a_amount=self.asset_a_amount,
            asset_b_amount=self.asset_b_amount,
        )


class PoolStateSchema(ILGuardBaseModel):
    reserve_a: int = Field(ge=0)
    reserve_b: int = Field(ge=0)
    total_lp_tokens: int = Field(ge=0)
    last_update_time: datetime

    def to_model(self) -> PoolState:
        return PoolState(
            reserve_a=self.reserve_a,
            reserve_b=self.reserve_b,
            total_lp_tokens=self.total_lp_tokens,
            last_update_time=self.last_update_time,
        )


# =============================================================================
# Decision / Execution / Proof
# =============================================================================

class DecisionSchema(ILGuardBaseModel):
    """
    Decision as produced by the decision source.

    Reliability Level: L6 Critical
    Decimal Integrity: amount and il_impact_bps as Decimal strings
    """
    decision_id: str = Field(min_length=1)
    agent_id: str = Field(min_length=1)
    action: DecisionAction = Field(description="delegate | withdraw | rebalance")
    amount: str = Field(description="Amount as Decimal string")
    target_pool: str = Field(min_length=1)
    il_impact_bps: str = Field(description="Expected IL impact in bps as Decimal string")
    expected_gas: int = Field(ge=0)
    timestamp: datetime

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: Any) -> Any:
        return _action_value(v)

    @field_validator("amount", "il_impact_bps", mode="before")
    @classmethod
    def validate_decimal(cls, v: Any, info: ValidationInfo) -> str:
        """Ensure the value is a valid Decimal string."""
        return _decimal_string(v, info.field_name)

    def to_model(self) -> Decision:
        return Decision(
            decision_id=self.decision_id,
            agent_id=self.agent_id,
            action=self.action,
            amount=Decimal(self.amount),
            target_pool=self.target_pool,
            il_impact_bps=Decimal(self.il_impact_bps),
            expected_gas=self.expected_gas,
            timestamp=self.timestamp,
        )


class ExecutionRecordSchema(ILGuardBaseModel):
    """Settled transaction as reported by the execution layer."""
    tx_hash: str = Field(min_length=1)
    action: DecisionAction
    amount: str
    target_pool: str
    il_impact_bps: str
    gas_used: int = Field(ge=0)
    timestamp: datetime
    block_number: int = Field(ge=0)

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, v: Any) -> Any:
        return _action_value(v)

    @field_validator("amount", "il_impact_bps", mode="before")
    @classmethod
    def validate_decimal(cls, v: Any, info: ValidationInfo) -> str:
        return _decimal_string(v, info.field_name)

    def to_model(self) -> ExecutionRecord:
        return ExecutionRecord(
            tx_hash=self.tx_hash,
            action=self.action,
            amount=Decimal(self.amount),
            target_pool=self.target_pool,
            il_impact_bps=Decimal(self.il_impact_bps),
            gas_used=self.gas_used,
            timestamp=self.timestamp,
            block_number=self.block_number,
        )


class ProofPublicInputsSchema(ILGuardBaseModel):
    il_limit_bps: int = Field(ge=0)
    agent_address: str
    policy_hash: str


class ProofSchema(ILGuardBaseModel):
    proof_id: str = Field(min_length=1)
    decision_hash: str
    public_inputs: ProofPublicInputsSchema
    attestation_blob: str = ""
    expires_at: datetime
    issued_at: Optional[datetime] = None

    def to_model(self) -> Proof:
        return Proof(
            proof_id=self.proof_id,
            decision_hash=self.decision_hash,
            public_inputs=ProofPublicInputs(
                il_limit_bps=self.public_inputs.il_limit_bps,
                agent_address=self.public_inputs.agent_address,
                policy_hash=self.public_inputs.policy_hash,
            ),
            attestation_blob=self.attestation_blob,
            expires_at=self.expires_at,
            issued_at=self.issued_at,
        )


# =============================================================================
# Conversion Functions
# =============================================================================

def _validate(schema_cls: Type[SchemaT], data: Dict[str, Any]) -> SchemaT:
    """
    Validate a plain record, converting pydantic errors to InvalidInputError.
    """
    if not isinstance(data, dict):
        raise InvalidInputError(
            f"{schema_cls.__name__} expects a mapping, got: {type(data).__name__}"
        )
    try:
        return schema_cls.model_validate(data)
    except ValidationError as e:
        violations: List[str] = [
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        logger.error(
            f"[{ILGuardErrorCode.INVALID_INPUT}] Record failed schema validation | "
            f"schema={schema_cls.__name__} | violations={violations}"
        )
        raise InvalidInputError(
            f"{schema_cls.__name__} failed schema validation",
            details={"violations": violations, "error_count": len(violations)},
        )


def asset_ratio_from_dict(data: Dict[str, Any]) -> AssetRatio:
    return _validate(AssetRatioSchema, data).to_model()


def pool_state_from_dict(data: Dict[str, Any]) -> PoolState:
    return _validate(PoolStateSchema, data).to_model()


def decision_from_dict(data: Dict[str, Any]) -> Decision:
    return _validate(DecisionSchema, data).to_model()


def execution_from_dict(data: Dict[str, Any]) -> ExecutionRecord:
    return _validate(ExecutionRecordSchema, data).to_model()


def proof_from_dict(data: Dict[str, Any]) -> Proof:
    return _validate(ProofSchema, data).to_model()


__all__ = [
    "ILGuardBaseModel",
    "AssetRatioSchema",
    "PoolStateSchema",
    "DecisionSchema",
    "ExecutionRecordSchema",
    "ProofPublicInputsSchema",
    "ProofSchema",
    "asset_ratio_from_dict",
    "pool_state_from_dict",
    "decision_from_dict",
    "execution_from_dict",
    "proof_from_dict",
]
