"""
Takeover Service Data Models

Token takeover (migration) campaigns: contributors lock V1 tokens into a
campaign; a campaign that reaches its funding goal finalizes successfully and
pays V2 rewards, otherwise contributors claim refunds.

Raw token amounts are Python ints in memory and decimal strings on the wire.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from pydantic import BaseModel, BeforeValidator, Field, PlainSerializer, computed_field, field_validator


def _parse_raw_amount(value: Any) -> Any:
    """Accept ints, integral Decimals and decimal strings; reject floats"""
    if isinstance(value, bool):
        raise ValueError("raw amount must be an integer")
    if isinstance(value, float):
        raise ValueError("raw amount must not be a float; send a decimal string")
    if isinstance(value, Decimal):
        if value != value.to_integral_value():
            raise ValueError("raw amount must be an integer")
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if not (text.isascii() and text.lstrip("-").isdigit()):
            raise ValueError(f"raw amount must be a decimal integer string, got {value!r}")
        return int(text)
    return value


RawAmount = Annotated[
    int,
    BeforeValidator(_parse_raw_amount),
    PlainSerializer(lambda v: str(v), return_type=str, when_used="json"),
]


# ====================
# Enumerations
# ====================

class TakeoverStatus(str, Enum):
    """Lifecycle state of a campaign"""
    ACTIVE = "active"
    GOAL_REACHED = "goal_reached"
    EXPIRED = "expired"
    FINALIZING = "finalizing"
    FINALIZED_SUCCESS = "finalized_success"
    FINALIZED_FAILED = "finalized_failed"


class TakeoverStatusFilter(str, Enum):
    """Listing filter values"""
    ALL = "all"
    ACTIVE = "active"
    FINALIZED = "finalized"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    EXPIRED = "expired"


class FinalizationStatus(str, Enum):
    """Stored two-phase finalization marker"""
    NONE = "none"
    PENDING = "pending"
    COMMITTED = "committed"


class FinalizationOutcome(str, Enum):
    """Result of a single finalize attempt"""
    FINALIZED = "finalized"
    ALREADY_DONE = "already_done"


class ClaimType(str, Enum):
    """Settlement kind"""
    REFUND = "refund"
    REWARD = "reward"


class ClaimStatusFilter(str, Enum):
    """Claims listing filter values"""
    ALL = "all"
    CLAIMED = "claimed"
    UNCLAIMED = "unclaimed"


# ====================
# Core Data Models
# ====================

class SupplyMetrics(BaseModel):
    """
    Derived economic fields for a campaign.

    Raw fields are authoritative and stored at creation. Token, percent and
    formatted fields are display values only.
    """
    raw_supply: RawAmount
    decimals: int
    target_participation_bp: int
    reward_rate_bp: int

    reward_pool_raw: RawAmount
    liquidity_pool_raw: RawAmount
    safe_reward_pool_raw: RawAmount
    participation_goal_raw: RawAmount
    capacity_goal_raw: RawAmount
    calculated_min_amount_raw: RawAmount
    max_safe_contribution_raw: RawAmount

    actual_supply: Decimal
    goal_tokens: int
    reward_pool_tokens: int
    liquidity_pool_tokens: int
    safe_reward_pool_tokens: int
    max_safe_contribution_tokens: int
    reward_multiplier: Decimal
    target_participation_percent: Decimal
    goal_is_capacity_limited: bool

    formatted: Dict[str, str] = Field(default_factory=dict)


class GoalProgress(BaseModel):
    """Progress of a campaign towards its goal and its safe ceiling"""
    total_contributed: RawAmount
    calculated_min_amount: RawAmount
    max_safe_total_contribution: RawAmount
    progress_percent: Decimal
    goal_met: bool
    remaining_to_goal: RawAmount
    safe_space_remaining: RawAmount


class Takeover(BaseModel):
    """
    Campaign model - one funding round migrating V1 holders to a V2 token.
    Economic parameters and derived fields are immutable after creation.
    """
    id: Optional[int] = None
    address: str = Field(..., min_length=1, description="Campaign address")
    authority: str = Field(..., min_length=1, description="Campaign owner")
    v1_token_mint: str = Field(..., min_length=1)
    vault: Optional[str] = None
    token_name: Optional[str] = None

    # Economic parameters
    v1_total_supply: RawAmount
    decimals: int = Field(..., ge=0, le=18)
    target_participation_bp: int = Field(..., ge=1, le=10000)
    reward_rate_bp: int = Field(..., ge=100, le=200)
    v1_market_price_lamports: RawAmount = 0

    # Derived at creation
    calculated_min_amount: RawAmount
    max_safe_total_contribution: RawAmount
    reward_pool_tokens: RawAmount
    liquidity_pool_tokens: RawAmount

    # Runtime aggregates
    total_contributed: RawAmount = 0
    contributor_count: int = 0
    total_claimed: RawAmount = 0
    claimed_count: int = 0
    start_time: int
    end_time: int

    # Lifecycle
    is_finalized: bool = False
    is_successful: Optional[bool] = None
    v2_token_mint: Optional[str] = None
    finalization_status: FinalizationStatus = FinalizationStatus.NONE
    finalization_token: Optional[str] = None
    finalization_started_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None

    schema_version: int = 2
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Computed on read
    status: Optional[TakeoverStatus] = None
    progress: Optional[GoalProgress] = None


class Contribution(BaseModel):
    """Contribution model - V1 tokens locked by one contributor into one campaign"""
    id: Optional[int] = None
    takeover_id: int
    takeover_address: Optional[str] = None
    contributor: str = Field(..., min_length=1)
    amount: RawAmount
    transaction_signature: Optional[str] = None
    created_at: Optional[datetime] = None

    # Claim sub-state
    is_claimed: bool = False
    claim_amount: Optional[RawAmount] = None
    claim_type: Optional[ClaimType] = None
    claim_signature: Optional[str] = None
    claimed_at: Optional[datetime] = None


class Settlement(BaseModel):
    """Computed claimable amount for one contribution"""
    claim_type: ClaimType
    amount: RawAmount
    contribution_amount: RawAmount
    expected_reward: Optional[RawAmount] = None
    safe_reward_pool: Optional[RawAmount] = None
    scaled_down: bool = False
    capped_by_pool: bool = False


# ====================
# Request Models
# ====================

class TakeoverCreateRequest(BaseModel):
    """Request to create a campaign"""
    address: str = Field(..., min_length=1)
    authority: str = Field(..., min_length=1)
    v1_token_mint: str = Field(..., min_length=1)
    vault: Optional[str] = None
    token_name: Optional[str] = Field(None, max_length=100)
    v1_total_supply: RawAmount
    decimals: int = Field(..., ge=0, le=18)
    target_participation_bp: int
    reward_rate_bp: int
    v1_market_price_lamports: RawAmount
    start_time: int = Field(..., ge=0, description="Unix seconds")
    end_time: int = Field(..., ge=0, description="Unix seconds")

    @field_validator('address', 'authority', 'v1_token_mint')
    @classmethod
    def validate_identifiers(cls, v):
        if not v or not v.strip():
            raise ValueError("identifier cannot be empty")
        return v.strip()


class SupplyMetricsRequest(BaseModel):
    """Preview derived fields without creating a campaign"""
    raw_supply: RawAmount
    decimals: int
    target_participation_bp: int
    reward_rate_bp: int


class ContributionCreateRequest(BaseModel):
    """Request to record a contribution"""
    contributor: str = Field(..., min_length=1)
    amount: RawAmount
    transaction_signature: Optional[str] = None


class ClaimSettleRequest(BaseModel):
    """Request to settle one contribution's claim"""
    contributor: str = Field(..., min_length=1)
    takeover_address: str = Field(..., min_length=1)
    transaction_signature: Optional[str] = None


# ====================
# Response Models
# ====================

class FinalizationResult(BaseModel):
    """Structured outcome of a finalize attempt"""
    address: str
    outcome: FinalizationOutcome
    is_successful: Optional[bool] = None
    v2_token_mint: Optional[str] = None
    reason: Optional[str] = None


class SweepError(BaseModel):
    """One campaign that failed during a sweep"""
    address: str
    error: str
    error_type: str


class SweepResult(BaseModel):
    """Auto-finalize sweep report"""
    started_at: datetime
    completed_at: Optional[datetime] = None
    examined: int = 0
    finalized: List[FinalizationResult] = Field(default_factory=list)
    skipped: List[FinalizationResult] = Field(default_factory=list)
    errors: List[SweepError] = Field(default_factory=list)

    @property
    def partial_failure(self) -> bool:
        return bool(self.errors)

    def model_dump_report(self) -> Dict[str, Any]:
        report = self.model_dump(mode='json')
        report["partial_failure"] = self.partial_failure
        return report


class ClaimResult(BaseModel):
    """Settled claim"""
    contribution_id: int
    takeover_address: str
    contributor: str
    claim_type: ClaimType
    claim_amount: RawAmount
    contribution_amount: RawAmount
    token_mint: Optional[str] = None
    scaled_down: bool = False
    capped_by_pool: bool = False
    claimed_at: Optional[datetime] = None


class UserClaim(BaseModel):
    """Claim preview for a finalized contribution"""
    contribution_id: int
    takeover_address: str
    token_name: Optional[str] = None
    contribution_amount: RawAmount
    is_successful: bool
    is_claimed: bool
    claim_type: ClaimType
    refund_amount: RawAmount
    reward_amount: RawAmount
    token_mint: Optional[str] = None
    claimed_amount: Optional[RawAmount] = None
    claimed_at: Optional[datetime] = None


class TakeoverListResponse(BaseModel):
    """Paginated campaign list"""
    takeovers: List[Takeover]
    count: int
    limit: int
    offset: int


class TakeoverStatistics(BaseModel):
    """Aggregate numbers across finalized campaigns"""
    total_takeovers: int = 0
    finalized_takeovers: int = 0
    successful_takeovers: int = 0
    failed_takeovers: int = 0
    pending_finalization: int = 0
    average_reward_rate_bp: Optional[Decimal] = None
    total_contributed: RawAmount = 0
    total_claimed: RawAmount = 0


class ReconciliationReport(BaseModel):
    """Stored aggregates compared with the sum over contributions"""
    address: str
    stored_total_contributed: RawAmount
    computed_total_contributed: RawAmount
    stored_contributor_count: int
    computed_contributor_count: int
    stored_total_claimed: RawAmount
    computed_total_claimed: RawAmount
    stored_claimed_count: int
    computed_claimed_count: int

    @computed_field
    @property
    def consistent(self) -> bool:
        return (
            self.stored_total_contributed == self.computed_total_contributed
            and self.stored_contributor_count == self.computed_contributor_count
            and self.stored_total_claimed == self.computed_total_claimed
            and self.stored_claimed_count == self.computed_claimed_count
        )


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    service: str
    port: int
    version: str
    database_connected: bool = False
    nats_connected: bool = False
    timestamp: Optional[datetime] = None


__all__ = [
    "RawAmount",
    "TakeoverStatus",
    "TakeoverStatusFilter",
    "FinalizationStatus",
    "FinalizationOutcome",
    "ClaimType",
    "ClaimStatusFilter",
    "SupplyMetrics",
    "GoalProgress",
    "Takeover",
    "Contribution",
    "Settlement",
    "TakeoverCreateRequest",
    "SupplyMetricsRequest",
    "ContributionCreateRequest",
    "ClaimSettleRequest",
    "FinalizationResult",
    "SweepError",
    "SweepResult",
    "ClaimResult",
    "UserClaim",
    "TakeoverListResponse",
    "TakeoverStatistics",
    "ReconciliationReport",
    "HealthResponse",
]
