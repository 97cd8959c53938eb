"""
Takeover Service Event Models

Event data models for campaign lifecycle and claim settlement events.
Raw token amounts are carried as decimal strings.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models import RawAmount

# =============================================================================
# Event Type Definitions (Service-Specific)
# =============================================================================

class TakeoverEventType(str, Enum):
    """
    Events published by takeover_service.

    Stream: takeover-stream
    Subjects: takeover.>
    """
    TAKEOVER_CREATED = "takeover.created"
    CONTRIBUTION_RECEIVED = "takeover.contribution.received"
    TAKEOVER_FINALIZED = "takeover.finalized"
    CLAIM_SETTLED = "takeover.claim.settled"
    SWEEP_COMPLETED = "takeover.sweep.completed"


class TakeoverStreamConfig:
    """Stream configuration for takeover_service"""
    STREAM_NAME = "takeover-stream"
    SUBJECTS = ["takeover.>"]
    MAX_MESSAGES = 100000
    CONSUMER_PREFIX = "takeover"


# ============================================================================
# Campaign Lifecycle Event Models
# ============================================================================


class TakeoverCreatedEventData(BaseModel):
    """
    Event: takeover.created
    Triggered when a campaign is registered with its derived economics
    """

    address: str = Field(..., description="Campaign address")
    authority: str = Field(..., description="Campaign owner")
    v1_token_mint: str = Field(..., description="V1 token mint")
    calculated_min_amount: RawAmount = Field(..., description="Funding goal (raw units)")
    max_safe_total_contribution: RawAmount = Field(..., description="Hard contribution ceiling (raw units)")
    reward_rate_bp: int = Field(..., description="Reward rate in basis points")
    end_time: int = Field(..., description="Deadline, unix seconds")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ContributionReceivedEventData(BaseModel):
    """
    Event: takeover.contribution.received
    Triggered after a contribution and the campaign totals are committed
    """

    address: str
    contribution_id: int
    contributor: str
    amount: RawAmount
    total_contributed: RawAmount
    contributor_count: int
    goal_met: bool
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class TakeoverFinalizedEventData(BaseModel):
    """
    Event: takeover.finalized
    Triggered once per campaign when finalization commits
    """

    address: str
    is_successful: bool
    v2_token_mint: Optional[str] = None
    total_contributed: RawAmount
    calculated_min_amount: RawAmount
    contributor_count: int
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ClaimSettledEventData(BaseModel):
    """
    Event: takeover.claim.settled
    Triggered when a contribution's refund or reward is settled
    """

    address: str
    contribution_id: int
    contributor: str
    claim_type: str
    claim_amount: RawAmount
    token_mint: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class SweepCompletedEventData(BaseModel):
    """
    Event: takeover.sweep.completed
    Triggered after an auto-finalize sweep that examined at least one campaign
    """

    examined: int
    finalized: List[str] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)
    partial_failure: bool = False
    timestamp: datetime = Field(default_factory=datetime.utcnow)
