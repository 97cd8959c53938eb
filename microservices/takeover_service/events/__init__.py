"""
Takeover Service Event Package

Publishing: campaign lifecycle events (created, contribution received,
finalized), claim settlement and sweep reports.
"""

from .models import (
    TakeoverEventType,
    TakeoverStreamConfig,
    TakeoverCreatedEventData,
    ContributionReceivedEventData,
    TakeoverFinalizedEventData,
    ClaimSettledEventData,
    SweepCompletedEventData,
)

from .publishers import (
    publish_takeover_created,
    publish_contribution_received,
    publish_takeover_finalized,
    publish_claim_settled,
    publish_sweep_completed,
)

__all__ = [
    "TakeoverEventType",
    "TakeoverStreamConfig",
    "TakeoverCreatedEventData",
    "ContributionReceivedEventData",
    "TakeoverFinalizedEventData",
    "ClaimSettledEventData",
    "SweepCompletedEventData",
    "publish_takeover_created",
    "publish_contribution_received",
    "publish_takeover_finalized",
    "publish_claim_settled",
    "publish_sweep_completed",
]
