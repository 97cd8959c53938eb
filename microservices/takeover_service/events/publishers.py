"""
Takeover Service Event Publishers

Publish events for campaign lifecycle and claim settlement.
Publishing failures are logged and never fail the calling operation.
"""

import logging
from typing import List, Optional

from core.nats_client import Event, EventType, ServiceSource

from .models import (
    ClaimSettledEventData,
    ContributionReceivedEventData,
    SweepCompletedEventData,
    TakeoverCreatedEventData,
    TakeoverFinalizedEventData,
)

logger = logging.getLogger(__name__)


async def _publish(event_bus, event_type: EventType, data) -> bool:
    event = Event(
        event_type=event_type,
        source=ServiceSource.TAKEOVER_SERVICE,
        data=data.model_dump(mode='json'),
    )
    return await event_bus.publish_event(event)


# ============================================================================
# Campaign Lifecycle Event Publishers
# ============================================================================


async def publish_takeover_created(event_bus, takeover: dict):
    """Publish takeover.created event"""
    try:
        event_data = TakeoverCreatedEventData(
            address=takeover["address"],
            authority=takeover["authority"],
            v1_token_mint=takeover["v1_token_mint"],
            calculated_min_amount=takeover["calculated_min_amount"],
            max_safe_total_contribution=takeover["max_safe_total_contribution"],
            reward_rate_bp=takeover["reward_rate_bp"],
            end_time=takeover["end_time"],
        )
        await _publish(event_bus, EventType.TAKEOVER_CREATED, event_data)
        logger.info(f"Published takeover.created for {takeover['address']}")

    except Exception as e:
        logger.error(f"Failed to publish takeover.created: {e}")


async def publish_contribution_received(event_bus, takeover: dict, contribution: dict):
    """
    Publish takeover.contribution.received event

    Args:
        event_bus: NATS event bus instance
        takeover: Campaign row after the aggregate update
        contribution: Inserted contribution row
    """
    try:
        event_data = ContributionReceivedEventData(
            address=takeover["address"],
            contribution_id=contribution["id"],
            contributor=contribution["contributor"],
            amount=contribution["amount"],
            total_contributed=takeover["total_contributed"],
            contributor_count=takeover["contributor_count"],
            goal_met=int(takeover["total_contributed"]) >= int(takeover["calculated_min_amount"]),
        )
        await _publish(event_bus, EventType.CONTRIBUTION_RECEIVED, event_data)
        logger.info(
            f"Published takeover.contribution.received for {takeover['address']}: {contribution['amount']}"
        )

    except Exception as e:
        logger.error(f"Failed to publish takeover.contribution.received: {e}")


async def publish_takeover_finalized(event_bus, takeover: dict):
    """Publish takeover.finalized event"""
    try:
        event_data = TakeoverFinalizedEventData(
            address=takeover["address"],
            is_successful=bool(takeover["is_successful"]),
            v2_token_mint=takeover.get("v2_token_mint"),
            total_contributed=takeover["total_contributed"],
            calculated_min_amount=takeover["calculated_min_amount"],
            contributor_count=takeover["contributor_count"],
        )
        await _publish(event_bus, EventType.TAKEOVER_FINALIZED, event_data)
        logger.info(
            f"Published takeover.finalized for {takeover['address']} (successful={event_data.is_successful})"
        )

    except Exception as e:
        logger.error(f"Failed to publish takeover.finalized: {e}")


async def publish_claim_settled(
    event_bus,
    address: str,
    contribution_id: int,
    contributor: str,
    claim_type: str,
    claim_amount: int,
    token_mint: Optional[str] = None,
):
    """Publish takeover.claim.settled event"""
    try:
        event_data = ClaimSettledEventData(
            address=address,
            contribution_id=contribution_id,
            contributor=contributor,
            claim_type=claim_type,
            claim_amount=claim_amount,
            token_mint=token_mint,
        )
        await _publish(event_bus, EventType.CLAIM_SETTLED, event_data)
        logger.info(f"Published takeover.claim.settled for contribution {contribution_id}: {claim_type} {claim_amount}")

    except Exception as e:
        logger.error(f"Failed to publish takeover.claim.settled: {e}")


async def publish_sweep_completed(
    event_bus,
    examined: int,
    finalized: List[str],
    failed: List[str],
):
    """Publish takeover.sweep.completed event"""
    try:
        event_data = SweepCompletedEventData(
            examined=examined,
            finalized=finalized,
            failed=failed,
            partial_failure=bool(failed),
        )
        await _publish(event_bus, EventType.SWEEP_COMPLETED, event_data)
        logger.info(f"Published takeover.sweep.completed: {len(finalized)} finalized, {len(failed)} failed")

    except Exception as e:
        logger.error(f"Failed to publish takeover.sweep.completed: {e}")
