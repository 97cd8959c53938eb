"""
Finalization State Machine

    ACTIVE -> GOAL_REACHED | EXPIRED -> FINALIZING -> FINALIZED_SUCCESS | FINALIZED_FAILED

Finalization is two-phase. begin marks the campaign pending under its row
lock, the V2 mint is provisioned outside any transaction, and commit writes
the terminal flags only if the pending lease is still held. A failed mint or
commit aborts the lease, leaving the campaign eligible for a later retry.
"""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping, Optional

from .events.publishers import publish_takeover_finalized
from .models import FinalizationOutcome, FinalizationResult, FinalizationStatus, TakeoverStatus
from .protocols import (
    ContributionLimitExceededError,
    ExternalDependencyError,
    InvalidParametersError,
    MintClientProtocol,
    MintIssuanceError,
    NotEligibleError,
    TakeoverClosedError,
    TakeoverRepositoryProtocol,
)

logger = logging.getLogger(__name__)

REASON_ALREADY_FINALIZED = "already_finalized"
REASON_PENDING = "finalization_pending"
REASON_NOT_YET_ELIGIBLE = "not_yet_eligible"
REASON_LEASE_LOST = "lease_lost"


# ====================
# Rules
# ====================

def utc_from_timestamp(now: int) -> datetime:
    return datetime.fromtimestamp(now, tz=timezone.utc)


def lease_cutoff(now: int, lease_seconds: int) -> datetime:
    """Pending leases started at or before this instant are abandoned"""
    return utc_from_timestamp(now) - timedelta(seconds=lease_seconds)


def is_goal_met(takeover: Mapping[str, Any]) -> bool:
    return int(takeover["total_contributed"]) >= int(takeover["calculated_min_amount"])


def is_expired(takeover: Mapping[str, Any], now: int) -> bool:
    return now >= int(takeover["end_time"])


def has_live_lease(takeover: Mapping[str, Any], now: int, lease_seconds: int) -> bool:
    if takeover.get("finalization_status") != FinalizationStatus.PENDING.value:
        return False
    started_at = takeover.get("finalization_started_at")
    if started_at is None:
        return False
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return started_at > lease_cutoff(now, lease_seconds)


def is_eligible(takeover: Mapping[str, Any], now: int, lease_seconds: int) -> bool:
    """Not finalized, goal met or deadline reached, and no live pending lease"""
    if takeover.get("is_finalized"):
        return False
    if has_live_lease(takeover, now, lease_seconds):
        return False
    return is_goal_met(takeover) or is_expired(takeover, now)


def check_can_begin(takeover: Mapping[str, Any], now: int, lease_seconds: int) -> None:
    """Raise NotEligibleError unless a finalizer may take the lease now"""
    address = takeover.get("address")
    if takeover.get("is_finalized"):
        raise NotEligibleError(f"Takeover {address} is already finalized", reason=REASON_ALREADY_FINALIZED)
    if has_live_lease(takeover, now, lease_seconds):
        raise NotEligibleError(f"Takeover {address} is being finalized", reason=REASON_PENDING)
    if not (is_goal_met(takeover) or is_expired(takeover, now)):
        raise NotEligibleError(
            f"Takeover {address} has not reached its goal or deadline",
            reason=REASON_NOT_YET_ELIGIBLE,
        )


def check_can_contribute(takeover: Mapping[str, Any], amount: int, now: int) -> None:
    """Raise unless the contribution may be recorded against the locked campaign row"""
    address = takeover.get("address")
    if amount <= 0:
        raise InvalidParametersError("Contribution amount must be positive", field="amount", value=str(amount))
    if takeover.get("is_finalized"):
        raise TakeoverClosedError(f"Takeover {address} is finalized")
    if takeover.get("finalization_status") == FinalizationStatus.PENDING.value:
        raise TakeoverClosedError(f"Takeover {address} is being finalized")
    if now < int(takeover["start_time"]):
        raise TakeoverClosedError(f"Takeover {address} has not started")
    if is_expired(takeover, now):
        raise TakeoverClosedError(f"Takeover {address} has ended")

    total = int(takeover["total_contributed"])
    ceiling = int(takeover["max_safe_total_contribution"])
    if total + amount > ceiling:
        raise ContributionLimitExceededError(
            f"Contribution would exceed the maximum safe total for {address}",
            max_safe_total=ceiling,
            total_contributed=total,
        )


def derive_status(takeover: Mapping[str, Any], now: int) -> TakeoverStatus:
    if takeover.get("is_finalized"):
        if takeover.get("is_successful"):
            return TakeoverStatus.FINALIZED_SUCCESS
        return TakeoverStatus.FINALIZED_FAILED
    if takeover.get("finalization_status") == FinalizationStatus.PENDING.value:
        return TakeoverStatus.FINALIZING
    if is_goal_met(takeover):
        return TakeoverStatus.GOAL_REACHED
    if is_expired(takeover, now):
        return TakeoverStatus.EXPIRED
    return TakeoverStatus.ACTIVE


def mint_idempotency_key(address: str) -> str:
    return f"takeover-v2:{address}"


# ====================
# State Machine
# ====================

class FinalizationStateMachine:
    """
    Drives one campaign through finalization exactly once.

    Concurrent finalizers are serialized by the repository's row lock and the
    pending lease; the loser observes NotEligibleError. The mint call carries
    an idempotency key derived from the campaign address, so a retry after an
    abandoned lease never provisions a second V2 token.
    """

    def __init__(
        self,
        repository: TakeoverRepositoryProtocol,
        mint_client: MintClientProtocol,
        event_bus=None,
        lease_seconds: int = 300,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.repository = repository
        self.mint_client = mint_client
        self.event_bus = event_bus
        self.lease_seconds = lease_seconds
        self.clock = clock or (lambda: int(time.time()))

    async def finalize(self, address: str, now: Optional[int] = None) -> FinalizationResult:
        """
        Finalize one campaign.

        Args:
            address: Campaign address
            now: Unix seconds (defaults to the clock)

        Returns:
            FinalizationResult with outcome FINALIZED

        Raises:
            TakeoverNotFoundError: Unknown campaign
            NotEligibleError: Already finalized, pending elsewhere, not yet
                eligible, or the lease was lost before commit
            ExternalDependencyError: Mint or storage failure; pending state rolled back
        """
        now = self.clock() if now is None else now
        token = uuid.uuid4().hex

        pending = await self.repository.begin_finalization(address, now, self.lease_seconds, token)
        is_successful = is_goal_met(pending)
        logger.info(f"Finalization started for {address} (successful={is_successful})")

        v2_token_mint = None
        if is_successful:
            try:
                v2_token_mint = await self.mint_client.create_mint(
                    authority=pending["authority"],
                    decimals=int(pending["decimals"]),
                    idempotency_key=mint_idempotency_key(address),
                )
            except asyncio.CancelledError:
                await self._abort(address, token)
                logger.warning(f"Finalization of {address} cancelled during mint issuance")
                raise
            except Exception as e:
                await self._abort(address, token)
                logger.error(f"Mint issuance failed for {address}: {e}")
                if isinstance(e, ExternalDependencyError):
                    raise
                raise MintIssuanceError(f"Mint issuance failed for {address}: {e}") from e

        try:
            committed = await self.repository.commit_finalization(address, token, is_successful, v2_token_mint)
        except Exception as e:
            await self._abort(address, token)
            logger.error(f"Finalization commit failed for {address}: {e}")
            raise ExternalDependencyError(f"Finalization commit failed for {address}: {e}", dependency="storage") from e

        if committed is None:
            logger.warning(f"Finalization lease lost for {address}")
            raise NotEligibleError(f"Finalization lease for {address} was taken over", reason=REASON_LEASE_LOST)

        logger.info(
            f"Takeover {address} finalized: successful={is_successful}, v2_token_mint={v2_token_mint}"
        )

        if self.event_bus:
            await publish_takeover_finalized(self.event_bus, committed)

        return FinalizationResult(
            address=address,
            outcome=FinalizationOutcome.FINALIZED,
            is_successful=is_successful,
            v2_token_mint=v2_token_mint,
        )

    async def _abort(self, address: str, token: str) -> None:
        try:
            released = await self.repository.abort_finalization(address, token)
            if released:
                logger.info(f"Finalization of {address} rolled back; takeover remains eligible")
        except Exception as e:
            # Lease expiry makes the campaign eligible again without the abort.
            logger.error(f"Failed to release finalization lease for {address}: {e}")
