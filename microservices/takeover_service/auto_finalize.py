"""
Auto-Finalize Scheduler

Population sweep: finds every campaign eligible for finalization and drives
each through the FinalizationStateMachine, oldest first, one at a time.
A failure on one campaign is recorded and the sweep moves on.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from .events.publishers import publish_sweep_completed
from .finalization import FinalizationStateMachine, lease_cutoff
from .models import FinalizationOutcome, FinalizationResult, SweepError, SweepResult
from .protocols import NotEligibleError, SweepPartialFailure, TakeoverRepositoryProtocol

logger = logging.getLogger(__name__)


class AutoFinalizeScheduler:
    """Finalizes all eligible campaigns with per-item fault isolation"""

    def __init__(
        self,
        repository: TakeoverRepositoryProtocol,
        state_machine: FinalizationStateMachine,
        event_bus=None,
    ):
        self.repository = repository
        self.state_machine = state_machine
        self.event_bus = event_bus

    async def sweep(self, now: Optional[int] = None, raise_on_error: bool = False) -> SweepResult:
        """
        Finalize every currently eligible campaign.

        Safe to run concurrently with other sweeps or manual finalizes: a
        campaign taken by another finalizer shows up under skipped.

        Args:
            now: Unix seconds (defaults to the state machine clock)
            raise_on_error: Raise SweepPartialFailure after the sweep if any
                campaign failed

        Returns:
            SweepResult listing finalized, skipped and failed campaigns
        """
        now = self.state_machine.clock() if now is None else now
        result = SweepResult(started_at=datetime.now(timezone.utc))

        eligible = await self.repository.list_eligible_takeovers(
            now, lease_cutoff(now, self.state_machine.lease_seconds)
        )
        result.examined = len(eligible)
        if eligible:
            logger.info(f"Auto-finalize sweep: {len(eligible)} eligible takeovers")

        for takeover in eligible:
            address = takeover["address"]
            try:
                finalized = await self.state_machine.finalize(address, now=now)
                result.finalized.append(finalized)
            except NotEligibleError as e:
                logger.info(f"Skipping {address}: {e}")
                result.skipped.append(
                    FinalizationResult(address=address, outcome=FinalizationOutcome.ALREADY_DONE, reason=e.reason)
                )
            except Exception as e:
                logger.error(f"Auto-finalize failed for {address}: {e}", exc_info=True)
                result.errors.append(SweepError(address=address, error=str(e), error_type=type(e).__name__))

        result.completed_at = datetime.now(timezone.utc)

        if eligible:
            logger.info(
                f"Auto-finalize sweep done: {len(result.finalized)} finalized, "
                f"{len(result.skipped)} skipped, {len(result.errors)} failed"
            )
            if self.event_bus:
                await publish_sweep_completed(
                    self.event_bus,
                    examined=result.examined,
                    finalized=[item.address for item in result.finalized],
                    failed=[item.address for item in result.errors],
                )

        if raise_on_error and result.partial_failure:
            raise SweepPartialFailure(
                f"{len(result.errors)} of {result.examined} takeovers failed to finalize",
                result=result,
            )

        return result
