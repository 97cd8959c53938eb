"""
Takeover Service - Business Logic

Campaign creation with conservative supply economics, contributions,
finalization (single and sweep), claim settlement, claim previews,
statistics and aggregate reconciliation.
"""

import logging
import time
from typing import Callable, List, Optional

from core.config import TakeoverConfig

from .auto_finalize import AutoFinalizeScheduler
from .events.publishers import (
    publish_claim_settled,
    publish_contribution_received,
    publish_takeover_created,
)
from .finalization import (
    REASON_ALREADY_FINALIZED,
    REASON_LEASE_LOST,
    REASON_PENDING,
    FinalizationStateMachine,
    derive_status,
    lease_cutoff,
)
from .models import (
    ClaimResult,
    ClaimSettleRequest,
    ClaimStatusFilter,
    ClaimType,
    Contribution,
    ContributionCreateRequest,
    FinalizationOutcome,
    FinalizationResult,
    ReconciliationReport,
    SupplyMetrics,
    SupplyMetricsRequest,
    SweepResult,
    Takeover,
    TakeoverCreateRequest,
    TakeoverListResponse,
    TakeoverStatistics,
    TakeoverStatusFilter,
    UserClaim,
)
from .protocols import (
    ExternalDependencyError,
    InvalidParametersError,
    MintClientProtocol,
    NotEligibleError,
    TakeoverNotFoundError,
    TakeoverRepositoryProtocol,
    TakeoverServiceError,
)
from .settlement import compute_settlement
from .supply_metrics import (
    calculate_supply_metrics,
    derived_fields,
    goal_progress,
    validate_price_lamports,
    validate_token_supply,
)

logger = logging.getLogger(__name__)


class TakeoverService:
    """
    Takeover campaign business logic.

    Dependencies are injected: repository, mint client and event bus come
    from factory.create_takeover_service or from test doubles.
    """

    def __init__(
        self,
        repository: TakeoverRepositoryProtocol,
        mint_client: MintClientProtocol,
        event_bus=None,
        config: Optional[TakeoverConfig] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize takeover service.

        Args:
            repository: Storage implementing TakeoverRepositoryProtocol
            mint_client: V2 mint issuance client
            event_bus: Optional event bus for lifecycle events
            config: Service configuration (policy bounds, lease length)
            clock: Unix-seconds clock, injectable for tests
        """
        self.repository = repository
        self.mint_client = mint_client
        self.config = config or TakeoverConfig()
        self.event_bus = event_bus if self.config.publish_events else None
        self.clock = clock or (lambda: int(time.time()))

        self.state_machine = FinalizationStateMachine(
            repository=repository,
            mint_client=mint_client,
            event_bus=self.event_bus,
            lease_seconds=self.config.finalization_lease_seconds,
            clock=self.clock,
        )
        self.scheduler = AutoFinalizeScheduler(
            repository=repository,
            state_machine=self.state_machine,
            event_bus=self.event_bus,
        )

    # ====================
    # Supply metrics
    # ====================

    def calculate_metrics(self, request: SupplyMetricsRequest) -> SupplyMetrics:
        """Preview derived economics for a prospective campaign"""
        return calculate_supply_metrics(
            request.raw_supply,
            request.decimals,
            request.target_participation_bp,
            request.reward_rate_bp,
        )

    # ====================
    # Campaigns
    # ====================

    async def create_takeover(self, request: TakeoverCreateRequest) -> Takeover:
        """
        Create a campaign.

        Derived fields (goal, max safe total, reward and liquidity pools) are
        computed here once and stored; they never change afterwards.

        Args:
            request: Campaign parameters

        Returns:
            Created Takeover

        Raises:
            InvalidParametersError: Rates, supply, price or window out of bounds
            DuplicateTakeoverError: Address already registered
        """
        metrics = calculate_supply_metrics(
            request.v1_total_supply,
            request.decimals,
            request.target_participation_bp,
            request.reward_rate_bp,
        )
        validate_token_supply(
            metrics.raw_supply,
            request.decimals,
            self.config.min_supply_tokens,
            self.config.max_supply_tokens,
        )
        validate_price_lamports(
            request.v1_market_price_lamports,
            self.config.min_price_lamports,
            self.config.max_price_lamports,
        )
        if request.end_time <= request.start_time:
            raise InvalidParametersError("end_time must be after start_time", field="end_time", value=request.end_time)

        takeover_data = request.model_dump()
        takeover_data.update(derived_fields(metrics))

        row = await self._storage(
            self.repository.create_takeover(takeover_data), f"creating takeover {request.address}"
        )
        logger.info(
            f"Takeover {request.address} created: goal={metrics.goal_tokens} tokens "
            f"({metrics.formatted['goal']}), reward_rate={request.reward_rate_bp}bp"
        )

        if self.event_bus:
            await publish_takeover_created(self.event_bus, row)

        return self._to_takeover(row)

    async def get_takeover(self, address: str) -> Takeover:
        row = await self._storage(self.repository.get_takeover(address), f"getting takeover {address}")
        if not row:
            raise TakeoverNotFoundError(f"Takeover not found: {address}")
        return self._to_takeover(row)

    async def list_takeovers(
        self,
        status: TakeoverStatusFilter = TakeoverStatusFilter.ALL,
        authority: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> TakeoverListResponse:
        now = self.clock()
        status_value = None if status == TakeoverStatusFilter.ALL else status.value
        rows = await self._storage(
            self.repository.list_takeovers(status_value, authority, now, limit=limit, offset=offset),
            "listing takeovers",
        )
        takeovers = [self._to_takeover(row, now) for row in rows]
        return TakeoverListResponse(takeovers=takeovers, count=len(takeovers), limit=limit, offset=offset)

    async def list_eligible(self) -> List[Takeover]:
        """Campaigns currently eligible for finalization, oldest first"""
        now = self.clock()
        rows = await self._storage(
            self.repository.list_eligible_takeovers(now, lease_cutoff(now, self.config.finalization_lease_seconds)),
            "listing eligible takeovers",
        )
        return [self._to_takeover(row, now) for row in rows]

    # ====================
    # Contributions
    # ====================

    async def contribute(self, address: str, request: ContributionCreateRequest) -> dict:
        """
        Record a contribution.

        The insert and the campaign aggregate increment commit together under
        the campaign row lock.

        Returns:
            {"contribution": Contribution, "takeover": Takeover}

        Raises:
            TakeoverNotFoundError, TakeoverClosedError, ContributionLimitExceededError,
            DuplicateContributionError, InvalidParametersError
        """
        result = await self._storage(
            self.repository.record_contribution(
                address,
                request.contributor,
                request.amount,
                request.transaction_signature,
                self.clock(),
            ),
            f"recording contribution to {address}",
        )
        contribution = result["contribution"]
        takeover = result["takeover"]
        logger.info(
            f"Contribution {contribution['id']} to {address}: {request.amount} from {request.contributor} "
            f"(total={takeover['total_contributed']})"
        )

        if self.event_bus:
            await publish_contribution_received(self.event_bus, takeover, contribution)

        return {"contribution": Contribution(**contribution), "takeover": self._to_takeover(takeover)}

    # ====================
    # Finalization
    # ====================

    async def finalize(self, address: str) -> FinalizationResult:
        """
        Finalize one campaign.

        Returns:
            FinalizationResult: FINALIZED, or ALREADY_DONE when another
            finalizer got there first

        Raises:
            TakeoverNotFoundError: Unknown campaign
            NotEligibleError: Goal not met and deadline not reached
            ExternalDependencyError: Mint or storage failure (rolled back)
        """
        try:
            return await self.state_machine.finalize(address)
        except NotEligibleError as e:
            if e.reason in (REASON_ALREADY_FINALIZED, REASON_PENDING, REASON_LEASE_LOST):
                return FinalizationResult(address=address, outcome=FinalizationOutcome.ALREADY_DONE, reason=e.reason)
            raise
        except TakeoverServiceError:
            raise
        except Exception as e:
            logger.error(f"Storage failure finalizing {address}: {e}", exc_info=True)
            raise ExternalDependencyError(f"Storage failure finalizing {address}: {e}", dependency="storage") from e

    async def sweep(self) -> SweepResult:
        """Run one auto-finalize sweep"""
        return await self.scheduler.sweep()

    # ====================
    # Claims
    # ====================

    async def settle_claim(self, contribution_id: int, request: ClaimSettleRequest) -> ClaimResult:
        """
        Settle the refund or reward for one contribution.

        Raises:
            InvalidClaimError: Unknown, foreign or already-claimed contribution,
                or campaign not finalized
        """
        result = await self._storage(
            self.repository.settle_claim(
                contribution_id,
                request.contributor,
                request.takeover_address,
                request.transaction_signature,
            ),
            f"settling claim {contribution_id}",
        )
        contribution = result["contribution"]
        takeover = result["takeover"]
        settlement = result["settlement"]

        token_mint = (
            takeover.get("v2_token_mint") if settlement.claim_type == ClaimType.REWARD else takeover.get("v1_token_mint")
        )
        if settlement.scaled_down or settlement.capped_by_pool:
            logger.warning(
                f"Claim {contribution_id} on {request.takeover_address} scaled down: "
                f"expected={settlement.expected_reward}, paid={settlement.amount}"
            )
        logger.info(
            f"Claim {contribution_id} settled: {settlement.claim_type.value} {settlement.amount} "
            f"for {request.contributor}"
        )

        if self.event_bus:
            await publish_claim_settled(
                self.event_bus,
                address=request.takeover_address,
                contribution_id=contribution_id,
                contributor=request.contributor,
                claim_type=settlement.claim_type.value,
                claim_amount=settlement.amount,
                token_mint=token_mint,
            )

        return ClaimResult(
            contribution_id=contribution_id,
            takeover_address=request.takeover_address,
            contributor=request.contributor,
            claim_type=settlement.claim_type,
            claim_amount=settlement.amount,
            contribution_amount=settlement.contribution_amount,
            token_mint=token_mint,
            scaled_down=settlement.scaled_down,
            capped_by_pool=settlement.capped_by_pool,
            claimed_at=contribution.get("claimed_at"),
        )

    async def list_user_claims(
        self,
        contributor: str,
        takeover_address: Optional[str] = None,
        status: ClaimStatusFilter = ClaimStatusFilter.ALL,
    ) -> List[UserClaim]:
        """
        Finalized contributions of one contributor with a settlement preview.

        Previews are read-only; the amount actually paid is fixed when the
        claim is settled.
        """
        rows = await self._storage(
            self.repository.list_user_contributions(contributor, takeover_address, finalized_only=True),
            f"listing claims for {contributor}",
        )

        claims = []
        for row in rows:
            if status == ClaimStatusFilter.CLAIMED and not row.get("is_claimed"):
                continue
            if status == ClaimStatusFilter.UNCLAIMED and row.get("is_claimed"):
                continue

            is_successful = bool(row.get("is_successful"))
            amount = int(row["amount"])
            reward_amount = 0
            if is_successful:
                reward_amount = compute_settlement(
                    True,
                    amount,
                    int(row["reward_pool_tokens"]),
                    int(row["reward_rate_bp"]),
                    already_claimed=int(row.get("total_claimed") or 0),
                ).amount

            claims.append(UserClaim(
                contribution_id=row["id"],
                takeover_address=row["takeover_address"],
                token_name=row.get("token_name"),
                contribution_amount=amount,
                is_successful=is_successful,
                is_claimed=bool(row.get("is_claimed")),
                claim_type=ClaimType.REWARD if is_successful else ClaimType.REFUND,
                refund_amount=0 if is_successful else amount,
                reward_amount=reward_amount,
                token_mint=row.get("v2_token_mint") if is_successful else row.get("v1_token_mint"),
                claimed_amount=row.get("claim_amount"),
                claimed_at=row.get("claimed_at"),
            ))

        return claims

    # ====================
    # Statistics and audit
    # ====================

    async def get_statistics(self) -> TakeoverStatistics:
        stats = await self._storage(self.repository.get_statistics(), "getting statistics")
        return TakeoverStatistics(**{key: value for key, value in stats.items() if value is not None})

    async def reconcile_totals(self, address: str) -> ReconciliationReport:
        """
        Compare stored aggregates with the sum over contributions.

        Audit only: decisions always use the stored aggregates.
        """
        takeover = await self._storage(self.repository.get_takeover(address), f"getting takeover {address}")
        if not takeover:
            raise TakeoverNotFoundError(f"Takeover not found: {address}")
        computed = await self._storage(self.repository.compute_aggregates(address), f"summing {address}")

        report = ReconciliationReport(
            address=address,
            stored_total_contributed=takeover["total_contributed"],
            computed_total_contributed=computed["contributed_total"],
            stored_contributor_count=takeover["contributor_count"],
            computed_contributor_count=computed["contributor_count"],
            stored_total_claimed=takeover["total_claimed"],
            computed_total_claimed=computed["claimed_total"],
            stored_claimed_count=takeover["claimed_count"],
            computed_claimed_count=computed["claimed_count"],
        )
        if not report.consistent:
            logger.warning(f"Aggregate drift detected for {address}: {report.model_dump(mode='json')}")
        return report

    # ====================
    # Helpers
    # ====================

    async def _storage(self, awaitable, action: str):
        """Await a repository call, mapping unexpected failures to ExternalDependencyError"""
        try:
            return await awaitable
        except TakeoverServiceError:
            raise
        except Exception as e:
            logger.error(f"Storage failure {action}: {e}", exc_info=True)
            raise ExternalDependencyError(f"Storage failure {action}: {e}", dependency="storage") from e

    def _to_takeover(self, row: dict, now: Optional[int] = None) -> Takeover:
        now = self.clock() if now is None else now
        takeover = Takeover(**row)
        takeover.status = derive_status(row, now)
        takeover.progress = goal_progress(
            takeover.total_contributed,
            takeover.calculated_min_amount,
            takeover.max_safe_total_contribution,
        )
        return takeover
