"""
Takeover Repository Mock for Component Testing

In-memory implementation of TakeoverRepositoryProtocol. Row locks are
modelled with one asyncio.Lock; eligibility, contribution and claim checks
use the same rule functions as the PostgreSQL repository.
"""
import asyncio
import copy
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from microservices.takeover_service.finalization import (
    check_can_begin,
    check_can_contribute,
    is_expired,
    is_goal_met,
    utc_from_timestamp,
)
from microservices.takeover_service.models import FinalizationStatus, TakeoverStatusFilter
from microservices.takeover_service.protocols import (
    DuplicateContributionError,
    DuplicateTakeoverError,
    TakeoverNotFoundError,
)
from microservices.takeover_service.settlement import check_claimable, claim_update, settlement_for


class MockTakeoverRepository:
    """In-memory campaign and contribution storage"""

    def __init__(self):
        self.takeovers: Dict[str, Dict[str, Any]] = {}
        self.contributions: Dict[int, Dict[str, Any]] = {}
        self._next_takeover_id = 1
        self._next_contribution_id = 1
        self._lock = asyncio.Lock()

        # Track method calls for verification
        self.method_calls: List[tuple] = []
        # method name -> exception raised on the next call
        self.fail_next: Dict[str, Exception] = {}

    def _maybe_fail(self, method: str):
        self.method_calls.append((method,))
        error = self.fail_next.pop(method, None)
        if error is not None:
            raise error

    def _by_id(self, takeover_id: int) -> Optional[Dict[str, Any]]:
        for row in self.takeovers.values():
            if row["id"] == takeover_id:
                return row
        return None

    # ====================
    # Campaigns
    # ====================

    async def create_takeover(self, takeover_data: Dict[str, Any]) -> Dict[str, Any]:
        self._maybe_fail("create_takeover")
        address = takeover_data["address"]
        if address in self.takeovers:
            raise DuplicateTakeoverError(f"Takeover {address} already exists")

        now = datetime.now(timezone.utc)
        row = {
            "vault": None,
            "token_name": None,
            "v1_market_price_lamports": 0,
            **takeover_data,
            "id": self._next_takeover_id,
            "total_contributed": 0,
            "contributor_count": 0,
            "total_claimed": 0,
            "claimed_count": 0,
            "is_finalized": False,
            "is_successful": None,
            "v2_token_mint": None,
            "finalization_status": FinalizationStatus.NONE.value,
            "finalization_token": None,
            "finalization_started_at": None,
            "finalized_at": None,
            "schema_version": 2,
            "created_at": now,
            "updated_at": now,
        }
        self._next_takeover_id += 1
        self.takeovers[address] = row
        return copy.deepcopy(row)

    async def get_takeover(self, address: str) -> Optional[Dict[str, Any]]:
        self._maybe_fail("get_takeover")
        row = self.takeovers.get(address)
        return copy.deepcopy(row) if row else None

    async def list_takeovers(
        self,
        status: Optional[str],
        authority: Optional[str],
        now: int,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        self._maybe_fail("list_takeovers")
        rows = []
        for row in self.takeovers.values():
            finalized = row["is_finalized"]
            if status == TakeoverStatusFilter.ACTIVE.value and (finalized or row["end_time"] <= now):
                continue
            if status == TakeoverStatusFilter.EXPIRED.value and (finalized or row["end_time"] > now):
                continue
            if status == TakeoverStatusFilter.FINALIZED.value and not finalized:
                continue
            if status == TakeoverStatusFilter.SUCCESSFUL.value and not (finalized and row["is_successful"]):
                continue
            if status == TakeoverStatusFilter.FAILED.value and not (finalized and row["is_successful"] is False):
                continue
            if authority and row["authority"] != authority:
                continue
            rows.append(row)

        rows.sort(key=lambda r: r["id"], reverse=True)
        return [copy.deepcopy(row) for row in rows[offset:offset + limit]]

    async def list_eligible_takeovers(self, now: int, lease_cutoff: datetime) -> List[Dict[str, Any]]:
        self._maybe_fail("list_eligible_takeovers")
        rows = []
        for row in self.takeovers.values():
            if row["is_finalized"]:
                continue
            if not (is_goal_met(row) or is_expired(row, now)):
                continue
            started_at = row["finalization_started_at"]
            if (
                row["finalization_status"] == FinalizationStatus.PENDING.value
                and started_at is not None
                and started_at > lease_cutoff
            ):
                continue
            rows.append(row)

        rows.sort(key=lambda r: r["id"])
        return [copy.deepcopy(row) for row in rows]

    # ====================
    # Contributions
    # ====================

    async def record_contribution(
        self,
        address: str,
        contributor: str,
        amount: int,
        transaction_signature: Optional[str],
        now: int,
    ) -> Dict[str, Any]:
        self._maybe_fail("record_contribution")
        async with self._lock:
            takeover = self.takeovers.get(address)
            if takeover is None:
                raise TakeoverNotFoundError(f"Takeover not found: {address}")

            check_can_contribute(takeover, amount, now)

            if transaction_signature:
                for existing in self.contributions.values():
                    if existing["transaction_signature"] == transaction_signature:
                        raise DuplicateContributionError(
                            f"Transaction {transaction_signature} already recorded as contribution {existing['id']}"
                        )

            seen = any(
                c["takeover_id"] == takeover["id"] and c["contributor"] == contributor
                for c in self.contributions.values()
            )

            contribution = {
                "id": self._next_contribution_id,
                "takeover_id": takeover["id"],
                "contributor": contributor,
                "amount": amount,
                "transaction_signature": transaction_signature,
                "created_at": datetime.now(timezone.utc),
                "is_claimed": False,
                "claim_amount": None,
                "claim_type": None,
                "claim_signature": None,
                "claimed_at": None,
            }
            self._next_contribution_id += 1
            self.contributions[contribution["id"]] = contribution

            takeover["total_contributed"] += amount
            takeover["contributor_count"] += 0 if seen else 1
            takeover["updated_at"] = datetime.now(timezone.utc)

            result = copy.deepcopy(contribution)
            result["takeover_address"] = address
            return {"contribution": result, "takeover": copy.deepcopy(takeover)}

    async def get_contribution(self, contribution_id: int) -> Optional[Dict[str, Any]]:
        self._maybe_fail("get_contribution")
        contribution = self.contributions.get(contribution_id)
        if contribution is None:
            return None
        result = copy.deepcopy(contribution)
        result["takeover_address"] = self._by_id(contribution["takeover_id"])["address"]
        return result

    async def list_contributions(self, address: str) -> List[Dict[str, Any]]:
        self._maybe_fail("list_contributions")
        takeover = self.takeovers.get(address)
        if takeover is None:
            return []
        rows = [c for c in self.contributions.values() if c["takeover_id"] == takeover["id"]]
        result = []
        for row in sorted(rows, key=lambda r: r["id"]):
            item = copy.deepcopy(row)
            item["takeover_address"] = address
            result.append(item)
        return result

    async def list_user_contributions(
        self,
        contributor: str,
        takeover_address: Optional[str] = None,
        finalized_only: bool = True,
    ) -> List[Dict[str, Any]]:
        self._maybe_fail("list_user_contributions")
        result = []
        for contribution in sorted(self.contributions.values(), key=lambda r: r["id"], reverse=True):
            if contribution["contributor"] != contributor:
                continue
            takeover = self._by_id(contribution["takeover_id"])
            if takeover_address and takeover["address"] != takeover_address:
                continue
            if finalized_only and not takeover["is_finalized"]:
                continue
            item = copy.deepcopy(contribution)
            item.update({
                "takeover_address": takeover["address"],
                "token_name": takeover.get("token_name"),
                "is_finalized": takeover["is_finalized"],
                "is_successful": takeover["is_successful"],
                "v1_token_mint": takeover["v1_token_mint"],
                "v2_token_mint": takeover["v2_token_mint"],
                "reward_pool_tokens": takeover["reward_pool_tokens"],
                "reward_rate_bp": takeover["reward_rate_bp"],
                "total_claimed": takeover["total_claimed"],
            })
            result.append(item)
        return result

    # ====================
    # Finalization (two-phase)
    # ====================

    async def begin_finalization(self, address: str, now: int, lease_seconds: int, token: str) -> Dict[str, Any]:
        self._maybe_fail("begin_finalization")
        async with self._lock:
            takeover = self.takeovers.get(address)
            if takeover is None:
                raise TakeoverNotFoundError(f"Takeover not found: {address}")

            check_can_begin(takeover, now, lease_seconds)

            takeover["finalization_status"] = FinalizationStatus.PENDING.value
            takeover["finalization_token"] = token
            takeover["finalization_started_at"] = utc_from_timestamp(now)
            return copy.deepcopy(takeover)

    async def commit_finalization(
        self,
        address: str,
        token: str,
        is_successful: bool,
        v2_token_mint: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        self._maybe_fail("commit_finalization")
        async with self._lock:
            takeover = self.takeovers.get(address)
            if (
                takeover is None
                or takeover["is_finalized"]
                or takeover["finalization_token"] != token
                or takeover["finalization_status"] != FinalizationStatus.PENDING.value
            ):
                return None

            takeover["is_finalized"] = True
            takeover["is_successful"] = is_successful
            takeover["v2_token_mint"] = v2_token_mint if is_successful else None
            takeover["finalization_status"] = FinalizationStatus.COMMITTED.value
            takeover["finalized_at"] = datetime.now(timezone.utc)
            return copy.deepcopy(takeover)

    async def abort_finalization(self, address: str, token: str) -> bool:
        self._maybe_fail("abort_finalization")
        async with self._lock:
            takeover = self.takeovers.get(address)
            if (
                takeover is None
                or takeover["is_finalized"]
                or takeover["finalization_token"] != token
                or takeover["finalization_status"] != FinalizationStatus.PENDING.value
            ):
                return False
            takeover["finalization_status"] = FinalizationStatus.NONE.value
            takeover["finalization_token"] = None
            takeover["finalization_started_at"] = None
            return True

    # ====================
    # Claims
    # ====================

    async def settle_claim(
        self,
        contribution_id: int,
        contributor: str,
        takeover_address: str,
        transaction_signature: Optional[str],
    ) -> Dict[str, Any]:
        self._maybe_fail("settle_claim")
        async with self._lock:
            contribution = self.contributions.get(contribution_id)
            takeover = self._by_id(contribution["takeover_id"]) if contribution else None
            check_claimable(takeover, contribution, contributor, takeover_address)

            settlement = settlement_for(takeover, contribution)
            contribution.update(claim_update(settlement, transaction_signature))
            contribution["claimed_at"] = datetime.now(timezone.utc)

            takeover["total_claimed"] += settlement.amount
            takeover["claimed_count"] += 1

            result = copy.deepcopy(contribution)
            result["takeover_address"] = takeover_address
            return {"contribution": result, "takeover": copy.deepcopy(takeover), "settlement": settlement}

    # ====================
    # Statistics and audit
    # ====================

    async def get_statistics(self) -> Dict[str, Any]:
        self._maybe_fail("get_statistics")
        rows = list(self.takeovers.values())
        finalized = [r for r in rows if r["is_finalized"]]
        average = None
        if finalized:
            average = Decimal(sum(r["reward_rate_bp"] for r in finalized)) / Decimal(len(finalized))
        return {
            "total_takeovers": len(rows),
            "finalized_takeovers": len(finalized),
            "successful_takeovers": sum(1 for r in finalized if r["is_successful"]),
            "failed_takeovers": sum(1 for r in finalized if not r["is_successful"]),
            "pending_finalization": sum(
                1 for r in rows if r["finalization_status"] == FinalizationStatus.PENDING.value
            ),
            "average_reward_rate_bp": average,
            "total_contributed": sum(r["total_contributed"] for r in rows),
            "total_claimed": sum(r["total_claimed"] for r in rows),
        }

    async def compute_aggregates(self, address: str) -> Optional[Dict[str, Any]]:
        self._maybe_fail("compute_aggregates")
        takeover = self.takeovers.get(address)
        if takeover is None:
            return None
        rows = [c for c in self.contributions.values() if c["takeover_id"] == takeover["id"]]
        claimed = [c for c in rows if c["is_claimed"]]
        return {
            "takeover_id": takeover["id"],
            "contributed_total": sum(c["amount"] for c in rows),
            "contributor_count": len({c["contributor"] for c in rows}),
            "claimed_total": sum(c["claim_amount"] for c in claimed),
            "claimed_count": len(claimed),
        }

    # ====================
    # Test helpers
    # ====================

    async def seed_takeover(self, row: Dict[str, Any], **state) -> Dict[str, Any]:
        """Insert a campaign row and overwrite runtime state (totals, lease, flags)"""
        created = await self.create_takeover(dict(row))
        self.takeovers[created["address"]].update(state)
        return copy.deepcopy(self.takeovers[created["address"]])
