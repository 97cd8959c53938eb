"""
Unit Tests for Claim Settlement Math

Refunds for failed campaigns, rewards (with scale-down and pool cap) for
successful ones, and the claim precondition check.
"""

import pytest

from microservices.takeover_service.models import ClaimType
from microservices.takeover_service.protocols import InvalidClaimError
from microservices.takeover_service.settlement import (
    check_claimable,
    claim_update,
    compute_settlement,
    expected_reward,
    safe_reward_pool,
    settlement_for,
)

pytestmark = pytest.mark.unit


class TestRefunds:
    """Failed campaigns refund the full contribution"""

    @pytest.mark.parametrize("amount", [1, 100_000, 10 ** 24])
    def test_refund_equals_contribution(self, amount):
        settlement = compute_settlement(False, amount, 800_000, 140)

        assert settlement.claim_type == ClaimType.REFUND
        assert settlement.amount == amount
        assert settlement.scaled_down is False

    def test_refund_ignores_pool_usage(self):
        settlement = compute_settlement(False, 50_000, 800_000, 140, already_claimed=10 ** 9)

        assert settlement.amount == 50_000


class TestRewards:
    """Successful campaigns pay amount * rate_bp // 10000 from the safe pool"""

    def test_expected_reward(self):
        settlement = compute_settlement(True, 250_000, 800_000, 140)

        assert settlement.claim_type == ClaimType.REWARD
        assert settlement.expected_reward == 3_500
        assert settlement.amount == 3_500
        assert settlement.safe_reward_pool == 784_000
        assert settlement.scaled_down is False
        assert settlement.capped_by_pool is False

    def test_reward_floor_division(self):
        assert expected_reward(99, 150) == 1
        assert expected_reward(66, 150) == 0

    def test_safe_pool_keeps_two_percent_cushion(self):
        assert safe_reward_pool(800_000) == 784_000
        assert safe_reward_pool(101) == 98

    def test_scaled_down_when_expected_exceeds_pool(self):
        # pool 100 -> safe 98; expected 10000 * 200 // 10000 = 200
        settlement = compute_settlement(True, 10_000, 100, 200)

        assert settlement.scaled_down is True
        assert settlement.expected_reward == 200
        assert settlement.amount == 98 * 10_000 // 10_001
        assert settlement.amount < settlement.safe_reward_pool

    def test_reward_capped_by_pool_headroom(self):
        settlement = compute_settlement(True, 10_000, 100, 200, already_claimed=97)

        assert settlement.capped_by_pool is True
        assert settlement.amount == 1

    def test_exhausted_pool_pays_nothing(self):
        settlement = compute_settlement(True, 10_000, 100, 200, already_claimed=98)

        assert settlement.amount == 0
        assert settlement.capped_by_pool is True

    def test_sum_of_rewards_never_exceeds_safe_pool(self):
        reward_pool = 1_000
        pool = safe_reward_pool(reward_pool)
        paid = 0
        for amount in [40_000, 25_000, 10_000, 7_500, 5_000, 1]:
            settlement = compute_settlement(True, amount, reward_pool, 180, already_claimed=paid)
            paid += settlement.amount

        assert paid <= pool

    def test_negative_amount_rejected(self):
        with pytest.raises(InvalidClaimError):
            compute_settlement(True, -1, 800_000, 140)


class TestSettlementFor:
    """Settlement of stored rows"""

    def test_successful_campaign_counts_earlier_claims(self):
        takeover = {"is_successful": True, "reward_pool_tokens": 100, "reward_rate_bp": 200, "total_claimed": 90}
        settlement = settlement_for(takeover, {"amount": 10_000})

        assert settlement.amount == 8

    def test_failed_campaign_refunds(self):
        takeover = {"is_successful": False, "reward_pool_tokens": 100, "reward_rate_bp": 200, "total_claimed": 500}
        settlement = settlement_for(takeover, {"amount": 10_000})

        assert settlement.claim_type == ClaimType.REFUND
        assert settlement.amount == 10_000

    def test_claim_update_columns(self):
        settlement = compute_settlement(False, 42, 800_000, 140)

        assert claim_update(settlement, "sig") == {
            "is_claimed": True,
            "claim_amount": 42,
            "claim_type": "refund",
            "claim_signature": "sig",
        }


class TestCheckClaimable:
    """Claim preconditions"""

    @pytest.fixture
    def takeover(self):
        return {"id": 1, "address": "tko1", "is_finalized": True}

    @pytest.fixture
    def contribution(self):
        return {"id": 10, "takeover_id": 1, "contributor": "alice", "is_claimed": False}

    def test_valid_claim(self, takeover, contribution):
        check_claimable(takeover, contribution, "alice", "tko1")

    def test_unknown_contribution(self, takeover):
        with pytest.raises(InvalidClaimError, match="not found"):
            check_claimable(takeover, None, "alice", "tko1")

    def test_foreign_takeover(self, takeover, contribution):
        with pytest.raises(InvalidClaimError, match="another takeover"):
            check_claimable(takeover, contribution, "alice", "tko2")

    def test_contributor_mismatch(self, takeover, contribution):
        with pytest.raises(InvalidClaimError, match="contributor mismatch"):
            check_claimable(takeover, contribution, "mallory", "tko1")

    def test_not_finalized(self, takeover, contribution):
        takeover["is_finalized"] = False
        with pytest.raises(InvalidClaimError, match="not finalized"):
            check_claimable(takeover, contribution, "alice", "tko1")

    def test_already_claimed(self, takeover, contribution):
        contribution["is_claimed"] = True
        with pytest.raises(InvalidClaimError, match="already claimed"):
            check_claimable(takeover, contribution, "alice", "tko1")
