"""
Claim Settlement

Pure settlement math for one contribution of a finalized campaign, plus the
claim precondition check shared by the repositories.

Failed campaign: refund of the full contribution in the V1 token.
Successful campaign: reward in the V2 token,

    safe_pool = reward_pool * 98 // 100
    expected  = amount * reward_rate_bp // 10000
    reward    = expected                              if expected <= safe_pool
              = safe_pool * amount // (amount + 1)    otherwise

The reward is finally capped at the safe pool headroom left by earlier claims,
so the sum of rewards never exceeds safe_pool.
"""

from typing import Any, Dict, Mapping, Optional

from .models import ClaimType, Settlement
from .protocols import InvalidClaimError
from .supply_metrics import BP_DENOMINATOR, SAFETY_CUSHION_DENOMINATOR, SAFETY_CUSHION_NUMERATOR


def safe_reward_pool(reward_pool_tokens: int) -> int:
    return reward_pool_tokens * SAFETY_CUSHION_NUMERATOR // SAFETY_CUSHION_DENOMINATOR


def expected_reward(contribution_amount: int, reward_rate_bp: int) -> int:
    return contribution_amount * reward_rate_bp // BP_DENOMINATOR


def compute_settlement(
    is_successful: bool,
    contribution_amount: int,
    reward_pool_tokens: int,
    reward_rate_bp: int,
    already_claimed: int = 0,
) -> Settlement:
    """
    Compute the claimable amount for one contribution.

    Args:
        is_successful: Finalized outcome of the campaign
        contribution_amount: Raw V1 amount contributed
        reward_pool_tokens: Stored raw reward pool of the campaign
        reward_rate_bp: Campaign reward rate in basis points
        already_claimed: Rewards already paid out of the pool (raw)

    Returns:
        Settlement (refund or reward)
    """
    if contribution_amount < 0:
        raise InvalidClaimError("Contribution amount cannot be negative")

    if not is_successful:
        return Settlement(
            claim_type=ClaimType.REFUND,
            amount=contribution_amount,
            contribution_amount=contribution_amount,
        )

    pool = safe_reward_pool(reward_pool_tokens)
    expected = expected_reward(contribution_amount, reward_rate_bp)

    scaled_down = expected > pool
    if scaled_down:
        # Fallback scale-down, kept exactly as the payout policy defines it.
        amount = pool * contribution_amount // (contribution_amount + 1)
    else:
        amount = expected

    headroom = max(pool - already_claimed, 0)
    capped = amount > headroom
    if capped:
        amount = headroom

    return Settlement(
        claim_type=ClaimType.REWARD,
        amount=amount,
        contribution_amount=contribution_amount,
        expected_reward=expected,
        safe_reward_pool=pool,
        scaled_down=scaled_down,
        capped_by_pool=capped,
    )


def settlement_for(takeover: Mapping[str, Any], contribution: Mapping[str, Any]) -> Settlement:
    """Settlement of a stored contribution against its stored campaign"""
    is_successful = bool(takeover.get("is_successful"))
    return compute_settlement(
        is_successful=is_successful,
        contribution_amount=int(contribution["amount"]),
        reward_pool_tokens=int(takeover["reward_pool_tokens"]),
        reward_rate_bp=int(takeover["reward_rate_bp"]),
        already_claimed=int(takeover.get("total_claimed") or 0) if is_successful else 0,
    )


def check_claimable(
    takeover: Optional[Mapping[str, Any]],
    contribution: Optional[Mapping[str, Any]],
    contributor: str,
    takeover_address: str,
) -> None:
    """
    Raise InvalidClaimError unless the contribution can be settled now.

    Called with both rows locked.
    """
    if contribution is None or takeover is None:
        raise InvalidClaimError("Invalid claim or already processed: contribution not found")
    if contribution.get("takeover_id") != takeover.get("id") or takeover.get("address") != takeover_address:
        raise InvalidClaimError("Invalid claim or already processed: contribution belongs to another takeover")
    if contribution.get("contributor") != contributor:
        raise InvalidClaimError("Invalid claim or already processed: contributor mismatch")
    if not takeover.get("is_finalized"):
        raise InvalidClaimError("Invalid claim: takeover is not finalized")
    if contribution.get("is_claimed"):
        raise InvalidClaimError("Invalid claim or already processed: contribution already claimed")


def claim_update(settlement: Settlement, transaction_signature: Optional[str]) -> Dict[str, Any]:
    """Column values written to the contribution on settlement"""
    return {
        "is_claimed": True,
        "claim_amount": settlement.amount,
        "claim_type": settlement.claim_type.value,
        "claim_signature": transaction_signature,
    }
