"""
Supply Metrics Calculator

Pure functions converting a token's raw supply and the campaign's
participation / reward parameters into its funding goal, reward pool,
liquidity pool and maximum safe contribution.

All authoritative values are integers in raw units (10^-decimals of a token)
computed with floor division. Decimal and formatted values are for display.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Union

from .models import GoalProgress, SupplyMetrics
from .protocols import InvalidParametersError


# ====================
# Policy Constants
# ====================

BP_DENOMINATOR = 10_000
REWARD_POOL_BP = 8_000
LIQUIDITY_POOL_BP = 2_000
SAFETY_CUSHION_NUMERATOR = 98
SAFETY_CUSHION_DENOMINATOR = 100

MIN_REWARD_RATE_BP = 100
MAX_REWARD_RATE_BP = 200
MIN_PARTICIPATION_BP = 1
MAX_PARTICIPATION_BP = 10_000
MIN_DECIMALS = 0
MAX_DECIMALS = 18

_ONE_DECIMAL = Decimal("0.1")
_MAGNITUDES = (
    (Decimal(1_000_000_000), "B"),
    (Decimal(1_000_000), "M"),
    (Decimal(1_000), "K"),
)


# ====================
# Validation
# ====================

def validate_reward_rate(reward_rate_bp: int) -> int:
    if isinstance(reward_rate_bp, bool) or not isinstance(reward_rate_bp, int):
        raise InvalidParametersError("Reward rate must be an integer number of basis points",
                                     field="reward_rate_bp", value=reward_rate_bp)
    if not MIN_REWARD_RATE_BP <= reward_rate_bp <= MAX_REWARD_RATE_BP:
        raise InvalidParametersError(
            f"Reward rate must be between {MIN_REWARD_RATE_BP}bp and {MAX_REWARD_RATE_BP}bp (1.0x to 2.0x)",
            field="reward_rate_bp",
            value=reward_rate_bp,
        )
    return reward_rate_bp


def validate_participation_rate(target_participation_bp: int) -> int:
    if isinstance(target_participation_bp, bool) or not isinstance(target_participation_bp, int):
        raise InvalidParametersError("Participation rate must be an integer number of basis points",
                                     field="target_participation_bp", value=target_participation_bp)
    if not MIN_PARTICIPATION_BP <= target_participation_bp <= MAX_PARTICIPATION_BP:
        raise InvalidParametersError(
            "Participation rate must be between 0.01% and 100%",
            field="target_participation_bp",
            value=target_participation_bp,
        )
    return target_participation_bp


def validate_decimals(decimals: int) -> int:
    if isinstance(decimals, bool) or not isinstance(decimals, int) or not MIN_DECIMALS <= decimals <= MAX_DECIMALS:
        raise InvalidParametersError(
            f"Decimals must be an integer between {MIN_DECIMALS} and {MAX_DECIMALS}",
            field="decimals",
            value=decimals,
        )
    return decimals


def parse_raw_supply(raw_supply: Union[str, int]) -> int:
    """Parse a raw supply given as int or decimal integer string"""
    if isinstance(raw_supply, bool):
        raise InvalidParametersError("Raw supply must be an integer", field="raw_supply", value=raw_supply)
    text = raw_supply.strip() if isinstance(raw_supply, str) else None
    if isinstance(raw_supply, int):
        value = raw_supply
    elif text and text.isascii() and text.isdigit():
        value = int(text)
    else:
        raise InvalidParametersError(
            "Raw supply must be a decimal integer string",
            field="raw_supply",
            value=raw_supply,
        )
    if value <= 0:
        raise InvalidParametersError("Supply must be greater than 0", field="raw_supply", value=raw_supply)
    return value


def validate_token_supply(raw_supply: int, decimals: int, min_tokens: int, max_tokens: int) -> None:
    """Whole-token supply must sit within [min_tokens, max_tokens]"""
    scale = 10 ** decimals
    if raw_supply < min_tokens * scale:
        raise InvalidParametersError(
            f"Supply must be at least {format_token_supply(min_tokens)} tokens",
            field="v1_total_supply",
            value=str(raw_supply),
        )
    if raw_supply > max_tokens * scale:
        raise InvalidParametersError(
            f"Supply too large (max {format_token_supply(max_tokens)} tokens)",
            field="v1_total_supply",
            value=str(raw_supply),
        )


def validate_price_lamports(price_lamports: int, min_lamports: int, max_lamports: int) -> None:
    if not min_lamports <= price_lamports <= max_lamports:
        raise InvalidParametersError(
            f"V1 market price must be between {min_lamports} and {max_lamports} lamports",
            field="v1_market_price_lamports",
            value=str(price_lamports),
        )


# ====================
# Formatting
# ====================

def to_tokens(raw_amount: int, decimals: int) -> Decimal:
    """Exact token amount for display"""
    return Decimal(raw_amount).scaleb(-decimals)


def format_token_supply(amount: Union[int, Decimal, str]) -> str:
    """Format a whole-token amount with K/M/B suffixes, one decimal place"""
    try:
        value = Decimal(amount)
    except ArithmeticError:
        return "0"
    if not value.is_finite():
        return "0"

    for threshold, suffix in _MAGNITUDES:
        if value >= threshold:
            return f"{(value / threshold).quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)}{suffix}"
    if value == value.to_integral_value():
        return f"{int(value):,}"
    return f"{value.normalize():f}"


# ====================
# Calculation
# ====================

def calculate_supply_metrics(
    raw_supply: Union[str, int],
    decimals: int,
    target_participation_bp: int,
    reward_rate_bp: int,
) -> SupplyMetrics:
    """
    Derive the campaign's economic fields from its raw supply.

    reward pool = 80% of supply, liquidity pool = 20%, safe reward pool =
    98% of the reward pool. The funding goal is the smaller of the
    participation-based goal and the capacity-based goal (the contribution
    level at which paying every contributor the full reward rate exhausts the
    safe pool).

    Args:
        raw_supply: Total V1 supply in raw units (int or decimal string)
        decimals: Token decimals (0-18)
        target_participation_bp: Creator's target participation (1-10000)
        reward_rate_bp: Reward rate in basis points (100-200, 1.0x-2.0x)

    Returns:
        SupplyMetrics with raw authoritative fields and display fields

    Raises:
        InvalidParametersError: Any input outside policy bounds
    """
    supply = parse_raw_supply(raw_supply)
    validate_decimals(decimals)
    validate_participation_rate(target_participation_bp)
    validate_reward_rate(reward_rate_bp)

    reward_pool = supply * REWARD_POOL_BP // BP_DENOMINATOR
    liquidity_pool = supply * LIQUIDITY_POOL_BP // BP_DENOMINATOR
    safe_reward_pool = reward_pool * SAFETY_CUSHION_NUMERATOR // SAFETY_CUSHION_DENOMINATOR

    participation_goal = supply * target_participation_bp // BP_DENOMINATOR
    # safe_pool / (bp / 100) in integers
    capacity_goal = safe_reward_pool * 100 // reward_rate_bp
    calculated_min = min(participation_goal, capacity_goal)
    max_safe_contribution = capacity_goal

    scale = 10 ** decimals
    goal_tokens = calculated_min // scale
    max_safe_tokens = max_safe_contribution // scale
    actual_supply = to_tokens(supply, decimals)

    return SupplyMetrics(
        raw_supply=supply,
        decimals=decimals,
        target_participation_bp=target_participation_bp,
        reward_rate_bp=reward_rate_bp,
        reward_pool_raw=reward_pool,
        liquidity_pool_raw=liquidity_pool,
        safe_reward_pool_raw=safe_reward_pool,
        participation_goal_raw=participation_goal,
        capacity_goal_raw=capacity_goal,
        calculated_min_amount_raw=calculated_min,
        max_safe_contribution_raw=max_safe_contribution,
        actual_supply=actual_supply,
        goal_tokens=goal_tokens,
        reward_pool_tokens=reward_pool // scale,
        liquidity_pool_tokens=liquidity_pool // scale,
        safe_reward_pool_tokens=safe_reward_pool // scale,
        max_safe_contribution_tokens=max_safe_tokens,
        reward_multiplier=Decimal(reward_rate_bp) / Decimal(100),
        target_participation_percent=Decimal(target_participation_bp) / Decimal(100),
        goal_is_capacity_limited=capacity_goal < participation_goal,
        formatted={
            "supply": format_token_supply(actual_supply),
            "goal": format_token_supply(goal_tokens),
            "reward_pool": format_token_supply(reward_pool // scale),
            "liquidity_pool": format_token_supply(liquidity_pool // scale),
            "max_safe_contribution": format_token_supply(max_safe_tokens),
        },
    )


def goal_progress(total_contributed: int, calculated_min_amount: int, max_safe_total: int) -> GoalProgress:
    """Progress towards the goal (percent clamped to 0-100) and room left under the safe ceiling"""
    if calculated_min_amount > 0:
        percent = Decimal(total_contributed * 100) / Decimal(calculated_min_amount)
        percent = min(percent, Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    else:
        percent = Decimal(100)

    return GoalProgress(
        total_contributed=total_contributed,
        calculated_min_amount=calculated_min_amount,
        max_safe_total_contribution=max_safe_total,
        progress_percent=percent,
        goal_met=total_contributed >= calculated_min_amount,
        remaining_to_goal=max(calculated_min_amount - total_contributed, 0),
        safe_space_remaining=max(max_safe_total - total_contributed, 0),
    )


def derived_fields(metrics: SupplyMetrics) -> Dict[str, Any]:
    """Stored column values for a campaign row"""
    return {
        "calculated_min_amount": metrics.calculated_min_amount_raw,
        "max_safe_total_contribution": metrics.max_safe_contribution_raw,
        "reward_pool_tokens": metrics.reward_pool_raw,
        "liquidity_pool_tokens": metrics.liquidity_pool_raw,
    }
