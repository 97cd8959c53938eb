"""
Takeover Service Schema

Canonical (version 2) tables and the column set recognised as legacy input
by the one-time backfill in TakeoverRepository.migrate_legacy_rows.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Mapping, Optional

from .supply_metrics import (
    BP_DENOMINATOR,
    MAX_PARTICIPATION_BP,
    MAX_REWARD_RATE_BP,
    MIN_PARTICIPATION_BP,
    MIN_REWARD_RATE_BP,
    calculate_supply_metrics,
)

SCHEMA_NAME = "takeover"
SCHEMA_VERSION = 2

CREATE_SCHEMA = f"CREATE SCHEMA IF NOT EXISTS {SCHEMA_NAME}"

CREATE_TAKEOVERS_TABLE = f'''
    CREATE TABLE IF NOT EXISTS {SCHEMA_NAME}.takeovers (
        id BIGSERIAL PRIMARY KEY,
        address VARCHAR(64) NOT NULL UNIQUE,
        authority VARCHAR(64) NOT NULL,
        v1_token_mint VARCHAR(64) NOT NULL,
        vault VARCHAR(64),
        token_name VARCHAR(100),

        v1_total_supply NUMERIC(78, 0) NOT NULL,
        decimals SMALLINT NOT NULL,
        target_participation_bp INTEGER NOT NULL,
        reward_rate_bp INTEGER NOT NULL,
        v1_market_price_lamports NUMERIC(78, 0) NOT NULL DEFAULT 0,

        calculated_min_amount NUMERIC(78, 0) NOT NULL,
        max_safe_total_contribution NUMERIC(78, 0) NOT NULL,
        reward_pool_tokens NUMERIC(78, 0) NOT NULL,
        liquidity_pool_tokens NUMERIC(78, 0) NOT NULL,

        total_contributed NUMERIC(78, 0) NOT NULL DEFAULT 0,
        contributor_count INTEGER NOT NULL DEFAULT 0,
        total_claimed NUMERIC(78, 0) NOT NULL DEFAULT 0,
        claimed_count INTEGER NOT NULL DEFAULT 0,
        start_time BIGINT NOT NULL,
        end_time BIGINT NOT NULL,

        is_finalized BOOLEAN NOT NULL DEFAULT FALSE,
        is_successful BOOLEAN,
        v2_token_mint VARCHAR(64),
        finalization_status VARCHAR(20) NOT NULL DEFAULT 'none',
        finalization_token VARCHAR(64),
        finalization_started_at TIMESTAMPTZ,
        finalized_at TIMESTAMPTZ,

        schema_version INTEGER NOT NULL DEFAULT {SCHEMA_VERSION},
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

        CONSTRAINT valid_decimals CHECK (decimals BETWEEN 0 AND 18),
        CONSTRAINT valid_participation CHECK (target_participation_bp BETWEEN 1 AND 10000),
        CONSTRAINT valid_reward_rate CHECK (reward_rate_bp BETWEEN 100 AND 200),
        CONSTRAINT valid_finalization_status CHECK (finalization_status IN ('none', 'pending', 'committed')),
        CONSTRAINT goal_within_capacity CHECK (calculated_min_amount <= max_safe_total_contribution),
        CONSTRAINT mint_only_when_successful CHECK (v2_token_mint IS NULL OR (is_finalized AND is_successful))
    )
'''

CREATE_CONTRIBUTIONS_TABLE = f'''
    CREATE TABLE IF NOT EXISTS {SCHEMA_NAME}.contributions (
        id BIGSERIAL PRIMARY KEY,
        takeover_id BIGINT NOT NULL REFERENCES {SCHEMA_NAME}.takeovers(id),
        contributor VARCHAR(64) NOT NULL,
        amount NUMERIC(78, 0) NOT NULL,
        transaction_signature VARCHAR(128) UNIQUE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),

        is_claimed BOOLEAN NOT NULL DEFAULT FALSE,
        claim_amount NUMERIC(78, 0),
        claim_type VARCHAR(10),
        claim_signature VARCHAR(128),
        claimed_at TIMESTAMPTZ,

        CONSTRAINT positive_amount CHECK (amount > 0),
        CONSTRAINT valid_claim_type CHECK (claim_type IS NULL OR claim_type IN ('refund', 'reward'))
    )
'''

CREATE_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_takeovers_open ON {SCHEMA_NAME}.takeovers (created_at) WHERE is_finalized = FALSE",
    f"CREATE INDEX IF NOT EXISTS idx_takeovers_authority ON {SCHEMA_NAME}.takeovers (authority)",
    f"CREATE INDEX IF NOT EXISTS idx_contributions_takeover ON {SCHEMA_NAME}.contributions (takeover_id)",
    f"CREATE INDEX IF NOT EXISTS idx_contributions_contributor ON {SCHEMA_NAME}.contributions (contributor)",
]

# Columns written by earlier releases. Read only by the backfill.
LEGACY_TAKEOVER_COLUMNS = (
    "token_amount_target",
    "min_amount",
    "custom_reward_rate",
)

NUMERIC_COLUMNS = frozenset({
    "v1_total_supply",
    "v1_market_price_lamports",
    "calculated_min_amount",
    "max_safe_total_contribution",
    "reward_pool_tokens",
    "liquidity_pool_tokens",
    "total_contributed",
    "total_claimed",
    "amount",
    "claim_amount",
    "contributed_total",
    "claimed_total",
})

# Canonical columns a legacy table may lack: (name, type, default for existing rows)
MIGRATION_COLUMNS = (
    ("decimals", "SMALLINT", None),
    ("target_participation_bp", "INTEGER", None),
    ("reward_rate_bp", "INTEGER", None),
    ("v1_market_price_lamports", "NUMERIC(78, 0)", "0"),
    ("calculated_min_amount", "NUMERIC(78, 0)", None),
    ("max_safe_total_contribution", "NUMERIC(78, 0)", None),
    ("reward_pool_tokens", "NUMERIC(78, 0)", None),
    ("liquidity_pool_tokens", "NUMERIC(78, 0)", None),
    ("total_claimed", "NUMERIC(78, 0)", "0"),
    ("claimed_count", "INTEGER", "0"),
    ("finalization_status", "VARCHAR(20)", "'none'"),
    ("finalization_token", "VARCHAR(64)", None),
    ("finalization_started_at", "TIMESTAMPTZ", None),
    ("finalized_at", "TIMESTAMPTZ", None),
    ("schema_version", "INTEGER", "1"),
)

LEGACY_DEFAULT_DECIMALS = 6
LEGACY_DEFAULT_REWARD_RATE_BP = 150


def _first_int(row: Mapping[str, Any], *keys: str) -> Optional[int]:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return int(value)
    return None


def legacy_reward_rate_bp(row: Mapping[str, Any]) -> int:
    """Basis points from reward_rate_bp, else from the old float multiplier (1.5 -> 150)"""
    if row.get("reward_rate_bp") is not None:
        bp = int(row["reward_rate_bp"])
    elif row.get("custom_reward_rate") is not None:
        multiplier = Decimal(str(row["custom_reward_rate"]))
        bp = int((multiplier * 100).to_integral_value(rounding=ROUND_HALF_UP))
    else:
        bp = LEGACY_DEFAULT_REWARD_RATE_BP
    return min(max(bp, MIN_REWARD_RATE_BP), MAX_REWARD_RATE_BP)


def backfill_legacy_fields(row: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Canonical values for a pre-version-2 campaign row.

    The stored goal comes from calculated_min_amount, token_amount_target or
    min_amount (first present) and is clamped to the capacity-based goal.
    Missing derived fields are recomputed from the supply.
    """
    supply = int(row["v1_total_supply"])
    decimals = _first_int(row, "decimals")
    if decimals is None:
        decimals = LEGACY_DEFAULT_DECIMALS
    reward_rate_bp = legacy_reward_rate_bp(row)

    legacy_goal = _first_int(row, "calculated_min_amount", "token_amount_target", "min_amount")
    participation_bp = _first_int(row, "target_participation_bp")
    if participation_bp is None:
        if legacy_goal is not None and supply > 0:
            participation_bp = legacy_goal * BP_DENOMINATOR // supply
        else:
            participation_bp = MAX_PARTICIPATION_BP
    participation_bp = min(max(participation_bp, MIN_PARTICIPATION_BP), MAX_PARTICIPATION_BP)

    metrics = calculate_supply_metrics(supply, decimals, participation_bp, reward_rate_bp)
    goal = metrics.calculated_min_amount_raw if legacy_goal is None else min(legacy_goal, metrics.capacity_goal_raw)

    return {
        "decimals": decimals,
        "target_participation_bp": participation_bp,
        "reward_rate_bp": reward_rate_bp,
        "calculated_min_amount": goal,
        "max_safe_total_contribution": metrics.max_safe_contribution_raw,
        "reward_pool_tokens": _first_int(row, "reward_pool_tokens") or metrics.reward_pool_raw,
        "liquidity_pool_tokens": _first_int(row, "liquidity_pool_tokens") or metrics.liquidity_pool_raw,
        "schema_version": SCHEMA_VERSION,
    }
