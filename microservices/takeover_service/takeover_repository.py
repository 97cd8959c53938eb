"""
Takeover Service Data Repository

Data access layer - PostgreSQL (asyncpg)
Implements TakeoverRepositoryProtocol from protocols.py

Every campaign mutation runs in one transaction that first takes
SELECT ... FOR UPDATE on the campaign row. Claims lock the contribution row
before the campaign row; nothing locks in the opposite order.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import asyncpg

from core.config import InfraConfig
from core.postgres_client import PostgresClientWrapper

from .finalization import check_can_begin, check_can_contribute, utc_from_timestamp
from .models import FinalizationStatus, TakeoverStatusFilter
from .protocols import (
    DuplicateContributionError,
    DuplicateTakeoverError,
    TakeoverNotFoundError,
    TakeoverServiceError,
)
from .schema import (
    CREATE_CONTRIBUTIONS_TABLE,
    CREATE_INDEXES,
    CREATE_SCHEMA,
    CREATE_TAKEOVERS_TABLE,
    LEGACY_TAKEOVER_COLUMNS,
    MIGRATION_COLUMNS,
    NUMERIC_COLUMNS,
    SCHEMA_NAME,
    SCHEMA_VERSION,
    backfill_legacy_fields,
)
from .settlement import check_claimable, claim_update, settlement_for

logger = logging.getLogger(__name__)

TAKEOVER_INSERT_COLUMNS = (
    "address",
    "authority",
    "v1_token_mint",
    "vault",
    "token_name",
    "v1_total_supply",
    "decimals",
    "target_participation_bp",
    "reward_rate_bp",
    "v1_market_price_lamports",
    "calculated_min_amount",
    "max_safe_total_contribution",
    "reward_pool_tokens",
    "liquidity_pool_tokens",
    "start_time",
    "end_time",
)


def _num(value: Any) -> Optional[Decimal]:
    """Raw int amount as an exact NUMERIC parameter"""
    if value is None:
        return None
    return Decimal(int(value))


class TakeoverRepository:
    """Takeover service data repository - PostgreSQL (asyncpg)"""

    def __init__(
        self,
        db: Optional[PostgresClientWrapper] = None,
        config: Optional[InfraConfig] = None,
    ):
        self.db = db or PostgresClientWrapper("takeover_service", config=config)
        self.schema = SCHEMA_NAME
        self.takeovers_table = "takeovers"
        self.contributions_table = "contributions"

    @property
    def takeovers(self) -> str:
        return f"{self.schema}.{self.takeovers_table}"

    @property
    def contributions(self) -> str:
        return f"{self.schema}.{self.contributions_table}"

    async def initialize(self):
        """Open the pool and ensure the canonical schema exists"""
        await self.db.connect()
        await self.ensure_schema()
        logger.info("Takeover repository initialized with PostgreSQL")

    async def close(self):
        """Close database connection"""
        await self.db.close()
        logger.info("Takeover repository database connection closed")

    async def ensure_schema(self):
        """Ensure takeover schema and tables exist"""
        try:
            async with self.db.transaction() as conn:
                await conn.execute(CREATE_SCHEMA)
                await conn.execute(CREATE_TAKEOVERS_TABLE)
                await conn.execute(CREATE_CONTRIBUTIONS_TABLE)
                for statement in CREATE_INDEXES:
                    await conn.execute(statement)
            logger.info("Takeover schema ensured")
        except Exception as e:
            logger.error(f"Error ensuring takeover schema: {e}")
            raise

    # ====================
    # Campaigns
    # ====================

    async def create_takeover(self, takeover_data: Dict[str, Any]) -> Dict[str, Any]:
        """Insert a campaign with its derived economic fields"""
        try:
            placeholders = ", ".join(f"${i}" for i in range(1, len(TAKEOVER_INSERT_COLUMNS) + 1))
            query = f'''
                INSERT INTO {self.takeovers} ({", ".join(TAKEOVER_INSERT_COLUMNS)}, schema_version)
                VALUES ({placeholders}, {SCHEMA_VERSION})
                RETURNING *
            '''
            params = [
                _num(takeover_data[column]) if column in NUMERIC_COLUMNS else takeover_data.get(column)
                for column in TAKEOVER_INSERT_COLUMNS
            ]

            async with self.db.transaction() as conn:
                row = await conn.fetchrow(query, *params)

            return self._row_to_dict(row)

        except asyncpg.UniqueViolationError as e:
            raise DuplicateTakeoverError(f"Takeover {takeover_data.get('address')} already exists") from e
        except Exception as e:
            logger.error(f"Error creating takeover: {e}", exc_info=True)
            raise

    async def get_takeover(self, address: str) -> Optional[Dict[str, Any]]:
        """Get campaign by address"""
        try:
            row = await self.db.query_row(f"SELECT * FROM {self.takeovers} WHERE address = $1", [address])
            return self._row_to_dict(row) if row else None
        except Exception as e:
            logger.error(f"Error getting takeover {address}: {e}")
            raise

    async def list_takeovers(
        self,
        status: Optional[str],
        authority: Optional[str],
        now: int,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """List campaigns, newest first"""
        try:
            conditions: List[str] = []
            params: List[Any] = []

            if status == TakeoverStatusFilter.ACTIVE.value:
                params.append(now)
                conditions.append(f"is_finalized = FALSE AND end_time > ${len(params)}")
            elif status == TakeoverStatusFilter.EXPIRED.value:
                params.append(now)
                conditions.append(f"is_finalized = FALSE AND end_time <= ${len(params)}")
            elif status == TakeoverStatusFilter.FINALIZED.value:
                conditions.append("is_finalized = TRUE")
            elif status == TakeoverStatusFilter.SUCCESSFUL.value:
                conditions.append("is_finalized = TRUE AND is_successful = TRUE")
            elif status == TakeoverStatusFilter.FAILED.value:
                conditions.append("is_finalized = TRUE AND is_successful = FALSE")

            if authority:
                params.append(authority)
                conditions.append(f"authority = ${len(params)}")

            where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
            params.extend([limit, offset])
            query = f'''
                SELECT * FROM {self.takeovers}
                {where}
                ORDER BY created_at DESC, id DESC
                LIMIT ${len(params) - 1} OFFSET ${len(params)}
            '''

            rows = await self.db.query(query, params)
            return [self._row_to_dict(row) for row in rows]

        except Exception as e:
            logger.error(f"Error listing takeovers: {e}")
            raise

    async def list_eligible_takeovers(self, now: int, lease_cutoff: datetime) -> List[Dict[str, Any]]:
        """Campaigns eligible for finalization, oldest first"""
        try:
            query = f'''
                SELECT * FROM {self.takeovers}
                WHERE is_finalized = FALSE
                  AND (total_contributed >= calculated_min_amount OR end_time <= $1)
                  AND (finalization_status <> $2
                       OR finalization_started_at IS NULL
                       OR finalization_started_at <= $3)
                ORDER BY created_at ASC, id ASC
            '''
            rows = await self.db.query(query, [now, FinalizationStatus.PENDING.value, lease_cutoff])
            return [self._row_to_dict(row) for row in rows]

        except Exception as e:
            logger.error(f"Error listing eligible takeovers: {e}")
            raise

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
        """Insert a contribution and increment the campaign aggregates atomically"""
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    f"SELECT * FROM {self.takeovers} WHERE address = $1 FOR UPDATE", address
                )
                if row is None:
                    raise TakeoverNotFoundError(f"Takeover not found: {address}")
                takeover = self._row_to_dict(row)

                check_can_contribute(takeover, amount, now)

                if transaction_signature:
                    duplicate = await conn.fetchval(
                        f"SELECT id FROM {self.contributions} WHERE transaction_signature = $1",
                        transaction_signature,
                    )
                    if duplicate is not None:
                        raise DuplicateContributionError(
                            f"Transaction {transaction_signature} already recorded as contribution {duplicate}"
                        )

                seen = await conn.fetchval(
                    f"SELECT EXISTS (SELECT 1 FROM {self.contributions} WHERE takeover_id = $1 AND contributor = $2)",
                    takeover["id"],
                    contributor,
                )

                contribution = await conn.fetchrow(
                    f'''
                    INSERT INTO {self.contributions} (takeover_id, contributor, amount, transaction_signature)
                    VALUES ($1, $2, $3, $4)
                    RETURNING *
                    ''',
                    takeover["id"],
                    contributor,
                    _num(amount),
                    transaction_signature,
                )

                updated = await conn.fetchrow(
                    f'''
                    UPDATE {self.takeovers}
                    SET total_contributed = total_contributed + $1,
                        contributor_count = contributor_count + $2,
                        updated_at = NOW()
                    WHERE id = $3
                    RETURNING *
                    ''',
                    _num(amount),
                    0 if seen else 1,
                    takeover["id"],
                )

            contribution_dict = self._row_to_dict(contribution)
            contribution_dict["takeover_address"] = address
            return {"contribution": contribution_dict, "takeover": self._row_to_dict(updated)}

        except TakeoverServiceError:
            raise
        except Exception as e:
            logger.error(f"Error recording contribution to {address}: {e}", exc_info=True)
            raise

    async def get_contribution(self, contribution_id: int) -> Optional[Dict[str, Any]]:
        """Get contribution by id, including its campaign address"""
        try:
            row = await self.db.query_row(
                f'''
                SELECT c.*, t.address AS takeover_address
                FROM {self.contributions} c
                JOIN {self.takeovers} t ON c.takeover_id = t.id
                WHERE c.id = $1
                ''',
                [contribution_id],
            )
            return self._row_to_dict(row) if row else None
        except Exception as e:
            logger.error(f"Error getting contribution {contribution_id}: {e}")
            raise

    async def list_contributions(self, address: str) -> List[Dict[str, Any]]:
        """All contributions of one campaign, oldest first"""
        try:
            rows = await self.db.query(
                f'''
                SELECT c.*, t.address AS takeover_address
                FROM {self.contributions} c
                JOIN {self.takeovers} t ON c.takeover_id = t.id
                WHERE t.address = $1
                ORDER BY c.created_at ASC, c.id ASC
                ''',
                [address],
            )
            return [self._row_to_dict(row) for row in rows]
        except Exception as e:
            logger.error(f"Error listing contributions for {address}: {e}")
            raise

    async def list_user_contributions(
        self,
        contributor: str,
        takeover_address: Optional[str] = None,
        finalized_only: bool = True,
    ) -> List[Dict[str, Any]]:
        """Contributions of one contributor joined with their campaign fields"""
        try:
            conditions = ["c.contributor = $1"]
            params: List[Any] = [contributor]
            if takeover_address:
                params.append(takeover_address)
                conditions.append(f"t.address = ${len(params)}")
            if finalized_only:
                conditions.append("t.is_finalized = TRUE")

            rows = await self.db.query(
                f'''
                SELECT c.*,
                       t.address AS takeover_address,
                       t.token_name,
                       t.is_finalized,
                       t.is_successful,
                       t.v1_token_mint,
                       t.v2_token_mint,
                       t.reward_pool_tokens,
                       t.reward_rate_bp,
                       t.total_claimed
                FROM {self.contributions} c
                JOIN {self.takeovers} t ON c.takeover_id = t.id
                WHERE {' AND '.join(conditions)}
                ORDER BY c.created_at DESC, c.id DESC
                ''',
                params,
            )
            return [self._row_to_dict(row) for row in rows]
        except Exception as e:
            logger.error(f"Error listing contributions for {contributor}: {e}")
            raise

    # ====================
    # Finalization (two-phase)
    # ====================

    async def begin_finalization(
        self,
        address: str,
        now: int,
        lease_seconds: int,
        token: str,
    ) -> Dict[str, Any]:
        """Re-check eligibility under the row lock and mark the campaign pending"""
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    f"SELECT * FROM {self.takeovers} WHERE address = $1 FOR UPDATE", address
                )
                if row is None:
                    raise TakeoverNotFoundError(f"Takeover not found: {address}")

                check_can_begin(self._row_to_dict(row), now, lease_seconds)

                pending = await conn.fetchrow(
                    f'''
                    UPDATE {self.takeovers}
                    SET finalization_status = $2,
                        finalization_token = $3,
                        finalization_started_at = $4,
                        updated_at = NOW()
                    WHERE id = $1
                    RETURNING *
                    ''',
                    row["id"],
                    FinalizationStatus.PENDING.value,
                    token,
                    utc_from_timestamp(now),
                )

            return self._row_to_dict(pending)

        except TakeoverServiceError:
            raise
        except Exception as e:
            logger.error(f"Error beginning finalization of {address}: {e}", exc_info=True)
            raise

    async def commit_finalization(
        self,
        address: str,
        token: str,
        is_successful: bool,
        v2_token_mint: Optional[str],
    ) -> Optional[Dict[str, Any]]:
        """Write the terminal flags if the caller still holds the pending lease"""
        try:
            async with self.db.transaction() as conn:
                row = await conn.fetchrow(
                    f'''
                    UPDATE {self.takeovers}
                    SET is_finalized = TRUE,
                        is_successful = $3,
                        v2_token_mint = $4,
                        finalization_status = $5,
                        finalized_at = NOW(),
                        updated_at = NOW()
                    WHERE address = $1
                      AND finalization_token = $2
                      AND finalization_status = $6
                      AND is_finalized = FALSE
                    RETURNING *
                    ''',
                    address,
                    token,
                    is_successful,
                    v2_token_mint if is_successful else None,
                    FinalizationStatus.COMMITTED.value,
                    FinalizationStatus.PENDING.value,
                )
            return self._row_to_dict(row) if row else None

        except Exception as e:
            logger.error(f"Error committing finalization of {address}: {e}", exc_info=True)
            raise

    async def abort_finalization(self, address: str, token: str) -> bool:
        """Clear a pending lease held by token"""
        try:
            status = await self.db.execute(
                f'''
                UPDATE {self.takeovers}
                SET finalization_status = $3,
                    finalization_token = NULL,
                    finalization_started_at = NULL,
                    updated_at = NOW()
                WHERE address = $1
                  AND finalization_token = $2
                  AND finalization_status = $4
                  AND is_finalized = FALSE
                ''',
                [address, token, FinalizationStatus.NONE.value, FinalizationStatus.PENDING.value],
            )
            return status == "UPDATE 1"
        except Exception as e:
            logger.error(f"Error aborting finalization of {address}: {e}")
            raise

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
        """Settle one contribution and bump the campaign's claim aggregates atomically"""
        try:
            async with self.db.transaction() as conn:
                contribution_row = await conn.fetchrow(
                    f"SELECT * FROM {self.contributions} WHERE id = $1 FOR UPDATE", contribution_id
                )
                takeover_row = None
                if contribution_row is not None:
                    takeover_row = await conn.fetchrow(
                        f"SELECT * FROM {self.takeovers} WHERE id = $1 FOR UPDATE",
                        contribution_row["takeover_id"],
                    )

                contribution = self._row_to_dict(contribution_row) if contribution_row else None
                takeover = self._row_to_dict(takeover_row) if takeover_row else None
                check_claimable(takeover, contribution, contributor, takeover_address)

                settlement = settlement_for(takeover, contribution)
                values = claim_update(settlement, transaction_signature)

                claimed = await conn.fetchrow(
                    f'''
                    UPDATE {self.contributions}
                    SET is_claimed = $2,
                        claim_amount = $3,
                        claim_type = $4,
                        claim_signature = $5,
                        claimed_at = NOW()
                    WHERE id = $1 AND is_claimed = FALSE
                    RETURNING *
                    ''',
                    contribution_id,
                    values["is_claimed"],
                    _num(values["claim_amount"]),
                    values["claim_type"],
                    values["claim_signature"],
                )

                updated = await conn.fetchrow(
                    f'''
                    UPDATE {self.takeovers}
                    SET total_claimed = total_claimed + $1,
                        claimed_count = claimed_count + 1,
                        updated_at = NOW()
                    WHERE id = $2
                    RETURNING *
                    ''',
                    _num(settlement.amount),
                    takeover["id"],
                )

            claimed_dict = self._row_to_dict(claimed)
            claimed_dict["takeover_address"] = takeover_address
            return {
                "contribution": claimed_dict,
                "takeover": self._row_to_dict(updated),
                "settlement": settlement,
            }

        except TakeoverServiceError:
            raise
        except Exception as e:
            logger.error(f"Error settling claim for contribution {contribution_id}: {e}", exc_info=True)
            raise

    # ====================
    # Statistics and audit
    # ====================

    async def get_statistics(self) -> Dict[str, Any]:
        """Aggregate counts across campaigns"""
        try:
            row = await self.db.query_row(
                f'''
                SELECT
                    COUNT(*) AS total_takeovers,
                    COUNT(*) FILTER (WHERE is_finalized) AS finalized_takeovers,
                    COUNT(*) FILTER (WHERE is_finalized AND is_successful) AS successful_takeovers,
                    COUNT(*) FILTER (WHERE is_finalized AND NOT is_successful) AS failed_takeovers,
                    COUNT(*) FILTER (WHERE finalization_status = 'pending') AS pending_finalization,
                    AVG(reward_rate_bp) FILTER (WHERE is_finalized) AS average_reward_rate_bp,
                    COALESCE(SUM(total_contributed), 0) AS total_contributed,
                    COALESCE(SUM(total_claimed), 0) AS total_claimed
                FROM {self.takeovers}
                '''
            )
            return self._row_to_dict(row) if row else {}
        except Exception as e:
            logger.error(f"Error getting takeover statistics: {e}")
            raise

    async def compute_aggregates(self, address: str) -> Optional[Dict[str, Any]]:
        """Sum contributions of a campaign for audit"""
        try:
            row = await self.db.query_row(
                f'''
                SELECT
                    t.id AS takeover_id,
                    COALESCE(SUM(c.amount), 0) AS contributed_total,
                    COUNT(DISTINCT c.contributor) AS contributor_count,
                    COALESCE(SUM(c.claim_amount) FILTER (WHERE c.is_claimed), 0) AS claimed_total,
                    COUNT(c.id) FILTER (WHERE c.is_claimed) AS claimed_count
                FROM {self.takeovers} t
                LEFT JOIN {self.contributions} c ON c.takeover_id = t.id
                WHERE t.address = $1
                GROUP BY t.id
                ''',
                [address],
            )
            return self._row_to_dict(row) if row else None
        except Exception as e:
            logger.error(f"Error computing aggregates for {address}: {e}")
            raise

    # ====================
    # Legacy migration
    # ====================

    async def migrate_legacy_rows(self) -> int:
        """
        One-time backfill of pre-version-2 campaign rows.

        Adds any canonical columns an older table lacks, then rewrites each
        row whose schema_version is below the current version from its
        legacy fields (token_amount_target / min_amount goal, float
        custom_reward_rate). Returns the number of rows migrated.
        """
        try:
            async with self.db.transaction() as conn:
                existing = {
                    record["column_name"]
                    for record in await conn.fetch(
                        '''
                        SELECT column_name FROM information_schema.columns
                        WHERE table_schema = $1 AND table_name = $2
                        ''',
                        self.schema,
                        self.takeovers_table,
                    )
                }

                for column, column_type, default in MIGRATION_COLUMNS:
                    if column not in existing:
                        default_clause = f" DEFAULT {default}" if default is not None else ""
                        await conn.execute(
                            f"ALTER TABLE {self.takeovers} ADD COLUMN IF NOT EXISTS {column} {column_type}{default_clause}"
                        )
                await conn.execute(f"ALTER TABLE {self.takeovers} ALTER COLUMN schema_version SET DEFAULT {SCHEMA_VERSION}")

                legacy_columns = [column for column in LEGACY_TAKEOVER_COLUMNS if column in existing]
                if legacy_columns:
                    logger.info(f"Legacy takeover columns present: {', '.join(legacy_columns)}")

                rows = await conn.fetch(
                    f'''
                    SELECT * FROM {self.takeovers}
                    WHERE schema_version IS NULL OR schema_version < $1
                    FOR UPDATE
                    ''',
                    SCHEMA_VERSION,
                )

                for row in rows:
                    values = backfill_legacy_fields(self._row_to_dict(row))
                    await conn.execute(
                        f'''
                        UPDATE {self.takeovers}
                        SET decimals = $2,
                            target_participation_bp = $3,
                            reward_rate_bp = $4,
                            calculated_min_amount = $5,
                            max_safe_total_contribution = $6,
                            reward_pool_tokens = $7,
                            liquidity_pool_tokens = $8,
                            schema_version = $9,
                            updated_at = NOW()
                        WHERE id = $1
                        ''',
                        row["id"],
                        values["decimals"],
                        values["target_participation_bp"],
                        values["reward_rate_bp"],
                        _num(values["calculated_min_amount"]),
                        _num(values["max_safe_total_contribution"]),
                        _num(values["reward_pool_tokens"]),
                        _num(values["liquidity_pool_tokens"]),
                        values["schema_version"],
                    )

            if rows:
                logger.info(f"Migrated {len(rows)} legacy takeover rows to schema version {SCHEMA_VERSION}")
            return len(rows)

        except Exception as e:
            logger.error(f"Error migrating legacy takeover rows: {e}", exc_info=True)
            raise

    def _row_to_dict(self, row: Any) -> Dict[str, Any]:
        """Convert database row to dictionary with raw amounts as int"""
        if not row:
            return {}

        result = {}
        for key, value in dict(row).items():
            if isinstance(value, Decimal) and key in NUMERIC_COLUMNS:
                result[key] = int(value)
            else:
                result[key] = value

        return result


__all__ = ["TakeoverRepository"]
