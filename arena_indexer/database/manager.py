"""Database manager with connection pooling and retry logic"""

import asyncio
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional

import asyncpg
import structlog

from arena_indexer.database.models import (
    EventLogEntry,
    EventLogFilters,
    Game,
    GameFilters,
    GameState,
    IndexerState,
    Player,
)
from arena_indexer.database.repository import (
    ReadModelRepository,
    event_log_from_row,
    game_from_row,
    indexer_state_from_row,
    player_from_row,
)
from arena_indexer.database.schema import get_schema_sql
from arena_indexer.monitoring import metrics

logger = structlog.get_logger()

LEADERBOARD_SORT_FIELDS = ["total_winnings", "games_won", "total_wagered", "games_played"]


class DatabaseManager:
    """
    Manages the PostgreSQL read-model: pooling, schema, watermark and queries.

    Features:
    - Connection pooling (min 2, max 10 connections by default)
    - Automatic retry logic for transient failures (3 attempts with exponential backoff)
    - Parameterized queries to prevent SQL injection
    - One transaction per unit of work for event application
    - Monotonic watermark upsert on the singleton indexer_state row
    """

    def __init__(self, database_url: str, min_pool_size: int = 2, max_pool_size: int = 10):
        """
        Initialize database manager.

        Args:
            database_url: PostgreSQL connection URL
            min_pool_size: Minimum number of connections in pool
            max_pool_size: Maximum number of connections in pool
        """
        self.database_url = database_url
        self.min_pool_size = min_pool_size
        self.max_pool_size = max_pool_size
        self.pool: Optional[asyncpg.Pool] = None
        self._logger = logger.bind(component="database_manager")

    async def connect(self) -> None:
        """Establish connection pool to database"""
        try:
            self.pool = await asyncpg.create_pool(
                self.database_url,
                min_size=self.min_pool_size,
                max_size=self.max_pool_size,
                command_timeout=60,
            )
            self._logger.info(
                "database_connected",
                min_pool_size=self.min_pool_size,
                max_pool_size=self.max_pool_size,
            )
        except Exception as e:
            self._logger.error("database_connection_failed", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close connection pool"""
        if self.pool:
            await self.pool.close()
            self._logger.info("database_disconnected")

    async def initialize_schema(self) -> None:
        """Initialize database schema"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized. Call connect() first.")

        schema_sql = get_schema_sql()
        async with self.pool.acquire() as conn:
            await conn.execute(schema_sql)
            self._logger.info("database_schema_initialized")

    async def _retry_operation(self, operation, *args, **kwargs):
        """
        Retry database operation with exponential backoff.

        Args:
            operation: Async function to retry
            *args: Positional arguments for operation
            **kwargs: Keyword arguments for operation

        Returns:
            Result of operation

        Raises:
            Exception: If all retry attempts fail
        """
        max_attempts = 3
        base_delay = 0.5  # seconds
        name = getattr(operation, "__name__", "operation")

        for attempt in range(1, max_attempts + 1):
            start_time = time.time()
            try:
                result = await operation(*args, **kwargs)
                metrics.db_query_latency.labels(operation=name).observe(time.time() - start_time)
                return result
            except (asyncpg.PostgresError, asyncpg.InterfaceError) as e:
                metrics.db_errors.labels(operation=name, error_type=type(e).__name__).inc()
                if attempt == max_attempts:
                    self._logger.error(
                        "database_operation_failed",
                        operation=name,
                        attempts=attempt,
                        error=str(e),
                    )
                    raise

                delay = base_delay * (2 ** (attempt - 1))
                self._logger.warning(
                    "database_operation_retry",
                    operation=name,
                    attempt=attempt,
                    delay=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[ReadModelRepository]:
        """
        Open a transaction and yield a repository bound to it.

        Everything written through the repository commits together when the
        block exits normally and rolls back if it raises.
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield ReadModelRepository(conn)

    # ------------------------------------------------------------------
    # Watermark
    # ------------------------------------------------------------------

    async def get_indexer_state(self) -> Optional[IndexerState]:
        """Get the singleton indexer state row, or None before the first sync"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def get_indexer_state():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow("SELECT * FROM indexer_state WHERE id = 1")

        row = await self._retry_operation(get_indexer_state)
        return indexer_state_from_row(row) if row else None

    async def get_last_processed_version(self) -> int:
        """Get the watermark; a missing row means a cold start at version 0"""
        state = await self.get_indexer_state()
        return state.last_processed_version if state else 0

    async def advance_watermark(self, version: int, synced_at: datetime) -> bool:
        """
        Move the watermark forward to version.

        The upsert only writes when the stored version is lower, so a stale
        writer can never move it backwards.

        Returns:
            True if the stored watermark changed
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async def advance_watermark():
            async with self.pool.acquire() as conn:
                return await conn.fetchrow(
                    """
                    INSERT INTO indexer_state (id, last_processed_version, last_sync_at)
                    VALUES (1, $1, $2)
                    ON CONFLICT (id) DO UPDATE SET
                        last_processed_version = EXCLUDED.last_processed_version,
                        last_sync_at = EXCLUDED.last_sync_at
                    WHERE indexer_state.last_processed_version < EXCLUDED.last_processed_version
                    RETURNING last_processed_version
                    """,
                    version,
                    synced_at,
                )

        row = await self._retry_operation(advance_watermark)
        advanced = row is not None
        if advanced:
            self._logger.info("watermark_advanced", last_processed_version=version)
        else:
            self._logger.warning("watermark_not_advanced", requested_version=version)
        return advanced

    # ------------------------------------------------------------------
    # Read queries for lobby and stats consumers
    # ------------------------------------------------------------------

    async def get_game(self, game_id: int) -> Optional[Game]:
        """Get one game by its chain id"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM games WHERE game_id = $1", game_id)
        return game_from_row(row) if row else None

    async def get_games(self, filters: GameFilters) -> List[Game]:
        """
        Query games with filters, newest first.

        Args:
            filters: GameFilters object

        Returns:
            List of Game objects
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        query = "SELECT * FROM games WHERE 1=1"
        params = []
        param_count = 1

        if filters.state is not None:
            query += f" AND state = ${param_count}"
            params.append(int(filters.state))
            param_count += 1

        if filters.active_only:
            query += f" AND state IN ({int(GameState.WAITING)}, {int(GameState.JOINED)})"

        if filters.bet_tier is not None:
            query += f" AND bet_tier = ${param_count}"
            params.append(filters.bet_tier)
            param_count += 1

        if filters.player_address is not None:
            query += f" AND (player1_address = ${param_count} OR player2_address = ${param_count})"
            params.append(filters.player_address)
            param_count += 1

        query += " ORDER BY created_at DESC, game_id DESC"
        query += f" LIMIT ${param_count} OFFSET ${param_count + 1}"
        params.extend([filters.limit, filters.offset])

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [game_from_row(row) for row in rows]

    async def get_available_games(
        self, bet_tier: Optional[int] = None, limit: int = 100, offset: int = 0
    ) -> List[Game]:
        """Games waiting for a second player, optionally for one tier"""
        return await self.get_games(
            GameFilters(state=GameState.WAITING, bet_tier=bet_tier, limit=limit, offset=offset)
        )

    async def get_match_history(
        self,
        limit: int = 20,
        offset: int = 0,
        player_address: Optional[str] = None,
    ) -> List[Game]:
        """
        Finished games that produced a winner, most recently finished first.

        Ties (no winner) are left out, matching what the lobby shows as
        match history.
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        query = "SELECT * FROM games WHERE state = $1 AND winner_address IS NOT NULL"
        params = [int(GameState.FINISHED)]
        param_count = 2

        if player_address is not None:
            query += f" AND (player1_address = ${param_count} OR player2_address = ${param_count})"
            params.append(player_address)
            param_count += 1

        query += " ORDER BY finished_at DESC NULLS LAST, game_id DESC"
        query += f" LIMIT ${param_count} OFFSET ${param_count + 1}"
        params.extend([limit, offset])

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [game_from_row(row) for row in rows]

    async def get_player(self, address: str) -> Optional[Player]:
        """Get aggregates for one address"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        async with self.pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM players WHERE address = $1", address)
        return player_from_row(row) if row else None

    async def get_leaderboard(self, sort_by: str = "total_winnings", limit: int = 10) -> List[Player]:
        """
        Top players ordered by an aggregate, descending.

        Args:
            sort_by: One of LEADERBOARD_SORT_FIELDS
            limit: Maximum number of players
        """
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        # Validate sort_by to prevent SQL injection
        sort_by = sort_by if sort_by in LEADERBOARD_SORT_FIELDS else "total_winnings"

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT * FROM players ORDER BY {sort_by} DESC, address ASC LIMIT $1",
                limit,
            )
        return [player_from_row(row) for row in rows]

    async def get_event_log(self, filters: EventLogFilters) -> List[EventLogEntry]:
        """Query the audit log, most recent version first"""
        if not self.pool:
            raise RuntimeError("Database pool not initialized")

        query = "SELECT * FROM event_log WHERE 1=1"
        params = []
        param_count = 1

        if filters.game_id is not None:
            query += f" AND game_id = ${param_count}"
            params.append(filters.game_id)
            param_count += 1

        if filters.player_address is not None:
            query += f" AND player_address = ${param_count}"
            params.append(filters.player_address)
            param_count += 1

        if filters.event_type is not None:
            query += f" AND event_type = ${param_count}"
            params.append(filters.event_type)
            param_count += 1

        query += " ORDER BY transaction_version DESC, event_index DESC"
        query += f" LIMIT ${param_count} OFFSET ${param_count + 1}"
        params.extend([filters.limit, filters.offset])

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [event_log_from_row(row) for row in rows]

    async def get_pool_size(self) -> int:
        """Get current connection pool size"""
        if not self.pool:
            return 0
        return self.pool.get_size()

    async def get_pool_free_size(self) -> int:
        """Get number of free connections in pool"""
        if not self.pool:
            return 0
        return self.pool.get_idle_size()
