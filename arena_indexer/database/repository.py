"""Read-model writes bound to a single database transaction"""

import json
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import asyncpg

from arena_indexer.database.models import EventLogEntry, Game, GameState, IndexerState, Player


def _to_int(value: Any) -> int:
    """NUMERIC columns come back as Decimal; amounts are whole numbers"""
    if value is None:
        return 0
    return int(value)


def _to_numeric(value: int) -> Decimal:
    return Decimal(int(value))


def game_from_row(row: asyncpg.Record) -> Game:
    """Build a Game from a games row"""
    return Game(
        id=row["id"],
        game_id=row["game_id"],
        bet_amount=_to_int(row["bet_amount"]),
        bet_tier=row["bet_tier"],
        player1_address=row["player1_address"],
        player2_address=row["player2_address"],
        state=GameState(row["state"]),
        winner_address=row["winner_address"],
        creation_tx_hash=row["creation_tx_hash"],
        join_tx_hash=row["join_tx_hash"],
        finish_tx_hash=row["finish_tx_hash"],
        created_at=row["created_at"],
        joined_at=row["joined_at"],
        finished_at=row["finished_at"],
        player1_finished=row["player1_finished"],
        player2_finished=row["player2_finished"],
    )


def player_from_row(row: asyncpg.Record) -> Player:
    """Build a Player from a players row"""
    return Player(
        id=row["id"],
        address=row["address"],
        games_played=row["games_played"],
        games_won=row["games_won"],
        total_wagered=_to_int(row["total_wagered"]),
        total_winnings=_to_int(row["total_winnings"]),
        created_at=row["created_at"],
        last_active=row["last_active"],
    )


def event_log_from_row(row: asyncpg.Record) -> EventLogEntry:
    """Build an EventLogEntry from an event_log row"""
    data = row["data"]
    if isinstance(data, str):
        data = json.loads(data)
    return EventLogEntry(
        id=row["id"],
        event_type=row["event_type"],
        type_tag=row["type_tag"],
        game_id=row["game_id"],
        player_address=row["player_address"],
        data=data or {},
        transaction_hash=row["transaction_hash"],
        transaction_version=row["transaction_version"],
        event_index=row["event_index"],
        created_at=row["created_at"],
    )


def indexer_state_from_row(row: asyncpg.Record) -> IndexerState:
    """Build the IndexerState from the singleton row"""
    return IndexerState(
        id=row["id"],
        last_processed_version=row["last_processed_version"],
        last_sync_at=row["last_sync_at"],
    )


class ReadModelRepository:
    """
    Write operations the event handlers apply to the read-model.

    An instance wraps one connection that is already inside a transaction;
    see DatabaseManager.unit_of_work(). Policy (state transitions, seeding
    rules) lives in the handlers, this class only speaks SQL.
    """

    def __init__(self, conn: asyncpg.Connection):
        self.conn = conn

    async def append_event_log(self, entry: EventLogEntry) -> bool:
        """
        Insert an audit row keyed by (transaction_hash, event_index).

        Returns:
            True if the row is new, False if this event was already indexed
        """
        row = await self.conn.fetchrow(
            """
            INSERT INTO event_log (
                event_type, type_tag, game_id, player_address, data,
                transaction_hash, transaction_version, event_index
            ) VALUES ($1, $2, $3, $4, $5::jsonb, $6, $7, $8)
            ON CONFLICT (transaction_hash, event_index) DO NOTHING
            RETURNING id
            """,
            entry.event_type,
            entry.type_tag,
            entry.game_id,
            entry.player_address,
            json.dumps(entry.data),
            entry.transaction_hash,
            entry.transaction_version,
            entry.event_index,
        )
        return row is not None

    async def insert_game(self, game: Game) -> bool:
        """Insert a new game; returns False if the game_id already exists"""
        row = await self.conn.fetchrow(
            """
            INSERT INTO games (
                game_id, bet_amount, bet_tier, player1_address, state, creation_tx_hash
            ) VALUES ($1, $2, $3, $4, $5, $6)
            ON CONFLICT (game_id) DO NOTHING
            RETURNING id
            """,
            game.game_id,
            _to_numeric(game.bet_amount),
            game.bet_tier,
            game.player1_address,
            int(game.state),
            game.creation_tx_hash,
        )
        return row is not None

    async def get_game(self, game_id: int) -> Optional[Game]:
        row = await self.conn.fetchrow("SELECT * FROM games WHERE game_id = $1", game_id)
        return game_from_row(row) if row else None

    async def update_game_joined(
        self, game_id: int, player2_address: str, join_tx_hash: str, joined_at: datetime
    ) -> None:
        await self.conn.execute(
            """
            UPDATE games
            SET player2_address = $2,
                state = $3,
                joined_at = $4,
                join_tx_hash = $5
            WHERE game_id = $1
            """,
            game_id,
            player2_address,
            int(GameState.JOINED),
            joined_at,
            join_tx_hash,
        )

    async def update_game_finished(
        self,
        game_id: int,
        winner_address: Optional[str],
        finish_tx_hash: str,
        finished_at: datetime,
    ) -> None:
        await self.conn.execute(
            """
            UPDATE games
            SET winner_address = $2,
                state = $3,
                finished_at = $4,
                finish_tx_hash = $5,
                player1_finished = TRUE,
                player2_finished = TRUE
            WHERE game_id = $1
            """,
            game_id,
            winner_address,
            int(GameState.FINISHED),
            finished_at,
            finish_tx_hash,
        )

    async def get_player(self, address: str) -> Optional[Player]:
        row = await self.conn.fetchrow("SELECT * FROM players WHERE address = $1", address)
        return player_from_row(row) if row else None

    async def insert_player(self, player: Player) -> None:
        await self.conn.execute(
            """
            INSERT INTO players (
                address, games_played, games_won, total_wagered, total_winnings,
                created_at, last_active
            ) VALUES ($1, $2, $3, $4, $5, $6, $6)
            """,
            player.address,
            player.games_played,
            player.games_won,
            _to_numeric(player.total_wagered),
            _to_numeric(player.total_winnings),
            player.last_active,
        )

    async def accumulate_player(
        self,
        address: str,
        active_at: datetime,
        wagered: int = 0,
        winnings: int = 0,
        games_won: int = 0,
        games_played: int = 0,
    ) -> None:
        """Add deltas to an existing player's aggregates in place"""
        await self.conn.execute(
            """
            UPDATE players
            SET total_wagered = total_wagered + $2,
                total_winnings = total_winnings + $3,
                games_won = games_won + $4,
                games_played = games_played + $5,
                last_active = $6
            WHERE address = $1
            """,
            address,
            _to_numeric(wagered),
            _to_numeric(winnings),
            games_won,
            games_played,
            active_at,
        )
