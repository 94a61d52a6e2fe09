"""In-memory stand-ins for the PostgreSQL read model used by unit tests"""

import copy
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from arena_indexer.database.models import (
    EventLogEntry,
    Game,
    GameState,
    IndexerState,
    Player,
)

BIGINT_MAX = 2**63 - 1
VARCHAR_ADDRESS = 66


def check_event_log_columns(entry: EventLogEntry) -> None:
    """Reject values asyncpg would refuse for the event_log columns"""
    if entry.game_id is not None and not (
        isinstance(entry.game_id, int) and -BIGINT_MAX - 1 <= entry.game_id <= BIGINT_MAX
    ):
        raise TypeError(f"invalid game_id for BIGINT: {entry.game_id!r}")
    if entry.player_address is not None and not (
        isinstance(entry.player_address, str) and len(entry.player_address) <= VARCHAR_ADDRESS
    ):
        raise TypeError(f"invalid player_address for VARCHAR(66): {entry.player_address!r}")
    if not isinstance(entry.data, dict):
        raise TypeError(f"event data must be an object: {entry.data!r}")


class InMemoryReadModel:
    """
    Tables held in dicts with the same keys and conflict rules as the schema.

    unit_of_work() snapshots the tables and restores them if the block
    raises, mirroring a rolled back transaction.
    """

    def __init__(self):
        self.games: Dict[int, Game] = {}
        self.players: Dict[str, Player] = {}
        self.event_log: Dict[Tuple[str, int], EventLogEntry] = {}
        self.state: Optional[IndexerState] = None
        self.fail_on_event: Optional[Tuple[str, int]] = None
        self.committed_units = 0
        self.rolled_back_units = 0

    # Watermark

    async def get_indexer_state(self) -> Optional[IndexerState]:
        return self.state

    async def get_last_processed_version(self) -> int:
        return self.state.last_processed_version if self.state else 0

    async def advance_watermark(self, version: int, synced_at: datetime) -> bool:
        if self.state is not None and self.state.last_processed_version >= version:
            return False
        self.state = IndexerState(last_processed_version=version, last_sync_at=synced_at)
        return True

    @asynccontextmanager
    async def unit_of_work(self):
        snapshot = copy.deepcopy((self.games, self.players, self.event_log))
        try:
            yield InMemoryRepository(self)
        except Exception:
            self.games, self.players, self.event_log = snapshot
            self.rolled_back_units += 1
            raise
        self.committed_units += 1

    # Read queries

    async def get_game(self, game_id: int) -> Optional[Game]:
        game = self.games.get(game_id)
        return replace(game) if game else None

    async def get_player(self, address: str) -> Optional[Player]:
        player = self.players.get(address)
        return replace(player) if player else None

    def events_for(self, tx_hash: str) -> List[EventLogEntry]:
        return sorted(
            (entry for (h, _), entry in self.event_log.items() if h == tx_hash),
            key=lambda entry: entry.event_index,
        )


class InMemoryRepository:
    """Same method surface as ReadModelRepository"""

    def __init__(self, store: InMemoryReadModel):
        self.store = store

    async def append_event_log(self, entry: EventLogEntry) -> bool:
        key = (entry.transaction_hash, entry.event_index)
        if self.store.fail_on_event == key:
            raise RuntimeError(f"write failed for {key}")
        check_event_log_columns(entry)
        if key in self.store.event_log:
            return False
        entry.id = len(self.store.event_log) + 1
        self.store.event_log[key] = entry
        return True

    async def insert_game(self, game: Game) -> bool:
        if game.game_id in self.store.games:
            return False
        self.store.games[game.game_id] = replace(game)
        return True

    async def get_game(self, game_id: int) -> Optional[Game]:
        game = self.store.games.get(game_id)
        return replace(game) if game else None

    async def update_game_joined(self, game_id, player2_address, join_tx_hash, joined_at) -> None:
        game = self.store.games.get(game_id)
        if game is None:
            return
        game.player2_address = player2_address
        game.state = GameState.JOINED
        game.join_tx_hash = join_tx_hash
        game.joined_at = joined_at

    async def update_game_finished(self, game_id, winner_address, finish_tx_hash, finished_at) -> None:
        game = self.store.games.get(game_id)
        if game is None:
            return
        game.winner_address = winner_address
        game.state = GameState.FINISHED
        game.finish_tx_hash = finish_tx_hash
        game.finished_at = finished_at
        game.player1_finished = True
        game.player2_finished = True

    async def get_player(self, address: str) -> Optional[Player]:
        player = self.store.players.get(address)
        return replace(player) if player else None

    async def insert_player(self, player: Player) -> None:
        if player.address in self.store.players:
            raise RuntimeError(f"duplicate player {player.address}")
        self.store.players[player.address] = replace(player, created_at=player.last_active)

    async def accumulate_player(
        self,
        address: str,
        active_at: datetime,
        wagered: int = 0,
        winnings: int = 0,
        games_won: int = 0,
        games_played: int = 0,
    ) -> None:
        player = self.store.players.get(address)
        if player is None:
            return
        player.total_wagered += wagered
        player.total_winnings += winnings
        player.games_won += games_won
        player.games_played += games_played
        player.last_active = active_at
