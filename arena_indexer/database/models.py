"""Data models for read-model entities"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any, Dict, Optional

# Exact bet amounts (smallest currency unit) for each tier
BET_TIERS: Dict[int, int] = {
    10_000_000: 1,
    50_000_000: 2,
    100_000_000: 3,
    500_000_000: 4,
}

DEFAULT_BET_TIER = 1

# Winner value emitted by the contract for a tie
NULL_ADDRESS = "0x0"


def get_bet_tier(bet_amount: int) -> int:
    """Map a bet amount to its tier, falling back to tier 1 for unknown amounts"""
    return BET_TIERS.get(int(bet_amount), DEFAULT_BET_TIER)


class GameState(IntEnum):
    """Lifecycle of a multiplayer game; values are persisted"""

    WAITING = 0
    JOINED = 1
    FINISHED = 2


@dataclass
class IndexerState:
    """Singleton watermark row"""

    last_processed_version: int
    last_sync_at: Optional[datetime] = None
    id: int = 1


@dataclass
class Game:
    """Multiplayer game mirrored from the chain"""

    game_id: int
    bet_amount: int
    bet_tier: int
    player1_address: str
    creation_tx_hash: str
    state: GameState = GameState.WAITING
    player2_address: Optional[str] = None
    winner_address: Optional[str] = None
    join_tx_hash: Optional[str] = None
    finish_tx_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    player1_finished: bool = False
    player2_finished: bool = False
    id: Optional[int] = None


@dataclass
class Player:
    """Per-address aggregates; amounts are arbitrary-precision integers"""

    address: str
    games_played: int = 0
    games_won: int = 0
    total_wagered: int = 0
    total_winnings: int = 0
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class EventLogEntry:
    """Immutable audit row written for every event of an eligible transaction"""

    event_type: str
    type_tag: str
    transaction_hash: str
    transaction_version: int
    event_index: int
    data: Dict[str, Any] = field(default_factory=dict)
    game_id: Optional[int] = None
    player_address: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class GameFilters:
    """Filters for querying games"""

    state: Optional[GameState] = None
    bet_tier: Optional[int] = None
    player_address: Optional[str] = None
    active_only: bool = False
    limit: int = 100
    offset: int = 0


@dataclass
class EventLogFilters:
    """Filters for querying the event log"""

    game_id: Optional[int] = None
    player_address: Optional[str] = None
    event_type: Optional[str] = None
    limit: int = 100
    offset: int = 0
