"""Database module for the PostgreSQL read-model"""

from arena_indexer.database.manager import DatabaseManager
from arena_indexer.database.models import (
    EventLogEntry,
    EventLogFilters,
    Game,
    GameFilters,
    GameState,
    IndexerState,
    Player,
    get_bet_tier,
)
from arena_indexer.database.repository import ReadModelRepository
from arena_indexer.database.schema import get_schema_sql

__all__ = [
    "DatabaseManager",
    "ReadModelRepository",
    "get_schema_sql",
    "get_bet_tier",
    "Game",
    "GameState",
    "Player",
    "EventLogEntry",
    "IndexerState",
    "GameFilters",
    "EventLogFilters",
]
