"""Event extraction from chain transactions"""

from arena_indexer.events.extractor import (
    event_type_name,
    extract_events,
    is_user_transaction,
    to_event_log_entry,
)
from arena_indexer.events.models import (
    GAME_CREATED,
    GAME_FINISHED,
    GAME_JOINED,
    GameCreatedPayload,
    GameFinishedPayload,
    GameJoinedPayload,
    IndexedEvent,
    OpaquePayload,
    RawEvent,
    RawTransaction,
)

__all__ = [
    "event_type_name",
    "extract_events",
    "is_user_transaction",
    "to_event_log_entry",
    "GAME_CREATED",
    "GAME_JOINED",
    "GAME_FINISHED",
    "GameCreatedPayload",
    "GameJoinedPayload",
    "GameFinishedPayload",
    "OpaquePayload",
    "IndexedEvent",
    "RawEvent",
    "RawTransaction",
]
