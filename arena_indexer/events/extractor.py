"""Turns raw transactions into positioned, typed domain events"""

from typing import Any, Dict, List, Optional

import structlog
from pydantic import ValidationError

from arena_indexer.database.models import EventLogEntry
from arena_indexer.events.models import (
    ADDRESS_MAX_LENGTH,
    MAX_GAME_ID,
    PAYLOAD_MODELS,
    USER_TRANSACTION,
    EventPayload,
    IndexedEvent,
    OpaquePayload,
    RawTransaction,
)

logger = structlog.get_logger()

NAMESPACE_SEPARATOR = "::"
TYPE_ARGUMENTS_START = "<"
EVENT_TYPE_MAX_LENGTH = 100


def event_type_name(type_tag: str) -> str:
    """
    Short event name from a fully qualified type tag.

    "0xabc::multiplayer_game::GameCreatedEvent" -> "GameCreatedEvent"
    "0x1::coin::CoinDeposit<0x1::aptos_coin::AptosCoin>" -> "CoinDeposit"
    """
    base = type_tag.split(TYPE_ARGUMENTS_START, 1)[0]
    return base.rsplit(NAMESPACE_SEPARATOR, 1)[-1][:EVENT_TYPE_MAX_LENGTH]


def is_user_transaction(transaction: RawTransaction) -> bool:
    """Only user transactions carry game events; genesis/block metadata are skipped"""
    return transaction.type == USER_TRANSACTION


def event_data(raw_data: Any) -> Dict[str, Any]:
    """Event data as an object; primitive payloads are wrapped under "value" """
    if isinstance(raw_data, dict):
        return dict(raw_data)
    return {"value": raw_data}


def parse_game_id(data: Dict[str, Any]) -> Optional[int]:
    """game_id from a payload, or None when absent, not an integer or out of column range"""
    value = data.get("game_id")
    if value is None or value == "" or isinstance(value, (bool, dict, list)):
        return None
    try:
        game_id = int(value)
    except (TypeError, ValueError):
        logger.warning("event_game_id_invalid", game_id=value)
        return None

    if not 0 <= game_id <= MAX_GAME_ID:
        logger.warning("event_game_id_out_of_range", game_id=value)
        return None
    return game_id


def parse_player_address(data: Dict[str, Any]) -> Optional[str]:
    """
    Creation payloads name the "creator", join payloads the "player".

    Only plain address strings qualify; object wrappers such as
    {"inner": "0x.."} are left to the audited data.
    """
    for key in ("creator", "player"):
        value = data.get(key)
        if isinstance(value, str) and value and len(value) <= ADDRESS_MAX_LENGTH:
            return value
    return None


def parse_payload(event_type: str, data: Dict[str, Any]) -> EventPayload:
    """
    Validate data against the schema registered for event_type.

    Unknown types, and known types whose payload does not validate, come
    back as OpaquePayload so they are audited but never applied.
    """
    model = PAYLOAD_MODELS.get(event_type)
    if model is None:
        return OpaquePayload.model_validate(data)

    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(
            "event_payload_invalid",
            event_type=event_type,
            error_count=e.error_count(),
            errors=[err["loc"] for err in e.errors()],
        )
        return OpaquePayload.model_validate(data)


def extract_events(transaction: RawTransaction) -> List[IndexedEvent]:
    """
    Events of a transaction in the order the chain emitted them.

    Args:
        transaction: A user transaction

    Returns:
        List of IndexedEvent, event_index being the position in the transaction
    """
    events = []
    for index, raw_event in enumerate(transaction.events):
        event_type = event_type_name(raw_event.type)
        data = event_data(raw_event.data)
        events.append(
            IndexedEvent(
                event_type=event_type,
                type_tag=raw_event.type,
                event_index=index,
                transaction_hash=transaction.hash,
                transaction_version=transaction.version,
                payload=parse_payload(event_type, data),
                data=data,
                game_id=parse_game_id(data),
                player_address=parse_player_address(data),
            )
        )
    return events


def to_event_log_entry(event: IndexedEvent) -> EventLogEntry:
    """Audit row for an event"""
    return EventLogEntry(
        event_type=event.event_type,
        type_tag=event.type_tag,
        transaction_hash=event.transaction_hash,
        transaction_version=event.transaction_version,
        event_index=event.event_index,
        data=event.data,
        game_id=event.game_id,
        player_address=event.player_address,
    )
