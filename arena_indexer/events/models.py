"""Transaction and event payload models for the full node REST API"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

USER_TRANSACTION = "user_transaction"

GAME_CREATED = "GameCreatedEvent"
GAME_JOINED = "GameJoinedEvent"
GAME_FINISHED = "GameFinishedEvent"

# Column bounds of the read-model
MAX_GAME_ID = 2**63 - 1
ADDRESS_MAX_LENGTH = 66


class RawEvent(BaseModel):
    """Event as returned inside a transaction; data is usually an object but may be a primitive"""

    type: str
    data: Any = Field(default_factory=dict)

    model_config = ConfigDict(extra="ignore")


class RawTransaction(BaseModel):
    """Account transaction; the node sends version as a decimal string"""

    version: int
    type: str
    hash: str
    events: List[RawEvent] = Field(default_factory=list)

    model_config = ConfigDict(extra="ignore")


class GameCreatedPayload(BaseModel):
    game_id: int = Field(ge=0, le=MAX_GAME_ID)
    creator: str = Field(max_length=ADDRESS_MAX_LENGTH)
    bet_amount: int = Field(ge=0)

    model_config = ConfigDict(extra="ignore")


class GameJoinedPayload(BaseModel):
    game_id: int = Field(ge=0, le=MAX_GAME_ID)
    player: str = Field(max_length=ADDRESS_MAX_LENGTH)
    bet_amount: int = Field(ge=0)

    model_config = ConfigDict(extra="ignore")


class GameFinishedPayload(BaseModel):
    game_id: int = Field(ge=0, le=MAX_GAME_ID)
    winner: Optional[str] = Field(default=None, max_length=ADDRESS_MAX_LENGTH)
    loser: Optional[str] = Field(default=None, max_length=ADDRESS_MAX_LENGTH)
    prize_amount: int = Field(default=0, ge=0)

    model_config = ConfigDict(extra="ignore")


class OpaquePayload(BaseModel):
    """Any event the indexer does not interpret; kept only for the audit log"""

    model_config = ConfigDict(extra="allow")


EventPayload = Union[GameCreatedPayload, GameJoinedPayload, GameFinishedPayload, OpaquePayload]

PAYLOAD_MODELS = {
    GAME_CREATED: GameCreatedPayload,
    GAME_JOINED: GameJoinedPayload,
    GAME_FINISHED: GameFinishedPayload,
}


@dataclass
class IndexedEvent:
    """An event of an eligible transaction, positioned and typed"""

    event_type: str
    type_tag: str
    event_index: int
    transaction_hash: str
    transaction_version: int
    payload: EventPayload
    data: Dict[str, Any] = field(default_factory=dict)
    game_id: Optional[int] = None
    player_address: Optional[str] = None

    @property
    def is_opaque(self) -> bool:
        return isinstance(self.payload, OpaquePayload)
