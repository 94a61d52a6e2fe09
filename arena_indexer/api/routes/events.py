"""Event log endpoint"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
import structlog

from arena_indexer.api.dependencies import get_db_manager, verify_api_key
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.database.models import EventLogFilters

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["events"])


class EventLogResponse(BaseModel):
    """Audit log entry response model"""

    id: int
    event_type: str
    type_tag: str
    game_id: Optional[int] = None
    player_address: Optional[str] = None
    data: Dict[str, Any]
    transaction_hash: str
    transaction_version: int
    event_index: int
    created_at: Optional[datetime] = None


@router.get("/events", response_model=List[EventLogResponse])
async def get_events(
    game_id: Optional[int] = Query(None, description="Filter by game id"),
    player_address: Optional[str] = Query(None, description="Filter by creator/joiner address"),
    event_type: Optional[str] = Query(None, description="Filter by event type, e.g. GameCreatedEvent"),
    limit: int = Query(100, ge=1, le=1000, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    db_manager: DatabaseManager = Depends(get_db_manager),
    api_key: Optional[str] = Depends(verify_api_key),
) -> List[EventLogResponse]:
    """
    Get indexed events, most recent transaction version first.

    Every event of every indexed user transaction is listed, including
    event types the indexer does not interpret.
    """
    try:
        entries = await db_manager.get_event_log(
            EventLogFilters(
                game_id=game_id,
                player_address=player_address,
                event_type=event_type,
                limit=limit,
                offset=offset,
            )
        )
    except Exception as e:
        logger.error("event_log_query_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query events")

    return [
        EventLogResponse(
            id=entry.id,
            event_type=entry.event_type,
            type_tag=entry.type_tag,
            game_id=entry.game_id,
            player_address=entry.player_address,
            data=entry.data,
            transaction_hash=entry.transaction_hash,
            transaction_version=entry.transaction_version,
            event_index=entry.event_index,
            created_at=entry.created_at,
        )
        for entry in entries
    ]
