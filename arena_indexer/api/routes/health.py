"""Liveness of the read-model database, the cache and the indexing loop"""

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import BaseModel, Field
import structlog

from arena_indexer.api.dependencies import get_cache_manager, get_db_manager
from arena_indexer.cache.manager import CacheManager
from arena_indexer.database.manager import DatabaseManager

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["health"])

UP = "up"
DOWN = "down"
DISABLED = "disabled"


class DatabaseHealth(BaseModel):
    status: str = Field(description="up or down")
    pool_size: int = 0
    pool_free: int = 0
    detail: Optional[str] = None


class IndexerHealth(BaseModel):
    last_processed_version: Optional[int] = Field(None, description="Indexer watermark")
    last_sync_at: Optional[datetime] = None
    seconds_since_sync: Optional[float] = Field(
        None, description="Age of the last watermark move; grows while the contract is quiet"
    )
    scheduler_running: Optional[bool] = Field(None, description="None when no scheduler is attached")
    cycle_in_progress: bool = False


class HealthResponse(BaseModel):
    """
    Overall status is unhealthy when the database is down (503), degraded
    when the cache is unreachable or the scheduler has stopped, healthy
    otherwise.
    """

    status: str
    database: DatabaseHealth
    cache: str = Field(description="up, down or disabled")
    indexer: IndexerHealth


async def check_database(db_manager: DatabaseManager, indexer: IndexerHealth) -> DatabaseHealth:
    if not db_manager.pool:
        return DatabaseHealth(status=DOWN, detail="pool not initialized")

    try:
        state = await db_manager.get_indexer_state()
        pool_size = await db_manager.get_pool_size()
        pool_free = await db_manager.get_pool_free_size()
    except Exception as e:
        logger.error("health_database_check_failed", error=str(e))
        return DatabaseHealth(status=DOWN, detail=type(e).__name__)

    indexer.last_processed_version = state.last_processed_version if state else 0
    if state and state.last_sync_at:
        synced_at = state.last_sync_at
        if synced_at.tzinfo is None:
            synced_at = synced_at.replace(tzinfo=timezone.utc)
        indexer.last_sync_at = synced_at
        indexer.seconds_since_sync = round(
            (datetime.now(timezone.utc) - synced_at).total_seconds(), 3
        )
    return DatabaseHealth(status=UP, pool_size=pool_size, pool_free=pool_free)


async def check_cache(cache_manager: Optional[CacheManager]) -> str:
    if cache_manager is None:
        return DISABLED
    return UP if await cache_manager.ping() else DOWN


@router.get("/health", response_model=HealthResponse)
async def health_check(
    request: Request,
    response: Response,
    db_manager: DatabaseManager = Depends(get_db_manager),
    cache_manager: Optional[CacheManager] = Depends(get_cache_manager),
) -> HealthResponse:
    """Public endpoint; no API key required"""
    scheduler = request.app.state.scheduler
    indexer = IndexerHealth(
        scheduler_running=scheduler.is_running if scheduler else None,
        cycle_in_progress=scheduler.cycle_in_progress if scheduler else False,
    )

    database = await check_database(db_manager, indexer)
    cache = await check_cache(cache_manager)

    if database.status == DOWN:
        overall = "unhealthy"
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    elif cache == DOWN or indexer.scheduler_running is False:
        overall = "degraded"
    else:
        overall = "healthy"

    logger.debug(
        "health_checked",
        status=overall,
        database=database.status,
        cache=cache,
        last_processed_version=indexer.last_processed_version,
    )
    return HealthResponse(status=overall, database=database, cache=cache, indexer=indexer)
