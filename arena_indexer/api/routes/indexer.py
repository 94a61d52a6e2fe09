"""Indexer trigger and status endpoints"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import structlog

from arena_indexer.api.dependencies import get_db_manager, get_scheduler, verify_api_key
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.indexer.scheduler import IndexerScheduler

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["indexer"])


class IndexerStatusResponse(BaseModel):
    """Indexer status response model"""

    last_processed_version: int = Field(description="Highest chain version fully applied")
    last_sync_at: Optional[datetime] = Field(None, description="When the watermark last moved")
    cycle_in_progress: bool
    scheduler_running: bool


@router.post("/indexer/run")
async def run_indexer(
    scheduler: IndexerScheduler = Depends(get_scheduler),
    api_key: Optional[str] = Depends(verify_api_key),
):
    """
    Run one indexing cycle on demand.

    Returns {success, processed, lastVersion} on success. A request that
    arrives while a cycle is running returns immediately with skipped=true.
    Failures return 500 with {"error": message}.
    """
    try:
        result = await scheduler.run_cycle()
    except Exception as e:
        logger.error("indexer_run_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": str(e)},
        )

    logger.info(
        "indexer_run_completed",
        processed=result.processed,
        last_version=result.last_version,
        skipped=result.skipped,
    )
    return result.to_response()


@router.get("/indexer/status", response_model=IndexerStatusResponse)
async def get_indexer_status(
    db_manager: DatabaseManager = Depends(get_db_manager),
    scheduler: IndexerScheduler = Depends(get_scheduler),
    api_key: Optional[str] = Depends(verify_api_key),
) -> IndexerStatusResponse:
    """Get the stored watermark and the scheduler state"""
    try:
        state = await db_manager.get_indexer_state()
    except Exception as e:
        logger.error("indexer_status_query_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query indexer state")

    return IndexerStatusResponse(
        last_processed_version=state.last_processed_version if state else 0,
        last_sync_at=state.last_sync_at if state else None,
        cycle_in_progress=scheduler.cycle_in_progress,
        scheduler_running=scheduler.is_running,
    )
