"""Request dependencies resolved from application state"""

from typing import Optional

from fastapi import HTTPException, Request

from arena_indexer.cache.manager import CacheManager
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.indexer.scheduler import IndexerScheduler


async def get_db_manager(request: Request) -> DatabaseManager:
    """Get database manager from app state"""
    return request.app.state.db_manager


async def get_cache_manager(request: Request) -> Optional[CacheManager]:
    """Get cache manager from app state"""
    return request.app.state.cache_manager


async def get_scheduler(request: Request) -> IndexerScheduler:
    """Get indexer scheduler from app state"""
    scheduler = request.app.state.scheduler
    if scheduler is None:
        raise HTTPException(status_code=503, detail="Indexer not configured")
    return scheduler


async def verify_api_key(request: Request) -> Optional[str]:
    """Verify API key from request"""
    api_key_auth = request.app.state.api_key_auth
    api_key = request.headers.get("X-API-Key")
    return await api_key_auth(api_key)
