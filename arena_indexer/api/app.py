"""FastAPI application with authentication and CORS middleware"""

import time
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Response, Security, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.requests import Request
from fastapi.security import APIKeyHeader
import structlog

from arena_indexer.api.websocket import LiveUpdateManager, websocket_endpoint
from arena_indexer.cache.manager import CacheManager
from arena_indexer.config.models import Settings
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.indexer.scheduler import IndexerScheduler
from arena_indexer.monitoring import metrics

logger = structlog.get_logger()

# API key header security
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


class APIKeyAuth:
    """API key authentication dependency; disabled when no keys are configured"""

    def __init__(self, api_keys: List[str]):
        self.api_keys = set(api_keys)
        self._logger = logger.bind(component="api_key_auth")

    @property
    def enabled(self) -> bool:
        return bool(self.api_keys)

    async def __call__(self, api_key: Optional[str] = Security(api_key_header)) -> Optional[str]:
        """
        Validate API key from X-API-Key header.

        Args:
            api_key: API key from request header

        Returns:
            Validated API key

        Raises:
            HTTPException: If API key is missing or invalid
        """
        if not self.enabled:
            return None

        if api_key is None:
            self._logger.warning("api_auth_failed", reason="missing_api_key")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing API key. Provide X-API-Key header.",
            )

        if api_key not in self.api_keys:
            self._logger.warning("api_auth_failed", reason="invalid_api_key")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid API key",
            )

        return api_key


def create_app(
    settings: Settings,
    db_manager: DatabaseManager,
    scheduler: Optional[IndexerScheduler] = None,
    cache_manager: Optional[CacheManager] = None,
    live_updates: Optional[LiveUpdateManager] = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        settings: Application settings
        db_manager: Database manager instance
        scheduler: Indexer scheduler backing the run/status endpoints
        cache_manager: Optional cache manager instance
        live_updates: Live update manager behind /ws/v1/stream (a fresh one if omitted)

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Slice Arena Indexer API",
        description="Read-model queries for the multiplayer lobby and leaderboard, and the indexing trigger",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Configure CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["authorization", "x-client-info", "apikey", "content-type", "x-api-key"],
    )

    # Add metrics middleware
    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Middleware to track API request metrics"""
        # Skip metrics for the metrics endpoint itself
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.time()

        try:
            response = await call_next(request)

            # Route template keeps label cardinality bounded
            route = request.scope.get("route")
            endpoint = getattr(route, "path", request.url.path)
            metrics.api_request_latency.labels(
                endpoint=endpoint,
                method=request.method
            ).observe(time.time() - start_time)

            metrics.api_requests_total.labels(
                endpoint=endpoint,
                method=request.method,
                status=response.status_code
            ).inc()

            return response
        except Exception as e:
            metrics.api_errors.labels(
                endpoint=request.url.path,
                error_type=type(e).__name__
            ).inc()
            raise

    api_key_auth = APIKeyAuth(settings.get_api_keys_list())
    if not api_key_auth.enabled:
        logger.warning("api_key_auth_disabled", reason="no_api_keys_configured")

    # Store dependencies in app state
    app.state.db_manager = db_manager
    app.state.settings = settings
    app.state.api_key_auth = api_key_auth
    app.state.cache_manager = cache_manager
    app.state.scheduler = scheduler
    app.state.live_updates = live_updates or LiveUpdateManager()

    # Register routes
    from arena_indexer.api.routes import events, games, health, indexer, players

    app.include_router(games.router)
    app.include_router(players.router)
    app.include_router(events.router)
    app.include_router(indexer.router)
    app.include_router(health.router)

    @app.websocket("/ws/v1/stream")
    async def websocket_route(websocket: WebSocket):
        await websocket_endpoint(websocket, app.state.live_updates)

    @app.get("/metrics")
    async def metrics_endpoint():
        """Prometheus metrics endpoint"""
        return Response(content=metrics.get_metrics(), media_type=metrics.get_content_type())

    logger.info(
        "fastapi_app_created",
        title=app.title,
        version=app.version,
        docs_url=app.docs_url,
    )

    return app
