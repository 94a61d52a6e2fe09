"""Player statistics and leaderboard endpoints"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
import structlog

from arena_indexer.api.dependencies import get_cache_manager, get_db_manager, verify_api_key
from arena_indexer.api.routes.games import GameResponse, game_to_response
from arena_indexer.cache.manager import CacheManager
from arena_indexer.database.manager import LEADERBOARD_SORT_FIELDS, DatabaseManager
from arena_indexer.database.models import GameFilters, Player

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["players"])


class PlayerResponse(BaseModel):
    """Player statistics response model"""

    address: str = Field(description="Wallet address")
    games_played: int
    games_won: int
    total_wagered: str = Field(description="Total wagered in the smallest currency unit")
    total_winnings: str = Field(description="Total won in the smallest currency unit")
    last_active: Optional[datetime] = None


def player_to_response(player: Player) -> PlayerResponse:
    return PlayerResponse(
        address=player.address,
        games_played=player.games_played,
        games_won=player.games_won,
        total_wagered=str(player.total_wagered),
        total_winnings=str(player.total_winnings),
        last_active=player.last_active,
    )


@router.get("/players/{address}", response_model=PlayerResponse)
async def get_player_stats(
    address: str,
    db_manager: DatabaseManager = Depends(get_db_manager),
    api_key: Optional[str] = Depends(verify_api_key),
) -> PlayerResponse:
    """
    Get statistics for a wallet address.

    An address the indexer has never seen gets zeroed statistics rather
    than a 404, so a fresh wallet can render its stats panel.
    """
    try:
        player = await db_manager.get_player(address)
    except Exception as e:
        logger.error("player_query_failed", address=address, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query player")

    return player_to_response(player or Player(address=address))


@router.get("/players/{address}/games", response_model=List[GameResponse])
async def get_player_games(
    address: str,
    active_only: bool = Query(False, description="Only WAITING or JOINED games"),
    limit: int = Query(20, ge=1, le=200, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    db_manager: DatabaseManager = Depends(get_db_manager),
    api_key: Optional[str] = Depends(verify_api_key),
) -> List[GameResponse]:
    """Get games an address created or joined, newest first"""
    try:
        games = await db_manager.get_games(
            GameFilters(
                player_address=address,
                active_only=active_only,
                limit=limit,
                offset=offset,
            )
        )
    except Exception as e:
        logger.error("player_games_query_failed", address=address, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query player games")

    logger.info("player_games_queried", address=address, count=len(games), active_only=active_only)
    return [game_to_response(game) for game in games]


@router.get("/leaderboard", response_model=List[PlayerResponse])
async def get_leaderboard(
    sort_by: str = Query(
        "total_winnings",
        description="Sort field (total_winnings, games_won, total_wagered, games_played)",
    ),
    limit: int = Query(10, ge=1, le=100, description="Maximum number of players"),
    db_manager: DatabaseManager = Depends(get_db_manager),
    cache_manager: Optional[CacheManager] = Depends(get_cache_manager),
    api_key: Optional[str] = Depends(verify_api_key),
) -> List[PlayerResponse]:
    """Get the top players, descending by the chosen aggregate"""
    if sort_by not in LEADERBOARD_SORT_FIELDS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid sort_by field. Allowed: {', '.join(LEADERBOARD_SORT_FIELDS)}",
        )

    try:
        if cache_manager:
            cached = await cache_manager.get_cached_leaderboard(sort_by, limit)
            if cached is not None:
                logger.info("leaderboard_cache_hit", count=len(cached), sort_by=sort_by)
                return [PlayerResponse(**player) for player in cached]

        players = await db_manager.get_leaderboard(sort_by=sort_by, limit=limit)
        response = [player_to_response(player) for player in players]

        if cache_manager:
            await cache_manager.cache_leaderboard(
                sort_by, limit, [player.model_dump(mode="json") for player in response]
            )

        logger.info("leaderboard_queried", count=len(response), sort_by=sort_by)
        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error("leaderboard_query_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query leaderboard")
