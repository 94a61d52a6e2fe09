"""Games endpoints for the multiplayer lobby"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
import structlog

from arena_indexer.api.dependencies import get_cache_manager, get_db_manager, verify_api_key
from arena_indexer.cache.manager import CacheManager
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.database.models import Game

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["games"])


class GameResponse(BaseModel):
    """Game response model"""

    game_id: int
    bet_amount: str = Field(description="Bet in the smallest currency unit, as a decimal string")
    bet_tier: int = Field(description="Bet tier (1-4)")
    player1_address: str
    player2_address: Optional[str] = None
    state: int = Field(description="0=WAITING, 1=JOINED, 2=FINISHED")
    state_name: str
    winner_address: Optional[str] = None
    creation_tx_hash: str
    join_tx_hash: Optional[str] = None
    finish_tx_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    joined_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    player1_finished: bool
    player2_finished: bool


def game_to_response(game: Game) -> GameResponse:
    """Convert a Game to its API representation"""
    return GameResponse(
        game_id=game.game_id,
        bet_amount=str(game.bet_amount),
        bet_tier=game.bet_tier,
        player1_address=game.player1_address,
        player2_address=game.player2_address,
        state=int(game.state),
        state_name=game.state.name,
        winner_address=game.winner_address,
        creation_tx_hash=game.creation_tx_hash,
        join_tx_hash=game.join_tx_hash,
        finish_tx_hash=game.finish_tx_hash,
        created_at=game.created_at,
        joined_at=game.joined_at,
        finished_at=game.finished_at,
        player1_finished=game.player1_finished,
        player2_finished=game.player2_finished,
    )


@router.get("/games/available", response_model=List[GameResponse])
async def get_available_games(
    bet_tier: Optional[int] = Query(None, ge=1, le=4, description="Filter by bet tier (1-4)"),
    limit: int = Query(50, ge=1, le=500, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    db_manager: DatabaseManager = Depends(get_db_manager),
    cache_manager: Optional[CacheManager] = Depends(get_cache_manager),
    api_key: Optional[str] = Depends(verify_api_key),
) -> List[GameResponse]:
    """
    Get games waiting for a second player, newest first.

    Supports filtering by:
    - bet_tier: Wager bucket (1-4)
    """
    try:
        if cache_manager:
            cached = await cache_manager.get_cached_available_games(bet_tier, limit, offset)
            if cached is not None:
                logger.info("available_games_cache_hit", count=len(cached), bet_tier=bet_tier)
                return [GameResponse(**game) for game in cached]

        games = await db_manager.get_available_games(bet_tier=bet_tier, limit=limit, offset=offset)
        response = [game_to_response(game) for game in games]

        if cache_manager:
            await cache_manager.cache_available_games(
                bet_tier, limit, offset, [game.model_dump(mode="json") for game in response]
            )

        logger.info("available_games_queried", count=len(response), bet_tier=bet_tier)
        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error("available_games_query_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query available games")


@router.get("/games/history", response_model=List[GameResponse])
async def get_match_history(
    player_address: Optional[str] = Query(None, description="Only games this address played"),
    limit: int = Query(20, ge=1, le=200, description="Maximum number of results"),
    offset: int = Query(0, ge=0, description="Number of results to skip"),
    db_manager: DatabaseManager = Depends(get_db_manager),
    api_key: Optional[str] = Depends(verify_api_key),
) -> List[GameResponse]:
    """Finished games with a winner, most recently finished first"""
    try:
        games = await db_manager.get_match_history(
            limit=limit, offset=offset, player_address=player_address
        )
    except Exception as e:
        logger.error("match_history_query_failed", error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query match history")

    logger.info("match_history_queried", count=len(games), player_address=player_address)
    return [game_to_response(game) for game in games]


@router.get("/games/{game_id}", response_model=GameResponse)
async def get_game(
    game_id: int,
    db_manager: DatabaseManager = Depends(get_db_manager),
    api_key: Optional[str] = Depends(verify_api_key),
) -> GameResponse:
    """Get one game by its on-chain id"""
    try:
        game = await db_manager.get_game(game_id)
    except Exception as e:
        logger.error("game_query_failed", game_id=game_id, error=str(e))
        raise HTTPException(status_code=500, detail="Failed to query game")

    if game is None:
        raise HTTPException(status_code=404, detail=f"Game {game_id} not found")

    return game_to_response(game)
