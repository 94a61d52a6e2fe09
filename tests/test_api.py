"""Tests for the FastAPI REST API with mocked storage and scheduler"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.testclient import TestClient

from arena_indexer.api.app import create_app
from arena_indexer.cache.manager import CacheManager
from arena_indexer.chains.reader import ChainFetchError
from arena_indexer.config.models import Settings
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.database.models import (
    EventLogEntry,
    Game,
    GameFilters,
    GameState,
    IndexerState,
    Player,
)
from arena_indexer.indexer.core import CycleResult
from arena_indexer.indexer.scheduler import IndexerScheduler

TEST_API_KEY_VALID = "test-api-key-12345"
TEST_API_KEY_INVALID = "invalid-key-99999"
AUTH = {"X-API-Key": TEST_API_KEY_VALID}

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def make_game(game_id=7, state=GameState.WAITING, bet_amount=50_000_000, bet_tier=2):
    return Game(
        id=1,
        game_id=game_id,
        bet_amount=bet_amount,
        bet_tier=bet_tier,
        player1_address="0xA",
        creation_tx_hash="0xh101",
        state=state,
        created_at=NOW,
    )


@pytest.fixture
def mock_db_manager():
    """Create mock database manager"""
    db = Mock(spec=DatabaseManager)
    db.pool = Mock()
    db.get_pool_size = AsyncMock(return_value=5)
    db.get_pool_free_size = AsyncMock(return_value=3)
    db.get_last_processed_version = AsyncMock(return_value=103)
    db.get_indexer_state = AsyncMock(
        return_value=IndexerState(last_processed_version=103, last_sync_at=NOW)
    )
    db.get_game = AsyncMock(return_value=None)
    db.get_games = AsyncMock(return_value=[])
    db.get_available_games = AsyncMock(return_value=[])
    db.get_match_history = AsyncMock(return_value=[])
    db.get_player = AsyncMock(return_value=None)
    db.get_leaderboard = AsyncMock(return_value=[])
    db.get_event_log = AsyncMock(return_value=[])
    return db


@pytest.fixture
def mock_scheduler():
    """Create mock indexer scheduler"""
    scheduler = Mock(spec=IndexerScheduler)
    scheduler.cycle_in_progress = False
    scheduler.is_running = True
    scheduler.run_cycle = AsyncMock(return_value=CycleResult(processed=3, last_version=103))
    return scheduler


@pytest.fixture
def test_settings():
    """Create test settings"""
    return Settings(
        database_url="postgresql://localhost/test",
        api_keys=TEST_API_KEY_VALID,
        log_level="INFO",
    )


@pytest.fixture
def client(test_settings, mock_db_manager, mock_scheduler):
    """Create test client with FastAPI app"""
    app = create_app(test_settings, mock_db_manager, scheduler=mock_scheduler)
    return TestClient(app)


# ============================================================================
# Authentication Tests
# ============================================================================

def test_api_authentication_missing_key(client):
    """Test API request without API key returns 401"""
    response = client.get("/api/v1/leaderboard")
    assert response.status_code == 401
    assert "Missing API key" in response.json()["detail"]


def test_api_authentication_invalid_key(client):
    """Test API request with invalid API key returns 401"""
    response = client.get("/api/v1/leaderboard", headers={"X-API-Key": TEST_API_KEY_INVALID})
    assert response.status_code == 401
    assert "Invalid API key" in response.json()["detail"]


def test_api_authentication_disabled_without_keys(mock_db_manager, mock_scheduler):
    """Test no keys configured means open access"""
    settings = Settings(database_url="postgresql://localhost/test", api_keys="")
    client = TestClient(create_app(settings, mock_db_manager, scheduler=mock_scheduler))

    response = client.get("/api/v1/leaderboard")

    assert response.status_code == 200


def test_health_endpoint_no_auth_required(client):
    """Test health endpoint does not require authentication"""
    response = client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database"]["status"] == "up"
    assert data["database"]["pool_size"] == 5
    assert data["database"]["pool_free"] == 3
    assert data["cache"] == "disabled"
    assert data["indexer"]["last_processed_version"] == 103
    assert data["indexer"]["scheduler_running"] is True
    assert data["indexer"]["seconds_since_sync"] > 0


def test_health_endpoint_database_error(client, mock_db_manager):
    """Test health endpoint reports 503 when the database fails"""
    mock_db_manager.get_indexer_state.side_effect = ConnectionError("gone")

    response = client.get("/api/v1/health")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "unhealthy"
    assert data["database"] == {
        "status": "down",
        "pool_size": 0,
        "pool_free": 0,
        "detail": "ConnectionError",
    }


def test_health_endpoint_without_pool(client, mock_db_manager):
    mock_db_manager.pool = None

    response = client.get("/api/v1/health")

    assert response.status_code == 503
    assert response.json()["database"]["detail"] == "pool not initialized"


def test_health_degraded_when_cache_unreachable(test_settings, mock_db_manager, mock_scheduler):
    cache = Mock(spec=CacheManager)
    cache.ping = AsyncMock(return_value=False)
    app = create_app(test_settings, mock_db_manager, scheduler=mock_scheduler, cache_manager=cache)

    response = TestClient(app).get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["cache"] == "down"


def test_health_degraded_when_scheduler_stopped(client, mock_scheduler):
    mock_scheduler.is_running = False

    response = client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "degraded"
    assert response.json()["indexer"]["scheduler_running"] is False


def test_health_without_scheduler(test_settings, mock_db_manager):
    app = create_app(test_settings, mock_db_manager)

    response = TestClient(app).get("/api/v1/health")

    assert response.json()["status"] == "healthy"
    assert response.json()["indexer"]["scheduler_running"] is None


def test_metrics_endpoint(client):
    """Test Prometheus metrics endpoint"""
    client.get("/api/v1/health")

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "api_requests_total" in response.text


# ============================================================================
# Indexer Endpoint Tests
# ============================================================================

def test_run_indexer_success(client, mock_scheduler):
    """Test POST /api/v1/indexer/run reports the cycle"""
    response = client.post("/api/v1/indexer/run", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["processed"] == 3
    assert data["lastVersion"] == 103
    assert data["skipped"] is False
    mock_scheduler.run_cycle.assert_awaited_once()


def test_run_indexer_skipped(client, mock_scheduler):
    """Test a trigger during a running cycle reports a skip"""
    mock_scheduler.run_cycle.return_value = CycleResult(processed=0, last_version=101, skipped=True)

    response = client.post("/api/v1/indexer/run", headers=AUTH)

    assert response.status_code == 200
    assert response.json()["skipped"] is True
    assert response.json()["lastVersion"] == 101


def test_run_indexer_failure(client, mock_scheduler):
    """Test a failed cycle returns 500 with the error message"""
    mock_scheduler.run_cycle.side_effect = ChainFetchError("Node returned HTTP 503")

    response = client.post("/api/v1/indexer/run", headers=AUTH)

    assert response.status_code == 500
    assert response.json() == {"error": "Node returned HTTP 503"}


def test_run_indexer_requires_auth(client):
    response = client.post("/api/v1/indexer/run")

    assert response.status_code == 401


def test_run_indexer_without_scheduler(test_settings, mock_db_manager):
    """Test 503 when the app has no indexer wired in"""
    client = TestClient(create_app(test_settings, mock_db_manager))

    response = client.post("/api/v1/indexer/run", headers=AUTH)

    assert response.status_code == 503


def test_indexer_status(client):
    """Test GET /api/v1/indexer/status"""
    response = client.get("/api/v1/indexer/status", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["last_processed_version"] == 103
    assert data["cycle_in_progress"] is False
    assert data["scheduler_running"] is True
    assert data["last_sync_at"].startswith("2024-05-01T12:00:00")


def test_indexer_status_before_first_sync(client, mock_db_manager):
    mock_db_manager.get_indexer_state.return_value = None

    response = client.get("/api/v1/indexer/status", headers=AUTH)

    assert response.json()["last_processed_version"] == 0
    assert response.json()["last_sync_at"] is None


# ============================================================================
# Games Endpoint Tests
# ============================================================================

def test_get_available_games(client, mock_db_manager):
    """Test GET /api/v1/games/available returns waiting games"""
    mock_db_manager.get_available_games.return_value = [make_game()]

    response = client.get("/api/v1/games/available?bet_tier=2&limit=10", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert len(data) == 1
    assert data[0]["game_id"] == 7
    assert data[0]["bet_amount"] == "50000000"
    assert data[0]["state"] == 0
    assert data[0]["state_name"] == "WAITING"
    mock_db_manager.get_available_games.assert_awaited_once_with(bet_tier=2, limit=10, offset=0)


def test_get_available_games_invalid_tier(client):
    """Test bet tier outside 1-4 is rejected"""
    response = client.get("/api/v1/games/available?bet_tier=5", headers=AUTH)

    assert response.status_code == 422


def test_available_games_large_amount_is_exact(client, mock_db_manager):
    mock_db_manager.get_available_games.return_value = [make_game(bet_amount=2**80, bet_tier=1)]

    response = client.get("/api/v1/games/available", headers=AUTH)

    assert response.json()[0]["bet_amount"] == str(2**80)


def test_available_games_served_from_cache(test_settings, mock_db_manager, mock_scheduler):
    """Test a cache hit skips the database"""
    cache = Mock(spec=CacheManager)
    cached_game = {
        "game_id": 9,
        "bet_amount": "10000000",
        "bet_tier": 1,
        "player1_address": "0xC",
        "state": 0,
        "state_name": "WAITING",
        "creation_tx_hash": "0xh9",
        "player1_finished": False,
        "player2_finished": False,
    }
    cache.get_cached_available_games = AsyncMock(return_value=[cached_game])
    cache.cache_available_games = AsyncMock()
    client = TestClient(
        create_app(test_settings, mock_db_manager, scheduler=mock_scheduler, cache_manager=cache)
    )

    response = client.get("/api/v1/games/available", headers=AUTH)

    assert response.status_code == 200
    assert response.json()[0]["game_id"] == 9
    mock_db_manager.get_available_games.assert_not_awaited()
    cache.cache_available_games.assert_not_awaited()


def test_available_games_cached_on_miss(test_settings, mock_db_manager, mock_scheduler):
    cache = Mock(spec=CacheManager)
    cache.get_cached_available_games = AsyncMock(return_value=None)
    cache.cache_available_games = AsyncMock()
    mock_db_manager.get_available_games.return_value = [make_game()]
    client = TestClient(
        create_app(test_settings, mock_db_manager, scheduler=mock_scheduler, cache_manager=cache)
    )

    response = client.get("/api/v1/games/available?bet_tier=2", headers=AUTH)

    assert response.status_code == 200
    cache.cache_available_games.assert_awaited_once()
    args = cache.cache_available_games.await_args.args
    assert args[:3] == (2, 50, 0)
    assert args[3][0]["game_id"] == 7


def test_get_game(client, mock_db_manager):
    """Test GET /api/v1/games/{game_id}"""
    game = make_game(state=GameState.FINISHED)
    game.player2_address = "0xB"
    game.winner_address = "0xB"
    mock_db_manager.get_game.return_value = game

    response = client.get("/api/v1/games/7", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["state_name"] == "FINISHED"
    assert data["winner_address"] == "0xB"
    mock_db_manager.get_game.assert_awaited_once_with(7)


def test_get_match_history(client, mock_db_manager):
    """Test GET /api/v1/games/history is not captured by the game id route"""
    game = make_game(state=GameState.FINISHED)
    game.player2_address = "0xB"
    game.winner_address = "0xB"
    game.finished_at = NOW
    mock_db_manager.get_match_history.return_value = [game]

    response = client.get("/api/v1/games/history?limit=5&player_address=0xB", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert [item["game_id"] for item in data] == [7]
    assert data[0]["state_name"] == "FINISHED"
    mock_db_manager.get_match_history.assert_awaited_once_with(
        limit=5, offset=0, player_address="0xB"
    )
    mock_db_manager.get_game.assert_not_awaited()


def test_get_match_history_database_error(client, mock_db_manager):
    mock_db_manager.get_match_history.side_effect = RuntimeError("pool closed")

    response = client.get("/api/v1/games/history", headers=AUTH)

    assert response.status_code == 500


def test_get_game_not_found(client):
    response = client.get("/api/v1/games/99", headers=AUTH)

    assert response.status_code == 404


def test_get_game_database_error(client, mock_db_manager):
    mock_db_manager.get_game.side_effect = RuntimeError("pool closed")

    response = client.get("/api/v1/games/7", headers=AUTH)

    assert response.status_code == 500


# ============================================================================
# Players Endpoint Tests
# ============================================================================

def test_get_player(client, mock_db_manager):
    """Test GET /api/v1/players/{address}"""
    mock_db_manager.get_player.return_value = Player(
        address="0xB",
        games_played=1,
        games_won=1,
        total_wagered=50_000_000,
        total_winnings=100_000_000,
        last_active=NOW,
    )

    response = client.get("/api/v1/players/0xB", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["games_won"] == 1
    assert data["total_wagered"] == "50000000"
    assert data["total_winnings"] == "100000000"


def test_get_unknown_player_returns_zeroes(client):
    response = client.get("/api/v1/players/0xNEW", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data["address"] == "0xNEW"
    assert data["games_played"] == 0
    assert data["total_wagered"] == "0"


def test_get_player_games(client, mock_db_manager):
    mock_db_manager.get_games.return_value = [make_game()]

    response = client.get("/api/v1/players/0xA/games?active_only=true&limit=5", headers=AUTH)

    assert response.status_code == 200
    assert len(response.json()) == 1
    filters = mock_db_manager.get_games.await_args.args[0]
    assert isinstance(filters, GameFilters)
    assert filters.player_address == "0xA"
    assert filters.active_only is True
    assert filters.limit == 5


def test_get_leaderboard(client, mock_db_manager):
    """Test GET /api/v1/leaderboard"""
    mock_db_manager.get_leaderboard.return_value = [
        Player(address="0xB", games_won=3, total_winnings=300_000_000),
        Player(address="0xA", games_won=1, total_winnings=100_000_000),
    ]

    response = client.get("/api/v1/leaderboard?sort_by=games_won&limit=2", headers=AUTH)

    assert response.status_code == 200
    assert [player["address"] for player in response.json()] == ["0xB", "0xA"]
    mock_db_manager.get_leaderboard.assert_awaited_once_with(sort_by="games_won", limit=2)


def test_get_leaderboard_invalid_sort(client):
    """Test an unknown sort field is rejected"""
    response = client.get("/api/v1/leaderboard?sort_by=address", headers=AUTH)

    assert response.status_code == 400
    assert "Invalid sort_by" in response.json()["detail"]


# ============================================================================
# Events Endpoint Tests
# ============================================================================

def test_get_events(client, mock_db_manager):
    """Test GET /api/v1/events with filters"""
    mock_db_manager.get_event_log.return_value = [
        EventLogEntry(
            id=1,
            event_type="GameCreatedEvent",
            type_tag="0xabc::multiplayer_game::GameCreatedEvent",
            transaction_hash="0xh101",
            transaction_version=101,
            event_index=1,
            data={"game_id": "7", "creator": "0xA", "bet_amount": "50000000"},
            game_id=7,
            player_address="0xA",
            created_at=NOW,
        )
    ]

    response = client.get("/api/v1/events?game_id=7&event_type=GameCreatedEvent", headers=AUTH)

    assert response.status_code == 200
    data = response.json()
    assert data[0]["transaction_version"] == 101
    assert data[0]["data"]["creator"] == "0xA"
    filters = mock_db_manager.get_event_log.await_args.args[0]
    assert filters.game_id == 7
    assert filters.event_type == "GameCreatedEvent"
    assert filters.player_address is None


def test_cors_headers(client):
    """Test CORS preflight is answered for any origin"""
    response = client.options(
        "/api/v1/indexer/run",
        headers={
            "Origin": "https://arena.example.com",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "content-type",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "*"
