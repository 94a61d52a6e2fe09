"""WebSocket server pushing game and player changes after each indexing cycle"""

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import structlog
from fastapi import WebSocket, WebSocketDisconnect

from arena_indexer.api.routes.games import game_to_response
from arena_indexer.api.routes.players import player_to_response
from arena_indexer.database.models import Game, Player
from arena_indexer.monitoring import metrics

logger = structlog.get_logger()

GAMES_CHANNEL = "games"
PLAYERS_CHANNEL = "players"
CHANNELS = (GAMES_CHANNEL, PLAYERS_CHANNEL)

MESSAGE_TYPES = {
    GAMES_CHANNEL: "game_update",
    PLAYERS_CHANNEL: "player_update",
}


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class SubscriptionFilter:
    """Filter for a live-update subscription"""

    def __init__(
        self,
        channel: str,
        game_id: Optional[int] = None,
        bet_tier: Optional[int] = None,
        address: Optional[str] = None,
    ):
        """
        Initialize subscription filter.

        Args:
            channel: Channel name ("games" or "players")
            game_id: Only this game (games channel)
            bet_tier: Only games of this tier (games channel)
            address: Games this address plays in, or this player's stats
        """
        self.channel = channel
        self.game_id = game_id
        self.bet_tier = bet_tier
        self.address = address

    def matches(self, data: Dict[str, Any]) -> bool:
        """
        Check if an update matches this filter.

        Args:
            data: Serialized game or player

        Returns:
            True if data matches filter, False otherwise
        """
        if self.game_id is not None and data.get("game_id") != self.game_id:
            return False

        if self.bet_tier is not None and data.get("bet_tier") != self.bet_tier:
            return False

        if self.address is not None:
            if self.channel == PLAYERS_CHANNEL:
                return data.get("address") == self.address
            return self.address in (data.get("player1_address"), data.get("player2_address"))

        return True


class WebSocketConnection:
    """A single WebSocket connection with its subscriptions"""

    def __init__(self, websocket: WebSocket, connection_id: str):
        self.websocket = websocket
        self.connection_id = connection_id
        self.subscriptions: List[SubscriptionFilter] = []
        self.last_heartbeat = datetime.now(timezone.utc)
        self._logger = logger.bind(
            component="websocket_connection",
            connection_id=connection_id,
        )

    def add_subscription(self, subscription: SubscriptionFilter) -> None:
        self.subscriptions.append(subscription)
        self._logger.info(
            "subscription_added",
            channel=subscription.channel,
            game_id=subscription.game_id,
            bet_tier=subscription.bet_tier,
            address=subscription.address,
        )

    def remove_subscription(self, channel: str) -> None:
        """Remove subscriptions for a specific channel"""
        original_count = len(self.subscriptions)
        self.subscriptions = [s for s in self.subscriptions if s.channel != channel]
        removed_count = original_count - len(self.subscriptions)

        if removed_count > 0:
            self._logger.info(
                "subscription_removed",
                channel=channel,
                removed_count=removed_count,
            )

    def should_receive(self, channel: str, data: Dict[str, Any]) -> bool:
        return any(
            subscription.channel == channel and subscription.matches(data)
            for subscription in self.subscriptions
        )

    async def send_message(self, message: Dict[str, Any]) -> bool:
        """
        Send message to the client.

        Returns:
            True if sent successfully, False otherwise
        """
        try:
            await self.websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            self._logger.error(
                "send_message_failed",
                error=str(e),
            )
            return False


class LiveUpdateManager:
    """
    Manages WebSocket connections and pushes read-model changes.

    The indexer publishes the committed state of every game and player an
    applied cycle touched; a background task fans the updates out to the
    connections whose subscriptions match.
    """

    def __init__(self, max_connections: int = 100, heartbeat_interval: float = 30.0):
        """
        Initialize live update manager.

        Args:
            max_connections: Maximum number of concurrent connections
            heartbeat_interval: Seconds between heartbeat messages
        """
        self.max_connections = max_connections
        self.heartbeat_interval = heartbeat_interval
        self.connections: Dict[str, WebSocketConnection] = {}
        self._connection_counter = 0
        self._logger = logger.bind(component="live_update_manager")

        self.update_queue: "asyncio.Queue[Tuple[str, Dict[str, Any]]]" = asyncio.Queue()

        self._broadcast_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

    def get_connection_count(self) -> int:
        return len(self.connections)

    def is_at_capacity(self) -> bool:
        return self.get_connection_count() >= self.max_connections

    async def connect(self, websocket: WebSocket) -> Optional[WebSocketConnection]:
        """
        Accept a new WebSocket connection.

        Returns:
            WebSocketConnection if accepted, None if at capacity
        """
        if self.is_at_capacity():
            self._logger.warning(
                "connection_rejected_capacity",
                current_connections=self.get_connection_count(),
                max_connections=self.max_connections,
            )
            return None

        await websocket.accept()

        self._connection_counter += 1
        connection_id = f"ws_{self._connection_counter}"

        connection = WebSocketConnection(websocket, connection_id)
        self.connections[connection_id] = connection

        metrics.websocket_connections_active.set(self.get_connection_count())

        self._logger.info(
            "connection_accepted",
            connection_id=connection_id,
            total_connections=self.get_connection_count(),
        )
        return connection

    async def disconnect(self, connection_id: str) -> None:
        if connection_id in self.connections:
            del self.connections[connection_id]

            metrics.websocket_connections_active.set(self.get_connection_count())

            self._logger.info(
                "connection_disconnected",
                connection_id=connection_id,
                remaining_connections=self.get_connection_count(),
            )

    async def handle_message(self, connection: WebSocketConnection, message: str) -> None:
        """Handle a subscribe, unsubscribe or ping message from a client"""
        try:
            data = json.loads(message)
            message_type = data.get("type") if isinstance(data, dict) else None

            if message_type == "subscribe":
                await self._handle_subscribe(connection, data)
            elif message_type == "unsubscribe":
                await self._handle_unsubscribe(connection, data)
            elif message_type == "ping":
                await self._handle_ping(connection)
            else:
                await connection.send_message({
                    "type": "error",
                    "message": f"Unknown message type: {message_type}",
                })

        except json.JSONDecodeError:
            await connection.send_message({
                "type": "error",
                "message": "Invalid JSON",
            })
        except Exception as e:
            self._logger.error(
                "message_handling_error",
                connection_id=connection.connection_id,
                error=str(e),
            )
            await connection.send_message({
                "type": "error",
                "message": "Internal error",
            })

    async def _handle_subscribe(self, connection: WebSocketConnection, data: Dict[str, Any]) -> None:
        channel = data.get("channel")

        if channel not in CHANNELS:
            await connection.send_message({
                "type": "error",
                "message": f"Invalid channel: {channel}. Must be 'games' or 'players'",
            })
            return

        filters = data.get("filters") or {}
        try:
            subscription = SubscriptionFilter(
                channel=channel,
                game_id=_optional_int(filters.get("game_id")),
                bet_tier=_optional_int(filters.get("bet_tier")),
                address=filters.get("address"),
            )
        except (TypeError, ValueError):
            await connection.send_message({
                "type": "error",
                "message": "game_id and bet_tier filters must be integers",
            })
            return

        connection.add_subscription(subscription)

        await connection.send_message({
            "type": "subscribed",
            "channel": channel,
            "filters": filters,
        })

    async def _handle_unsubscribe(self, connection: WebSocketConnection, data: Dict[str, Any]) -> None:
        channel = data.get("channel")

        if not channel:
            await connection.send_message({
                "type": "error",
                "message": "Channel is required for unsubscribe",
            })
            return

        connection.remove_subscription(channel)

        await connection.send_message({
            "type": "unsubscribed",
            "channel": channel,
        })

    async def _handle_ping(self, connection: WebSocketConnection) -> None:
        connection.last_heartbeat = datetime.now(timezone.utc)
        await connection.send_message({
            "type": "pong",
            "timestamp": utc_timestamp(),
        })

    async def publish_game(self, game: Game) -> None:
        """Queue the committed state of a game for subscribers"""
        await self.update_queue.put((GAMES_CHANNEL, game_to_response(game).model_dump(mode="json")))

    async def publish_player(self, player: Player) -> None:
        """Queue the committed aggregates of a player for subscribers"""
        await self.update_queue.put((PLAYERS_CHANNEL, player_to_response(player).model_dump(mode="json")))

    async def deliver(self, channel: str, data: Dict[str, Any]) -> int:
        """
        Send one update to every matching connection.

        Returns:
            Number of connections the update reached
        """
        message_type = MESSAGE_TYPES[channel]
        message = {
            "type": message_type,
            "data": data,
            "timestamp": utc_timestamp(),
        }

        delivered = 0
        for connection in list(self.connections.values()):
            if connection.should_receive(channel, data):
                if await connection.send_message(message):
                    delivered += 1

        if delivered:
            metrics.websocket_messages_sent.labels(message_type=message_type).inc(delivered)
            self._logger.debug(
                "update_broadcasted",
                channel=channel,
                delivered=delivered,
            )
        return delivered

    async def _broadcast_loop(self) -> None:
        self._logger.info("broadcast_loop_started")

        try:
            while True:
                channel, data = await self.update_queue.get()
                try:
                    await self.deliver(channel, data)
                except Exception as e:
                    self._logger.error(
                        "broadcast_failed",
                        channel=channel,
                        error=str(e),
                    )
        except asyncio.CancelledError:
            self._logger.info("broadcast_loop_cancelled")

    async def _heartbeat_loop(self) -> None:
        self._logger.info("heartbeat_loop_started")

        try:
            while True:
                await asyncio.sleep(self.heartbeat_interval)

                for connection in list(self.connections.values()):
                    await connection.send_message({
                        "type": "heartbeat",
                        "timestamp": utc_timestamp(),
                    })
        except asyncio.CancelledError:
            self._logger.info("heartbeat_loop_cancelled")

    async def start_background_tasks(self) -> None:
        self._broadcast_task = asyncio.create_task(self._broadcast_loop())
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())

        self._logger.info("background_tasks_started")

    async def stop_background_tasks(self) -> None:
        tasks = [task for task in (self._broadcast_task, self._heartbeat_task) if task]
        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)
        self._broadcast_task = None
        self._heartbeat_task = None

        self._logger.info("background_tasks_stopped")


def _optional_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise TypeError("boolean is not an integer filter")
    return int(value)


async def websocket_endpoint(websocket: WebSocket, manager: LiveUpdateManager) -> None:
    """
    WebSocket endpoint handler for /ws/v1/stream.

    Args:
        websocket: FastAPI WebSocket instance
        manager: Manager owning the connection
    """
    connection = await manager.connect(websocket)

    if connection is None:
        await websocket.close(code=1008, reason="Server at capacity")
        return

    try:
        await connection.send_message({
            "type": "connected",
            "connection_id": connection.connection_id,
            "message": "Connected to Slice Arena live updates",
        })

        while True:
            message = await websocket.receive_text()
            await manager.handle_message(connection, message)

    except WebSocketDisconnect:
        logger.info(
            "websocket_disconnected",
            connection_id=connection.connection_id,
        )
    except Exception as e:
        logger.error(
            "websocket_error",
            connection_id=connection.connection_id,
            error=str(e),
        )
    finally:
        await manager.disconnect(connection.connection_id)
