"""Event handlers that apply game events to the read-model"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from arena_indexer.database.models import NULL_ADDRESS, Game, GameState, Player, get_bet_tier
from arena_indexer.database.repository import ReadModelRepository
from arena_indexer.events.models import (
    GameCreatedPayload,
    GameFinishedPayload,
    GameJoinedPayload,
    IndexedEvent,
)

logger = structlog.get_logger()

WAGERED = "wagered"
WON = "won"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class GameHandlers:
    """
    Handles GameCreated, GameJoined and GameFinished events.

    Game rows only move forward (WAITING -> JOINED -> FINISHED). An event
    that refers to an unknown game, or that would move a game backwards,
    leaves the game row untouched and is logged; the player aggregates the
    event carries on its own (a wager, a win) are still applied.
    """

    def __init__(self, clock=_now):
        """
        Initialize game handlers.

        Args:
            clock: Callable returning the current UTC time
        """
        self.clock = clock
        self._logger = logger.bind(component="game_handlers")

    async def handle_game_created(self, repo: ReadModelRepository, event: IndexedEvent) -> None:
        """Handle GameCreatedEvent: new WAITING game, creator wagered"""
        payload: GameCreatedPayload = event.payload

        game = Game(
            game_id=payload.game_id,
            bet_amount=payload.bet_amount,
            bet_tier=get_bet_tier(payload.bet_amount),
            player1_address=payload.creator,
            creation_tx_hash=event.transaction_hash,
            state=GameState.WAITING,
        )
        inserted = await repo.insert_game(game)
        if not inserted:
            self._logger.warning(
                "game_already_exists",
                game_id=payload.game_id,
                tx_hash=event.transaction_hash,
            )

        self._logger.info(
            "game_created",
            game_id=payload.game_id,
            creator=payload.creator,
            bet_amount=str(payload.bet_amount),
            bet_tier=game.bet_tier,
        )

        await self.upsert_player(repo, payload.creator, payload.bet_amount, WAGERED)

    async def handle_game_joined(self, repo: ReadModelRepository, event: IndexedEvent) -> None:
        """Handle GameJoinedEvent: second player in, creator's games_played + 1"""
        payload: GameJoinedPayload = event.payload

        game = await repo.get_game(payload.game_id)
        if game is None:
            self._logger.warning(
                "game_not_found",
                event_type=event.event_type,
                game_id=payload.game_id,
                tx_hash=event.transaction_hash,
            )
        elif game.state != GameState.WAITING:
            self._reject_transition(event, game, GameState.JOINED)
        else:
            await repo.update_game_joined(
                payload.game_id,
                player2_address=payload.player,
                join_tx_hash=event.transaction_hash,
                joined_at=self.clock(),
            )
            self._logger.info(
                "game_joined",
                game_id=payload.game_id,
                player=payload.player,
            )

        await self.upsert_player(repo, payload.player, payload.bet_amount, WAGERED)

        # Only the creator is credited with a played game here
        if game is not None and game.state == GameState.WAITING:
            await self.increment_games_played(repo, game.player1_address)

    async def handle_game_finished(self, repo: ReadModelRepository, event: IndexedEvent) -> None:
        """Handle GameFinishedEvent: winner recorded and credited"""
        payload: GameFinishedPayload = event.payload
        winner = self._winner_address(payload.winner)

        game = await repo.get_game(payload.game_id)
        if game is None:
            self._logger.warning(
                "game_not_found",
                event_type=event.event_type,
                game_id=payload.game_id,
                tx_hash=event.transaction_hash,
            )
        elif game.state == GameState.FINISHED:
            self._reject_transition(event, game, GameState.FINISHED)
        else:
            await repo.update_game_finished(
                payload.game_id,
                winner_address=winner,
                finish_tx_hash=event.transaction_hash,
                finished_at=self.clock(),
            )
            self._logger.info(
                "game_finished",
                game_id=payload.game_id,
                winner=winner or "TIE",
            )

        if winner is not None:
            await self.upsert_player(repo, winner, payload.prize_amount, WON)

    async def upsert_player(
        self, repo: ReadModelRepository, address: str, amount: int, contribution: str
    ) -> None:
        """
        Create a player seeded from this event, or accumulate into it.

        Args:
            repo: Repository bound to the current transaction
            address: Wallet address
            amount: Amount in the smallest currency unit
            contribution: WAGERED or WON
        """
        if contribution not in (WAGERED, WON):
            raise ValueError(f"Unknown player contribution: {contribution}")

        now = self.clock()
        player = await repo.get_player(address)

        if player is None:
            await repo.insert_player(
                Player(
                    address=address,
                    games_played=1 if contribution == WAGERED else 0,
                    games_won=1 if contribution == WON else 0,
                    total_wagered=amount if contribution == WAGERED else 0,
                    total_winnings=amount if contribution == WON else 0,
                    created_at=now,
                    last_active=now,
                )
            )
            self._logger.debug("player_created", address=address, contribution=contribution)
            return

        if contribution == WAGERED:
            await repo.accumulate_player(address, active_at=now, wagered=amount)
        else:
            await repo.accumulate_player(address, active_at=now, winnings=amount, games_won=1)

    async def increment_games_played(self, repo: ReadModelRepository, address: str) -> None:
        player = await repo.get_player(address)
        if player is None:
            self._logger.warning("player_not_found", address=address)
            return
        await repo.accumulate_player(address, active_at=self.clock(), games_played=1)

    @staticmethod
    def _winner_address(winner: Optional[str]) -> Optional[str]:
        """None for ties (missing winner or the null address)"""
        if not winner or winner == NULL_ADDRESS:
            return None
        return winner

    def _reject_transition(self, event: IndexedEvent, game: Game, target: GameState) -> None:
        self._logger.warning(
            "game_transition_rejected",
            game_id=game.game_id,
            current_state=game.state.name,
            target_state=target.name,
            tx_hash=event.transaction_hash,
        )
