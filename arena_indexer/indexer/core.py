"""Indexing cycle shared by every deployment shell"""

import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional, Set

import structlog

from arena_indexer.chains.reader import ChainReader
from arena_indexer.database.manager import DatabaseManager
from arena_indexer.events.extractor import extract_events, is_user_transaction
from arena_indexer.events.models import RawTransaction
from arena_indexer.indexer.handlers import GameHandlers
from arena_indexer.indexer.router import EventRouter
from arena_indexer.monitoring import metrics

if TYPE_CHECKING:
    from arena_indexer.api.websocket import LiveUpdateManager
    from arena_indexer.cache.manager import CacheManager

logger = structlog.get_logger()


@dataclass
class CycleResult:
    """Outcome of one indexing cycle"""

    processed: int
    last_version: int
    duplicates: int = 0
    transactions: int = 0
    skipped: bool = False

    def to_response(self) -> dict:
        """Body returned by the HTTP trigger"""
        return {
            "success": True,
            "processed": self.processed,
            "lastVersion": self.last_version,
            "skipped": self.skipped,
        }


class EventIndexer:
    """
    Mirrors the contract's events into the read-model.

    One cycle: read the watermark, fetch a page of account transactions,
    apply every event of each newer user transaction inside its own
    database transaction, then advance the watermark to the highest
    version seen.
    """

    def __init__(
        self,
        chain_reader: ChainReader,
        database_manager: DatabaseManager,
        router: Optional[EventRouter] = None,
        cache_manager: Optional["CacheManager"] = None,
        page_size: int = 25,
        live_updates: Optional["LiveUpdateManager"] = None,
    ):
        """
        Initialize event indexer.

        Args:
            chain_reader: Reader for the contract account's transactions
            database_manager: Read-model storage and watermark
            router: Event router (defaults to one over GameHandlers)
            cache_manager: Optional cache invalidated after applied cycles
            page_size: Transactions fetched per cycle
            live_updates: Optional publisher of changed games and players
        """
        self.chain_reader = chain_reader
        self.db = database_manager
        self.router = router or EventRouter(GameHandlers())
        self.cache_manager = cache_manager
        self.page_size = page_size
        self.live_updates = live_updates
        self.last_processed_version: int = 0
        self._logger = logger.bind(component="event_indexer")

    async def index_once(self) -> CycleResult:
        """
        Run one indexing cycle.

        Raises:
            ChainFetchError: If the node cannot be read (nothing was written)
            Exception: Any database or handler error; transactions already
                committed stay, the watermark does not move
        """
        start_time = time.time()

        watermark = await self.db.get_last_processed_version()
        self.last_processed_version = max(self.last_processed_version, watermark)

        transactions = await self.chain_reader.get_account_transactions(limit=self.page_size)
        pending = sorted(
            (tx for tx in transactions if tx.version > watermark),
            key=lambda tx: tx.version,
        )

        processed = 0
        duplicates = 0
        new_version = watermark
        changed_games: Set[int] = set()

        for transaction in pending:
            if is_user_transaction(transaction):
                applied, replayed = await self._apply_transaction(transaction, changed_games)
                processed += applied
                duplicates += replayed
            else:
                self._logger.debug(
                    "transaction_skipped_not_user",
                    version=transaction.version,
                    tx_type=transaction.type,
                )
            new_version = max(new_version, transaction.version)

        if new_version > watermark:
            await self.db.advance_watermark(new_version, datetime.now(timezone.utc))
            self.last_processed_version = new_version
            metrics.indexer_last_processed_version.set(new_version)

        if processed and self.cache_manager:
            await self.cache_manager.invalidate_read_model()

        if changed_games and self.live_updates:
            await self._publish_changes(changed_games)

        metrics.indexer_cycle_latency.observe(time.time() - start_time)

        if processed or duplicates:
            self._logger.info(
                "indexing_cycle_completed",
                processed=processed,
                duplicates=duplicates,
                transactions=len(pending),
                last_version=new_version,
            )

        return CycleResult(
            processed=processed,
            last_version=new_version,
            duplicates=duplicates,
            transactions=len(pending),
        )

    async def _apply_transaction(self, transaction: RawTransaction, changed_games: Set[int]):
        """Apply all events of one transaction atomically; returns (applied, replayed)"""
        events = extract_events(transaction)
        applied = 0
        replayed = 0
        touched: Set[int] = set()

        async with self.db.unit_of_work() as repo:
            for event in events:
                if await self.router.dispatch(repo, event):
                    applied += 1
                    if (
                        event.game_id is not None
                        and event.event_type in self.router.recognized_event_types
                    ):
                        touched.add(event.game_id)
                else:
                    replayed += 1

        # Only committed changes are published
        changed_games.update(touched)
        return applied, replayed

    async def _publish_changes(self, game_ids: Set[int]) -> None:
        """Push the committed state of changed games and their players"""
        addresses: Set[str] = set()
        try:
            for game_id in sorted(game_ids):
                game = await self.db.get_game(game_id)
                if game is None:
                    continue
                await self.live_updates.publish_game(game)
                addresses.update(
                    address for address in (game.player1_address, game.player2_address) if address
                )

            for address in sorted(addresses):
                player = await self.db.get_player(address)
                if player is not None:
                    await self.live_updates.publish_player(player)
        except Exception as e:
            self._logger.warning(
                "live_update_publish_failed",
                games=len(game_ids),
                error=str(e),
            )
