"""Routes indexed events to their domain handler"""

from typing import Awaitable, Callable, Dict

import structlog

from arena_indexer.database.repository import ReadModelRepository
from arena_indexer.events.extractor import to_event_log_entry
from arena_indexer.events.models import GAME_CREATED, GAME_FINISHED, GAME_JOINED, IndexedEvent
from arena_indexer.indexer.handlers import GameHandlers
from arena_indexer.monitoring import metrics

logger = structlog.get_logger()

EventHandler = Callable[[ReadModelRepository, IndexedEvent], Awaitable[None]]


class EventRouter:
    """
    Writes the audit row for every event, then dispatches it by type name.

    The event_log row doubles as the idempotency key: an event whose
    (transaction_hash, event_index) is already logged was applied by an
    earlier cycle and is skipped.
    """

    def __init__(self, handlers: GameHandlers):
        self.handlers = handlers
        self._logger = logger.bind(component="event_router")
        self._event_handlers: Dict[str, EventHandler] = {}
        self._setup_event_handlers()

    def _setup_event_handlers(self) -> None:
        """Setup event type to handler mappings"""
        self._event_handlers = {
            GAME_CREATED: self.handlers.handle_game_created,
            GAME_JOINED: self.handlers.handle_game_joined,
            GAME_FINISHED: self.handlers.handle_game_finished,
        }

    @property
    def recognized_event_types(self):
        return set(self._event_handlers)

    async def dispatch(self, repo: ReadModelRepository, event: IndexedEvent) -> bool:
        """
        Audit and apply one event.

        Args:
            repo: Repository bound to the current transaction
            event: Event to apply

        Returns:
            False if the event had already been indexed, True otherwise
        """
        is_new = await repo.append_event_log(to_event_log_entry(event))
        if not is_new:
            metrics.events_duplicate.labels(event_type=event.event_type).inc()
            self._logger.debug(
                "event_already_indexed",
                event_type=event.event_type,
                tx_hash=event.transaction_hash,
                event_index=event.event_index,
            )
            return False

        handler = self._event_handlers.get(event.event_type)
        if handler is None:
            self._logger.info(
                "unrecognized_event_type",
                event_type=event.event_type,
                type_tag=event.type_tag,
                tx_hash=event.transaction_hash,
            )
        elif event.is_opaque:
            self._logger.warning(
                "event_not_applied_invalid_payload",
                event_type=event.event_type,
                tx_hash=event.transaction_hash,
                event_index=event.event_index,
            )
        else:
            await handler(repo, event)

        metrics.events_indexed.labels(event_type=event.event_type).inc()
        return True
