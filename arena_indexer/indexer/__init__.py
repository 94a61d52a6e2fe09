"""Indexing pipeline: handlers, router, core cycle and scheduler"""

from arena_indexer.indexer.core import CycleResult, EventIndexer
from arena_indexer.indexer.handlers import GameHandlers
from arena_indexer.indexer.router import EventRouter
from arena_indexer.indexer.scheduler import IndexerScheduler

__all__ = [
    "CycleResult",
    "EventIndexer",
    "EventRouter",
    "GameHandlers",
    "IndexerScheduler",
]
