"""Blockchain read layer"""

from arena_indexer.chains.reader import ChainFetchError, ChainReader, CircuitBreaker, CircuitState

__all__ = [
    "ChainReader",
    "ChainFetchError",
    "CircuitBreaker",
    "CircuitState",
]
