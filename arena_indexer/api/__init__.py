"""REST API for the indexed read model"""

from arena_indexer.api.app import APIKeyAuth, create_app

__all__ = ["APIKeyAuth", "create_app"]
