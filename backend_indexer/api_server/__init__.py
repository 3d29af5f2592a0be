# Read-only status API; the lifespan hosts the periodic indexer.

from backend_indexer.api_server.server import create_app

__all__ = ["create_app"]
