"""
Database abstraction layer: indexed transactions, checkpoints, attribution lookups.

SQLite via Database and get_database(); backend is swappable for PostgreSQL.
"""

from backend_indexer.database.database import (
    Database,
    DatabaseBackend,
    SQLiteBackend,
    get_database,
)
from backend_indexer.database.models import (
    ActorWallet,
    AttributedTransaction,
    Checkpoint,
    FailedLogRecord,
    MintRequest,
)

__all__ = [
    "Database",
    "DatabaseBackend",
    "SQLiteBackend",
    "get_database",
    "ActorWallet",
    "AttributedTransaction",
    "Checkpoint",
    "FailedLogRecord",
    "MintRequest",
]
