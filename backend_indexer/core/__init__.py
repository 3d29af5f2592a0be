"""
Core utilities: shared exceptions and cross-cutting concerns.

Used across chain reader, classifier, database, orchestrator and API server.
"""

from backend_indexer.core.exceptions import (
    CheckpointRegressionError,
    ConfigurationError,
    IndexerError,
    LogDecodeError,
    PersistenceError,
    RangeTooLargeError,
    RpcError,
    TransientRpcError,
)

__all__ = [
    "CheckpointRegressionError",
    "ConfigurationError",
    "IndexerError",
    "LogDecodeError",
    "PersistenceError",
    "RangeTooLargeError",
    "RpcError",
    "TransientRpcError",
]
