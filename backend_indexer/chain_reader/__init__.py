"""
Chain reader package.

Read-only access to the remote node: latest height, Transfer logs,
receipts and block timestamps. JsonRpcChainReader talks to a real
endpoint; InMemoryChainReader backs tests and dry runs.
"""

from backend_indexer.chain_reader.memory import InMemoryChainReader
from backend_indexer.chain_reader.models import (
    BlockHeader,
    BlockTimestampCache,
    RawLogEntry,
    TransactionReceipt,
)
from backend_indexer.chain_reader.reader import (
    TRANSFER_TOPIC,
    ChainReader,
    JsonRpcChainReader,
)

__all__ = [
    "TRANSFER_TOPIC",
    "BlockHeader",
    "BlockTimestampCache",
    "ChainReader",
    "InMemoryChainReader",
    "JsonRpcChainReader",
    "RawLogEntry",
    "TransactionReceipt",
]
