"""
Structured logging for Backend Indexer.

JSON logs with timestamp, event_type, block range and transaction hash context.
Use get_logger() in all modules for aggregation-friendly output.
"""

from backend_indexer.indexer_logging.logger import bind_cycle, get_logger

__all__ = ["bind_cycle", "get_logger"]
