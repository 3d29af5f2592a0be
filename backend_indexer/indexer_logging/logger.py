"""
Structured logging for the indexer.

Every record is one JSON object on stdout with event_type, level, logger and
an ISO-8601 timestamp. Cycle-scoped records also carry cycle_id and cursor
(see bind_cycle), and batch or log records carry batch_from / batch_to /
tx_hash, so a failed log can be located and replayed from the output alone.

LOG_LEVEL sets the threshold (default INFO). LOG_FORMAT=console switches to
the human-readable renderer for local runs.

Imports nothing from backend_indexer so any module can use it.
"""

from __future__ import annotations

import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any

import structlog

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_LEVEL_VALUE = getattr(logging, LOG_LEVEL, logging.INFO)

LOG_FORMAT = os.getenv("LOG_FORMAT", "json").strip().lower()


def _add_timestamp(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def _normalize_event(
    logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Expose the structlog event name as event_type, mirrored into message."""
    if "event" in event_dict and "event_type" not in event_dict:
        event_dict["event_type"] = event_dict.pop("event")
    if "message" not in event_dict and "event_type" in event_dict:
        event_dict["message"] = str(event_dict["event_type"])
    return event_dict


def _renderer() -> Any:
    if LOG_FORMAT == "json":
        # Decimal amounts and Path values fall back to str
        return structlog.processors.JSONRenderer(default=str)
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())


def configure_structlog() -> None:
    """Install the indexer processor chain; called once on first import."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _add_timestamp,
            _normalize_event,
            _renderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(LOG_LEVEL_VALUE),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


if not structlog.is_configured():
    configure_structlog()


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Return a logger bound to the module name.

        logger = get_logger(__name__)
        logger.warning("indexer_batch_failures", batch_from=100, batch_to=199, failed_hashes=[...])

    renders as
        {"event_type": "indexer_batch_failures", "batch_from": 100, "batch_to": 199,
         "failed_hashes": [...], "level": "warning", "logger": "...", "timestamp": "..."}
    """
    return structlog.get_logger(name).bind(logger=name)


def bind_cycle(cycle_id: int, cursor_name: str) -> structlog.BoundLogger:
    """Logger for one indexing cycle; cycle_id and cursor ride on every record."""
    return get_logger("backend_indexer.cycle").bind(cycle_id=cycle_id, cursor=cursor_name)
