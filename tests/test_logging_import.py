"""
Test that indexer_logging can be imported without circular import and logger works.
"""

from __future__ import annotations


def test_logging_import():
    """Import get_logger from indexer_logging and use the logger."""
    from backend_indexer.indexer_logging import get_logger

    logger = get_logger("test")
    assert logger is not None
    assert hasattr(logger, "info")
    assert hasattr(logger, "warning")
    assert hasattr(logger, "error")
    # Smoke test: call info (should not raise)
    logger.info("test_message", batch_from=100, batch_to=199, tx_hash="0x" + "00" * 32)


def test_bind_cycle_carries_context():
    from structlog.testing import capture_logs

    from backend_indexer.indexer_logging import bind_cycle

    with capture_logs() as logs:
        log = bind_cycle(3, "last_indexed_block")
        log.warning("indexer_batch_failures", failed_hashes=["0xabc"])
    assert logs == [
        {
            "event": "indexer_batch_failures",
            "log_level": "warning",
            "logger": "backend_indexer.cycle",
            "cycle_id": 3,
            "cursor": "last_indexed_block",
            "failed_hashes": ["0xabc"],
        }
    ]
