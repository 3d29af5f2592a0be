"""
Tests for the periodic runner: overlap guard, crash isolation and stop handling.
"""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

from backend_indexer.agent_worker import CycleOutcome, IndexerRunner, build_orchestrator, run_periodic_indexer

ACTOR_WALLET = "0x" + "bb" * 20


def test_tick_runs_one_cycle(orchestrator, reader, make_log):
    reader.add_log(make_log(1, block=120), caller=ACTOR_WALLET)
    reader.latest = 130
    runner = IndexerRunner(orchestrator, interval_sec=1.0)

    report = runner.tick()
    assert report is not None
    assert report.outcome is CycleOutcome.COMPLETED
    assert runner.stats.tick_count == 1
    assert runner.stats.last_error is None
    assert runner.last_report is report


def test_overlapping_tick_is_skipped(orchestrator):
    """A tick fired while a cycle is still running does not start a second cycle."""
    runner = IndexerRunner(orchestrator, interval_sec=1.0)
    nested: list = []
    real_run_cycle = orchestrator.run_cycle

    def run_cycle_with_reentrant_tick():
        nested.append(runner.tick())
        return real_run_cycle()

    orchestrator.run_cycle = run_cycle_with_reentrant_tick
    runner.tick()

    assert nested == [None]
    assert runner.stats.skipped_ticks == 1
    assert runner.stats.tick_count == 1


def test_unexpected_crash_is_logged_and_survived(settings):
    orchestrator = MagicMock()
    orchestrator.settings = settings
    orchestrator.run_cycle.side_effect = [RuntimeError("boom"), MagicMock(error=None)]
    runner = IndexerRunner(orchestrator, interval_sec=1.0)

    assert runner.tick() is None
    assert runner.stats.failed_ticks == 1
    assert runner.stats.last_error == "boom"

    assert runner.tick() is not None
    assert runner.stats.tick_count == 2
    assert runner.stats.last_error is None


def test_aborted_cycle_error_is_recorded(orchestrator, reader):
    from backend_indexer.core.exceptions import TransientRpcError

    reader.latest_error = TransientRpcError("eth_blockNumber timed out")
    runner = IndexerRunner(orchestrator, interval_sec=1.0)
    report = runner.tick()
    assert report.outcome is CycleOutcome.ABORTED
    assert "timed out" in runner.stats.last_error


def test_run_periodic_indexer_stops_on_event(settings, reader, db):
    """With stop already requested after the first tick, the loop exits and closes the reader."""
    reader.latest = 150
    reader.close = MagicMock()
    runner = IndexerRunner(build_orchestrator(settings, reader=reader, db=db), interval_sec=1.0)
    stop_event = threading.Event()

    real_tick = runner.tick

    def tick_then_stop():
        report = real_tick()
        stop_event.set()
        return report

    runner.tick = tick_then_stop
    run_periodic_indexer(settings, stop_event, runner=runner)

    assert runner.stats.tick_count == 1
    assert runner.stats.running is False
    assert db.get_checkpoint(settings.cursor_name) == 150
    reader.close.assert_called_once()


def test_interval_defaults_to_settings(orchestrator, settings):
    runner = IndexerRunner(orchestrator)
    assert runner.interval_sec == max(1.0, settings.poll_interval_sec)
