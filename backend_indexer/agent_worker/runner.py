"""
Indexer runner: periodic scheduling and process lifecycle.

- IndexerRunner.tick(): one guarded cycle; a tick that fires while a cycle is
  still running is skipped, never run concurrently.
- run_periodic_indexer(): loop until stop_event is set. Started by the FastAPI
  lifespan in a background thread, or directly by main.py.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass

from backend_indexer.agent_worker.orchestrator import CycleReport, IndexingOrchestrator
from backend_indexer.attribution.resolver import AttributionResolver
from backend_indexer.chain_reader.reader import ChainReader, JsonRpcChainReader
from backend_indexer.config.env import mask_rpc_url
from backend_indexer.config.settings import IndexerSettings
from backend_indexer.database.database import Database, get_database
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

SHUTDOWN_JOIN_TIMEOUT_SEC = 15.0


@dataclass
class RunnerStats:
    """Counters exposed on GET /status."""

    tick_count: int = 0
    skipped_ticks: int = 0
    failed_ticks: int = 0
    last_tick_at: float | None = None
    last_error: str | None = None
    running: bool = False


def build_orchestrator(
    settings: IndexerSettings,
    *,
    reader: ChainReader | None = None,
    db: Database | None = None,
) -> IndexingOrchestrator:
    """Wire reader, database and resolver for settings; injected parts win."""
    if reader is None:
        reader = JsonRpcChainReader(
            settings.rpc_url,
            request_timeout_sec=settings.rpc_timeout_sec,
            max_retries=settings.rpc_max_retries,
        )
    if db is None:
        db = get_database(settings.db_path)
    resolver = AttributionResolver(settings.central_relay_address, db)
    return IndexingOrchestrator(settings, reader, db, resolver)


class IndexerRunner:
    """Runs the orchestrator on a fixed interval with at most one cycle in flight."""

    def __init__(self, orchestrator: IndexingOrchestrator, interval_sec: float | None = None) -> None:
        self._orchestrator = orchestrator
        self._interval = max(1.0, interval_sec or orchestrator.settings.poll_interval_sec)
        self._tick_lock = threading.Lock()
        self.stats = RunnerStats()

    @property
    def orchestrator(self) -> IndexingOrchestrator:
        return self._orchestrator

    @property
    def interval_sec(self) -> float:
        return self._interval

    @property
    def last_report(self) -> CycleReport | None:
        return self._orchestrator.last_report

    def tick(self) -> CycleReport | None:
        """
        Run one cycle unless one is already in progress.

        Returns the cycle report, or None when the tick was skipped or the
        cycle crashed with an unexpected error (logged, loop continues).
        """
        if not self._tick_lock.acquire(blocking=False):
            self.stats.skipped_ticks += 1
            logger.warning("indexer_tick_skipped_overlap", skipped_ticks=self.stats.skipped_ticks)
            return None
        try:
            self.stats.tick_count += 1
            self.stats.last_tick_at = time.time()
            report = self._orchestrator.run_cycle()
            self.stats.last_error = report.error
            return report
        except Exception as e:
            self.stats.failed_ticks += 1
            self.stats.last_error = str(e)
            logger.exception("indexer_tick_failed", tick=self.stats.tick_count, error=str(e))
            return None
        finally:
            self._tick_lock.release()

    def run_forever(self, stop_event: threading.Event) -> None:
        """Tick every interval until stop_event is set; wakes at least once a second to check it."""
        self.stats.running = True
        logger.info("indexer_runner_started", interval_sec=self._interval)
        try:
            while not stop_event.is_set():
                tick_start = time.monotonic()
                self.tick()
                deadline = tick_start + self._interval
                while not stop_event.is_set() and time.monotonic() < deadline:
                    stop_event.wait(timeout=min(1.0, max(0, deadline - time.monotonic())))
        finally:
            self.stats.running = False
            logger.info("indexer_runner_stopped", tick_count=self.stats.tick_count)


def run_periodic_indexer(
    settings: IndexerSettings,
    stop_event: threading.Event,
    *,
    runner: IndexerRunner | None = None,
) -> None:
    """
    Run the indexer loop until stop_event is set. Intended for a background
    thread (FastAPI lifespan) or the foreground of main.py.
    """
    if runner is None:
        runner = IndexerRunner(build_orchestrator(settings), settings.poll_interval_sec)
    logger.info(
        "indexer_periodic_starting",
        rpc_url=mask_rpc_url(settings.rpc_url),
        contract=settings.contract_address,
        cursor_name=settings.cursor_name,
        deployment_block=settings.deployment_block,
        max_batch_span=settings.max_batch_span,
        db_path=str(settings.db_path),
    )
    try:
        runner.run_forever(stop_event)
    finally:
        runner.orchestrator.close()
