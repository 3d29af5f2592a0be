"""
FastAPI server: read-only status API over the indexer database.

Exposes health, cursor/cycle status, indexed mint/burn transactions and the
failed-log ledger. Never writes. The lifespan starts the periodic indexer in a
background thread so the API never blocks on a cycle.
"""

from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from backend_indexer import __version__
from backend_indexer.agent_worker.runner import (
    SHUTDOWN_JOIN_TIMEOUT_SEC,
    IndexerRunner,
    build_orchestrator,
    run_periodic_indexer,
)
from backend_indexer.config.settings import IndexerSettings, get_settings
from backend_indexer.database.database import Database
from backend_indexer.events.models import EventKind
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)


# -----------------------------------------------------------------------------
# Response models
# -----------------------------------------------------------------------------

class TransactionResponse(BaseModel):
    """One indexed mint or burn."""

    hash: str
    block_number: int
    timestamp_ms: int = Field(..., description="Block timestamp in milliseconds")
    kind: str = Field(..., description="Mint or Burn")
    amount: str = Field(..., description="Exact decimal amount in token units")
    caller_address: str
    execution_method: str = Field(..., description="CENTRAL_RELAY or DIRECT_ACTOR")
    actor_id: int | None = None
    from_address: str
    to_address: str


class FailedLogResponse(BaseModel):
    """A log the checkpoint moved past without persisting."""

    id: int | None
    cursor_name: str
    tx_hash: str
    log_index: int
    block_number: int
    batch_from: int
    batch_to: int
    error: str
    attempts: int
    recorded_at: int | None = None
    resolved_at: int | None = None


class RunnerStatusResponse(BaseModel):
    running: bool
    interval_sec: float
    tick_count: int
    skipped_ticks: int
    failed_ticks: int
    last_tick_at: float | None = None
    last_error: str | None = None


class StatusResponse(BaseModel):
    """GET /status: cursor position and the last cycle outcome."""

    cursor_name: str
    checkpoint: int | None = Field(None, description="Last fully committed block; null before the first batch")
    deployment_block: int
    contract_address: str
    state: str
    transaction_count: int
    unresolved_failed_logs: int
    runner: RunnerStatusResponse
    last_cycle: dict[str, Any] | None = None


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------

def get_db(request: Request) -> Database:
    return request.app.state.runner.orchestrator.db


def get_runner(request: Request) -> IndexerRunner:
    return request.app.state.runner


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------

def create_app(
    settings: IndexerSettings | None = None,
    *,
    runner: IndexerRunner | None = None,
    start_runner: bool = True,
) -> FastAPI:
    """
    Build the API app. Settings are resolved from the environment at startup
    when not given; tests pass a prebuilt runner and start_runner=False.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the periodic indexer in a background thread; signal stop on shutdown."""
        resolved = settings or get_settings()
        app_runner = runner or IndexerRunner(build_orchestrator(resolved), resolved.poll_interval_sec)
        app.state.settings = resolved
        app.state.runner = app_runner

        if not start_runner:
            yield
            return

        stop_event = threading.Event()
        thread = threading.Thread(
            target=run_periodic_indexer,
            args=(resolved, stop_event),
            kwargs={"runner": app_runner},
            name="indexer-runner",
            daemon=True,
        )
        thread.start()
        logger.info("api_indexer_runner_started", interval_sec=app_runner.interval_sec)
        try:
            yield
        finally:
            stop_event.set()
            thread.join(timeout=SHUTDOWN_JOIN_TIMEOUT_SEC)
            if thread.is_alive():
                logger.warning("api_indexer_runner_shutdown_timeout", timeout_sec=SHUTDOWN_JOIN_TIMEOUT_SEC)
            else:
                logger.info("api_indexer_runner_stopped")

    app = FastAPI(
        title="Backend Indexer API",
        description="Read-only API for indexed token mints/burns and indexer status.",
        version=__version__,
        lifespan=lifespan,
    )
    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    def health() -> dict[str, str]:
        """Liveness probe: API is up."""
        return {"status": "ok"}

    @app.get("/status", response_model=StatusResponse)
    def status(
        runner: IndexerRunner = Depends(get_runner),
        db: Database = Depends(get_db),
    ) -> StatusResponse:
        settings = runner.orchestrator.settings
        report = runner.last_report
        stats = runner.stats
        return StatusResponse(
            cursor_name=settings.cursor_name,
            checkpoint=db.get_checkpoint(settings.cursor_name),
            deployment_block=settings.deployment_block,
            contract_address=settings.contract_address,
            state=runner.orchestrator.state.value,
            transaction_count=db.count_transactions(),
            unresolved_failed_logs=db.count_failed_logs(),
            runner=RunnerStatusResponse(
                running=stats.running,
                interval_sec=runner.interval_sec,
                tick_count=stats.tick_count,
                skipped_ticks=stats.skipped_ticks,
                failed_ticks=stats.failed_ticks,
                last_tick_at=stats.last_tick_at,
                last_error=stats.last_error,
            ),
            last_cycle=report.to_dict() if report is not None else None,
        )

    @app.get("/transactions", response_model=list[TransactionResponse])
    def list_transactions(
        limit: int = Query(50, ge=1, le=1000),
        kind: EventKind | None = Query(None, description="Mint or Burn"),
        actor_id: int | None = Query(None),
        since_block: int | None = Query(None, ge=0),
        db: Database = Depends(get_db),
    ) -> list[TransactionResponse]:
        """Most recent indexed mints/burns first."""
        rows = db.list_transactions(limit=limit, kind=kind, since_block=since_block, actor_id=actor_id)
        return [TransactionResponse(**row.to_dict()) for row in rows]

    @app.get("/transactions/{tx_hash}", response_model=TransactionResponse)
    def get_transaction(tx_hash: str, db: Database = Depends(get_db)) -> TransactionResponse:
        tx = db.get_transaction(tx_hash)
        if tx is None:
            raise HTTPException(status_code=404, detail="Transaction not indexed")
        return TransactionResponse(**tx.to_dict())

    @app.get("/failed-logs", response_model=list[FailedLogResponse])
    def failed_logs(
        limit: int = Query(100, ge=1, le=1000),
        include_resolved: bool = Query(False),
        db: Database = Depends(get_db),
    ) -> list[FailedLogResponse]:
        """Logs skipped by past batches, in chain order."""
        return [FailedLogResponse(**r.to_dict()) for r in db.list_failed_logs(limit=limit, include_resolved=include_resolved)]
