"""
Indexing cycle orchestrator: one catch-up pass per scheduled tick.

State machine per invocation:
    IDLE → DETERMINING_RANGE → {NO_WORK | SCANNING} → IDLE

DETERMINING_RANGE reads the checkpoint (or the configured deployment block)
and the latest chain height. SCANNING walks [from_block, latest] in
consecutive batches of at most max_batch_span blocks, strictly in order:
fetch logs → classify → receipt + block timestamp → attribution → upsert,
then record failed logs and advance the checkpoint to the batch's upper bound.

Per-log failures are collected as LogOutcome values in the BatchReport and do
not stop the batch; the checkpoint still advances past them (failed hashes go
to the failed-log ledger for manual follow-up). Transient RPC failures and any
persistence failure abort the cycle without moving the checkpoint beyond the
last committed batch; the next tick resumes there.

Holds no lock: callers must not run two cycles at once (see runner.IndexerRunner).
"""

from __future__ import annotations

import itertools
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from backend_indexer.attribution.resolver import AttributionResolver
from backend_indexer.chain_reader.models import BlockTimestampCache, RawLogEntry
from backend_indexer.chain_reader.reader import TRANSFER_TOPIC, ChainReader
from backend_indexer.config.settings import IndexerSettings
from backend_indexer.core.exceptions import (
    IndexerError,
    LogDecodeError,
    PersistenceError,
    RangeTooLargeError,
    RpcError,
    TransientRpcError,
)
from backend_indexer.database.database import Database
from backend_indexer.database.models import AttributedTransaction, FailedLogRecord
from backend_indexer.events.classifier import classify
from backend_indexer.events.models import EventKind
from backend_indexer.indexer_logging import bind_cycle, get_logger

logger = get_logger(__name__)


class CycleState(str, Enum):
    IDLE = "idle"
    DETERMINING_RANGE = "determining_range"
    NO_WORK = "no_work"
    SCANNING = "scanning"


class CycleOutcome(str, Enum):
    NO_WORK = "no_work"
    COMPLETED = "completed"
    ABORTED = "aborted"


class LogStatus(str, Enum):
    PERSISTED = "persisted"
    SKIPPED = "skipped"
    """Plain transfer; nothing to store."""
    FAILED = "failed"


@dataclass(frozen=True)
class LogOutcome:
    """Result of handling one raw log inside a batch."""

    status: LogStatus
    tx_hash: str
    block_number: int
    log_index: int = 0
    kind: EventKind | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "log_index": self.log_index,
            "kind": self.kind.value if self.kind else None,
            "error": self.error,
        }


@dataclass
class BatchReport:
    """All per-log outcomes for one [from_block, to_block] batch."""

    from_block: int
    to_block: int
    outcomes: list[LogOutcome] = field(default_factory=list)
    checkpoint_written: bool = False

    @property
    def persisted_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is LogStatus.PERSISTED)

    @property
    def skipped_count(self) -> int:
        return sum(1 for o in self.outcomes if o.status is LogStatus.SKIPPED)

    @property
    def failures(self) -> list[LogOutcome]:
        return [o for o in self.outcomes if o.status is LogStatus.FAILED]

    @property
    def failed_hashes(self) -> list[str]:
        return [o.tx_hash for o in self.failures]

    def to_dict(self) -> dict[str, Any]:
        return {
            "from_block": self.from_block,
            "to_block": self.to_block,
            "logs": len(self.outcomes),
            "persisted": self.persisted_count,
            "skipped": self.skipped_count,
            "failed_hashes": self.failed_hashes,
            "checkpoint_written": self.checkpoint_written,
        }


@dataclass
class CycleReport:
    """Summary of one indexing cycle; returned instead of raising on RPC/storage errors."""

    cycle_id: int
    cursor_name: str
    outcome: CycleOutcome = CycleOutcome.NO_WORK
    from_block: int | None = None
    latest_block: int | None = None
    batches: list[BatchReport] = field(default_factory=list)
    error: str | None = None
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None

    @property
    def failed_hashes(self) -> list[str]:
        return [h for b in self.batches for h in b.failed_hashes]

    @property
    def persisted_count(self) -> int:
        return sum(b.persisted_count for b in self.batches)

    @property
    def last_committed_block(self) -> int | None:
        committed = [b.to_block for b in self.batches if b.checkpoint_written]
        return committed[-1] if committed else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle_id": self.cycle_id,
            "cursor_name": self.cursor_name,
            "outcome": self.outcome.value,
            "from_block": self.from_block,
            "latest_block": self.latest_block,
            "last_committed_block": self.last_committed_block,
            "persisted": self.persisted_count,
            "failed_hashes": self.failed_hashes,
            "batches": [b.to_dict() for b in self.batches],
            "error": self.error,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
        }


def next_batch(start: int, latest: int, span: int) -> tuple[int, int]:
    """Return the inclusive batch starting at start, capped by span and latest."""
    return start, min(start + span - 1, latest)


def plan_batches(from_block: int, to_block: int, max_span: int) -> Iterator[tuple[int, int]]:
    """
    Partition [from_block, to_block] into consecutive inclusive ranges of at most max_span blocks.

    >>> list(plan_batches(100, 250, 100))
    [(100, 199), (200, 250)]
    """
    if max_span < 1:
        raise ValueError("max_span must be >= 1")
    start = from_block
    while start <= to_block:
        batch = next_batch(start, to_block, max_span)
        yield batch
        start = batch[1] + 1


class IndexingOrchestrator:
    """Drives Chain Reader → Classifier → Attribution → Repository → Checkpoint for one cursor."""

    def __init__(
        self,
        settings: IndexerSettings,
        reader: ChainReader,
        db: Database,
        resolver: AttributionResolver | None = None,
    ) -> None:
        self._settings = settings
        self._reader = reader
        self._db = db
        self._resolver = resolver or AttributionResolver(settings.central_relay_address, db)
        self._state = CycleState.IDLE
        self._cycle_ids = itertools.count(1)
        self._last_report: CycleReport | None = None
        self._last_latest: int | None = None

    @property
    def state(self) -> CycleState:
        return self._state

    @property
    def last_report(self) -> CycleReport | None:
        return self._last_report

    @property
    def settings(self) -> IndexerSettings:
        return self._settings

    @property
    def db(self) -> Database:
        return self._db

    @property
    def reader(self) -> ChainReader:
        return self._reader

    def close(self) -> None:
        self._reader.close()

    # --- cycle ---

    def run_cycle(self) -> CycleReport:
        """
        Run one catch-up pass and return its report.

        RPC and persistence failures end the cycle as ABORTED; the checkpoint
        stays at the last fully committed batch.
        """
        cursor = self._settings.cursor_name
        report = CycleReport(cycle_id=next(self._cycle_ids), cursor_name=cursor)
        log = bind_cycle(report.cycle_id, cursor)
        log.info("indexer_cycle_started")
        try:
            self._state = CycleState.DETERMINING_RANGE
            window = self.determine_range()
            if window is None:
                self._state = CycleState.NO_WORK
                report.outcome = CycleOutcome.NO_WORK
                report.latest_block = self._last_latest
                log.info("indexer_no_new_blocks", latest_block=self._last_latest)
                return report

            from_block, latest = window
            report.from_block, report.latest_block = from_block, latest
            self._state = CycleState.SCANNING
            log.info("indexer_scan_window", from_block=from_block, latest_block=latest)
            self._scan(from_block, latest, report, log)
            report.outcome = CycleOutcome.COMPLETED
            log.info(
                "indexer_cycle_completed",
                latest_block=latest,
                batches=len(report.batches),
                persisted=report.persisted_count,
                failed=len(report.failed_hashes),
            )
        except RpcError as e:
            report.outcome = CycleOutcome.ABORTED
            report.error = str(e)
            log.error(
                "indexer_cycle_aborted_rpc",
                error=str(e),
                transient=isinstance(e, TransientRpcError),
                last_committed_block=report.last_committed_block,
            )
        except PersistenceError as e:
            report.outcome = CycleOutcome.ABORTED
            report.error = str(e)
            log.error(
                "indexer_cycle_aborted_persistence",
                error=str(e),
                last_committed_block=report.last_committed_block,
            )
        finally:
            report.finished_at = time.time()
            self._last_report = report
            self._state = CycleState.IDLE
        return report

    def determine_range(self) -> tuple[int, int] | None:
        """
        Return (from_block, latest) to scan, or None when there is nothing new.

        Missing checkpoint → start at the deployment block, never at genesis.
        """
        checkpoint = self._db.get_checkpoint(self._settings.cursor_name)
        from_block = checkpoint + 1 if checkpoint is not None else self._settings.deployment_block
        latest = self._reader.latest_height()
        self._last_latest = latest
        if from_block > latest:
            return None
        return from_block, latest

    def _scan(self, from_block: int, latest: int, report: CycleReport, log: Any) -> None:
        span = self._settings.max_batch_span
        start = from_block
        while start <= latest:
            batch_from, batch_to = next_batch(start, latest, span)
            try:
                logs = self._reader.get_logs(
                    batch_from,
                    batch_to,
                    address=self._settings.contract_address,
                    topics=[TRANSFER_TOPIC],
                )
            except RangeTooLargeError as e:
                if batch_from == batch_to:
                    raise TransientRpcError(
                        f"Provider rejected single-block range {batch_from}: {e}", method="eth_getLogs"
                    ) from e
                span = max(1, (batch_to - batch_from + 1) // 2)
                log.warning(
                    "indexer_range_too_large",
                    batch_from=batch_from,
                    batch_to=batch_to,
                    new_span=span,
                )
                continue
            except RpcError as e:
                log.error("indexer_get_logs_failed", batch_from=batch_from, batch_to=batch_to, error=str(e))
                raise

            batch = self.process_batch(batch_from, batch_to, logs)
            report.batches.append(batch)
            self.commit_batch(batch)
            log.info(
                "indexer_batch_committed",
                batch_from=batch_from,
                batch_to=batch_to,
                logs=len(batch.outcomes),
                persisted=batch.persisted_count,
                skipped=batch.skipped_count,
                failed=len(batch.failures),
            )
            start = batch_to + 1

    # --- batch ---

    def process_batch(self, from_block: int, to_block: int, logs: list[RawLogEntry]) -> BatchReport:
        """
        Handle every log of a batch in (block, log index) order.

        Raises PersistenceError on the first storage failure; everything else
        becomes a FAILED outcome.
        """
        batch = BatchReport(from_block=from_block, to_block=to_block)
        timestamps = BlockTimestampCache()
        for raw in sorted(logs, key=lambda entry: entry.sort_key):
            batch.outcomes.append(self.process_log(raw, timestamps, batch))
        if batch.failures:
            logger.warning(
                "indexer_batch_failures",
                batch_from=from_block,
                batch_to=to_block,
                failed_hashes=batch.failed_hashes,
                note="checkpoint advances past failed logs; replay them manually",
            )
        return batch

    def process_log(
        self,
        raw: RawLogEntry,
        timestamps: BlockTimestampCache,
        batch: BatchReport | None = None,
    ) -> LogOutcome:
        """Classify, enrich, attribute and upsert one log; return its outcome."""
        try:
            if raw.decode_error is not None:
                raise LogDecodeError(raw.decode_error, tx_hash=raw.transaction_hash)
            event = classify(raw, self._settings.token_decimals)
            if event is None:
                return LogOutcome(LogStatus.SKIPPED, raw.transaction_hash, raw.block_number, raw.log_index)

            receipt = self._reader.get_receipt(raw.transaction_hash)
            timestamp = timestamps.get(raw.block_number)
            if timestamp is None:
                timestamp = self._reader.get_block(raw.block_number).timestamp
                timestamps.put(raw.block_number, timestamp)
            attribution = self._resolver.resolve(receipt.from_address, raw.transaction_hash)

            tx = AttributedTransaction(
                hash=event.transaction_hash,
                block_number=event.block_number,
                timestamp_ms=timestamp * 1000,
                kind=event.kind,
                amount=event.amount,
                caller_address=receipt.from_address,
                execution_method=attribution.execution_method,
                actor_id=attribution.actor_id,
                from_address=event.from_address,
                to_address=event.to_address,
            )
            self._db.upsert_transaction(tx)
        except PersistenceError:
            raise
        except (IndexerError, ValueError, TypeError, KeyError) as e:
            logger.error(
                "indexer_log_failed",
                tx_hash=raw.transaction_hash,
                block_number=raw.block_number,
                log_index=raw.log_index,
                batch_from=batch.from_block if batch else None,
                batch_to=batch.to_block if batch else None,
                error=str(e),
                error_type=type(e).__name__,
            )
            return LogOutcome(
                LogStatus.FAILED,
                raw.transaction_hash,
                raw.block_number,
                raw.log_index,
                error=f"{type(e).__name__}: {e}",
            )
        logger.debug(
            "indexer_transaction_persisted",
            tx_hash=tx.hash,
            kind=tx.kind.value,
            block_number=tx.block_number,
            execution_method=tx.execution_method.value,
            actor_id=tx.actor_id,
        )
        return LogOutcome(LogStatus.PERSISTED, raw.transaction_hash, raw.block_number, raw.log_index, kind=event.kind)

    def commit_batch(self, batch: BatchReport) -> None:
        """Record the batch's failed logs, then advance the checkpoint to its upper bound."""
        cursor = self._settings.cursor_name
        if batch.failures:
            self._db.record_failed_logs(
                [
                    FailedLogRecord(
                        id=None,
                        cursor_name=cursor,
                        tx_hash=o.tx_hash,
                        log_index=o.log_index,
                        block_number=o.block_number,
                        batch_from=batch.from_block,
                        batch_to=batch.to_block,
                        error=o.error or "",
                    )
                    for o in batch.failures
                ]
            )
        self._db.record_checkpoint(cursor, batch.to_block)
        batch.checkpoint_written = True
