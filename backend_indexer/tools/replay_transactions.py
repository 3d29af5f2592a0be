#!/usr/bin/env python3
"""
Replay logs the indexer moved past without persisting, or re-index a block range.

Failed-log mode (default): re-fetch each unresolved entry of the failed-log
ledger, run it through the normal classify → receipt → attribution → upsert
path, and mark it resolved when it persists (or turns out to be a plain
transfer). Range mode (--from-block/--to-block): re-index the range in
batches. Neither mode touches the checkpoint.

Usage:
  python -m backend_indexer.tools.replay_transactions
  python -m backend_indexer.tools.replay_transactions --tx-hash 0xabc... --tx-hash 0xdef...
  python -m backend_indexer.tools.replay_transactions --from-block 1200000 --to-block 1203000
"""

from __future__ import annotations

import argparse
import sys
from collections import defaultdict

from backend_indexer.agent_worker.orchestrator import IndexingOrchestrator, LogStatus, plan_batches
from backend_indexer.agent_worker.runner import build_orchestrator
from backend_indexer.chain_reader.models import BlockTimestampCache
from backend_indexer.chain_reader.reader import TRANSFER_TOPIC
from backend_indexer.config.settings import get_settings
from backend_indexer.core.exceptions import ConfigurationError, PersistenceError, RpcError
from backend_indexer.database.models import FailedLogRecord
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)


def _log(msg: str) -> None:
    print(f"[replay_transactions] {msg}")


def replay_failed_logs(
    orchestrator: IndexingOrchestrator,
    records: list[FailedLogRecord],
) -> tuple[list[str], list[str]]:
    """
    Re-process failed-log entries; return (resolved_hashes, still_failing_hashes).

    Logs are re-fetched one block at a time so the replay sees exactly what the
    provider returns now.
    """
    settings = orchestrator.settings
    by_block: dict[int, list[FailedLogRecord]] = defaultdict(list)
    for rec in records:
        by_block[rec.block_number].append(rec)

    resolved: list[str] = []
    failing: list[str] = []
    timestamps = BlockTimestampCache()
    for block in sorted(by_block):
        wanted = {(r.tx_hash, r.log_index) for r in by_block[block]}
        logs = orchestrator.reader.get_logs(
            block, block, address=settings.contract_address, topics=[TRANSFER_TOPIC]
        )
        found = {(raw.transaction_hash, raw.log_index): raw for raw in logs}
        for key in sorted(wanted, key=lambda k: k[1]):
            raw = found.get(key)
            if raw is None:
                logger.warning("replay_log_not_found", tx_hash=key[0], log_index=key[1], block_number=block)
                failing.append(key[0])
                continue
            outcome = orchestrator.process_log(raw, timestamps)
            if outcome.status is LogStatus.FAILED:
                failing.append(outcome.tx_hash)
            else:
                resolved.append(outcome.tx_hash)
    # ledger is keyed by hash; a hash with any still-failing log stays open
    still_open = set(failing)
    closable = [h for h in resolved if h not in still_open]
    if closable:
        orchestrator.db.resolve_failed_logs(closable)
    logger.info("replay_failed_logs_done", resolved=len(resolved), still_failing=len(failing))
    return resolved, failing


def replay_range(orchestrator: IndexingOrchestrator, from_block: int, to_block: int) -> tuple[int, list[str]]:
    """Re-index [from_block, to_block] without moving the checkpoint; return (persisted, failed_hashes)."""
    settings = orchestrator.settings
    persisted = 0
    failed: list[str] = []
    for batch_from, batch_to in plan_batches(from_block, to_block, settings.max_batch_span):
        logs = orchestrator.reader.get_logs(
            batch_from, batch_to, address=settings.contract_address, topics=[TRANSFER_TOPIC]
        )
        batch = orchestrator.process_batch(batch_from, batch_to, logs)
        persisted += batch.persisted_count
        failed.extend(batch.failed_hashes)
        logger.info(
            "replay_batch_done",
            batch_from=batch_from,
            batch_to=batch_to,
            persisted=batch.persisted_count,
            failed=len(batch.failures),
        )
    return persisted, failed


def main(argv: list[str] | None = None, orchestrator: IndexingOrchestrator | None = None) -> int:
    parser = argparse.ArgumentParser(description="Replay failed logs or re-index a block range.")
    parser.add_argument("--tx-hash", action="append", default=[], help="Only replay these failed hashes (repeatable)")
    parser.add_argument("--limit", type=int, default=500, help="Max failed-log entries to replay (default: 500)")
    parser.add_argument("--from-block", type=int, help="Range mode: first block to re-index")
    parser.add_argument("--to-block", type=int, help="Range mode: last block to re-index")
    args = parser.parse_args(argv)

    range_mode = args.from_block is not None or args.to_block is not None
    if range_mode and (args.from_block is None or args.to_block is None or args.from_block > args.to_block):
        _log("--from-block and --to-block must both be set with from <= to")
        return 2

    if orchestrator is None:
        try:
            orchestrator = build_orchestrator(get_settings())
        except ConfigurationError as e:
            _log(f"configuration error: {e}")
            return 1

    try:
        if range_mode:
            persisted, failed = replay_range(orchestrator, args.from_block, args.to_block)
            _log(f"re-indexed {args.from_block}-{args.to_block}: persisted={persisted} failed={len(failed)}")
            for h in failed:
                _log(f"  failed {h}")
            return 0 if not failed else 1

        records = orchestrator.db.list_failed_logs(limit=args.limit)
        if args.tx_hash:
            wanted = {h.lower() for h in args.tx_hash}
            records = [r for r in records if r.tx_hash in wanted]
        if not records:
            _log("nothing to replay")
            return 0
        resolved, failing = replay_failed_logs(orchestrator, records)
        _log(f"resolved={len(resolved)} still_failing={len(failing)}")
        for h in failing:
            _log(f"  still failing {h}")
        return 0 if not failing else 1
    except (RpcError, PersistenceError) as e:
        logger.error("replay_aborted", error=str(e))
        _log(f"aborted: {e}")
        return 1
    finally:
        orchestrator.close()


if __name__ == "__main__":
    sys.exit(main())
