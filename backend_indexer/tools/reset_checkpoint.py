#!/usr/bin/env python3
"""
Show or move the indexer checkpoint.

The running indexer never moves its cursor backwards; this is the operator
override. Stop the indexer before rewinding, then restart it: the next cycle
resumes at block + 1. Re-scanning is safe since transactions upsert by hash.

Usage:
  python -m backend_indexer.tools.reset_checkpoint --show
  python -m backend_indexer.tools.reset_checkpoint --block 1234567
  python -m backend_indexer.tools.reset_checkpoint --block 1234567 --cursor last_indexed_block --db indexer.db
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from backend_indexer.config import env
from backend_indexer.core.exceptions import PersistenceError
from backend_indexer.database import get_database
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)


def _log(msg: str) -> None:
    print(f"[reset_checkpoint] {msg}")


def main(argv: list[str] | None = None) -> int:
    env.load_indexer_env()
    parser = argparse.ArgumentParser(description="Show or rewind the indexer checkpoint (operator override).")
    parser.add_argument("--cursor", default=env.get_cursor_name(), help="Checkpoint name (default: CURSOR_NAME env)")
    parser.add_argument("--db", type=Path, default=env.get_db_path(), help="SQLite path (default: DB_PATH env)")
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--show", action="store_true", help="Print the current checkpoint and exit")
    group.add_argument("--block", type=int, help="Set the checkpoint to this block (>= 0)")
    args = parser.parse_args(argv)

    db = get_database(args.db)
    record = db.get_checkpoint_record(args.cursor)
    current = record.last_block if record is not None else None
    if args.show:
        if record is None:
            _log(f"{args.cursor} = <unset>")
        else:
            _log(f"{args.cursor} = {record.last_block} (updated_at={record.updated_at})")
        return 0

    if args.block < 0:
        _log("--block must be >= 0")
        return 2
    try:
        db.record_checkpoint(args.cursor, args.block, force=True)
    except PersistenceError as e:
        _log(f"failed: {e}")
        return 1
    logger.warning(
        "checkpoint_reset_by_operator",
        cursor=args.cursor,
        previous=current,
        new_block=args.block,
        db_path=str(args.db),
    )
    _log(f"{args.cursor}: {current if current is not None else '<unset>'} -> {args.block}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
