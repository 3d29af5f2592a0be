"""
Database abstraction layer for indexed token transactions and scan checkpoints.

SQLite backend; designed so the backend can be swapped to PostgreSQL via a
different Backend implementation. All access goes through the abstract interface;
SQL and placeholders are backend-specific (? for SQLite, %s for PostgreSQL).

Every storage failure surfaces as PersistenceError so the orchestrator can
abort the cycle without advancing the checkpoint.
"""

from __future__ import annotations

import sqlite3
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Iterator

from backend_indexer.core.exceptions import CheckpointRegressionError, PersistenceError
from backend_indexer.database.models import (
    ActorWallet,
    AttributedTransaction,
    Checkpoint,
    FailedLogRecord,
    MintRequest,
)
from backend_indexer.events.models import EventKind, ExecutionMethod
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

# -----------------------------------------------------------------------------
# Schema (SQLite). For PostgreSQL: use BIGSERIAL, NUMERIC(78, 18), and %s.
# -----------------------------------------------------------------------------

SCHEMA_CHECKPOINTS = """
CREATE TABLE IF NOT EXISTS indexer_checkpoints (
    cursor_name TEXT PRIMARY KEY,
    last_block INTEGER NOT NULL,
    updated_at INTEGER
);
"""

SCHEMA_TRANSACTIONS = """
CREATE TABLE IF NOT EXISTS token_transactions (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    hash TEXT NOT NULL UNIQUE,
    block_number INTEGER NOT NULL,
    timestamp_ms INTEGER NOT NULL,
    kind TEXT NOT NULL,
    amount TEXT NOT NULL,
    caller_address TEXT NOT NULL,
    execution_method TEXT NOT NULL,
    actor_id INTEGER,
    from_address TEXT NOT NULL,
    to_address TEXT NOT NULL,
    created_at INTEGER,
    updated_at INTEGER
);
CREATE INDEX IF NOT EXISTS ix_token_transactions_block ON token_transactions(block_number);
CREATE INDEX IF NOT EXISTS ix_token_transactions_actor ON token_transactions(actor_id);
CREATE INDEX IF NOT EXISTS ix_token_transactions_kind_block ON token_transactions(kind, block_number);
"""

SCHEMA_MINT_REQUESTS = """
CREATE TABLE IF NOT EXISTS mint_requests (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    transaction_hash TEXT NOT NULL UNIQUE,
    actor_id INTEGER NOT NULL,
    created_at INTEGER
);
"""

SCHEMA_ACTOR_WALLETS = """
CREATE TABLE IF NOT EXISTS actor_wallets (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    wallet_address TEXT NOT NULL,
    actor_id INTEGER NOT NULL,
    is_primary INTEGER NOT NULL DEFAULT 1,
    UNIQUE(wallet_address, actor_id)
);
CREATE INDEX IF NOT EXISTS ix_actor_wallets_wallet ON actor_wallets(wallet_address);
"""

SCHEMA_FAILED_LOGS = """
CREATE TABLE IF NOT EXISTS indexer_failed_logs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    cursor_name TEXT NOT NULL,
    tx_hash TEXT NOT NULL,
    log_index INTEGER NOT NULL,
    block_number INTEGER NOT NULL,
    batch_from INTEGER NOT NULL,
    batch_to INTEGER NOT NULL,
    error TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 1,
    recorded_at INTEGER,
    resolved_at INTEGER,
    UNIQUE(tx_hash, log_index)
);
CREATE INDEX IF NOT EXISTS ix_failed_logs_unresolved ON indexer_failed_logs(resolved_at, block_number);
"""


def _row_to_transaction(row: sqlite3.Row) -> AttributedTransaction:
    return AttributedTransaction(
        hash=row["hash"],
        block_number=row["block_number"],
        timestamp_ms=row["timestamp_ms"],
        kind=EventKind(row["kind"]),
        amount=Decimal(row["amount"]),
        caller_address=row["caller_address"],
        execution_method=ExecutionMethod(row["execution_method"]),
        actor_id=row["actor_id"],
        from_address=row["from_address"],
        to_address=row["to_address"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_failed_log(row: sqlite3.Row) -> FailedLogRecord:
    return FailedLogRecord(
        id=row["id"],
        cursor_name=row["cursor_name"],
        tx_hash=row["tx_hash"],
        log_index=row["log_index"],
        block_number=row["block_number"],
        batch_from=row["batch_from"],
        batch_to=row["batch_to"],
        error=row["error"],
        attempts=row["attempts"],
        recorded_at=row["recorded_at"],
        resolved_at=row["resolved_at"],
    )


# -----------------------------------------------------------------------------
# Abstract backend: swap implementation for PostgreSQL later.
# -----------------------------------------------------------------------------


class DatabaseBackend(ABC):
    """Abstract interface for persistence; implement for SQLite or PostgreSQL."""

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        ...

    # --- transactions ---

    @abstractmethod
    def upsert_transaction(self, tx: AttributedTransaction) -> bool:
        """Insert or overwrite by hash. Returns True if a new row was created."""
        ...

    @abstractmethod
    def get_transaction(self, tx_hash: str) -> AttributedTransaction | None:
        ...

    @abstractmethod
    def list_transactions(
        self,
        *,
        limit: int = 100,
        kind: EventKind | None = None,
        since_block: int | None = None,
        actor_id: int | None = None,
    ) -> list[AttributedTransaction]:
        """Return transactions, newest block first."""
        ...

    @abstractmethod
    def count_transactions(self) -> int:
        ...

    # --- checkpoints ---

    @abstractmethod
    def get_checkpoint(self, cursor_name: str) -> Checkpoint | None:
        ...

    @abstractmethod
    def record_checkpoint(self, cursor_name: str, block: int, *, force: bool = False) -> None:
        """Write the cursor. Refuses to move it backwards unless force=True."""
        ...

    # --- attribution lookups (read-only for the indexer core) ---

    @abstractmethod
    def find_mint_request_by_tx_hash(self, tx_hash: str) -> MintRequest | None:
        ...

    @abstractmethod
    def insert_mint_request(self, request: MintRequest) -> None:
        ...

    @abstractmethod
    def get_primary_actor_by_wallet(self, wallet_address: str) -> ActorWallet | None:
        ...

    @abstractmethod
    def upsert_actor_wallet(self, mapping: ActorWallet) -> None:
        ...

    # --- failed-log ledger ---

    @abstractmethod
    def record_failed_logs(self, records: list[FailedLogRecord]) -> int:
        """Insert failed logs; a repeat failure bumps attempts. Returns rows touched."""
        ...

    @abstractmethod
    def list_failed_logs(self, *, limit: int = 100, include_resolved: bool = False) -> list[FailedLogRecord]:
        ...

    @abstractmethod
    def resolve_failed_logs(self, tx_hashes: Iterable[str]) -> int:
        """Mark failed logs for the given hashes as resolved. Returns rows updated."""
        ...

    @abstractmethod
    def count_failed_logs(self, *, include_resolved: bool = False) -> int:
        ...


# -----------------------------------------------------------------------------
# SQLite backend
# -----------------------------------------------------------------------------


class SQLiteBackend(DatabaseBackend):
    """SQLite implementation; single file, one connection per operation."""

    def __init__(self, path: str | Path, *, timeout_sec: float = 5.0) -> None:
        self._path = Path(path)
        self._timeout_sec = timeout_sec

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self._path), timeout=self._timeout_sec)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._connect()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open database {self._path}: {e}") from e
        try:
            cur = conn.cursor()
            yield cur
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(str(e)) from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for stmt in (
                SCHEMA_CHECKPOINTS,
                SCHEMA_TRANSACTIONS,
                SCHEMA_MINT_REQUESTS,
                SCHEMA_ACTOR_WALLETS,
                SCHEMA_FAILED_LOGS,
            ):
                cur.executescript(stmt)

    def upsert_transaction(self, tx: AttributedTransaction) -> bool:
        now = int(time.time())
        with self._cursor() as cur:
            cur.execute("SELECT 1 FROM token_transactions WHERE hash = ?", (tx.hash,))
            existed = cur.fetchone() is not None
            cur.execute(
                """
                INSERT INTO token_transactions (
                    hash, block_number, timestamp_ms, kind, amount, caller_address,
                    execution_method, actor_id, from_address, to_address, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(hash) DO UPDATE SET
                    block_number = excluded.block_number,
                    timestamp_ms = excluded.timestamp_ms,
                    kind = excluded.kind,
                    amount = excluded.amount,
                    caller_address = excluded.caller_address,
                    execution_method = excluded.execution_method,
                    actor_id = excluded.actor_id,
                    from_address = excluded.from_address,
                    to_address = excluded.to_address,
                    updated_at = excluded.updated_at
                """,
                (
                    tx.hash,
                    tx.block_number,
                    tx.timestamp_ms,
                    tx.kind.value,
                    format(tx.amount, "f"),
                    tx.caller_address,
                    tx.execution_method.value,
                    tx.actor_id,
                    tx.from_address,
                    tx.to_address,
                    now,
                    now,
                ),
            )
        return not existed

    def get_transaction(self, tx_hash: str) -> AttributedTransaction | None:
        with self._cursor() as cur:
            cur.execute("SELECT * FROM token_transactions WHERE hash = ?", (tx_hash,))
            row = cur.fetchone()
        return _row_to_transaction(row) if row is not None else None

    def list_transactions(
        self,
        *,
        limit: int = 100,
        kind: EventKind | None = None,
        since_block: int | None = None,
        actor_id: int | None = None,
    ) -> list[AttributedTransaction]:
        sql = "SELECT * FROM token_transactions WHERE 1 = 1"
        params: list[Any] = []
        if kind is not None:
            sql += " AND kind = ?"
            params.append(kind.value)
        if since_block is not None:
            sql += " AND block_number >= ?"
            params.append(since_block)
        if actor_id is not None:
            sql += " AND actor_id = ?"
            params.append(actor_id)
        sql += " ORDER BY block_number DESC, id DESC LIMIT ?"
        params.append(limit)
        with self._cursor() as cur:
            cur.execute(sql, params)
            rows = cur.fetchall()
        return [_row_to_transaction(row) for row in rows]

    def count_transactions(self) -> int:
        with self._cursor() as cur:
            cur.execute("SELECT COUNT(*) FROM token_transactions")
            return int(cur.fetchone()[0])

    def get_checkpoint(self, cursor_name: str) -> Checkpoint | None:
        with self._cursor() as cur:
            cur.execute(
                "SELECT cursor_name, last_block, updated_at FROM indexer_checkpoints WHERE cursor_name = ?",
                (cursor_name,),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return Checkpoint(
            cursor_name=row["cursor_name"],
            last_block=row["last_block"],
            updated_at=row["updated_at"],
        )

    def record_checkpoint(self, cursor_name: str, block: int, *, force: bool = False) -> None:
        if block < 0:
            raise ValueError("checkpoint block must be >= 0")
        now = int(time.time())
        with self._cursor() as cur:
            cur.execute(
                "SELECT last_block FROM indexer_checkpoints WHERE cursor_name = ?",
                (cursor_name,),
            )
            row = cur.fetchone()
            if row is not None and row["last_block"] > block and not force:
                raise CheckpointRegressionError(cursor_name, row["last_block"], block)
            cur.execute(
                """
                INSERT INTO indexer_checkpoints (cursor_name, last_block, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(cursor_name) DO UPDATE SET
                    last_block = excluded.last_block,
                    updated_at = excluded.updated_at
                """,
                (cursor_name, block, now),
            )

    def find_mint_request_by_tx_hash(self, tx_hash: str) -> MintRequest | None:
        with self._cursor() as cur:
            cur.execute(
                "SELECT transaction_hash, actor_id, created_at FROM mint_requests WHERE transaction_hash = ?",
                (tx_hash.lower(),),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return MintRequest(
            transaction_hash=row["transaction_hash"],
            actor_id=row["actor_id"],
            created_at=row["created_at"],
        )

    def insert_mint_request(self, request: MintRequest) -> None:
        now = int(time.time())
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO mint_requests (transaction_hash, actor_id, created_at)
                VALUES (?, ?, ?)
                ON CONFLICT(transaction_hash) DO UPDATE SET actor_id = excluded.actor_id
                """,
                (request.transaction_hash.lower(), request.actor_id, request.created_at or now),
            )

    def get_primary_actor_by_wallet(self, wallet_address: str) -> ActorWallet | None:
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT wallet_address, actor_id, is_primary FROM actor_wallets
                WHERE wallet_address = ? AND is_primary = 1
                ORDER BY id ASC LIMIT 1
                """,
                (wallet_address.lower(),),
            )
            row = cur.fetchone()
        if row is None:
            return None
        return ActorWallet(
            wallet_address=row["wallet_address"],
            actor_id=row["actor_id"],
            is_primary=bool(row["is_primary"]),
        )

    def upsert_actor_wallet(self, mapping: ActorWallet) -> None:
        with self._cursor() as cur:
            cur.execute(
                """
                INSERT INTO actor_wallets (wallet_address, actor_id, is_primary)
                VALUES (?, ?, ?)
                ON CONFLICT(wallet_address, actor_id) DO UPDATE SET is_primary = excluded.is_primary
                """,
                (mapping.wallet_address.lower(), mapping.actor_id, 1 if mapping.is_primary else 0),
            )

    def record_failed_logs(self, records: list[FailedLogRecord]) -> int:
        if not records:
            return 0
        now = int(time.time())
        touched = 0
        with self._cursor() as cur:
            for rec in records:
                cur.execute(
                    """
                    INSERT INTO indexer_failed_logs (
                        cursor_name, tx_hash, log_index, block_number, batch_from, batch_to,
                        error, attempts, recorded_at, resolved_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, 1, ?, NULL)
                    ON CONFLICT(tx_hash, log_index) DO UPDATE SET
                        error = excluded.error,
                        attempts = attempts + 1,
                        recorded_at = excluded.recorded_at,
                        resolved_at = NULL
                    """,
                    (
                        rec.cursor_name,
                        rec.tx_hash,
                        rec.log_index,
                        rec.block_number,
                        rec.batch_from,
                        rec.batch_to,
                        rec.error,
                        now,
                    ),
                )
                touched += cur.rowcount
        return touched

    def list_failed_logs(self, *, limit: int = 100, include_resolved: bool = False) -> list[FailedLogRecord]:
        sql = "SELECT * FROM indexer_failed_logs"
        if not include_resolved:
            sql += " WHERE resolved_at IS NULL"
        sql += " ORDER BY block_number ASC, log_index ASC LIMIT ?"
        with self._cursor() as cur:
            cur.execute(sql, (limit,))
            rows = cur.fetchall()
        return [_row_to_failed_log(row) for row in rows]

    def count_failed_logs(self, *, include_resolved: bool = False) -> int:
        sql = "SELECT COUNT(*) FROM indexer_failed_logs"
        if not include_resolved:
            sql += " WHERE resolved_at IS NULL"
        with self._cursor() as cur:
            cur.execute(sql)
            return int(cur.fetchone()[0])

    def resolve_failed_logs(self, tx_hashes: Iterable[str]) -> int:
        hashes = [h.lower() for h in tx_hashes]
        if not hashes:
            return 0
        now = int(time.time())
        placeholders = ",".join("?" for _ in hashes)
        with self._cursor() as cur:
            cur.execute(
                f"UPDATE indexer_failed_logs SET resolved_at = ? WHERE resolved_at IS NULL AND tx_hash IN ({placeholders})",
                [now, *hashes],
            )
            return cur.rowcount


# -----------------------------------------------------------------------------
# Database facade: single entrypoint; backend is swappable.
# -----------------------------------------------------------------------------


class Database:
    """
    Transaction repository and checkpoint store.

    Uses a Backend (SQLite by default); replace with a PostgreSQL backend when upgrading.
    Also serves the attribution lookups (mint requests, actor wallets).
    """

    def __init__(self, backend: DatabaseBackend) -> None:
        self._backend = backend

    def ensure_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        self._backend.ensure_schema()

    # --- Transactions ---

    def upsert_transaction(self, tx: AttributedTransaction) -> bool:
        """Idempotent by hash: re-submitting overwrites instead of duplicating."""
        return self._backend.upsert_transaction(tx)

    def get_transaction(self, tx_hash: str) -> AttributedTransaction | None:
        return self._backend.get_transaction(tx_hash.lower())

    def list_transactions(
        self,
        *,
        limit: int = 100,
        kind: EventKind | None = None,
        since_block: int | None = None,
        actor_id: int | None = None,
    ) -> list[AttributedTransaction]:
        return self._backend.list_transactions(
            limit=limit, kind=kind, since_block=since_block, actor_id=actor_id
        )

    def count_transactions(self) -> int:
        return self._backend.count_transactions()

    # --- Checkpoints ---

    def get_checkpoint(self, cursor_name: str) -> int | None:
        """Return the last committed block for the cursor, or None if never written."""
        cp = self._backend.get_checkpoint(cursor_name)
        return cp.last_block if cp is not None else None

    def get_checkpoint_record(self, cursor_name: str) -> Checkpoint | None:
        return self._backend.get_checkpoint(cursor_name)

    def record_checkpoint(self, cursor_name: str, block: int, *, force: bool = False) -> None:
        """
        Advance the cursor. Call only after every event in the covered range is committed.
        force=True is reserved for operator resets.
        """
        self._backend.record_checkpoint(cursor_name, block, force=force)
        logger.debug("checkpoint_recorded", cursor=cursor_name, last_block=block, force=force)

    # --- Attribution lookups ---

    def find_mint_request_by_tx_hash(self, tx_hash: str) -> MintRequest | None:
        return self._backend.find_mint_request_by_tx_hash(tx_hash)

    def insert_mint_request(self, transaction_hash: str, actor_id: int) -> None:
        self._backend.insert_mint_request(MintRequest(transaction_hash=transaction_hash, actor_id=actor_id))

    def get_primary_actor_by_wallet(self, wallet_address: str) -> ActorWallet | None:
        return self._backend.get_primary_actor_by_wallet(wallet_address)

    def upsert_actor_wallet(self, wallet_address: str, actor_id: int, *, is_primary: bool = True) -> None:
        self._backend.upsert_actor_wallet(
            ActorWallet(wallet_address=wallet_address, actor_id=actor_id, is_primary=is_primary)
        )

    # --- Failed-log ledger ---

    def record_failed_logs(self, records: list[FailedLogRecord]) -> int:
        return self._backend.record_failed_logs(records)

    def list_failed_logs(self, *, limit: int = 100, include_resolved: bool = False) -> list[FailedLogRecord]:
        return self._backend.list_failed_logs(limit=limit, include_resolved=include_resolved)

    def count_failed_logs(self, *, include_resolved: bool = False) -> int:
        """Number of ledger entries; unresolved only unless include_resolved."""
        return self._backend.count_failed_logs(include_resolved=include_resolved)

    def resolve_failed_logs(self, tx_hashes: Iterable[str]) -> int:
        return self._backend.resolve_failed_logs(tx_hashes)


def get_database(path: str | Path | None = None) -> Database:
    """
    Return a Database backed by SQLite, with schema ensured.

    path: Path to the SQLite file (e.g. "data/indexer.db"). Default: "indexer.db" in cwd.
    For PostgreSQL later: use a different factory that builds the backend from a URL.
    """
    if path is None:
        path = Path("indexer.db")
    backend = SQLiteBackend(path)
    db = Database(backend)
    db.ensure_schema()
    return db
