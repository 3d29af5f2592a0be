"""
Tests for the SQLite transaction repository, checkpoint store and failed-log ledger.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from backend_indexer.core.exceptions import CheckpointRegressionError, PersistenceError
from backend_indexer.database import AttributedTransaction, FailedLogRecord, get_database
from backend_indexer.events.models import EventKind, ExecutionMethod

CURSOR = "last_indexed_block"


def _tx(n: int, *, block: int = 120, kind: EventKind = EventKind.MINT, actor_id: int | None = 1, amount: str = "1.5"):
    return AttributedTransaction(
        hash="0x" + f"{n:064x}",
        block_number=block,
        timestamp_ms=1_700_000_000_000 + n,
        kind=kind,
        amount=Decimal(amount),
        caller_address="0x" + "bb" * 20,
        execution_method=ExecutionMethod.DIRECT_ACTOR,
        actor_id=actor_id,
        from_address="0x" + "00" * 20,
        to_address="0x" + "bb" * 20,
    )


def _failed(n: int, *, block: int = 130, log_index: int = 0) -> FailedLogRecord:
    return FailedLogRecord(
        id=None,
        cursor_name=CURSOR,
        tx_hash="0x" + f"{n:064x}",
        log_index=log_index,
        block_number=block,
        batch_from=100,
        batch_to=199,
        error="TransientRpcError: receipt not available",
    )


def test_upsert_is_idempotent_by_hash(db):
    """Same hash twice → one row, last write wins, second call reports not-new."""
    assert db.upsert_transaction(_tx(1)) is True
    assert db.upsert_transaction(_tx(1, actor_id=9)) is False
    assert db.count_transactions() == 1
    stored = db.get_transaction("0x" + f"{1:064x}")
    assert stored is not None
    assert stored.actor_id == 9


def test_amount_round_trips_exactly(db):
    amount = "115792089237316195423570985008687907853269984665640564039457.584007913129639935"
    db.upsert_transaction(_tx(2, amount=amount))
    stored = db.get_transaction("0x" + f"{2:064x}")
    assert format(stored.amount, "f") == amount


def test_get_transaction_is_case_insensitive(db):
    db.upsert_transaction(_tx(0xABC))
    assert db.get_transaction(("0x" + f"{0xABC:064x}").upper().replace("0X", "0x")) is not None


def test_list_transactions_filters(db):
    db.upsert_transaction(_tx(1, block=110, kind=EventKind.MINT, actor_id=1))
    db.upsert_transaction(_tx(2, block=150, kind=EventKind.BURN, actor_id=2))
    db.upsert_transaction(_tx(3, block=190, kind=EventKind.MINT, actor_id=None))

    newest_first = db.list_transactions()
    assert [t.block_number for t in newest_first] == [190, 150, 110]
    assert [t.block_number for t in db.list_transactions(kind=EventKind.MINT)] == [190, 110]
    assert [t.block_number for t in db.list_transactions(since_block=150)] == [190, 150]
    assert [t.block_number for t in db.list_transactions(actor_id=2)] == [150]
    assert len(db.list_transactions(limit=1)) == 1


def test_checkpoint_absent_then_recorded(db):
    assert db.get_checkpoint(CURSOR) is None
    db.record_checkpoint(CURSOR, 199)
    assert db.get_checkpoint(CURSOR) == 199
    db.record_checkpoint(CURSOR, 250)
    assert db.get_checkpoint(CURSOR) == 250
    record = db.get_checkpoint_record(CURSOR)
    assert record is not None and record.updated_at is not None


def test_checkpoint_rejects_regression(db):
    """The running indexer can never move its cursor backwards."""
    db.record_checkpoint(CURSOR, 250)
    with pytest.raises(CheckpointRegressionError):
        db.record_checkpoint(CURSOR, 199)
    assert db.get_checkpoint(CURSOR) == 250
    # same block again is allowed
    db.record_checkpoint(CURSOR, 250)


def test_checkpoint_force_allows_rewind(db):
    db.record_checkpoint(CURSOR, 250)
    db.record_checkpoint(CURSOR, 120, force=True)
    assert db.get_checkpoint(CURSOR) == 120


def test_cursors_are_independent(db):
    db.record_checkpoint(CURSOR, 250)
    db.record_checkpoint("other_token", 10)
    assert db.get_checkpoint(CURSOR) == 250
    assert db.get_checkpoint("other_token") == 10


def test_regression_error_is_persistence_error():
    assert issubclass(CheckpointRegressionError, PersistenceError)


def test_failed_log_ledger(db):
    assert db.record_failed_logs([_failed(1), _failed(2, block=140)]) == 2
    open_entries = db.list_failed_logs()
    assert [e.block_number for e in open_entries] == [130, 140]
    assert open_entries[0].attempts == 1

    # same (hash, log_index) again bumps attempts instead of duplicating
    db.record_failed_logs([_failed(1)])
    entries = {e.tx_hash: e for e in db.list_failed_logs()}
    assert entries["0x" + f"{1:064x}"].attempts == 2
    assert len(entries) == 2

    assert db.resolve_failed_logs(["0x" + f"{1:064x}"]) == 1
    assert [e.block_number for e in db.list_failed_logs()] == [140]
    assert len(db.list_failed_logs(include_resolved=True)) == 2


def test_count_failed_logs(db):
    assert db.count_failed_logs() == 0
    db.record_failed_logs([_failed(n, block=100 + n) for n in range(1, 6)])
    db.resolve_failed_logs(["0x" + f"{2:064x}"])
    assert db.count_failed_logs() == 4
    assert db.count_failed_logs(include_resolved=True) == 5


def test_mint_request_and_wallet_lookups(db):
    tx = "0x" + "ef" * 32
    assert db.find_mint_request_by_tx_hash(tx) is None
    db.insert_mint_request(tx, 5)
    request = db.find_mint_request_by_tx_hash(tx.upper().replace("0X", "0x"))
    assert request is not None and request.actor_id == 5

    wallet = "0x" + "bb" * 20
    db.upsert_actor_wallet(wallet, 3, is_primary=False)
    assert db.get_primary_actor_by_wallet(wallet) is None
    db.upsert_actor_wallet(wallet, 4)
    mapping = db.get_primary_actor_by_wallet(wallet)
    assert mapping is not None and mapping.actor_id == 4


def test_unwritable_path_raises_persistence_error(tmp_path):
    """A directory in place of the DB file surfaces as PersistenceError."""
    target = tmp_path / "as_dir.db"
    target.mkdir()
    with pytest.raises(PersistenceError):
        get_database(target)
