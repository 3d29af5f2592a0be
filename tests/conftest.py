"""
Pytest fixtures for indexer tests. Uses a temporary SQLite DB and the in-memory chain reader.
"""

from __future__ import annotations

import pytest

from backend_indexer.chain_reader import InMemoryChainReader, RawLogEntry
from backend_indexer.chain_reader.models import hex_to_bytes
from backend_indexer.chain_reader.reader import TRANSFER_TOPIC
from backend_indexer.config import IndexerSettings
from backend_indexer.events.models import ZERO_ADDRESS

CONTRACT = "0x" + "11" * 20
RELAY = "0x" + "aa" * 20
ACTOR_WALLET = "0x" + "bb" * 20
OTHER_WALLET = "0x" + "cc" * 20
ONE_TOKEN = 10**18


def address_topic(address: str) -> bytes:
    """Left-pad a 20-byte address to a 32-byte indexed topic."""
    return bytes(12) + bytes.fromhex(address[2:])


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


@pytest.fixture
def settings(tmp_path):
    """Small-span settings pointed at a temp DB; deployment block 100."""
    return IndexerSettings(
        rpc_url="http://localhost:8545",
        contract_address=CONTRACT,
        central_relay_address=RELAY,
        deployment_block=100,
        max_batch_span=100,
        poll_interval_sec=1.0,
        db_path=tmp_path / "indexer.db",
    )


@pytest.fixture
def db(settings):
    """Fresh Database with schema for each test."""
    from backend_indexer.database import get_database

    return get_database(settings.db_path)


@pytest.fixture
def reader():
    return InMemoryChainReader()


@pytest.fixture
def make_log():
    """
    Factory for Transfer logs:
        make_log(1, block=120, sender=ZERO_ADDRESS, recipient=ACTOR_WALLET, amount=ONE_TOKEN)
    """

    def _make(
        n: int,
        *,
        block: int,
        sender: str = ZERO_ADDRESS,
        recipient: str = ACTOR_WALLET,
        amount: int = ONE_TOKEN,
        log_index: int = 0,
        address: str | None = CONTRACT,
    ) -> RawLogEntry:
        return RawLogEntry(
            transaction_hash=tx_hash(n),
            block_number=block,
            topics=(hex_to_bytes(TRANSFER_TOPIC), address_topic(sender), address_topic(recipient)),
            data=amount.to_bytes(32, "big"),
            log_index=log_index,
            address=address,
        )

    return _make


@pytest.fixture
def orchestrator(settings, reader, db):
    from backend_indexer.agent_worker import build_orchestrator

    return build_orchestrator(settings, reader=reader, db=db)
