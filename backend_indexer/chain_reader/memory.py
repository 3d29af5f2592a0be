"""
In-memory chain reader for tests and local dry runs.

Holds logs, receipts and block timestamps in dicts and records every call
so callers can assert which ranges were queried and in what order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Sequence

from backend_indexer.chain_reader.models import BlockHeader, RawLogEntry, TransactionReceipt
from backend_indexer.chain_reader.reader import TRANSFER_TOPIC, ChainReader
from backend_indexer.core.exceptions import RangeTooLargeError, TransientRpcError


@dataclass
class InMemoryChainReader(ChainReader):
    """
    Deterministic ChainReader.

    provider_max_span simulates a provider that rejects wider eth_getLogs spans;
    failing_receipts / failing_blocks simulate transient per-log failures;
    latest_error makes latest_height() fail.
    """

    latest: int = 0
    logs: list[RawLogEntry] = field(default_factory=list)
    receipts: dict[str, TransactionReceipt] = field(default_factory=dict)
    block_timestamps: dict[int, int] = field(default_factory=dict)
    provider_max_span: int | None = None
    failing_receipts: set[str] = field(default_factory=set)
    failing_blocks: set[int] = field(default_factory=set)
    failing_log_ranges: set[tuple[int, int]] = field(default_factory=set)
    latest_error: Exception | None = None

    log_queries: list[tuple[int, int]] = field(default_factory=list)
    receipt_calls: list[str] = field(default_factory=list)
    block_calls: list[int] = field(default_factory=list)
    latest_calls: int = 0

    def add_log(self, log: RawLogEntry, *, caller: str, timestamp: int | None = None) -> None:
        """Register a log plus its receipt caller and (optionally) its block timestamp."""
        self.logs.append(log)
        self.receipts[log.transaction_hash] = TransactionReceipt(
            transaction_hash=log.transaction_hash,
            from_address=caller.lower(),
            block_number=log.block_number,
            status=1,
        )
        if timestamp is not None:
            self.block_timestamps[log.block_number] = timestamp
        self.latest = max(self.latest, log.block_number)

    def latest_height(self) -> int:
        self.latest_calls += 1
        if self.latest_error is not None:
            raise self.latest_error
        return self.latest

    def get_logs(
        self,
        from_block: int,
        to_block: int,
        *,
        address: str,
        topics: Sequence[str | None] = (TRANSFER_TOPIC,),
    ) -> list[RawLogEntry]:
        self.log_queries.append((from_block, to_block))
        if self.provider_max_span is not None and (to_block - from_block + 1) > self.provider_max_span:
            raise RangeTooLargeError(
                f"block range too large: {from_block}-{to_block}",
                from_block=from_block,
                to_block=to_block,
            )
        if (from_block, to_block) in self.failing_log_ranges:
            raise TransientRpcError(f"eth_getLogs timed out for {from_block}-{to_block}", method="eth_getLogs")
        address = address.lower()
        return [
            log
            for log in self.logs
            if from_block <= log.block_number <= to_block
            and (log.address is None or log.address == address)
        ]

    def get_receipt(self, tx_hash: str) -> TransactionReceipt:
        self.receipt_calls.append(tx_hash)
        if tx_hash in self.failing_receipts or tx_hash not in self.receipts:
            raise TransientRpcError(f"Receipt for {tx_hash} not yet available", method="eth_getTransactionReceipt")
        return self.receipts[tx_hash]

    def get_block(self, block_number: int) -> BlockHeader:
        self.block_calls.append(block_number)
        if block_number in self.failing_blocks:
            raise TransientRpcError(f"Block {block_number} not yet available", method="eth_getBlockByNumber")
        return BlockHeader(number=block_number, timestamp=self.block_timestamps.get(block_number, 0))
