"""
Data models for chain reader output.

Normalized views of eth_getLogs, eth_getTransactionReceipt and
eth_getBlockByNumber results. Hex quantities are decoded to int and
hex byte strings to bytes so the classifier works purely on bytes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def hex_to_int(value: Any) -> int:
    """Decode a JSON-RPC quantity ("0x1a") or pass through an int."""
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
    raise TypeError(f"Cannot decode quantity from {type(value).__name__}")


def hex_to_bytes(value: Any) -> bytes:
    """Decode "0x..." hex data (or pass through bytes)."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        s = value[2:] if value.startswith(("0x", "0X")) else value
        if len(s) % 2:
            s = "0" + s
        return bytes.fromhex(s)
    raise TypeError(f"Cannot decode bytes from {type(value).__name__}")


@dataclass(frozen=True)
class RawLogEntry:
    """
    Single log entry as returned by eth_getLogs.

    Ephemeral: never persisted directly, only after classification.
    """

    transaction_hash: str
    block_number: int
    topics: tuple[bytes, ...]
    data: bytes
    log_index: int = 0
    address: str | None = None
    removed: bool = False
    decode_error: str | None = None
    """Set when the provider item could not be decoded; the entry then carries only identifiers."""

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)

    @classmethod
    def undecodable(cls, item: Any, error: str, *, fallback_block: int) -> "RawLogEntry":
        """Placeholder for a malformed eth_getLogs item, keeping whatever identifiers survive."""
        fields = item if isinstance(item, dict) else {}

        def quantity(key: str, default: int) -> int:
            try:
                return hex_to_int(fields.get(key))
            except (TypeError, ValueError):
                return default

        return cls(
            transaction_hash=str(fields.get("transactionHash") or "").lower(),
            block_number=quantity("blockNumber", fallback_block),
            topics=(),
            data=b"",
            log_index=quantity("logIndex", 0),
            decode_error=error,
        )

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "RawLogEntry":
        """Build from a single eth_getLogs result item."""
        address = item.get("address")
        return cls(
            transaction_hash=str(item["transactionHash"]).lower(),
            block_number=hex_to_int(item["blockNumber"]),
            topics=tuple(hex_to_bytes(t) for t in item.get("topics") or ()),
            data=hex_to_bytes(item.get("data") or "0x"),
            log_index=hex_to_int(item.get("logIndex") or 0),
            address=str(address).lower() if address else None,
            removed=bool(item.get("removed", False)),
        )


@dataclass(frozen=True)
class TransactionReceipt:
    """Subset of eth_getTransactionReceipt the indexer needs."""

    transaction_hash: str
    from_address: str
    """Caller (EOA that signed the transaction); lower-case hex."""
    block_number: int | None = None
    status: int | None = None
    """1 success, 0 reverted; None on pre-Byzantium chains."""

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "TransactionReceipt":
        status = item.get("status")
        block = item.get("blockNumber")
        return cls(
            transaction_hash=str(item["transactionHash"]).lower(),
            from_address=str(item["from"]).lower(),
            block_number=hex_to_int(block) if block is not None else None,
            status=hex_to_int(status) if status is not None else None,
        )


@dataclass(frozen=True)
class BlockHeader:
    """Block number and timestamp (Unix seconds) from eth_getBlockByNumber."""

    number: int
    timestamp: int

    @classmethod
    def from_rpc_item(cls, item: dict[str, Any]) -> "BlockHeader":
        return cls(number=hex_to_int(item["number"]), timestamp=hex_to_int(item["timestamp"]))


@dataclass
class BlockTimestampCache:
    """
    Per-batch memo of block timestamps so events sharing a block cost one
    eth_getBlockByNumber round-trip. The orchestrator starts a fresh cache for
    each batch; the replay tool shares one across its blocks.
    """

    _timestamps: dict[int, int] = field(default_factory=dict)
    hits: int = 0
    misses: int = 0

    def get(self, block_number: int) -> int | None:
        ts = self._timestamps.get(block_number)
        if ts is None:
            self.misses += 1
        else:
            self.hits += 1
        return ts

    def put(self, block_number: int, timestamp: int) -> None:
        self._timestamps[block_number] = timestamp

    def __len__(self) -> int:
        return len(self._timestamps)
