"""
Domain models for database entities.

Indexed token transactions, scan checkpoints, off-chain mint requests,
actor wallet mappings and the failed-log ledger. Used by the repository
layer; no ORM coupling so backends stay swappable.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from backend_indexer.events.models import EventKind, ExecutionMethod


@dataclass
class AttributedTransaction:
    """Durable mint/burn record; hash is the natural key."""

    hash: str
    block_number: int
    timestamp_ms: int
    """Block timestamp in milliseconds."""
    kind: EventKind
    amount: Decimal
    caller_address: str
    """Receipt `from`: the wallet that sent the transaction."""
    execution_method: ExecutionMethod
    actor_id: int | None
    """Attributed actor; None when the relay mint has no request or the wallet is unmapped."""
    from_address: str
    to_address: str
    created_at: int | None = None
    updated_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "hash": self.hash,
            "block_number": self.block_number,
            "timestamp_ms": self.timestamp_ms,
            "kind": self.kind.value,
            "amount": format(self.amount, "f"),
            "caller_address": self.caller_address,
            "execution_method": self.execution_method.value,
            "actor_id": self.actor_id,
            "from_address": self.from_address,
            "to_address": self.to_address,
        }


@dataclass
class Checkpoint:
    """Named scan cursor: last block whose batch fully committed."""

    cursor_name: str
    last_block: int
    updated_at: int | None = None


@dataclass
class MintRequest:
    """Off-chain record written when the central relay submits a mint for an actor."""

    transaction_hash: str
    actor_id: int
    created_at: int | None = None


@dataclass
class ActorWallet:
    """Wallet → actor mapping; the primary mapping is used for attribution."""

    wallet_address: str
    actor_id: int
    is_primary: bool = True


@dataclass
class FailedLogRecord:
    """A log that could not be processed; the checkpoint moved past it."""

    id: int | None
    cursor_name: str
    tx_hash: str
    log_index: int
    block_number: int
    batch_from: int
    batch_to: int
    error: str
    attempts: int = 1
    recorded_at: int | None = None
    resolved_at: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "cursor_name": self.cursor_name,
            "tx_hash": self.tx_hash,
            "log_index": self.log_index,
            "block_number": self.block_number,
            "batch_from": self.batch_from,
            "batch_to": self.batch_to,
            "error": self.error,
            "attempts": self.attempts,
            "recorded_at": self.recorded_at,
            "resolved_at": self.resolved_at,
        }
