"""
Domain types shared by classifier, attribution and orchestrator.

Plain Transfer events are not modeled: the classifier discards them.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class EventKind(str, Enum):
    MINT = "Mint"
    BURN = "Burn"


class ExecutionMethod(str, Enum):
    """How a mint/burn reached the chain."""

    CENTRAL_RELAY = "CENTRAL_RELAY"
    """Submitted by the central relay wallet on behalf of an actor."""
    DIRECT_ACTOR = "DIRECT_ACTOR"
    """Submitted directly by an actor's own wallet."""


@dataclass(frozen=True)
class TransferFields:
    """Decoded Transfer(from, to, value) payload; amount still in base units."""

    from_address: str
    to_address: str
    raw_amount: int


@dataclass(frozen=True)
class ClassifiedEvent:
    """A Transfer log that turned out to be a mint or a burn."""

    kind: EventKind
    from_address: str
    to_address: str
    amount: Decimal
    """Token amount scaled by the token decimals."""
    transaction_hash: str
    block_number: int
    log_index: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "from_address": self.from_address,
            "to_address": self.to_address,
            "amount": str(self.amount),
            "transaction_hash": self.transaction_hash,
            "block_number": self.block_number,
            "log_index": self.log_index,
        }


@dataclass(frozen=True)
class Attribution:
    """Who is responsible for a mint/burn; actor_id None means unattributed (valid)."""

    execution_method: ExecutionMethod
    actor_id: int | None = None
