"""
Attribution resolver: which off-chain actor is behind a mint/burn.

Rules (deterministic, no scoring):
- caller == central relay (case-insensitive): look up the off-chain mint
  request recorded for the tx hash; CENTRAL_RELAY with its actor, or with
  no actor when the request is missing (pre-tracking or manual mints).
- any other caller: DIRECT_ACTOR with the wallet's primary actor, or no
  actor when the wallet is unmapped.

A missing mapping is a valid terminal state, never an error.
"""

from __future__ import annotations

from typing import Any, Protocol

from backend_indexer.events.models import Attribution, ExecutionMethod
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)


class AttributionLookup(Protocol):
    """Read-only lookups the resolver needs; Database implements both."""

    def find_mint_request_by_tx_hash(self, tx_hash: str) -> Any | None: ...

    def get_primary_actor_by_wallet(self, wallet_address: str) -> Any | None: ...


class AttributionResolver:
    """Resolve (caller, tx hash) to an execution method and optional actor id."""

    def __init__(self, central_relay_address: str, lookup: AttributionLookup) -> None:
        if not central_relay_address:
            raise ValueError("central_relay_address must be non-empty")
        self._relay = central_relay_address.strip().lower()
        self._lookup = lookup

    @property
    def central_relay_address(self) -> str:
        return self._relay

    def is_central_relay(self, caller_address: str) -> bool:
        return caller_address.strip().lower() == self._relay

    def resolve(self, caller_address: str, tx_hash: str) -> Attribution:
        """
        Return the attribution for a transaction sent by caller_address.

        Lookup errors (e.g. PersistenceError) propagate; absent records do not.
        """
        if self.is_central_relay(caller_address):
            request = self._lookup.find_mint_request_by_tx_hash(tx_hash.lower())
            if request is None:
                logger.info("attribution_relay_without_request", tx_hash=tx_hash)
                return Attribution(ExecutionMethod.CENTRAL_RELAY, None)
            return Attribution(ExecutionMethod.CENTRAL_RELAY, int(request.actor_id))

        mapping = self._lookup.get_primary_actor_by_wallet(caller_address.lower())
        if mapping is None:
            logger.debug("attribution_wallet_unmapped", tx_hash=tx_hash, caller=caller_address)
            return Attribution(ExecutionMethod.DIRECT_ACTOR, None)
        return Attribution(ExecutionMethod.DIRECT_ACTOR, int(mapping.actor_id))
