"""
Chain reader: read-only JSON-RPC access to an EVM node.

Responsibilities:
- latest height, ranged Transfer log queries, receipts and block headers.
- Map provider failures onto the indexer taxonomy: RangeTooLargeError when the
  eth_getLogs span is rejected, TransientRpcError for timeouts, 429/5xx and
  not-yet-available receipts, RpcError for anything else.
- Retry transient failures a bounded number of times with exponential backoff.

The reader holds no indexing state; one instance may be shared across cycles.
"""

from __future__ import annotations

import itertools
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

import httpx

from backend_indexer.chain_reader.models import (
    BlockHeader,
    RawLogEntry,
    TransactionReceipt,
    hex_to_int,
)
from backend_indexer.config.env import mask_rpc_url
from backend_indexer.core.exceptions import RangeTooLargeError, RpcError, TransientRpcError
from backend_indexer.indexer_logging import get_logger

logger = get_logger(__name__)

# keccak256("Transfer(address,address,uint256)")
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

# Phrases providers use when refusing an eth_getLogs span (Alchemy, Infura, thirdweb, QuickNode, geth)
_RANGE_ERROR_MARKERS = (
    "block range",
    "range too large",
    "range is too large",
    "query returned more than",
    "exceed maximum block range",
    "response size exceeded",
    "too many blocks",
    "limited to a",
)
_RATE_LIMIT_MARKERS = ("rate limit", "too many requests", "capacity exceeded", "timeout", "timed out")
# JSON-RPC codes that are transient by nature
_TRANSIENT_CODES = frozenset({-32000, -32005, -32603, 429})


def _is_range_error(message: str) -> bool:
    msg = message.lower()
    return any(marker in msg for marker in _RANGE_ERROR_MARKERS)


def _is_transient_message(message: str) -> bool:
    msg = message.lower()
    return any(marker in msg for marker in _RATE_LIMIT_MARKERS)


class ChainReader(ABC):
    """Abstract read-only interface over a remote node; one implementation per provider."""

    @abstractmethod
    def latest_height(self) -> int:
        """Return the latest block number."""
        ...

    @abstractmethod
    def get_logs(
        self,
        from_block: int,
        to_block: int,
        *,
        address: str,
        topics: Sequence[str | None] = (TRANSFER_TOPIC,),
    ) -> list[RawLogEntry]:
        """
        Return logs emitted by address in [from_block, to_block] matching topics.

        Raises RangeTooLargeError if the provider rejects the span and
        TransientRpcError on timeouts / rate limits / 5xx.
        """
        ...

    @abstractmethod
    def get_receipt(self, tx_hash: str) -> TransactionReceipt:
        """Return the receipt for tx_hash; TransientRpcError if not yet available."""
        ...

    @abstractmethod
    def get_block(self, block_number: int) -> BlockHeader:
        """Return number and timestamp of a block."""
        ...

    def close(self) -> None:
        """Release transport resources (no-op by default)."""

    def __enter__(self) -> "ChainReader":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class JsonRpcChainReader(ChainReader):
    """
    HTTP JSON-RPC implementation (eth_blockNumber, eth_getLogs,
    eth_getTransactionReceipt, eth_getBlockByNumber) on top of httpx.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        request_timeout_sec: float = 15.0,
        max_retries: int = 3,
        min_retry_delay_sec: float = 0.5,
        max_retry_delay_sec: float = 8.0,
        client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        Args:
            rpc_url: Node HTTP endpoint (e.g. https://<chain>.rpc.thirdweb.com/<key>).
            request_timeout_sec: HTTP timeout per request.
            max_retries: Attempts per call for transient errors (>= 1).
            min_retry_delay_sec: Initial backoff delay.
            max_retry_delay_sec: Cap for backoff delay.
            client: Optional preconfigured httpx.Client (tests pass a MockTransport).
            sleep: Sleep function used between retries.
        """
        if not rpc_url.strip():
            raise ValueError("rpc_url must be non-empty")
        if max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        self._rpc_url = rpc_url.strip().rstrip("/")
        self._max_retries = max_retries
        self._min_retry_delay = min_retry_delay_sec
        self._max_retry_delay = max_retry_delay_sec
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.Client(timeout=httpx.Timeout(request_timeout_sec))
        self._ids = itertools.count(1)

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    # --- public API ---

    def latest_height(self) -> int:
        result = self._call("eth_blockNumber", [])
        try:
            return hex_to_int(result)
        except (TypeError, ValueError) as e:
            raise RpcError(f"eth_blockNumber returned an undecodable result: {result!r}", method="eth_blockNumber") from e

    def get_logs(
        self,
        from_block: int,
        to_block: int,
        *,
        address: str,
        topics: Sequence[str | None] = (TRANSFER_TOPIC,),
    ) -> list[RawLogEntry]:
        if from_block > to_block:
            raise ValueError(f"from_block {from_block} > to_block {to_block}")
        params = [
            {
                "address": address,
                "fromBlock": hex(from_block),
                "toBlock": hex(to_block),
                "topics": list(topics),
            }
        ]
        try:
            result = self._call("eth_getLogs", params)
        except RangeTooLargeError as e:
            e.from_block, e.to_block = from_block, to_block
            raise
        if not isinstance(result, list):
            raise RpcError("eth_getLogs returned a non-list result", method="eth_getLogs")
        entries: list[RawLogEntry] = []
        for item in result:
            if isinstance(item, dict) and item.get("removed"):
                continue
            try:
                entries.append(RawLogEntry.from_rpc_item(item))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                # kept as a placeholder so the orchestrator records it as a failed log
                error = f"{type(e).__name__}: {e}"
                logger.warning("rpc_log_undecodable", from_block=from_block, to_block=to_block, error=error)
                entries.append(RawLogEntry.undecodable(item, error, fallback_block=from_block))
        return entries

    def get_receipt(self, tx_hash: str) -> TransactionReceipt:
        result = self._call("eth_getTransactionReceipt", [tx_hash])
        if result is None:
            raise TransientRpcError(
                f"Receipt for {tx_hash} not yet available", method="eth_getTransactionReceipt"
            )
        try:
            return TransactionReceipt.from_rpc_item(result)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RpcError(f"Undecodable receipt for {tx_hash}: {e}", method="eth_getTransactionReceipt") from e

    def get_block(self, block_number: int) -> BlockHeader:
        result = self._call("eth_getBlockByNumber", [hex(block_number), False])
        if result is None:
            raise TransientRpcError(
                f"Block {block_number} not yet available", method="eth_getBlockByNumber"
            )
        try:
            return BlockHeader.from_rpc_item(result)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise RpcError(f"Undecodable block {block_number}: {e}", method="eth_getBlockByNumber") from e

    # --- transport ---

    def _call(self, method: str, params: list[Any]) -> Any:
        """Perform one JSON-RPC call with retry on TransientRpcError."""
        delay = self._min_retry_delay
        for attempt in range(self._max_retries):
            try:
                return self._call_once(method, params)
            except TransientRpcError as e:
                if attempt + 1 >= self._max_retries:
                    logger.error(
                        "rpc_give_up",
                        method=method,
                        max_retries=self._max_retries,
                        rpc_url=mask_rpc_url(self._rpc_url),
                        error=str(e),
                    )
                    raise
                logger.warning(
                    "rpc_retry",
                    method=method,
                    attempt=attempt + 1,
                    max_retries=self._max_retries,
                    error=str(e),
                )
                self._sleep(delay)
                delay = min(delay * 2, self._max_retry_delay)
        raise AssertionError("unreachable")

    def _call_once(self, method: str, params: list[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = self._client.post(self._rpc_url, json=body)
        except httpx.TimeoutException as e:
            raise TransientRpcError(f"{method} timed out: {e}", method=method) from e
        except httpx.TransportError as e:
            raise TransientRpcError(f"{method} transport error: {e}", method=method) from e

        data: Any = None
        try:
            data = resp.json()
        except ValueError:
            data = None

        # Some providers answer range rejections with 400 + JSON-RPC error body
        if isinstance(data, dict) and data.get("error"):
            self._raise_rpc_error(method, data["error"])

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientRpcError(
                f"{method} HTTP {resp.status_code}", method=method, code=resp.status_code
            )
        if resp.status_code >= 400:
            raise RpcError(f"{method} HTTP {resp.status_code}", method=method, code=resp.status_code)
        if not isinstance(data, dict) or "result" not in data:
            raise RpcError(f"{method} returned a malformed JSON-RPC response", method=method)
        return data["result"]

    @staticmethod
    def _raise_rpc_error(method: str, err: Any) -> None:
        if isinstance(err, dict):
            message = str(err.get("message", err))
            code = err.get("code")
        else:
            message, code = str(err), None
        text = f"{method} RPC error: {message} (code={code})"
        if method == "eth_getLogs" and _is_range_error(message):
            raise RangeTooLargeError(text, code=code)
        if code in _TRANSIENT_CODES or _is_transient_message(message):
            raise TransientRpcError(text, method=method, code=code)
        raise RpcError(text, method=method, code=code)
