"""
Application-level exceptions.

- ConfigurationError is fatal at startup; the service refuses to begin cycling.
- RPC errors split into transient (retry next tick) and range rejections (shrink span).
- LogDecodeError is isolated to a single log; PersistenceError aborts the cycle.
"""

from __future__ import annotations


class IndexerError(Exception):
    """Base class for all indexer errors."""


class ConfigurationError(IndexerError):
    """Missing or malformed configuration (e.g. bad contract address)."""


class RpcError(IndexerError):
    """Non-transient RPC failure: malformed response or rejected request."""

    def __init__(self, message: str, *, method: str | None = None, code: int | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.code = code


class TransientRpcError(RpcError):
    """Timeout, rate limit, 5xx or temporarily missing data; safe to retry later."""


class RangeTooLargeError(RpcError):
    """Provider rejected the eth_getLogs span; caller must shrink the range and retry."""

    def __init__(
        self,
        message: str,
        *,
        from_block: int | None = None,
        to_block: int | None = None,
        method: str | None = "eth_getLogs",
        code: int | None = None,
    ) -> None:
        super().__init__(message, method=method, code=code)
        self.from_block = from_block
        self.to_block = to_block


class LogDecodeError(IndexerError):
    """Raw log entry does not decode as a token Transfer event."""

    def __init__(self, message: str, *, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class PersistenceError(IndexerError):
    """Write or read failure in the transaction repository or checkpoint store."""


class CheckpointRegressionError(PersistenceError):
    """Attempt to move a checkpoint backwards without an explicit operator override."""

    def __init__(self, cursor_name: str, current: int, requested: int) -> None:
        super().__init__(
            f"Checkpoint {cursor_name!r} is at {current}; refusing to move back to {requested}"
        )
        self.cursor_name = cursor_name
        self.current = current
        self.requested = requested
