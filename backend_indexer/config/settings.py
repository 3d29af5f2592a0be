"""
Application settings: one immutable bundle built and validated at startup.

Responsibilities:
- Read configuration from environment variables and .env (see config.env).
- Validate required addresses and numeric bounds; raise ConfigurationError
  so the service refuses to start on a bad configuration.
- Expose typed settings (RPC URL, contract, relay, scan bounds, DB path, API port)
  for chain reader, orchestrator, runner and API server.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from eth_utils import is_hex_address

from backend_indexer.config import env
from backend_indexer.core.exceptions import ConfigurationError


@dataclass(frozen=True)
class IndexerSettings:
    """Validated configuration consumed by the indexer core and its host process."""

    rpc_url: str
    contract_address: str
    """Token contract to watch; lower-case 0x hex."""
    central_relay_address: str
    """Central relay wallet; lower-case 0x hex."""
    deployment_block: int = 0
    """First block scanned when no checkpoint exists (never genesis by accident)."""
    max_batch_span: int = env.DEFAULT_MAX_BATCH_SPAN
    token_decimals: int = env.DEFAULT_TOKEN_DECIMALS
    poll_interval_sec: float = env.DEFAULT_POLL_INTERVAL_SEC
    cursor_name: str = env.DEFAULT_CURSOR_NAME
    db_path: Path = Path(env.DEFAULT_DB_PATH)
    rpc_timeout_sec: float = 15.0
    rpc_max_retries: int = 3
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    def __post_init__(self) -> None:
        if not self.rpc_url:
            raise ConfigurationError("RPC_URL must be set")
        for field_name in ("contract_address", "central_relay_address"):
            value = getattr(self, field_name)
            if not value or not is_hex_address(value):
                raise ConfigurationError(f"{field_name} is not a valid 20-byte hex address: {value!r}")
            object.__setattr__(self, field_name, value.lower())
        if self.deployment_block < 0:
            raise ConfigurationError("DEPLOYMENT_BLOCK must be >= 0")
        if self.max_batch_span < 1:
            raise ConfigurationError("MAX_BATCH_SPAN must be >= 1")
        if not (0 <= self.token_decimals <= 77):
            raise ConfigurationError("TOKEN_DECIMALS must be between 0 and 77")
        if self.poll_interval_sec <= 0:
            raise ConfigurationError("POLL_INTERVAL_SEC must be positive")
        if not self.cursor_name:
            raise ConfigurationError("CURSOR_NAME must be non-empty")
        if self.rpc_max_retries < 1:
            raise ConfigurationError("RPC_MAX_RETRIES must be >= 1")

    def with_overrides(self, **changes) -> "IndexerSettings":
        """Return a copy with some fields replaced (re-validated)."""
        return replace(self, **changes)


def _int(name: str, default: int) -> int:
    raw = env.get_raw(name, str(default))
    try:
        return int(raw, 16) if raw.lower().startswith("0x") else int(raw, 10)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


def _float(name: str, default: float) -> float:
    raw = env.get_raw(name, str(default))
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None


def get_settings() -> IndexerSettings:
    """
    Build settings from the environment.

    Raises:
        ConfigurationError: a required value is missing or malformed.
    """
    return IndexerSettings(
        rpc_url=env.get_rpc_url(),
        contract_address=env.get_contract_address(),
        central_relay_address=env.get_central_relay_address(),
        deployment_block=_int("DEPLOYMENT_BLOCK", 0),
        max_batch_span=_int("MAX_BATCH_SPAN", env.DEFAULT_MAX_BATCH_SPAN),
        token_decimals=_int("TOKEN_DECIMALS", env.DEFAULT_TOKEN_DECIMALS),
        poll_interval_sec=_float("POLL_INTERVAL_SEC", env.DEFAULT_POLL_INTERVAL_SEC),
        cursor_name=env.get_cursor_name(),
        db_path=env.get_db_path(),
        rpc_timeout_sec=_float("RPC_TIMEOUT_SEC", 15.0),
        rpc_max_retries=_int("RPC_MAX_RETRIES", 3),
        api_host=env.get_raw("API_HOST", "0.0.0.0"),
        api_port=_int("API_PORT", 8000),
    )
