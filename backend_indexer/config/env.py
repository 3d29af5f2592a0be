"""
Environment variable loading for the indexer.

- RPC_URL: JSON-RPC endpoint of the chain node (required)
- TOKEN_CONTRACT_ADDRESS: token contract whose Transfer log is scanned (required)
- CENTRAL_RELAY_ADDRESS: wallet that submits mints on behalf of actors (required)
- DEPLOYMENT_BLOCK: lower scan bound when no checkpoint exists
- Loads .env from project root when available.
"""

from __future__ import annotations

import os
from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from dotenv import load_dotenv

# Project root: config is backend_indexer/config/, root is 2 levels up
_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

DEFAULT_CURSOR_NAME = "last_indexed_block"
DEFAULT_MAX_BATCH_SPAN = 1000  # thirdweb / most hosted RPCs cap eth_getLogs at 1000 blocks
DEFAULT_TOKEN_DECIMALS = 18
DEFAULT_POLL_INTERVAL_SEC = 40.0
DEFAULT_DB_PATH = "indexer.db"


def load_indexer_env() -> None:
    """Load .env from project root. Safe to call multiple times; never overrides real env."""
    load_dotenv(_ENV_PATH, override=False)


def _get(name: str) -> str:
    return (os.getenv(name) or "").strip()


def get_rpc_url() -> str:
    """Return RPC_URL (empty string when unset)."""
    load_indexer_env()
    return _get("RPC_URL")


def get_contract_address() -> str:
    load_indexer_env()
    return _get("TOKEN_CONTRACT_ADDRESS")


def get_central_relay_address() -> str:
    """
    Return CENTRAL_RELAY_ADDRESS. ADMIN_WALLET_ADDRESS is accepted as a legacy
    alias (the relay is the admin server wallet).
    """
    load_indexer_env()
    return _get("CENTRAL_RELAY_ADDRESS") or _get("ADMIN_WALLET_ADDRESS")


def get_db_path() -> Path:
    load_indexer_env()
    return Path(_get("DB_PATH") or DEFAULT_DB_PATH)


def get_cursor_name() -> str:
    load_indexer_env()
    return _get("CURSOR_NAME") or DEFAULT_CURSOR_NAME


def get_raw(name: str, default: str = "") -> str:
    """Return a stripped env value or the default when unset/blank."""
    load_indexer_env()
    return _get(name) or default


_LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0", "::1")


def mask_rpc_url(url: str) -> str:
    """
    Mask API keys embedded in provider URLs before logging.

    Covers ?api-key= query keys and keys carried as the last path segment
    (Alchemy /v2/<key>, thirdweb /<client-id>). Local nodes are left as is.
    """
    if "api-key=" in url:
        url = url.split("api-key=")[0] + "api-key=***"
    parts = urlsplit(url)
    if (parts.hostname or "") in _LOCAL_HOSTS:
        return url
    head, sep, last = parts.path.rstrip("/").rpartition("/")
    if not sep or not last or last == "***":
        return url
    return urlunsplit(parts._replace(path=f"{head}/***"))
