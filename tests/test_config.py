"""
Tests for environment-driven settings and their validation.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from backend_indexer.config import IndexerSettings, get_settings
from backend_indexer.config.env import mask_rpc_url
from backend_indexer.core.exceptions import ConfigurationError

CONTRACT = "0x" + "11" * 20
RELAY = "0x" + "aa" * 20

ENV_KEYS = (
    "RPC_URL",
    "TOKEN_CONTRACT_ADDRESS",
    "CENTRAL_RELAY_ADDRESS",
    "ADMIN_WALLET_ADDRESS",
    "DEPLOYMENT_BLOCK",
    "MAX_BATCH_SPAN",
    "TOKEN_DECIMALS",
    "POLL_INTERVAL_SEC",
    "CURSOR_NAME",
    "DB_PATH",
    "RPC_TIMEOUT_SEC",
    "RPC_MAX_RETRIES",
    "API_HOST",
    "API_PORT",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("RPC_URL", "https://node.test/rpc")
    monkeypatch.setenv("TOKEN_CONTRACT_ADDRESS", CONTRACT)
    monkeypatch.setenv("CENTRAL_RELAY_ADDRESS", RELAY)
    return monkeypatch


def test_defaults(clean_env):
    s = get_settings()
    assert s.rpc_url == "https://node.test/rpc"
    assert s.contract_address == CONTRACT
    assert s.central_relay_address == RELAY
    assert s.deployment_block == 0
    assert s.max_batch_span == 1000
    assert s.token_decimals == 18
    assert s.poll_interval_sec == 40.0
    assert s.cursor_name == "last_indexed_block"
    assert s.db_path == Path("indexer.db")


def test_overrides_from_env(clean_env):
    clean_env.setenv("DEPLOYMENT_BLOCK", "0x10")
    clean_env.setenv("MAX_BATCH_SPAN", "500")
    clean_env.setenv("POLL_INTERVAL_SEC", "12.5")
    clean_env.setenv("CURSOR_NAME", "pneo_transfers")
    clean_env.setenv("DB_PATH", "/tmp/x.db")
    s = get_settings()
    assert s.deployment_block == 16
    assert s.max_batch_span == 500
    assert s.poll_interval_sec == 12.5
    assert s.cursor_name == "pneo_transfers"
    assert s.db_path == Path("/tmp/x.db")


def test_decimal_with_leading_zeros(clean_env):
    clean_env.setenv("DEPLOYMENT_BLOCK", "0100")
    clean_env.setenv("MAX_BATCH_SPAN", "0x3E8")
    s = get_settings()
    assert s.deployment_block == 100
    assert s.max_batch_span == 1000


def test_addresses_are_lowercased(clean_env):
    clean_env.setenv("TOKEN_CONTRACT_ADDRESS", "0x" + "AB" * 20)
    assert get_settings().contract_address == "0x" + "ab" * 20


def test_admin_wallet_alias(clean_env):
    clean_env.delenv("CENTRAL_RELAY_ADDRESS")
    clean_env.setenv("ADMIN_WALLET_ADDRESS", RELAY)
    assert get_settings().central_relay_address == RELAY


@pytest.mark.parametrize(
    "key, value",
    [
        ("TOKEN_CONTRACT_ADDRESS", "not-an-address"),
        ("CENTRAL_RELAY_ADDRESS", "0x1234"),
        ("RPC_URL", ""),
        ("MAX_BATCH_SPAN", "0"),
        ("MAX_BATCH_SPAN", "lots"),
        ("DEPLOYMENT_BLOCK", "-1"),
        ("POLL_INTERVAL_SEC", "soon"),
    ],
)
def test_invalid_values_raise(clean_env, key, value):
    clean_env.setenv(key, value)
    with pytest.raises(ConfigurationError):
        get_settings()


def test_missing_contract_raises(clean_env):
    clean_env.delenv("TOKEN_CONTRACT_ADDRESS")
    with pytest.raises(ConfigurationError, match="contract_address"):
        get_settings()


def test_with_overrides_revalidates(settings):
    assert settings.with_overrides(max_batch_span=7).max_batch_span == 7
    with pytest.raises(ConfigurationError):
        settings.with_overrides(max_batch_span=0)


def test_settings_are_frozen(settings):
    with pytest.raises(Exception):
        settings.max_batch_span = 5  # type: ignore[misc]


def test_mask_rpc_url():
    assert mask_rpc_url("https://eth-mainnet.g.alchemy.com/v2/secret") == "https://eth-mainnet.g.alchemy.com/v2/***"
    assert mask_rpc_url("https://rpc.test/?api-key=secret") == "https://rpc.test/?api-key=***"
    assert mask_rpc_url("http://localhost:8545") == "http://localhost:8545"
    assert mask_rpc_url("https://84532.rpc.thirdweb.com/client123") == "https://84532.rpc.thirdweb.com/***"
    assert mask_rpc_url("https://84532.rpc.thirdweb.com/client123/") == "https://84532.rpc.thirdweb.com/***"
    assert mask_rpc_url("http://127.0.0.1:8545/rpc") == "http://127.0.0.1:8545/rpc"
    assert mask_rpc_url("https://node.example") == "https://node.example"


def test_direct_construction_validates():
    with pytest.raises(ConfigurationError):
        IndexerSettings(rpc_url="http://x", contract_address=CONTRACT, central_relay_address="nope")
