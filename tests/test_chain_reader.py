"""
Tests for the JSON-RPC chain reader using httpx.MockTransport (no network).
"""

from __future__ import annotations

import json

import httpx
import pytest

from backend_indexer.chain_reader import JsonRpcChainReader
from backend_indexer.chain_reader.reader import TRANSFER_TOPIC
from backend_indexer.core.exceptions import RangeTooLargeError, RpcError, TransientRpcError

CONTRACT = "0x" + "11" * 20
TX = "0x" + "ab" * 32


def _reader(handler, *, max_retries: int = 3, sleeps: list | None = None) -> JsonRpcChainReader:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return JsonRpcChainReader(
        "http://node.test/rpc",
        max_retries=max_retries,
        client=client,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
    )


def _ok(request: httpx.Request, result) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


def _rpc_error(request: httpx.Request, code: int, message: str, status: int = 200) -> httpx.Response:
    body = json.loads(request.content)
    return httpx.Response(status, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": code, "message": message}})


def test_latest_height_decodes_hex():
    reader = _reader(lambda req: _ok(req, "0x1b4"))
    assert reader.latest_height() == 436


def test_get_logs_sends_filter_and_parses_entries():
    seen = {}

    def handler(request):
        body = json.loads(request.content)
        seen.update(body)
        return _ok(
            request,
            [
                {
                    "address": CONTRACT.upper().replace("0X", "0x"),
                    "blockNumber": "0x78",
                    "transactionHash": TX.upper().replace("0X", "0x"),
                    "logIndex": "0x2",
                    "topics": [TRANSFER_TOPIC, "0x" + "00" * 32, "0x" + "00" * 12 + "bb" * 20],
                    "data": "0x" + f"{10**18:064x}",
                    "removed": False,
                },
                {
                    "address": CONTRACT,
                    "blockNumber": "0x79",
                    "transactionHash": "0x" + "cd" * 32,
                    "logIndex": "0x0",
                    "topics": [TRANSFER_TOPIC],
                    "data": "0x",
                    "removed": True,
                },
            ],
        )

    reader = _reader(handler)
    logs = reader.get_logs(100, 199, address=CONTRACT)

    assert seen["method"] == "eth_getLogs"
    params = seen["params"][0]
    assert params["fromBlock"] == "0x64"
    assert params["toBlock"] == "0xc7"
    assert params["address"] == CONTRACT
    assert params["topics"] == [TRANSFER_TOPIC]

    # removed (reorged) entries are dropped
    assert len(logs) == 1
    log = logs[0]
    assert log.transaction_hash == TX
    assert log.block_number == 120
    assert log.log_index == 2
    assert log.address == CONTRACT
    assert int.from_bytes(log.data, "big") == 10**18
    assert len(log.topics) == 3


def test_get_logs_inverted_range_rejected():
    reader = _reader(lambda req: _ok(req, []))
    with pytest.raises(ValueError):
        reader.get_logs(200, 100, address=CONTRACT)


def test_range_rejection_maps_to_range_too_large():
    reader = _reader(lambda req: _rpc_error(req, -32602, "query exceeds max block range 1000", status=400))
    with pytest.raises(RangeTooLargeError) as exc:
        reader.get_logs(100, 5000, address=CONTRACT)
    assert exc.value.from_block == 100
    assert exc.value.to_block == 5000


def test_transient_errors_retry_with_backoff_then_succeed():
    calls = {"n": 0}
    sleeps: list[float] = []

    def handler(request):
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(503, text="upstream unavailable")
        return _ok(request, "0x10")

    reader = _reader(handler, sleeps=sleeps)
    assert reader.latest_height() == 16
    assert calls["n"] == 3
    assert sleeps == [0.5, 1.0]


def test_transient_errors_give_up_after_max_retries():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return httpx.Response(429, text="slow down")

    reader = _reader(handler, max_retries=2)
    with pytest.raises(TransientRpcError):
        reader.latest_height()
    assert calls["n"] == 2


def test_timeout_is_transient():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    reader = _reader(handler, max_retries=1)
    with pytest.raises(TransientRpcError):
        reader.latest_height()


def test_client_error_is_not_retried():
    calls = {"n": 0}

    def handler(request):
        calls["n"] += 1
        return _rpc_error(request, -32601, "method not found")

    reader = _reader(handler)
    with pytest.raises(RpcError) as exc:
        reader.latest_height()
    assert not isinstance(exc.value, TransientRpcError)
    assert calls["n"] == 1


def test_missing_receipt_is_transient():
    reader = _reader(lambda req: _ok(req, None), max_retries=1)
    with pytest.raises(TransientRpcError):
        reader.get_receipt(TX)


def test_receipt_and_block_parse():
    def handler(request):
        body = json.loads(request.content)
        if body["method"] == "eth_getTransactionReceipt":
            return _ok(request, {"transactionHash": TX, "from": "0x" + "AA" * 20, "blockNumber": "0x78", "status": "0x1"})
        return _ok(request, {"number": "0x78", "timestamp": "0x6553f100"})

    reader = _reader(handler)
    receipt = reader.get_receipt(TX)
    assert receipt.from_address == "0x" + "aa" * 20
    assert receipt.block_number == 120
    assert receipt.status == 1
    block = reader.get_block(120)
    assert block.number == 120
    assert block.timestamp == 0x6553F100


def test_malformed_response_is_rpc_error():
    reader = _reader(lambda req: httpx.Response(200, text="<html>oops</html>"))
    with pytest.raises(RpcError):
        reader.latest_height()


def test_requires_rpc_url():
    with pytest.raises(ValueError):
        JsonRpcChainReader("  ")


def test_undecodable_log_item_becomes_placeholder():
    bad = {
        "address": CONTRACT,
        "blockNumber": "0x79",
        "transactionHash": TX,
        "logIndex": "0x3",
        "topics": [TRANSFER_TOPIC, "0xzz"],
        "data": "0x",
    }
    reader = _reader(lambda req: _ok(req, [bad, 42]))

    logs = reader.get_logs(100, 199, address=CONTRACT)

    assert [(e.transaction_hash, e.block_number, e.log_index) for e in logs] == [(TX, 121, 3), ("", 100, 0)]
    assert all(e.decode_error for e in logs)
    assert logs[0].topics == ()


@pytest.mark.parametrize("result", [None, "0xzz", ["0x1"]])
def test_undecodable_block_number_is_rpc_error(result):
    reader = _reader(lambda req: _ok(req, result))
    with pytest.raises(RpcError, match="eth_blockNumber"):
        reader.latest_height()


def test_undecodable_receipt_is_rpc_error():
    reader = _reader(lambda req: _ok(req, {"transactionHash": TX}))
    with pytest.raises(RpcError, match="Undecodable receipt"):
        reader.get_receipt(TX)
