"""Tests for the blocking JSON-RPC ledger client."""

from __future__ import annotations

import base64
import io
import json
from typing import Any, Literal
from unittest.mock import patch
from urllib.error import HTTPError, URLError

import base58
import pytest

from escrow_client.constants import OFFER_DISCRIMINATOR
from escrow_client.pubkey import Pubkey
from escrow_client.rpc import (
    RateLimitError,
    RpcClient,
    RpcError,
    RpcRequest,
    TransientRpcError,
    build_rpc_url,
    extract_result,
    parse_mint_decimals,
    parse_retry_after,
    parse_token_amount,
)
from escrow_fakes import MINT_A, TAKER


class FakeResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._payload = payload

    def read(self) -> bytes:
        return json.dumps(self._payload).encode("utf8")

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, exc_type, exc, tb) -> Literal[False]:
        return False


def _result(value: Any) -> FakeResponse:
    return FakeResponse({"jsonrpc": "2.0", "id": 1, "result": value})


def _account(data: bytes) -> dict[str, Any]:
    return {
        "data": [base64.b64encode(data).decode("ascii"), "base64"],
        "executable": False,
        "lamports": 2039280,
        "owner": "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
    }


def _token_account(amount: int) -> bytes:
    return bytes(MINT_A) + bytes(TAKER) + amount.to_bytes(8, "little") + bytes(93)


def test_rpc_request_body_and_headers() -> None:
    client = RpcClient("https://rpc.example/", api_key="secret-key", timeout=4.0)
    captured: dict[str, Any] = {}

    def fake_urlopen(request, timeout=10.0, context=None):
        captured["request"] = request
        captured["timeout"] = timeout
        return _result({"context": {"slot": 1}, "value": None})

    with patch("escrow_client.rpc.urlopen", side_effect=fake_urlopen):
        assert client.get_account(TAKER) is None

    request = captured["request"]
    body = json.loads(request.data)
    assert request.full_url == "https://rpc.example?api-key=secret-key"
    assert request.get_method() == "POST"
    assert request.headers["Content-type"] == "application/json"
    assert body["jsonrpc"] == "2.0"
    assert body["method"] == "getAccountInfo"
    assert body["params"] == [
        str(TAKER),
        {"encoding": "base64", "commitment": "confirmed"},
    ]
    assert captured["timeout"] == 4.0


def test_get_account_decodes_base64_data() -> None:
    client = RpcClient("https://rpc.example")
    data = b"\x01\x02\x03"

    with patch(
        "escrow_client.rpc.urlopen",
        return_value=_result({"context": {"slot": 1}, "value": _account(data)}),
    ):
        assert client.get_account(TAKER) == data


def test_get_asset_holding_reads_amount_at_offset_64() -> None:
    client = RpcClient("https://rpc.example")
    response = _result({"context": {"slot": 1}, "value": _account(_token_account(2_000_000_000))})

    with patch("escrow_client.rpc.urlopen", return_value=response):
        assert client.get_asset_holding(TAKER) == 2_000_000_000


def test_get_asset_holding_returns_none_for_missing_account() -> None:
    client = RpcClient("https://rpc.example")

    with patch(
        "escrow_client.rpc.urlopen",
        return_value=_result({"context": {"slot": 1}, "value": None}),
    ):
        assert client.get_asset_holding(TAKER) is None
        assert client.exists(TAKER) is False


def test_get_accounts_by_prefix_sends_memcmp_filter() -> None:
    client = RpcClient("https://rpc.example", commitment="finalized")
    address = Pubkey(b"\x09" * 32)
    captured: dict[str, Any] = {}

    def fake_urlopen(request, timeout=10.0, context=None):
        captured["body"] = json.loads(request.data)
        return _result([{"pubkey": str(address), "account": _account(b"offer-bytes")}])

    with patch("escrow_client.rpc.urlopen", side_effect=fake_urlopen):
        accounts = client.get_accounts_by_prefix(MINT_A, OFFER_DISCRIMINATOR)

    assert accounts == [(address, b"offer-bytes")]
    program, options = captured["body"]["params"]
    assert program == str(MINT_A)
    assert options["commitment"] == "finalized"
    memcmp = options["filters"][0]["memcmp"]
    assert memcmp["offset"] == 0
    assert base58.b58decode(memcmp["bytes"]) == OFFER_DISCRIMINATOR


def test_get_asset_decimals_and_blockhash() -> None:
    client = RpcClient("https://rpc.example")
    mint_data = bytes(44) + b"\x06" + bytes(37)
    responses = [
        _result({"context": {"slot": 1}, "value": _account(mint_data)}),
        _result({"context": {"slot": 1}, "value": {"blockhash": "Hash111", "lastValidBlockHeight": 9}}),
    ]

    with patch("escrow_client.rpc.urlopen", side_effect=responses):
        assert client.get_asset_decimals(MINT_A) == 6
        assert client.get_latest_blockhash() == "Hash111"


def test_rpc_error_member_raises() -> None:
    client = RpcClient("https://rpc.example")
    response = FakeResponse(
        {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Invalid param"}}
    )

    with (
        patch("escrow_client.rpc.urlopen", return_value=response),
        pytest.raises(RpcError) as exc_info,
    ):
        client.get_account(TAKER)

    assert exc_info.value.code == -32602
    assert "Invalid param" in str(exc_info.value)


def test_send_retries_on_transient_url_error() -> None:
    client = RpcClient("https://rpc.example", max_retries=2, backoff_factor=0.5)
    call_count = {"count": 0}
    sleep_calls: list[float] = []

    def fake_urlopen(request, timeout=10.0, context=None):
        call_count["count"] += 1
        if call_count["count"] == 1:
            raise URLError("temporary failure")
        return _result({"context": {"slot": 1}, "value": None})

    with (
        patch("escrow_client.rpc.urlopen", side_effect=fake_urlopen),
        patch("escrow_client.rpc.time.sleep", side_effect=sleep_calls.append),
        patch("escrow_client.rpc.random.uniform", return_value=0.0),
    ):
        client.send(RpcRequest("getAccountInfo", [str(TAKER)]))

    assert call_count["count"] == 2
    assert sleep_calls == [0.5]


def test_send_honors_retry_after_on_429() -> None:
    client = RpcClient("https://rpc.example", max_retries=1, backoff_factor=0)
    sleep_calls: list[float] = []
    call_count = {"count": 0}

    def fake_urlopen(request, timeout=10.0, context=None):
        call_count["count"] += 1
        if call_count["count"] == 1:
            raise HTTPError(
                "https://rpc.example", 429, "Too Many Requests", {"Retry-After": "2"}, None
            )
        return _result({"value": {"blockhash": "Hash222"}})

    with (
        patch("escrow_client.rpc.urlopen", side_effect=fake_urlopen),
        patch("escrow_client.rpc.time.sleep", side_effect=sleep_calls.append),
    ):
        assert client.get_latest_blockhash() == "Hash222"

    assert sleep_calls == [2.0]


def test_send_gives_up_after_max_retries() -> None:
    client = RpcClient("https://rpc.example", max_retries=1, backoff_factor=0)

    def fake_urlopen(request, timeout=10.0, context=None):
        raise HTTPError("https://rpc.example", 503, "Unavailable", {}, None)

    with (
        patch("escrow_client.rpc.urlopen", side_effect=fake_urlopen),
        patch("escrow_client.rpc.time.sleep"),
        pytest.raises(TransientRpcError),
    ):
        client.get_latest_blockhash()


def test_non_transient_http_error_includes_body() -> None:
    client = RpcClient("https://rpc.example", max_retries=3)

    def fake_urlopen(request, timeout=10.0, context=None):
        raise HTTPError(
            "https://rpc.example", 401, "Unauthorized", {}, io.BytesIO(b"bad api key")
        )

    with (
        patch("escrow_client.rpc.urlopen", side_effect=fake_urlopen),
        pytest.raises(RpcError) as exc_info,
    ):
        client.get_latest_blockhash()

    assert not isinstance(exc_info.value, TransientRpcError)
    assert exc_info.value.code == 401
    assert "bad api key" in str(exc_info.value)


def test_send_acquires_rate_limiter() -> None:
    class CountingLimiter:
        def __init__(self) -> None:
            self.calls = 0

        def acquire(self) -> None:
            self.calls += 1

    limiter = CountingLimiter()
    client = RpcClient("https://rpc.example", rate_limiter=limiter)

    with patch("escrow_client.rpc.urlopen", return_value=_result({"value": None})):
        client.get_account(TAKER)

    assert limiter.calls == 1


def test_build_rpc_url_appends_api_key() -> None:
    assert build_rpc_url("https://rpc.example/", None) == "https://rpc.example"
    assert build_rpc_url("https://rpc.example?x=1", "k") == "https://rpc.example?x=1&api-key=k"


@pytest.mark.parametrize("value", [None, "soon"])
def test_parse_retry_after_returns_none(value: str | None) -> None:
    assert parse_retry_after(value) is None


def test_extract_result_maps_rate_limit_code() -> None:
    payload = json.dumps({"error": {"code": 429, "message": "slow down"}})
    with pytest.raises(RateLimitError):
        extract_result("getAccountInfo", payload)
    with pytest.raises(RpcError):
        extract_result("getAccountInfo", "not json")
    with pytest.raises(RpcError):
        extract_result("getAccountInfo", "")


def test_account_layout_parsers() -> None:
    assert parse_token_amount(None) is None
    assert parse_token_amount(_token_account(77)) == 77
    with pytest.raises(RpcError):
        parse_token_amount(b"\x00" * 10)
    with pytest.raises(RpcError):
        parse_mint_decimals(MINT_A, None)
    with pytest.raises(RpcError):
        parse_mint_decimals(MINT_A, bytes(44))
