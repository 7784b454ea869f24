"""JSON-RPC ledger client for Solana-compatible nodes."""

from __future__ import annotations

import base64
import itertools
import json
import logging
import random
import ssl
import time
from dataclasses import dataclass, field
from typing import Any, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import urlencode
from urllib.request import Request, urlopen

import base58

from escrow_client.constants import DEFAULT_COMMITMENT, MINT_DECIMALS_OFFSET
from escrow_client.pubkey import Pubkey

LOGGER = logging.getLogger(__name__)

# SPL token account layout: mint (32) | owner (32) | amount (u64) | ...
TOKEN_ACCOUNT_AMOUNT_OFFSET = 64


@dataclass
class RpcRequest:
    method: str
    params: Sequence[Any] = field(default_factory=list)


class RpcError(Exception):
    """Base exception for ledger RPC errors."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class RateLimitError(RpcError):
    """Raised when the node indicates that the rate limit has been exceeded."""

    def __init__(self, message: str, retry_after: float | None = None) -> None:
        super().__init__(message, code=429)
        self.retry_after = retry_after


class TransientRpcError(RpcError):
    """Raised for transient transport errors that may succeed on retry."""


class RpcClient:
    """Blocking JSON-RPC client with retry and rate-limit handling."""

    def __init__(
        self,
        rpc_url: str,
        *,
        api_key: str | None = None,
        commitment: str = DEFAULT_COMMITMENT,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        rate_limiter: Any | None = None,
        verify_ssl: bool = True,
        ssl_context: ssl.SSLContext | None = None,
    ) -> None:
        self.rpc_url = build_rpc_url(rpc_url, api_key)
        self.commitment = commitment
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._rate_limiter = rate_limiter
        self._ssl_context = ssl_context
        if ssl_context is None and verify_ssl:
            self._ssl_context = ssl.create_default_context()
        elif ssl_context is None and not verify_ssl:
            self._ssl_context = ssl._create_unverified_context()
            LOGGER.warning(
                "SSL certificate verification is DISABLED. "
                "Only use this against a local validator."
            )
        self._ids = itertools.count(1)

    def send(self, request: RpcRequest) -> Any:
        if self._rate_limiter is not None:
            self._rate_limiter.acquire()

        attempts = 0
        while True:
            try:
                return self._send_once(request)
            except RateLimitError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = exc.retry_after or compute_backoff(self.backoff_factor, attempts)
                LOGGER.warning("RPC rate limited on %s; retrying in %.2fs", request.method, delay)
                time.sleep(delay)
            except TransientRpcError:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                time.sleep(compute_backoff(self.backoff_factor, attempts))

    def _send_once(self, request: RpcRequest) -> Any:
        body = build_rpc_body(next(self._ids), request)
        http_request = Request(
            url=self.rpc_url,
            method="POST",
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            data=body,
        )
        try:
            with urlopen(
                http_request, timeout=self.timeout, context=self._ssl_context
            ) as response:
                payload = response.read().decode("utf8")
        except HTTPError as exc:
            if exc.code == 429:
                retry_after = parse_retry_after(exc.headers.get("Retry-After"))
                raise RateLimitError(
                    "Rate limit exceeded", retry_after=retry_after
                ) from exc
            if exc.code in {500, 502, 503, 504}:
                raise TransientRpcError(
                    f"Transient HTTP error {exc.code}", code=exc.code
                ) from exc
            payload = exc.read().decode("utf8") if exc.fp else ""
            raise RpcError(
                build_http_error_message(exc.code, payload), code=exc.code
            ) from exc
        except (URLError, TimeoutError) as exc:
            raise TransientRpcError("Network error while contacting RPC node") from exc
        return extract_result(request.method, payload)

    def get_account(self, pubkey: Pubkey) -> bytes | None:
        result = self.send(
            RpcRequest(
                "getAccountInfo",
                [str(pubkey), {"encoding": "base64", "commitment": self.commitment}],
            )
        )
        return parse_account_value(result.get("value"))

    def exists(self, pubkey: Pubkey) -> bool:
        return self.get_account(pubkey) is not None

    def get_accounts_by_prefix(
        self, program_id: Pubkey, prefix: bytes
    ) -> list[tuple[Pubkey, bytes]]:
        result = self.send(
            RpcRequest("getProgramAccounts", build_prefix_params(program_id, prefix, self.commitment))
        )
        return parse_program_accounts(result)

    def get_asset_holding(self, pubkey: Pubkey) -> int | None:
        return parse_token_amount(self.get_account(pubkey))

    def get_asset_decimals(self, mint: Pubkey) -> int:
        return parse_mint_decimals(mint, self.get_account(mint))

    def get_latest_blockhash(self) -> str:
        result = self.send(
            RpcRequest("getLatestBlockhash", [{"commitment": self.commitment}])
        )
        return str(result["value"]["blockhash"])


def build_rpc_url(rpc_url: str, api_key: str | None) -> str:
    url = rpc_url.rstrip("/")
    if not api_key:
        return url
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode({'api-key': api_key})}"


def build_rpc_body(request_id: int, request: RpcRequest) -> bytes:
    return json.dumps(
        {
            "jsonrpc": "2.0",
            "id": request_id,
            "method": request.method,
            "params": list(request.params),
        },
        separators=(",", ":"),
    ).encode("utf8")


def build_prefix_params(
    program_id: Pubkey, prefix: bytes, commitment: str
) -> list[Any]:
    return [
        str(program_id),
        {
            "encoding": "base64",
            "commitment": commitment,
            "filters": [
                {
                    "memcmp": {
                        "offset": 0,
                        "bytes": base58.b58encode(prefix).decode("ascii"),
                    }
                }
            ],
        },
    ]


def compute_backoff(backoff_factor: float, attempt: int) -> float:
    base = backoff_factor * (2 ** (attempt - 1))
    return base + random.uniform(0, base)


def parse_retry_after(header_value: str | None) -> float | None:
    if header_value is None:
        return None
    try:
        return float(header_value)
    except ValueError:
        return None


def build_http_error_message(status_code: int, payload: str) -> str:
    if payload:
        return f"HTTP error {status_code}: {payload}"
    return f"HTTP error {status_code}"


def extract_result(method: str, payload: str) -> Any:
    """Return the ``result`` member of a JSON-RPC response or raise ``RpcError``."""
    if not payload:
        raise RpcError(f"Empty response for {method}")
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise RpcError(f"Malformed JSON response for {method}: {exc}") from exc
    error = data.get("error") if isinstance(data, dict) else None
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        message = error.get("message") if isinstance(error, dict) else str(error)
        if code == 429:
            raise RateLimitError(f"{method}: {message}")
        raise RpcError(f"{method} failed: {message}", code=code)
    if not isinstance(data, dict) or "result" not in data:
        raise RpcError(f"Response for {method} has no result")
    return data["result"]


def decode_account_data(data: Any) -> bytes:
    if isinstance(data, list) and len(data) == 2 and data[1] == "base64":
        return base64.b64decode(data[0])
    raise RpcError(f"Unsupported account data encoding: {data!r}")


def parse_account_value(value: Any) -> bytes | None:
    if value is None:
        return None
    return decode_account_data(value.get("data"))


def parse_program_accounts(result: Any) -> list[tuple[Pubkey, bytes]]:
    # Some nodes wrap the list as {"context": ..., "value": [...]}.
    items = result.get("value", []) if isinstance(result, dict) else result or []
    accounts: list[tuple[Pubkey, bytes]] = []
    for item in items:
        accounts.append(
            (Pubkey(item["pubkey"]), decode_account_data(item["account"]["data"]))
        )
    return accounts


def parse_token_amount(data: bytes | None) -> int | None:
    if data is None:
        return None
    end = TOKEN_ACCOUNT_AMOUNT_OFFSET + 8
    if len(data) < end:
        raise RpcError(f"Token account data too short: {len(data)} bytes")
    return int.from_bytes(data[TOKEN_ACCOUNT_AMOUNT_OFFSET:end], "little")


def parse_mint_decimals(mint: Pubkey, data: bytes | None) -> int:
    if data is None:
        raise RpcError(f"Mint {mint} not found")
    if len(data) <= MINT_DECIMALS_OFFSET:
        raise RpcError(f"Mint {mint} data too short: {len(data)} bytes")
    return data[MINT_DECIMALS_OFFSET]
