"""Async JSON-RPC ledger client built on aiohttp."""

from __future__ import annotations

import asyncio
import itertools
import logging
import ssl
from typing import Any

import aiohttp

from escrow_client.constants import DEFAULT_COMMITMENT
from escrow_client.pubkey import Pubkey
from escrow_client.rpc import (
    RateLimitError,
    RpcError,
    RpcRequest,
    TransientRpcError,
    build_http_error_message,
    build_prefix_params,
    build_rpc_body,
    build_rpc_url,
    compute_backoff,
    extract_result,
    parse_account_value,
    parse_mint_decimals,
    parse_program_accounts,
    parse_retry_after,
    parse_token_amount,
)

LOGGER = logging.getLogger(__name__)


class AsyncRpcClient:
    """Async JSON-RPC client with retry and rate-limit handling."""

    def __init__(
        self,
        rpc_url: str,
        *,
        api_key: str | None = None,
        commitment: str = DEFAULT_COMMITMENT,
        timeout: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 0.5,
        session: aiohttp.ClientSession | None = None,
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
        self._session = session
        self._owns_session = session is None
        self._ids = itertools.count(1)

    async def send(self, request: RpcRequest) -> Any:
        if self._rate_limiter is not None:
            await self._rate_limiter.acquire()

        attempts = 0
        while True:
            try:
                return await self._send_once(request)
            except RateLimitError as exc:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                delay = exc.retry_after or compute_backoff(self.backoff_factor, attempts)
                LOGGER.warning("RPC rate limited on %s; retrying in %.2fs", request.method, delay)
                await asyncio.sleep(delay)
            except TransientRpcError:
                attempts += 1
                if attempts > self.max_retries:
                    raise
                await asyncio.sleep(compute_backoff(self.backoff_factor, attempts))

    async def _send_once(self, request: RpcRequest) -> Any:
        body = build_rpc_body(next(self._ids), request)
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        session = await self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with session.request(
                "POST", self.rpc_url, headers=headers, data=body, timeout=timeout
            ) as response:
                payload = await response.text()
                if response.status == 429:
                    raise RateLimitError(
                        "Rate limit exceeded",
                        retry_after=parse_retry_after(response.headers.get("Retry-After")),
                    )
                if response.status in {500, 502, 503, 504}:
                    raise TransientRpcError(
                        f"Transient HTTP error {response.status}", code=response.status
                    )
                if response.status >= 400:
                    raise RpcError(
                        build_http_error_message(response.status, payload),
                        code=response.status,
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransientRpcError("Network error while contacting RPC node") from exc
        return extract_result(request.method, payload)

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            self._owns_session = False

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            connector = aiohttp.TCPConnector(ssl=self._ssl_context)
            self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self._session

    async def get_account(self, pubkey: Pubkey) -> bytes | None:
        result = await self.send(
            RpcRequest(
                "getAccountInfo",
                [str(pubkey), {"encoding": "base64", "commitment": self.commitment}],
            )
        )
        return parse_account_value(result.get("value"))

    async def exists(self, pubkey: Pubkey) -> bool:
        return await self.get_account(pubkey) is not None

    async def get_accounts_by_prefix(
        self, program_id: Pubkey, prefix: bytes
    ) -> list[tuple[Pubkey, bytes]]:
        result = await self.send(
            RpcRequest("getProgramAccounts", build_prefix_params(program_id, prefix, self.commitment))
        )
        return parse_program_accounts(result)

    async def get_asset_holding(self, pubkey: Pubkey) -> int | None:
        return parse_token_amount(await self.get_account(pubkey))

    async def get_asset_decimals(self, mint: Pubkey) -> int:
        return parse_mint_decimals(mint, await self.get_account(mint))

    async def get_latest_blockhash(self) -> str:
        result = await self.send(
            RpcRequest("getLatestBlockhash", [{"commitment": self.commitment}])
        )
        return str(result["value"]["blockhash"])
