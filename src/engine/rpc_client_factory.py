"""
Centralized RPC client factory.

The CLI and any embedding application build ledger clients here so that
endpoint, credentials, retries and rate limits are resolved in one place.
"""

from __future__ import annotations

from typing import Any

from escrow_client.async_rpc import AsyncRpcClient
from escrow_client.constants import DEFAULT_COMMITMENT, DEFAULT_RPC_URL
from escrow_client.rpc import RpcClient
from utils.credentials import DEFAULT_SERVICE_NAME, load_rpc_api_key
from utils.rate_limiter import AsyncRateLimiter, RateLimitConfig, RateLimiter


def _client_kwargs(config: dict[str, Any]) -> dict[str, Any]:
    return {
        "api_key": load_rpc_api_key(DEFAULT_SERVICE_NAME, config),
        "commitment": config.get("commitment", DEFAULT_COMMITMENT),
        "timeout": float(config.get("rpc_timeout_sec", 10.0)),
        "max_retries": int(config.get("rpc_retries", 3)),
        "backoff_factor": float(config.get("rpc_backoff_factor", 0.5)),
        "verify_ssl": bool(config.get("verify_ssl", True)),
    }


def build_rpc_client(config: dict[str, Any]) -> RpcClient:
    """
    Build a blocking RPC client from config.

    Args:
        config: Configuration dict containing:
            - rpc_url: str (default: public devnet endpoint)
            - commitment: str (default: "confirmed")
            - rpc_timeout_sec: float (default: 10.0)
            - rpc_retries: int (default: 3)
            - rpc_backoff_factor: float (default: 0.5)
            - rate_limit_per_sec: float (optional)
            - rpc_api_key: str (optional, ``${ENV}`` allowed; falls back to
              ESCROW_RPC_API_KEY and the OS keychain)

    Example:
        >>> client = build_rpc_client({"rpc_url": "http://127.0.0.1:8899"})
    """
    rate = config.get("rate_limit_per_sec")
    limiter = RateLimiter(RateLimitConfig.per_second(float(rate))) if rate else None
    return RpcClient(
        config.get("rpc_url", DEFAULT_RPC_URL),
        rate_limiter=limiter,
        **_client_kwargs(config),
    )


def build_async_rpc_client(config: dict[str, Any]) -> AsyncRpcClient:
    """Async counterpart of ``build_rpc_client``; same config keys."""
    rate = config.get("rate_limit_per_sec")
    limiter = (
        AsyncRateLimiter(RateLimitConfig.per_second(float(rate))) if rate else None
    )
    return AsyncRpcClient(
        config.get("rpc_url", DEFAULT_RPC_URL),
        rate_limiter=limiter,
        **_client_kwargs(config),
    )
