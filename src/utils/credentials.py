"""Credential loading helpers for the RPC endpoint."""

from __future__ import annotations

import os
import re
from typing import Mapping

import keyring
from keyring.errors import KeyringError

DEFAULT_SERVICE_NAME = "escrow-client"
DEFAULT_API_KEY_ENV = "ESCROW_RPC_API_KEY"
DEFAULT_API_KEY_USERNAME = "rpc_api_key"
_ENV_PATTERN = re.compile(r"^\$\{([A-Z0-9_]+)\}$")


def load_rpc_api_key(
    service_name: str = DEFAULT_SERVICE_NAME,
    config: Mapping[str, object] | None = None,
    *,
    api_key_env: str = DEFAULT_API_KEY_ENV,
    api_key_username: str = DEFAULT_API_KEY_USERNAME,
) -> str | None:
    """Load the RPC api key from config, env var, or keyring in order.

    Public endpoints need no key, so a missing key returns None.
    """
    api_key = _resolve_value(config, "rpc_api_key")
    if not api_key:
        api_key = _clean_value(os.getenv(api_key_env))
    if not api_key:
        api_key = _get_keyring_value(service_name, api_key_username)
    return api_key


def store_rpc_api_key(
    api_key: str,
    service_name: str = DEFAULT_SERVICE_NAME,
    *,
    api_key_username: str = DEFAULT_API_KEY_USERNAME,
) -> None:
    """Store the RPC api key in the OS keychain via keyring."""
    api_key_value = _clean_value(api_key)
    if not api_key_value:
        raise ValueError("rpc api key must be a non-empty string.")
    try:
        keyring.set_password(service_name, api_key_username, api_key_value)
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to store the RPC api key in the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc


def _resolve_value(config: Mapping[str, object] | None, key: str) -> str | None:
    if not config or key not in config:
        return None
    raw = config.get(key)
    if not isinstance(raw, str):
        return _clean_value(str(raw)) if raw is not None else None
    raw = raw.strip()
    if not raw:
        return None
    match = _ENV_PATTERN.match(raw)
    if match:
        return _clean_value(os.getenv(match.group(1)))
    return _clean_value(raw)


def _clean_value(value: str | None) -> str | None:
    if value is None:
        return None
    candidate = value.strip()
    return candidate or None


def _get_keyring_value(service_name: str, username: str) -> str | None:
    try:
        return _clean_value(keyring.get_password(service_name, username))
    except KeyringError as exc:
        raise RuntimeError(
            "Failed to access the OS keychain. "
            "Ensure a keyring backend is available."
        ) from exc
