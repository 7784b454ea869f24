"""Configuration validation utilities for the escrow client."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any

COMMITMENTS = {"processed", "confirmed", "finalized"}


class ConfigValidationError(ValueError):
    """Raised when configuration validation fails."""


def validate_url(config: dict[str, Any], field: str = "rpc_url") -> None:
    """Validate that a URL field is properly formatted."""
    if field not in config:
        return  # defaults to the public devnet endpoint

    url = config[field]
    if not isinstance(url, str) or not url.strip():
        raise ConfigValidationError(f"{field} must be a non-empty string")

    if not re.match(r"^https?://", url, re.IGNORECASE):
        raise ConfigValidationError(
            f"{field} must start with http:// or https://, got: {url}"
        )


def validate_positive_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a positive decimal value."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc

    if decimal_value <= 0:
        raise ConfigValidationError(f"{field} must be positive, got: {decimal_value}")


def validate_non_negative_decimal(
    config: dict[str, Any], field: str, *, required: bool = True
) -> None:
    """Validate that a field is a non-negative decimal value."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    try:
        decimal_value = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ConfigValidationError(
            f"{field} must be a valid number, got: {value}"
        ) from exc

    if decimal_value < 0:
        raise ConfigValidationError(
            f"{field} must be non-negative, got: {decimal_value}"
        )


def validate_integer(
    config: dict[str, Any], field: str, *, required: bool = True, minimum: int = 0
) -> None:
    """Validate that a field is an integer no smaller than ``minimum``."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, int) or isinstance(value, bool):
        raise ConfigValidationError(
            f"{field} must be an integer, got: {type(value).__name__}"
        )

    if value < minimum:
        raise ConfigValidationError(f"{field} must be >= {minimum}, got: {value}")


def validate_choice(
    config: dict[str, Any], field: str, choices: set[str], *, required: bool = True
) -> None:
    """Validate that a field is one of the allowed choices."""
    if field not in config:
        if required:
            raise ConfigValidationError(f"Missing required field: {field}")
        return

    value = config[field]
    if not isinstance(value, str):
        raise ConfigValidationError(
            f"{field} must be a string, got: {type(value).__name__}"
        )

    if value not in choices:
        choices_str = ", ".join(sorted(choices))
        raise ConfigValidationError(
            f"{field} must be one of [{choices_str}], got: {value}"
        )


def validate_boolean(config: dict[str, Any], field: str) -> None:
    if field in config and not isinstance(config[field], bool):
        raise ConfigValidationError(
            f"{field} must be true or false, got: {config[field]!r}"
        )


def validate_config(config: dict[str, Any]) -> None:
    """Validate a client configuration mapping."""
    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a mapping")

    validate_url(config)
    validate_choice(config, "commitment", COMMITMENTS, required=False)
    validate_positive_decimal(config, "rpc_timeout_sec", required=False)
    validate_integer(config, "rpc_retries", required=False, minimum=0)
    validate_non_negative_decimal(config, "rpc_backoff_factor", required=False)
    validate_positive_decimal(config, "rate_limit_per_sec", required=False)
    validate_boolean(config, "use_token_extensions")
    validate_boolean(config, "verify_ssl")

    if "rpc_api_key" in config:
        api_key = config["rpc_api_key"]
        if not isinstance(api_key, str) or not api_key.strip():
            raise ConfigValidationError("rpc_api_key must be a non-empty string")
