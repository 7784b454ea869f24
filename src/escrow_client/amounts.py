"""Fixed-point token amount helpers.

Amounts travel on-chain as unsigned 64-bit integers scaled by the mint's
decimal count. Parsing truncates fractional digits beyond ``decimals``; it
never rounds.
"""

from __future__ import annotations

import re

from escrow_client.constants import U64_MAX
from escrow_client.errors import InvalidAmount

_DIGITS = re.compile(r"[0-9]*")


def split_amount(text: str) -> tuple[str, str]:
    """Check decimal syntax and return the whole and fractional digit strings.

    Needs no decimals, so callers can reject malformed text before any lookup.
    """
    if not isinstance(text, str):
        raise InvalidAmount(f"Amount must be a string, got {type(text).__name__}")
    parts = text.strip().split(".")
    if len(parts) > 2:
        raise InvalidAmount(f"Invalid amount: {text!r}", text)
    whole = parts[0]
    fractional = parts[1] if len(parts) == 2 else ""
    if not _DIGITS.fullmatch(whole) or not _DIGITS.fullmatch(fractional):
        raise InvalidAmount(f"Invalid amount: {text!r}", text)
    return whole, fractional


def parse_amount(text: str, decimals: int) -> int:
    """Convert a decimal string such as ``"1.5"`` into base units."""
    whole, fractional = split_amount(text)
    _check_decimals(decimals)
    whole_value = int(whole or "0")
    fractional_value = int(fractional.ljust(decimals, "0")[:decimals] or "0")
    amount = whole_value * 10**decimals + fractional_value
    if amount > U64_MAX:
        raise InvalidAmount(f"Amount {text!r} overflows a u64 at {decimals} decimals", text)
    return amount


def format_amount(amount: int, decimals: int) -> str:
    """Render base units as a trimmed decimal string."""
    if amount < 0:
        raise InvalidAmount(f"Amount cannot be negative: {amount}")
    _check_decimals(decimals)
    divisor = 10**decimals
    whole, fractional = divmod(amount, divisor)
    if fractional == 0:
        return str(whole)
    fractional_text = str(fractional).rjust(decimals, "0").rstrip("0")
    return f"{whole}.{fractional_text}"


def _check_decimals(decimals: int) -> None:
    if isinstance(decimals, bool) or not isinstance(decimals, int):
        raise InvalidAmount(f"Decimals must be an integer, got {decimals!r}")
    if not 0 <= decimals <= 255:
        raise InvalidAmount(f"Decimals must be within [0, 255], got {decimals}")
