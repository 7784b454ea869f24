"""Public key type and program-derived address derivation."""

from __future__ import annotations

import hashlib
from typing import Sequence

import base58

from escrow_client.constants import MAX_SEED_LENGTH, MAX_SEEDS, PDA_MARKER
from escrow_client.errors import DerivationExhausted, InvalidInput

# Edwards25519 field prime and curve constant d = -121665/121666.
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P
_Y_MASK = (1 << 255) - 1


class Pubkey:
    """Immutable 32-byte account address with a base58 text form."""

    LENGTH = 32

    __slots__ = ("_raw",)

    def __init__(self, value: bytes | bytearray | str | "Pubkey") -> None:
        if isinstance(value, Pubkey):
            raw = bytes(value)
        elif isinstance(value, str):
            raw = _decode_base58(value)
        elif isinstance(value, (bytes, bytearray)):
            raw = bytes(value)
        else:
            raise InvalidInput(
                f"Cannot build a public key from {type(value).__name__}"
            )
        if len(raw) != self.LENGTH:
            raise InvalidInput(
                f"Public key must be {self.LENGTH} bytes, got {len(raw)}"
            )
        self._raw = raw

    @classmethod
    def from_string(cls, text: str) -> "Pubkey":
        return cls(text.strip())

    def __bytes__(self) -> bytes:
        return self._raw

    def __str__(self) -> str:
        return base58.b58encode(self._raw).decode("ascii")

    def __repr__(self) -> str:
        return f"Pubkey({str(self)!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Pubkey):
            return self._raw == other._raw
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._raw)

    def is_on_curve(self) -> bool:
        return is_on_curve(self._raw)


def _decode_base58(text: str) -> bytes:
    try:
        return base58.b58decode(text)
    except ValueError as exc:
        raise InvalidInput(f"Invalid base58 public key: {text!r}") from exc


def is_on_curve(data: bytes) -> bool:
    """Return True when ``data`` decompresses to an ed25519 point.

    Mirrors compressed Edwards-y decompression: the sign bit is ignored and the
    point exists iff (y^2 - 1) / (d*y^2 + 1) is a square in GF(p).
    """
    if len(data) != Pubkey.LENGTH:
        raise InvalidInput(f"Expected {Pubkey.LENGTH} bytes, got {len(data)}")
    y = (int.from_bytes(data, "little") & _Y_MASK) % _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def _validate_seeds(seeds: Sequence[bytes]) -> None:
    if len(seeds) > MAX_SEEDS:
        raise InvalidInput(f"At most {MAX_SEEDS} seeds are allowed, got {len(seeds)}")
    for index, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LENGTH:
            raise InvalidInput(
                f"Seed {index} is {len(seed)} bytes; maximum is {MAX_SEED_LENGTH}"
            )


def _hash_seeds(seeds: Sequence[bytes], program_id: Pubkey) -> bytes:
    hasher = hashlib.sha256()
    for seed in seeds:
        hasher.update(seed)
    hasher.update(bytes(program_id))
    hasher.update(PDA_MARKER)
    return hasher.digest()


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Hash ``seeds`` (bump included) under ``program_id``.

    Raises:
        InvalidInput: If the seeds are malformed or the hash lands on the curve.
    """
    _validate_seeds(seeds)
    candidate = _hash_seeds(seeds, program_id)
    if is_on_curve(candidate):
        raise InvalidInput("Seeds produce an on-curve address")
    return Pubkey(candidate)


def find_program_address(
    seeds: Sequence[bytes], program_id: Pubkey
) -> tuple[Pubkey, int]:
    """Return the canonical program-derived address and its bump.

    Bumps are tried from 255 down to 0; the first off-curve hash wins.
    """
    seeds = [bytes(seed) for seed in seeds]
    _validate_seeds([*seeds, b"\x00"])
    for bump in range(255, -1, -1):
        candidate = _hash_seeds([*seeds, bytes([bump])], program_id)
        if not is_on_curve(candidate):
            return Pubkey(candidate), bump
    raise DerivationExhausted(
        f"No off-curve address found for program {program_id}"
    )
