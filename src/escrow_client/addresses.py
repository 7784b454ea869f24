"""Deterministic address derivation for offers, vaults and holding accounts."""

from __future__ import annotations

from functools import lru_cache

from escrow_client.constants import (
    ASSOCIATED_TOKEN_PROGRAM_ID,
    ESCROW_PROGRAM_ID,
    OFFER_SEED,
    U64_MAX,
    token_program_id,
)
from escrow_client.errors import InvalidInput
from escrow_client.pubkey import Pubkey, find_program_address

ESCROW_PROGRAM = Pubkey(ESCROW_PROGRAM_ID)
ASSOCIATED_TOKEN_PROGRAM = Pubkey(ASSOCIATED_TOKEN_PROGRAM_ID)


def encode_u64(value: int) -> bytes:
    """Little-endian 8-byte encoding used by seeds and instruction args."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInput(f"Expected an integer, got {value!r}")
    if not 0 <= value <= U64_MAX:
        raise InvalidInput(f"Value {value} does not fit in a u64")
    return value.to_bytes(8, "little")


@lru_cache(maxsize=1024)
def derive_offer_address(
    offer_id: int, program_id: Pubkey = ESCROW_PROGRAM
) -> tuple[Pubkey, int]:
    """Return the offer record address and bump for ``offer_id``."""
    return find_program_address([OFFER_SEED, encode_u64(offer_id)], program_id)


@lru_cache(maxsize=4096)
def derive_holding_address(
    owner: Pubkey,
    mint: Pubkey,
    token_program: Pubkey,
    *,
    allow_owner_off_curve: bool = False,
) -> Pubkey:
    """Return the associated holding account of ``owner`` for ``mint``.

    Raises:
        InvalidInput: If ``owner`` is off-curve and that was not allowed.
    """
    if not allow_owner_off_curve and not owner.is_on_curve():
        raise InvalidInput(
            f"Owner {owner} is off-curve; pass allow_owner_off_curve for program-derived owners"
        )
    address, _ = find_program_address(
        [bytes(owner), bytes(token_program), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM
    )
    return address


def derive_token_account(
    owner: Pubkey, mint: Pubkey, use_token_extensions: bool = False
) -> Pubkey:
    """Holding account for a wallet owner."""
    return derive_holding_address(
        owner, mint, Pubkey(token_program_id(use_token_extensions))
    )


def derive_vault_address(
    offer: Pubkey, mint: Pubkey, use_token_extensions: bool = False
) -> Pubkey:
    """Vault holding the offered mint, owned by the offer record itself."""
    return derive_holding_address(
        offer,
        mint,
        Pubkey(token_program_id(use_token_extensions)),
        allow_owner_off_curve=True,
    )
