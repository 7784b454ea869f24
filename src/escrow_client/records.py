"""Binary codec for offer records stored by the escrow program."""

from __future__ import annotations

import struct

from pydantic import ValidationError

from escrow_client.constants import OFFER_ACCOUNT_SIZE, OFFER_DISCRIMINATOR
from escrow_client.errors import RecordDecodeError, UnrecognizedRecordType
from escrow_client.models import Offer
from escrow_client.pubkey import Pubkey

# discriminator | id | maker | mint_a | mint_b | wanted | bump
_OFFER_LAYOUT = struct.Struct("<8sQ32s32s32sQB")


def matches_discriminator(data: bytes) -> bool:
    """Cheap prefilter comparing only the leading 8 bytes."""
    return bytes(data[: len(OFFER_DISCRIMINATOR)]) == OFFER_DISCRIMINATOR


def decode_offer(data: bytes, address: Pubkey | str | None = None) -> Offer:
    """Decode raw account bytes into an ``Offer``.

    Trailing bytes beyond the fixed layout are ignored.

    Raises:
        RecordDecodeError: If the buffer is too short or fields are invalid.
        UnrecognizedRecordType: If the discriminator is not the offer's.
    """
    label = str(address) if address is not None else None
    if len(data) < OFFER_ACCOUNT_SIZE:
        raise RecordDecodeError(
            f"Offer account must be at least {OFFER_ACCOUNT_SIZE} bytes, got {len(data)}",
            label,
        )
    if not matches_discriminator(data):
        raise UnrecognizedRecordType(
            f"Unrecognized record discriminator {bytes(data[:8]).hex()}", label
        )
    _, offer_id, maker, mint_a, mint_b, wanted, bump = _OFFER_LAYOUT.unpack_from(
        bytes(data)
    )
    try:
        return Offer(
            id=offer_id,
            maker=Pubkey(maker),
            token_mint_a=Pubkey(mint_a),
            token_mint_b=Pubkey(mint_b),
            token_b_wanted_amount=wanted,
            bump=bump,
        )
    except ValidationError as exc:
        raise RecordDecodeError(f"Invalid offer record: {exc}", label) from exc


def encode_offer(offer: Offer) -> bytes:
    """Pack an ``Offer`` into its 121-byte account layout.

    The program owns these accounts; this exists for fixtures and fakes.
    """
    return _OFFER_LAYOUT.pack(
        OFFER_DISCRIMINATOR,
        offer.id,
        bytes(offer.maker),
        bytes(offer.token_mint_a),
        bytes(offer.token_mint_b),
        offer.token_b_wanted_amount,
        offer.bump,
    )
