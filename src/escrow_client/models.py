"""Shared data models for the escrow client.

Pydantic models for on-chain records, wire instructions and the three escrow
operations.
"""

from __future__ import annotations

import base64
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    model_validator,
)

from escrow_client.constants import U64_MAX
from escrow_client.pubkey import Pubkey


def _coerce_pubkey(value: Any) -> Any:
    if isinstance(value, (str, bytes, bytearray)):
        return Pubkey(value)
    return value


PubkeyField = Annotated[
    Pubkey,
    BeforeValidator(_coerce_pubkey),
    PlainSerializer(str, return_type=str, when_used="json"),
]
U64 = Annotated[int, Field(ge=0, le=U64_MAX)]


class OperationKind(str, Enum):
    """Escrow program instruction names."""

    MAKE_OFFER = "make_offer"
    TAKE_OFFER = "take_offer"
    REFUND_OFFER = "refund_offer"


class AccountMeta(BaseModel):
    """Account reference passed to an instruction."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pubkey: PubkeyField
    is_signer: bool = False
    is_writable: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "pubkey": str(self.pubkey),
            "isSigner": self.is_signer,
            "isWritable": self.is_writable,
        }


class Instruction(BaseModel):
    """Wire-level instruction: program, ordered accounts and payload bytes."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    program_id: PubkeyField
    accounts: tuple[AccountMeta, ...]
    data: bytes = b""

    def to_payload(self) -> dict[str, Any]:
        """Convert to the JSON shape wallets accept for signing."""
        return {
            "programId": str(self.program_id),
            "keys": [account.to_payload() for account in self.accounts],
            "data": base64.b64encode(self.data).decode("ascii"),
        }


class Offer(BaseModel):
    """On-chain offer record."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    id: U64
    maker: PubkeyField
    token_mint_a: PubkeyField
    token_mint_b: PubkeyField
    token_b_wanted_amount: U64
    bump: int = Field(ge=0, le=255)

    @model_validator(mode="after")
    def validate_offer(self) -> "Offer":
        """Offered and wanted mints differ and something is wanted."""
        if self.token_mint_a == self.token_mint_b:
            raise ValueError("Offered and wanted mints must differ")
        if self.token_b_wanted_amount <= 0:
            raise ValueError("Wanted amount must be positive")
        return self

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "maker": str(self.maker),
            "tokenMintA": str(self.token_mint_a),
            "tokenMintB": str(self.token_mint_b),
            "tokenBWantedAmount": self.token_b_wanted_amount,
            "bump": self.bump,
        }


class MakeOffer(BaseModel):
    """Lock token A in a vault and record the wanted amount of token B."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal[OperationKind.MAKE_OFFER] = OperationKind.MAKE_OFFER
    maker: PubkeyField
    token_mint_a: PubkeyField
    token_mint_b: PubkeyField
    offer_id: U64
    token_a_offered_amount: U64
    token_b_wanted_amount: U64
    use_token_extensions: bool = False


class TakeOffer(BaseModel):
    """Pay token B to the maker and receive the vaulted token A."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal[OperationKind.TAKE_OFFER] = OperationKind.TAKE_OFFER
    taker: PubkeyField
    maker: PubkeyField
    token_mint_a: PubkeyField
    token_mint_b: PubkeyField
    offer_id: U64
    use_token_extensions: bool = False


class RefundOffer(BaseModel):
    """Return the vaulted token A to the maker and close the offer."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal[OperationKind.REFUND_OFFER] = OperationKind.REFUND_OFFER
    maker: PubkeyField
    token_mint_a: PubkeyField
    offer_id: U64
    use_token_extensions: bool = False


Operation = Annotated[
    Union[MakeOffer, TakeOffer, RefundOffer], Field(discriminator="kind")
]
