"""Instruction encoders for the escrow program.

Account order and signer/writable flags are part of the wire contract: the
program indexes accounts positionally.
"""

from __future__ import annotations

from typing import Callable

from escrow_client.addresses import (
    ASSOCIATED_TOKEN_PROGRAM,
    ESCROW_PROGRAM,
    derive_offer_address,
    derive_token_account,
    derive_vault_address,
    encode_u64,
)
from escrow_client.constants import (
    MAKE_OFFER_DISCRIMINATOR,
    REFUND_OFFER_DISCRIMINATOR,
    SYSTEM_PROGRAM_ID,
    TAKE_OFFER_DISCRIMINATOR,
    token_program_id,
)
from escrow_client.models import (
    AccountMeta,
    Instruction,
    MakeOffer,
    OperationKind,
    RefundOffer,
    TakeOffer,
)
from escrow_client.pubkey import Pubkey

SYSTEM_PROGRAM = Pubkey(SYSTEM_PROGRAM_ID)

OPERATION_DISCRIMINATORS: dict[OperationKind, bytes] = {
    OperationKind.MAKE_OFFER: MAKE_OFFER_DISCRIMINATOR,
    OperationKind.TAKE_OFFER: TAKE_OFFER_DISCRIMINATOR,
    OperationKind.REFUND_OFFER: REFUND_OFFER_DISCRIMINATOR,
}


def _readonly(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=False)


def _writable(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=False, is_writable=True)


def _signer(pubkey: Pubkey) -> AccountMeta:
    return AccountMeta(pubkey=pubkey, is_signer=True, is_writable=True)


def encode_make_offer(op: MakeOffer) -> Instruction:
    token_program = Pubkey(token_program_id(op.use_token_extensions))
    offer, _ = derive_offer_address(op.offer_id)
    maker_token_account_a = derive_token_account(
        op.maker, op.token_mint_a, op.use_token_extensions
    )
    vault = derive_vault_address(offer, op.token_mint_a, op.use_token_extensions)
    data = b"".join(
        [
            OPERATION_DISCRIMINATORS[OperationKind.MAKE_OFFER],
            encode_u64(op.offer_id),
            encode_u64(op.token_a_offered_amount),
            encode_u64(op.token_b_wanted_amount),
        ]
    )
    return Instruction(
        program_id=ESCROW_PROGRAM,
        accounts=(
            _readonly(ASSOCIATED_TOKEN_PROGRAM),
            _readonly(token_program),
            _readonly(SYSTEM_PROGRAM),
            _signer(op.maker),
            _readonly(op.token_mint_a),
            _readonly(op.token_mint_b),
            _writable(maker_token_account_a),
            _writable(offer),
            _writable(vault),
        ),
        data=data,
    )


def encode_take_offer(op: TakeOffer) -> Instruction:
    # No args: amounts are read from the offer record on-chain.
    token_program = Pubkey(token_program_id(op.use_token_extensions))
    offer, _ = derive_offer_address(op.offer_id)
    vault = derive_vault_address(offer, op.token_mint_a, op.use_token_extensions)
    ext = op.use_token_extensions
    return Instruction(
        program_id=ESCROW_PROGRAM,
        accounts=(
            _readonly(ASSOCIATED_TOKEN_PROGRAM),
            _readonly(token_program),
            _readonly(SYSTEM_PROGRAM),
            _signer(op.taker),
            _writable(op.maker),
            _readonly(op.token_mint_a),
            _readonly(op.token_mint_b),
            _writable(derive_token_account(op.taker, op.token_mint_a, ext)),
            _writable(derive_token_account(op.taker, op.token_mint_b, ext)),
            _writable(derive_token_account(op.maker, op.token_mint_b, ext)),
            _writable(offer),
            _writable(vault),
        ),
        data=OPERATION_DISCRIMINATORS[OperationKind.TAKE_OFFER],
    )


def encode_refund_offer(op: RefundOffer) -> Instruction:
    token_program = Pubkey(token_program_id(op.use_token_extensions))
    offer, _ = derive_offer_address(op.offer_id)
    vault = derive_vault_address(offer, op.token_mint_a, op.use_token_extensions)
    return Instruction(
        program_id=ESCROW_PROGRAM,
        accounts=(
            _readonly(token_program),
            _readonly(SYSTEM_PROGRAM),
            _signer(op.maker),
            _readonly(op.token_mint_a),
            _writable(
                derive_token_account(op.maker, op.token_mint_a, op.use_token_extensions)
            ),
            _writable(offer),
            _writable(vault),
        ),
        data=OPERATION_DISCRIMINATORS[OperationKind.REFUND_OFFER],
    )


_ENCODERS: dict[OperationKind, Callable[..., Instruction]] = {
    OperationKind.MAKE_OFFER: encode_make_offer,
    OperationKind.TAKE_OFFER: encode_take_offer,
    OperationKind.REFUND_OFFER: encode_refund_offer,
}


def encode_operation(op: MakeOffer | TakeOffer | RefundOffer) -> Instruction:
    """Encode any escrow operation by dispatching on its ``kind`` tag."""
    return _ENCODERS[op.kind](op)


def encode_create_holding_account(
    payer: Pubkey,
    holding: Pubkey,
    owner: Pubkey,
    mint: Pubkey,
    use_token_extensions: bool = False,
) -> Instruction:
    """Create an associated holding account; ``payer`` funds the rent."""
    return Instruction(
        program_id=ASSOCIATED_TOKEN_PROGRAM,
        accounts=(
            _signer(payer),
            _writable(holding),
            _readonly(owner),
            _readonly(mint),
            _readonly(SYSTEM_PROGRAM),
            _readonly(Pubkey(token_program_id(use_token_extensions))),
        ),
        data=b"",
    )
