"""Shared fixtures: on-curve wallet keys, offer bytes and in-memory ledgers."""

from __future__ import annotations

from typing import Any, Sequence

from escrow_client.addresses import derive_offer_address
from escrow_client.models import Instruction, Offer
from escrow_client.pubkey import Pubkey
from escrow_client.records import encode_offer

# Wallet owners must decompress to curve points; y = 0, 1 and p - 1 always do.
MAKER = Pubkey(b"\x01" + bytes(31))
TAKER = Pubkey(bytes(31) + b"\x80")
STRANGER = Pubkey(b"\x01" + bytes(30) + b"\x80")
OTHER_WALLET = Pubkey(b"\xec" + b"\xff" * 30 + b"\x7f")

MINT_A = Pubkey(b"\xa1" * 32)
MINT_B = Pubkey(b"\xb2" * 32)
MINT_C = Pubkey(b"\xc3" * 32)


def make_offer_record(
    offer_id: int = 42,
    *,
    maker: Pubkey = MAKER,
    mint_a: Pubkey = MINT_A,
    mint_b: Pubkey = MINT_B,
    wanted: int = 5_000_000_000,
) -> Offer:
    _, bump = derive_offer_address(offer_id)
    return Offer(
        id=offer_id,
        maker=maker,
        token_mint_a=mint_a,
        token_mint_b=mint_b,
        token_b_wanted_amount=wanted,
        bump=bump,
    )


class FakeLedger:
    def __init__(
        self,
        *,
        accounts: dict[Pubkey, bytes] | None = None,
        holdings: dict[Pubkey, int] | None = None,
        decimals: dict[Pubkey, int] | None = None,
        program_accounts: list[tuple[Pubkey, bytes]] | None = None,
        blockhash: str = "EkSnNWid2cvwEVnVx9aBqawnmiCNiDgp3gUdkDPTKN1N",
    ) -> None:
        self.accounts = dict(accounts or {})
        self.holdings = dict(holdings or {})
        self.decimals = dict(decimals or {})
        self.program_accounts = list(program_accounts or [])
        self.blockhash = blockhash
        self.calls: list[tuple[str, Any]] = []

    def add_offer(self, offer: Offer) -> Pubkey:
        address, _ = derive_offer_address(offer.id)
        self.accounts[address] = encode_offer(offer)
        return address

    def get_account(self, pubkey: Pubkey) -> bytes | None:
        self.calls.append(("get_account", pubkey))
        return self.accounts.get(pubkey)

    def exists(self, pubkey: Pubkey) -> bool:
        return self.get_account(pubkey) is not None

    def get_accounts_by_prefix(
        self, program_id: Pubkey, prefix: bytes
    ) -> list[tuple[Pubkey, bytes]]:
        self.calls.append(("get_accounts_by_prefix", program_id))
        return list(self.program_accounts)

    def get_asset_holding(self, pubkey: Pubkey) -> int | None:
        self.calls.append(("get_asset_holding", pubkey))
        return self.holdings.get(pubkey)

    def get_asset_decimals(self, mint: Pubkey) -> int:
        self.calls.append(("get_asset_decimals", mint))
        return self.decimals[mint]

    def get_latest_blockhash(self) -> str:
        self.calls.append(("get_latest_blockhash", None))
        return self.blockhash


class AsyncFakeLedger:
    def __init__(self, ledger: FakeLedger) -> None:
        self.ledger = ledger

    async def get_account(self, pubkey: Pubkey) -> bytes | None:
        return self.ledger.get_account(pubkey)

    async def exists(self, pubkey: Pubkey) -> bool:
        return self.ledger.exists(pubkey)

    async def get_accounts_by_prefix(
        self, program_id: Pubkey, prefix: bytes
    ) -> list[tuple[Pubkey, bytes]]:
        return self.ledger.get_accounts_by_prefix(program_id, prefix)

    async def get_asset_holding(self, pubkey: Pubkey) -> int | None:
        return self.ledger.get_asset_holding(pubkey)

    async def get_asset_decimals(self, mint: Pubkey) -> int:
        return self.ledger.get_asset_decimals(mint)

    async def get_latest_blockhash(self) -> str:
        return self.ledger.get_latest_blockhash()


class RecordingBroadcaster:
    def __init__(self, signature: str = "5igNature") -> None:
        self.signature = signature
        self.submissions: list[tuple[list[Instruction], Pubkey, str]] = []

    def submit(
        self, instructions: Sequence[Instruction], fee_payer: Pubkey, recent_blockhash: str
    ) -> str:
        self.submissions.append((list(instructions), fee_payer, recent_blockhash))
        return self.signature
