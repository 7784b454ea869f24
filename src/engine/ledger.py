"""Ledger and broadcast interfaces the trade engine depends on.

The orchestrators learn whether a holding account exists from
``get_asset_holding`` returning None, which saves a second read per account.
``exists`` serves callers that only need the boolean for other accounts.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from escrow_client.models import Instruction
from escrow_client.pubkey import Pubkey


class Ledger(Protocol):
    def get_account(self, pubkey: Pubkey) -> bytes | None:
        """Return raw account bytes, or None when the account does not exist."""

    def exists(self, pubkey: Pubkey) -> bool:
        """Return True when the account exists."""

    def get_accounts_by_prefix(
        self, program_id: Pubkey, prefix: bytes
    ) -> list[tuple[Pubkey, bytes]]:
        """Return accounts owned by ``program_id`` whose data starts with ``prefix``."""

    def get_asset_holding(self, pubkey: Pubkey) -> int | None:
        """Return the token amount held, or None when the account does not exist."""

    def get_asset_decimals(self, mint: Pubkey) -> int:
        """Return the decimal count of a mint."""

    def get_latest_blockhash(self) -> str:
        """Return a recent blockhash used as the submission freshness token."""


class AsyncLedger(Protocol):
    async def get_account(self, pubkey: Pubkey) -> bytes | None:
        """Return raw account bytes, or None when the account does not exist."""

    async def exists(self, pubkey: Pubkey) -> bool:
        """Return True when the account exists."""

    async def get_accounts_by_prefix(
        self, program_id: Pubkey, prefix: bytes
    ) -> list[tuple[Pubkey, bytes]]:
        """Return accounts owned by ``program_id`` whose data starts with ``prefix``."""

    async def get_asset_holding(self, pubkey: Pubkey) -> int | None:
        """Return the token amount held, or None when the account does not exist."""

    async def get_asset_decimals(self, mint: Pubkey) -> int:
        """Return the decimal count of a mint."""

    async def get_latest_blockhash(self) -> str:
        """Return a recent blockhash used as the submission freshness token."""


class Broadcaster(Protocol):
    def submit(
        self,
        instructions: Sequence[Instruction],
        fee_payer: Pubkey,
        recent_blockhash: str,
    ) -> str:
        """Sign and send one atomic transaction; return its signature."""


class AsyncBroadcaster(Protocol):
    async def submit(
        self,
        instructions: Sequence[Instruction],
        fee_payer: Pubkey,
        recent_blockhash: str,
    ) -> str:
        """Sign and send one atomic transaction; return its signature."""
