"""Offer discovery: single lookups, bulk scans and a refreshable snapshot."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from time import monotonic
from typing import Callable

from escrow_client.addresses import ESCROW_PROGRAM, derive_offer_address
from escrow_client.constants import OFFER_DISCRIMINATOR
from escrow_client.errors import RecordDecodeError, TradeNotFound
from escrow_client.models import Offer
from escrow_client.pubkey import Pubkey
from escrow_client.records import decode_offer, matches_discriminator
from engine.ledger import AsyncLedger, Ledger

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class SkippedAccount:
    address: Pubkey
    reason: str


@dataclass(frozen=True)
class ScanResult:
    offers: list[Offer]
    skipped: list[SkippedAccount] = field(default_factory=list)


def fetch_offer(ledger: Ledger, offer_id: int) -> Offer | None:
    address, _ = derive_offer_address(offer_id)
    data = ledger.get_account(address)
    if data is None:
        return None
    return decode_offer(data, address)


async def fetch_offer_async(ledger: AsyncLedger, offer_id: int) -> Offer | None:
    address, _ = derive_offer_address(offer_id)
    data = await ledger.get_account(address)
    if data is None:
        return None
    return decode_offer(data, address)


def require_offer(offer: Offer | None, offer_id: int) -> Offer:
    if offer is None:
        address, _ = derive_offer_address(offer_id)
        raise TradeNotFound(offer_id, str(address))
    return offer


def decode_accounts(accounts: list[tuple[Pubkey, bytes]]) -> ScanResult:
    """Decode accounts in ledger order, skipping anything that is not an offer."""
    offers: list[Offer] = []
    skipped: list[SkippedAccount] = []
    for address, data in accounts:
        if not matches_discriminator(data):
            reason = "unrecognized discriminator"
        else:
            try:
                offers.append(decode_offer(data, address))
                continue
            except RecordDecodeError as exc:
                reason = str(exc)
        LOGGER.warning("Skipping account %s: %s", address, reason)
        skipped.append(SkippedAccount(address=address, reason=reason))
    return ScanResult(offers=offers, skipped=skipped)


def scan_offers(ledger: Ledger, program_id: Pubkey = ESCROW_PROGRAM) -> ScanResult:
    accounts = ledger.get_accounts_by_prefix(program_id, OFFER_DISCRIMINATOR)
    result = decode_accounts(accounts)
    LOGGER.info(
        "Scanned %d accounts: %d offers, %d skipped",
        len(accounts),
        len(result.offers),
        len(result.skipped),
    )
    return result


async def scan_offers_async(
    ledger: AsyncLedger, program_id: Pubkey = ESCROW_PROGRAM
) -> ScanResult:
    accounts = await ledger.get_accounts_by_prefix(program_id, OFFER_DISCRIMINATOR)
    return decode_accounts(accounts)


@dataclass
class OfferBook:
    """Last known set of open offers.

    ``refresh`` is meant to be driven by an external scheduler; the book never
    polls on its own.
    """

    ledger: Ledger
    program_id: Pubkey = ESCROW_PROGRAM
    cache_ttl: float = 5.0
    clock: Callable[[], float] = monotonic
    last_fetch: float | None = None
    snapshot: ScanResult = field(default_factory=lambda: ScanResult(offers=[]))

    def refresh(self, force: bool = False) -> ScanResult:
        now = self.clock()
        if (
            not force
            and self.last_fetch is not None
            and now - self.last_fetch < self.cache_ttl
        ):
            return self.snapshot
        self.snapshot = scan_offers(self.ledger, self.program_id)
        self.last_fetch = now
        return self.snapshot

    @property
    def offers(self) -> list[Offer]:
        return list(self.snapshot.offers)

    def get(self, offer_id: int) -> Offer | None:
        for offer in self.snapshot.offers:
            if offer.id == offer_id:
                return offer
        return None

    def filter_by_maker(self, maker: Pubkey) -> list[Offer]:
        return [offer for offer in self.snapshot.offers if offer.maker == maker]
