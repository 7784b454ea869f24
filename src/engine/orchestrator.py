"""Trade orchestration: turn make/take/refund intents into ordered instructions.

Each action walks VALIDATING -> RESOLVING -> ASSEMBLING_SETUP -> ENCODING ->
READY and stops at FAILED on the first error. Ledger reads feed ``Holding``
values into the pure ``assemble_*`` functions, so the sync and async
orchestrators produce identical plans regardless of read completion order.
Balance checks are best effort: state may change before submission.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from escrow_client.addresses import derive_token_account
from escrow_client.amounts import format_amount, parse_amount, split_amount
from escrow_client.errors import (
    EscrowError,
    InsufficientBalance,
    InvalidInput,
    MissingFunds,
    NotAuthorized,
)
from escrow_client.instructions import (
    encode_create_holding_account,
    encode_make_offer,
    encode_refund_offer,
    encode_take_offer,
)
from escrow_client.models import (
    Instruction,
    MakeOffer,
    Offer,
    OperationKind,
    RefundOffer,
    TakeOffer,
)
from escrow_client.pubkey import Pubkey
from escrow_client.rpc import RpcError
from engine.ledger import AsyncBroadcaster, AsyncLedger, Broadcaster, Ledger
from engine.offer_book import fetch_offer, fetch_offer_async, require_offer

LOGGER = logging.getLogger(__name__)

AmountFormatter = Callable[[int], str]


class ActionState(str, Enum):
    VALIDATING = "validating"
    RESOLVING = "resolving"
    ASSEMBLING_SETUP = "assembling_setup"
    ENCODING = "encoding"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class Holding:
    """Observed state of one associated holding account."""

    address: Pubkey
    owner: Pubkey
    mint: Pubkey
    amount: int | None = None

    @property
    def exists(self) -> bool:
        return self.amount is not None


@dataclass
class TradePlan:
    """Ordered instructions for one atomic submission; setup steps come first."""

    kind: OperationKind
    offer_id: int
    instructions: list[Instruction] = field(default_factory=list)
    setup_count: int = 0
    offer: Offer | None = None

    @property
    def main_instruction(self) -> Instruction:
        return self.instructions[-1]

    @property
    def setup_instructions(self) -> list[Instruction]:
        return self.instructions[: self.setup_count]

    def to_payload(self) -> dict[str, object]:
        return {
            "action": self.kind.value,
            "offerId": self.offer_id,
            "setupCount": self.setup_count,
            "instructions": [ix.to_payload() for ix in self.instructions],
        }


def _transition(action: OperationKind, offer_id: int, state: ActionState) -> None:
    LOGGER.debug(
        "%s offer %s -> %s",
        action.value,
        offer_id,
        state.value,
        extra={"action": action.value, "offer_id": offer_id, "state": state.value},
    )


def _raw_units(amount: int) -> str:
    return f"{amount} base units"


def _create_holding(payer: Pubkey, holding: Holding, use_token_extensions: bool) -> Instruction:
    return encode_create_holding_account(
        payer, holding.address, holding.owner, holding.mint, use_token_extensions
    )


def validate_make_offer(op: MakeOffer) -> None:
    if op.token_mint_a == op.token_mint_b:
        raise InvalidInput("Token mints must be different")
    if op.token_a_offered_amount <= 0 or op.token_b_wanted_amount <= 0:
        raise InvalidInput("Amounts must be greater than zero")


def assemble_make_offer(
    op: MakeOffer,
    maker_holding_a: Holding,
    describe_a: AmountFormatter = _raw_units,
) -> TradePlan:
    """Prepend holding creation when missing; refuse an underfunded maker."""
    plan = TradePlan(kind=OperationKind.MAKE_OFFER, offer_id=op.offer_id)
    if not maker_holding_a.exists:
        plan.instructions.append(
            _create_holding(op.maker, maker_holding_a, op.use_token_extensions)
        )
    elif maker_holding_a.amount < op.token_a_offered_amount:
        raise InsufficientBalance(
            f"Insufficient balance. You have {describe_a(maker_holding_a.amount)} "
            f"but need {describe_a(op.token_a_offered_amount)}",
            account=str(maker_holding_a.address),
            mint=str(op.token_mint_a),
            required=op.token_a_offered_amount,
            available=maker_holding_a.amount,
        )
    plan.setup_count = len(plan.instructions)
    _transition(plan.kind, op.offer_id, ActionState.ENCODING)
    plan.instructions.append(encode_make_offer(op))
    return plan


def assemble_take_offer(
    taker: Pubkey,
    offer: Offer,
    taker_holding_a: Holding,
    taker_holding_b: Holding,
    maker_holding_b: Holding,
    *,
    use_token_extensions: bool = False,
    describe_b: AmountFormatter = _raw_units,
) -> TradePlan:
    """Create missing holdings (taker pays) and check the taker can pay."""
    plan = TradePlan(kind=OperationKind.TAKE_OFFER, offer_id=offer.id, offer=offer)
    wanted = offer.token_b_wanted_amount
    if not taker_holding_a.exists:
        plan.instructions.append(
            _create_holding(taker, taker_holding_a, use_token_extensions)
        )
    if taker_holding_b.exists:
        if taker_holding_b.amount < wanted:
            raise InsufficientBalance(
                f"Insufficient Token B balance. You have {describe_b(taker_holding_b.amount)} "
                f"but need {describe_b(wanted)}",
                account=str(taker_holding_b.address),
                mint=str(offer.token_mint_b),
                required=wanted,
                available=taker_holding_b.amount,
            )
    else:
        plan.instructions.append(
            _create_holding(taker, taker_holding_b, use_token_extensions)
        )
        raise MissingFunds(
            f"No Token B account yet. It can be created, but you need "
            f"{describe_b(wanted)} of Token B (mint {offer.token_mint_b}) to take this offer",
            account=str(taker_holding_b.address),
            mint=str(offer.token_mint_b),
            required=wanted,
            setup_instructions=plan.instructions,
        )
    if not maker_holding_b.exists:
        plan.instructions.append(
            _create_holding(taker, maker_holding_b, use_token_extensions)
        )
    plan.setup_count = len(plan.instructions)
    _transition(plan.kind, offer.id, ActionState.ENCODING)
    plan.instructions.append(
        encode_take_offer(
            TakeOffer(
                taker=taker,
                maker=offer.maker,
                token_mint_a=offer.token_mint_a,
                token_mint_b=offer.token_mint_b,
                offer_id=offer.id,
                use_token_extensions=use_token_extensions,
            )
        )
    )
    return plan


def assemble_refund_offer(
    caller: Pubkey, offer: Offer, *, use_token_extensions: bool = False
) -> TradePlan:
    if caller != offer.maker:
        raise NotAuthorized(offer.id, str(caller), str(offer.maker))
    _transition(OperationKind.REFUND_OFFER, offer.id, ActionState.ENCODING)
    return TradePlan(
        kind=OperationKind.REFUND_OFFER,
        offer_id=offer.id,
        offer=offer,
        instructions=[
            encode_refund_offer(
                RefundOffer(
                    maker=caller,
                    token_mint_a=offer.token_mint_a,
                    offer_id=offer.id,
                    use_token_extensions=use_token_extensions,
                )
            )
        ],
    )


def _holding(owner: Pubkey, mint: Pubkey, use_token_extensions: bool) -> Holding:
    return Holding(
        address=derive_token_account(owner, mint, use_token_extensions),
        owner=owner,
        mint=mint,
    )


def _with_amount(holding: Holding, amount: int | None) -> Holding:
    return Holding(
        address=holding.address, owner=holding.owner, mint=holding.mint, amount=amount
    )


def _resolve_amount(amount: str | int, decimals: int | None) -> int:
    if isinstance(amount, str):
        if decimals is None:
            raise InvalidInput("Decimals are required to parse a text amount")
        return parse_amount(amount, decimals)
    return amount


def _build_make_offer(
    maker: Pubkey,
    token_mint_a: Pubkey,
    token_mint_b: Pubkey,
    offer_id: int,
    amount_a: int,
    amount_b: int,
    use_token_extensions: bool,
) -> MakeOffer:
    try:
        op = MakeOffer(
            maker=maker,
            token_mint_a=token_mint_a,
            token_mint_b=token_mint_b,
            offer_id=offer_id,
            token_a_offered_amount=amount_a,
            token_b_wanted_amount=amount_b,
            use_token_extensions=use_token_extensions,
        )
    except ValueError as exc:
        raise InvalidInput(f"Invalid make offer request: {exc}") from exc
    validate_make_offer(op)
    return op


def _fail(action: OperationKind, offer_id: int, exc: Exception) -> None:
    LOGGER.info(
        "%s offer %s failed: %s",
        action.value,
        offer_id,
        exc,
        extra={"action": action.value, "offer_id": offer_id, "state": ActionState.FAILED.value},
    )


def _formatter_for(decimals: int | None) -> AmountFormatter:
    if decimals is None:
        return _raw_units
    return lambda amount: format_amount(amount, decimals)


def _check_amount_syntax(*amounts: str | int) -> None:
    for amount in amounts:
        if isinstance(amount, str):
            split_amount(amount)


class TradeOrchestrator:
    """Plan escrow actions against a blocking ledger."""

    def __init__(self, ledger: Ledger, *, use_token_extensions: bool = False) -> None:
        self.ledger = ledger
        self.use_token_extensions = use_token_extensions
        self._decimals: dict[Pubkey, int] = {}

    def decimals(self, mint: Pubkey) -> int:
        if mint not in self._decimals:
            self._decimals[mint] = self.ledger.get_asset_decimals(mint)
        return self._decimals[mint]

    def _load_decimals(self, mint: Pubkey) -> bool:
        try:
            self.decimals(mint)
        except (EscrowError, RpcError) as exc:
            LOGGER.warning(
                "Could not read decimals for mint %s; reporting base units: %s", mint, exc
            )
            return False
        return True

    def _assemble(
        self,
        mint: Pubkey,
        known: int | None,
        build: Callable[[AmountFormatter], TradePlan],
    ) -> TradePlan:
        # Decimals only shape the failure message, so they are read on that path.
        known = known if known is not None else self._decimals.get(mint)
        try:
            return build(_formatter_for(known))
        except InsufficientBalance:
            if known is not None or not self._load_decimals(mint):
                raise
        return build(_formatter_for(self._decimals[mint]))

    def plan_make_offer(
        self,
        maker: Pubkey,
        token_mint_a: Pubkey,
        token_mint_b: Pubkey,
        offer_id: int,
        amount_a: str | int,
        amount_b: str | int,
        *,
        decimals_a: int | None = None,
        decimals_b: int | None = None,
    ) -> TradePlan:
        action = OperationKind.MAKE_OFFER
        try:
            _transition(action, offer_id, ActionState.VALIDATING)
            if token_mint_a == token_mint_b:
                raise InvalidInput("Token mints must be different")
            _check_amount_syntax(amount_a, amount_b)
            if isinstance(amount_a, str) and decimals_a is None:
                decimals_a = self.decimals(token_mint_a)
            if isinstance(amount_b, str) and decimals_b is None:
                decimals_b = self.decimals(token_mint_b)
            op = _build_make_offer(
                maker,
                token_mint_a,
                token_mint_b,
                offer_id,
                _resolve_amount(amount_a, decimals_a),
                _resolve_amount(amount_b, decimals_b),
                self.use_token_extensions,
            )
            _transition(action, offer_id, ActionState.RESOLVING)
            holding = _holding(maker, token_mint_a, self.use_token_extensions)
            _transition(action, offer_id, ActionState.ASSEMBLING_SETUP)
            holding = _with_amount(holding, self.ledger.get_asset_holding(holding.address))
            plan = self._assemble(
                token_mint_a,
                decimals_a,
                lambda describe: assemble_make_offer(op, holding, describe),
            )
        except Exception as exc:
            _fail(action, offer_id, exc)
            raise
        _transition(action, offer_id, ActionState.READY)
        return plan

    def plan_take_offer(self, taker: Pubkey, offer_id: int) -> TradePlan:
        action = OperationKind.TAKE_OFFER
        try:
            _transition(action, offer_id, ActionState.RESOLVING)
            offer = require_offer(fetch_offer(self.ledger, offer_id), offer_id)
            ext = self.use_token_extensions
            holdings = [
                _holding(taker, offer.token_mint_a, ext),
                _holding(taker, offer.token_mint_b, ext),
                _holding(offer.maker, offer.token_mint_b, ext),
            ]
            _transition(action, offer_id, ActionState.ASSEMBLING_SETUP)
            taker_a, taker_b, maker_b = [
                _with_amount(h, self.ledger.get_asset_holding(h.address))
                for h in holdings
            ]
            plan = self._assemble(
                offer.token_mint_b,
                None,
                lambda describe: assemble_take_offer(
                    taker,
                    offer,
                    taker_a,
                    taker_b,
                    maker_b,
                    use_token_extensions=ext,
                    describe_b=describe,
                ),
            )
        except Exception as exc:
            _fail(action, offer_id, exc)
            raise
        _transition(action, offer_id, ActionState.READY)
        return plan

    def plan_refund_offer(self, caller: Pubkey, offer_id: int) -> TradePlan:
        action = OperationKind.REFUND_OFFER
        try:
            _transition(action, offer_id, ActionState.RESOLVING)
            offer = require_offer(fetch_offer(self.ledger, offer_id), offer_id)
            plan = assemble_refund_offer(
                caller, offer, use_token_extensions=self.use_token_extensions
            )
        except Exception as exc:
            _fail(action, offer_id, exc)
            raise
        _transition(action, offer_id, ActionState.READY)
        return plan

    def submit(self, plan: TradePlan, broadcaster: Broadcaster, fee_payer: Pubkey) -> str:
        blockhash = self.ledger.get_latest_blockhash()
        signature = broadcaster.submit(list(plan.instructions), fee_payer, blockhash)
        LOGGER.info(
            "Submitted %s for offer %s: %s",
            plan.kind.value,
            plan.offer_id,
            signature,
            extra={"action": plan.kind.value, "offer_id": plan.offer_id},
        )
        return signature


class AsyncTradeOrchestrator:
    """Plan escrow actions against an async ledger, issuing independent reads concurrently."""

    def __init__(self, ledger: AsyncLedger, *, use_token_extensions: bool = False) -> None:
        self.ledger = ledger
        self.use_token_extensions = use_token_extensions
        self._decimals: dict[Pubkey, int] = {}

    async def decimals(self, mint: Pubkey) -> int:
        if mint not in self._decimals:
            self._decimals[mint] = await self.ledger.get_asset_decimals(mint)
        return self._decimals[mint]

    async def _load_decimals(self, mint: Pubkey) -> bool:
        try:
            await self.decimals(mint)
        except (EscrowError, RpcError) as exc:
            LOGGER.warning(
                "Could not read decimals for mint %s; reporting base units: %s", mint, exc
            )
            return False
        return True

    async def _assemble(
        self,
        mint: Pubkey,
        known: int | None,
        build: Callable[[AmountFormatter], TradePlan],
    ) -> TradePlan:
        known = known if known is not None else self._decimals.get(mint)
        try:
            return build(_formatter_for(known))
        except InsufficientBalance:
            if known is not None or not await self._load_decimals(mint):
                raise
        return build(_formatter_for(self._decimals[mint]))

    async def plan_make_offer(
        self,
        maker: Pubkey,
        token_mint_a: Pubkey,
        token_mint_b: Pubkey,
        offer_id: int,
        amount_a: str | int,
        amount_b: str | int,
        *,
        decimals_a: int | None = None,
        decimals_b: int | None = None,
    ) -> TradePlan:
        action = OperationKind.MAKE_OFFER
        try:
            _transition(action, offer_id, ActionState.VALIDATING)
            if token_mint_a == token_mint_b:
                raise InvalidInput("Token mints must be different")
            _check_amount_syntax(amount_a, amount_b)
            if isinstance(amount_a, str) and decimals_a is None:
                decimals_a = await self.decimals(token_mint_a)
            if isinstance(amount_b, str) and decimals_b is None:
                decimals_b = await self.decimals(token_mint_b)
            op = _build_make_offer(
                maker,
                token_mint_a,
                token_mint_b,
                offer_id,
                _resolve_amount(amount_a, decimals_a),
                _resolve_amount(amount_b, decimals_b),
                self.use_token_extensions,
            )
            _transition(action, offer_id, ActionState.RESOLVING)
            holding = _holding(maker, token_mint_a, self.use_token_extensions)
            _transition(action, offer_id, ActionState.ASSEMBLING_SETUP)
            holding = _with_amount(
                holding, await self.ledger.get_asset_holding(holding.address)
            )
            plan = await self._assemble(
                token_mint_a,
                decimals_a,
                lambda describe: assemble_make_offer(op, holding, describe),
            )
        except Exception as exc:
            _fail(action, offer_id, exc)
            raise
        _transition(action, offer_id, ActionState.READY)
        return plan

    async def plan_take_offer(self, taker: Pubkey, offer_id: int) -> TradePlan:
        action = OperationKind.TAKE_OFFER
        try:
            _transition(action, offer_id, ActionState.RESOLVING)
            offer = require_offer(await fetch_offer_async(self.ledger, offer_id), offer_id)
            ext = self.use_token_extensions
            holdings = [
                _holding(taker, offer.token_mint_a, ext),
                _holding(taker, offer.token_mint_b, ext),
                _holding(offer.maker, offer.token_mint_b, ext),
            ]
            _transition(action, offer_id, ActionState.ASSEMBLING_SETUP)
            # gather keeps argument order whatever order the reads finish in.
            amounts = await asyncio.gather(
                *(self.ledger.get_asset_holding(h.address) for h in holdings)
            )
            taker_a, taker_b, maker_b = [
                _with_amount(h, amount) for h, amount in zip(holdings, amounts)
            ]
            plan = await self._assemble(
                offer.token_mint_b,
                None,
                lambda describe: assemble_take_offer(
                    taker,
                    offer,
                    taker_a,
                    taker_b,
                    maker_b,
                    use_token_extensions=ext,
                    describe_b=describe,
                ),
            )
        except Exception as exc:
            _fail(action, offer_id, exc)
            raise
        _transition(action, offer_id, ActionState.READY)
        return plan

    async def plan_refund_offer(self, caller: Pubkey, offer_id: int) -> TradePlan:
        action = OperationKind.REFUND_OFFER
        try:
            _transition(action, offer_id, ActionState.RESOLVING)
            offer = require_offer(await fetch_offer_async(self.ledger, offer_id), offer_id)
            plan = assemble_refund_offer(
                caller, offer, use_token_extensions=self.use_token_extensions
            )
        except Exception as exc:
            _fail(action, offer_id, exc)
            raise
        _transition(action, offer_id, ActionState.READY)
        return plan

    async def submit(
        self, plan: TradePlan, broadcaster: AsyncBroadcaster, fee_payer: Pubkey
    ) -> str:
        blockhash = await self.ledger.get_latest_blockhash()
        signature = await broadcaster.submit(list(plan.instructions), fee_payer, blockhash)
        LOGGER.info(
            "Submitted %s for offer %s: %s",
            plan.kind.value,
            plan.offer_id,
            signature,
            extra={"action": plan.kind.value, "offer_id": plan.offer_id},
        )
        return signature
