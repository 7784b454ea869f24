"""Error taxonomy for escrow client operations."""

from __future__ import annotations


class EscrowError(Exception):
    """Base exception for escrow client failures."""


class InvalidInput(EscrowError):
    """Raised when caller-supplied input is rejected before any network access."""


class InvalidAmount(InvalidInput):
    """Raised when a decimal amount string cannot be converted to a u64."""

    def __init__(self, message: str, text: str | None = None) -> None:
        super().__init__(message)
        self.text = text


class TradeNotFound(EscrowError):
    """Raised when no offer record exists for an id."""

    def __init__(self, offer_id: int, address: str | None = None) -> None:
        message = f"Offer {offer_id} not found"
        if address:
            message = f"{message} (record address {address})"
        super().__init__(message)
        self.offer_id = offer_id
        self.address = address


class NotAuthorized(EscrowError):
    """Raised when the caller is not the maker of the offer it tries to refund."""

    def __init__(self, offer_id: int, caller: str, maker: str) -> None:
        super().__init__(
            f"Only the maker can refund offer {offer_id}: caller {caller} is not maker {maker}"
        )
        self.offer_id = offer_id
        self.caller = caller
        self.maker = maker


class InsufficientBalance(EscrowError):
    """Raised when a holding account cannot cover the required amount."""

    def __init__(
        self,
        message: str,
        *,
        account: str,
        mint: str,
        required: int,
        available: int,
    ) -> None:
        super().__init__(message)
        self.account = account
        self.mint = mint
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> int:
        return max(self.required - self.available, 0)


class MissingFunds(InsufficientBalance):
    """Raised when the paying holding account does not exist yet.

    The setup step that would create it is still part of the plan attached to
    the exception so callers can show what would have been submitted.
    """

    def __init__(
        self,
        message: str,
        *,
        account: str,
        mint: str,
        required: int,
        setup_instructions: list | None = None,
    ) -> None:
        super().__init__(
            message, account=account, mint=mint, required=required, available=0
        )
        self.setup_instructions = list(setup_instructions or [])


class RecordDecodeError(EscrowError):
    """Raised when raw account bytes cannot be decoded as an offer record."""

    def __init__(self, message: str, address: str | None = None) -> None:
        super().__init__(message)
        self.address = address


class UnrecognizedRecordType(RecordDecodeError):
    """Raised when the leading discriminator does not identify an offer."""


class DerivationExhausted(EscrowError):
    """Raised when no bump in [0, 255] yields an off-curve address."""
