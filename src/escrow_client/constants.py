"""Protocol constants for the on-chain escrow program."""

# Reference: frontend/lib/solana.ts and the deployed program's IDL.

DEFAULT_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_COMMITMENT = "confirmed"

ESCROW_PROGRAM_ID = "6zSSLr3UjdtLcLXRrCSvJAvRHdFbbMnkBjxagfttFR2r"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"
TOKEN_PROGRAM_ID = "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA"
TOKEN_2022_PROGRAM_ID = "TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb"
ASSOCIATED_TOKEN_PROGRAM_ID = "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL"

OFFER_SEED = b"offer"
PDA_MARKER = b"ProgramDerivedAddress"
MAX_SEEDS = 16
MAX_SEED_LENGTH = 32

# Anchor account discriminator for the Offer record.
OFFER_DISCRIMINATOR = bytes([215, 88, 60, 71, 170, 162, 73, 229])
OFFER_ACCOUNT_SIZE = 121

# Instruction discriminators; must match the deployed program exactly.
MAKE_OFFER_DISCRIMINATOR = bytes([214, 98, 97, 35, 59, 12, 44, 178])
TAKE_OFFER_DISCRIMINATOR = bytes([128, 156, 242, 207, 237, 192, 103, 240])
REFUND_OFFER_DISCRIMINATOR = bytes([171, 18, 70, 32, 244, 121, 60, 75])

# SPL mint layout: decimals follow mint_authority (36) and supply (8).
MINT_DECIMALS_OFFSET = 44

U64_MAX = 2**64 - 1


def token_program_id(use_token_extensions: bool = False) -> str:
    """Return the custody program id for the requested token flavour."""
    return TOKEN_2022_PROGRAM_ID if use_token_extensions else TOKEN_PROGRAM_ID
