"""
Deterministic custodial wallets.

Every deposit wallet is re-derived from the master secret on demand:
    keypair(index) = Keypair.from_seed(sha256(f"{secret}-{index}"))
Index 0 is the platform wallet, projects get 1, 2, 3, ... in registration
order. Private keys never leave this module's return values; nothing here
persists or logs them.
"""

import hashlib

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from core.constitution import BURN_ADDRESS_SEED, SYSTEM_PROGRAM_ID


def _seed_bytes(secret: str, index: int) -> bytes:
    if not isinstance(secret, str) or not secret:
        raise ValueError("secret must be a non-empty string")
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValueError(f"wallet index must be a non-negative integer, got {index!r}")
    return hashlib.sha256(f"{secret}-{index}".encode("utf-8")).digest()


def derive_keypair(secret: str, index: int) -> Keypair:
    """Signing keypair for wallet `index`. Pure: same inputs, same key."""
    return Keypair.from_seed(_seed_bytes(secret, index))


def wallet_address(secret: str, index: int) -> str:
    """Base58 public address of wallet `index`."""
    return str(derive_keypair(secret, index).pubkey())


def burn_address(seed: str = BURN_ADDRESS_SEED) -> Pubkey:
    """Unspendable destination for incinerator-style burns.

    The address is the System Program PDA of sha256(seed). A PDA is off the
    ed25519 curve, so no private key for it exists.
    """
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    address, _bump = Pubkey.find_program_address([digest], SYSTEM_PROGRAM_ID)
    return address
