"""
Swap Router — buy a token with native SOL through an ordered venue list.

Architecture:
- SwapVenue (ABC): one per aggregator/launchpad API; builds an unsigned,
  prebuilt transaction for "spend X SOL on token Y"
- SwapRouter: truncates the amount, asks each venue in order, signs,
  submits, confirms; first confirmed swap wins

Failure handling:
1. HTTP/build error, send error, on-chain error, confirmation timeout -> next venue
2. Every venue failed -> SwapFailed naming each venue's error
3. A timed-out signature may still land later; it is reported back in
   unconfirmed_signatures so the caller can reconcile it before spending again

Designed for: flywheel buyback-burn service
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from core.chain import ConfirmationStatus, SolanaRpc, sign_prebuilt
from core.constitution import DEFAULTS, Amount, truncate_amount
from core.errors import RpcError, SwapFailed, VenueError

logger = logging.getLogger("flywheel.swap")


# ============================================================
# DATA TYPES
# ============================================================

@dataclass
class SwapResult:
    """A confirmed buy."""
    signature: str
    sol_spent: Decimal
    venue: str
    fallback_errors: list[str] = field(default_factory=list)
    unconfirmed_signatures: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "sol_spent": float(self.sol_spent),
            "venue": self.venue,
            "fallback_errors": list(self.fallback_errors),
            "unconfirmed_signatures": list(self.unconfirmed_signatures),
        }


class SwapVenue(ABC):
    """
    Abstract base class for swap venue integrations.

    A venue only builds the transaction. Signing, submission and
    confirmation stay with the router so every venue is held to the
    same confirmation rules.
    """

    @property
    @abstractmethod
    def venue_id(self) -> str:
        """Unique identifier (e.g. 'pumpportal', 'jupiter')."""
        ...

    @abstractmethod
    async def build_buy_transaction(self, owner: Pubkey, token_mint: str, sol_amount: Decimal) -> bytes:
        """
        Serialized VersionedTransaction spending `sol_amount` SOL from
        `owner` on `token_mint`. Raises VenueError on any failure.
        """
        ...

    async def close(self):
        """Release HTTP resources. Venues without any may ignore this."""
        return None


# ============================================================
# ROUTER
# ============================================================

class SwapRouter:
    """
    Usage:
        router = SwapRouter(rpc, [PumpPortalAdapter(...), JupiterAdapter(...)])
        result = await router.buy_with_native(keypair, mint, Decimal("0.0441"))
    """

    def __init__(
        self,
        rpc: SolanaRpc,
        venues: list[SwapVenue],
        amount_decimals: int = DEFAULTS.SWAP_AMOUNT_DECIMALS,
        build_timeout: float = DEFAULTS.HTTP_TIMEOUT_SECONDS,
    ):
        self.rpc = rpc
        self.venues = list(venues)
        self.amount_decimals = amount_decimals
        self.build_timeout = build_timeout

        self._swap_count: int = 0
        self._fallback_count: int = 0

    @property
    def venue_ids(self) -> list[str]:
        return [v.venue_id for v in self.venues]

    async def buy_with_native(self, keypair: Keypair, token_mint: str, sol_amount: Amount) -> SwapResult:
        amount = truncate_amount(sol_amount, self.amount_decimals)
        if amount <= 0:
            raise SwapFailed([f"amount {sol_amount} truncates to zero at {self.amount_decimals} decimals"])

        owner = keypair.pubkey()
        errors: list[str] = []
        unconfirmed: list[str] = []

        for venue in self.venues:
            signature, error, timed_out = await self._attempt(venue, keypair, owner, token_mint, amount)
            if error is None:
                self._swap_count += 1
                if errors:
                    self._fallback_count += 1
                logger.info(
                    f"SWAP OK [{venue.venue_id}]: {amount} SOL -> {token_mint[:8]}... | "
                    f"sig={signature[:16]}..."
                )
                return SwapResult(
                    signature=signature,
                    sol_spent=amount,
                    venue=venue.venue_id,
                    fallback_errors=errors,
                    unconfirmed_signatures=unconfirmed,
                )

            errors.append(f"{venue.venue_id}: {error}")
            if timed_out and signature:
                unconfirmed.append(signature)
            logger.warning(f"SWAP FAILED [{venue.venue_id}] for {token_mint[:8]}...: {error}")

        raise SwapFailed(errors, unconfirmed_signatures=unconfirmed)

    async def _attempt(
        self, venue: SwapVenue, keypair: Keypair, owner: Pubkey, token_mint: str, amount: Decimal,
    ) -> tuple[str, Optional[str], bool]:
        """One venue, end to end. Returns (signature, error, timed_out)."""
        try:
            raw_tx = await asyncio.wait_for(
                venue.build_buy_transaction(owner, token_mint, amount), timeout=self.build_timeout,
            )
        except asyncio.TimeoutError:
            return "", f"build timed out after {self.build_timeout}s", False
        except VenueError as e:
            return "", str(e), False

        try:
            signed = sign_prebuilt(raw_tx, keypair)
        except Exception as e:
            return "", f"unusable transaction: {type(e).__name__}: {e}", False

        try:
            signature = await self.rpc.send_transaction(signed)
        except RpcError as e:
            return "", str(e), False

        result = await self.rpc.confirm_transaction(signature)
        if result.success:
            return signature, None, False
        return signature, result.error, result.status == ConfirmationStatus.TIMEOUT

    async def close(self):
        for venue in self.venues:
            await venue.close()

    def get_status(self) -> dict:
        return {
            "venues": self.venue_ids,
            "swaps": self._swap_count,
            "fallbacks": self._fallback_count,
        }
