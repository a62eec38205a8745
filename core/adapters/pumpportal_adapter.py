"""
PumpPortal Adapter — pump.fun bonding curve and PumpSwap buys

Uses the local-transaction API: POST /api/trade-local returns the raw bytes
of an unsigned VersionedTransaction, which the router signs and submits.
Works for tokens still on the bonding curve and for graduated ones.

Also builds creator-fee claim transactions (action=collectCreatorFee) for
wallets that deployed their token through pump.fun.

Designed for: flywheel buyback-burn service
"""

import logging
from decimal import Decimal
from typing import Optional

import aiohttp
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from core.chain import ChainTxResult, SolanaRpc, sign_prebuilt
from core.constitution import DEFAULTS
from core.errors import VenueError
from core.swap import SwapVenue

logger = logging.getLogger("flywheel.adapter.pumpportal")

PUMPPORTAL_TRADE_URL = "https://pumpportal.fun/api/trade-local"


class PumpPortalAdapter(SwapVenue):
    """Primary venue for pump.fun launches."""

    def __init__(
        self,
        slippage_percent: float = DEFAULTS.SWAP_SLIPPAGE_PERCENT,
        priority_fee_sol: float = DEFAULTS.SWAP_PRIORITY_FEE_SOL,
        pool: str = "auto",
        timeout: float = DEFAULTS.HTTP_TIMEOUT_SECONDS,
        trade_url: str = PUMPPORTAL_TRADE_URL,
    ):
        self.slippage_percent = slippage_percent
        self.priority_fee_sol = priority_fee_sol
        self.pool = pool
        self.trade_url = trade_url
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def venue_id(self) -> str:
        return "pumpportal"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def build_buy_transaction(self, owner: Pubkey, token_mint: str, sol_amount: Decimal) -> bytes:
        payload = {
            "publicKey": str(owner),
            "action": "buy",
            "mint": token_mint,
            "amount": float(sol_amount),
            "denominatedInSol": "true",
            "slippage": self.slippage_percent,
            "priorityFee": self.priority_fee_sol,
            "pool": self.pool,
        }
        raw = await self._post_trade(payload)
        if raw is None:
            raise VenueError(self.venue_id, "empty transaction")
        return raw

    async def build_collect_fee_transaction(self, owner: Pubkey, token_mint: str) -> Optional[bytes]:
        """Creator-fee claim transaction, or None when nothing is claimable."""
        payload = {
            "publicKey": str(owner),
            "action": "collectCreatorFee",
            "mint": token_mint,
            "priorityFee": self.priority_fee_sol,
        }
        try:
            return await self._post_trade(payload)
        except VenueError as e:
            if "no fees" in str(e).lower():
                return None
            raise

    async def _post_trade(self, payload: dict) -> Optional[bytes]:
        session = await self._get_session()
        try:
            async with session.post(self.trade_url, json=payload) as resp:
                if resp.status != 200:
                    text = (await resp.text())[:200]
                    raise VenueError(self.venue_id, f"HTTP {resp.status}: {text}")
                data = await resp.read()
        except aiohttp.ClientError as e:
            raise VenueError(self.venue_id, f"{type(e).__name__}: {e}") from e
        return data or None

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()


class PumpPortalFeeClaimer:
    """Claims accumulated pump.fun creator fees into the deposit wallet."""

    def __init__(self, adapter: PumpPortalAdapter, rpc: SolanaRpc):
        self.adapter = adapter
        self.rpc = rpc

    async def claim(self, keypair: Keypair, token_mint: str) -> Optional[ChainTxResult]:
        """Submit a claim if PumpPortal offers one. None = nothing to claim."""
        raw = await self.adapter.build_collect_fee_transaction(keypair.pubkey(), token_mint)
        if raw is None:
            logger.debug(f"No creator fees to claim for {token_mint[:8]}...")
            return None

        result = await self.rpc.send_and_confirm(sign_prebuilt(raw, keypair))
        if result.success:
            logger.info(f"Creator fees claimed for {token_mint[:8]}... | sig={result.signature[:16]}...")
        else:
            logger.warning(f"Creator fee claim for {token_mint[:8]}... failed: {result.error}")
        return result
