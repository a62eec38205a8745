"""
Jupiter Adapter — aggregator fallback for graduated tokens

Two calls per buy: GET /quote (SOL -> token, exact in) then POST /swap,
which returns a base64 VersionedTransaction for the user to sign.

Designed for: flywheel buyback-burn service
"""

import base64
import binascii
import logging
from decimal import Decimal
from typing import Optional

import aiohttp
from solders.pubkey import Pubkey

from core.constitution import DEFAULTS, SOL_MINT, sol_to_lamports
from core.errors import VenueError
from core.swap import SwapVenue

logger = logging.getLogger("flywheel.adapter.jupiter")

JUPITER_API_URL = "https://lite-api.jup.ag/swap/v1"


class JupiterAdapter(SwapVenue):

    def __init__(
        self,
        slippage_percent: float = DEFAULTS.SWAP_SLIPPAGE_PERCENT,
        priority_fee_sol: float = DEFAULTS.SWAP_PRIORITY_FEE_SOL,
        api_url: str = JUPITER_API_URL,
        timeout: float = DEFAULTS.HTTP_TIMEOUT_SECONDS,
    ):
        self.slippage_bps = int(round(slippage_percent * 100))
        self.priority_fee_lamports = sol_to_lamports(priority_fee_sol)
        self.api_url = api_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def venue_id(self) -> str:
        return "jupiter"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def build_buy_transaction(self, owner: Pubkey, token_mint: str, sol_amount: Decimal) -> bytes:
        lamports = sol_to_lamports(sol_amount)
        session = await self._get_session()

        params = {
            "inputMint": SOL_MINT,
            "outputMint": token_mint,
            "amount": str(lamports),
            "slippageBps": str(self.slippage_bps),
            "swapMode": "ExactIn",
        }
        try:
            async with session.get(f"{self.api_url}/quote", params=params) as resp:
                if resp.status != 200:
                    text = (await resp.text())[:200]
                    raise VenueError(self.venue_id, f"quote HTTP {resp.status}: {text}")
                quote = await resp.json()

            if not quote or "outAmount" not in quote:
                raise VenueError(self.venue_id, f"no route: {str(quote)[:200]}")

            body = {
                "quoteResponse": quote,
                "userPublicKey": str(owner),
                "wrapAndUnwrapSol": True,
                "dynamicComputeUnitLimit": True,
                "prioritizationFeeLamports": self.priority_fee_lamports,
            }
            async with session.post(f"{self.api_url}/swap", json=body) as resp:
                if resp.status != 200:
                    text = (await resp.text())[:200]
                    raise VenueError(self.venue_id, f"swap HTTP {resp.status}: {text}")
                data = await resp.json()
        except aiohttp.ClientError as e:
            raise VenueError(self.venue_id, f"{type(e).__name__}: {e}") from e

        encoded = (data or {}).get("swapTransaction")
        if not encoded:
            raise VenueError(self.venue_id, f"no swapTransaction: {str(data)[:200]}")
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise VenueError(self.venue_id, f"bad swapTransaction encoding: {e}") from e

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
