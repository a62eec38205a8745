"""
SolanaTracker Adapter — keyed swap API, optional third venue.

GET /swap with the x-api-key header returns {"txn": <base64>}.
"""

import base64
import binascii
import logging
from decimal import Decimal
from typing import Optional

import aiohttp
from solders.pubkey import Pubkey

from core.constitution import DEFAULTS, SOL_MINT
from core.errors import VenueError
from core.swap import SwapVenue

logger = logging.getLogger("flywheel.adapter.solanatracker")

SOLANATRACKER_API_URL = "https://swap-v2.solanatracker.io"


class SolanaTrackerAdapter(SwapVenue):

    def __init__(
        self,
        api_key: str,
        slippage_percent: float = DEFAULTS.SWAP_SLIPPAGE_PERCENT,
        priority_fee_sol: float = DEFAULTS.SWAP_PRIORITY_FEE_SOL,
        api_url: str = SOLANATRACKER_API_URL,
        timeout: float = DEFAULTS.HTTP_TIMEOUT_SECONDS,
    ):
        self._api_key = api_key
        self.slippage_percent = slippage_percent
        self.priority_fee_sol = priority_fee_sol
        self.api_url = api_url.rstrip("/")
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def venue_id(self) -> str:
        return "solanatracker"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout, headers={"x-api-key": self._api_key},
            )
        return self._session

    async def build_buy_transaction(self, owner: Pubkey, token_mint: str, sol_amount: Decimal) -> bytes:
        params = {
            "from": SOL_MINT,
            "to": token_mint,
            "fromAmount": str(sol_amount),   # SOL units, not lamports
            "slippage": str(self.slippage_percent),
            "payer": str(owner),
            "priorityFee": str(self.priority_fee_sol),
            "txVersion": "v0",
        }
        session = await self._get_session()
        try:
            async with session.get(f"{self.api_url}/swap", params=params) as resp:
                if resp.status != 200:
                    text = (await resp.text())[:200]
                    raise VenueError(self.venue_id, f"HTTP {resp.status}: {text}")
                data = await resp.json()
        except aiohttp.ClientError as e:
            raise VenueError(self.venue_id, f"{type(e).__name__}: {e}") from e

        encoded = (data or {}).get("txn")
        if not encoded:
            raise VenueError(self.venue_id, f"no transaction returned: {str(data)[:200]}")
        try:
            return base64.b64decode(encoded)
        except (binascii.Error, ValueError) as e:
            raise VenueError(self.venue_id, f"bad txn encoding: {e}") from e

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
