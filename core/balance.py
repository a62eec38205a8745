"""
Balance Oracle - native and token balance reads.

Design:
- Token holdings are probed under every token program (SPL Token, Token-2022);
  the fullest account for the mint wins
- "No account" is a normal answer (None); an RPC failure is OracleUnavailable,
  never silently zero
- wait_for_token_balance replaces a fixed post-swap sleep with bounded
  exponential polling
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from solders.pubkey import Pubkey

from core.chain import Address, SolanaRpc, as_pubkey
from core.constitution import DEFAULTS, TOKEN_PROGRAM_VARIANTS, lamports_to_sol, raw_to_ui
from core.errors import OracleUnavailable, RpcError

logger = logging.getLogger("flywheel.balance")


@dataclass
class TokenHolding:
    account: Pubkey
    mint: str
    raw_amount: int
    decimals: int
    program_id: Pubkey

    @property
    def amount(self) -> Decimal:
        return raw_to_ui(self.raw_amount, self.decimals)


class BalanceOracle:

    def __init__(
        self,
        rpc: SolanaRpc,
        settlement_timeout: float = DEFAULTS.SETTLEMENT_TIMEOUT_SECONDS,
        initial_delay: float = 0.5,
        max_delay: float = 4.0,
        program_ids: tuple[Pubkey, ...] = TOKEN_PROGRAM_VARIANTS,
    ):
        self.rpc = rpc
        self.settlement_timeout = settlement_timeout
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.program_ids = program_ids

    async def native_balance(self, address: Address) -> int:
        """Lamports held by `address`."""
        try:
            return await self.rpc.get_balance(address)
        except RpcError as e:
            raise OracleUnavailable(f"native balance of {address}: {e}") from e

    async def native_balance_sol(self, address: Address) -> Decimal:
        return lamports_to_sol(await self.native_balance(address))

    async def token_balance(self, owner: Address, mint: str) -> Optional[TokenHolding]:
        """Holding of `mint` by `owner`, or None when no account exists."""
        owner_key = as_pubkey(owner)
        for program_id in self.program_ids:
            try:
                accounts = await self.rpc.get_token_accounts(owner_key, program_id)
            except RpcError as e:
                raise OracleUnavailable(f"token accounts of {owner_key} ({program_id}): {e}") from e

            matching = [a for a in accounts if a.mint == mint]
            if matching:
                # Several accounts for one mint: burn from the fullest
                best = max(matching, key=lambda a: a.raw_amount)
                return TokenHolding(
                    account=best.address,
                    mint=mint,
                    raw_amount=best.raw_amount,
                    decimals=best.decimals,
                    program_id=program_id,
                )
        return None

    async def wait_for_token_balance(
        self,
        owner: Address,
        mint: str,
        timeout: Optional[float] = None,
    ) -> Optional[TokenHolding]:
        """Poll until `owner` holds a non-zero amount of `mint`.

        Returns None only if at least one read succeeded and the deadline
        passed with nothing received. If every read failed, raises
        OracleUnavailable: we cannot claim "no tokens" without seeing it.
        """
        timeout = self.settlement_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        delay = self.initial_delay
        observed = False
        last_error: Optional[OracleUnavailable] = None

        while True:
            try:
                holding = await self.token_balance(owner, mint)
                observed = True
                if holding is not None and holding.raw_amount > 0:
                    return holding
            except OracleUnavailable as e:
                last_error = e
                logger.debug(f"Settlement poll failed for {mint[:8]}...: {e}")

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(delay, remaining))
            delay = min(delay * 2, self.max_delay)

        if not observed and last_error is not None:
            raise last_error
        logger.info(f"No {mint[:8]}... received by {str(owner)[:8]}... within {timeout}s")
        return None
