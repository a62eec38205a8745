"""
Solana RPC Layer - On-Chain Reads, Submission and Confirmation

Every component that touches the chain goes through SolanaRpc, so timeouts
and error mapping live in exactly one place.

Design:
- solana-py AsyncClient underneath, one per process
- Every call bounded by asyncio.wait_for(rpc_timeout); any failure -> RpcError
- Transactions go out as raw bytes with skip_preflight (venues already simulate)
- Confirmation is polled via getSignatureStatuses, bounded by confirm_timeout
- A confirmed-but-errored transaction is a failure, never a success

Designed for: flywheel buyback-burn service
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts, TxOpts
from solders.hash import Hash
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.transaction import VersionedTransaction

from core.constitution import DEFAULTS
from core.errors import RpcError

logger = logging.getLogger("flywheel.chain")

Address = Union[str, Pubkey]


def as_pubkey(address: Address) -> Pubkey:
    if isinstance(address, Pubkey):
        return address
    try:
        return Pubkey.from_string(address)
    except ValueError as e:
        raise ValueError(f"invalid Solana address {address!r}: {e}") from e


def sign_prebuilt(raw_tx: bytes, keypair: Keypair) -> VersionedTransaction:
    """Re-sign a venue-built transaction with the wallet that must pay for it."""
    unsigned = VersionedTransaction.from_bytes(raw_tx)
    return VersionedTransaction(unsigned.message, [keypair])


# ============================================================
# RESULT TYPES
# ============================================================

class ConfirmationStatus(str, Enum):
    CONFIRMED = "confirmed"
    FAILED = "failed"        # Landed with an on-chain error
    TIMEOUT = "timeout"      # Not seen confirmed before the deadline


@dataclass
class ChainTxResult:
    """Result of a submitted transaction."""
    success: bool
    signature: str = ""
    status: Optional[ConfirmationStatus] = None
    error: str = ""

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "signature": self.signature,
            "status": self.status.value if self.status else None,
            "error": self.error,
        }


@dataclass
class SignatureState:
    """Point-in-time view of one signature."""
    found: bool
    confirmed: bool = False
    error: str = ""


@dataclass
class TokenAccountInfo:
    """One parsed token account owned by a wallet."""
    address: Pubkey
    mint: str
    raw_amount: int
    decimals: int
    program_id: Pubkey


# ============================================================
# RPC CLIENT
# ============================================================

class SolanaRpc:
    """
    Thin bounded wrapper over solana-py's AsyncClient.

    Usage:
        rpc = SolanaRpc(config.rpc_url)
        lamports = await rpc.get_balance(address)
        result = await rpc.send_and_confirm(signed_tx)
    """

    def __init__(
        self,
        rpc_url: str,
        request_timeout: float = DEFAULTS.RPC_TIMEOUT_SECONDS,
        confirm_timeout: float = DEFAULTS.CONFIRM_TIMEOUT_SECONDS,
        poll_interval: float = 1.0,
        client: Optional[AsyncClient] = None,
    ):
        self.rpc_url = rpc_url
        self.request_timeout = request_timeout
        self.confirm_timeout = confirm_timeout
        self.poll_interval = poll_interval
        self._client = client or AsyncClient(rpc_url, commitment=Confirmed, timeout=request_timeout)

        self._tx_count: int = 0
        self._last_error: str = ""

    async def _call(self, what: str, awaitable):
        try:
            return await asyncio.wait_for(awaitable, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            self._last_error = f"{what}: timeout"
            raise RpcError(f"{what} timed out after {self.request_timeout}s") from e
        except Exception as e:
            self._last_error = f"{what}: {type(e).__name__}: {e}"
            raise RpcError(f"{what} failed: {type(e).__name__}: {e}") from e

    # ============================================================
    # READS
    # ============================================================

    async def get_balance(self, address: Address) -> int:
        """Native balance in lamports."""
        resp = await self._call("getBalance", self._client.get_balance(as_pubkey(address)))
        return int(resp.value)

    async def get_token_accounts(self, owner: Address, program_id: Pubkey) -> list[TokenAccountInfo]:
        """All token accounts of `owner` under one token program."""
        resp = await self._call(
            "getTokenAccountsByOwner",
            self._client.get_token_accounts_by_owner_json_parsed(
                as_pubkey(owner), TokenAccountOpts(program_id=program_id)
            ),
        )
        accounts = []
        for keyed in resp.value or []:
            try:
                info = keyed.account.data.parsed["info"]
                token_amount = info["tokenAmount"]
                accounts.append(TokenAccountInfo(
                    address=keyed.pubkey,
                    mint=info["mint"],
                    raw_amount=int(token_amount["amount"]),
                    decimals=int(token_amount["decimals"]),
                    program_id=program_id,
                ))
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Unparseable token account {keyed.pubkey}: {e}")
        return accounts

    async def get_latest_blockhash(self) -> Hash:
        resp = await self._call("getLatestBlockhash", self._client.get_latest_blockhash())
        return resp.value.blockhash

    async def get_signature_state(self, signature: str) -> SignatureState:
        resp = await self._call(
            "getSignatureStatuses",
            self._client.get_signature_statuses(
                [Signature.from_string(signature)], search_transaction_history=True
            ),
        )
        status = resp.value[0] if resp.value else None
        if status is None:
            return SignatureState(found=False)
        if status.err is not None:
            return SignatureState(found=True, confirmed=True, error=str(status.err))
        # confirmation_status None means the node predates the field; a
        # non-null status from a Confirmed-commitment client is confirmed.
        level = str(status.confirmation_status or "confirmed").lower()
        return SignatureState(found=True, confirmed=("confirmed" in level or "finalized" in level))

    async def is_healthy(self) -> bool:
        try:
            return bool(await self._call("getHealth", self._client.is_connected()))
        except RpcError as e:
            logger.warning(f"RPC health check failed: {e}")
            return False

    # ============================================================
    # WRITES
    # ============================================================

    async def send_transaction(self, tx: VersionedTransaction) -> str:
        """Submit a signed transaction; returns its signature."""
        resp = await self._call(
            "sendTransaction",
            self._client.send_raw_transaction(
                bytes(tx), opts=TxOpts(skip_preflight=True, max_retries=3)
            ),
        )
        self._tx_count += 1
        return str(resp.value)

    async def confirm_transaction(self, signature: str, timeout: Optional[float] = None) -> ChainTxResult:
        """Poll until confirmed, failed on-chain, or the deadline passes.

        Transient RPC errors while polling do not end the wait.
        """
        timeout = self.confirm_timeout if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            try:
                state = await self.get_signature_state(signature)
            except RpcError as e:
                logger.debug(f"Status poll for {signature[:16]}... failed: {e}")
                state = SignatureState(found=False)

            if state.error:
                logger.warning(f"TX FAILED: {signature[:16]}... | {state.error}")
                return ChainTxResult(
                    success=False, signature=signature,
                    status=ConfirmationStatus.FAILED, error=f"on-chain error: {state.error}",
                )
            if state.confirmed:
                return ChainTxResult(success=True, signature=signature, status=ConfirmationStatus.CONFIRMED)

            if loop.time() >= deadline:
                logger.warning(f"TX UNCONFIRMED after {timeout}s: {signature[:16]}...")
                return ChainTxResult(
                    success=False, signature=signature,
                    status=ConfirmationStatus.TIMEOUT, error=f"not confirmed within {timeout}s",
                )
            await asyncio.sleep(self.poll_interval)

    async def send_and_confirm(self, tx: VersionedTransaction) -> ChainTxResult:
        signature = await self.send_transaction(tx)
        result = await self.confirm_transaction(signature)
        if result.success:
            logger.info(f"TX SUCCESS: {signature[:16]}...")
        return result

    async def close(self):
        await self._client.close()

    # ============================================================
    # STATUS
    # ============================================================

    def get_status(self) -> dict:
        return {
            "rpc_url": self.rpc_url.split("?")[0],
            "tx_count": self._tx_count,
            "last_error": self._last_error,
        }
