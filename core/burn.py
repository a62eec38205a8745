"""
Burn Executor — irreversibly destroy a wallet's entire holding of a token.

Design:
- The holding is located through the BalanceOracle (SPL Token or Token-2022);
  the instruction always uses that holding's own program id and decimals
- The *entire* raw balance of the found account is burned, never a computed
  estimate of what the swap bought
- Two strategies:
    instruction  -> SPL burn_checked (supply actually decreases)
    incinerator  -> transfer_checked to an ATA of an off-curve burn address
- "No account" and "zero balance" are outcomes, not errors; a send or
  confirmation failure is BurnFailed

Designed for: flywheel buyback-burn service
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from solders.compute_budget import set_compute_unit_price
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.transaction import VersionedTransaction
from spl.token.instructions import (
    BurnCheckedParams,
    TransferCheckedParams,
    burn_checked,
    create_idempotent_associated_token_account,
    get_associated_token_address,
    transfer_checked,
)

from core.balance import BalanceOracle, TokenHolding
from core.chain import SolanaRpc
from core.constitution import DEFAULTS
from core.errors import BurnFailed, NoTokenAccount, OracleUnavailable, RpcError, ZeroBalance
from core.wallet import burn_address

logger = logging.getLogger("flywheel.burn")


# ============================================================
# RESULT TYPES
# ============================================================

class BurnStatus(str, Enum):
    BURNED = "burned"
    NO_TOKEN_ACCOUNT = "no_token_account"
    ZERO_BALANCE = "zero_balance"


@dataclass
class BurnResult:
    status: BurnStatus
    signature: str = ""
    burned_amount: Decimal = Decimal(0)
    raw_amount: int = 0
    decimals: int = 0
    account: str = ""
    strategy: str = ""

    @property
    def burned(self) -> bool:
        return self.status == BurnStatus.BURNED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "signature": self.signature,
            "burned_amount": float(self.burned_amount),
            "raw_amount": self.raw_amount,
            "decimals": self.decimals,
            "account": self.account,
            "strategy": self.strategy,
        }


# ============================================================
# STRATEGIES
# ============================================================

class BurnStrategy(ABC):

    @property
    @abstractmethod
    def strategy_id(self) -> str:
        ...

    @abstractmethod
    def build_instructions(self, owner: Pubkey, holding: TokenHolding) -> list[Instruction]:
        """Instructions that remove `holding.raw_amount` from circulation."""
        ...


class InstructionBurnStrategy(BurnStrategy):
    """SPL burn_checked: the mint's supply shrinks."""

    @property
    def strategy_id(self) -> str:
        return "instruction"

    def build_instructions(self, owner: Pubkey, holding: TokenHolding) -> list[Instruction]:
        return [burn_checked(BurnCheckedParams(
            program_id=holding.program_id,
            mint=Pubkey.from_string(holding.mint),
            account=holding.account,
            owner=owner,
            amount=holding.raw_amount,
            decimals=holding.decimals,
        ))]


class IncineratorBurnStrategy(BurnStrategy):
    """Transfer everything to the burn address's associated token account.

    For tokens whose mint forbids burn, or where visible 'dead wallet'
    holdings are wanted. The ATA is created idempotently, paid by the owner.
    """

    def __init__(self, destination_owner: Optional[Pubkey] = None):
        self.destination_owner = destination_owner or burn_address()

    @property
    def strategy_id(self) -> str:
        return "incinerator"

    def build_instructions(self, owner: Pubkey, holding: TokenHolding) -> list[Instruction]:
        mint = Pubkey.from_string(holding.mint)
        destination = get_associated_token_address(
            self.destination_owner, mint, token_program_id=holding.program_id,
        )
        return [
            create_idempotent_associated_token_account(
                payer=owner,
                owner=self.destination_owner,
                mint=mint,
                token_program_id=holding.program_id,
            ),
            transfer_checked(TransferCheckedParams(
                program_id=holding.program_id,
                source=holding.account,
                mint=mint,
                dest=destination,
                owner=owner,
                amount=holding.raw_amount,
                decimals=holding.decimals,
            )),
        ]


def build_burn_strategy(name: str) -> BurnStrategy:
    if name == "incinerator":
        return IncineratorBurnStrategy()
    return InstructionBurnStrategy()


# ============================================================
# EXECUTOR
# ============================================================

class BurnExecutor:
    """
    Usage:
        burner = BurnExecutor(rpc, oracle, InstructionBurnStrategy())
        result = await burner.burn(keypair, token_mint)
        if result.burned: ...
    """

    def __init__(
        self,
        rpc: SolanaRpc,
        oracle: BalanceOracle,
        strategy: Optional[BurnStrategy] = None,
        priority_microlamports: int = DEFAULTS.BURN_PRIORITY_MICROLAMPORTS,
    ):
        self.rpc = rpc
        self.oracle = oracle
        self.strategy = strategy or InstructionBurnStrategy()
        self.priority_microlamports = priority_microlamports
        self._burn_count: int = 0

    async def _find_holding(self, owner: Pubkey, token_mint: str) -> TokenHolding:
        holding = await self.oracle.token_balance(owner, token_mint)
        if holding is None:
            raise NoTokenAccount(f"{owner} holds no {token_mint} account")
        if holding.raw_amount <= 0:
            raise ZeroBalance(f"{holding.account} holds 0 {token_mint}")
        return holding

    async def burn(self, keypair: Keypair, token_mint: str) -> BurnResult:
        owner = keypair.pubkey()

        try:
            holding = await self._find_holding(owner, token_mint)
        except NoTokenAccount:
            return BurnResult(status=BurnStatus.NO_TOKEN_ACCOUNT, strategy=self.strategy.strategy_id)
        except ZeroBalance:
            return BurnResult(status=BurnStatus.ZERO_BALANCE, strategy=self.strategy.strategy_id)
        except OracleUnavailable as e:
            raise BurnFailed(f"could not locate {token_mint[:8]}... holding: {e}") from e

        instructions = self.strategy.build_instructions(owner, holding)
        if self.priority_microlamports > 0:
            instructions.insert(0, set_compute_unit_price(self.priority_microlamports))

        try:
            blockhash = await self.rpc.get_latest_blockhash()
            message = MessageV0.try_compile(owner, instructions, [], blockhash)
            tx = VersionedTransaction(message, [keypair])
            result = await self.rpc.send_and_confirm(tx)
        except RpcError as e:
            raise BurnFailed(f"burn submission failed: {e}") from e

        if not result.success:
            raise BurnFailed(f"burn not confirmed: {result.error}", signature=result.signature)

        self._burn_count += 1
        logger.info(
            f"BURNED [{self.strategy.strategy_id}]: {holding.amount} of {token_mint[:8]}... "
            f"from {str(holding.account)[:8]}... | sig={result.signature[:16]}..."
        )
        return BurnResult(
            status=BurnStatus.BURNED,
            signature=result.signature,
            burned_amount=holding.amount,
            raw_amount=holding.raw_amount,
            decimals=holding.decimals,
            account=str(holding.account),
            strategy=self.strategy.strategy_id,
        )

    def get_status(self) -> dict:
        return {"strategy": self.strategy.strategy_id, "burns": self._burn_count}
