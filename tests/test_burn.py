# =============================================================================
# UNIT TESTS — Burn executor
# =============================================================================

import asyncio
from decimal import Decimal

import pytest
from solders.pubkey import Pubkey

from core.balance import BalanceOracle
from core.burn import (
    BurnExecutor,
    BurnStatus,
    IncineratorBurnStrategy,
    InstructionBurnStrategy,
    build_burn_strategy,
)
from core.constitution import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID
from core.errors import BurnFailed
from core.wallet import burn_address, derive_keypair

from fakes import PROJECT_MINT, SEED

KEYPAIR = derive_keypair(SEED, 1)
OWNER = KEYPAIR.pubkey()
ATA_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")


def _burner(rpc, strategy=None):
    oracle = BalanceOracle(rpc, settlement_timeout=0.05, initial_delay=0.01)
    return BurnExecutor(rpc, oracle, strategy=strategy or InstructionBurnStrategy())


# =============================================================================
# OUTCOMES
# =============================================================================

class TestBurnOutcomes:

    def test_burns_entire_balance(self, rpc):
        """The full raw balance is burned, not an estimate."""
        rpc.add_token_account(OWNER, PROJECT_MINT, 1_234_567_891, decimals=6)
        result = asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))
        assert result.burned
        assert result.raw_amount == 1_234_567_891
        assert result.burned_amount == Decimal("1234.567891")
        assert result.signature == "FakeSignature0001"
        assert len(rpc.sent) == 1

    def test_no_account_is_outcome_not_error(self, rpc):
        result = asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))
        assert result.status == BurnStatus.NO_TOKEN_ACCOUNT
        assert not result.burned
        assert rpc.sent == []

    def test_zero_balance_is_outcome_not_error(self, rpc):
        rpc.add_token_account(OWNER, PROJECT_MINT, 0)
        result = asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))
        assert result.status == BurnStatus.ZERO_BALANCE
        assert rpc.sent == []

    def test_unconfirmed_burn_raises_with_signature(self, rpc):
        rpc.add_token_account(OWNER, PROJECT_MINT, 100)
        rpc.confirm_script = ["timeout"]
        with pytest.raises(BurnFailed) as exc:
            asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))
        assert exc.value.signature == "FakeSignature0001"

    def test_send_failure_raises(self, rpc):
        rpc.add_token_account(OWNER, PROJECT_MINT, 100)
        rpc.fail_sends = True
        with pytest.raises(BurnFailed):
            asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))

    def test_oracle_failure_raises(self, rpc):
        rpc.fail_reads = True
        with pytest.raises(BurnFailed):
            asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))


# =============================================================================
# INSTRUCTIONS
# =============================================================================

class TestBurnInstructions:

    def test_uses_holding_program_for_token_2022(self, rpc):
        """Token-2022 holdings are burned through Token-2022, never SPL Token."""
        rpc.add_token_account(OWNER, PROJECT_MINT, 500, decimals=0, program_id=TOKEN_2022_PROGRAM_ID)
        result = asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))
        keys = rpc.sent[0].message.account_keys
        assert result.burned
        assert TOKEN_2022_PROGRAM_ID in keys
        assert TOKEN_PROGRAM_ID not in keys

    def test_signed_by_owner(self, rpc):
        rpc.add_token_account(OWNER, PROJECT_MINT, 500)
        asyncio.run(_burner(rpc).burn(KEYPAIR, PROJECT_MINT))
        assert rpc.sent[0].message.account_keys[0] == OWNER

    def test_incinerator_transfers_to_burn_address_ata(self, rpc):
        rpc.add_token_account(OWNER, PROJECT_MINT, 500)
        result = asyncio.run(_burner(rpc, IncineratorBurnStrategy()).burn(KEYPAIR, PROJECT_MINT))
        keys = rpc.sent[0].message.account_keys
        assert result.strategy == "incinerator"
        assert burn_address() in keys
        assert ATA_PROGRAM_ID in keys

    def test_strategy_factory(self):
        assert build_burn_strategy("incinerator").strategy_id == "incinerator"
        assert build_burn_strategy("instruction").strategy_id == "instruction"
