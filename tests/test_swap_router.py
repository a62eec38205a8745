# =============================================================================
# UNIT TESTS — Swap router fallback and confirmation rules
# =============================================================================

import asyncio
from decimal import Decimal

import pytest
from solders.message import to_bytes_versioned

from core.errors import SwapFailed
from core.swap import SwapRouter
from core.wallet import derive_keypair

from fakes import PROJECT_MINT, SEED, FakeVenue

KEYPAIR = derive_keypair(SEED, 1)


def _router(rpc, *venues):
    return SwapRouter(rpc, list(venues), amount_decimals=4, build_timeout=1.0)


class TestAmountTruncation:

    def test_amount_truncated_not_rounded(self, rpc):
        venue = FakeVenue("primary")
        result = asyncio.run(_router(rpc, venue).buy_with_native(KEYPAIR, PROJECT_MINT, Decimal("0.044199")))
        assert result.sol_spent == Decimal("0.0441")
        assert venue.requests[0][2] == Decimal("0.0441")

    def test_amount_truncating_to_zero_fails_before_any_venue(self, rpc):
        venue = FakeVenue("primary")
        with pytest.raises(SwapFailed):
            asyncio.run(_router(rpc, venue).buy_with_native(KEYPAIR, PROJECT_MINT, Decimal("0.00009")))
        assert venue.requests == []
        assert rpc.sent == []


class TestFallback:

    def test_primary_success_skips_secondary(self, rpc):
        primary, secondary = FakeVenue("primary"), FakeVenue("secondary")
        result = asyncio.run(_router(rpc, primary, secondary).buy_with_native(KEYPAIR, PROJECT_MINT, 0.05))
        assert result.venue == "primary"
        assert result.fallback_errors == []
        assert secondary.requests == []

    def test_venue_error_falls_back(self, rpc):
        """Primary HTTP failure -> secondary swap, primary error reported."""
        primary = FakeVenue("primary", error="HTTP 500")
        secondary = FakeVenue("secondary")
        result = asyncio.run(_router(rpc, primary, secondary).buy_with_native(KEYPAIR, PROJECT_MINT, 0.05))
        assert result.venue == "secondary"
        assert len(result.fallback_errors) == 1
        assert "HTTP 500" in result.fallback_errors[0]
        assert len(rpc.sent) == 1

    def test_on_chain_failure_falls_back(self, rpc):
        rpc.confirm_script = ["failed", "confirmed"]
        result = asyncio.run(
            _router(rpc, FakeVenue("primary"), FakeVenue("secondary")).buy_with_native(KEYPAIR, PROJECT_MINT, 0.05)
        )
        assert result.venue == "secondary"
        assert result.unconfirmed_signatures == []
        assert len(rpc.sent) == 2

    def test_transaction_signed_by_deposit_wallet(self, rpc):
        asyncio.run(_router(rpc, FakeVenue("primary")).buy_with_native(KEYPAIR, PROJECT_MINT, 0.05))
        tx = rpc.sent[0]
        assert tx.message.account_keys[0] == KEYPAIR.pubkey()
        assert tx.signatures[0].verify(KEYPAIR.pubkey(), to_bytes_versioned(tx.message))

    def test_all_venues_fail(self, rpc):
        primary = FakeVenue("primary", error="HTTP 500")
        secondary = FakeVenue("secondary", error="no route")
        with pytest.raises(SwapFailed) as exc:
            asyncio.run(_router(rpc, primary, secondary).buy_with_native(KEYPAIR, PROJECT_MINT, 0.05))
        assert len(exc.value.errors) == 2
        assert exc.value.unconfirmed_signatures == []
        assert "no route" in str(exc.value)

    def test_timed_out_signature_reported_unconfirmed(self, rpc):
        """A timeout may still land: its signature travels with the failure."""
        rpc.confirm_script = ["timeout", "failed"]
        with pytest.raises(SwapFailed) as exc:
            asyncio.run(
                _router(rpc, FakeVenue("primary"), FakeVenue("secondary"))
                .buy_with_native(KEYPAIR, PROJECT_MINT, 0.05)
            )
        assert exc.value.unconfirmed_signatures == ["FakeSignature0001"]

    def test_send_error_falls_back(self, rpc):
        router = _router(rpc, FakeVenue("primary"), FakeVenue("secondary"))
        rpc.fail_sends = True
        with pytest.raises(SwapFailed) as exc:
            asyncio.run(router.buy_with_native(KEYPAIR, PROJECT_MINT, 0.05))
        assert all("node is behind" in e for e in exc.value.errors)

    def test_status_counts_fallbacks(self, rpc):
        router = _router(rpc, FakeVenue("primary", error="down"), FakeVenue("secondary"))
        asyncio.run(router.buy_with_native(KEYPAIR, PROJECT_MINT, 0.05))
        status = router.get_status()
        assert status["swaps"] == 1
        assert status["fallbacks"] == 1
        assert status["venues"] == ["primary", "secondary"]
