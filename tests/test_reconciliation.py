# =============================================================================
# UNIT TESTS — Pending swap reconciliation
# =============================================================================

import asyncio
from decimal import Decimal

from core.chain import SignatureState
from core.models import PendingStatus, PendingSwap
from core.reconciliation import Reconciler

from fakes import PLATFORM_MINT, PROJECT_MINT

OLD = "2026-01-01T00:00:00+00:00"


def _pending(signature, created_at=None):
    kwargs = {"created_at": created_at} if created_at else {}
    return PendingSwap(
        signature=signature, token_mint=PROJECT_MINT, target_mint=PROJECT_MINT,
        leg="project", sol_amount=0.0441, **kwargs,
    )


class TestReconciler:

    def test_track_stores_each_signature(self, rpc, ledger):
        reconciler = Reconciler(rpc, ledger)

        async def scenario():
            await reconciler.track(PROJECT_MINT, PLATFORM_MINT, "platform", ["a", "b"], Decimal("0.0009"), "jupiter")
            return await ledger.get_pending_swaps(PROJECT_MINT)

        pending = asyncio.run(scenario())
        assert [p.signature for p in pending] == ["a", "b"]
        assert pending[0].target_mint == PLATFORM_MINT
        assert pending[0].sol_amount == 0.0009
        assert pending[0].venue == "jupiter"

    def test_classifies_every_state(self, rpc, ledger):
        rpc.signature_states = {
            "landed": SignatureState(found=True, confirmed=True),
            "failed": SignatureState(found=True, confirmed=True, error="InstructionError"),
        }
        reconciler = Reconciler(rpc, ledger, expiry_seconds=180)

        async def scenario():
            for pending in (_pending("landed"), _pending("failed"), _pending("dropped", OLD), _pending("young")):
                await ledger.append_pending_swap(pending)
            report = await reconciler.reconcile(PROJECT_MINT)
            return report, await ledger.get_pending_swaps(PROJECT_MINT)

        report, still_pending = asyncio.run(scenario())
        assert report.to_dict() == {
            "landed": ["landed"],
            "failed": ["failed"],
            "dropped": ["dropped"],
            "unresolved": ["young"],
        }
        assert report.blocked
        assert [p.signature for p in still_pending] == ["young"]
        assert report.landed[0].status == PendingStatus.LANDED

    def test_rpc_failure_leaves_swap_unresolved(self, rpc, ledger):
        """An unreachable node never resolves anything, even an old swap."""
        rpc.fail_reads = True
        reconciler = Reconciler(rpc, ledger, expiry_seconds=180)

        async def scenario():
            await ledger.append_pending_swap(_pending("old", OLD))
            return await reconciler.reconcile(PROJECT_MINT)

        report = asyncio.run(scenario())
        assert [p.signature for p in report.unresolved] == ["old"]
        assert report.dropped == []

    def test_nothing_pending_is_not_blocked(self, rpc, ledger):
        report = asyncio.run(Reconciler(rpc, ledger).reconcile(PROJECT_MINT))
        assert not report.blocked
