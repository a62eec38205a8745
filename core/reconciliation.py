"""
Swap reconciliation — settle signatures that never confirmed in time.

A swap that times out may still land. Before a project's wallet spends
again, every pending swap of that project is resolved:

    landed   -> confirmed without error; the tokens it bought still need burning
    failed   -> landed with an on-chain error; the SOL was not spent
    dropped  -> still unknown after the expiry window (blockhash long expired)
    pending  -> unknown and still inside the window; the run must wait
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from core.chain import SolanaRpc
from core.constitution import DEFAULTS
from core.errors import RpcError
from core.ledger import Ledger
from core.models import PendingStatus, PendingSwap

logger = logging.getLogger("flywheel.reconciliation")


@dataclass
class ReconciliationReport:
    landed: list[PendingSwap] = field(default_factory=list)
    failed: list[PendingSwap] = field(default_factory=list)
    dropped: list[PendingSwap] = field(default_factory=list)
    unresolved: list[PendingSwap] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        return bool(self.unresolved)

    def to_dict(self) -> dict:
        return {
            "landed": [p.signature for p in self.landed],
            "failed": [p.signature for p in self.failed],
            "dropped": [p.signature for p in self.dropped],
            "unresolved": [p.signature for p in self.unresolved],
        }


class Reconciler:

    def __init__(self, rpc: SolanaRpc, ledger: Ledger,
                 expiry_seconds: float = DEFAULTS.PENDING_SWAP_EXPIRY_SECONDS):
        self.rpc = rpc
        self.ledger = ledger
        self.expiry_seconds = expiry_seconds

    async def track(
        self, token_mint: str, target_mint: str, leg: str,
        signatures: list[str], sol_amount: Decimal, venue: str = "",
    ) -> None:
        """Store unconfirmed signatures so the next run resolves them first."""
        for signature in signatures:
            await self.ledger.append_pending_swap(PendingSwap(
                signature=signature,
                token_mint=token_mint,
                target_mint=target_mint,
                leg=leg,
                sol_amount=float(sol_amount),
                venue=venue,
            ))
            logger.warning(f"Tracking unconfirmed {leg} swap {signature[:16]}... for {token_mint[:8]}...")

    async def reconcile(self, token_mint: str) -> ReconciliationReport:
        report = ReconciliationReport()
        for pending in await self.ledger.get_pending_swaps(token_mint):
            try:
                state = await self.rpc.get_signature_state(pending.signature)
            except RpcError as e:
                logger.warning(f"Cannot resolve {pending.signature[:16]}... yet: {e}")
                report.unresolved.append(pending)
                continue

            if state.error:
                status = PendingStatus.FAILED
                report.failed.append(pending)
            elif state.confirmed:
                status = PendingStatus.LANDED
                report.landed.append(pending)
            elif pending.age_seconds() >= self.expiry_seconds:
                status = PendingStatus.DROPPED
                report.dropped.append(pending)
            else:
                report.unresolved.append(pending)
                continue

            await self.ledger.resolve_pending_swap(pending.signature, status)
            pending.status = status
            logger.info(f"Pending swap {pending.signature[:16]}... resolved: {status.value}")

        return report
