"""
Buyback-Burn Pipeline — one project, one run.

    idle -> balance_checked -> skipped
                            -> split_computed -> project_leg_done
                               -> platform_leg_done -> recorded -> done

A run sweeps the project's deposit wallet: everything above the fee reserve
is split into a platform fee and a project portion, each portion buys its
target token, and whatever the wallet then holds of that token is burned
and recorded.

Design:
- At most one in-flight run per project (LeaseManager); a second trigger
  gets a 'busy' result and performs no swaps
- Pending (unconfirmed) swaps are reconciled before any new spending; if the
  ledger or RPC cannot say what is pending, the run spends nothing
- Creator fees are claimed only once the balance has cleared the minimum
- A leg runs only when its amount exceeds the minimum swap size
- Split arithmetic is integer lamports: platform_fee + project_portion == available
- Legs are independent: a failing project leg never prevents the platform leg
- Per-leg exceptions are caught, logged and reported on the leg
- A ledger failure after an on-chain burn is logged CRITICAL and reported
  on the leg (ledger_error), never dropped
- run() never raises for leg errors; run_by_mint() raises ProjectNotFound

Designed for: flywheel buyback-burn service
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import Optional

from solders.keypair import Keypair

from core.balance import BalanceOracle
from core.burn import BurnExecutor
from core.collaborators import Notifier
from core.config import FlywheelConfig
from core.constitution import lamports_to_sol, to_decimal
from core.errors import (
    BurnFailed,
    ConfigurationError,
    LedgerUnavailable,
    OracleUnavailable,
    ProjectBusy,
    ProjectNotFound,
    RpcError,
    SwapFailed,
)
from core.lease import LeaseManager
from core.ledger import Ledger
from core.models import BurnRecord, PendingSwap, PlatformBurnRecord, Project
from core.reconciliation import Reconciler
from core.swap import SwapRouter
from core.wallet import derive_keypair

logger = logging.getLogger("flywheel.pipeline")

NOTIFY_TIMEOUT_SECONDS = 10.0


# ============================================================
# STATES & RESULTS
# ============================================================

class PipelineState(str, Enum):
    IDLE = "idle"
    BALANCE_CHECKED = "balance_checked"
    SKIPPED = "skipped"
    SPLIT_COMPUTED = "split_computed"
    PROJECT_LEG_DONE = "project_leg_done"
    PLATFORM_LEG_DONE = "platform_leg_done"
    RECORDED = "recorded"
    DONE = "done"


class LegKind(str, Enum):
    PROJECT = "project"
    PLATFORM = "platform"


class LegStatus(str, Enum):
    BURNED = "burned"
    NO_TOKENS = "no_tokens"                # Swap confirmed, nothing arrived to burn
    SWAP_FAILED = "swap_failed"
    SWAP_UNCONFIRMED = "swap_unconfirmed"  # Every venue failed, at least one may still land
    BURN_FAILED = "burn_failed"
    SKIPPED = "skipped"
    FAILED = "failed"                      # Unexpected error before any swap


class Outcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    SKIPPED = "skipped"
    FAILED = "failed"
    BUSY = "busy"
    DEFERRED = "deferred"


@dataclass
class FeeSplit:
    """Lamport split of a deposit balance."""
    balance: int
    available: int
    platform_fee: int
    project_portion: int


def compute_fee_split(balance_lamports: int, reserve_lamports: int, fee_percent: float) -> FeeSplit:
    """available = balance - reserve; fee = floor(available * pct / 100); rest to project."""
    available = max(balance_lamports - reserve_lamports, 0)
    platform_fee = int(
        (Decimal(available) * to_decimal(fee_percent) / 100).to_integral_value(rounding=ROUND_DOWN)
    )
    platform_fee = min(max(platform_fee, 0), available)
    return FeeSplit(
        balance=balance_lamports,
        available=available,
        platform_fee=platform_fee,
        project_portion=available - platform_fee,
    )


@dataclass
class LegResult:
    kind: LegKind
    token_mint: str
    status: LegStatus = LegStatus.SKIPPED
    sol_requested: float = 0.0
    sol_spent: float = 0.0
    tokens_bought: float = 0.0
    tokens_burned: float = 0.0
    buy_signature: str = ""
    burn_signature: str = ""
    venue: str = ""
    reason: str = ""
    error: str = ""
    recorded: bool = False
    ledger_error: str = ""
    recovered: bool = False
    fallback_errors: list[str] = field(default_factory=list)
    unconfirmed_signatures: list[str] = field(default_factory=list)

    @property
    def attempted(self) -> bool:
        return self.status != LegStatus.SKIPPED

    @property
    def burned(self) -> bool:
        return self.status == LegStatus.BURNED

    @property
    def swapped(self) -> bool:
        return bool(self.buy_signature)

    def to_dict(self) -> dict:
        return {
            "leg": self.kind.value,
            "token_mint": self.token_mint,
            "status": self.status.value,
            "success": self.burned,
            "sol_requested": self.sol_requested,
            "sol_spent": self.sol_spent,
            "tokens_bought": self.tokens_bought,
            "tokens_burned": self.tokens_burned,
            "buy_signature": self.buy_signature,
            "burn_signature": self.burn_signature,
            "venue": self.venue,
            "reason": self.reason,
            "error": self.error,
            "recorded": self.recorded,
            "ledger_error": self.ledger_error,
            "recovered": self.recovered,
            "fallback_errors": list(self.fallback_errors),
            "unconfirmed_signatures": list(self.unconfirmed_signatures),
        }


@dataclass
class PipelineResult:
    token_mint: str
    project_label: str = ""
    state: PipelineState = PipelineState.IDLE
    reason: str = ""
    error: str = ""
    busy: bool = False
    deferred: bool = False
    deposit_wallet: str = ""
    balance: float = 0.0
    available: float = 0.0
    platform_fee: float = 0.0
    project_portion: float = 0.0
    project_leg: Optional[LegResult] = None
    platform_leg: Optional[LegResult] = None
    recovered_legs: list[LegResult] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    finished_at: float = 0.0

    @property
    def legs(self) -> list[LegResult]:
        legs = [leg for leg in (self.project_leg, self.platform_leg) if leg is not None]
        return legs + list(self.recovered_legs)

    @property
    def outcome(self) -> Outcome:
        if self.busy:
            return Outcome.BUSY
        if self.deferred:
            return Outcome.DEFERRED
        attempted = [leg for leg in self.legs if leg.attempted]
        if not attempted:
            return Outcome.FAILED if self.error else Outcome.SKIPPED
        if all(leg.burned for leg in attempted):
            return Outcome.SUCCESS
        if any(leg.swapped and not leg.burned for leg in attempted) or any(leg.burned for leg in attempted):
            return Outcome.PARTIAL
        return Outcome.FAILED

    @property
    def success(self) -> bool:
        return any(leg.burned for leg in self.legs)

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "outcome": self.outcome.value,
            "token_mint": self.token_mint,
            "project": self.project_label,
            "state": self.state.value,
            "reason": self.reason,
            "error": self.error,
            "deposit_wallet": self.deposit_wallet,
            "balance": self.balance,
            "available": self.available,
            "platform_fee": self.platform_fee,
            "project_portion": self.project_portion,
            "project_burn": self.project_leg.to_dict() if self.project_leg else None,
            "platform_burn": self.platform_leg.to_dict() if self.platform_leg else None,
            "recovered": [leg.to_dict() for leg in self.recovered_legs],
            "duration_seconds": round(max(self.finished_at - self.started_at, 0.0), 3),
        }


# ============================================================
# ORCHESTRATOR
# ============================================================

class PipelineOrchestrator:
    """
    Usage:
        orchestrator = PipelineOrchestrator(config, ledger, oracle, router, burner, leases)
        result = await orchestrator.run_by_mint(mint)
        print(result.to_dict())
    """

    def __init__(
        self,
        config: FlywheelConfig,
        ledger: Ledger,
        oracle: BalanceOracle,
        router: SwapRouter,
        burner: BurnExecutor,
        leases: LeaseManager,
        reconciler: Optional[Reconciler] = None,
        notifier: Optional[Notifier] = None,
        fee_claimer=None,
    ):
        self.config = config
        self.ledger = ledger
        self.oracle = oracle
        self.router = router
        self.burner = burner
        self.leases = leases
        self.reconciler = reconciler
        self.notifier = notifier
        self.fee_claimer = fee_claimer

    # ── entry points ──

    async def run_by_mint(self, token_mint: str) -> PipelineResult:
        project = await self.ledger.get_project(token_mint)
        if project is None:
            raise ProjectNotFound(token_mint)
        return await self.run(project)

    async def run(self, project: Project) -> PipelineResult:
        result = PipelineResult(token_mint=project.token_mint, project_label=project.label)
        try:
            async with self.leases.hold(project.token_mint):
                await self._run_locked(project, result)
        except ProjectBusy:
            result.busy = True
            result.reason = "Run already in progress"
            logger.info(f"{project.label}: run already in progress, skipping")
        finally:
            result.finished_at = time.time()
        return result

    # ── the run ──

    def _derive_wallet(self, project: Project) -> Keypair:
        keypair = derive_keypair(self.config.seed_phrase, project.deposit_wallet_index)
        if str(keypair.pubkey()) != project.deposit_wallet:
            raise ConfigurationError(
                f"{project.label}: derived wallet for index {project.deposit_wallet_index} "
                f"does not match stored deposit wallet {project.deposit_wallet}"
            )
        return keypair

    async def _run_locked(self, project: Project, result: PipelineResult):
        keypair = self._derive_wallet(project)
        result.deposit_wallet = project.deposit_wallet

        if self.reconciler is not None:
            try:
                report = await self.reconciler.reconcile(project.token_mint)
            except (LedgerUnavailable, RpcError) as e:
                result.state = PipelineState.SKIPPED
                result.reason = "Reconciliation unavailable"
                result.error = str(e)
                logger.error(f"{project.label}: cannot reconcile pending swaps, not spending: {e}")
                return
            for pending in report.landed:
                result.recovered_legs.append(await self._recover_leg(keypair, project, pending))
            if report.blocked:
                result.state = PipelineState.SKIPPED
                result.reason = "Awaiting reconciliation"
                logger.warning(
                    f"{project.label}: {len(report.unresolved)} unconfirmed swap(s) still pending, skipping"
                )
                return

        try:
            balance = await self.oracle.native_balance(keypair.pubkey())
        except OracleUnavailable as e:
            result.reason = "Balance unavailable"
            result.error = str(e)
            logger.warning(f"{project.label}: balance read failed: {e}")
            return

        result.state = PipelineState.BALANCE_CHECKED
        result.balance = float(lamports_to_sol(balance))

        if balance < self.config.min_buyback_lamports:
            result.state = PipelineState.SKIPPED
            result.reason = "Insufficient balance"
            logger.info(
                f"{project.label}: {result.balance:.6f} SOL below minimum "
                f"{self.config.min_sol_for_buyback} SOL, skipping"
            )
            return

        # Creator fees: claimed only on a run that clears the minimum
        if self.config.claim_creator_fees and self.fee_claimer is not None:
            if await self._claim_creator_fees(keypair, project):
                balance = await self._reread_balance(keypair, project, balance)
                result.balance = float(lamports_to_sol(balance))

        split = compute_fee_split(balance, self.config.reserve_lamports, project.platform_fee_percent)
        result.state = PipelineState.SPLIT_COMPUTED
        result.available = float(lamports_to_sol(split.available))
        result.platform_fee = float(lamports_to_sol(split.platform_fee))
        result.project_portion = float(lamports_to_sol(split.project_portion))
        logger.info(
            f"{project.label}: balance={result.balance:.6f} available={result.available:.6f} "
            f"project={result.project_portion:.6f} platform_fee={result.platform_fee:.6f}"
        )

        # Project leg
        if split.project_portion > self.config.min_project_swap_lamports:
            result.project_leg = await self._run_leg(
                LegKind.PROJECT, keypair, project, project.token_mint,
                split.project_portion, platform_fee_lamports=split.platform_fee,
            )
        else:
            result.project_leg = LegResult(
                kind=LegKind.PROJECT, token_mint=project.token_mint,
                sol_requested=result.project_portion, reason="Below minimum swap size",
            )
        result.state = PipelineState.PROJECT_LEG_DONE

        # Platform leg
        platform_mint = self.config.platform_token_mint
        if not platform_mint:
            result.platform_leg = LegResult(
                kind=LegKind.PLATFORM, token_mint="",
                sol_requested=result.platform_fee, reason="Platform token not configured",
            )
        elif split.platform_fee > self.config.min_platform_swap_lamports:
            result.platform_leg = await self._run_leg(
                LegKind.PLATFORM, keypair, project, platform_mint, split.platform_fee,
            )
        else:
            result.platform_leg = LegResult(
                kind=LegKind.PLATFORM, token_mint=platform_mint,
                sol_requested=result.platform_fee, reason="Below minimum swap size",
            )
        result.state = PipelineState.PLATFORM_LEG_DONE

        if any(leg.recorded for leg in result.legs):
            result.state = PipelineState.RECORDED

        for leg in (result.project_leg, result.platform_leg):
            if leg.burned:
                await self._notify_leg(project, leg)

        result.state = PipelineState.DONE
        logger.info(f"{project.label}: run finished ({result.outcome.value})")

    # ── one leg ──

    async def _run_leg(
        self, kind: LegKind, keypair: Keypair, project: Project, target_mint: str,
        lamports: int, platform_fee_lamports: int = 0,
    ) -> LegResult:
        sol_amount = lamports_to_sol(lamports)
        leg = LegResult(kind=kind, token_mint=target_mint, sol_requested=float(sol_amount))
        label = f"{project.label} [{kind.value}]"

        try:
            try:
                swap = await self.router.buy_with_native(keypair, target_mint, sol_amount)
            except SwapFailed as e:
                leg.status = LegStatus.SWAP_UNCONFIRMED if e.unconfirmed_signatures else LegStatus.SWAP_FAILED
                leg.error = str(e)
                leg.fallback_errors = list(e.errors)
                leg.unconfirmed_signatures = list(e.unconfirmed_signatures)
                logger.warning(f"{label}: {e}")
                await self._track_unconfirmed(project, kind, target_mint, e.unconfirmed_signatures, sol_amount)
                return leg

            leg.buy_signature = swap.signature
            leg.sol_spent = float(swap.sol_spent)
            leg.venue = swap.venue
            leg.fallback_errors = list(swap.fallback_errors)
            leg.unconfirmed_signatures = list(swap.unconfirmed_signatures)
            if swap.unconfirmed_signatures:
                await self._track_unconfirmed(
                    project, kind, target_mint, swap.unconfirmed_signatures, swap.sol_spent,
                )

            holding = await self.oracle.wait_for_token_balance(keypair.pubkey(), target_mint)
            if holding is None:
                leg.status = LegStatus.NO_TOKENS
                leg.reason = "No tokens to burn"
                logger.warning(f"{label}: swap {swap.signature[:16]}... confirmed but no tokens arrived")
                return leg
            leg.tokens_bought = float(holding.amount)

            try:
                burn = await self.burner.burn(keypair, target_mint)
            except BurnFailed as e:
                leg.status = LegStatus.BURN_FAILED
                leg.burn_signature = e.signature
                leg.error = str(e)
                logger.error(f"{label}: burn failed after swap {swap.signature[:16]}...: {e}")
                return leg

            if not burn.burned:
                leg.status = LegStatus.NO_TOKENS
                leg.reason = "No tokens to burn"
                return leg

            leg.status = LegStatus.BURNED
            leg.burn_signature = burn.signature
            leg.tokens_burned = float(burn.burned_amount)

        except Exception as e:
            logger.exception(f"{label}: leg error: {e}")
            leg.status = LegStatus.BURN_FAILED if leg.swapped else LegStatus.FAILED
            leg.error = f"{type(e).__name__}: {e}"
            return leg

        await self._record_leg(project, leg, platform_fee_lamports)
        return leg

    async def _record_leg(self, project: Project, leg: LegResult, platform_fee_lamports: int = 0):
        try:
            if leg.kind == LegKind.PROJECT:
                await self.ledger.append_burn_record(BurnRecord(
                    token_mint=project.token_mint,
                    sol_spent=leg.sol_spent,
                    tokens_bought=leg.tokens_bought,
                    tokens_burned=leg.tokens_burned,
                    platform_fee_sol=float(lamports_to_sol(platform_fee_lamports)),
                    buy_signature=leg.buy_signature,
                    burn_signature=leg.burn_signature,
                ))
                await self.ledger.update_project_stats(project.token_mint, leg.sol_spent, leg.tokens_burned)
            else:
                await self.ledger.append_platform_burn_record(PlatformBurnRecord(
                    sol_spent=leg.sol_spent,
                    tokens_burned=leg.tokens_burned,
                    buy_signature=leg.buy_signature,
                    burn_signature=leg.burn_signature,
                    source_project=project.token_mint,
                ))
            leg.recorded = True
        except (LedgerUnavailable, ProjectNotFound) as e:
            leg.ledger_error = str(e)
            logger.critical(
                f"AUDIT GAP: {leg.kind.value} burn {leg.burn_signature} for {project.label} "
                f"confirmed on-chain but not recorded: {e}"
            )

    async def _track_unconfirmed(
        self, project: Project, kind: LegKind, target_mint: str, signatures: list[str], sol_amount: Decimal,
    ):
        if not signatures or self.reconciler is None:
            return
        try:
            await self.reconciler.track(project.token_mint, target_mint, kind.value, signatures, sol_amount)
        except LedgerUnavailable as e:
            logger.critical(
                f"AUDIT GAP: cannot track unconfirmed swap(s) {signatures} for {project.label}: {e}"
            )

    async def _recover_leg(self, keypair: Keypair, project: Project, pending: PendingSwap) -> LegResult:
        """Burn and record what a late-landing swap bought."""
        kind = LegKind(pending.leg)
        leg = LegResult(
            kind=kind, token_mint=pending.target_mint, sol_requested=pending.sol_amount,
            sol_spent=pending.sol_amount, buy_signature=pending.signature,
            venue=pending.venue, recovered=True,
        )
        try:
            burn = await self.burner.burn(keypair, pending.target_mint)
        except BurnFailed as e:
            leg.status = LegStatus.BURN_FAILED
            leg.burn_signature = e.signature
            leg.error = str(e)
            logger.error(f"{project.label}: recovery burn for {pending.signature[:16]}... failed: {e}")
            return leg
        except Exception as e:
            logger.exception(f"{project.label}: recovery burn for {pending.signature[:16]}... errored: {e}")
            leg.status = LegStatus.BURN_FAILED
            leg.error = f"{type(e).__name__}: {e}"
            return leg

        if not burn.burned:
            leg.status = LegStatus.NO_TOKENS
            leg.reason = "No tokens to burn"
            return leg

        leg.status = LegStatus.BURNED
        leg.burn_signature = burn.signature
        leg.tokens_bought = float(burn.burned_amount)
        leg.tokens_burned = float(burn.burned_amount)
        await self._record_leg(project, leg)
        logger.info(f"{project.label}: recovered late swap {pending.signature[:16]}... and burned it")
        return leg

    # ── side effects that never fail a run ──

    async def _claim_creator_fees(self, keypair: Keypair, project: Project) -> bool:
        try:
            claim = await self.fee_claimer.claim(keypair, project.token_mint)
        except Exception as e:
            logger.warning(f"{project.label}: creator fee claim failed: {e}")
            return False
        return claim is not None and claim.success

    async def _reread_balance(self, keypair: Keypair, project: Project, fallback: int) -> int:
        """Balance after a claim; the pre-claim reading if the oracle is down."""
        try:
            return await self.oracle.native_balance(keypair.pubkey())
        except OracleUnavailable as e:
            logger.warning(f"{project.label}: balance re-read after claim failed: {e}")
            return fallback

    async def _notify_leg(self, project: Project, leg: LegResult):
        if self.notifier is None:
            return
        try:
            if leg.kind == LegKind.PROJECT:
                await asyncio.wait_for(self.notifier.notify_burn(project, leg), NOTIFY_TIMEOUT_SECONDS)
            else:
                await asyncio.wait_for(self.notifier.notify_platform_burn(project, leg), NOTIFY_TIMEOUT_SECONDS)
        except Exception as e:
            logger.warning(f"{project.label}: notifier failed: {e}")
