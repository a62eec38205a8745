"""
Service wiring — build every component from one FlywheelConfig.

Shared by the platform server, the worker CLI and the operator scripts so
they all run the exact same pipeline. Collaborators can be injected (tests
pass fakes); anything not injected is built from config.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from core.adapters.jupiter_adapter import JupiterAdapter
from core.adapters.pumpportal_adapter import PumpPortalAdapter, PumpPortalFeeClaimer
from core.adapters.solanatracker_adapter import SolanaTrackerAdapter
from core.balance import BalanceOracle
from core.burn import BurnExecutor, build_burn_strategy
from core.chain import SolanaRpc
from core.collaborators import Notifier, WebhookRegistrar
from core.config import FlywheelConfig
from core.lease import LeaseManager
from core.ledger import JsonFileLedger, Ledger
from core.pipeline import PipelineOrchestrator
from core.projects import ProjectRegistry
from core.reconciliation import Reconciler
from core.scheduler import BatchScheduler
from core.swap import SwapRouter, SwapVenue
from flywheel_platform.helius import HeliusWebhookManager
from flywheel_platform.supabase_ledger import SupabaseLedger
from flywheel_platform.telegram import TelegramNotifier

logger = logging.getLogger("flywheel.platform.wiring")


@dataclass
class FlywheelServices:
    config: FlywheelConfig
    rpc: SolanaRpc
    ledger: Ledger
    oracle: BalanceOracle
    router: SwapRouter
    burner: BurnExecutor
    leases: LeaseManager
    reconciler: Reconciler
    orchestrator: PipelineOrchestrator
    scheduler: BatchScheduler
    registry: ProjectRegistry
    notifier: Optional[Notifier] = None
    registrar: Optional[WebhookRegistrar] = None

    async def close(self):
        await self.router.close()
        if self.orchestrator.fee_claimer is not None:
            await self.orchestrator.fee_claimer.adapter.close()
        for closable in (self.notifier, self.registrar, self.ledger):
            if closable is not None:
                await closable.close()
        await self.rpc.close()


def build_ledger(config: FlywheelConfig) -> Ledger:
    if config.ledger_backend == "supabase":
        return SupabaseLedger(config.supabase_url, config.supabase_key, timeout=config.http_timeout_seconds)
    return JsonFileLedger(config.data_dir)


def build_venues(config: FlywheelConfig) -> list[SwapVenue]:
    venues: list[SwapVenue] = []
    for venue_id in config.swap_venues:
        if venue_id == "pumpportal":
            venues.append(PumpPortalAdapter(
                slippage_percent=config.swap_slippage_percent,
                priority_fee_sol=config.swap_priority_fee_sol,
                pool=config.pumpportal_pool,
                timeout=config.http_timeout_seconds,
            ))
        elif venue_id == "jupiter":
            venues.append(JupiterAdapter(
                slippage_percent=config.swap_slippage_percent,
                priority_fee_sol=config.swap_priority_fee_sol,
                api_url=config.jupiter_api_url,
                timeout=config.http_timeout_seconds,
            ))
        elif venue_id == "solanatracker":
            venues.append(SolanaTrackerAdapter(
                api_key=config.solanatracker_api_key,
                slippage_percent=config.swap_slippage_percent,
                priority_fee_sol=config.swap_priority_fee_sol,
                timeout=config.http_timeout_seconds,
            ))
    return venues


def build_notifier(config: FlywheelConfig) -> Optional[Notifier]:
    if config.telegram_bot_token and config.telegram_chat_id:
        return TelegramNotifier(config.telegram_bot_token, config.telegram_chat_id,
                                timeout=config.http_timeout_seconds)
    return None


def build_registrar(config: FlywheelConfig) -> Optional[WebhookRegistrar]:
    if config.helius_api_key and config.webhook_url:
        return HeliusWebhookManager(
            config.helius_api_key, config.webhook_url,
            auth_header=config.webhook_secret, timeout=config.http_timeout_seconds,
        )
    return None


def build_services(
    config: FlywheelConfig,
    rpc: Optional[SolanaRpc] = None,
    ledger: Optional[Ledger] = None,
    venues: Optional[list[SwapVenue]] = None,
    notifier: Optional[Notifier] = None,
    registrar: Optional[WebhookRegistrar] = None,
) -> FlywheelServices:
    rpc = rpc or SolanaRpc(
        config.rpc_url,
        request_timeout=config.rpc_timeout_seconds,
        confirm_timeout=config.confirm_timeout_seconds,
    )
    ledger = ledger or build_ledger(config)
    notifier = notifier or build_notifier(config)
    registrar = registrar or build_registrar(config)

    oracle = BalanceOracle(rpc, settlement_timeout=config.settlement_timeout_seconds)
    router = SwapRouter(
        rpc,
        venues if venues is not None else build_venues(config),
        amount_decimals=config.swap_amount_decimals,
        build_timeout=config.http_timeout_seconds,
    )
    burner = BurnExecutor(
        rpc, oracle,
        strategy=build_burn_strategy(config.burn_strategy),
        priority_microlamports=config.burn_priority_microlamports,
    )
    leases = LeaseManager(ttl_seconds=config.lease_ttl_seconds)
    reconciler = Reconciler(rpc, ledger, expiry_seconds=config.pending_swap_expiry_seconds)

    fee_claimer = None
    if config.claim_creator_fees:
        fee_claimer = PumpPortalFeeClaimer(
            PumpPortalAdapter(priority_fee_sol=config.swap_priority_fee_sol, timeout=config.http_timeout_seconds),
            rpc,
        )

    orchestrator = PipelineOrchestrator(
        config, ledger, oracle, router, burner, leases,
        reconciler=reconciler, notifier=notifier, fee_claimer=fee_claimer,
    )
    scheduler = BatchScheduler(
        ledger, orchestrator,
        pacing_seconds=config.project_pacing_seconds,
        cycle_timeout=config.cycle_timeout_seconds,
    )
    registry = ProjectRegistry(config, ledger, oracle=oracle, registrar=registrar, notifier=notifier)

    logger.info(
        f"Flywheel wired: ledger={ledger.backend_id} venues={router.venue_ids} "
        f"burn={burner.strategy.strategy_id} platform_token={config.platform_token_mint or 'none'}"
    )
    return FlywheelServices(
        config=config, rpc=rpc, ledger=ledger, oracle=oracle, router=router, burner=burner,
        leases=leases, reconciler=reconciler, orchestrator=orchestrator, scheduler=scheduler,
        registry=registry, notifier=notifier, registrar=registrar,
    )
