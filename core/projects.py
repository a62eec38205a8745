"""
Project Registry — registration, deactivation and read-side stats.

Registration allocates the next deposit wallet index under a lock, derives
the wallet, stores the project, then asks the webhook registrar to watch
the new address. The registrar and notifier are best-effort: a failure is
logged and the registration still stands.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from core.balance import BalanceOracle
from core.chain import as_pubkey
from core.collaborators import Notifier, WebhookRegistrar
from core.config import FlywheelConfig
from core.errors import OracleUnavailable, ProjectAlreadyRegistered
from core.ledger import Ledger
from core.models import Project
from core.wallet import wallet_address

logger = logging.getLogger("flywheel.projects")


@dataclass
class Registration:
    project: Project
    watched: bool

    def to_dict(self) -> dict:
        return {
            "success": True,
            "project": self.project.to_dict(),
            "deposit_wallet": self.project.deposit_wallet,
            "watched": self.watched,
            "instructions": (
                f"Send SOL (e.g. pump.fun creator fees) to {self.project.deposit_wallet}. "
                f"Deposits above the buyback minimum are swapped for "
                f"{self.project.label} and burned automatically."
            ),
        }


class ProjectRegistry:

    def __init__(
        self,
        config: FlywheelConfig,
        ledger: Ledger,
        oracle: Optional[BalanceOracle] = None,
        registrar: Optional[WebhookRegistrar] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.config = config
        self.ledger = ledger
        self.oracle = oracle
        self.registrar = registrar
        self.notifier = notifier
        self._register_lock = asyncio.Lock()

    async def register(
        self,
        token_mint: str,
        creator_wallet: str,
        token_name: str = "",
        token_ticker: str = "",
    ) -> Registration:
        """Register a token. Invalid addresses -> ValueError; duplicates -> ProjectAlreadyRegistered."""
        as_pubkey(token_mint)
        as_pubkey(creator_wallet)

        async with self._register_lock:
            if await self.ledger.get_project(token_mint) is not None:
                raise ProjectAlreadyRegistered(f"{token_mint} is already registered")

            index = await self.ledger.next_wallet_index()
            if index == self.config.platform_wallet_index:
                index += 1
            project = Project(
                token_mint=token_mint,
                creator_wallet=creator_wallet,
                deposit_wallet=wallet_address(self.config.seed_phrase, index),
                deposit_wallet_index=index,
                token_name=token_name,
                token_ticker=token_ticker.lstrip("$").upper(),
                platform_fee_percent=self.config.platform_fee_percent,
            )
            await self.ledger.register_project(project)

        logger.info(f"Registered {project.label} ({token_mint[:8]}...) -> wallet #{index} {project.deposit_wallet}")

        watched = False
        if self.registrar is not None:
            try:
                await self.registrar.ensure_watched(project.deposit_wallet)
                watched = True
            except Exception as e:
                logger.warning(f"{project.label}: webhook registration failed (non-fatal): {e}")

        if self.notifier is not None:
            try:
                await self.notifier.notify_new_project(project)
            except Exception as e:
                logger.warning(f"{project.label}: new-project notification failed: {e}")

        return Registration(project=project, watched=watched)

    async def deactivate(self, token_mint: str) -> Project:
        project = await self.ledger.deactivate_project(token_mint)
        logger.info(f"Deactivated {project.label}")
        return project

    async def sync_webhooks(self) -> int:
        """Point the webhook at every active deposit wallet."""
        if self.registrar is None:
            return 0
        projects = await self.ledger.get_active_projects()
        return await self.registrar.sync_all([p.deposit_wallet for p in projects])

    async def _live_balance(self, project: Project) -> Optional[float]:
        if self.oracle is None:
            return None
        try:
            return float(await self.oracle.native_balance_sol(project.deposit_wallet))
        except OracleUnavailable as e:
            logger.warning(f"{project.label}: live balance unavailable: {e}")
            return None

    async def get_project_stats(self, token_mint: str, history_limit: int = 20) -> Optional[dict]:
        project = await self.ledger.get_project(token_mint)
        if project is None:
            return None
        history = await self.ledger.get_burn_history(token_mint, limit=history_limit)
        return {
            "project": project.to_dict(),
            "current_balance": await self._live_balance(project),
            "burn_history": [b.to_dict() for b in history],
        }

    async def get_dashboard(self, recent_limit: int = 20) -> dict:
        projects = await self.ledger.get_active_projects()
        recent = await self.ledger.get_recent_burns(limit=recent_limit)
        platform = await self.ledger.get_platform_stats()
        return {
            "projects": len(projects),
            "total_sol_received": sum(p.total_sol_received for p in projects),
            "total_tokens_burned": sum(p.total_tokens_burned for p in projects),
            "total_burns": sum(p.total_burns for p in projects),
            "platform": platform,
            "recent_burns": [b.to_dict() for b in recent],
            "top_projects": [
                p.to_dict() for p in sorted(projects, key=lambda p: p.total_sol_received, reverse=True)[:10]
            ],
        }
