"""
Platform API — registration, stats, and the two pipeline triggers.

Endpoints:
  - GET  /health               ledger + RPC reachability, config presence
  - POST /register             register a token, get its deposit wallet
  - GET  /project/{mint}       project totals, live balance, burn history
  - GET  /widget/{mint}        lightweight embeddable stats
  - GET  /dashboard            platform-wide totals and recent burns
  - POST /webhook              Helius transfer events -> run matching projects
  - POST /cron                 run one full cycle (periodic trigger)
  - POST /sync-webhooks        re-point the webhook at every deposit wallet

/webhook checks the Helius auth header against WEBHOOK_SECRET; /cron and
/sync-webhooks require "Authorization: Bearer <CRON_SECRET>".
"""

import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Body, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.errors import (
    ConfigurationError,
    LedgerUnavailable,
    ProjectAlreadyRegistered,
    ProjectNotFound,
)
from core.scheduler import summarize
from flywheel_platform.wiring import FlywheelServices

logger = logging.getLogger("flywheel.platform.api")


# ============================================================
# MODELS
# ============================================================

class RegisterRequest(BaseModel):
    """Token creator registers a mint for automatic buyback-burn."""
    token_mint: str = Field(..., min_length=32, max_length=44)
    creator_wallet: str = Field(..., min_length=32, max_length=44)
    token_name: str = Field("", max_length=64)
    token_ticker: str = Field("", max_length=16)


# ============================================================
# HELPERS
# ============================================================

def _secret_matches(provided: Optional[str], expected: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def _check_cron_auth(authorization: Optional[str], cron_secret: str):
    token = (authorization or "").removeprefix("Bearer ").strip()
    if not _secret_matches(token, cron_secret):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _check_webhook_auth(authorization: Optional[str], webhook_secret: str):
    if not webhook_secret:
        return
    token = (authorization or "").removeprefix("Bearer ").strip()
    if not _secret_matches(token, webhook_secret):
        logger.warning("Unauthorized webhook attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")


def _deposit_addresses(payload) -> list[str]:
    """Receiving accounts of native transfers in a Helius enhanced payload."""
    transactions = payload if isinstance(payload, list) else [payload]
    addresses = []
    for tx in transactions:
        if not isinstance(tx, dict):
            continue
        for transfer in tx.get("nativeTransfers") or []:
            to_account = (transfer or {}).get("toUserAccount")
            if to_account and to_account not in addresses:
                addresses.append(to_account)
    return addresses


# ============================================================
# CREATE APP
# ============================================================

def create_platform_app(services: FlywheelServices, allowed_origins: Optional[list[str]] = None) -> FastAPI:
    """Create the platform FastAPI application around wired services."""

    config = services.config
    ledger = services.ledger
    registry = services.registry
    orchestrator = services.orchestrator
    scheduler = services.scheduler

    app = FastAPI(
        title="Flywheel",
        description="Automatic buyback-and-burn for Solana tokens",
        version="1.0.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ── PUBLIC ENDPOINTS ──

    @app.get("/health")
    async def health():
        ledger_ok = await ledger.ping()
        rpc_ok = await services.rpc.is_healthy()
        healthy = ledger_ok and rpc_ok
        return JSONResponse(
            status_code=200 if healthy else 503,
            content={
                "status": "healthy" if healthy else "degraded",
                "ledger": ledger_ok,
                "rpc": rpc_ok,
                "config": config.get_status(),
                "leases": services.leases.get_status(),
                "timestamp": datetime.now(timezone.utc).isoformat(),
            },
        )

    @app.post("/register")
    async def register(req: RegisterRequest):
        try:
            registration = await registry.register(
                token_mint=req.token_mint.strip(),
                creator_wallet=req.creator_wallet.strip(),
                token_name=req.token_name.strip(),
                token_ticker=req.token_ticker.strip(),
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)[:200])
        except ProjectAlreadyRegistered:
            raise HTTPException(status_code=409, detail="Token already registered")
        except LedgerUnavailable as e:
            logger.error(f"Registration failed: {e}")
            raise HTTPException(status_code=503, detail="Ledger unavailable")
        return registration.to_dict()

    @app.get("/project/{mint}")
    async def project_stats(mint: str):
        try:
            stats = await registry.get_project_stats(mint)
        except LedgerUnavailable:
            raise HTTPException(status_code=503, detail="Ledger unavailable")
        if stats is None:
            raise HTTPException(status_code=404, detail="Project not found")
        return stats

    @app.get("/widget/{mint}")
    async def widget(mint: str):
        try:
            project = await ledger.get_project(mint)
            history = await ledger.get_burn_history(mint, limit=5) if project else []
        except LedgerUnavailable:
            raise HTTPException(status_code=503, detail="Ledger unavailable")
        if project is None:
            raise HTTPException(status_code=404, detail="Project not found")
        return {
            "token": {"mint": project.token_mint, "name": project.token_name, "ticker": project.token_ticker},
            "stats": {
                "total_burned": project.total_tokens_burned,
                "total_sol": project.total_sol_received,
                "total_burns": project.total_burns,
                "last_burn": project.last_burn_at,
            },
            "recent_burns": [
                {"burned": b.tokens_burned, "sol": b.sol_spent, "time": b.created_at} for b in history
            ],
        }

    @app.get("/dashboard")
    async def dashboard():
        try:
            return await registry.get_dashboard()
        except LedgerUnavailable:
            raise HTTPException(status_code=503, detail="Ledger unavailable")

    # ── TRIGGERS ──

    @app.post("/webhook")
    async def webhook(payload=Body(...), authorization: Optional[str] = Header(None)):
        """Native SOL landed in a deposit wallet: run that project now."""
        _check_webhook_auth(authorization, config.webhook_secret)

        results = []
        seen: set[str] = set()
        for address in _deposit_addresses(payload):
            project = await ledger.get_project_by_deposit_wallet(address)
            if project is None or not project.is_active or project.token_mint in seen:
                continue
            seen.add(project.token_mint)
            logger.info(f"Webhook: deposit to {project.label} wallet, running pipeline")
            try:
                result = await orchestrator.run_by_mint(project.token_mint)
                results.append(result.to_dict())
            except (ProjectNotFound, ConfigurationError) as e:
                logger.error(f"Webhook run for {project.label} aborted: {e}")
                results.append({"success": False, "token_mint": project.token_mint, "error": str(e)})

        return {"received": True, "processed": len(results), "results": results}

    @app.post("/cron")
    async def cron(authorization: Optional[str] = Header(None)):
        _check_cron_auth(authorization, config.cron_secret)
        try:
            results = await scheduler.run_cycle()
        except LedgerUnavailable as e:
            logger.error(f"Cron cycle failed: {e}")
            raise HTTPException(status_code=503, detail="Ledger unavailable")
        return {
            "summary": summarize(results),
            "results": [r.to_dict() for r in results],
        }

    @app.post("/sync-webhooks")
    async def sync_webhooks(authorization: Optional[str] = Header(None)):
        _check_cron_auth(authorization, config.cron_secret)
        if services.registrar is None:
            raise HTTPException(status_code=400, detail="Webhook registrar not configured")
        try:
            watched = await registry.sync_webhooks()
        except LedgerUnavailable:
            raise HTTPException(status_code=503, detail="Ledger unavailable")
        except Exception as e:
            raise HTTPException(status_code=502, detail=str(e)[:200])
        return {"success": True, "watched": watched}

    return app
