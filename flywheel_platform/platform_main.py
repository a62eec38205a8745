"""
Platform Server — Entry Point

Runs the flywheel backend as a single instance hosting both triggers:
  - the HTTP API (registration, stats, Helius webhook, cron endpoint)
  - a periodic cycle loop over all active projects

Both triggers share one LeaseManager, so a webhook run and a cycle run can
never spend from the same deposit wallet at once.

Usage:
  python -m flywheel_platform.platform_main
  # or via uvicorn:
  uvicorn flywheel_platform.platform_main:app

Environment variables: see core/config.py (FlywheelConfig.from_env), plus
  PLATFORM_ALLOWED_ORIGINS   Comma-separated CORS origins (default: *)
  CRON_INTERVAL_MINUTES      Periodic cycle interval, 0 disables the loop
  HOST                       Server bind host (default: 0.0.0.0)
  PORT                       Server bind port (default: 8000)
"""

import asyncio
import logging
import os

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI

from core.config import FlywheelConfig
from core.log_setup import setup_logging
from core.scheduler import BatchScheduler, summarize
from flywheel_platform.api import create_platform_app
from flywheel_platform.wiring import FlywheelServices, build_services

load_dotenv()

logger = logging.getLogger("flywheel.platform.main")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))


# ── Background cycle task ──────────────────────────────────────

async def _cycle_loop(services: FlywheelServices, scheduler: BatchScheduler, interval_seconds: float):
    """Run a full cycle every interval; one bad cycle never stops the loop."""
    logger.info(f"Cycle loop started (interval: {interval_seconds:.0f}s)")
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            results = await scheduler.run_cycle()
            summary = summarize(results)
            if services.notifier is not None and (summary["succeeded"] or summary["partial"]):
                try:
                    await services.notifier.notify_cycle_summary(summary)
                except Exception as e:
                    logger.warning(f"Cycle summary notification failed: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Cycle error: {type(e).__name__}: {e}")


# ── App factory ────────────────────────────────────────────────

def create_app(config: FlywheelConfig = None) -> FastAPI:
    """Build the platform FastAPI app with all services wired."""
    config = config or FlywheelConfig.from_env()
    setup_logging(os.getenv("LOG_LEVEL", "INFO"), secrets=[config.seed_phrase])

    services = build_services(config)
    origins = [o.strip() for o in os.getenv("PLATFORM_ALLOWED_ORIGINS", "").split(",") if o.strip()]
    platform_app = create_platform_app(services, allowed_origins=origins or None)

    tasks: list[asyncio.Task] = []

    @platform_app.on_event("startup")
    async def startup():
        logger.info(f"Platform server starting on {HOST}:{PORT}")
        if config.cron_interval_minutes > 0:
            tasks.append(asyncio.create_task(
                _cycle_loop(services, services.scheduler, config.cron_interval_minutes * 60),
                name="flywheel_cycle",
            ))
        else:
            logger.info("Cycle loop disabled (CRON_INTERVAL_MINUTES=0); relying on /cron")

    @platform_app.on_event("shutdown")
    async def shutdown():
        logger.info("Platform server shutting down...")
        for task in tasks:
            task.cancel()
        await services.close()

    return platform_app


# Module-level app for uvicorn
app = create_app()


# ── Entry point ────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "flywheel_platform.platform_main:app",
        host=HOST,
        port=PORT,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
        reload=os.getenv("DEV", "false").lower() in ("true", "1"),
    )
