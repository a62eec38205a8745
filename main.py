"""
Flywheel Worker — run buyback-burn cycles without the HTTP server.

Usage:
  python main.py                       # one cycle over every active project
  python main.py --mint <TOKEN_MINT>   # one project only
  python main.py --loop --interval 10  # a cycle every 10 minutes, forever

All configuration comes from the environment (.env is loaded first); see
core/config.py for the variable list.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()

from core.config import FlywheelConfig
from core.errors import ConfigurationError, FlywheelError, ProjectNotFound
from core.log_setup import setup_logging
from core.scheduler import summarize
from flywheel_platform.wiring import FlywheelServices, build_services

logger = logging.getLogger("flywheel.main")


async def run_once(services: FlywheelServices) -> dict:
    results = await services.scheduler.run_cycle()
    summary = summarize(results)
    for result in results:
        if result.outcome.value in ("failed", "partial"):
            logger.warning(f"{result.project_label}: {result.outcome.value} {result.error or result.reason}")
    if services.notifier is not None and (summary["succeeded"] or summary["partial"]):
        try:
            await services.notifier.notify_cycle_summary(summary)
        except Exception as e:
            logger.warning(f"Cycle summary notification failed: {e}")
    return summary


async def run_loop(services: FlywheelServices, interval_minutes: float):
    logger.info(f"Worker loop: one cycle every {interval_minutes} minutes")
    while True:
        try:
            summary = await run_once(services)
            print(json.dumps(summary))
        except FlywheelError as e:
            logger.error(f"Cycle failed: {e}")
        await asyncio.sleep(interval_minutes * 60)


async def _main(args) -> int:
    services = build_services(FlywheelConfig.from_env())
    try:
        if args.mint:
            result = await services.orchestrator.run_by_mint(args.mint)
            print(json.dumps(result.to_dict(), indent=2))
            return 0 if result.outcome.value in ("success", "skipped") else 1
        if args.loop:
            await run_loop(services, args.interval)
            return 0
        summary = await run_once(services)
        print(json.dumps(summary, indent=2))
        return 1 if summary["failed"] else 0
    finally:
        await services.close()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run flywheel buyback-burn cycles")
    parser.add_argument("--mint", help="run a single project by token mint")
    parser.add_argument("--loop", action="store_true", help="keep running cycles")
    parser.add_argument("--interval", type=float, default=10.0, help="minutes between cycles (with --loop)")
    args = parser.parse_args(argv)

    try:
        config_secret = os.getenv("SEED_PHRASE", "")
        setup_logging(os.getenv("LOG_LEVEL", "INFO"), secrets=[config_secret])
        return asyncio.run(_main(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except ProjectNotFound as e:
        logger.error(f"Project not found: {e}")
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
