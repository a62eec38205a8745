#!/usr/bin/env python3
"""
Sync Helius Webhook
===================
Point the transfer webhook at every active deposit wallet in the ledger.
Run after restoring a ledger or changing WEBHOOK_URL.

Usage:
    python -m scripts.sync_webhooks
    python -m scripts.sync_webhooks --dry-run    # list wallets only
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

from core.config import FlywheelConfig
from core.errors import ConfigurationError, FlywheelError
from core.log_setup import setup_logging
from flywheel_platform.wiring import build_services

logger = logging.getLogger("flywheel.scripts.sync_webhooks")


async def _sync(dry_run: bool) -> int:
    services = build_services(FlywheelConfig.from_env())
    try:
        projects = await services.ledger.get_active_projects()
        for project in projects:
            print(f"  #{project.deposit_wallet_index:<4} {project.deposit_wallet}  {project.label}")

        if dry_run:
            print(f"{len(projects)} wallet(s) would be synced")
            return 0
        if services.registrar is None:
            logger.error("HELIUS_API_KEY and WEBHOOK_URL are required")
            return 2

        watched = await services.registry.sync_webhooks()
        print(f"Webhook now watching {watched} wallet(s)")
        return 0
    finally:
        await services.close()


def main() -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    setup_logging(os.getenv("LOG_LEVEL", "INFO"), secrets=[os.getenv("SEED_PHRASE", "")])
    try:
        return asyncio.run(_sync(args.dry_run))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except FlywheelError as e:
        logger.error(f"Sync failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
