#!/usr/bin/env python3
"""
Manual Burn
===========
Operator tool for one deposit wallet.

    inspect   show the wallet address, SOL balance and token holding
    burn      burn whatever the wallet already holds of the token (no swap)

A recovered burn here is NOT written to the ledger; use `main.py --mint`
for a normal recorded run.

Run locks live inside the platform process, so nothing here stops the
server from working the same wallet. Stop the server
before burning by hand.

Usage:
    python -m scripts.manual_burn inspect <TOKEN_MINT>
    python -m scripts.manual_burn burn <TOKEN_MINT>
    python -m scripts.manual_burn burn <TOKEN_MINT> --index 7   # unregistered wallet
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

from core.config import FlywheelConfig
from core.errors import ConfigurationError, FlywheelError
from core.log_setup import setup_logging
from core.wallet import derive_keypair
from flywheel_platform.wiring import build_services

logger = logging.getLogger("flywheel.scripts.manual_burn")


async def _run(action: str, token_mint: str, index: Optional[int]) -> int:
    config = FlywheelConfig.from_env()
    services = build_services(config)
    try:
        if index is None:
            project = await services.ledger.get_project(token_mint)
            if project is None:
                logger.error(f"{token_mint} is not registered; pass --index")
                return 1
            index = project.deposit_wallet_index

        keypair = derive_keypair(config.seed_phrase, index)
        owner = keypair.pubkey()
        holding = await services.oracle.token_balance(owner, token_mint)
        report = {
            "wallet_index": index,
            "wallet": str(owner),
            "sol_balance": float(await services.oracle.native_balance_sol(owner)),
            "token_account": str(holding.account) if holding else None,
            "token_balance": float(holding.amount) if holding else 0.0,
            "token_program": str(holding.program_id) if holding else None,
        }

        if action == "burn":
            result = await services.burner.burn(keypair, token_mint)
            report["burn"] = result.to_dict()

        print(json.dumps(report, indent=2))
        return 0
    finally:
        await services.close()


def main() -> int:
    load_dotenv()
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("action", choices=["inspect", "burn"])
    parser.add_argument("token_mint")
    parser.add_argument("--index", type=int, default=None, help="deposit wallet index (default: from ledger)")
    args = parser.parse_args()

    setup_logging(os.getenv("LOG_LEVEL", "INFO"), secrets=[os.getenv("SEED_PHRASE", "")])
    try:
        return asyncio.run(_run(args.action, args.token_mint, args.index))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except FlywheelError as e:
        logger.error(f"{args.action} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
