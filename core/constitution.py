"""
Flywheel Constitution - Layer 0 (Immutable)

Chain identifiers, unit conversions and the default economics of the
buyback-burn pipeline. Operators override the defaults through core.config;
the program ids and unit math below are never configurable.

Designed for: flywheel buyback-burn service
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Final, Union

from solders.pubkey import Pubkey


# ============================================================
# CHAIN IDENTIFIERS
# ============================================================

LAMPORTS_PER_SOL: Final[int] = 1_000_000_000

SOL_MINT: Final[str] = "So11111111111111111111111111111111111111112"

SYSTEM_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID: Final[Pubkey] = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")

# Every token program a holding may live under, probed in this order
TOKEN_PROGRAM_VARIANTS: Final[tuple[Pubkey, ...]] = (TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID)

# Fixed seed of the unrecoverable burn destination (see core.wallet.burn_address)
BURN_ADDRESS_SEED: Final[str] = "FLYWHEEL_BURN_ADDRESS_PERMANENT"

# Index 0 belongs to the platform; projects are allocated 1, 2, 3, ...
PLATFORM_WALLET_INDEX: Final[int] = 0


# ============================================================
# PIPELINE DEFAULTS
# ============================================================

@dataclass(frozen=True)
class PipelineDefaults:
    """Frozen dataclass = defaults cannot drift at runtime."""

    # --- FEE SPLIT ---
    PLATFORM_FEE_PERCENT: Final[float] = 2.0          # Share of available SOL routed to the platform token
    MIN_SOL_FOR_BUYBACK: Final[float] = 0.02           # Deposit balance below this = skip
    KEEP_SOL_FOR_FEES: Final[float] = 0.005            # Left in the wallet for tx fees + rent
    MIN_PROJECT_SWAP_SOL: Final[float] = 0.01          # Smallest project-leg swap worth sending
    MIN_PLATFORM_SWAP_SOL: Final[float] = 0.0005       # Smallest platform-leg swap worth sending

    # --- SWAP ---
    SWAP_SLIPPAGE_PERCENT: Final[float] = 25.0         # Launch tokens move fast; venues reject tight slippage
    SWAP_PRIORITY_FEE_SOL: Final[float] = 0.0005
    SWAP_AMOUNT_DECIMALS: Final[int] = 4               # Venues reject float noise beyond this

    # --- BURN ---
    BURN_PRIORITY_MICROLAMPORTS: Final[int] = 50_000   # Compute unit price for burn transactions

    # --- TIMEOUTS (seconds) ---
    HTTP_TIMEOUT_SECONDS: Final[float] = 15.0
    RPC_TIMEOUT_SECONDS: Final[float] = 30.0
    CONFIRM_TIMEOUT_SECONDS: Final[float] = 60.0
    SETTLEMENT_TIMEOUT_SECONDS: Final[float] = 30.0
    CYCLE_TIMEOUT_SECONDS: Final[float] = 900.0
    LEASE_TTL_SECONDS: Final[float] = 600.0
    PENDING_SWAP_EXPIRY_SECONDS: Final[float] = 180.0  # Blockhash validity is ~60-90s

    # --- PACING ---
    PROJECT_PACING_SECONDS: Final[float] = 1.0
    CRON_INTERVAL_MINUTES: Final[int] = 10


DEFAULTS = PipelineDefaults()


# ============================================================
# UNITS
# ============================================================

Amount = Union[Decimal, float, int, str]


def to_decimal(value: Amount) -> Decimal:
    """Decimal from any amount; floats go through str() to drop binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def sol_to_lamports(sol: Amount) -> int:
    """Whole lamports, rounded down so we never spend more than asked."""
    return int((to_decimal(sol) * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL


def raw_to_ui(raw_amount: int, decimals: int) -> Decimal:
    """Human-readable token amount using the token's own decimals."""
    return Decimal(raw_amount) / (Decimal(10) ** decimals)


def truncate_amount(amount: Amount, decimals: int) -> Decimal:
    """Truncate (never round up) to a fixed number of fractional digits."""
    quantum = Decimal(1).scaleb(-decimals)
    return to_decimal(amount).quantize(quantum, rounding=ROUND_DOWN)
