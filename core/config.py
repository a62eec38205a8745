"""
Flywheel Config - explicit runtime configuration.

Built once at process entry (after load_dotenv) and passed into every
component constructor. Pipeline logic never reads the environment.

Design:
- Frozen dataclass: a running cycle cannot see config drift
- Defaults from core.constitution.DEFAULTS, overridable per env var
- validate() runs in __post_init__; bad values raise ConfigurationError
- SOL thresholds are exposed as integer lamports for the split math
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from core.constitution import DEFAULTS, PLATFORM_WALLET_INDEX, sol_to_lamports
from core.errors import ConfigurationError

KNOWN_VENUES = ("pumpportal", "jupiter", "solanatracker")
BURN_STRATEGIES = ("instruction", "incinerator")
LEDGER_BACKENDS = ("json", "supabase")

PUBLIC_RPC_URL = "https://api.mainnet-beta.solana.com"
HELIUS_RPC_URL = "https://mainnet.helius-rpc.com/?api-key={api_key}"


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key, "")
    if raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}")


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "")
    if raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}")


def _env_bool(env: Mapping[str, str], key: str, default: bool = False) -> bool:
    raw = env.get(key, "")
    if raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_list(env: Mapping[str, str], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = env.get(key, "")
    if not raw.strip():
        return default
    return tuple(part.strip().lower() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class FlywheelConfig:
    """Everything a component may need to know about its environment."""

    seed_phrase: str = field(repr=False)
    rpc_url: str = PUBLIC_RPC_URL

    # --- Economics ---
    platform_token_mint: str = ""
    platform_wallet_index: int = PLATFORM_WALLET_INDEX
    platform_fee_percent: float = DEFAULTS.PLATFORM_FEE_PERCENT
    min_sol_for_buyback: float = DEFAULTS.MIN_SOL_FOR_BUYBACK
    keep_sol_for_fees: float = DEFAULTS.KEEP_SOL_FOR_FEES
    min_project_swap_sol: float = DEFAULTS.MIN_PROJECT_SWAP_SOL
    min_platform_swap_sol: float = DEFAULTS.MIN_PLATFORM_SWAP_SOL

    # --- Swap venues ---
    swap_venues: tuple[str, ...] = ("pumpportal", "jupiter")
    swap_slippage_percent: float = DEFAULTS.SWAP_SLIPPAGE_PERCENT
    swap_priority_fee_sol: float = DEFAULTS.SWAP_PRIORITY_FEE_SOL
    swap_amount_decimals: int = DEFAULTS.SWAP_AMOUNT_DECIMALS
    pumpportal_pool: str = "auto"
    jupiter_api_url: str = "https://lite-api.jup.ag/swap/v1"
    solanatracker_api_key: str = field(default="", repr=False)

    # --- Burn ---
    burn_strategy: str = "instruction"
    burn_priority_microlamports: int = DEFAULTS.BURN_PRIORITY_MICROLAMPORTS
    claim_creator_fees: bool = False

    # --- Timeouts / pacing ---
    http_timeout_seconds: float = DEFAULTS.HTTP_TIMEOUT_SECONDS
    rpc_timeout_seconds: float = DEFAULTS.RPC_TIMEOUT_SECONDS
    confirm_timeout_seconds: float = DEFAULTS.CONFIRM_TIMEOUT_SECONDS
    settlement_timeout_seconds: float = DEFAULTS.SETTLEMENT_TIMEOUT_SECONDS
    project_pacing_seconds: float = DEFAULTS.PROJECT_PACING_SECONDS
    cycle_timeout_seconds: float = DEFAULTS.CYCLE_TIMEOUT_SECONDS
    lease_ttl_seconds: float = DEFAULTS.LEASE_TTL_SECONDS
    pending_swap_expiry_seconds: float = DEFAULTS.PENDING_SWAP_EXPIRY_SECONDS
    cron_interval_minutes: int = DEFAULTS.CRON_INTERVAL_MINUTES

    # --- Ledger ---
    ledger_backend: str = "json"
    data_dir: Path = Path("data")
    supabase_url: str = ""
    supabase_key: str = field(default="", repr=False)

    # --- Collaborators / service ---
    helius_api_key: str = field(default="", repr=False)
    webhook_url: str = ""
    webhook_secret: str = field(default="", repr=False)
    cron_secret: str = field(default="", repr=False)
    telegram_bot_token: str = field(default="", repr=False)
    telegram_chat_id: str = ""

    def __post_init__(self):
        self.validate()

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "FlywheelConfig":
        """Build from environment variables (os.environ unless given)."""
        env = os.environ if env is None else env

        helius_key = env.get("HELIUS_API_KEY", "")
        rpc_url = env.get("SOLANA_RPC_URL", "")
        if not rpc_url:
            rpc_url = HELIUS_RPC_URL.format(api_key=helius_key) if helius_key else PUBLIC_RPC_URL

        return cls(
            seed_phrase=env.get("SEED_PHRASE", ""),
            rpc_url=rpc_url,
            platform_token_mint=env.get("PLATFORM_TOKEN_MINT", "").strip(),
            platform_wallet_index=_env_int(env, "PLATFORM_BURN_WALLET_INDEX", PLATFORM_WALLET_INDEX),
            platform_fee_percent=_env_float(env, "PLATFORM_FEE_PERCENT", DEFAULTS.PLATFORM_FEE_PERCENT),
            min_sol_for_buyback=_env_float(env, "MIN_SOL_FOR_BUYBACK", DEFAULTS.MIN_SOL_FOR_BUYBACK),
            keep_sol_for_fees=_env_float(env, "KEEP_SOL_FOR_FEES", DEFAULTS.KEEP_SOL_FOR_FEES),
            min_project_swap_sol=_env_float(env, "MIN_PROJECT_SWAP_SOL", DEFAULTS.MIN_PROJECT_SWAP_SOL),
            min_platform_swap_sol=_env_float(env, "MIN_PLATFORM_SWAP_SOL", DEFAULTS.MIN_PLATFORM_SWAP_SOL),
            swap_venues=_env_list(env, "SWAP_VENUES", ("pumpportal", "jupiter")),
            swap_slippage_percent=_env_float(env, "SWAP_SLIPPAGE_PERCENT", DEFAULTS.SWAP_SLIPPAGE_PERCENT),
            swap_priority_fee_sol=_env_float(env, "SWAP_PRIORITY_FEE_SOL", DEFAULTS.SWAP_PRIORITY_FEE_SOL),
            swap_amount_decimals=_env_int(env, "SWAP_AMOUNT_DECIMALS", DEFAULTS.SWAP_AMOUNT_DECIMALS),
            pumpportal_pool=env.get("PUMPPORTAL_POOL", "auto") or "auto",
            jupiter_api_url=env.get("JUPITER_API_URL", "") or "https://lite-api.jup.ag/swap/v1",
            solanatracker_api_key=env.get("SOLANATRACKER_API_KEY", ""),
            burn_strategy=(env.get("BURN_STRATEGY", "") or "instruction").strip().lower(),
            burn_priority_microlamports=_env_int(
                env, "BURN_PRIORITY_MICROLAMPORTS", DEFAULTS.BURN_PRIORITY_MICROLAMPORTS
            ),
            claim_creator_fees=_env_bool(env, "CLAIM_CREATOR_FEES"),
            http_timeout_seconds=_env_float(env, "HTTP_TIMEOUT_SECONDS", DEFAULTS.HTTP_TIMEOUT_SECONDS),
            rpc_timeout_seconds=_env_float(env, "RPC_TIMEOUT_SECONDS", DEFAULTS.RPC_TIMEOUT_SECONDS),
            confirm_timeout_seconds=_env_float(env, "CONFIRM_TIMEOUT_SECONDS", DEFAULTS.CONFIRM_TIMEOUT_SECONDS),
            settlement_timeout_seconds=_env_float(
                env, "SETTLEMENT_TIMEOUT_SECONDS", DEFAULTS.SETTLEMENT_TIMEOUT_SECONDS
            ),
            project_pacing_seconds=_env_float(env, "PROJECT_PACING_SECONDS", DEFAULTS.PROJECT_PACING_SECONDS),
            cycle_timeout_seconds=_env_float(env, "CYCLE_TIMEOUT_SECONDS", DEFAULTS.CYCLE_TIMEOUT_SECONDS),
            lease_ttl_seconds=_env_float(env, "LEASE_TTL_SECONDS", DEFAULTS.LEASE_TTL_SECONDS),
            pending_swap_expiry_seconds=_env_float(
                env, "PENDING_SWAP_EXPIRY_SECONDS", DEFAULTS.PENDING_SWAP_EXPIRY_SECONDS
            ),
            cron_interval_minutes=_env_int(env, "CRON_INTERVAL_MINUTES", DEFAULTS.CRON_INTERVAL_MINUTES),
            ledger_backend=(env.get("LEDGER_BACKEND", "") or "json").strip().lower(),
            data_dir=Path(env.get("FLYWHEEL_DATA_DIR", "") or "data"),
            supabase_url=env.get("SUPABASE_URL", "").rstrip("/"),
            supabase_key=env.get("SUPABASE_KEY", ""),
            helius_api_key=helius_key,
            webhook_url=env.get("WEBHOOK_URL", ""),
            webhook_secret=env.get("WEBHOOK_SECRET", ""),
            cron_secret=env.get("CRON_SECRET", ""),
            telegram_bot_token=env.get("TELEGRAM_BOT_TOKEN", ""),
            telegram_chat_id=env.get("TELEGRAM_CHAT_ID", ""),
        )

    def validate(self) -> None:
        if not self.seed_phrase:
            raise ConfigurationError("SEED_PHRASE is required")
        if not 0 <= self.platform_fee_percent <= 100:
            raise ConfigurationError(
                f"PLATFORM_FEE_PERCENT must be within 0-100, got {self.platform_fee_percent}"
            )
        if self.platform_wallet_index < 0:
            raise ConfigurationError("PLATFORM_BURN_WALLET_INDEX must be >= 0")

        for name in ("min_sol_for_buyback", "keep_sol_for_fees",
                     "min_project_swap_sol", "min_platform_swap_sol",
                     "swap_slippage_percent", "swap_priority_fee_sol"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name.upper()} must not be negative")

        if self.swap_amount_decimals < 0 or self.swap_amount_decimals > 9:
            raise ConfigurationError("SWAP_AMOUNT_DECIMALS must be within 0-9")

        if not self.swap_venues:
            raise ConfigurationError("SWAP_VENUES must name at least one venue")
        unknown = [v for v in self.swap_venues if v not in KNOWN_VENUES]
        if unknown:
            raise ConfigurationError(f"Unknown swap venue(s): {', '.join(unknown)}")
        if "solanatracker" in self.swap_venues and not self.solanatracker_api_key:
            raise ConfigurationError("solanatracker venue requires SOLANATRACKER_API_KEY")

        if self.burn_strategy not in BURN_STRATEGIES:
            raise ConfigurationError(f"Unknown BURN_STRATEGY: {self.burn_strategy}")
        if self.ledger_backend not in LEDGER_BACKENDS:
            raise ConfigurationError(f"Unknown LEDGER_BACKEND: {self.ledger_backend}")
        if self.ledger_backend == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ConfigurationError("supabase ledger requires SUPABASE_URL and SUPABASE_KEY")

        for name in ("http_timeout_seconds", "rpc_timeout_seconds", "confirm_timeout_seconds",
                     "settlement_timeout_seconds", "cycle_timeout_seconds", "lease_ttl_seconds"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"{name.upper()} must be positive")

    # ── lamport views used by the split math ──

    @property
    def min_buyback_lamports(self) -> int:
        return sol_to_lamports(self.min_sol_for_buyback)

    @property
    def reserve_lamports(self) -> int:
        return sol_to_lamports(self.keep_sol_for_fees)

    @property
    def min_project_swap_lamports(self) -> int:
        return sol_to_lamports(self.min_project_swap_sol)

    @property
    def min_platform_swap_lamports(self) -> int:
        return sol_to_lamports(self.min_platform_swap_sol)

    @property
    def platform_leg_enabled(self) -> bool:
        return bool(self.platform_token_mint)

    def get_status(self) -> dict:
        """Presence flags only; never the secrets themselves."""
        return {
            "seed_phrase": bool(self.seed_phrase),
            "platform_token_mint": self.platform_token_mint or None,
            "platform_fee_percent": self.platform_fee_percent,
            "swap_venues": list(self.swap_venues),
            "burn_strategy": self.burn_strategy,
            "ledger_backend": self.ledger_backend,
            "helius": bool(self.helius_api_key),
            "telegram": bool(self.telegram_bot_token and self.telegram_chat_id),
            "webhook_url": bool(self.webhook_url),
            "claim_creator_fees": self.claim_creator_fees,
        }
