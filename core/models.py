"""
Ledger records — the durable shapes of the buyback-burn service.

Project rows are created once at registration and only their stats and
active flag ever change. Burn records are append-only. Wallet keys are
never stored: a deposit wallet is a pure function of (seed, index).
"""

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from core.constitution import DEFAULTS


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def parse_iso(value: str) -> datetime:
    """Parse an ISO timestamp, treating naive values as UTC."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _known_fields(cls, data: dict) -> dict:
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


@dataclass
class Project:
    """A registered token whose deposit wallet feeds the buyback."""
    token_mint: str
    creator_wallet: str
    deposit_wallet: str
    deposit_wallet_index: int
    token_name: str = ""
    token_ticker: str = ""
    platform_fee_percent: float = DEFAULTS.PLATFORM_FEE_PERCENT
    total_sol_received: float = 0.0
    total_tokens_burned: float = 0.0
    total_burns: int = 0
    last_burn_at: Optional[str] = None
    is_active: bool = True
    created_at: str = field(default_factory=utc_now_iso)

    @property
    def label(self) -> str:
        if self.token_ticker:
            return f"${self.token_ticker}"
        return self.token_name or f"{self.token_mint[:8]}..."

    def to_dict(self) -> dict:
        return {
            "token_mint": self.token_mint,
            "token_name": self.token_name,
            "token_ticker": self.token_ticker,
            "creator_wallet": self.creator_wallet,
            "deposit_wallet": self.deposit_wallet,
            "deposit_wallet_index": self.deposit_wallet_index,
            "platform_fee_percent": self.platform_fee_percent,
            "total_sol_received": self.total_sol_received,
            "total_tokens_burned": self.total_tokens_burned,
            "total_burns": self.total_burns,
            "last_burn_at": self.last_burn_at,
            "is_active": self.is_active,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Project":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class BurnRecord:
    """One confirmed project-leg burn, traceable to the swap that funded it."""
    token_mint: str
    sol_spent: float
    tokens_bought: float
    tokens_burned: float
    platform_fee_sol: float
    buy_signature: str
    burn_signature: str
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "token_mint": self.token_mint,
            "sol_spent": self.sol_spent,
            "tokens_bought": self.tokens_bought,
            "tokens_burned": self.tokens_burned,
            "platform_fee_sol": self.platform_fee_sol,
            "buy_signature": self.buy_signature,
            "burn_signature": self.burn_signature,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BurnRecord":
        return cls(**_known_fields(cls, data))


@dataclass(frozen=True)
class PlatformBurnRecord:
    """One confirmed platform-leg burn; source_project is the funding project."""
    sol_spent: float
    tokens_burned: float
    buy_signature: str
    burn_signature: str
    source_project: str
    created_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> dict:
        return {
            "sol_spent": self.sol_spent,
            "tokens_burned": self.tokens_burned,
            "buy_signature": self.buy_signature,
            "burn_signature": self.burn_signature,
            "source_project": self.source_project,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PlatformBurnRecord":
        return cls(**_known_fields(cls, data))


class PendingStatus(str, Enum):
    PENDING = "pending"
    LANDED = "landed"
    FAILED = "failed"
    DROPPED = "dropped"


@dataclass
class PendingSwap:
    """A swap signature that was submitted but never seen confirmed.

    token_mint is the project whose wallet paid; target_mint is what it bought
    (the project token or the platform token).
    """
    signature: str
    token_mint: str
    target_mint: str
    leg: str
    sol_amount: float
    venue: str = ""
    status: PendingStatus = PendingStatus.PENDING
    created_at: str = field(default_factory=utc_now_iso)
    resolved_at: Optional[str] = None

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - parse_iso(self.created_at)).total_seconds()

    def to_dict(self) -> dict:
        return {
            "signature": self.signature,
            "token_mint": self.token_mint,
            "target_mint": self.target_mint,
            "leg": self.leg,
            "sol_amount": self.sol_amount,
            "venue": self.venue,
            "status": self.status.value,
            "created_at": self.created_at,
            "resolved_at": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "PendingSwap":
        kwargs = _known_fields(cls, data)
        kwargs["status"] = PendingStatus(kwargs.get("status", "pending"))
        return cls(**kwargs)
