"""
Ledger — the single durable authority for projects and burn history.

Architecture:
- Ledger (ABC): what the pipeline, registry and service need
- JsonFileLedger: default backend, JSON files under data_dir/ledger/
  (flywheel_platform.supabase_ledger provides a hosted alternative)

Every failed read or write surfaces as LedgerUnavailable. Writes go to a
temp file first and are swapped in with os.replace, so a crash mid-write
never leaves a truncated ledger behind. In-memory state changes only once
the write has landed. Burn history is append-only and never trimmed.
"""

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from core.errors import LedgerUnavailable, ProjectAlreadyRegistered, ProjectNotFound
from core.models import (
    BurnRecord,
    PendingStatus,
    PendingSwap,
    PlatformBurnRecord,
    Project,
    utc_now_iso,
)

logger = logging.getLogger("flywheel.ledger")


class Ledger(ABC):

    @property
    @abstractmethod
    def backend_id(self) -> str:
        ...

    # ── projects ──

    @abstractmethod
    async def get_active_projects(self) -> list[Project]:
        """Active projects, newest registration first."""
        ...

    @abstractmethod
    async def get_project(self, token_mint: str) -> Optional[Project]:
        ...

    @abstractmethod
    async def get_project_by_deposit_wallet(self, address: str) -> Optional[Project]:
        ...

    @abstractmethod
    async def register_project(self, project: Project) -> Project:
        """Insert a new project. Duplicate mint -> ProjectAlreadyRegistered."""
        ...

    @abstractmethod
    async def update_project_stats(self, token_mint: str, sol_spent: float, tokens_burned: float) -> Project:
        """Add one burn's totals to the project and stamp last_burn_at."""
        ...

    @abstractmethod
    async def deactivate_project(self, token_mint: str) -> Project:
        ...

    @abstractmethod
    async def next_wallet_index(self) -> int:
        """Highest allocated deposit index + 1 (first project gets 1)."""
        ...

    # ── burn history ──

    @abstractmethod
    async def append_burn_record(self, record: BurnRecord) -> None:
        ...

    @abstractmethod
    async def append_platform_burn_record(self, record: PlatformBurnRecord) -> None:
        ...

    @abstractmethod
    async def get_burn_history(self, token_mint: str, limit: int = 50) -> list[BurnRecord]:
        """One project's burns, newest first."""
        ...

    @abstractmethod
    async def get_recent_burns(self, limit: int = 20) -> list[BurnRecord]:
        ...

    @abstractmethod
    async def get_platform_stats(self) -> dict:
        ...

    # ── swap reconciliation ──

    @abstractmethod
    async def append_pending_swap(self, pending: PendingSwap) -> None:
        ...

    @abstractmethod
    async def get_pending_swaps(self, token_mint: str) -> list[PendingSwap]:
        """Unresolved pending swaps paid from this project's wallet."""
        ...

    @abstractmethod
    async def resolve_pending_swap(self, signature: str, status: PendingStatus) -> None:
        ...

    async def ping(self) -> bool:
        """Reachability for health checks."""
        try:
            await self.get_platform_stats()
            return True
        except LedgerUnavailable as e:
            logger.warning(f"Ledger unreachable: {e}")
            return False

    async def close(self):
        return None


# ============================================================
# JSON FILE LEDGER
# ============================================================

class JsonFileLedger(Ledger):
    """Single-instance ledger persisted as JSON under data_dir/ledger/."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.ledger_dir = self.data_dir / "ledger"
        self.projects_file = self.ledger_dir / "projects.json"
        self.burns_file = self.ledger_dir / "burn_history.json"
        self.platform_burns_file = self.ledger_dir / "platform_burns.json"
        self.pending_file = self.ledger_dir / "pending_swaps.json"

        self._projects: dict[str, dict] = {}
        self._burns: list[dict] = []
        self._platform_burns: list[dict] = []
        self._pending: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        self._load()

    @property
    def backend_id(self) -> str:
        return "json"

    def _read(self, path: Path, default):
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise LedgerUnavailable(f"cannot read {path.name}: {e}") from e

    def _load(self):
        """Load every ledger file from disk."""
        self._projects = self._read(self.projects_file, {})
        self._burns = self._read(self.burns_file, [])
        self._platform_burns = self._read(self.platform_burns_file, [])
        self._pending = self._read(self.pending_file, {})
        if self._projects:
            logger.info(f"Loaded {len(self._projects)} projects, {len(self._burns)} burns")

    def _write(self, path: Path, data):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
            os.replace(tmp, path)
        except OSError as e:
            raise LedgerUnavailable(f"cannot write {path.name}: {e}") from e

    # ── projects ──

    async def get_active_projects(self) -> list[Project]:
        projects = [Project.from_dict(p) for p in self._projects.values() if p.get("is_active", True)]
        return sorted(projects, key=lambda p: p.created_at, reverse=True)

    async def get_project(self, token_mint: str) -> Optional[Project]:
        data = self._projects.get(token_mint)
        return Project.from_dict(data) if data else None

    async def get_project_by_deposit_wallet(self, address: str) -> Optional[Project]:
        for data in self._projects.values():
            if data.get("deposit_wallet") == address:
                return Project.from_dict(data)
        return None

    async def register_project(self, project: Project) -> Project:
        async with self._lock:
            if project.token_mint in self._projects:
                raise ProjectAlreadyRegistered(f"{project.token_mint} is already registered")
            if any(p.get("deposit_wallet_index") == project.deposit_wallet_index
                   for p in self._projects.values()):
                raise ValueError(f"deposit wallet index {project.deposit_wallet_index} already allocated")
            projects = dict(self._projects)
            projects[project.token_mint] = project.to_dict()
            self._write(self.projects_file, projects)
            self._projects = projects
        return project

    async def update_project_stats(self, token_mint: str, sol_spent: float, tokens_burned: float) -> Project:
        async with self._lock:
            current = self._projects.get(token_mint)
            if current is None:
                raise ProjectNotFound(token_mint)
            data = dict(current)
            data["total_sol_received"] = data.get("total_sol_received", 0.0) + sol_spent
            data["total_tokens_burned"] = data.get("total_tokens_burned", 0.0) + tokens_burned
            data["total_burns"] = data.get("total_burns", 0) + 1
            data["last_burn_at"] = utc_now_iso()
            self._commit_project(data)
            return Project.from_dict(data)

    async def deactivate_project(self, token_mint: str) -> Project:
        async with self._lock:
            current = self._projects.get(token_mint)
            if current is None:
                raise ProjectNotFound(token_mint)
            data = dict(current, is_active=False)
            self._commit_project(data)
            return Project.from_dict(data)

    def _commit_project(self, data: dict):
        projects = dict(self._projects)
        projects[data["token_mint"]] = data
        self._write(self.projects_file, projects)
        self._projects = projects

    async def next_wallet_index(self) -> int:
        indices = [p.get("deposit_wallet_index", 0) for p in self._projects.values()]
        return max(indices, default=0) + 1

    # ── burn history (append-only) ──

    async def append_burn_record(self, record: BurnRecord) -> None:
        async with self._lock:
            burns = self._burns + [record.to_dict()]
            self._write(self.burns_file, burns)
            self._burns = burns

    async def append_platform_burn_record(self, record: PlatformBurnRecord) -> None:
        async with self._lock:
            burns = self._platform_burns + [record.to_dict()]
            self._write(self.platform_burns_file, burns)
            self._platform_burns = burns

    async def get_burn_history(self, token_mint: str, limit: int = 50) -> list[BurnRecord]:
        rows = [b for b in self._burns if b.get("token_mint") == token_mint]
        return [BurnRecord.from_dict(b) for b in reversed(rows[-limit:])]

    async def get_recent_burns(self, limit: int = 20) -> list[BurnRecord]:
        return [BurnRecord.from_dict(b) for b in reversed(self._burns[-limit:])]

    async def get_platform_stats(self) -> dict:
        return {
            "total_sol_spent": sum(b.get("sol_spent", 0.0) for b in self._platform_burns),
            "total_tokens_burned": sum(b.get("tokens_burned", 0.0) for b in self._platform_burns),
            "total_burns": len(self._platform_burns),
        }

    # ── swap reconciliation ──

    async def append_pending_swap(self, pending: PendingSwap) -> None:
        async with self._lock:
            swaps = dict(self._pending)
            swaps[pending.signature] = pending.to_dict()
            self._write(self.pending_file, swaps)
            self._pending = swaps

    async def get_pending_swaps(self, token_mint: str) -> list[PendingSwap]:
        return [
            PendingSwap.from_dict(p) for p in self._pending.values()
            if p.get("token_mint") == token_mint and p.get("status") == PendingStatus.PENDING.value
        ]

    async def resolve_pending_swap(self, signature: str, status: PendingStatus) -> None:
        async with self._lock:
            current = self._pending.get(signature)
            if current is None:
                return
            swaps = dict(self._pending)
            swaps[signature] = dict(current, status=status.value, resolved_at=utc_now_iso())
            self._write(self.pending_file, swaps)
            self._pending = swaps

    def get_status(self) -> dict:
        return {
            "backend": self.backend_id,
            "projects": len(self._projects),
            "burns": len(self._burns),
            "platform_burns": len(self._platform_burns),
            "pending_swaps": sum(1 for p in self._pending.values()
                                 if p.get("status") == PendingStatus.PENDING.value),
        }
