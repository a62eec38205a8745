"""
Supabase Ledger — hosted ledger over Supabase's PostgREST API.

Tables: projects, burn_history, platform_burns, pending_swaps (columns named
as the to_dict() keys of core.models). Every HTTP or decode failure is
raised as LedgerUnavailable.

Stats updates are read-then-patch. Runs for one project are serialized by
the pipeline lease, so no two writers touch the same row concurrently.
"""

import logging
from typing import Optional

import aiohttp

from core.constitution import DEFAULTS
from core.errors import LedgerUnavailable, ProjectAlreadyRegistered, ProjectNotFound
from core.ledger import Ledger
from core.models import (
    BurnRecord,
    PendingStatus,
    PendingSwap,
    PlatformBurnRecord,
    Project,
    utc_now_iso,
)

logger = logging.getLogger("flywheel.platform.supabase")


class SupabaseLedger(Ledger):

    def __init__(self, url: str, key: str, timeout: float = DEFAULTS.HTTP_TIMEOUT_SECONDS):
        self.rest_url = f"{url.rstrip('/')}/rest/v1"
        self._key = key
        self._session: Optional[aiohttp.ClientSession] = None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @property
    def backend_id(self) -> str:
        return "supabase"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={
                    "apikey": self._key,
                    "Authorization": f"Bearer {self._key}",
                    "Content-Type": "application/json",
                    "Prefer": "return=representation",
                },
            )
        return self._session

    async def _request(self, method: str, table: str, params: Optional[dict] = None,
                       body=None) -> list[dict]:
        session = await self._get_session()
        try:
            async with session.request(method, f"{self.rest_url}/{table}", params=params, json=body) as resp:
                if resp.status == 409 and table == "projects":
                    raise ProjectAlreadyRegistered("project already registered")
                if resp.status >= 400:
                    text = (await resp.text())[:200]
                    raise LedgerUnavailable(f"{method} {table} -> HTTP {resp.status}: {text}")
                if resp.status == 204:
                    return []
                return await resp.json()
        except aiohttp.ClientError as e:
            raise LedgerUnavailable(f"{method} {table}: {type(e).__name__}: {e}") from e
        except ValueError as e:
            raise LedgerUnavailable(f"{method} {table}: bad response: {e}") from e

    # ── projects ──

    async def get_active_projects(self) -> list[Project]:
        rows = await self._request("GET", "projects", {
            "select": "*", "is_active": "eq.true", "order": "created_at.desc",
        })
        return [Project.from_dict(r) for r in rows]

    async def get_project(self, token_mint: str) -> Optional[Project]:
        rows = await self._request("GET", "projects", {"select": "*", "token_mint": f"eq.{token_mint}"})
        return Project.from_dict(rows[0]) if rows else None

    async def get_project_by_deposit_wallet(self, address: str) -> Optional[Project]:
        rows = await self._request("GET", "projects", {"select": "*", "deposit_wallet": f"eq.{address}"})
        return Project.from_dict(rows[0]) if rows else None

    async def register_project(self, project: Project) -> Project:
        rows = await self._request("POST", "projects", body=project.to_dict())
        return Project.from_dict(rows[0]) if rows else project

    async def update_project_stats(self, token_mint: str, sol_spent: float, tokens_burned: float) -> Project:
        project = await self.get_project(token_mint)
        if project is None:
            raise ProjectNotFound(token_mint)
        rows = await self._request("PATCH", "projects", {"token_mint": f"eq.{token_mint}"}, {
            "total_sol_received": project.total_sol_received + sol_spent,
            "total_tokens_burned": project.total_tokens_burned + tokens_burned,
            "total_burns": project.total_burns + 1,
            "last_burn_at": utc_now_iso(),
        })
        return Project.from_dict(rows[0]) if rows else project

    async def deactivate_project(self, token_mint: str) -> Project:
        rows = await self._request("PATCH", "projects", {"token_mint": f"eq.{token_mint}"}, {"is_active": False})
        if not rows:
            raise ProjectNotFound(token_mint)
        return Project.from_dict(rows[0])

    async def next_wallet_index(self) -> int:
        rows = await self._request("GET", "projects", {
            "select": "deposit_wallet_index", "order": "deposit_wallet_index.desc", "limit": "1",
        })
        return (rows[0]["deposit_wallet_index"] if rows else 0) + 1

    # ── burn history ──

    async def append_burn_record(self, record: BurnRecord) -> None:
        await self._request("POST", "burn_history", body=record.to_dict())

    async def append_platform_burn_record(self, record: PlatformBurnRecord) -> None:
        await self._request("POST", "platform_burns", body=record.to_dict())

    async def get_burn_history(self, token_mint: str, limit: int = 50) -> list[BurnRecord]:
        rows = await self._request("GET", "burn_history", {
            "select": "*", "token_mint": f"eq.{token_mint}",
            "order": "created_at.desc", "limit": str(limit),
        })
        return [BurnRecord.from_dict(r) for r in rows]

    async def get_recent_burns(self, limit: int = 20) -> list[BurnRecord]:
        rows = await self._request("GET", "burn_history", {
            "select": "*", "order": "created_at.desc", "limit": str(limit),
        })
        return [BurnRecord.from_dict(r) for r in rows]

    async def get_platform_stats(self) -> dict:
        rows = await self._request("GET", "platform_burns", {"select": "sol_spent,tokens_burned"})
        return {
            "total_sol_spent": sum(float(r.get("sol_spent") or 0) for r in rows),
            "total_tokens_burned": sum(float(r.get("tokens_burned") or 0) for r in rows),
            "total_burns": len(rows),
        }

    # ── swap reconciliation ──

    async def append_pending_swap(self, pending: PendingSwap) -> None:
        await self._request("POST", "pending_swaps", body=pending.to_dict())

    async def get_pending_swaps(self, token_mint: str) -> list[PendingSwap]:
        rows = await self._request("GET", "pending_swaps", {
            "select": "*", "token_mint": f"eq.{token_mint}", "status": f"eq.{PendingStatus.PENDING.value}",
        })
        return [PendingSwap.from_dict(r) for r in rows]

    async def resolve_pending_swap(self, signature: str, status: PendingStatus) -> None:
        await self._request("PATCH", "pending_swaps", {"signature": f"eq.{signature}"}, {
            "status": status.value, "resolved_at": utc_now_iso(),
        })

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()
