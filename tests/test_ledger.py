# =============================================================================
# UNIT TESTS — JSON file ledger
# =============================================================================

import asyncio
import json

import pytest

from core.errors import LedgerUnavailable, ProjectAlreadyRegistered, ProjectNotFound
from core.ledger import JsonFileLedger
from core.models import BurnRecord, PendingStatus, PendingSwap, PlatformBurnRecord

from fakes import OTHER_MINT, PLATFORM_MINT, PROJECT_MINT, make_project


def _burn(mint=PROJECT_MINT, sol=0.0441, sig="burn1"):
    return BurnRecord(
        token_mint=mint, sol_spent=sol, tokens_bought=44.1, tokens_burned=44.1,
        platform_fee_sol=0.0009, buy_signature="buy-" + sig, burn_signature=sig,
    )


# =============================================================================
# PROJECTS
# =============================================================================

class TestProjects:

    def test_register_and_reload(self, tmp_path):
        """Projects survive a process restart."""
        async def scenario():
            await JsonFileLedger(tmp_path).register_project(make_project())
            return await JsonFileLedger(tmp_path).get_project(PROJECT_MINT)

        project = asyncio.run(scenario())
        assert project.deposit_wallet_index == 1
        assert project.token_ticker == "TEST"

    def test_duplicate_mint_rejected(self, ledger):
        async def scenario():
            await ledger.register_project(make_project())
            await ledger.register_project(make_project(2))

        with pytest.raises(ProjectAlreadyRegistered):
            asyncio.run(scenario())

    def test_duplicate_index_rejected(self, ledger):
        async def scenario():
            await ledger.register_project(make_project(1, PROJECT_MINT))
            await ledger.register_project(make_project(1, OTHER_MINT))

        with pytest.raises(ValueError):
            asyncio.run(scenario())

    def test_next_wallet_index(self, ledger):
        async def scenario():
            first = await ledger.next_wallet_index()
            await ledger.register_project(make_project(1, PROJECT_MINT))
            await ledger.register_project(make_project(5, OTHER_MINT))
            return first, await ledger.next_wallet_index()

        assert asyncio.run(scenario()) == (1, 6)

    def test_lookup_by_deposit_wallet(self, ledger):
        project = make_project()

        async def scenario():
            await ledger.register_project(project)
            return (
                await ledger.get_project_by_deposit_wallet(project.deposit_wallet),
                await ledger.get_project_by_deposit_wallet("nobody"),
            )

        found, missing = asyncio.run(scenario())
        assert found.token_mint == PROJECT_MINT
        assert missing is None

    def test_update_stats_accumulates(self, ledger):
        async def scenario():
            await ledger.register_project(make_project())
            await ledger.update_project_stats(PROJECT_MINT, 0.0441, 44.1)
            return await ledger.update_project_stats(PROJECT_MINT, 0.1, 10.0)

        project = asyncio.run(scenario())
        assert project.total_burns == 2
        assert project.total_sol_received == pytest.approx(0.1441)
        assert project.total_tokens_burned == pytest.approx(54.1)
        assert project.last_burn_at is not None

    def test_update_unknown_project(self, ledger):
        with pytest.raises(ProjectNotFound):
            asyncio.run(ledger.update_project_stats(PROJECT_MINT, 0.1, 1.0))

    def test_deactivated_projects_not_listed(self, ledger):
        async def scenario():
            await ledger.register_project(make_project(1, PROJECT_MINT))
            await ledger.register_project(make_project(2, OTHER_MINT))
            await ledger.deactivate_project(PROJECT_MINT)
            return await ledger.get_active_projects()

        assert [p.token_mint for p in asyncio.run(scenario())] == [OTHER_MINT]

    def test_corrupt_file_is_unavailable(self, tmp_path):
        ledger_dir = tmp_path / "ledger"
        ledger_dir.mkdir()
        (ledger_dir / "projects.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(LedgerUnavailable):
            JsonFileLedger(tmp_path)


# =============================================================================
# BURN HISTORY
# =============================================================================

class TestBurnHistory:

    def test_history_newest_first_and_filtered(self, ledger):
        async def scenario():
            await ledger.append_burn_record(_burn(sig="one"))
            await ledger.append_burn_record(_burn(mint=OTHER_MINT, sig="other"))
            await ledger.append_burn_record(_burn(sig="two"))
            return await ledger.get_burn_history(PROJECT_MINT), await ledger.get_recent_burns(limit=2)

        history, recent = asyncio.run(scenario())
        assert [b.burn_signature for b in history] == ["two", "one"]
        assert [b.burn_signature for b in recent] == ["two", "other"]

    def test_platform_stats(self, ledger):
        async def scenario():
            for sig in ("p1", "p2"):
                await ledger.append_platform_burn_record(PlatformBurnRecord(
                    sol_spent=0.0009, tokens_burned=0.9, buy_signature="b" + sig,
                    burn_signature=sig, source_project=PROJECT_MINT,
                ))
            return await ledger.get_platform_stats()

        stats = asyncio.run(scenario())
        assert stats["total_burns"] == 2
        assert stats["total_sol_spent"] == pytest.approx(0.0018)

    def test_history_is_never_trimmed(self, tmp_path):
        async def scenario():
            ledger = JsonFileLedger(tmp_path)
            for i in range(25):
                await ledger.append_burn_record(_burn(sig=f"burn{i}"))
            return await JsonFileLedger(tmp_path).get_burn_history(PROJECT_MINT, limit=100)

        history = asyncio.run(scenario())
        assert len(history) == 25
        assert history[-1].burn_signature == "burn0"

    def test_writes_are_valid_json_on_disk(self, ledger, tmp_path):
        asyncio.run(ledger.append_burn_record(_burn()))
        rows = json.loads((tmp_path / "ledger" / "burn_history.json").read_text(encoding="utf-8"))
        assert rows[0]["burn_signature"] == "burn1"
        assert not (tmp_path / "ledger" / "burn_history.json.tmp").exists()

    def test_ping(self, ledger):
        assert asyncio.run(ledger.ping()) is True


# =============================================================================
# PENDING SWAPS
# =============================================================================

class TestPendingSwaps:

    def test_only_unresolved_for_project_returned(self, ledger):
        async def scenario():
            for sig, mint in (("s1", PROJECT_MINT), ("s2", PROJECT_MINT), ("s3", OTHER_MINT)):
                await ledger.append_pending_swap(PendingSwap(
                    signature=sig, token_mint=mint, target_mint=PLATFORM_MINT,
                    leg="platform", sol_amount=0.0009,
                ))
            await ledger.resolve_pending_swap("s1", PendingStatus.DROPPED)
            return await ledger.get_pending_swaps(PROJECT_MINT)

        pending = asyncio.run(scenario())
        assert [p.signature for p in pending] == ["s2"]
        assert pending[0].status == PendingStatus.PENDING

    def test_resolve_unknown_signature_is_noop(self, ledger):
        asyncio.run(ledger.resolve_pending_swap("missing", PendingStatus.LANDED))
        assert ledger.get_status()["pending_swaps"] == 0


# =============================================================================
# FAILED WRITES
# =============================================================================

class TestFailedWrites:
    """A write that never reached disk leaves memory untouched."""

    def _break_writes(self, ledger, monkeypatch):
        def broken_write(path, data):
            raise LedgerUnavailable(f"cannot write {path.name}: disk full")
        monkeypatch.setattr(ledger, "_write", broken_write)

    def test_register_not_kept(self, ledger, monkeypatch):
        self._break_writes(ledger, monkeypatch)
        with pytest.raises(LedgerUnavailable):
            asyncio.run(ledger.register_project(make_project()))
        assert asyncio.run(ledger.get_project(PROJECT_MINT)) is None
        assert asyncio.run(ledger.next_wallet_index()) == 1

    def test_stats_not_changed(self, ledger, monkeypatch):
        asyncio.run(ledger.register_project(make_project()))
        self._break_writes(ledger, monkeypatch)
        with pytest.raises(LedgerUnavailable):
            asyncio.run(ledger.update_project_stats(PROJECT_MINT, 0.1, 1.0))
        assert asyncio.run(ledger.get_project(PROJECT_MINT)).total_burns == 0

    def test_burn_not_appended(self, ledger, monkeypatch):
        self._break_writes(ledger, monkeypatch)
        with pytest.raises(LedgerUnavailable):
            asyncio.run(ledger.append_burn_record(_burn()))
        assert asyncio.run(ledger.get_recent_burns()) == []

    def test_pending_resolution_not_changed(self, ledger, monkeypatch):
        asyncio.run(ledger.append_pending_swap(PendingSwap(
            signature="s1", token_mint=PROJECT_MINT, target_mint=PROJECT_MINT,
            leg="project", sol_amount=0.0441,
        )))
        self._break_writes(ledger, monkeypatch)
        with pytest.raises(LedgerUnavailable):
            asyncio.run(ledger.resolve_pending_swap("s1", PendingStatus.LANDED))
        assert [p.signature for p in asyncio.run(ledger.get_pending_swaps(PROJECT_MINT))] == ["s1"]
