# =============================================================================
# UNIT TESTS — Batch scheduler
# =============================================================================

import asyncio

import pytest

from core.pipeline import LegKind, LegResult, LegStatus, Outcome, PipelineResult
from core.scheduler import BatchScheduler, summarize

from fakes import OTHER_MINT, PLATFORM_MINT, PROJECT_MINT, make_project


# =============================================================================
# HELPERS
# =============================================================================

class ScriptedOrchestrator:
    """Returns canned results per mint; raises for mints in `explode`."""

    def __init__(self, clock=None, step=0.0, explode=()):
        self.runs: list[str] = []
        self.clock = clock
        self.step = step
        self.explode = set(explode)

    async def run(self, project):
        self.runs.append(project.token_mint)
        if self.clock is not None:
            self.clock.advance(self.step)
        if project.token_mint in self.explode:
            raise RuntimeError("venue client crashed")
        return _burned_result(project.token_mint)


class FakeClock:

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _burned_result(mint, sol=0.0441, tokens=44.1):
    return PipelineResult(
        token_mint=mint,
        project_leg=LegResult(kind=LegKind.PROJECT, token_mint=mint, status=LegStatus.BURNED,
                              sol_spent=sol, tokens_burned=tokens, buy_signature="b", burn_signature="c"),
    )


async def _seed(ledger):
    """Three projects, newest first: OTHER, PLATFORM, PROJECT."""
    await ledger.register_project(make_project(1, PROJECT_MINT, created_at="2026-01-01T00:00:00+00:00"))
    await ledger.register_project(make_project(2, PLATFORM_MINT, created_at="2026-02-01T00:00:00+00:00"))
    await ledger.register_project(make_project(3, OTHER_MINT, created_at="2026-03-01T00:00:00+00:00"))


# =============================================================================
# CYCLES
# =============================================================================

class TestRunCycle:

    def test_runs_every_active_project_newest_first(self, ledger):
        orchestrator = ScriptedOrchestrator()
        scheduler = BatchScheduler(ledger, orchestrator, pacing_seconds=0.0)

        async def scenario():
            await _seed(ledger)
            await ledger.deactivate_project(PLATFORM_MINT)
            return await scheduler.run_cycle()

        results = asyncio.run(scenario())
        assert orchestrator.runs == [OTHER_MINT, PROJECT_MINT]
        assert [r.outcome for r in results] == [Outcome.SUCCESS, Outcome.SUCCESS]

    def test_pacing_between_projects_only(self, ledger):
        """Sleep between projects, never after the last."""
        sleeps = []

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        scheduler = BatchScheduler(ledger, ScriptedOrchestrator(), pacing_seconds=1.5, sleep=fake_sleep)

        async def scenario():
            await _seed(ledger)
            return await scheduler.run_cycle()

        asyncio.run(scenario())
        assert sleeps == [1.5, 1.5]

    def test_one_failure_does_not_stop_cycle(self, ledger):
        orchestrator = ScriptedOrchestrator(explode=[PLATFORM_MINT])
        scheduler = BatchScheduler(ledger, orchestrator, pacing_seconds=0.0)

        async def scenario():
            await _seed(ledger)
            return await scheduler.run_cycle()

        results = asyncio.run(scenario())
        assert len(orchestrator.runs) == 3
        failed = [r for r in results if r.outcome == Outcome.FAILED]
        assert len(failed) == 1
        assert failed[0].token_mint == PLATFORM_MINT
        assert failed[0].reason == "Pipeline error"
        assert "venue client crashed" in failed[0].error

    def test_deadline_defers_remaining_projects(self, ledger):
        clock = FakeClock()
        orchestrator = ScriptedOrchestrator(clock=clock, step=60.0)
        scheduler = BatchScheduler(ledger, orchestrator, pacing_seconds=0.0, cycle_timeout=100.0, clock=clock)

        async def scenario():
            await _seed(ledger)
            return await scheduler.run_cycle()

        results = asyncio.run(scenario())
        assert orchestrator.runs == [OTHER_MINT, PLATFORM_MINT]
        assert results[2].outcome == Outcome.DEFERRED
        assert results[2].reason == "Cycle deadline reached"
        assert results[2].token_mint == PROJECT_MINT

    def test_status_tracks_last_summary(self, ledger):
        scheduler = BatchScheduler(ledger, ScriptedOrchestrator(), pacing_seconds=0.0)

        async def scenario():
            await _seed(ledger)
            await scheduler.run_cycle()

        asyncio.run(scenario())
        status = scheduler.get_status()
        assert status["cycles"] == 1
        assert status["last_summary"]["succeeded"] == 3


# =============================================================================
# SUMMARY
# =============================================================================

class TestSummarize:

    def test_counts_and_totals(self):
        results = [
            _burned_result(PROJECT_MINT),
            _burned_result(OTHER_MINT, sol=0.1, tokens=10.0),
            PipelineResult(token_mint=PLATFORM_MINT, reason="Insufficient balance"),
            PipelineResult(token_mint=PLATFORM_MINT, busy=True),
            PipelineResult(token_mint=PLATFORM_MINT, deferred=True),
        ]
        summary = summarize(results)
        assert summary["total"] == 5
        assert summary["succeeded"] == 2
        assert summary["skipped"] == 1
        assert summary["busy"] == 1
        assert summary["deferred"] == 1
        assert summary["failed"] == 0
        assert summary["sol_spent"] == pytest.approx(0.1441)
        assert summary["tokens_burned"] == pytest.approx(54.1)

    def test_empty_cycle(self):
        assert summarize([])["total"] == 0
