"""
Batch Scheduler — one cycle over every active project.

Projects run sequentially with a fixed pacing delay between them, so a
cycle never bursts the RPC or the swap venues. One project's failure never
stops the cycle. Once the cycle deadline passes, remaining projects are
reported as deferred instead of started; the next cycle picks them up.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable

from core.constitution import DEFAULTS
from core.ledger import Ledger
from core.pipeline import Outcome, PipelineOrchestrator, PipelineResult

logger = logging.getLogger("flywheel.scheduler")


class BatchScheduler:

    def __init__(
        self,
        ledger: Ledger,
        orchestrator: PipelineOrchestrator,
        pacing_seconds: float = DEFAULTS.PROJECT_PACING_SECONDS,
        cycle_timeout: float = DEFAULTS.CYCLE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable] = asyncio.sleep,
    ):
        self.ledger = ledger
        self.orchestrator = orchestrator
        self.pacing_seconds = pacing_seconds
        self.cycle_timeout = cycle_timeout
        self._clock = clock
        self._sleep = sleep

        self._cycles: int = 0
        self._last_summary: dict = {}

    async def run_cycle(self) -> list[PipelineResult]:
        """Run every active project once. Ledger failure on listing propagates."""
        projects = await self.ledger.get_active_projects()
        logger.info(f"Cycle start: {len(projects)} active projects")

        deadline = self._clock() + self.cycle_timeout
        results: list[PipelineResult] = []

        for i, project in enumerate(projects):
            if self._clock() >= deadline:
                results.append(PipelineResult(
                    token_mint=project.token_mint,
                    project_label=project.label,
                    deferred=True,
                    reason="Cycle deadline reached",
                ))
                continue

            try:
                result = await self.orchestrator.run(project)
            except Exception as e:
                logger.error(f"{project.label}: run aborted: {type(e).__name__}: {e}")
                result = PipelineResult(
                    token_mint=project.token_mint,
                    project_label=project.label,
                    reason="Pipeline error",
                    error=f"{type(e).__name__}: {e}",
                )
                result.finished_at = time.time()
            results.append(result)

            if i < len(projects) - 1:
                await self._sleep(self.pacing_seconds)

        deferred = sum(1 for r in results if r.deferred)
        if deferred:
            logger.warning(f"Cycle deadline reached: {deferred} project(s) deferred")

        self._cycles += 1
        self._last_summary = summarize(results)
        logger.info(f"Cycle done: {self._last_summary}")
        return results

    def get_status(self) -> dict:
        return {
            "cycles": self._cycles,
            "pacing_seconds": self.pacing_seconds,
            "cycle_timeout": self.cycle_timeout,
            "last_summary": self._last_summary,
        }


def summarize(results: list[PipelineResult]) -> dict:
    """Cycle summary counts for callers (CLI output, notifier, cron endpoint)."""
    counts = {outcome: 0 for outcome in Outcome}
    for result in results:
        counts[result.outcome] += 1

    sol_spent = 0.0
    tokens_burned = 0.0
    for result in results:
        for leg in result.legs:
            if leg.burned:
                sol_spent += leg.sol_spent
                tokens_burned += leg.tokens_burned

    return {
        "total": len(results),
        "succeeded": counts[Outcome.SUCCESS],
        "partial": counts[Outcome.PARTIAL],
        "skipped": counts[Outcome.SKIPPED],
        "failed": counts[Outcome.FAILED],
        "busy": counts[Outcome.BUSY],
        "deferred": counts[Outcome.DEFERRED],
        "sol_spent": round(sol_spent, 9),
        "tokens_burned": tokens_burned,
    }
