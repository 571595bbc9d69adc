"""Bounded-concurrency dispatch of agent runs over the whole backlog."""

from __future__ import annotations

import asyncio
import shutil
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from backlog_triage.backlog.base import BacklogItem
from backlog_triage.brief import write_brief
from backlog_triage.config import RunMode, TriageConfig
from backlog_triage.jobs import JobState, TriageJob
from backlog_triage.runner import AgentRunner

if TYPE_CHECKING:
    from backlog_triage.logging.logger import TriageLogger


@dataclass
class PipelineRun:
    """Jobs of one orchestrator run, keyed by item number."""
    jobs: dict[int, TriageJob] = field(default_factory=dict)
    prompt_seconds: float = 0.0
    agent_seconds: float = 0.0

    def by_state(self, state: JobState) -> list[TriageJob]:
        return [j for j in self.jobs.values() if j.state == state]

    @property
    def failed(self) -> list[TriageJob]:
        return [j for j in self.jobs.values() if j.failed]


def prepare_workspace(config: TriageConfig) -> None:
    """Clear the prompts directory; results persist across runs."""
    if config.prompts_dir.exists():
        shutil.rmtree(config.prompts_dir)
    config.prompts_dir.mkdir(parents=True, exist_ok=True)
    config.results_dir.mkdir(parents=True, exist_ok=True)


def write_briefs(items: list[BacklogItem], config: TriageConfig) -> None:
    print("\nWriting agent prompts...")
    for item in items:
        path = write_brief(item, config)
        if config.verbose:
            print(f"  Written prompt for #{item.number}: {path}")
    print(f"  {len(items)} prompts written to {config.prompts_dir}/")


def _run_single(
    runner: AgentRunner,
    item: BacklogItem,
    index: int,
    total: int,
    logger: TriageLogger | None,
) -> TriageJob:
    """Run a single item (called from thread pool)."""
    print(f"\n[{index + 1}/{total}] Issue #{item.number}: {item.title}")
    if logger:
        logger.log_job_start(item.number, index + 1, total)
    job = runner.run(item)
    if logger:
        logger.log_job_end(job)
    return job


def _crashed_job(item: BacklogItem, error: BaseException) -> TriageJob:
    job = TriageJob(item=item, error=f"{type(error).__name__}: {error}")
    return job.finish(JobState.FAILED)


async def run_pipeline_async(
    items: list[BacklogItem],
    config: TriageConfig,
    runner: AgentRunner | None = None,
    logger: TriageLogger | None = None,
) -> PipelineRun:
    """Triage ``items`` in sequential batches of ``config.concurrency``.

    Batch K+1 starts only after every job in batch K has settled. A job
    that fails, times out or raises never affects its siblings.
    """
    runner = runner or AgentRunner(config, logger=logger)
    run = PipelineRun()

    prepare_workspace(config)
    prompt_start = time.perf_counter()
    write_briefs(items, config)
    run.prompt_seconds = time.perf_counter() - prompt_start

    if config.mode == RunMode.AGENT:
        print("\n  Agent prompts are ready. Spawn sub-agents for each issue:")
        print(f"  Prompts: {config.prompts_dir}/")
        print(f"  Results: {config.results_dir}/")
        return run

    limit = config.concurrency
    total = len(items)
    print(f"\nRunning agents (concurrency: {limit})...")
    agent_start = time.perf_counter()
    loop = asyncio.get_running_loop()

    with ThreadPoolExecutor(max_workers=limit) as executor:
        for start in range(0, total, limit):
            batch = items[start:start + limit]
            futures = [
                loop.run_in_executor(
                    executor, _run_single, runner, item, start + i, total, logger,
                )
                for i, item in enumerate(batch)
            ]
            outcomes = await asyncio.gather(*futures, return_exceptions=True)

            for item, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    print(f"  #{item.number}: EXCEPTION: {outcome}")
                    job = _crashed_job(item, outcome)
                    if logger:
                        logger.log_job_end(job)
                    run.jobs[item.number] = job
                else:
                    run.jobs[item.number] = outcome

    run.agent_seconds = time.perf_counter() - agent_start
    print(f"\nAll agents completed in {run.agent_seconds:.0f}s")
    return run


def run_pipeline(
    items: list[BacklogItem],
    config: TriageConfig,
    runner: AgentRunner | None = None,
    logger: TriageLogger | None = None,
) -> PipelineRun:
    """Synchronous wrapper around run_pipeline_async."""
    return asyncio.run(run_pipeline_async(items, config, runner=runner, logger=logger))
