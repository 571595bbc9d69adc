"""Drive one external agent process per backlog item."""

from __future__ import annotations

import re
from pathlib import Path
from typing import TYPE_CHECKING

from backlog_triage.backlog.base import BacklogItem
from backlog_triage.brief import brief_path, write_brief
from backlog_triage.cache import TaskCache
from backlog_triage.config import TriageConfig
from backlog_triage.errors import TriageInputError
from backlog_triage.jobs import JobState, TriageJob
from backlog_triage.process import run_command
from backlog_triage.results import TokenUsage

if TYPE_CHECKING:
    from backlog_triage.logging.logger import TriageLogger

NO_RESULT_ERROR = "no result produced"

_INPUT_PATTERNS = [
    re.compile(r"(\d[\d,]*)\s*input\s*tokens?", re.IGNORECASE),
    re.compile(r"input[_\s]*tokens?\s*[:=]\s*(\d[\d,]*)", re.IGNORECASE),
]
_OUTPUT_PATTERNS = [
    re.compile(r"(\d[\d,]*)\s*output\s*tokens?", re.IGNORECASE),
    re.compile(r"output[_\s]*tokens?\s*[:=]\s*(\d[\d,]*)", re.IGNORECASE),
]
_TOTAL_PATTERN = re.compile(r"total[_\s]*tokens?\s*[:=]\s*(\d[\d,]*)", re.IGNORECASE)


def _first_count(patterns: list[re.Pattern[str]], text: str) -> int | None:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return int(match.group(1).replace(",", ""))
    return None


def parse_token_usage(output: str) -> TokenUsage | None:
    """Best-effort token usage from free-form agent output.

    Understands "1,234 input tokens", "input_tokens: 1234" and, as a
    fallback, "total tokens: N" (reported as input). Returns None when
    nothing matches.
    """
    input_count = _first_count(_INPUT_PATTERNS, output)
    output_count = _first_count(_OUTPUT_PATTERNS, output)
    if input_count is not None or output_count is not None:
        return TokenUsage(input=input_count or 0, output=output_count or 0)

    match = _TOTAL_PATTERN.search(output)
    if match:
        return TokenUsage(input=int(match.group(1).replace(",", "")), output=0)
    return None


class AgentRunner:
    """Produces exactly one TriageJob (and at most one cached result) per item."""

    def __init__(
        self,
        config: TriageConfig,
        cache: TaskCache | None = None,
        logger: TriageLogger | None = None,
    ):
        self.config = config
        self.cache = cache or TaskCache(config.results_dir, logger=logger)
        self.logger = logger

    def build_command(self, prompt_file: Path) -> list[str]:
        values = {
            "prompt_file": str(prompt_file),
            "model": self.config.agent.model,
            "project_root": str(self.config.root_path),
        }
        command = []
        for part in self.config.agent.command:
            for key, value in values.items():
                part = part.replace("{" + key + "}", value)
            command.append(part)
        return command

    def run(self, item: BacklogItem) -> TriageJob:
        """Triage ``item``, reusing a cached result when one is usable."""
        job = TriageJob(item=item)
        tag = f"#{item.number}"

        existing = self.cache.load(item.number)
        if existing is not None:
            print(f"  {tag}: Using existing result")
            job.result = existing
            job.token_usage = existing.token_usage
            return job.finish(JobState.CACHED)

        try:
            item.validate()
        except TriageInputError as e:
            job.error = str(e)
            print(f"  {tag}: Error: {job.error}")
            return job.finish(JobState.FAILED)

        # Reuse the brief the orchestrator wrote for this run.
        prompt_file = brief_path(item, self.config)
        if not prompt_file.is_file():
            prompt_file = write_brief(item, self.config)
        command = self.build_command(prompt_file)
        timeout = self.config.agent.timeout_seconds

        print(f"  {tag}: Starting agent (model: {self.config.agent.model})...")
        proc = run_command(command, cwd=self.config.root_path, timeout=timeout, merge_stderr=True)
        job.spawned = True

        errors: list[str] = []
        if proc.timed_out:
            errors.append(f"Agent timed out after {timeout}s")
        elif proc.returncode != 0:
            errors.append(f"Agent exited with code {proc.returncode}")

        usage = parse_token_usage(proc.output)
        if usage:
            job.token_usage = usage
            print(f"  {tag}: Tokens: input {usage.input:,}, output {usage.output:,}")

        # A result written before a kill is trusted as long as it validates.
        result = self.cache.load(item.number)
        if result is not None:
            if usage and (result.token_usage is None or result.token_usage.input == 0):
                result = result.model_copy(update={"token_usage": usage})
                self.cache.store(result)
            job.result = result
            job.token_usage = result.token_usage
            job.error = "; ".join(errors) or None
            job.finish(JobState.SUCCEEDED)
            print(f"  {tag}: Done ({job.duration_seconds:.0f}s): {result.category.value}, "
                  f"repro: {result.repro_status.value}, verification: {result.verification.value}")
            return job

        errors.append(NO_RESULT_ERROR)
        job.error = "; ".join(errors)
        print(f"  {tag}: Error: {job.error}")
        return job.finish(JobState.TIMED_OUT if proc.timed_out else JobState.FAILED)
