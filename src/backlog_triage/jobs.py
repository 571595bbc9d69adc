"""Per-item execution record for one orchestrator run."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

from backlog_triage.backlog.base import BacklogItem
from backlog_triage.results import TaskResult, TokenUsage


class JobState(str, Enum):
    PENDING = "pending"
    CACHED = "cached"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed-out"


@dataclass
class TriageJob:
    """Tracks one item from dispatch to terminal state. Not persisted."""
    item: BacklogItem
    state: JobState = JobState.PENDING
    started_at: float = field(default_factory=time.time)
    finished_at: float | None = None
    result: TaskResult | None = None
    token_usage: TokenUsage | None = None
    error: str | None = None
    spawned: bool = False

    def finish(self, state: JobState) -> TriageJob:
        self.state = state
        self.finished_at = time.time()
        return self

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.time()
        return end - self.started_at

    @property
    def failed(self) -> bool:
        return self.state in (JobState.FAILED, JobState.TIMED_OUT)
