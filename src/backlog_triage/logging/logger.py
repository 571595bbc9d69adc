"""Structured JSON triage run logger."""

from __future__ import annotations

import json
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from backlog_triage.jobs import TriageJob
    from backlog_triage.verification.base import VerificationVerdict


class TriageLogger:
    """Logs all pipeline events as structured JSON lines."""

    def __init__(self, run_id: str, output_dir: str | Path = "logs"):
        self.run_id = run_id
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.log_path = self.output_dir / f"{run_id}.jsonl"
        self._events: list[dict[str, Any]] = []
        # Jobs in one batch log from worker threads.
        self._lock = threading.Lock()

    @property
    def events(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._events)

    def _write_event(self, event: dict[str, Any]) -> None:
        event["run_id"] = self.run_id
        event["timestamp"] = time.time()
        with self._lock:
            self._events.append(event)
            with open(self.log_path, "a") as f:
                f.write(json.dumps(event, default=str) + "\n")

    def log_run_start(self, item_count: int, config: dict[str, Any]) -> None:
        self._write_event({
            "event": "run_start",
            "item_count": item_count,
            "config": config,
        })

    def log_job_start(self, number: int, index: int, total: int) -> None:
        self._write_event({
            "event": "job_start",
            "number": number,
            "index": index,
            "total": total,
        })

    def log_job_end(self, job: TriageJob) -> None:
        self._write_event({
            "event": "job_end",
            "number": job.item.number,
            "state": job.state.value,
            "duration_seconds": round(job.duration_seconds, 3),
            "error": job.error,
            "token_usage": job.token_usage.to_json_dict() if job.token_usage else None,
        })

    def log_cache_warning(self, number: int, message: str) -> None:
        self._write_event({
            "event": "cache_warning",
            "number": number,
            "message": message,
        })

    def log_verification(self, verdict: VerificationVerdict, emitter: str | None) -> None:
        self._write_event({
            "event": "verification",
            "success": verdict.success,
            "exit_code": verdict.exit_code,
            "emitter": emitter,
            "diagnostics": verdict.diagnostics[:1000],
        })

    def log_aggregate(self, found: int, total: int) -> None:
        self._write_event({
            "event": "aggregate",
            "found": found,
            "total": total,
        })

    def log_run_end(self, summary: dict[str, Any]) -> None:
        self._write_event({
            "event": "run_end",
            "summary": summary,
        })
