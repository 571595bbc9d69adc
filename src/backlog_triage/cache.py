"""Filesystem-backed store of per-item triage results.

One JSON file per item id under the results directory. Readers see a
file either complete or not at all: writes go to a temporary sibling and
are renamed into place.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import ValidationError

from backlog_triage.results import TaskResult

if TYPE_CHECKING:
    from backlog_triage.logging.logger import TriageLogger


class TaskCache:
    """Maps backlog item numbers to their persisted TaskResult."""

    def __init__(self, results_dir: str | Path, logger: TriageLogger | None = None):
        self.results_dir = Path(results_dir)
        self.logger = logger

    def path_for(self, number: int) -> Path:
        return self.results_dir / f"issue-{number}.json"

    def exists(self, number: int) -> bool:
        return self.path_for(number).is_file()

    def load(self, number: int) -> TaskResult | None:
        """Return the cached result, or None if absent or unusable.

        A corrupt entry (bad JSON, schema mismatch, wrong number) is
        reported as a warning and treated exactly like a missing one.
        """
        path = self.path_for(number)
        if not path.is_file():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            result = TaskResult.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            self._warn(number, f"Failed to parse result for #{number}: {_first_line(e)}")
            return None
        if result.number != number:
            self._warn(number, f"Result file for #{number} describes #{result.number}")
            return None
        return result

    def store(self, result: TaskResult) -> Path:
        self.results_dir.mkdir(parents=True, exist_ok=True)
        path = self.path_for(result.number)
        payload = json.dumps(result.to_json_dict(), indent=2)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=self.results_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return path

    def _warn(self, number: int, message: str) -> None:
        print(f"  Warning: {message}")
        if self.logger:
            self.logger.log_cache_warning(number, message)


def _first_line(error: Exception) -> str:
    text = str(error)
    return text.splitlines()[0] if text else type(error).__name__
