"""Verdict returned by a sandboxed compile."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

INSTALL_FAILED_EXIT_CODE = -1
NO_DIAGNOSTICS = "(compiled successfully, no diagnostics)"


@dataclass(frozen=True)
class VerificationVerdict:
    """Result of compiling one snippet in an ephemeral sandbox."""
    success: bool
    diagnostics: str
    exit_code: int
    # None when no emitter was requested.
    emitter_output: dict[str, str] | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "diagnostics": self.diagnostics,
            "exitCode": self.exit_code,
            "emitterOutput": self.emitter_output,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)
