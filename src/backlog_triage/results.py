"""Per-item triage result schema, shared by the agent runner and aggregator.

Results are written by the external agent as camelCase JSON; the models
accept either the camelCase alias or the Python field name.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Category(str, Enum):
    BUG = "bug"
    FEATURE_REQUEST = "feature-request"
    DOCS_BUG = "docs-bug"
    UNKNOWN = "unknown"


class ReproStatus(str, Enum):
    HAS_REPRO = "has-repro"
    MISSING = "missing"
    GENERATED = "generated"
    UNABLE_TO_REPRO = "unable-to-repro"
    NOT_APPLICABLE = "not-applicable"


class ReproSource(str, Enum):
    CODE_BLOCK = "code-block"
    PLAYGROUND_LINK = "playground-link"
    GENERATED = "generated"


class VerificationStatus(str, Enum):
    STILL_REPRODUCES = "still-reproduces"
    FIXED = "fixed"
    COMPILE_ERROR = "compile-error"
    NOT_VERIFIED = "not-verified"


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class TokenUsage(CamelModel):
    input: int = 0
    output: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output


class TriageAction(CamelModel):
    """A follow-up a maintainer can run: a labelled shell command."""
    label: str
    icon: str
    command: str
    type: str  # "area", "comment" or "close"


class TaskResult(CamelModel):
    """Outcome of triaging one backlog item."""
    model_config = ConfigDict(extra="allow")

    number: int
    title: str = ""
    url: str = ""
    author: str = ""
    created_at: str = ""
    labels: list[str] = Field(default_factory=list)
    category: Category
    repro_status: ReproStatus
    repro_source: ReproSource | None = None
    repro_code: str | None = None
    repro_description: str | None = None
    emitter: str | None = None
    compiler_options: dict[str, Any] | None = None
    verification: VerificationStatus = VerificationStatus.NOT_VERIFIED
    compiler_output: str | None = None
    suggested_action: str | None = None
    suggested_area: str | None = None
    playground_link: str | None = None
    token_usage: TokenUsage | None = None
    triage_duration_seconds: float | None = None
    model: str | None = None
    actions: list[TriageAction] | None = None

    @property
    def emitters(self) -> list[str]:
        """Emitters the repro targets: ``compilerOptions.emit`` or ``emitter``."""
        emit = (self.compiler_options or {}).get("emit")
        if isinstance(emit, list) and emit:
            return [str(e) for e in emit]
        return [self.emitter] if self.emitter else []
