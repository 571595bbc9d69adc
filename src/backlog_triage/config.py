"""Configuration data models for the triage pipeline."""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_MODEL = "claude-sonnet-4"
DEFAULT_CONCURRENCY = 1
DEFAULT_REPO = "microsoft/typespec"

# {prompt_file}, {model} and {project_root} are substituted per item.
DEFAULT_AGENT_COMMAND = [
    "copilot",
    "-p",
    "Read the prompt file at {prompt_file} and follow the instructions within.",
    "--model",
    "{model}",
    "--allow-all-tools",
    "--allow-all-paths",
    "--no-ask-user",
    "--add-dir",
    "{project_root}",
]

DEFAULT_EXCLUDED_LABELS = [
    "emitter:client:python",
    "emitter:client:csharp",
    "emitter:client:java",
    "emitter:client:js",
    "feature",
    "emitter-framework",
]

DEFAULT_KNOWN_EMITTERS = [
    "@typespec/openapi3",
    "@typespec/openapi",
    "@typespec/json-schema",
    "@typespec/protobuf",
    "@typespec/xml",
    "@typespec/http-server-csharp",
    "@typespec/http-server-js",
    "@typespec/http-client-csharp",
    "@typespec/http-client-java",
    "@typespec/http-client-js",
    "@typespec/http-client-python",
]


class RunMode(str, Enum):
    CLI = "cli"      # spawn one agent process per item
    AGENT = "agent"  # write briefs only, agents are driven interactively


class AgentConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    model: str = DEFAULT_MODEL
    command: list[str] = Field(default_factory=lambda: list(DEFAULT_AGENT_COMMAND))
    timeout_seconds: float = 600


class SandboxConfig(BaseModel):
    """Settings for one ephemeral compile of a candidate snippet."""
    model_config = ConfigDict(frozen=True)

    baseline_dependency: str = "@typespec/compiler"
    install_command: list[str] = Field(
        default_factory=lambda: ["npm", "install", "--no-audit", "--no-fund"],
    )
    install_timeout_seconds: float = 120
    # Relative paths containing a separator resolve inside the sandbox.
    compiler_command: list[str] = Field(
        default_factory=lambda: ["node_modules/.bin/tsp", "compile"],
    )
    compile_timeout_seconds: float = 30
    source_filename: str = "main.tsp"
    emitter_config_filename: str = "tspconfig.yaml"
    emitter_output_dir: str = "tsp-output"
    max_output_file_chars: int = 50_000
    temp_root: str | None = None


class TrackerConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo: str = DEFAULT_REPO
    fetch_limit: int = 500
    excluded_labels: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUDED_LABELS))


class TriageConfig(BaseModel):
    """Configuration for a full triage run, built once and shared read-only."""
    model_config = ConfigDict(frozen=True)

    run_id: str = "triage"
    project_root: str = "."
    work_dir: str = "temp"
    output: str = "triage-results.json"
    log_dir: str = "logs"
    limit: int | None = None
    concurrency: int = DEFAULT_CONCURRENCY
    mode: RunMode = RunMode.CLI
    verbose: bool = False
    compiler_version: str = "latest"
    instructions_file: str | None = None
    verify_script: str = "scripts/verify_repro.py"
    decode_script: str = "scripts/decode_link.py"
    known_emitters: list[str] = Field(default_factory=lambda: list(DEFAULT_KNOWN_EMITTERS))
    agent: AgentConfig = Field(default_factory=AgentConfig)
    sandbox: SandboxConfig = Field(default_factory=SandboxConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)

    @field_validator("concurrency")
    @classmethod
    def _check_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("concurrency must be >= 1")
        return value

    @property
    def root_path(self) -> Path:
        return Path(self.project_root).resolve()

    def resolve(self, path: str) -> Path:
        """Resolve a configured path against the project root."""
        p = Path(path)
        return p if p.is_absolute() else self.root_path / p

    @property
    def results_dir(self) -> Path:
        return self.resolve(self.work_dir) / "results"

    @property
    def prompts_dir(self) -> Path:
        return self.resolve(self.work_dir) / "prompts"


def load_config(path: str | Path) -> TriageConfig:
    """Load triage config from YAML file."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    return TriageConfig(**data)
