"""Render the per-issue task brief handed to the external agent."""

from __future__ import annotations

import json
from pathlib import Path

from backlog_triage.backlog.base import BacklogItem
from backlog_triage.config import TriageConfig

DEFAULT_INSTRUCTIONS = """You are triaging GitHub issue #{{ISSUE_NUMBER}} ({{ISSUE_URL}}).
Analyze the issue above and produce a JSON triage result.

## 1. Classify the issue
- "bug" label -> category = "bug"; "feature-request" label -> "feature-request"
- Documentation mistakes -> "docs-bug"
- Otherwise decide from the content; if unclear -> "unknown"

## 2. Extract a reproduction (bugs only)
- Playground links: decode with `python {{DECODE_SCRIPT}} "<url>"`
- Fenced ```typespec / ```tsp code blocks, or unlabelled blocks that clearly contain TypeSpec
- Prefer playground links over code blocks.
- Known emitters: {{KNOWN_EMITTERS}}

## 3. Verify the reproduction
Save the code to a file and run:

    python {{VERIFY_SCRIPT}} <file> [--emitter <emitter-name>]

The script prints `{ "success": bool, "diagnostics": string, "exitCode": int, "emitterOutput": object|null }`.
- success=true -> verification = "fixed"
- success=false and the errors match the report -> "still-reproduces"
- success=false with unrelated errors -> "compile-error"

## 4. No reproduction?
Try writing a minimal one and verify it. If that works: reproSource = reproStatus = "generated".
Otherwise reproStatus = "unable-to-repro". Non-bugs use reproStatus = "not-applicable".

## 5. Output
Write the result to: {{RESULTS_DIR}}/issue-{{ISSUE_NUMBER}}.json

```json
{
  "number": {{ISSUE_NUMBER}},
  "title": "{{ISSUE_TITLE}}",
  "url": "{{ISSUE_URL}}",
  "author": "{{ISSUE_AUTHOR}}",
  "createdAt": "{{ISSUE_CREATED_AT}}",
  "labels": {{ISSUE_LABELS}},
  "category": "bug|feature-request|docs-bug|unknown",
  "reproStatus": "has-repro|missing|generated|unable-to-repro|not-applicable",
  "reproSource": "code-block|playground-link|generated|null",
  "reproCode": "the TypeSpec code or null",
  "reproDescription": "one sentence or null",
  "emitter": "emitter name or null",
  "compilerOptions": {"emit": ["..."]} or null,
  "verification": "still-reproduces|fixed|compile-error|not-verified",
  "compilerOutput": "compiler output or null",
  "suggestedAction": "short recommendation",
  "suggestedArea": "area label or null",
  "tokenUsage": {"input": 0, "output": 0},
  "triageDurationSeconds": 0,
  "model": "model name"
}
```
"""


def render_instructions(template: str, item: BacklogItem, config: TriageConfig) -> str:
    replacements = {
        "ISSUE_NUMBER": str(item.number),
        "ISSUE_TITLE": item.title.replace('"', '\\"'),
        "ISSUE_URL": item.url,
        "ISSUE_AUTHOR": item.author,
        "ISSUE_CREATED_AT": item.created_at,
        "ISSUE_LABELS": json.dumps(list(item.labels)),
        "VERIFY_SCRIPT": str(config.resolve(config.verify_script)),
        "DECODE_SCRIPT": str(config.resolve(config.decode_script)),
        "RESULTS_DIR": str(config.results_dir),
        "KNOWN_EMITTERS": ", ".join(config.known_emitters),
    }
    for key, value in replacements.items():
        template = template.replace("{{" + key + "}}", value)
    return template


def build_brief(item: BacklogItem, config: TriageConfig) -> str:
    """Return the full markdown brief for ``item``. Pure apart from reading the template."""
    if config.instructions_file:
        template = config.resolve(config.instructions_file).read_text(encoding="utf-8")
    else:
        template = DEFAULT_INSTRUCTIONS

    comments = "\n\n".join(
        f"--- Comment {i} ---\n{body}" for i, body in enumerate(item.comments, start=1)
    )
    return (
        f"## Issue Details\n"
        f"- **Number**: #{item.number}\n"
        f"- **Title**: {item.title}\n"
        f"- **URL**: {item.url}\n"
        f"- **Author**: {item.author}\n"
        f"- **Created**: {item.created_at}\n"
        f"- **Labels**: {', '.join(item.labels) or '(none)'}\n"
        f"\n## Issue Body\n{item.body or '(empty)'}\n"
        f"\n## Comments\n{comments or '(no comments)'}\n"
        f"\n---\n\n# Instructions\n\n"
        f"{render_instructions(template, item, config)}"
    )


def brief_path(item: BacklogItem, config: TriageConfig) -> Path:
    return config.prompts_dir / f"issue-{item.number}.md"


def write_brief(item: BacklogItem, config: TriageConfig) -> Path:
    config.prompts_dir.mkdir(parents=True, exist_ok=True)
    path = brief_path(item, config)
    path.write_text(build_brief(item, config), encoding="utf-8")
    return path
