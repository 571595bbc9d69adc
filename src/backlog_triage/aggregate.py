"""Rebuild the consolidated triage report from the task cache.

The report is always recomputed from scratch from every cached result;
no counters are stored between runs.
"""

from __future__ import annotations

import json
import time
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import Field

from backlog_triage.backlog.base import BacklogItem
from backlog_triage.cache import TaskCache
from backlog_triage.config import TriageConfig
from backlog_triage.links import build_share_link
from backlog_triage.results import (
    CamelModel,
    Category,
    ReproStatus,
    TaskResult,
    TriageAction,
    VerificationStatus,
)

if TYPE_CHECKING:
    from backlog_triage.logging.logger import TriageLogger

REQUEST_REPRO_BODY = (
    "Thanks for filing this issue! Could you provide a minimal reproduction? "
    "You can use the [TypeSpec Playground](https://typespec.io/playground) to create one "
    "and share the link. This helps us investigate and fix the issue faster."
)
CLOSE_FIXED_COMMENT = (
    "This issue appears to be fixed in the latest version of the compiler. "
    "Please reopen if you can still reproduce it."
)


class Summary(CamelModel):
    total_issues: int = 0
    bugs: int = 0
    feature_requests: int = 0
    docs_bugs: int = 0
    unknown: int = 0
    with_repro: int = 0
    without_repro: int = 0
    generated_repro: int = 0
    unable_to_repro: int = 0
    not_applicable: int = 0
    still_reproduces: int = 0
    fixed: int = 0
    compile_error: int = 0
    not_verified: int = 0


class Timing(CamelModel):
    total_seconds: float = 0.0
    fetch_seconds: float = 0.0
    prompt_seconds: float = 0.0
    aggregate_seconds: float = 0.0
    agent_cumulative_seconds: float = 0.0
    agent_avg_seconds: float = 0.0
    agent_min_seconds: float = 0.0
    agent_max_seconds: float = 0.0
    agent_reported: int = 0


class TokenTotals(CamelModel):
    total_input: int = 0
    total_output: int = 0


class AggregateReport(CamelModel):
    generated_at: str
    compiler_version: str
    model: str
    timing: Timing
    token_usage: TokenTotals
    summary: Summary
    issues: list[TaskResult] = Field(default_factory=list)
    untriaged: list[int] = Field(default_factory=list)

    def with_run_timing(self, total_seconds: float) -> AggregateReport:
        timing = self.timing.model_copy(update={"total_seconds": round(total_seconds, 1)})
        return self.model_copy(update={"timing": timing})

    def to_json_dict(self, descending: bool = True) -> dict[str, Any]:
        """Render the report, ordering issues by number."""
        data = super().to_json_dict()
        data["issues"] = sorted(data["issues"], key=lambda i: i["number"], reverse=descending)
        return data


def build_actions(result: TaskResult, repo: str) -> list[TriageAction]:
    """Derive suggested follow-up commands from a triage result."""
    actions: list[TriageAction] = []
    number = result.number

    area = result.suggested_area
    if area and area not in result.labels:
        remove_needs_area = " --remove-label needs-area" if "needs-area" in result.labels else ""
        actions.append(TriageAction(
            label=f"Add {area}",
            icon="🏷️",
            command=f'gh issue edit {number} --add-label "{area}"{remove_needs_area} --repo {repo}',
            type="area",
        ))

    if result.repro_status == ReproStatus.MISSING and result.category == Category.BUG:
        actions.append(TriageAction(
            label="Request repro",
            icon="💬",
            command=f'gh issue comment {number} --repo {repo} --body "{REQUEST_REPRO_BODY}"',
            type="comment",
        ))

    if result.verification == VerificationStatus.FIXED:
        actions.append(TriageAction(
            label="Close as fixed",
            icon="✅",
            command=f'gh issue close {number} --repo {repo} --comment "{CLOSE_FIXED_COMMENT}"',
            type="close",
        ))

    if result.repro_status == ReproStatus.GENERATED and result.repro_code:
        if result.playground_link:
            body = (
                "I was able to reproduce this issue. Here is a minimal reproduction:\n\n"
                f"[Open in Playground]({result.playground_link})"
            )
        else:
            body = (
                "I was able to reproduce this issue with the following code:\n\n"
                f"```typespec\n{result.repro_code}\n```"
            )
        actions.append(TriageAction(
            label="Share repro",
            icon="📋",
            command=f"gh issue comment {number} --repo {repo} --body {json.dumps(body)}",
            type="comment",
        ))

    return actions


def enrich_result(result: TaskResult, repo: str) -> TaskResult:
    """Fill in the share link (if missing) and the suggested actions."""
    if result.repro_code and not result.playground_link:
        link = build_share_link(result.repro_code, result.emitters)
        result = result.model_copy(update={"playground_link": link})
    return result.model_copy(update={"actions": build_actions(result, repo)})


def summarize(results: list[TaskResult]) -> Summary:
    def count(pred) -> int:
        return sum(1 for r in results if pred(r))

    return Summary(
        total_issues=len(results),
        bugs=count(lambda r: r.category == Category.BUG),
        feature_requests=count(lambda r: r.category == Category.FEATURE_REQUEST),
        docs_bugs=count(lambda r: r.category == Category.DOCS_BUG),
        unknown=count(lambda r: r.category == Category.UNKNOWN),
        with_repro=count(lambda r: r.repro_status == ReproStatus.HAS_REPRO),
        without_repro=count(lambda r: r.repro_status == ReproStatus.MISSING),
        generated_repro=count(lambda r: r.repro_status == ReproStatus.GENERATED),
        unable_to_repro=count(lambda r: r.repro_status == ReproStatus.UNABLE_TO_REPRO),
        not_applicable=count(lambda r: r.repro_status == ReproStatus.NOT_APPLICABLE),
        still_reproduces=count(lambda r: r.verification == VerificationStatus.STILL_REPRODUCES),
        fixed=count(lambda r: r.verification == VerificationStatus.FIXED),
        compile_error=count(lambda r: r.verification == VerificationStatus.COMPILE_ERROR),
        not_verified=count(lambda r: r.verification == VerificationStatus.NOT_VERIFIED),
    )


def detect_model(results: list[TaskResult], default: str) -> str:
    """Most common reported model; ties go to the first one seen."""
    counts = Counter(r.model for r in results if r.model)
    if not counts:
        return default
    return max(counts, key=counts.__getitem__)


def agent_timing(results: list[TaskResult]) -> dict[str, float]:
    durations = [
        r.triage_duration_seconds for r in results
        if r.triage_duration_seconds is not None and r.triage_duration_seconds > 0
    ]
    if not durations:
        return {"agent_reported": 0}
    cumulative = sum(durations)
    return {
        "agent_cumulative_seconds": round(cumulative, 1),
        "agent_avg_seconds": round(cumulative / len(durations), 1),
        "agent_min_seconds": round(min(durations), 1),
        "agent_max_seconds": round(max(durations), 1),
        "agent_reported": len(durations),
    }


def aggregate(
    items: list[BacklogItem],
    config: TriageConfig,
    cache: TaskCache | None = None,
    fetch_seconds: float = 0.0,
    prompt_seconds: float = 0.0,
    logger: TriageLogger | None = None,
) -> AggregateReport | None:
    """Build the report for ``items`` from whatever the cache holds.

    Returns None when no item has a usable result yet. Items without a
    result are listed as untriaged.
    """
    start = time.perf_counter()
    cache = cache or TaskCache(config.results_dir, logger=logger)
    repo = config.tracker.repo

    print("\nAggregating agent results...")
    results: list[TaskResult] = []
    untriaged: list[int] = []
    for item in items:
        result = cache.load(item.number)
        if result is None:
            untriaged.append(item.number)
            continue
        results.append(enrich_result(result, repo))

    if logger:
        logger.log_aggregate(len(results), len(items))
    if not results:
        return None
    print(f"  Found {len(results)}/{len(items)} results.")

    timing = Timing(
        fetch_seconds=round(fetch_seconds, 1),
        prompt_seconds=round(prompt_seconds, 1),
        aggregate_seconds=round(time.perf_counter() - start, 1),
        **agent_timing(results),
    )
    return AggregateReport(
        generated_at=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        compiler_version=config.compiler_version,
        model=detect_model(results, config.agent.model),
        timing=timing,
        token_usage=TokenTotals(
            total_input=sum(r.token_usage.input for r in results if r.token_usage),
            total_output=sum(r.token_usage.output for r in results if r.token_usage),
        ),
        summary=summarize(results),
        issues=results,
        untriaged=untriaged,
    )


def write_report(report: AggregateReport, path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report.to_json_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    return path


def print_summary(report: AggregateReport) -> None:
    s, timing, tokens = report.summary, report.timing, report.token_usage
    print("\n===================================")
    print("Triage complete.")
    print(f"  Total issues: {s.total_issues}")
    print(f"  Bugs: {s.bugs} | Feature requests: {s.feature_requests} | "
          f"Docs bugs: {s.docs_bugs} | Unknown: {s.unknown}")
    print(f"  With repro: {s.with_repro} | Generated: {s.generated_repro} | "
          f"Missing: {s.without_repro} | Unable: {s.unable_to_repro}")
    print(f"  Still reproduces: {s.still_reproduces} | Fixed: {s.fixed} | "
          f"Compile error: {s.compile_error} | Not verified: {s.not_verified}")
    if report.untriaged:
        print(f"  Untriaged: {', '.join(f'#{n}' for n in report.untriaged)}")
    print("\n  Timing:")
    print(f"    Fetch: {timing.fetch_seconds}s | Prompts: {timing.prompt_seconds}s | "
          f"Aggregate: {timing.aggregate_seconds}s | Total: {timing.total_seconds}s")
    if timing.agent_reported:
        print(f"    Agent: cumulative {timing.agent_cumulative_seconds}s | "
              f"avg {timing.agent_avg_seconds}s | min {timing.agent_min_seconds}s | "
              f"max {timing.agent_max_seconds}s "
              f"({timing.agent_reported}/{s.total_issues} reported)")
    if tokens.total_input or tokens.total_output:
        print("\n  Token usage:")
        print(f"    Input: {tokens.total_input:,} | Output: {tokens.total_output:,} | "
              f"Total: {tokens.total_input + tokens.total_output:,}")
