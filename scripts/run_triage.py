#!/usr/bin/env python3
"""CLI entry point for triaging the open issue backlog."""

from __future__ import annotations

import argparse
import sys
import time

from dotenv import load_dotenv
load_dotenv()

from backlog_triage.aggregate import aggregate, print_summary, write_report
from backlog_triage.backlog.github import load_github_issues
from backlog_triage.config import RunMode, TriageConfig, load_config
from backlog_triage.errors import TrackerError
from backlog_triage.logging.logger import TriageLogger
from backlog_triage.orchestrator import run_pipeline


def _apply_overrides(config: TriageConfig, args: argparse.Namespace) -> TriageConfig:
    update = {}
    if args.output:
        update["output"] = args.output
    if args.limit is not None:
        update["limit"] = args.limit
    if args.verbose:
        update["verbose"] = True
    if args.concurrency is not None:
        update["concurrency"] = args.concurrency
    if args.mode:
        update["mode"] = RunMode(args.mode)
    if args.model:
        update["agent"] = config.agent.model_copy(update={"model": args.model})
    if args.repo:
        update["tracker"] = config.tracker.model_copy(update={"repo": args.repo})
    # Re-validate so overrides go through the same checks as the YAML.
    return TriageConfig(**{**config.model_dump(), **update})


def main() -> None:
    parser = argparse.ArgumentParser(description="Triage open issues with an external agent")
    parser.add_argument("--config", help="Path to triage YAML config")
    parser.add_argument("--output", help="Output JSON file path")
    parser.add_argument("--limit", type=int, help="Max number of issues to process")
    parser.add_argument("--verbose", action="store_true", help="Print detailed progress")
    parser.add_argument("--repo", help="GitHub repo (owner/name)")
    parser.add_argument("--model", help="Model for the agent CLI")
    parser.add_argument("--concurrency", type=int, help="Number of parallel agents")
    parser.add_argument("--mode", choices=[m.value for m in RunMode],
                        help="cli: spawn agents; agent: write prompts only")
    args = parser.parse_args()

    config = load_config(args.config) if args.config else TriageConfig()
    config = _apply_overrides(config, args)
    logger = TriageLogger(config.run_id, config.resolve(config.log_dir))

    print("Issue Triage")
    print("===================================")
    print(f"  Mode: {config.mode.value} | Model: {config.agent.model} | "
          f"Concurrency: {config.concurrency}")

    start = time.perf_counter()
    try:
        items = load_github_issues(config)
    except TrackerError as e:
        print(f"Fatal error: {e}")
        sys.exit(1)
    fetch_seconds = time.perf_counter() - start
    logger.log_run_start(len(items), config.model_dump(mode="json"))

    run = run_pipeline(items, config, logger=logger)
    report = aggregate(
        items, config,
        fetch_seconds=fetch_seconds,
        prompt_seconds=run.prompt_seconds,
        logger=logger,
    )

    if report is None:
        print("  No results yet. Run agents to triage each issue.")
        print(f"\n  Agent prompts are in: {config.prompts_dir}/")
        print(f"  Agents should write results to: {config.results_dir}/")
        logger.log_run_end({"found": 0, "total": len(items)})
        return

    report = report.with_run_timing(time.perf_counter() - start)
    output = write_report(report, config.resolve(config.output))
    print_summary(report)
    print(f"  Results written to {output}")
    logger.log_run_end({
        "found": report.summary.total_issues,
        "total": len(items),
        "failed": [j.item.number for j in run.failed],
    })


if __name__ == "__main__":
    main()
