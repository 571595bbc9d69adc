"""GitHub issue loader backed by the ``gh`` CLI."""

from __future__ import annotations

import json

from backlog_triage.config import TriageConfig
from backlog_triage.errors import TrackerError
from backlog_triage.process import run_command

from .base import BacklogItem

ISSUE_FIELDS = "number,title,url,author,labels,body,createdAt,comments"
TRIAGED_LABELS = ("bug", "feature-request", "feature")


def _gh_issue_list(repo: str, limit: int, label: str | None = None) -> list[dict]:
    cmd = [
        "gh", "issue", "list",
        "--repo", repo,
        "--state", "open",
        "--json", ISSUE_FIELDS,
        "--limit", str(limit),
    ]
    if label:
        cmd += ["--label", label]

    result = run_command(cmd, timeout=300)
    if not result.ok:
        raise TrackerError(f"gh issue list failed (exit {result.returncode}): {result.stderr.strip()}")
    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise TrackerError(f"gh issue list returned invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise TrackerError("gh issue list returned a non-list document")
    return data


def select_issues(
    bug_issues: list[BacklogItem],
    all_issues: list[BacklogItem],
    excluded_labels: list[str],
    limit: int | None = None,
) -> list[BacklogItem]:
    """Merge labelled bugs with unlabelled issues and drop excluded ones.

    Unlabelled means none of ``bug``, ``feature-request`` or ``feature``.
    """
    bug_numbers = {i.number for i in bug_issues}
    unlabeled = [
        issue for issue in all_issues
        if issue.number not in bug_numbers
        and not any(label in issue.labels for label in TRIAGED_LABELS)
    ]
    merged = bug_issues + unlabeled
    filtered = [
        issue for issue in merged
        if not any(exc in issue.labels for exc in excluded_labels)
    ]
    return filtered[:limit] if limit else filtered


def load_github_issues(config: TriageConfig) -> list[BacklogItem]:
    """Fetch the open backlog for ``config.tracker.repo``.

    Raises:
        TrackerError: if ``gh`` fails or its output can't be parsed.
    """
    print("Fetching issues...")
    tracker = config.tracker
    limit = config.limit or tracker.fetch_limit

    try:
        bug_issues = [BacklogItem.from_tracker(d) for d in _gh_issue_list(tracker.repo, limit, "bug")]
        all_issues = [BacklogItem.from_tracker(d) for d in _gh_issue_list(tracker.repo, limit)]
    except (KeyError, TypeError, ValueError) as e:
        raise TrackerError(f"Malformed issue record: {e}") from e

    selected = select_issues(bug_issues, all_issues, tracker.excluded_labels, config.limit)
    unlabeled_count = len([i for i in selected if i.number not in {b.number for b in bug_issues}])
    print(f"  Found {len(bug_issues)} bug issues, {unlabeled_count} unlabeled. "
          f"Processing: {len(selected)}")
    return selected
