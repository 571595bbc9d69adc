"""Tests for agent brief rendering."""

import tempfile
from pathlib import Path

from backlog_triage.backlog.base import BacklogItem
from backlog_triage.brief import build_brief, write_brief
from backlog_triage.config import TriageConfig


def _make_item(**kwargs) -> BacklogItem:
    defaults = {
        "number": 321,
        "title": 'Crash with "quoted" name',
        "url": "https://github.com/octo/repo/issues/321",
        "author": "reporter",
        "labels": ("bug",),
        "body": "Steps:\n```tsp\nmodel Foo {}\n```",
        "comments": ("first", "second"),
    }
    defaults.update(kwargs)
    return BacklogItem(**defaults)


def test_brief_contains_issue_and_instructions():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = TriageConfig(project_root=tmpdir)
        brief = build_brief(_make_item(), config)

    assert "- **Number**: #321" in brief
    assert "- **Labels**: bug" in brief
    assert "model Foo {}" in brief
    assert "--- Comment 1 ---\nfirst" in brief
    assert "--- Comment 2 ---\nsecond" in brief
    assert f"{config.results_dir}/issue-321.json" in brief
    assert str(config.resolve(config.verify_script)) in brief
    assert '"title": "Crash with \\"quoted\\" name"' in brief
    assert '"labels": ["bug"]' in brief
    assert "{{" not in brief


def test_brief_for_bare_item():
    config = TriageConfig()
    brief = build_brief(BacklogItem(number=5, title="Empty"), config)
    assert "(empty)" in brief
    assert "(no comments)" in brief
    assert "- **Labels**: (none)" in brief


def test_custom_instructions_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        Path(tmpdir, "triage.md").write_text("Triage {{ISSUE_NUMBER}} into {{RESULTS_DIR}}")
        config = TriageConfig(project_root=tmpdir, instructions_file="triage.md")
        brief = build_brief(_make_item(), config)
    assert brief.endswith(f"Triage 321 into {config.results_dir}")


def test_write_brief():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = TriageConfig(project_root=tmpdir)
        path = write_brief(_make_item(), config)
        assert path == config.prompts_dir / "issue-321.md"
        assert path.read_text().startswith("## Issue Details")
