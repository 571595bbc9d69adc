"""Tests for the per-item agent runner."""

import json
import sys
import tempfile
from pathlib import Path

from backlog_triage.backlog.base import BacklogItem
from backlog_triage.config import AgentConfig, TriageConfig
from backlog_triage.jobs import JobState
from backlog_triage.results import Category, ReproStatus, TaskResult, TokenUsage
from backlog_triage.runner import NO_RESULT_ERROR, AgentRunner, parse_token_usage

FAKE_AGENT = str(Path(__file__).parent / "fake_agent.py")


def _make_config(tmpdir: str, behaviours: dict | None = None, timeout: float = 30) -> TriageConfig:
    command = [sys.executable, FAKE_AGENT, "{prompt_file}", "{project_root}", json.dumps(behaviours or {})]
    return TriageConfig(
        project_root=tmpdir,
        agent=AgentConfig(model="fake-model", command=command, timeout_seconds=timeout),
    )


def _make_item(number: int = 42, **kwargs) -> BacklogItem:
    defaults = {"number": number, "title": f"Issue {number}", "url": f"https://example.test/{number}"}
    defaults.update(kwargs)
    return BacklogItem(**defaults)


def _spawn_count(tmpdir: str) -> int:
    log = Path(tmpdir) / "spawned.log"
    return len(log.read_text().split()) if log.exists() else 0


def test_parse_token_usage_formats():
    assert parse_token_usage("Used 1,234 input tokens and 567 output tokens") == TokenUsage(input=1234, output=567)
    assert parse_token_usage("input_tokens: 99\noutput_tokens=3") == TokenUsage(input=99, output=3)
    assert parse_token_usage("Input tokens: 10") == TokenUsage(input=10, output=0)
    assert parse_token_usage("Total tokens: 8,000") == TokenUsage(input=8000, output=0)


def test_parse_token_usage_no_match():
    assert parse_token_usage("") is None
    assert parse_token_usage("all done, no stats") is None


def test_build_command_substitutes_placeholders():
    with tempfile.TemporaryDirectory() as tmpdir:
        runner = AgentRunner(TriageConfig(project_root=tmpdir))
        cmd = runner.build_command(Path("/p/issue-1.md"))
        assert cmd[0] == "copilot"
        assert "Read the prompt file at /p/issue-1.md and follow the instructions within." in cmd
        assert cmd[cmd.index("--model") + 1] == runner.config.agent.model
        assert cmd[-1] == str(Path(tmpdir).resolve())
        assert "--allow-all-tools" in cmd


def test_run_success_backfills_token_usage():
    with tempfile.TemporaryDirectory() as tmpdir:
        runner = AgentRunner(_make_config(tmpdir))
        job = runner.run(_make_item())

        assert job.state == JobState.SUCCEEDED
        assert job.spawned
        assert job.error is None
        assert job.result.category == Category.BUG
        assert job.result.token_usage == TokenUsage(input=1234, output=56)
        # The backfilled usage is persisted for later aggregation.
        assert runner.cache.load(42).token_usage == TokenUsage(input=1234, output=56)
        assert (runner.config.prompts_dir / "issue-42.md").is_file()


def test_run_is_idempotent_with_cached_result():
    with tempfile.TemporaryDirectory() as tmpdir:
        runner = AgentRunner(_make_config(tmpdir))
        first = runner.run(_make_item())
        assert _spawn_count(tmpdir) == 1

        second = runner.run(_make_item())
        assert second.state == JobState.CACHED
        assert not second.spawned
        assert second.result == first.result
        assert _spawn_count(tmpdir) == 1


def test_cached_result_reports_its_own_usage():
    with tempfile.TemporaryDirectory() as tmpdir:
        runner = AgentRunner(_make_config(tmpdir))
        runner.cache.store(TaskResult(
            number=41, category=Category.UNKNOWN, repro_status=ReproStatus.MISSING,
            token_usage=TokenUsage(input=5, output=5),
        ))
        job = runner.run(_make_item(41))
        assert job.state == JobState.CACHED
        assert job.token_usage == TokenUsage(input=5, output=5)
        assert _spawn_count(tmpdir) == 0


def test_run_nonzero_exit_without_result():
    with tempfile.TemporaryDirectory() as tmpdir:
        job = AgentRunner(_make_config(tmpdir, {"42": "fail"})).run(_make_item())
        assert job.state == JobState.FAILED
        assert job.result is None
        assert "exited with code 3" in job.error
        assert NO_RESULT_ERROR in job.error


def test_run_unparseable_result_is_failure():
    with tempfile.TemporaryDirectory() as tmpdir:
        job = AgentRunner(_make_config(tmpdir, {"42": "garbage"})).run(_make_item())
        assert job.state == JobState.FAILED
        assert job.error == NO_RESULT_ERROR


def test_run_timeout_without_result():
    with tempfile.TemporaryDirectory() as tmpdir:
        job = AgentRunner(_make_config(tmpdir, {"42": "sleep"}, timeout=1)).run(_make_item())
        assert job.state == JobState.TIMED_OUT
        assert job.failed
        assert "timed out" in job.error
        assert NO_RESULT_ERROR in job.error


def test_run_timeout_after_writing_valid_result():
    with tempfile.TemporaryDirectory() as tmpdir:
        job = AgentRunner(_make_config(tmpdir, {"42": "write_then_sleep"}, timeout=2)).run(_make_item())
        assert job.state == JobState.SUCCEEDED
        assert job.result.number == 42
        assert "timed out" in job.error


def test_run_rejects_invalid_item_without_spawning():
    with tempfile.TemporaryDirectory() as tmpdir:
        job = AgentRunner(_make_config(tmpdir)).run(_make_item(title="   "))
        assert job.state == JobState.FAILED
        assert "no title" in job.error
        assert not job.spawned
        assert _spawn_count(tmpdir) == 0


def test_run_reuses_existing_brief():
    with tempfile.TemporaryDirectory() as tmpdir:
        runner = AgentRunner(_make_config(tmpdir))
        prompt = runner.config.prompts_dir / "issue-42.md"
        prompt.parent.mkdir(parents=True)
        prompt.write_text("- **Number**: #42\nprepared brief")

        job = runner.run(_make_item())
        assert job.state == JobState.SUCCEEDED
        assert prompt.read_text() == "- **Number**: #42\nprepared brief"
