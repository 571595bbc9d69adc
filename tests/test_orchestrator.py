"""End-to-end tests for batched dispatch and report rebuilding."""

import json
import sys
import tempfile
from pathlib import Path

from backlog_triage.aggregate import aggregate
from backlog_triage.backlog.base import BacklogItem
from backlog_triage.cache import TaskCache
from backlog_triage.config import AgentConfig, RunMode, TriageConfig
from backlog_triage.jobs import JobState
from backlog_triage.logging.logger import TriageLogger
from backlog_triage.orchestrator import run_pipeline
from backlog_triage.results import Category, ReproStatus, TaskResult, VerificationStatus
from backlog_triage.runner import AgentRunner

FAKE_AGENT = str(Path(__file__).parent / "fake_agent.py")


def _make_config(tmpdir: str, behaviours: dict | None = None, **kwargs) -> TriageConfig:
    command = [sys.executable, FAKE_AGENT, "{prompt_file}", "{project_root}", json.dumps(behaviours or {})]
    return TriageConfig(
        project_root=tmpdir,
        agent=AgentConfig(model="fake-model", command=command, timeout_seconds=2),
        **kwargs,
    )


def _make_items(*numbers: int) -> list[BacklogItem]:
    return [BacklogItem(number=n, title=f"Issue {n}") for n in numbers]


def _spawned(tmpdir: str) -> list[int]:
    log = Path(tmpdir) / "spawned.log"
    return [int(n) for n in log.read_text().split()] if log.exists() else []


def test_mixed_backlog_end_to_end():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _make_config(tmpdir, {"2": "sleep"}, concurrency=2)
        logger = TriageLogger("e2e", Path(tmpdir) / "logs")
        cache = TaskCache(config.results_dir, logger=logger)
        cache.store(TaskResult(
            number=1, title="Issue 1", category=Category.FEATURE_REQUEST,
            repro_status=ReproStatus.NOT_APPLICABLE, model="other-model",
        ))
        items = _make_items(1, 2, 3)

        run = run_pipeline(items, config, runner=AgentRunner(config, cache=cache, logger=logger), logger=logger)

        assert run.jobs[1].state == JobState.CACHED
        assert run.jobs[2].state == JobState.TIMED_OUT
        assert run.jobs[3].state == JobState.SUCCEEDED
        assert [j.item.number for j in run.failed] == [2]
        assert sorted(_spawned(tmpdir)) == [2, 3]

        # Batch two starts only after batch one has settled.
        order = [(e["event"], e["number"]) for e in logger.events if e["event"] in ("job_start", "job_end")]
        assert order.index(("job_start", 3)) > order.index(("job_end", 2))
        assert order.index(("job_start", 3)) > order.index(("job_end", 1))

        report = aggregate(items, config, cache=cache, logger=logger)
        assert report.summary.total_issues == 2
        assert report.summary.bugs == 1
        assert report.summary.feature_requests == 1
        assert report.untriaged == [2]
        assert [i["number"] for i in report.to_json_dict()["issues"]] == [3, 1]
        assert report.token_usage.total_input == 1234


def test_timeout_does_not_hold_back_spawned_sibling():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _make_config(tmpdir, {"1": "sleep"}, concurrency=2)
        run = run_pipeline(_make_items(1, 2), config)

        assert sorted(_spawned(tmpdir)) == [1, 2]
        assert run.jobs[1].state == JobState.TIMED_OUT
        assert run.jobs[2].state == JobState.SUCCEEDED
        assert run.jobs[2].duration_seconds < config.agent.timeout_seconds
        assert TaskCache(config.results_dir).load(2) is not None
        assert TaskCache(config.results_dir).load(1) is None


def test_rerun_only_spawns_untriaged_items():
    with tempfile.TemporaryDirectory() as tmpdir:
        items = _make_items(1, 2)
        run_pipeline(items, _make_config(tmpdir, {"2": "fail"}))
        assert sorted(_spawned(tmpdir)) == [1, 2]

        second = run_pipeline(items, _make_config(tmpdir))
        assert second.jobs[1].state == JobState.CACHED
        assert second.jobs[2].state == JobState.SUCCEEDED
        assert sorted(_spawned(tmpdir)) == [1, 2, 2]


def test_agent_mode_writes_briefs_without_spawning():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _make_config(tmpdir, mode=RunMode.AGENT)
        config.prompts_dir.mkdir(parents=True)
        (config.prompts_dir / "issue-99.md").write_text("stale")

        run = run_pipeline(_make_items(4, 5), config)

        assert run.jobs == {}
        assert _spawned(tmpdir) == []
        assert sorted(p.name for p in config.prompts_dir.iterdir()) == ["issue-4.md", "issue-5.md"]
        brief = (config.prompts_dir / "issue-4.md").read_text()
        assert "**Number**: #4" in brief
        assert str(config.results_dir) in brief


class _ExplodingRunner(AgentRunner):
    def run(self, item):
        if item.number == 2:
            raise RuntimeError("runner crashed")
        return super().run(item)


def test_runner_exception_becomes_failed_job():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _make_config(tmpdir, concurrency=2)
        logger = TriageLogger("crash", Path(tmpdir) / "logs")
        run = run_pipeline(_make_items(1, 2, 3), config, runner=_ExplodingRunner(config), logger=logger)

        assert run.jobs[2].state == JobState.FAILED
        assert "runner crashed" in run.jobs[2].error
        assert run.jobs[1].state == JobState.SUCCEEDED
        assert run.jobs[3].state == JobState.SUCCEEDED
        ends = [e for e in logger.events if e["event"] == "job_end"]
        assert sorted(e["number"] for e in ends) == [1, 2, 3]


def test_aggregate_empty_cache_returns_none():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _make_config(tmpdir)
        assert aggregate(_make_items(1, 2), config) is None


def test_aggregate_is_recomputed_from_cache():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = _make_config(tmpdir)
        cache = TaskCache(config.results_dir)
        cache.store(TaskResult(number=1, category=Category.BUG, repro_status=ReproStatus.MISSING))
        first = aggregate(_make_items(1, 2), config, cache=cache)
        assert first.summary.not_verified == 1

        cache.store(TaskResult(
            number=2, category=Category.BUG, repro_status=ReproStatus.HAS_REPRO,
            verification=VerificationStatus.FIXED,
        ))
        second = aggregate(_make_items(1, 2), config, cache=cache)
        assert second.summary.total_issues == 2
        assert second.summary.fixed == 1
        assert second.untriaged == []
