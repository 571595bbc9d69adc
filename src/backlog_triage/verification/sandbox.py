"""Compile candidate snippets in a disposable project directory."""

from __future__ import annotations

import json
import tempfile
import time
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from backlog_triage.config import SandboxConfig
from backlog_triage.process import run_command

from .base import INSTALL_FAILED_EXIT_CODE, NO_DIAGNOSTICS, VerificationVerdict
from .imports import detect_imports

if TYPE_CHECKING:
    from backlog_triage.logging.logger import TriageLogger


def resolve_source(source: str) -> str:
    """Read ``source`` from disk if it names an existing file, else use it verbatim."""
    if not source:
        raise ValueError("source must be a non-empty path or snippet")
    try:
        path = Path(source)
        if path.is_file():
            return path.read_text(encoding="utf-8")
    except OSError:
        # Inline code that is not a valid path (too long, NUL bytes, ...).
        pass
    return source


class SandboxBuilder:
    """Install, compile and collect output for one snippet, then clean up.

    Every call gets its own uniquely named temporary directory, so
    concurrent calls never share state. Nothing is retried here.
    """

    def __init__(self, config: SandboxConfig | None = None, logger: TriageLogger | None = None):
        self.config = config or SandboxConfig()
        self.logger = logger

    def build_manifest(self, code: str, emitter: str | None = None) -> dict[str, dict[str, str]]:
        deps = {self.config.baseline_dependency: "latest"}
        for name in detect_imports(code):
            deps[name] = "latest"
        if emitter:
            deps[emitter] = "latest"
        return {"dependencies": deps}

    def verify(self, source: str, emitter: str | None = None) -> VerificationVerdict:
        code = resolve_source(source)
        prefix = f"triage-verify-{int(time.time() * 1000)}-"
        with tempfile.TemporaryDirectory(prefix=prefix, dir=self.config.temp_root) as tmp:
            verdict = self._verify_in(Path(tmp), code, emitter)

        if self.logger:
            self.logger.log_verification(verdict, emitter)
        return verdict

    def _verify_in(self, workdir: Path, code: str, emitter: str | None) -> VerificationVerdict:
        cfg = self.config
        (workdir / cfg.source_filename).write_text(code, encoding="utf-8")
        (workdir / "package.json").write_text(
            json.dumps(self.build_manifest(code, emitter), indent=2), encoding="utf-8",
        )
        if emitter:
            emitter_config = {
                "emit": [emitter],
                "output-dir": "{project-root}/" + cfg.emitter_output_dir,
            }
            (workdir / cfg.emitter_config_filename).write_text(
                yaml.safe_dump(emitter_config, sort_keys=False), encoding="utf-8",
            )

        install = run_command(cfg.install_command, cwd=workdir, timeout=cfg.install_timeout_seconds)
        if not install.ok:
            if install.timed_out:
                reason = f"timed out after {cfg.install_timeout_seconds}s"
            else:
                reason = install.stderr or install.stdout or "unknown error"
            return VerificationVerdict(
                success=False,
                diagnostics=f"Install failed: {reason}",
                exit_code=INSTALL_FAILED_EXIT_CODE,
            )

        # With a config file present the compiler picks up the emitter from it.
        target = "." if emitter else cfg.source_filename
        compile_cmd = self._compiler_command(workdir) + [target]
        result = run_command(compile_cmd, cwd=workdir, timeout=cfg.compile_timeout_seconds)
        emitter_output = self._collect_emitter_output(workdir) if emitter else None

        if result.ok:
            return VerificationVerdict(
                success=True,
                diagnostics=result.stdout or NO_DIAGNOSTICS,
                exit_code=0,
                emitter_output=emitter_output,
            )

        diagnostics = result.stdout + result.stderr
        exit_code = result.returncode
        if result.timed_out:
            diagnostics += f"\nCompile timed out after {cfg.compile_timeout_seconds}s"
            exit_code = 1
        return VerificationVerdict(
            success=False,
            diagnostics=diagnostics,
            exit_code=exit_code,
            emitter_output=emitter_output,
        )

    def _compiler_command(self, workdir: Path) -> list[str]:
        command = list(self.config.compiler_command)
        exe = Path(command[0])
        if not exe.is_absolute() and len(exe.parts) > 1:
            command[0] = str(workdir / exe)
        return command

    def _collect_emitter_output(self, workdir: Path) -> dict[str, str]:
        out_dir = workdir / self.config.emitter_output_dir
        files: dict[str, str] = {}
        if not out_dir.is_dir():
            return files
        limit = self.config.max_output_file_chars
        for path in sorted(out_dir.rglob("*")):
            try:
                if not path.is_file():
                    continue
                # A UTF-8 character is at most 4 bytes.
                if path.stat().st_size >= limit * 4:
                    continue
                data = path.read_bytes()
                if b"\x00" in data:
                    continue
                content = data.decode("utf-8")
            except (OSError, UnicodeDecodeError):
                continue
            if len(content) < limit:
                files[path.relative_to(out_dir).as_posix()] = content
        return files
