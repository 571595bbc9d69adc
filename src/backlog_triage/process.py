"""Subprocess execution with hard wall-clock timeouts."""

from __future__ import annotations

import os
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path

TIMEOUT_EXIT_CODE = -1
NOT_FOUND_EXIT_CODE = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command. Never raised, always returned."""
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def output(self) -> str:
        return self.stdout + self.stderr


def _kill_tree(proc: subprocess.Popen) -> None:
    """Kill the child and everything it spawned into its session."""
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    proc.kill()


def run_command(
    command: list[str],
    cwd: str | Path | None = None,
    timeout: float | None = None,
    merge_stderr: bool = False,
) -> CommandResult:
    """Run a command, killing it once ``timeout`` seconds have elapsed.

    The command runs in its own session, so a timeout also kills any
    installer or compiler processes it started. With ``merge_stderr`` the
    child's stderr is interleaved into ``stdout``.
    """
    try:
        proc = subprocess.Popen(
            command,
            cwd=cwd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            start_new_session=True,
        )
    except FileNotFoundError as e:
        return CommandResult(returncode=NOT_FOUND_EXIT_CODE, stderr=f"Command not found: {e}")
    except OSError as e:
        return CommandResult(returncode=NOT_FOUND_EXIT_CODE, stderr=f"Error executing command: {e}")

    with proc:
        try:
            stdout, stderr = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_tree(proc)
            stdout, stderr = proc.communicate()
            return CommandResult(
                returncode=TIMEOUT_EXIT_CODE,
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
            )
        except BaseException:
            _kill_tree(proc)
            raise

    return CommandResult(
        returncode=proc.returncode,
        stdout=stdout or "",
        stderr=stderr or "",
    )
