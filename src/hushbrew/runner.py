"""Bounded child-process execution with process-group termination on timeout."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Sequence

LOGGER = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124
LAUNCH_FAILED_EXIT_CODE = 127


@dataclass(frozen=True, slots=True)
class StageResult:
    """Outcome of one bounded execution."""

    exit_code: int
    timed_out: bool = False
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def duration_bounded(self) -> bool:
        """True when the child finished on its own within the bound."""

        return not self.timed_out


Runner = Callable[..., StageResult]


def _signal_group(pgid: int, sig: signal.Signals) -> None:
    try:
        os.killpg(pgid, sig)
    except (ProcessLookupError, PermissionError):
        pass


def terminate_process_group(proc: subprocess.Popen, grace_s: float) -> int:
    """SIGTERM the child's process group, escalating to SIGKILL after grace."""

    pgid = proc.pid
    _signal_group(pgid, signal.SIGTERM)
    try:
        return proc.wait(timeout=grace_s)
    except subprocess.TimeoutExpired:
        LOGGER.warning("runner.sigterm_ignored pid=%s; sending SIGKILL", proc.pid)
    _signal_group(pgid, signal.SIGKILL)
    return proc.wait()


def run_bounded(
    cmd: Sequence[str],
    timeout_s: float,
    *,
    log_file: Path | None = None,
    env: Mapping[str, str] | None = None,
    nice_level: int = 0,
    kill_grace_s: float = 10.0,
) -> StageResult:
    """Run `cmd` for at most `timeout_s` seconds.

    The child runs in its own session so that the whole process tree can be
    signalled at once. Output is appended to `log_file` when given. A run that
    exceeds the bound has its group terminated and reports exit code 124.
    If the caller unwinds (signal, KeyboardInterrupt) while the child is
    alive, the group is killed before the exception propagates.
    """

    argv = list(cmd)
    if nice_level > 0:
        argv = ["nice", "-n", str(nice_level), *argv]

    started_mono = time.monotonic()
    output = log_file.open("ab") if log_file is not None else None
    try:
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=output if output is not None else subprocess.DEVNULL,
                stderr=subprocess.STDOUT,
                env=dict(env) if env is not None else None,
                start_new_session=True,
            )
        except OSError as exc:
            LOGGER.warning("runner.launch_failed cmd=%s error=%s", argv[0], exc)
            return StageResult(exit_code=LAUNCH_FAILED_EXIT_CODE)

        try:
            exit_code = proc.wait(timeout=timeout_s)
        except subprocess.TimeoutExpired:
            LOGGER.warning("runner.timeout pid=%s timeout_s=%s", proc.pid, timeout_s)
            terminate_process_group(proc, kill_grace_s)
            return StageResult(
                exit_code=TIMEOUT_EXIT_CODE,
                timed_out=True,
                duration_s=time.monotonic() - started_mono,
            )
        except BaseException:
            terminate_process_group(proc, kill_grace_s)
            raise
        # children left behind by a finished leader are still part of the group
        _signal_group(proc.pid, signal.SIGKILL)
        return StageResult(exit_code=exit_code, duration_s=time.monotonic() - started_mono)
    finally:
        if output is not None:
            output.close()
