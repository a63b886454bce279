import time

import psutil
import pytest

from hushbrew.runner import LAUNCH_FAILED_EXIT_CODE, TIMEOUT_EXIT_CODE, run_bounded


def _gone(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() == psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return True


def test_success_reports_zero_and_appends_output(tmp_path):
    log_file = tmp_path / "run.log"
    log_file.write_text("existing\n", encoding="utf-8")

    result = run_bounded(["sh", "-c", "echo hello; echo oops >&2"], 5, log_file=log_file)

    assert result.ok
    assert result.exit_code == 0
    assert result.duration_bounded
    assert log_file.read_text(encoding="utf-8") == "existing\nhello\noops\n"


def test_nonzero_exit_is_a_generic_failure():
    result = run_bounded(["sh", "-c", "exit 3"], 5)

    assert result.exit_code == 3
    assert not result.timed_out
    assert not result.ok


def test_timeout_is_classified_separately():
    started = time.monotonic()

    result = run_bounded(["sleep", "30"], 0.5, kill_grace_s=1)

    assert result.timed_out
    assert result.exit_code == TIMEOUT_EXIT_CODE
    assert not result.duration_bounded
    assert time.monotonic() - started < 10


def test_timeout_kills_the_whole_process_tree(tmp_path):
    pid_file = tmp_path / "child.pid"
    script = f"sleep 30 & echo $! > {pid_file}; wait"

    result = run_bounded(["sh", "-c", script], 1, kill_grace_s=1)

    assert result.timed_out
    grandchild = int(pid_file.read_text(encoding="utf-8").strip())
    deadline = time.monotonic() + 5
    while not _gone(grandchild) and time.monotonic() < deadline:
        time.sleep(0.05)
    assert _gone(grandchild)


def test_child_ignoring_sigterm_is_killed_after_grace():
    result = run_bounded(["sh", "-c", "trap '' TERM; sleep 30"], 0.5, kill_grace_s=0.5)

    assert result.timed_out


def test_missing_executable_is_a_failure_not_an_exception(tmp_path):
    result = run_bounded([str(tmp_path / "does-not-exist")], 5)

    assert result.exit_code == LAUNCH_FAILED_EXIT_CODE
    assert not result.ok


def test_env_is_passed_through():
    result = run_bounded(["sh", "-c", 'test "$HUSHBREW_TEST" = yes'], 5, env={"HUSHBREW_TEST": "yes", "PATH": "/usr/bin:/bin"})
    assert result.ok


@pytest.mark.parametrize("nice_level", [5])
def test_nice_prefix_runs_command(nice_level):
    assert run_bounded(["true"], 5, nice_level=nice_level).ok
