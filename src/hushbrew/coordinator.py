"""Run coordination: idempotence, locking, gating, preflight, pipeline, verification."""

from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Iterator, Literal, Sequence

from hushbrew.brew import Homebrew
from hushbrew.config import AppSettings, UpgradeConfig, load_upgrade_config
from hushbrew.gate import evaluate
from hushbrew.notify import (
    APP_TITLE,
    DEFERRED_TITLE,
    ISSUES_TITLE,
    LOW_DISK_TITLE,
    SKIPPED_TITLE,
    Notifier,
)
from hushbrew.pipeline import PipelineResult, UpgradePipeline
from hushbrew.report import RunReport
from hushbrew.runner import Runner, run_bounded
from hushbrew.signals import SignalCollectors
from hushbrew.state import RunLock, read_last_success, write_last_success
from hushbrew.throttle import compute_limit, throttle_environment
from hushbrew.verify import verify

LOGGER = logging.getLogger(__name__)

RunStatus = Literal[
    "ALREADY_RAN",
    "LOCKED",
    "BREW_RUNNING",
    "BLOCKED",
    "NO_NETWORK",
    "LOW_DISK",
    "COMPLETED",
]

TERMINATION_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGHUP)


@dataclass(frozen=True, slots=True)
class RunOutcome:
    """Return object for one coordinator attempt."""

    status: RunStatus
    report: RunReport
    reason: str | None = None
    marker_written: bool = False
    pipeline: PipelineResult | None = None

    @property
    def deferred(self) -> bool:
        return self.status != "COMPLETED"


@contextmanager
def exit_on_termination_signals(signals: Sequence[signal.Signals] = TERMINATION_SIGNALS) -> Iterator[None]:
    """Turn termination signals into SystemExit so `finally` blocks still run."""

    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _raise_exit(signum: int, frame: object) -> None:
        raise SystemExit(128 + signum)

    previous = {sig: signal.signal(sig, _raise_exit) for sig in signals}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


class RunCoordinator:
    """Orchestrate one full upgrade attempt."""

    def __init__(
        self,
        settings: AppSettings,
        *,
        brew: Homebrew,
        collectors: SignalCollectors,
        notifier: Notifier,
        runner: Runner = run_bounded,
        upgrade_config: UpgradeConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.brew = brew
        self.collectors = collectors
        self.notifier = notifier
        self.runner = runner
        self.upgrade_config = upgrade_config
        self.logger = logger or LOGGER

    def run(self, today: date | None = None, *, force: bool = False) -> RunOutcome:
        run_day = today or date.today()
        paths = self.settings.paths
        report = RunReport()

        if not force and read_last_success(paths.state_file) == run_day:
            return RunOutcome(status="ALREADY_RAN", report=report)

        lock = RunLock(paths.lock_file)
        with exit_on_termination_signals():
            if not lock.acquire():
                self.logger.info("SKIP: Another hushbrew or brew process is running")
                return RunOutcome(status="LOCKED", report=report)
            try:
                return self._run_locked(run_day, report)
            finally:
                lock.release()

    def _run_locked(self, run_day: date, report: RunReport) -> RunOutcome:
        settings = self.settings

        if self.collectors.brew_process_running():
            self.logger.info("SKIP: A manual brew process is already running")
            return RunOutcome(status="BREW_RUNNING", report=report)

        config = self.upgrade_config if self.upgrade_config is not None else load_upgrade_config(settings.paths.config_file)

        readiness = evaluate(self.collectors, settings.gate)
        if readiness.block is not None:
            self.logger.info(
                "BLOCKED: %s; skipping upgrade, will retry at next scheduled slot",
                readiness.block.reason,
            )
            self.notifier.send(DEFERRED_TITLE, readiness.block.notice)
            return RunOutcome(status="BLOCKED", report=report, reason=readiness.block.reason)

        self.logger.info("START: No meetings detected, beginning brew upgrade")

        if not self.collectors.network_reachable():
            self.logger.info("ABORT: No internet connectivity")
            report.add("No internet")
            self.notifier.send(SKIPPED_TITLE, "No internet connection, will retry later")
            return RunOutcome(status="NO_NETWORK", report=report, reason="No internet")

        min_free_mb = settings.disk.min_free_mb
        free_mb = self.collectors.free_disk_mb() or 0
        if free_mb < min_free_mb:
            reason = f"Low disk space ({free_mb}MB free, need {min_free_mb}MB)"
            self.logger.info("ABORT: %s", reason)
            self.notifier.send(LOW_DISK_TITLE, f"Only {free_mb}MB free, need at least {min_free_mb}MB")
            return RunOutcome(status="LOW_DISK", report=report, reason=reason)

        limit_bps = compute_limit(self.collectors.bandwidth(), settings.network)
        pipeline = UpgradePipeline(
            self.brew,
            settings,
            config,
            collectors=self.collectors,
            runner=self.runner,
            extra_env=throttle_environment(limit_bps, settings.network),
        )
        pipeline_result = pipeline.run(report)
        report.extend(verify(self.brew, config, settings, self.collectors))

        if report.ok:
            self.logger.info("DONE: hushbrew finished successfully, all packages up to date")
            self.notifier.send(APP_TITLE, "All packages updated successfully")
        else:
            self.logger.info("DONE: hushbrew finished WITH ISSUES")
            self.logger.info("ISSUES: %s", report.summary())
            self.notifier.send(ISSUES_TITLE, report.truncated_summary(settings.notifications.max_chars))

        # marks "attempted today": a run with failed stages still suppresses retries until tomorrow
        write_last_success(settings.paths.state_file, run_day)
        return RunOutcome(status="COMPLETED", report=report, marker_written=True, pipeline=pipeline_result)
