"""Upgrade pipeline: refresh, upgrade formulae, upgrade casks, cleanup."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Literal, Mapping

from hushbrew.brew import Homebrew, PackageCategory
from hushbrew.config import AppSettings, UpgradeConfig
from hushbrew.exclusion import filter_excluded, restrict_to_leaves
from hushbrew.report import RunReport
from hushbrew.runner import Runner, StageResult, run_bounded
from hushbrew.signals import SignalCollectors

LOGGER = logging.getLogger(__name__)

PipelineState = Literal[
    "IDLE",
    "REFRESHING",
    "UPGRADING_PRIMARY",
    "UPGRADING_SECONDARY",
    "CLEANING_UP",
    "DONE",
]

STAGE_LABELS: dict[PackageCategory, str] = {
    "formula": "Formula upgrade",
    "cask": "Cask upgrade",
}


@dataclass(slots=True)
class PipelineResult:
    """States visited and per-stage results of one pipeline attempt."""

    states: list[PipelineState] = field(default_factory=lambda: ["IDLE"])
    stage_results: dict[str, StageResult] = field(default_factory=dict)
    upgraded: dict[PackageCategory, frozenset[str]] = field(default_factory=dict)

    @property
    def refresh_ok(self) -> bool:
        result = self.stage_results.get("refresh")
        return result is not None and result.ok


def format_bound(seconds: float) -> str:
    minutes = seconds / 60
    if minutes >= 1 and minutes == int(minutes):
        return f"{int(minutes)} min"
    return f"{seconds:g} s"


def describe_failure(label: str, result: StageResult, bound_s: float, hint: str = "") -> str:
    if result.timed_out:
        return f"{label} timed out ({format_bound(bound_s)})"
    return f"{label} failed (exit {result.exit_code}){hint}"


def select_candidates(
    brew: Homebrew,
    category: PackageCategory,
    config: UpgradeConfig,
) -> frozenset[str]:
    """Outdated packages in `category`, narrowed to leaves if configured, minus exclusions."""

    candidates = brew.outdated(category)
    excluded = config.excluded_formulae
    if category == "formula":
        if config.leaves_only:
            LOGGER.info("INFO: Using leaves-only upgrade strategy")
            candidates = restrict_to_leaves(candidates, brew.leaves())
    else:
        excluded = config.excluded_casks
    return filter_excluded(candidates, excluded)


class UpgradePipeline:
    """Sequenced, timeout-bounded stages feeding a shared RunReport.

    A failed refresh skips both upgrade stages; cleanup always runs and its
    failure is never reported.
    """

    def __init__(
        self,
        brew: Homebrew,
        settings: AppSettings,
        config: UpgradeConfig,
        *,
        collectors: SignalCollectors | None = None,
        runner: Runner = run_bounded,
        extra_env: Mapping[str, str] | None = None,
    ) -> None:
        self.brew = brew
        self.settings = settings
        self.config = config
        self.collectors = collectors
        self.runner = runner
        self.env = brew.environment(extra=extra_env)

    def _execute(self, cmd: list[str], timeout_s: float) -> StageResult:
        stage = self.settings.pipeline
        return self.runner(
            cmd,
            timeout_s,
            log_file=self.settings.paths.log_file,
            env=self.env,
            nice_level=stage.nice_level,
            kill_grace_s=stage.kill_grace_s,
        )

    def _warn_running_apps(self, casks: frozenset[str]) -> None:
        if self.collectors is None:
            return
        running: list[str] = []
        for cask in sorted(casks):
            app_name = self.brew.cask_app_name(cask)
            if app_name and self.collectors.app_running(app_name):
                running.append(f"{cask}({app_name})")
        if running:
            LOGGER.warning("WARN: These apps are running and may fail to upgrade: %s", " ".join(running))

    def _refresh(self, result: PipelineResult, report: RunReport) -> None:
        bound = self.settings.pipeline.refresh_timeout_s
        stage_result = self._execute(self.brew.update_command(), bound)
        result.stage_results["refresh"] = stage_result
        if not stage_result.ok:
            report.add(describe_failure("brew update", stage_result, bound))

    def _upgrade(self, category: PackageCategory, result: PipelineResult, report: RunReport) -> None:
        packages = select_candidates(self.brew, category, self.config)
        result.upgraded[category] = packages
        if not packages:
            LOGGER.info("INFO: No %s to upgrade", "formulae" if category == "formula" else "casks")
            result.stage_results[category] = StageResult(exit_code=0)
            return

        if category == "cask":
            self._warn_running_apps(packages)
        LOGGER.info("INFO: Upgrading %s: %s", category, " ".join(sorted(packages)))

        bound = self.settings.pipeline.upgrade_timeout_s
        stage_result = self._execute(self.brew.upgrade_command(category, packages), bound)
        result.stage_results[category] = stage_result
        if not stage_result.ok:
            report.add(
                describe_failure(
                    STAGE_LABELS[category],
                    stage_result,
                    bound,
                    hint="; may need sudo or app restart",
                )
            )

    def _cleanup(self, result: PipelineResult) -> None:
        stage = self.settings.pipeline
        stage_result = self._execute(self.brew.cleanup_command(stage.cleanup_prune_days), stage.cleanup_timeout_s)
        result.stage_results["cleanup"] = stage_result
        if not stage_result.ok:
            LOGGER.warning("pipeline.cleanup_failed exit=%s timed_out=%s", stage_result.exit_code, stage_result.timed_out)

    def run(self, report: RunReport) -> PipelineResult:
        result = PipelineResult()

        result.states.append("REFRESHING")
        self._refresh(result, report)

        if result.refresh_ok:
            result.states.append("UPGRADING_PRIMARY")
            self._upgrade("formula", result, report)
            result.states.append("UPGRADING_SECONDARY")
            self._upgrade("cask", result, report)
        else:
            LOGGER.info("pipeline.upgrades_skipped reason=refresh_failed")

        result.states.append("CLEANING_UP")
        self._cleanup(result)

        result.states.append("DONE")
        return result
