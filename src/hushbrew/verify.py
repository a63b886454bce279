"""Post-pipeline verification, independent of stage exit codes."""

from __future__ import annotations

import logging

from hushbrew.brew import Homebrew
from hushbrew.config import AppSettings, UpgradeConfig
from hushbrew.exclusion import filter_excluded
from hushbrew.signals import SignalCollectors

LOGGER = logging.getLogger(__name__)

UNKNOWN_CAUSE = "unknown"


def classify_formula(formula: str, pinned: frozenset[str]) -> str:
    return "pinned" if formula in pinned else UNKNOWN_CAUSE


def classify_cask(cask: str, brew: Homebrew, collectors: SignalCollectors) -> str:
    app_name = brew.cask_app_name(cask)
    if app_name and collectors.app_running(app_name):
        return "app is running"
    return UNKNOWN_CAUSE


def verify(
    brew: Homebrew,
    config: UpgradeConfig,
    settings: AppSettings,
    collectors: SignalCollectors,
) -> list[str]:
    """Re-query package state after the pipeline and describe what was not reached.

    Excluded packages are filtered out first so they never count as failures.
    Findings are returned, never raised.
    """

    findings: list[str] = []

    still_outdated_formulae = filter_excluded(brew.outdated("formula"), config.excluded_formulae)
    if still_outdated_formulae:
        pinned = brew.pinned()
        for formula in sorted(still_outdated_formulae):
            findings.append(f"Formula still outdated: {formula} ({classify_formula(formula, pinned)})")

    still_outdated_casks = filter_excluded(brew.outdated("cask"), config.excluded_casks)
    for cask in sorted(still_outdated_casks):
        findings.append(f"Cask still outdated: {cask} ({classify_cask(cask, brew, collectors)})")

    broken = brew.missing()
    if broken:
        findings.append(f"Broken dependencies detected: {' '.join(broken.split())}")

    critical_mb = settings.disk.effective_critical_free_mb
    free_mb = collectors.free_disk_mb() or 0
    if free_mb < critical_mb:
        findings.append(f"Disk critically low after upgrade ({free_mb}MB free)")

    LOGGER.info("verify.summary findings=%s", len(findings))
    return findings
