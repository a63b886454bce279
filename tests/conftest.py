"""Shared fixtures and fakes for hushbrew tests."""

from __future__ import annotations

from pathlib import Path

import pytest

from hushbrew.brew import Homebrew, PackageCategory
from hushbrew.config import AppSettings, NotificationConfig, PathsConfig
from hushbrew.runner import StageResult
from hushbrew.signals import BandwidthSample, PowerStatus


class FakeCollectors:
    """Signal collectors with settable answers and a call log."""

    def __init__(self, **overrides: object) -> None:
        self.meeting_host = False
        self.conferencing = False
        self.conferencing_udp = 0
        self.messaging = False
        self.messaging_udp = 0
        self.mic = False
        self.power_status = PowerStatus(on_mains=True, battery_percent=80.0)
        self.running_apps: set[str] = set()
        self.brew_running = False
        self.reachable = True
        self.sample = BandwidthSample(bytes_per_second=10_000_000.0, measured=True)
        self.free_mb: int | None = 50_000
        self.calls: list[str] = []
        for key, value in overrides.items():
            setattr(self, key, value)

    def meeting_host_running(self) -> bool:
        self.calls.append("meeting_host")
        return self.meeting_host

    def conferencing_client_running(self) -> bool:
        self.calls.append("conferencing")
        return self.conferencing

    def conferencing_udp_connections(self) -> int:
        self.calls.append("conferencing_udp")
        return self.conferencing_udp

    def messaging_client_running(self) -> bool:
        self.calls.append("messaging")
        return self.messaging

    def messaging_realtime_connections(self) -> int:
        self.calls.append("messaging_udp")
        return self.messaging_udp

    def microphone_active(self) -> bool:
        self.calls.append("mic")
        return self.mic

    def power(self) -> PowerStatus:
        self.calls.append("power")
        return self.power_status

    def app_running(self, app_name: str) -> bool:
        return app_name in self.running_apps

    def brew_process_running(self) -> bool:
        self.calls.append("brew_running")
        return self.brew_running

    def network_reachable(self) -> bool:
        self.calls.append("network")
        return self.reachable

    def bandwidth(self) -> BandwidthSample:
        self.calls.append("bandwidth")
        return self.sample

    def free_disk_mb(self) -> int | None:
        self.calls.append("disk")
        return self.free_mb


class FakeBrew:
    """In-memory package state; command builders come from a real Homebrew."""

    def __init__(
        self,
        outdated: dict[PackageCategory, set[str]] | None = None,
        *,
        leaves: set[str] | None = None,
        pinned: set[str] | None = None,
        missing: str = "",
        apps: dict[str, str] | None = None,
        upgrades_succeed: bool = True,
    ) -> None:
        self.real = Homebrew(prefix=Path("/opt/homebrew"))
        self.prefix = self.real.prefix
        self._outdated = {"formula": set(), "cask": set()}
        self._outdated.update(outdated or {})
        self._leaves = leaves or set()
        self._pinned = pinned or set()
        self._missing = missing
        self._apps = apps or {}
        self.upgrades_succeed = upgrades_succeed

    def outdated(self, category: PackageCategory) -> frozenset[str]:
        return frozenset(self._outdated[category])

    def leaves(self) -> frozenset[str]:
        return frozenset(self._leaves)

    def pinned(self) -> frozenset[str]:
        return frozenset(self._pinned)

    def missing(self) -> str:
        return self._missing

    def cask_app_name(self, cask: str) -> str | None:
        return self._apps.get(cask)

    def environment(self, base=None, extra=None) -> dict[str, str]:
        return self.real.environment(base={}, extra=extra)

    def update_command(self) -> list[str]:
        return self.real.update_command()

    def upgrade_command(self, category: PackageCategory, packages: frozenset[str]) -> list[str]:
        return self.real.upgrade_command(category, packages)

    def cleanup_command(self, prune_days: int) -> list[str]:
        return self.real.cleanup_command(prune_days)

    def mark_upgraded(self, category: PackageCategory, packages: list[str]) -> None:
        self._outdated[category].difference_update(packages)


class FakeRunner:
    """Records bounded executions; results are looked up by brew subcommand."""

    def __init__(self, results: dict[str, StageResult] | None = None, brew: FakeBrew | None = None) -> None:
        self.results = results or {}
        self.brew = brew
        self.calls: list[tuple[list[str], float, dict]] = []

    def __call__(self, cmd, timeout_s, **kwargs) -> StageResult:
        cmd = list(cmd)
        self.calls.append((cmd, timeout_s, kwargs))
        subcommand = cmd[1]
        key = subcommand
        if subcommand == "upgrade":
            key = "upgrade-formula" if cmd[2] == "--formula" else "upgrade-cask"
        result = self.results.get(key, StageResult(exit_code=0))
        if self.brew is not None and subcommand == "upgrade" and result.ok:
            self.brew.mark_upgraded("formula" if cmd[2] == "--formula" else "cask", cmd[3:])
        return result

    def subcommands(self) -> list[str]:
        return [call[0][1] for call in self.calls]

    def upgraded(self, category: PackageCategory) -> list[str] | None:
        for cmd, _, _ in self.calls:
            if cmd[1] == "upgrade" and cmd[2] == f"--{category}":
                return cmd[3:]
        return None


class FakeNotifier:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send(self, title: str, message: str) -> bool:
        self.sent.append((title, message))
        return True


@pytest.fixture(autouse=True)
def isolated_settings_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the settings loader at a file that does not exist."""

    missing = tmp_path / "no-settings.yaml"
    monkeypatch.setenv("HUSHBREW_SETTINGS_FILE", str(missing))
    return missing


@pytest.fixture
def settings(tmp_path: Path) -> AppSettings:
    paths = PathsConfig(
        log_file=tmp_path / "log" / "hushbrew.log",
        state_file=tmp_path / "log" / "hushbrew.lastrun",
        lock_file=tmp_path / "hushbrew.lock",
        config_file=tmp_path / "config",
    )
    return AppSettings(paths=paths, notifications=NotificationConfig(enabled=False))
