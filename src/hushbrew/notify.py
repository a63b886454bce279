"""Desktop notification sink backed by osascript."""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass

from hushbrew.config import NotificationConfig

LOGGER = logging.getLogger(__name__)

APP_TITLE = "hushbrew"
DEFERRED_TITLE = "hushbrew Deferred"
SKIPPED_TITLE = "hushbrew Skipped"
LOW_DISK_TITLE = "hushbrew: Low Disk Space"
ISSUES_TITLE = "hushbrew: Issues Found"


def _applescript_string(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def build_osascript_command(title: str, message: str, sound_name: str | None = None) -> list[str]:
    script = f"display notification {_applescript_string(message)}"
    if sound_name:
        script += f" sound name {_applescript_string(sound_name)}"
    script += f" with title {_applescript_string(title)}"
    return ["osascript", "-e", script]


@dataclass(frozen=True, slots=True)
class Notifier:
    """Post a title + message notification; delivery failures are only logged."""

    config: NotificationConfig

    def send(self, title: str, message: str) -> bool:
        if not self.config.enabled:
            return False
        text = message[: self.config.max_chars]
        try:
            completed = subprocess.run(
                build_osascript_command(title, text, self.config.sound_name),
                capture_output=True,
                timeout=10,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            LOGGER.debug("notify.failed title=%s error=%s", title, exc)
            return False
        return completed.returncode == 0
