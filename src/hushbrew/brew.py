"""Homebrew command surface: prefix detection, read-only queries, command builders."""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping

LOGGER = logging.getLogger(__name__)

PackageCategory = Literal["formula", "cask"]

KNOWN_PREFIXES: tuple[Path, ...] = (Path("/opt/homebrew"), Path("/usr/local"))
SYSTEM_PATH = "/usr/local/bin:/usr/bin:/bin:/usr/sbin:/sbin"
BREW_ENVIRONMENT: dict[str, str] = {
    "HOMEBREW_NO_BOTTLE_SOURCE_FALLBACK": "1",
    "HOMEBREW_NO_INSTALL_CLEANUP": "1",
    "HOMEBREW_NO_ENV_HINTS": "1",
}

_APP_BUNDLE_PATTERN = re.compile(r"([^/\n()]+?)\.app\b")


class BrewNotFoundError(RuntimeError):
    """Raised when no usable brew executable can be located."""


def detect_brew_prefix(explicit: Path | None = None) -> Path:
    """Locate the Homebrew prefix (Apple Silicon first, then Intel, then PATH)."""

    if explicit is not None:
        if (explicit / "bin" / "brew").exists():
            return explicit
        raise BrewNotFoundError(f"Homebrew not found at {explicit / 'bin' / 'brew'}")

    for prefix in KNOWN_PREFIXES:
        if (prefix / "bin" / "brew").exists():
            return prefix

    on_path = shutil.which("brew")
    if on_path is not None:
        return Path(on_path).resolve().parent.parent
    raise BrewNotFoundError("Homebrew not found at /opt/homebrew/bin/brew or /usr/local/bin/brew")


def parse_package_list(text: str) -> frozenset[str]:
    """Split whitespace-separated brew output into a set of identifiers."""

    return frozenset(text.split())


def parse_cask_app_name(info_json: str) -> str | None:
    """Best-effort extraction of a cask's application name from `brew info --json=v2`.

    Returns None whenever the metadata is missing or ambiguous.
    """

    try:
        payload = json.loads(info_json)
    except json.JSONDecodeError:
        return None
    casks = payload.get("casks") if isinstance(payload, dict) else None
    if not casks:
        return None
    for artifact in casks[0].get("artifacts", []):
        if not isinstance(artifact, dict) or "app" not in artifact:
            continue
        for entry in artifact["app"]:
            if isinstance(entry, dict):
                entry = entry.get("target", "")
            match = _APP_BUNDLE_PATTERN.search(str(entry))
            if match:
                return match.group(1).strip()
    return None


@dataclass(frozen=True, slots=True)
class Homebrew:
    """Thin wrapper around the brew executable under a resolved prefix."""

    prefix: Path
    query_timeout_s: float = 120.0

    @classmethod
    def locate(cls, explicit_prefix: Path | None = None, query_timeout_s: float = 120.0) -> "Homebrew":
        return cls(prefix=detect_brew_prefix(explicit_prefix), query_timeout_s=query_timeout_s)

    @property
    def executable(self) -> Path:
        return self.prefix / "bin" / "brew"

    def environment(self, base: Mapping[str, str] | None = None, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Build the child environment used for every brew invocation."""

        env = dict(os.environ if base is None else base)
        env["PATH"] = f"{self.prefix / 'bin'}:{self.prefix / 'sbin'}:{SYSTEM_PATH}"
        env.update(BREW_ENVIRONMENT)
        if extra:
            env.update(extra)
        return env

    def _query(self, *args: str) -> str:
        """Run a read-only brew query; failures to execute yield empty output.

        Some queries (`missing`, `outdated`) exit non-zero when they find
        something, so stdout is kept regardless of the exit code.
        """

        cmd = [str(self.executable), *args]
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.query_timeout_s,
                env=self.environment(),
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            LOGGER.warning("brew.query_failed args=%s error=%s", " ".join(args), exc)
            return ""
        if completed.returncode != 0:
            LOGGER.debug("brew.query_nonzero args=%s exit=%s", " ".join(args), completed.returncode)
        return completed.stdout

    def outdated(self, category: PackageCategory) -> frozenset[str]:
        if category == "formula":
            return parse_package_list(self._query("outdated", "--formula", "--quiet"))
        return parse_package_list(self._query("outdated", "--cask", "--greedy", "--quiet"))

    def leaves(self) -> frozenset[str]:
        return parse_package_list(self._query("leaves"))

    def pinned(self) -> frozenset[str]:
        return parse_package_list(self._query("list", "--pinned"))

    def missing(self) -> str:
        """Return `brew missing` output, empty when no dependency is broken."""

        return self._query("missing").strip()

    def cask_app_name(self, cask: str) -> str | None:
        return parse_cask_app_name(self._query("info", "--cask", "--json=v2", cask))

    def update_command(self) -> list[str]:
        return [str(self.executable), "update"]

    def upgrade_command(self, category: PackageCategory, packages: frozenset[str]) -> list[str]:
        return [str(self.executable), "upgrade", f"--{category}", *sorted(packages)]

    def cleanup_command(self, prune_days: int) -> list[str]:
        return [str(self.executable), "cleanup", f"--prune={prune_days}"]
