"""Download throttling: bandwidth sample to rate cap, and the curl wrapper brew uses."""

from __future__ import annotations

import logging
import os
import shutil
import sys
from pathlib import Path
from typing import Mapping

from hushbrew.config import MIB, NetworkConfig
from hushbrew.signals import BandwidthSample

LOGGER = logging.getLogger(__name__)

RATE_LIMIT_ENV = "BREW_RATE_LIMIT"
CURL_PATH_ENV = "HOMEBREW_CURL_PATH"
REAL_CURL_ENV = "HUSHBREW_REAL_CURL"
WRAPPER_SCRIPT = "hushbrew-curl"


def compute_limit(sample: BandwidthSample, config: NetworkConfig | None = None) -> int:
    """Return a download cap in bytes/sec.

    Unmeasured samples get the fixed fallback; measured ones are scaled by the
    throttle fraction and never drop below the floor.
    """

    network = config or NetworkConfig()
    if not sample.measured or sample.bytes_per_second <= 0:
        LOGGER.warning(
            "WARN: Bandwidth detection failed, defaulting to %.0fMB/s limit",
            network.throttle_fallback_bps / MIB,
        )
        return network.throttle_fallback_bps

    limit = max(round(sample.bytes_per_second * network.throttle_fraction), network.throttle_floor_bps)
    LOGGER.info(
        "INFO: Detected bandwidth ~%.1fMB/s, limiting brew to %.1fMB/s (%d%%)",
        sample.bytes_per_second / MIB,
        limit / MIB,
        round(network.throttle_fraction * 100),
    )
    return limit


def resolve_wrapper_path() -> Path | None:
    """Locate the installed curl wrapper console script."""

    sibling = Path(sys.argv[0]).resolve().parent / WRAPPER_SCRIPT
    if sibling.exists():
        return sibling
    on_path = shutil.which(WRAPPER_SCRIPT)
    return Path(on_path) if on_path else None


def throttle_environment(limit_bps: int, config: NetworkConfig | None = None) -> dict[str, str]:
    """Environment entries that route brew downloads through the capped curl."""

    network = config or NetworkConfig()
    env = {RATE_LIMIT_ENV: str(limit_bps), REAL_CURL_ENV: str(network.curl_path)}
    wrapper = resolve_wrapper_path()
    if wrapper is None:
        LOGGER.warning("throttle.wrapper_missing script=%s; downloads will not be capped", WRAPPER_SCRIPT)
    else:
        env[CURL_PATH_ENV] = str(wrapper)
    return env


def curl_wrapper_argv(argv: list[str], environ: Mapping[str, str]) -> list[str]:
    """Build the real curl command line, inserting `--limit-rate` when a cap is set."""

    real_curl = environ.get(REAL_CURL_ENV) or "/usr/bin/curl"
    limit = environ.get(RATE_LIMIT_ENV, "").strip()
    if limit:
        return [real_curl, "--limit-rate", limit, *argv]
    return [real_curl, *argv]


def curl_wrapper_main() -> None:
    """Console entrypoint: replace this process with the rate-limited curl."""

    command = curl_wrapper_argv(sys.argv[1:], os.environ)
    os.execv(command[0], command)
