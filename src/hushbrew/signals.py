"""Read-only probes for meeting, power, network and disk state.

Every probe fails open: when the underlying query cannot be executed the
probe returns the value that does not block an upgrade (no process, no
connection, microphone idle, power unknown, bandwidth unmeasured).
"""

from __future__ import annotations

import logging
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Collection

import psutil
import requests

from hushbrew.config import MIB, AppSettings

LOGGER = logging.getLogger(__name__)

MIC_REGISTRY_CLASS = "AppleHDAEngineInput"
MIC_ACTIVE_MARKER = '"IOAudioEngineState" = 1'
PROBE_CHUNK_BYTES = 64 * 1024


@dataclass(frozen=True, slots=True)
class PowerStatus:
    """Power source and battery level; `battery_percent` is None when unknown."""

    on_mains: bool
    battery_percent: float | None = None
    known: bool = True


@dataclass(frozen=True, slots=True)
class BandwidthSample:
    """Measured download rate; `measured` is False when the probe failed or read zero."""

    bytes_per_second: float
    measured: bool

    @classmethod
    def unmeasured(cls) -> "BandwidthSample":
        return cls(bytes_per_second=0.0, measured=False)


def _iter_named_processes(name: str) -> list[psutil.Process]:
    matches: list[psutil.Process] = []
    for proc in psutil.process_iter(["name"]):
        if proc.info.get("name") == name:
            matches.append(proc)
    return matches


def process_running(name: str) -> bool:
    """Exact-name process existence check."""

    try:
        return bool(_iter_named_processes(name))
    except psutil.Error as exc:
        LOGGER.debug("signals.process_scan_failed name=%s error=%s", name, exc)
        return False


def command_line_running(fragment: str) -> bool:
    """True when any process command line contains `fragment`."""

    try:
        for proc in psutil.process_iter(["cmdline"]):
            cmdline = " ".join(proc.info.get("cmdline") or ())
            if fragment in cmdline:
                return True
    except psutil.Error as exc:
        LOGGER.debug("signals.cmdline_scan_failed fragment=%s error=%s", fragment, exc)
    return False


def udp_connection_count(process_name: str, exclude_ports: Collection[int] = ()) -> int:
    """Count UDP sockets held by processes named `process_name`.

    Sockets whose local or remote port is in `exclude_ports` are ignored.
    """

    count = 0
    try:
        processes = _iter_named_processes(process_name)
    except psutil.Error as exc:
        LOGGER.debug("signals.process_scan_failed name=%s error=%s", process_name, exc)
        return 0
    for proc in processes:
        try:
            connections = proc.net_connections(kind="udp")
        except psutil.Error as exc:
            LOGGER.debug("signals.connections_failed pid=%s error=%s", proc.pid, exc)
            continue
        for conn in connections:
            ports = {conn.laddr.port if conn.laddr else None, conn.raddr.port if conn.raddr else None}
            if ports.intersection(exclude_ports):
                continue
            count += 1
    return count


def microphone_active(timeout_s: float = 10.0) -> bool:
    """Query the audio-input engine state from the I/O registry."""

    try:
        completed = subprocess.run(
            ["ioreg", "-c", MIC_REGISTRY_CLASS],
            capture_output=True,
            text=True,
            timeout=timeout_s,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        LOGGER.debug("signals.ioreg_failed error=%s", exc)
        return False
    return MIC_ACTIVE_MARKER in completed.stdout


def power_status() -> PowerStatus:
    try:
        battery = psutil.sensors_battery()
    except (psutil.Error, OSError, NotImplementedError) as exc:
        LOGGER.debug("signals.battery_failed error=%s", exc)
        battery = None
    if battery is None:
        return PowerStatus(on_mains=False, battery_percent=None, known=False)
    return PowerStatus(on_mains=battery.power_plugged is True, battery_percent=float(battery.percent))


def network_reachable(url: str, timeout_s: float = 5.0) -> bool:
    """Any HTTP response counts as reachable; transport errors do not."""

    try:
        response = requests.head(url, timeout=timeout_s, allow_redirects=True)
    except requests.RequestException as exc:
        LOGGER.debug("signals.reachability_failed url=%s error=%s", url, exc)
        return False
    response.close()
    return True


def measure_bandwidth(url: str, timeout_s: float = 10.0) -> BandwidthSample:
    """Download a small fixed payload and report its throughput."""

    received = 0
    started = time.monotonic()
    try:
        with requests.get(url, stream=True, timeout=timeout_s) as response:
            response.raise_for_status()
            for chunk in response.iter_content(chunk_size=PROBE_CHUNK_BYTES):
                received += len(chunk)
                if time.monotonic() - started > timeout_s:
                    break
    except requests.RequestException as exc:
        LOGGER.debug("signals.bandwidth_failed url=%s error=%s", url, exc)
        return BandwidthSample.unmeasured()
    elapsed = time.monotonic() - started
    if received == 0 or elapsed <= 0:
        return BandwidthSample.unmeasured()
    return BandwidthSample(bytes_per_second=received / elapsed, measured=True)


def free_disk_mb(path: Path) -> int | None:
    """Free space in MiB on the volume holding `path`, None if it cannot be read."""

    try:
        return int(psutil.disk_usage(str(path)).free // MIB)
    except OSError as exc:
        LOGGER.warning("signals.disk_usage_failed path=%s error=%s", path, exc)
        return None


class SignalCollectors:
    """Bundle of probes bound to runtime settings, consumed by the gate and coordinator."""

    def __init__(self, settings: AppSettings, brew_prefix: Path) -> None:
        self.settings = settings
        self.brew_prefix = brew_prefix

    def meeting_host_running(self) -> bool:
        return process_running(self.settings.gate.meeting_host_process)

    def conferencing_client_running(self) -> bool:
        return process_running(self.settings.gate.conferencing_process)

    def conferencing_udp_connections(self) -> int:
        return udp_connection_count(self.settings.gate.conferencing_process)

    def messaging_client_running(self) -> bool:
        return process_running(self.settings.gate.messaging_process)

    def messaging_realtime_connections(self) -> int:
        return udp_connection_count(
            self.settings.gate.messaging_process,
            exclude_ports=(self.settings.gate.messaging_excluded_port,),
        )

    def microphone_active(self) -> bool:
        return microphone_active()

    def power(self) -> PowerStatus:
        return power_status()

    def app_running(self, app_name: str) -> bool:
        return process_running(app_name)

    def brew_process_running(self) -> bool:
        return command_line_running(str(self.brew_prefix / "bin" / "brew"))

    def network_reachable(self) -> bool:
        network = self.settings.network
        return network_reachable(network.reachability_url, network.reachability_timeout_s)

    def bandwidth(self) -> BandwidthSample:
        network = self.settings.network
        return measure_bandwidth(network.bandwidth_probe_url, network.bandwidth_probe_timeout_s)

    def free_disk_mb(self) -> int | None:
        return free_disk_mb(self.brew_prefix)
