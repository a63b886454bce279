"""Readiness gate: ordered meeting and power checks folded into one decision."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Literal, Sequence

from hushbrew.config import GateConfig
from hushbrew.signals import SignalCollectors

LOGGER = logging.getLogger(__name__)

ReadinessStatus = Literal["CLEAR", "BLOCKED"]

MICROPHONE_REASON = "Microphone in use"


@dataclass(frozen=True, slots=True)
class BlockReason:
    """Why the gate refused, plus the text shown in the deferral notification."""

    reason: str
    notice: str


@dataclass(frozen=True, slots=True)
class ReadinessSignal:
    """Gate decision: CLEAR, or BLOCKED with the first blocking reason."""

    status: ReadinessStatus
    block: BlockReason | None = None

    @property
    def is_clear(self) -> bool:
        return self.status == "CLEAR"

    @property
    def reason(self) -> str | None:
        return self.block.reason if self.block else None

    @classmethod
    def clear(cls) -> "ReadinessSignal":
        return cls(status="CLEAR")

    @classmethod
    def blocked(cls, block: BlockReason) -> "ReadinessSignal":
        return cls(status="BLOCKED", block=block)


ReadinessCheck = Callable[[SignalCollectors, GateConfig], BlockReason | None]


def _meeting_block(reason: str) -> BlockReason:
    return BlockReason(reason=reason, notice=f"Skipped due to: {reason}. Will retry later.")


def check_meeting_host(collectors: SignalCollectors, config: GateConfig) -> BlockReason | None:
    """The meeting-host process only exists while a call is active."""

    if collectors.meeting_host_running():
        return _meeting_block("Zoom meeting")
    return None


def check_conferencing_audio(collectors: SignalCollectors, config: GateConfig) -> BlockReason | None:
    if collectors.conferencing_client_running() and collectors.conferencing_udp_connections() > 0:
        return _meeting_block("Zoom meeting (UDP audio)")
    return None


def check_messaging_huddle(collectors: SignalCollectors, config: GateConfig) -> BlockReason | None:
    """Huddles use UDP on high ports; normal traffic on the secure port is excluded."""

    if collectors.messaging_client_running() and collectors.messaging_realtime_connections() > 0:
        return _meeting_block("Slack huddle")
    return None


def check_microphone(collectors: SignalCollectors, config: GateConfig) -> BlockReason | None:
    if collectors.microphone_active():
        return _meeting_block(MICROPHONE_REASON)
    return None


def check_power(collectors: SignalCollectors, config: GateConfig) -> BlockReason | None:
    """Block only on battery power below the threshold; unknown levels pass."""

    status = collectors.power()
    threshold = config.battery_min_percent
    if not status.known:
        LOGGER.warning("WARN: Unable to determine power status, proceeding anyway")
        return None
    if status.on_mains:
        LOGGER.info("INFO: On AC power, proceeding with upgrade")
        return None
    if status.battery_percent is None:
        return None
    percent = f"{status.battery_percent:g}"
    if status.battery_percent < threshold:
        return BlockReason(
            reason=f"Battery at {percent}% (below {threshold:g}%) and not on AC power",
            notice=f"Battery at {percent}%, need AC power or >{threshold:g}% battery. Will retry later.",
        )
    LOGGER.info("INFO: On battery power at %s%% (above %g%%), proceeding with upgrade", percent, threshold)
    return None


MEETING_CHECKS: tuple[ReadinessCheck, ...] = (
    check_meeting_host,
    check_conferencing_audio,
    check_messaging_huddle,
    check_microphone,
)

DEFAULT_CHECKS: tuple[ReadinessCheck, ...] = (*MEETING_CHECKS, check_power)


def evaluate(
    collectors: SignalCollectors,
    config: GateConfig | None = None,
    checks: Sequence[ReadinessCheck] = DEFAULT_CHECKS,
) -> ReadinessSignal:
    """Run checks in order and stop at the first one that blocks."""

    gate_config = config or GateConfig()
    for check in checks:
        block = check(collectors, gate_config)
        if block is not None:
            LOGGER.debug("gate.blocked check=%s reason=%s", check.__name__, block.reason)
            return ReadinessSignal.blocked(block)
    return ReadinessSignal.clear()
