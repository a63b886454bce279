"""Run-wide issue accumulator."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

LOGGER = logging.getLogger(__name__)

ISSUE_SEPARATOR = " | "


@dataclass(slots=True)
class RunReport:
    """Append-only list of issues collected across one run; empty means success."""

    errors: list[str] = field(default_factory=list)

    def add(self, message: str) -> None:
        self.errors.append(message)
        LOGGER.error("ERROR: %s", message)

    def extend(self, messages: list[str]) -> None:
        for message in messages:
            self.add(message)

    @property
    def ok(self) -> bool:
        return not self.errors

    def summary(self) -> str:
        return ISSUE_SEPARATOR.join(self.errors)

    def truncated_summary(self, max_chars: int) -> str:
        return self.summary()[:max_chars]
