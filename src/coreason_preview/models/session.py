# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_preview

import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class ContainerStatus(str, Enum):
    IDLE = "idle"
    BOOTING = "booting"
    MOUNTING = "mounting"
    INSTALLING = "installing"
    STARTING = "starting"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class LogLine:
    timestamp: float
    text: str

    def format(self) -> str:
        return f"[{time.strftime('%H:%M:%S', time.localtime(self.timestamp))}] {self.text}"


@dataclass(frozen=True)
class SessionEvent:
    """An externally observable change of a preview session."""

    kind: Literal["status", "log", "ready", "error"]
    status: ContainerStatus | None = None
    line: LogLine | None = None
    url: str | None = None
    message: str | None = None


@dataclass
class ContainerSession:
    """Mutable state of one live preview.

    ``preview_url`` is set if and only if ``status`` is READY; ``transition`` is the
    only mutator for either field.
    """

    log_cap: int = 100
    status: ContainerStatus = ContainerStatus.IDLE
    preview_url: str | None = None
    mounted_fingerprint: str | None = None
    error_message: str | None = None
    log_lines: deque[LogLine] = field(init=False)

    def __post_init__(self) -> None:
        self.log_lines = deque(maxlen=self.log_cap)

    def transition(self, status: ContainerStatus, preview_url: str | None = None) -> None:
        if status is ContainerStatus.READY and not preview_url:
            raise ValueError("READY requires a preview URL")
        if status is not ContainerStatus.READY and preview_url:
            raise ValueError(f"Preview URL is only valid in READY, not {status.value}")
        self.status = status
        self.preview_url = preview_url
        if status is not ContainerStatus.ERROR:
            self.error_message = None

    def fail(self, message: str) -> None:
        self.transition(ContainerStatus.ERROR)
        self.error_message = message

    def append_log(self, text: str) -> LogLine:
        line = LogLine(timestamp=time.time(), text=text)
        self.log_lines.append(line)
        return line

    def reset(self) -> None:
        """Forgets the mounted file map and returns to MOUNTING."""
        self.mounted_fingerprint = None
        self.transition(ContainerStatus.MOUNTING)
