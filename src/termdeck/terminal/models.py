"""Terminal session domain models."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum


class SessionStatus(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class Activity:
    label: str
    icon: str

    @property
    def badge(self) -> str:
        return f"{self.icon} {self.label}"


READY = Activity(label="Ready", icon="✓")


@dataclass
class Session:
    session_id: str
    working_directory: str = ""
    label: str = ""
    status: SessionStatus = SessionStatus.IDLE
    has_error: bool = False
    has_activity: bool = False
    is_blocked: bool = False
    activity: Activity | None = None
    last_line: str = ""
    exit_code: int | None = None
    shell_alive: bool = False

    def clear_indicators(self) -> None:
        self.has_error = False
        self.has_activity = False
        self.is_blocked = False
        self.activity = None


@dataclass
class ProcessHandle:
    session_id: str
    pid: int
    command: tuple[str, ...]
    started_at: float = field(default_factory=time.time)
    alive: bool = True
    killed: bool = False


@dataclass(frozen=True)
class PidLockEntry:
    session_id: str
    pid: int
    timestamp: int

    def to_dict(self) -> dict[str, object]:
        return {"sessionId": self.session_id, "pid": self.pid, "timestamp": self.timestamp}


@dataclass(frozen=True)
class CommandBlock:
    command: str
    output: tuple[str, ...]
    timestamp: int
    has_error: bool = False

    def is_empty(self) -> bool:
        return not self.command and not self.output


@dataclass(frozen=True)
class OutputSnapshot:
    lines: list[str]
    count: int


def now_millis() -> int:
    return int(time.time() * 1000)
