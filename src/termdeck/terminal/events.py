"""Event channel produced by the terminal core for UI collaborators."""

from __future__ import annotations

import logging as py_logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from termdeck.terminal.models import Activity, CommandBlock, SessionStatus

logger = py_logging.getLogger(__name__)


class EventKind(str, Enum):
    DATA = "data"
    EXIT = "exit"
    ERROR_DETECTED = "error-detected"
    BLOCKED_ON_INPUT = "blocked-on-input"
    PROMPT_DETECTED = "prompt-detected"
    COMMAND_BLOCK_COMMITTED = "command-block-committed"
    ACTIVITY = "activity"
    STATUS_CHANGED = "status-changed"
    SPAWN_FAILED = "spawn-failed"
    SESSION_REMOVED = "session-removed"


@dataclass(frozen=True)
class SessionEvent:
    kind: EventKind
    session_id: str
    data: str = ""
    exit_code: int | None = None
    prompt: str = ""
    block: CommandBlock | None = None
    activity: Activity | None = None
    status: SessionStatus | None = None
    message: str = ""


Listener = Callable[[SessionEvent], None]


class EventHub:
    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: SessionEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Event listener failed kind=%s session=%s", event.kind.value, event.session_id)
