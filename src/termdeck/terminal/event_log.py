"""Append-only diagnostic log of spawn/exit/kill events."""

from __future__ import annotations

import logging as py_logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

logger = py_logging.getLogger(__name__)

DEFAULT_MAX_LINES = 10_000
DEFAULT_KEEP_LINES = 5_000


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SessionEventLog:
    """Human-readable ``[timestamp] EVENT`` lines, trimmed to the newest entries.

    Once the file grows past ``max_lines`` it is rewritten with only the last
    ``keep_lines`` lines. Write failures are logged and otherwise ignored; the
    log is diagnostics only.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        max_lines: int = DEFAULT_MAX_LINES,
        keep_lines: int = DEFAULT_KEEP_LINES,
        clock: Callable[[], str] = _utc_timestamp,
    ) -> None:
        if keep_lines < 1 or keep_lines > max_lines:
            raise ValueError(f"Invalid rotation window: keep={keep_lines} max={max_lines}")
        self.path = Path(path).expanduser()
        self.max_lines = max_lines
        self.keep_lines = keep_lines
        self._clock = clock
        self._lock = threading.Lock()
        self._line_count: int | None = None

    def append(self, event: str) -> None:
        line = f"[{self._clock()}] {event}\n"
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                if self._line_count is None:
                    self._line_count = self._count_lines()
                with self.path.open("a", encoding="utf-8") as handle:
                    handle.write(line)
                self._line_count += 1
                if self._line_count > self.max_lines:
                    self._rotate()
            except OSError as exc:
                logger.debug("Session log write failed path=%s: %s", self.path, exc)
                self._line_count = None

    def tail(self, count: int = 50) -> list[str]:
        if count <= 0:
            return []
        try:
            with self.path.open(encoding="utf-8", errors="replace") as handle:
                return [line.rstrip("\n") for line in deque(handle, maxlen=count)]
        except OSError:
            return []

    def _count_lines(self) -> int:
        if not self.path.exists():
            return 0
        with self.path.open(encoding="utf-8", errors="replace") as handle:
            return sum(1 for _ in handle)

    def _rotate(self) -> None:
        with self.path.open(encoding="utf-8", errors="replace") as handle:
            kept = list(deque(handle, maxlen=self.keep_lines))
        self.path.write_text("".join(kept), encoding="utf-8")
        self._line_count = len(kept)
        logger.debug("Session log rotated path=%s kept=%s", self.path, len(kept))
