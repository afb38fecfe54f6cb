"""Bounded per-session output capture with periodic disk flush."""

from __future__ import annotations

import logging as py_logging
import os
import re
import threading
from collections import deque
from collections.abc import Iterable
from pathlib import Path

from termdeck.errors import FlushError
from termdeck.terminal.models import OutputSnapshot

logger = py_logging.getLogger(__name__)

DEFAULT_CAPACITY = 200
DEFAULT_FLUSH_INTERVAL = 2.0
MAX_PENDING_CHARS = 4096

_UNSAFE_NAME_RE = re.compile(r"[^A-Za-z0-9._-]")


def buffer_file_name(session_id: str) -> str:
    name = _UNSAFE_NAME_RE.sub("_", session_id)
    if name in {"", ".", ".."}:
        name = "_" + name.replace(".", "_")
    return f"{name}.log"


class RingBuffer:
    """Fixed-capacity line store; the oldest line is evicted first."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError(f"Invalid ring buffer capacity: {capacity}")
        self._lines: deque[str] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._lines.maxlen or 0

    def append(self, line: str) -> None:
        self._lines.append(line)

    def extend(self, lines: Iterable[str]) -> None:
        self._lines.extend(lines)

    def lines(self) -> list[str]:
        return list(self._lines)

    def __len__(self) -> int:
        return len(self._lines)


class OutputCapture:
    def __init__(
        self,
        buffers_dir: str | Path,
        *,
        capacity: int = DEFAULT_CAPACITY,
        flush_interval: float = DEFAULT_FLUSH_INTERVAL,
    ) -> None:
        self.buffers_dir = Path(buffers_dir).expanduser()
        self.capacity = capacity
        self.flush_interval = flush_interval
        self._buffers: dict[str, RingBuffer] = {}
        self._pending: dict[str, str] = {}
        self._dirty: set[str] = set()
        self._lock = threading.Lock()
        # Held across snapshot and write so an older snapshot never lands last.
        self._write_lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def append(self, session_id: str, clean_text: str) -> None:
        text = self._pending.get(session_id, "") + clean_text.replace("\r", "")
        parts = text.split("\n")
        pending = parts.pop()[-MAX_PENDING_CHARS:]
        with self._lock:
            buffer = self._buffers.get(session_id)
            if buffer is None:
                buffer = RingBuffer(self.capacity)
                self._buffers[session_id] = buffer
            buffer.extend(line for line in parts if line.strip())
            self._pending[session_id] = pending
            self._dirty.add(session_id)

    def read_output(self, session_id: str) -> OutputSnapshot:
        with self._lock:
            lines = self._snapshot_locked(session_id)
        return OutputSnapshot(lines=lines, count=len(lines))

    def session_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._buffers)

    def flush(self, session_id: str | None = None) -> list[Path]:
        """Write dirty buffers to disk now. Failures stay dirty for the next tick."""
        with self._write_lock:
            with self._lock:
                if session_id is None:
                    targets = sorted(self._dirty)
                else:
                    targets = [session_id] if session_id in self._buffers else []
                payloads = {target: self._snapshot_locked(target) for target in targets}
                self._dirty.difference_update(targets)

            written: list[Path] = []
            for target, lines in payloads.items():
                try:
                    written.append(self._write_buffer(target, lines))
                except FlushError as exc:
                    logger.warning("Buffer flush failed session=%s: %s", target, exc)
                    with self._lock:
                        if target in self._buffers:
                            self._dirty.add(target)
        return written

    def discard(self, session_id: str) -> None:
        self.flush(session_id)
        with self._lock:
            self._buffers.pop(session_id, None)
            self._pending.pop(session_id, None)
            self._dirty.discard(session_id)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="termdeck-flush", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=max(self.flush_interval, 1.0) * 2)
        self.flush()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while not self._stop.wait(self.flush_interval):
            self.flush()

    def _snapshot_locked(self, session_id: str) -> list[str]:
        buffer = self._buffers.get(session_id)
        if buffer is None:
            return []
        lines = buffer.lines()
        pending = self._pending.get(session_id, "")
        if pending.strip():
            lines.append(pending)
        return lines[-buffer.capacity :]

    def _write_buffer(self, session_id: str, lines: list[str]) -> Path:
        target = self.buffers_dir / buffer_file_name(session_id)
        temp = target.with_name(target.name + ".tmp")
        try:
            self.buffers_dir.mkdir(parents=True, exist_ok=True)
            temp.write_text("\n".join(lines), encoding="utf-8")
            os.replace(temp, target)
        except OSError as exc:
            raise FlushError(
                f"Failed to flush output buffer for {session_id}.",
                hint=str(exc) or "Check permissions on the buffers directory.",
            ) from exc
        return target
