"""PID lock persistence and orphaned process recovery."""

from __future__ import annotations

import json
import logging as py_logging
import os
from collections.abc import Iterable
from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path

import psutil

from termdeck.errors import OrphanCleanupError
from termdeck.terminal.models import PidLockEntry

logger = py_logging.getLogger(__name__)

DEFAULT_GRACE_SECONDS = 2.0


@dataclass
class OrphanCleanupReport:
    terminated: list[int] = field(default_factory=list)
    killed: list[int] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)


class PidLock:
    """Advisory snapshot of live ``(sessionId, pid, timestamp)`` tuples."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()

    def write(self, entries: Iterable[PidLockEntry]) -> None:
        payload = [entry.to_dict() for entry in entries]
        temp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            os.replace(temp, self.path)
        except OSError as exc:
            logger.warning("PID lock write failed path=%s: %s", self.path, exc)

    def read(self) -> list[PidLockEntry]:
        raw = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError("PID lock must contain a JSON array.")
        entries: list[PidLockEntry] = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            pid = item.get("pid")
            if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
                continue
            session_id = item.get("sessionId", item.get("id", ""))
            timestamp = item.get("timestamp", 0)
            entries.append(
                PidLockEntry(
                    session_id=str(session_id),
                    pid=pid,
                    timestamp=timestamp if isinstance(timestamp, int) else 0,
                )
            )
        return entries

    def exists(self) -> bool:
        return self.path.exists()

    def remove(self) -> None:
        with suppress(FileNotFoundError):
            self.path.unlink()


def cleanup_orphans(
    lock: PidLock,
    *,
    grace_seconds: float = DEFAULT_GRACE_SECONDS,
) -> OrphanCleanupReport:
    """Terminate processes recorded by a previous run, then delete the lock.

    Must run before any new session is spawned, otherwise fresh shells would
    be recorded in the same file.
    """
    report = OrphanCleanupReport()
    if not lock.exists():
        return report

    try:
        entries = lock.read()
    except (OSError, ValueError) as exc:
        logger.warning("Discarding unreadable PID lock path=%s: %s", lock.path, exc)
        lock.remove()
        return report

    survivors: list[psutil.Process] = []
    for entry in entries:
        try:
            process = _signal_orphan(entry)
        except OrphanCleanupError as exc:
            logger.debug("%s", exc)
            report.skipped.append(entry.pid)
            continue
        survivors.append(process)

    if survivors:
        gone, alive = psutil.wait_procs(survivors, timeout=grace_seconds)
        report.terminated.extend(process.pid for process in gone)
        for process in alive:
            with suppress(psutil.NoSuchProcess):
                process.kill()
            report.killed.append(process.pid)

    lock.remove()
    logger.info(
        "Orphan cleanup finished terminated=%s killed=%s skipped=%s",
        len(report.terminated),
        len(report.killed),
        len(report.skipped),
    )
    return report


def _signal_orphan(entry: PidLockEntry) -> psutil.Process:
    if entry.pid == os.getpid() or not psutil.pid_exists(entry.pid):
        raise OrphanCleanupError(f"Orphan PID={entry.pid} ({entry.session_id}) is not running.")
    try:
        process = psutil.Process(entry.pid)
        logger.info("Killing orphaned process PID=%s (%s)", entry.pid, entry.session_id)
        process.terminate()
    except psutil.NoSuchProcess as exc:
        raise OrphanCleanupError(f"Orphan PID={entry.pid} ({entry.session_id}) exited during cleanup.") from exc
    except psutil.AccessDenied as exc:
        raise OrphanCleanupError(
            f"Orphan PID={entry.pid} ({entry.session_id}) cannot be signalled.",
            hint="The PID was likely reused by a process owned by another user.",
        ) from exc
    return process
