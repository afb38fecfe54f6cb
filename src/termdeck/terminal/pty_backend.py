"""PTY process supervision: spawn, I/O relay, resize, kill and exit detection."""

from __future__ import annotations

import atexit
import codecs
import logging as py_logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Mapping
from contextlib import suppress

from termdeck.errors import ResizeError, SpawnError, WriteError
from termdeck.terminal.event_log import SessionEventLog
from termdeck.terminal.models import PidLockEntry, ProcessHandle
from termdeck.terminal.pidlock import DEFAULT_GRACE_SECONDS, OrphanCleanupReport, PidLock, cleanup_orphans
from termdeck.terminal.shell import (
    build_child_env,
    build_shell_command,
    resolve_shell,
    resolve_working_directory,
)

logger = py_logging.getLogger(__name__)

DEFAULT_COLS = 80
DEFAULT_ROWS = 24
READ_CHUNK_SIZE = 4096
READER_JOIN_SECONDS = 5.0

PtySpawn = Callable[[list[str], str, dict[str, str], tuple[int, int]], object]
DataCallback = Callable[[str, str], None]
ExitCallback = Callable[[str, int], None]


class PtyProcessAdapter:
    """Uniform text interface over ``ptyprocess`` and ``pywinpty`` processes."""

    def __init__(self, process: object, *, binary: bool) -> None:
        self._process = process
        self._binary = binary
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def pid(self) -> int:
        return int(getattr(self._process, "pid", 0) or 0)

    def read(self, size: int = READ_CHUNK_SIZE) -> str:
        chunk = self._process.read(size)
        if isinstance(chunk, bytes):
            return self._decoder.decode(chunk)
        return str(chunk or "")

    def write(self, payload: str | bytes) -> None:
        if self._binary and isinstance(payload, str):
            payload = payload.encode("utf-8")
        elif not self._binary and isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        self._process.write(payload)

    def set_size(self, cols: int, rows: int) -> None:
        self._process.setwinsize(rows, cols)

    def isalive(self) -> bool:
        return bool(self._process.isalive())

    def terminate(self, force: bool = False) -> bool:
        return bool(self._process.terminate(force=force))

    def close(self) -> None:
        self._process.close(force=True)

    def wait(self) -> int:
        self._process.wait()
        status = getattr(self._process, "exitstatus", None)
        if status is None:
            signal_status = getattr(self._process, "signalstatus", None)
            return -int(signal_status) if signal_status else -1
        return int(status)


def _spawn_with_ptyprocess(
    command: list[str], cwd: str, env: dict[str, str], dimensions: tuple[int, int]
) -> PtyProcessAdapter:
    try:
        from ptyprocess import PtyProcess
    except Exception as exc:
        raise SpawnError(
            "ptyprocess backend is unavailable.",
            hint="Install the ptyprocess package.",
        ) from exc
    process = PtyProcess.spawn(command, cwd=cwd, env=env, dimensions=dimensions)
    return PtyProcessAdapter(process, binary=True)


def _spawn_with_pywinpty(
    command: list[str], cwd: str, env: dict[str, str], dimensions: tuple[int, int]
) -> PtyProcessAdapter:
    try:
        from winpty import PtyProcess
    except Exception as exc:
        raise SpawnError(
            "pywinpty backend is unavailable.",
            hint="Install the pywinpty package on Windows.",
        ) from exc
    process = PtyProcess.spawn(subprocess.list2cmdline(command), cwd=cwd, env=env, dimensions=dimensions)
    return PtyProcessAdapter(process, binary=False)


def spawn_default_pty(
    command: list[str], cwd: str, env: dict[str, str], dimensions: tuple[int, int]
) -> PtyProcessAdapter:
    if os.name == "nt":
        return _spawn_with_pywinpty(command, cwd, env, dimensions)
    return _spawn_with_ptyprocess(command, cwd, env, dimensions)


class PtyBackend:
    """Owns every live shell process; sessions are referenced by id only."""

    def __init__(
        self,
        spawn: PtySpawn | None = None,
        *,
        pid_lock: PidLock | None = None,
        event_log: SessionEventLog | None = None,
        shell: str = "",
        term_name: str = "xterm-256color",
        read_size: int = READ_CHUNK_SIZE,
    ) -> None:
        self._spawn = spawn or spawn_default_pty
        self._pid_lock = pid_lock
        self._event_log = event_log
        self.shell = shell
        self.term_name = term_name
        self.read_size = read_size
        self._lock = threading.RLock()
        self._processes: dict[str, object] = {}
        self._handles: dict[str, ProcessHandle] = {}
        self._readers: dict[str, threading.Thread] = {}
        self._data_callback: DataCallback | None = None
        self._exit_callback: ExitCallback | None = None
        atexit.register(self.stop_all)

    def set_data_callback(self, callback: DataCallback | None) -> None:
        self._data_callback = callback

    def set_exit_callback(self, callback: ExitCallback | None) -> None:
        self._exit_callback = callback

    def recover_orphans(self, *, grace_seconds: float = DEFAULT_GRACE_SECONDS) -> OrphanCleanupReport:
        """Reclaim processes from an unclean previous run; call before the first spawn."""
        if self._pid_lock is None:
            return OrphanCleanupReport()
        if self._handles:
            logger.warning("Orphan recovery skipped; %s live sessions already spawned", len(self._handles))
            return OrphanCleanupReport()
        return cleanup_orphans(self._pid_lock, grace_seconds=grace_seconds)

    def spawn(
        self,
        session_id: str,
        *,
        cols: int = DEFAULT_COLS,
        rows: int = DEFAULT_ROWS,
        working_directory: str | None = None,
        extra_env: Mapping[str, str] | None = None,
    ) -> ProcessHandle:
        if self.is_alive(session_id):
            logger.info("Replacing live process for session=%s", session_id)
            self.kill(session_id)

        cwd = resolve_working_directory(working_directory)
        try:
            command = build_shell_command(resolve_shell(self.shell))
            env = build_child_env(extra_env, term_name=self.term_name)
            process = self._spawn(
                command,
                cwd,
                env,
                (rows if rows > 0 else DEFAULT_ROWS, cols if cols > 0 else DEFAULT_COLS),
            )
        except SpawnError as exc:
            self._record(session_id, "SPAWN_FAIL", f"ERROR={exc.message}")
            raise
        except Exception as exc:
            self._record(session_id, "SPAWN_FAIL", f"ERROR={exc}")
            raise SpawnError(
                f"Failed to spawn shell for {session_id}.",
                hint=str(exc) or "Check the shell installation and working directory.",
            ) from exc

        handle = ProcessHandle(
            session_id=session_id,
            pid=int(getattr(process, "pid", 0) or 0),
            command=tuple(command),
        )
        reader = threading.Thread(
            target=self._read_loop,
            args=(handle, process),
            name=f"termdeck-pty-{session_id}",
            daemon=True,
        )
        with self._lock:
            self._processes[session_id] = process
            self._handles[session_id] = handle
            self._readers[session_id] = reader
            self._write_pid_lock()
        self._record(session_id, "SPAWN", f"PID={handle.pid} CWD={cwd}")
        reader.start()
        return handle

    def write(self, session_id: str, payload: str | bytes) -> None:
        process = self._processes.get(session_id)
        if process is None:
            return
        try:
            process.write(payload)
        except Exception as exc:
            error = WriteError(f"Failed to write to terminal {session_id}.", hint=str(exc))
            logger.debug("%s", error)

    def resize(self, session_id: str, *, cols: int, rows: int) -> None:
        if cols <= 0 or rows <= 0:
            logger.debug("Ignoring invalid PTY size session=%s size=%sx%s", session_id, cols, rows)
            return
        process = self._processes.get(session_id)
        if process is None:
            return
        try:
            process.set_size(cols, rows)
        except Exception as exc:
            error = ResizeError(f"Failed to resize terminal {session_id}.", hint=str(exc))
            logger.debug("%s", error)

    def interrupt(self, session_id: str) -> None:
        # Ctrl+C passthrough for interactive shells.
        self.write(session_id, "\x03")

    def kill(self, session_id: str) -> None:
        with self._lock:
            process = self._processes.pop(session_id, None)
            handle = self._handles.pop(session_id, None)
            reader = self._readers.pop(session_id, None)
            if process is None:
                return
            self._write_pid_lock()
        pid = 0
        if handle is not None:
            handle.killed = True
            handle.alive = False
            pid = handle.pid
        # A blocked reader holds the PTY file lock, so close() must not run
        # before the child is gone; the reader closes the descriptor on EOF.
        _terminate_process(process, pid)
        if reader is not None and reader.is_alive() and reader is not threading.current_thread():
            reader.join(timeout=READER_JOIN_SECONDS)
            if reader.is_alive():
                logger.warning("PTY reader still blocked after kill session=%s pid=%s", session_id, pid)
        self._record(session_id, "KILL")

    def stop_all(self) -> None:
        for session_id in list(self._processes):
            self.kill(session_id)
        if self._pid_lock is not None:
            self._pid_lock.remove()

    def list_handles(self) -> list[ProcessHandle]:
        with self._lock:
            return [self._handles[key] for key in sorted(self._handles)]

    def get_handle(self, session_id: str) -> ProcessHandle | None:
        return self._handles.get(session_id)

    def is_alive(self, session_id: str) -> bool:
        return session_id in self._handles

    def _read_loop(self, handle: ProcessHandle, process: object) -> None:
        session_id = handle.session_id
        while not handle.killed:
            try:
                chunk = process.read(self.read_size)
            except (EOFError, OSError):
                break
            if not chunk:
                if not _is_alive(process):
                    break
                time.sleep(0.01)
                continue
            if handle.killed or self._handles.get(session_id) is not handle:
                break
            callback = self._data_callback
            if callback is None:
                continue
            try:
                callback(session_id, chunk)
            except Exception:
                logger.exception("Output handler failed session=%s", session_id)
        try:
            self._finish(handle, process)
        finally:
            _close_process(process)

    def _finish(self, handle: ProcessHandle, process: object) -> None:
        session_id = handle.session_id
        with self._lock:
            current = self._handles.get(session_id) is handle
            if current:
                self._processes.pop(session_id, None)
                self._handles.pop(session_id, None)
                self._readers.pop(session_id, None)
                self._write_pid_lock()
        handle.alive = False
        if handle.killed or not current:
            return

        exit_code = _exit_code(process)
        self._record(session_id, "EXIT", f"CODE={exit_code}")
        callback = self._exit_callback
        if callback is not None:
            try:
                callback(session_id, exit_code)
            except Exception:
                logger.exception("Exit handler failed session=%s", session_id)

    def _write_pid_lock(self) -> None:
        if self._pid_lock is None:
            return
        self._pid_lock.write(
            PidLockEntry(
                session_id=handle.session_id,
                pid=handle.pid,
                timestamp=int(handle.started_at * 1000),
            )
            for handle in self._handles.values()
        )

    def _record(self, session_id: str, step: str, detail: str = "") -> None:
        logger.info("terminal-event session=%s step=%s message=%s", session_id, step.lower(), detail)
        if self._event_log is not None:
            self._event_log.append(" ".join(part for part in (step, session_id, detail) if part))


def _close_process(process: object) -> None:
    if hasattr(process, "close"):
        with suppress(Exception):
            process.close()
    if _is_alive(process) and hasattr(process, "terminate"):
        with suppress(Exception):
            process.terminate(force=True)


def _terminate_process(process: object, pid: int) -> None:
    try:
        process.terminate(force=True)
    except Exception:
        if pid > 0:
            with suppress(ProcessLookupError, PermissionError):
                os.kill(pid, signal.SIGTERM)


def _is_alive(process: object) -> bool:
    if hasattr(process, "isalive"):
        try:
            return bool(process.isalive())
        except Exception:
            return False
    return False


def _exit_code(process: object) -> int:
    if not hasattr(process, "wait"):
        return 0
    try:
        return int(process.wait())
    except Exception:
        return -1
