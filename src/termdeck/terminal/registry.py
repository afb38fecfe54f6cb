"""Session registry: the command and event surface of the terminal core."""

from __future__ import annotations

import logging as py_logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass

from termdeck.config import AppConfig
from termdeck.errors import ExitCode, SpawnError, TermDeckError
from termdeck.terminal.blocks import BlockSegmenter
from termdeck.terminal.capture import OutputCapture
from termdeck.terminal.classifier import StreamClassifier, StreamSignals
from termdeck.terminal.event_log import SessionEventLog
from termdeck.terminal.events import EventHub, EventKind, Listener, SessionEvent
from termdeck.terminal.models import CommandBlock, OutputSnapshot, ProcessHandle, Session, SessionStatus
from termdeck.terminal.pidlock import OrphanCleanupReport, PidLock
from termdeck.terminal.pty_backend import PtyBackend, PtySpawn

logger = py_logging.getLogger(__name__)


@dataclass
class SessionPipeline:
    classifier: StreamClassifier
    segmenter: BlockSegmenter


class SessionRegistry:
    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        backend: PtyBackend | None = None,
        capture: OutputCapture | None = None,
        event_log: SessionEventLog | None = None,
        spawn: PtySpawn | None = None,
        hub: EventHub | None = None,
    ) -> None:
        self.config = config or AppConfig()
        if event_log is None and backend is None:
            event_log = SessionEventLog(
                self.config.session_log_path(),
                max_lines=self.config.session_log_max_lines,
                keep_lines=self.config.session_log_keep_lines,
            )
        self._event_log = event_log
        self._backend = backend or PtyBackend(
            spawn,
            pid_lock=PidLock(self.config.pids_path()),
            event_log=event_log,
            shell=self.config.shell,
            term_name=self.config.term_name,
        )
        self._capture = capture or OutputCapture(
            self.config.buffers_path(),
            capacity=self.config.ring_buffer_lines,
            flush_interval=self.config.flush_interval_seconds,
        )
        self._hub = hub or EventHub()
        self._sessions: dict[str, Session] = {}
        self._pipelines: dict[str, SessionPipeline] = {}
        self._lock = threading.RLock()
        self._active_id: str | None = None
        self._started = False
        self._backend.set_data_callback(self._on_data)
        self._backend.set_exit_callback(self._on_exit)

    @property
    def backend(self) -> PtyBackend:
        return self._backend

    @property
    def active_id(self) -> str | None:
        return self._active_id

    def start(self) -> OrphanCleanupReport:
        """Recover orphans from a previous run and start the flush timer. Idempotent."""
        with self._lock:
            if self._started:
                return OrphanCleanupReport()
            self._started = True
        report = self._backend.recover_orphans(grace_seconds=self.config.orphan_grace_seconds)
        self._capture.start()
        return report

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self._hub.subscribe(listener)

    def spawn(
        self,
        session_id: str,
        *,
        cols: int | None = None,
        rows: int | None = None,
        working_directory: str = "",
        extra_env: Mapping[str, str] | None = None,
        label: str = "",
    ) -> ProcessHandle:
        self.start()
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(session_id=session_id, working_directory=working_directory, label=label)
                self._sessions[session_id] = session
            else:
                session.working_directory = working_directory or session.working_directory
                session.label = label or session.label
            pipeline = self._pipelines.get(session_id)
            if pipeline is None:
                pipeline = self._new_pipeline()
                self._pipelines[session_id] = pipeline

        if self._backend.is_alive(session_id):
            # Joins the old reader, so no stale chunk reaches the reset classifier.
            self._backend.kill(session_id)
        pipeline.classifier.reset()

        try:
            handle = self._backend.spawn(
                session_id,
                cols=cols or self.config.default_cols,
                rows=rows or self.config.default_rows,
                working_directory=session.working_directory or None,
                extra_env=extra_env,
            )
        except SpawnError as exc:
            with self._lock:
                session.shell_alive = False
            self._set_status(session, SessionStatus.ERROR)
            self._publish(SessionEvent(EventKind.SPAWN_FAILED, session_id, message=str(exc)))
            raise

        with self._lock:
            session.shell_alive = True
            session.exit_code = None
        self._set_status(session, SessionStatus.IDLE)
        return handle

    def write(self, session_id: str, payload: str | bytes) -> None:
        self._backend.write(session_id, payload)

    def resize(self, session_id: str, *, cols: int, rows: int) -> None:
        self._backend.resize(session_id, cols=cols, rows=rows)

    def interrupt(self, session_id: str) -> None:
        self._backend.interrupt(session_id)

    def kill(self, session_id: str) -> None:
        if not self._backend.is_alive(session_id):
            return
        self._backend.kill(session_id)
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                session.shell_alive = False
        self._capture.flush(session_id)

    def read_output(self, session_id: str) -> OutputSnapshot:
        return self._capture.read_output(session_id)

    def blocks(self, session_id: str) -> list[CommandBlock]:
        pipeline = self._pipelines.get(session_id)
        return pipeline.segmenter.history() if pipeline is not None else []

    def open_block(self, session_id: str) -> CommandBlock | None:
        pipeline = self._pipelines.get(session_id)
        return pipeline.segmenter.open_block() if pipeline is not None else None

    def set_active(self, session_id: str) -> Session:
        with self._lock:
            session = self._must_get(session_id)
            self._active_id = session_id
            # Looking at a session acknowledges its indicators.
            session.clear_indicators()
        return session

    def set_status(self, session_id: str, status: SessionStatus | str) -> Session:
        session = self._must_get(session_id)
        self._set_status(session, SessionStatus(status))
        return session

    def broadcast(self, payload: str | bytes) -> list[str]:
        targets = [handle.session_id for handle in self._backend.list_handles()]
        for session_id in targets:
            self._backend.write(session_id, payload)
        return targets

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_all(self) -> list[Session]:
        with self._lock:
            return [self._sessions[key] for key in sorted(self._sessions)]

    def remove(self, session_id: str) -> None:
        with self._lock:
            if session_id not in self._sessions:
                return
        self._backend.kill(session_id)
        self._capture.discard(session_id)
        with self._lock:
            self._sessions.pop(session_id, None)
            self._pipelines.pop(session_id, None)
            if self._active_id == session_id:
                remaining = sorted(self._sessions)
                self._active_id = None
                if remaining:
                    self._active_id = remaining[0]
                    self._sessions[remaining[0]].clear_indicators()
        self._publish(SessionEvent(EventKind.SESSION_REMOVED, session_id))

    def shutdown(self) -> None:
        if self._event_log is not None:
            self._event_log.append("APP_QUIT")
        self._backend.stop_all()
        self._capture.stop()
        with self._lock:
            for session in self._sessions.values():
                session.shell_alive = False

    def _new_pipeline(self) -> SessionPipeline:
        return SessionPipeline(
            classifier=StreamClassifier(),
            segmenter=BlockSegmenter(
                history_limit=self.config.block_history_limit,
                min_block_chars=self.config.min_block_chars,
            ),
        )

    def _on_data(self, session_id: str, chunk: str) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            pipeline = self._pipelines.get(session_id)
        if session is None or pipeline is None:
            return

        self._publish(SessionEvent(EventKind.DATA, session_id, data=chunk))
        signals = pipeline.classifier.feed(chunk)
        self._capture.append(session_id, signals.clean)
        events = self._apply_signals(session, signals)

        committed = pipeline.segmenter.feed(signals)
        if signals.boundary:
            pipeline.classifier.mark_boundary()
            events.append(SessionEvent(EventKind.PROMPT_DETECTED, session_id, prompt=signals.trailing.strip()))
        if committed is not None:
            events.append(SessionEvent(EventKind.COMMAND_BLOCK_COMMITTED, session_id, block=committed))

        for event in events:
            self._publish(event)

        if signals.prompt:
            self._set_status(session, SessionStatus.IDLE)
        elif signals.last_line and session.status == SessionStatus.IDLE:
            self._set_status(session, SessionStatus.WORKING)

    def _apply_signals(self, session: Session, signals: StreamSignals) -> list[SessionEvent]:
        session_id = session.session_id
        events: list[SessionEvent] = []
        with self._lock:
            is_active = session_id == self._active_id
            if signals.last_line:
                session.last_line = signals.last_line
            if signals.error:
                session.has_error = True
                events.append(SessionEvent(EventKind.ERROR_DETECTED, session_id, message=signals.last_line))
            if not is_active and signals.clean.strip():
                session.has_activity = True
            # No alert for the terminal the user is already looking at.
            if signals.blocked and not is_active:
                session.is_blocked = True
                events.append(SessionEvent(EventKind.BLOCKED_ON_INPUT, session_id, prompt=signals.last_line))
            if signals.activity is not None and signals.activity != session.activity:
                session.activity = signals.activity
                events.append(SessionEvent(EventKind.ACTIVITY, session_id, activity=signals.activity))
        return events

    def _on_exit(self, session_id: str, exit_code: int) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            session.shell_alive = False
            session.exit_code = exit_code
        self._capture.flush(session_id)
        self._set_status(session, SessionStatus.DONE)
        self._publish(SessionEvent(EventKind.EXIT, session_id, exit_code=exit_code))

    def _set_status(self, session: Session, status: SessionStatus) -> None:
        with self._lock:
            if session.status == status:
                return
            session.status = status
        logger.debug("Session status session=%s status=%s", session.session_id, status.value)
        self._publish(SessionEvent(EventKind.STATUS_CHANGED, session.session_id, status=status))

    def _publish(self, event: SessionEvent) -> None:
        self._hub.publish(event)

    def _must_get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise TermDeckError(
                f"Session not found: {session_id}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Spawn the session before addressing it.",
            )
        return session
