"""Terminal process orchestration and output-stream processing."""

from .ansi import AnsiStripper, strip_ansi
from .blocks import BlockSegmenter
from .capture import OutputCapture, RingBuffer
from .classifier import (
    StreamClassifier,
    StreamSignals,
    classify_activity,
    has_error_signal,
    is_blocked_prompt,
    is_shell_prompt,
)
from .event_log import SessionEventLog
from .events import EventHub, EventKind, SessionEvent
from .models import (
    READY,
    Activity,
    CommandBlock,
    OutputSnapshot,
    PidLockEntry,
    ProcessHandle,
    Session,
    SessionStatus,
)
from .pidlock import OrphanCleanupReport, PidLock, cleanup_orphans
from .pty_backend import PtyBackend, PtyProcessAdapter, spawn_default_pty
from .registry import SessionRegistry
from .shell import build_child_env, build_shell_command, build_task_env, resolve_shell

__all__ = [
    "Activity",
    "AnsiStripper",
    "BlockSegmenter",
    "build_child_env",
    "build_shell_command",
    "build_task_env",
    "classify_activity",
    "cleanup_orphans",
    "CommandBlock",
    "EventHub",
    "EventKind",
    "has_error_signal",
    "is_blocked_prompt",
    "is_shell_prompt",
    "OrphanCleanupReport",
    "OutputCapture",
    "OutputSnapshot",
    "PidLock",
    "PidLockEntry",
    "ProcessHandle",
    "PtyBackend",
    "PtyProcessAdapter",
    "READY",
    "resolve_shell",
    "RingBuffer",
    "Session",
    "SessionEvent",
    "SessionEventLog",
    "SessionRegistry",
    "SessionStatus",
    "spawn_default_pty",
    "StreamClassifier",
    "StreamSignals",
    "strip_ansi",
]
