"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    SPAWN_ERROR = 5
    IO_ERROR = 6
    VALIDATION_ERROR = 7


@dataclass
class TermDeckError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


class SpawnError(TermDeckError):
    """No usable shell, or the OS refused to start the PTY process."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.SPAWN_ERROR, hint=hint)


class WriteError(TermDeckError):
    """Input could not be delivered to a terminal process."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.IO_ERROR, hint=hint)


class ResizeError(TermDeckError):
    """A terminal process rejected a window size change."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.IO_ERROR, hint=hint)


class FlushError(TermDeckError):
    """Ring buffer could not be written to disk."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.IO_ERROR, hint=hint)


class OrphanCleanupError(TermDeckError):
    """An orphaned process vanished or refused termination."""

    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.RUNTIME_ERROR, hint=hint)


class ConfigError(TermDeckError):
    def __init__(self, message: str, *, hint: str = "") -> None:
        super().__init__(message, code=ExitCode.CONFIG_ERROR, hint=hint)


def user_facing_error(message: str, *, hint: str = "") -> str:
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
