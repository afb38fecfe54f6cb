"""Errors module edge case tests."""

from __future__ import annotations

import pytest

from termdeck.errors import (
    ConfigError,
    ExitCode,
    FlushError,
    OrphanCleanupError,
    ResizeError,
    SpawnError,
    TermDeckError,
    WriteError,
    user_facing_error,
)


def test_user_facing_error_without_hint() -> None:
    result = user_facing_error("something went wrong")
    assert result == "Error: something went wrong."


def test_user_facing_error_with_hint() -> None:
    result = user_facing_error("something went wrong", hint="try again")
    assert result == "Error: something went wrong. Next step: try again"


def test_exit_code_values() -> None:
    assert int(ExitCode.SUCCESS) == 0
    assert int(ExitCode.INVALID_ARGS) == 2
    assert int(ExitCode.CONFIG_ERROR) == 3
    assert int(ExitCode.RUNTIME_ERROR) == 4
    assert int(ExitCode.SPAWN_ERROR) == 5
    assert int(ExitCode.IO_ERROR) == 6
    assert int(ExitCode.VALIDATION_ERROR) == 7


def test_termdeck_error_str_with_hint() -> None:
    error = TermDeckError("msg", hint="hint")
    assert str(error) == "msg Hint: hint"


def test_termdeck_error_str_without_hint() -> None:
    assert str(TermDeckError("msg")) == "msg"


@pytest.mark.parametrize(
    ("error_type", "code"),
    [
        (SpawnError, ExitCode.SPAWN_ERROR),
        (WriteError, ExitCode.IO_ERROR),
        (ResizeError, ExitCode.IO_ERROR),
        (FlushError, ExitCode.IO_ERROR),
        (OrphanCleanupError, ExitCode.RUNTIME_ERROR),
        (ConfigError, ExitCode.CONFIG_ERROR),
    ],
)
def test_typed_errors_carry_exit_codes(error_type: type[TermDeckError], code: ExitCode) -> None:
    error = error_type("failure", hint="retry")

    assert isinstance(error, TermDeckError)
    assert error.code == code
    assert error.message == "failure"
    assert error.hint == "retry"


def test_spawn_error_can_be_raised_and_caught_as_base() -> None:
    with pytest.raises(TermDeckError) as exc:
        raise SpawnError("no shell")

    assert exc.value.code == ExitCode.SPAWN_ERROR
