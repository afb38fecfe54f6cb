from __future__ import annotations

import io
import logging as py_logging
import threading
from pathlib import Path

import pytest

import termdeck.logging as td_logging


@pytest.fixture(autouse=True)
def _no_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(td_logging.LOG_LEVEL_ENV, raising=False)


def test_configures_package_root_logger() -> None:
    logger = td_logging.configure_logging("INFO")

    assert logger is py_logging.getLogger("termdeck")
    assert logger.propagate is False
    assert len(logger.handlers) == 1


def test_env_override_wins_over_argument(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(td_logging.LOG_LEVEL_ENV, "debug")

    logger = td_logging.configure_logging("ERROR")

    assert logger.level == py_logging.DEBUG


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("warning", py_logging.WARNING),
        ("WARN", py_logging.WARNING),
        ("bogus", py_logging.INFO),
        (None, py_logging.INFO),
    ],
)
def test_resolve_level(name: str | None, expected: int) -> None:
    assert td_logging.resolve_level(name) == expected


def test_reader_thread_records_carry_thread_and_module_names() -> None:
    stream = io.StringIO()
    td_logging.configure_logging("DEBUG", stream)
    module_logger = py_logging.getLogger("termdeck.terminal.pty_backend")

    worker = threading.Thread(
        target=lambda: module_logger.info("terminal-event session=%s step=%s message=%s", "s1", "spawn", "PID=1"),
        name="termdeck-pty-s1",
    )
    worker.start()
    worker.join()

    line = stream.getvalue().strip()
    assert " INFO termdeck-pty-s1 termdeck.terminal.pty_backend:" in line
    assert line.endswith("terminal-event session=s1 step=spawn message=PID=1")


def test_file_handler_keeps_debug_while_console_is_quiet(tmp_path: Path) -> None:
    stream = io.StringIO()
    log_file = tmp_path / "logs" / "termdeck.log"
    td_logging.configure_logging("DEBUG", stream, log_file=log_file)
    logger = py_logging.getLogger("termdeck")
    logger.handlers[0].setLevel(py_logging.ERROR)

    py_logging.getLogger("termdeck.terminal.capture").debug("Buffer flushed session=%s", "s1")
    for handler in logger.handlers:
        handler.flush()

    assert stream.getvalue() == ""
    assert "Buffer flushed session=s1" in log_file.read_text(encoding="utf-8")


def test_unwritable_log_file_keeps_console_logging(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file", encoding="utf-8")

    logger = td_logging.configure_logging("INFO", log_file=blocker / "termdeck.log")

    assert [type(handler) for handler in logger.handlers] == [py_logging.StreamHandler]
