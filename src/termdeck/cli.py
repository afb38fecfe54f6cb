"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import logging as py_logging
import sys
import threading
from collections.abc import Sequence
from pathlib import Path
from typing import TextIO

from .config import AppConfig, get_config_path, load_config
from .errors import ConfigError, ExitCode, TermDeckError, user_facing_error
from .logging import configure_logging, default_log_path
from .terminal import (
    EventKind,
    PidLock,
    SessionEvent,
    SessionEventLog,
    SessionRegistry,
    build_task_env,
    cleanup_orphans,
)
from .terminal.capture import buffer_file_name

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_EXIT_WAIT_SECONDS = 5.0


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def _env_pair_type(value: str) -> tuple[str, str]:
    key, sep, payload = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError("--env must look like KEY=VALUE")
    return key.strip(), payload


def _task_type(value: str) -> dict[str, str]:
    task_id, sep, title = value.partition(":")
    if not sep or not task_id.strip():
        raise argparse.ArgumentTypeError("--task must look like ID:TITLE")
    return {"id": task_id.strip(), "title": title.strip()}


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("value must be an integer") from exc
    if number <= 0:
        raise argparse.ArgumentTypeError("value must be positive")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="termdeck")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--log-level", type=_log_level_type, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)
    commands = parser.add_subparsers(dest="command", required=True)

    attach = commands.add_parser("attach", help="Spawn a shell session and relay stdin to it")
    attach.add_argument("--id", dest="session_id", default="s1")
    attach.add_argument("--cwd", default="")
    attach.add_argument("--env", type=_env_pair_type, action="append", default=[])
    attach.add_argument("--task", type=_task_type, action="append", default=[])
    attach.add_argument("--timer-state", default="unknown")

    read_output = commands.add_parser("read-output", help="Print a session's flushed output buffer")
    read_output.add_argument("session_id")

    log = commands.add_parser("log", help="Print the tail of the session event log")
    log.add_argument("--lines", type=_positive_int, default=50)

    commands.add_parser("cleanup-orphans", help="Terminate processes left by an unclean shutdown")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = build_parser()
    return parser.parse_args(argv)


def resolve_config(namespace: argparse.Namespace) -> AppConfig:
    if namespace.config is not None and not get_config_path(namespace.config).exists():
        raise ConfigError(
            f"Config file not found: {namespace.config}",
            hint="Pass an existing TOML file or drop --config.",
        )
    return load_config(namespace.config)


def run_attach(
    namespace: argparse.Namespace,
    config: AppConfig,
    *,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
    registry: SessionRegistry | None = None,
) -> int:
    source = stdin or sys.stdin
    sink = stdout or sys.stdout
    session_id = namespace.session_id
    registry = registry or SessionRegistry(config)
    exited = threading.Event()
    exit_codes: list[int] = []

    def relay(event: SessionEvent) -> None:
        if event.session_id != session_id:
            return
        if event.kind == EventKind.DATA:
            sink.write(event.data)
            sink.flush()
        elif event.kind == EventKind.EXIT:
            exit_codes.append(event.exit_code or 0)
            exited.set()

    extra_env = build_task_env(namespace.task, task_count=len(namespace.task), timer_state=namespace.timer_state)
    extra_env.update(dict(namespace.env))

    unsubscribe = registry.subscribe(relay)
    try:
        registry.spawn(session_id, working_directory=namespace.cwd, extra_env=extra_env)
        registry.set_active(session_id)
        for line in source:
            if exited.is_set():
                break
            registry.write(session_id, line)
        if not exited.is_set():
            registry.write(session_id, "exit\n")
            exited.wait(_EXIT_WAIT_SECONDS)
        blocks = registry.blocks(session_id)
        failed = sum(1 for block in blocks if block.has_error)
        summary = f"[termdeck] {len(blocks)} command blocks, {failed} with errors"
        session = registry.get(session_id)
        if session is not None and session.activity is not None:
            summary += f", last activity {session.activity.badge}"
        print(summary, file=sys.stderr)
    finally:
        unsubscribe()
        registry.shutdown()

    if not exit_codes:
        return int(ExitCode.RUNTIME_ERROR)
    return int(ExitCode.SUCCESS) if exit_codes[0] == 0 else int(ExitCode.RUNTIME_ERROR)


def run_read_output(namespace: argparse.Namespace, config: AppConfig, *, stdout: TextIO | None = None) -> int:
    sink = stdout or sys.stdout
    path = config.buffers_path() / buffer_file_name(namespace.session_id)
    if not path.exists():
        raise TermDeckError(
            f"No output buffer for session {namespace.session_id}",
            code=ExitCode.VALIDATION_ERROR,
            hint=f"Expected {path}; buffers are written while a session runs.",
        )
    content = path.read_text(encoding="utf-8", errors="replace")
    sink.write(content + ("\n" if content and not content.endswith("\n") else ""))
    return int(ExitCode.SUCCESS)


def run_log(namespace: argparse.Namespace, config: AppConfig, *, stdout: TextIO | None = None) -> int:
    sink = stdout or sys.stdout
    event_log = SessionEventLog(
        config.session_log_path(),
        max_lines=config.session_log_max_lines,
        keep_lines=config.session_log_keep_lines,
    )
    lines = event_log.tail(namespace.lines)
    if not lines:
        sink.write("No session log yet.\n")
        return int(ExitCode.SUCCESS)
    sink.write("\n".join(lines) + "\n")
    return int(ExitCode.SUCCESS)


def run_cleanup_orphans(config: AppConfig, *, stdout: TextIO | None = None) -> int:
    sink = stdout or sys.stdout
    report = cleanup_orphans(PidLock(config.pids_path()), grace_seconds=config.orphan_grace_seconds)
    sink.write(
        f"terminated={len(report.terminated)} killed={len(report.killed)} skipped={len(report.skipped)}\n"
    )
    return int(ExitCode.SUCCESS)


def run_command(namespace: argparse.Namespace, config: AppConfig) -> int:
    if namespace.command == "attach":
        return run_attach(namespace, config)
    if namespace.command == "read-output":
        return run_read_output(namespace, config)
    if namespace.command == "log":
        return run_log(namespace, config)
    if namespace.command == "cleanup-orphans":
        return run_cleanup_orphans(config)
    raise TermDeckError(
        f"Unknown command: {namespace.command}",
        code=ExitCode.INVALID_ARGS,
        hint="Run termdeck --help.",
    )


def main(argv: Sequence[str] | None = None) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    logger = configure_logging(level=namespace.log_level, log_file=log_path)

    try:
        config = resolve_config(namespace)
        logger.debug("Running command %s", namespace.command)
        return run_command(namespace, config)
    except TermDeckError as exc:
        logger.error(
            "Handled TermDeckError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=logger.isEnabledFor(py_logging.DEBUG),
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except KeyboardInterrupt:
        return int(ExitCode.RUNTIME_ERROR)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        print(user_facing_error("Unexpected runtime failure", hint=f"Inspect logs: {log_path}"), file=sys.stderr)
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
