"""Shell resolution and child environment construction."""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping

from termdeck.errors import SpawnError

POSIX_FALLBACK_SHELLS = ("/bin/zsh", "/bin/bash", "/bin/sh")
WINDOWS_FALLBACK_SHELLS = ("powershell.exe", "cmd.exe")
TASK_ENV_PREFIX = "TERMDECK_"


def _usable(candidate: str) -> str | None:
    if not candidate:
        return None
    if os.path.isabs(candidate):
        return candidate if os.path.isfile(candidate) and os.access(candidate, os.X_OK) else None
    return shutil.which(candidate)


def resolve_shell(preferred: str = "", *, env: Mapping[str, str] | None = None) -> str:
    """Return an executable shell path, trying preferred, $SHELL, then fallbacks."""
    source = os.environ if env is None else env
    fallbacks = WINDOWS_FALLBACK_SHELLS if os.name == "nt" else POSIX_FALLBACK_SHELLS
    candidates = [preferred.strip(), source.get("SHELL", "").strip(), *fallbacks]
    for candidate in candidates:
        resolved = _usable(candidate)
        if resolved:
            return resolved
    raise SpawnError(
        "No usable shell executable found.",
        hint="Set SHELL or the 'shell' config option to an installed shell.",
    )


def build_shell_command(shell_path: str) -> list[str]:
    if os.name == "nt" and os.path.basename(shell_path).lower().startswith("powershell"):
        return [shell_path, "-NoLogo", "-NoProfile"]
    return [shell_path]


def build_child_env(
    extra_env: Mapping[str, str] | None = None,
    *,
    term_name: str = "xterm-256color",
    base: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Environment for a child shell; the parent environment is never modified."""
    env = dict(os.environ if base is None else base)
    env["TERM"] = term_name
    env["COLORTERM"] = "truecolor"
    for key, value in (extra_env or {}).items():
        if value is None:
            continue
        env[str(key)] = str(value)
    return env


def build_task_env(
    active_tasks: list[Mapping[str, str]],
    *,
    task_count: int,
    timer_state: str = "unknown",
) -> dict[str, str]:
    """Task-context variables injected into agent shells."""
    env: dict[str, str] = {}
    if active_tasks:
        env[f"{TASK_ENV_PREFIX}ACTIVE_TASK"] = " | ".join(_describe_task(task) for task in active_tasks)
        env[f"{TASK_ENV_PREFIX}ACTIVE_TASK_IDS"] = ",".join(str(task.get("id", "")) for task in active_tasks)
    env[f"{TASK_ENV_PREFIX}TASK_COUNT"] = str(task_count)
    env[f"{TASK_ENV_PREFIX}TIMER_STATE"] = timer_state or "unknown"
    return env


def _describe_task(task: Mapping[str, str]) -> str:
    description = f"{task.get('id', '')}: {task.get('title', '')}"
    ticket = task.get("ticket", "")
    if ticket:
        description += f" [{ticket}]"
    return description


def resolve_working_directory(path: str | None) -> str:
    if path:
        expanded = os.path.expanduser(path)
        if os.path.isdir(expanded):
            return expanded
    return os.path.expanduser("~")
