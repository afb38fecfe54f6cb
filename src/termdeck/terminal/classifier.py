"""Heuristic signal detection over a chunked terminal output stream.

Every detection here is a best-effort pattern test. False positives and
negatives are expected; nothing in this module raises on malformed input.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from termdeck.terminal.ansi import AnsiStripper
from termdeck.terminal.models import READY, Activity

MAX_PARTIAL_LINE_CHARS = 4096

# Red / bright-red SGR introducers.
ERROR_COLOR_RE = re.compile(r"\x1b\[(?:31|91|1;31)m")
ERROR_KEYWORD_RE = re.compile(r"\b(?:error|Error|ERROR|FAILED|failed|exception|Exception)\b")
SHELL_PROMPT_RE = re.compile(r"[$%#❯➜]\s*$")

BLOCKED_PATTERNS = [
    r"\?\s*$",
    r"\[y/N\]",
    r"\[Y/n\]",
    r"password:",
    r"passphrase:",
    r"Enter.*:",
    r"Select.*:",
    r"Press.*continue",
    r"\(yes/no\)",
]
BLOCKED_PROMPT_RE = re.compile("|".join(BLOCKED_PATTERNS), re.IGNORECASE)

# Evaluated in order; the first match wins.
ACTIVITY_TABLE: tuple[tuple[re.Pattern[str], Activity], ...] = (
    (re.compile(r"searching|grep|find|looking", re.IGNORECASE), Activity("Searching...", "🔍")),
    (re.compile(r"thinking|analyzing|planning", re.IGNORECASE), Activity("Thinking...", "🧠")),
    (re.compile(r"writing|creating|editing|modifying", re.IGNORECASE), Activity("Writing...", "✏️")),
    (re.compile(r"installing|npm|pip|apt", re.IGNORECASE), Activity("Installing...", "📦")),
    (re.compile(r"testing|test|jest|vitest|pytest", re.IGNORECASE), Activity("Testing...", "🧪")),
    (re.compile(r"building|compiling|webpack|vite|tsc", re.IGNORECASE), Activity("Building...", "🔨")),
    (re.compile(r"deploying|deploy|push", re.IGNORECASE), Activity("Deploying...", "🚀")),
)


def has_error_signal(raw: str, clean: str) -> bool:
    # Color codes are checked on the raw chunk; stripping would erase them.
    return bool(ERROR_COLOR_RE.search(raw) or ERROR_KEYWORD_RE.search(clean))


def is_shell_prompt(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and SHELL_PROMPT_RE.search(stripped) is not None


def is_blocked_prompt(line: str) -> bool:
    stripped = line.strip()
    return bool(stripped) and BLOCKED_PROMPT_RE.search(stripped) is not None


def classify_activity(
    line: str,
    table: Sequence[tuple[re.Pattern[str], Activity]] = ACTIVITY_TABLE,
) -> Activity | None:
    """Return the badge for ``line``: ready on a prompt, else the first table hit."""
    if is_shell_prompt(line):
        return READY
    for pattern, activity in table:
        if pattern.search(line):
            return activity
    return None


@dataclass(frozen=True)
class StreamSignals:
    clean: str
    lines: tuple[str, ...]
    trailing: str
    last_line: str
    error: bool = False
    prompt: bool = False
    boundary: bool = False
    blocked: bool = False
    activity: Activity | None = None


class StreamClassifier:
    """Per-session classifier; holds escape carry-over and the unfinished line."""

    def __init__(
        self,
        *,
        activity_table: Sequence[tuple[re.Pattern[str], Activity]] = ACTIVITY_TABLE,
    ) -> None:
        self._stripper = AnsiStripper()
        self._partial = ""
        self._activity_table = activity_table

    @property
    def partial_line(self) -> str:
        return self._partial

    def feed(self, chunk: str) -> StreamSignals:
        raw = self._stripper.pending + chunk
        clean = self._stripper.feed(chunk).replace("\r", "")

        parts = (self._partial + clean).split("\n")
        trailing = parts.pop()
        if len(trailing) > MAX_PARTIAL_LINE_CHARS:
            trailing = trailing[-MAX_PARTIAL_LINE_CHARS:]
        self._partial = trailing

        non_blank = [item.strip() for item in (*parts, trailing) if item.strip()]
        last_line = non_blank[-1] if non_blank else ""

        return StreamSignals(
            clean=clean,
            lines=tuple(parts),
            trailing=trailing,
            last_line=last_line,
            error=has_error_signal(raw, clean),
            prompt=is_shell_prompt(last_line),
            boundary=is_shell_prompt(trailing),
            blocked=is_blocked_prompt(last_line),
            activity=classify_activity(last_line, self._activity_table) if last_line else None,
        )

    def mark_boundary(self) -> None:
        """Forget the unfinished line once a prompt has been consumed."""
        self._partial = ""

    def reset(self) -> None:
        self._stripper.reset()
        self._partial = ""
