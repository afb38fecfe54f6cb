"""ANSI escape stripping that survives arbitrary chunk boundaries."""

from __future__ import annotations

import re

MAX_CARRY_CHARS = 4096

# CSI, OSC (BEL or ST terminated), DCS/PM/APC strings, charset designators,
# then any other two-character escape.
_ANSI_RE = re.compile(
    r"\x1b(?:"
    r"\[[0-?]*[ -/]*[@-~]"
    r"|\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|[P^_][^\x1b]*\x1b\\"
    r"|[()*+#%][ -~]"
    r"|[ -~]"
    r")"
)
_INCOMPLETE_TAIL_RE = re.compile(
    r"\x1b(?:"
    r"\[[0-?]*[ -/]*"
    r"|\][^\x07\x1b]*\x1b?"
    r"|[P^_][^\x1b]*\x1b?"
    r"|[()*+#%]"
    r")?\Z"
)
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def strip_ansi(text: str) -> str:
    """Remove escape sequences and stray control bytes; keeps tab, CR and LF."""
    return _CONTROL_RE.sub("", _ANSI_RE.sub("", text))


class AnsiStripper:
    """Stateful stripper holding back an unterminated trailing escape sequence.

    A sequence split across two chunks (``"\\x1b[3"`` + ``"1mred"``) is kept
    as carry-over and re-joined with the next chunk instead of leaking its
    parameter bytes into the clean text. Carry-over longer than
    ``MAX_CARRY_CHARS`` is discarded, which bounds memory for a runaway OSC.
    """

    def __init__(self, *, max_carry: int = MAX_CARRY_CHARS) -> None:
        self._carry = ""
        self._max_carry = max_carry

    @property
    def pending(self) -> str:
        return self._carry

    def feed(self, chunk: str) -> str:
        text = self._carry + chunk
        self._carry = ""
        match = _INCOMPLETE_TAIL_RE.search(text)
        if match is not None:
            tail = text[match.start() :]
            if len(tail) <= self._max_carry:
                self._carry = tail
            text = text[: match.start()]
        return strip_ansi(text)

    def reset(self) -> None:
        self._carry = ""
