"""Command block segmentation at shell-prompt boundaries.

Boundaries come from a prompt regex, so this is an approximation: multi-line
prompts, custom themes or program output that ends in a prompt glyph will
close blocks early or late.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable

from termdeck.terminal.classifier import StreamSignals
from termdeck.terminal.models import CommandBlock, now_millis

DEFAULT_HISTORY_LIMIT = 50
DEFAULT_MIN_BLOCK_CHARS = 10


class BlockSegmenter:
    def __init__(
        self,
        *,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        min_block_chars: int = DEFAULT_MIN_BLOCK_CHARS,
        clock: Callable[[], int] = now_millis,
    ) -> None:
        if history_limit < 1:
            raise ValueError(f"Invalid block history limit: {history_limit}")
        self._history: deque[CommandBlock] = deque(maxlen=history_limit)
        self._min_block_chars = min_block_chars
        self._clock = clock
        self._accumulated = 0
        self._opened_at: int | None = None
        self._command = ""
        self._output: list[str] = []
        self._has_error = False

    @property
    def is_open(self) -> bool:
        return self._opened_at is not None

    def open_block(self) -> CommandBlock | None:
        if self._opened_at is None:
            return None
        return CommandBlock(
            command=self._command,
            output=tuple(self._output),
            timestamp=self._opened_at,
            has_error=self._has_error,
        )

    def history(self) -> list[CommandBlock]:
        return list(self._history)

    def feed(self, signals: StreamSignals) -> CommandBlock | None:
        """Consume one classified chunk; return the block it committed, if any."""
        self._accumulated += len(signals.clean)
        for line in signals.lines:
            self._add_line(line)
        if signals.error:
            self._has_error = True

        if not signals.boundary or self._accumulated <= self._min_block_chars:
            return None
        committed = self._commit()
        self._accumulated = 0
        return committed

    def _add_line(self, line: str) -> None:
        text = line.strip()
        if not text:
            return
        if self._opened_at is None:
            self._opened_at = self._clock()
        if not self._command:
            self._command = text
        else:
            self._output.append(line.rstrip())

    def _commit(self) -> CommandBlock | None:
        block = self.open_block()
        self._opened_at = None
        self._command = ""
        self._output = []
        self._has_error = False
        if block is None or block.is_empty():
            return None
        self._history.append(block)
        return block
