from __future__ import annotations

import queue
import sys
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from termdeck.config import AppConfig

_SLOW_TEST_FILES = {
    "test_shell_session_e2e.py",
}


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
        if path.name in _SLOW_TEST_FILES:
            item.add_marker(pytest.mark.slow)


class FakePty:
    """In-memory stand-in for a PTY process; ``read`` blocks until fed."""

    def __init__(self, pid: int = 4242) -> None:
        self.pid = pid
        self.writes: list[str | bytes] = []
        self.size: tuple[int, int] | None = None
        self.closed = False
        self.exit_code = 0
        self._alive = True
        self._chunks: queue.Queue[str | None] = queue.Queue()

    def feed(self, *chunks: str) -> None:
        for chunk in chunks:
            self._chunks.put(chunk)

    def finish(self, exit_code: int = 0) -> None:
        self.exit_code = exit_code
        self._chunks.put(None)

    def read(self, _size: int = 4096) -> str:
        item = self._chunks.get()
        if item is None:
            self._alive = False
            raise EOFError
        return item

    def write(self, payload: str | bytes) -> None:
        self.writes.append(payload)

    def set_size(self, cols: int, rows: int) -> None:
        self.size = (cols, rows)

    def isalive(self) -> bool:
        return self._alive

    def terminate(self, force: bool = False) -> bool:
        del force
        self._alive = False
        self._chunks.put(None)
        return True

    def close(self) -> None:
        self.closed = True
        self.terminate()

    def wait(self) -> int:
        return self.exit_code


class FakeSpawner:
    def __init__(self, pty_factory: Callable[[int], FakePty] = FakePty) -> None:
        self.pty_factory = pty_factory
        self.spawned: list[FakePty] = []
        self.calls: list[tuple[list[str], str, dict[str, str], tuple[int, int]]] = []

    def __call__(
        self, command: list[str], cwd: str, env: dict[str, str], dimensions: tuple[int, int]
    ) -> FakePty:
        self.calls.append((command, cwd, env, dimensions))
        pty = self.pty_factory(5000 + len(self.spawned))
        self.spawned.append(pty)
        return pty

    @property
    def last(self) -> FakePty:
        return self.spawned[-1]


def wait_for(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    return AppConfig(state_dir=str(tmp_path / "state"), shell=sys.executable, flush_interval_seconds=0.1)
