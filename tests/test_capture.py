from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest
from conftest import wait_for

from termdeck.terminal import OutputCapture, RingBuffer
from termdeck.terminal.capture import buffer_file_name


def test_ring_buffer_evicts_oldest() -> None:
    ring = RingBuffer(3)
    ring.extend(["a", "b", "c", "d"])

    assert ring.lines() == ["b", "c", "d"]
    assert len(ring) == 3
    assert ring.capacity == 3


def test_ring_buffer_rejects_zero_capacity() -> None:
    with pytest.raises(ValueError):
        RingBuffer(0)


@pytest.mark.parametrize(
    ("session_id", "expected"),
    [("s1", "s1.log"), ("../etc/passwd", ".._etc_passwd.log"), ("..", "___.log"), ("a b", "a_b.log")],
)
def test_buffer_file_name_is_filesystem_safe(session_id: str, expected: str) -> None:
    assert buffer_file_name(session_id) == expected


def test_capture_splits_lines_and_reports_pending(tmp_path: Path) -> None:
    capture = OutputCapture(tmp_path, capacity=10)

    capture.append("s1", "first\r\nsecond\r\n\r\nthi")
    capture.append("s1", "rd partial")

    snapshot = capture.read_output("s1")
    assert snapshot.lines == ["first", "second", "third partial"]
    assert snapshot.count == 3


def test_capture_read_output_unknown_session_is_empty(tmp_path: Path) -> None:
    snapshot = OutputCapture(tmp_path).read_output("missing")

    assert snapshot.lines == []
    assert snapshot.count == 0


def test_capture_never_exceeds_capacity(tmp_path: Path) -> None:
    capture = OutputCapture(tmp_path, capacity=10)

    capture.append("s1", "".join(f"line {index}\n" for index in range(25)) + "tail")

    snapshot = capture.read_output("s1")
    assert snapshot.count == 10
    assert snapshot.lines[0] == "line 16"
    assert snapshot.lines[-1] == "tail"


def test_flush_writes_dirty_buffers(tmp_path: Path) -> None:
    capture = OutputCapture(tmp_path / "buffers", capacity=10)
    capture.append("s1", "one\ntwo\n")
    capture.append("s2", "three\n")

    written = capture.flush()

    assert sorted(path.name for path in written) == ["s1.log", "s2.log"]
    assert (tmp_path / "buffers" / "s1.log").read_text(encoding="utf-8") == "one\ntwo"
    assert capture.flush() == []


def test_flush_failure_keeps_session_dirty(tmp_path: Path) -> None:
    blocker = tmp_path / "buffers"
    blocker.write_text("not a directory", encoding="utf-8")
    capture = OutputCapture(blocker, capacity=10)
    capture.append("s1", "kept\n")

    assert capture.flush() == []

    blocker.unlink()
    written = capture.flush()

    assert [path.name for path in written] == ["s1.log"]
    assert (blocker / "s1.log").read_text(encoding="utf-8") == "kept"


def test_discard_flushes_then_forgets(tmp_path: Path) -> None:
    capture = OutputCapture(tmp_path, capacity=10)
    capture.append("s1", "bye\n")

    capture.discard("s1")

    assert (tmp_path / "s1.log").exists()
    assert capture.session_ids() == []


def test_background_flush_thread(tmp_path: Path) -> None:
    capture = OutputCapture(tmp_path, capacity=10, flush_interval=0.05)
    capture.start()
    try:
        assert capture.running
        capture.append("s1", "ticked\n")
        assert wait_for(lambda: (tmp_path / "s1.log").exists())
    finally:
        capture.stop()

    assert not capture.running


def test_concurrent_flushes_never_leave_stale_snapshot_on_disk(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    capture = OutputCapture(tmp_path, capacity=10)
    original_write = capture._write_buffer
    entered = threading.Event()

    def slow_first_write(session_id: str, lines: list[str]) -> Path:
        if not entered.is_set():
            entered.set()
            time.sleep(0.3)
        return original_write(session_id, lines)

    monkeypatch.setattr(capture, "_write_buffer", slow_first_write)
    capture.append("s1", "old\n")
    timer_flush = threading.Thread(target=capture.flush)
    timer_flush.start()
    assert entered.wait(2)

    capture.append("s1", "new\n")
    capture.flush("s1")
    timer_flush.join(timeout=5)
    capture.flush()

    assert (tmp_path / "s1.log").read_text(encoding="utf-8") == "old\nnew"
    assert capture.read_output("s1").lines == ["old", "new"]
