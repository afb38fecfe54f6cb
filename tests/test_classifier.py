from __future__ import annotations

import re

import pytest

from termdeck.terminal import (
    READY,
    Activity,
    StreamClassifier,
    classify_activity,
    has_error_signal,
    is_blocked_prompt,
    is_shell_prompt,
)


@pytest.mark.parametrize("line", ["user@host:~$", "$ ", "% ", "root# ", "❯", "~/repo ➜  "])
def test_shell_prompt_detected(line: str) -> None:
    assert is_shell_prompt(line)


@pytest.mark.parametrize("line", ["", "   ", "total 48", "price is $5 today"])
def test_non_prompt_lines(line: str) -> None:
    assert not is_shell_prompt(line)


@pytest.mark.parametrize(
    "line",
    [
        "Do you want to continue?",
        "Proceed [y/N]",
        "Overwrite [Y/n]",
        "Password:",
        "Enter passphrase: ",
        "Enter your name:",
        "Select an option:",
        "Press any key to continue",
        "Are you sure (yes/no)",
    ],
)
def test_blocked_prompt_detected(line: str) -> None:
    assert is_blocked_prompt(line)


def test_blocked_prompt_ignores_plain_output() -> None:
    assert not is_blocked_prompt("compiled 12 files")


def test_error_signal_from_color_or_keyword() -> None:
    assert has_error_signal("\x1b[31mboom\x1b[0m", "boom")
    assert has_error_signal("\x1b[91mboom", "boom")
    assert has_error_signal("Error: no such file", "Error: no such file")
    assert has_error_signal("3 FAILED", "3 FAILED")
    assert not has_error_signal("all good", "all good")
    assert not has_error_signal("errors.py updated", "errors.py updated")


def test_activity_table_first_match_wins() -> None:
    assert classify_activity("grep -rn foo")
    assert classify_activity("Running pytest -q") == Activity("Testing...", "🧪")
    # "npm test" hits the installing row before the testing row.
    assert classify_activity("npm test") == Activity("Installing...", "📦")
    assert classify_activity("git push origin main") == Activity("Deploying...", "🚀")
    assert classify_activity("plain output") is None


def test_activity_prompt_is_ready() -> None:
    assert classify_activity("user@host:~/find-me$") == READY


def test_activity_table_is_injectable() -> None:
    table = ((re.compile("cargo"), Activity("Compiling...", "⚙")),)

    assert classify_activity("cargo build", table) == Activity("Compiling...", "⚙")
    assert classify_activity("pytest", table) is None


def test_classifier_error_then_prompt_in_one_chunk() -> None:
    classifier = StreamClassifier()

    signals = classifier.feed("\x1b[31mFAILED\x1b[0m\r\n$ ")

    assert signals.clean == "FAILED\n$ "
    assert signals.lines == ("FAILED",)
    assert signals.trailing == "$ "
    assert signals.last_line == "$"
    assert signals.error
    assert signals.prompt
    assert signals.boundary
    assert signals.activity == READY


def test_classifier_keeps_partial_line_between_chunks() -> None:
    classifier = StreamClassifier()

    first = classifier.feed("hel")
    second = classifier.feed("lo\r\nwor")

    assert first.lines == ()
    assert first.trailing == "hel"
    assert second.lines == ("hello",)
    assert classifier.partial_line == "wor"
    assert second.last_line == "wor"


def test_classifier_detects_error_color_split_across_chunks() -> None:
    classifier = StreamClassifier()

    classifier.feed("\x1b[3")
    signals = classifier.feed("1mbad thing\x1b[0m\n")

    assert signals.error
    assert signals.lines == ("bad thing",)


def test_classifier_prompt_on_last_line_without_trailing_boundary() -> None:
    classifier = StreamClassifier()

    signals = classifier.feed("$\n")

    assert signals.prompt
    assert not signals.boundary


def test_classifier_blocked_question() -> None:
    signals = StreamClassifier().feed("Apply changes? [y/N] ")

    assert signals.blocked
    assert not signals.prompt


def test_mark_boundary_and_reset_clear_partial() -> None:
    classifier = StreamClassifier()
    classifier.feed("$ ")

    classifier.mark_boundary()
    assert classifier.partial_line == ""

    classifier.feed("\x1b[")
    classifier.reset()
    assert classifier.feed("1m").clean == "1m"


def test_classifier_caps_unterminated_line() -> None:
    classifier = StreamClassifier()

    classifier.feed("x" * 10_000)

    assert len(classifier.partial_line) == 4096
