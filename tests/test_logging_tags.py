"""Tests for tagged console logging.

Errors and successes always print; deterministic and generation steps only
print in verbose mode. TOWNSFOLK_NO_COLOR strips the ANSI codes.
"""

from __future__ import annotations

import contextlib
import io

from townsfolk.logging_utils import (
    Color,
    colored,
    log_deterministic,
    log_error,
    log_info,
    log_llm,
    log_success,
)


def _capture(fn, message):
    buffer = io.StringIO()
    with contextlib.redirect_stdout(buffer):
        fn(message)
    return buffer.getvalue()


def test_error_and_success_always_print(monkeypatch):
    monkeypatch.setenv("TOWNSFOLK_NO_COLOR", "1")
    monkeypatch.delenv("TOWNSFOLK_VERBOSE", raising=False)

    assert _capture(log_error, "plan failed") == "  [!] plan failed\n"
    assert _capture(log_success, "plan ready") == "  [✓] plan ready\n"
    assert _capture(log_info, "Day 2 begins") == "  [i] Day 2 begins\n"


def test_step_tags_need_verbose(monkeypatch):
    monkeypatch.setenv("TOWNSFOLK_NO_COLOR", "1")
    monkeypatch.delenv("TOWNSFOLK_VERBOSE", raising=False)

    assert _capture(log_deterministic, "moved") == ""
    assert _capture(log_llm, "planning") == ""

    monkeypatch.setenv("TOWNSFOLK_VERBOSE", "true")
    assert _capture(log_deterministic, "moved") == "  [•] moved\n"
    assert _capture(log_llm, "planning") == "  [AI] planning\n"


def test_colored_respects_no_color(monkeypatch):
    monkeypatch.delenv("TOWNSFOLK_NO_COLOR", raising=False)
    assert colored("hi", Color.RED) == f"{Color.RED.value}hi{Color.RESET.value}"
    assert colored("hi", Color.RED, bold=True).startswith(Color.BOLD.value + Color.RED.value)

    monkeypatch.setenv("TOWNSFOLK_NO_COLOR", "1")
    assert colored("hi", Color.RED) == "hi"
