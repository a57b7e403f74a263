"""Tests for esploracli/events.py."""

from __future__ import annotations

import io
import json

import pytest

from conftest import RecordingSink
from esploracli.events import EventSink, JsonlEventSink, NullEventSink


def test_jsonl_sink_writes_one_line_per_event() -> None:
    buf = io.StringIO()
    sink = JsonlEventSink(buf)
    sink.emit({"type": "tx_page", "level": "info", "start": 0})
    sink.emit({"type": "tx_page", "level": "info", "start": 25})

    lines = buf.getvalue().splitlines()
    assert len(lines) == 2
    first = json.loads(lines[0])
    assert first["type"] == "tx_page"
    assert first["start"] == 0
    assert "timestamp" in first
    assert json.loads(lines[1])["start"] == 25


def test_jsonl_sink_defaults_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    JsonlEventSink().emit({"type": "starting", "level": "info"})
    captured = capsys.readouterr()
    assert captured.out == ""
    assert json.loads(captured.err)["type"] == "starting"


def test_jsonl_sink_serialises_unknown_types() -> None:
    buf = io.StringIO()
    JsonlEventSink(buf).emit({"type": "x", "level": "info", "error": ValueError("boom")})
    assert json.loads(buf.getvalue())["error"] == "boom"


def test_null_sink_discards(capsys: pytest.CaptureFixture[str]) -> None:
    NullEventSink().emit({"type": "anything", "level": "info"})
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err == ""


def test_sinks_satisfy_protocol() -> None:
    assert isinstance(JsonlEventSink(), EventSink)
    assert isinstance(NullEventSink(), EventSink)
    assert isinstance(RecordingSink(), EventSink)
