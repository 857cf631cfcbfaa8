"""Tests for progress event serialization, sinks and cancellation tokens."""

from __future__ import annotations

import io
import json

import pytest

from stagewise.core.errors.research import ResearchCancelledError
from stagewise.core.research.models.enums import EventType
from stagewise.core.research.models.events import ProgressEvent, ProgressInfo, TreeStats
from stagewise.core.research.workflows.deep_research import (
    CallbackEventSink,
    CancellationToken,
    JsonLinesEventSink,
    MemoryEventSink,
)


def _event(**kwargs) -> ProgressEvent:
    kwargs.setdefault("message", "Building reasoning tree for stage: Foundations")
    kwargs.setdefault("progress", ProgressInfo(percent=14, current_step="Stage 1/3: Foundations"))
    return ProgressEvent(**kwargs)


class TestProgressEvent:
    def test_json_line_uses_camel_case_and_omits_unset(self):
        event = _event(session_id="01J", tree=TreeStats(node_count=3, max_depth=0, nodes_with_findings=1))
        data = json.loads(event.to_json_line())

        assert data["eventType"] == "progress"
        assert data["sessionId"] == "01J"
        assert data["progress"] == {"percent": 14, "currentStep": "Stage 1/3: Foundations"}
        assert data["tree"] == {"nodeCount": 3, "maxDepth": 0, "nodesWithFindings": 1}
        assert "analysis" not in data
        assert "completed" not in data

    def test_json_line_is_single_line(self):
        event = _event(analysis="Line one\n\nLine two")
        assert "\n" not in event.to_json_line()


class TestSinks:
    def test_json_lines_sink_writes_one_line_per_event(self):
        stream = io.StringIO()
        sink = JsonLinesEventSink(stream)
        sink.publish(_event())
        sink.publish(_event(event_type=EventType.COMPLETE, completed=True))

        lines = stream.getvalue().splitlines()
        assert len(lines) == 2
        assert json.loads(lines[1])["completed"] is True

    def test_json_lines_sink_survives_closed_stream(self):
        stream = io.StringIO()
        stream.close()
        JsonLinesEventSink(stream).publish(_event())

    def test_memory_sink_filters(self):
        sink = MemoryEventSink()
        sink.publish(_event())
        sink.publish(_event(event_type=EventType.ERROR, message="boom", progress=None))
        assert [e.message for e in sink.of_type(EventType.ERROR)] == ["boom"]
        assert sink.percents == [14]

    def test_callback_sink_swallows_callback_errors(self):
        def _broken(event):
            raise RuntimeError("socket closed")

        CallbackEventSink(_broken).publish(_event())


class TestCancellationToken:
    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"

    def test_raise_if_cancelled(self):
        token = CancellationToken()
        token.raise_if_cancelled()
        token.cancel()
        with pytest.raises(ResearchCancelledError):
            token.raise_if_cancelled()

    def test_raise_if_cancelled_carries_session(self):
        token = CancellationToken()
        token.cancel("user abort")
        with pytest.raises(ResearchCancelledError) as exc_info:
            token.raise_if_cancelled(session_id="research-1")
        assert exc_info.value.session_id == "research-1"
        assert exc_info.value.reason == "user abort"
