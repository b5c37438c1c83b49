"""Tests for canonical event models."""

from __future__ import annotations

import json

import pytest
from pydantic import TypeAdapter, ValidationError

from seedbed.events.models import (
    CanonicalEvent,
    DoneEvent,
    ErrorEvent,
    InitData,
    InitEvent,
    QuestionEvent,
    ResultData,
    ResultEvent,
    ToolData,
    ToolEvent,
    ToolExecution,
    encode_sse,
    is_recoverable_error,
    make_error,
)

ADAPTER: TypeAdapter[CanonicalEvent] = TypeAdapter(CanonicalEvent)


class TestWireFormat:
    def test_done_has_empty_data(self) -> None:
        assert DoneEvent().to_wire() == {"type": "done", "data": {}}

    def test_camel_case_aliases(self) -> None:
        event = ResultEvent(data=ResultData(content="x", session_id="s"))
        assert event.to_wire() == {
            "type": "result",
            "data": {"content": "x", "sessionId": "s"},
        }

    def test_optional_fields_omitted(self) -> None:
        wire = make_error("oops", "agent_error").to_wire()
        assert wire == {
            "type": "error",
            "data": {
                "message": "oops",
                "errorType": "agent_error",
                "recoverable": False,
            },
        }

    def test_discriminated_parse(self) -> None:
        raw = {
            "type": "question",
            "data": {
                "toolUseId": "t1",
                "questions": [{"question": "Go?", "multiSelect": True}],
            },
        }
        event = ADAPTER.validate_python(raw)
        assert isinstance(event, QuestionEvent)
        assert event.data.questions[0].multi_select is True
        assert event.to_wire() == raw

    def test_parse_by_field_name(self) -> None:
        event = ADAPTER.validate_python(
            {"type": "init", "data": {"session_id": "abc"}}
        )
        assert isinstance(event, InitEvent)
        assert event.data.session_id == "abc"

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ADAPTER.validate_python({"type": "progress", "data": {}})

    def test_events_are_frozen(self) -> None:
        event = InitEvent(data=InitData(session_id="s"))
        with pytest.raises(ValidationError):
            event.data.session_id = "other"  # type: ignore[misc]


class TestErrors:
    @pytest.mark.parametrize(
        ("error_type", "recoverable"),
        [
            ("stderr_warning", True),
            ("spawn_error", False),
            ("agent_error", False),
            ("process_error", False),
        ],
    )
    def test_recoverability(self, error_type: str, recoverable: bool) -> None:
        assert is_recoverable_error(error_type) is recoverable  # type: ignore[arg-type]
        event = make_error("m", error_type)  # type: ignore[arg-type]
        assert isinstance(event, ErrorEvent)
        assert event.data.recoverable is recoverable

    def test_details_kept(self) -> None:
        event = make_error("exit 1", "process_error", details="stack")
        assert event.to_wire()["data"]["details"] == "stack"


class TestSSE:
    def test_frame(self) -> None:
        frame = encode_sse(InitEvent(data=InitData(session_id="s-1")))
        assert frame.startswith("data: ")
        assert frame.endswith("\n\n")
        assert json.loads(frame[len("data: "):]) == {
            "type": "init",
            "data": {"sessionId": "s-1"},
        }

    def test_unicode_not_escaped(self) -> None:
        frame = encode_sse(ResultEvent(data=ResultData(content="café")))
        assert "café" in frame


class TestToolExecution:
    def _event(self) -> ToolEvent:
        return ToolEvent(
            data=ToolData(id="t1", name="Bash", summary="ls", timestamp=1_000)
        )

    def test_from_event(self) -> None:
        execution = ToolExecution.from_event(self._event())
        assert execution.id == "t1"
        assert execution.name == "Bash"
        assert execution.summary == "ls"
        assert execution.start_time == 1_000
        assert execution.status == "running"
        assert execution.duration_ms is None

    def test_finish(self) -> None:
        execution = ToolExecution.from_event(self._event())
        execution.finish(1_250)
        assert execution.status == "completed"
        assert execution.duration_ms == 250

    def test_finish_failed(self) -> None:
        execution = ToolExecution.from_event(self._event())
        execution.finish(1_100, failed=True)
        assert execution.status == "error"
