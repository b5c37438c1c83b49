"""Pydantic v2 models for canonical agent events."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag

ErrorType = Literal["spawn_error", "agent_error", "stderr_warning", "process_error"]

ToolStatus = Literal["running", "completed", "error"]


class _Payload(BaseModel):
    """Common config for event payloads (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)


class InitData(_Payload):
    session_id: str = Field(alias="sessionId", description="Agent session identifier")


class TextData(_Payload):
    content: str = Field(description="Incremental text chunk")


class ToolData(_Payload):
    id: str = Field(description="tool_use id, correlates to a later question/result")
    name: str = Field(description="Tool name as reported by the agent")
    summary: str = Field(default="", description="Short parameter summary")
    timestamp: int = Field(description="Epoch milliseconds when the call was seen")


class QuestionOption(_Payload):
    label: str
    description: str | None = None


class Question(_Payload):
    question: str
    header: str | None = None
    options: list[QuestionOption] | None = None
    multi_select: bool | None = Field(default=None, alias="multiSelect")


class QuestionData(_Payload):
    tool_use_id: str = Field(alias="toolUseId")
    questions: list[Question] = Field(default_factory=list)


class ResultData(_Payload):
    content: str = Field(description="Full output relevant to the caller")
    session_id: str | None = Field(default=None, alias="sessionId")


class ErrorData(_Payload):
    message: str
    error_type: ErrorType = Field(alias="errorType")
    recoverable: bool = False
    details: str | None = None


class DoneData(_Payload):
    pass


class _EventBase(BaseModel):
    """Envelope shared by every canonical event."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    def to_wire(self) -> dict[str, Any]:
        """Return the ``{"type": ..., "data": {...}}`` wire form."""
        return self.model_dump(by_alias=True, exclude_none=True)


class InitEvent(_EventBase):
    """The agent announced a session identifier."""

    type: Literal["init"] = "init"
    data: InitData


class TextEvent(_EventBase):
    """Incremental natural-language output."""

    type: Literal["text"] = "text"
    data: TextData


class ToolEvent(_EventBase):
    """The agent invoked a tool."""

    type: Literal["tool"] = "tool"
    data: ToolData


class QuestionEvent(_EventBase):
    """The agent is blocked on structured user input."""

    type: Literal["question"] = "question"
    data: QuestionData


class ResultEvent(_EventBase):
    """Terminal successful completion."""

    type: Literal["result"] = "result"
    data: ResultData


class ErrorEvent(_EventBase):
    """Terminal or advisory failure."""

    type: Literal["error"] = "error"
    data: ErrorData


class DoneEvent(_EventBase):
    """Stream-closed marker, always the last event of an invocation."""

    type: Literal["done"] = "done"
    data: DoneData = Field(default_factory=DoneData)


def _event_discriminator(v: Any) -> str:
    """Extract the discriminator value from raw data or a model instance."""
    if isinstance(v, dict):
        return str(v.get("type", ""))
    return str(getattr(v, "type", ""))


CanonicalEvent = Annotated[
    Annotated[InitEvent, Tag("init")]
    | Annotated[TextEvent, Tag("text")]
    | Annotated[ToolEvent, Tag("tool")]
    | Annotated[QuestionEvent, Tag("question")]
    | Annotated[ResultEvent, Tag("result")]
    | Annotated[ErrorEvent, Tag("error")]
    | Annotated[DoneEvent, Tag("done")],
    Discriminator(_event_discriminator),
]
"""Discriminated union of all canonical event types."""


def is_recoverable_error(error_type: ErrorType) -> bool:
    """Whether an error of *error_type* may just be noise worth retrying past."""
    return error_type == "stderr_warning"


def make_error(
    message: str,
    error_type: ErrorType,
    details: str | None = None,
) -> ErrorEvent:
    """Build an ``error`` event with ``recoverable`` derived from the type."""
    return ErrorEvent(
        data=ErrorData(
            message=message,
            error_type=error_type,
            recoverable=is_recoverable_error(error_type),
            details=details,
        )
    )


def encode_sse(event: _EventBase) -> str:
    """Encode *event* as a Server-Sent Events ``data:`` frame."""
    return f"data: {json.dumps(event.to_wire(), ensure_ascii=False)}\n\n"


@dataclass
class ToolExecution:
    """Client-side view of a tool call, rebuilt from ``tool`` events."""

    id: str
    name: str
    summary: str
    start_time: int
    status: ToolStatus = "running"
    end_time: int | None = None

    @classmethod
    def from_event(cls, event: ToolEvent) -> ToolExecution:
        return cls(
            id=event.data.id,
            name=event.data.name,
            summary=event.data.summary,
            start_time=event.data.timestamp,
        )

    def finish(self, end_time: int, *, failed: bool = False) -> None:
        """Mark the execution finished at *end_time* (epoch ms)."""
        self.end_time = end_time
        self.status = "error" if failed else "completed"

    @property
    def duration_ms(self) -> int | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time
