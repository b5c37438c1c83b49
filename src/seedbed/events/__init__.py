"""Canonical events — models and JSONL recorder."""

from seedbed.events.models import (
    CanonicalEvent,
    DoneEvent,
    ErrorEvent,
    ErrorType,
    InitEvent,
    Question,
    QuestionEvent,
    QuestionOption,
    ResultEvent,
    TextEvent,
    ToolEvent,
    ToolExecution,
    encode_sse,
    is_recoverable_error,
    make_error,
)
from seedbed.events.recorder import EventRecorder, load_events, recorded_state

__all__ = [
    "CanonicalEvent",
    "DoneEvent",
    "ErrorEvent",
    "ErrorType",
    "EventRecorder",
    "InitEvent",
    "Question",
    "QuestionEvent",
    "QuestionOption",
    "ResultEvent",
    "TextEvent",
    "ToolEvent",
    "ToolExecution",
    "encode_sse",
    "is_recoverable_error",
    "load_events",
    "make_error",
    "recorded_state",
]
