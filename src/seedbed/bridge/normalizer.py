"""Message normalizer — maps two agent wire shapes to canonical events.

Agents print one JSON object per line on stdout, in one of two shapes:

* **Envelope** (``claude --output-format stream-json``)::

    {"type": "assistant", "message": {"role": "assistant", "content": [...]},
     "session_id": "..."}
    {"type": "result", "subtype": "success", "result": "...", "session_id": "..."}

* **Flat** (``kimi --output-format stream-json``)::

    {"role": "assistant", "content": [...]}

Each shape has its own pure parse function returning a ``WireMessage``;
the envelope parser is tried first and the first structural match wins.
``MessageNormalizer`` then maps the ``WireMessage`` to at most one event
and keeps the per-invocation state (accumulated output, session id,
whether a result or error was seen).
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from seedbed.bridge.session import SessionTracker
from seedbed.bridge.tool_summary import ASK_USER_TOOL, summarize_tool
from seedbed.events.models import (
    CanonicalEvent,
    InitData,
    InitEvent,
    Question,
    QuestionData,
    QuestionEvent,
    QuestionOption,
    ResultData,
    ResultEvent,
    TextData,
    TextEvent,
    ToolData,
    ToolEvent,
    make_error,
)

logger = logging.getLogger(__name__)

MessageKind = Literal["system", "assistant", "user", "result"]

_ENVELOPE_KINDS: frozenset[str] = frozenset({"system", "assistant", "user", "result"})

#: Result subtypes that mean the agent finished successfully.
SUCCESS_SUBTYPES: frozenset[str] = frozenset({"success", "end_turn"})


@dataclass(frozen=True)
class WireMessage:
    """One agent message after shape-specific field extraction."""

    kind: MessageKind
    content: list[dict[str, Any]] = field(default_factory=list)
    result: str | None = None
    subtype: str | None = None
    is_error: bool = False
    session_id: str | None = None


def _content_items(value: object) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _opt_str(value: object) -> str | None:
    return value if isinstance(value, str) else None


def parse_envelope_message(obj: dict[str, Any]) -> WireMessage | None:
    """Parse the envelope shape; None if *obj* is not one."""
    kind = obj.get("type")
    if kind not in _ENVELOPE_KINDS:
        return None
    message = obj.get("message")
    content: list[dict[str, Any]] = []
    if isinstance(message, dict):
        content = _content_items(message.get("content"))
    return WireMessage(
        kind=kind,
        content=content,
        result=_opt_str(obj.get("result")),
        subtype=_opt_str(obj.get("subtype")),
        is_error=obj.get("is_error") is True,
        session_id=_opt_str(obj.get("session_id")),
    )


def parse_flat_message(obj: dict[str, Any]) -> WireMessage | None:
    """Parse the flat shape; None if *obj* is not one."""
    if obj.get("role") != "assistant" or not isinstance(obj.get("content"), list):
        return None
    return WireMessage(
        kind="assistant",
        content=_content_items(obj["content"]),
        session_id=_opt_str(obj.get("session_id")),
    )


_SHAPE_PARSERS: tuple[Callable[[dict[str, Any]], WireMessage | None], ...] = (
    parse_envelope_message,
    parse_flat_message,
)


def parse_wire_message(line: str) -> WireMessage | None:
    """Decode one stdout line; None for non-JSON or unrecognized shapes."""
    if not line.strip():
        return None
    try:
        obj = json.loads(line)
    except (ValueError, RecursionError):
        logger.debug("non-JSON line from agent: %s", line[:200])
        return None
    if not isinstance(obj, dict):
        return None
    for parse in _SHAPE_PARSERS:
        msg = parse(obj)
        if msg is not None:
            return msg
    return None


def parse_questions(params: object) -> list[Question]:
    """Extract the question list from an ask-user tool input.

    Malformed entries are skipped rather than failing the whole event.
    """
    if not isinstance(params, dict):
        return []
    raw_questions = params.get("questions")
    if not isinstance(raw_questions, list):
        return []

    questions: list[Question] = []
    for raw in raw_questions:
        if not isinstance(raw, dict) or not isinstance(raw.get("question"), str):
            continue
        options: list[QuestionOption] | None = None
        raw_options = raw.get("options")
        if isinstance(raw_options, list):
            options = [
                QuestionOption(
                    label=opt["label"],
                    description=_opt_str(opt.get("description")),
                )
                for opt in raw_options
                if isinstance(opt, dict) and isinstance(opt.get("label"), str)
            ]
        multi = raw.get("multiSelect")
        questions.append(
            Question(
                question=raw["question"],
                header=_opt_str(raw.get("header")),
                options=options,
                multi_select=multi if isinstance(multi, bool) else None,
            )
        )
    return questions


class MessageNormalizer:
    """Maps raw stdout lines to canonical events for one invocation."""

    def __init__(
        self,
        tracker: SessionTracker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.tracker = tracker if tracker is not None else SessionTracker()
        self._clock = clock
        self._output: list[str] = []
        self.has_result = False
        self.has_error = False

    @property
    def full_output(self) -> str:
        """All text seen so far, in arrival order."""
        return "".join(self._output)

    @property
    def session_id(self) -> str | None:
        return self.tracker.session_id

    def normalize(self, line: str) -> CanonicalEvent | None:
        """Return the event for *line*, or None. Never raises."""
        msg = parse_wire_message(line)
        if msg is None:
            return None
        first_sighting = self.tracker.observe(msg.session_id)

        if msg.kind == "system":
            if first_sighting:
                return InitEvent(data=InitData(session_id=msg.session_id or ""))
            return None
        if msg.kind == "assistant":
            for item in msg.content:
                event = self._map_content_item(item)
                if event is not None:
                    return event
            return None
        if msg.kind == "result":
            return self._map_result(msg)
        # Tool results echoed back to the model are not caller-facing.
        return None

    def _map_content_item(self, item: dict[str, Any]) -> CanonicalEvent | None:
        item_type = item.get("type")

        if item_type == "text":
            text = item.get("text")
            if isinstance(text, str) and text:
                self._output.append(text)
                return TextEvent(data=TextData(content=text))
            return None

        if item_type == "tool_use":
            name = _opt_str(item.get("name")) or "unknown"
            tool_id = _opt_str(item.get("id")) or ""
            params = item.get("input")
            if name == ASK_USER_TOOL:
                return QuestionEvent(
                    data=QuestionData(
                        tool_use_id=tool_id,
                        questions=parse_questions(params),
                    )
                )
            return ToolEvent(
                data=ToolData(
                    id=tool_id,
                    name=name,
                    summary=summarize_tool(name, params),
                    timestamp=int(self._clock() * 1000),
                )
            )

        return None

    def _map_result(self, msg: WireMessage) -> CanonicalEvent | None:
        failed = msg.is_error or (
            msg.subtype is not None and msg.subtype.startswith("error")
        )
        if failed:
            self.has_error = True
            return make_error(msg.result or "Unknown error", "agent_error")

        if msg.subtype is not None and msg.subtype not in SUCCESS_SUBTYPES:
            return None

        body = msg.result
        # Envelope agents repeat their last text block as the result body.
        if body and not self.full_output.endswith(body):
            self._output.append(body)
        self.has_result = True
        return ResultEvent(
            data=ResultData(content=self.full_output, session_id=self.session_id)
        )
