"""Structured review extraction from free-form agent output."""

from __future__ import annotations

import asyncio
import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from seedbed.bridge.process_bridge import InvocationRequest, ProcessBridge
from seedbed.events.models import ErrorEvent, ResultEvent, TextEvent

logger = logging.getLogger(__name__)

#: Summary used when the agent's JSON has none.
NO_SUMMARY = "No summary provided"

#: Default time limit for a review invocation.
DEFAULT_REVIEW_TIMEOUT_MS = 120_000

REVIEW_PROMPT_TEMPLATE = """\
You are an expert technical reviewer. Please review the following \
implementation plan and provide structured feedback.

## Plan to Review:
{plan_content}

## Review Instructions:
1. Evaluate the plan's completeness, feasibility, and technical soundness
2. Identify potential risks, missing considerations, or areas of concern
3. Suggest specific improvements or alternatives where applicable
4. Provide an overall score (0-100)

## Required Output Format (MUST be valid JSON):
```json
{{
  "score": <number 0-100>,
  "summary": "<brief overall assessment in 1-2 sentences>",
  "concerns": [
    "<concern 1>",
    "<concern 2>"
  ],
  "suggestions": [
    "<suggestion 1>",
    "<suggestion 2>"
  ]
}}
```

IMPORTANT: Your response MUST contain a JSON code block with the exact \
structure shown above.
"""

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)```")
_ANY_FENCE_RE = re.compile(r"```\s*([\s\S]*?)```")


class ReviewResult(BaseModel):
    """A validated review recovered from agent output."""

    model_config = ConfigDict(frozen=True)

    score: int = Field(ge=0, le=100)
    summary: str
    concerns: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    raw: str = Field(description="The full text the review was extracted from")


def build_review_prompt(plan_content: str) -> str:
    return REVIEW_PROMPT_TEMPLATE.format(plan_content=plan_content)


def _load_object(candidate: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(candidate.strip())
    except (ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


def _is_number(value: object) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _balanced_spans(text: str) -> list[tuple[int, int]]:
    """Return ``(start, end)`` of every brace-balanced ``{...}`` span.

    One pass over *text* with a stack of open braces; spans come back
    ordered by start position.  Braces inside JSON string literals are
    ignored.  A string literal never spans a line break, so a stray quote
    only affects the rest of its own line.
    """
    spans: list[tuple[int, int]] = []
    opened: list[int] = []
    in_string = False
    escaped = False
    for pos, c in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif c == "\\":
                escaped = True
            elif c in "\"\n":
                in_string = False
            continue
        if c == '"':
            in_string = bool(opened)
        elif c == "{":
            opened.append(pos)
        elif c == "}" and opened:
            spans.append((opened.pop(), pos + 1))
    spans.sort()
    return spans


def _from_json_fence(text: str) -> dict[str, Any] | None:
    match = _JSON_FENCE_RE.search(text)
    return _load_object(match.group(1)) if match else None


def _from_any_fence(text: str) -> dict[str, Any] | None:
    match = _ANY_FENCE_RE.search(text)
    return _load_object(match.group(1)) if match else None


def _from_keyed_object(text: str) -> dict[str, Any] | None:
    candidates = [
        text[start:end]
        for start, end in _balanced_spans(text)
        if '"score"' in text[start:end] and '"summary"' in text[start:end]
    ]
    for candidate in sorted(candidates, key=len):
        parsed = _load_object(candidate)
        if parsed is not None:
            return parsed
    return None


def _from_scored_object(text: str) -> dict[str, Any] | None:
    for start, end in _balanced_spans(text):
        parsed = _load_object(text[start:end])
        if parsed is not None and _is_number(parsed.get("score")):
            return parsed
    return None


_STRATEGIES = (
    _from_json_fence,
    _from_any_fence,
    _from_keyed_object,
    _from_scored_object,
)


def _clamp_score(value: object) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        # May be too large for float().
        return min(100, max(0, value))
    if not isinstance(value, float) or math.isnan(value):
        return 50
    return int(round(min(100.0, max(0.0, value))))


def _strings(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def validate_review(parsed: dict[str, Any], raw: str) -> ReviewResult:
    """Clamp and default the fields of a parsed review object."""
    summary = parsed.get("summary")
    return ReviewResult(
        score=_clamp_score(parsed.get("score")),
        summary=summary if isinstance(summary, str) else NO_SUMMARY,
        concerns=_strings(parsed.get("concerns")),
        suggestions=_strings(parsed.get("suggestions")),
        raw=raw,
    )


def extract_review(output: str) -> ReviewResult | None:
    """Recover a ``ReviewResult`` from *output*, or None if nothing parses.

    Tries, in order: a ```json fenced block, the first fenced block of any
    kind, the smallest brace object mentioning both ``score`` and
    ``summary``, then any brace object with a numeric ``score``.
    """
    for strategy in _STRATEGIES:
        parsed = strategy(output)
        if parsed is not None:
            logger.debug("review extracted via %s", strategy.__name__)
            return validate_review(parsed, output)
    return None


@dataclass
class ReviewOutcome:
    """Result of a complete review run."""

    success: bool
    result: ReviewResult | None = None
    error: str | None = None
    raw: str = ""


async def run_review(
    bridge: ProcessBridge,
    plan_content: str,
    working_directory: str,
    session_id: str | None = None,
    timeout_ms: int = DEFAULT_REVIEW_TIMEOUT_MS,
    cancel: asyncio.Event | None = None,
) -> ReviewOutcome:
    """Run a review invocation to completion and extract its result.

    A timeout behaves like cancellation: the agent is stopped and the
    outcome reports failure with whatever output had arrived.
    """
    request = InvocationRequest(
        prompt=build_review_prompt(plan_content),
        working_directory=working_directory,
        resume_session_id=session_id,
        max_duration_ms=timeout_ms,
    )
    full_output = ""
    error_message: str | None = None
    finished = False

    async for event in bridge.start(request, cancel=cancel):
        if isinstance(event, TextEvent):
            full_output += event.data.content
        elif isinstance(event, ResultEvent):
            full_output = event.data.content or full_output
            finished = True
        elif isinstance(event, ErrorEvent):
            if event.data.recoverable:
                logger.warning("review: agent stderr: %s", event.data.message)
            else:
                error_message = event.data.message

    if error_message is not None:
        return ReviewOutcome(success=False, error=error_message, raw=full_output)
    if not finished:
        return ReviewOutcome(
            success=False,
            error="Review was cancelled or timed out before completing",
            raw=full_output,
        )

    result = extract_review(full_output)
    if result is None:
        return ReviewOutcome(
            success=False,
            error="Failed to parse review result as JSON",
            raw=full_output,
        )
    return ReviewOutcome(success=True, result=result, raw=full_output)
