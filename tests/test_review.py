"""Tests for review extraction and the review runner."""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

from seedbed.bridge.process_bridge import InvocationRequest
from seedbed.bridge.review import (
    DEFAULT_REVIEW_TIMEOUT_MS,
    NO_SUMMARY,
    ReviewOutcome,
    build_review_prompt,
    extract_review,
    run_review,
)
from seedbed.events.models import (
    CanonicalEvent,
    DoneEvent,
    ResultData,
    ResultEvent,
    TextData,
    TextEvent,
    make_error,
)

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #

VALID = (
    '{"score": 82, "summary": "Solid plan", '
    '"concerns": ["a"], "suggestions": ["b"]}'
)


class FakeBridge:
    """Stands in for ProcessBridge, replaying a fixed event list."""

    def __init__(self, events: list[CanonicalEvent]) -> None:
        self.events = events
        self.requests: list[InvocationRequest] = []
        self.cancels: list[Any] = []

    def start(
        self, request: InvocationRequest, cancel: asyncio.Event | None = None
    ) -> AsyncIterator[CanonicalEvent]:
        self.requests.append(request)
        self.cancels.append(cancel)
        return self._replay()

    async def _replay(self) -> AsyncIterator[CanonicalEvent]:
        for event in self.events:
            yield event


def _text(content: str) -> TextEvent:
    return TextEvent(data=TextData(content=content))


def _result(content: str) -> ResultEvent:
    return ResultEvent(data=ResultData(content=content))


async def _review(bridge: FakeBridge, plan: str, cwd: Path) -> ReviewOutcome:
    return await run_review(bridge, plan, str(cwd))  # type: ignore[arg-type]


# ------------------------------------------------------------------ #
# Extraction strategies
# ------------------------------------------------------------------ #


class TestExtractReview:
    def test_json_fence(self) -> None:
        review = extract_review(f"Here you go:\n```json\n{VALID}\n```\nThanks")
        assert review is not None
        assert review.score == 82
        assert review.summary == "Solid plan"
        assert review.concerns == ["a"]
        assert review.suggestions == ["b"]
        assert "Here you go" in review.raw

    def test_generic_fence(self) -> None:
        review = extract_review(f"```\n{VALID}\n```")
        assert review is not None
        assert review.score == 82

    def test_bare_object_with_score_and_summary(self) -> None:
        text = f"Prose with {{braces}} first. Then the answer: {VALID} The end."
        review = extract_review(text)
        assert review is not None
        assert review.summary == "Solid plan"

    def test_smallest_keyed_object_wins(self) -> None:
        text = (
            '{"wrapper": {"score": 10, "summary": "inner"}, '
            '"note": "score and summary"}'
        )
        review = extract_review('x "score" "summary" ' + text)
        assert review is not None
        assert review.score == 10
        assert review.summary == "inner"

    def test_any_object_with_numeric_score(self) -> None:
        review = extract_review('Verdict: {"score": 61} overall.')
        assert review is not None
        assert review.score == 61
        assert review.summary == NO_SUMMARY
        assert review.concerns == []

    def test_braces_inside_strings(self) -> None:
        text = 'Result {"score": 70, "summary": "uses {curly} and \\"quotes\\""}'
        review = extract_review(text)
        assert review is not None
        assert review.summary == 'uses {curly} and "quotes"'

    def test_json_fence_preferred_over_later_valid_fence(self) -> None:
        text = (
            '```json\n{"score": "high", "summary": "first"}\n```\n'
            f"and also\n```\n{VALID}\n```"
        )
        review = extract_review(text)
        assert review is not None
        assert review.summary == "first"
        assert review.score == 50

    def test_nothing_parses(self) -> None:
        assert extract_review("I could not review this plan.") is None
        assert extract_review('{"summary": "no score"}') is None
        assert extract_review("") is None

    def test_non_string_list_items_dropped(self) -> None:
        review = extract_review(
            '```json\n{"score": 5, "summary": "s", "concerns": ["x", 3, null]}\n```'
        )
        assert review is not None
        assert review.concerns == ["x"]


    def test_stray_quote_confined_to_its_line(self) -> None:
        text = 'Draft {"note: unterminated\nFinal: {"score": 64, "summary": "ok"}'
        review = extract_review(text)
        assert review is not None
        assert review.score == 64

    def test_unbalanced_braces_scan_quickly(self) -> None:
        text = "Here is some output {" * 4000 + '"stray' * 2000
        started = time.perf_counter()
        assert extract_review(text) is None
        assert time.perf_counter() - started < 2.0

    def test_object_after_many_open_braces(self) -> None:
        text = "{ " * 5000 + '{"score": 33, "summary": "deep"}'
        review = extract_review(text)
        assert review is not None
        assert review.summary == "deep"


class TestScoreClamping:
    @pytest.mark.parametrize(
        ("score", "expected"),
        [
            ("-5", 0),
            ("150", 100),
            ('"abc"', 50),
            ("true", 50),
            ("72.6", 73),
            ("0", 0),
            ("100", 100),
        ],
    )
    def test_clamp(self, score: str, expected: int) -> None:
        review = extract_review(f'```json\n{{"score": {score}, "summary": "s"}}\n```')
        assert review is not None
        assert review.score == expected

    def test_missing_score(self) -> None:
        review = extract_review('```json\n{"summary": "s"}\n```')
        assert review is not None
        assert review.score == 50

    @pytest.mark.parametrize(("sign", "expected"), [("", 100), ("-", 0)])
    def test_huge_integer(self, sign: str, expected: int) -> None:
        score = sign + "9" * 400
        review = extract_review(f'```json\n{{"score": {score}, "summary": "ok"}}\n```')
        assert review is not None
        assert review.score == expected


class TestReviewPrompt:
    def test_plan_embedded(self) -> None:
        prompt = build_review_prompt("Step 1: {do} the thing")
        assert "## Plan to Review:\nStep 1: {do} the thing" in prompt
        assert '"score": <number 0-100>' in prompt
        assert "{{" not in prompt


# ------------------------------------------------------------------ #
# run_review
# ------------------------------------------------------------------ #


class TestRunReview:
    async def test_success(self, tmp_path: Path) -> None:
        output = f"```json\n{VALID}\n```"
        bridge = FakeBridge([_text(output), _result(output), DoneEvent()])
        outcome = await _review(bridge, "the plan", tmp_path)
        assert outcome.success
        assert outcome.result is not None
        assert outcome.result.score == 82
        assert outcome.error is None

        [request] = bridge.requests
        assert "the plan" in request.prompt
        assert request.working_directory == tmp_path
        assert request.max_duration_ms == DEFAULT_REVIEW_TIMEOUT_MS
        assert request.resume_session_id is None

    async def test_session_and_timeout_forwarded(self, tmp_path: Path) -> None:
        bridge = FakeBridge([_result(VALID), DoneEvent()])
        cancel = asyncio.Event()
        outcome = await run_review(
            bridge,  # type: ignore[arg-type]
            "plan",
            str(tmp_path),
            session_id="sess-9",
            timeout_ms=5_000,
            cancel=cancel,
        )
        assert outcome.success
        [request] = bridge.requests
        assert request.resume_session_id == "sess-9"
        assert request.max_duration_ms == 5_000
        assert bridge.cancels == [cancel]

    async def test_agent_error(self, tmp_path: Path) -> None:
        bridge = FakeBridge([
            _text("partial"),
            make_error("boom", "agent_error"),
            DoneEvent(),
        ])
        outcome = await _review(bridge, "plan", tmp_path)
        assert not outcome.success
        assert outcome.error == "boom"
        assert outcome.raw == "partial"

    async def test_stderr_warning_is_not_failure(self, tmp_path: Path) -> None:
        bridge = FakeBridge([
            _result(VALID),
            make_error("deprecated flag", "stderr_warning"),
            DoneEvent(),
        ])
        outcome = await _review(bridge, "plan", tmp_path)
        assert outcome.success

    async def test_cancelled_without_result(self, tmp_path: Path) -> None:
        bridge = FakeBridge([_text("half an ans"), DoneEvent()])
        outcome = await _review(bridge, "plan", tmp_path)
        assert not outcome.success
        assert outcome.error is not None
        assert "cancelled or timed out" in outcome.error
        assert outcome.raw == "half an ans"

    async def test_unparseable_result(self, tmp_path: Path) -> None:
        bridge = FakeBridge([_result("Looks fine to me."), DoneEvent()])
        outcome = await _review(bridge, "plan", tmp_path)
        assert not outcome.success
        assert outcome.error == "Failed to parse review result as JSON"
        assert outcome.raw == "Looks fine to me."
