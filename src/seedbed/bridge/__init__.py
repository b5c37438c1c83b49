"""Agent process bridge — spawn agent CLIs and stream canonical events."""

from seedbed.bridge.line_reader import LineReader
from seedbed.bridge.normalizer import (
    MessageNormalizer,
    WireMessage,
    parse_envelope_message,
    parse_flat_message,
)
from seedbed.bridge.process_bridge import (
    AgentInvocation,
    BridgeError,
    InvocationRequest,
    InvocationState,
    ProcessBridge,
)
from seedbed.bridge.review import (
    ReviewOutcome,
    ReviewResult,
    build_review_prompt,
    extract_review,
    run_review,
)
from seedbed.bridge.session import SessionTracker
from seedbed.bridge.tool_summary import summarize_tool

__all__ = [
    "AgentInvocation",
    "BridgeError",
    "InvocationRequest",
    "InvocationState",
    "LineReader",
    "MessageNormalizer",
    "ProcessBridge",
    "ReviewOutcome",
    "ReviewResult",
    "SessionTracker",
    "WireMessage",
    "build_review_prompt",
    "extract_review",
    "parse_envelope_message",
    "parse_flat_message",
    "run_review",
    "summarize_tool",
]
