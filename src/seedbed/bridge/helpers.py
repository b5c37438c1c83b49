"""Shared helper functions for the process bridge."""

from __future__ import annotations

from collections.abc import Iterable


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def meaningful_stderr(stderr_text: str, benign_patterns: Iterable[str]) -> str:
    """Drop blank lines and lines matching a benign pattern.

    Some agents print diagnostics such as a model-selection banner on
    stderr even when they succeed; whatever remains is worth reporting.
    """
    patterns = [p for p in benign_patterns if p]
    kept = [
        line.rstrip()
        for line in stderr_text.splitlines()
        if line.strip() and not any(p in line for p in patterns)
    ]
    return "\n".join(kept)
