"""Short human-readable summaries of agent tool calls."""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from typing import Any
from urllib.parse import urlparse

#: Tool name the agents use to ask the user structured questions.
ASK_USER_TOOL = "AskUserQuestion"

_ELLIPSIS = "..."

_PATH_SEP_RE = re.compile(r"[\\/]+")


def _truncate(text: str, limit: int) -> str:
    """Cut *text* to at most *limit* characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[: limit - len(_ELLIPSIS)] + _ELLIPSIS


def _str_param(params: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = params.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def _path_tail(path: str) -> str:
    """Last two segments of *path*, e.g. ``app/page.tsx``."""
    segments = [s for s in _PATH_SEP_RE.split(path) if s]
    return _truncate("/".join(segments[-2:]), 60)


def _count(items: object, noun: str) -> str:
    n = len(items) if isinstance(items, list) else 0
    return f"{n} {noun}" if n == 1 else f"{n} {noun}s"


def _file_summary(params: Mapping[str, Any]) -> str:
    path = _str_param(params, "file_path", "notebook_path", "path")
    return _path_tail(path) if path else ""


def _search_summary(params: Mapping[str, Any]) -> str:
    pattern = _str_param(params, "pattern")
    return f'"{_truncate(pattern, 30)}"' if pattern else ""


def _bash_summary(params: Mapping[str, Any]) -> str:
    return _truncate(_str_param(params, "command"), 50)


def _fetch_summary(params: Mapping[str, Any]) -> str:
    url = _str_param(params, "url")
    if not url:
        return ""
    try:
        host = urlparse(url).hostname
    except ValueError:
        host = None
    return host if host else _truncate(url, 40)


def _web_search_summary(params: Mapping[str, Any]) -> str:
    query = _str_param(params, "query")
    return f'"{_truncate(query, 40)}"' if query else ""


def _task_summary(params: Mapping[str, Any]) -> str:
    return _truncate(_str_param(params, "description", "prompt"), 40)


def _ls_summary(params: Mapping[str, Any]) -> str:
    path = _str_param(params, "path")
    return _path_tail(path) if path else ""


_SUMMARIZERS: dict[str, Callable[[Mapping[str, Any]], str]] = {
    "Read": _file_summary,
    "Write": _file_summary,
    "Edit": _file_summary,
    "MultiEdit": _file_summary,
    "NotebookEdit": _file_summary,
    "Glob": _search_summary,
    "Grep": _search_summary,
    "Bash": _bash_summary,
    "WebFetch": _fetch_summary,
    "WebSearch": _web_search_summary,
    "Task": _task_summary,
    "LS": _ls_summary,
    ASK_USER_TOOL: lambda p: _count(p.get("questions"), "question"),
    "TodoWrite": lambda p: _count(p.get("todos"), "todo"),
}


def _generic_summary(params: Mapping[str, Any]) -> str:
    """First short string parameter, in the order the agent sent them."""
    for value in params.values():
        if isinstance(value, str) and 0 < len(value) < 60:
            return _truncate(value, 40)
    return ""


def summarize_tool(name: str, params: object) -> str:
    """Summarize a tool call for progress display; never raises."""
    if not isinstance(params, Mapping):
        return ""
    summarizer = _SUMMARIZERS.get(name)
    if summarizer is None:
        return _generic_summary(params)
    return summarizer(params)
