"""Tests for tool-call summaries."""

from __future__ import annotations

import pytest

from seedbed.bridge.tool_summary import summarize_tool


class TestKnownTools:
    @pytest.mark.parametrize("tool", ["Read", "Write", "Edit", "MultiEdit"])
    def test_file_tools_use_last_two_segments(self, tool: str) -> None:
        params = {"file_path": "/home/me/project/app/page.tsx"}
        assert summarize_tool(tool, params) == "app/page.tsx"

    def test_notebook_path(self) -> None:
        params = {"notebook_path": "notebooks/analysis.ipynb"}
        assert summarize_tool("NotebookEdit", params) == "notebooks/analysis.ipynb"

    def test_windows_path(self) -> None:
        params = {"file_path": "C:\\src\\pkg\\mod.py"}
        assert summarize_tool("Read", params) == "pkg/mod.py"

    def test_single_segment_path(self) -> None:
        assert summarize_tool("Read", {"file_path": "README.md"}) == "README.md"

    @pytest.mark.parametrize("tool", ["Glob", "Grep"])
    def test_search_pattern_quoted(self, tool: str) -> None:
        assert summarize_tool(tool, {"pattern": "**/*.py"}) == '"**/*.py"'

    def test_search_pattern_truncated(self) -> None:
        summary = summarize_tool("Grep", {"pattern": "x" * 100})
        assert summary == '"' + "x" * 27 + '..."'

    def test_bash_truncated_to_50(self) -> None:
        summary = summarize_tool("Bash", {"command": "echo " + "a" * 100})
        assert len(summary) == 50
        assert summary.endswith("...")

    def test_bash_short_command(self) -> None:
        assert summarize_tool("Bash", {"command": "npm test"}) == "npm test"

    def test_web_fetch_hostname(self) -> None:
        params = {"url": "https://docs.python.org/3/library/asyncio.html"}
        assert summarize_tool("WebFetch", params) == "docs.python.org"

    def test_web_fetch_unparseable_url(self) -> None:
        url = "not a url at all but quite a long string of text"
        summary = summarize_tool("WebFetch", {"url": url})
        assert len(summary) == 40
        assert summary.startswith("not a url")

    def test_web_search_query(self) -> None:
        assert summarize_tool("WebSearch", {"query": "pydantic v2"}) == '"pydantic v2"'

    def test_task_description(self) -> None:
        params = {"description": "Explore the codebase", "prompt": "long..."}
        assert summarize_tool("Task", params) == "Explore the codebase"

    def test_ls_path(self) -> None:
        assert summarize_tool("LS", {"path": "/repo/src/seedbed"}) == "src/seedbed"

    def test_question_count(self) -> None:
        assert summarize_tool("AskUserQuestion", {"questions": [{}]}) == "1 question"
        assert (
            summarize_tool("AskUserQuestion", {"questions": [{}, {}]})
            == "2 questions"
        )

    def test_todo_count(self) -> None:
        assert summarize_tool("TodoWrite", {"todos": [{}, {}, {}]}) == "3 todos"
        assert summarize_tool("TodoWrite", {}) == "0 todos"

    def test_missing_params(self) -> None:
        assert summarize_tool("Read", {}) == ""
        assert summarize_tool("Bash", {"command": 5}) == ""


class TestGenericFallback:
    def test_first_short_string_in_insertion_order(self) -> None:
        params = {"count": 3, "empty": "", "target": "staging", "other": "x"}
        assert summarize_tool("Deploy", params) == "staging"

    def test_long_strings_skipped(self) -> None:
        params = {"body": "y" * 80, "name": "short"}
        assert summarize_tool("Custom", params) == "short"

    def test_truncated_to_40(self) -> None:
        summary = summarize_tool("Custom", {"note": "z" * 59})
        assert len(summary) == 40

    def test_nothing_qualifies(self) -> None:
        assert summarize_tool("Custom", {"n": 1, "flag": True}) == ""

    @pytest.mark.parametrize("params", [None, "str", 42, ["a"]])
    def test_non_mapping_params(self, params: object) -> None:
        assert summarize_tool("Custom", params) == ""
        assert summarize_tool("Read", params) == ""
