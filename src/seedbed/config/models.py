"""Pydantic v2 models for seedbed.yaml configuration."""

from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_FLAG_RE = re.compile(r"^--?[a-zA-Z0-9][a-zA-Z0-9-]*$")


class AgentProfile(BaseModel):
    """How to launch and talk to one agent binary.

    Capabilities are declared per profile rather than assumed: not every
    agent accepts structured stdin or in-band answers to its questions.
    """

    model_config = ConfigDict(extra="forbid")

    command: str = Field(description="Bare command name resolved via PATH")
    local_path: str | None = Field(
        default=None,
        description="Preferred user-local install path, used when it exists",
    )
    args: list[str] = Field(
        default_factory=list,
        description="Mode flags passed on every invocation",
    )
    session_flag: str | None = Field(
        default=None,
        description="Flag that takes a session id to resume (e.g. '--resume')",
    )
    structured_input_args: list[str] = Field(
        default_factory=list,
        description="Extra flags enabling JSON envelopes on stdin",
    )
    supports_structured_input: bool = Field(
        default=False,
        description="Agent accepts JSON envelopes on stdin",
    )
    supports_in_band_answers: bool = Field(
        default=False,
        description="Agent accepts tool_result answers on a still-open stdin",
    )
    announces_session: bool = Field(
        default=True,
        description="Agent reports its own session id on stdout",
    )
    benign_stderr_patterns: list[str] = Field(
        default_factory=lambda: ["Using model"],
        description="Substrings marking stderr output as harmless diagnostics",
    )
    max_duration_ms: int | None = Field(
        default=None,
        gt=0,
        description="Default maximum invocation duration in milliseconds",
    )
    strip_env: list[str] = Field(
        default_factory=list,
        description="Environment variables removed before spawning",
    )

    @field_validator("session_flag")
    @classmethod
    def _check_flag(cls, value: str | None) -> str | None:
        if value is not None and not _FLAG_RE.match(value):
            msg = f"Invalid session flag '{value}' — expected e.g. '--session'"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _validate_capabilities(self) -> AgentProfile:
        if self.supports_in_band_answers and not self.supports_structured_input:
            msg = "In-band answers require 'supports_structured_input: true'"
            raise ValueError(msg)
        if self.structured_input_args and not self.supports_structured_input:
            msg = (
                "'structured_input_args' given but "
                "'supports_structured_input' is false"
            )
            raise ValueError(msg)
        return self

    def resolve_executable(self) -> str:
        """Return the local install path if present, else the bare command."""
        if self.local_path:
            candidate = Path(self.local_path).expanduser()
            if candidate.is_file():
                return str(candidate)
        return self.command


CLAUDE_PROFILE = AgentProfile(
    command="claude",
    local_path="~/.claude/local/claude",
    args=[
        "--print",
        "--output-format",
        "stream-json",
        "--verbose",
        "--permission-mode",
        "plan",
    ],
    session_flag="--resume",
    structured_input_args=["--input-format", "stream-json"],
    supports_structured_input=True,
    supports_in_band_answers=True,
    announces_session=True,
    strip_env=["ANTHROPIC_API_KEY"],
)

KIMI_PROFILE = AgentProfile(
    command="kimi",
    local_path="~/.local/bin/kimi",
    args=["--print", "--output-format", "stream-json", "--yolo"],
    session_flag="--session",
    announces_session=False,
)

#: Profiles available without any config file.
BUILTIN_PROFILES: dict[str, AgentProfile] = {
    "claude": CLAUDE_PROFILE,
    "kimi": KIMI_PROFILE,
}


class SeedbedConfig(BaseModel):
    """Top-level seedbed.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1", description="Config schema version")
    default_agent: str = Field(
        default="claude",
        description="Agent used when none is given on the command line",
    )
    agents: dict[str, AgentProfile] = Field(
        default_factory=dict,
        description="Agent profiles (merged over the built-in ones)",
    )
    record_dir: str | None = Field(
        default=None,
        description="Directory for JSONL event logs",
    )

    @model_validator(mode="after")
    def _merge_builtins(self) -> SeedbedConfig:
        merged = dict(BUILTIN_PROFILES)
        merged.update(self.agents)
        self.agents = merged
        if self.default_agent not in self.agents:
            available = ", ".join(f"'{a}'" for a in self.agents)
            msg = (
                f"Default agent '{self.default_agent}' not found — "
                f"available agents: {available}"
            )
            raise ValueError(msg)
        return self

    def profile(self, name: str | None = None) -> AgentProfile:
        """Look up a profile by name, falling back to the default agent."""
        key = name or self.default_agent
        try:
            return self.agents[key]
        except KeyError:
            available = ", ".join(sorted(self.agents))
            msg = f"Unknown agent '{key}' — available agents: {available}"
            raise KeyError(msg) from None
