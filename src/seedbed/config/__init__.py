"""Configuration models and parser for seedbed.yaml."""

from seedbed.config.models import (
    BUILTIN_PROFILES,
    CLAUDE_PROFILE,
    KIMI_PROFILE,
    AgentProfile,
    SeedbedConfig,
)
from seedbed.config.parser import ConfigError, load_config

__all__ = [
    "BUILTIN_PROFILES",
    "CLAUDE_PROFILE",
    "KIMI_PROFILE",
    "AgentProfile",
    "ConfigError",
    "SeedbedConfig",
    "load_config",
]
