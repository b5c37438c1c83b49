"""Locate, read and validate seedbed.yaml."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from seedbed.config.models import SeedbedConfig

DEFAULT_CONFIG_NAME = "seedbed.yaml"

#: Environment variable naming a config file when none is passed explicitly.
CONFIG_ENV_VAR = "SEEDBED_CONFIG"


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> SeedbedConfig:
    """Load seedbed configuration.

    Lookup order: *path*, then ``$SEEDBED_CONFIG``, then ``seedbed.yaml``
    in the current directory.  Without any of them the built-in agent
    profiles are returned.  A ``.env`` beside the file is loaded into the
    environment, and a relative ``record_dir`` is anchored at the file's
    directory.

    Raises:
        ConfigError: If a named file is missing or the file is invalid.
    """
    config_path = find_config(path)
    if config_path is None:
        return SeedbedConfig()

    raw = _parse_file(config_path)
    env_file = config_path.parent / ".env"
    if env_file.is_file():
        load_dotenv(env_file)

    config = _build(raw, config_path.name)
    if config.record_dir is not None:
        record_dir = Path(config.record_dir).expanduser()
        if not record_dir.is_absolute():
            record_dir = config_path.parent.resolve() / record_dir
        config.record_dir = str(record_dir)
    return config


def find_config(path: Path | None = None) -> Path | None:
    """Return the config file to use, or None to run on built-ins."""
    named = path if path is not None else os.environ.get(CONFIG_ENV_VAR)
    if named:
        candidate = Path(named).expanduser()
        if not candidate.is_file():
            raise ConfigError(f"Config file not found: {candidate}")
        return candidate

    local = Path.cwd() / DEFAULT_CONFIG_NAME
    return local if local.is_file() else None


def _parse_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"Cannot read config file: {exc}") from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" (line {mark.line + 1}, column {mark.column + 1})" if mark else ""
        raise ConfigError(f"Invalid YAML in {path.name}{where}") from exc

    if data is None:
        return {}
    if isinstance(data, dict):
        return data
    raise ConfigError(
        f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
    )


def _describe(error: dict[str, Any]) -> str:
    where = " → ".join(str(part) for part in error["loc"]) or "(top level)"
    text = error["msg"]
    if error["type"] == "missing":
        text = "This field is required"
    elif error["type"] == "extra_forbidden":
        text = "Unknown setting"
    elif text.startswith("Value error, "):
        text = text.removeprefix("Value error, ")
    return f"  {where}: {text}"


def _build(raw: dict[str, Any], source: str) -> SeedbedConfig:
    try:
        return SeedbedConfig.model_validate(raw)
    except ValidationError as exc:
        details = "\n".join(_describe(err) for err in exc.errors())
        raise ConfigError(f"Config validation failed in {source}:\n{details}") from exc
