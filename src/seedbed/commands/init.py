"""seedbed init — scaffold a seedbed.yaml with agent profiles."""

from __future__ import annotations

from pathlib import Path

import click

CONFIG_FILENAME = "seedbed.yaml"

TEMPLATE_YAML = """\
# Seedbed agent configuration
version: "1"

# Agent used when `seedbed run` is given no --agent
default_agent: claude

# Event logs written by `seedbed run --record`
# record_dir: invocations

# Built-in profiles `claude` and `kimi` are always available; entries
# here override them or add new agents.
agents:
  claude:
    command: claude
    local_path: ~/.claude/local/claude
    args: [--print, --output-format, stream-json, --verbose,
           --permission-mode, plan]
    session_flag: --resume
    structured_input_args: [--input-format, stream-json]
    supports_structured_input: true
    supports_in_band_answers: true
    strip_env: [ANTHROPIC_API_KEY]

  kimi:
    command: kimi
    local_path: ~/.local/bin/kimi
    args: [--print, --output-format, stream-json, --yolo]
    session_flag: --session
    # kimi does not print its session id; seedbed announces the one it was given
    announces_session: false
    benign_stderr_patterns: ["Using model"]
    # max_duration_ms: 120000
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing seedbed.yaml if it exists.",
)
def init(force: bool) -> None:
    """Scaffold a seedbed.yaml in the current directory."""
    config_path = Path.cwd() / CONFIG_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {CONFIG_FILENAME}: {exc}") from exc
    click.echo(f"  Created {CONFIG_FILENAME}")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {CONFIG_FILENAME} to match your installed agents")
    click.echo('  2. Run `seedbed run "your prompt"` to start an agent')
