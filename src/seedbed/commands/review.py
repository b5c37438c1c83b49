"""seedbed review — score a plan file with an agent."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click

from seedbed.bridge.process_bridge import ProcessBridge
from seedbed.bridge.review import DEFAULT_REVIEW_TIMEOUT_MS, ReviewOutcome, run_review
from seedbed.commands.run import load_agent, sigint_cancels


async def _review(
    bridge: ProcessBridge,
    plan: str,
    cwd: Path,
    session: str | None,
    timeout_ms: int,
) -> ReviewOutcome:
    cancel = asyncio.Event()
    with sigint_cancels(cancel):
        return await run_review(
            bridge,
            plan,
            str(cwd),
            session_id=session,
            timeout_ms=timeout_ms,
            cancel=cancel,
        )


@click.command()
@click.argument("plan_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("-a", "--agent", default=None, help="Agent profile to run.")
@click.option("--session", default=None, help="Session id to review within.")
@click.option(
    "--cwd",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Working directory for the agent.",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=DEFAULT_REVIEW_TIMEOUT_MS / 1000,
    show_default=True,
    help="Give up after this many seconds.",
)
def review(
    plan_file: str,
    config_file: str | None,
    agent: str | None,
    session: str | None,
    cwd: str,
    timeout: float,
) -> None:
    """Review PLAN_FILE and print the score as JSON."""
    try:
        plan = Path(plan_file).read_text(encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot read plan file: {exc}") from exc

    _, _, bridge = load_agent(config_file, agent)
    outcome = asyncio.run(
        _review(
            bridge,
            plan,
            Path(cwd).resolve(),
            session,
            max(1, int(timeout * 1000)),
        )
    )

    if outcome.success and outcome.result is not None:
        payload = outcome.result.model_dump(exclude={"raw"})
        click.echo(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    click.echo(f"Error: {outcome.error}", err=True)
    if outcome.raw:
        click.echo("Warning: showing raw agent output instead.", err=True)
        click.echo(outcome.raw)
    raise SystemExit(1)
