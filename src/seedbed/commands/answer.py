"""seedbed answer — resume a recorded invocation with the user's answer."""

from __future__ import annotations

from pathlib import Path

import click

from seedbed.bridge.process_bridge import InvocationRequest, format_answers
from seedbed.commands.run import execute, load_agent, open_recorder
from seedbed.events.recorder import recorded_state


@click.command()
@click.argument("log_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("reply")
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "-a", "--agent", default=None, help="Override the agent named in the log."
)
@click.option(
    "--cwd",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Working directory for the agent.",
)
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON lines.")
@click.option(
    "--record", is_flag=True, help="Record the resumed run beside LOG_FILE."
)
def answer(
    log_file: str,
    reply: str,
    config_file: str | None,
    agent: str | None,
    cwd: str,
    as_json: bool,
    record: bool,
) -> None:
    """Answer the pending question in LOG_FILE by resuming its session."""
    path = Path(log_file)
    try:
        state = recorded_state(path)
    except OSError as exc:
        raise click.ClickException(f"Cannot read {path}: {exc}") from exc

    if state.session_id is None:
        raise click.ClickException(
            f"No session id recorded in {path.name}; nothing to resume."
        )
    if state.pending_question is None:
        click.echo("Warning: no unanswered question in the log.", err=True)

    _, name, bridge = load_agent(config_file, agent or state.agent)

    prompt = reply
    pending = state.pending_question
    if pending is not None and len(pending.data.questions) == 1:
        prompt = format_answers({pending.data.questions[0].question: reply})

    request = InvocationRequest(
        prompt=prompt,
        working_directory=Path(cwd).resolve(),
        resume_session_id=state.session_id,
    )
    recorder = open_recorder(name, path.parent) if record else None
    execute(bridge, request, as_json, recorder)
