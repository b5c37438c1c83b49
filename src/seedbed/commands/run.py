"""seedbed run — invoke an agent and stream its canonical events."""

from __future__ import annotations

import asyncio
import contextlib
import json
import signal
import uuid
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

import click

from seedbed.bridge.process_bridge import (
    AgentInvocation,
    BridgeError,
    InvocationRequest,
    InvocationState,
    ProcessBridge,
)
from seedbed.config.models import SeedbedConfig
from seedbed.config.parser import ConfigError, load_config
from seedbed.events.models import (
    CanonicalEvent,
    ErrorEvent,
    InitEvent,
    QuestionEvent,
    ResultEvent,
    TextEvent,
    ToolEvent,
)
from seedbed.events.recorder import EventRecorder

#: Exit status after Ctrl-C or a timeout, as a shell would report SIGINT.
EXIT_CANCELLED = 130


# ------------------------------------------------------------------ #
# Shared helpers (also used by `answer` and `review`)
# ------------------------------------------------------------------ #


def load_agent(
    config_file: str | None, agent: str | None
) -> tuple[SeedbedConfig, str, ProcessBridge]:
    """Load config and build a bridge for *agent*; exits on user error."""
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    name = agent or config.default_agent
    try:
        profile = config.profile(name)
    except KeyError as exc:
        click.echo(f"Error: {exc.args[0]}", err=True)
        raise SystemExit(1) from exc
    return config, name, ProcessBridge(profile, name=name)


def session_for(bridge: ProcessBridge, resume: str | None) -> str | None:
    """Name a session up front for agents that never announce their own."""
    profile = bridge.profile
    if resume is None and not profile.announces_session and profile.session_flag:
        return str(uuid.uuid4())
    return resume


def open_recorder(agent: str, log_dir: Path | None) -> EventRecorder:
    try:
        return EventRecorder(agent, log_dir)
    except (ValueError, OSError) as exc:
        raise click.ClickException(f"Cannot record events: {exc}") from exc


@contextlib.contextmanager
def sigint_cancels(cancel: asyncio.Event) -> Iterator[None]:
    """Route Ctrl-C to *cancel* while the block runs."""
    loop = asyncio.get_running_loop()
    installed = False
    with contextlib.suppress(NotImplementedError, RuntimeError, ValueError):
        loop.add_signal_handler(signal.SIGINT, cancel.set)
        installed = True
    try:
        yield
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


@dataclass
class StreamSummary:
    state: InvocationState
    session_id: str | None
    exit_code: int


class EventPrinter:
    """Renders canonical events as text (or JSON lines with ``as_json``)."""

    def __init__(self, as_json: bool = False) -> None:
        self.as_json = as_json
        self._printed_text = False
        self._mid_line = False

    def show(self, event: CanonicalEvent) -> None:
        if self.as_json:
            click.echo(json.dumps(event.to_wire(), ensure_ascii=False))
            return

        if isinstance(event, InitEvent):
            click.echo(click.style(f"[session {event.data.session_id}]", dim=True))
        elif isinstance(event, TextEvent):
            click.echo(event.data.content, nl=False)
            self._printed_text = True
            self._mid_line = not event.data.content.endswith("\n")
        elif isinstance(event, ToolEvent):
            self._end_line()
            label = f"  → {event.data.name}"
            if event.data.summary:
                label += f" {event.data.summary}"
            click.echo(click.style(label, fg="cyan"))
        elif isinstance(event, QuestionEvent):
            self._end_line()
            for q in event.data.questions:
                header = f"[{q.header}] " if q.header else ""
                click.echo(click.style(f"? {header}{q.question}", fg="yellow"))
                for i, opt in enumerate(q.options or [], start=1):
                    desc = f" — {opt.description}" if opt.description else ""
                    click.echo(f"    {i}. {opt.label}{desc}")
        elif isinstance(event, ResultEvent):
            if not self._printed_text:
                click.echo(event.data.content, nl=False)
                self._mid_line = not event.data.content.endswith("\n")
            self._end_line()
        elif isinstance(event, ErrorEvent):
            self._end_line()
            color = "yellow" if event.data.recoverable else "red"
            click.echo(
                click.style(
                    f"  ⚠ {event.data.error_type}: {event.data.message}", fg=color
                ),
                err=True,
            )
            if event.data.details and event.data.details != event.data.message:
                click.echo(f"    {event.data.details}", err=True)

    def _end_line(self) -> None:
        if self._mid_line:
            click.echo()
            self._mid_line = False


async def _ask(question: QuestionEvent) -> dict[str, str]:
    answers: dict[str, str] = {}
    for q in question.data.questions:
        labels = [opt.label for opt in q.options or []]
        reply = await asyncio.to_thread(click.prompt, q.question, err=True)
        # Accept an option number as shorthand for its label.
        if reply.isdigit() and 1 <= int(reply) <= len(labels):
            reply = labels[int(reply) - 1]
        answers[q.question] = reply
    return answers


async def _handle_question(
    invocation: AgentInvocation,
    event: QuestionEvent,
    bridge: ProcessBridge,
    request: InvocationRequest,
) -> None:
    profile = bridge.profile
    if request.structured_input_mode and profile.supports_in_band_answers:
        answers = await _ask(event)
        try:
            await invocation.answer(event.data.tool_use_id, answers)
        except BridgeError as exc:
            click.echo(f"Warning: {exc}", err=True)
        return

    session = invocation.session_id
    if session is None:
        click.echo("  (no session id yet; the question cannot be resumed)", err=True)
        return
    click.echo(
        f"  Answer with: seedbed run --agent {bridge.name} "
        f'--resume {session} "<your answer>"',
        err=True,
    )


async def stream_invocation(
    bridge: ProcessBridge,
    request: InvocationRequest,
    printer: EventPrinter,
    recorder: EventRecorder | None = None,
) -> StreamSummary:
    """Drive one invocation to ``done``, rendering and recording events."""
    cancel = asyncio.Event()
    invocation = bridge.start(request, cancel=cancel)
    with sigint_cancels(cancel):
        async for event in invocation:
            if recorder is not None:
                recorder.record(event)
            printer.show(event)
            if isinstance(event, QuestionEvent):
                await _handle_question(invocation, event, bridge, request)

    state = invocation.state
    if state is InvocationState.COMPLETED:
        code = 0
    elif state is InvocationState.CANCELLED:
        code = EXIT_CANCELLED
    else:
        code = 1
    return StreamSummary(state=state, session_id=invocation.session_id, exit_code=code)


def execute(
    bridge: ProcessBridge,
    request: InvocationRequest,
    as_json: bool,
    recorder: EventRecorder | None,
) -> None:
    """Run :func:`stream_invocation` and exit with its status."""
    printer = EventPrinter(as_json=as_json)
    try:
        summary = asyncio.run(stream_invocation(bridge, request, printer, recorder))
    except BridgeError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc
    finally:
        if recorder is not None:
            recorder.close()

    if not as_json:
        if summary.state is InvocationState.CANCELLED:
            click.echo("  Stopped.", err=True)
        if summary.session_id:
            click.echo(click.style(f"  Session: {summary.session_id}", dim=True))
        if recorder is not None:
            click.echo(click.style(f"  Log:     {recorder.log_file}", dim=True))
    if summary.exit_code:
        raise SystemExit(summary.exit_code)


def _read_prompt(prompt: str | None, prompt_file: str | None) -> str:
    if prompt_file is not None:
        try:
            return Path(prompt_file).read_text(encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(f"Cannot read prompt file: {exc}") from exc
    if prompt is None or not prompt.strip():
        raise click.UsageError("Provide a PROMPT argument or --prompt-file.")
    return prompt


# ------------------------------------------------------------------ #
# Command
# ------------------------------------------------------------------ #


@click.command()
@click.argument("prompt", required=False)
@click.option(
    "-p",
    "--prompt-file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Read the prompt from a file instead of the argument.",
)
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option("-a", "--agent", default=None, help="Agent profile to run.")
@click.option(
    "--cwd",
    type=click.Path(file_okay=False),
    default=".",
    show_default=True,
    help="Working directory for the agent.",
)
@click.option(
    "--resume", "resume_session", default=None, help="Session id to continue."
)
@click.option(
    "--structured",
    is_flag=True,
    help="Keep stdin open for JSON input and answer questions in-band.",
)
@click.option(
    "-c",
    "--context",
    "context_paths",
    multiple=True,
    help="File the agent should read first (repeatable).",
)
@click.option(
    "--timeout",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop the agent after this many seconds.",
)
@click.option("--json", "as_json", is_flag=True, help="Print events as JSON lines.")
@click.option("--record", is_flag=True, help="Append events to a JSONL log.")
def run(
    prompt: str | None,
    prompt_file: str | None,
    config_file: str | None,
    agent: str | None,
    cwd: str,
    resume_session: str | None,
    structured: bool,
    context_paths: tuple[str, ...],
    timeout: float | None,
    as_json: bool,
    record: bool,
) -> None:
    """Run an agent on PROMPT and stream its events."""
    text = _read_prompt(prompt, prompt_file)
    config, name, bridge = load_agent(config_file, agent)

    request = InvocationRequest(
        prompt=text,
        working_directory=Path(cwd).resolve(),
        resume_session_id=session_for(bridge, resume_session),
        structured_input_mode=structured,
        extra_context_paths=list(context_paths),
        max_duration_ms=max(1, int(timeout * 1000)) if timeout else None,
    )
    recorder = None
    if record:
        log_dir = Path(config.record_dir) if config.record_dir else None
        recorder = open_recorder(name, log_dir)
    execute(bridge, request, as_json, recorder)
