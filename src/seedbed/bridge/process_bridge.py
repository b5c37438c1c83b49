"""Process bridge — spawns an agent CLI and streams canonical events.

One child process per invocation.  The event stream is a pull-based async
generator: it suspends while waiting for the next stdout chunk (or for the
process to exit) and never reads ahead of the consumer.  Both suspension
points also watch the caller's cancellation event and the optional
deadline; when either fires the child is terminated and the stream ends
with a bare ``done``.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
import os
from collections.abc import AsyncIterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from seedbed.bridge.helpers import format_stderr_preview, meaningful_stderr
from seedbed.bridge.line_reader import CHUNK_SIZE, LineReader
from seedbed.bridge.normalizer import MessageNormalizer
from seedbed.bridge.session import SessionTracker
from seedbed.config.models import AgentProfile
from seedbed.events.models import (
    CanonicalEvent,
    DoneEvent,
    InitData,
    InitEvent,
    ResultData,
    ResultEvent,
    make_error,
)

logger = logging.getLogger(__name__)

#: Seconds to wait after SIGTERM before SIGKILL.
_SIGTERM_WAIT = 3.0

#: Seconds to wait for the process to be reaped after SIGKILL.
_SIGKILL_WAIT = 2.0

#: Maximum characters of stderr attached to an error event.
_MAX_STDERR_CHARS = 2048


class BridgeError(Exception):
    """Invalid use of the bridge, raised before or outside the event stream."""


class InvocationState(enum.Enum):
    NOT_STARTED = "not_started"
    SPAWNED = "spawned"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class InvocationRequest(BaseModel):
    """Parameters of a single agent invocation."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    prompt: str = Field(description="Prompt text, or the user's answer when resuming")
    working_directory: Path = Field(description="Directory the agent runs in")
    resume_session_id: str | None = Field(
        default=None,
        description="Session id from an earlier invocation to continue",
    )
    structured_input_mode: bool = Field(
        default=False,
        description="Send a JSON envelope on stdin and keep it open",
    )
    extra_context_paths: list[str] = Field(
        default_factory=list,
        description="Files the agent is told to read before responding",
    )
    max_duration_ms: int | None = Field(
        default=None,
        gt=0,
        description="Stop the agent after this long (same as cancellation)",
    )


def build_prompt(request: InvocationRequest) -> str:
    """Inline *extra_context_paths* as reading instructions."""
    if not request.extra_context_paths:
        return request.prompt
    listing = "\n".join(f"- {path}" for path in request.extra_context_paths)
    return (
        "Before responding, read the following files for context:\n"
        f"{listing}\n\n{request.prompt}"
    )


def build_args(
    profile: AgentProfile, request: InvocationRequest, executable: str
) -> list[str]:
    """Build the argument vector for one invocation."""
    args = [executable, *profile.args]
    if request.resume_session_id and profile.session_flag:
        args.extend([profile.session_flag, request.resume_session_id])
    if request.structured_input_mode:
        args.extend(profile.structured_input_args)
    return args


def encode_prompt(prompt: str, structured: bool) -> bytes:
    """Encode the prompt for stdin in the selected wire format."""
    if structured:
        envelope = {"type": "user", "message": {"role": "user", "content": prompt}}
        return (json.dumps(envelope, ensure_ascii=False) + "\n").encode()
    return (prompt + "\n").encode()


def format_answers(answers: str | Mapping[str, str | Sequence[str]]) -> str:
    """Render question answers as the text of a tool result."""
    if isinstance(answers, str):
        return answers
    pairs = []
    for question, answer in answers.items():
        value = answer if isinstance(answer, str) else ", ".join(answer)
        pairs.append(f'"{question}"="{value}"')
    return (
        f"User has answered your questions: {', '.join(pairs)}. "
        "You can now continue with the user's answers in mind."
    )


def encode_answer(
    tool_use_id: str, answers: str | Mapping[str, str | Sequence[str]]
) -> bytes:
    """Encode an in-band answer envelope correlated by *tool_use_id*."""
    envelope = {
        "type": "user",
        "message": {
            "role": "user",
            "content": [
                {
                    "type": "tool_result",
                    "tool_use_id": tool_use_id,
                    "content": format_answers(answers),
                }
            ],
        },
    }
    return (json.dumps(envelope, ensure_ascii=False) + "\n").encode()


class _Interrupted(enum.Enum):
    TOKEN = "interrupted"


_INTERRUPTED = _Interrupted.TOKEN


class ProcessBridge:
    """Starts agent invocations for one ``AgentProfile``."""

    def __init__(self, profile: AgentProfile, name: str | None = None) -> None:
        self.profile = profile
        self.name = name or profile.command

    def start(
        self,
        request: InvocationRequest,
        cancel: asyncio.Event | None = None,
    ) -> AgentInvocation:
        """Prepare an invocation; the process spawns on first iteration.

        Raises:
            BridgeError: If the request asks for a capability the profile
                does not declare.
        """
        if request.structured_input_mode and not self.profile.supports_structured_input:
            msg = f"Agent '{self.name}' does not accept structured input"
            raise BridgeError(msg)
        return AgentInvocation(self, request, cancel)


class AgentInvocation:
    """A single, single-pass stream of canonical events from one process."""

    def __init__(
        self,
        bridge: ProcessBridge,
        request: InvocationRequest,
        cancel: asyncio.Event | None,
    ) -> None:
        self._bridge = bridge
        self._profile = bridge.profile
        self._name = bridge.name
        self._request = request
        self._cancel = cancel
        self._structured = request.structured_input_mode

        self._state = InvocationState.NOT_STARTED
        self._iterated = False
        self._process: asyncio.subprocess.Process | None = None
        self._returncode: int | None = None
        self._stdin_closed = False
        self._terminated = False
        self._stderr_task: asyncio.Task[str] | None = None
        self._deadline: float | None = None
        self._interrupt_reason = ""

        self._tracker = SessionTracker()
        self._normalizer = MessageNormalizer(self._tracker)

    # ------------------------------------------------------------------ #
    # Public surface
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> InvocationState:
        return self._state

    @property
    def session_id(self) -> str | None:
        """First session id seen in this invocation, if any."""
        return self._tracker.session_id

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> int | None:
        return self._returncode

    @property
    def full_output(self) -> str:
        return self._normalizer.full_output

    def __aiter__(self) -> AsyncIterator[CanonicalEvent]:
        if self._iterated:
            msg = "An agent invocation can only be iterated once"
            raise BridgeError(msg)
        self._iterated = True
        return self._run()

    async def answer(
        self,
        tool_use_id: str,
        answers: str | Mapping[str, str | Sequence[str]],
    ) -> None:
        """Answer a ``question`` event in-band on the still-open stdin.

        Raises:
            BridgeError: If the agent does not take in-band answers, the
                invocation is not in structured mode, or stdin is gone.
        """
        if not self._profile.supports_in_band_answers:
            msg = (
                f"Agent '{self._name}' does not accept in-band answers; "
                "resume the session with a new invocation instead"
            )
            raise BridgeError(msg)
        if not self._structured:
            msg = "In-band answers require structured input mode"
            raise BridgeError(msg)
        proc = self._process
        if proc is None or proc.stdin is None or self._stdin_closed:
            msg = f"Agent '{self._name}' stdin is not open"
            raise BridgeError(msg)

        try:
            proc.stdin.write(encode_answer(tool_use_id, answers))
            await proc.stdin.drain()
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            msg = f"Failed to write answer to agent '{self._name}': {exc}"
            raise BridgeError(msg) from exc
        logger.debug("%s: answered question %s in-band", self._name, tool_use_id)

    async def close_input(self) -> None:
        """Close the agent's stdin; idempotent."""
        proc = self._process
        if self._stdin_closed or proc is None or proc.stdin is None:
            return
        self._stdin_closed = True
        try:
            proc.stdin.close()
            await proc.stdin.wait_closed()
        except (BrokenPipeError, ConnectionResetError, OSError):
            pass

    # ------------------------------------------------------------------ #
    # Event stream
    # ------------------------------------------------------------------ #

    async def _run(self) -> AsyncIterator[CanonicalEvent]:
        stream = self._stream()
        try:
            async for event in stream:
                yield event
        finally:
            # Also reached when the consumer stops iterating early.
            await stream.aclose()
            await self._cleanup()
        yield DoneEvent()

    async def _stream(self) -> AsyncIterator[CanonicalEvent]:
        if self._cancel is not None and self._cancel.is_set():
            logger.info("%s: cancelled before start", self._name)
            self._state = InvocationState.CANCELLED
            return

        try:
            proc = await self._spawn()
        except OSError as exc:
            self._state = InvocationState.FAILED
            message = self._spawn_error_message(exc)
            logger.error("%s: %s", self._name, message)
            yield make_error(message, "spawn_error", details=str(exc))
            return

        self._process = proc
        self._state = InvocationState.SPAWNED
        self._stderr_task = asyncio.create_task(self._collect_stderr(proc))
        if not await self._write_prompt(proc):
            await self._stop_interrupted(proc)
            return

        if not self._profile.announces_session and self._request.resume_session_id:
            self._tracker.observe(self._request.resume_session_id)
            yield InitEvent(data=InitData(session_id=self._request.resume_session_id))

        self._state = InvocationState.STREAMING
        reader = LineReader()
        read_error: Exception | None = None
        try:
            while True:
                chunk = await self._interruptible(proc.stdout.read(CHUNK_SIZE))
                if chunk is _INTERRUPTED:
                    await self._stop_interrupted(proc)
                    return
                if not chunk:
                    break
                for line in reader.feed(chunk):
                    event = self._normalizer.normalize(line)
                    if event is None:
                        continue
                    if self._cancel_requested():
                        await self._stop_interrupted(proc)
                        return
                    await self._after_event(event)
                    yield event
        except (OSError, ValueError) as exc:
            read_error = exc

        if read_error is not None:
            self._state = InvocationState.FAILED
            logger.error("%s: error reading agent stdout: %s", self._name, read_error)
            await self._terminate(proc)
            yield make_error(
                f"Error reading output from '{self._name}': {read_error}",
                "process_error",
            )
            return

        tail = reader.flush()
        if tail is not None:
            event = self._normalizer.normalize(tail)
            if event is not None and not self._cancel_requested():
                await self._after_event(event)
                yield event

        returncode = await self._interruptible(proc.wait())
        if returncode is _INTERRUPTED:
            await self._stop_interrupted(proc)
            return
        self._returncode = returncode

        # A grandchild can keep stderr open after the agent itself exited.
        stderr_text = await self._interruptible(self._stderr_task)
        if stderr_text is _INTERRUPTED or self._cancel_requested():
            await self._stop_interrupted(proc)
            return
        for event in self._finish(returncode, stderr_text):
            yield event

    def _finish(self, returncode: int, stderr_text: str) -> list[CanonicalEvent]:
        """Trailing events once stdout closed and the process exited."""
        norm = self._normalizer
        events: list[CanonicalEvent] = []

        if returncode != 0 and not norm.has_result and not norm.has_error:
            self._state = InvocationState.FAILED
            stderr_text = stderr_text.strip()
            logger.error(
                "%s: agent exited with code %d: %s",
                self._name,
                returncode,
                format_stderr_preview(stderr_text),
            )
            events.append(
                make_error(
                    f"Agent '{self._name}' exited with code {returncode}",
                    "process_error",
                    details=stderr_text[:_MAX_STDERR_CHARS] or None,
                )
            )
            return events

        if not norm.has_result and not norm.has_error and norm.full_output:
            # Flat-shape agents may never send an explicit result message.
            norm.has_result = True
            events.append(
                ResultEvent(
                    data=ResultData(
                        content=norm.full_output,
                        session_id=norm.session_id,
                    )
                )
            )

        if not norm.has_error:
            warning = meaningful_stderr(
                stderr_text, self._profile.benign_stderr_patterns
            )
            if warning:
                logger.warning(
                    "%s: stderr: %s", self._name, format_stderr_preview(warning)
                )
                events.append(make_error(warning[:_MAX_STDERR_CHARS], "stderr_warning"))
            elif stderr_text.strip():
                logger.debug("%s: ignoring benign stderr", self._name)

        self._state = (
            InvocationState.FAILED if norm.has_error else InvocationState.COMPLETED
        )
        return events

    async def _after_event(self, event: CanonicalEvent) -> None:
        # A structured-mode agent keeps waiting for input after its result.
        if isinstance(event, ResultEvent) and self._structured:
            await self.close_input()

    # ------------------------------------------------------------------ #
    # Process plumbing
    # ------------------------------------------------------------------ #

    async def _spawn(self) -> asyncio.subprocess.Process:
        cwd = self._request.working_directory
        if not cwd.is_dir():
            msg = f"Working directory does not exist: {cwd}"
            raise FileNotFoundError(msg)

        executable = self._profile.resolve_executable()
        args = build_args(self._profile, self._request, executable)
        env = {
            k: v for k, v in os.environ.items() if k not in self._profile.strip_env
        }
        logger.debug("%s: spawning %s in %s", self._name, args[0], cwd)

        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd),
            env=env,
            start_new_session=True,
        )

        max_ms = self._request.max_duration_ms or self._profile.max_duration_ms
        if max_ms is not None:
            self._deadline = asyncio.get_running_loop().time() + max_ms / 1000
        return proc

    def _spawn_error_message(self, exc: OSError) -> str:
        command = self._profile.command
        if isinstance(exc, FileNotFoundError):
            if not self._request.working_directory.is_dir():
                return str(exc)
            return (
                f"Agent '{self._name}' — '{command}' not found. "
                f"Make sure '{command}' is installed and on your PATH."
            )
        if isinstance(exc, PermissionError):
            return f"Agent '{self._name}' — permission denied executing '{command}'"
        return f"Agent '{self._name}' — failed to spawn '{command}': {exc}"

    async def _write_prompt(self, proc: asyncio.subprocess.Process) -> bool:
        """Send the prompt; False if cancelled or timed out while draining."""
        if proc.stdin is None:
            return True
        prompt = build_prompt(self._request)
        try:
            proc.stdin.write(encode_prompt(prompt, self._structured))
            drained = await self._interruptible(proc.stdin.drain())
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            # The exit status will tell the caller what went wrong.
            logger.warning("%s: failed to write prompt: %s", self._name, exc)
            self._stdin_closed = True
            return True
        if drained is _INTERRUPTED:
            return False
        if not self._structured:
            await self.close_input()
        return True

    async def _collect_stderr(self, proc: asyncio.subprocess.Process) -> str:
        if proc.stderr is None:
            return ""
        try:
            data = await proc.stderr.read()
        except (OSError, ValueError) as exc:
            logger.warning("%s: error reading stderr: %s", self._name, exc)
            return ""
        return data.decode(errors="replace")

    def _cancel_requested(self) -> bool:
        if self._cancel is not None and self._cancel.is_set():
            self._interrupt_reason = "cancelled"
            return True
        return False

    async def _interruptible(self, awaitable: Any) -> Any:
        """Await *awaitable* unless cancellation or the deadline comes first."""
        work = asyncio.ensure_future(awaitable)
        if self._cancel_requested():
            work.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await work
            return _INTERRUPTED
        waiters: set[asyncio.Future[Any]] = {work}
        watcher: asyncio.Future[Any] | None = None
        if self._cancel is not None:
            watcher = asyncio.ensure_future(self._cancel.wait())
            waiters.add(watcher)

        timeout: float | None = None
        if self._deadline is not None:
            timeout = max(0.0, self._deadline - asyncio.get_running_loop().time())

        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            if watcher is not None:
                watcher.cancel()

        if work in done:
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        if self._cancel is not None and self._cancel.is_set():
            self._interrupt_reason = "cancelled"
        else:
            self._interrupt_reason = "timed out"
        return _INTERRUPTED

    async def _stop_interrupted(self, proc: asyncio.subprocess.Process) -> None:
        logger.info(
            "%s: invocation %s, stopping agent", self._name, self._interrupt_reason
        )
        self._state = InvocationState.CANCELLED
        await self._terminate(proc)

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM, bounded wait, then SIGKILL; never waits indefinitely."""
        if self._terminated or self._returncode is not None:
            return
        if proc.returncode is not None:
            return
        self._terminated = True
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            self._returncode = await asyncio.wait_for(
                proc.wait(), timeout=_SIGTERM_WAIT
            )
        except TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            with contextlib.suppress(TimeoutError):
                self._returncode = await asyncio.wait_for(
                    proc.wait(), timeout=_SIGKILL_WAIT
                )

    async def _cleanup(self) -> None:
        proc = self._process
        if proc is not None:
            await self._terminate(proc)
            await self.close_input()
        task = self._stderr_task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
