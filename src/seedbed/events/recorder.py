"""Event recorder — append-only JSONL log of canonical events."""

from __future__ import annotations

import json
import re
import threading
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import IO, Any

from pydantic import TypeAdapter, ValidationError

from seedbed.events.models import CanonicalEvent, InitEvent, QuestionEvent, ResultEvent

#: Agent names end up in file names: alphanumerics, hyphens and underscores.
_SAFE_NAME_RE = re.compile(r"^[a-zA-Z0-9_-]+$")

_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(CanonicalEvent)


class EventRecorder:
    """Records canonical events to an append-only JSONL file as they stream.

    Writes from several threads are serialized by one lock.
    Crash-safe: the file is flushed after every event, so a session id or
    a pending question survives an interrupted invocation.
    """

    def __init__(self, agent: str, log_dir: Path | None = None) -> None:
        if not _SAFE_NAME_RE.match(agent):
            msg = (
                f"Invalid agent name {agent!r}: must contain only "
                "letters, digits, hyphens and underscores."
            )
            raise ValueError(msg)

        self._agent = agent
        self._lock = threading.Lock()
        self._seq = 0
        self._closed = False
        self._invocation_id = uuid.uuid4().hex[:12]

        if log_dir is None:
            log_dir = Path("invocations")
        log_dir.mkdir(parents=True, exist_ok=True)

        date_str = datetime.now(tz=UTC).strftime("%Y-%m-%d")
        self._log_file = log_dir / f"{date_str}_{agent}_{self._invocation_id}.jsonl"
        self._fh: IO[str] | None = self._log_file.open("a", encoding="utf-8")

    @property
    def invocation_id(self) -> str:
        """Unique invocation identifier (12-char hex)."""
        return self._invocation_id

    @property
    def log_file(self) -> Path:
        return self._log_file

    @property
    def event_count(self) -> int:
        return self._seq

    def record(self, event: CanonicalEvent) -> None:
        """Append *event* with a timestamp and sequence number.

        Events arriving after ``close()`` are ignored.
        """
        with self._lock:
            if self._closed or self._fh is None:
                return
            entry = {"ts": _iso_now(), "seq": self._seq, "agent": self._agent}
            entry.update(event.to_wire())
            self._seq += 1
            self._fh.write(json.dumps(entry, ensure_ascii=False) + "\n")
            self._fh.flush()

    def close(self) -> None:
        """Close the file handle. Idempotent."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._fh is not None and not self._fh.closed:
                self._fh.close()


@dataclass
class RecordedState:
    """What a caller needs to resume after reading an event log."""

    agent: str | None
    session_id: str | None
    pending_question: QuestionEvent | None
    completed: bool


def load_events(path: Path) -> list[CanonicalEvent]:
    """Read every valid canonical event from a JSONL log.

    Lines that are not JSON or not a known event are skipped; an
    interrupted write leaves at most one truncated trailing line.
    """
    events: list[CanonicalEvent] = []
    with path.open(encoding="utf-8") as fh:
        for line in fh:
            line = line.strip()
            if not line:
                continue
            try:
                raw = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(raw, dict):
                continue
            payload = {"type": raw.get("type"), "data": raw.get("data", {})}
            try:
                events.append(_EVENT_ADAPTER.validate_python(payload))
            except ValidationError:
                continue
    return events


def recorded_state(path: Path) -> RecordedState:
    """Summarize a log into the session id and any unanswered question."""
    agent: str | None = None
    with path.open(encoding="utf-8") as fh:
        first = fh.readline()
    try:
        head = json.loads(first) if first.strip() else {}
    except json.JSONDecodeError:
        head = {}
    if isinstance(head, dict) and isinstance(head.get("agent"), str):
        agent = head["agent"]

    session_id: str | None = None
    pending: QuestionEvent | None = None
    completed = False
    for event in load_events(path):
        if isinstance(event, InitEvent) and session_id is None:
            session_id = event.data.session_id
        elif isinstance(event, ResultEvent):
            if session_id is None and event.data.session_id:
                session_id = event.data.session_id
            completed = True
            pending = None
        elif isinstance(event, QuestionEvent):
            pending = event
            completed = False
    return RecordedState(
        agent=agent,
        session_id=session_id,
        pending_question=pending,
        completed=completed,
    )


def _iso_now() -> str:
    """UTC timestamp, millisecond precision, ``Z`` suffix."""
    return datetime.now(tz=UTC).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
