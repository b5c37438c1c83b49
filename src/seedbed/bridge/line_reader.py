"""Line reader — reassembles newline-delimited text from arbitrary chunks."""

from __future__ import annotations

import codecs

#: Bytes requested per read from a child process pipe.
CHUNK_SIZE = 65_536


class LineReader:
    """Turns a stream of byte (or text) chunks into complete lines.

    Holds a single pending partial-line buffer.  Bytes are decoded with an
    incremental UTF-8 decoder so a multibyte character split across two
    chunks is reassembled rather than replaced.  Lines are returned without
    their ``\\n`` terminator; empty lines are returned as ``""``.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._pending = ""

    def feed(self, chunk: bytes | str) -> list[str]:
        """Consume *chunk* and return every line it completed."""
        if isinstance(chunk, bytes):
            text = self._decoder.decode(chunk)
        else:
            text = chunk
        if not text:
            return []
        parts = (self._pending + text).split("\n")
        self._pending = parts.pop()
        return parts

    def flush(self) -> str | None:
        """Signal end of stream; return the trailing partial line, if any."""
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        return tail or None

    @property
    def pending(self) -> str:
        return self._pending
