"""Tests for the chunk-to-line reassembler."""

from __future__ import annotations

from seedbed.bridge.line_reader import LineReader

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _read_all(chunks: list[bytes]) -> list[str]:
    reader = LineReader()
    lines: list[str] = []
    for chunk in chunks:
        lines.extend(reader.feed(chunk))
    tail = reader.flush()
    if tail is not None:
        lines.append(tail)
    return lines


# ------------------------------------------------------------------ #
# LineReader
# ------------------------------------------------------------------ #


class TestLineReader:
    def test_single_chunk_multiple_lines(self) -> None:
        reader = LineReader()
        assert reader.feed(b"one\ntwo\nthree") == ["one", "two"]
        assert reader.pending == "three"
        assert reader.flush() == "three"

    def test_line_split_across_chunks(self) -> None:
        reader = LineReader()
        assert reader.feed(b'{"type": "ass') == []
        assert reader.feed(b'istant"}\n') == ['{"type": "assistant"}']
        assert reader.flush() is None

    def test_empty_lines_are_kept(self) -> None:
        assert _read_all([b"a\n\nb\n"]) == ["a", "", "b"]

    def test_no_trailing_newline_yields_tail_once(self) -> None:
        reader = LineReader()
        reader.feed(b"last")
        assert reader.flush() == "last"
        assert reader.flush() is None

    def test_empty_chunk_is_noop(self) -> None:
        reader = LineReader()
        assert reader.feed(b"") == []
        assert reader.pending == ""

    def test_accepts_text_chunks(self) -> None:
        reader = LineReader()
        assert reader.feed("héllo\nwor") == ["héllo"]
        assert reader.flush() == "wor"

    def test_multibyte_character_split_across_chunks(self) -> None:
        data = "snow ☃ and 🎉 done\n".encode()
        snowman = data.index("☃".encode())
        # Split inside the three-byte snowman and the four-byte emoji.
        party = data.index("🎉".encode())
        chunks = [data[: snowman + 1], data[snowman + 1 : party + 2], data[party + 2 :]]
        assert _read_all(chunks) == ["snow ☃ and 🎉 done"]

    def test_every_split_point_gives_same_lines(self) -> None:
        data = 'ünïcode\n{"k": "✓"}\n\nend'.encode()
        expected = _read_all([data])
        for cut in range(len(data) + 1):
            assert _read_all([data[:cut], data[cut:]]) == expected

    def test_byte_at_a_time(self) -> None:
        data = "αβγ\nδ\n".encode()
        assert _read_all([bytes([b]) for b in data]) == ["αβγ", "δ"]

    def test_invalid_utf8_is_replaced(self) -> None:
        assert _read_all([b"bad \xff byte\n"]) == ["bad \ufffd byte"]
