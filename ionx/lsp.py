"""Language-server position helpers.

LSP positions count UTF-16 code units from the start of a line and are
0-based; diagnostics and libclang columns are 1-based, the latter counting
UTF-8 bytes. These helpers convert between them.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Position:
    """A 0-based line and UTF-16 character offset."""

    line: int
    character: int


@dataclass(frozen=True)
class Range:
    """A span between two positions."""

    start: Position
    end: Position


def _dec(value: int) -> int:
    return max(value - 1, 0)


def to_lsp_range(line: int, col_start: int, col_end: int) -> Range:
    """A range on one line from 1-based line and column numbers."""
    line0 = _dec(line)
    return Range(Position(line0, _dec(col_start)), Position(line0, _dec(col_end)))


def ranges_overlap(a: Range, b: Range) -> bool:
    """Whether two ranges share at least one position, ends included."""
    if a.start.line > b.end.line or b.start.line > a.end.line:
        return False
    if a.start.line == b.end.line and a.start.character > b.end.character:
        return False
    if b.start.line == a.end.line and b.start.character > a.end.character:
        return False
    return True


def utf16_len(text: str) -> int:
    """Length of ``text`` in UTF-16 code units."""
    return len(text.encode("utf-16-le", "surrogatepass")) // 2


def utf16_offset_to_byte_offset(line: str, utf16_offset: int) -> int | None:
    """The UTF-8 byte offset of a UTF-16 offset within ``line``.

    An offset inside a surrogate pair maps to the start of its character;
    an offset past the end of the line gives None.
    """
    seen = 0
    byte_index = 0
    for char in line:
        width = utf16_len(char)
        if seen + width > utf16_offset:
            return byte_index
        seen += width
        byte_index += len(char.encode("utf-8", "surrogatepass"))
    if seen == utf16_offset:
        return byte_index
    return None


def clang_column_to_utf16(line: str, column: int) -> int:
    """A 1-based UTF-8 byte column as a UTF-16 offset; 0 if it splits a character."""
    encoded = line.encode("utf-8")
    end = min(_dec(column), len(encoded))
    try:
        prefix = encoded[:end].decode("utf-8")
    except UnicodeDecodeError:
        return 0
    return utf16_len(prefix)


def line_at(source: str, line: int) -> str | None:
    """The 0-based ``line`` of ``source`` without its line ending, or None."""
    if line < 0:
        return None
    lines = source.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    if line >= len(lines):
        return None
    return lines[line].removesuffix("\r")


def nudge_end_if_empty(start: Position, end: Position) -> Position:
    """Move ``end`` one unit right when it equals ``start``."""
    if start == end:
        return replace(end, character=end.character + 1)
    return end