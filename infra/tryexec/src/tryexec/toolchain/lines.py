"""Conversions between (line, column) pairs and character offsets."""

from __future__ import annotations

import bisect
import re
from typing import List, Tuple

_NEWLINE = re.compile(r"\r\n|\r|\n")


class LineIndex:
    """Line start table for a piece of text.

    Lines are numbered from 1.  Columns are 0-based character counts unless a
    method says otherwise; ``ast`` nodes report UTF-8 byte columns, which
    :meth:`byte_offset` converts.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self.starts: List[int] = [0] + [m.end() for m in _NEWLINE.finditer(text)]

    def __len__(self) -> int:
        return len(self.starts)

    def line_text(self, lineno: int) -> str:
        if lineno < 1 or lineno > len(self.starts):
            return ""
        start = self.starts[lineno - 1]
        end = self.starts[lineno] if lineno < len(self.starts) else len(self.text)
        return self.text[start:end].rstrip("\r\n")

    def offset(self, lineno: int, column: int) -> int:
        """Character offset of ``column`` on ``lineno``, clamped to the line."""
        if lineno > len(self.starts):
            return len(self.text)
        lineno = max(lineno, 1)
        column = min(max(column, 0), len(self.line_text(lineno)))
        return self.starts[lineno - 1] + column

    def byte_offset(self, lineno: int, byte_column: int) -> int:
        line = self.line_text(lineno).encode("utf-8")
        column = len(line[: max(byte_column, 0)].decode("utf-8", errors="ignore"))
        return self.offset(lineno, column)

    def position(self, offset: int) -> Tuple[int, int]:
        """1-based ``(line, column)`` of a character offset."""
        offset = min(max(offset, 0), len(self.text))
        index = bisect.bisect_right(self.starts, offset) - 1
        return index + 1, offset - self.starts[index] + 1
