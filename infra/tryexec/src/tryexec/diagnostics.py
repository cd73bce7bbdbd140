"""
Diagnostic mapping.

The compiler sees the merged workspace text: using directives followed by
every buffer.  Callers need spans in the coordinates of the buffer they
submitted.  :class:`DiagnosticMapper` translates each span through the
workspace's :class:`~tryexec.workspace.SourceMap`:

* a span starting inside a buffer is rebased onto that buffer, and its end
  is clamped so it never leaves the buffer;
* a span starting inside synthetic scaffolding is reported with
  ``buffer_id=None`` and an empty ``0..0`` span (not attributable);
* a diagnostic without any location (e.g. a missing entry point) is
  anchored at offset 0 of the workspace's entry buffer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from .toolchain.base import ERROR, ToolchainDiagnostic
from .toolchain.lines import LineIndex
from .workspace import Workspace

UNATTRIBUTED_LOCATION = "(usings)"


@dataclass(frozen=True)
class Diagnostic:
    """Diagnostic in the caller's coordinates; ``0 <= start <= end <= len(buffer)``."""

    severity: str
    id: str
    message: str
    start: int
    end: int
    buffer_id: Optional[str]

    @property
    def attributable(self) -> bool:
        return self.buffer_id is not None

    @property
    def is_error(self) -> bool:
        return self.severity == ERROR


class DiagnosticMapper:
    """Moves toolchain diagnostics from merged-source offsets onto the workspace buffers."""

    def __init__(self, workspace: Workspace) -> None:
        self.workspace = workspace
        self.source_map = workspace.merged.source_map
        self._lines: Dict[str, LineIndex] = {}

    def map(self, diagnostic: ToolchainDiagnostic) -> Diagnostic:
        if diagnostic.start is None:
            entry = self.workspace.entry_buffer
            return self._make(diagnostic, 0, 0, entry.id)

        segment = self.source_map.segment_at(diagnostic.start)
        if segment is None or segment.synthetic:
            return self._make(diagnostic, 0, 0, None)

        end = diagnostic.end if diagnostic.end is not None else diagnostic.start
        end = min(max(end, diagnostic.start), segment.end)
        return self._make(
            diagnostic,
            diagnostic.start - segment.start,
            end - segment.start,
            segment.buffer_id,
        )

    def map_all(self, diagnostics: Iterable[ToolchainDiagnostic]) -> List[Diagnostic]:
        return [self.map(d) for d in diagnostics]

    def format(self, diagnostic: Diagnostic) -> str:
        """Render ``diagnostic`` as ``id(line,column): severity code: message``."""
        if diagnostic.buffer_id is None:
            location = UNATTRIBUTED_LOCATION
        else:
            line, column = self._line_index(diagnostic.buffer_id).position(diagnostic.start)
            location = f"{diagnostic.buffer_id}({line},{column})"
        return f"{location}: {diagnostic.severity} {diagnostic.id}: {diagnostic.message}"

    def _line_index(self, buffer_id: str) -> LineIndex:
        if buffer_id not in self._lines:
            self._lines[buffer_id] = LineIndex(self.workspace.buffer(buffer_id).content)
        return self._lines[buffer_id]

    @staticmethod
    def _make(diagnostic: ToolchainDiagnostic, start: int, end: int, buffer_id: Optional[str]) -> Diagnostic:
        return Diagnostic(
            severity=diagnostic.severity,
            id=diagnostic.id,
            message=diagnostic.message,
            start=start,
            end=end,
            buffer_id=buffer_id,
        )
