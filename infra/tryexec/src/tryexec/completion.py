"""
Completion and introspection at a cursor position.

Both operations read the workspace's entry buffer and its ``Position``,
translate the position into merged coordinates (so that using directives
are in scope) and ask the toolchain.  Nothing is executed and the
sandbox is not involved.  Items keep the order the toolchain produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import InvalidPosition, MalformedRequest
from .toolchain.base import CompletionCandidate, Introspection, Toolchain
from .workspace import Workspace

logger = logging.getLogger("tryexec.completion")


@dataclass(frozen=True)
class CompletionItem:
    """One completion candidate as returned to the caller."""

    display_text: str
    kind: str
    insert_text: Optional[str] = None
    documentation: Optional[str] = None

    @classmethod
    def from_candidate(cls, candidate: CompletionCandidate) -> "CompletionItem":
        return cls(
            display_text=candidate.label,
            kind=candidate.kind,
            insert_text=candidate.insert_text,
            documentation=candidate.documentation,
        )


@dataclass
class CompletionResult:
    items: List[CompletionItem] = field(default_factory=list)


class CompletionProvider:
    """Answers completion and inspect queries at the entry buffer's position."""

    def __init__(self, toolchain: Toolchain) -> None:
        self.toolchain = toolchain

    def complete(self, workspace: Workspace) -> CompletionResult:
        source, position = self._cursor(workspace)
        candidates = self.toolchain.complete(source, position)
        logger.debug("Completion at %d produced %d item(s)", position, len(candidates))
        return CompletionResult([CompletionItem.from_candidate(c) for c in candidates])

    def inspect(self, workspace: Workspace) -> Optional[Introspection]:
        source, position = self._cursor(workspace)
        return self.toolchain.inspect(source, position)

    @staticmethod
    def _cursor(workspace: Workspace) -> Tuple[str, int]:
        """Merged text and the entry buffer's position translated into it."""
        buffer = workspace.entry_buffer
        if buffer.position is None:
            raise MalformedRequest("A cursor Position is required")
        if not 0 <= buffer.position <= len(buffer.content):
            raise InvalidPosition(buffer.position, len(buffer.content))
        merged = workspace.merged
        return merged.text, merged.source_map.to_merged(buffer.id, buffer.position)
