"""Pydantic models for request and response bodies.

These models express the JSON contract of the HTTP API.  Field names are
PascalCase on the wire (``Buffer``, ``Buffers``, ``WorkspaceType``...) to stay
compatible with existing clients; the snake_case attribute names are accepted
as well when parsing.

Request bodies are not bound by FastAPI directly.  The workspace normalizer
validates raw bytes against :class:`WorkspaceRequest` so that every shape
error becomes a 400 rather than FastAPI's default 422.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_pascal


class WireModel(BaseModel):
    """Base model using PascalCase aliases."""

    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class BufferModel(WireModel):
    """One named source buffer of a workspace."""

    id: str = ""
    content: str = ""
    position: Optional[int] = Field(
        default=None, description="Cursor offset into ``content``."
    )


class FileModel(WireModel):
    """Auxiliary file written next to the program before it runs."""

    name: str
    text: str = ""


class WorkspaceRequest(WireModel):
    """Request body accepted by the workspace endpoints.

    Exactly one of ``buffer``, ``source`` or ``buffers`` is expected.  The
    first two are the legacy single-buffer shapes.
    """

    buffer: Optional[str] = None
    source: Optional[str] = None
    position: Optional[int] = None
    buffers: Optional[List[BufferModel]] = None
    usings: Optional[List[str]] = None
    workspace_type: Optional[str] = Field(
        default=None,
        description="Compilation mode. 'script' (default) or a program type such as 'console'.",
    )
    files: Optional[List[FileModel]] = None
    active_buffer_id: Optional[str] = None


class DiagnosticModel(WireModel):
    """A diagnostic located in one of the request's buffers."""

    start: int
    end: int
    message: str
    id: str
    severity: str = "error"
    buffer_id: Optional[str] = None


class RunResultModel(WireModel):
    """Response body of ``/workspace/run``."""

    succeeded: bool
    output: str = ""
    exception: Optional[str] = None
    return_value: Optional[str] = None
    diagnostics: List[DiagnosticModel] = Field(default_factory=list)


class DiagnosticsResultModel(WireModel):
    """Response body of ``/workspace/diagnostics``."""

    diagnostics: List[DiagnosticModel] = Field(default_factory=list)


class CompletionItemModel(WireModel):
    """One entry of a completion response."""

    display_text: str
    kind: str
    insert_text: Optional[str] = None
    documentation: Optional[str] = None


class CompletionResultModel(WireModel):
    """Response body of ``/workspace/completion``."""

    items: List[CompletionItemModel] = Field(default_factory=list)


class InspectResultModel(WireModel):
    """Response body of ``/workspace/inspect``.

    Shaped after the Jupyter ``inspect_reply`` message: ``Data`` maps a mime
    type to the rendered documentation.
    """

    status: str
    found: bool
    source: str = ""
    data: Dict[str, str] = Field(default_factory=dict)
    metadata: Dict[str, str] = Field(default_factory=dict)
