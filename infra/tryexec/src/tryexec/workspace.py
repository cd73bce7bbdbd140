"""
Workspace normalization.

Every request accepted by the service, whether a bare ``Buffer``, a
``Source`` with a cursor ``Position``, or a full multi-buffer workspace, is
turned into one canonical, immutable :class:`Workspace`.  Normalization also
builds the merged source text handed to the compiler together with the
:class:`SourceMap` that translates merged offsets back to the caller's
buffers.

The merged text is laid out as::

    <one line per using directive>     synthetic, not attributable
    <buffer 1 content>
    \\n                                 separator
    <buffer 2 content>
    ...
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Optional, Tuple, Union

from pydantic import ValidationError

from .errors import MalformedRequest
from .models import WorkspaceRequest

SCRIPT = "script"

_DOTTED_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")


@dataclass(frozen=True)
class Buffer:
    id: str
    content: str
    position: Optional[int] = None


@dataclass(frozen=True)
class WorkspaceFile:
    name: str
    text: str


@dataclass(frozen=True)
class Segment:
    """A span ``[start, end]`` of the merged text.

    ``buffer_id`` is ``None`` for synthetic scaffolding.  Buffer segments
    include their end offset so that a span ending right after the last
    character of a buffer still belongs to it.
    """

    buffer_id: Optional[str]
    start: int
    end: int

    @property
    def synthetic(self) -> bool:
        return self.buffer_id is None

    def contains(self, offset: int) -> bool:
        if self.synthetic:
            return self.start <= offset < self.end
        return self.start <= offset <= self.end


@dataclass(frozen=True)
class SourceMap:
    """Offset-translation table between merged text and buffers."""

    segments: Tuple[Segment, ...]

    def segment_at(self, offset: int) -> Optional[Segment]:
        for segment in self.segments:
            if segment.contains(offset):
                return segment
        return None

    def segment_for(self, buffer_id: str) -> Segment:
        for segment in self.segments:
            if segment.buffer_id == buffer_id:
                return segment
        raise KeyError(buffer_id)

    def to_merged(self, buffer_id: str, offset: int) -> int:
        return self.segment_for(buffer_id).start + offset


@dataclass(frozen=True)
class MergedSource:
    text: str
    source_map: SourceMap


def merge_sources(usings: Tuple[str, ...], buffers: Tuple[Buffer, ...]) -> MergedSource:
    parts = []
    segments = []
    cursor = 0
    if usings:
        prelude = "".join(f"{using}\n" for using in usings)
        segments.append(Segment(None, 0, len(prelude)))
        parts.append(prelude)
        cursor = len(prelude)
    for index, buffer in enumerate(buffers):
        if index:
            parts.append("\n")
            cursor += 1
        segments.append(Segment(buffer.id, cursor, cursor + len(buffer.content)))
        parts.append(buffer.content)
        cursor += len(buffer.content)
    return MergedSource("".join(parts), SourceMap(tuple(segments)))


@dataclass(frozen=True)
class Workspace:
    """Canonical representation of one request.

    Attributes
    ----------
    workspace_type: str
        ``"script"`` or the name of a program-style type such as ``"console"``.
    buffers: tuple of Buffer
        Source buffers in submission order.  Ids are unique.
    usings: tuple of str
        Normalized import statements prepended to the merged text.
    files: tuple of WorkspaceFile
        Auxiliary files placed in the run directory.
    active_buffer_id: str, optional
        Explicitly selected entry buffer.
    """

    workspace_type: str
    buffers: Tuple[Buffer, ...]
    usings: Tuple[str, ...] = ()
    files: Tuple[WorkspaceFile, ...] = ()
    active_buffer_id: Optional[str] = None
    merged: MergedSource = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "merged", merge_sources(self.usings, self.buffers))

    @property
    def entry_buffer(self) -> Buffer:
        if self.active_buffer_id is not None:
            return self.buffer(self.active_buffer_id)
        for buffer in self.buffers:
            if buffer.position is not None:
                return buffer
        return self.buffers[0]

    def buffer(self, buffer_id: str) -> Buffer:
        for buffer in self.buffers:
            if buffer.id == buffer_id:
                return buffer
        raise KeyError(buffer_id)


def normalize_using(using: str) -> str:
    """Turn a using directive into an import statement."""
    text = using.strip()
    if not text or "\n" in text or "\r" in text:
        raise MalformedRequest(f"Invalid using directive: {using!r}")
    if text.startswith(("import ", "from ")):
        return text
    if not _DOTTED_NAME.match(text):
        raise MalformedRequest(f"Invalid using directive: {using!r}")
    return f"import {text}"


def _check_file_name(name: str) -> str:
    path = PurePosixPath(name)
    if not path.parts or "\\" in name or path.is_absolute() or ".." in path.parts:
        raise MalformedRequest(f"Invalid file name: {name!r}")
    # The run directory's dot files belong to the execution host.
    if path.parts[0].startswith("."):
        raise MalformedRequest(f"File names may not start with '.': {name!r}")
    return str(path)


def normalize(payload: Union[bytes, str]) -> Workspace:
    """Parse a raw request body into a :class:`Workspace`.

    Raises
    ------
    MalformedRequest
        If the body is not JSON, is not an object, carries no source, or
        violates the workspace invariants.
    """
    try:
        request = WorkspaceRequest.model_validate_json(payload)
    except ValidationError as exc:
        raise MalformedRequest(f"Request could not be parsed: {exc.error_count()} error(s)") from exc
    return from_request(request)


def from_request(request: WorkspaceRequest) -> Workspace:
    if request.buffers is not None:
        if not request.buffers:
            raise MalformedRequest("Workspace contains no buffers")
        buffers = tuple(Buffer(b.id, b.content, b.position) for b in request.buffers)
    elif request.buffer is not None:
        buffers = (Buffer("", request.buffer, request.position),)
    elif request.source is not None:
        buffers = (Buffer("", request.source, request.position),)
    else:
        raise MalformedRequest("Request contains no Buffer, Source or Buffers")

    ids = [buffer.id for buffer in buffers]
    if len(set(ids)) != len(ids):
        raise MalformedRequest("Buffer ids must be unique within a workspace")
    if request.active_buffer_id is not None and request.active_buffer_id not in ids:
        raise MalformedRequest(f"Unknown active buffer: {request.active_buffer_id!r}")

    files = tuple(
        WorkspaceFile(_check_file_name(f.name), f.text) for f in request.files or []
    )
    names = [f.name for f in files]
    if len(set(names)) != len(names):
        raise MalformedRequest("File names must be unique within a workspace")

    workspace_type = (request.workspace_type or "").strip() or SCRIPT

    return Workspace(
        workspace_type=workspace_type,
        buffers=buffers,
        usings=tuple(normalize_using(u) for u in request.usings or []),
        files=files,
        active_buffer_id=request.active_buffer_id,
    )
