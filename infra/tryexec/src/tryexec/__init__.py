"""Workspace run service package.

This package exposes an HTTP service that compiles and runs Python
snippets or multi-buffer workspaces under a pair of time budgets, reports
compiler diagnostics in the caller's own coordinates and answers
completion and introspection queries without executing anything.

The top-level modules include:

* ``config`` – configuration handling for environment variables.
* ``models`` – Pydantic models defining request and response schemas.
* ``workspace`` – normalization of request bodies into a ``Workspace``.
* ``compiler`` – compilation mode selection on top of a toolchain.
* ``diagnostics`` – mapping of compiler spans back to source buffers.
* ``sandbox`` – execution of compiled artifacts under two deadlines.
* ``completion`` – completion and introspection at a cursor position.
* ``toolchain`` – the Python compiler toolchain and its execution host.
* ``clock`` – clock sources and deadlines.
* ``api`` – FastAPI application exposing HTTP endpoints.
"""

from . import api  # noqa: F401
