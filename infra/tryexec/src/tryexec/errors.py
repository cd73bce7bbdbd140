"""
Exception taxonomy for the run pipeline.

Only outcomes that change the HTTP status are raised.  Compilation failures
and exceptions thrown by user code are data carried in ``RunResult``.
"""

from __future__ import annotations


class TryExecError(Exception):
    """Base exception for the service."""


class ClientError(TryExecError):
    """The request itself is at fault; maps to 400."""


class MalformedRequest(ClientError):
    """Payload is not JSON, has no source, or has an invalid shape."""


class InvalidPosition(ClientError):
    """Cursor position lies outside the buffer it refers to."""

    def __init__(self, position: int, length: int) -> None:
        super().__init__(f"Position {position} is outside the buffer (0..{length})")
        self.position = position
        self.length = length


class ExecutionTimeout(TryExecError):
    """A run exceeded one of its time budgets."""

    def __init__(self, message: str, budget: float, output: str = "") -> None:
        super().__init__(message)
        self.budget = budget
        self.output = output


class InfrastructureTimeout(ExecutionTimeout):
    """Compilation or process startup exceeded the infrastructure budget."""


class UserCodeTimeout(ExecutionTimeout):
    """The submitted program did not finish within the user-code budget."""


class SandboxError(TryExecError):
    """The execution host failed before it could report an outcome."""
