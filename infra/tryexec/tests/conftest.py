"""Shared fixtures for the tryexec tests."""

from __future__ import annotations

import pytest

from tryexec.clock import VirtualClock
from tryexec.workspace import Buffer, Workspace


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def script_workspace():
    return Workspace(workspace_type="script", buffers=(Buffer("", 'print("hello!")'),))
