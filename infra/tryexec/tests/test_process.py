"""Tests for runs in a real child interpreter."""

from __future__ import annotations

import time

from tryexec.clock import SystemClock
from tryexec.sandbox import ExecutionSandbox, RunBudget
from tryexec.toolchain import PythonToolchain
from tryexec.workspace import Buffer, Workspace


def make_sandbox(tmp_path):
    run_root = tmp_path / "runs"
    run_root.mkdir()
    return ExecutionSandbox(PythonToolchain(), clock=SystemClock(), work_dir=run_root)


def test_forked_descendants_do_not_outlive_the_run(tmp_path):
    marker = tmp_path / "descendant-finished"
    source = (
        "import os, time\n"
        "if os.fork() == 0:\n"
        "    time.sleep(2)\n"
        f"    open({str(marker)!r}, 'w').close()\n"
        "    os._exit(0)\n"
        "print('parent done')\n"
    )
    workspace = Workspace("script", (Buffer("", source),))

    started = time.monotonic()
    result = make_sandbox(tmp_path).run(workspace, RunBudget(5.0, 1.0))
    elapsed = time.monotonic() - started

    assert result.succeeded
    assert result.output == "parent done\n"
    assert elapsed < 2.0
    time.sleep(2.5)
    assert not marker.exists()


def test_run_directory_is_removed_after_the_run(tmp_path):
    sandbox = make_sandbox(tmp_path)
    workspace = Workspace("script", (Buffer("", "import os\nos.getcwd()"),))

    result = sandbox.run(workspace, RunBudget(5.0, 5.0))

    assert result.succeeded
    assert list(sandbox.work_dir.iterdir()) == []
