"""
Run handle for an execution host running in a child process.

The child's standard output and error are merged into one stream and drained
by a background thread, so output produced before a timeout is still
available after the process has been killed.  A second pipe carries the
host's control messages: ``ready`` when user code starts, then a JSON report.

Requires a POSIX platform (``pass_fds`` and process groups).
"""

from __future__ import annotations

import codecs
import json
import logging
import os
import signal
import subprocess
import threading
from pathlib import Path
from typing import List, Optional

from .base import HostOutcome, RunHandle

logger = logging.getLogger("tryexec.process")

READY = "ready"
TRUNCATED = "\n[output truncated]"

# Real time granted to reader threads once the child has exited.
_DRAIN_SECONDS = 1.0


class ProcessRunHandle(RunHandle):
    """Launches ``args`` plus the control pipe descriptor as a child process."""

    def __init__(self, args: List[str], cwd: Path, max_output_chars: int = 100_000) -> None:
        self.max_output_chars = max_output_chars
        self._chunks: List[str] = []
        self._size = 0
        self._truncated = False
        self._lock = threading.Lock()
        self._ready = threading.Event()
        self._outcome: Optional[HostOutcome] = None
        self._group_killed = False

        control_read, control_write = os.pipe()
        try:
            self._process = subprocess.Popen(
                [*args, str(control_write)],
                cwd=str(cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                pass_fds=(control_write,),
                start_new_session=True,
            )
        except BaseException:
            os.close(control_read)
            raise
        finally:
            os.close(control_write)

        self._control = os.fdopen(control_read, "r", encoding="utf-8")
        self._threads = [
            threading.Thread(target=self._read_output, name="tryexec-output", daemon=True),
            threading.Thread(target=self._read_control, name="tryexec-control", daemon=True),
        ]
        for thread in self._threads:
            thread.start()

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def started(self) -> bool:
        return self._ready.is_set()

    def poll(self) -> Optional[int]:
        code = self._process.poll()
        if code is not None and not self._group_killed:
            # Descendants of the program must neither outlive it nor hold its pipes open.
            self._kill_group()
            self._drain()
        return code

    def kill(self) -> None:
        self._kill_group()
        try:
            self._process.wait(timeout=_DRAIN_SECONDS)
        except subprocess.TimeoutExpired:
            logger.warning("Process %s did not exit after SIGKILL; abandoning it", self._process.pid)

    def output(self) -> str:
        with self._lock:
            text = "".join(self._chunks)
        return text + TRUNCATED if self._truncated else text

    def outcome(self) -> Optional[HostOutcome]:
        return self._outcome

    def close(self) -> None:
        if self._process.poll() is None:
            self.kill()
        self._kill_group()
        self._drain()
        if self._process.stdout:
            self._process.stdout.close()
        self._control.close()

    def _kill_group(self) -> None:
        if self._group_killed:
            return
        self._group_killed = True
        try:
            os.killpg(self._process.pid, signal.SIGKILL)
        except ProcessLookupError:
            logger.debug("Process group %s is already gone", self._process.pid)

    def _drain(self) -> None:
        for thread in self._threads:
            thread.join(timeout=_DRAIN_SECONDS)

    def _append(self, text: str) -> None:
        if not text:
            return
        with self._lock:
            room = self.max_output_chars - self._size
            if room <= 0:
                self._truncated = True
                return
            if len(text) > room:
                text = text[:room]
                self._truncated = True
            self._chunks.append(text)
            self._size += len(text)

    def _read_output(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        fd = self._process.stdout.fileno()
        while True:
            try:
                data = os.read(fd, 4096)
            except OSError:
                break
            if not data:
                break
            self._append(decoder.decode(data))
        self._append(decoder.decode(b"", final=True))

    def _read_control(self) -> None:
        try:
            for line in self._control:
                line = line.strip()
                if line == READY:
                    self._ready.set()
                elif line:
                    self._outcome = HostOutcome(**json.loads(line))
        except (OSError, ValueError) as exc:
            logger.debug("Control channel closed: %s", exc)
