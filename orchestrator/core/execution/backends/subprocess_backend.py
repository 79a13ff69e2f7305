from __future__ import annotations

import logging
import subprocess
import threading
import time
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .base import CommandBackend, CommandResult

_log = logging.getLogger("orchestrator.backend.subprocess")


class SubprocessBackend(CommandBackend):
    name = "subprocess"

    def __init__(self, *, poll_interval: float = 0.1, kill_grace_s: float = 5.0):
        self.poll_interval = poll_interval
        self.kill_grace_s = kill_grace_s

    def _stop(self, proc: subprocess.Popen) -> None:
        proc.terminate()
        try:
            proc.wait(timeout=self.kill_grace_s)
        except subprocess.TimeoutExpired:
            _log.warning("pid=%s ignored SIGTERM; killing", proc.pid)
            proc.kill()
            proc.wait()

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandResult:
        started = time.monotonic()
        try:
            proc = subprocess.Popen(list(command), cwd=str(cwd), env=dict(env))
        except OSError as e:
            return CommandResult(exit_status=None, launch_error=str(e))

        deadline = None if timeout is None else started + timeout

        while True:
            try:
                code = proc.wait(timeout=self.poll_interval)
                return CommandResult(exit_status=code, duration_s=time.monotonic() - started)
            except subprocess.TimeoutExpired:
                pass

            if cancel is not None and cancel.is_set():
                self._stop(proc)
                return CommandResult(
                    exit_status=proc.returncode,
                    duration_s=time.monotonic() - started,
                    cancelled=True,
                )

            if deadline is not None and time.monotonic() >= deadline:
                self._stop(proc)
                return CommandResult(
                    exit_status=proc.returncode,
                    duration_s=time.monotonic() - started,
                    timed_out=True,
                )
