from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Mapping, Optional, Sequence

from .base import CommandBackend, CommandResult

_log = logging.getLogger("orchestrator.backend.dry_run")


class DryRunBackend(CommandBackend):
    name = "dry-run"

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandResult:
        # Nothing is executed; every command reports immediate success.
        _log.info("[dry-run] cwd=%s %s", cwd, " ".join(command))
        return CommandResult(exit_status=0)
