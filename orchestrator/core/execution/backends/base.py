from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Sequence


@dataclass(frozen=True)
class CommandResult:
    exit_status: Optional[int]
    duration_s: float = 0.0
    timed_out: bool = False
    cancelled: bool = False
    launch_error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.exit_status == 0 and not (self.timed_out or self.cancelled or self.launch_error)


class CommandBackend(ABC):
    name: str

    @abstractmethod
    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandResult:
        """Run one external command to completion.

        Never raises for command-level problems: a missing executable, a
        timeout or a cancellation are reported on the returned CommandResult.
        """
