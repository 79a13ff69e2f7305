from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class OrchestratorError(Exception):
    pass


class ConfigurationError(OrchestratorError):
    """Registry or manifest is malformed. Raised at load time, before any build step."""


class PlanningError(OrchestratorError):
    """A build target cannot be ordered. Raised before execution, with no side effects."""


class SealError(OrchestratorError):
    pass


class StateError(OrchestratorError):
    """The state directory (plan snapshots, event log) cannot be read or written."""


class StepFailure(OrchestratorError):
    def __init__(
        self,
        *,
        package: str,
        command: Sequence[str],
        exit_status: Optional[int],
        reason: str = "exit_status",
        lifecycle: str = "build",
        detail: Optional[str] = None,
    ):
        self.package = package
        self.command = list(command)
        self.exit_status = exit_status
        self.reason = reason  # "exit_status" | "timeout" | "launch_error"
        self.lifecycle = lifecycle
        self.detail = detail

        msg = f"{lifecycle} failed for package={package} command={' '.join(self.command)!r}"
        if exit_status is not None:
            msg += f" exit_status={exit_status}"
        if reason != "exit_status":
            msg += f" reason={reason}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "package": self.package,
            "lifecycle": self.lifecycle,
            "command": self.command,
            "exit_status": self.exit_status,
            "reason": self.reason,
            "detail": self.detail,
        }
