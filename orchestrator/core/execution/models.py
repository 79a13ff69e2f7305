from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from orchestrator.core.errors import StepFailure


class StepState(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class ExecutionStatus(str, Enum):
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


@dataclass(frozen=True)
class StepRecord:
    step_id: str
    package: str
    lifecycle: str
    state: StepState
    exit_status: Optional[int] = None
    duration_s: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "package": self.package,
            "lifecycle": self.lifecycle,
            "state": self.state.value,
            "exit_status": self.exit_status,
            "duration_s": round(self.duration_s, 3),
        }


@dataclass
class ExecutionResult:
    target: str
    plan_id: str
    status: ExecutionStatus
    steps: List[StepRecord] = field(default_factory=list)
    failure: Optional[StepFailure] = None
    seal_path: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == ExecutionStatus.SUCCEEDED

    @property
    def cancelled(self) -> bool:
        return self.status == ExecutionStatus.CANCELLED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "plan_id": self.plan_id,
            "status": self.status.value,
            "steps": [s.to_dict() for s in self.steps],
            "failure": self.failure.to_dict() if self.failure else None,
            "seal_path": self.seal_path,
        }


@dataclass
class AggregateResult:
    lifecycle: str
    invoked: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    failures: List[StepFailure] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return not self.failures and not self.cancelled

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lifecycle": self.lifecycle,
            "invoked": list(self.invoked),
            "skipped": list(self.skipped),
            "failures": [f.to_dict() for f in self.failures],
            "cancelled": self.cancelled,
        }
