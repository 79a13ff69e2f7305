from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from orchestrator.core.registry.models import Package
from orchestrator.core.variants.config import VariantConfig


@dataclass(frozen=True)
class PlanStep:
    step_id: str
    package: Package
    command: Tuple[str, ...]
    depends_on: List[str] = field(default_factory=list)

    @property
    def package_name(self) -> str:
        return self.package.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "package": self.package.name,
            "path": self.package.path,
            "command": list(self.command),
            "depends_on": list(self.depends_on),
            "outputs": list(self.package.outputs),
        }


@dataclass(frozen=True)
class BuildPlan:
    plan_version: str
    target: str
    # one variant for the whole plan, applied identically to every step
    config: VariantConfig
    steps: List[PlanStep] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def package_names(self) -> List[str]:
        return [s.package.name for s in self.steps]

    def pairs(self) -> List[Tuple[Package, VariantConfig]]:
        return [(s.package, self.config) for s in self.steps]

    def compute_plan_id(self) -> str:
        payload = {
            "plan_version": self.plan_version,
            "target": self.target,
            "config": self.config.to_dict(),
            "steps": [
                {
                    "step_id": s.step_id,
                    "package": s.package.name,
                    "command": list(s.command),
                    "depends_on": s.depends_on,
                }
                for s in self.steps
            ],
        }
        return hashlib.sha256(json.dumps(payload, sort_keys=True).encode("utf-8")).hexdigest()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.compute_plan_id(),
            "plan_version": self.plan_version,
            "target": self.target,
            "config": self.config.to_dict(),
            "steps": [s.to_dict() for s in self.steps],
            "metadata": self.metadata or {},
        }
