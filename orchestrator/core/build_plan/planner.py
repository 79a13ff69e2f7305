from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from orchestrator.core.errors import PlanningError
from orchestrator.core.registry.graph import CircularDependencyError, DependencyGraph, PackageNode
from orchestrator.core.registry.models import BuildTarget
from orchestrator.core.registry.registry import PackageRegistry
from orchestrator.core.variants.config import VariantConfig

from .models import BuildPlan, PlanStep

_log = logging.getLogger("orchestrator.planner")


def _membership(target: BuildTarget) -> List[str]:
    seen: List[str] = []
    for name in target.packages:
        if name not in seen:
            seen.append(name)
    return seen


def make_build_plan(
    *,
    target: BuildTarget,
    registry: PackageRegistry,
    config: VariantConfig,
    metadata: Optional[Dict[str, Any]] = None,
) -> BuildPlan:
    """Order the target's packages so each one follows its dependencies.

    The declared list gives membership only. Ties between unrelated packages
    keep their declared relative order.
    """
    requested = _membership(target)

    unknown = [n for n in requested if not registry.has(n)]
    if unknown:
        raise PlanningError(f"Target {target.name} requests unknown package(s): {', '.join(unknown)}")

    no_build = [n for n in requested if registry.get(n).build is None]  # type: ignore[union-attr]
    if no_build:
        raise PlanningError(f"Target {target.name} requests package(s) without a build command: {', '.join(no_build)}")

    wanted = set(requested)
    graph = DependencyGraph()
    in_plan_deps: Dict[str, List[str]] = {}

    for rank, name in enumerate(requested):
        pkg = registry.get(name)
        deps = list(pkg.depends_on)  # type: ignore[union-attr]
        outside = [d for d in deps if d not in wanted]
        if outside:
            _log.warning(
                "Target %s builds %s without its dependencies %s; assuming earlier build outputs",
                target.name,
                name,
                ", ".join(outside),
            )
        in_plan_deps[name] = [d for d in deps if d in wanted]
        graph.add_node(PackageNode(name=name, rank=rank, depends_on=in_plan_deps[name]))

    try:
        order = graph.topological_sort()
    except CircularDependencyError as exc:
        raise PlanningError(f"Target {target.name}: {exc}") from exc

    steps = [
        PlanStep(
            step_id=f"build:{name}",
            package=registry.get(name),  # type: ignore[arg-type]
            command=registry.get(name).build,  # type: ignore[union-attr,arg-type]
            depends_on=[f"build:{d}" for d in in_plan_deps[name]],
        )
        for name in order
    ]

    md = dict(metadata or {})
    md.setdefault("declared_order", requested)

    return BuildPlan(
        plan_version="v1",
        target=target.name,
        config=config,
        steps=steps,
        metadata=md,
    )


def plan(target: BuildTarget, registry: PackageRegistry, config: VariantConfig) -> BuildPlan:
    return make_build_plan(target=target, registry=registry, config=config)
