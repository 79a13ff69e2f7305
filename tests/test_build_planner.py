import logging
from typing import Dict, List, Optional

import pytest

from orchestrator.core.build_plan.planner import make_build_plan, plan
from orchestrator.core.errors import PlanningError
from orchestrator.core.registry.models import BuildTarget, Package
from orchestrator.core.variants.config import VariantConfig

from conftest import make_registry, pkg


def _assert_topological(order: List[str], registry) -> None:
    for i, name in enumerate(order):
        for dep in registry.get(name).depends_on:
            if dep in order:
                assert order.index(dep) < i, f"{dep} must precede {name} in {order}"


def test_wrong_declared_order_is_reordered_with_stable_ties(web_registry):
    target = web_registry.target("build")

    p = plan(target, web_registry, VariantConfig())

    assert p.package_names() == ["core", "demo", "extension", "selfhosted"]
    assert [s.step_id for s in p.steps] == ["build:core", "build:demo", "build:extension", "build:selfhosted"]
    assert p.steps[1].depends_on == ["build:core"]


@pytest.mark.parametrize(
    "declared",
    [
        ["app", "lib", "util", "base"],
        ["base", "util", "lib", "app"],
        ["util", "app", "base", "lib"],
        ["lib", "base", "app", "util"],
    ],
)
def test_every_package_follows_its_dependencies(declared):
    reg = make_registry([pkg("base"), pkg("util", "base"), pkg("lib", "base", "util"), pkg("app", "lib", "util")])

    p = plan(BuildTarget(name="t", packages=tuple(declared)), reg, VariantConfig())

    _assert_topological(p.package_names(), reg)
    assert sorted(p.package_names()) == sorted(declared)


def test_diamond_dependencies():
    reg = make_registry([pkg("d", "b", "c"), pkg("b", "a"), pkg("c", "a"), pkg("a")])

    p = plan(BuildTarget(name="t", packages=("d", "c", "b", "a")), reg, VariantConfig())

    assert p.package_names() == ["a", "c", "b", "d"]


def test_one_variant_config_for_every_step(web_registry):
    cfg = VariantConfig(mode="production", dual_output=True)

    p = plan(web_registry.target("build"), web_registry, cfg)

    assert p.config is cfg
    assert all(c is cfg for _, c in p.pairs())


def test_duplicate_declared_packages_collapse():
    reg = make_registry([pkg("core"), pkg("demo", "core")])

    p = plan(BuildTarget(name="t", packages=("demo", "core", "demo")), reg, VariantConfig())

    assert p.package_names() == ["core", "demo"]


def test_unknown_package_is_planning_error(web_registry):
    with pytest.raises(PlanningError, match="unknown package"):
        plan(BuildTarget(name="t", packages=("core", "ghost")), web_registry, VariantConfig())


def test_package_without_build_command_is_planning_error():
    reg = make_registry([pkg("core"), Package(name="docs-only", docs=("mkdocs", "build"))])

    with pytest.raises(PlanningError, match="without a build command"):
        plan(BuildTarget(name="t", packages=("core", "docs-only")), reg, VariantConfig())


def test_dependency_outside_target_is_assumed_built(web_registry, caplog):
    with caplog.at_level(logging.WARNING, logger="orchestrator.planner"):
        p = plan(BuildTarget(name="t", packages=("demo",)), web_registry, VariantConfig())

    assert p.package_names() == ["demo"]
    assert p.steps[0].depends_on == []
    assert "core" in caplog.text


class _UncheckedRegistry:
    """Registry stand-in that skips load-time cycle detection."""

    def __init__(self, packages: List[Package]):
        self._by_name: Dict[str, Package] = {p.name: p for p in packages}

    def has(self, name: str) -> bool:
        return name in self._by_name

    def get(self, name: str) -> Optional[Package]:
        return self._by_name.get(name)


def test_cycle_among_requested_packages_is_planning_error(backend):
    reg = _UncheckedRegistry([pkg("a", "b"), pkg("b", "a"), pkg("c")])

    with pytest.raises(PlanningError, match="Circular"):
        make_build_plan(target=BuildTarget(name="t", packages=("c", "a", "b")), registry=reg, config=VariantConfig())

    assert backend.calls == []


def test_cycle_outside_requested_packages_does_not_block():
    reg = _UncheckedRegistry([pkg("a", "b"), pkg("b", "a"), pkg("c")])

    p = make_build_plan(target=BuildTarget(name="t", packages=("c",)), registry=reg, config=VariantConfig())

    assert p.package_names() == ["c"]


def test_plan_id_is_deterministic(web_registry):
    t = web_registry.target("build")

    a = plan(t, web_registry, VariantConfig(seal=True))
    b = plan(t, web_registry, VariantConfig(seal=True))
    c = plan(t, web_registry, VariantConfig())

    assert a.compute_plan_id() == b.compute_plan_id()
    assert a.compute_plan_id() != c.compute_plan_id()


def test_plan_to_dict_is_json_shaped(web_registry):
    d = plan(web_registry.target("build"), web_registry, VariantConfig(features="avm_debug")).to_dict()

    assert d["target"] == "build"
    assert d["config"]["features"] == "avm_debug"
    assert d["steps"][0] == {
        "step_id": "build:core",
        "package": "core",
        "path": "packages/core",
        "command": ["make", "core"],
        "depends_on": [],
        "outputs": [],
    }
    assert d["metadata"]["declared_order"] == ["demo", "extension", "selfhosted", "core"]
