import json
from pathlib import Path

import pytest

from orchestrator.core.errors import ConfigurationError
from orchestrator.core.registry.models import Package
from orchestrator.core.registry.registry import PackageRegistry, discover_manifest

from conftest import make_registry, pkg


def test_builtin_registry_lists_web_workspace():
    reg = PackageRegistry.builtin()

    assert reg.list_names() == ["core", "demo", "extension", "selfhosted"]
    assert [t.name for t in reg.list_targets()] == ["build", "build:debug", "build:dual-wasm", "build:repro"]
    assert reg.dependencies_of("demo") == {reg.get("core")}
    assert reg.dependencies_of(reg.get("core")) == set()


def test_builtin_repro_target_enables_all_toggles():
    target = PackageRegistry.builtin().target("build:repro")

    assert target.env == {
        "ENABLE_WASM_EXTENSIONS": "true",
        "ENABLE_CARGO_CLEAN": "true",
        "ENABLE_VERSION_SEAL": "true",
    }


def test_unknown_dependency_is_configuration_error():
    with pytest.raises(ConfigurationError, match="unknown package"):
        make_registry([pkg("demo", "core")])


def test_cycle_is_detected_at_load():
    with pytest.raises(ConfigurationError, match="Circular"):
        make_registry([pkg("a", "c"), pkg("b", "a"), pkg("c", "b")])


def test_duplicate_package_name_rejected():
    with pytest.raises(ConfigurationError, match="Duplicate package"):
        make_registry([pkg("core"), pkg("core")])


def test_dependencies_of_unknown_package_raises_key_error(web_registry):
    with pytest.raises(KeyError):
        web_registry.dependencies_of("nope")


def test_string_commands_are_split_shell_style():
    p = Package(name="core", build="npm run build -- --mode 'a b'", test="")

    assert p.build == ("npm", "run", "build", "--", "--mode", "a b")
    assert p.test is None
    assert p.has_command("build")
    assert not p.has_command("docs")


@pytest.mark.parametrize("bad", ["../dist", "/tmp/dist", ".", "a/../../b"])
def test_output_paths_must_stay_inside_package(bad):
    with pytest.raises(ValueError):
        Package(name="core", outputs=(bad,))


def test_packages_are_immutable():
    p = Package(name="core")
    with pytest.raises(Exception):
        p.name = "other"  # type: ignore[misc]


def test_load_yaml_manifest(tmp_path: Path):
    (tmp_path / "orchestrator.yaml").write_text(
        """
name: web
version: 1.2.3
seal_path: out/seal.json
packages:
  - name: core
    path: packages/core
    build: npm run build
    docs: npm run docs
    outputs: [dist]
  - name: demo
    path: packages/demo
    depends_on: [core]
    build: [npm, run, build]
targets:
  - name: build
    packages: [demo, core]
""",
        encoding="utf-8",
    )

    reg = PackageRegistry.load(tmp_path)

    assert reg.version == "1.2.3"
    assert reg.seal_path == "out/seal.json"
    assert reg.get("core").docs == ("npm", "run", "docs")
    assert reg.get("demo").build == ("npm", "run", "build")
    assert reg.target("build").packages == ("demo", "core")


def test_load_json_manifest_by_explicit_path(tmp_path: Path):
    p = tmp_path / "ws.json"
    p.write_text(json.dumps({"packages": [{"name": "core", "build": ["make"]}]}), encoding="utf-8")

    reg = PackageRegistry.load(tmp_path, Path("ws.json"))

    assert reg.list_names() == ["core"]


def test_missing_manifest_falls_back_to_builtin(tmp_path: Path):
    assert discover_manifest(tmp_path) is None
    assert PackageRegistry.load(tmp_path).list_names() == ["core", "demo", "extension", "selfhosted"]


def test_explicit_missing_manifest_is_configuration_error(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="not found"):
        PackageRegistry.load(tmp_path, Path("missing.yaml"))


def test_malformed_manifest_is_configuration_error(tmp_path: Path):
    (tmp_path / "orchestrator.yaml").write_text("packages: [unclosed", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="parse"):
        PackageRegistry.load(tmp_path)


def test_manifest_must_be_mapping(tmp_path: Path):
    (tmp_path / "orchestrator.yml").write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="mapping"):
        PackageRegistry.load(tmp_path)


def test_manifest_schema_errors_are_configuration_errors(tmp_path: Path):
    (tmp_path / "orchestrator.json").write_text(
        json.dumps({"packages": [{"name": "core", "bulid": "typo"}]}), encoding="utf-8"
    )

    with pytest.raises(ConfigurationError, match="Invalid manifest"):
        PackageRegistry.load(tmp_path)
