from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Set, Union

import yaml
from pydantic import ValidationError

from orchestrator.core.errors import ConfigurationError

from .builtins import builtin_manifest
from .graph import CircularDependencyError, DependencyGraph, PackageNode
from .models import BuildTarget, Package, WorkspaceManifest

_log = logging.getLogger("orchestrator.registry")

MANIFEST_CANDIDATES = ("orchestrator.yaml", "orchestrator.yml", "orchestrator.json")


def _parse_manifest_text(raw_text: str, source: Path) -> dict:
    # JSON first, YAML as the fallback (YAML is a superset for flat mappings)
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(raw_text)
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Failed to parse manifest {source} as JSON or YAML: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigurationError(f"Manifest {source} must be a mapping, got {type(data).__name__}")
    return data


def load_manifest(path: Path) -> WorkspaceManifest:
    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read manifest {path}: {exc}") from exc

    data = _parse_manifest_text(raw_text, path)
    try:
        manifest = WorkspaceManifest(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid manifest {path}: {exc}") from exc

    _log.info("Loaded manifest %s (%d packages, %d targets)", path, len(manifest.packages), len(manifest.targets))
    return manifest


def discover_manifest(workspace_root: Path, explicit: Optional[Path] = None) -> Optional[Path]:
    """
    Resolution order:
      1) explicit path (must exist)
      2) <workspace>/orchestrator.yaml | .yml | .json
      3) None => built-in workspace
    """
    if explicit is not None:
        p = explicit if explicit.is_absolute() else workspace_root / explicit
        if not p.exists():
            raise ConfigurationError(f"Manifest not found: {p}")
        return p

    for name in MANIFEST_CANDIDATES:
        p = workspace_root / name
        if p.exists():
            return p
    return None


class PackageRegistry:
    """Static catalog of workspace packages and build targets.

    Validated once at construction: duplicate names, unknown dependencies and
    dependency cycles raise ConfigurationError before anything runs.
    """

    def __init__(self, manifest: WorkspaceManifest):
        self.manifest = manifest
        self._packages: Dict[str, Package] = {}
        self._targets: Dict[str, BuildTarget] = {}
        self._validate_and_index()

    @classmethod
    def builtin(cls) -> "PackageRegistry":
        return cls(builtin_manifest())

    @classmethod
    def from_file(cls, path: Path) -> "PackageRegistry":
        return cls(load_manifest(path))

    @classmethod
    def load(cls, workspace_root: Path, manifest_path: Optional[Path] = None) -> "PackageRegistry":
        found = discover_manifest(workspace_root, manifest_path)
        if found is None:
            _log.info("No manifest under %s; using built-in workspace", workspace_root)
            return cls.builtin()
        return cls.from_file(found)

    def _validate_and_index(self) -> None:
        for pkg in self.manifest.packages:
            if pkg.name in self._packages:
                raise ConfigurationError(f"Duplicate package name: {pkg.name}")
            self._packages[pkg.name] = pkg

        for pkg in self.manifest.packages:
            unknown = [d for d in pkg.depends_on if d not in self._packages]
            if unknown:
                raise ConfigurationError(
                    f"Package {pkg.name} depends on unknown package(s): {', '.join(unknown)}"
                )

        graph = DependencyGraph()
        for rank, pkg in enumerate(self.manifest.packages):
            graph.add_node(PackageNode(name=pkg.name, rank=rank, depends_on=list(pkg.depends_on)))
        try:
            graph.topological_sort()
        except CircularDependencyError as exc:
            raise ConfigurationError(str(exc)) from exc

        for target in self.manifest.targets:
            if target.name in self._targets:
                raise ConfigurationError(f"Duplicate build target name: {target.name}")
            self._targets[target.name] = target

    # ----------------------------------------
    # Packages
    # ----------------------------------------
    def list_packages(self) -> List[Package]:
        return list(self.manifest.packages)

    def list_names(self) -> List[str]:
        return [p.name for p in self.manifest.packages]

    def has(self, name: str) -> bool:
        return name in self._packages

    def get(self, name: str) -> Optional[Package]:
        return self._packages.get(name)

    def dependencies_of(self, package: Union[Package, str]) -> Set[Package]:
        name = package if isinstance(package, str) else package.name
        pkg = self._packages.get(name)
        if pkg is None:
            raise KeyError(f"Unknown package: {name}")
        return {self._packages[d] for d in pkg.depends_on}

    # ----------------------------------------
    # Targets
    # ----------------------------------------
    def list_targets(self) -> List[BuildTarget]:
        return list(self.manifest.targets)

    def target(self, name: str) -> Optional[BuildTarget]:
        return self._targets.get(name)

    @property
    def seal_path(self) -> str:
        return self.manifest.seal_path

    @property
    def version(self) -> str:
        return self.manifest.version
