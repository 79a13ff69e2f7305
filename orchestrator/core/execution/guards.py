from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import List

from orchestrator.core.registry.models import Package

_log = logging.getLogger("orchestrator.clean")


def package_dir(workspace_root: Path, package: Package) -> Path:
    return (workspace_root / package.path).resolve()


def resolve_output_path(pkg_dir: Path, rel: str) -> Path:
    target = (pkg_dir / rel).resolve()
    if target == pkg_dir or pkg_dir not in target.parents:
        raise ValueError(f"output path escapes package dir: {rel!r} -> {target}")
    return target


def clean_outputs(workspace_root: Path, package: Package) -> List[Path]:
    """Remove the package's declared build outputs. Returns the paths removed."""
    pkg_dir = package_dir(workspace_root, package)
    removed: List[Path] = []
    for rel in package.outputs:
        target = resolve_output_path(pkg_dir, rel)
        if not target.exists() and not target.is_symlink():
            continue
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
        removed.append(target)
        _log.info("Cleaned %s output %s", package.name, target)
    return removed
