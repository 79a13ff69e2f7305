from __future__ import annotations

import shlex
from pathlib import PurePosixPath
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


Lifecycle = Literal["build", "test", "docs", "start"]

Command = Tuple[str, ...]


def _coerce_command(v: Any) -> Any:
    # manifests may spell a command as a single shell-style string
    if isinstance(v, str):
        parts = shlex.split(v)
        return tuple(parts) if parts else None
    if isinstance(v, list):
        return tuple(v) if v else None
    return v


class Package(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    path: str = "."
    depends_on: Tuple[str, ...] = ()

    build: Optional[Command] = None
    test: Optional[Command] = None
    docs: Optional[Command] = None
    start: Optional[Command] = None

    # build output paths relative to the package dir; removed when clean is on
    outputs: Tuple[str, ...] = ()

    description: Optional[str] = None

    @field_validator("build", "test", "docs", "start", mode="before")
    @classmethod
    def _split_command(cls, v: Any) -> Any:
        return _coerce_command(v)

    @field_validator("outputs")
    @classmethod
    def _relative_outputs(cls, v: Tuple[str, ...]) -> Tuple[str, ...]:
        for rel in v:
            p = PurePosixPath(rel.replace("\\", "/"))
            if not rel.strip() or p.is_absolute() or ".." in p.parts or p == PurePosixPath("."):
                raise ValueError(f"output path must be a sub-path of the package dir: {rel!r}")
        return v

    def command_for(self, lifecycle: str) -> Optional[Command]:
        if lifecycle not in ("build", "test", "docs", "start"):
            raise ValueError(f"Unknown lifecycle: {lifecycle}")
        return getattr(self, lifecycle)

    def has_command(self, lifecycle: str) -> bool:
        return self.command_for(lifecycle) is not None


class BuildTarget(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(min_length=1)
    # membership only; order is always re-derived from dependencies
    packages: Tuple[str, ...] = ()
    # layered over the process environment before variant resolution
    env: Dict[str, str] = Field(default_factory=dict)
    description: Optional[str] = None

    def __hash__(self) -> int:
        return hash((self.name, self.packages, tuple(sorted(self.env.items()))))


class WorkspaceManifest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = "workspace"
    version: str = "0.0.0"
    packages: List[Package] = Field(default_factory=list)
    targets: List[BuildTarget] = Field(default_factory=list)
    seal_path: str = "version_seal.json"

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "packages": [p.name for p in self.packages],
            "targets": [t.name for t in self.targets],
            "seal_path": self.seal_path,
        }
