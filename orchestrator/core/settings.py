"""
Orchestrator settings.

Read once from the process environment by the CLI and passed down
explicitly; nothing below the CLI reads ``os.environ``.

Environment variables:
    ORCHESTRATOR_WORKSPACE     workspace root (default: current directory)
    ORCHESTRATOR_MANIFEST      manifest path, absolute or relative to the workspace
    ORCHESTRATOR_STATE_DIR     plans/events directory (default: <workspace>/.orchestrator)
    ORCHESTRATOR_STEP_TIMEOUT  per-command timeout in seconds (default: none)
    ORCHESTRATOR_MAX_WORKERS   parallel test/docs commands (default: 4)
    ORCHESTRATOR_LOG_LEVEL     DEBUG | INFO | WARNING | ERROR (default: INFO)
    ORCHESTRATOR_SIGNING_KEY   HMAC key; when set, version seals are signed
"""
from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from orchestrator.core.errors import ConfigurationError


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class OrchestratorSettings(BaseModel):
    workspace: Path = Field(default_factory=Path.cwd)
    manifest: Optional[Path] = None
    state_dir: Optional[Path] = None
    step_timeout: Optional[float] = Field(default=None, gt=0)
    max_workers: int = Field(default=4, ge=1)
    log_level: str = "INFO"
    signing_key: Optional[str] = None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        v = (v or "INFO").strip().upper()
        if v not in _LOG_LEVELS:
            raise ValueError(f"log level must be one of {', '.join(_LOG_LEVELS)}")
        return v

    @classmethod
    def from_environment(cls, environment: Mapping[str, str]) -> "OrchestratorSettings":
        raw = {
            "workspace": environment.get("ORCHESTRATOR_WORKSPACE"),
            "manifest": environment.get("ORCHESTRATOR_MANIFEST"),
            "state_dir": environment.get("ORCHESTRATOR_STATE_DIR"),
            "step_timeout": environment.get("ORCHESTRATOR_STEP_TIMEOUT"),
            "max_workers": environment.get("ORCHESTRATOR_MAX_WORKERS"),
            "log_level": environment.get("ORCHESTRATOR_LOG_LEVEL"),
            "signing_key": environment.get("ORCHESTRATOR_SIGNING_KEY"),
        }
        # empty strings mean "not set"
        data = {k: v.strip() for k, v in raw.items() if v is not None and v.strip()}
        try:
            return cls(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid ORCHESTRATOR_* setting: {exc}") from exc

    def with_overrides(self, **overrides) -> "OrchestratorSettings":
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        try:
            return OrchestratorSettings(**data)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid option: {exc}") from exc

    @property
    def workspace_root(self) -> Path:
        return self.workspace.resolve()

    @property
    def resolved_state_dir(self) -> Path:
        if self.state_dir is None:
            return self.workspace_root / ".orchestrator"
        return self.state_dir if self.state_dir.is_absolute() else self.workspace_root / self.state_dir
