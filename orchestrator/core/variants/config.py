from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional

from orchestrator.core.registry.models import BuildTarget


# IMPORTANT: keep these names; package build scripts read them
MODE_VAR = "NODE_ENV"
FEATURES_VAR = "CARGO_FEATURES"
DUAL_OUTPUT_VAR = "ENABLE_WASM_EXTENSIONS"
CLEAN_VAR = "ENABLE_CARGO_CLEAN"
SEAL_VAR = "ENABLE_VERSION_SEAL"

VARIANT_VARS = (MODE_VAR, FEATURES_VAR, DUAL_OUTPUT_VAR, CLEAN_VAR, SEAL_VAR)

MODES = ("development", "production")

_TRUTHY = ("1", "true", "yes", "on")


def _flag(raw: Optional[str]) -> bool:
    if raw is None:
        return False
    return str(raw).strip().lower() in _TRUTHY


@dataclass(frozen=True)
class VariantConfig:
    mode: Optional[str] = None        # None => let each package pick its own default
    features: Optional[str] = None    # forwarded verbatim
    dual_output: bool = False
    clean: bool = False
    seal: bool = False

    @classmethod
    def from_environment(cls, environment: Mapping[str, str]) -> "VariantConfig":
        """
        Unknown keys are ignored. Absent or malformed values fall back to off/unset:
          - NODE_ENV outside development|production => mode unset
          - empty CARGO_FEATURES => features unset
          - toggles accept 1/true/yes/on (any case)
        """
        mode = (environment.get(MODE_VAR) or "").strip().lower()
        features = environment.get(FEATURES_VAR)

        return cls(
            mode=mode if mode in MODES else None,
            features=features if features else None,
            dual_output=_flag(environment.get(DUAL_OUTPUT_VAR)),
            clean=_flag(environment.get(CLEAN_VAR)),
            seal=_flag(environment.get(SEAL_VAR)),
        )

    def to_environment(self) -> Dict[str, str]:
        env: Dict[str, str] = {}
        if self.mode is not None:
            env[MODE_VAR] = self.mode
        if self.features is not None:
            env[FEATURES_VAR] = self.features
        if self.dual_output:
            env[DUAL_OUTPUT_VAR] = "true"
        if self.clean:
            env[CLEAN_VAR] = "true"
        if self.seal:
            env[SEAL_VAR] = "true"
        return env

    def overlay(self, base: Mapping[str, str], *, drop: Iterable[str] = ()) -> Dict[str, str]:
        """Render this config over ``base``.

        Variant variables already in ``base`` are removed first, so a toggle
        that is off here is also absent from the result.
        """
        stale = set(VARIANT_VARS) | set(drop)
        env = {k: v for k, v in base.items() if k not in stale}
        env.update(self.to_environment())
        return env

    def to_dict(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "features": self.features,
            "dual_output": self.dual_output,
            "clean": self.clean,
            "seal": self.seal,
        }

    @classmethod
    def from_dict(cls, d: Mapping[str, Any]) -> "VariantConfig":
        return cls(
            mode=d.get("mode"),
            features=d.get("features"),
            dual_output=bool(d.get("dual_output", False)),
            clean=bool(d.get("clean", False)),
            seal=bool(d.get("seal", False)),
        )


def resolve(environment: Mapping[str, str]) -> VariantConfig:
    return VariantConfig.from_environment(environment)


def resolve_for_target(target: BuildTarget, environment: Mapping[str, str]) -> VariantConfig:
    """Target env overrides win over the caller's environment."""
    merged = dict(environment)
    merged.update(target.env or {})
    return resolve(merged)
