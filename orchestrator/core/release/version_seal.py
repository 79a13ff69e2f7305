"""Version sealing for reproducible builds.

A seal pins the version, source commit and variant flags of one build. It is
written before the first build step so packages can embed it, and it is
never rewritten while that build runs.

Determinism: ``build_date`` is the commit date (or ``SOURCE_DATE_EPOCH``),
never the wall clock, so sealing the same source with the same variant twice
yields byte-identical records.
"""
from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

from orchestrator.core.errors import SealError
from orchestrator.core.variants.config import VariantConfig

from .signing import canonical_json_bytes, sha256_hex, sign_bytes, verify_bytes

_log = logging.getLogger("orchestrator.seal")

SEAL_PATH_VAR = "VERSION_SEAL_PATH"
UNKNOWN = "unknown"
_EPOCH_ISO = "1970-01-01T00:00:00Z"


def _epoch_to_iso(raw: str) -> Optional[str]:
    try:
        ts = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class SourceState:
    commit: str
    commit_date: str


def _git(args: list[str], cwd: Path) -> str:
    return subprocess.check_output(["git", *args], cwd=cwd, stderr=subprocess.DEVNULL).decode("utf-8").strip()


def read_source_state(root: Path, environment: Optional[Mapping[str, str]] = None) -> SourceState:
    env = environment or {}
    try:
        commit = _git(["rev-parse", "HEAD"], root)
        commit_date = _epoch_to_iso(_git(["log", "-1", "--format=%ct"], root)) or _EPOCH_ISO
    except (OSError, subprocess.CalledProcessError):
        _log.warning("No git metadata under %s; sealing with commit=%s", root, UNKNOWN)
        commit, commit_date = UNKNOWN, _EPOCH_ISO

    override = env.get("SOURCE_DATE_EPOCH")
    if override:
        commit_date = _epoch_to_iso(override) or commit_date

    return SourceState(commit=commit, commit_date=commit_date)


@dataclass(frozen=True)
class VersionSeal:
    version: str
    version_name: str
    commit: str
    commit_date: str
    build_date: str
    build_id: str
    fingerprint: str
    variant: Dict[str, Any] = field(default_factory=dict)
    signature: Optional[str] = None

    def unsigned_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "version_name": self.version_name,
            "commit": self.commit,
            "commit_date": self.commit_date,
            "build_date": self.build_date,
            "build_id": self.build_id,
            "fingerprint": self.fingerprint,
            "variant": dict(self.variant),
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.unsigned_dict()
        d["signature"] = self.signature
        return d

    @staticmethod
    def from_dict(d: Mapping[str, Any]) -> "VersionSeal":
        return VersionSeal(
            version=d["version"],
            version_name=d.get("version_name") or d["version"],
            commit=d["commit"],
            commit_date=d["commit_date"],
            build_date=d.get("build_date") or d["commit_date"],
            build_id=d["build_id"],
            fingerprint=d["fingerprint"],
            variant=dict(d.get("variant") or {}),
            signature=d.get("signature"),
        )


def compute_fingerprint(*, version: str, commit: str, commit_date: str, variant: Mapping[str, Any]) -> str:
    return sha256_hex(
        {
            "version": version,
            "commit": commit,
            "commit_date": commit_date,
            "variant": dict(variant),
        }
    )


def seal(
    config: VariantConfig,
    *,
    source: SourceState,
    version: str,
    version_name: Optional[str] = None,
    signing_key: Optional[str] = None,
) -> VersionSeal:
    variant = config.to_dict()
    fingerprint = compute_fingerprint(
        version=version,
        commit=source.commit,
        commit_date=source.commit_date,
        variant=variant,
    )
    if version_name is None:
        version_name = version if source.commit == UNKNOWN else f"{version}+{source.commit[:8]}"

    record = VersionSeal(
        version=version,
        version_name=version_name,
        commit=source.commit,
        commit_date=source.commit_date,
        build_date=source.commit_date,
        build_id=fingerprint[:16],
        fingerprint=fingerprint,
        variant=variant,
    )
    if signing_key:
        sig = sign_bytes(canonical_json_bytes(record.unsigned_dict()), signing_key)
        record = VersionSeal(**{**record.unsigned_dict(), "signature": sig})
    return record


def write_seal(record: VersionSeal, path: Path) -> Path:
    """Atomically write the seal (temp file + replace)."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".version_seal.", suffix=".tmp", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json.dumps(record.to_dict(), indent=2, sort_keys=True))
                f.write("\n")
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
    except OSError as e:
        raise SealError(f"Cannot write version seal to {path}: {e}") from e
    return path


def read_seal(path: Path) -> VersionSeal:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise SealError(f"Cannot read version seal {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise SealError(f"Version seal {path} is not valid JSON: {e}") from e
    try:
        return VersionSeal.from_dict(data)
    except (KeyError, TypeError) as e:
        raise SealError(f"Version seal {path} is missing field {e}") from e


def verify_seal(
    path: Path,
    *,
    config: Optional[VariantConfig] = None,
    source: Optional[SourceState] = None,
    signing_key: Optional[str] = None,
) -> Dict[str, Any]:
    try:
        record = read_seal(path)
    except SealError as e:
        return {"ok": False, "error": str(e)}

    expected_fp = compute_fingerprint(
        version=record.version,
        commit=record.commit,
        commit_date=record.commit_date,
        variant=record.variant,
    )
    fingerprint_ok = expected_fp == record.fingerprint and record.build_id == expected_fp[:16]

    config_match = None if config is None else (config.to_dict() == record.variant)
    source_match = None
    if source is not None:
        source_match = source.commit == record.commit and source.commit_date == record.commit_date

    signature_ok = None
    if signing_key:
        if record.signature is None:
            signature_ok = False
        else:
            signature_ok = verify_bytes(canonical_json_bytes(record.unsigned_dict()), record.signature, signing_key)

    ok = fingerprint_ok and all(v is not False for v in (config_match, source_match, signature_ok))
    return {
        "ok": ok,
        "path": str(path),
        "fingerprint": record.fingerprint,
        "build_id": record.build_id,
        "fingerprint_ok": fingerprint_ok,
        "config_match": config_match,
        "source_match": source_match,
        "signature_ok": signature_ok,
    }


class VersionSealer:
    """Seals one build: computes the record and writes it to ``path``."""

    def __init__(
        self,
        *,
        path: Path,
        version: str,
        source_reader: Callable[[], SourceState],
        signing_key: Optional[str] = None,
    ):
        self.path = path
        self.version = version
        self.source_reader = source_reader
        self.signing_key = signing_key

    def seal(self, config: VariantConfig) -> VersionSeal:
        try:
            source = self.source_reader()
        except Exception as e:
            raise SealError(f"Cannot read source state for sealing: {e}") from e

        record = seal(config, source=source, version=self.version, signing_key=self.signing_key)
        write_seal(record, self.path)
        _log.info("Wrote version seal %s build_id=%s commit=%s", self.path, record.build_id, record.commit)
        return record
