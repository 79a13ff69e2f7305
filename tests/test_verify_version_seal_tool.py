"""Seal verification tool against a checkout without git metadata."""

from __future__ import annotations

import json

import pytest

from orchestrator.core.release.version_seal import SourceState, seal, write_seal
from orchestrator.core.variants.config import VariantConfig
from tools.verify_version_seal import main

UNVERSIONED = SourceState(commit="unknown", commit_date="1970-01-01T00:00:00Z")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for var in (
        "SOURCE_DATE_EPOCH",
        "ORCHESTRATOR_SIGNING_KEY",
        "NODE_ENV",
        "CARGO_FEATURES",
        "ENABLE_WASM_EXTENSIONS",
        "ENABLE_CARGO_CLEAN",
    ):
        monkeypatch.delenv(var, raising=False)


def test_matching_seal_passes(tmp_path, capsys):
    write_seal(seal(VariantConfig(seal=True), source=UNVERSIONED, version="1.0.0"), tmp_path / "version_seal.json")

    assert main(["--workspace", str(tmp_path)]) == 0
    assert "OK: version seal matches" in capsys.readouterr().out


def test_source_mismatch_fails(tmp_path, monkeypatch):
    write_seal(seal(VariantConfig(seal=True), source=UNVERSIONED, version="1.0.0"), tmp_path / "version_seal.json")
    monkeypatch.setenv("SOURCE_DATE_EPOCH", "1700000000")

    assert main(["--workspace", str(tmp_path)]) == 1


def test_variant_check_uses_environment(tmp_path, monkeypatch):
    cfg = VariantConfig(dual_output=True, seal=True)
    write_seal(seal(cfg, source=UNVERSIONED, version="1.0.0"), tmp_path / "version_seal.json")

    assert main(["--workspace", str(tmp_path), "--check-variant"]) == 1

    monkeypatch.setenv("ENABLE_WASM_EXTENSIONS", "true")
    assert main(["--workspace", str(tmp_path), "--check-variant"]) == 0


def test_missing_seal_is_error(tmp_path, capsys):
    assert main(["--workspace", str(tmp_path)]) == 2

    report = json.loads(capsys.readouterr().out)
    assert report["ok"] is False
