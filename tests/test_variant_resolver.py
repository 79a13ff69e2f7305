import pytest

from orchestrator.core.registry.models import BuildTarget
from orchestrator.core.variants.config import VariantConfig, resolve, resolve_for_target


def test_no_recognized_keys_yields_defaults():
    cfg = resolve({"PATH": "/usr/bin", "HOME": "/root", "UNRELATED": "true"})

    assert cfg == VariantConfig()
    assert cfg.mode is None
    assert cfg.features is None
    assert not (cfg.dual_output or cfg.clean or cfg.seal)
    assert cfg.to_environment() == {}


def test_debug_features_and_mode_pass_through_unchanged():
    cfg = resolve({"CARGO_FEATURES": "avm_debug", "NODE_ENV": "development"})

    assert cfg.features == "avm_debug"
    assert cfg.mode == "development"
    assert cfg.dual_output is False
    assert cfg.clean is False
    assert cfg.seal is False


def test_features_are_forwarded_verbatim():
    cfg = resolve({"CARGO_FEATURES": "avm_debug, lzma"})

    assert cfg.to_environment() == {"CARGO_FEATURES": "avm_debug, lzma"}


@pytest.mark.parametrize("raw", ["true", "TRUE", "1", "yes", " on "])
def test_truthy_toggle_values(raw):
    cfg = resolve({"ENABLE_WASM_EXTENSIONS": raw, "ENABLE_CARGO_CLEAN": raw, "ENABLE_VERSION_SEAL": raw})

    assert cfg.dual_output and cfg.clean and cfg.seal


@pytest.mark.parametrize("raw", ["", "false", "0", "no", "enabled", "tru"])
def test_malformed_or_false_toggles_are_off(raw):
    cfg = resolve({"ENABLE_WASM_EXTENSIONS": raw, "ENABLE_VERSION_SEAL": raw})

    assert not cfg.dual_output
    assert not cfg.seal


@pytest.mark.parametrize("raw,expected", [("production", "production"), (" Development ", "development"), ("staging", None), ("", None)])
def test_mode_parsing(raw, expected):
    assert resolve({"NODE_ENV": raw}).mode == expected


def test_toggles_compose_independently():
    cfg = resolve({"ENABLE_VERSION_SEAL": "true", "NODE_ENV": "production"})

    assert cfg == VariantConfig(mode="production", seal=True)
    assert cfg.to_environment() == {"NODE_ENV": "production", "ENABLE_VERSION_SEAL": "true"}


def test_round_trip_through_environment():
    cfg = VariantConfig(mode="development", features="avm_debug", dual_output=True, clean=True, seal=True)

    assert resolve(cfg.to_environment()) == cfg
    assert VariantConfig.from_dict(cfg.to_dict()) == cfg


def test_target_env_overrides_process_environment():
    target = BuildTarget(name="build:debug", env={"NODE_ENV": "development", "CARGO_FEATURES": "avm_debug"})

    cfg = resolve_for_target(target, {"NODE_ENV": "production", "ENABLE_WASM_EXTENSIONS": "true"})

    assert cfg == VariantConfig(mode="development", features="avm_debug", dual_output=True)


def test_resolve_does_not_mutate_input():
    env = {"NODE_ENV": "production"}
    resolve_for_target(BuildTarget(name="t", env={"NODE_ENV": "development"}), env)

    assert env == {"NODE_ENV": "production"}
