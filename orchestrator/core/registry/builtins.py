from __future__ import annotations

from .models import BuildTarget, Package, WorkspaceManifest


def builtin_packages() -> list[Package]:
    # Deterministic defaults for the web workspace. A manifest file replaces these.
    return [
        Package(
            name="core",
            path="packages/core",
            build=("npm", "run", "build"),
            test=("npm", "test"),
            docs=("npm", "run", "docs"),
            outputs=("dist", "pkg"),
            description="Player core: wasm module plus the JS glue every other package embeds",
        ),
        Package(
            name="demo",
            path="packages/demo",
            depends_on=("core",),
            build=("npm", "run", "build"),
            start=("npm", "start"),
            outputs=("dist",),
            description="Standalone demo page",
        ),
        Package(
            name="extension",
            path="packages/extension",
            depends_on=("core",),
            build=("npm", "run", "build"),
            test=("npm", "test"),
            outputs=("dist", "build"),
            description="Browser extension",
        ),
        Package(
            name="selfhosted",
            path="packages/selfhosted",
            depends_on=("core",),
            build=("npm", "run", "build"),
            test=("npm", "test"),
            outputs=("dist",),
            description="Self-hosted player bundle",
        ),
    ]


def builtin_targets() -> list[BuildTarget]:
    everything = ("core", "demo", "extension", "selfhosted")
    return [
        BuildTarget(name="build", packages=everything, description="Default build"),
        BuildTarget(
            name="build:debug",
            packages=everything,
            env={"NODE_ENV": "development", "CARGO_FEATURES": "avm_debug"},
            description="Development build with interpreter debug instrumentation",
        ),
        BuildTarget(
            name="build:dual-wasm",
            packages=everything,
            env={"ENABLE_WASM_EXTENSIONS": "true"},
            description="Build both the baseline and the extensions-enabled wasm module",
        ),
        BuildTarget(
            name="build:repro",
            packages=everything,
            env={
                "ENABLE_WASM_EXTENSIONS": "true",
                "ENABLE_CARGO_CLEAN": "true",
                "ENABLE_VERSION_SEAL": "true",
            },
            description="Clean, dual-format, sealed reproducible build",
        ),
    ]


def builtin_manifest() -> WorkspaceManifest:
    return WorkspaceManifest(
        name="ruffle",
        version="0.1.0",
        packages=builtin_packages(),
        targets=builtin_targets(),
    )
