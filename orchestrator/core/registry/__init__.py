from .models import BuildTarget, Package, WorkspaceManifest
from .registry import PackageRegistry, discover_manifest, load_manifest

__all__ = [
    "BuildTarget",
    "Package",
    "PackageRegistry",
    "WorkspaceManifest",
    "discover_manifest",
    "load_manifest",
]
