import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import pytest

from orchestrator.core.execution.backends import CommandBackend, CommandResult
from orchestrator.core.observability.metrics import reset_metrics
from orchestrator.core.registry.models import BuildTarget, Package, WorkspaceManifest
from orchestrator.core.registry.registry import PackageRegistry


class RecordingBackend(CommandBackend):
    """Records every command instead of running it.

    exit_codes maps a package dir name to the exit status its commands report.
    """

    name = "recording"

    def __init__(self, exit_codes: Optional[Dict[str, int]] = None, cancel_on: Optional[str] = None):
        self.exit_codes = dict(exit_codes or {})
        self.cancel_on = cancel_on
        self.calls: List[Dict] = []
        self._lock = threading.Lock()

    def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str],
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> CommandResult:
        with self._lock:
            self.calls.append({"command": list(command), "cwd": Path(cwd), "env": dict(env), "timeout": timeout})
        if self.cancel_on is not None and Path(cwd).name == self.cancel_on and cancel is not None:
            cancel.set()
            return CommandResult(exit_status=None, cancelled=True)
        return CommandResult(exit_status=self.exit_codes.get(Path(cwd).name, 0), duration_s=0.01)

    @property
    def invoked_dirs(self) -> List[str]:
        return [c["cwd"].name for c in self.calls]


def make_registry(packages: List[Package], targets: Optional[List[BuildTarget]] = None, **kw) -> PackageRegistry:
    return PackageRegistry(WorkspaceManifest(packages=packages, targets=targets or [], **kw))


def pkg(name: str, *deps: str, **kw) -> Package:
    kw.setdefault("build", ["make", name])
    return Package(name=name, path=f"packages/{name}", depends_on=deps, **kw)


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()


@pytest.fixture()
def web_registry() -> PackageRegistry:
    return make_registry(
        [pkg("core"), pkg("demo", "core"), pkg("extension", "core"), pkg("selfhosted", "core")],
        [BuildTarget(name="build", packages=("demo", "extension", "selfhosted", "core"))],
    )


@pytest.fixture()
def backend() -> RecordingBackend:
    return RecordingBackend()
