from __future__ import annotations

import concurrent.futures
import logging
import threading
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from orchestrator.core.observability import metrics
from orchestrator.core.registry.models import Package
from orchestrator.core.registry.registry import PackageRegistry
from orchestrator.core.release.version_seal import SEAL_PATH_VAR
from orchestrator.core.variants.config import VariantConfig

from .backends import CommandBackend, CommandResult
from .executor import step_failure_from_result
from .guards import package_dir
from .models import AggregateResult

_log = logging.getLogger("orchestrator.aggregate")

AGGREGATE_LIFECYCLES = ("test", "docs")


class AggregateRunner:
    """Runs one lifecycle command in every package that defines it.

    Packages without the command are skipped. There is no ordering contract
    between packages, so commands run on a bounded thread pool and every
    failure is collected instead of stopping at the first one.
    """

    def __init__(
        self,
        backend: CommandBackend,
        *,
        workspace_root: Path,
        base_env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        max_workers: int = 4,
    ):
        self.backend = backend
        self.workspace_root = workspace_root
        self.base_env: Dict[str, str] = dict(base_env or {})
        self.timeout = timeout
        self.max_workers = max(1, int(max_workers))

    def _env(self, config: Optional[VariantConfig]) -> Dict[str, str]:
        if config is None:
            return dict(self.base_env)
        return config.overlay(self.base_env, drop=(SEAL_PATH_VAR,))

    def _invoke(
        self,
        package: Package,
        lifecycle: str,
        env: Dict[str, str],
        cancel: Optional[threading.Event],
    ) -> CommandResult:
        command = package.command_for(lifecycle)
        _log.info("[%s] %s $ %s", lifecycle, package.name, " ".join(command))  # type: ignore[arg-type]
        out = self.backend.run(
            command,  # type: ignore[arg-type]
            cwd=package_dir(self.workspace_root, package),
            env=env,
            timeout=self.timeout,
            cancel=cancel,
        )
        outcome = "cancelled" if out.cancelled else ("succeeded" if out.ok else "failed")
        metrics.observe_step(lifecycle, package.name, outcome, out.duration_s)
        return out

    def run_all(
        self,
        lifecycle: str,
        registry: PackageRegistry,
        *,
        config: Optional[VariantConfig] = None,
        cancel: Optional[threading.Event] = None,
    ) -> AggregateResult:
        result = AggregateResult(lifecycle=lifecycle)

        selected: List[Package] = []
        for pkg in registry.list_packages():
            if pkg.has_command(lifecycle):
                selected.append(pkg)
            else:
                result.skipped.append(pkg.name)

        if result.skipped:
            _log.debug("No %s command in: %s", lifecycle, ", ".join(result.skipped))

        env = self._env(config)
        outcomes: Dict[str, CommandResult] = {}

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futs: Dict[concurrent.futures.Future, Package] = {}
            for pkg in selected:
                if cancel is not None and cancel.is_set():
                    result.cancelled = True
                    break
                futs[pool.submit(self._invoke, pkg, lifecycle, env, cancel)] = pkg
                result.invoked.append(pkg.name)

            for fut in concurrent.futures.as_completed(futs):
                outcomes[futs[fut].name] = fut.result()

        # report in registry order regardless of completion order
        for pkg in selected:
            out = outcomes.get(pkg.name)
            if out is None:
                continue
            if out.cancelled:
                result.cancelled = True
                continue
            if not out.ok:
                failure = step_failure_from_result(
                    package=pkg.name,
                    command=list(pkg.command_for(lifecycle) or ()),
                    result=out,
                    lifecycle=lifecycle,
                )
                _log.error("%s", failure)
                result.failures.append(failure)

        if result.ok:
            _log.info("%s passed in %d package(s), %d skipped", lifecycle, len(result.invoked), len(result.skipped))
        return result

    def run_one(
        self,
        package: Package,
        lifecycle: str,
        *,
        config: Optional[VariantConfig] = None,
        cancel: Optional[threading.Event] = None,
    ) -> AggregateResult:
        """Run a single package's lifecycle command (e.g. ``start`` for the demo)."""
        if not package.has_command(lifecycle):
            raise ValueError(f"Package {package.name} has no {lifecycle} command")

        result = AggregateResult(lifecycle=lifecycle, invoked=[package.name])
        out = self._invoke(package, lifecycle, self._env(config), cancel)
        if out.cancelled:
            result.cancelled = True
        elif not out.ok:
            result.failures.append(
                step_failure_from_result(
                    package=package.name,
                    command=list(package.command_for(lifecycle) or ()),
                    result=out,
                    lifecycle=lifecycle,
                )
            )
        return result
