from __future__ import annotations

import argparse
import json
import logging
import os
import signal
import sys
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterator, List, Mapping, Optional

from orchestrator.core.build_plan.models import BuildPlan
from orchestrator.core.build_plan.persist import read_events
from orchestrator.core.build_plan.planner import make_build_plan
from orchestrator.core.errors import (
    ConfigurationError,
    OrchestratorError,
    PlanningError,
    SealError,
    StepFailure,
)
from orchestrator.core.execution.aggregate import AGGREGATE_LIFECYCLES, AggregateRunner
from orchestrator.core.execution.backends import BACKENDS, CommandBackend
from orchestrator.core.execution.executor import Executor
from orchestrator.core.execution.models import AggregateResult, ExecutionResult
from orchestrator.core.observability.metrics import write_metrics
from orchestrator.core.registry.registry import PackageRegistry
from orchestrator.core.release.version_seal import VersionSealer, read_source_state
from orchestrator.core.settings import OrchestratorSettings
from orchestrator.core.variants.config import SEAL_VAR, resolve, resolve_for_target

log = logging.getLogger("orchestrator.cli")

EXIT_OK = 0
EXIT_STEP_FAILED = 1
EXIT_ORCHESTRATION_FAILURE = 2
EXIT_CANCELLED = 130

BUILD_TARGETS = ("build", "build:debug", "build:dual-wasm", "build:repro")


@dataclass
class CliContext:
    settings: OrchestratorSettings
    environ: Dict[str, str]
    backend: CommandBackend
    cancel: threading.Event = field(default_factory=threading.Event)
    _registry: Optional[PackageRegistry] = None

    @property
    def registry(self) -> PackageRegistry:
        if self._registry is None:
            self._registry = PackageRegistry.load(self.settings.workspace_root, self.settings.manifest)
        return self._registry

    def sealer(self) -> VersionSealer:
        root = self.settings.workspace_root
        return VersionSealer(
            path=root / self.registry.seal_path,
            version=self.registry.version,
            source_reader=lambda: read_source_state(root, self.environ),
            signing_key=self.settings.signing_key,
        )


def exit_code_for_failure(failure: StepFailure) -> int:
    status = failure.exit_status
    if status is None or status == 0:
        return EXIT_STEP_FAILED
    if status < 0:
        # killed by signal N
        return 128 + (-status)
    return status if status < 256 else EXIT_STEP_FAILED


def _exit_code_for_build(result: ExecutionResult) -> int:
    if result.cancelled:
        return EXIT_CANCELLED
    if result.failure is not None:
        return exit_code_for_failure(result.failure)
    return EXIT_OK


def _exit_code_for_aggregate(result: AggregateResult) -> int:
    if result.cancelled:
        return EXIT_CANCELLED
    if result.failures:
        return exit_code_for_failure(result.failures[0])
    return EXIT_OK


# ----------------------------------------
# Subcommands
# ----------------------------------------
def _plan_for(ctx: CliContext, target_name: str) -> BuildPlan:
    target = ctx.registry.target(target_name)
    if target is None:
        known = ", ".join(t.name for t in ctx.registry.list_targets()) or "none"
        raise ConfigurationError(f"Unknown build target {target_name!r} (known: {known})")
    config = resolve_for_target(target, ctx.environ)
    return make_build_plan(target=target, registry=ctx.registry, config=config)


def _cmd_build(args: argparse.Namespace, ctx: CliContext) -> int:
    plan = _plan_for(ctx, args.target)
    executor = Executor(
        ctx.backend,
        workspace_root=ctx.settings.workspace_root,
        base_env=ctx.environ,
        timeout=ctx.settings.step_timeout,
        sealer=ctx.sealer() if plan.config.seal else None,
        state_dir=ctx.settings.resolved_state_dir,
    )
    result = executor.execute(plan, cancel=ctx.cancel)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    return _exit_code_for_build(result)


def _cmd_plan(args: argparse.Namespace, ctx: CliContext) -> int:
    plan = _plan_for(ctx, args.target)
    print(json.dumps(plan.to_dict(), indent=2))
    return EXIT_OK


def _cmd_aggregate(args: argparse.Namespace, ctx: CliContext) -> int:
    runner = AggregateRunner(
        ctx.backend,
        workspace_root=ctx.settings.workspace_root,
        base_env=ctx.environ,
        timeout=ctx.settings.step_timeout,
        max_workers=ctx.settings.max_workers,
    )
    result = runner.run_all(args.lifecycle, ctx.registry, config=resolve(ctx.environ), cancel=ctx.cancel)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    elif result.failures:
        print(f"{len(result.failures)} {args.lifecycle} failure(s):", file=sys.stderr)
        for f in result.failures:
            print(f"  - {f}", file=sys.stderr)
    return _exit_code_for_aggregate(result)


def _cmd_demo(args: argparse.Namespace, ctx: CliContext) -> int:
    pkg = ctx.registry.get(args.package)
    if pkg is None:
        raise ConfigurationError(f"Unknown package: {args.package}")
    if not pkg.has_command("start"):
        raise ConfigurationError(f"Package {pkg.name} has no start command")
    runner = AggregateRunner(ctx.backend, workspace_root=ctx.settings.workspace_root, base_env=ctx.environ)
    result = runner.run_one(pkg, "start", config=resolve(ctx.environ), cancel=ctx.cancel)
    return _exit_code_for_aggregate(result)


def _cmd_version_seal(args: argparse.Namespace, ctx: CliContext) -> int:
    config = resolve({**ctx.environ, SEAL_VAR: "true"})
    record = ctx.sealer().seal(config)
    print(json.dumps(record.to_dict(), indent=2, sort_keys=True))
    return EXIT_OK


def _cmd_packages(args: argparse.Namespace, ctx: CliContext) -> int:
    if args.json:
        print(json.dumps(ctx.registry.manifest.describe(), indent=2))
        return EXIT_OK
    for pkg in ctx.registry.list_packages():
        lifecycles = [lc for lc in ("build", "test", "docs", "start") if pkg.has_command(lc)]
        deps = ", ".join(pkg.depends_on) or "-"
        print(f"{pkg.name:<16} deps: {deps:<24} commands: {', '.join(lifecycles) or '-'}")
    return EXIT_OK


def _cmd_history(args: argparse.Namespace, ctx: CliContext) -> int:
    for ev in read_events(ctx.settings.resolved_state_dir, limit=args.limit):
        print(json.dumps(ev))
    return EXIT_OK


# ----------------------------------------
# Parser
# ----------------------------------------
def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="orchestrator", description="Workspace build orchestrator")
    ap.add_argument("--workspace", type=Path, help="Workspace root (default: ORCHESTRATOR_WORKSPACE or cwd)")
    ap.add_argument("--manifest", type=Path, help="Workspace manifest (YAML or JSON)")
    ap.add_argument("--timeout", type=float, help="Per-command timeout in seconds")
    ap.add_argument("--max-workers", type=int, help="Parallel test/docs commands")
    ap.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    ap.add_argument("--metrics-file", type=Path, help="Write Prometheus textfile metrics here on exit")
    ap.add_argument("--dry-run", action="store_true", help="Log commands instead of running them")

    sub = ap.add_subparsers(dest="command", required=True)

    for name in BUILD_TARGETS:
        p = sub.add_parser(name, help=f"Run the {name} target")
        p.add_argument("--json", action="store_true", help="Print the execution result as JSON")
        p.set_defaults(func=_cmd_build, target=name)

    p = sub.add_parser("target", help="Run any target defined in the manifest")
    p.add_argument("target")
    p.add_argument("--json", action="store_true")
    p.set_defaults(func=_cmd_build)

    p = sub.add_parser("plan", help="Print the ordered build plan for a target without running it")
    p.add_argument("target")
    p.set_defaults(func=_cmd_plan)

    for lifecycle in AGGREGATE_LIFECYCLES:
        p = sub.add_parser(lifecycle, help=f"Run {lifecycle} in every package that has it")
        p.add_argument("--json", action="store_true")
        p.set_defaults(func=_cmd_aggregate, lifecycle=lifecycle)

    p = sub.add_parser("demo", help="Start the demo package")
    p.add_argument("--package", default="demo")
    p.set_defaults(func=_cmd_demo)

    p = sub.add_parser("version-seal", help="Write the version seal for the current source state")
    p.set_defaults(func=_cmd_version_seal)

    p = sub.add_parser("packages", help="List workspace packages")
    p.add_argument("--json", action="store_true", help="Print the manifest summary as JSON")
    p.set_defaults(func=_cmd_packages)

    p = sub.add_parser("history", help="Show recent build events")
    p.add_argument("--limit", type=int, default=50)
    p.set_defaults(func=_cmd_history)

    return ap


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


@contextmanager
def _cancel_on_sigint(cancel: threading.Event) -> Iterator[None]:
    """First Ctrl-C requests cancellation; running commands are terminated."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        log.warning("Interrupt received; cancelling")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    env = dict(os.environ if environ is None else environ)
    args = build_parser().parse_args(argv)

    try:
        settings = OrchestratorSettings.from_environment(env).with_overrides(
            workspace=args.workspace,
            manifest=args.manifest,
            step_timeout=args.timeout,
            max_workers=args.max_workers,
            log_level=args.log_level,
        )
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return EXIT_ORCHESTRATION_FAILURE

    _configure_logging(settings.log_level)

    ctx = CliContext(
        settings=settings,
        environ=env,
        backend=BACKENDS["dry-run" if args.dry_run else "subprocess"],
    )

    rc = EXIT_ORCHESTRATION_FAILURE
    with _cancel_on_sigint(ctx.cancel):
        try:
            rc = args.func(args, ctx)
        except (ConfigurationError, PlanningError, SealError) as e:
            log.error("%s: %s", type(e).__name__, e)
            log.debug("details", exc_info=True)
        except OrchestratorError as e:
            log.error("orchestration failed: %s", e)
            log.debug("details", exc_info=True)
        finally:
            if args.metrics_file is not None:
                write_metrics(args.metrics_file)

    return rc


if __name__ == "__main__":
    raise SystemExit(main())
