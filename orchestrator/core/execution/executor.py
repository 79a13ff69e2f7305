from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from orchestrator.core.build_plan.events import BuildEvent
from orchestrator.core.build_plan.models import BuildPlan, PlanStep
from orchestrator.core.build_plan.persist import append_events, save_plan
from orchestrator.core.errors import SealError, StateError, StepFailure
from orchestrator.core.observability import metrics
from orchestrator.core.release.version_seal import SEAL_PATH_VAR, VersionSealer

from .backends import CommandBackend, CommandResult
from .guards import clean_outputs, package_dir
from .models import ExecutionResult, ExecutionStatus, StepRecord, StepState

_log = logging.getLogger("orchestrator.executor")


def step_failure_from_result(
    *, package: str, command: List[str], result: CommandResult, lifecycle: str
) -> StepFailure:
    if result.launch_error:
        return StepFailure(
            package=package, command=command, exit_status=None,
            reason="launch_error", lifecycle=lifecycle, detail=result.launch_error,
        )
    if result.timed_out:
        return StepFailure(
            package=package, command=command, exit_status=result.exit_status,
            reason="timeout", lifecycle=lifecycle,
        )
    return StepFailure(package=package, command=command, exit_status=result.exit_status, lifecycle=lifecycle)


class Executor:
    """Runs a BuildPlan step by step, stopping at the first failure.

    - one VariantConfig per plan, rendered once and passed to every step
    - clean toggle: the package's declared outputs are removed before its build
    - seal toggle: the seal is written exactly once, before step 1
    - cancellation stops launching steps and is reported apart from failures
    - completed steps are never rolled back
    """

    def __init__(
        self,
        backend: CommandBackend,
        *,
        workspace_root: Path,
        base_env: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        sealer: Optional[VersionSealer] = None,
        state_dir: Optional[Path] = None,
    ):
        self.backend = backend
        self.workspace_root = workspace_root
        self.base_env: Dict[str, str] = dict(base_env or {})
        self.timeout = timeout
        self.sealer = sealer
        self.state_dir = state_dir

    def _step_env(self, plan: BuildPlan) -> Dict[str, str]:
        env = plan.config.overlay(self.base_env, drop=(SEAL_PATH_VAR,))
        if plan.config.seal and self.sealer is not None:
            env[SEAL_PATH_VAR] = str(self.sealer.path)
        return env

    # plan snapshots and the event log are best-effort; a broken state dir never fails a build
    def _save(self, plan: BuildPlan) -> None:
        if self.state_dir is None:
            return
        try:
            save_plan(self.state_dir, plan)
        except StateError as e:
            _log.warning("%s", e)

    def _flush(self, events: List[BuildEvent]) -> None:
        if self.state_dir is None:
            return
        try:
            append_events(self.state_dir, [e.to_dict() for e in events])
        except StateError as e:
            _log.warning("%s", e)

    def _run_step(self, plan: BuildPlan, step: PlanStep, env: Dict[str, str], cancel: Optional[threading.Event]) -> CommandResult:
        if plan.config.clean:
            try:
                clean_outputs(self.workspace_root, step.package)
            except (OSError, ValueError) as e:
                return CommandResult(exit_status=None, launch_error=f"clean failed: {e}")

        _log.info("[%s] %s $ %s", plan.target, step.package.name, " ".join(step.command))
        return self.backend.run(
            step.command,
            cwd=package_dir(self.workspace_root, step.package),
            env=env,
            timeout=self.timeout,
            cancel=cancel,
        )

    def execute(self, plan: BuildPlan, *, cancel: Optional[threading.Event] = None) -> ExecutionResult:
        plan_id = plan.compute_plan_id()
        result = ExecutionResult(target=plan.target, plan_id=plan_id, status=ExecutionStatus.SUCCEEDED)

        ev: List[BuildEvent] = []
        ev.append(BuildEvent.mk("PlanCreated", plan.target, plan_id=plan_id, payload={
            "step_count": len(plan.steps),
            "packages": plan.package_names(),
            "config": plan.config.to_dict(),
        }))
        self._save(plan)

        if plan.config.seal:
            if self.sealer is None:
                self._flush(ev + [BuildEvent.mk("BuildFailed", plan.target, plan_id=plan_id, payload={"reason": "no_sealer"})])
                raise SealError("Seal mode is active but no version sealer is configured")
            try:
                record = self.sealer.seal(plan.config)
            except SealError as e:
                ev.append(BuildEvent.mk("BuildFailed", plan.target, plan_id=plan_id, payload={"reason": "seal_error", "error": str(e)}))
                self._flush(ev)
                raise
            metrics.inc_seal()
            result.seal_path = str(self.sealer.path)
            ev.append(BuildEvent.mk("SealWritten", plan.target, plan_id=plan_id, payload={
                "path": str(self.sealer.path),
                "build_id": record.build_id,
                "fingerprint": record.fingerprint,
            }))

        env = self._step_env(plan)

        for step in plan.steps:
            name = step.package.name
            if cancel is not None and cancel.is_set():
                result.status = ExecutionStatus.CANCELLED
                break

            ev.append(BuildEvent.mk("StepStarted", plan.target, plan_id=plan_id, step_id=step.step_id))
            out = self._run_step(plan, step, env, cancel)

            if out.cancelled:
                metrics.observe_step("build", name, "cancelled", out.duration_s)
                result.steps.append(StepRecord(step.step_id, name, "build", StepState.CANCELLED, out.exit_status, out.duration_s))
                result.status = ExecutionStatus.CANCELLED
                break

            if not out.ok:
                failure = step_failure_from_result(package=name, command=list(step.command), result=out, lifecycle="build")
                metrics.observe_step("build", name, "failed", out.duration_s)
                result.steps.append(StepRecord(step.step_id, name, "build", StepState.FAILED, out.exit_status, out.duration_s))
                result.status = ExecutionStatus.FAILED
                result.failure = failure
                ev.append(BuildEvent.mk("StepFailed", plan.target, plan_id=plan_id, step_id=step.step_id, payload=failure.to_dict()))
                _log.error("%s", failure)
                break

            metrics.observe_step("build", name, "succeeded", out.duration_s)
            result.steps.append(StepRecord(step.step_id, name, "build", StepState.SUCCEEDED, out.exit_status, out.duration_s))
            ev.append(BuildEvent.mk("StepCompleted", plan.target, plan_id=plan_id, step_id=step.step_id, payload={
                "duration_s": round(out.duration_s, 3),
            }))

        final: Dict[ExecutionStatus, Any] = {
            ExecutionStatus.SUCCEEDED: "BuildCompleted",
            ExecutionStatus.FAILED: "BuildFailed",
            ExecutionStatus.CANCELLED: "BuildCancelled",
        }
        ev.append(BuildEvent.mk(final[result.status], plan.target, plan_id=plan_id, payload={
            "completed": [s.package for s in result.steps if s.state == StepState.SUCCEEDED],
        }))
        self._flush(ev)

        if result.cancelled:
            _log.warning("Build %s cancelled after %d step(s)", plan.target, len(result.steps))
        elif result.ok:
            _log.info("Build %s completed (%d packages)", plan.target, len(result.steps))
        return result
