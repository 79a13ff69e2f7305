from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from orchestrator.core.errors import StateError

from .events import now_utc_iso
from .models import BuildPlan

_log = logging.getLogger("orchestrator.persist")


def _plans_dir(state_dir: Path) -> Path:
    d = state_dir / "plans"
    d.mkdir(parents=True, exist_ok=True)
    return d


def events_log_path(state_dir: Path) -> Path:
    return state_dir / "events.log"


def save_plan(state_dir: Path, plan: BuildPlan) -> str:
    plan_id = plan.compute_plan_id()
    payload: Dict[str, Any] = plan.to_dict()
    payload["created_ts"] = now_utc_iso()

    try:
        out = _plans_dir(state_dir) / f"{plan_id}.json"
        out.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as e:
        raise StateError(f"Cannot save plan {plan_id} under {state_dir}: {e}") from e
    return plan_id


def load_plan(state_dir: Path, plan_id: str) -> Dict[str, Any]:
    p = _plans_dir(state_dir) / f"{plan_id}.json"
    if not p.exists():
        raise FileNotFoundError(f"Plan not found: {p}")
    return json.loads(p.read_text(encoding="utf-8"))


def append_events(state_dir: Path, events: List[Dict[str, Any]]) -> None:
    """
    Append JSONL events to <state_dir>/events.log
    Robust: if existing file doesn't end with newline, add one first.
    """
    if not events:
        return

    log = events_log_path(state_dir)
    try:
        log.parent.mkdir(parents=True, exist_ok=True)

        with log.open("ab+") as f:
            f.seek(0, 2)
            size = f.tell()
            if size > 0:
                f.seek(-1, 2)
                last = f.read(1)
                if last != b"\n":
                    f.write(b"\n")

            for e in events:
                f.write((json.dumps(e) + "\n").encode("utf-8"))
    except OSError as e:
        raise StateError(f"Cannot append to event log {log}: {e}") from e


def read_events(state_dir: Path, limit: int = 200) -> List[Dict[str, Any]]:
    log = events_log_path(state_dir)
    if not log.exists():
        return []
    try:
        lines = log.read_text(encoding="utf-8", errors="replace").splitlines()
    except OSError as e:
        raise StateError(f"Cannot read event log {log}: {e}") from e

    lines = lines[-max(1, min(limit, 2000)) :]
    out: List[Dict[str, Any]] = []
    for ln in lines:
        if not ln.strip():
            continue
        try:
            out.append(json.loads(ln))
        except json.JSONDecodeError:
            # torn write from an interrupted run
            _log.warning("Skipping unreadable record in %s: %.80r", log, ln)
    return out
