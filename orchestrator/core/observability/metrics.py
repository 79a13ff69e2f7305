from __future__ import annotations

from collections import Counter
from pathlib import Path
from typing import Dict

from prometheus_client import CollectorRegistry, Histogram, write_to_textfile
from prometheus_client import Counter as PromCounter

# Dedicated registry: a CLI run exports only orchestrator metrics.
REGISTRY = CollectorRegistry()

# In-process counters (snapshot for logs/tests)
_STEPS = Counter()

_PROM_STEPS = PromCounter(
    "orchestrator_steps_total",
    "External commands run by the orchestrator",
    ["lifecycle", "package", "outcome"],
    registry=REGISTRY,
)

_PROM_STEP_SECONDS = Histogram(
    "orchestrator_step_duration_seconds",
    "Wall time of one external command",
    ["lifecycle", "package"],
    registry=REGISTRY,
    buckets=(1, 5, 15, 30, 60, 120, 300, 600, 1800, float("inf")),
)

_PROM_SEALS = PromCounter(
    "orchestrator_seals_total",
    "Version seals written",
    registry=REGISTRY,
)


def reset_metrics() -> None:
    """
    Test helper: clears the in-process counters.
    Prometheus collectors are cumulative and are not reset.
    """
    _STEPS.clear()


def observe_step(lifecycle: str, package: str, outcome: str, duration_s: float) -> None:
    _STEPS["steps_total"] += 1
    _STEPS[f"{lifecycle}|{outcome}"] += 1
    _PROM_STEPS.labels(lifecycle=lifecycle, package=package, outcome=outcome).inc()
    _PROM_STEP_SECONDS.labels(lifecycle=lifecycle, package=package).observe(max(0.0, duration_s))


def inc_seal() -> None:
    _STEPS["seals_total"] += 1
    _PROM_SEALS.inc()


def snapshot() -> Dict[str, int]:
    return dict(_STEPS)


def write_metrics(path: Path) -> None:
    """Write all orchestrator metrics in the node-exporter textfile format."""
    path.parent.mkdir(parents=True, exist_ok=True)
    write_to_textfile(str(path), REGISTRY)
