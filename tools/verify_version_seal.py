from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

# ---- sys.path bootstrap (run from a checkout without installing) ----
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
# ---------------------------------------------------------------------

from orchestrator.core.release.version_seal import read_source_state, verify_seal  # noqa: E402
from orchestrator.core.variants.config import resolve  # noqa: E402


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Verify a version seal against the current checkout")
    ap.add_argument("seal", nargs="?", default="version_seal.json", help="Seal path (default version_seal.json)")
    ap.add_argument("--workspace", type=Path, default=Path("."), help="Checkout to compare against")
    ap.add_argument("--check-variant", action="store_true", help="Also require the seal's variant to match the environment")
    args = ap.parse_args(argv)

    workspace = args.workspace.resolve()
    seal_path = Path(args.seal)
    if not seal_path.is_absolute():
        seal_path = workspace / seal_path

    env = dict(os.environ)
    report = verify_seal(
        seal_path,
        config=resolve({**env, "ENABLE_VERSION_SEAL": "true"}) if args.check_variant else None,
        source=read_source_state(workspace, env),
        signing_key=(env.get("ORCHESTRATOR_SIGNING_KEY") or "").strip() or None,
    )
    print(json.dumps(report, indent=2))

    if "error" in report:
        print(f"ERROR: {report['error']}", file=sys.stderr)
        return 2
    if not report["ok"]:
        print("ERROR: version seal does not match this checkout", file=sys.stderr)
        return 1
    print("OK: version seal matches")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
