from .base import CommandBackend, CommandResult
from .dry_run import DryRunBackend
from .subprocess_backend import SubprocessBackend

BACKENDS = {
    "subprocess": SubprocessBackend(),
    "dry-run": DryRunBackend(),
}

__all__ = ["BACKENDS", "CommandBackend", "CommandResult", "DryRunBackend", "SubprocessBackend"]
