"""Workspace build orchestrator.

Plans and runs package builds for a multi-package workspace, fans variant
flags out to every build step and seals reproducible builds.
"""

__version__ = "0.1.0"
