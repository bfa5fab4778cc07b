"""Multi-target bundle orchestrator with a production hardening pass."""
from __future__ import annotations

from .build import BuildDriver, TargetResult
from .targets import DEFAULT_TARGETS, ModeFlags, TargetDescriptor
from .cli import main

__all__ = ["BuildDriver", "DEFAULT_TARGETS", "ModeFlags", "TargetDescriptor", "TargetResult", "main"]
