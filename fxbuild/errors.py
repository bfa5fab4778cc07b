"""Exception types raised across the build pipeline."""
from __future__ import annotations

from typing import Any, List, Mapping, Sequence


class ConfigurationError(ValueError):
    """Raised when the build configuration file is invalid."""


class EngineError(RuntimeError):
    """Raised when the bundling engine rejects a build."""

    def __init__(self, message: str, errors: Sequence[Mapping[str, Any]] | None = None):
        super().__init__(message)
        self.errors: List[Mapping[str, Any]] = list(errors or [])


class ResolutionError(LookupError):
    """Raised when an externalized import cannot be located."""


class HardeningError(RuntimeError):
    """Raised when the hardening engine fails to transform a file."""


class HardeningWalkError(OSError):
    """Raised when an output directory cannot be walked.

    ``results`` holds the per-file results gathered before the failure; those
    files have already been rewritten.
    """

    def __init__(self, message: str, results: Sequence[Any] = ()):
        super().__init__(message)
        self.results: List[Any] = list(results)
