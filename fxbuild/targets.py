"""Build target descriptors and process-wide mode flags."""
from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, List, Mapping, Sequence, Tuple


class Platform(str, Enum):
    BROWSER = "browser"
    SERVER_RUNTIME = "node"
    NEUTRAL = "neutral"


class OutputFormat(str, Enum):
    IIFE = "iife"
    COMMON_MODULE = "cjs"


@dataclass(frozen=True, slots=True)
class ModeFlags:
    """Invocation flags resolved once before any target is processed."""

    production: bool = False
    watch: bool = False

    @classmethod
    def from_argv(cls, argv: Sequence[str]) -> "ModeFlags":
        """Read `--mode=production` (or `--mode production`) and `--watch` from ``argv``."""
        production = False
        watch = False
        arguments = list(argv)
        for index, argument in enumerate(arguments):
            if argument == "--watch":
                watch = True
            elif argument.startswith("--mode="):
                production = argument.partition("=")[2] == "production"
            elif argument == "--mode" and index + 1 < len(arguments):
                production = arguments[index + 1] == "production"
        return cls(production=production, watch=watch)


@dataclass(frozen=True, slots=True)
class TargetDescriptor:
    name: str
    platform: Platform
    entry_module: str
    output_format: OutputFormat
    runtime_baseline: Tuple[str, ...]
    suppress_minify: bool = False
    suppress_harden: bool | None = None
    resolution_policy: bool = False
    define: Tuple[Tuple[str, str], ...] = ()

    @property
    def harden(self) -> bool:
        """Whether production builds of this target go through the hardening pass."""
        if self.suppress_harden is None:
            return not self.suppress_minify
        return not self.suppress_harden

    def with_overrides(self, overrides: Mapping[str, Any]) -> "TargetDescriptor":
        changes: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key == "entry_module":
                changes[key] = str(value)
            elif key == "runtime_baseline":
                changes[key] = tuple(_normalize_baseline(value))
            elif key in {"suppress_minify", "suppress_harden"}:
                if not isinstance(value, bool):
                    raise TypeError(f"targets.{self.name}.{key} must be a boolean")
                changes[key] = value
            elif key == "define":
                if not isinstance(value, Mapping):
                    raise TypeError(f"targets.{self.name}.define must be a table")
                changes[key] = tuple((str(k), str(v)) for k, v in value.items())
            else:
                raise ValueError(f"targets.{self.name}.{key} cannot be overridden")
        return replace(self, **changes)


def _normalize_baseline(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, Sequence):
        result: List[str] = []
        for item in value:
            if not isinstance(item, str):
                raise TypeError("runtime_baseline entries must be strings")
            if item.strip():
                result.append(item.strip())
        return result
    raise TypeError("runtime_baseline must be a string or sequence of strings")


DEFAULT_TARGETS: Tuple[TargetDescriptor, ...] = (
    TargetDescriptor(
        name="client",
        platform=Platform.BROWSER,
        entry_module="./src/client/index.ts",
        output_format=OutputFormat.IIFE,
        runtime_baseline=("chrome93",),
    ),
    TargetDescriptor(
        name="server",
        platform=Platform.SERVER_RUNTIME,
        entry_module="./src/server/index.ts",
        output_format=OutputFormat.COMMON_MODULE,
        runtime_baseline=("node16",),
        resolution_policy=True,
        define=(("require", "requireTo"),),
    ),
    TargetDescriptor(
        name="shared",
        platform=Platform.NEUTRAL,
        entry_module="./src/shared/index.ts",
        output_format=OutputFormat.COMMON_MODULE,
        runtime_baseline=("es2020",),
        suppress_minify=True,
    ),
)


def validate_targets(targets: Sequence[TargetDescriptor]) -> None:
    seen: set[str] = set()
    for target in targets:
        if not target.name:
            raise ValueError("Target names cannot be empty")
        if target.name in seen:
            raise ValueError(f"Duplicate target name: {target.name}")
        if not target.entry_module:
            raise ValueError(f"Target '{target.name}' has no entry module")
        seen.add(target.name)


def apply_overrides(
    targets: Sequence[TargetDescriptor],
    overrides: Mapping[str, Mapping[str, Any]],
) -> List[TargetDescriptor]:
    """Return ``targets`` with per-name field overrides applied, keeping order."""

    known = {target.name for target in targets}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise ValueError(
            f"Unknown target(s) in configuration: {', '.join(unknown)}. Available: {', '.join(sorted(known))}"
        )
    return [target.with_overrides(overrides.get(target.name, {})) for target in targets]
