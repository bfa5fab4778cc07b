"""Loading of the optional ``fxbuild`` configuration file."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Sequence
import json
import tomllib

import yaml

from .errors import ConfigurationError
from .targets import DEFAULT_TARGETS, TargetDescriptor, apply_overrides, validate_targets


ConfigLoader = Callable[[Any], Mapping[str, Any]]

CONFIG_STEM = "fxbuild"

FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream),
    ".yml": lambda stream: yaml.safe_load(stream),
}
"""Mapping of file suffixes to loader callables."""


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS))
        raise ConfigurationError(f"Unsupported configuration file extension: {suffix}. Supported: {supported}")

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    try:
        with path.open(mode, **kwargs) as handle:
            data = loader(handle)
    except (tomllib.TOMLDecodeError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Could not parse '{path}': {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Configuration file '{path}' must contain a mapping at the root")
    return data


def find_config_file(root: Path) -> Path | None:
    """Return the single ``fxbuild.*`` file in ``root``, if any."""

    found: List[Path] = []
    for suffix in FILE_LOADERS:
        candidate = root / f"{CONFIG_STEM}{suffix}"
        if candidate.is_file():
            found.append(candidate)
    if len(found) > 1:
        names = ", ".join(path.name for path in found)
        raise ConfigurationError(
            f"Multiple configuration files found: {names}. Only one format per configuration entry is allowed."
        )
    return found[0] if found else None


def _normalize_command(value: Any, *, field_name: str) -> List[str]:
    if isinstance(value, str):
        parts = value.split()
    elif isinstance(value, Sequence):
        parts = []
        for item in value:
            if not isinstance(item, str):
                raise ConfigurationError(f"{field_name} entries must be strings")
            parts.append(item)
    else:
        raise ConfigurationError(f"{field_name} must be a string or sequence of strings")
    if not parts:
        raise ConfigurationError(f"{field_name} cannot be empty")
    return parts


@dataclass(slots=True)
class GlobalConfig:
    out_dir: str = "dist"
    log_level: str = "info"
    node: str = "node"
    obfuscator: List[str] = field(default_factory=lambda: ["npx", "javascript-obfuscator"])

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GlobalConfig":
        section = data.get("global", {})
        if not isinstance(section, Mapping):
            raise ConfigurationError("[global] must be a table")
        config = cls()
        if section.get("out_dir"):
            config.out_dir = str(section["out_dir"])
        if section.get("log_level"):
            config.log_level = str(section["log_level"]).lower()
        if section.get("node"):
            config.node = str(section["node"])
        if section.get("obfuscator") is not None:
            config.obfuscator = _normalize_command(section["obfuscator"], field_name="global.obfuscator")
        return config


@dataclass(slots=True)
class BuildConfiguration:
    root: Path
    global_config: GlobalConfig
    targets: List[TargetDescriptor]
    source: Path | None = None

    @classmethod
    def from_mapping(cls, root: Path, data: Mapping[str, Any], *, source: Path | None = None) -> "BuildConfiguration":
        global_config = GlobalConfig.from_mapping(data)
        overrides = data.get("targets", {})
        if not isinstance(overrides, Mapping) or not all(isinstance(value, Mapping) for value in overrides.values()):
            raise ConfigurationError("[targets] must contain one table per target name")
        try:
            targets = apply_overrides(DEFAULT_TARGETS, overrides)
            validate_targets(targets)
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(str(exc)) from exc
        return cls(root=root, global_config=global_config, targets=targets, source=source)

    @classmethod
    def load(cls, root: Path, path: Path | None = None) -> "BuildConfiguration":
        """Load ``path`` (or the ``fxbuild.*`` file in ``root``); defaults when absent."""

        if path is not None and not path.is_absolute():
            path = root / path
        if path is not None and not path.is_file():
            raise ConfigurationError(f"Configuration file not found: {path}")
        if path is None:
            path = find_config_file(root)
        data = load_config_file(path) if path is not None else {}
        return cls.from_mapping(root, data, source=path)

    @property
    def out_dir(self) -> Path:
        out_dir = Path(self.global_config.out_dir)
        return out_dir if out_dir.is_absolute() else self.root / out_dir
