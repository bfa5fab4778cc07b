"""Post-build hardening of emitted scripts."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Sequence
import tempfile

from .command_runner import CommandError, CommandRunner
from .console import Console
from .errors import HardeningError, HardeningWalkError


SCRIPT_SUFFIX = ".js"


@dataclass(frozen=True, slots=True)
class HardeningProfile:
    compact: bool = True
    control_flow_flattening: bool = True
    control_flow_flattening_threshold: float = 0.75
    dead_code_injection: bool = True
    dead_code_injection_threshold: float = 0.4
    debug_protection: bool = False
    disable_console_output: bool = False
    identifier_names_generator: str = "hexadecimal"
    rename_globals: bool = False
    string_array: bool = True
    string_array_rotate: bool = True
    string_array_encoding: tuple[str, ...] = ("rc4",)
    string_array_threshold: float = 0.75

    def to_cli_args(self) -> List[str]:
        def flag(value: bool) -> str:
            return "true" if value else "false"

        return [
            "--compact", flag(self.compact),
            "--control-flow-flattening", flag(self.control_flow_flattening),
            "--control-flow-flattening-threshold", str(self.control_flow_flattening_threshold),
            "--dead-code-injection", flag(self.dead_code_injection),
            "--dead-code-injection-threshold", str(self.dead_code_injection_threshold),
            "--debug-protection", flag(self.debug_protection),
            "--disable-console-output", flag(self.disable_console_output),
            "--identifier-names-generator", self.identifier_names_generator,
            "--rename-globals", flag(self.rename_globals),
            "--string-array", flag(self.string_array),
            "--string-array-rotate", flag(self.string_array_rotate),
            "--string-array-encoding", ",".join(self.string_array_encoding),
            "--string-array-threshold", str(self.string_array_threshold),
        ]


DEFAULT_PROFILE = HardeningProfile()


class HardeningEngine:
    """Abstract hardening engine interface."""

    def obfuscate(self, source: str, profile: HardeningProfile) -> str:
        raise NotImplementedError


class JavascriptObfuscatorEngine(HardeningEngine):
    """Runs the ``javascript-obfuscator`` command line tool on a temporary copy."""

    def __init__(self, runner: CommandRunner, *, command: Sequence[str] = ("npx", "javascript-obfuscator")) -> None:
        self._runner = runner
        self._command = list(command)

    def obfuscate(self, source: str, profile: HardeningProfile) -> str:
        with tempfile.TemporaryDirectory(prefix="fxbuild-harden-") as temp_dir:
            input_path = Path(temp_dir) / "input.js"
            output_path = Path(temp_dir) / "output.js"
            input_path.write_text(source, encoding="utf-8")
            command = [*self._command, str(input_path), "--output", str(output_path), *profile.to_cli_args()]
            try:
                self._runner.run(command)
            except (CommandError, OSError) as exc:
                raise HardeningError(str(exc)) from exc
            if not output_path.is_file():
                raise HardeningError(f"Obfuscator produced no output for {input_path.name}")
            return output_path.read_text(encoding="utf-8")


@dataclass(slots=True)
class HardeningResult:
    path: Path
    succeeded: bool
    error: str | None = None


@dataclass(slots=True)
class HardeningPass:
    """Walk one target's output directory and harden every script in place."""

    engine: HardeningEngine
    console: Console
    label: str
    profile: HardeningProfile = DEFAULT_PROFILE
    root: Path = field(default_factory=Path.cwd)

    def run(self, directory: Path) -> List[HardeningResult]:
        """Harden ``directory`` depth-first.

        Raises :class:`HardeningWalkError` if ``directory`` or one of its
        subdirectories cannot be listed; failures of individual files are
        returned as unsuccessful results instead.
        """
        results: List[HardeningResult] = []
        try:
            self._walk(directory, results)
        except OSError as exc:
            raise HardeningWalkError(str(exc), results) from exc
        return results

    def _walk(self, directory: Path, results: List[HardeningResult]) -> None:
        for entry in sorted(directory.iterdir(), key=lambda item: item.name):
            if entry.is_dir():
                self._walk(entry, results)
                continue
            if not entry.is_file():
                continue
            if entry.name.endswith(SCRIPT_SUFFIX):
                results.append(self._harden_file(entry))

    def _harden_file(self, path: Path) -> HardeningResult:
        try:
            source = path.read_text(encoding="utf-8")
            hardened = self.engine.obfuscate(source, self.profile)
            path.write_text(hardened, encoding="utf-8")
        except (HardeningError, OSError, UnicodeError) as exc:
            self.console.error(f"[{self.label}]: Failed to obfuscate {path}: {exc}")
            return HardeningResult(path=path, succeeded=False, error=str(exc))
        self.console.info(f"[{self.label}]: Obfuscated {self._display_path(path)}")
        return HardeningResult(path=path, succeeded=True)

    def _display_path(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return str(path)
