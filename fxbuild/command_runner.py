"""Utilities for running the external engines (node, obfuscator) as processes."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
import shlex
import subprocess


@dataclass
class CommandResult:
    """Represents the outcome of an executed command."""

    command: Sequence[str]
    returncode: int
    stdout: str
    stderr: str


class CommandError(RuntimeError):
    """Raised when a command exits with a non-zero status."""

    def __init__(self, result: CommandResult):
        message = f"Command failed with exit code {result.returncode}: {' '.join(map(shlex.quote, result.command))}"
        stderr = result.stderr.strip()
        if stderr:
            message = f"{message}\nstderr: {stderr}"
        super().__init__(message)
        self.result = result


class CommandRunner:
    """Abstract command runner interface."""

    def run(self, command: Sequence[str], *, cwd: Path | None = None) -> CommandResult:
        """Run ``command`` to completion, raising :class:`CommandError` on a non-zero exit."""
        raise NotImplementedError

    def spawn(self, command: Sequence[str], *, cwd: Path | None = None) -> subprocess.Popen:
        """Start a long-lived process with line-buffered text pipes."""
        raise NotImplementedError

    def format_command(self, command: Sequence[str]) -> str:
        return " ".join(shlex.quote(part) for part in command)


class SubprocessCommandRunner(CommandRunner):
    """Command runner that executes commands via :mod:`subprocess`."""

    def run(self, command: Sequence[str], *, cwd: Path | None = None) -> CommandResult:
        process = subprocess.run(
            list(command),
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            encoding="utf-8",
            check=False,
        )
        result = CommandResult(
            command=command,
            returncode=process.returncode,
            stdout=process.stdout,
            stderr=process.stderr,
        )
        if result.returncode != 0:
            raise CommandError(result)
        return result

    def spawn(self, command: Sequence[str], *, cwd: Path | None = None) -> subprocess.Popen:
        return subprocess.Popen(
            list(command),
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=None,
            text=True,
            encoding="utf-8",
            bufsize=1,
        )
