"""Bundling engine adapter.

esbuild runs inside a small Node bridge script. The bridge and this module
exchange one JSON object per line over the bridge's stdin/stdout, which lets a
Python :class:`~fxbuild.resolution.ResolutionPolicy` answer the resolve and
load hooks the bundler raises.
"""
from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Callable, Dict, List, Mapping, Tuple
import json
import subprocess
import threading

from .command_runner import CommandRunner
from .console import Console
from .errors import EngineError, ResolutionError
from .resolution import ResolutionPolicy, ResolveRequest


BRIDGE_SCRIPT = Path(__file__).resolve().parent / "bridge" / "esbuild-bridge.js"
FINISH_TIMEOUT = 10.0


@dataclass(frozen=True, slots=True)
class EngineOptions:
    """Effective bundler options for a single target."""

    entry_points: Tuple[str, ...]
    platform: str
    format: str
    target: Tuple[str, ...]
    outdir: str
    minify: bool
    sourcemap: bool
    tree_shaking: bool | None = None
    bundle: bool = True
    metafile: bool = True
    asset_names: str = "[name].[ext]"
    define: Tuple[Tuple[str, str], ...] = ()
    watch: bool = False

    def to_esbuild(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "entryPoints": list(self.entry_points),
            "platform": self.platform,
            "format": self.format,
            "target": list(self.target),
            "outdir": self.outdir,
            "bundle": self.bundle,
            "minify": self.minify,
            "sourcemap": self.sourcemap,
            "metafile": self.metafile,
            "assetNames": self.asset_names,
        }
        if self.tree_shaking is not None:
            options["treeShaking"] = self.tree_shaking
        if self.define:
            options["define"] = dict(self.define)
        return options


@dataclass(slots=True)
class BuildOutcome:
    metafile: Dict[str, Any]
    emitted_files: Tuple[str, ...]
    warnings: List[Any] = field(default_factory=list)


@dataclass(slots=True)
class RebuildEvent:
    errors: List[Any] = field(default_factory=list)
    warnings: List[Any] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors


RebuildCallback = Callable[[RebuildEvent], None]


class BundlingEngine:
    """Abstract bundling engine interface."""

    def build(
        self,
        options: EngineOptions,
        *,
        label: str,
        policy: ResolutionPolicy | None = None,
        on_rebuild: RebuildCallback | None = None,
    ) -> BuildOutcome:
        raise NotImplementedError

    def wait(self) -> None:
        """Block while watch sessions are active."""

    def close(self) -> None:
        """Stop any watch sessions."""


def _format_messages(messages: List[Any]) -> str:
    lines: List[str] = []
    for message in messages:
        if not isinstance(message, Mapping):
            lines.append(str(message))
            continue
        text = str(message.get("text", ""))
        location = message.get("location") or {}
        if location.get("file"):
            text = f"{location['file']}:{location.get('line', 0)}:{location.get('column', 0)}: {text}"
        lines.append(text)
    return "\n".join(lines)


class BridgeSession:
    """One conversation with the bridge process for one target."""

    def __init__(
        self,
        reader: IO[str],
        writer: IO[str],
        *,
        label: str,
        console: Console,
        policy: ResolutionPolicy | None = None,
        on_rebuild: RebuildCallback | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._label = label
        self._console = console
        self._policy = policy
        self._on_rebuild = on_rebuild
        self._write_lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self.reported_error = False

    def send(self, message: Mapping[str, Any]) -> None:
        with self._write_lock:
            self._writer.write(json.dumps(message) + "\n")
            self._writer.flush()

    def read(self) -> Dict[str, Any] | None:
        line = self._reader.readline()
        if not line:
            return None
        try:
            message = json.loads(line)
        except json.JSONDecodeError as exc:
            raise EngineError(f"Malformed message from bundling engine: {line.strip()!r}") from exc
        if not isinstance(message, dict) or "type" not in message:
            raise EngineError(f"Malformed message from bundling engine: {line.strip()!r}")
        return message

    def start(self, options: EngineOptions) -> BuildOutcome:
        self.send(
            {
                "type": "build",
                "options": options.to_esbuild(),
                "plugin": self._policy.hook_filters() if self._policy else None,
                "watch": options.watch,
            }
        )
        while True:
            message = self.read()
            if message is None:
                raise EngineError("Bundling engine exited before reporting a result")
            outcome = self.handle(message)
            if outcome is not None:
                return outcome

    def handle(self, message: Mapping[str, Any]) -> BuildOutcome | None:
        kind = message["type"]
        if kind == "resolve":
            self._answer_resolve(message)
        elif kind == "load":
            self._answer_load(message)
        elif kind == "rebuild":
            event = RebuildEvent(errors=list(message.get("errors") or []), warnings=list(message.get("warnings") or []))
            if self._on_rebuild is not None:
                self._on_rebuild(event)
        elif kind == "result":
            metafile = message.get("metafile") or {}
            emitted = message.get("outputFiles")
            if emitted is None:
                emitted = list((metafile.get("outputs") or {}).keys())
            return BuildOutcome(
                metafile=metafile,
                emitted_files=tuple(str(path) for path in emitted),
                warnings=list(message.get("warnings") or []),
            )
        elif kind == "error":
            self.reported_error = True
            errors = list(message.get("errors") or [])
            details = _format_messages(errors)
            text = str(message.get("message") or "Build failed")
            raise EngineError(f"{text}\n{details}" if details else text, errors)
        else:
            self._console.debug(f"[{self._label}]: Ignoring bridge message of type '{kind}'")
        return None

    def _answer_resolve(self, message: Mapping[str, Any]) -> None:
        reply: Dict[str, Any] = {"type": "resolved", "id": message.get("id"), "result": None}
        if self._policy is not None:
            request = ResolveRequest.from_message(dict(message))
            try:
                decision = self._policy.resolve(request)
            except ResolutionError as exc:
                reply["error"] = str(exc)
            else:
                reply["result"] = decision.to_hook_result()
                self._console.debug(f"[{self._label}]: {request.path} -> {decision.kind.value}")
        self.send(reply)

    def _answer_load(self, message: Mapping[str, Any]) -> None:
        result = None
        if self._policy is not None:
            result = self._policy.load(str(message.get("namespace", "")), str(message.get("path", "")))
        self.send({"type": "loaded", "id": message.get("id"), "result": result})

    def listen(self) -> None:
        """Keep answering hooks and dispatching rebuilds until the bridge exits."""
        while True:
            try:
                message = self.read()
                if message is None:
                    return
                self.handle(message)
            except EngineError as exc:
                self._console.error(f"[{self._label}]: Watch session error: {exc}")
            except (OSError, ValueError) as exc:
                self._console.error(f"[{self._label}]: Watch session closed: {exc}")
                return

    def listen_in_background(self) -> None:
        self._thread = threading.Thread(target=self.listen, name=f"fxbuild-watch-{self._label}", daemon=True)
        self._thread.start()

    def join(self) -> None:
        if self._thread is not None:
            self._thread.join()


class EsbuildBridgeEngine(BundlingEngine):
    """Runs esbuild through ``node`` and the bundled bridge script."""

    def __init__(
        self,
        runner: CommandRunner,
        console: Console,
        *,
        cwd: Path,
        node: str = "node",
        bridge: Path = BRIDGE_SCRIPT,
    ) -> None:
        self._runner = runner
        self._console = console
        self._cwd = cwd
        self._node = node
        self._bridge = bridge
        self._watchers: List[Tuple[Any, BridgeSession]] = []

    def build(
        self,
        options: EngineOptions,
        *,
        label: str,
        policy: ResolutionPolicy | None = None,
        on_rebuild: RebuildCallback | None = None,
    ) -> BuildOutcome:
        command = [self._node, str(self._bridge)]
        self._console.debug(f"[{label}]: Starting {self._runner.format_command(command)}")
        process = self._runner.spawn(command, cwd=self._cwd)
        session = BridgeSession(
            process.stdout,
            process.stdin,
            label=label,
            console=self._console,
            policy=policy,
            on_rebuild=on_rebuild,
        )
        try:
            outcome = session.start(options)
        except EngineError as exc:
            self._finish(process)
            if not session.reported_error and process.returncode not in (None, 0):
                raise EngineError(f"{exc} (exit code {process.returncode})", exc.errors) from exc
            raise
        except BaseException:
            self._stop(process)
            raise

        if options.watch:
            session.listen_in_background()
            self._watchers.append((process, session))
        else:
            self._finish(process)
        return outcome

    def wait(self) -> None:
        for _, session in self._watchers:
            session.join()

    def close(self) -> None:
        for process, _ in self._watchers:
            self._stop(process)
        self._watchers.clear()

    @staticmethod
    def _finish(process: Any, timeout: float = FINISH_TIMEOUT) -> None:
        """Close the bridge's stdin and let it exit on its own."""
        with suppress(BrokenPipeError):
            process.stdin.close()
        try:
            process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            EsbuildBridgeEngine._stop(process)

    @staticmethod
    def _stop(process: Any) -> None:
        if process.poll() is None:
            process.terminate()
        process.wait()
