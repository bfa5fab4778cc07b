"""Module-resolution policy applied to the server bundle.

The bundling engine asks the policy about every import it sees. The policy
answers with one of four decisions:

* ``STUBBED`` for the host runtime namespace, whose API is injected as
  globals by the game engine and must never be bundled or resolved.
* ``EXTERNAL_ABSOLUTE`` for ``@/``-prefixed project-root imports, rewritten
  to an absolute path under the working directory.
* ``EXTERNAL_PACKAGE`` for installed packages, rewritten to
  ``<cwd>/node_modules/<specifier>`` so the runtime loader re-resolves them.
* ``INTERNAL`` for aliased namespaces and non-static references, which are
  bundled normally.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Pattern
import json
import re

from .errors import ResolutionError


STATIC_IMPORT = "import-statement"

# require('module').builtinModules of current Node releases
NODE_BUILTINS = frozenset(
    {
        "_http_agent", "_http_client", "_http_common", "_http_incoming",
        "_http_outgoing", "_http_server", "_stream_duplex", "_stream_passthrough",
        "_stream_readable", "_stream_transform", "_stream_wrap", "_stream_writable",
        "_tls_common", "_tls_wrap", "assert", "assert/strict", "async_hooks",
        "buffer", "child_process", "cluster", "console", "constants", "crypto",
        "dgram", "diagnostics_channel", "dns", "dns/promises", "domain", "events",
        "fs", "fs/promises", "http", "http2", "https", "inspector",
        "inspector/promises", "module", "net", "os", "path", "path/posix",
        "path/win32", "perf_hooks", "process", "punycode", "querystring",
        "readline", "readline/promises", "repl", "stream", "stream/consumers",
        "stream/promises", "stream/web", "string_decoder", "sys", "timers",
        "timers/promises", "tls", "trace_events", "tty", "url", "util",
        "util/types", "v8", "vm", "wasi", "worker_threads", "zlib",
    }
)

RESOLVE_EXTENSIONS = ("", ".js", ".json", ".node")
INDEX_FILES = ("index.js", "index.json", "index.node")


class DecisionKind(str, Enum):
    INTERNAL = "internal"
    EXTERNAL_ABSOLUTE = "external-absolute"
    EXTERNAL_PACKAGE = "external-package"
    STUBBED = "stubbed"


@dataclass(frozen=True, slots=True)
class ResolveRequest:
    path: str
    kind: str = STATIC_IMPORT
    importer: str = ""
    resolve_dir: str = ""
    located: str | None = None
    lookup_error: str | None = None

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "ResolveRequest":
        return cls(
            path=str(message.get("path", "")),
            kind=str(message.get("kind", "")),
            importer=str(message.get("importer") or ""),
            resolve_dir=str(message.get("resolveDir") or ""),
            located=message.get("located"),
            lookup_error=message.get("lookupError"),
        )


@dataclass(frozen=True, slots=True)
class ResolutionDecision:
    kind: DecisionKind
    path: str | None = None
    namespace: str | None = None

    @property
    def external(self) -> bool:
        return self.kind in {DecisionKind.EXTERNAL_ABSOLUTE, DecisionKind.EXTERNAL_PACKAGE}

    def to_hook_result(self) -> Dict[str, Any] | None:
        """Translate the decision into an esbuild ``onResolve`` return value."""
        if self.kind is DecisionKind.INTERNAL:
            return None
        if self.kind is DecisionKind.STUBBED:
            return {"path": self.path, "namespace": self.namespace}
        return {"path": self.path, "external": True}


INTERNAL = ResolutionDecision(DecisionKind.INTERNAL)


@dataclass(frozen=True, slots=True)
class ResolutionRules:
    host_namespace: Pattern[str] = re.compile(r"@citizenfx")
    internal_namespaces: Pattern[str] = re.compile(r"^@(server|client|common)")
    root_alias: str = "@/"
    stub_namespace: str = "ignore"
    stub_path: str = "."


class NodeModuleLocator:
    """Locate bare package specifiers the way the runtime's loader would.

    Only used when the bundling engine did not attach its own lookup result
    to the request. Package ``exports`` maps are not interpreted.
    """

    def __init__(self, cwd: Path) -> None:
        self._cwd = cwd

    @staticmethod
    def package_name(specifier: str) -> str:
        parts = specifier.split("/")
        if specifier.startswith("@") and len(parts) > 1:
            return "/".join(parts[:2])
        return parts[0]

    def locate(self, specifier: str) -> str:
        """Return the resolved file for installed packages or the bare name for built-ins."""

        if specifier.startswith("node:") or specifier in NODE_BUILTINS:
            return specifier
        package = self.package_name(specifier)
        for directory in (self._cwd, *self._cwd.parents):
            modules = directory / "node_modules"
            if not (modules / package).is_dir():
                continue
            target = modules.joinpath(*specifier.split("/"))
            found = self._load_as_file(target) or self._load_as_directory(target)
            if found is not None:
                return str(found.resolve())
        raise ResolutionError(f"Cannot find module '{specifier}' from '{self._cwd}'")

    @staticmethod
    def _load_as_file(path: Path) -> Path | None:
        for extension in RESOLVE_EXTENSIONS:
            candidate = path.with_name(path.name + extension)
            if candidate.is_file():
                return candidate
        return None

    @staticmethod
    def _load_index(path: Path) -> Path | None:
        for name in INDEX_FILES:
            if (path / name).is_file():
                return path / name
        return None

    def _load_as_directory(self, path: Path) -> Path | None:
        if not path.is_dir():
            return None
        try:
            manifest = json.loads((path / "package.json").read_text(encoding="utf-8"))
        except (OSError, ValueError):
            manifest = {}
        main = manifest.get("main") if isinstance(manifest, dict) else None
        if isinstance(main, str) and main:
            found = self._load_as_file(path / main) or self._load_index(path / main)
            if found is not None:
                return found
        return self._load_index(path)


class ResolutionPolicy:
    """Stateless resolve/load policy; build a fresh one per target."""

    name = "fxbuild-resolution"

    def __init__(
        self,
        *,
        cwd: Path,
        rules: ResolutionRules | None = None,
        locator: NodeModuleLocator | None = None,
    ) -> None:
        self._cwd = cwd
        self._rules = rules or ResolutionRules()
        self._locator = locator or NodeModuleLocator(cwd)

    @property
    def rules(self) -> ResolutionRules:
        return self._rules

    def resolve(self, request: ResolveRequest) -> ResolutionDecision:
        rules = self._rules
        path = request.path

        if rules.host_namespace.search(path):
            return ResolutionDecision(DecisionKind.STUBBED, path=rules.stub_path, namespace=rules.stub_namespace)

        if rules.internal_namespaces.search(path) or request.kind != STATIC_IMPORT:
            return INTERNAL

        if path.startswith(rules.root_alias):
            remainder = path[len(rules.root_alias):]
            return ResolutionDecision(DecisionKind.EXTERNAL_ABSOLUTE, path=str(self._cwd.joinpath(*remainder.split("/"))))

        # relative and absolute file paths are ordinary project sources
        if path.startswith((".", "/")):
            return INTERNAL

        located = self._locate(request)
        if Path(located).is_absolute():
            return ResolutionDecision(
                DecisionKind.EXTERNAL_PACKAGE,
                path=str(self._cwd.joinpath("node_modules", *path.split("/"))),
            )
        return ResolutionDecision(DecisionKind.EXTERNAL_PACKAGE, path=located)

    def _locate(self, request: ResolveRequest) -> str:
        if request.located is not None:
            return request.located
        if request.lookup_error is not None:
            raise ResolutionError(request.lookup_error)
        return self._locator.locate(request.path)

    def load(self, namespace: str, path: str = "") -> Dict[str, str] | None:
        if namespace == self._rules.stub_namespace:
            return {"contents": ""}
        return None

    def hook_filters(self) -> Dict[str, Any]:
        """Hook registrations the bridge installs on behalf of this policy."""
        return {
            "name": self.name,
            "resolveFilter": ".*",
            "loadNamespace": self._rules.stub_namespace,
        }
