"""Build driver: bundle every target in order, then report and harden."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Sequence

from .console import Console
from .engine import BuildOutcome, BundlingEngine, EngineOptions, RebuildCallback, RebuildEvent
from .errors import EngineError, HardeningWalkError, ResolutionError
from .hardening import HardeningEngine, HardeningPass, HardeningResult
from .report import render_report
from .resolution import ResolutionPolicy
from .targets import ModeFlags, TargetDescriptor


PolicyFactory = Callable[[TargetDescriptor], ResolutionPolicy]


@dataclass(slots=True)
class TargetResult:
    name: str
    outcome: BuildOutcome | None = None
    error: str | None = None
    report: str | None = None
    hardening: List[HardeningResult] = field(default_factory=list)
    hardening_error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is not None and self.error is None

    @property
    def hardening_failures(self) -> List[HardeningResult]:
        return [result for result in self.hardening if not result.succeeded]


class BuildDriver:
    def __init__(
        self,
        *,
        engine: BundlingEngine,
        hardener: HardeningEngine,
        console: Console,
        workspace: Path,
        out_dir: Path | None = None,
        policy_factory: PolicyFactory | None = None,
    ) -> None:
        self._engine = engine
        self._hardener = hardener
        self._console = console
        self._workspace = workspace
        self._out_dir = out_dir or workspace / "dist"
        self._policy_factory = policy_factory or (lambda _target: ResolutionPolicy(cwd=workspace))

    def output_directory(self, target: TargetDescriptor) -> Path:
        return self._out_dir / target.name

    def derive_options(self, target: TargetDescriptor, flags: ModeFlags) -> EngineOptions:
        outdir = self.output_directory(target)
        try:
            outdir_text = outdir.relative_to(self._workspace).as_posix()
        except ValueError:
            outdir_text = str(outdir)
        return EngineOptions(
            entry_points=(target.entry_module,),
            platform=target.platform.value,
            format=target.output_format.value,
            target=tuple(target.runtime_baseline),
            outdir=outdir_text,
            minify=flags.production and not target.suppress_minify,
            # with minification off, unused exports still have to survive
            tree_shaking=False if target.suppress_minify else None,
            sourcemap=not flags.production,
            define=target.define,
            watch=flags.watch,
        )

    def run(self, targets: Sequence[TargetDescriptor], flags: ModeFlags) -> List[TargetResult]:
        results: List[TargetResult] = []
        for target in targets:
            results.append(self._run_target(target, flags))
        return results

    def wait(self) -> None:
        self._engine.wait()

    def close(self) -> None:
        self._engine.close()

    def _run_target(self, target: TargetDescriptor, flags: ModeFlags) -> TargetResult:
        result = TargetResult(name=target.name)
        options = self.derive_options(target, flags)
        policy = self._policy_factory(target) if target.resolution_policy else None
        on_rebuild = self._rebuild_logger(target.name) if flags.watch else None

        self._console.info(f"[{target.name}]: Building {target.entry_module} ({options.platform}, {options.format})")
        try:
            outcome = self._engine.build(options, label=target.name, policy=policy, on_rebuild=on_rebuild)
        except (EngineError, ResolutionError, OSError) as exc:
            self._console.error(f"[{target.name}]: Build failed: {exc}")
            result.error = str(exc)
            return result

        result.outcome = outcome
        self._console.info(f"[{target.name}]: Build succeeded ({len(outcome.emitted_files)} file(s))")

        if not flags.production:
            return result

        result.report = self._render_report(target, outcome)
        if not target.harden:
            self._console.info(f"[{target.name}]: Hardening skipped")
            return result

        hardening = HardeningPass(
            engine=self._hardener,
            console=self._console,
            label=target.name,
            root=self._workspace,
        )
        try:
            result.hardening = hardening.run(self.output_directory(target))
        except HardeningWalkError as exc:
            self._console.error(f"[{target.name}]: Obfuscation failed: {exc}")
            result.hardening = exc.results
            result.hardening_error = str(exc)
        return result

    def _render_report(self, target: TargetDescriptor, outcome: BuildOutcome) -> str | None:
        try:
            report = render_report(outcome.metafile)
        except (TypeError, ValueError, AttributeError) as exc:
            self._console.error(f"[{target.name}]: Could not analyze metafile: {exc}")
            return None
        self._console.report(report)
        return report

    def _rebuild_logger(self, name: str) -> RebuildCallback:
        def on_rebuild(event: RebuildEvent) -> None:
            if event.succeeded:
                self._console.info(f"[{name}]: Rebuild succeeded, warnings: {len(event.warnings)}")
            else:
                self._console.error(f"[{name}]: Rebuild failed: {event.errors}")

        return on_rebuild
