"""Command line interface for the fxbuild orchestrator."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from .build import BuildDriver
from .command_runner import SubprocessCommandRunner
from .config_loader import BuildConfiguration
from .console import Console
from .engine import EsbuildBridgeEngine
from .errors import ConfigurationError
from .hardening import JavascriptObfuscatorEngine
from .targets import ModeFlags


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(
        prog="fxbuild",
        description="Build the client, server and shared bundles",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--mode",
        choices=["development", "production"],
        default="development",
        help="production enables minification, the build report and hardening",
    )
    parser.add_argument("--watch", action="store_true", help="Keep rebuilding targets on source changes")
    parser.add_argument("--config", help="Configuration file (defaults to fxbuild.toml/json/yaml in the workspace)")
    parser.add_argument("--log-level", choices=list(Console.LEVELS), help="Override the configured log level")
    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    arguments = list(sys.argv[1:] if argv is None else argv)
    args = _parse_arguments(arguments)
    workspace = Path.cwd()
    flags = ModeFlags.from_argv(arguments)

    try:
        config = BuildConfiguration.load(workspace, Path(args.config) if args.config else None)
        console = Console(args.log_level or config.global_config.log_level)
    except (ConfigurationError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    runner = SubprocessCommandRunner()
    driver = BuildDriver(
        engine=EsbuildBridgeEngine(runner, console, cwd=workspace, node=config.global_config.node),
        hardener=JavascriptObfuscatorEngine(runner, command=config.global_config.obfuscator),
        console=console,
        workspace=workspace,
        out_dir=config.out_dir,
    )

    results = driver.run(config.targets, flags)
    failed = [result.name for result in results if not result.succeeded]
    if failed:
        # partial failures are reported but do not change the exit status
        console.error(f"Failed target(s): {', '.join(failed)}")

    if flags.watch:
        console.info("Watching for changes...")
        try:
            driver.wait()
        except KeyboardInterrupt:
            pass
        finally:
            driver.close()
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
