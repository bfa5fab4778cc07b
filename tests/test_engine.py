from __future__ import annotations

from pathlib import Path
import io
import json
import subprocess
import tempfile
import unittest
from unittest.mock import MagicMock

from fxbuild.console import Console
from fxbuild.engine import BridgeSession, EngineOptions, EsbuildBridgeEngine, RebuildEvent
from fxbuild.errors import EngineError
from fxbuild.resolution import ResolutionPolicy


def _lines(*messages: dict) -> io.StringIO:
    return io.StringIO("".join(json.dumps(message) + "\n" for message in messages))


def _sent(writer: io.StringIO) -> list[dict]:
    return [json.loads(line) for line in writer.getvalue().splitlines()]


OPTIONS = EngineOptions(
    entry_points=("./src/server/index.ts",),
    platform="node",
    format="cjs",
    target=("node16",),
    outdir="dist/server",
    minify=False,
    sourcemap=True,
)

RESULT = {
    "type": "result",
    "metafile": {"outputs": {"dist/server/index.js": {"bytes": 10, "inputs": {}}}},
    "outputFiles": ["dist/server/index.js"],
    "warnings": [],
}


class BridgeSessionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.cwd = Path(self.temp_dir.name)
        (self.cwd / "node_modules" / "lodash").mkdir(parents=True)
        (self.cwd / "node_modules" / "lodash" / "index.js").write_text("module.exports = {};\n")
        self.policy = ResolutionPolicy(cwd=self.cwd)
        self.console = MagicMock(spec=Console)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_start_sends_build_request_and_returns_outcome(self) -> None:
        writer = io.StringIO()
        session = BridgeSession(_lines(RESULT), writer, label="server", console=self.console, policy=self.policy)

        outcome = session.start(OPTIONS)

        self.assertEqual(outcome.emitted_files, ("dist/server/index.js",))
        request = _sent(writer)[0]
        self.assertEqual(request["type"], "build")
        self.assertEqual(request["options"]["platform"], "node")
        self.assertEqual(request["plugin"]["loadNamespace"], "ignore")
        self.assertFalse(request["watch"])

    def test_resolve_and_load_requests_are_answered_by_policy(self) -> None:
        writer = io.StringIO()
        reader = _lines(
            {"type": "resolve", "id": 1, "path": "@citizenfx/server", "kind": "import-statement"},
            {"type": "load", "id": 2, "path": ".", "namespace": "ignore"},
            {"type": "resolve", "id": 3, "path": "lodash", "kind": "import-statement"},
            {"type": "resolve", "id": 4, "path": "@common/tag", "kind": "import-statement"},
            {"type": "resolve", "id": 5, "path": "missing-pkg", "kind": "import-statement"},
            RESULT,
        )
        session = BridgeSession(reader, writer, label="server", console=self.console, policy=self.policy)
        session.start(OPTIONS)

        replies = {message["id"]: message for message in _sent(writer)[1:]}
        self.assertEqual(replies[1], {"type": "resolved", "id": 1, "result": {"path": ".", "namespace": "ignore"}})
        self.assertEqual(replies[2], {"type": "loaded", "id": 2, "result": {"contents": ""}})
        self.assertEqual(
            replies[3]["result"],
            {"path": str(self.cwd / "node_modules" / "lodash"), "external": True},
        )
        self.assertIsNone(replies[4]["result"])
        self.assertIn("Cannot find module 'missing-pkg'", replies[5]["error"])

    def test_without_policy_hooks_fall_through(self) -> None:
        writer = io.StringIO()
        reader = _lines({"type": "resolve", "id": 1, "path": "lodash", "kind": "import-statement"}, RESULT)
        session = BridgeSession(reader, writer, label="client", console=self.console)
        session.start(OPTIONS)
        messages = _sent(writer)
        self.assertIsNone(messages[0]["plugin"])
        self.assertEqual(messages[1], {"type": "resolved", "id": 1, "result": None})

    def test_error_message_raises_engine_error_with_locations(self) -> None:
        reader = _lines(
            {
                "type": "error",
                "message": "Build failed with 1 error",
                "errors": [{"text": "Could not resolve \"x\"", "location": {"file": "src/a.ts", "line": 3, "column": 7}}],
            }
        )
        session = BridgeSession(reader, io.StringIO(), label="server", console=self.console)
        with self.assertRaises(EngineError) as ctx:
            session.start(OPTIONS)
        self.assertIn("src/a.ts:3:7: Could not resolve", str(ctx.exception))
        self.assertEqual(len(ctx.exception.errors), 1)

    def test_early_exit_raises_engine_error(self) -> None:
        session = BridgeSession(io.StringIO(""), io.StringIO(), label="server", console=self.console)
        with self.assertRaises(EngineError):
            session.start(OPTIONS)

    def test_malformed_line_raises_engine_error(self) -> None:
        session = BridgeSession(io.StringIO("not json\n"), io.StringIO(), label="server", console=self.console)
        with self.assertRaises(EngineError):
            session.start(OPTIONS)

    def test_listen_dispatches_rebuilds_until_stream_ends(self) -> None:
        events: list[RebuildEvent] = []
        reader = _lines(
            RESULT,
            {"type": "rebuild", "errors": [], "warnings": [{"text": "unused"}]},
            {"type": "resolve", "id": 9, "path": "@citizenfx/client", "kind": "import-statement"},
            {"type": "rebuild", "errors": [{"text": "boom"}], "warnings": []},
        )
        writer = io.StringIO()
        session = BridgeSession(
            reader, writer, label="server", console=self.console, policy=self.policy, on_rebuild=events.append
        )
        session.start(OPTIONS)
        session.listen()

        self.assertEqual([event.succeeded for event in events], [True, False])
        self.assertEqual(_sent(writer)[-1]["id"], 9)


class EsbuildBridgeEngineTests(unittest.TestCase):
    def test_one_shot_build_closes_bridge(self) -> None:
        process = MagicMock()
        process.stdout = _lines(RESULT)
        process.stdin = MagicMock()
        process.returncode = 0
        runner = MagicMock()
        runner.spawn.return_value = process
        runner.format_command.side_effect = " ".join

        engine = EsbuildBridgeEngine(runner, MagicMock(spec=Console), cwd=Path("/project"), node="node18")
        outcome = engine.build(OPTIONS, label="server")

        self.assertEqual(outcome.emitted_files, ("dist/server/index.js",))
        command = runner.spawn.call_args.args[0]
        self.assertEqual(command[0], "node18")
        self.assertTrue(command[1].endswith("esbuild-bridge.js"))
        self.assertEqual(runner.spawn.call_args.kwargs["cwd"], Path("/project"))
        process.stdin.close.assert_called_once()
        process.wait.assert_called_once()

    def test_failed_build_stops_bridge_and_reports_exit_code(self) -> None:
        process = MagicMock()
        process.stdout = io.StringIO("")
        process.poll.return_value = 1
        process.returncode = 1
        runner = MagicMock()
        runner.spawn.return_value = process
        runner.format_command.side_effect = " ".join

        engine = EsbuildBridgeEngine(runner, MagicMock(spec=Console), cwd=Path("/project"))
        with self.assertRaises(EngineError) as ctx:
            engine.build(OPTIONS, label="server")
        self.assertIn("exit code 1", str(ctx.exception))
        process.terminate.assert_not_called()

    def test_reported_error_closes_stdin_without_exit_code(self) -> None:
        process = MagicMock()
        process.stdout = _lines({"type": "error", "message": "Build failed with 1 error", "errors": [{"text": "boom"}]})
        process.returncode = 1
        runner = MagicMock()
        runner.spawn.return_value = process
        runner.format_command.side_effect = " ".join

        engine = EsbuildBridgeEngine(runner, MagicMock(spec=Console), cwd=Path("/project"))
        with self.assertRaises(EngineError) as ctx:
            engine.build(OPTIONS, label="server")
        self.assertEqual(str(ctx.exception), "Build failed with 1 error\nboom")
        process.stdin.close.assert_called_once()
        process.wait.assert_called_once_with(timeout=10.0)
        process.terminate.assert_not_called()

    def test_bridge_that_ignores_stdin_close_is_terminated(self) -> None:
        process = MagicMock()
        process.stdout = _lines({"type": "error", "message": "Build failed", "errors": []})
        process.wait.side_effect = [subprocess.TimeoutExpired("node", 10.0), -15]
        process.poll.return_value = None
        process.returncode = -15
        runner = MagicMock()
        runner.spawn.return_value = process
        runner.format_command.side_effect = " ".join

        engine = EsbuildBridgeEngine(runner, MagicMock(spec=Console), cwd=Path("/project"))
        with self.assertRaises(EngineError) as ctx:
            engine.build(OPTIONS, label="server")
        self.assertNotIn("exit code", str(ctx.exception))
        process.terminate.assert_called_once()


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
