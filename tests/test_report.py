from __future__ import annotations

import unittest

from fxbuild.report import format_size, render_report


METAFILE = {
    "inputs": {
        "src/server/index.ts": {"bytes": 300, "imports": [{"path": "src/common/index.ts"}]},
        "src/common/index.ts": {"bytes": 100, "imports": [{"path": "src/common/tag.ts"}]},
        "src/common/tag.ts": {"bytes": 40, "imports": []},
    },
    "outputs": {
        "dist/server/index.js.map": {"bytes": 5000, "inputs": {}},
        "dist/server/index.js": {
            "bytes": 2048,
            "inputs": {
                "src/common/tag.ts": {"bytesInOutput": 48},
                "src/server/index.ts": {"bytesInOutput": 1536},
                "src/common/index.ts": {"bytesInOutput": 464},
            },
        },
    },
}


class ReportTests(unittest.TestCase):
    def test_format_size_units(self) -> None:
        self.assertEqual(format_size(512), "512b")
        self.assertEqual(format_size(2048), "2.0kb")
        self.assertEqual(format_size(3 * 1024 * 1024), "3.0mb")

    def test_outputs_sorted_by_size_with_input_shares(self) -> None:
        report = render_report(METAFILE, verbose=False)
        lines = [line for line in report.splitlines() if line.strip()]

        self.assertTrue(lines[0].strip().startswith("dist/server/index.js.map"))
        self.assertIn("dist/server/index.js ", lines[1])
        self.assertIn("2.0kb", lines[1])
        self.assertIn("├ src/server/index.ts", lines[2])
        self.assertIn("75.0%", lines[2])
        self.assertIn("├ src/common/index.ts", lines[3])
        self.assertIn("22.7%", lines[3])
        self.assertIn("└ src/common/tag.ts", lines[4])
        self.assertIn("2.3%", lines[4])

    def test_verbose_report_lists_import_chain(self) -> None:
        report = render_report(METAFILE)
        lines = report.splitlines()
        index = next(i for i, line in enumerate(lines) if "└ src/common/tag.ts" in line)
        self.assertIn("└ src/common/index.ts", lines[index + 1])
        self.assertIn("└ src/server/index.ts", lines[index + 2])

    def test_empty_metafile_renders_nothing(self) -> None:
        self.assertEqual(render_report({}), "")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
