"""Human-readable size analysis of a bundling metafile."""
from __future__ import annotations

from typing import Any, Dict, List, Mapping, Tuple


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size}b"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}kb"
    return f"{size / (1024 * 1024):.1f}mb"


def _importer_map(metafile: Mapping[str, Any]) -> Dict[str, str]:
    importers: Dict[str, str] = {}
    for path, info in (metafile.get("inputs") or {}).items():
        for entry in info.get("imports") or []:
            target = entry.get("path")
            if target and target not in importers:
                importers[target] = path
    return importers


def _import_chain(path: str, importers: Mapping[str, str]) -> List[str]:
    chain: List[str] = []
    seen = {path}
    current = importers.get(path)
    while current and current not in seen:
        chain.append(current)
        seen.add(current)
        current = importers.get(current)
    return chain


def render_report(metafile: Mapping[str, Any], *, verbose: bool = True) -> str:
    """Render each output file and the inputs contributing to it.

    With ``verbose`` every input line is followed by the chain of modules
    through which it was imported.
    """

    outputs = metafile.get("outputs") or {}
    importers = _importer_map(metafile) if verbose else {}
    rows: List[Tuple[str, str, str, List[str]]] = []

    ordered_outputs = sorted(outputs.items(), key=lambda item: (-int(item[1].get("bytes", 0)), item[0]))
    for output_path, output in ordered_outputs:
        total = int(output.get("bytes", 0))
        rows.append((output_path, format_size(total), "100.0%", []))
        inputs = sorted(
            (output.get("inputs") or {}).items(),
            key=lambda item: (-int(item[1].get("bytesInOutput", 0)), item[0]),
        )
        for index, (input_path, contribution) in enumerate(inputs):
            size = int(contribution.get("bytesInOutput", 0))
            share = (size / total * 100) if total else 0.0
            glyph = "└" if index == len(inputs) - 1 else "├"
            chain = _import_chain(input_path, importers) if verbose else []
            rows.append((f" {glyph} {input_path}", format_size(size), f"{share:.1f}%", chain))

    if not rows:
        return ""

    path_width = max(len(row[0]) for row in rows)
    size_width = max(len(row[1]) for row in rows)
    lines: List[str] = [""]
    for label, size, share, chain in rows:
        if not label.startswith(" ") and len(lines) > 1:
            lines.append("")
        lines.append(f"  {label.ljust(path_width)}  {size.rjust(size_width)}  {share.rjust(6)}")
        for depth, importer in enumerate(chain):
            lines.append(f"  {' ' * (3 + depth * 2)}└ {importer}")
    lines.append("")
    return "\n".join(lines)
