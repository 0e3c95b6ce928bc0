from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from .convert import BlockConverter, block_sort_key
from .jupyter import export_ipynb_text, import_ipynb_text
from .registry import create_default_registry
from .store import (
    DocumentError,
    dump_project_text,
    duplicate_notebook,
    find_notebook,
    list_notebooks,
    load_project,
    new_project,
    notebook_blocks,
)

logger = logging.getLogger(__name__)


def _write_or_print(text: str, out_path: str | None) -> None:
    if out_path:
        Path(out_path).write_text(text, encoding="utf-8")
    else:
        # stdout
        print(text, end="")


def _cmd_cells(converter: BlockConverter, path: Path, notebook_id: str | None) -> int:
    project = load_project(path)
    nb = find_notebook(project, notebook_id)
    cells = converter.to_cells(notebook_blocks(nb))
    print(json.dumps([c.to_dict() for c in cells], indent=2, ensure_ascii=False, default=str))
    return 0


def _cmd_check(converter: BlockConverter, path: Path) -> int:
    project = load_project(path)
    failed = 0
    for nb in list_notebooks(project):
        blocks = notebook_blocks(nb)
        # compare in document order; to_cells sorts by sorting key
        expected = sorted(blocks, key=block_sort_key)
        back = converter.to_blocks(converter.to_cells(blocks))
        if back == expected:
            print(f"OK: {nb.get('name')} ({len(blocks)} blocks)")
            continue
        failed += 1
        for before, after in zip(expected, back):
            if before != after:
                print(f"ERROR: {nb.get('name')}: block {before.get('id')} changed on round trip")
        if len(expected) != len(back):
            print(f"ERROR: {nb.get('name')}: block count {len(expected)} -> {len(back)}")
    return 1 if failed else 0


def _cmd_types(converter: BlockConverter) -> int:
    for tag in converter.registry.list_supported_types():
        print(tag)
    return 0


def _cmd_duplicate(path: Path, notebook_id: str, out_path: str | None) -> int:
    project = load_project(path)
    new_nb = duplicate_notebook(project, notebook_id)
    text = dump_project_text(project)
    if out_path:
        Path(out_path).write_text(text, encoding="utf-8")
    else:
        path.write_text(text, encoding="utf-8")
    print(f"Duplicated notebook: {new_nb['name']} ({new_nb['id']})", file=sys.stderr)
    return 0


def _cmd_export(
    converter: BlockConverter, path: Path, notebook_id: str | None, out_path: str | None
) -> int:
    project = load_project(path)
    nb = find_notebook(project, notebook_id)
    text = export_ipynb_text(notebook_blocks(nb), converter, name=nb.get("name"))
    _write_or_print(text, out_path)
    return 0


def _cmd_import(
    converter: BlockConverter, path: Path, name: str | None, out_path: str | None
) -> int:
    blocks = import_ipynb_text(path.read_text(encoding="utf-8"), converter)
    project = new_project(name or path.stem, blocks)
    _write_or_print(dump_project_text(project), out_path)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="blockcell", description="Deepnote block <-> notebook cell transcoder"
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING)",
    )
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_cells = sub.add_parser("cells", help="Print a notebook's cells as JSON")
    p_cells.add_argument("file")
    p_cells.add_argument("--notebook", help="Notebook id (default: first by name)")

    p_check = sub.add_parser("check", help="Verify every notebook survives a round trip")
    p_check.add_argument("file")

    sub.add_parser("types", help="List registered block types")

    p_dup = sub.add_parser("duplicate", help="Duplicate a notebook inside a project")
    p_dup.add_argument("file")
    p_dup.add_argument("--notebook", required=True, help="Notebook id to copy")
    p_dup.add_argument("-o", "--output", help="Output project file (default: in place)")

    p_export = sub.add_parser("export", help="Export a notebook to .ipynb")
    p_export.add_argument("file", help="Input .deepnote file")
    p_export.add_argument("--notebook", help="Notebook id (default: first by name)")
    p_export.add_argument("-o", "--output", help="Output .ipynb file (default: stdout)")

    p_import = sub.add_parser("import", help="Import .ipynb into a new project")
    p_import.add_argument("file", help="Input .ipynb file")
    p_import.add_argument("--name", help="Project name (default: file stem)")
    p_import.add_argument(
        "-o", "--output", help="Output .deepnote file (default: stdout)"
    )

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s",
    )

    converter = BlockConverter(create_default_registry())
    cmd = args.cmd
    path = Path(args.file) if getattr(args, "file", None) else None

    try:
        if cmd == "cells":
            return _cmd_cells(converter, path, args.notebook)
        if cmd == "check":
            return _cmd_check(converter, path)
        if cmd == "types":
            return _cmd_types(converter)
        if cmd == "duplicate":
            return _cmd_duplicate(path, args.notebook, args.output)
        if cmd == "export":
            return _cmd_export(converter, path, args.notebook, args.output)
        if cmd == "import":
            return _cmd_import(converter, path, args.name, args.output)
    except (DocumentError, OSError) as e:
        logger.debug("Command %s failed", cmd, exc_info=True)
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    parser.error(f"unknown command {cmd!r}")
    return 2


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
