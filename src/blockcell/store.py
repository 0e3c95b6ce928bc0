"""Reading and writing ``.deepnote`` project files.

A project file is YAML: ``project.notebooks[*].blocks`` holds the blocks the
converter works on. Everything else in the file is carried through untouched.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from io import StringIO
from pathlib import Path
from typing import Any, Dict, List, Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError
from ruamel.yaml.scalarstring import LiteralScalarString

from .ids import generate_block_id

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


class DocumentError(ValueError):
    """Raised for project files that cannot be used."""


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _yaml() -> YAML:
    yaml = YAML()
    yaml.default_flow_style = False
    yaml.width = 4096
    yaml.indent(mapping=2, sequence=4, offset=2)
    return yaml


def load_project_text(text: str) -> Dict[str, Any]:
    try:
        data = _yaml().load(StringIO(text))
    except YAMLError as e:
        raise DocumentError(f"Failed to parse project file: {e}") from e
    project = data.get("project") if isinstance(data, dict) else None
    notebooks = project.get("notebooks") if isinstance(project, dict) else None
    if not isinstance(notebooks, list):
        raise DocumentError("Invalid project file: no notebooks found")
    if not notebooks:
        raise DocumentError("Project contains no notebooks")
    logger.debug("Loaded project %s with %d notebooks", project.get("id"), len(notebooks))
    return data


def load_project(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return load_project_text(f.read())


def list_notebooks(project: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [nb for nb in project["project"]["notebooks"] if isinstance(nb, dict)]


def find_notebook(
    project: Dict[str, Any], notebook_id: Optional[str] = None
) -> Dict[str, Any]:
    """Return the notebook with ``notebook_id``, or the default one.

    The default is the first notebook by name, not counting the project's
    init notebook unless it is the only one.
    """
    notebooks = list_notebooks(project)
    if notebook_id:
        for nb in notebooks:
            if nb.get("id") == notebook_id:
                return nb
        raise DocumentError(f"Notebook with ID {notebook_id} not found in project")

    by_name = sorted(notebooks, key=lambda nb: str(nb.get("name") or ""))
    init_id = project["project"].get("initNotebookId")
    without_init = [nb for nb in by_name if nb.get("id") != init_id] if init_id else by_name
    if without_init:
        return without_init[0]
    if by_name:
        return by_name[0]
    raise DocumentError("No notebook selected or found")


def notebook_blocks(notebook: Dict[str, Any]) -> List[Dict[str, Any]]:
    blocks = notebook.get("blocks")
    return list(blocks) if isinstance(blocks, list) else []


def _touch(project: Dict[str, Any]) -> None:
    meta = project.get("metadata")
    if not isinstance(meta, dict):
        meta = {"createdAt": _now_iso()}
        project["metadata"] = meta
    meta["modifiedAt"] = _now_iso()


def replace_blocks(
    project: Dict[str, Any], notebook_id: str, blocks: List[Dict[str, Any]]
) -> Dict[str, Any]:
    """Return a copy of ``project`` with one notebook's blocks replaced."""
    updated = copy.deepcopy(project)
    target = find_notebook(updated, notebook_id)
    target["blocks"] = blocks
    _touch(updated)
    return updated


def duplicate_notebook(project: Dict[str, Any], notebook_id: str) -> Dict[str, Any]:
    """Append a copy of a notebook with fresh ids; returns the new notebook.

    The project is modified in place.
    """
    source = find_notebook(project, notebook_id)
    original_name = str(source.get("name") or "Notebook")
    existing = {nb.get("name") for nb in list_notebooks(project)}
    copy_number = 1
    new_name = f"{original_name} (Copy)"
    while new_name in existing:
        copy_number += 1
        new_name = f"{original_name} (Copy {copy_number})"

    new_nb = copy.deepcopy(source)
    new_nb["id"] = generate_block_id()
    new_nb["name"] = new_name
    blocks = []
    for block in notebook_blocks(new_nb):
        block["id"] = generate_block_id()
        block["blockGroup"] = generate_block_id()
        block.pop("executionCount", None)
        blocks.append(block)
    new_nb["blocks"] = blocks

    project["project"]["notebooks"].append(new_nb)
    _touch(project)
    logger.debug("Duplicated notebook %s as %s", notebook_id, new_nb["id"])
    return new_nb


def new_project(name: str, blocks: List[Dict[str, Any]]) -> Dict[str, Any]:
    now = _now_iso()
    return {
        "metadata": {"createdAt": now, "modifiedAt": now},
        "project": {
            "id": generate_block_id(),
            "name": name,
            "notebooks": [
                {
                    "blocks": blocks,
                    "executionMode": "block",
                    "id": generate_block_id(),
                    "isModule": False,
                    "name": name,
                }
            ],
            "settings": {},
        },
        "version": FORMAT_VERSION,
    }


def _literal_strings(node: Any) -> Any:
    # multi-line text reads better as YAML block scalars
    if isinstance(node, dict):
        for k in list(node.keys()):
            node[k] = _literal_strings(node[k])
        return node
    if isinstance(node, list):
        for i, v in enumerate(node):
            node[i] = _literal_strings(v)
        return node
    if (
        isinstance(node, str)
        and not isinstance(node, LiteralScalarString)
        and "\n" in node
        and "\r" not in node
        and "\t" not in node
        and not any(line != line.rstrip(" ") for line in node.split("\n"))
    ):
        return LiteralScalarString(node)
    return node


def dump_project_text(project: Dict[str, Any]) -> str:
    data = _literal_strings(copy.deepcopy(project))
    out = StringIO()
    _yaml().dump(data, out)
    return out.getvalue()


def save_project(path: str | Path, project: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as f:
        f.write(dump_project_text(project))
