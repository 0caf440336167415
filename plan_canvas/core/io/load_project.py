from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from plan_canvas.core.errors import ProjectLoadError
from plan_canvas.core.io.markdown_outline import parse_markdown_outline
from plan_canvas.core.model import Project


SCHEMA_VERSION = "0.1.0"


def load_project(path: str) -> dict[str, Any]:
    """Load a YAML/JSON project document, or a markdown outline.

    Returns a dict with keys: schema_version, outline, relationships,
    task_metadata and the optional id/name/description/direction/completed.
    Does not coerce types; validator owns shape checking.
    """

    p = Path(path)
    if not p.exists():
        raise ProjectLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )

    suffix = p.suffix.lower()
    try:
        raw_text = p.read_text(encoding="utf-8")
    except Exception as e:  # pragma: no cover
        raise ProjectLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    if suffix in {".md", ".markdown"}:
        return _from_markdown(raw_text, p)

    try:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(raw_text)
        elif suffix == ".json":
            data = json.loads(raw_text)
        else:
            raise ProjectLoadError(
                code="E_UNSUPPORTED_FORMAT",
                message="supported formats are .yaml/.yml, .json and .md",
                file=str(p),
            )
    except ProjectLoadError:
        raise
    except Exception as e:
        code = "E_YAML_PARSE" if suffix in {".yaml", ".yml"} else "E_JSON_PARSE"
        raise ProjectLoadError(code=code, message=str(e), file=str(p)) from e

    if not isinstance(data, dict):
        raise ProjectLoadError(
            code="E_INVALID_TOP_LEVEL",
            message="top-level document must be a mapping/object",
            file=str(p),
        )

    # Normalize: keep only expected keys; validator checks required ones.
    normalized: dict[str, Any] = {
        "schema_version": data.get("schema_version"),
        "outline": data.get("outline"),
        "relationships": data.get("relationships", []),
        "task_metadata": data.get("task_metadata", {}),
    }
    for key in ("id", "name", "description", "direction", "completed", "last_modified"):
        if key in data:
            normalized[key] = data.get(key)

    normalized["__file__"] = str(p)
    return normalized


def _from_markdown(text: str, p: Path) -> dict[str, Any]:
    entries = parse_markdown_outline(text)
    return {
        "schema_version": SCHEMA_VERSION,
        "id": p.stem,
        "name": entries[0].text if entries else p.stem,
        "outline": [
            {"text": e.text, "kind": e.block_kind, "depth": e.depth, "key": e.key} for e in entries
        ],
        "relationships": [],
        "task_metadata": {},
        "__file__": str(p),
    }


def project_to_dict(project: Project) -> dict[str, Any]:
    """Serialise a Project into the document shape load_project reads back."""

    return {
        "schema_version": project.schema_version,
        "id": project.id,
        "name": project.name,
        "description": project.description,
        "direction": project.direction,
        "completed": project.completed,
        "last_modified": project.last_modified,
        "outline": [
            {"text": e.text, "kind": e.block_kind, "depth": e.depth, "key": e.key}
            for e in project.outline
        ],
        "relationships": [
            {"id": r.id, "source_id": r.source_id, "target_id": r.target_id}
            for r in project.relationships
        ],
        "task_metadata": {
            tid: {"id": m.id, "status": m.status} for tid, m in project.task_metadata.items()
        },
    }


def dump_project_yaml(project: dict[str, Any], path: str) -> None:
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    doc = {k: v for k, v in project.items() if not k.startswith("__")}
    with open(p, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, sort_keys=False, default_flow_style=False, allow_unicode=True)
