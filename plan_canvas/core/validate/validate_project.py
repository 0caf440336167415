from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Optional, cast

from plan_canvas.core.errors import ProjectValidationError
from plan_canvas.core.model import (
    DIRECTIONS,
    TASK_STATUSES,
    Direction,
    OutlineEntry,
    Project,
    Relationship,
    TaskMetadata,
    TaskStatus,
)


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and bool(v.strip())


def validate_project(doc: dict[str, Any]) -> tuple[Optional[Project], list[ProjectValidationError]]:
    """Validate a loaded project document.

    This is the storage boundary: anything that passes becomes a Project the
    core can trust. Returns (project, errors). Project is None when errors exist.
    """

    file = cast(Optional[str], doc.get("__file__"))
    errors: list[ProjectValidationError] = []

    def err(code: str, message: str, path: str) -> None:
        errors.append(ProjectValidationError(code=code, message=message, file=file, path=path))

    schema_version = doc.get("schema_version")
    if not _is_non_empty_str(schema_version):
        err("E_REQUIRED_FIELD", "schema_version is required and must be a non-empty string", "schema_version")

    for key in ("id", "name", "description"):
        v = doc.get(key)
        if v is not None and not isinstance(v, str):
            err("E_INVALID_TYPE", f"{key} must be a string", key)

    direction = doc.get("direction", "TB")
    if direction not in DIRECTIONS:
        err("E_INVALID_ENUM", f"direction must be one of {list(DIRECTIONS)}", "direction")

    completed = doc.get("completed", False)
    if not isinstance(completed, bool):
        err("E_INVALID_TYPE", "completed must be a boolean", "completed")

    last_modified = doc.get("last_modified", 0.0)
    if isinstance(last_modified, bool) or not isinstance(last_modified, (int, float)):
        err("E_INVALID_TYPE", "last_modified must be a number", "last_modified")

    outline = doc.get("outline")
    if not isinstance(outline, list):
        err("E_REQUIRED_FIELD", "outline is required and must be an array", "outline")
        return None, _sorted(errors)

    entries: list[OutlineEntry] = []
    seen_keys: set[str] = set()
    for i, raw in enumerate(outline):
        entry_path = f"outline[{i}]"
        if not isinstance(raw, dict):
            err("E_INVALID_TYPE", "outline entry must be an object", entry_path)
            continue

        key = raw.get("key")
        if not _is_non_empty_str(key):
            err("E_REQUIRED_FIELD", "key is required and must be a non-empty string", f"{entry_path}.key")
            continue
        if key in seen_keys:
            err("E_DUPLICATE_KEY", f"duplicate outline key: {key}", f"{entry_path}.key")
            continue

        text = raw.get("text", "")
        if not isinstance(text, str):
            err("E_INVALID_TYPE", "text must be a string", f"{entry_path}.text")
            continue

        kind = raw.get("kind", "unstyled")
        if not _is_non_empty_str(kind):
            err("E_INVALID_TYPE", "kind must be a non-empty string", f"{entry_path}.kind")
            continue

        depth = raw.get("depth", 0)
        if isinstance(depth, bool) or not isinstance(depth, int) or depth < 0:
            err("E_INVALID_TYPE", "depth must be a non-negative integer", f"{entry_path}.depth")
            continue

        seen_keys.add(key)
        entries.append(OutlineEntry(text=text, block_kind=kind, depth=depth, key=key))

    relationships: list[Relationship] = []
    raw_rels = doc.get("relationships")
    if raw_rels is None:
        raw_rels = []
    if not isinstance(raw_rels, list):
        err("E_INVALID_TYPE", "relationships must be an array", "relationships")
        raw_rels = []

    seen_rel_ids: set[str] = set()
    for i, raw in enumerate(raw_rels):
        rel_path = f"relationships[{i}]"
        if not isinstance(raw, dict):
            err("E_INVALID_TYPE", "relationship must be an object", rel_path)
            continue
        bad = [k for k in ("id", "source_id", "target_id") if not _is_non_empty_str(raw.get(k))]
        if bad:
            for k in bad:
                err("E_REQUIRED_FIELD", f"{k} is required and must be a non-empty string", f"{rel_path}.{k}")
            continue
        if raw["id"] in seen_rel_ids:
            err("E_DUPLICATE_ID", f"duplicate relationship id: {raw['id']}", f"{rel_path}.id")
            continue
        seen_rel_ids.add(raw["id"])
        relationships.append(
            Relationship(id=raw["id"], source_id=raw["source_id"], target_id=raw["target_id"])
        )

    task_metadata: dict[str, TaskMetadata] = {}
    raw_meta = doc.get("task_metadata")
    if raw_meta is None:
        raw_meta = {}
    if not isinstance(raw_meta, dict):
        err("E_INVALID_TYPE", "task_metadata must be a mapping of task id -> {status}", "task_metadata")
        raw_meta = {}

    for tid, raw in raw_meta.items():
        meta_path = f"task_metadata.{tid}"
        if not _is_non_empty_str(tid):
            err("E_INVALID_TYPE", "task_metadata keys must be non-empty strings", "task_metadata")
            continue
        if not isinstance(raw, dict):
            err("E_INVALID_TYPE", "task metadata must be an object", meta_path)
            continue
        status = raw.get("status")
        if status not in TASK_STATUSES:
            err("E_INVALID_ENUM", f"status must be one of {list(TASK_STATUSES)}", f"{meta_path}.status")
            continue
        mid = raw.get("id", tid)
        if mid != tid:
            err("E_INVALID_TYPE", f"metadata id {mid} does not match its key {tid}", f"{meta_path}.id")
            continue
        task_metadata[tid] = TaskMetadata(id=tid, status=cast(TaskStatus, status))

    if errors:
        return None, _sorted(errors)

    fallback_name = entries[0].text.strip() if entries else ""
    project = Project(
        id=cast(str, doc.get("id") or _stem(file) or "project"),
        name=cast(str, doc.get("name") or fallback_name),
        description=cast(str, doc.get("description") or ""),
        direction=cast(Direction, direction),
        completed=cast(bool, completed),
        last_modified=float(last_modified),
        schema_version=cast(str, schema_version),
        outline=tuple(entries),
        relationships=tuple(relationships),
        task_metadata=task_metadata,
    )
    return project, []


def _stem(file: Optional[str]) -> Optional[str]:
    if not file:
        return None
    return Path(file).stem or None


def _sorted(errors: Iterable[ProjectValidationError]) -> list[ProjectValidationError]:
    return sorted(
        list(errors),
        key=lambda e: (
            e.file or "",
            e.path or "",
            e.code,
        ),
    )
