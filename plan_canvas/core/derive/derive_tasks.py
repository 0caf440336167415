from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Mapping, Optional

from plan_canvas.core.derive.readiness import ReadinessStrategy, readiness_disabled
from plan_canvas.core.model import (
    Derivation,
    OutlineEntry,
    Relationship,
    Task,
    TaskForest,
    TaskMetadata,
    TaskStatus,
)

logger = logging.getLogger(__name__)

TASKS_HEADER = "tasks"


def parse_outline(entries: Iterable[OutlineEntry]) -> TaskForest:
    """Build the task forest from an ordered outline.

    Tasks are the list items that follow a "Tasks" header. The first non-list
    entry after at least one task ends the section; anything after it is ignored.
    """

    in_task_section = False
    stack: list[str] = []
    depth_by_id: dict[str, int] = {}
    records: dict[str, dict] = {}
    root_ids: list[str] = []

    for entry in entries:
        if not entry.is_list_item:
            if records:
                break
            in_task_section = entry.text.strip().lower() == TASKS_HEADER
            continue

        if not in_task_section:
            continue

        if entry.key in records:
            logger.debug("skipping outline entry with repeated key %r", entry.key)
            continue

        depth = entry.depth
        while stack and depth_by_id[stack[-1]] >= depth:
            stack.pop()

        parent_id: Optional[str] = stack[-1] if stack else None
        if parent_id is None:
            root_ids.append(entry.key)
        else:
            records[parent_id]["sub_task_ids"].append(entry.key)

        records[entry.key] = {
            "id": entry.key,
            "description": entry.text.strip(),
            "depth": depth,
            "parent_id": parent_id,
            "sub_task_ids": [],
        }
        depth_by_id[entry.key] = depth
        stack.append(entry.key)

    tasks_by_id = {
        tid: Task(
            id=raw["id"],
            description=raw["description"],
            depth=raw["depth"],
            parent_id=raw["parent_id"],
            sub_task_ids=tuple(raw["sub_task_ids"]),
        )
        for tid, raw in records.items()
    }
    return TaskForest(tasks_by_id=tasks_by_id, root_ids=tuple(root_ids))


def reconcile(
    forest: TaskForest,
    task_metadata: Mapping[str, TaskMetadata],
    relationships: Iterable[Relationship],
    readiness: ReadinessStrategy = readiness_disabled,
) -> Derivation:
    """Apply persisted status, drop stale relationships and metadata, annotate readiness."""

    retained_metadata: dict[str, TaskMetadata] = {}
    tasks_by_id: dict[str, Task] = {}
    for task in forest.walk():
        meta = task_metadata.get(task.id)
        if meta is not None:
            retained_metadata[task.id] = meta
            status: TaskStatus = meta.status
        else:
            status = "pending"
        tasks_by_id[task.id] = replace(task, status=status, ready=None)

    for mid in task_metadata:
        if mid not in tasks_by_id:
            logger.debug("dropping metadata for missing task %r", mid)

    retained_relationships: list[Relationship] = []
    for rel in relationships:
        if rel.source_id in tasks_by_id and rel.target_id in tasks_by_id:
            retained_relationships.append(rel)
        else:
            logger.debug("dropping relationship %r with missing endpoint", rel.id)

    reconciled = TaskForest(tasks_by_id=tasks_by_id, root_ids=forest.root_ids)
    ready_ids = readiness(reconciled, retained_metadata, retained_relationships)
    if ready_ids:
        reconciled = TaskForest(
            tasks_by_id={
                tid: replace(task, ready=True) if tid in ready_ids else task
                for tid, task in tasks_by_id.items()
            },
            root_ids=forest.root_ids,
        )

    return Derivation(
        forest=reconciled,
        task_metadata=retained_metadata,
        relationships=retained_relationships,
    )


def derive_task_specifications(
    entries: Iterable[OutlineEntry],
    task_metadata: Mapping[str, TaskMetadata],
    relationships: Iterable[Relationship],
    readiness: ReadinessStrategy = readiness_disabled,
) -> Derivation:
    """Outline + persisted state -> task forest, retained metadata, retained relationships.

    Never raises: malformed or missing input yields an empty forest.
    """

    forest = parse_outline(entries)
    return reconcile(forest, task_metadata, relationships, readiness)
