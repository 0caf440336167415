from __future__ import annotations

from typing import Callable, Mapping, Sequence

from plan_canvas.core.model import Relationship, TaskForest, TaskMetadata, TaskStatus


# Readiness is pluggable: derivation, GraphModel and EditorSession take a strategy.
# A strategy returns the ids of tasks that should carry ready=True.
ReadinessStrategy = Callable[
    [TaskForest, Mapping[str, TaskMetadata], Sequence[Relationship]], set[str]
]

INCOMPLETE_STATUSES: frozenset[str] = frozenset({"pending", "in_progress"})


def aggregate_status(forest: TaskForest, task_id: str) -> TaskStatus:
    """Effective status: a leaf's own status; a group rolls up its children.

    completed if every child is completed, pending if every child is pending,
    in_progress otherwise.
    """

    task = forest.tasks_by_id[task_id]
    if not task.sub_task_ids:
        return task.status
    return aggregate_statuses(forest)[task_id]


def aggregate_statuses(forest: TaskForest) -> dict[str, TaskStatus]:
    """aggregate_status for every task, computed bottom-up in one pass."""

    out: dict[str, TaskStatus] = {}
    for task in reversed(list(forest.walk())):
        if not task.sub_task_ids:
            out[task.id] = task.status
            continue
        child_statuses = [out[cid] for cid in task.sub_task_ids]
        if all(s == "completed" for s in child_statuses):
            out[task.id] = "completed"
        elif all(s == "pending" for s in child_statuses):
            out[task.id] = "pending"
        else:
            out[task.id] = "in_progress"
    return out


def readiness_disabled(
    forest: TaskForest,
    task_metadata: Mapping[str, TaskMetadata],
    relationships: Sequence[Relationship],
) -> set[str]:
    """Mark nothing ready."""
    return set()


def prerequisite_readiness(
    forest: TaskForest,
    task_metadata: Mapping[str, TaskMetadata],
    relationships: Sequence[Relationship],
) -> set[str]:
    """A task is ready when none of its prerequisites is incomplete and its parent is ready.

    - prerequisite: the source of a relationship pointing at the task
    - incomplete: aggregate status pending or in_progress
    - roots have no parent condition; completed tasks may be ready too
    """

    effective = aggregate_statuses(forest)

    blocked: set[str] = set()
    for rel in relationships:
        if effective.get(rel.source_id) in INCOMPLETE_STATUSES:
            blocked.add(rel.target_id)

    ready: set[str] = set()
    for task in forest.walk():
        if task.id in blocked:
            continue
        if task.parent_id is not None and task.parent_id not in ready:
            continue
        ready.add(task.id)
    return ready


READINESS_STRATEGIES: dict[str, ReadinessStrategy] = {
    "none": readiness_disabled,
    "prerequisite": prerequisite_readiness,
}
