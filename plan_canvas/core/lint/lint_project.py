from __future__ import annotations

from collections import defaultdict
from typing import Optional

from plan_canvas.core.derive.derive_tasks import parse_outline
from plan_canvas.core.errors import ProjectValidationError
from plan_canvas.core.model import Project


# Lint rules report what derivation would otherwise drop silently:
# - L_NO_TASKS: no list items under a "Tasks" header
# - L_DANGLING_RELATIONSHIP: relationship names a task that is not in the outline
# - L_SELF_RELATIONSHIP: relationship from a task to itself
# - L_LOCALITY_VIOLATION: endpoints are neither both roots nor siblings
# - L_RELATIONSHIP_CYCLE: relationships form a cycle (nothing in it can become ready)
# - L_STALE_METADATA: status stored for a task that no longer exists
# - L_STATUS_ON_GROUP: status stored for a task that has sub-tasks (ignored by roll-up)


def lint_project(project: Project, *, file: Optional[str] = None) -> list[ProjectValidationError]:
    """Lint a validated project.

    Lint runs *after* validation and never changes the project; the CLI prints
    its findings so that silent structural skips become visible.
    """

    forest = parse_outline(project.outline)
    errors: list[ProjectValidationError] = []

    if len(forest) == 0:
        errors.append(
            ProjectValidationError(
                code="L_NO_TASKS",
                message='no tasks found (add list items under a "Tasks" header)',
                file=file,
                path="outline",
            )
        )

    live: list[tuple[int, str, str]] = []
    for i, rel in enumerate(project.relationships):
        path = f"relationships[{i}]"
        missing = [tid for tid in (rel.source_id, rel.target_id) if tid not in forest]
        if missing:
            errors.append(
                ProjectValidationError(
                    code="L_DANGLING_RELATIONSHIP",
                    message=f"relationship {rel.id} references unknown task(s): {sorted(set(missing))}",
                    file=file,
                    path=path,
                )
            )
            continue
        if rel.source_id == rel.target_id:
            errors.append(
                ProjectValidationError(
                    code="L_SELF_RELATIONSHIP",
                    message=f"relationship {rel.id} connects {rel.source_id} to itself",
                    file=file,
                    path=path,
                )
            )
            continue
        if forest.parent_of(rel.source_id) != forest.parent_of(rel.target_id):
            errors.append(
                ProjectValidationError(
                    code="L_LOCALITY_VIOLATION",
                    message=(
                        f"relationship {rel.id} connects tasks with different parents "
                        f"({rel.source_id} -> {rel.target_id}); it will not be laid out"
                    ),
                    file=file,
                    path=path,
                )
            )
            continue
        live.append((i, rel.source_id, rel.target_id))

    successors: dict[str, list[str]] = defaultdict(list)
    first_index: dict[str, int] = {}
    for i, s, t in live:
        successors[s].append(t)
        first_index.setdefault(s, i)
    for nid, msg in _detect_cycles(successors):
        errors.append(
            ProjectValidationError(
                code="L_RELATIONSHIP_CYCLE",
                message=msg,
                file=file,
                path=f"relationships[{first_index.get(nid, 0)}]",
            )
        )

    for tid in project.task_metadata:
        path = f"task_metadata.{tid}"
        if tid not in forest:
            errors.append(
                ProjectValidationError(
                    code="L_STALE_METADATA",
                    message=f"status stored for unknown task: {tid}",
                    file=file,
                    path=path,
                )
            )
        elif not forest.is_leaf(tid):
            errors.append(
                ProjectValidationError(
                    code="L_STATUS_ON_GROUP",
                    message=f"status stored for a task with sub-tasks (rolled up instead): {tid}",
                    file=file,
                    path=path,
                )
            )

    return _sorted(errors)


def _detect_cycles(successors: dict[str, list[str]]) -> list[tuple[str, str]]:
    WHITE, GRAY, BLACK = 0, 1, 2
    nodes = list(successors.keys())
    for targets in successors.values():
        for t in targets:
            if t not in successors:
                nodes.append(t)
    state: dict[str, int] = {nid: WHITE for nid in nodes}
    stack: list[str] = []
    emitted: set[frozenset[str]] = set()
    out: list[tuple[str, str]] = []

    def dfs(u: str) -> None:
        state[u] = GRAY
        stack.append(u)
        for v in successors.get(u, []):
            if state[v] == GRAY:
                # cycle: v ... u -> v
                idx = stack.index(v)
                cycle = stack[idx:] + [v]
                key = frozenset(cycle)
                if key not in emitted:
                    emitted.add(key)
                    out.append((v, "relationship cycle detected: " + " -> ".join(cycle)))
            elif state[v] == WHITE:
                dfs(v)
        stack.pop()
        state[u] = BLACK

    for nid in nodes:
        if state[nid] == WHITE:
            dfs(nid)

    return out


def _sorted(errors: list[ProjectValidationError]) -> list[ProjectValidationError]:
    return sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
