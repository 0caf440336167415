from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence

from plan_canvas.core.derive.derive_tasks import parse_outline, reconcile
from plan_canvas.core.derive.readiness import ReadinessStrategy, aggregate_statuses, readiness_disabled
from plan_canvas.core.errors import GraphMutationError
from plan_canvas.core.layout.layered import LayeredLayout, sugiyama_layout
from plan_canvas.core.layout.layout_config import DEFAULT_LAYOUT_CONFIG, LayoutConfig
from plan_canvas.core.layout.layout_graph import layout_graph
from plan_canvas.core.model import (
    DIRECTIONS,
    TASK_STATUSES,
    Derivation,
    Diagram,
    Direction,
    GraphEdge,
    GraphNode,
    LayoutNode,
    OutlineEntry,
    Relationship,
    TaskForest,
    TaskMetadata,
)

logger = logging.getLogger(__name__)

LOCALITY_MESSAGE = "Invalid connection: Nodes must share the same parent or both be root nodes"

ChangeListener = Callable[["GraphModel", str], None]


class GraphModel:
    """Current task graph plus its laid-out diagram.

    Every accepted mutation leaves the model consistent before returning:
    outline edits re-derive and re-lay out, relationship edits re-lay out,
    status edits refresh status hints only. Rejected mutations raise
    GraphMutationError and change nothing. If re-deriving or re-laying out
    fails, the previous state is restored before the error propagates.
    """

    def __init__(
        self,
        outline: Iterable[OutlineEntry] = (),
        *,
        task_metadata: Optional[Mapping[str, TaskMetadata]] = None,
        relationships: Optional[Sequence[Relationship]] = None,
        direction: Direction = "TB",
        config: LayoutConfig = DEFAULT_LAYOUT_CONFIG,
        readiness: ReadinessStrategy = readiness_disabled,
        layered: LayeredLayout = sugiyama_layout,
        on_change: Optional[ChangeListener] = None,
    ) -> None:
        _check_direction(direction)
        self._outline: tuple[OutlineEntry, ...] = tuple(outline)
        self._task_metadata: dict[str, TaskMetadata] = dict(task_metadata or {})
        self._relationships: list[Relationship] = list(relationships or [])
        self._direction: Direction = direction
        self._config = config
        self._readiness = readiness
        self._layered = layered
        self._on_change = on_change

        self._structure = TaskForest()
        self._derivation = Derivation(forest=TaskForest(), task_metadata={}, relationships=[])
        self._diagram = Diagram(nodes=[], edges=[], direction=direction)
        self._rederive()

    # -- read side -----------------------------------------------------

    @property
    def outline(self) -> tuple[OutlineEntry, ...]:
        return self._outline

    @property
    def derivation(self) -> Derivation:
        return self._derivation

    @property
    def forest(self) -> TaskForest:
        return self._derivation.forest

    @property
    def relationships(self) -> list[Relationship]:
        return list(self._derivation.relationships)

    @property
    def task_metadata(self) -> dict[str, TaskMetadata]:
        return dict(self._derivation.task_metadata)

    @property
    def direction(self) -> Direction:
        return self._direction

    @property
    def diagram(self) -> Diagram:
        return self._diagram

    def is_valid_connection(self, source_id: str, target_id: str) -> bool:
        forest = self.forest
        if source_id not in forest or target_id not in forest:
            return False
        return forest.parent_of(source_id) == forest.parent_of(target_id)

    # -- mutations -----------------------------------------------------

    def update_outline(self, entries: Iterable[OutlineEntry]) -> Derivation:
        with self._transaction():
            self._outline = tuple(entries)
            self._rederive()
        self._notify("outline")
        return self._derivation

    def connect(self, source_id: str, target_id: str) -> Relationship:
        forest = self.forest
        for tid in (source_id, target_id):
            if tid not in forest:
                raise GraphMutationError(
                    code="E_CONNECT_UNKNOWN_TASK",
                    message=f"unknown task id: {tid}",
                    path="relationships",
                    task_ids=(source_id, target_id),
                )
        if source_id == target_id:
            raise GraphMutationError(
                code="E_CONNECT_SELF",
                message=f"a task cannot depend on itself: {source_id}",
                path="relationships",
                task_ids=(source_id, target_id),
            )
        if not self.is_valid_connection(source_id, target_id):
            raise GraphMutationError(
                code="E_CONNECT_LOCALITY",
                message=LOCALITY_MESSAGE,
                path="relationships",
                task_ids=(source_id, target_id),
            )

        rel = Relationship(
            id=_unique_id(f"rel-{source_id}-{target_id}", {r.id for r in self._relationships}),
            source_id=source_id,
            target_id=target_id,
        )
        with self._transaction():
            self._relationships = [*self._relationships, rel]
            self._refresh()
        logger.debug("connected %s -> %s as %s", source_id, target_id, rel.id)
        self._notify("relationships")
        return rel

    def disconnect(self, relationship_id: str) -> Relationship:
        for i, rel in enumerate(self._relationships):
            if rel.id == relationship_id:
                with self._transaction():
                    self._relationships = self._relationships[:i] + self._relationships[i + 1 :]
                    self._refresh()
                self._notify("relationships")
                return rel
        raise GraphMutationError(
            code="E_DISCONNECT_UNKNOWN",
            message=f"unknown relationship id: {relationship_id}",
            path="relationships",
            relationship_id=relationship_id,
        )

    def disconnect_pair(self, source_id: str, target_id: str) -> list[Relationship]:
        removed = [
            r for r in self._relationships if r.source_id == source_id and r.target_id == target_id
        ]
        if not removed:
            raise GraphMutationError(
                code="E_DISCONNECT_UNKNOWN",
                message=f"no relationship from {source_id} to {target_id}",
                path="relationships",
                task_ids=(source_id, target_id),
            )
        with self._transaction():
            self._relationships = [r for r in self._relationships if r not in removed]
            self._refresh()
        self._notify("relationships")
        return removed

    def set_status(self, task_id: str, status: str) -> TaskMetadata:
        if status not in TASK_STATUSES:
            raise GraphMutationError(
                code="E_STATUS_INVALID",
                message=f"status must be one of {list(TASK_STATUSES)}, got {status}",
                path="status",
                task_ids=(task_id,),
            )
        forest = self.forest
        if task_id not in forest:
            raise GraphMutationError(
                code="E_STATUS_UNKNOWN_TASK",
                message=f"unknown task id: {task_id}",
                path="task_metadata",
                task_ids=(task_id,),
            )
        if not forest.is_leaf(task_id):
            raise GraphMutationError(
                code="E_STATUS_NOT_LEAF",
                message=f"status can only be set on tasks without sub-tasks: {task_id}",
                path="task_metadata",
                task_ids=(task_id,),
            )

        meta = TaskMetadata(id=task_id, status=status)  # type: ignore[arg-type]
        with self._transaction():
            self._task_metadata = {**self._task_metadata, task_id: meta}
            self._reconcile()
            self._diagram = replace(self._diagram, nodes=_with_status_hints(self._diagram, self.forest))
        self._notify("status")
        return meta

    def set_direction(self, direction: str) -> Diagram:
        _check_direction(direction)
        with self._transaction():
            self._direction = direction  # type: ignore[assignment]
            self._relayout()
        self._notify("direction")
        return self._diagram

    # -- internals -----------------------------------------------------

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        saved = (
            self._outline,
            self._structure,
            self._task_metadata,
            self._relationships,
            self._direction,
            self._derivation,
            self._diagram,
        )
        try:
            yield
        except Exception:
            (
                self._outline,
                self._structure,
                self._task_metadata,
                self._relationships,
                self._direction,
                self._derivation,
                self._diagram,
            ) = saved
            raise

    def _rederive(self) -> None:
        self._structure = parse_outline(self._outline)
        self._refresh()

    def _refresh(self) -> None:
        self._reconcile()
        self._relayout()

    def _reconcile(self) -> None:
        self._derivation = reconcile(
            self._structure, self._task_metadata, self._relationships, self._readiness
        )
        # Garbage-collect state for tasks that no longer exist.
        self._task_metadata = dict(self._derivation.task_metadata)
        self._relationships = list(self._derivation.relationships)

    def _relayout(self) -> None:
        nodes, edges = to_graph(self.forest, self._derivation.relationships)
        laid_out = layout_graph(
            nodes,
            edges,
            direction=self._direction,
            config=self._config,
            layered=self._layered,
        )
        self._diagram = Diagram(nodes=laid_out, edges=edges, direction=self._direction)

    def _notify(self, reason: str) -> None:
        if self._on_change is not None:
            self._on_change(self, reason)


def to_graph(
    forest: TaskForest, relationships: Sequence[Relationship]
) -> tuple[list[GraphNode], list[GraphEdge]]:
    """Flatten the task forest into layout nodes (pre-order) and relationship edges."""

    hints = status_hints(forest)
    nodes = [
        GraphNode(
            id=task.id,
            parent_id=task.parent_id,
            label=task.description,
            status_hint=hints[task.id],
            is_group=bool(task.sub_task_ids),
        )
        for task in forest.walk()
    ]
    edges = [
        GraphEdge(id=rel.id, source=rel.source_id, target=rel.target_id)
        for rel in relationships
        if rel.source_id in forest and rel.target_id in forest
    ]
    return nodes, edges


def status_hints(forest: TaskForest) -> dict[str, str]:
    """Rendering hint per task: aggregate status, suffixed with "_ready" when ready."""

    effective = aggregate_statuses(forest)
    out: dict[str, str] = {}
    for task in forest.walk():
        hint = effective[task.id]
        out[task.id] = f"{hint}_ready" if task.ready else hint
    return out


def _with_status_hints(diagram: Diagram, forest: TaskForest) -> list[LayoutNode]:
    hints = status_hints(forest)
    return [replace(n, status_hint=hints.get(n.id, n.status_hint)) for n in diagram.nodes]


def _check_direction(direction: str) -> None:
    if direction not in DIRECTIONS:
        raise GraphMutationError(
            code="E_DIRECTION_INVALID",
            message=f"direction must be one of {list(DIRECTIONS)}, got {direction}",
            path="direction",
        )


def _unique_id(base: str, existing: set[str]) -> str:
    if base not in existing:
        return base
    n = 2
    while f"{base}-{n}" in existing:
        n += 1
    return f"{base}-{n}"
