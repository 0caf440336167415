from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Literal, Optional


TaskStatus = Literal["pending", "in_progress", "completed"]
Direction = Literal["TB", "LR"]

TASK_STATUSES: tuple[str, ...] = ("pending", "in_progress", "completed")
DIRECTIONS: tuple[str, ...] = ("TB", "LR")


@dataclass(frozen=True)
class OutlineEntry:
    text: str
    block_kind: str
    depth: int
    key: str

    @property
    def is_list_item(self) -> bool:
        return self.block_kind.endswith("list-item")


@dataclass(frozen=True)
class Task:
    id: str
    description: str
    depth: int
    status: TaskStatus = "pending"
    parent_id: Optional[str] = None
    sub_task_ids: tuple[str, ...] = ()
    ready: Optional[bool] = None


@dataclass(frozen=True)
class Relationship:
    id: str
    source_id: str
    target_id: str


@dataclass(frozen=True)
class TaskMetadata:
    id: str
    status: TaskStatus


@dataclass(frozen=True)
class TaskForest:
    """Id-indexed arena of tasks.

    tasks_by_id is in outline (pre-order) order; root_ids keeps root order.
    Containment is expressed only through parent_id / sub_task_ids.
    """

    tasks_by_id: dict[str, Task] = field(default_factory=dict)
    root_ids: tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.tasks_by_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self.tasks_by_id

    def get(self, task_id: str) -> Optional[Task]:
        return self.tasks_by_id.get(task_id)

    def children(self, task_id: str) -> list[Task]:
        task = self.tasks_by_id[task_id]
        return [self.tasks_by_id[cid] for cid in task.sub_task_ids]

    def roots(self) -> list[Task]:
        return [self.tasks_by_id[rid] for rid in self.root_ids]

    def is_leaf(self, task_id: str) -> bool:
        return not self.tasks_by_id[task_id].sub_task_ids

    def parent_of(self, task_id: str) -> Optional[str]:
        return self.tasks_by_id[task_id].parent_id

    def walk(self) -> Iterator[Task]:
        """Yield tasks in pre-order (parents before their sub-tasks)."""
        stack = list(reversed(self.root_ids))
        while stack:
            task = self.tasks_by_id[stack.pop()]
            yield task
            stack.extend(reversed(task.sub_task_ids))


@dataclass(frozen=True)
class Derivation:
    forest: TaskForest
    task_metadata: dict[str, TaskMetadata]
    relationships: list[Relationship]


@dataclass(frozen=True)
class GraphNode:
    id: str
    parent_id: Optional[str] = None
    label: str = ""
    status_hint: Optional[str] = None
    is_group: bool = False


@dataclass(frozen=True)
class GraphEdge:
    id: str
    source: str
    target: str


@dataclass(frozen=True)
class LayoutNode:
    id: str
    parent_id: Optional[str]
    x: float  # parent-local for children, absolute for roots
    y: float
    width: float
    height: float
    abs_x: float
    abs_y: float
    label: str = ""
    status_hint: Optional[str] = None
    is_group: bool = False


@dataclass(frozen=True)
class Diagram:
    nodes: list[LayoutNode]
    edges: list[GraphEdge]
    direction: Direction = "TB"


@dataclass(frozen=True)
class Project:
    """A persisted outline together with its relationships and task status."""

    id: str
    name: str
    outline: tuple[OutlineEntry, ...] = ()
    relationships: tuple[Relationship, ...] = ()
    task_metadata: dict[str, TaskMetadata] = field(default_factory=dict)
    description: str = ""
    direction: Direction = "TB"
    completed: bool = False
    last_modified: float = 0.0
    schema_version: str = "0.1.0"


@dataclass(frozen=True)
class ProjectSummary:
    id: str
    name: str
    description: str
    last_modified: float
    completed: bool
