from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import replace
from typing import Callable, Iterable, Optional

from plan_canvas.core.derive.readiness import ReadinessStrategy, readiness_disabled
from plan_canvas.core.graph_model import GraphModel
from plan_canvas.core.layout.layout_config import DEFAULT_LAYOUT_CONFIG, LayoutConfig
from plan_canvas.core.model import (
    Derivation,
    Diagram,
    OutlineEntry,
    Project,
    Relationship,
    TaskMetadata,
)
from plan_canvas.core.store.debounce import Debouncer
from plan_canvas.core.store.repository import ProjectRepository

logger = logging.getLogger(__name__)

DEFAULT_SAVE_DELAY = 0.5


class EditorSession:
    """One open project: its GraphModel plus the save policy.

    Outline and relationship edits are saved after `save_delay` seconds of
    quiet; status changes are saved immediately. close() drops a pending save.
    """

    def __init__(
        self,
        project: Project,
        repository: ProjectRepository,
        *,
        save_delay: float = DEFAULT_SAVE_DELAY,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        config: LayoutConfig = DEFAULT_LAYOUT_CONFIG,
        readiness: ReadinessStrategy = readiness_disabled,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._project = project
        self._repository = repository
        self._clock = clock
        self._save_later = Debouncer(self._save, save_delay, loop=loop)
        self.model = GraphModel(
            project.outline,
            task_metadata=project.task_metadata,
            relationships=project.relationships,
            direction=project.direction,
            config=config,
            readiness=readiness,
        )

    @property
    def project(self) -> Project:
        return self._project

    @property
    def diagram(self) -> Diagram:
        return self.model.diagram

    @property
    def save_pending(self) -> bool:
        return self._save_later.pending

    def edit_outline(self, entries: Iterable[OutlineEntry]) -> Derivation:
        entries = tuple(entries)
        derivation = self.model.update_outline(entries)
        name = entries[0].text.strip() if entries else self._project.name
        self._sync(name=name)
        self._save_later.schedule(self._project)
        return derivation

    def connect(self, source_id: str, target_id: str) -> Relationship:
        rel = self.model.connect(source_id, target_id)
        self._sync()
        self._save_later.schedule(self._project)
        return rel

    def disconnect(self, relationship_id: str) -> Relationship:
        rel = self.model.disconnect(relationship_id)
        self._sync()
        self._save_later.schedule(self._project)
        return rel

    def disconnect_pair(self, source_id: str, target_id: str) -> list[Relationship]:
        removed = self.model.disconnect_pair(source_id, target_id)
        self._sync()
        self._save_later.schedule(self._project)
        return removed

    def set_status(self, task_id: str, status: str) -> TaskMetadata:
        meta = self.model.set_status(task_id, status)
        self._sync()
        # Supersedes any pending debounced save.
        self._save_later.cancel()
        self._save(self._project)
        return meta

    def set_direction(self, direction: str) -> Diagram:
        diagram = self.model.set_direction(direction)
        self._project = replace(self._project, direction=self.model.direction)
        return diagram

    def close(self) -> None:
        self._save_later.cancel()

    def _sync(self, *, name: Optional[str] = None) -> None:
        self._project = replace(
            self._project,
            name=self._project.name if name is None else name,
            outline=self.model.outline,
            relationships=tuple(self.model.relationships),
            task_metadata=self.model.task_metadata,
            direction=self.model.direction,
            last_modified=self._clock(),
        )

    def _save(self, project: Project) -> None:
        logger.debug("saving project %s", project.id)
        self._repository.save(project)
