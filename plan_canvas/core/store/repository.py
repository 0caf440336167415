from __future__ import annotations

import logging
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Protocol

import yaml

from plan_canvas.core.errors import CanvasError, ProjectLoadError
from plan_canvas.core.io.load_project import load_project, project_to_dict
from plan_canvas.core.model import OutlineEntry, Project, ProjectSummary
from plan_canvas.core.validate.validate_project import validate_project

logger = logging.getLogger(__name__)

# Outline every new project starts from.
STARTER_OUTLINE: tuple[OutlineEntry, ...] = (
    OutlineEntry(text="Project Plan", block_kind="header-one", depth=0, key="project-plan"),
    OutlineEntry(text="Tasks", block_kind="header-two", depth=0, key="tasks"),
    OutlineEntry(text="Task 1", block_kind="unordered-list-item", depth=0, key="task-1"),
    OutlineEntry(text="Task 2", block_kind="unordered-list-item", depth=0, key="task-2"),
)


class ProjectRepository(Protocol):
    def load(self, project_id: str) -> Optional[Project]: ...

    def save(self, project: Project) -> None: ...

    def list(self) -> list[ProjectSummary]: ...

    def delete(self, project_id: str) -> bool: ...


class InMemoryProjectRepository:
    def __init__(self) -> None:
        self._projects: dict[str, Project] = {}

    def load(self, project_id: str) -> Optional[Project]:
        return self._projects.get(project_id)

    def save(self, project: Project) -> None:
        self._projects[project.id] = project

    def list(self) -> list[ProjectSummary]:
        return [_summary(p) for p in self._projects.values()]

    def delete(self, project_id: str) -> bool:
        return self._projects.pop(project_id, None) is not None


class YamlDirectoryRepository:
    """One `<id>.yaml` project document per project under `root`."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _path(self, project_id: str) -> Path:
        return self.root / f"{project_id}.yaml"

    def load(self, project_id: str) -> Optional[Project]:
        p = self._path(project_id)
        if not p.exists():
            return None
        project, errors = validate_project(load_project(str(p)))
        if errors or project is None:
            raise ProjectLoadError(
                code="E_STORED_PROJECT_INVALID",
                message="; ".join(str(e) for e in errors),
                file=str(p),
            )
        return project

    def save(self, project: Project) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with open(self._path(project.id), "w", encoding="utf-8") as f:
            yaml.safe_dump(
                project_to_dict(project), f, sort_keys=False, default_flow_style=False, allow_unicode=True
            )

    def list(self) -> list[ProjectSummary]:
        if not self.root.exists():
            return []
        out: list[ProjectSummary] = []
        for p in sorted(self.root.glob("*.yaml")):
            try:
                project = self.load(p.stem)
            except CanvasError as e:
                logger.warning("skipping unreadable project %s: %s", p, e)
                continue
            if project is not None:
                out.append(_summary(project))
        return out

    def delete(self, project_id: str) -> bool:
        p = self._path(project_id)
        if not p.exists():
            return False
        p.unlink()
        return True


def new_project(
    repository: ProjectRepository,
    project_id: str,
    name: str,
    description: str = "",
    *,
    clock: Callable[[], float] = time.time,
) -> Project:
    project = Project(
        id=project_id,
        name=name,
        description=description,
        outline=STARTER_OUTLINE,
        last_modified=clock(),
    )
    repository.save(project)
    return project


def toggle_completion(
    repository: ProjectRepository, project_id: str, *, clock: Callable[[], float] = time.time
) -> Optional[Project]:
    project = repository.load(project_id)
    if project is None:
        return None
    updated = replace(project, completed=not project.completed, last_modified=clock())
    repository.save(updated)
    return updated


def _summary(project: Project) -> ProjectSummary:
    return ProjectSummary(
        id=project.id,
        name=project.name,
        description=project.description,
        last_modified=project.last_modified,
        completed=project.completed,
    )
