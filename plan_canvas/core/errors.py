from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CanvasError(Exception):
    """Coded error with an optional location; printed as `loc: code: message`."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<project>"
        return f"{loc}: {self.code}: {self.message}"


class ProjectLoadError(CanvasError):
    pass


class ProjectValidationError(CanvasError):
    pass


@dataclass(frozen=True)
class GraphMutationError(CanvasError):
    """A connect/disconnect/status/direction change was rejected; state is unchanged.

    `task_ids` names the tasks the rejected edit referred to, and
    `relationship_id` the relationship for a failed disconnect.
    """

    task_ids: tuple[str, ...] = ()
    relationship_id: Optional[str] = None
