from dataclasses import replace

import pytest

from plan_canvas.core.errors import ProjectLoadError
from plan_canvas.core.model import Relationship, TaskMetadata
from plan_canvas.core.store.repository import (
    STARTER_OUTLINE,
    InMemoryProjectRepository,
    YamlDirectoryRepository,
    new_project,
    toggle_completion,
)


def _clock():
    return 1700000000.0


def test_new_project_starts_from_starter_outline():
    repo = InMemoryProjectRepository()
    project = new_project(repo, "p1", "Kitchen remodel", "Spring", clock=_clock)

    assert project.outline == STARTER_OUTLINE
    assert project.last_modified == 1700000000.0
    assert repo.load("p1") == project
    assert [s.name for s in repo.list()] == ["Kitchen remodel"]


def test_in_memory_delete():
    repo = InMemoryProjectRepository()
    new_project(repo, "p1", "One", clock=_clock)
    assert repo.delete("p1") is True
    assert repo.delete("p1") is False
    assert repo.load("p1") is None


def test_toggle_completion():
    repo = InMemoryProjectRepository()
    new_project(repo, "p1", "One", clock=_clock)

    toggled = toggle_completion(repo, "p1", clock=lambda: 5.0)
    assert toggled.completed is True
    assert toggled.last_modified == 5.0
    assert toggle_completion(repo, "p1").completed is False
    assert toggle_completion(repo, "missing") is None


def test_yaml_repository_round_trip(tmp_path):
    repo = YamlDirectoryRepository(tmp_path / "projects")
    project = new_project(repo, "p1", "One", "desc", clock=_clock)

    assert (tmp_path / "projects" / "p1.yaml").exists()
    assert repo.load("p1") == project
    assert repo.load("missing") is None


def test_yaml_repository_keeps_relationships_and_status(tmp_path):
    repo = YamlDirectoryRepository(tmp_path)
    project = new_project(repo, "p1", "One", clock=_clock)
    project = replace(
        project,
        relationships=(Relationship(id="rel-task-1-task-2", source_id="task-1", target_id="task-2"),),
        task_metadata={"task-1": TaskMetadata(id="task-1", status="completed")},
    )
    repo.save(project)
    assert repo.load("p1") == project


def test_yaml_repository_list_and_delete(tmp_path):
    repo = YamlDirectoryRepository(tmp_path)
    new_project(repo, "a", "Alpha", clock=_clock)
    new_project(repo, "b", "Beta", clock=_clock)
    (tmp_path / "broken.yaml").write_text("- not\n- a project\n", encoding="utf-8")

    assert [s.id for s in repo.list()] == ["a", "b"]
    assert repo.delete("a") is True
    assert repo.delete("a") is False
    assert [s.id for s in repo.list()] == ["b"]


def test_yaml_repository_invalid_project(tmp_path):
    (tmp_path / "bad.yaml").write_text("schema_version: 0.1.0\noutline: nope\n", encoding="utf-8")
    repo = YamlDirectoryRepository(tmp_path)
    with pytest.raises(ProjectLoadError) as exc:
        repo.load("bad")
    assert exc.value.code == "E_STORED_PROJECT_INVALID"


def test_list_of_missing_root_is_empty(tmp_path):
    assert YamlDirectoryRepository(tmp_path / "nothing").list() == []
