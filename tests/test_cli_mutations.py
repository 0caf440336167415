from typer.testing import CliRunner

from plan_canvas.cli import app
from plan_canvas.core.io.load_project import load_project
from plan_canvas.core.validate.validate_project import validate_project

runner = CliRunner()


def _read(path):
    project, errors = validate_project(load_project(str(path)))
    assert errors == []
    return project


def test_cli_connect_writes_relationship(tmp_path):
    out = tmp_path / "out.yaml"
    r = runner.invoke(app, ["connect", "examples/basic-project.yaml", "task-1", "task-2", "--out", str(out)])
    assert r.exit_code == 0, r.stdout + r.stderr
    assert "rel-task-1-task-2" in r.stdout
    project = _read(out)
    assert [(x.source_id, x.target_id) for x in project.relationships] == [("task-1", "task-2")]
    assert project.name == "Project Plan"


def test_cli_connect_across_levels_rejected(tmp_path):
    out = tmp_path / "out.yaml"
    r = runner.invoke(app, ["connect", "examples/nested-project.yaml", "wireframes", "ship", "--out", str(out)])
    assert r.exit_code == 2
    out_text = r.stdout + r.stderr
    assert "E_CONNECT_LOCALITY" in out_text
    assert "Nodes must share the same parent" in out_text
    assert not out.exists()


def test_cli_disconnect(tmp_path):
    out = tmp_path / "out.yaml"
    r = runner.invoke(app, ["disconnect", "examples/nested-project.yaml", "rel-build-ship", "--out", str(out)])
    assert r.exit_code == 0, r.stdout + r.stderr
    assert "rel-build-ship" not in {x.id for x in _read(out).relationships}


def test_cli_disconnect_unknown(tmp_path):
    r = runner.invoke(
        app, ["disconnect", "examples/nested-project.yaml", "rel-nope", "--out", str(tmp_path / "o.yaml")]
    )
    assert r.exit_code == 2
    assert "E_DISCONNECT_UNKNOWN" in (r.stdout + r.stderr)


def test_cli_status_on_leaf(tmp_path):
    out = tmp_path / "out.yaml"
    r = runner.invoke(app, ["status", "examples/nested-project.yaml", "api", "in_progress", "--out", str(out)])
    assert r.exit_code == 0, r.stdout + r.stderr
    assert _read(out).task_metadata["api"].status == "in_progress"


def test_cli_status_on_group_rejected(tmp_path):
    out = tmp_path / "out.yaml"
    r = runner.invoke(app, ["status", "examples/nested-project.yaml", "backend", "completed", "--out", str(out)])
    assert r.exit_code == 2
    assert "E_STATUS_NOT_LEAF" in (r.stdout + r.stderr)
    assert not out.exists()


def test_cli_status_from_markdown(tmp_path):
    out = tmp_path / "relaunch.yaml"
    r = runner.invoke(app, ["status", "examples/basic-outline.md", "build", "completed", "--out", str(out)])
    assert r.exit_code == 0, r.stdout + r.stderr
    project = _read(out)
    assert project.id == "basic-outline"
    assert project.task_metadata["build"].status == "completed"
