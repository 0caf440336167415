from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any

import typer
import yaml
from rich.console import Console
from rich.tree import Tree

from plan_canvas.core.derive.derive_tasks import derive_task_specifications
from plan_canvas.core.derive.readiness import READINESS_STRATEGIES, ReadinessStrategy
from plan_canvas.core.errors import CanvasError, GraphMutationError, ProjectLoadError, ProjectValidationError
from plan_canvas.core.graph_model import GraphModel, status_hints
from plan_canvas.core.io.load_project import dump_project_yaml, load_project, project_to_dict
from plan_canvas.core.layout.layout_config import LayoutConfig, LayoutConfigError, load_and_merge
from plan_canvas.core.layout.layout_graph import check_layout
from plan_canvas.core.lint.lint_project import lint_project
from plan_canvas.core.model import DIRECTIONS, Derivation, Diagram, Project, TaskForest
from plan_canvas.core.validate.validate_project import validate_project

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback(
    log_level: str = typer.Option("WARNING", "--log-level", help="Logging level for diagnostics"),
) -> None:
    """Plan canvas CLI."""
    logging.basicConfig(level=log_level.upper(), format="%(levelname)s %(name)s: %(message)s")


@app.command("derive")
def derive(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json/.md)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
    readiness: str = typer.Option("none", "--readiness", help="Readiness strategy: none|prerequisite"),
) -> None:
    """Derive the task forest, retained relationships and retained status."""
    _check_format(format, ("text", "json"), "E_DERIVE_UNKNOWN_FORMAT")
    strategy = _readiness(readiness)
    project = _load_valid(path)

    derivation = derive_task_specifications(
        project.outline, project.task_metadata, project.relationships, strategy
    )

    if format == "json":
        payload = {
            "tool": "plan-canvas",
            "command": "derive",
            "ok": True,
            "tasks": [_task_item(derivation.forest, tid) for tid in derivation.forest.root_ids],
            "relationships": [
                {"id": r.id, "source_id": r.source_id, "target_id": r.target_id}
                for r in derivation.relationships
            ],
            "task_metadata": {
                tid: {"id": m.id, "status": m.status} for tid, m in derivation.task_metadata.items()
            },
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        return

    if len(derivation.forest) == 0:
        typer.echo("No tasks.")
        return
    for task in derivation.forest.walk():
        ready = " ready" if task.ready else ""
        typer.echo(f"{'  ' * _level(derivation.forest, task.id)}- [{task.status}{ready}] {task.description} ({task.id})")
    for r in derivation.relationships:
        typer.echo(f"{r.source_id} -> {r.target_id} ({r.id})")


@app.command("tree")
def tree(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json/.md)"),
    readiness: str = typer.Option("prerequisite", "--readiness", help="Readiness strategy: none|prerequisite"),
) -> None:
    """Print the task forest as a tree with rolled-up status."""
    strategy = _readiness(readiness)
    project = _load_valid(path)
    derivation = derive_task_specifications(
        project.outline, project.task_metadata, project.relationships, strategy
    )
    console = Console()
    console.print(_rich_tree(project.name or project.id, derivation))


@app.command("layout")
def layout(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json/.md)"),
    direction: str = typer.Option("", "--direction", help="Layout direction: TB|LR (default: project's)"),
    config_file: str | None = typer.Option(None, "--config", help="Optional YAML file overriding layout spacing"),
    format: str = typer.Option("json", "--format", help="Output format: json|yaml"),
    out: str | None = typer.Option(None, "--out", help="Write the diagram here instead of stdout"),
    readiness: str = typer.Option("none", "--readiness", help="Readiness strategy: none|prerequisite"),
    check: bool = typer.Option(False, "--check", help="Fail if boxes overlap or escape their group"),
) -> None:
    """Compute sizes and positions for every task box."""
    _check_format(format, ("json", "yaml"), "E_LAYOUT_UNKNOWN_FORMAT")
    strategy = _readiness(readiness)
    config = _layout_config(config_file)
    project = _load_valid(path)

    chosen = direction or project.direction
    if chosen not in DIRECTIONS:
        _fail(
            GraphMutationError(
                code="E_DIRECTION_INVALID",
                message=f"direction must be one of {list(DIRECTIONS)}, got {chosen}",
                path="direction",
            ),
            code=2,
        )

    model = GraphModel(
        project.outline,
        task_metadata=project.task_metadata,
        relationships=project.relationships,
        direction=chosen,  # type: ignore[arg-type]
        config=config,
        readiness=strategy,
    )
    payload = diagram_to_dict(model.diagram)

    if format == "json":
        text = json.dumps(payload, indent=2)
    else:
        text = yaml.safe_dump(payload, sort_keys=False, default_flow_style=False, allow_unicode=True)

    if out:
        with open(out, "w", encoding="utf-8") as f:
            f.write(text if text.endswith("\n") else text + "\n")
        typer.echo(f"OK: wrote diagram to {out}")
    else:
        typer.echo(text.rstrip("\n"))

    if check:
        problems = check_layout(model.diagram.nodes, config)
        if problems:
            for p in problems:
                typer.echo(f"layout: {p}", err=True)
            raise typer.Exit(code=2)


@app.command("lint")
def lint(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json/.md)"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Report relationships, status and outline entries that derivation would drop."""
    _check_format(format, ("text", "json"), "E_LINT_UNKNOWN_FORMAT")

    def _to_item(e: CanvasError) -> dict:
        code = getattr(e, "code", "E_UNKNOWN")
        source = (
            "lint" if code.startswith("L_") else "validate" if code.startswith("E_") else "unknown"
        )
        if isinstance(e, ProjectLoadError):
            source = "load"
        return {
            "code": e.code,
            "message": e.message,
            "file": e.file,
            "path": e.path,
            "severity": "error",
            "source": source,
        }

    def _emit_json(ok: bool, errors: list[CanvasError], exit_code: int) -> None:
        payload = {
            "tool": "plan-canvas",
            "command": "lint",
            "ok": ok,
            "error_count": len(errors),
            "errors": [_to_item(e) for e in errors],
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        doc = load_project(path)
    except ProjectLoadError as e:
        if format == "json":
            _emit_json(False, [e], 1)
        _print_errors([e])
        raise typer.Exit(code=1)

    project, validation_errors = validate_project(doc)
    errors: list[CanvasError] = list(validation_errors)
    if project is not None:
        errors += lint_project(project, file=doc.get("__file__"))

    if format == "json":
        _emit_json(not errors, errors, 2 if errors else 0)

    if errors:
        _print_errors(errors)
        raise typer.Exit(code=2)
    typer.echo("OK: lint passed")


@app.command("connect")
def connect(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json/.md)"),
    source: str = typer.Argument(..., help="Prerequisite task id"),
    target: str = typer.Argument(..., help="Dependent task id"),
    out: str = typer.Option(..., "--out", help="Path to write the updated YAML project"),
) -> None:
    """Add a relationship between two root tasks or two sibling tasks."""
    project = _load_valid(path)
    model = _model_for(project)
    try:
        rel = model.connect(source, target)
    except GraphMutationError as e:
        _fail(replace(e, file=path), code=2)
    _write_project(project, model, out)
    typer.echo(f"OK: added {rel.id} ({rel.source_id} -> {rel.target_id}); wrote {out}")


@app.command("disconnect")
def disconnect(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json/.md)"),
    relationship_id: str = typer.Argument(..., help="Relationship id to remove"),
    out: str = typer.Option(..., "--out", help="Path to write the updated YAML project"),
) -> None:
    """Remove a relationship by id."""
    project = _load_valid(path)
    model = _model_for(project)
    try:
        rel = model.disconnect(relationship_id)
    except GraphMutationError as e:
        _fail(replace(e, file=path), code=2)
    _write_project(project, model, out)
    typer.echo(f"OK: removed {rel.id}; wrote {out}")


@app.command("status")
def status(
    path: str = typer.Argument(..., help="Path to a project file (.yaml/.yml/.json/.md)"),
    task_id: str = typer.Argument(..., help="Task id (must not have sub-tasks)"),
    value: str = typer.Argument(..., help="pending|in_progress|completed"),
    out: str = typer.Option(..., "--out", help="Path to write the updated YAML project"),
) -> None:
    """Set the status of a leaf task."""
    project = _load_valid(path)
    model = _model_for(project)
    try:
        model.set_status(task_id, value)
    except GraphMutationError as e:
        _fail(replace(e, file=path), code=2)
    _write_project(project, model, out)
    typer.echo(f"OK: {task_id} is {value}; wrote {out}")


def diagram_to_dict(diagram: Diagram) -> dict[str, Any]:
    return {
        "direction": diagram.direction,
        "nodes": [
            {
                "id": n.id,
                "parent_id": n.parent_id,
                "label": n.label,
                "status": n.status_hint,
                "is_group": n.is_group,
                "position": {"x": n.x, "y": n.y},
                "absolute": {"x": n.abs_x, "y": n.abs_y},
                "size": {"width": n.width, "height": n.height},
            }
            for n in diagram.nodes
        ],
        "edges": [{"id": e.id, "source": e.source, "target": e.target} for e in diagram.edges],
    }


def _task_item(forest: TaskForest, task_id: str) -> dict[str, Any]:
    task = forest.tasks_by_id[task_id]
    return {
        "id": task.id,
        "description": task.description,
        "status": task.status,
        "ready": bool(task.ready),
        "depth": task.depth,
        "parent_id": task.parent_id,
        "sub_tasks": [_task_item(forest, cid) for cid in task.sub_task_ids],
    }


def _rich_tree(title: str, derivation: Derivation) -> Tree:
    forest = derivation.forest
    hints = status_hints(forest)
    root = Tree(f"[bold]{title}[/bold]")
    branches: dict[str, Tree] = {}
    for task in forest.walk():
        parent = branches[task.parent_id] if task.parent_id else root
        style = {"completed": "green", "in_progress": "yellow"}.get(hints[task.id].replace("_ready", ""), "dim")
        marker = " [bold green]ready[/bold green]" if task.ready else ""
        branches[task.id] = parent.add(f"[{style}]{task.description}[/{style}] ({task.id}){marker}")
    if not branches:
        root.add("[dim]no tasks[/dim]")
    return root


def _level(forest: TaskForest, task_id: str) -> int:
    level = 0
    parent = forest.parent_of(task_id)
    while parent is not None:
        level += 1
        parent = forest.parent_of(parent)
    return level


def _model_for(project: Project) -> GraphModel:
    return GraphModel(
        project.outline,
        task_metadata=project.task_metadata,
        relationships=project.relationships,
        direction=project.direction,
    )


def _write_project(project: Project, model: GraphModel, out: str) -> None:
    updated = replace(
        project,
        relationships=tuple(model.relationships),
        task_metadata=model.task_metadata,
    )
    dump_project_yaml(project_to_dict(updated), out)


def _load_valid(path: str) -> Project:
    try:
        doc = load_project(path)
    except ProjectLoadError as e:
        _fail(e, code=1)

    project, errors = validate_project(doc)
    if errors or project is None:
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    return project


def _layout_config(config_file: str | None) -> LayoutConfig:
    try:
        return load_and_merge(config_file)
    except FileNotFoundError:
        _fail(
            ProjectLoadError(
                code="E_LAYOUT_CONFIG_NOT_FOUND",
                message=f"layout config file not found: {config_file}",
                file=None,
                path="config",
            ),
            code=1,
        )
    except (LayoutConfigError, yaml.YAMLError) as e:
        _fail(
            ProjectValidationError(
                code="E_LAYOUT_CONFIG_INVALID",
                message=str(e),
                file=config_file,
                path="config",
            ),
            code=2,
        )


def _readiness(name: str) -> ReadinessStrategy:
    if name not in READINESS_STRATEGIES:
        _fail(
            ProjectValidationError(
                code="E_UNKNOWN_READINESS",
                message=f"unknown readiness strategy: {name} (choose one of: {', '.join(sorted(READINESS_STRATEGIES))})",
                file=None,
                path="readiness",
            ),
            code=2,
        )
    return READINESS_STRATEGIES[name]


def _check_format(format: str, allowed: tuple[str, ...], code: str) -> None:
    if format not in allowed:
        _fail(
            ProjectValidationError(
                code=code,
                message=f"unknown format: {format} (choose one of: {', '.join(allowed)})",
                file=None,
                path="format",
            ),
            code=2,
        )


def _fail(error: CanvasError, *, code: int) -> None:
    _print_errors([error])
    raise typer.Exit(code=code)


def _print_errors(errors: list[CanvasError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="plan-canvas")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
