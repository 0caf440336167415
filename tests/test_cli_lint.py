import json

from typer.testing import CliRunner

from plan_canvas.cli import app

runner = CliRunner()


def test_cli_lint_success():
    r = runner.invoke(app, ["lint", "examples/nested-project.yaml"])
    assert r.exit_code == 0
    assert "OK: lint passed" in r.stdout


def test_cli_lint_reports_codes():
    r = runner.invoke(app, ["lint", "examples/lint-violations.yaml"])
    assert r.exit_code == 2
    out = r.stdout + r.stderr
    for code in ("L_DANGLING_RELATIONSHIP", "L_LOCALITY_VIOLATION", "L_RELATIONSHIP_CYCLE", "L_STALE_METADATA"):
        assert code in out


def test_cli_lint_json_success():
    r = runner.invoke(app, ["lint", "examples/basic-project.yaml", "--format", "json"])
    assert r.exit_code == 0
    payload = json.loads(r.stdout)
    assert payload["command"] == "lint"
    assert payload["ok"] is True
    assert payload["error_count"] == 0
    assert payload["errors"] == []


def test_cli_lint_json_failure_contains_codes():
    r = runner.invoke(app, ["lint", "examples/lint-violations.yaml", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert payload["ok"] is False
    codes = {e["code"] for e in payload["errors"]}
    assert {"L_SELF_RELATIONSHIP", "L_STATUS_ON_GROUP"} <= codes
    assert {e["source"] for e in payload["errors"]} == {"lint"}


def test_cli_lint_json_validation_errors():
    r = runner.invoke(app, ["lint", "examples/invalid-project.yaml", "--format", "json"])
    assert r.exit_code == 2
    payload = json.loads(r.stdout)
    assert {e["source"] for e in payload["errors"]} == {"validate"}


def test_cli_lint_json_load_error():
    r = runner.invoke(app, ["lint", "examples/does-not-exist.yaml", "--format", "json"])
    assert r.exit_code == 1
    payload = json.loads(r.stdout)
    assert payload["errors"][0]["code"] == "E_FILE_NOT_FOUND"
    assert payload["errors"][0]["source"] == "load"
