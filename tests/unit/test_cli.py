import asyncio

import pytest
from typer.testing import CliRunner

from agentric.cli import app
from agentric.persistence import SQLiteWorkflowRepository


@pytest.fixture
def db_path(tmp_path, monkeypatch):
    path = tmp_path / "cli.db"
    monkeypatch.setenv("AGENTRIC_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("AGENTRIC_DATABASE_URL", f"sqlite://{path}")
    return path


def _stored_workflows(path):
    repo = SQLiteWorkflowRepository(path)
    try:
        return asyncio.run(repo.list_workflows())
    finally:
        repo.close()


def test_templates_command_lists_defaults(db_path):
    runner = CliRunner()
    result = runner.invoke(app, ["templates"])

    assert result.exit_code == 0, result.output
    for name in ("learning_assessment", "content_adaptation", "error_resolution", "agent_creation"):
        assert name in result.output


def test_workflow_run_persists_result(db_path):
    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "workflow",
            "run",
            "content_adaptation",
            "--param",
            "activityType=story",
            "--priority",
            "high",
            "--latency",
            "0",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "completed" in result.output
    assert "generate_content: completed (content-generator-001)" in result.output

    workflows = _stored_workflows(db_path)
    assert len(workflows) == 1
    stored = workflows[0].workflow
    assert stored.status.value == "completed"
    assert stored.get_step("generate_content").input_data["contentType"] == "story"


def test_workflow_run_unknown_template(db_path):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "run", "nope", "--latency", "0"])

    assert result.exit_code == 1
    assert "Workflow template not found: nope" in result.output


def test_workflow_run_rejects_malformed_param(db_path):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "run", "error_resolution", "-p", "novalue"])

    assert result.exit_code != 0


def test_workflow_list_and_show(db_path):
    runner = CliRunner()
    run = runner.invoke(app, ["workflow", "run", "error_resolution", "--latency", "0"])
    assert run.exit_code == 0, run.output
    workflow_id = _stored_workflows(db_path)[0].workflow_id

    listed = runner.invoke(app, ["workflow", "list"])
    assert listed.exit_code == 0, listed.output
    assert workflow_id in listed.output
    assert "error_resolution" in listed.output

    completed = runner.invoke(app, ["workflow", "list", "--status", "completed"])
    assert workflow_id in completed.output
    failed = runner.invoke(app, ["workflow", "list", "--status", "failed"])
    assert "No workflows found" in failed.output

    shown = runner.invoke(app, ["workflow", "show", workflow_id])
    assert shown.exit_code == 0, shown.output
    assert workflow_id in shown.output
    assert "analyze_error: completed [error-handler-001]" in shown.output
    assert "Execution 1: completed" in shown.output


def test_workflow_show_missing(db_path):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "show", "missing-id"])

    assert result.exit_code == 1
    assert "Workflow not found" in result.output


def test_workflow_list_empty(db_path):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "list"])

    assert result.exit_code == 0
    assert "No workflows found" in result.output


def test_workflow_run_serves_every_capability_of_the_template(db_path):
    runner = CliRunner()
    result = runner.invoke(app, ["workflow", "run", "agent_creation", "--latency", "0"])

    assert result.exit_code == 0, result.output
    assert "design_agent: completed (agent-design-001)" in result.output
    assert "deploy_agent: completed (agent-deployment-001)" in result.output

    stored = _stored_workflows(db_path)[0].workflow
    assert all(step.status.value == "completed" for step in stored.steps)
