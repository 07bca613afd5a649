"""Command line interface for running and inspecting workflows."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import typer
import yaml

from agentric import (
    CapabilityRegistry,
    ProcessManager,
    TemplateRegistry,
    WorkflowOrchestrator,
    get_repository,
    load_config,
)
from agentric.dispatch import DEFAULT_CAPABILITY_AGENTS, register_simulated_handlers
from agentric.errors import AgentricError
from agentric.workflow import WorkflowExecution, WorkflowStatus

app = typer.Typer(help="CLI for agentric workflows")

workflow_app = typer.Typer(help="Commands for running and inspecting workflows")

app.add_typer(workflow_app, name="workflow")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override the configured log level"
    ),
) -> None:
    """Agentric CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _parse_params(values: Optional[List[str]]) -> Dict[str, Any]:
    """Turn ``key=value`` pairs into a parameter dict; values are YAML scalars."""
    params: Dict[str, Any] = {}
    for item in values or []:
        key, sep, raw = item.partition("=")
        if not sep or not key:
            raise typer.BadParameter(f"Expected key=value, got {item!r}", param_hint="--param")
        params[key.strip()] = yaml.safe_load(raw) if raw else ""
    return params


def _simulated_capabilities(registry: TemplateRegistry, template: str) -> List[str]:
    """Built-in capabilities plus whatever else ``template`` asks for."""
    capabilities = list(DEFAULT_CAPABILITY_AGENTS)
    if template in registry:
        for step in registry.get(template).steps:
            if step.required_capability not in capabilities:
                capabilities.append(step.required_capability)
    return capabilities


@app.command("templates")
def templates() -> None:
    """List the workflow templates that can be run."""
    registry = TemplateRegistry.with_defaults()
    for name in registry.names():
        template = registry.get(name)
        typer.echo(f"{name}\t{template.name} ({len(template.steps)} steps)")


@workflow_app.command("run")
def workflow_run(
    template: str,
    param: Optional[List[str]] = typer.Option(
        None, "--param", "-p", help="Workflow parameter as key=value (repeatable)"
    ),
    priority: Optional[str] = typer.Option(
        None, help="Workflow priority: low, medium, high or critical"
    ),
    latency: float = typer.Option(
        0.5, help="Seconds each simulated handler takes to answer"
    ),
) -> None:
    """
    Execute a workflow template against simulated capability handlers.

    The workflow and its execution record are saved to the configured
    repository, so they can be inspected afterwards with 'workflow show'.

    Example:
        agentric workflow run content_adaptation -p activityType=story -p difficulty=easy
        agentric workflow run error_resolution --priority critical --latency 0
    """
    params = _parse_params(param)
    if priority:
        params["priority"] = priority

    config = load_config()
    registry = TemplateRegistry.with_defaults()
    capabilities = CapabilityRegistry()
    register_simulated_handlers(
        capabilities, _simulated_capabilities(registry, template), latency=latency
    )
    repo = get_repository(config=config)
    orchestrator = WorkflowOrchestrator(
        templates=registry,
        capabilities=capabilities,
        process_manager=ProcessManager(settings=config.process),
        repository=repo,
        settings=config.workflow,
    )

    async def _run() -> WorkflowExecution:
        workflow_id = await orchestrator.create_workflow(template, params)
        return await orchestrator.execute_workflow(workflow_id)

    try:
        execution = asyncio.run(_run())
    except (AgentricError, ValueError) as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    finally:
        repo.close()

    typer.echo(f"Workflow {execution.workflow_id}: {execution.status.value}")
    for record in execution.steps:
        typer.echo(
            f"- {record.step_id}: {record.status.value}"
            + (f" ({record.agent_id})" if record.agent_id else "")
            + (f" {record.error}" if record.error else "")
        )
    if execution.status is WorkflowStatus.FAILED:
        raise typer.Exit(code=1)


@workflow_app.command("list")
def workflow_list(
    status: Optional[str] = typer.Option(
        None, help="Only show workflows in this status, e.g. failed"
    ),
) -> None:
    """List persisted workflows with their current status."""
    repo = get_repository()
    try:
        workflows = asyncio.run(repo.list_workflows(status))
    finally:
        repo.close()
    if not workflows:
        typer.echo("No workflows found")
        return
    for record in workflows:
        typer.echo(f"{record.workflow_id}\t{record.status}\t{record.workflow.template_name}")


@workflow_app.command("show")
def workflow_show(workflow_id: str) -> None:
    """
    Show a persisted workflow, its steps and its execution history.

    Example:
        agentric workflow show workflow-2f0c...
        # Output: Workflow workflow-2f0c... (Intelligent Error Resolution): completed
        #         - analyze_error: completed [error-handler-001]
        #         Execution 1: completed in 12ms
    """
    repo = get_repository()
    try:
        record = asyncio.run(repo.get_workflow(workflow_id))
    finally:
        repo.close()
    if record is None:
        typer.echo("Workflow not found")
        raise typer.Exit(code=1)

    workflow = record.workflow
    typer.echo(f"Workflow {workflow.id} ({workflow.name}): {workflow.status.value}")
    typer.echo(f"Priority: {workflow.priority.value}")
    for step in workflow.steps:
        typer.echo(
            f"- {step.id}: {step.status.value}"
            + (f" [{step.agent_id}]" if step.agent_id else "")
            + (f" {step.error}" if step.error else "")
        )
    for index, execution in enumerate(record.executions, start=1):
        duration = f" in {execution.duration_ms:.0f}ms" if execution.duration_ms is not None else ""
        typer.echo(f"Execution {index}: {execution.status.value}{duration}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
