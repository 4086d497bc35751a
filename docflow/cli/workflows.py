"""
DocFlow - Workflow CLI Commands

Commands for working with instructions: classify, plan, run.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from docflow.orchestration import (
    AgentType,
    InMemoryTaskGateway,
    InstructionClassifier,
    InstructionOptions,
    PollingConfig,
    RetryRejectedError,
    TaskDefinition,
    UserInstruction,
    WorkflowManager,
    WorkflowManagerConfig,
    WorkflowPlan,
    WorkflowPlanBuilder,
    WorkflowStatus,
    build_step_graph,
)
from docflow.orchestration.telemetry import WorkflowTracer, setup_tracing

console = Console()

# Polling used by `run` unless a config file says otherwise
CLI_POLLING = PollingConfig(initial_delay_ms=50, elapsed_factor=0.1, max_delay_ms=500)


def _build_instruction(
    text: str,
    document_id: str,
    user_id: str,
    question_types: Optional[List[str]],
    flashcards: Optional[bool],
    summary_length: Optional[str],
) -> UserInstruction:
    options = InstructionOptions(
        summary_length=summary_length,
        question_types=tuple(question_types or ()),
        include_flashcards=flashcards,
        include_questions=bool(question_types),
    )
    return UserInstruction.create(
        user_id=user_id,
        document_id=document_id,
        instruction=text,
        options=options,
    )


def load_manager_config(path: Optional[Path]) -> WorkflowManagerConfig:
    """Load a manager config from a YAML file, or the CLI defaults."""
    if path is None:
        return WorkflowManagerConfig(polling=CLI_POLLING)

    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return WorkflowManagerConfig.from_dict(data)


def _print_plan(plan: WorkflowPlan) -> None:
    graph = build_step_graph(plan.steps)
    wave_of = {
        step_id: index
        for index, group in enumerate(graph.waves(), start=1)
        for step_id in group
    }

    table = Table(title=f"Workflow {plan.id}")
    table.add_column("Wave", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Agent", style="green")
    table.add_column("Task")
    table.add_column("Depends on")
    table.add_column("Timeout")

    for step in plan.steps:
        table.add_row(
            str(wave_of.get(step.id, "-")),
            step.id[:8],
            step.agent_type.value,
            step.task_type,
            ", ".join(dep[:8] for dep in step.dependencies) or "-",
            f"{step.timeout_ms // 1000}s" if step.timeout_ms else "default",
        )

    console.print(table)


# =============================================================================
# Commands
# =============================================================================


def classify_instruction(
    text: str = typer.Argument(..., help="Instruction text"),
):
    """Show which workflow template an instruction maps to."""
    template_id = InstructionClassifier().classify_text(text)
    console.print(f"[bold]{template_id.value}[/bold]")


def plan_instruction(
    text: str = typer.Argument(..., help="Instruction text"),
    document_id: str = typer.Option("document-1", "--document", "-d", help="Document ID"),
    user_id: str = typer.Option("cli-user", "--user", "-u", help="User ID"),
    question_types: Optional[List[str]] = typer.Option(
        None, "--questions", "-q", help="Question type to generate (repeatable)"
    ),
    flashcards: Optional[bool] = typer.Option(
        None, "--flashcards/--no-flashcards", help="Request flashcards"
    ),
    summary_length: Optional[str] = typer.Option(
        None, "--summary-length", "-s", help="Summary length: short, medium, long"
    ),
    output: str = typer.Option("table", "--output", "-o", help="Output format: table, json"),
):
    """Build the workflow plan for an instruction without running it."""
    instruction = _build_instruction(
        text, document_id, user_id, question_types, flashcards, summary_length
    )
    template_id = InstructionClassifier().classify(instruction)
    plan = WorkflowPlanBuilder().build(template_id, instruction)

    if output == "json":
        typer.echo(json.dumps(plan.to_dict(), indent=2))
        return

    console.print(f"Template: [bold]{template_id.value}[/bold]")
    _print_plan(plan)


def run_instruction(
    text: str = typer.Argument(..., help="Instruction text"),
    document_id: str = typer.Option("document-1", "--document", "-d", help="Document ID"),
    user_id: str = typer.Option("cli-user", "--user", "-u", help="User ID"),
    question_types: Optional[List[str]] = typer.Option(
        None, "--questions", "-q", help="Question type to generate (repeatable)"
    ),
    flashcards: Optional[bool] = typer.Option(
        None, "--flashcards/--no-flashcards", help="Request flashcards"
    ),
    summary_length: Optional[str] = typer.Option(
        None, "--summary-length", "-s", help="Summary length: short, medium, long"
    ),
    latency_ms: int = typer.Option(100, "--latency-ms", help="Simulated agent latency"),
    fail_task_type: Optional[str] = typer.Option(
        None, "--fail-task-type", help="Task type whose first attempt fails"
    ),
    fail_message: str = typer.Option(
        "Connection reset by agent", "--fail-message", help="Error message of the injected failure"
    ),
    retry: bool = typer.Option(False, "--retry", help="Retry the workflow once if it fails"),
    config_file: Optional[Path] = typer.Option(
        None, "--config", "-c", help="Manager config YAML file"
    ),
    otlp_endpoint: Optional[str] = typer.Option(
        None, "--otlp-endpoint", help="Export workflow spans to this OTLP gRPC endpoint"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", "-l", help="Log level"),
    output: str = typer.Option("panel", "--output", "-o", help="Output format: panel, json"),
):
    """Run an instruction's workflow against simulated agents."""
    from docflow.cli.main import configure_logging

    configure_logging(log_level)

    if config_file is not None and not config_file.exists():
        console.print(f"[red]File not found: {config_file}[/red]")
        raise typer.Exit(1)
    try:
        config = load_manager_config(config_file)
    except (yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Invalid config file: {e}[/red]")
        raise typer.Exit(1)

    instruction = _build_instruction(
        text, document_id, user_id, question_types, flashcards, summary_length
    )
    failed_once: Dict[str, bool] = {}

    async def simulated_agent(task: TaskDefinition) -> Dict[str, Any]:
        await asyncio.sleep(latency_ms / 1000.0)
        if task.type == fail_task_type and not failed_once.get(task.type):
            failed_once[task.type] = True
            raise RuntimeError(fail_message)
        return {
            "taskType": task.type,
            "documentId": task.payload.get("documentId"),
            "inputs": sorted(task.payload.get("dependencyResults", {}).keys()),
        }

    async def execute() -> WorkflowPlan:
        gateway = InMemoryTaskGateway({agent_type: simulated_agent for agent_type in AgentType})
        manager = WorkflowManager(gateway=gateway, config=config)
        provider = tracer = None
        if otlp_endpoint:
            provider = setup_tracing(otlp_endpoint)
            tracer = WorkflowTracer(tracer_provider=provider)
            tracer.start(manager.emitter)
        try:
            plan = manager.create_workflow_plan(instruction)
            await manager.execute_workflow(plan.id)
            if retry and plan.status == WorkflowStatus.FAILED:
                console.print(
                    f"[yellow]Workflow failed ({plan.last_error.message if plan.last_error else 'cancelled'}), "
                    "retrying...[/yellow]"
                )
                try:
                    await manager.retry_workflow(plan.id)
                except RetryRejectedError as e:
                    console.print(f"[yellow]Retry rejected: {e}[/yellow]")
            return plan
        finally:
            await gateway.shutdown()
            if tracer is not None:
                tracer.stop()
                # Flushes spans still queued for export
                provider.shutdown()

    try:
        plan = asyncio.run(execute())
    except Exception as e:
        console.print(f"[red]Workflow could not run: {e}[/red]")
        raise typer.Exit(1)

    if output == "json":
        typer.echo(json.dumps(plan.to_dict(), indent=2, default=str))
    else:
        _print_plan(plan)
        status_style = "green" if plan.status == WorkflowStatus.COMPLETED else "red"
        lines = [
            f"[bold]Status:[/bold] [{status_style}]{plan.status.value}[/{status_style}]",
            f"[bold]Results:[/bold] {len(plan.results)}/{len(plan.steps)}",
            f"[bold]Retries:[/bold] {plan.retry_count}",
        ]
        for error in plan.errors:
            lines.append(
                f"[red]Error[/red] step {(error.step_id or '-')[:8]}: {error.message} "
                f"(retryable={error.retryable})"
            )
        console.print(Panel("\n".join(lines), title="Result", expand=False))

    if plan.status != WorkflowStatus.COMPLETED:
        raise typer.Exit(1)
