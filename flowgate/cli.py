"""Command line interface for running and testing flowgate workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

import typer

from flowgate.activity import ActivityLog
from flowgate.agent import PydanticAIAgentCapability
from flowgate.blueprint import BlueprintEvaluator
from flowgate.config import FlowgateConfig, load_config
from flowgate.contracts import ReviewActionType
from flowgate.errors import FlowgateError
from flowgate.events import EventNotifier
from flowgate.executor import StepExecutor
from flowgate.loader import load_definition
from flowgate.orchestrator import ExecutionOrchestrator, InMemoryWorkflowCatalog
from flowgate.persistence import get_repository
from flowgate.resume import HttpResumeSender
from flowgate.review import ReviewGate
from flowgate.scheduler import AsyncioScheduler
from flowgate.testing.assertions import assertion_types
from flowgate.testing.coordinator import TestRunCoordinator
from flowgate.testing.models import TestRunOptions, TestRunStatus
from flowgate.transports import get_transport

app = typer.Typer(help="CLI for flowgate workflows")

workflow_app = typer.Typer(help="Run workflows")
execution_app = typer.Typer(help="Inspect recorded executions")
test_app = typer.Typer(help="Run and inspect workflow test runs")
assertion_app = typer.Typer(help="Assertion reference")

app.add_typer(workflow_app, name="workflow")
app.add_typer(execution_app, name="execution")
app.add_typer(test_app, name="test")
app.add_typer(assertion_app, name="assertion")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Logging level, e.g. DEBUG"),
) -> None:
    """flowgate CLI entry point."""
    config = load_config()
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _print_event(event) -> None:
    prefix = {"workflow_update": "*", "review_needed": "?", "completed": "="}[event.kind]
    step = f" [{event.step_id}]" if event.step_id else ""
    typer.echo(f"{prefix}{step} {event.message or event.kind}")


async def _run_workflow(
    path: Path,
    config: FlowgateConfig,
    assignee: Optional[str],
    auto_approve: bool,
    step_delay: float,
) -> str:
    workflow, _ = load_definition(path)
    repository = get_repository(config=config)
    notifier = EventNotifier(transport=get_transport(config=config))
    notifier.subscribe(_print_event)
    ActivityLog(repository).attach(notifier)

    evaluator = BlueprintEvaluator(config.blueprint.default_policy)
    executor = StepExecutor(PydanticAIAgentCapability(config.agent.model, evaluator), evaluator)
    scheduler = AsyncioScheduler()
    orchestrator = ExecutionOrchestrator(
        InMemoryWorkflowCatalog([workflow]),
        executor,
        notifier,
        repository=repository,
        scheduler=scheduler,
        step_delay=step_delay,
    )
    sender = HttpResumeSender(config.resume) if config.resume.base_url else None
    gate = ReviewGate(
        orchestrator,
        repository,
        resume_sender=sender,
        on_reject=config.orchestrator.on_reject,
    )

    await orchestrator.start(workflow.id, assignee)
    try:
        return await _review_loop(workflow.id, orchestrator, gate, scheduler, auto_approve)
    finally:
        await gate.wait_for_deliveries()


async def _stop(workflow_id: str, orchestrator: ExecutionOrchestrator, reason: str) -> str:
    state = orchestrator.get_state(workflow_id)
    if not state.is_terminal:
        await orchestrator.cancel(workflow_id, reason)
    return orchestrator.get_state(workflow_id).status.value


async def _review_loop(
    workflow_id: str,
    orchestrator: ExecutionOrchestrator,
    gate: ReviewGate,
    scheduler: AsyncioScheduler,
    auto_approve: bool,
) -> str:
    while True:
        await scheduler.drain()
        state = orchestrator.get_state(workflow_id)
        if state.is_terminal:
            return state.status.value
        pending = gate.pending(workflow_id)
        if not pending:
            return state.status.value
        item = pending[0]
        if auto_approve:
            if item.action.type is ReviewActionType.ERROR:
                typer.secho(item.action.payload.get("message", "Step failed"), fg=typer.colors.RED)
                await gate.reject(item, reviewer_notes="errors are not auto-approved")
                return await _stop(workflow_id, orchestrator, "Step failed under --auto-approve")
            await gate.approve(item, reviewer_notes="auto-approved")
            continue

        typer.echo(json.dumps(item.action.payload, indent=2, default=str))
        choice = typer.prompt("approve / reject / guidance", default="approve").strip().lower()
        if choice.startswith("g"):
            answer = typer.prompt("Guidance")
            await gate.provide_guidance(item.step_id, answer, workflow_id)
            await gate.approve(item)
        elif choice.startswith("r"):
            await gate.reject(item)
            return await _stop(workflow_id, orchestrator, "Rejected from the command line")
        else:
            await gate.approve(item)


@workflow_app.command("run")
def workflow_run(
    path: Path,
    assignee: Optional[str] = typer.Option(None, help="Digital worker name override"),
    auto_approve: bool = typer.Option(False, help="Approve every review automatically"),
    step_delay: Optional[float] = typer.Option(None, help="Seconds between steps"),
) -> None:
    """
    Execute a workflow definition with the configured agent.

    Prints every event as it arrives. When a step needs review you are asked
    to approve, reject or give guidance, unless --auto-approve is set.

    Example:
        flowgate workflow run workflows/invoice.yaml --assignee Ava
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    config = load_config()
    delay = step_delay if step_delay is not None else config.orchestrator.step_delay
    try:
        status = asyncio.run(_run_workflow(path, config, assignee, auto_approve, delay))
    except FlowgateError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Execution {status}")
    if status != "completed":
        raise typer.Exit(code=1)


@execution_app.command("list")
def execution_list(workflow_id: Optional[str] = None) -> None:
    """List recorded executions with their status."""
    repo = get_repository()
    executions = asyncio.run(repo.list_executions(workflow_id))
    if not executions:
        typer.echo("No executions found")
        return
    for record in executions:
        flag = " (test)" if record.is_test_run else ""
        typer.echo(f"{record.id}\t{record.workflow_id}\t{record.status.value}{flag}")


@execution_app.command("show")
def execution_show(execution_id: str) -> None:
    """Show an execution and its step history."""
    repo = get_repository()
    record = asyncio.run(repo.get_execution(execution_id))
    if record is None:
        typer.echo("Execution not found")
        raise typer.Exit(code=1)
    typer.echo(f"Execution {record.id}: {record.status.value}")
    typer.echo(f"Workflow: {record.workflow_id}")
    if record.digital_worker_name:
        typer.echo(f"Worker: {record.digital_worker_name}")
    if record.error_message:
        typer.echo(f"Error: {record.error_message}")
    for step in record.steps:
        duration = f" ({step.duration_ms}ms)" if step.duration_ms is not None else ""
        typer.echo(f"- {step.label}: {step.status}{duration}")


async def _run_tests(path: Path, case_name: Optional[str], config: FlowgateConfig):
    workflow, cases = load_definition(path)
    if case_name is not None:
        cases = [c for c in cases if c.name == case_name or c.id == case_name]
        if not cases:
            raise typer.BadParameter(f"No test case named {case_name}")

    repository = get_repository(config=config)
    coordinator = TestRunCoordinator(repository)
    runs = []
    for case in cases or [None]:
        options = TestRunOptions(workflow_id=workflow.id)
        if case is not None:
            await repository.save_test_case(case)
            options.test_case_id = case.id
        run = await coordinator.run(workflow, options)
        runs.append((case, run, await coordinator.list_step_results(run.id)))
    return runs


@test_app.command("run")
def test_run(
    workflow: Path,
    case: Optional[str] = typer.Option(None, help="Name or id of a single test case"),
) -> None:
    """
    Run a workflow's test cases against mock data.

    Exits with code 1 unless every run passed.

    Example:
        flowgate test run workflows/invoice.yaml --case "happy path"
    """
    if not workflow.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    runs = asyncio.run(_run_tests(workflow, case, load_config()))

    ok = True
    for test_case, run, steps in runs:
        title = test_case.name if test_case else "ad hoc"
        typer.echo(f"{title}: {run.status.value} ({run.id})")
        for step in steps:
            typer.echo(f"  step {step.step_name}: {step.status.value}")
            if step.error:
                typer.echo(f"    {step.error}")
        for result in run.assertion_results:
            mark = "PASS" if result.passed else "FAIL"
            typer.echo(f"  {mark} {result.assertion_name}: {result.message}")
        ok = ok and run.status is TestRunStatus.PASSED
    if not ok:
        raise typer.Exit(code=1)


@test_app.command("list")
def test_list(workflow_id: Optional[str] = None) -> None:
    """List recorded test runs, newest first."""
    repo = get_repository()
    runs = asyncio.run(repo.list_test_runs(workflow_id))
    if not runs:
        typer.echo("No test runs found")
        return
    for run in runs:
        typer.echo(
            f"{run.id}\t{run.workflow_id}\t{run.status.value}\t"
            f"{run.passed_assertions}/{run.total_assertions}"
        )


@test_app.command("show")
def test_show(test_run_id: str) -> None:
    """Show a test run with its step and assertion results."""
    repo = get_repository()
    run = asyncio.run(repo.get_test_run(test_run_id))
    if run is None:
        typer.echo("Test run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Test run {run.id}: {run.status.value}")
    if run.error_message:
        step = f" in step {run.error_step_id}" if run.error_step_id else ""
        typer.echo(f"Error{step}: {run.error_message}")
    for step in asyncio.run(repo.list_test_step_results(run.id)):
        typer.echo(f"- {step.step_name}: {step.status.value}")
    for result in run.assertion_results:
        mark = "PASS" if result.passed else "FAIL"
        typer.echo(f"{mark} {result.assertion_name}: {result.message}")


@assertion_app.command("types")
def assertion_types_command() -> None:
    """List the available assertion types."""
    for entry in assertion_types():
        needs = "expected value" if entry["requires_expected_value"] else "no expected value"
        typer.echo(f"{entry['type']}\t{entry['label']}: {entry['description']} ({needs})")


if __name__ == "__main__":
    app()
