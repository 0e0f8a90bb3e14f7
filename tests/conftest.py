"""Shared fakes and fixtures for flowgate tests."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from flowgate.contracts import (
    AgentAction,
    AgentActionResult,
    Blueprint,
    StepRequirements,
    StepType,
    Workflow,
    WorkflowAssignee,
    WorkflowStatus,
    WorkflowStep,
)
from flowgate.events import EventNotifier, EventRecorder
from flowgate.executor import StepExecutor
from flowgate.orchestrator import ExecutionOrchestrator, InMemoryWorkflowCatalog
from flowgate.persistence.inmemory import InMemoryRepository
from flowgate.scheduler import ManualScheduler


class ScriptedCapability:
    """Agent capability that replays scripted results per step id.

    Each script entry is an ``AgentActionResult``, an exception to raise, or a
    callable taking the call record. The last entry repeats.
    """

    def __init__(self, scripts: Optional[Dict[str, List[Any]]] = None) -> None:
        self.scripts = scripts or {}
        self.calls: List[Dict[str, Any]] = []

    async def execute(self, step, blueprint, guidance_context, integrations):
        call = {
            "step_id": step.id,
            "blueprint": blueprint,
            "guidance_context": guidance_context,
            "integrations": integrations,
        }
        self.calls.append(call)
        script = self.scripts.get(step.id) or [AgentActionResult(message=f"did {step.label}")]
        seen = sum(1 for c in self.calls if c["step_id"] == step.id)
        entry = script[min(seen, len(script)) - 1]
        if callable(entry) and not isinstance(entry, AgentActionResult):
            entry = await entry(call)
        if isinstance(entry, BaseException):
            raise entry
        return entry

    def calls_for(self, step_id: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["step_id"] == step_id]


def build_workflow(status: WorkflowStatus = WorkflowStatus.ACTIVE) -> Workflow:
    """Trigger, blueprint-governed AI action, end."""
    return Workflow(
        id="wf-invoice",
        name="Invoice approval",
        status=status,
        assignee=WorkflowAssignee(stakeholder_name="Ava"),
        steps=[
            WorkflowStep(id="receive", label="Receive invoice", type=StepType.TRIGGER, order=0),
            WorkflowStep(
                id="notify",
                label="Notify finance",
                type=StepType.ACTION,
                order=1,
                requirements=StepRequirements(
                    blueprint=Blueprint(green_list=["send email"], red_list=["delete record"]),
                    integrations={"gmail": True},
                ),
            ),
            WorkflowStep(id="done", label="Done", type=StepType.END, order=2),
        ],
    )


def send_email() -> AgentActionResult:
    return AgentActionResult(
        actions=[AgentAction(type="send_email", description="to finance")],
        message="Drafted email to finance",
    )


@pytest.fixture
def workflow() -> Workflow:
    return build_workflow()


@pytest.fixture
def catalog(workflow) -> InMemoryWorkflowCatalog:
    return InMemoryWorkflowCatalog([workflow])


@pytest.fixture
def capability() -> ScriptedCapability:
    return ScriptedCapability({"notify": [send_email()]})


@pytest.fixture
def recorder() -> EventRecorder:
    return EventRecorder()


@pytest.fixture
def notifier(recorder) -> EventNotifier:
    notifier = EventNotifier()
    notifier.subscribe(recorder)
    return notifier


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def orchestrator(catalog, capability, notifier, scheduler, repository) -> ExecutionOrchestrator:
    return ExecutionOrchestrator(
        catalog,
        StepExecutor(capability),
        notifier,
        repository=repository,
        scheduler=scheduler,
        step_delay=0.5,
    )
