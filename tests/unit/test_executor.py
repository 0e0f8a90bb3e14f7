"""Step executor tests."""

import pytest

from flowgate.contracts import (
    AgentAction,
    AgentActionResult,
    Blueprint,
    StepAssignee,
    StepRequirements,
    StepType,
    WorkflowStep,
)
from flowgate.errors import BlueprintViolationError, GuidanceRequested, StepExecutionError
from flowgate.executor import StepExecutor, StepOutcome


class FakeCapability:
    def __init__(self, result=None, error=None):
        self.result = result or AgentActionResult(message="ok")
        self.error = error
        self.calls = []

    async def execute(self, step, blueprint, guidance_context, integrations):
        self.calls.append((step.id, blueprint, guidance_context, integrations))
        if self.error is not None:
            raise self.error
        return self.result


def make_step(type_=StepType.ACTION, blueprint=None, assignee=None):
    return WorkflowStep(
        id="s1",
        label="Book travel",
        type=type_,
        assignee=assignee,
        requirements=StepRequirements(blueprint=blueprint, integrations={"calendar": True}),
    )


ACTIONS = AgentActionResult(actions=[AgentAction(type="book_flight")], message="Booked")


@pytest.mark.asyncio
async def test_human_step_completes_without_agent():
    capability = FakeCapability()
    step = make_step(assignee=StepAssignee(kind="human"))

    result = await StepExecutor(capability).execute(step)

    assert result.outcome is StepOutcome.COMPLETED
    assert result.message == "Skipped human step: Book travel"
    assert capability.calls == []


@pytest.mark.asyncio
async def test_plain_step_completes():
    capability = FakeCapability(ACTIONS)
    result = await StepExecutor(capability).execute(make_step())

    assert result.outcome is StepOutcome.COMPLETED
    assert result.message == "Booked"
    step_id, blueprint, guidance, integrations = capability.calls[0]
    assert blueprint == Blueprint()
    assert guidance is None
    assert integrations == {"calendar": True}


@pytest.mark.asyncio
async def test_blueprint_step_with_actions_needs_review():
    step = make_step(blueprint=Blueprint(green_list=["book flight"]))
    result = await StepExecutor(FakeCapability(ACTIONS)).execute(step)

    assert result.outcome is StepOutcome.NEEDS_REVIEW
    assert result.actions[0].type == "book_flight"


@pytest.mark.asyncio
async def test_blueprint_step_without_actions_completes():
    step = make_step(blueprint=Blueprint(green_list=["book flight"]))
    result = await StepExecutor(FakeCapability()).execute(step)
    assert result.outcome is StepOutcome.COMPLETED


@pytest.mark.asyncio
async def test_decision_step_always_needs_review():
    result = await StepExecutor(FakeCapability()).execute(make_step(StepType.DECISION))
    assert result.outcome is StepOutcome.NEEDS_REVIEW


@pytest.mark.asyncio
async def test_guidance_takes_priority():
    capability = FakeCapability(
        AgentActionResult(
            actions=[AgentAction(type="book_flight")],
            needs_guidance=True,
            guidance_question="Window or aisle?",
        )
    )
    result = await StepExecutor(capability).execute(make_step(StepType.DECISION))

    assert result.outcome is StepOutcome.NEEDS_GUIDANCE
    assert result.guidance_question == "Window or aisle?"


@pytest.mark.asyncio
async def test_guidance_signal_exception():
    capability = FakeCapability(error=GuidanceRequested("Which date?"))
    result = await StepExecutor(capability).execute(make_step())

    assert result.outcome is StepOutcome.NEEDS_GUIDANCE
    assert result.message == "Which date?"


@pytest.mark.asyncio
async def test_capability_error_propagates_as_step_error():
    capability = FakeCapability(error=RuntimeError("quota exceeded"))

    with pytest.raises(StepExecutionError) as exc:
        await StepExecutor(capability).execute(make_step())

    assert exc.value.step.id == "s1"
    assert "quota exceeded" in str(exc.value)


@pytest.mark.asyncio
async def test_forbidden_action_is_a_violation():
    step = make_step(blueprint=Blueprint(red_list=["book flight"]))

    with pytest.raises(BlueprintViolationError) as exc:
        await StepExecutor(FakeCapability(ACTIONS)).execute(step)

    assert exc.value.action == "book_flight"


@pytest.mark.asyncio
async def test_approved_step_completes_without_agent():
    capability = FakeCapability(ACTIONS)
    step = make_step(blueprint=Blueprint(green_list=["book flight"]))

    result = await StepExecutor(capability).execute(step, approved=True)

    assert result.outcome is StepOutcome.COMPLETED
    assert capability.calls == []
