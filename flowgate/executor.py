"""Single-step execution for flowgate workflows."""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .agent.capability import AgentCapability, GuidanceTranscript
from .blueprint import BlueprintEvaluator, Verdict
from .contracts import AgentAction, Blueprint, StepType, WorkflowStep
from .errors import BlueprintViolationError, GuidanceRequested, StepExecutionError

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    COMPLETED = "completed"
    NEEDS_REVIEW = "needs_review"
    NEEDS_GUIDANCE = "needs_guidance"


class StepResult(BaseModel):
    """Classification of one step attempt."""

    outcome: StepOutcome
    message: str
    actions: List[AgentAction] = Field(default_factory=list)
    guidance_question: Optional[str] = None


class StepExecutor:
    """Runs one workflow step through the agent capability.

    Every action an agent produces on a decision step, or on a step governed by
    a blueprint, is held for review before the step counts as done.
    """

    def __init__(
        self,
        capability: AgentCapability,
        evaluator: Optional[BlueprintEvaluator] = None,
    ) -> None:
        self._capability = capability
        self._evaluator = evaluator or BlueprintEvaluator()

    async def execute(
        self,
        step: WorkflowStep,
        guidance_context: Optional[GuidanceTranscript] = None,
        *,
        approved: bool = False,
    ) -> StepResult:
        """Execute ``step`` and classify the outcome.

        Args:
            step: The step to run.
            guidance_context: Chat transcript gathered from earlier reviews.
            approved: The step's pending review was approved, so it is done.

        Raises:
            StepExecutionError: The capability failed or proposed a forbidden action.
        """
        if step.is_human:
            logger.info(f"Skipping human-assigned step: {step.label}")
            return StepResult(
                outcome=StepOutcome.COMPLETED, message=f"Skipped human step: {step.label}"
            )

        if approved:
            return StepResult(
                outcome=StepOutcome.COMPLETED, message=f"Approved step: {step.label}"
            )

        blueprint = step.blueprint or Blueprint()
        try:
            result = await self._capability.execute(
                step, blueprint, guidance_context, step.integrations
            )
        except GuidanceRequested as signal:
            logger.info(f'Agent requested guidance on "{step.label}": {signal.question}')
            return StepResult(
                outcome=StepOutcome.NEEDS_GUIDANCE,
                message=signal.question,
                guidance_question=signal.question,
            )
        except StepExecutionError:
            raise
        except Exception as e:
            raise StepExecutionError(step, f"Agent execution failed: {e}") from e

        if result.needs_guidance:
            question = result.guidance_question or f"Agent needs guidance for step: {step.label}"
            return StepResult(
                outcome=StepOutcome.NEEDS_GUIDANCE,
                message=question,
                actions=result.actions,
                guidance_question=question,
            )

        for action in result.actions:
            if self._evaluator.evaluate(action.describe(), step.blueprint) is Verdict.FORBIDDEN:
                raise BlueprintViolationError(step, action.type)

        if step.type == StepType.DECISION or (step.blueprint is not None and result.actions):
            return StepResult(
                outcome=StepOutcome.NEEDS_REVIEW,
                message=result.message
                or f"Action completed for step: {step.label}. Review required.",
                actions=result.actions,
            )

        return StepResult(
            outcome=StepOutcome.COMPLETED,
            message=result.message or f"Completed step: {step.label}",
            actions=result.actions,
        )
