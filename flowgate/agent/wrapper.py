"""Pydantic-AI integration for flowgate steps."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from pydantic_ai import Agent

from ..blueprint import BlueprintEvaluator
from ..contracts import AgentActionResult, Blueprint, WorkflowStep
from .capability import GuidanceTranscript

logger = logging.getLogger(__name__)

GUIDANCE_ACTION = "guidance_requested"

INSTRUCTIONS = """You are an AI agent executing a workflow step. Decide which actions to take
based on the step requirements and the blueprint constraints.

You MUST only perform actions that are in the GREEN LIST and MUST NOT perform any
action in the RED LIST. If you need clarification, set needs_guidance and ask a
guidance_question instead of guessing."""


def build_step_prompt(
    step: WorkflowStep,
    blueprint: Blueprint,
    guidance_context: Optional[GuidanceTranscript],
    integrations: Dict[str, bool],
) -> str:
    """Render the per-step prompt handed to the agent."""
    requirements = (
        step.requirements.requirements_text
        if step.requirements and step.requirements.requirements_text
        else "No specific requirements provided"
    )
    green = ", ".join(blueprint.green_list) or "None specified"
    red = ", ".join(blueprint.red_list) or "None specified"
    available = ", ".join(name for name, on in integrations.items() if on) or "None"

    lines = [
        f'STEP TO EXECUTE: "{step.label}"',
        f"STEP TYPE: {step.type.value}",
        f"STEP REQUIREMENTS: {requirements}",
        "",
        "BLUEPRINT CONSTRAINTS:",
        f"- GREEN LIST (Allowed): {green}",
        f"- RED LIST (Forbidden): {red}",
        "",
        f"AVAILABLE INTEGRATIONS: {available}",
    ]
    user_guidance = [m.text for m in guidance_context or [] if m.sender == "user"]
    if user_guidance:
        lines += ["", "USER GUIDANCE PROVIDED:"]
        lines += [f"- {text}" for text in user_guidance]
    return "\n".join(lines)


class PydanticAIAgentCapability:
    """Agent capability backed by a pydantic-ai ``Agent``.

    The blueprint evaluator decides which proposed actions the agent may
    attempt; anything it rejects is dropped from the result.
    """

    def __init__(
        self,
        model: str = "openai:gpt-4o",
        evaluator: Optional[BlueprintEvaluator] = None,
        agent: Optional[Any] = None,
    ) -> None:
        self._model = model
        self._evaluator = evaluator or BlueprintEvaluator()
        self._agent = agent

    @property
    def agent(self) -> Any:
        if self._agent is None:
            self._agent = Agent(
                self._model, output_type=AgentActionResult, instructions=INSTRUCTIONS
            )
        return self._agent

    async def execute(
        self,
        step: WorkflowStep,
        blueprint: Blueprint,
        guidance_context: Optional[GuidanceTranscript],
        integrations: Dict[str, bool],
    ) -> AgentActionResult:
        prompt = build_step_prompt(step, blueprint, guidance_context, integrations)
        logger.info(f'Calling agent for step "{step.label}"')
        run = await self.agent.run(prompt)
        proposed: AgentActionResult = run.output

        for action in proposed.actions:
            if action.type == GUIDANCE_ACTION:
                question = action.parameters.get("guidance_question") or proposed.guidance_question
                return AgentActionResult(
                    actions=[],
                    message=proposed.message,
                    needs_guidance=True,
                    guidance_question=question or "Agent needs guidance",
                )

        permitted = []
        for action in proposed.actions:
            if self._evaluator.is_allowed(action.describe(), blueprint):
                permitted.append(action)
            else:
                logger.warning(
                    f'Dropping action "{action.type}" for step "{step.label}": not permitted by blueprint'
                )

        logger.info(f"Agent decided on {len(permitted)} action(s) for step {step.id}")
        return AgentActionResult(
            actions=permitted,
            message=proposed.message or f"Completed step: {step.label}",
            needs_guidance=proposed.needs_guidance,
            guidance_question=proposed.guidance_question,
        )
