"""Protocol for the agent-action capability."""

from __future__ import annotations

from typing import Dict, List, Optional, Protocol

from ..contracts import AgentActionResult, Blueprint, ChatMessage, WorkflowStep

GuidanceTranscript = List[ChatMessage]


class AgentCapability(Protocol):
    """Decides and performs the actions for one AI step.

    Implementations may raise :class:`~flowgate.errors.GuidanceRequested`
    instead of returning a result with ``needs_guidance`` set.
    """

    async def execute(
        self,
        step: WorkflowStep,
        blueprint: Blueprint,
        guidance_context: Optional[GuidanceTranscript],
        integrations: Dict[str, bool],
    ) -> AgentActionResult:
        """Run the agent for ``step`` and report what it did."""
