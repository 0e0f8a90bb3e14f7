"""Agent-action capabilities used by the step executor."""

from .capability import AgentCapability, GuidanceTranscript
from .wrapper import PydanticAIAgentCapability

__all__ = ["AgentCapability", "GuidanceTranscript", "PydanticAIAgentCapability"]
