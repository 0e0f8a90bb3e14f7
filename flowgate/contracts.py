"""Core contracts for flowgate workflows, steps and review items."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_ms(start: datetime, end: datetime) -> int:
    return int((end - start).total_seconds() * 1000)


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    WAITING_REVIEW = "waiting_review"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
            ExecutionStatus.CANCELLED,
        )


class StepType(str, Enum):
    TRIGGER = "trigger"
    ACTION = "action"
    DECISION = "decision"
    END = "end"


class ReviewActionType(str, Enum):
    """Why a step was suspended."""

    APPROVAL_REQUIRED = "approval_required"
    GUIDANCE_REQUESTED = "guidance_requested"
    ERROR = "error"


class Blueprint(BaseModel):
    """Declarative action policy for a step."""

    green_list: List[str] = Field(default_factory=list, description="Allowed actions")
    red_list: List[str] = Field(default_factory=list, description="Forbidden actions")
    outstanding_questions: List[str] = Field(default_factory=list)


class ChatMessage(BaseModel):
    sender: Literal["user", "agent", "system"]
    text: str
    timestamp: datetime = Field(default_factory=utcnow)


class StepAssignee(BaseModel):
    kind: Literal["ai", "human"] = "ai"
    agent_name: Optional[str] = None


class StepRequirements(BaseModel):
    is_complete: bool = False
    requirements_text: Optional[str] = None
    chat_history: List[ChatMessage] = Field(default_factory=list)
    integrations: Dict[str, bool] = Field(default_factory=dict)
    custom_requirements: List[str] = Field(default_factory=list)
    blueprint: Optional[Blueprint] = None


class WorkflowStep(BaseModel):
    """Defines one step in a workflow."""

    id: str
    label: str
    type: StepType = StepType.ACTION
    assignee: Optional[StepAssignee] = None
    order: int = 0
    requirements: Optional[StepRequirements] = None

    @property
    def blueprint(self) -> Optional[Blueprint]:
        return self.requirements.blueprint if self.requirements else None

    @property
    def is_human(self) -> bool:
        return self.assignee is not None and self.assignee.kind == "human"

    @property
    def integrations(self) -> Dict[str, bool]:
        return dict(self.requirements.integrations) if self.requirements else {}


class WorkflowAssignee(BaseModel):
    stakeholder_name: str
    stakeholder_type: Literal["ai", "human"] = "ai"


class Workflow(BaseModel):
    """An ordered sequence of steps with a lifecycle status."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: Optional[str] = None
    steps: List[WorkflowStep] = Field(default_factory=list)
    assignee: Optional[WorkflowAssignee] = None
    status: WorkflowStatus = WorkflowStatus.DRAFT

    def ordered_steps(self) -> List[WorkflowStep]:
        """Steps sorted by their order index, ties keep definition order."""
        return sorted(self.steps, key=lambda s: s.order)

    def step_by_id(self, step_id: str) -> Optional[WorkflowStep]:
        return next((s for s in self.steps if s.id == step_id), None)


class GuidanceEntry(BaseModel):
    """Chat transcript captured from a review, fed back to the agent."""

    step_id: str
    chat_history: List[ChatMessage] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=utcnow)


class ReviewAction(BaseModel):
    type: ReviewActionType
    payload: Dict[str, Any] = Field(default_factory=dict)


class ReviewItem(BaseModel):
    """A suspended step awaiting a human decision."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    execution_id: Optional[str] = None
    step_id: str
    digital_worker_name: str
    action: ReviewAction
    timestamp: datetime = Field(default_factory=utcnow)
    chat_history: List[ChatMessage] = Field(default_factory=list)
    needs_guidance: bool = False


class AgentAction(BaseModel):
    """An action proposed by an agent, e.g. ``send_email``."""

    type: str
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)

    def describe(self) -> str:
        return f"{self.type} {self.description}" if self.description else self.type


class AgentActionResult(BaseModel):
    actions: List[AgentAction] = Field(default_factory=list)
    message: Optional[str] = None
    needs_guidance: bool = False
    guidance_question: Optional[str] = None
