"""Data models for persisted execution state."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from ..contracts import ExecutionStatus, ReviewAction, utcnow


class StepRecord(BaseModel):
    """Record of an individual step attempt."""

    step_id: str
    label: str
    step_index: int
    status: str = "running"
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    message: Optional[str] = None


class ExecutionRecord(BaseModel):
    """Persisted execution of a workflow."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    digital_worker_name: Optional[str] = None
    trigger_type: str = "manual"
    is_test_run: bool = False
    test_run_id: Optional[str] = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    current_step_index: int = 0
    error_message: Optional[str] = None
    input_data: Dict[str, Any] = Field(default_factory=dict)
    output_data: Optional[Dict[str, Any]] = None
    steps: List[StepRecord] = Field(default_factory=list)


ReviewStatus = Literal["pending", "approved", "rejected", "edited", "expired"]


class ReviewRecord(BaseModel):
    """Persisted review request and its outcome."""

    id: str
    workflow_id: str
    execution_id: Optional[str] = None
    step_id: str
    worker_name: str
    action: ReviewAction
    status: ReviewStatus = "pending"
    reviewer_notes: Optional[str] = None
    response_data: Optional[Dict[str, Any]] = None
    created_at: datetime = Field(default_factory=utcnow)
    reviewed_at: Optional[datetime] = None


class ActivityEntry(BaseModel):
    """One line in the activity log."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    type: str
    step_id: Optional[str] = None
    worker_name: Optional[str] = None
    message: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
