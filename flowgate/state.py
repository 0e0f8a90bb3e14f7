"""Execution state held for each in-flight workflow instance."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from .contracts import ChatMessage, ExecutionStatus, GuidanceEntry, utcnow
from .errors import ExecutionAlreadyActiveError


class ExecutionState(BaseModel):
    """Mutable progress of one workflow execution."""

    workflow_id: str
    execution_id: str
    digital_worker_name: str
    current_step_index: int = 0
    running: bool = False
    status: ExecutionStatus = ExecutionStatus.PENDING
    started_at: datetime = Field(default_factory=utcnow)
    step_started_at: Dict[str, datetime] = Field(default_factory=dict)
    guidance_context: List[GuidanceEntry] = Field(default_factory=list)
    approved_step_id: Optional[str] = None
    in_flight: bool = False

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def guidance_for(self, step_id: str) -> List[ChatMessage]:
        """All chat turns gathered for ``step_id``, oldest first."""
        messages: List[ChatMessage] = []
        for entry in self.guidance_context:
            if entry.step_id == step_id:
                messages.extend(entry.chat_history)
        return messages


class ExecutionStateStore:
    """Holds at most one execution state per workflow id.

    The ``running`` flag is the mutual-exclusion primitive: every entry into the
    step loop goes through :meth:`try_acquire` or :meth:`begin_step`, which
    check and set it under one lock.
    """

    def __init__(self) -> None:
        self._states: Dict[str, ExecutionState] = {}
        self._lock = asyncio.Lock()

    def get(self, workflow_id: str) -> Optional[ExecutionState]:
        return self._states.get(workflow_id)

    def list(self) -> List[ExecutionState]:
        return list(self._states.values())

    async def create(
        self, workflow_id: str, execution_id: str, digital_worker_name: str
    ) -> ExecutionState:
        """Create a running state at step 0, replacing a terminal one."""
        async with self._lock:
            existing = self._states.get(workflow_id)
            if existing is not None and not existing.is_terminal:
                raise ExecutionAlreadyActiveError(workflow_id)
            state = ExecutionState(
                workflow_id=workflow_id,
                execution_id=execution_id,
                digital_worker_name=digital_worker_name,
                running=True,
                status=ExecutionStatus.RUNNING,
            )
            self._states[workflow_id] = state
            return state

    async def try_acquire(self, workflow_id: str) -> bool:
        """Flip a suspended, non-terminal state back to running."""
        async with self._lock:
            state = self._states.get(workflow_id)
            if state is None or state.is_terminal or state.running:
                return False
            state.running = True
            state.status = ExecutionStatus.RUNNING
            return True

    async def begin_step(self, workflow_id: str) -> Optional[ExecutionState]:
        """Claim the step loop; ``None`` when it must not run."""
        async with self._lock:
            state = self._states.get(workflow_id)
            if state is None or not state.running or state.is_terminal or state.in_flight:
                return None
            state.in_flight = True
            return state

    async def end_step(self, workflow_id: str) -> None:
        async with self._lock:
            state = self._states.get(workflow_id)
            if state is not None:
                state.in_flight = False

    async def suspend(self, workflow_id: str, status: ExecutionStatus) -> None:
        async with self._lock:
            state = self._states.get(workflow_id)
            if state is not None and not state.is_terminal:
                state.running = False
                state.status = status

    async def finish(self, workflow_id: str, status: ExecutionStatus) -> Optional[ExecutionState]:
        """Move to a terminal status; returns ``None`` if already terminal."""
        async with self._lock:
            state = self._states.get(workflow_id)
            if state is None or state.is_terminal:
                return None
            state.running = False
            state.status = status
            return state

    async def discard(self, workflow_id: str) -> None:
        async with self._lock:
            self._states.pop(workflow_id, None)
