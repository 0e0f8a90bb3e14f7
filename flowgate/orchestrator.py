"""Execution orchestrator: drives a workflow through its steps."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol

from .constants import DEFAULT_STEP_DELAY, DEFAULT_WORKER_NAME
from .contracts import (
    ChatMessage,
    ExecutionStatus,
    GuidanceEntry,
    ReviewAction,
    ReviewActionType,
    ReviewItem,
    Workflow,
    WorkflowStatus,
    WorkflowStep,
    elapsed_ms,
    utcnow,
)
from .errors import (
    ExecutionNotFoundError,
    ExecutionNotLiveError,
    WorkflowNotActiveError,
    WorkflowNotFoundError,
)
from .events import CompletedEvent, EventNotifier, ReviewNeededEvent, WorkflowUpdateEvent
from .executor import StepExecutor, StepOutcome, StepResult
from .persistence.inmemory import InMemoryRepository
from .persistence.models import ExecutionRecord, StepRecord
from .persistence.repository import FlowgateRepository
from .scheduler import AsyncioScheduler, BaseScheduler
from .state import ExecutionState, ExecutionStateStore

logger = logging.getLogger(__name__)


class WorkflowCatalog(Protocol):
    """Read access to workflow definitions."""

    def get(self, workflow_id: str) -> Optional[Workflow]:
        """Return the workflow or ``None``."""


class InMemoryWorkflowCatalog:
    """Workflow definitions kept in a dict."""

    def __init__(self, workflows: Optional[List[Workflow]] = None) -> None:
        self._workflows: Dict[str, Workflow] = {}
        for workflow in workflows or []:
            self.add(workflow)

    def add(self, workflow: Workflow) -> Workflow:
        self._workflows[workflow.id] = workflow
        return workflow

    def get(self, workflow_id: str) -> Optional[Workflow]:
        return self._workflows.get(workflow_id)

    def list(self) -> List[Workflow]:
        return list(self._workflows.values())

    def set_status(self, workflow_id: str, status: WorkflowStatus) -> Workflow:
        """Activate or pause a workflow."""
        workflow = self._workflows.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        updated = workflow.model_copy(update={"status": status})
        self._workflows[workflow_id] = updated
        return updated


class ExecutionOrchestrator:
    """Runs workflows step by step, suspending for human review.

    Steps of one workflow run strictly in order. After a completed step the
    next :meth:`advance` is scheduled after ``step_delay`` seconds; after a
    suspension nothing is scheduled and only :meth:`resume` continues.
    """

    def __init__(
        self,
        catalog: WorkflowCatalog,
        executor: StepExecutor,
        notifier: Optional[EventNotifier] = None,
        *,
        store: Optional[ExecutionStateStore] = None,
        repository: Optional[FlowgateRepository] = None,
        scheduler: Optional[BaseScheduler] = None,
        step_delay: float = DEFAULT_STEP_DELAY,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._catalog = catalog
        self._executor = executor
        self.notifier = notifier or EventNotifier()
        self.store = store or ExecutionStateStore()
        self._repository = repository or InMemoryRepository()
        self._scheduler = scheduler or AsyncioScheduler()
        self._step_delay = step_delay
        self._clock = clock
        self._records: Dict[str, ExecutionRecord] = {}

    # ------------------------------------------------------------------
    # Public API
    def get_state(self, workflow_id: str) -> Optional[ExecutionState]:
        return self.store.get(workflow_id)

    def get_record(self, workflow_id: str) -> Optional[ExecutionRecord]:
        record = self._records.get(workflow_id)
        return record.model_copy(deep=True) if record else None

    async def start(
        self, workflow_id: str, assignee_override: Optional[str] = None
    ) -> ExecutionState:
        """Begin executing ``workflow_id`` from its first step.

        Raises:
            WorkflowNotFoundError: Unknown workflow id.
            WorkflowNotActiveError: The workflow is not active; a blocker is emitted.
            ExecutionAlreadyActiveError: A live execution already exists.
        """
        workflow = self._catalog.get(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)

        worker = assignee_override or (
            workflow.assignee.stakeholder_name if workflow.assignee else DEFAULT_WORKER_NAME
        )
        logger.info(
            f'Starting workflow "{workflow.name}" ({workflow_id}) for {worker}, '
            f"{len(workflow.steps)} steps"
        )

        if workflow.status != WorkflowStatus.ACTIVE:
            error = WorkflowNotActiveError(workflow_id, workflow.status.value)
            logger.error(f"Blocked workflow {workflow_id}: {error}")
            await self.notifier.emit(
                WorkflowUpdateEvent(
                    workflow_id=workflow_id,
                    digital_worker_name=worker,
                    message=str(error),
                    level="blocker",
                    timestamp=self._clock(),
                )
            )
            raise error

        record = ExecutionRecord(
            workflow_id=workflow_id,
            status=ExecutionStatus.RUNNING,
            digital_worker_name=worker,
            started_at=self._clock(),
        )
        state = await self.store.create(workflow_id, record.id, worker)
        state.started_at = record.started_at
        self._records[workflow_id] = record
        await self._persist(workflow_id)

        await self.notifier.emit(
            WorkflowUpdateEvent(
                workflow_id=workflow_id,
                digital_worker_name=worker,
                message=f'Workflow "{workflow.name}" started',
                timestamp=self._clock(),
            )
        )
        await self.advance(workflow_id)
        return state

    async def advance(self, workflow_id: str) -> None:
        """Run the current step; a no-op unless the execution is running."""
        state = await self.store.begin_step(workflow_id)
        if state is None:
            logger.debug(f"advance({workflow_id}) ignored: not running")
            return
        try:
            proceed = await self._run_current_step(state)
        finally:
            await self.store.end_step(workflow_id)
        if proceed:
            self._schedule(workflow_id, self._step_delay)

    def ensure_live(
        self, workflow_id: str, execution_id: Optional[str] = None
    ) -> ExecutionState:
        """Return the live state for ``workflow_id``.

        Raises:
            ExecutionNotFoundError: No execution exists for the workflow.
            ExecutionNotLiveError: The execution is terminal, or ``execution_id``
                names an earlier execution of the same workflow.
        """
        state = self.store.get(workflow_id)
        if state is None:
            raise ExecutionNotFoundError(workflow_id)
        if execution_id is not None and execution_id != state.execution_id:
            raise ExecutionNotLiveError(workflow_id, "superseded", execution_id)
        if state.is_terminal:
            raise ExecutionNotLiveError(workflow_id, state.status.value, execution_id)
        return state

    async def resume(
        self,
        workflow_id: str,
        *,
        execution_id: Optional[str] = None,
        guidance: Optional[GuidanceEntry] = None,
        approve_step_id: Optional[str] = None,
        message: Optional[str] = None,
    ) -> ExecutionState:
        """Continue a suspended execution at its current step index.

        Args:
            guidance: Chat transcript to hand to the agent on the next attempt.
            approve_step_id: Marks the current step's pending review as approved.
            execution_id: Only resume if this is still the workflow's current execution.
            message: Text of the ``workflow_update`` event announcing the resume.
        """
        state = self.ensure_live(workflow_id, execution_id)
        if not await self.store.try_acquire(workflow_id):
            logger.warning(f"Execution for workflow {workflow_id} is already running")
            return state

        if guidance is not None and guidance.chat_history:
            state.guidance_context.append(guidance)
        current = self._current_step(workflow_id, state)
        if approve_step_id is not None and current is not None and current.id == approve_step_id:
            state.approved_step_id = approve_step_id
        if current is not None:
            state.step_started_at.pop(current.id, None)

        record = self._records[workflow_id]
        record.status = ExecutionStatus.RUNNING
        await self._persist(workflow_id)
        await self.notifier.emit(
            WorkflowUpdateEvent(
                workflow_id=workflow_id,
                step_id=current.id if current else None,
                digital_worker_name=state.digital_worker_name,
                message=message or "Execution resumed",
                timestamp=self._clock(),
            )
        )

        if state.in_flight:
            self._schedule(workflow_id, 0)
        else:
            await self.advance(workflow_id)
        return state

    async def cancel(self, workflow_id: str, reason: Optional[str] = None) -> ExecutionState:
        """Cancel a live execution; no later advance can touch it."""
        return await self._terminate(
            workflow_id, ExecutionStatus.CANCELLED, reason or "Workflow cancelled"
        )

    async def fail(self, workflow_id: str, reason: str) -> ExecutionState:
        """Mark a live execution as failed."""
        return await self._terminate(workflow_id, ExecutionStatus.FAILED, reason)

    # ------------------------------------------------------------------
    # Step loop
    def _current_step(self, workflow_id: str, state: ExecutionState) -> Optional[WorkflowStep]:
        workflow = self._catalog.get(workflow_id)
        if workflow is None:
            return None
        steps = workflow.ordered_steps()
        if state.current_step_index >= len(steps):
            return None
        return steps[state.current_step_index]

    def _schedule(self, workflow_id: str, delay: float) -> None:
        async def _continue() -> None:
            await self.advance(workflow_id)

        self._scheduler.call_later(workflow_id, delay, _continue)

    async def _run_current_step(self, state: ExecutionState) -> bool:
        """Execute one step; ``True`` when the loop should continue."""
        workflow_id = state.workflow_id
        workflow = self._catalog.get(workflow_id)
        if workflow is None:
            logger.error(f"Workflow not found: {workflow_id}")
            await self._terminate(workflow_id, ExecutionStatus.FAILED, "Workflow not found")
            return False

        steps = workflow.ordered_steps()
        if state.current_step_index >= len(steps):
            await self._complete(state, workflow)
            return False
        logger.info(
            f'Step {state.current_step_index + 1}/{len(steps)} of workflow "{workflow.name}"'
        )

        step = steps[state.current_step_index]
        started = self._clock()
        state.step_started_at[step.id] = started
        record = self._records[workflow_id]
        record.current_step_index = state.current_step_index
        record.steps.append(
            StepRecord(
                step_id=step.id,
                label=step.label,
                step_index=state.current_step_index,
                started_at=started,
            )
        )
        await self._persist(workflow_id)
        await self.notifier.emit(
            WorkflowUpdateEvent(
                workflow_id=workflow_id,
                step_id=step.id,
                digital_worker_name=state.digital_worker_name,
                message=f"Executing step: {step.label}",
                timestamp=started,
            )
        )

        try:
            result = await self._executor.execute(
                step,
                state.guidance_for(step.id) or None,
                approved=state.approved_step_id == step.id,
            )
        except Exception as e:
            if state.is_terminal:
                return False
            await self._suspend_on_error(state, step, e)
            return False

        if state.is_terminal:
            logger.info(f"Discarding result of step {step.id}: execution is {state.status.value}")
            return False

        if result.outcome is StepOutcome.COMPLETED:
            self._close_step(workflow_id, step, "completed", result.message)
            state.current_step_index += 1
            state.approved_step_id = None
            record.current_step_index = state.current_step_index
            await self._persist(workflow_id)
            logger.info(f'Step "{step.label}" completed')
            await self.notifier.emit(
                WorkflowUpdateEvent(
                    workflow_id=workflow_id,
                    step_id=step.id,
                    digital_worker_name=state.digital_worker_name,
                    message=result.message,
                    timestamp=self._clock(),
                )
            )
            return True

        if result.outcome is StepOutcome.NEEDS_GUIDANCE:
            question = result.guidance_question or result.message
            await self._suspend(
                state,
                step,
                ReviewActionType.GUIDANCE_REQUESTED,
                {"step": step.label, "message": question, "needs_guidance": True},
                message=question,
                needs_guidance=True,
                chat_history=[ChatMessage(sender="agent", text=question, timestamp=self._clock())],
            )
        else:
            await self._suspend(
                state,
                step,
                ReviewActionType.APPROVAL_REQUIRED,
                {
                    "step": step.label,
                    "message": result.message,
                    "actions": [a.model_dump() for a in result.actions],
                },
                message=result.message,
            )
        return False

    def _close_step(
        self, workflow_id: str, step: WorkflowStep, status: str, message: Optional[str]
    ) -> None:
        record = self._records[workflow_id]
        for step_record in reversed(record.steps):
            if step_record.step_id == step.id and step_record.completed_at is None:
                step_record.status = status
                step_record.completed_at = self._clock()
                if step_record.started_at is not None:
                    step_record.duration_ms = elapsed_ms(
                        step_record.started_at, step_record.completed_at
                    )
                step_record.message = message
                return

    async def _suspend(
        self,
        state: ExecutionState,
        step: WorkflowStep,
        action_type: ReviewActionType,
        payload: Dict[str, Any],
        *,
        message: Optional[str],
        needs_guidance: bool = False,
        chat_history: Optional[List[ChatMessage]] = None,
    ) -> ReviewItem:
        workflow_id = state.workflow_id
        await self.store.suspend(workflow_id, ExecutionStatus.WAITING_REVIEW)
        self._close_step(workflow_id, step, action_type.value, message)
        self._records[workflow_id].status = ExecutionStatus.WAITING_REVIEW
        await self._persist(workflow_id)

        worker = (
            step.assignee.agent_name
            if step.assignee and step.assignee.agent_name
            else state.digital_worker_name
        )
        item = ReviewItem(
            workflow_id=workflow_id,
            execution_id=state.execution_id,
            step_id=step.id,
            digital_worker_name=worker,
            action=ReviewAction(type=action_type, payload=payload),
            timestamp=self._clock(),
            chat_history=chat_history or [],
            needs_guidance=needs_guidance,
        )
        logger.info(f'Step "{step.label}" suspended: {action_type.value}')
        await self.notifier.emit(
            ReviewNeededEvent(
                workflow_id=workflow_id,
                step_id=step.id,
                digital_worker_name=worker,
                message=message,
                review_item=item,
                timestamp=item.timestamp,
            )
        )
        return item

    async def _suspend_on_error(
        self, state: ExecutionState, step: WorkflowStep, error: Exception
    ) -> None:
        message = f'Error in step "{step.label}": {error}'
        logger.error(message)
        self._records[state.workflow_id].error_message = message
        await self._suspend(
            state,
            step,
            ReviewActionType.ERROR,
            {"step": step.label, "message": message, "error": str(error)},
            message=message,
        )
        await self.notifier.emit(
            WorkflowUpdateEvent(
                workflow_id=state.workflow_id,
                step_id=step.id,
                digital_worker_name=state.digital_worker_name,
                message=f"Workflow stopped: {message}",
                level="error",
                timestamp=self._clock(),
            )
        )

    async def _complete(self, state: ExecutionState, workflow: Workflow) -> None:
        if await self.store.finish(workflow.id, ExecutionStatus.COMPLETED) is None:
            return
        finished = self._clock()
        duration = elapsed_ms(state.started_at, finished)
        record = self._records[workflow.id]
        record.status = ExecutionStatus.COMPLETED
        record.completed_at = finished
        record.duration_ms = duration
        await self._persist(workflow.id)

        logger.info(f'Workflow "{workflow.name}" completed in {duration}ms')
        await self.notifier.emit(
            CompletedEvent(
                workflow_id=workflow.id,
                digital_worker_name=state.digital_worker_name,
                message=f'Workflow "{workflow.name}" completed',
                duration_ms=duration,
                step_count=len(workflow.steps),
                timestamp=finished,
            )
        )

    async def _terminate(
        self, workflow_id: str, status: ExecutionStatus, reason: str
    ) -> ExecutionState:
        state = self.store.get(workflow_id)
        if state is None:
            raise ExecutionNotFoundError(workflow_id)
        if await self.store.finish(workflow_id, status) is None:
            raise ExecutionNotLiveError(workflow_id, state.status.value)
        self._scheduler.cancel(workflow_id)

        finished = self._clock()
        record = self._records.get(workflow_id)
        if record is not None:
            record.status = status
            record.completed_at = finished
            record.duration_ms = elapsed_ms(record.started_at, finished)
            if status is ExecutionStatus.FAILED:
                record.error_message = reason
            await self._persist(workflow_id)

        logger.info(f"Execution for workflow {workflow_id} {status.value}: {reason}")
        await self.notifier.emit(
            WorkflowUpdateEvent(
                workflow_id=workflow_id,
                digital_worker_name=state.digital_worker_name,
                message=f"Workflow stopped: {reason}",
                level="error" if status is ExecutionStatus.FAILED else "info",
                timestamp=finished,
            )
        )
        return state

    async def _persist(self, workflow_id: str) -> None:
        record = self._records.get(workflow_id)
        if record is not None:
            await self._repository.save_execution(record)
