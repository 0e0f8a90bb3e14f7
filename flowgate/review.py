"""Review and guidance gate between suspended steps and their reviewers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Dict, List, Literal, Optional, Set, Union

from .contracts import (
    ChatMessage,
    GuidanceEntry,
    ReviewActionType,
    ReviewItem,
    utcnow,
)
from .errors import ReviewNotFoundError
from .events import EventKind, EventNotifier, ReviewNeededEvent, WorkflowUpdateEvent
from .orchestrator import ExecutionOrchestrator
from .persistence.models import ReviewRecord, ReviewStatus
from .persistence.repository import FlowgateRepository
from .resume import ResumeSender, ResumeSignal

logger = logging.getLogger(__name__)

RejectPolicy = Literal["hold", "fail"]
ItemRef = Union[ReviewItem, str]


class ReviewGate:
    """Holds pending review items and turns human responses into resumes.

    Approving always resumes the execution at its current step index:

    * ``error`` items retry the failed step with the item's chat transcript.
    * ``guidance_requested`` items retry the step with the transcript as context.
    * ``approval_required`` items mark the step approved, so the executor's
      next verdict completes it.

    Rejecting never resumes. With ``on_reject="hold"`` the execution stays
    suspended until an explicit resume or cancel; with ``"fail"`` it fails.

    An item only acts on the execution that produced it. Items whose execution
    ended or was replaced by a newer one are expired and leave the pending set.
    Resume signals go out in the background after the local state changed.
    """

    def __init__(
        self,
        orchestrator: ExecutionOrchestrator,
        repository: FlowgateRepository,
        notifier: Optional[EventNotifier] = None,
        *,
        resume_sender: Optional[ResumeSender] = None,
        on_reject: RejectPolicy = "hold",
    ) -> None:
        self._orchestrator = orchestrator
        self._repository = repository
        self._notifier = notifier or orchestrator.notifier
        self._resume_sender = resume_sender
        self._on_reject = on_reject
        self._pending: Dict[str, ReviewItem] = {}
        self._deliveries: Set[asyncio.Task] = set()
        self._unsubscribers: List[Callable[[], None]] = [
            self._notifier.subscribe(self._on_review_needed, kinds=[EventKind.REVIEW_NEEDED]),
            self._notifier.subscribe(
                self._on_progress, kinds=[EventKind.WORKFLOW_UPDATE, EventKind.COMPLETED]
            ),
        ]

    def close(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    async def wait_for_deliveries(self) -> None:
        """Wait until every resume signal sent so far has finished."""
        while self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)

    # ------------------------------------------------------------------
    # Pending set
    async def _on_review_needed(self, event: ReviewNeededEvent) -> None:
        item = event.review_item
        self._pending[item.id] = item
        await self._repository.save_review(
            ReviewRecord(
                id=item.id,
                workflow_id=item.workflow_id,
                execution_id=item.execution_id,
                step_id=item.step_id,
                worker_name=item.digital_worker_name,
                action=item.action,
                created_at=item.timestamp,
            )
        )
        logger.info(
            f"Review {item.id} pending for step {item.step_id}: {item.action.type.value}"
        )

    async def _on_progress(self, event: Any) -> None:
        await self._expire_stale(event.workflow_id)

    async def _expire_stale(self, workflow_id: str) -> None:
        state = self._orchestrator.get_state(workflow_id)
        for review in list(self._pending.values()):
            if review.workflow_id != workflow_id:
                continue
            if state is not None and not state.is_terminal and (
                review.execution_id is None or review.execution_id == state.execution_id
            ):
                continue
            self._pending.pop(review.id, None)
            await self._close_record(review, "expired", None, None)
            logger.info(f"Review {review.id} expired: its execution is no longer live")

    def pending(self, workflow_id: Optional[str] = None) -> List[ReviewItem]:
        return [
            item
            for item in self._pending.values()
            if workflow_id is None or item.workflow_id == workflow_id
        ]

    def get(self, item: ItemRef) -> ReviewItem:
        review_id = item.id if isinstance(item, ReviewItem) else item
        found = self._pending.get(review_id)
        if found is None:
            raise ReviewNotFoundError(review_id)
        return found

    # ------------------------------------------------------------------
    # Responses
    async def approve(self, item: ItemRef, reviewer_notes: Optional[str] = None) -> ReviewItem:
        """Accept the item and resume its execution at the current step.

        Raises:
            ReviewNotFoundError: The item is not pending.
            ExecutionNotLiveError: Its execution ended or was superseded; the
                item is left untouched.
        """
        return await self._approve(item, "approved", reviewer_notes, None)

    async def edit(
        self,
        item: ItemRef,
        edited_data: Dict[str, Any],
        reviewer_notes: Optional[str] = None,
    ) -> ReviewItem:
        """Approve with reviewer-edited data, passed on in the resume signal."""
        return await self._approve(item, "edited", reviewer_notes, edited_data)

    async def reject(self, item: ItemRef, reviewer_notes: Optional[str] = None) -> ReviewItem:
        """Drop the item without resuming the execution."""
        review = self.get(item)
        self._orchestrator.ensure_live(review.workflow_id, review.execution_id)

        self._pending.pop(review.id)
        await self._close_record(review, "rejected", reviewer_notes, None)

        logger.info(f"Review {review.id} rejected for step {review.step_id}")
        await self._notifier.emit(
            WorkflowUpdateEvent(
                workflow_id=review.workflow_id,
                step_id=review.step_id,
                digital_worker_name=review.digital_worker_name,
                message=f"Rejected: {review.action.type.value}",
            )
        )
        if self._on_reject == "fail":
            await self._orchestrator.fail(
                review.workflow_id, f'Review rejected for step "{review.step_id}"'
            )

        self._deliver(review, approved=False, notes=reviewer_notes, data=None)
        return review

    async def provide_guidance(
        self, step_id: str, message: str, workflow_id: Optional[str] = None
    ) -> ReviewItem:
        """Append a user turn to the pending item for ``step_id``.

        This does not resume; call :meth:`approve` with the item afterwards.
        """
        for review in self._pending.values():
            if review.step_id == step_id and (
                workflow_id is None or review.workflow_id == workflow_id
            ):
                review.chat_history.append(
                    ChatMessage(sender="user", text=message, timestamp=utcnow())
                )
                return review
        raise ReviewNotFoundError(step_id)

    # ------------------------------------------------------------------
    # Internals
    async def _approve(
        self,
        item: ItemRef,
        status: ReviewStatus,
        notes: Optional[str],
        data: Optional[Dict[str, Any]],
    ) -> ReviewItem:
        review = self.get(item)
        self._orchestrator.ensure_live(review.workflow_id, review.execution_id)

        self._pending.pop(review.id)
        await self._close_record(review, status, notes, data)

        action_type = review.action.type
        step_label = review.action.payload.get("step", review.step_id)
        if action_type is ReviewActionType.APPROVAL_REQUIRED:
            await self._orchestrator.resume(
                review.workflow_id,
                execution_id=review.execution_id,
                approve_step_id=review.step_id,
                message=f"Approved: {step_label}",
            )
        else:
            guidance = GuidanceEntry(
                step_id=review.step_id,
                chat_history=list(review.chat_history),
                timestamp=utcnow(),
            )
            label = "Retrying" if action_type is ReviewActionType.ERROR else "Guidance received"
            await self._orchestrator.resume(
                review.workflow_id,
                execution_id=review.execution_id,
                guidance=guidance,
                message=f"{label}: {step_label}",
            )

        self._deliver(review, approved=True, notes=notes, data=data)
        return review

    async def _close_record(
        self,
        review: ReviewItem,
        status: ReviewStatus,
        notes: Optional[str],
        data: Optional[Dict[str, Any]],
    ) -> None:
        record = await self._repository.get_review(review.id)
        if record is None:
            record = ReviewRecord(
                id=review.id,
                workflow_id=review.workflow_id,
                execution_id=review.execution_id,
                step_id=review.step_id,
                worker_name=review.digital_worker_name,
                action=review.action,
                created_at=review.timestamp,
            )
        record.status = status
        record.reviewer_notes = notes
        record.response_data = data
        record.reviewed_at = utcnow()
        await self._repository.save_review(record)

    def _deliver(
        self,
        review: ReviewItem,
        *,
        approved: bool,
        notes: Optional[str],
        data: Optional[Dict[str, Any]],
    ) -> None:
        if self._resume_sender is None:
            return
        signal = ResumeSignal(
            approved=approved, review_id=review.id, reviewer_notes=notes, response_data=data
        )
        task = asyncio.create_task(self._send(signal, review.action.payload))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)

    async def _send(self, signal: ResumeSignal, target: Dict[str, Any]) -> None:
        try:
            await self._resume_sender.send(signal, target)
        except Exception:
            logger.exception(f"Resume delivery failed for review {signal.review_id}")
