"""Activity log fed by control room events."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .events import EventKind, EventNotifier
from .persistence.models import ActivityEntry
from .persistence.repository import FlowgateRepository

logger = logging.getLogger(__name__)


class ActivityLog:
    """Records every emitted event in the repository's activity log."""

    def __init__(self, repository: FlowgateRepository) -> None:
        self._repository = repository
        self._unsubscribe: Optional[Callable[[], None]] = None

    def attach(self, notifier: EventNotifier) -> "ActivityLog":
        self._unsubscribe = notifier.subscribe(self.record)
        return self

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def record(self, event: Any) -> None:
        data: dict[str, Any] = {}
        entry_type = event.kind
        if event.kind == EventKind.WORKFLOW_UPDATE.value and event.level != "info":
            entry_type = event.level
        elif event.kind == EventKind.REVIEW_NEEDED.value:
            entry_type = event.action.type.value
            data = {"review_id": event.review_item.id, **event.action.payload}
        elif event.kind == EventKind.COMPLETED.value:
            data = {"duration_ms": event.duration_ms, "step_count": event.step_count}

        await self._repository.record_activity(
            ActivityEntry(
                workflow_id=event.workflow_id,
                type=entry_type,
                step_id=event.step_id,
                worker_name=event.digital_worker_name,
                message=event.message,
                data=data,
                timestamp=event.timestamp,
            )
        )
        logger.debug(f"Activity recorded for workflow {event.workflow_id}: {entry_type}")
