"""Control room events and the notifier that broadcasts them."""

from __future__ import annotations

import inspect
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Literal,
    Optional,
    Tuple,
    Union,
)

from pydantic import BaseModel, Field

from .constants import EVENTS_TOPIC
from .contracts import ReviewAction, ReviewItem, utcnow

if TYPE_CHECKING:
    from .transports import BaseTransport

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    WORKFLOW_UPDATE = "workflow_update"
    REVIEW_NEEDED = "review_needed"
    COMPLETED = "completed"


class _EventBase(BaseModel):
    workflow_id: str
    step_id: Optional[str] = None
    digital_worker_name: Optional[str] = None
    message: Optional[str] = None
    timestamp: datetime = Field(default_factory=utcnow)


class WorkflowUpdateEvent(_EventBase):
    """Progress on a workflow: started, step running, step done, stopped."""

    kind: Literal["workflow_update"] = "workflow_update"
    level: Literal["info", "blocker", "error"] = "info"


class ReviewNeededEvent(_EventBase):
    """A step suspended for approval, guidance, or after an error."""

    kind: Literal["review_needed"] = "review_needed"
    review_item: ReviewItem

    @property
    def action(self) -> ReviewAction:
        return self.review_item.action


class CompletedEvent(_EventBase):
    kind: Literal["completed"] = "completed"
    duration_ms: Optional[int] = None
    step_count: Optional[int] = None


ControlRoomEvent = Annotated[
    Union[WorkflowUpdateEvent, ReviewNeededEvent, CompletedEvent],
    Field(discriminator="kind"),
]


class EventEnvelope(BaseModel):
    """Wrapper used to ship events over a transport."""

    message_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    event: ControlRoomEvent

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, data: str) -> "EventEnvelope":
        return cls.model_validate_json(data)


Subscriber = Callable[[Any], Union[None, Awaitable[None]]]


class EventNotifier:
    """Publish/subscribe channel for control room events.

    Subscribers are called in registration order and awaited one by one, so
    events for one workflow arrive in emission order. A failing subscriber is
    logged and skipped.
    """

    def __init__(
        self, transport: Optional["BaseTransport"] = None, topic: str = EVENTS_TOPIC
    ) -> None:
        self._subscribers: List[Tuple[Subscriber, Optional[frozenset]]] = []
        self._transport = transport
        self._topic = topic

    def subscribe(
        self, callback: Subscriber, kinds: Optional[Iterable[EventKind]] = None
    ) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        entry = (callback, frozenset(EventKind(k) for k in kinds) if kinds else None)
        self._subscribers.append(entry)

        def unsubscribe() -> None:
            if entry in self._subscribers:
                self._subscribers.remove(entry)

        return unsubscribe

    async def emit(self, event: Any) -> None:
        kind = EventKind(event.kind)
        for callback, kinds in list(self._subscribers):
            if kinds is not None and kind not in kinds:
                continue
            try:
                result = callback(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Subscriber {callback!r} failed on {kind.value} for workflow {event.workflow_id}"
                )

        if self._transport is not None:
            try:
                await self._transport.publish(self._topic, EventEnvelope(event=event))
            except Exception:
                logger.exception(f"Failed to forward {kind.value} event to {self._topic}")


class EventRecorder:
    """Subscriber that keeps every event it sees, in order."""

    def __init__(self) -> None:
        self.events: List[Any] = []

    def __call__(self, event: Any) -> None:
        self.events.append(event)

    def of_kind(self, kind: EventKind) -> List[Any]:
        return [e for e in self.events if e.kind == kind.value]
