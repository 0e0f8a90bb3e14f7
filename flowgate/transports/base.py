"""Event transports ship control room events to out-of-process observers."""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, Any, AsyncIterator, Generic, Optional, Tuple, TypeVar

if TYPE_CHECKING:
    from ..events import EventEnvelope

RawMessageT = TypeVar("RawMessageT")


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Publishes :class:`EventEnvelope` objects to named topics.

    Backends implement :meth:`publish`, :meth:`subscribe` and :meth:`ack`;
    observers usually iterate :meth:`events`, which acknowledges for them.
    """

    async def connect(self) -> None:
        pass

    async def disconnect(self) -> None:
        pass

    async def __aenter__(self) -> "BaseTransport[RawMessageT]":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @abc.abstractmethod
    async def publish(self, topic: str, envelope: "EventEnvelope") -> None:
        raise NotImplementedError

    @abc.abstractmethod
    def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, "EventEnvelope"]]:
        """Yield ``(raw, envelope)`` pairs until ``lifespan`` seconds pass.

        ``lifespan=None`` listens forever.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        raise NotImplementedError

    async def events(self, topic: str, lifespan: Optional[float] = None) -> AsyncIterator[Any]:
        """Yield the events on ``topic``, acknowledging each one."""
        async for raw, envelope in self.subscribe(topic, lifespan=lifespan):
            await self.ack(raw)
            yield envelope.event
