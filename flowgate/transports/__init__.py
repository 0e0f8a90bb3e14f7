"""Event transports and the factory that picks one from configuration."""

from __future__ import annotations

import os
from typing import Optional

from ..config import FlowgateConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport


def get_transport(
    backend: Optional[str] = None, config: Optional[FlowgateConfig] = None
) -> BaseTransport:
    """Build the event transport named by ``backend``.

    Falls back to ``FLOWGATE_TRANSPORT`` and then ``transport.backend`` in the
    loaded configuration.
    """
    config = config or load_config()
    name = (backend or os.getenv("FLOWGATE_TRANSPORT") or config.transport.backend).lower()

    if name == "inmemory":
        return InMemoryTransport(history_size=config.transport.history_size)
    if name == "redis":
        from .redis import RedisTransport

        return RedisTransport.from_config(config.transport.redis)
    raise ValueError(f"Unsupported transport backend: {name}")


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
