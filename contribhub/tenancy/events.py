"""In-process event bus for tenant lifecycle notifications."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from contribhub.types import TenantEventType

logger = structlog.get_logger(__name__)


@dataclass
class TenantEvent:
    """A single tenant lifecycle event."""

    type: TenantEventType
    slug: str | None = None
    org: dict[str, Any] | None = None  # public view, never the connection config
    message: str = ""
    timestamp: float = field(default_factory=time.time)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"timestamp": self.timestamp}
        if self.type == TenantEventType.READY:
            payload.update(org=self.org, slug=self.slug)
        elif self.type == TenantEventType.ERROR:
            payload.update(message=self.message, slug=self.slug)
        return payload

    def to_sse(self) -> str:
        """Serialize to SSE wire format."""
        return f"event: {self.type}\ndata: {json.dumps(self.to_payload())}\n\n"


TenantListener = Callable[[TenantEvent], Awaitable[None] | None]


class TenantEventBus:
    """Fan-out bus for tenant events.

    Listeners are called in subscription order and awaited when async.
    Stream queues back the SSE endpoint. Designed for a single asyncio
    event loop.
    """

    def __init__(self) -> None:
        self._listeners: list[TenantListener] = []
        self._queues: list[asyncio.Queue[TenantEvent | None]] = []
        self._last: TenantEvent | None = None

    def subscribe(self, listener: TenantListener) -> Callable[[], None]:
        """Register a listener and return a callable that unsubscribes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    async def publish(self, event: TenantEvent) -> None:
        self._last = event
        logger.debug("tenant_event_published", event_type=str(event.type), slug=event.slug)
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                logger.error(
                    "tenant_listener_failed",
                    event_type=str(event.type),
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    error=str(exc),
                )
        for q in self._queues:
            q.put_nowait(event)

    def open_stream(self) -> asyncio.Queue[TenantEvent | None]:
        """Register a new SSE connection queue."""
        q: asyncio.Queue[TenantEvent | None] = asyncio.Queue()
        self._queues.append(q)
        return q

    def close_stream(self, q: asyncio.Queue[TenantEvent | None]) -> None:
        """Remove a disconnected client's queue."""
        with contextlib.suppress(ValueError):
            self._queues.remove(q)

    def shutdown_streams(self) -> None:
        """Wake every open stream with a terminal ``None``."""
        for q in self._queues:
            q.put_nowait(None)

    @property
    def last_event(self) -> TenantEvent | None:
        return self._last
