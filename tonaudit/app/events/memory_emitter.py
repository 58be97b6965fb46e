from __future__ import annotations

import asyncio
from typing import AsyncIterator, FrozenSet, Optional

from tonaudit.app.events.models import AuditEvent, AuditEventType
from tonaudit.app.events.emitter import AuditEventEmitter


DEFAULT_TERMINAL_EVENTS = frozenset(
    {
        AuditEventType.AUDIT_COMPLETED,
        AuditEventType.AUDIT_FAILED,
    }
)


class MemoryQueueEventEmitter(AuditEventEmitter):
    """
    In-memory async event emitter suitable for SSE streaming.

    Properties:
    - single-consumer
    - non-blocking for the audit execution path
    - deterministic ordering
    - terminates cleanly on the first terminal event
    """

    def __init__(
        self,
        terminal_events: Optional[FrozenSet[AuditEventType]] = None,
    ) -> None:
        self._queue: asyncio.Queue[AuditEvent | None] = asyncio.Queue()
        self._terminal_events = (
            terminal_events
            if terminal_events is not None
            else DEFAULT_TERMINAL_EVENTS
        )
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def emit(self, event: AuditEvent) -> None:
        if self._closed:
            return

        await self._queue.put(event)

        if event.event_type in self._terminal_events:
            await self.close()

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            await self._queue.put(None)

    async def stream(self) -> AsyncIterator[AuditEvent]:
        """
        Async generator yielding emitted events in order.
        """
        while True:
            event = await self._queue.get()
            if event is None:
                break
            yield event
