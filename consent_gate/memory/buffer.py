"""consent-gate – Event Buffer.

Ordered holding area for analytics events produced before consent is
finalized. Parameters are scrubbed of PII keys on insert; flushing drains in
insertion order and stops at the first failed delivery.
"""

from collections import deque
from typing import Any, Awaitable, Callable, Mapping

import structlog

from consent_gate.core.errors import ErrorKind, OperationResult
from consent_gate.core.instrumentation import BUFFER_SIZE, EVENTS_BUFFERED, FLUSH_HALTS
from consent_gate.core.models import BufferedEvent
from consent_gate.integrations.pii_filter import PIIFilter

logger = structlog.get_logger()

EventSink = Callable[[BufferedEvent], Awaitable[OperationResult]]


class EventBuffer:
    """Unbounded FIFO of BufferedEvent.

    Owned by the ConsentCoordinator; nothing else mutates it.
    """

    def __init__(self, pii_filter: PIIFilter | None = None) -> None:
        self._pii = pii_filter if pii_filter is not None else PIIFilter()
        self._events: deque[BufferedEvent] = deque()

    def enqueue(self, name: str, parameters: Mapping[str, Any] | None = None) -> BufferedEvent:
        """Scrub PII keys and append an event.

        Args:
            name: Event name.
            parameters: Raw event parameters.

        Returns:
            The stored event.
        """
        safe, removed = self._pii.scrub(parameters or {})
        event = BufferedEvent(name=name, parameters=safe, scrubbed=bool(removed))
        self._events.append(event)
        EVENTS_BUFFERED.inc()
        BUFFER_SIZE.set(len(self._events))
        logger.info("buffer.enqueued", event_name=name, scrubbed=event.scrubbed, size=len(self._events))
        return event

    async def flush_into(self, sink: EventSink) -> int:
        """Deliver buffered events in order, halting at the first failure.

        The failed event and everything behind it stay in the buffer for the
        next flush. A sink that raises counts as a failed delivery.

        Args:
            sink: Async callable delivering one event.

        Returns:
            Number of events delivered.
        """
        delivered = 0
        while self._events:
            event = self._events[0]
            try:
                result = await sink(event)
            except Exception as exc:
                result = OperationResult.failure(ErrorKind.TRANSPORT, str(exc))
            if not result.ok:
                FLUSH_HALTS.inc()
                logger.warning(
                    "buffer.flush_halted",
                    event_name=event.name,
                    delivered=delivered,
                    remaining=len(self._events),
                    error=result.detail,
                )
                break
            # The head may only be removed once its delivery succeeded
            if self._events and self._events[0] is event:
                self._events.popleft()
            delivered += 1

        BUFFER_SIZE.set(len(self._events))
        if delivered:
            logger.info("buffer.flushed", delivered=delivered, remaining=len(self._events))
        return delivered

    def clear(self) -> int:
        """Drop every buffered event."""
        dropped = len(self._events)
        self._events.clear()
        BUFFER_SIZE.set(0)
        logger.info("buffer.cleared", dropped=dropped)
        return dropped

    def events(self) -> list[BufferedEvent]:
        """Snapshot of buffered events in insertion order."""
        return list(self._events)

    def names(self) -> list[str]:
        return [event.name for event in self._events]

    def is_empty(self) -> bool:
        return not self._events

    def size(self) -> int:
        return len(self._events)

    def __len__(self) -> int:
        return len(self._events)
