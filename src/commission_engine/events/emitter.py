"""Event emitter for publishing commission events.

The emitter provides:
- Handler registration with type filtering
- Category-based routing
- Error isolation (handler failures don't break other handlers)
- Event batching so nothing is published for a rolled-back write
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar, runtime_checkable

from commission_engine.events.types import DomainEvent, EventCategory

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=DomainEvent)


@runtime_checkable
class EventHandler(Protocol):
    """Protocol for event handlers."""

    def __call__(self, event: DomainEvent) -> None:
        """Handle a domain event."""
        ...


@dataclass
class HandlerRegistration:
    """Registration of an event handler."""

    handler: EventHandler
    event_types: set[str] | None  # None = all events
    categories: set[EventCategory] | None  # None = all categories


class EventEmitter:
    """Synchronous event emitter.

    Publishes events to registered handlers. Handlers are isolated -
    if one fails, others still receive the event.

    Usage:
        emitter = EventEmitter()

        # Register handler for specific event type
        emitter.on(CommissionEarned, notify_earner)

        # Register handler for category
        emitter.on_category(EventCategory.REVIEW, alert_operators)

        # Batch events (for transactions)
        with emitter.batch() as batch:
            batch.add(event1)
            batch.add(event2)
        # All events emitted when context exits without error
    """

    def __init__(self) -> None:
        self._handlers: list[HandlerRegistration] = []
        # Batches are per thread; request handlers share one emitter
        self._local = threading.local()

    @property
    def _batch(self) -> list[DomainEvent] | None:
        return getattr(self._local, "batch", None)

    def on(
        self,
        event_type: type[T] | list[type[T]],
        handler: EventHandler,
    ) -> None:
        """Register handler for specific event type(s)."""
        if isinstance(event_type, list):
            types = {t.__name__ for t in event_type}
        else:
            types = {event_type.__name__}

        self._handlers.append(
            HandlerRegistration(handler=handler, event_types=types, categories=None)
        )

    def on_category(
        self,
        category: EventCategory | list[EventCategory],
        handler: EventHandler,
    ) -> None:
        """Register handler for event category(ies)."""
        if isinstance(category, list):
            cats = set(category)
        else:
            cats = {category}

        self._handlers.append(
            HandlerRegistration(handler=handler, event_types=None, categories=cats)
        )

    def on_all(self, handler: EventHandler) -> None:
        """Register handler for all events."""
        self._handlers.append(
            HandlerRegistration(handler=handler, event_types=None, categories=None)
        )

    def off(self, handler: EventHandler) -> None:
        """Unregister a handler."""
        self._handlers = [reg for reg in self._handlers if reg.handler is not handler]

    def emit(self, event: DomainEvent) -> list[Exception]:
        """Emit an event to all matching handlers.

        Returns list of any exceptions raised by handlers.
        Handlers are isolated - failures don't stop other handlers.
        """
        batch = self._batch
        if batch is not None:
            batch.append(event)
            return []

        return self._dispatch(event)

    def _dispatch(self, event: DomainEvent) -> list[Exception]:
        """Dispatch event to matching handlers."""
        errors: list[Exception] = []
        event_type = event.event_type
        event_category = event.category

        for reg in self._handlers:
            if reg.event_types and event_type not in reg.event_types:
                continue

            if reg.categories and event_category not in reg.categories:
                continue

            try:
                reg.handler(event)
            except Exception as e:
                logger.exception(
                    "Handler %s failed for event %s",
                    reg.handler,
                    event_type,
                )
                errors.append(e)

        return errors

    def batch(self) -> EventBatch:
        """Create a batch context for collecting events.

        Events are held until the context exits, then emitted together.
        """
        return EventBatch(self)

    def _start_batch(self) -> None:
        self._local.batch = []

    def _end_batch(self) -> list[Exception]:
        events = self._batch or []
        self._local.batch = None

        errors: list[Exception] = []
        for event in events:
            errors.extend(self._dispatch(event))
        return errors

    def _discard_batch(self) -> None:
        self._local.batch = None


class EventBatch:
    """Context manager for batching events."""

    def __init__(self, emitter: EventEmitter) -> None:
        self._emitter = emitter
        self._errors: list[Exception] = []

    def __enter__(self) -> EventBatch:
        self._emitter._start_batch()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is None:
            self._errors = self._emitter._end_batch()
        else:
            # Exception occurred - discard batch
            self._emitter._discard_batch()

    def add(self, event: DomainEvent) -> None:
        """Add event to batch."""
        self._emitter.emit(event)

    @property
    def errors(self) -> list[Exception]:
        """Errors from handler execution (available after context exits)."""
        return self._errors
