"""Bridge from commission events to an external notification collaborator."""

from __future__ import annotations

import logging
from typing import Any, Protocol, runtime_checkable

from commission_engine.events.emitter import EventEmitter
from commission_engine.events.types import CommissionEarned, DomainEvent

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationSink(Protocol):
    """Delivers a notification payload (chat, in-app, ...)."""

    def send(self, payload: dict[str, Any]) -> None:
        ...


class LoggingNotificationSink:
    """Sink that only logs; used when no delivery channel is configured."""

    def send(self, payload: dict[str, Any]) -> None:
        logger.info(
            "Commission earned: user=%s role=%s amount=%s payment=%s",
            payload["userId"],
            payload["role"],
            payload["amount"],
            payload["paymentId"],
        )


class CommissionNotifier:
    """Forwards CommissionEarned events to a sink."""

    def __init__(self, sink: NotificationSink):
        self.sink = sink

    def __call__(self, event: DomainEvent) -> None:
        if isinstance(event, CommissionEarned):
            self.sink.send(event.to_notification())

    def register(self, emitter: EventEmitter) -> None:
        emitter.on(CommissionEarned, self)
