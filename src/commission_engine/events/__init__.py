"""Commission domain events."""

from commission_engine.events.emitter import EventBatch, EventEmitter, EventHandler
from commission_engine.events.notifications import (
    CommissionNotifier,
    LoggingNotificationSink,
    NotificationSink,
)
from commission_engine.events.types import (
    CommissionChargedBack,
    CommissionEarned,
    DomainEvent,
    EventCategory,
    EventMetadata,
    PaymentFlaggedForReview,
)

__all__ = [
    "CommissionChargedBack",
    "CommissionEarned",
    "CommissionNotifier",
    "DomainEvent",
    "EventBatch",
    "EventCategory",
    "EventEmitter",
    "EventHandler",
    "EventMetadata",
    "LoggingNotificationSink",
    "NotificationSink",
    "PaymentFlaggedForReview",
]
