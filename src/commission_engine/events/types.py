"""Domain event types for commission processing.

All events are:
- Immutable (frozen dataclasses)
- Typed with explicit payloads
- Traceable via metadata
- Serializable for delivery to notification collaborators
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    COMMISSION = "commission"
    REVIEW = "review"
    CHARGEBACK = "chargeback"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    correlation_id: UUID  # Links events from one processing run
    actor_type: str  # 'system', 'scheduler', 'user', 'webhook'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        correlation_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "commission_engine",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            correlation_id=correlation_id or uuid4(),
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = asdict(self)
        data["event_type"] = self.event_type
        return _serialize_dict(data)

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, datetime):
        return obj.isoformat()
    elif isinstance(obj, date):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


@dataclass(frozen=True)
class CommissionEarned(DomainEvent):
    """A ledger entry was committed for a user."""

    user_id: UUID
    amount: Decimal
    role: str
    client_id: UUID | None
    payment_id: UUID

    @property
    def category(self) -> EventCategory:
        return EventCategory.COMMISSION

    def to_notification(self) -> dict[str, Any]:
        """Stable payload for the notification collaborator."""
        return {
            "userId": str(self.user_id),
            "amount": str(self.amount),
            "role": self.role,
            "clientId": str(self.client_id) if self.client_id else None,
            "paymentId": str(self.payment_id),
        }


@dataclass(frozen=True)
class PaymentFlaggedForReview(DomainEvent):
    """A payment could not be attributed and needs an operator."""

    payment_id: UUID
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.REVIEW


@dataclass(frozen=True)
class CommissionChargedBack(DomainEvent):
    """A refund produced a negative adjustment for a user."""

    user_id: UUID
    amount: Decimal  # Negative
    payment_id: UUID
    ledger_entry_id: UUID
    voided: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.CHARGEBACK
