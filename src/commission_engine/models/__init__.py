"""ORM models."""

from commission_engine.models.base import Base, JSONType, TimestampMixin
from commission_engine.models.commission import (
    CommissionAdjustment,
    CommissionLedgerEntry,
    CommissionSetting,
)
from commission_engine.models.payments import Payment, PaymentSchedule
from commission_engine.models.people import Client, User

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "Client",
    "CommissionAdjustment",
    "CommissionLedgerEntry",
    "CommissionSetting",
    "Payment",
    "PaymentSchedule",
    "User",
]
