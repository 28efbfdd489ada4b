"""Payment and payment schedule models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_engine.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from commission_engine.models.people import Client


class PaymentSchedule(Base, TimestampMixin):
    """Sale-time schedule carrying the closer/referrer splits."""

    __tablename__ = "payment_schedules"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    client_id: Mapped[UUID] = mapped_column(
        ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    # [{"userId": ..., "role": "Closer" | "Referrer", "percentage": 10}, ...]
    commission_splits: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    assigned_coach_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # Relationships
    client: Mapped[Client] = relationship(back_populates="schedules")


class Payment(Base, TimestampMixin):
    """A successful charge recorded by the payment pipeline."""

    __tablename__ = "payments"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    payment_schedule_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payment_schedules.id", ondelete="SET NULL"), nullable=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    processor_fee: Mapped[Decimal] = mapped_column(
        Numeric(14, 2), nullable=False, default=Decimal("0")
    )
    payment_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="succeeded")
    commission_calculated: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    review_status: Mapped[str | None] = mapped_column(String, nullable=True)
    refund_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    dispute_id: Mapped[str | None] = mapped_column(String, nullable=True)
    dispute_status: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('succeeded', 'refunded', 'partially_refunded', 'disputed')",
            name="payments_status_check",
        ),
        CheckConstraint(
            "review_status IS NULL OR review_status IN ('pending_review', 'resolved')",
            name="payments_review_status_check",
        ),
        Index("ix_payments_uncalculated", "commission_calculated", "payment_date"),
        Index("ix_payments_dispute", "dispute_id"),
    )

    # Relationships
    client: Mapped[Client | None] = relationship(back_populates="payments")
    schedule: Mapped[PaymentSchedule | None] = relationship()

    @property
    def net_amount(self) -> Decimal:
        """Gross minus processor fee."""
        return self.amount - (self.processor_fee or Decimal("0"))
