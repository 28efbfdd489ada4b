"""User (coach, closer, setter) and client models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_engine.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from commission_engine.models.payments import Payment, PaymentSchedule


class User(Base, TimestampMixin):
    """Team member who can earn commission."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    role: Mapped[str] = mapped_column(String, nullable=False, default="coach")
    # Zero is a real override and must not be treated as unset
    commission_rate: Mapped[Decimal | None] = mapped_column(
        Numeric(7, 4), nullable=True
    )
    commission_config: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "commission_rate IS NULL OR (commission_rate >= 0 AND commission_rate <= 1)",
            name="users_commission_rate_range_check",
        ),
    )


class Client(Base, TimestampMixin):
    """Coaching client."""

    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    assigned_coach_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    appointment_setter_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    lead_source: Mapped[str] = mapped_column(
        String, nullable=False, default="coach_driven"
    )
    is_resign: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    # [{"coach_id": ..., "start_date": "YYYY-MM-DD", "end_date": null}, ...]
    coach_history: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    __table_args__ = (
        CheckConstraint(
            "lead_source IN ('company_driven', 'coach_driven')",
            name="clients_lead_source_check",
        ),
    )

    # Relationships
    payments: Mapped[list[Payment]] = relationship(back_populates="client")
    schedules: Mapped[list[PaymentSchedule]] = relationship(back_populates="client")
