"""Commission settings, ledger and adjustment models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from commission_engine.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from commission_engine.models.payments import Payment


class CommissionSetting(Base):
    """Key/value commission rate setting."""

    __tablename__ = "commission_settings"

    setting_key: Mapped[str] = mapped_column(String, primary_key=True)
    setting_value: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class CommissionLedgerEntry(Base, TimestampMixin):
    """One commission owed to one user for one payment.

    Rows are written by the ledger writer and afterwards only change
    status (payroll marks them paid, chargebacks void them).
    """

    __tablename__ = "commission_ledger"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    client_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("clients.id", ondelete="SET NULL"), nullable=True
    )
    payment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payments.id", ondelete="RESTRICT"), nullable=True
    )
    gross_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    net_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    commission_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    entry_type: Mapped[str] = mapped_column(String, nullable=False, default="commission")
    split_role: Mapped[str | None] = mapped_column(String, nullable=True)
    split_percentage: Mapped[Decimal | None] = mapped_column(Numeric(7, 2), nullable=True)
    source_schedule_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payment_schedules.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    payout_period_start: Mapped[date] = mapped_column(Date, nullable=False)
    calculation_basis: Mapped[dict[str, Any]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    __table_args__ = (
        UniqueConstraint("user_id", "payment_id", name="commission_ledger_user_payment_uq"),
        CheckConstraint(
            "entry_type IN ('commission', 'split', 'manual', 'import')",
            name="commission_ledger_entry_type_check",
        ),
        CheckConstraint(
            "split_role IS NULL OR split_role IN ('coach', 'closer', 'setter', 'referrer')",
            name="commission_ledger_split_role_check",
        ),
        CheckConstraint(
            "status IN ('pending', 'paid', 'void')",
            name="commission_ledger_status_check",
        ),
        Index("ix_commission_ledger_client", "client_id"),
    )

    # Relationships
    payment: Mapped[Payment | None] = relationship()


class CommissionAdjustment(Base, TimestampMixin):
    """Signed correction against a user's commissions (e.g. chargebacks)."""

    __tablename__ = "commission_adjustments"

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    adjustment_type: Mapped[str] = mapped_column(String, nullable=False)
    reason: Mapped[str] = mapped_column(String, nullable=False)
    notes: Mapped[str | None] = mapped_column(String, nullable=True)
    related_ledger_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("commission_ledger.id", ondelete="SET NULL"), nullable=True
    )
    related_payment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payments.id", ondelete="SET NULL"), nullable=True
    )
    idempotency_key: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("idempotency_key", name="commission_adjustments_idem_uq"),
        CheckConstraint(
            "adjustment_type IN ('chargeback', 'bonus', 'correction')",
            name="commission_adjustments_type_check",
        ),
    )
