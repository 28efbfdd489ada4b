"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Calculation schemas
# ============================================================================


class PayoutPeriodResponse(BaseModel):
    """Schema for a payout period."""

    model_config = ConfigDict(from_attributes=True)

    period_start: date
    period_end: date
    payout_date: date
    label: str


class LedgerEntryResponse(BaseModel):
    """Schema for one calculated ledger entry."""

    user_id: UUID
    role: str
    entry_type: str
    commission_amount: Decimal
    gross_amount: Decimal
    net_amount: Decimal
    split_percentage: Decimal | None = None
    calculation_basis: dict[str, Any]


class CalculationResponse(BaseModel):
    """Schema for a processed or previewed payment."""

    payment_id: UUID
    outcome: str
    client_id: UUID | None = None
    net_pool: Decimal = Decimal("0")
    total_commission: Decimal = Decimal("0")
    period: PayoutPeriodResponse | None = None
    calculation_id: UUID | None = None
    entries: list[LedgerEntryResponse] = Field(default_factory=list)
    entries_written: int = 0


class BatchResponse(BaseModel):
    """Schema for a pending pass summary."""

    attempted: int
    processed: list[UUID]
    flagged: list[UUID]
    skipped: list[UUID]
    failed: dict[UUID, str]


class PeriodListResponse(BaseModel):
    """Schema for listing payout periods."""

    current: PayoutPeriodResponse
    items: list[PayoutPeriodResponse]


# ============================================================================
# Chargeback schemas
# ============================================================================


class RefundRequest(BaseModel):
    """Schema for reporting a refund."""

    refund_amount: Decimal = Field(gt=0)
    refund_reference: str = Field(min_length=1)
    refunded_at: datetime | None = None


class ChargebackLineResponse(BaseModel):
    """Schema for one chargeback adjustment."""

    model_config = ConfigDict(from_attributes=True)

    ledger_entry_id: UUID
    user_id: UUID
    amount: Decimal
    voided: bool


class ChargebackResponse(BaseModel):
    """Schema for a handled refund."""

    model_config = ConfigDict(from_attributes=True)

    payment_id: UUID
    refund_amount: Decimal
    is_full_refund: bool
    total_clawback: Decimal
    adjustments: list[ChargebackLineResponse]


class DisputeOpenedRequest(BaseModel):
    """Schema for reporting a new dispute."""

    dispute_id: str = Field(min_length=1)
    dispute_status: str = "needs_response"


class DisputeClosedRequest(BaseModel):
    """Schema for reporting a closed dispute."""

    dispute_status: str = Field(min_length=1)
    amount: Decimal | None = Field(default=None, gt=0)
    closed_at: datetime | None = None


class DisputeClosedResponse(BaseModel):
    """Schema for a settled dispute; chargeback is set when it was lost."""

    dispute_id: str
    dispute_status: str
    chargeback: ChargebackResponse | None = None


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None
