"""Type definitions for the commission calculation pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

CENTS = Decimal("0.01")


def money(amount: Decimal) -> Decimal:
    """Quantize a currency amount to cents."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def as_utc(moment: datetime) -> datetime:
    """Return an aware UTC datetime (naive values are taken as UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def utc_date(moment: datetime | date) -> date:
    """Calendar date of a timestamp in UTC."""
    if isinstance(moment, datetime):
        return as_utc(moment).date()
    return moment


class LeadSource(str, Enum):
    """Where a client originated."""

    COMPANY_DRIVEN = "company_driven"
    COACH_DRIVEN = "coach_driven"


class SplitRole(str, Enum):
    """Role a ledger entry pays for."""

    COACH = "coach"
    CLOSER = "closer"
    SETTER = "setter"
    REFERRER = "referrer"


class EntryType(str, Enum):
    """Ledger entry origin."""

    COMMISSION = "commission"
    SPLIT = "split"
    MANUAL = "manual"
    IMPORT = "import"


class EntryStatus(str, Enum):
    """Ledger entry payout status."""

    PENDING = "pending"
    PAID = "paid"
    VOID = "void"


class ReviewStatus(str, Enum):
    """Human review marker on a payment."""

    PENDING_REVIEW = "pending_review"
    RESOLVED = "resolved"


class CalculationOutcome(str, Enum):
    """How a calculation ended."""

    CALCULATED = "calculated"
    ALREADY_PROCESSED = "already_processed"
    CLIENT_MISSING = "client_missing"
    NON_POSITIVE_POOL = "non_positive_pool"


# Settings keys and their fallbacks when the key is absent
DEFAULT_RATE_SETTINGS: dict[str, Decimal] = {
    "closer_rate": Decimal("0.10"),
    "setter_rate": Decimal("0.10"),
    "referrer_flat_fee": Decimal("100"),
    "commission_rate_resign": Decimal("0.70"),
    "commission_rate_company_lead": Decimal("0.50"),
    "commission_rate_coach_lead": Decimal("0.70"),
}


@dataclass(frozen=True)
class RateSettings:
    """Resolved commission settings for one calculation batch."""

    closer_rate: Decimal = DEFAULT_RATE_SETTINGS["closer_rate"]
    setter_rate: Decimal = DEFAULT_RATE_SETTINGS["setter_rate"]
    referrer_flat_fee: Decimal = DEFAULT_RATE_SETTINGS["referrer_flat_fee"]
    commission_rate_resign: Decimal = DEFAULT_RATE_SETTINGS["commission_rate_resign"]
    commission_rate_company_lead: Decimal = DEFAULT_RATE_SETTINGS[
        "commission_rate_company_lead"
    ]
    commission_rate_coach_lead: Decimal = DEFAULT_RATE_SETTINGS[
        "commission_rate_coach_lead"
    ]

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> RateSettings:
        """Build settings from a key/value store, ignoring unknown keys."""
        known = {
            key: Decimal(str(value))
            for key, value in values.items()
            if key in DEFAULT_RATE_SETTINGS and value is not None
        }
        return cls(**known)

    def to_canonical_dict(self) -> dict[str, str]:
        return {key: str(getattr(self, key)) for key in sorted(DEFAULT_RATE_SETTINGS)}


@dataclass(frozen=True)
class CoachInterval:
    """One coach assignment; end_date None means still active."""

    coach_id: UUID
    start_date: date
    end_date: date | None = None

    def contains(self, on: date) -> bool:
        """Check if the assignment covers a given date (bounds inclusive)."""
        if self.start_date > on:
            return False
        if self.end_date is not None and self.end_date < on:
            return False
        return True

    def overlaps(self, other: CoachInterval) -> bool:
        mine_end = self.end_date or date.max
        other_end = other.end_date or date.max
        return self.start_date <= other_end and other.start_date <= mine_end


@dataclass(frozen=True)
class ClientSnapshot:
    """Client fields the calculation depends on."""

    client_id: UUID
    lead_source: LeadSource
    assigned_coach_id: UUID | None = None
    appointment_setter_id: UUID | None = None
    is_resign: bool = False
    start_date: date | None = None
    coach_history: tuple[CoachInterval, ...] = ()


@dataclass(frozen=True)
class CoachProfile:
    """Per-coach rate overrides."""

    user_id: UUID
    commission_rate: Decimal | None = None
    commission_config: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class CommissionSplit:
    """Closer/referrer split recorded on a payment schedule."""

    role: str  # 'Closer' or 'Referrer'
    user_id: UUID | None
    percentage: Decimal | None = None


@dataclass(frozen=True)
class ScheduleSnapshot:
    """Payment schedule fields the calculation depends on."""

    schedule_id: UUID
    splits: tuple[CommissionSplit, ...] = ()
    assigned_coach_id: UUID | None = None

    def first_split(self, role: str) -> CommissionSplit | None:
        """First split with a real user for a role ('Closer', 'Referrer')."""
        for split in self.splits:
            if split.role.lower() == role.lower() and split.user_id is not None:
                return split
        return None


@dataclass(frozen=True)
class PaymentSnapshot:
    """Payment fields the calculation depends on."""

    payment_id: UUID
    gross: Decimal
    fee: Decimal
    paid_at: datetime
    client_id: UUID | None = None
    commission_calculated: bool = False
    review_status: str | None = None

    @property
    def net_pool(self) -> Decimal:
        return self.gross - self.fee


@dataclass(frozen=True)
class CalculationInputs:
    """Everything one payment's calculation reads, fetched up front."""

    payment: PaymentSnapshot
    client: ClientSnapshot | None
    schedule: ScheduleSnapshot | None
    settings: RateSettings
    coaches: Mapping[UUID, CoachProfile] = field(default_factory=dict)
    # Ledger rows already recorded for this client by other payments
    prior_client_entries: int = 0

    def to_canonical_dict(self) -> dict[str, Any]:
        """Return canonical dict for fingerprinting (deterministic ordering)."""
        payment = self.payment
        client = self.client
        return {
            "payment": {
                "id": str(payment.payment_id),
                "gross": str(payment.gross),
                "fee": str(payment.fee),
                "paid_at": as_utc(payment.paid_at).isoformat(),
            },
            "client": None
            if client is None
            else {
                "id": str(client.client_id),
                "lead_source": client.lead_source.value,
                "assigned_coach_id": _opt(client.assigned_coach_id),
                "appointment_setter_id": _opt(client.appointment_setter_id),
                "is_resign": client.is_resign,
                "start_date": _opt(client.start_date),
                "coach_history": [
                    [str(i.coach_id), str(i.start_date), _opt(i.end_date)]
                    for i in client.coach_history
                ],
            },
            "schedule": None
            if self.schedule is None
            else {
                "id": str(self.schedule.schedule_id),
                "splits": [
                    [s.role, _opt(s.user_id), _opt(s.percentage)]
                    for s in self.schedule.splits
                ],
            },
            "settings": self.settings.to_canonical_dict(),
            "coaches": {
                str(coach_id): [
                    _opt(profile.commission_rate),
                    dict(sorted((profile.commission_config or {}).items())),
                ]
                for coach_id, profile in sorted(
                    self.coaches.items(), key=lambda item: str(item[0])
                )
            },
            "prior_client_entries": self.prior_client_entries,
        }


def _opt(value: Any) -> str | None:
    return None if value is None else str(value)
