"""Test data builders shared by the test modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from commission_engine.calculators.types import (
    CalculationInputs,
    ClientSnapshot,
    CoachInterval,
    CoachProfile,
    CommissionSplit,
    LeadSource,
    PaymentSnapshot,
    RateSettings,
    ScheduleSnapshot,
)
from commission_engine.models import (
    Client,
    CommissionLedgerEntry,
    Payment,
    PaymentSchedule,
    User,
)

# Inside the Dec 30 2024 - Jan 12 2025 payout period
PAID_AT = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)
CLIENT_START = date(2024, 11, 1)


# ============================================================================
# Snapshot builders (pure calculator tests)
# ============================================================================


def make_payment_snapshot(
    gross: str = "1000.00",
    fee: str = "30.00",
    paid_at: datetime = PAID_AT,
    **overrides: Any,
) -> PaymentSnapshot:
    return PaymentSnapshot(
        payment_id=overrides.pop("payment_id", uuid4()),
        gross=Decimal(gross),
        fee=Decimal(fee),
        paid_at=paid_at,
        **overrides,
    )


def make_client_snapshot(
    coach_id: UUID | None = None,
    lead_source: LeadSource = LeadSource.COMPANY_DRIVEN,
    **overrides: Any,
) -> ClientSnapshot:
    values: dict[str, Any] = {
        "client_id": uuid4(),
        "lead_source": lead_source,
        "assigned_coach_id": coach_id,
        "start_date": CLIENT_START,
    }
    values.update(overrides)
    return ClientSnapshot(**values)


def make_schedule_snapshot(
    closer_id: UUID | None = None, referrer_id: UUID | None = None
) -> ScheduleSnapshot:
    splits = []
    if closer_id is not None:
        splits.append(CommissionSplit("Closer", closer_id, Decimal("10")))
    if referrer_id is not None:
        splits.append(CommissionSplit("Referrer", referrer_id))
    return ScheduleSnapshot(schedule_id=uuid4(), splits=tuple(splits))


def make_inputs(
    payment: PaymentSnapshot | None = None,
    client: ClientSnapshot | None = None,
    schedule: ScheduleSnapshot | None = None,
    settings: RateSettings | None = None,
    coaches: dict[UUID, CoachProfile] | None = None,
    prior_client_entries: int = 0,
) -> CalculationInputs:
    return CalculationInputs(
        payment=payment or make_payment_snapshot(),
        client=client,
        schedule=schedule,
        settings=settings or RateSettings(),
        coaches=coaches or {},
        prior_client_entries=prior_client_entries,
    )


def history(*intervals: tuple[UUID, date, date | None]) -> tuple[CoachInterval, ...]:
    return tuple(CoachInterval(c, s, e) for c, s, e in intervals)


# ============================================================================
# Database seed data
# ============================================================================


@dataclass
class CommissionTestData:
    """Team members plus builders for clients, schedules and payments."""

    coach_id: UUID = field(default_factory=uuid4)
    closer_id: UUID = field(default_factory=uuid4)
    setter_id: UUID = field(default_factory=uuid4)
    referrer_id: UUID = field(default_factory=uuid4)

    def create_team(self, db: Session) -> None:
        db.add_all(
            [
                User(id=self.coach_id, name="Casey Coach", role="coach"),
                User(id=self.closer_id, name="Chris Closer", role="closer"),
                User(id=self.setter_id, name="Sam Setter", role="setter"),
                User(id=self.referrer_id, name="Riley Referrer", role="referrer"),
            ]
        )
        db.commit()

    def create_client(self, db: Session, **overrides: Any) -> Client:
        values: dict[str, Any] = {
            "name": "Jordan Client",
            "assigned_coach_id": self.coach_id,
            "lead_source": "company_driven",
            "start_date": CLIENT_START,
            "coach_history": [],
        }
        values.update(overrides)
        client = Client(**values)
        db.add(client)
        db.commit()
        return client

    def create_schedule(
        self,
        db: Session,
        client: Client,
        closer: bool = True,
        referrer: bool = False,
    ) -> PaymentSchedule:
        splits = []
        if closer:
            splits.append({"userId": str(self.closer_id), "role": "Closer", "percentage": 10})
        if referrer:
            splits.append({"userId": str(self.referrer_id), "role": "Referrer"})
        schedule = PaymentSchedule(client_id=client.id, commission_splits=splits)
        db.add(schedule)
        db.commit()
        return schedule

    def create_payment(
        self,
        db: Session,
        client: Client | None,
        schedule: PaymentSchedule | None = None,
        amount: str = "1000.00",
        fee: str = "30.00",
        paid_at: datetime = PAID_AT,
        **overrides: Any,
    ) -> Payment:
        payment = Payment(
            client_id=client.id if client else None,
            payment_schedule_id=schedule.id if schedule else None,
            amount=Decimal(amount),
            processor_fee=Decimal(fee),
            payment_date=paid_at,
            **overrides,
        )
        db.add(payment)
        db.commit()
        return payment


def ledger_rows(db: Session, payment_id: UUID) -> list[CommissionLedgerEntry]:
    """Fresh ledger rows for a payment, ordered by role."""
    db.expire_all()
    return list(
        db.execute(
            select(CommissionLedgerEntry)
            .where(CommissionLedgerEntry.payment_id == payment_id)
            .order_by(CommissionLedgerEntry.split_role)
        ).scalars()
    )


def reload(db: Session, payment: Payment) -> Payment:
    db.refresh(payment)
    return payment
