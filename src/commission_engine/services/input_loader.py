"""Reads everything one payment's calculation needs into a snapshot."""

from __future__ import annotations

import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, TypeVar
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, aliased

from commission_engine.calculators.coach_history import parse_coach_history
from commission_engine.calculators.types import (
    CalculationInputs,
    ClientSnapshot,
    CoachProfile,
    CommissionSplit,
    EntryStatus,
    LeadSource,
    PaymentSnapshot,
    RateSettings,
    ScheduleSnapshot,
    SplitRole,
)
from commission_engine.config import ReadRetryPolicy
from commission_engine.database import is_postgres, set_statement_timeout
from commission_engine.exceptions import InputReadError, PaymentNotFoundError
from commission_engine.models import (
    Client,
    CommissionLedgerEntry,
    Payment,
    PaymentSchedule,
    User,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class InputLoader:
    """Loads calculation inputs with bounded retries on transient errors.

    Each read runs inside a savepoint on PostgreSQL so a failed attempt
    does not abort the surrounding transaction.
    """

    def __init__(
        self,
        session: Session,
        retry_policy: ReadRetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.session = session
        self.retry_policy = retry_policy or ReadRetryPolicy()
        self._sleep = sleep
        self._postgres = is_postgres(session)

    def get_payment(self, payment_id: UUID) -> Payment:
        """Fetch a payment or raise PaymentNotFoundError."""
        payment = self._read(
            f"payment {payment_id}", lambda: self.session.get(Payment, payment_id)
        )
        if payment is None:
            raise PaymentNotFoundError(payment_id)
        return payment

    def load(self, payment: Payment, settings: RateSettings) -> CalculationInputs:
        """Build the calculation snapshot for a payment."""
        set_statement_timeout(self.session, self.retry_policy.statement_timeout_ms)

        payment_snapshot = PaymentSnapshot(
            payment_id=payment.id,
            gross=Decimal(payment.amount),
            fee=Decimal(payment.processor_fee or 0),
            paid_at=payment.payment_date,
            client_id=payment.client_id,
            commission_calculated=payment.commission_calculated,
            review_status=payment.review_status,
        )

        client = None
        if payment.client_id is not None:
            client = self._read(
                f"client {payment.client_id}",
                lambda: self.session.get(Client, payment.client_id),
            )
        if client is None:
            return CalculationInputs(
                payment=payment_snapshot, client=None, schedule=None, settings=settings
            )

        client_snapshot = self._client_snapshot(client)
        schedule = self._load_schedule(payment, client)
        coaches = self._load_coaches(client_snapshot)
        prior = self._read(
            f"ledger history for client {client.id}",
            lambda: self._count_prior_entries(client.id, payment.id),
        )

        return CalculationInputs(
            payment=payment_snapshot,
            client=client_snapshot,
            schedule=schedule,
            settings=settings,
            coaches=coaches,
            prior_client_entries=prior,
        )

    def _client_snapshot(self, client: Client) -> ClientSnapshot:
        return ClientSnapshot(
            client_id=client.id,
            lead_source=LeadSource(client.lead_source),
            assigned_coach_id=client.assigned_coach_id,
            appointment_setter_id=client.appointment_setter_id,
            is_resign=bool(client.is_resign),
            start_date=client.start_date,
            coach_history=parse_coach_history(client.coach_history),
        )

    def _load_schedule(self, payment: Payment, client: Client) -> ScheduleSnapshot | None:
        """The payment's own schedule, else the client's most recent one."""
        if payment.payment_schedule_id is not None:
            schedule = self._read(
                f"schedule {payment.payment_schedule_id}",
                lambda: self.session.get(PaymentSchedule, payment.payment_schedule_id),
            )
        else:
            schedule = self._read(
                f"latest schedule for client {client.id}",
                lambda: self.session.execute(
                    select(PaymentSchedule)
                    .where(PaymentSchedule.client_id == client.id)
                    .order_by(PaymentSchedule.created_at.desc())
                    .limit(1)
                ).scalar_one_or_none(),
            )
        if schedule is None:
            return None

        return ScheduleSnapshot(
            schedule_id=schedule.id,
            splits=tuple(_parse_split(item) for item in schedule.commission_splits or []),
            assigned_coach_id=schedule.assigned_coach_id,
        )

    def _load_coaches(self, client: ClientSnapshot) -> dict[UUID, CoachProfile]:
        coach_ids = {interval.coach_id for interval in client.coach_history}
        if client.assigned_coach_id is not None:
            coach_ids.add(client.assigned_coach_id)
        if not coach_ids:
            return {}

        users = self._read(
            f"coaches for client {client.client_id}",
            lambda: self.session.execute(
                select(User).where(User.id.in_(coach_ids))
            ).scalars().all(),
        )
        return {
            user.id: CoachProfile(
                user_id=user.id,
                commission_rate=user.commission_rate,
                commission_config=user.commission_config,
            )
            for user in users
        }

    def _count_prior_entries(self, client_id: UUID, payment_id: UUID) -> int:
        """Ledger rows that make this payment not the client's first.

        Counts rows of any status from earlier payments (and rows with no
        payment), plus live referrer rows on any other payment. Rows from
        later payments alone do not count, so recalculating the first
        payment keeps its referral bonus.
        """
        current = aliased(Payment)
        paid_at = (
            select(current.payment_date).where(current.id == payment_id).scalar_subquery()
        )
        entry = CommissionLedgerEntry
        count = self.session.execute(
            select(func.count())
            .select_from(entry)
            .outerjoin(Payment, Payment.id == entry.payment_id)
            .where(
                entry.client_id == client_id,
                or_(entry.payment_id.is_(None), entry.payment_id != payment_id),
                or_(
                    entry.payment_id.is_(None),
                    Payment.id.is_(None),
                    Payment.payment_date < paid_at,
                    and_(
                        entry.split_role == SplitRole.REFERRER.value,
                        entry.status != EntryStatus.VOID.value,
                    ),
                ),
            )
        ).scalar_one()
        return int(count)

    def _read(self, what: str, query: Callable[[], T]) -> T:
        policy = self.retry_policy
        for attempt in range(1, policy.attempts + 1):
            try:
                if self._postgres:
                    with self.session.begin_nested():
                        return query()
                return query()
            except OperationalError as exc:
                if attempt >= policy.attempts:
                    logger.error("Reading %s failed after %d attempts", what, attempt)
                    raise InputReadError(what, attempt) from exc
                logger.warning(
                    "Transient error reading %s (attempt %d/%d): %s",
                    what,
                    attempt,
                    policy.attempts,
                    exc,
                )
                self._sleep(policy.backoff_seconds * attempt)
        raise InputReadError(what, policy.attempts)


def _parse_split(item: dict[str, Any]) -> CommissionSplit:
    """Parse one commission_splits entry; a bad user id leaves it unassigned."""
    raw_user = item.get("userId", item.get("user_id"))
    try:
        user_id = UUID(str(raw_user)) if raw_user else None
    except ValueError:
        logger.warning("Ignoring commission split with invalid user id %r", raw_user)
        user_id = None

    raw_pct = item.get("percentage")
    try:
        percentage = Decimal(str(raw_pct)) if raw_pct is not None else None
    except InvalidOperation:
        percentage = None

    return CommissionSplit(
        role=str(item.get("role", "")), user_id=user_id, percentage=percentage
    )
