"""Commission split calculator - the waterfall."""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from commission_engine.calculators.basis import (
    CalculationBasis,
    CloserBasis,
    CoachBasis,
    ReferrerBasis,
    SetterBasis,
    basis_to_dict,
)
from commission_engine.calculators.coach_history import resolve_active_coach
from commission_engine.calculators.payout_period import PayoutPeriod, period_for
from commission_engine.calculators.rate_resolver import RateResolver
from commission_engine.calculators.types import (
    CalculationInputs,
    CalculationOutcome,
    CoachProfile,
    EntryStatus,
    EntryType,
    SplitRole,
    money,
    utc_date,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass(frozen=True)
class LedgerEntryCandidate:
    """A ledger row computed for one recipient, before persistence."""

    user_id: UUID
    role: SplitRole
    entry_type: EntryType
    commission_amount: Decimal
    gross_amount: Decimal
    net_amount: Decimal
    split_percentage: Decimal | None
    basis: CalculationBasis

    def to_row(
        self,
        payment_id: UUID,
        client_id: UUID | None,
        schedule_id: UUID | None,
        period: PayoutPeriod,
    ) -> dict[str, Any]:
        """Column values for the commission_ledger table."""
        return {
            "user_id": self.user_id,
            "client_id": client_id,
            "payment_id": payment_id,
            "gross_amount": self.gross_amount,
            "net_amount": self.net_amount,
            "commission_amount": self.commission_amount,
            "entry_type": self.entry_type.value,
            "split_role": self.role.value,
            "split_percentage": self.split_percentage,
            "source_schedule_id": schedule_id,
            "status": EntryStatus.PENDING.value,
            "payout_period_start": period.period_start,
            "calculation_basis": basis_to_dict(self.basis),
        }


@dataclass
class CalculationResult:
    """Result of calculating commissions for one payment."""

    payment_id: UUID
    outcome: CalculationOutcome
    client_id: UUID | None = None
    schedule_id: UUID | None = None
    net_pool: Decimal = ZERO
    period: PayoutPeriod | None = None
    entries: list[LedgerEntryCandidate] = field(default_factory=list)
    calculation_id: UUID | None = None
    inputs_fingerprint: str = ""

    @property
    def total_commission(self) -> Decimal:
        return sum((e.commission_amount for e in self.entries), ZERO)

    @property
    def should_mark_processed(self) -> bool:
        """Whether persisting this result completes the payment."""
        return self.outcome in (
            CalculationOutcome.CALCULATED,
            CalculationOutcome.NON_POSITIVE_POOL,
        )

    def to_rows(self) -> list[dict[str, Any]]:
        if self.period is None:
            return []
        return [
            entry.to_row(self.payment_id, self.client_id, self.schedule_id, self.period)
            for entry in self.entries
        ]


class SplitCalculator:
    """Waterfall commission calculator.

    Pure: works only on a CalculationInputs snapshot, never on the database.

    Deduction order (stable per payment):
    1) Processor fee removed from gross -> net pool
    2) Closer: gross * closer_rate
    3) Appointment setter: gross * setter_rate
    4) Referrer: flat fee, only on the client's first commission
    5) Coach: (net pool - closer - setter - referrer) * resolved rate

    Closer and setter are paid on gross and are unaffected by fees. The
    coach is the residual claimant and gets nothing when the remainder is
    not positive. A user receives at most one entry per payment; a user
    already paid in an earlier step is skipped in later steps.
    """

    def __init__(self, engine_version: str = "1.0.0"):
        self.engine_version = engine_version

    def calculate(self, inputs: CalculationInputs) -> CalculationResult:
        """Calculate the ledger entries for one payment."""
        payment = inputs.payment

        if payment.commission_calculated:
            return CalculationResult(
                payment_id=payment.payment_id,
                outcome=CalculationOutcome.ALREADY_PROCESSED,
                client_id=payment.client_id,
            )

        client = inputs.client
        if client is None:
            logger.warning(
                "Payment %s has no resolvable client; needs review", payment.payment_id
            )
            return CalculationResult(
                payment_id=payment.payment_id,
                outcome=CalculationOutcome.CLIENT_MISSING,
            )

        schedule = inputs.schedule
        settings = inputs.settings
        gross = payment.gross
        net_pool = payment.net_pool
        period = period_for(payment.paid_at)

        inputs_fingerprint = self._compute_inputs_fingerprint(inputs)
        calculation_id = self._generate_calculation_id(
            payment.payment_id, inputs_fingerprint
        )
        result = CalculationResult(
            payment_id=payment.payment_id,
            outcome=CalculationOutcome.CALCULATED,
            client_id=client.client_id,
            schedule_id=schedule.schedule_id if schedule else None,
            net_pool=net_pool,
            period=period,
            calculation_id=calculation_id,
            inputs_fingerprint=inputs_fingerprint,
        )

        if net_pool <= ZERO:
            logger.warning(
                "Payment %s net pool %s (gross %s, fee %s) is not positive; no commissions",
                payment.payment_id,
                net_pool,
                gross,
                payment.fee,
            )
            result.outcome = CalculationOutcome.NON_POSITIVE_POOL
            return result

        extra = {
            "calculation_id": str(calculation_id),
            "engine_version": self.engine_version,
        }
        paid_users: set[UUID] = set()
        deducted = ZERO

        # 1) Closer
        closer = schedule.first_split("Closer") if schedule else None
        if closer is not None and closer.user_id is not None:
            rate = settings.closer_rate
            entry = self._build_entry(
                user_id=closer.user_id,
                role=SplitRole.CLOSER,
                entry_type=EntryType.SPLIT,
                amount=money(gross * rate),
                gross=gross,
                net_pool=net_pool,
                split_percentage=rate * HUNDRED,
                basis=CloserBasis(
                    rate=rate,
                    basis_amount=gross,
                    split_percentage=closer.percentage,
                    extra=extra,
                ),
            )
            deducted += self._append(result, entry, paid_users)

        # 2) Appointment setter
        if client.appointment_setter_id is not None:
            rate = settings.setter_rate
            entry = self._build_entry(
                user_id=client.appointment_setter_id,
                role=SplitRole.SETTER,
                entry_type=EntryType.COMMISSION,
                amount=money(gross * rate),
                gross=gross,
                net_pool=net_pool,
                split_percentage=rate * HUNDRED,
                basis=SetterBasis(rate=rate, basis_amount=gross, extra=extra),
            )
            deducted += self._append(result, entry, paid_users)

        # 3) Referrer, first commission for the client only
        referrer = schedule.first_split("Referrer") if schedule else None
        if referrer is not None and referrer.user_id is not None:
            if inputs.prior_client_entries == 0:
                entry = self._build_entry(
                    user_id=referrer.user_id,
                    role=SplitRole.REFERRER,
                    entry_type=EntryType.SPLIT,
                    amount=money(settings.referrer_flat_fee),
                    gross=gross,
                    net_pool=net_pool,
                    split_percentage=None,
                    basis=ReferrerBasis(
                        flat_fee=settings.referrer_flat_fee,
                        is_first_payment=True,
                        extra=extra,
                    ),
                )
                deducted += self._append(result, entry, paid_users)
            else:
                logger.debug(
                    "Client %s already has %d ledger entries; no referral bonus",
                    client.client_id,
                    inputs.prior_client_entries,
                )

        # 4) Coach residual
        coach_id = resolve_active_coach(client, payment.paid_at)
        if coach_id is None:
            logger.info(
                "Payment %s: no active coach for client %s",
                payment.payment_id,
                client.client_id,
            )
            return result

        profile = inputs.coaches.get(coach_id) or CoachProfile(user_id=coach_id)
        resolution = RateResolver(settings).resolve(
            profile, client, utc_date(payment.paid_at)
        )
        if resolution.rate <= ZERO:
            logger.info(
                "Payment %s: coach %s rate is 0 (%s); no coach entry",
                payment.payment_id,
                coach_id,
                resolution.source,
            )
            return result

        remainder = net_pool - deducted
        amount = money(remainder * resolution.rate)
        if amount <= ZERO:
            logger.info(
                "Payment %s: coach remainder %s leaves nothing after other splits",
                payment.payment_id,
                remainder,
            )
            return result

        entry = self._build_entry(
            user_id=coach_id,
            role=SplitRole.COACH,
            entry_type=EntryType.COMMISSION,
            amount=amount,
            gross=gross,
            net_pool=net_pool,
            split_percentage=resolution.rate * HUNDRED,
            basis=CoachBasis(
                rate=resolution.rate,
                rate_source=resolution.source,
                net_pool=net_pool,
                other_commissions=deducted,
                coach_id=coach_id,
                lead_source=client.lead_source.value,
                extra=extra,
            ),
        )
        self._append(result, entry, paid_users)
        return result

    def _build_entry(
        self,
        *,
        user_id: UUID,
        role: SplitRole,
        entry_type: EntryType,
        amount: Decimal,
        gross: Decimal,
        net_pool: Decimal,
        split_percentage: Decimal | None,
        basis: CalculationBasis,
    ) -> LedgerEntryCandidate:
        return LedgerEntryCandidate(
            user_id=user_id,
            role=role,
            entry_type=entry_type,
            commission_amount=amount,
            gross_amount=gross,
            net_amount=net_pool,
            split_percentage=(
                None if split_percentage is None else money(split_percentage)
            ),
            basis=basis,
        )

    def _append(
        self,
        result: CalculationResult,
        entry: LedgerEntryCandidate,
        paid_users: set[UUID],
    ) -> Decimal:
        """Add an entry to the result; returns the amount deducted."""
        if entry.commission_amount <= ZERO:
            return ZERO

        if entry.user_id in paid_users:
            logger.warning(
                "Payment %s: user %s already has an entry; skipping %s share",
                result.payment_id,
                entry.user_id,
                entry.role.value,
            )
            return ZERO

        paid_users.add(entry.user_id)
        result.entries.append(entry)
        return entry.commission_amount

    def _generate_calculation_id(self, payment_id: UUID, inputs_fingerprint: str) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "payment_id": str(payment_id),
            "engine_version": self.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    def _compute_inputs_fingerprint(self, inputs: CalculationInputs) -> str:
        """Compute fingerprint of all inputs used in calculation."""
        json_str = json.dumps(inputs.to_canonical_dict(), sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
