"""Chargeback service - claws back commissions on refunds and lost disputes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from commission_engine.calculators.types import EntryStatus, money
from commission_engine.events import CommissionChargedBack, EventEmitter, EventMetadata
from commission_engine.exceptions import DisputeNotFoundError, PaymentNotFoundError
from commission_engine.models import (
    Client,
    CommissionAdjustment,
    CommissionLedgerEntry,
    Payment,
)
from commission_engine.services.locking_service import PaymentLock

logger = logging.getLogger(__name__)

CHARGEBACK = "chargeback"

# Payment statuses
SUCCEEDED = "succeeded"
REFUNDED = "refunded"
PARTIALLY_REFUNDED = "partially_refunded"
DISPUTED = "disputed"

DISPUTE_LOST = "lost"


@dataclass(frozen=True)
class ChargebackLine:
    """One adjustment created against one ledger entry."""

    ledger_entry_id: UUID
    user_id: UUID
    amount: Decimal  # Negative
    voided: bool


@dataclass
class ChargebackResult:
    """Result of handling a refund.

    `adjustments` only holds adjustments created by this call; a repeated
    refund reference creates nothing new.
    """

    payment_id: UUID
    refund_amount: Decimal
    is_full_refund: bool
    adjustments: list[ChargebackLine] = field(default_factory=list)

    @property
    def total_clawback(self) -> Decimal:
        return sum((line.amount for line in self.adjustments), Decimal("0"))


class ChargebackService:
    """Creates negative adjustments for the ledger entries of a refunded payment.

    Refund amounts are cumulative (the processor reports the total refunded
    so far). Each entry is charged back up to its share of that total:

    - Full refund: the whole commission is charged back and pending
      entries are voided so they are never paid out.
    - Partial refund: refund / gross of the commission, rounded to cents;
      entries keep their status.
    - Adjustments already recorded for an entry are subtracted, so the
      net clawback never exceeds the commission.
    - Void entries are skipped. Adjustments are idempotent per
      (ledger entry, refund reference).

    A lost dispute is handled as a full refund.
    """

    def __init__(self, session: Session, emitter: EventEmitter | None = None):
        self.session = session
        self.emitter = emitter or EventEmitter()

    def handle_refund(
        self,
        payment_id: UUID,
        refund_amount: Decimal,
        refund_reference: str,
        refunded_at: datetime | None = None,
    ) -> ChargebackResult:
        """Apply a refund reported by the payment processor.

        Args:
            payment_id: Refunded payment
            refund_amount: Total amount refunded so far
            refund_reference: Processor refund id, used for deduplication
            refunded_at: When the refund happened (defaults to now)

        Returns:
            ChargebackResult with the adjustments created by this call
        """
        if refund_amount <= 0:
            raise ValueError("Refund amount must be positive")
        if not refund_reference:
            raise ValueError("Refund reference is required")

        try:
            result = self._apply(payment_id, refund_amount, refund_reference, refunded_at)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Payment %s: %s refund of %s, %d chargeback adjustments totalling %s",
            payment_id,
            "full" if result.is_full_refund else "partial",
            result.refund_amount,
            len(result.adjustments),
            result.total_clawback,
        )

        with self.emitter.batch() as batch:
            for line in result.adjustments:
                batch.add(
                    CommissionChargedBack(
                        metadata=EventMetadata.create(actor_type="webhook"),
                        user_id=line.user_id,
                        amount=line.amount,
                        payment_id=payment_id,
                        ledger_entry_id=line.ledger_entry_id,
                        voided=line.voided,
                    )
                )
        return result

    def handle_dispute_opened(
        self, payment_id: UUID, dispute_id: str, dispute_status: str = "needs_response"
    ) -> None:
        """Mark a payment as disputed.

        Existing commissions are left alone until the dispute closes; a
        disputed payment that was never processed is not processed.
        """
        if not dispute_id:
            raise ValueError("Dispute id is required")

        try:
            payment = self.session.get(Payment, payment_id)
            if payment is None:
                raise PaymentNotFoundError(payment_id)

            PaymentLock(self.session).acquire(payment_id)
            payment.status = DISPUTED
            payment.dispute_id = dispute_id
            payment.dispute_status = dispute_status
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Payment %s disputed (%s, %s)", payment_id, dispute_id, dispute_status)

    def handle_dispute_closed(
        self,
        dispute_id: str,
        dispute_status: str,
        amount: Decimal | None = None,
        closed_at: datetime | None = None,
    ) -> ChargebackResult | None:
        """Settle a dispute.

        A lost dispute is charged back as a refund of `amount` (the whole
        payment when not given). Any other outcome restores the payment's
        previous status and returns None.
        """
        if amount is not None and amount <= 0:
            raise ValueError("Dispute amount must be positive")

        try:
            payment = self.session.execute(
                select(Payment).where(Payment.dispute_id == dispute_id)
            ).scalar_one_or_none()
            if payment is None:
                raise DisputeNotFoundError(dispute_id)

            payment.dispute_status = dispute_status
            if dispute_status == DISPUTE_LOST:
                logger.info(
                    "Dispute %s lost for payment %s; processing as refund",
                    dispute_id,
                    payment.id,
                )
                # Committed together with the refund
                return self.handle_refund(
                    payment.id,
                    amount if amount is not None else Decimal(payment.amount),
                    f"dispute:{dispute_id}",
                    refunded_at=closed_at,
                )

            PaymentLock(self.session).acquire(payment.id)
            payment.status = PARTIALLY_REFUNDED if payment.refund_amount else SUCCEEDED
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(
            "Dispute %s closed as %s; payment %s is %s again",
            dispute_id,
            dispute_status,
            payment.id,
            payment.status,
        )
        return None

    def _apply(
        self,
        payment_id: UUID,
        refund_amount: Decimal,
        refund_reference: str,
        refunded_at: datetime | None,
    ) -> ChargebackResult:
        payment = self.session.get(Payment, payment_id)
        if payment is None:
            raise PaymentNotFoundError(payment_id)

        PaymentLock(self.session).acquire(payment_id)

        gross = Decimal(payment.amount)
        # Reports can arrive out of order; the total never goes down
        refunded = max(money(refund_amount), Decimal(payment.refund_amount or 0))
        is_full = refunded >= gross
        payment.status = REFUNDED if is_full else PARTIALLY_REFUNDED
        payment.refund_amount = refunded
        payment.refunded_at = refunded_at or datetime.now(timezone.utc)

        result = ChargebackResult(
            payment_id=payment_id, refund_amount=refunded, is_full_refund=is_full
        )

        entries = self.session.execute(
            select(CommissionLedgerEntry)
            .where(
                CommissionLedgerEntry.payment_id == payment_id,
                CommissionLedgerEntry.status != EntryStatus.VOID.value,
            )
            .order_by(CommissionLedgerEntry.created_at, CommissionLedgerEntry.id)
        ).scalars().all()
        if not entries:
            logger.info("Payment %s: no commission entries to charge back", payment_id)
            return result

        keys = {entry.id: f"{CHARGEBACK}:{entry.id}:{refund_reference}" for entry in entries}
        existing = set(
            self.session.execute(
                select(CommissionAdjustment.idempotency_key).where(
                    CommissionAdjustment.idempotency_key.in_(list(keys.values()))
                )
            ).scalars()
        )
        clawed_back = self._clawed_back(list(keys))

        client_name = self._client_name(payment.client_id)
        for entry in entries:
            key = keys[entry.id]
            if key in existing:
                logger.debug("Chargeback %s already recorded", key)
                continue

            commission = Decimal(entry.commission_amount)
            if is_full:
                owed = commission
            else:
                owed = min(money(refunded / gross * commission), commission)
            clawback = owed - clawed_back.get(entry.id, Decimal("0"))

            voided = is_full and entry.status == EntryStatus.PENDING.value
            if voided:
                entry.status = EntryStatus.VOID.value
            if clawback <= 0:
                logger.debug("Entry %s already charged back %s", entry.id, owed)
                continue

            self.session.add(
                CommissionAdjustment(
                    user_id=entry.user_id,
                    amount=-clawback,
                    adjustment_type=CHARGEBACK,
                    reason=f"Refund for {client_name}'s payment",
                    notes=(
                        f"Original commission: ${commission:.2f}. "
                        f"{'Full' if is_full else 'Partial'} refund of "
                        f"${refunded:.2f} processed."
                    ),
                    related_ledger_id=entry.id,
                    related_payment_id=payment_id,
                    idempotency_key=key,
                )
            )
            result.adjustments.append(
                ChargebackLine(
                    ledger_entry_id=entry.id,
                    user_id=entry.user_id,
                    amount=-clawback,
                    voided=voided,
                )
            )

        return result

    def _clawed_back(self, entry_ids: list[UUID]) -> dict[UUID, Decimal]:
        """Amount already charged back per ledger entry, as positive values."""
        rows = self.session.execute(
            select(
                CommissionAdjustment.related_ledger_id,
                func.sum(CommissionAdjustment.amount),
            )
            .where(
                CommissionAdjustment.related_ledger_id.in_(entry_ids),
                CommissionAdjustment.adjustment_type == CHARGEBACK,
            )
            .group_by(CommissionAdjustment.related_ledger_id)
        ).all()
        return {entry_id: -money(Decimal(total)) for entry_id, total in rows}

    def _client_name(self, client_id: UUID | None) -> str:
        if client_id is None:
            return "Unknown Client"
        name = self.session.execute(
            select(Client.name).where(Client.id == client_id)
        ).scalar_one_or_none()
        return name or "Unknown Client"
