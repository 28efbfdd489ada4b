"""Commission service - orchestrates load, calculate and persist per payment."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from commission_engine.calculators.engine import CalculationResult, SplitCalculator
from commission_engine.calculators.types import (
    CalculationOutcome,
    EntryStatus,
    RateSettings,
    ReviewStatus,
)
from commission_engine.config import ReadRetryPolicy
from commission_engine.events import EventEmitter, EventMetadata, PaymentFlaggedForReview
from commission_engine.exceptions import (
    ConcurrentProcessingError,
    PaymentNotEligibleError,
    RecalculationRefusedError,
)
from commission_engine.models import CommissionLedgerEntry, Payment
from commission_engine.services.input_loader import InputLoader
from commission_engine.services.ledger_writer import LedgerWriter
from commission_engine.services.locking_service import PaymentLock
from commission_engine.services.settings_provider import (
    RateSettingsProvider,
    StaticSettingsProvider,
)

logger = logging.getLogger(__name__)

SUCCEEDED = "succeeded"


@dataclass
class ProcessingResult:
    """Outcome of processing one payment."""

    payment_id: UUID
    outcome: CalculationOutcome
    calculation: CalculationResult | None = None
    entries_written: int = 0

    @property
    def total_commission(self) -> Decimal:
        if self.calculation is None:
            return Decimal("0")
        return self.calculation.total_commission


@dataclass
class BatchResult:
    """Summary of a pending pass."""

    processed: list[UUID] = field(default_factory=list)
    flagged: list[UUID] = field(default_factory=list)
    skipped: list[UUID] = field(default_factory=list)
    failed: dict[UUID, str] = field(default_factory=dict)

    @property
    def attempted(self) -> int:
        return len(self.processed) + len(self.flagged) + len(self.skipped) + len(self.failed)


class CommissionService:
    """Entry point for commission processing.

    Each payment is handled in its own transaction:
    1. Take the per-payment lock
    2. Load the inputs snapshot (retried on transient read errors)
    3. Run the waterfall calculator
    4. Upsert ledger rows and flip commission_calculated, then commit
    5. Publish events
    """

    def __init__(
        self,
        session: Session,
        settings_provider: RateSettingsProvider | None = None,
        emitter: EventEmitter | None = None,
        engine_version: str = "1.0.0",
        retry_policy: ReadRetryPolicy | None = None,
    ):
        self.session = session
        self.settings_provider = settings_provider or StaticSettingsProvider()
        self.emitter = emitter or EventEmitter()
        self.calculator = SplitCalculator(engine_version=engine_version)
        self.loader = InputLoader(session, retry_policy)

    def process_payment(
        self,
        payment_id: UUID,
        settings: RateSettings | None = None,
        correlation_id: UUID | None = None,
    ) -> ProcessingResult:
        """Calculate and persist commissions for one payment.

        Safe to call repeatedly: an already processed payment writes nothing.
        Refunded or disputed payments that were never processed raise
        PaymentNotEligibleError.
        """
        try:
            payment = self.loader.get_payment(payment_id)
            if payment.commission_calculated:
                self.session.rollback()
                return ProcessingResult(payment_id, CalculationOutcome.ALREADY_PROCESSED)

            PaymentLock(self.session).acquire(payment_id)
            # Re-read under the lock; another run may have just finished
            self.session.refresh(payment)
            if payment.commission_calculated:
                self.session.rollback()
                return ProcessingResult(payment_id, CalculationOutcome.ALREADY_PROCESSED)
            if payment.status != SUCCEEDED:
                raise PaymentNotEligibleError(payment_id, payment.status)

            settings = settings or self.settings_provider.get_settings()
            inputs = self.loader.load(payment, settings)
            result = self.calculator.calculate(inputs)
        except Exception:
            self.session.rollback()
            raise

        if result.outcome == CalculationOutcome.CLIENT_MISSING:
            self._flag_for_review(payment, "client not found", correlation_id)
            return ProcessingResult(payment_id, result.outcome, calculation=result)

        persisted = LedgerWriter(self.session, self.emitter).persist(
            result, correlation_id=correlation_id
        )
        return ProcessingResult(
            payment_id,
            result.outcome,
            calculation=result,
            entries_written=persisted.entries_written,
        )

    def preview(self, payment_id: UUID) -> CalculationResult:
        """Run the calculation without writing anything.

        Already processed payments are previewed as if they were new.
        """
        try:
            payment = self.loader.get_payment(payment_id)
            inputs = self.loader.load(payment, self.settings_provider.get_settings())
            inputs = dataclasses.replace(
                inputs,
                payment=dataclasses.replace(inputs.payment, commission_calculated=False),
            )
            return self.calculator.calculate(inputs)
        finally:
            self.session.rollback()

    def process_pending(self, limit: int = 100) -> BatchResult:
        """Process unprocessed payments, oldest first.

        Settings are resolved once for the whole batch. A failure is logged
        and recorded, and the pass moves on to the next payment.
        """
        if limit < 1:
            raise ValueError("limit must be at least 1")

        payment_ids = list(
            self.session.execute(
                select(Payment.id)
                .where(
                    Payment.commission_calculated.is_(False),
                    Payment.status == SUCCEEDED,
                    or_(
                        Payment.review_status.is_(None),
                        Payment.review_status == ReviewStatus.RESOLVED.value,
                    ),
                )
                .order_by(Payment.payment_date, Payment.id)
                .limit(limit)
            ).scalars()
        )
        self.session.rollback()

        batch = BatchResult()
        if not payment_ids:
            return batch

        settings = self.settings_provider.get_settings()
        correlation_id = uuid4()
        logger.info("Processing %d pending payments", len(payment_ids))

        for payment_id in payment_ids:
            try:
                result = self.process_payment(
                    payment_id, settings=settings, correlation_id=correlation_id
                )
            except (ConcurrentProcessingError, PaymentNotEligibleError):
                batch.skipped.append(payment_id)
                continue
            except Exception as exc:
                logger.exception("Commission processing failed for payment %s", payment_id)
                batch.failed[payment_id] = str(exc)
                continue

            if result.outcome == CalculationOutcome.CLIENT_MISSING:
                batch.flagged.append(payment_id)
            elif result.outcome == CalculationOutcome.ALREADY_PROCESSED:
                batch.skipped.append(payment_id)
            else:
                batch.processed.append(payment_id)

        logger.info(
            "Pending pass done: %d processed, %d flagged, %d skipped, %d failed",
            len(batch.processed),
            len(batch.flagged),
            len(batch.skipped),
            len(batch.failed),
        )
        return batch

    def recalculate(self, payment_id: UUID) -> ProcessingResult:
        """Void a payment's pending rows and process it again.

        Refused once any row has been paid out or the payment is no longer
        succeeded (refunded or disputed).
        Rows the new calculation produces are revived in place; the rest
        stay void.
        """
        try:
            payment = self.loader.get_payment(payment_id)
            if payment.status != SUCCEEDED:
                raise RecalculationRefusedError(payment_id, f"payment is {payment.status}")

            PaymentLock(self.session).acquire(payment_id)
            paid = self.session.execute(
                select(CommissionLedgerEntry.id)
                .where(
                    CommissionLedgerEntry.payment_id == payment_id,
                    CommissionLedgerEntry.status == EntryStatus.PAID.value,
                )
                .limit(1)
            ).scalar_one_or_none()
            if paid is not None:
                raise RecalculationRefusedError(payment_id, "commissions already paid out")

            voided = self.session.execute(
                update(CommissionLedgerEntry)
                .where(
                    CommissionLedgerEntry.payment_id == payment_id,
                    CommissionLedgerEntry.status == EntryStatus.PENDING.value,
                )
                .values(status=EntryStatus.VOID.value)
            ).rowcount
            self.session.execute(
                update(Payment)
                .where(Payment.id == payment_id)
                .values(commission_calculated=False)
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Payment %s: voided %d pending entries for recalculation", payment_id, voided)
        return self.process_payment(payment_id)

    def _flag_for_review(
        self, payment: Payment, reason: str, correlation_id: UUID | None
    ) -> None:
        try:
            payment.review_status = ReviewStatus.PENDING_REVIEW.value
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.warning("Payment %s flagged for review: %s", payment.id, reason)
        self.emitter.emit(
            PaymentFlaggedForReview(
                metadata=EventMetadata.create(correlation_id=correlation_id),
                payment_id=payment.id,
                reason=reason,
            )
        )
