"""Ledger Writer - idempotent persistence of calculated commissions.

Provides transactional writes of ledger entries with:
- Idempotency via (user_id, payment_id) uniqueness
- Pending rows revised in place on re-run; paid rows never touched
- Conditional flip of payments.commission_calculated
- Events published only after the transaction commits
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from commission_engine.calculators.engine import CalculationResult
from commission_engine.calculators.types import EntryStatus
from commission_engine.database import dialect_insert
from commission_engine.events import CommissionEarned, EventEmitter, EventMetadata
from commission_engine.exceptions import ConcurrentProcessingError, PersistenceError
from commission_engine.models import CommissionLedgerEntry, Payment

logger = logging.getLogger(__name__)

# Columns a re-run may revise on an existing pending row
_REVISABLE_COLUMNS = (
    "client_id",
    "gross_amount",
    "net_amount",
    "commission_amount",
    "entry_type",
    "split_role",
    "split_percentage",
    "source_schedule_id",
    "status",
    "payout_period_start",
    "calculation_basis",
)


@dataclass(frozen=True)
class PersistResult:
    """Result of writing one payment's commissions.

    `entries_written` counts rows inserted or revised; rows that were
    already paid are left alone and not counted.
    """

    payment_id: UUID
    entries_written: int
    total_commission: Decimal
    marked_processed: bool


class LedgerWriter:
    """Writes a CalculationResult in a single transaction.

    Notes:
    - The caller holds the payment lock for the same transaction.
    - On any database error the transaction is rolled back and the
      payment stays unprocessed for the next pending pass.
    """

    def __init__(self, session: Session, emitter: EventEmitter | None = None):
        self.session = session
        self.emitter = emitter or EventEmitter()

    def persist(
        self,
        result: CalculationResult,
        *,
        correlation_id: UUID | None = None,
    ) -> PersistResult:
        """Upsert the result's ledger rows, mark the payment, commit, notify."""
        payment_id = result.payment_id
        rows = result.to_rows()

        try:
            written = self._upsert_rows(rows)

            marked = False
            if result.should_mark_processed:
                flipped = self.session.execute(
                    update(Payment)
                    .where(Payment.id == payment_id, Payment.commission_calculated.is_(False))
                    .values(commission_calculated=True)
                )
                if flipped.rowcount != 1:
                    logger.warning(
                        "Payment %s was marked processed by another run; rolling back",
                        payment_id,
                    )
                    self.session.rollback()
                    raise ConcurrentProcessingError(payment_id)
                marked = True

            self.session.commit()
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("Persisting commissions for payment %s failed", payment_id)
            raise PersistenceError(payment_id, str(exc)) from exc

        logger.info(
            "Payment %s: wrote %d ledger entries totalling %s",
            payment_id,
            written,
            result.total_commission,
        )
        self._publish(result, correlation_id or result.calculation_id)

        return PersistResult(
            payment_id=payment_id,
            entries_written=written,
            total_commission=result.total_commission,
            marked_processed=marked,
        )

    def _upsert_rows(self, rows: list[dict]) -> int:
        if not rows:
            return 0

        table = CommissionLedgerEntry.__table__
        stmt = dialect_insert(self.session, table).values(
            [{"id": uuid4(), **row} for row in rows]
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "payment_id"],
            set_={column: stmt.excluded[column] for column in _REVISABLE_COLUMNS},
            where=table.c.status != EntryStatus.PAID.value,
        )
        return self.session.execute(stmt).rowcount or 0

    def _publish(self, result: CalculationResult, correlation_id: UUID | None) -> None:
        with self.emitter.batch() as batch:
            for entry in result.entries:
                batch.add(
                    CommissionEarned(
                        metadata=EventMetadata.create(correlation_id=correlation_id),
                        user_id=entry.user_id,
                        amount=entry.commission_amount,
                        role=entry.role.value,
                        client_id=result.client_id,
                        payment_id=result.payment_id,
                    )
                )
        for error in batch.errors:
            logger.warning("Commission notification failed: %s", error)
