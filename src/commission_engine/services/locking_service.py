"""Per-payment locking so concurrent runs never process the same payment."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from commission_engine.database import is_postgres, try_advisory_xact_lock
from commission_engine.exceptions import ConcurrentProcessingError
from commission_engine.models import Payment

logger = logging.getLogger(__name__)


class PaymentLock:
    """Transaction-scoped lock on one payment.

    On PostgreSQL this is a non-blocking advisory lock keyed on the payment
    id, so a second run fails fast instead of queueing behind the first.
    Elsewhere it falls back to SELECT ... FOR UPDATE. Either way the lock
    is released when the transaction commits or rolls back.
    """

    def __init__(self, session: Session):
        self.session = session

    def acquire(self, payment_id: UUID) -> None:
        """Take the lock or raise ConcurrentProcessingError."""
        if is_postgres(self.session):
            if not try_advisory_xact_lock(self.session, f"commission:{payment_id}"):
                logger.info("Payment %s is locked by another run", payment_id)
                raise ConcurrentProcessingError(payment_id)
            return

        self.session.execute(
            select(Payment.id).where(Payment.id == payment_id).with_for_update()
        )
