"""Domain errors raised by the commission services."""

from __future__ import annotations

from uuid import UUID


class PaymentNotFoundError(Exception):
    """Raised when a payment id does not exist."""

    def __init__(self, payment_id: UUID):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} not found")


class PersistenceError(Exception):
    """Raised when writing ledger entries fails.

    The transaction is rolled back, so the payment stays unprocessed and
    will be picked up again by the next pending pass.
    """

    def __init__(self, payment_id: UUID, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(f"Failed to persist commissions for payment {payment_id}: {reason}")


class ConcurrentProcessingError(Exception):
    """Raised when another run holds or has already completed the payment."""

    def __init__(self, payment_id: UUID):
        self.payment_id = payment_id
        super().__init__(
            f"Payment {payment_id} is being processed by another run or was "
            "completed concurrently"
        )


class InputReadError(Exception):
    """Raised when reading calculation inputs keeps failing."""

    def __init__(self, what: str, attempts: int):
        self.what = what
        self.attempts = attempts
        super().__init__(f"Reading {what} failed after {attempts} attempt(s)")


class RecalculationRefusedError(Exception):
    """Raised when a payment's commissions can no longer be recalculated."""

    def __init__(self, payment_id: UUID, reason: str):
        self.payment_id = payment_id
        self.reason = reason
        super().__init__(f"Cannot recalculate payment {payment_id}: {reason}")


class PaymentNotEligibleError(Exception):
    """Raised when a payment's status does not allow commission processing."""

    def __init__(self, payment_id: UUID, payment_status: str):
        self.payment_id = payment_id
        self.payment_status = payment_status
        super().__init__(
            f"Payment {payment_id} is {payment_status}; only succeeded payments earn commission"
        )


class DisputeNotFoundError(Exception):
    """Raised when no payment carries the given dispute id."""

    def __init__(self, dispute_id: str):
        self.dispute_id = dispute_id
        super().__init__(f"No payment found for dispute {dispute_id}")
