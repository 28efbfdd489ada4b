"""Commission services."""

from commission_engine.services.chargeback_service import (
    ChargebackResult,
    ChargebackService,
)
from commission_engine.services.commission_service import (
    BatchResult,
    CommissionService,
    ProcessingResult,
)
from commission_engine.services.input_loader import InputLoader
from commission_engine.services.ledger_writer import LedgerWriter, PersistResult
from commission_engine.services.locking_service import PaymentLock
from commission_engine.services.settings_provider import (
    DatabaseSettingsProvider,
    RateSettingsProvider,
    StaticSettingsProvider,
)

__all__ = [
    "BatchResult",
    "ChargebackResult",
    "ChargebackService",
    "CommissionService",
    "DatabaseSettingsProvider",
    "InputLoader",
    "LedgerWriter",
    "PaymentLock",
    "PersistResult",
    "ProcessingResult",
    "RateSettingsProvider",
    "StaticSettingsProvider",
]
