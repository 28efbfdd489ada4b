"""Commission calculation engine."""

from commission_engine.calculators.coach_history import resolve_active_coach
from commission_engine.calculators.engine import (
    CalculationResult,
    LedgerEntryCandidate,
    SplitCalculator,
)
from commission_engine.calculators.payout_period import PayoutPeriod, period_for
from commission_engine.calculators.rate_resolver import RateResolver, resolve_coach_rate

__all__ = [
    "CalculationResult",
    "LedgerEntryCandidate",
    "PayoutPeriod",
    "RateResolver",
    "SplitCalculator",
    "period_for",
    "resolve_active_coach",
    "resolve_coach_rate",
]
